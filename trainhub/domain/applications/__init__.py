"""Trainer applications and selection domain"""

from .router import router

__all__ = ["router"]
