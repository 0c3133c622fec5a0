"""Training request catalog domain"""

from .router import router

__all__ = ["router"]
