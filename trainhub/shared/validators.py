"""Shared validation utilities"""

import re
from typing import Optional


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_rating(value: Optional[int], field_name: str = "rating") -> Optional[int]:
    """Star ratings run from 1 to 5; None is allowed for optional sub-ratings"""
    if value is None:
        return value
    if not 1 <= value <= 5:
        raise ValueError(f"{field_name} must be between 1 and 5")
    return value


def validate_budget_range(budget_min: Optional[float], budget_max: Optional[float]) -> None:
    """
    Validate a request budget range.

    Raises:
        ValueError: If either bound is negative or min exceeds max
    """
    for bound in (budget_min, budget_max):
        if bound is not None and bound < 0:
            raise ValueError("Budget cannot be negative")
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        raise ValueError("Minimum budget cannot exceed maximum budget")
