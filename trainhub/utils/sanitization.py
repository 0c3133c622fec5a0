import html
import re
from typing import Any, Optional


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Sanitize a string by escaping HTML special characters to prevent XSS.
    Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    value = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value.strip())
    return html.escape(value, quote=True)


def sanitize_fields(data: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    """
    Return a copy of data with the named free-text fields sanitized.

    Fields that are missing or None are left as they are.
    """
    sanitized = dict(data)
    for key in fields:
        if isinstance(sanitized.get(key), str):
            sanitized[key] = sanitize_string(sanitized[key])
    return sanitized
