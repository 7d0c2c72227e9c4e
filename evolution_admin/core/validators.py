"""Input validation helpers for user payloads."""
from __future__ import annotations
import re
from typing import Any, Optional

from .credentials import PASSWORD_MIN_LENGTH
from .exceptions import InvalidInputError
from .models import ROLES

EMAIL_MAX_LENGTH = 254
NAME_MAX_LENGTH = 128
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(email: Any) -> str:
    """Validate email address.

    Emails are matched exactly on lookup, so the value is only trimmed.

    Raises:
        InvalidInputError: If email is missing or malformed
    """
    if not isinstance(email, str) or not email.strip():
        raise InvalidInputError("email is required")
    email = email.strip()
    if len(email) > EMAIL_MAX_LENGTH:
        raise InvalidInputError(f"email must not exceed {EMAIL_MAX_LENGTH} characters")
    if not EMAIL_PATTERN.match(email):
        raise InvalidInputError("email format is invalid")
    return email


def validate_name(name: Any, field: str = "nombre") -> str:
    """Validate display name; returns the trimmed value."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError(f"{field} is required")
    name = name.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise InvalidInputError(f"{field} exceeds maximum length")
    if any(char in name for char in "<>\"`;|$"):
        raise InvalidInputError(f"{field} contains invalid characters")
    return name


def validate_password(password: Any, field: str = "password") -> str:
    if not isinstance(password, str) or not password:
        raise InvalidInputError(f"{field} is required")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise InvalidInputError(f"{field} must be at least {PASSWORD_MIN_LENGTH} characters")
    return password


def validate_role(role: Any) -> str:
    if role not in ROLES:
        raise InvalidInputError(f"role must be one of: {', '.join(ROLES)}")
    return role


def validate_local_ids(locales: Any) -> list[str]:
    """Validate a list of location ids; duplicates are dropped, order kept."""
    if locales is None:
        return []
    if not isinstance(locales, list):
        raise InvalidInputError("locales must be a list of location ids")
    ids: list[str] = []
    for local_id in locales:
        if not isinstance(local_id, str) or not local_id.strip():
            raise InvalidInputError("locales must contain non-empty location ids")
        if local_id not in ids:
            ids.append(local_id)
    return ids


def parse_positive_int(raw: Any, field: str, default: int, maximum: Optional[int] = None) -> int:
    """Parse a pagination parameter, clamping to [1, maximum].

    Raises:
        InvalidInputError: If the value is not an integer
    """
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must be an integer")
    value = max(1, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def parse_bool(raw: Any, field: str) -> Optional[bool]:
    """Accept JSON booleans or the strings 'true'/'false'; None when absent."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    raise InvalidInputError(f"{field} must be a boolean")
