"""
Field rules shared by registration, admin user/store creation and ratings.

Each ``clean_*`` helper returns the normalized value or raises
``ValidationError`` before anything touches the database.
"""

import re
from typing import Any, Optional

from app.core.exceptions import ValidationError
from app.models.user import UserRole

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_MAX_LENGTH = 255

NAME_MIN_LENGTH = 20
NAME_MAX_LENGTH = 60

ADDRESS_MIN_LENGTH = 5
ADDRESS_MAX_LENGTH = 400

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 16
PASSWORD_SYMBOLS = set("!@#$%^&*()_+-=[]{};':\"\\|,./<>?")
PASSWORD_RULE = (
    "Password must be 8-16 characters with at least one uppercase letter "
    "and one special character"
)

RATING_MIN = 1
RATING_MAX = 5
COMMENT_MAX_LENGTH = 500


def require_fields(**fields: Any) -> None:
    """Fail when any named field is missing or blank."""
    missing = [
        name
        for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(
            f"All fields are required: {', '.join(fields)}",
            details={"missing": missing},
        )


def is_valid_email(email: Any) -> bool:
    return (
        isinstance(email, str)
        and len(email) <= EMAIL_MAX_LENGTH
        and EMAIL_RE.match(email) is not None
    )


def clean_email(email: Any) -> str:
    cleaned = email.strip().lower() if isinstance(email, str) else email
    if not is_valid_email(cleaned):
        raise ValidationError("Please provide a valid email address")
    return cleaned


def clean_name(name: Any, label: str = "Name") -> str:
    cleaned = name.strip() if isinstance(name, str) else ""
    if not NAME_MIN_LENGTH <= len(cleaned) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"{label} must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters long"
        )
    return cleaned


def clean_address(address: Any) -> str:
    cleaned = address.strip() if isinstance(address, str) else ""
    if not ADDRESS_MIN_LENGTH <= len(cleaned) <= ADDRESS_MAX_LENGTH:
        raise ValidationError(
            f"Address must be {ADDRESS_MIN_LENGTH}-{ADDRESS_MAX_LENGTH} characters long"
        )
    return cleaned


def is_strong_password(password: Any) -> bool:
    if not isinstance(password, str):
        return False
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        return False
    has_upper = any(ch.isupper() for ch in password)
    has_symbol = any(ch in PASSWORD_SYMBOLS for ch in password)
    return has_upper and has_symbol


def check_password(password: Any) -> str:
    if not is_strong_password(password):
        raise ValidationError(PASSWORD_RULE)
    return password


def clean_role(role: Any) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        valid = ", ".join(r.value for r in UserRole)
        raise ValidationError(f"Role must be one of: {valid}")


def check_rating_value(value: Any) -> int:
    # bool is an int subclass, True would otherwise pass as 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Rating must be an integer between 1 and 5")
    if not RATING_MIN <= value <= RATING_MAX:
        raise ValidationError("Rating must be an integer between 1 and 5")
    return value


def clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    cleaned = comment.strip()
    if len(cleaned) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters"
        )
    return cleaned or None


def check_positive_id(value: Any, label: str = "ID") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{label} must be a positive integer")
    return value
