"""Form validation helpers for account sign-up."""
import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@.][^\s@]*\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


def validate_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return EMAIL_PATTERN.match(email) is not None


def validate_password(password: Optional[str]) -> bool:
    """At least 8 characters with an uppercase letter, a lowercase letter and a digit."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False
    return (
        any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
    )


def validate_required(value: Optional[str]) -> bool:
    return bool(value and value.strip())
