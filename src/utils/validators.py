"""Input validators for the billing service."""

from typing import Tuple

# NIST-aligned: length over complexity
MIN_PASSWORD_LENGTH = 8

COMMON_PASSWORDS = {
    'password', 'password123', '12345678', 'qwerty',
    'admin', 'letmein', 'welcome', 'password1', '123456789'
}


def validate_password(password: str) -> Tuple[bool, str]:
    """
    Validate password against NIST-aligned policy.

    Returns:
        (is_valid, error_message)
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"

    if password.lower() in COMMON_PASSWORDS:
        return False, "This password is too common"

    return True, ""
