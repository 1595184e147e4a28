"""Shared validation utilities"""

import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim; blank becomes None"""
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Keep digits only; blank becomes None"""
    if phone is None:
        return None
    digits = re.sub(r"\D", "", phone)
    return digits or None


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address, or None when blank

    Raises:
        ValueError: If email format is invalid
    """
    email = normalize_email(email)
    if email is None:
        return None

    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")

    return email


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate a phone number loosely (international numbers are allowed).

    Returns:
        The trimmed phone number as entered, or None when blank

    Raises:
        ValueError: If fewer than 7 or more than 15 digits remain
    """
    if phone is None or not phone.strip():
        return None

    digits = normalize_phone(phone) or ""
    if not 7 <= len(digits) <= 15:
        raise ValueError("Phone number must contain between 7 and 15 digits")

    return phone.strip()
