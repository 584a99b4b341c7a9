"""Shared validation utilities"""

import re
from typing import Optional

TIME_LABEL_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def validate_br_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a Brazilian phone number.

    Accepts landlines (10 digits) and mobiles (11 digits), with or without
    the 55 country code and any punctuation.

    Args:
        phone: Phone number string in various formats

    Returns:
        Digits only, without country code (e.g. "11987654321")

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle +55 prefix
    if digits.startswith("55") and len(digits) in (12, 13):
        digits = digits[2:]

    if len(digits) not in (10, 11):
        raise ValueError("Phone number must have 10 or 11 digits (DDD + number)")

    return digits


def to_whatsapp_number(phone: str) -> str:
    """Format a stored phone as the E.164-without-plus number the gateway expects"""
    digits = re.sub(r"\D", "", phone)
    if not digits.startswith("55"):
        digits = f"55{digits}"
    return digits


def validate_time_label(value: Optional[str]) -> Optional[str]:
    """Validate HH:MM (or HH:MM:SS) and return the HH:MM form"""
    if value is None:
        return value
    if not TIME_LABEL_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value[:5]


def validate_slug(slug: Optional[str]) -> Optional[str]:
    if not slug:
        return slug
    slug = slug.strip().lower()
    if not SLUG_PATTERN.match(slug):
        raise ValueError("Slug may only contain lowercase letters, digits and hyphens")
    return slug


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email
