"""
International phone number helpers.

Numbers are accepted with spaces, dashes or brackets and stored in canonical
E.164 form ("+923001234567").
"""
import re


E164_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")
INVALID_PHONE_MESSAGE = "Please enter a valid international phone number (e.g., +923001234567)"


def normalize_phone(phone: str) -> str:
    """Strip everything except digits and the leading plus sign."""
    return re.sub(r"[^\d+]", "", phone or "")


def is_valid_international_phone(phone: str) -> bool:
    """True when the number normalizes to E.164 (country code, 7-15 digits)."""
    return bool(E164_PATTERN.match(normalize_phone(phone)))


def validate_international_phone(phone: str) -> str:
    """
    Validate and normalize a phone number.

    Raises:
        ValueError: If the number is not a valid international number
    """
    if not is_valid_international_phone(phone):
        raise ValueError(INVALID_PHONE_MESSAGE)
    return normalize_phone(phone)


def phones_match(stored: str, supplied: str) -> bool:
    """Compare two numbers after normalization."""
    return bool(supplied) and normalize_phone(stored) == normalize_phone(supplied)
