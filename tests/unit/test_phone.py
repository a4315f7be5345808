"""Tests for international phone helpers."""
import pytest

from coolfix.lib.phone import (
    INVALID_PHONE_MESSAGE,
    is_valid_international_phone,
    normalize_phone,
    phones_match,
    validate_international_phone,
)


@pytest.mark.unit
@pytest.mark.parametrize("phone", ["+923001234567", "+1 (415) 555-0100", "+44 20 7946 0958"])
def test_valid_numbers(phone):
    assert is_valid_international_phone(phone)


@pytest.mark.unit
@pytest.mark.parametrize("phone", ["03001234567", "+0123456789", "+12", "", "+92300123456789012", "phone"])
def test_invalid_numbers(phone):
    assert not is_valid_international_phone(phone)


@pytest.mark.unit
def test_normalize_strips_formatting():
    assert normalize_phone("+92 300-123 4567") == "+923001234567"


@pytest.mark.unit
def test_validate_raises_with_customer_message():
    with pytest.raises(ValueError, match="valid international phone number"):
        validate_international_phone("0300 1234567")

    assert "+923001234567" in INVALID_PHONE_MESSAGE


@pytest.mark.unit
def test_phones_match_ignores_formatting():
    assert phones_match("+923001234567", "+92 300 1234567")
    assert not phones_match("+923001234567", "+923009999999")
    assert not phones_match("+923001234567", "")
