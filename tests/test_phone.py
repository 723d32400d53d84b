"""Tests for phone number validation."""

import pytest

from wacli.errors import InvalidInput, InvalidPhoneNumber
from wacli.phone import normalize_phone_number


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("15551234567", "15551234567"),
        ("+1 555 123 4567", "15551234567"),
        ("+44 (20) 7946-0958", "442079460958"),
        ("49.30.1234567", "49301234567"),
    ],
)
def test_normalizes_common_formats(raw, expected):
    assert normalize_phone_number(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        None,
        "+1 555 CALL NOW",
        "05551234567",
        "123456",
        "1234567890123456",
        "١٢٣٤٥٦٧٨",  # non-ASCII digits
    ],
)
def test_rejects_malformed_numbers(raw):
    with pytest.raises(InvalidPhoneNumber):
        normalize_phone_number(raw)


def test_missing_number_message():
    with pytest.raises(InvalidPhoneNumber, match="phone_number is required"):
        normalize_phone_number("")


def test_is_invalid_input():
    """Phone errors map to the generic invalid input family."""
    assert issubclass(InvalidPhoneNumber, InvalidInput)
