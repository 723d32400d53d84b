"""Phone number validation for code pairing."""

import re

from wacli.errors import InvalidPhoneNumber

# E.164 allows at most 15 digits; shorter than 7 is never a full number
MIN_DIGITS = 7
MAX_DIGITS = 15

_SEPARATORS = re.compile(r"[\s\-().]")
_DIGITS = re.compile(r"[0-9]+")


def normalize_phone_number(raw: str) -> str:
    """Reduce a phone number to international digits.

    Accepts an optional leading "+" and common separators (spaces, dashes,
    dots, parentheses). The platform expects the bare digit string with
    country code and no leading zero.

    Raises:
        InvalidPhoneNumber: If the number is empty or malformed.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidPhoneNumber("phone_number is required")

    number = _SEPARATORS.sub("", raw.strip())
    if number.startswith("+"):
        number = number[1:]

    if not _DIGITS.fullmatch(number):
        raise InvalidPhoneNumber("phone_number must contain only digits")
    if number.startswith("0"):
        raise InvalidPhoneNumber(
            "phone_number must start with a country code, not 0"
        )
    if not MIN_DIGITS <= len(number) <= MAX_DIGITS:
        raise InvalidPhoneNumber(
            f"phone_number must have {MIN_DIGITS}-{MAX_DIGITS} digits"
        )
    return number
