"""Phone number normalization for compliance matching."""
from __future__ import annotations

import re
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException

from core.config import get_settings
from core.exceptions import InvalidPhoneNumberError

_HAS_DIGIT = re.compile(r"\d")


def normalize_phone(value: Optional[str], default_region: Optional[str] = None) -> str:
    """
    Normalize a phone number to E.164.

    Every hash and ciphertext is computed over this form, so "(225) 555-0100"
    and "+1 225 555 0100" match the same DNC entry.

    Raises:
        InvalidPhoneNumberError: empty, unparseable or invalid input.
    """
    if not value or not _HAS_DIGIT.search(value):
        raise InvalidPhoneNumberError("Phone number is required")

    region = default_region or get_settings().default_phone_region
    try:
        parsed = phonenumbers.parse(value.strip(), region)
    except NumberParseException as exc:
        raise InvalidPhoneNumberError(f"Unparseable phone number: {exc.error_type}") from exc

    if not phonenumbers.is_valid_number(parsed):
        raise InvalidPhoneNumberError("Phone number is not valid")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


__all__ = ["normalize_phone"]
