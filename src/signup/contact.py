"""
Contact field helpers.

Phones have two forms: the human one shown on screen, "(555) 123-4567", and
the canonical "+15551234567" sent to the backend and telephony.
"""

import re
from datetime import date

_NON_DIGITS = re.compile(r"\D")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")


def phone_digits(value: str | None) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", value or "")


def normalize_phone(value: str | None) -> str:
    """
    Canonical +<country><digits> form.

    10 digits are assumed to be US (+1). 11 digits starting with 1 already
    carry the country code. Anything else just gets a "+"; no further
    assumptions about the country.
    """
    digits = phone_digits(value)
    if not digits:
        return ""
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return f"+{digits}"


def format_phone(value: str | None) -> str:
    """
    Human (xxx) xxx-xxxx form, built up progressively while typing.

    A leading US country code is dropped; longer input keeps its last ten
    digits.
    """
    digits = phone_digits(value)
    if len(digits) > 10:
        if len(digits) == 11 and digits.startswith("1"):
            digits = digits[1:]
        else:
            digits = digits[-10:]
    if len(digits) <= 3:
        return digits
    if len(digits) <= 6:
        return f"({digits[:3]}) {digits[3:]}"
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:10]}"


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(value))


def format_zip_code(value: str | None) -> str:
    """Keep digits and dashes, inserting the ZIP+4 dash when missing."""
    cleaned = re.sub(r"[^\d-]", "", value or "")
    if len(cleaned) <= 5:
        return cleaned
    if "-" in cleaned and len(cleaned) <= 10:
        return cleaned
    if "-" not in cleaned:
        return f"{cleaned[:5]}-{cleaned[5:9]}"
    return cleaned[:10]


def is_zip_code_valid(value: str | None) -> bool:
    return bool(value) and bool(_ZIP_RE.match(value))


def calculate_age(date_of_birth: str | date, today: date | None = None) -> int | None:
    """Whole years since date_of_birth (ISO string or date). None if unparseable."""
    if isinstance(date_of_birth, str):
        try:
            born = date.fromisoformat(date_of_birth)
        except ValueError:
            return None
    else:
        born = date_of_birth

    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age
