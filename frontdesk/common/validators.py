"""Validation for registration input."""
import re

from frontdesk.common.errors import InvalidDemographics

GENDERS = ('Male', 'Female', 'Other')
MAX_AGE = 150

_PHONE_CHARS = re.compile(r'^[0-9+\-() ]+$')


def validate_phone(phone: str) -> bool:
    """
    Accept a loosely formatted phone number.

    Examples:
        >>> validate_phone('555-0100')
        True
        >>> validate_phone('+91 98765 43210')
        True
        >>> validate_phone('12-34')
        False
        >>> validate_phone('call me')
        False
    """
    if not phone or not 7 <= len(phone) <= 20:
        return False

    if not _PHONE_CHARS.match(phone):
        return False

    return sum(ch.isdigit() for ch in phone) >= 7


def validate_age(age) -> int | None:
    """Return the age as an int, or None if it is not a plausible age."""
    if isinstance(age, bool):
        return None
    try:
        value = int(str(age).strip())
    except (TypeError, ValueError):
        return None
    if value < 0 or value > MAX_AGE:
        return None
    return value


def _text(value) -> str:
    if value is None:
        return ''
    return str(value).strip()


def clean_demographics(data: dict) -> dict:
    """Validate and normalise a registration payload.

    Raises InvalidDemographics with every failing field at once.
    """
    errors = {}

    name = _text(data.get('name'))
    if not name:
        errors['name'] = 'name is required'

    age = validate_age(data.get('age'))
    if age is None:
        errors['age'] = f'age must be a whole number between 0 and {MAX_AGE}'

    phone = _text(data.get('phone'))
    if not validate_phone(phone):
        errors['phone'] = 'phone must contain at least 7 digits'

    gender = _text(data.get('gender')) or None
    if gender is not None and gender not in GENDERS:
        errors['gender'] = f"gender must be one of {', '.join(GENDERS)}"

    if errors:
        raise InvalidDemographics(errors)

    return {
        'name': name,
        'age': age,
        'gender': gender,
        'phone': phone,
        'address': _text(data.get('address')),
        'symptoms': _text(data.get('symptoms')) or None,
        'assigned_doctor': _text(data.get('assigned_doctor')) or 'Auto-assigned',
    }
