"""
Display and normalisation helpers for phone numbers, money, dates and addresses.
"""

import re
from datetime import date, datetime

E164_US_PATTERN = re.compile(r'^\+1\d{10}$')


def format_phone_number(phone):
    """
    Normalise a US phone number to E.164.

    10 digits become +1XXXXXXXXXX, 11 digits starting with 1 become +1XXXXXXXXXX.
    Anything else is returned unchanged.
    """
    if not phone:
        return phone
    digits = re.sub(r'\D', '', phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith('1'):
        return f"+{digits}"
    return phone


def is_valid_phone_number(phone):
    """True for an E.164 US number (+1 followed by 10 digits)."""
    return bool(phone) and bool(E164_US_PATTERN.match(phone))


def format_phone_display(phone):
    """(XXX) XXX-XXXX for US numbers; other input is returned unchanged."""
    if not phone:
        return ''
    digits = re.sub(r'\D', '', phone)
    if len(digits) == 11 and digits.startswith('1'):
        digits = digits[1:]
    if len(digits) != 10:
        return phone
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def format_currency(amount):
    """$1,234.56; negative amounts as -$1,234.56."""
    value = float(amount or 0)
    sign = '-' if value < 0 else ''
    return f"{sign}${abs(value):,.2f}"


def format_date(value, fmt='%m/%d/%Y'):
    """Format a date, datetime or ISO string; empty input gives ''."""
    if not value:
        return ''
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, (date, datetime)):
        return value.strftime(fmt)
    return str(value)


def full_name(first_name, last_name):
    return ' '.join(part for part in (first_name, last_name) if part)


def format_address(address_line1, city, state, zip_code, address_line2=None):
    """Two or three line postal address."""
    lines = [address_line1]
    if address_line2:
        lines.append(address_line2)
    lines.append(f"{city}, {state} {zip_code}")
    return '\n'.join(line for line in lines if line)
