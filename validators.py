"""
Input Validation & Sanitization Utilities
Field-level validation for the customer, property, crew, scheduling,
estimate and messaging forms.
"""
import re
from datetime import date
from typing import Dict, Any, List, Optional, Tuple
import logging

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?1?\d{10}$')
ZIP_PATTERN = re.compile(r'^\d{5}(-\d{4})?$')

# Allowed values
CUSTOMER_STATUSES = {'active', 'inactive'}
TECHNICIAN_STATUSES = {'active', 'inactive'}
CREW_STATUSES = {'active', 'inactive'}
CREW_ROLES = {'crew_leader', 'crew_member', 'trainee'}
TIME_WINDOWS = {'morning', 'afternoon', 'evening'}
RECURRENCE_TYPES = {'one_time', 'weekly', 'bi_weekly', 'monthly', 'custom'}
SCHEDULE_STATUSES = {'scheduled', 'in_progress', 'completed', 'cancelled'}
INSTANCE_STATUSES = {'pending', 'confirmed', 'in_progress', 'completed', 'cancelled', 'rescheduled'}
UNIT_TYPES = {'flat_rate', 'per_sqft', 'per_yard'}


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, message: str, field: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        self.message = message
        self.field = field
        self.errors = errors or ({field: message} if field else {})
        super().__init__(self.message)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = [field for field in required_fields if _is_blank(data.get(field))]

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Validate email format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email or not isinstance(email, str):
        return False, "Email must be a non-empty string"

    if len(email) > 254:  # RFC 5321
        return False, "Email address too long"

    if not EMAIL_PATTERN.match(email):
        return False, "Invalid email format"

    return True, None


def validate_phone(phone: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a US phone number: 10 digits, optionally prefixed by 1 or +1.
    Spaces, dashes, dots and parentheses are ignored.
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone must be a non-empty string"

    cleaned_phone = re.sub(r'[\s\-\.\(\)]', '', phone)

    if not PHONE_PATTERN.match(cleaned_phone):
        return False, "Invalid phone number format"

    return True, None


def validate_zip_code(zip_code: str) -> Tuple[bool, Optional[str]]:
    """Validate a 5 digit or ZIP+4 code."""
    if not zip_code or not isinstance(zip_code, str):
        return False, "ZIP code must be a non-empty string"

    if not ZIP_PATTERN.match(zip_code.strip()):
        return False, "Invalid ZIP code format"

    return True, None


def validate_string_length(value: str, min_length: int = 0, max_length: int = 1000) -> Tuple[bool, Optional[str]]:
    """
    Validate string length is within acceptable range

    Args:
        value: String to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, "Value must be a string"

    if len(value) < min_length:
        return False, f"Value too short (minimum {min_length} characters)"

    if len(value) > max_length:
        return False, f"Value too long (maximum {max_length} characters)"

    return True, None


def validate_number_range(value: float, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate number is within acceptable range

    Args:
        value: Number to validate
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, "Value must be a number"

    if min_value is not None and value < min_value:
        return False, f"Value too small (minimum {min_value})"

    if max_value is not None and value > max_value:
        return False, f"Value too large (maximum {max_value})"

    return True, None


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """
    Sanitize string input by removing potentially dangerous characters

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return str(value)

    # Remove null bytes
    sanitized = value.replace('\x00', '').strip()

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def parse_date(value: Any, field: str = 'date') -> Optional[date]:
    """Parse an ISO date string (or pass a date through). Raises ValidationError on garbage."""
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    try:
        return date_parser.isoparse(str(value)).date()
    except (ValueError, OverflowError):
        raise ValidationError(f"Invalid date: {value}", field)


def parse_number(value: Any, field: str) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{_label(field)} must be a number", field)


# =============================================================================
# FORM VALIDATORS
# Each returns {field: message}; an empty dict means the form is valid.
# =============================================================================

def validate_customer_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
    """
    Validate the add/edit customer form.

    Args:
        data: Submitted fields
        partial: True for updates, where only the submitted fields are checked
    """
    errors = {}
    required = {
        'first_name': 'First name is required',
        'last_name': 'Last name is required',
        'email': 'Email is required',
        'phone': 'Phone number is required',
        'billing_address': 'Billing address is required',
        'billing_city': 'City is required',
        'billing_state': 'State is required',
        'billing_zip': 'ZIP code is required',
    }
    for field, message in required.items():
        if (not partial or field in data) and _is_blank(data.get(field)):
            errors[field] = message

    if 'email' not in errors and data.get('email'):
        if not validate_email(data['email'])[0]:
            errors['email'] = 'Invalid email address'
    if 'phone' not in errors and data.get('phone'):
        if not validate_phone(data['phone'])[0]:
            errors['phone'] = 'Invalid phone number'
    if 'billing_zip' not in errors and data.get('billing_zip'):
        if not validate_zip_code(data['billing_zip'])[0]:
            errors['billing_zip'] = 'Invalid ZIP code format'

    if data.get('payment_terms') is not None:
        terms = data['payment_terms']
        if isinstance(terms, bool) or not isinstance(terms, int) or terms < 0:
            errors['payment_terms'] = 'Payment terms must be a non-negative number of days'
    if data.get('status') is not None and data['status'] not in CUSTOMER_STATUSES:
        errors['status'] = 'Invalid status'

    return errors


def validate_property_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
    """Validate the add/edit property form."""
    errors = {}
    required = {
        'customer_id': 'Customer ID is required',
        'address_line1': 'Address is required',
        'city': 'City is required',
        'state': 'State is required',
        'zip_code': 'ZIP code is required',
    }
    for field, message in required.items():
        if (not partial or field in data) and _is_blank(data.get(field)):
            errors[field] = message

    if 'zip_code' not in errors and data.get('zip_code'):
        if not validate_zip_code(data['zip_code'])[0]:
            errors['zip_code'] = 'Invalid ZIP code format'

    for field in ('property_size', 'lawn_size'):
        value = data.get(field)
        if value is not None and value != '':
            if not validate_number_range(value, min_value=0)[0]:
                errors[field] = f"{_label(field)} must be a non-negative number"

    return errors


def validate_technician_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
    """Validate the add/edit technician form."""
    errors = {}
    required = {
        'first_name': 'First name is required',
        'last_name': 'Last name is required',
        'email': 'Email is required',
        'phone': 'Phone number is required',
    }
    for field, message in required.items():
        if (not partial or field in data) and _is_blank(data.get(field)):
            errors[field] = message

    if 'email' not in errors and data.get('email') and not validate_email(data['email'])[0]:
        errors['email'] = 'Invalid email address'
    if 'phone' not in errors and data.get('phone') and not validate_phone(data['phone'])[0]:
        errors['phone'] = 'Invalid phone number'
    if data.get('status') is not None and data['status'] not in TECHNICIAN_STATUSES:
        errors['status'] = 'Invalid status'

    return errors


def validate_crew_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
    errors = {}
    if (not partial or 'name' in data) and _is_blank(data.get('name')):
        errors['name'] = 'Crew name is required'
    if data.get('status') is not None and data['status'] not in CREW_STATUSES:
        errors['status'] = 'Invalid status'
    return errors


def validate_crew_member_data(data: Dict[str, Any]) -> Dict[str, str]:
    errors = {}
    if _is_blank(data.get('technician_id')):
        errors['technician_id'] = 'Technician is required'
    role = data.get('role', 'crew_member')
    if role not in CREW_ROLES:
        errors['role'] = 'Role must be crew_leader, crew_member or trainee'
    return errors


def validate_service_schedule_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
    """
    Validate the schedule-service form.

    A custom service (no service_type_id) needs a description and a price above
    zero. A recurring service needs a frequency and an end date.
    """
    errors = {}
    if (not partial or 'property_id' in data) and _is_blank(data.get('property_id')):
        errors['property_id'] = 'Property is required'
    if (not partial or 'scheduled_date' in data) and _is_blank(data.get('scheduled_date')):
        errors['scheduled_date'] = 'Scheduled date is required'

    is_custom = _is_blank(data.get('service_type_id'))
    if not partial and is_custom:
        if _is_blank(data.get('description')):
            errors['description'] = 'Description is required for custom services'
        try:
            price = parse_number(data.get('base_price'), 'base_price')
        except ValidationError:
            price = None
        if price is None or price <= 0:
            errors['base_price'] = 'Price must be greater than 0 for custom services'
    elif data.get('base_price') not in (None, ''):
        try:
            if parse_number(data['base_price'], 'base_price') < 0:
                errors['base_price'] = 'Price cannot be negative'
        except ValidationError as e:
            errors['base_price'] = e.message

    window = data.get('scheduled_time_window')
    if window and window not in TIME_WINDOWS:
        errors['scheduled_time_window'] = 'Time window must be morning, afternoon or evening'

    if data.get('status') is not None and data['status'] not in SCHEDULE_STATUSES:
        errors['status'] = 'Invalid status'

    recurrence_type = data.get('recurrence_type')
    if data.get('is_recurring'):
        if not recurrence_type or recurrence_type == 'one_time':
            errors['recurrence_type'] = 'Frequency is required for recurring services'
        if _is_blank(data.get('end_date')):
            errors['end_date'] = 'End date is required for recurring services'
    if recurrence_type and recurrence_type not in RECURRENCE_TYPES:
        errors['recurrence_type'] = 'Invalid frequency'

    if data.get('is_recurring') or data.get('recurrence_interval') is not None:
        interval = data.get('recurrence_interval', 1)
        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
            errors['recurrence_interval'] = 'Interval must be a positive whole number'

    days_required = data.get('is_recurring') and recurrence_type == 'custom'
    if days_required or 'recurrence_days' in data:
        days = data.get('recurrence_days') or []
        if not isinstance(days, list) or any(isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6
                                             for d in days):
            errors['recurrence_days'] = 'Select at least one day (0=Sunday to 6=Saturday)'
        elif days_required and not days:
            errors['recurrence_days'] = 'Select at least one day (0=Sunday to 6=Saturday)'

    if 'end_date' not in errors and data.get('end_date'):
        try:
            start = parse_date(data.get('start_date') or data.get('scheduled_date'), 'start_date')
            end = parse_date(data['end_date'], 'end_date')
            if start and end and end < start:
                errors['end_date'] = 'End date cannot be before the start date'
        except ValidationError as e:
            errors[e.field] = e.message

    return errors


def validate_estimate_data(data: Dict[str, Any]) -> Dict[str, str]:
    """Validate the estimate form."""
    errors = {}
    if _is_blank(data.get('customer_id')) or _is_blank(data.get('property_id')):
        errors['customer_id'] = 'Please select a customer and property'
    if _is_blank(data.get('title')):
        errors['title'] = 'Please enter a title'
    if _is_blank(data.get('valid_until')):
        errors['valid_until'] = 'Please select a valid until date'

    items = data.get('items') or []
    if not items:
        errors['items'] = 'Please add at least one item'
    for idx, item in enumerate(items):
        quantity = item.get('quantity', 1)
        unit_price = item.get('unit_price', 0)
        if not validate_number_range(quantity, min_value=0)[0]:
            errors[f'items.{idx}.quantity'] = 'Quantity must be a non-negative number'
        if not validate_number_range(unit_price, min_value=0)[0]:
            errors[f'items.{idx}.unit_price'] = 'Unit price must be a non-negative number'
    return errors


def validate_message_request(data: Dict[str, Any]) -> Dict[str, str]:
    """Validate the compose-message form."""
    errors = {}
    if not data.get('recipients'):
        errors['recipients'] = 'Please select at least one recipient'
    if _is_blank(data.get('message')):
        errors['message'] = 'Please enter a message'

    send_email = data.get('send_email', True)
    send_sms = data.get('send_sms', False)
    if send_email and _is_blank(data.get('subject')):
        errors['subject'] = 'Please enter a subject for email'
    if not send_email and not send_sms:
        errors['channels'] = 'Select email, SMS or both'
    return errors


def raise_for_errors(errors: Dict[str, str]):
    """Raise a ValidationError carrying every field error, led by the first one."""
    if errors:
        field, message = next(iter(errors.items()))
        logger.debug(f"Validation failed: {errors}")
        raise ValidationError(message, field, errors)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _label(field: str) -> str:
    return field.replace('_', ' ').capitalize()
