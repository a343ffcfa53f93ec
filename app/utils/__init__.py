"""
Utilities Package

Formatting helpers and request helpers shared across the application.
"""

from app.utils.formatters import (
    format_phone_number,
    is_valid_phone_number,
    format_phone_display,
    format_currency,
    format_date,
    full_name,
    format_address,
)

from app.utils.helpers import (
    get_json_body,
    get_settings_from_app,
    arg_bool,
    arg_date,
    arg_int,
    list_args,
)

__all__ = [
    'format_phone_number',
    'is_valid_phone_number',
    'format_phone_display',
    'format_currency',
    'format_date',
    'full_name',
    'format_address',
    'get_json_body',
    'get_settings_from_app',
    'arg_bool',
    'arg_date',
    'arg_int',
    'list_args',
]
