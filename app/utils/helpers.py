"""
Helper functions shared by the route handlers.
"""

from flask import request, current_app

from validators import ValidationError, parse_date


def get_json_body():
    """
    Request JSON as a dict.

    Returns:
        The parsed body, or an empty dict for a missing or non-object body
    """
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_settings_from_app():
    """The active Flask configuration, used as the settings mapping for services."""
    return current_app.config


def arg_bool(name, default=False):
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


def arg_date(name):
    """Parse a YYYY-MM-DD query argument (None when absent)."""
    return parse_date(request.args.get(name), name)


def arg_int(name, default, minimum=1, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    value = max(minimum, value)
    return min(value, maximum) if maximum else value


def list_args():
    """search / status / sort / order query arguments of the list endpoints (sort only when given)."""
    args = {
        'search': request.args.get('search'),
        'status': request.args.get('status'),
    }
    if request.args.get('sort'):
        args['sort_field'] = request.args['sort']
        args['sort_order'] = request.args.get('order', 'asc')
        if args['sort_order'] not in ('asc', 'desc'):
            raise ValidationError('Sort order must be asc or desc', 'order')
    return args
