"""
In-memory filtering and sorting for list views.

The list endpoints load a record set once and then narrow it the same way the
dashboard tables do: a free-text search over a few fields, exact-match
filters, a sortable column and an optional page window.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

SORT_ORDERS = ('asc', 'desc')


def get_path(record: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path ('customer.first_name') in nested dicts."""
    value = record
    for part in path.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def filter_records(records: Iterable[Dict[str, Any]], search: Optional[str] = None,
                   fields: Iterable[str] = (), filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """
    Case-insensitive substring search across `fields`, then exact-match filters.
    A filter value of None, '' or 'all' is ignored.
    """
    term = (search or '').strip().lower()
    fields = list(fields)
    active_filters = {
        key: value for key, value in (filters or {}).items()
        if value not in (None, '', 'all')
    }

    result = []
    for record in records:
        if term and not any(term in str(get_path(record, f) or '').lower() for f in fields):
            continue
        if any(get_path(record, key) != value for key, value in active_filters.items()):
            continue
        result.append(record)
    return result


def sort_records(records: Iterable[Dict[str, Any]], sort_field: Optional[str],
                 sort_order: str = 'asc') -> List[Dict[str, Any]]:
    """Stable sort on a (dotted) field. Missing values always sort last."""
    records = list(records)
    if not sort_field:
        return records
    if sort_order not in SORT_ORDERS:
        raise ValueError(f"sort_order must be one of {SORT_ORDERS}")

    present = [r for r in records if get_path(r, sort_field) is not None]
    missing = [r for r in records if get_path(r, sort_field) is None]

    def key(record):
        value = get_path(record, sort_field)
        return value.lower() if isinstance(value, str) else value

    present.sort(key=key, reverse=(sort_order == 'desc'))
    return present + missing


def toggle_sort(current_field: Optional[str], current_order: str, field: str) -> Tuple[str, str]:
    """Clicking the active column flips the order; another column starts ascending."""
    if field == current_field:
        return field, 'desc' if current_order == 'asc' else 'asc'
    return field, 'asc'


def paginate(records: List[Dict[str, Any]], page: int = 1, per_page: Optional[int] = None) -> Dict[str, Any]:
    """Slice a list into a page. Without per_page everything is returned."""
    total = len(records)
    if not per_page:
        return {'items': records, 'total': total, 'page': 1, 'per_page': total, 'pages': 1}

    page = max(page, 1)
    pages = max((total + per_page - 1) // per_page, 1)
    start = (page - 1) * per_page
    return {
        'items': records[start:start + per_page],
        'total': total,
        'page': page,
        'per_page': per_page,
        'pages': pages
    }

