from __future__ import annotations
from app.errors import ValidationError


def apply_sort(query, sort_by: str | None, sort_order: str | None, allowed: dict, default_key: str, tie_breaker):
    """Apply a single-field sort to a SQLAlchemy query.
    allowed: mapping of field key -> column (or SQL expression).
    sort_order: 'asc' or 'desc' (default desc).
    tie_breaker: column appended for deterministic ordering, same direction.
    """
    key = sort_by or default_key
    col = allowed.get(key)
    if col is None:
        raise ValidationError(f'Invalid sort field {key}', details={'sort_by': ['invalid']})
    order = (sort_order or 'desc').lower()
    if order not in ('asc', 'desc'):
        raise ValidationError(f'Invalid sort order {order}', details={'sort_order': ['invalid']})
    if order == 'desc':
        return query.order_by(col.desc(), tie_breaker.desc())
    return query.order_by(col.asc(), tie_breaker.asc())
