from __future__ import annotations
"""Reusable validation helpers for request payloads.

Every helper either returns the normalized value (to enable inline usage) or
raises ValidationError naming the offending field, so handlers and services
share consistent 400 semantics.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, NoReturn, Optional
from app.errors import ValidationError


def _fail(field_name: str, message: str) -> NoReturn:
    raise ValidationError(f"{field_name} {message}", details={field_name: [message]})


def validate_status(new_status: Any, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed (case-insensitive).

    Returns the canonical lower-case value.
    """
    if not isinstance(new_status, str) or new_status.strip().lower() not in allowed:
        _fail(field_name, 'invalid')
    return new_status.strip().lower()


def validate_choice(value: Any, allowed: Iterable[str], field_name: str, default: Optional[str] = None) -> str:
    if value is None and default is not None:
        return default
    return validate_status(value, allowed, field_name)


def require_text(value: Any, field_name: str, min_length: int = 1, max_length: Optional[int] = None) -> str:
    if not isinstance(value, str):
        _fail(field_name, 'required')
    text = value.strip()
    if len(text) < min_length:
        if min_length <= 1:
            _fail(field_name, 'required')
        _fail(field_name, f'must be at least {min_length} characters')
    if max_length is not None and len(text) > max_length:
        _fail(field_name, f'must be at most {max_length} characters')
    return text


def optional_text(value: Any, field_name: str, max_length: Optional[int] = None) -> Optional[str]:
    if value is None or value == '':
        return None
    return require_text(value, field_name, 1, max_length)


def parse_id(value: Any, field_name: str, required: bool = True) -> Optional[int]:
    if value is None:
        if required:
            _fail(field_name, 'required')
        return None
    if isinstance(value, bool):
        _fail(field_name, 'must be an integer id')
    if isinstance(value, float) and not value.is_integer():
        _fail(field_name, 'must be an integer id')
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        _fail(field_name, 'must be an integer id')
    if parsed <= 0:
        _fail(field_name, 'must be an integer id')
    return parsed


def parse_money(value: Any, field_name: str) -> Optional[Decimal]:
    """Non-negative decimal with two places; None passes through."""
    if value is None:
        return None
    if isinstance(value, bool):
        _fail(field_name, 'must be a number')
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        _fail(field_name, 'must be a number')
    if not amount.is_finite() or amount < 0:
        _fail(field_name, 'must be a non-negative number')
    return amount.quantize(Decimal('0.01'))


def parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    """Accept ISO-8601 strings (``Z`` suffix allowed); naive values are taken as UTC."""
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        _fail(field_name, 'must be an ISO-8601 datetime')
    try:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        _fail(field_name, 'must be an ISO-8601 datetime')
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_tags(value: Any, field_name: str = 'tags') -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        _fail(field_name, 'must be a list of strings')
    # keep first occurrence order, drop blanks
    seen = []
    for tag in value:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def json_object(payload: Any) -> dict:
    """Request body as a dict; a null body counts as empty."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def reject_unknown_fields(data: dict, allowed: Iterable[str], forbidden: Iterable[str] = ()):
    forbidden = set(forbidden)
    for key in data:
        if key in forbidden:
            _fail(key, 'cannot be set directly')
        if key not in allowed:
            _fail(key, 'is not a recognized field')


__all__ = [
    'validate_status', 'validate_choice', 'require_text', 'optional_text', 'parse_id', 'parse_money',
    'parse_datetime', 'parse_tags', 'json_object', 'reject_unknown_fields'
]
