from __future__ import annotations
from typing import Optional, Tuple
from flask import request, make_response
from sqlalchemy.orm import Query
from app.config.pagination import normalize_pagination
from app.errors import ValidationError
import hashlib
import json
import math
from datetime import datetime, timezone


def iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a stored timestamp; SQLite hands back naive values, which are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        page, page_size = normalize_pagination(request.args.get('page'), request.args.get('page_size'))
    except ValueError as e:
        raise ValidationError(str(e))
    total = q.order_by(None).count()
    return q.offset((page - 1) * page_size).limit(page_size), total, page, page_size


def compute_etag(rows: list, total: int, page: int, page_size: int) -> str:
    """Hash of the serialized page, so any change to a returned row changes the tag."""
    body = json.dumps(rows, sort_keys=True, separators=(',', ':'), default=str)
    seed = f"{total}|{page}|{page_size}|{body}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, page: int, page_size: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': math.ceil(total / page_size) if total else 0,
            'returned': len(rows)
        }
    }


def make_list_response(rows: list, total: int, page: int, page_size: int):
    """JSON list response with an ETag; answers 304 when If-None-Match matches."""
    etag = compute_etag(rows, total, page, page_size)
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag:
        resp = make_response('', 304)
    else:
        resp = make_response(build_list_payload(rows, total, page, page_size))
    resp.headers['ETag'] = etag
    return resp


__all__ = ['iso', 'apply_pagination', 'compute_etag', 'build_list_payload', 'make_list_response']
