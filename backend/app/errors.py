from __future__ import annotations
"""Domain error taxonomy.

Services raise these instead of calling ``abort`` directly so they stay usable
outside a request. Each is a werkzeug ``HTTPException`` so the application
error handler renders them with the same JSON shape as ``abort()`` errors.
"""
from typing import Dict, List, Optional
from werkzeug.exceptions import BadRequest, Conflict, NotFound


class NotFoundError(NotFound):
    error_code = 'NOT_FOUND'


class ValidationError(BadRequest):
    error_code = 'VALIDATION_ERROR'

    def __init__(self, description: Optional[str] = None, details: Optional[Dict[str, List[str]]] = None):
        super().__init__(description=description)
        self.details = details or {}


class ConflictError(Conflict):
    error_code = 'CONFLICT'


__all__ = ['NotFoundError', 'ValidationError', 'ConflictError']
