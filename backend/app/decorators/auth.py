from functools import wraps
from flask import abort, g
from flask_jwt_extended import verify_jwt_in_request
from app.services.policy import current_identity, current_permissions


def require_permissions(*codes: str):
    """Verify the bearer token, resolve the tenant identity onto ``g.identity`` and check permission codes."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            g.identity = current_identity()
            missing = [c for c in codes if c not in current_permissions()]
            if missing:
                abort(403, description=f"Missing permission: {', '.join(missing)}")
            return fn(*args, **kwargs)
        return wrapper
    return outer
