from functools import wraps
from flask import g, jsonify

from models.user import ROLE_OFFICER

def is_verified_officer(user=None) -> bool:
    user = user if user is not None else getattr(g, "user", None)
    if not user:
        return False
    return user.role == ROLE_OFFICER and user.is_verified

def require_roles(*role_names: str):
    """
    Usage: @require_roles("officer")

    Officers only pass once an existing officer has verified them.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if user.role not in role_names:
                return jsonify(error="Forbidden"), 403
            if user.role == ROLE_OFFICER and not user.is_verified:
                return jsonify(error="Officer account is not verified"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator

require_officer = require_roles(ROLE_OFFICER)
