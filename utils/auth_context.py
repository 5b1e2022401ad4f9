from functools import wraps
from flask import g, jsonify
from models import db
from models.user import User
from security.tokens import bearer_token_from_request, decode_access_token

def load_current_user():
    g.user = None
    token = bearer_token_from_request()
    if not token:
        return
    user_id = decode_access_token(token)
    if user_id is None:
        return
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return
    g.user = user

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
