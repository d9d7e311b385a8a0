# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def require_user(f):
    """
    Resolve the calling user and store it on Flask g.

    Sessions and passwords live outside this service; the gateway in front of
    it forwards the authenticated user id as the X-User-Id header.

    Sets:
    - g.current_user: the active User making the request

    Returns 401 if the header is missing, malformed, or names an unknown or
    inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id", "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        if not raw.isdigit():
            return jsonify({"error": "Invalid user id"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
