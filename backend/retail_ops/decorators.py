# Overview: Request decorators for API routes (authenticated actor, admin role).

from functools import wraps
from flask import jsonify, g

from .extensions import datastore


def require_auth(f):
    """
    Require a resolved actor.

    Sets g.current_user to the profile dict of the caller (token from the
    Authorization header, else the login session). Returns 401 when no
    session or profile can be resolved on the active backend.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = datastore.get_current_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require the admin role (revenue, wholesalers, destructive product actions).
    Must be stacked under @require_auth.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        if user.get("role") != "admin":
            return jsonify({"error": "Permission denied", "required_role": "admin"}), 403
        return f(*args, **kwargs)

    return decorated_function
