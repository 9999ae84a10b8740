# Overview: Request and role decorators for back-office API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and g.current_user is not None


def _user_for_token(token: str):
    if not token:
        return None
    return db.session.query(User).filter_by(api_token=token).first()


def require_auth(f):
    """
    Require a back-office user.

    Sets g.current_user from `Authorization: Bearer <api_token>`.

    Returns 401 if:
    - No Authorization header
    - Unknown token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = _user_for_token(token)

        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401
        if not user.is_active:
            return jsonify({"error": "User account is deactivated"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require g.current_user to hold one of the roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
