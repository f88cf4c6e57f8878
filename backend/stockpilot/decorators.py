# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import has_capability
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user (the authenticated User) and g.session_token (the
    plaintext token, used by logout).

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "Authentication required", "kind": "authentication"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"success": False, "error": "Invalid or expired token", "kind": "authentication"}), 401

        g.current_user = context.user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require the current user's role to grant `permission_code`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"success": False, "error": "Authentication required", "kind": "authentication"}), 401

            if not has_capability(g.current_user, permission_code):
                return jsonify({
                    "success": False,
                    "error": "Permission denied",
                    "kind": "permission",
                    "details": {"required_permission": permission_code},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
