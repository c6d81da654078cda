# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .models import Role
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.identity: Identity(user_id, role, location_id)
    - g.session_context: The full SessionContext object
    - g.token: The raw bearer token (logout revokes it)

    Returns 401 if the header is missing, the token is unknown, revoked or
    expired, or the user has been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401

        context = session_service.validate_session(token)
        if context is None:
            return jsonify({"error": "Invalid or expired token", "code": "UNAUTHORIZED"}), 401

        g.current_user = context.user
        g.identity = context.identity
        g.session_context = context
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: Role):
    """
    Require one of the given roles. Must be applied after @require_auth.

    Usage:
        @require_auth
        @require_role(Role.SELLER)
        def create_sale_route(): ...
    """
    allowed = {Role(r) for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = getattr(g, "identity", None)
            if identity is None:
                return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401
            if identity.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"required_roles": sorted(r.value for r in allowed)},
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
