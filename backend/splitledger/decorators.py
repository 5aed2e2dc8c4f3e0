# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import identity_service


def require_auth(f):
    """
    Require a bearer token and resolve it to a user.

    Sets g.current_user to the authenticated User. Routes pass
    g.current_user.id explicitly to services; nothing below the route
    layer reads request state.

    Returns 401 if:
    - No Authorization header
    - Unknown, revoked or expired token
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = identity_service.validate_token(token)

        if user is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
