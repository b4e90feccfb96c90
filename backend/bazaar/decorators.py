# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import AuthenticationError, AuthorizationError, error_response
from .services import session_service


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.actor: Actor (user id, role, seller profile id) passed to services

    Returns 401 if the Authorization header is missing, the token is
    unknown, expired or revoked, or the user has been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(AuthenticationError("Authentication required"))

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)

        if not context:
            return error_response(AuthenticationError("Invalid or expired token"))

        g.current_user = context.user
        g.actor = context.actor

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to the given roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return error_response(AuthenticationError("Authentication required"))
            if actor.role not in roles:
                return error_response(AuthorizationError("Permission denied", details={"required_roles": list(roles)}))
            return f(*args, **kwargs)

        return decorated_function

    return decorator
