from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.promptdesk.models import User


def permissions_for(user: User | None) -> set[str]:
    """Permission keys granted through any of the user's roles."""
    if not user or not user.is_active:
        return set()
    return {perm.key for role in user.roles for perm in role.permissions}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    return permission_key in permissions_for(user)


def require_api_permission(permission_key: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    JSON routes: 401 when anonymous, 403 when the permission is missing.
    With no permission key only a logged-in user is required.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return jsonify({"error": "Authentication required."}), 401
            if permission_key and not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                return jsonify({"error": "Forbidden.", "missing_permission": permission_key}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
