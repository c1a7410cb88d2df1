from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.caixa.models import User


def permission_keys(user: User | None) -> set[str]:
    """Union of permission keys over the user's roles; empty for anonymous or inactive users."""
    if not user or not user.is_active:
        return set()
    return {perm.key for role in user.roles for perm in role.permissions}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    return permission_key in permission_keys(user)


def _login_redirect():
    nxt = request.full_path if request.query_string else request.path
    return redirect(url_for("auth.login_get", next=nxt))


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Route guard. Anonymous visitors go to the login page (coming back via
    ?next=); signed-in users without the permission get a 403 page that
    names the missing key.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _login_redirect()
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
