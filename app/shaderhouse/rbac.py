from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.shaderhouse.errors import Forbidden, NotAuthenticated
from app.shaderhouse.models import User

ROLES = ("GAMER", "DEVELOPER", "ADMIN")

_GAMER_PERMISSIONS = frozenset(
    {
        "games.view",
        "games.purchase",
        "games.rate",
        "community.post",
        "beta.join",
        "subscriptions.manage",
        "reports.create",
        "payments.tip",
    }
)

_DEVELOPER_PERMISSIONS = _GAMER_PERMISSIONS | {
    "games.create",
    "games.manage",
    "devlogs.create",
    "beta.manage",
    "revenue.view",
    "developer.profile",
}

_ADMIN_PERMISSIONS = _DEVELOPER_PERMISSIONS | {
    "admin.view",
    "admin.users",
    "admin.games",
    "admin.reports",
    "admin.settings",
    "admin.indie_verification",
    "admin.audit",
}

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "GAMER": _GAMER_PERMISSIONS,
    "DEVELOPER": frozenset(_DEVELOPER_PERMISSIONS),
    "ADMIN": frozenset(_ADMIN_PERMISSIONS),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user:
            raise NotAuthenticated()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → 401
            if not user or not user.is_active:
                raise NotAuthenticated()
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapped

    return decorator
