from __future__ import annotations

from typing import Any

from flask import g, request

from app.shaderhouse.errors import NotAuthenticated, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.utils import parse_int


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise NotAuthenticated()
    return u


def optional_user() -> User | None:
    return getattr(g, "current_user", None)


def json_body() -> dict[str, Any]:
    """Request JSON as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def require_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        raise ValidationFailed(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{key} is required") from None


def page_args(default_size: int = 20, max_size: int = 50) -> tuple[int, int]:
    page = parse_int(request.args.get("page"), 1, minimum=1)
    page_size = parse_int(request.args.get("page_size"), default_size, minimum=1, maximum=max_size)
    return page, page_size
