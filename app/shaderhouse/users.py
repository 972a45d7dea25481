from __future__ import annotations

import json
from typing import Any

from app.shaderhouse.models import User
from app.shaderhouse.utils import iso


def public_user(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.display_name or user.name,
        "role": user.role,
        "level": user.level,
    }


def serialize_user(user: User) -> dict[str, Any]:
    """Full view of the account for its owner (and admins)."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "display_name": user.display_name,
        "bio": user.bio,
        "role": user.role,
        "is_active": user.is_active,
        "account_status": user.account_status,
        "suspended_until": iso(user.suspended_until),
        "email_verified": user.is_email_verified,
        "two_factor_enabled": user.two_factor_enabled,
        "xp": user.xp,
        "level": user.level,
        "points": user.points,
        "badges": json.loads(user.badges_json) if user.badges_json else [],
        "subscription_tier": user.subscription_tier,
        "subscription_status": user.subscription_status,
        "notification_preferences": notification_preferences(user),
        "last_login_at": iso(user.last_login_at),
        "created_at": iso(user.created_at),
    }


PREFERENCE_FIELDS = (
    "notify_in_app",
    "notify_beta",
    "notify_feedback",
    "notify_game_updates",
    "notify_achievements",
    "notify_subscription",
    "notify_devlogs",
)


def notification_preferences(user: User) -> dict[str, bool]:
    return {f: bool(getattr(user, f)) for f in PREFERENCE_FIELDS}
