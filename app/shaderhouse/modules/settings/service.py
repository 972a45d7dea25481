"""
Admin-editable platform settings, stored one row per key as JSON.

Reads go through the per-app ApiCache (60 s), so a change made in one worker
can take up to a minute to show up in the others.
"""
from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.cache import SETTINGS_TTL, get_cache
from app.shaderhouse.models import User
from app.shaderhouse.modules.settings.models import PlatformSetting
from app.shaderhouse.utils import utcnow

SETTINGS_CACHE_KEY = "platform-settings"

DEFAULT_SETTINGS: dict[str, Any] = {
    "site_name": "Shader House",
    "maintenance_mode": False,
    "allow_registration": True,
    "allow_dev_registration": True,
    "require_email_verification": False,
    "game_sale_fee_percent": 15,
    "tip_fee_percent": 15,
    "creator_support_fee_percent": 15,
    "publishing_fee_cents": 5000,
}

_INT_BOUNDS: dict[str, tuple[int, int]] = {
    "game_sale_fee_percent": (0, 100),
    "tip_fee_percent": (0, 100),
    "creator_support_fee_percent": (0, 100),
    "publishing_fee_cents": (0, 1_000_000),
}


def _load_from_db(s: Session) -> dict[str, Any]:
    values = dict(DEFAULT_SETTINGS)
    for row in s.query(PlatformSetting).all():
        if row.key not in DEFAULT_SETTINGS:
            continue
        try:
            values[row.key] = json.loads(row.value_json)
        except ValueError:
            continue
    return values


def get_settings(s: Session) -> dict[str, Any]:
    cache = get_cache()
    cached = cache.get(SETTINGS_CACHE_KEY)
    if cached is not None:
        return dict(cached)
    values = _load_from_db(s)
    cache.set(SETTINGS_CACHE_KEY, values, SETTINGS_TTL)
    return dict(values)


def get_setting(s: Session, key: str) -> Any:
    return get_settings(s).get(key, DEFAULT_SETTINGS.get(key))


def validate_settings_payload(payload: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    clean: dict[str, Any] = {}
    if not isinstance(payload, dict):
        return clean, ["Settings payload must be an object."]

    for key, value in payload.items():
        if key == "csrf_token":
            continue
        if key not in DEFAULT_SETTINGS:
            errors.append(f"Unknown setting: {key}")
            continue
        default = DEFAULT_SETTINGS[key]
        if isinstance(default, bool):
            if not isinstance(value, bool):
                errors.append(f"{key} must be a boolean.")
                continue
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{key} must be an integer.")
                continue
            lo, hi = _INT_BOUNDS.get(key, (0, 2**31 - 1))
            if not lo <= value <= hi:
                errors.append(f"{key} must be between {lo} and {hi}.")
                continue
        else:
            if not isinstance(value, str) or not value.strip():
                errors.append(f"{key} must be a non-empty string.")
                continue
            value = value.strip()[:200]
        clean[key] = value
    return clean, errors


def update_settings(s: Session, values: dict[str, Any], *, user: User | None) -> dict[str, Any]:
    from app.shaderhouse.audit import record_event

    now = utcnow()
    changed: dict[str, Any] = {}
    current = _load_from_db(s)
    for key, value in values.items():
        row = s.get(PlatformSetting, key)
        if row is None:
            row = PlatformSetting(key=key, value_json=json.dumps(value))
            s.add(row)
        else:
            row.value_json = json.dumps(value)
        row.updated_at = now
        row.updated_by_user_id = user.id if user else None
        if current.get(key) != value:
            changed[key] = {"from": current.get(key), "to": value}

    if changed:
        record_event(
            s,
            actor=user,
            action="settings.update",
            entity_type="PlatformSetting",
            entity_id=",".join(sorted(changed)),
            metadata=changed,
        )
    get_cache().delete(SETTINGS_CACHE_KEY)
    current.update(values)
    return current


def seed_default_settings(s: Session) -> int:
    """Insert missing settings rows with their defaults. Returns how many were added."""
    existing = {k for (k,) in s.query(PlatformSetting.key).all()}
    added = 0
    for key, value in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        s.add(PlatformSetting(key=key, value_json=json.dumps(value)))
        added += 1
    return added
