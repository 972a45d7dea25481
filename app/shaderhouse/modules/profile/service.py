from __future__ import annotations

import secrets
from typing import Any

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.shaderhouse.audit import record_event
from app.shaderhouse.errors import ValidationFailed
from app.shaderhouse.models import User, VerificationToken
from app.shaderhouse.modules.devlogs.models import Devlog, DevlogSubscription
from app.shaderhouse.modules.devlogs.service import serialize_devlog
from app.shaderhouse.modules.discussions.models import DiscussionPost, DiscussionThread
from app.shaderhouse.modules.games.models import Favorite, Rating
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.modules.notifications.service import serialize_notification
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.modules.payments.service import serialize_purchase
from app.shaderhouse.modules.reports.models import Report
from app.shaderhouse.modules.reports.service import serialize_report
from app.shaderhouse.modules.subscriptions.models import Subscription
from app.shaderhouse.modules.subscriptions.service import deactivate_supports
from app.shaderhouse.users import PREFERENCE_FIELDS, serialize_user
from app.shaderhouse.utils import clean_str, iso, utcnow


def update_profile(s: Session, user: User, payload: dict[str, Any]) -> dict[str, Any]:
    errors: list[str] = []
    changes: dict[str, Any] = {}
    if "name" in payload:
        name = clean_str(payload.get("name"))
        if not 2 <= len(name) <= 100:
            errors.append("Name must be between 2 and 100 characters.")
        changes["name"] = name
    if "display_name" in payload:
        display = clean_str(payload.get("display_name")) or None
        if display and len(display) > 100:
            errors.append("Display name must be at most 100 characters.")
        changes["display_name"] = display
    if "bio" in payload:
        bio = clean_str(payload.get("bio")) or None
        if bio and len(bio) > 1000:
            errors.append("Bio must be at most 1000 characters.")
        changes["bio"] = bio
    prefs = payload.get("notification_preferences") or {}
    if not isinstance(prefs, dict):
        errors.append("notification_preferences must be an object.")
        prefs = {}
    for key, value in prefs.items():
        if key not in PREFERENCE_FIELDS:
            errors.append(f"Unknown notification preference: {key}")
        elif not isinstance(value, bool):
            errors.append(f"{key} must be true or false.")
        else:
            changes[key] = value
    if errors:
        raise ValidationFailed(details=errors)
    if not changes:
        raise ValidationFailed("Nothing to update")

    for key, value in changes.items():
        setattr(user, key, value)
    user.updated_at = utcnow()
    record_event(s, actor=user, action="profile.update", entity_type="User", entity_id=str(user.id), metadata={"fields": sorted(changes)})
    return changes


def export_user_data(s: Session, user: User) -> dict[str, Any]:
    """Everything we store about the user, for a data-portability download."""

    def rows(model, column):
        return s.query(model).filter(column == user.id).order_by(model.id.asc()).all()

    return {
        "exported_at": iso(utcnow()),
        "profile": serialize_user(user),
        "purchases": [serialize_purchase(p) for p in rows(Purchase, Purchase.user_id)],
        "ratings": [
            {"game_id": r.game_id, "stars": r.stars, "comment": r.comment, "created_at": iso(r.created_at)}
            for r in rows(Rating, Rating.user_id)
        ],
        "favorites": [{"game_id": f.game_id, "created_at": iso(f.created_at)} for f in rows(Favorite, Favorite.user_id)],
        "subscriptions": [
            {
                "tier": x.tier,
                "status": x.status,
                "amount_cents": x.amount_cents,
                "started_at": iso(x.started_at),
                "ended_at": iso(x.ended_at),
            }
            for x in rows(Subscription, Subscription.user_id)
        ],
        "devlogs": [serialize_devlog(d, detail=True) for d in rows(Devlog, Devlog.developer_id)],
        "threads": [
            {"id": t.id, "game_id": t.game_id, "title": t.title, "content": t.content, "created_at": iso(t.created_at)}
            for t in rows(DiscussionThread, DiscussionThread.author_id)
        ],
        "posts": [
            {"id": p.id, "thread_id": p.thread_id, "content": p.content, "created_at": iso(p.created_at)}
            for p in rows(DiscussionPost, DiscussionPost.author_id)
        ],
        "notifications": [serialize_notification(n) for n in rows(Notification, Notification.user_id)],
        "reports": [serialize_report(r) for r in rows(Report, Report.reporter_id)],
    }


def anonymize_account(s: Session, user: User) -> None:
    """
    Strip personal data and deactivate the account. Purchases and revenue rows stay
    for the developers' ledgers; they now point at an anonymous user.
    """
    record_event(s, actor=user, action="profile.delete", entity_type="User", entity_id=str(user.id))
    deactivate_supports(s, user.id)
    s.query(DevlogSubscription).filter(DevlogSubscription.subscriber_id == user.id).delete(synchronize_session=False)
    s.query(VerificationToken).filter(VerificationToken.user_id == user.id).delete(synchronize_session=False)
    s.query(Notification).filter(Notification.user_id == user.id).delete(synchronize_session=False)

    user.email = f"deleted-{user.id}-{secrets.token_hex(4)}@deleted.invalid"
    user.name = "Deleted user"
    user.display_name = None
    user.bio = None
    user.password_hash = generate_password_hash(secrets.token_urlsafe(32))
    user.is_active = False
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.totp_last_counter = None
    user.backup_codes_json = None
    user.subscription_tier = "FREE"
    user.subscription_status = "CANCELED"
    user.stripe_customer_id = None
    user.stripe_subscription_id = None
    user.updated_at = utcnow()
