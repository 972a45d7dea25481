from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.models import User
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.utils import iso, utcnow

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "SYSTEM",
    "GAME_PURCHASED",
    "TIP_RECEIVED",
    "BETA_ACCESS_GRANTED",
    "BETA_TESTER_JOINED",
    "BETA_FEEDBACK_RECEIVED",
    "FEEDBACK_RESPONSE",
    "TASK_VERIFIED",
    "GAME_UPDATE",
    "GAME_FEATURED",
    "NEW_DEVLOG",
    "DEVLOG_COMMENT",
    "DEVLOG_COMMENT_REPLY",
    "DEVLOG_LIKE",
    "DISCUSSION_REPLY",
    "ACHIEVEMENT_UNLOCKED",
    "SUBSCRIPTION_CHANGED",
    "SUBSCRIPTION_RENEWED",
    "SUBSCRIPTION_CANCELED",
    "REPORT_RESOLVED",
    "REPORT_ACTION_TAKEN",
    "ROLE_CHANGED",
    "INDIE_VERIFICATION",
)

# type -> User preference column; types not listed are always delivered
PREFERENCE_FOR_TYPE: dict[str, str] = {
    "BETA_ACCESS_GRANTED": "notify_beta",
    "BETA_TESTER_JOINED": "notify_beta",
    "TASK_VERIFIED": "notify_beta",
    "BETA_FEEDBACK_RECEIVED": "notify_feedback",
    "FEEDBACK_RESPONSE": "notify_feedback",
    "GAME_UPDATE": "notify_game_updates",
    "GAME_FEATURED": "notify_game_updates",
    "GAME_PURCHASED": "notify_game_updates",
    "TIP_RECEIVED": "notify_game_updates",
    "ACHIEVEMENT_UNLOCKED": "notify_achievements",
    "SUBSCRIPTION_CHANGED": "notify_subscription",
    "SUBSCRIPTION_RENEWED": "notify_subscription",
    "SUBSCRIPTION_CANCELED": "notify_subscription",
    "NEW_DEVLOG": "notify_devlogs",
    "DEVLOG_COMMENT": "notify_devlogs",
    "DEVLOG_COMMENT_REPLY": "notify_devlogs",
    "DEVLOG_LIKE": "notify_devlogs",
}

# moderation and account notices ignore preferences
ALWAYS_DELIVER = frozenset(
    {"SYSTEM", "REPORT_RESOLVED", "REPORT_ACTION_TAKEN", "ROLE_CHANGED", "INDIE_VERIFICATION"}
)


def should_deliver(user: User, notification_type: str) -> bool:
    if notification_type in ALWAYS_DELIVER:
        return True
    if not user.notify_in_app:
        return False
    pref = PREFERENCE_FOR_TYPE.get(notification_type)
    return True if pref is None else bool(getattr(user, pref, True))


def create_notification(
    s: Session,
    *,
    user: User | int,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Notification | None:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    target = s.get(User, user) if isinstance(user, int) else user
    if target is None or not target.is_active:
        return None
    if not should_deliver(target, type):
        logger.debug("Notification %s suppressed by preferences for user_id=%s", type, target.id)
        return None
    n = Notification(
        user_id=target.id,
        type=type,
        title=title[:200],
        message=message,
        link=link,
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    )
    s.add(n)
    return n


def notify_many(
    s: Session,
    user_ids: Iterable[int],
    *,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> int:
    sent = 0
    for uid in dict.fromkeys(user_ids):
        if create_notification(s, user=uid, type=type, title=title, message=message, link=link, metadata=metadata):
            sent += 1
    return sent


def notify_admins(
    s: Session,
    *,
    title: str,
    message: str,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> int:
    admin_ids = [uid for (uid,) in s.query(User.id).filter(User.role == "ADMIN", User.is_active.is_(True)).all()]
    return notify_many(s, admin_ids, type="SYSTEM", title=title, message=message, link=link, metadata=metadata)


def unread_count(s: Session, user: User) -> int:
    return s.query(Notification).filter(Notification.user_id == user.id, Notification.is_read.is_(False)).count()


def mark_read(n: Notification) -> None:
    if not n.is_read:
        n.is_read = True
        n.read_at = utcnow()


def mark_all_read(s: Session, user: User) -> int:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    )


def serialize_notification(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "metadata": json.loads(n.metadata_json) if n.metadata_json else None,
        "is_read": n.is_read,
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }
