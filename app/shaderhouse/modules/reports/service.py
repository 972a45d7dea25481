from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.cache import invalidate_game_caches
from app.shaderhouse.errors import NotFound, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.discussions.models import DiscussionPost, DiscussionThread
from app.shaderhouse.modules.games.models import Game, Rating
from app.shaderhouse.modules.notifications.service import create_notification, notify_admins
from app.shaderhouse.modules.reports.models import Report
from app.shaderhouse.users import public_user
from app.shaderhouse.utils import clean_str, iso, utcnow

logger = logging.getLogger(__name__)

REPORT_TYPES = ("GAME", "USER", "REVIEW", "THREAD", "POST")
REASONS = (
    "SPAM",
    "INAPPROPRIATE",
    "HARASSMENT",
    "MALICIOUS",
    "COPYRIGHT",
    "MISINFORMATION",
    "IMPERSONATION",
    "OTHER",
)
STATUSES = ("PENDING", "REVIEWING", "RESOLVED", "DISMISSED")
OPEN_STATUSES = ("PENDING", "REVIEWING")
ACTIONS = ("NO_ACTION", "WARNING", "CONTENT_REMOVED", "USER_SUSPENDED", "USER_BANNED")
SUSPENSION_DAYS = 7

# type -> (payload key, Report column, model)
TARGETS: dict[str, tuple[str, str, Any]] = {
    "GAME": ("game_id", "reported_game_id", Game),
    "USER": ("user_id", "reported_user_id", User),
    "REVIEW": ("review_id", "reported_review_id", Rating),
    "THREAD": ("thread_id", "reported_thread_id", DiscussionThread),
    "POST": ("post_id", "reported_post_id", DiscussionPost),
}


def _content_owner_id(target: Any) -> int | None:
    """The user responsible for the reported object."""
    if isinstance(target, User):
        return target.id
    if isinstance(target, Game):
        return target.developer_id
    if isinstance(target, Rating):
        return target.user_id
    return getattr(target, "author_id", None)


def create_report(s: Session, user: User, payload: dict[str, Any]) -> Report:
    report_type = clean_str(payload.get("type")).upper()
    if report_type not in REPORT_TYPES:
        raise ValidationFailed(f"type must be one of {', '.join(REPORT_TYPES)}")
    reason = clean_str(payload.get("reason")).upper()
    if reason not in REASONS:
        raise ValidationFailed(f"reason must be one of {', '.join(REASONS)}")
    description = clean_str(payload.get("description")) or None
    if reason == "OTHER" and not description:
        raise ValidationFailed("Please describe the problem when choosing OTHER")
    if description and len(description) > 2000:
        raise ValidationFailed("Description must be at most 2000 characters")

    key, column, model = TARGETS[report_type]
    target_id = payload.get(key)
    if isinstance(target_id, bool) or not isinstance(target_id, int):
        raise ValidationFailed(f"{key} is required for {report_type} reports")
    target = s.get(model, target_id)
    if target is None:
        raise NotFound(f"Reported {report_type.lower()} not found")
    if _content_owner_id(target) == user.id:
        raise ValidationFailed("You cannot report yourself or your own content")

    duplicate = (
        s.query(Report.id)
        .filter(Report.reporter_id == user.id, getattr(Report, column) == target_id, Report.status.in_(OPEN_STATUSES))
        .first()
    )
    if duplicate:
        raise ValidationFailed("You have already reported this and it is under review")

    report = Report(reporter_id=user.id, type=report_type, reason=reason, description=description, status="PENDING")
    setattr(report, column, target_id)
    s.add(report)
    s.flush()
    notify_admins(
        s,
        title=f"New {report_type.lower()} report",
        message=f"{reason.replace('_', ' ').title()} reported by {user.display_name or user.name}.",
        link=f"/admin/reports/{report.id}",
        metadata={"report_id": report.id},
    )
    record_event(s, actor=user, action="report.create", entity_type="Report", entity_id=str(report.id), metadata={"type": report_type, "reason": reason})
    return report


def target_of(s: Session, report: Report) -> Any:
    _key, column, model = TARGETS[report.type]
    target_id = getattr(report, column)
    return s.get(model, target_id) if target_id is not None else None


def serialize_report(r: Report, *, admin: bool = False, target: Any = None) -> dict[str, Any]:
    _key, column, _model = TARGETS.get(r.type, ("", "", None))
    out: dict[str, Any] = {
        "id": r.id,
        "type": r.type,
        "reason": r.reason,
        "description": r.description,
        "status": r.status,
        "target_id": getattr(r, column, None) if column else None,
        "resolution": r.resolution,
        "action_taken": r.action_taken,
        "resolved_at": iso(r.resolved_at),
        "created_at": iso(r.created_at),
    }
    if admin:
        out["reporter"] = public_user(r.reporter)
        out["resolved_by_user_id"] = r.resolved_by_user_id
        if target is not None:
            out["target"] = _describe_target(target)
    return out


def _describe_target(target: Any) -> dict[str, Any]:
    if isinstance(target, User):
        return {"kind": "user", "id": target.id, "name": target.name, "email": target.email, "account_status": target.account_status}
    if isinstance(target, Game):
        return {"kind": "game", "id": target.id, "title": target.title, "is_published": target.is_published}
    if isinstance(target, Rating):
        return {"kind": "review", "id": target.id, "stars": target.stars, "comment": target.comment}
    if isinstance(target, DiscussionThread):
        return {"kind": "thread", "id": target.id, "title": target.title, "content": target.content}
    return {"kind": "post", "id": target.id, "content": target.content}


# ---------- Moderation ----------
def _apply_action(s: Session, report: Report, action: str, admin: User) -> int | None:
    """Carry out a moderation action; returns the affected user id, if any."""
    target = target_of(s, report)
    if target is None:
        return None
    affected = _content_owner_id(target)
    if action == "CONTENT_REMOVED":
        if isinstance(target, Game):
            target.is_published = False
            invalidate_game_caches()
        elif isinstance(target, (Rating, DiscussionThread, DiscussionPost)):
            if isinstance(target, DiscussionPost) and target.thread is not None:
                target.thread.post_count = max(0, target.thread.post_count - 1)
            s.delete(target)
    elif action in ("USER_BANNED", "USER_SUSPENDED"):
        user = s.get(User, affected) if affected else None
        if user is not None and not user.is_admin:
            if action == "USER_BANNED":
                user.account_status = "BANNED"
                user.suspended_until = None
            else:
                user.account_status = "SUSPENDED"
                user.suspended_until = utcnow() + timedelta(days=SUSPENSION_DAYS)
            record_event(
                s,
                actor=admin,
                action="admin.user_" + ("ban" if action == "USER_BANNED" else "suspend"),
                entity_type="User",
                entity_id=str(user.id),
                reason=f"Report #{report.id}",
            )
    return affected


def resolve_report(s: Session, report: Report, admin: User, payload: dict[str, Any]) -> Report:
    status = clean_str(payload.get("status")).upper() or report.status
    if status not in STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(STATUSES)}")
    action = clean_str(payload.get("action_taken")).upper() or None
    if action is not None and action not in ACTIONS:
        raise ValidationFailed(f"action_taken must be one of {', '.join(ACTIONS)}")
    resolution = clean_str(payload.get("resolution")) or None

    report.status = status
    if resolution is not None:
        report.resolution = resolution
    report.updated_at = utcnow()

    affected: int | None = None
    if action is not None:
        report.action_taken = action
        if action != "NO_ACTION":
            affected = _apply_action(s, report, action, admin)

    if status in ("RESOLVED", "DISMISSED"):
        report.resolved_by_user_id = admin.id
        report.resolved_at = utcnow()
        create_notification(
            s,
            user=report.reporter_id,
            type="REPORT_RESOLVED",
            title="Your report was reviewed",
            message=(
                "Thanks for your report. We've taken action."
                if status == "RESOLVED"
                else "Thanks for your report. After review, no action was needed."
            ),
            link="/reports",
            metadata={"report_id": report.id, "status": status},
        )
    if affected is not None and action not in (None, "NO_ACTION") and affected != admin.id:
        create_notification(
            s,
            user=affected,
            type="REPORT_ACTION_TAKEN",
            title="Moderation notice",
            message=f"A moderator took action on your account or content: {action.replace('_', ' ').lower()}.",
            metadata={"report_id": report.id, "action": action},
        )
    record_event(
        s,
        actor=admin,
        action="admin.report_update",
        entity_type="Report",
        entity_id=str(report.id),
        reason=resolution,
        metadata={"status": status, "action_taken": action},
    )
    return report
