from __future__ import annotations

import json
from datetime import date, datetime, time, timedelta

from flask import Blueprint, jsonify, request

from app.shaderhouse.audit import record_event
from app.shaderhouse.cache import invalidate_game_caches
from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.http import current_user, json_body, page_args
from app.shaderhouse.models import AuditEvent, User
from app.shaderhouse.modules.developers.models import DeveloperProfile
from app.shaderhouse.modules.developers.service import VERIFICATION_STATUSES, serialize_profile
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.games.service import RELEASE_STATUSES, delete_game, serialize_game, serialize_games
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.payments.service import publish_game
from app.shaderhouse.modules.reports.models import Report
from app.shaderhouse.modules.reports.service import REPORT_TYPES, STATUSES, resolve_report, serialize_report, target_of
from app.shaderhouse.modules.settings.service import get_settings, update_settings, validate_settings_payload
from app.shaderhouse.modules.subscriptions.service import deactivate_supports
from app.shaderhouse.modules.subscriptions.tiers import PAID_TIERS, STATUSES as SUBSCRIPTION_STATUSES, TIERS
from app.shaderhouse.rbac import ROLES, require_permission
from app.shaderhouse.users import serialize_user
from app.shaderhouse.utils import clean_str, iso, page_meta, paginate, parse_bool, utcnow

bp = Blueprint("admin", __name__)

ACCOUNT_STATUSES = ("ACTIVE", "SUSPENDED", "BANNED")


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationFailed(f"Invalid date: {s} (expected YYYY-MM-DD)") from None


# ---------- Users ----------
@bp.get("/users")
@require_permission("admin.users")
def users_list():
    s = db_session()
    page, page_size = page_args(default_size=25, max_size=100)
    q = s.query(User)
    search = (request.args.get("q") or "").strip()
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(User.email.like(like) | User.name.ilike(like))
    role = (request.args.get("role") or "").strip().upper()
    if role in ROLES:
        q = q.filter(User.role == role)
    items, total = paginate(q.order_by(User.created_at.desc(), User.id.desc()), page, page_size)
    return jsonify({"users": [serialize_user(u) for u in items], **page_meta(total, page, page_size)})


@bp.patch("/users/<int:user_id>")
@require_permission("admin.users")
def users_update(user_id: int):
    s = db_session()
    admin = current_user()
    user = s.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    payload = json_body()

    before = {
        "role": user.role,
        "is_active": user.is_active,
        "account_status": user.account_status,
        "subscription_tier": user.subscription_tier,
        "subscription_status": user.subscription_status,
    }

    if "role" in payload:
        role = clean_str(payload.get("role")).upper()
        if role not in ROLES:
            raise ValidationFailed(f"role must be one of {', '.join(ROLES)}")
        if user.id == admin.id and role != "ADMIN":
            raise ValidationFailed("You cannot remove your own admin role")
        user.role = role
    if "subscription_tier" in payload:
        tier = clean_str(payload.get("subscription_tier")).upper()
        if tier not in TIERS:
            raise ValidationFailed(f"subscription_tier must be one of {', '.join(TIERS)}")
        if tier not in PAID_TIERS and user.subscription_tier in PAID_TIERS:
            deactivate_supports(s, user.id)
        user.subscription_tier = tier
    if "subscription_status" in payload:
        status = clean_str(payload.get("subscription_status")).upper()
        if status not in SUBSCRIPTION_STATUSES:
            raise ValidationFailed(f"subscription_status must be one of {', '.join(SUBSCRIPTION_STATUSES)}")
        user.subscription_status = status
    if "is_active" in payload:
        active = parse_bool(payload.get("is_active"))
        if active is None:
            raise ValidationFailed("is_active must be true or false")
        if user.id == admin.id and not active:
            raise ValidationFailed("You cannot deactivate your own account")
        user.is_active = active
    if "account_status" in payload:
        account_status = clean_str(payload.get("account_status")).upper()
        if account_status not in ACCOUNT_STATUSES:
            raise ValidationFailed(f"account_status must be one of {', '.join(ACCOUNT_STATUSES)}")
        if user.id == admin.id and account_status != "ACTIVE":
            raise ValidationFailed("You cannot suspend or ban yourself")
        user.account_status = account_status
        user.suspended_until = utcnow() + timedelta(days=7) if account_status == "SUSPENDED" else None

    after = {k: getattr(user, k) for k in before}
    if after == before:
        raise ValidationFailed("Nothing to update")
    user.updated_at = utcnow()

    if after["role"] != before["role"]:
        create_notification(
            s,
            user=user,
            type="ROLE_CHANGED",
            title="Your account role changed",
            message=f"Your role is now {user.role.title()}.",
            metadata={"old_role": before["role"], "new_role": user.role},
        )
    record_event(
        s,
        actor=admin,
        action="admin.user_update",
        entity_type="User",
        entity_id=str(user.id),
        reason=clean_str(payload.get("reason")) or None,
        metadata={"before": before, "after": after},
    )
    s.commit()
    return jsonify({"user": serialize_user(user)})


@bp.delete("/users/<int:user_id>")
@require_permission("admin.users")
def users_delete(user_id: int):
    s = db_session()
    admin = current_user()
    user = s.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if user.is_admin:
        raise Forbidden("Admin accounts cannot be deleted")
    record_event(
        s,
        actor=admin,
        action="admin.user_delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role},
    )
    s.delete(user)
    s.commit()
    invalidate_game_caches()
    return jsonify({"deleted": True})


# ---------- Games ----------
@bp.get("/games")
@require_permission("admin.games")
def games_list():
    s = db_session()
    page, page_size = page_args(default_size=25, max_size=100)
    q = s.query(Game)
    search = (request.args.get("q") or "").strip()
    if search:
        q = q.filter(Game.title.ilike(f"%{search}%"))
    status = (request.args.get("status") or "").strip().lower()
    if status == "published":
        q = q.filter(Game.is_published.is_(True))
    elif status == "unpublished":
        q = q.filter(Game.is_published.is_(False))
    elif status.upper() in RELEASE_STATUSES:
        q = q.filter(Game.release_status == status.upper())
    featured = parse_bool(request.args.get("featured"))
    if featured is not None:
        q = q.filter(Game.is_featured.is_(featured))
    items, total = paginate(q.order_by(Game.created_at.desc(), Game.id.desc()), page, page_size)
    return jsonify({"games": serialize_games(s, items), **page_meta(total, page, page_size)})


@bp.patch("/games/<int:game_id>")
@require_permission("admin.games")
def games_update(game_id: int):
    s = db_session()
    admin = current_user()
    game = s.get(Game, game_id)
    if game is None:
        raise NotFound("Game not found")
    payload = json_body()
    changes: dict[str, object] = {}

    if "is_featured" in payload:
        featured = parse_bool(payload.get("is_featured"))
        if featured is None:
            raise ValidationFailed("is_featured must be true or false")
        if featured and not game.is_featured:
            create_notification(
                s,
                user=game.developer_id,
                type="GAME_FEATURED",
                title="Your game is featured!",
                message=f"{game.title} is now featured on the Shader House storefront.",
                link=f"/games/{game.slug}",
                metadata={"game_id": game.id},
            )
        game.is_featured = featured
        changes["is_featured"] = featured
    if "release_status" in payload:
        release_status = clean_str(payload.get("release_status")).upper()
        if release_status not in RELEASE_STATUSES:
            raise ValidationFailed("release_status must be BETA or RELEASED")
        game.release_status = release_status
        changes["release_status"] = release_status
    if "is_published" in payload:
        published = parse_bool(payload.get("is_published"))
        if published is None:
            raise ValidationFailed("is_published must be true or false")
        if published:
            publish_game(game)
        else:
            game.is_published = False
        changes["is_published"] = published
    if not changes:
        raise ValidationFailed("Nothing to update")

    game.updated_at = utcnow()
    record_event(s, actor=admin, action="admin.game_update", entity_type="Game", entity_id=str(game.id), metadata=changes)
    s.commit()
    invalidate_game_caches()
    return jsonify({"game": serialize_game(game, detail=True)})


@bp.delete("/games/<int:game_id>")
@require_permission("admin.games")
def games_delete(game_id: int):
    s = db_session()
    game = s.get(Game, game_id)
    if game is None:
        raise NotFound("Game not found")
    delete_game(s, game, current_user(), reason=clean_str(json_body().get("reason")) or "Removed by admin")
    s.commit()
    return jsonify({"deleted": True})


# ---------- Indie verification ----------
@bp.get("/indie-verification")
@require_permission("admin.indie_verification")
def indie_list():
    s = db_session()
    q = s.query(DeveloperProfile)
    status = (request.args.get("status") or "").strip().upper()
    if status in VERIFICATION_STATUSES:
        q = q.filter(DeveloperProfile.verification_status == status)
    profiles = q.order_by(DeveloperProfile.updated_at.desc()).all()
    out = []
    for p in profiles:
        item = serialize_profile(p, private=True)
        item["user"] = {"id": p.user.id, "name": p.user.name, "email": p.user.email} if p.user else None
        out.append(item)
    return jsonify({"profiles": out})


@bp.patch("/indie-verification/<int:user_id>")
@require_permission("admin.indie_verification")
def indie_review(user_id: int):
    s = db_session()
    admin = current_user()
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == user_id).one_or_none()
    if profile is None:
        raise NotFound("Developer profile not found")
    payload = json_body()
    status = clean_str(payload.get("status")).upper()
    if status not in ("APPROVED", "REJECTED"):
        raise ValidationFailed("status must be APPROVED or REJECTED")
    reason = clean_str(payload.get("rejection_reason")) or None
    if status == "REJECTED" and not reason:
        raise ValidationFailed("A rejection reason is required")

    profile.verification_status = status
    profile.rejection_reason = reason if status == "REJECTED" else None
    if status == "APPROVED":
        profile.is_indie_eligible = True
    profile.reviewed_at = utcnow()
    profile.reviewed_by_user_id = admin.id
    profile.updated_at = utcnow()

    create_notification(
        s,
        user=profile.user_id,
        type="INDIE_VERIFICATION",
        title="Indie verification " + ("approved" if status == "APPROVED" else "update"),
        message=(
            "Your studio is verified as indie. Welcome aboard!"
            if status == "APPROVED"
            else f"Your indie verification was not approved: {reason}. You can update your profile to appeal."
        ),
        link="/dashboard/profile",
        metadata={"status": status},
    )
    record_event(
        s,
        actor=admin,
        action="admin.indie_verification",
        entity_type="DeveloperProfile",
        entity_id=str(profile.user_id),
        reason=reason,
        metadata={"status": status},
    )
    s.commit()
    return jsonify({"profile": serialize_profile(profile, private=True)})


# ---------- Reports ----------
@bp.get("/reports")
@require_permission("admin.reports")
def reports_list():
    s = db_session()
    page, page_size = page_args(default_size=25, max_size=100)
    q = s.query(Report)
    status = (request.args.get("status") or "").strip().upper()
    if status in STATUSES:
        q = q.filter(Report.status == status)
    report_type = (request.args.get("type") or "").strip().upper()
    if report_type in REPORT_TYPES:
        q = q.filter(Report.type == report_type)
    items, total = paginate(q.order_by(Report.created_at.desc(), Report.id.desc()), page, page_size)
    return jsonify({"reports": [serialize_report(r, admin=True) for r in items], **page_meta(total, page, page_size)})


@bp.get("/reports/<int:report_id>")
@require_permission("admin.reports")
def reports_detail(report_id: int):
    s = db_session()
    report = s.get(Report, report_id)
    if report is None:
        raise NotFound("Report not found")
    return jsonify({"report": serialize_report(report, admin=True, target=target_of(s, report))})


@bp.patch("/reports/<int:report_id>")
@require_permission("admin.reports")
def reports_update(report_id: int):
    s = db_session()
    report = s.get(Report, report_id)
    if report is None:
        raise NotFound("Report not found")
    resolve_report(s, report, current_user(), json_body())
    s.commit()
    return jsonify({"report": serialize_report(report, admin=True)})


# ---------- Settings ----------
@bp.get("/settings")
@require_permission("admin.settings")
def settings_get():
    return jsonify({"settings": get_settings(db_session())})


@bp.put("/settings")
@require_permission("admin.settings")
def settings_update():
    s = db_session()
    values, errors = validate_settings_payload(json_body())
    if errors:
        raise ValidationFailed(details=errors)
    settings = update_settings(s, values, user=current_user())
    s.commit()
    return jsonify({"settings": settings})


# ---------- Audit ----------
@bp.get("/audit")
@require_permission("admin.audit")
def audit_list():
    """
    Last 200 audit events, filterable by:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return jsonify(
        {
            "events": [
                {
                    "id": e.id,
                    "created_at": iso(e.created_at),
                    "request_id": e.request_id,
                    "actor_user_id": e.actor_user_id,
                    "actor_email": e.actor_user_email,
                    "action": e.action,
                    "entity_type": e.entity_type,
                    "entity_id": e.entity_id,
                    "reason": e.reason,
                    "metadata": json.loads(e.metadata_json) if e.metadata_json else None,
                }
                for e in events
            ]
        }
    )
