from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.http import current_user, json_body, optional_user, page_args, require_int
from app.shaderhouse.modules.devlogs.models import DevlogComment, DevlogSubscription
from app.shaderhouse.modules.devlogs.service import (
    CATEGORIES,
    add_comment,
    can_manage,
    create_devlog,
    delete_comment,
    delete_devlog,
    get_devlog,
    list_comments,
    list_devlogs,
    my_devlogs,
    serialize_comment,
    serialize_devlog,
    serialize_subscription,
    subscribe,
    toggle_like,
    unsubscribe,
    update_devlog,
    validate_devlog_payload,
    view_devlog,
)
from app.shaderhouse.ratelimit import enforce_content_limit, record_content
from app.shaderhouse.rbac import require_login, require_permission
from app.shaderhouse.utils import clean_str, parse_int

bp = Blueprint("devlogs", __name__)


@bp.get("")
def devlogs_list():
    s = db_session()
    page, page_size = page_args(default_size=12)
    feed = (request.args.get("filter") or "all").strip().lower()
    category = (request.args.get("category") or "").strip().upper()
    data = list_devlogs(
        s,
        viewer=optional_user(),
        feed=feed if feed in ("all", "followed", "beta") else "all",
        category=category if category in CATEGORIES else "",
        game_id=parse_int(request.args.get("game_id"), 0) or None,
        developer_id=parse_int(request.args.get("developer_id"), 0) or None,
        page=page,
        page_size=page_size,
    )
    return jsonify(data)


@bp.post("")
@require_permission("devlogs.create")
def devlogs_create():
    s = db_session()
    user = current_user()
    data, errors = validate_devlog_payload(s, user, json_body())
    if errors:
        raise ValidationFailed(details=errors)
    devlog = create_devlog(s, user, data)
    s.commit()
    return jsonify({"devlog": serialize_devlog(devlog, detail=True)}), 201


@bp.get("/my")
@require_permission("devlogs.create")
def devlogs_mine():
    return jsonify({"devlogs": my_devlogs(db_session(), current_user())})


# ---------- Subscriptions ----------
@bp.get("/subscriptions")
@require_login
def subscriptions_list():
    s = db_session()
    subs = (
        s.query(DevlogSubscription)
        .filter(DevlogSubscription.subscriber_id == current_user().id)
        .order_by(DevlogSubscription.created_at.desc())
        .all()
    )
    return jsonify({"subscriptions": [serialize_subscription(x) for x in subs]})


@bp.post("/subscriptions")
@require_login
def subscriptions_create():
    s = db_session()
    payload = json_body()
    sub = subscribe(
        s,
        current_user(),
        require_int(payload, "developer_id"),
        notify_new_post=bool(payload.get("notify_new_post", True)),
    )
    s.commit()
    return jsonify({"subscription": serialize_subscription(sub)}), 201


@bp.delete("/subscriptions")
@require_login
def subscriptions_delete():
    s = db_session()
    developer_id = parse_int(request.args.get("developer_id"), 0) or require_int(json_body(), "developer_id")
    unsubscribe(s, current_user(), developer_id)
    s.commit()
    return jsonify({"subscribed": False})


# ---------- Single devlog ----------
@bp.get("/<slug>")
def devlogs_detail(slug: str):
    s = db_session()
    viewer = optional_user()
    devlog = get_devlog(s, slug, viewer)
    data = view_devlog(s, devlog, viewer)
    s.commit()
    return jsonify({"devlog": data})


@bp.patch("/<slug>")
@require_login
def devlogs_update(slug: str):
    s = db_session()
    user = current_user()
    devlog = get_devlog(s, slug, user)
    if not can_manage(devlog, user):
        raise Forbidden("Only the author can edit this devlog")
    data, errors = validate_devlog_payload(s, user, json_body(), partial=True)
    if errors:
        raise ValidationFailed(details=errors)
    update_devlog(s, devlog, user, data)
    s.commit()
    return jsonify({"devlog": serialize_devlog(devlog, detail=True)})


@bp.delete("/<slug>")
@require_login
def devlogs_delete(slug: str):
    s = db_session()
    user = current_user()
    devlog = get_devlog(s, slug, user)
    if not can_manage(devlog, user):
        raise Forbidden("Only the author can delete this devlog")
    delete_devlog(s, devlog, user)
    s.commit()
    return jsonify({"deleted": True})


@bp.post("/<slug>/like")
@require_login
def devlogs_like(slug: str):
    s = db_session()
    devlog = get_devlog(s, slug, current_user())
    liked = toggle_like(s, devlog, current_user())
    s.commit()
    return jsonify({"liked": liked, "like_count": devlog.like_count})


# ---------- Comments ----------
@bp.get("/<slug>/comments")
def comments_list(slug: str):
    s = db_session()
    devlog = get_devlog(s, slug, optional_user())
    return jsonify({"comments": list_comments(s, devlog)})


@bp.post("/<slug>/comments")
@require_permission("community.post")
def comments_create(slug: str):
    s = db_session()
    user = current_user()
    devlog = get_devlog(s, slug, user)
    payload = json_body()
    enforce_content_limit(user.id, "devlog_comment")
    comment = add_comment(s, devlog, user, clean_str(payload.get("content")), payload.get("parent_id"))
    s.commit()
    record_content(user.id, "devlog_comment")
    return jsonify({"comment": serialize_comment(comment)}), 201


@bp.delete("/<slug>/comments/<int:comment_id>")
@require_login
def comments_delete(slug: str, comment_id: int):
    s = db_session()
    user = current_user()
    devlog = get_devlog(s, slug, user)
    comment = s.get(DevlogComment, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    delete_comment(s, devlog, comment, user)
    s.commit()
    return jsonify({"deleted": True, "comment_count": devlog.comment_count})
