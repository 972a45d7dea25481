from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import NotFound
from app.shaderhouse.http import current_user, page_args
from app.shaderhouse.models import User
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.modules.notifications.service import mark_all_read, mark_read, serialize_notification, unread_count
from app.shaderhouse.rbac import require_login
from app.shaderhouse.utils import page_meta, paginate, parse_bool

bp = Blueprint("notifications", __name__)


def _own_notification(s, notification_id: int, user: User) -> Notification:
    n = s.get(Notification, notification_id)
    # other users' notifications are indistinguishable from missing ones
    if n is None or n.user_id != user.id:
        raise NotFound("Notification not found")
    return n


@bp.get("")
@require_login
def notifications_list():
    s = db_session()
    user = current_user()
    page, page_size = page_args(default_size=20)
    q = s.query(Notification).filter(Notification.user_id == user.id)
    if parse_bool(request.args.get("unread_only")):
        q = q.filter(Notification.is_read.is_(False))
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    items, total = paginate(q, page, page_size)
    return jsonify(
        {
            "notifications": [serialize_notification(n) for n in items],
            "unread_count": unread_count(s, user),
            **page_meta(total, page, page_size),
        }
    )


@bp.get("/unread-count")
@require_login
def notifications_unread_count():
    return jsonify({"count": unread_count(db_session(), current_user())})


@bp.patch("/<int:notification_id>")
@require_login
def notifications_mark_read(notification_id: int):
    s = db_session()
    n = _own_notification(s, notification_id, current_user())
    mark_read(n)
    s.commit()
    return jsonify({"notification": serialize_notification(n)})


@bp.post("/read-all")
@require_login
def notifications_read_all():
    s = db_session()
    updated = mark_all_read(s, current_user())
    s.commit()
    return jsonify({"updated": updated})


@bp.delete("/<int:notification_id>")
@require_login
def notifications_delete(notification_id: int):
    s = db_session()
    n = _own_notification(s, notification_id, current_user())
    s.delete(n)
    s.commit()
    return jsonify({"deleted": True})
