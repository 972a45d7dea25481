from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.http import current_user, json_body, optional_user, page_args, require_int
from app.shaderhouse.modules.discussions.service import (
    CATEGORIES,
    create_post,
    create_thread,
    delete_post,
    delete_thread,
    get_post,
    get_thread,
    global_threads,
    list_threads,
    mark_helpful,
    serialize_post,
    serialize_thread,
    thread_detail,
    update_post,
    update_thread,
    validate_thread_payload,
    vote,
)
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.ratelimit import enforce_content_limit, record_content
from app.shaderhouse.rbac import require_login, require_permission
from app.shaderhouse.utils import clean_str, parse_int

bp = Blueprint("discussions", __name__)


# ---------- Threads ----------
@bp.get("/threads")
def threads_list():
    s = db_session()
    page, page_size = page_args(default_size=20)
    category = (request.args.get("category") or "").strip().upper()
    data = list_threads(
        s,
        game_id=parse_int(request.args.get("game_id"), 0) or None,
        category=category if category in CATEGORIES else "",
        page=page,
        page_size=page_size,
    )
    return jsonify(data)


@bp.get("/global")
def threads_global():
    limit = parse_int(request.args.get("limit"), 20, minimum=1, maximum=50)
    return jsonify({"threads": global_threads(db_session(), limit=limit)})


@bp.post("/threads")
@require_permission("community.post")
def threads_create():
    s = db_session()
    user = current_user()
    payload = json_body()
    game = s.get(Game, require_int(payload, "game_id"))
    if game is None or not game.is_published:
        raise NotFound("Game not found")
    data, errors = validate_thread_payload(payload)
    if errors:
        raise ValidationFailed(details=errors)
    enforce_content_limit(user.id, "thread")
    thread = create_thread(s, user, game, data)
    s.commit()
    record_content(user.id, "thread")
    return jsonify({"thread": serialize_thread(thread)}), 201


@bp.get("/threads/<int:thread_id>")
def threads_detail(thread_id: int):
    s = db_session()
    thread = get_thread(s, thread_id)
    return jsonify({"thread": thread_detail(s, thread, optional_user())})


@bp.patch("/threads/<int:thread_id>")
@require_login
def threads_update(thread_id: int):
    s = db_session()
    thread = get_thread(s, thread_id)
    update_thread(s, thread, current_user(), json_body())
    s.commit()
    return jsonify({"thread": serialize_thread(thread)})


@bp.delete("/threads/<int:thread_id>")
@require_login
def threads_delete(thread_id: int):
    s = db_session()
    thread = get_thread(s, thread_id)
    delete_thread(s, thread, current_user())
    s.commit()
    return jsonify({"deleted": True})


# ---------- Posts ----------
@bp.post("/posts")
@require_permission("community.post")
def posts_create():
    s = db_session()
    user = current_user()
    payload = json_body()
    thread = get_thread(s, require_int(payload, "thread_id"))
    if thread.is_locked:
        raise Forbidden("This thread is locked")
    enforce_content_limit(user.id, "post")
    post = create_post(s, user, thread, clean_str(payload.get("content")), payload.get("parent_id"))
    s.commit()
    record_content(user.id, "post")
    return jsonify({"post": serialize_post(post)}), 201


@bp.patch("/posts/<int:post_id>")
@require_login
def posts_update(post_id: int):
    s = db_session()
    post = get_post(s, post_id)
    update_post(post, current_user(), clean_str(json_body().get("content")))
    s.commit()
    return jsonify({"post": serialize_post(post)})


@bp.delete("/posts/<int:post_id>")
@require_login
def posts_delete(post_id: int):
    s = db_session()
    post = get_post(s, post_id)
    delete_post(s, post, current_user())
    s.commit()
    return jsonify({"deleted": True})


@bp.post("/posts/<int:post_id>/helpful")
@require_login
def posts_helpful(post_id: int):
    s = db_session()
    post = get_post(s, post_id)
    reward = mark_helpful(s, post, current_user())
    s.commit()
    return jsonify({"post": serialize_post(post), "reward": reward})


# ---------- Votes ----------
@bp.post("/vote")
@require_permission("community.post")
def discussions_vote():
    s = db_session()
    payload = json_body()
    result = vote(
        s,
        current_user(),
        thread_id=payload.get("thread_id"),
        post_id=payload.get("post_id"),
        value=payload.get("value"),
    )
    s.commit()
    return jsonify(result)
