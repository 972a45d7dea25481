from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.http import current_user, json_body, require_int
from app.shaderhouse.modules.beta.models import BetaFeedback, BetaTask, BetaTaskCompletion
from app.shaderhouse.modules.beta.service import (
    FEEDBACK_STATUSES,
    FEEDBACK_TYPES,
    accept_nda,
    beta_stats,
    complete_task,
    create_task,
    get_game_or_404,
    join_beta,
    my_tests,
    nda_stats,
    nda_status,
    require_owner,
    respond_to_feedback,
    serialize_completion,
    serialize_feedback,
    serialize_nda,
    serialize_task,
    serialize_tester,
    submit_feedback,
    tasks_for_game,
    validate_feedback_payload,
    validate_task_payload,
    verify_completion,
)
from app.shaderhouse.ratelimit import enforce_content_limit, record_content
from app.shaderhouse.rbac import require_login, require_permission
from app.shaderhouse.utils import clean_str, parse_bool, parse_int

bp = Blueprint("beta", __name__)


def _game_id_arg() -> int:
    game_id = parse_int(request.args.get("game_id"), 0)
    if game_id <= 0:
        raise ValidationFailed("game_id is required")
    return game_id


def _task_or_404(s, task_id: int) -> BetaTask:
    task = s.get(BetaTask, task_id)
    if task is None:
        raise NotFound("Task not found")
    return task


# ---------- Testers ----------
@bp.post("/join")
@require_permission("beta.join")
def beta_join():
    s = db_session()
    user = current_user()
    game = get_game_or_404(s, require_int(json_body(), "game_id"))
    tester, created = join_beta(s, user, game)
    s.commit()
    return jsonify({"tester": serialize_tester(tester), "already_joined": not created}), (201 if created else 200)


@bp.get("/my-tests")
@require_login
def beta_my_tests():
    return jsonify({"tests": my_tests(db_session(), current_user())})


# ---------- Feedback ----------
@bp.post("/feedback")
@require_permission("beta.join")
def feedback_create():
    s = db_session()
    user = current_user()
    payload = json_body()
    game = get_game_or_404(s, require_int(payload, "game_id"))
    data, errors = validate_feedback_payload(payload)
    if errors:
        raise ValidationFailed(details=errors)
    enforce_content_limit(user.id, "beta_feedback")
    feedback, tasks_completed = submit_feedback(s, user, game, data)
    s.commit()
    record_content(user.id, "beta_feedback")
    return jsonify({"feedback": serialize_feedback(feedback), "tasks_completed": tasks_completed}), 201


@bp.get("/feedback")
@require_permission("beta.manage")
def feedback_list():
    s = db_session()
    user = current_user()
    game = get_game_or_404(s, _game_id_arg())
    require_owner(game, user)
    q = s.query(BetaFeedback).filter(BetaFeedback.game_id == game.id)
    fb_type = (request.args.get("type") or "").strip().upper()
    if fb_type in FEEDBACK_TYPES:
        q = q.filter(BetaFeedback.type == fb_type)
    status = (request.args.get("status") or "").strip().upper()
    if status in FEEDBACK_STATUSES:
        q = q.filter(BetaFeedback.status == status)
    items = q.order_by(BetaFeedback.created_at.desc(), BetaFeedback.id.desc()).all()
    return jsonify({"feedback": [serialize_feedback(f) for f in items]})


@bp.get("/feedback/mine")
@require_login
def feedback_mine():
    s = db_session()
    items = (
        s.query(BetaFeedback)
        .filter(BetaFeedback.user_id == current_user().id)
        .order_by(BetaFeedback.created_at.desc())
        .all()
    )
    return jsonify({"feedback": [serialize_feedback(f) for f in items]})


@bp.patch("/feedback/<int:feedback_id>")
@require_permission("beta.manage")
def feedback_respond(feedback_id: int):
    s = db_session()
    feedback = s.get(BetaFeedback, feedback_id)
    if feedback is None:
        raise NotFound("Feedback not found")
    respond_to_feedback(s, current_user(), feedback, json_body())
    s.commit()
    return jsonify({"feedback": serialize_feedback(feedback)})


# ---------- Tasks ----------
@bp.post("/tasks")
@require_permission("beta.manage")
def task_create():
    s = db_session()
    payload = json_body()
    game = get_game_or_404(s, require_int(payload, "game_id"))
    data, errors = validate_task_payload(payload)
    if errors:
        raise ValidationFailed(details=errors)
    task = create_task(s, current_user(), game, data)
    s.commit()
    return jsonify({"task": serialize_task(task)}), 201


@bp.get("/tasks/game/<int:game_id>")
@require_login
def task_list(game_id: int):
    s = db_session()
    game = get_game_or_404(s, game_id)
    return jsonify({"tasks": tasks_for_game(s, current_user(), game)})


@bp.get("/tasks/completions")
@require_permission("beta.manage")
def completions_list():
    s = db_session()
    game = get_game_or_404(s, _game_id_arg())
    require_owner(game, current_user())
    q = (
        s.query(BetaTaskCompletion)
        .join(BetaTask, BetaTask.id == BetaTaskCompletion.task_id)
        .filter(BetaTask.game_id == game.id)
    )
    status = (request.args.get("status") or "").strip().upper()
    if status:
        q = q.filter(BetaTaskCompletion.status == status)
    items = q.order_by(BetaTaskCompletion.completed_at.desc()).all()
    return jsonify({"completions": [serialize_completion(c) for c in items]})


@bp.post("/tasks/verify")
@require_permission("beta.manage")
def task_verify():
    s = db_session()
    payload = json_body()
    completion = s.get(BetaTaskCompletion, require_int(payload, "completion_id"))
    if completion is None:
        raise NotFound("Completion not found")
    approved = parse_bool(payload.get("approved"))
    if approved is None:
        raise ValidationFailed("approved must be true or false")
    result = verify_completion(s, current_user(), completion, approved)
    s.commit()
    return jsonify(result)


@bp.patch("/tasks/<int:task_id>")
@require_permission("beta.manage")
def task_update(task_id: int):
    s = db_session()
    task = _task_or_404(s, task_id)
    require_owner(task.game, current_user())
    data, errors = validate_task_payload(json_body(), partial=True)
    if errors:
        raise ValidationFailed(details=errors)
    for key, value in data.items():
        setattr(task, key, value)
    s.commit()
    return jsonify({"task": serialize_task(task)})


@bp.delete("/tasks/<int:task_id>")
@require_permission("beta.manage")
def task_delete(task_id: int):
    s = db_session()
    task = _task_or_404(s, task_id)
    require_owner(task.game, current_user())
    s.delete(task)
    s.commit()
    return jsonify({"deleted": True})


@bp.post("/tasks/<int:task_id>/complete")
@require_permission("beta.join")
def task_complete(task_id: int):
    s = db_session()
    task = _task_or_404(s, task_id)
    completion = complete_task(s, current_user(), task, clean_str(json_body().get("report")))
    s.commit()
    return jsonify({"completion": serialize_completion(completion)}), 201


# ---------- Stats ----------
@bp.get("/stats")
@require_permission("beta.manage")
def stats():
    s = db_session()
    game = get_game_or_404(s, _game_id_arg())
    if game.developer_id != current_user().id and not current_user().is_admin:
        raise Forbidden("Only the game's developer can view beta stats")
    return jsonify(beta_stats(s, game))


# ---------- NDA ----------
@bp.get("/nda/<int:game_id>")
@require_login
def nda_get(game_id: int):
    s = db_session()
    return jsonify(nda_status(s, current_user(), get_game_or_404(s, game_id)))


@bp.post("/nda/<int:game_id>")
@require_login
def nda_accept(game_id: int):
    s = db_session()
    game = get_game_or_404(s, game_id)
    nda = accept_nda(
        s,
        current_user(),
        game,
        confirmed=parse_bool(json_body().get("confirmed")) is True,
        ip_address=request.headers.get("X-Forwarded-For") or request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    s.commit()
    return jsonify({"message": f'NDA accepted for "{game.title}"', "nda": serialize_nda(s, nda, game)})


@bp.get("/nda/stats")
@require_permission("beta.manage")
def nda_statistics():
    game_id = parse_int(request.args.get("game_id"), 0)
    return jsonify(nda_stats(db_session(), current_user(), game_id=game_id or None))
