from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.beta.models import BetaFeedback, BetaTask, BetaTaskCompletion, BetaTester, NdaAcceptance
from app.shaderhouse.modules.developers.models import DeveloperProfile
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.rewards.service import award
from app.shaderhouse.modules.subscriptions.service import can_access_beta
from app.shaderhouse.users import public_user
from app.shaderhouse.utils import clean_str, iso, is_http_url, utcnow

logger = logging.getLogger(__name__)

FEEDBACK_TYPES = ("BUG", "SUGGESTION", "GENERAL")
FEEDBACK_STATUSES = ("NEW", "ACKNOWLEDGED", "IN_PROGRESS", "RESOLVED", "WONT_FIX")
SEVERITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
TASK_TYPES = ("BUG_REPORT", "SUGGESTION", "PLAY_LEVEL", "TEST_FEATURE")
# tasks completed by submitting feedback rather than a written report
FEEDBACK_TASK_FOR_TYPE = {"BUG": "BUG_REPORT", "SUGGESTION": "SUGGESTION"}
REPORT_TASK_TYPES = ("PLAY_LEVEL", "TEST_FEATURE")


def get_tester(s: Session, game_id: int, user_id: int) -> BetaTester | None:
    return s.query(BetaTester).filter(BetaTester.game_id == game_id, BetaTester.user_id == user_id).one_or_none()


def get_game_or_404(s: Session, game_id: int) -> Game:
    game = s.get(Game, game_id)
    if game is None:
        raise NotFound("Game not found")
    return game


def require_owner(game: Game, user: User) -> None:
    if game.developer_id != user.id and not user.is_admin:
        raise Forbidden("Only the game's developer can do this")


# ---------- Joining ----------
def join_beta(s: Session, user: User, game: Game) -> tuple[BetaTester, bool]:
    """Returns (tester, created)."""
    if not game.is_published or game.release_status != "BETA":
        raise ValidationFailed("This game is not in beta")
    existing = get_tester(s, game.id, user.id)
    if existing is not None:
        return existing, False
    if not can_access_beta(s, user, game):
        raise Forbidden("Beta access requires an active Creator Support Pass or Gamer Pro subscription")

    tester = BetaTester(game_id=game.id, user_id=user.id)
    s.add(tester)
    s.flush()
    name = user.display_name or user.name
    create_notification(
        s,
        user=game.developer_id,
        type="BETA_TESTER_JOINED",
        title="New beta tester",
        message=f"{name} joined the beta for {game.title}.",
        link=f"/dashboard/games/{game.id}/beta",
        metadata={"game_id": game.id, "tester_id": user.id},
    )
    create_notification(
        s,
        user=user,
        type="BETA_ACCESS_GRANTED",
        title="Beta access granted",
        message=f"You're now testing {game.title}. Check the task list to earn rewards.",
        link=f"/beta/{game.id}",
        metadata={"game_id": game.id},
    )
    record_event(s, actor=user, action="beta.join", entity_type="Game", entity_id=str(game.id))
    return tester, True


def serialize_tester(t: BetaTester) -> dict[str, Any]:
    return {
        "id": t.id,
        "game_id": t.game_id,
        "user": public_user(t.user),
        "bugs_reported": t.bugs_reported,
        "tasks_completed": t.tasks_completed,
        "joined_at": iso(t.joined_at),
    }


def my_tests(s: Session, user: User) -> list[dict[str, Any]]:
    testers = (
        s.query(BetaTester).filter(BetaTester.user_id == user.id).order_by(BetaTester.joined_at.desc()).all()
    )
    out = []
    for t in testers:
        total_tasks = s.query(func.count(BetaTask.id)).filter(BetaTask.game_id == t.game_id).scalar() or 0
        done = (
            s.query(func.count(BetaTaskCompletion.id))
            .join(BetaTask, BetaTask.id == BetaTaskCompletion.task_id)
            .filter(BetaTask.game_id == t.game_id, BetaTaskCompletion.user_id == user.id)
            .scalar()
            or 0
        )
        item = serialize_tester(t)
        item["game"] = {"id": t.game.id, "title": t.game.title, "slug": t.game.slug, "cover_url": t.game.cover_url}
        item["progress"] = {
            "total_tasks": total_tasks,
            "completed_tasks": done,
            "percentage": round(done * 100 / total_tasks) if total_tasks else 0,
        }
        out.append(item)
    return out


# ---------- Feedback ----------
def validate_feedback_payload(payload: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    fb_type = clean_str(payload.get("type")).upper()
    if fb_type not in FEEDBACK_TYPES:
        errors.append("type must be BUG, SUGGESTION or GENERAL.")
    title = clean_str(payload.get("title"))
    if len(title) < 3:
        errors.append("Title must be at least 3 characters.")
    elif len(title) > 200:
        errors.append("Title must be at most 200 characters.")
    description = clean_str(payload.get("description"))
    if len(description) < 10:
        errors.append("Description must be at least 10 characters.")
    severity = clean_str(payload.get("severity")).upper() or None
    if severity and severity not in SEVERITIES:
        errors.append("severity must be LOW, MEDIUM, HIGH or CRITICAL.")
    screenshot_url = clean_str(payload.get("screenshot_url")) or None
    if screenshot_url and not is_http_url(screenshot_url):
        errors.append("screenshot_url must be a valid http(s) URL.")
    if fb_type == "BUG" and not severity:
        severity = "MEDIUM"
    clean = {
        "type": fb_type,
        "title": title,
        "description": description,
        "severity": severity if fb_type == "BUG" else None,
        "device_info": clean_str(payload.get("device_info"))[:1000] or None,
        "screenshot_url": screenshot_url,
    }
    return clean, errors


def _complete_feedback_task(s: Session, tester: BetaTester, feedback: BetaFeedback) -> int:
    task_type = FEEDBACK_TASK_FOR_TYPE.get(feedback.type)
    if task_type is None:
        return 0
    tasks = s.query(BetaTask).filter(BetaTask.game_id == feedback.game_id, BetaTask.type == task_type).all()
    completed = 0
    for task in tasks:
        exists = (
            s.query(BetaTaskCompletion.id)
            .filter(BetaTaskCompletion.task_id == task.id, BetaTaskCompletion.user_id == tester.user_id)
            .first()
        )
        if exists:
            continue
        s.add(
            BetaTaskCompletion(
                task_id=task.id,
                user_id=tester.user_id,
                feedback_id=feedback.id,
                status="PENDING",
                report=f"Submitted feedback: {feedback.title}",
            )
        )
        completed += 1
    tester.tasks_completed += completed
    return completed


def submit_feedback(s: Session, user: User, game: Game, data: dict[str, Any]) -> tuple[BetaFeedback, int]:
    tester = get_tester(s, game.id, user.id)
    if tester is None:
        raise Forbidden("Join the beta to submit feedback")

    feedback = BetaFeedback(game_id=game.id, user_id=user.id, status="NEW", **data)
    s.add(feedback)
    s.flush()
    if feedback.type == "BUG":
        tester.bugs_reported += 1
    tasks_completed = _complete_feedback_task(s, tester, feedback)

    create_notification(
        s,
        user=game.developer_id,
        type="BETA_FEEDBACK_RECEIVED",
        title=f"New {feedback.type.lower()} report",
        message=f"{user.display_name or user.name} on {game.title}: {feedback.title}",
        link=f"/dashboard/games/{game.id}/feedback",
        metadata={"game_id": game.id, "feedback_id": feedback.id, "severity": feedback.severity},
    )
    return feedback, tasks_completed


def serialize_feedback(f: BetaFeedback) -> dict[str, Any]:
    return {
        "id": f.id,
        "game_id": f.game_id,
        "user": public_user(f.user),
        "type": f.type,
        "title": f.title,
        "description": f.description,
        "severity": f.severity,
        "device_info": f.device_info,
        "screenshot_url": f.screenshot_url,
        "status": f.status,
        "developer_response": f.developer_response,
        "responded_at": iso(f.responded_at),
        "created_at": iso(f.created_at),
    }


def respond_to_feedback(s: Session, user: User, feedback: BetaFeedback, payload: dict[str, Any]) -> BetaFeedback:
    require_owner(feedback.game, user)
    status = clean_str(payload.get("status")).upper() or None
    response = clean_str(payload.get("developer_response")) or None
    if status is None and response is None:
        raise ValidationFailed("Provide a status or a developer_response")
    if status is not None and status not in FEEDBACK_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(FEEDBACK_STATUSES)}")
    if response is not None and len(response) > 5000:
        raise ValidationFailed("Response must be at most 5000 characters")

    now = utcnow()
    if status is not None:
        feedback.status = status
    if response is not None:
        feedback.developer_response = response
        feedback.responded_at = now
    feedback.updated_at = now
    create_notification(
        s,
        user=feedback.user_id,
        type="FEEDBACK_RESPONSE",
        title="Developer responded to your feedback",
        message=f"{feedback.game.title}: \"{feedback.title}\" is now {feedback.status.replace('_', ' ').lower()}.",
        link=f"/beta/{feedback.game_id}",
        metadata={"feedback_id": feedback.id, "status": feedback.status},
    )
    return feedback


# ---------- Tasks ----------
def _bounded_int(payload: dict[str, Any], key: str, default: int, low: int, high: int, errors: list[str]) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        errors.append(f"{key} must be an integer between {low} and {high}.")
        return default
    return value


def validate_task_payload(payload: dict[str, Any], *, partial: bool = False) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    clean: dict[str, Any] = {}
    if not partial or "title" in payload:
        title = clean_str(payload.get("title"))
        if len(title) < 3:
            errors.append("Title must be at least 3 characters.")
        clean["title"] = title[:200]
    if not partial or "description" in payload:
        description = clean_str(payload.get("description"))
        if len(description) < 10:
            errors.append("Description must be at least 10 characters.")
        clean["description"] = description
    if not partial or "type" in payload:
        task_type = clean_str(payload.get("type")).upper()
        if task_type not in TASK_TYPES:
            errors.append(f"type must be one of {', '.join(TASK_TYPES)}.")
        clean["type"] = task_type
    if not partial or "xp_reward" in payload:
        clean["xp_reward"] = _bounded_int(payload, "xp_reward", 50, 0, 1000, errors)
    if not partial or "reward_points" in payload:
        clean["reward_points"] = _bounded_int(payload, "reward_points", 10, 0, 100, errors)
    if not partial or "is_optional" in payload:
        clean["is_optional"] = bool(payload.get("is_optional", False))
    return clean, errors


def create_task(s: Session, user: User, game: Game, data: dict[str, Any]) -> BetaTask:
    require_owner(game, user)
    max_order = s.query(func.max(BetaTask.order)).filter(BetaTask.game_id == game.id).scalar()
    task = BetaTask(game_id=game.id, order=(max_order or 0) + 1, **data)
    s.add(task)
    s.flush()
    return task


def serialize_task(t: BetaTask, completion: BetaTaskCompletion | None = None) -> dict[str, Any]:
    out = {
        "id": t.id,
        "game_id": t.game_id,
        "title": t.title,
        "description": t.description,
        "type": t.type,
        "xp_reward": t.xp_reward,
        "reward_points": t.reward_points,
        "is_optional": t.is_optional,
        "order": t.order,
    }
    out["completion"] = (
        {"id": completion.id, "status": completion.status, "completed_at": iso(completion.completed_at)}
        if completion is not None
        else None
    )
    return out


def tasks_for_game(s: Session, user: User, game: Game) -> list[dict[str, Any]]:
    is_owner = game.developer_id == user.id or user.is_admin
    if not is_owner and get_tester(s, game.id, user.id) is None:
        raise Forbidden("Join the beta to see its tasks")
    tasks = s.query(BetaTask).filter(BetaTask.game_id == game.id).order_by(BetaTask.order.asc()).all()
    mine = {
        c.task_id: c
        for c in s.query(BetaTaskCompletion)
        .filter(BetaTaskCompletion.user_id == user.id, BetaTaskCompletion.task_id.in_([t.id for t in tasks] or [0]))
        .all()
    }
    return [serialize_task(t, mine.get(t.id)) for t in tasks]


def complete_task(s: Session, user: User, task: BetaTask, report: str) -> BetaTaskCompletion:
    tester = get_tester(s, task.game_id, user.id)
    if tester is None:
        raise Forbidden("Join the beta to complete tasks")
    if task.type not in REPORT_TASK_TYPES:
        raise ValidationFailed("This task is completed by submitting feedback")
    if len(report) < 10:
        raise ValidationFailed("Report must be at least 10 characters")
    exists = (
        s.query(BetaTaskCompletion.id)
        .filter(BetaTaskCompletion.task_id == task.id, BetaTaskCompletion.user_id == user.id)
        .first()
    )
    if exists:
        raise ValidationFailed("You already completed this task")
    completion = BetaTaskCompletion(task_id=task.id, user_id=user.id, status="PENDING", report=report[:5000])
    s.add(completion)
    tester.tasks_completed += 1
    s.flush()
    return completion


def serialize_completion(c: BetaTaskCompletion) -> dict[str, Any]:
    return {
        "id": c.id,
        "task_id": c.task_id,
        "task_title": c.task.title if c.task else None,
        "user": public_user(c.user),
        "feedback_id": c.feedback_id,
        "status": c.status,
        "report": c.report,
        "completed_at": iso(c.completed_at),
        "verified_at": iso(c.verified_at),
    }


def verify_completion(s: Session, user: User, completion: BetaTaskCompletion, approved: bool) -> dict[str, Any]:
    task = completion.task
    game = s.get(Game, task.game_id)
    if game is None or game.developer_id != user.id:
        raise Forbidden("Only the game's developer can verify tasks")
    if completion.status == "VERIFIED":
        raise ValidationFailed("This completion is already verified")

    completion.verified_at = utcnow()
    reward = None
    if approved:
        completion.status = "VERIFIED"
        tester = completion.user
        result = award(
            s,
            tester,
            "BETA_TEST",
            description=f"Beta task verified: {task.title}",
            xp=task.xp_reward,
            points=task.reward_points,
            metadata={"task_id": task.id, "game_id": game.id},
        )
        reward = {"xp": result.xp, "points": result.points, "leveled_up": result.leveled_up}
        message = f"Your work on \"{task.title}\" ({game.title}) was verified. +{task.xp_reward} XP"
    else:
        completion.status = "REJECTED"
        message = f"Your submission for \"{task.title}\" ({game.title}) was not accepted."

    create_notification(
        s,
        user=completion.user_id,
        type="TASK_VERIFIED",
        title="Beta task reviewed",
        message=message,
        link=f"/beta/{game.id}",
        metadata={"task_id": task.id, "approved": approved},
    )
    record_event(
        s,
        actor=user,
        action="beta.task_verify",
        entity_type="BetaTaskCompletion",
        entity_id=str(completion.id),
        metadata={"approved": approved},
    )
    return {"completion": serialize_completion(completion), "reward": reward}


def beta_stats(s: Session, game: Game) -> dict[str, Any]:
    tester_count = s.query(func.count(BetaTester.id)).filter(BetaTester.game_id == game.id).scalar() or 0
    by_type = dict(
        s.query(BetaFeedback.type, func.count(BetaFeedback.id))
        .filter(BetaFeedback.game_id == game.id)
        .group_by(BetaFeedback.type)
        .all()
    )
    by_status = dict(
        s.query(BetaFeedback.status, func.count(BetaFeedback.id))
        .filter(BetaFeedback.game_id == game.id)
        .group_by(BetaFeedback.status)
        .all()
    )
    task_count = s.query(func.count(BetaTask.id)).filter(BetaTask.game_id == game.id).scalar() or 0
    completions = (
        s.query(func.count(BetaTaskCompletion.id))
        .join(BetaTask, BetaTask.id == BetaTaskCompletion.task_id)
        .filter(BetaTask.game_id == game.id)
        .scalar()
        or 0
    )
    possible = task_count * tester_count
    return {
        "game_id": game.id,
        "tester_count": tester_count,
        "feedback": {
            "total": sum(by_type.values()),
            "by_type": {t: by_type.get(t, 0) for t in FEEDBACK_TYPES},
            "by_status": {st: by_status.get(st, 0) for st in FEEDBACK_STATUSES},
        },
        "tasks": {
            "count": task_count,
            "completions": completions,
            "completion_rate": round(completions * 100 / possible) if possible else 0,
        },
    }


# ---------- NDA ----------
# bump when the NDA terms change; testers on an older version are asked to re-accept
CURRENT_NDA_VERSION = "1.0"


def developer_display_name(s: Session, game: Game) -> str | None:
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == game.developer_id).one_or_none()
    if profile is not None and profile.studio_name:
        return profile.studio_name
    developer = game.developer
    return (developer.display_name or developer.name) if developer is not None else None


def get_nda(s: Session, user_id: int, game_id: int) -> NdaAcceptance | None:
    return s.query(NdaAcceptance).filter(NdaAcceptance.user_id == user_id, NdaAcceptance.game_id == game_id).one_or_none()


def nda_status(s: Session, user: User, game: Game) -> dict[str, Any]:
    nda = get_nda(s, user.id, game.id)
    active = nda is not None and nda.revoked_at is None
    return {
        "has_accepted": active,
        "needs_update": active and nda.version != CURRENT_NDA_VERSION,
        "current_version": CURRENT_NDA_VERSION,
        "accepted_version": nda.version if nda is not None else None,
        "accepted_at": iso(nda.accepted_at) if nda is not None else None,
        "game_title": game.title,
        "developer_name": developer_display_name(s, game),
    }


def accept_nda(
    s: Session,
    user: User,
    game: Game,
    *,
    confirmed: bool,
    ip_address: str | None,
    user_agent: str | None,
) -> NdaAcceptance:
    if game.release_status != "BETA":
        raise ValidationFailed("This game is not in beta testing")
    if not confirmed:
        raise ValidationFailed("You must confirm acceptance of the NDA")

    nda = get_nda(s, user.id, game.id)
    if nda is None:
        nda = NdaAcceptance(user_id=user.id, game_id=game.id)
        s.add(nda)
    nda.version = CURRENT_NDA_VERSION
    nda.accepted_at = utcnow()
    nda.ip_address = (ip_address or "unknown")[:64]
    nda.user_agent = (user_agent or "unknown")[:512]
    nda.revoked_at = None
    nda.revoked_reason = None
    s.flush()
    record_event(s, actor=user, action="beta.nda_accepted", entity_type="Game", entity_id=str(game.id), metadata={"version": CURRENT_NDA_VERSION})
    return nda


def serialize_nda(s: Session, nda: NdaAcceptance, game: Game) -> dict[str, Any]:
    return {
        "id": nda.id,
        "version": nda.version,
        "accepted_at": iso(nda.accepted_at),
        "game_title": game.title,
        "developer_name": developer_display_name(s, game),
    }


def nda_stats(s: Session, developer: User, *, game_id: int | None = None) -> dict[str, Any]:
    q = s.query(Game).filter(Game.developer_id == developer.id)
    if game_id is not None:
        q = q.filter(Game.id == game_id)
    games = q.order_by(Game.title.asc()).all()

    stats = []
    for game in games:
        rows = (
            s.query(NdaAcceptance)
            .filter(NdaAcceptance.game_id == game.id)
            .order_by(NdaAcceptance.accepted_at.desc(), NdaAcceptance.id.desc())
            .all()
        )
        active = [r for r in rows if r.revoked_at is None]
        testers = s.query(func.count(BetaTester.id)).filter(BetaTester.game_id == game.id).scalar() or 0
        stats.append(
            {
                "game_id": game.id,
                "game_title": game.title,
                "game_slug": game.slug,
                "release_status": game.release_status,
                "total_nda_acceptances": len(active),
                "revoked_ndas": len(rows) - len(active),
                "total_beta_testers": testers,
                "acceptances": [
                    {
                        "user_id": r.user_id,
                        "user_name": (r.user.display_name or r.user.name) if r.user else None,
                        "user_email": r.user.email if r.user else None,
                        "version": r.version,
                        "accepted_at": iso(r.accepted_at),
                    }
                    for r in active
                ],
            }
        )

    return {
        "summary": {
            "total_games": len(games),
            "total_nda_acceptances": sum(g["total_nda_acceptances"] for g in stats),
            "total_beta_testers": sum(g["total_beta_testers"] for g in stats),
            "games_in_beta": sum(1 for g in games if g.release_status == "BETA"),
        },
        "games": stats,
    }
