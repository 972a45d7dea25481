from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import NotFound, ValidationFailed
from app.shaderhouse.http import current_user, json_body, optional_user
from app.shaderhouse.models import User
from app.shaderhouse.modules.developers.eligibility import INDIE_POLICY
from app.shaderhouse.modules.developers.service import (
    get_profile,
    list_developers,
    save_profile,
    serialize_profile,
    validate_profile_payload,
)
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.games.service import serialize_games
from app.shaderhouse.modules.subscriptions.service import is_supporting
from app.shaderhouse.rbac import require_permission
from app.shaderhouse.utils import parse_int

bp = Blueprint("developers", __name__)


@bp.get("")
def developers_list():
    s = db_session()
    limit = parse_int(request.args.get("limit"), 50, minimum=1, maximum=100)
    return jsonify({"developers": list_developers(s, q=(request.args.get("q") or "").strip(), limit=limit)})


@bp.get("/indie-policy")
def indie_policy():
    return jsonify(INDIE_POLICY)


@bp.get("/me/profile")
@require_permission("developer.profile")
def my_profile():
    profile = get_profile(db_session(), current_user().id)
    return jsonify({"profile": serialize_profile(profile, private=True) if profile else None})


@bp.put("/me/profile")
@require_permission("developer.profile")
def my_profile_save():
    s = db_session()
    data, errors = validate_profile_payload(json_body())
    if errors:
        raise ValidationFailed(details=errors)
    profile, eligibility = save_profile(s, current_user(), data)
    s.commit()
    return jsonify({"profile": serialize_profile(profile, private=True), "eligibility": eligibility})


@bp.get("/<int:developer_id>")
def developer_detail(developer_id: int):
    s = db_session()
    dev = s.get(User, developer_id)
    if dev is None or not dev.is_active or dev.role != "DEVELOPER":
        raise NotFound("Developer not found")
    profile = get_profile(s, dev.id)
    games = (
        s.query(Game)
        .filter(Game.developer_id == dev.id, Game.is_published.is_(True))
        .order_by(Game.published_at.desc())
        .all()
    )
    viewer = optional_user()
    return jsonify(
        {
            "developer": {
                "id": dev.id,
                "name": dev.display_name or dev.name,
                "bio": dev.bio,
                "level": dev.level,
                "joined_at": dev.created_at.isoformat(),
            },
            "profile": serialize_profile(profile) if profile else None,
            "games": serialize_games(s, games),
            "is_supported_by_me": bool(viewer and is_supporting(s, viewer.id, dev.id)),
        }
    )
