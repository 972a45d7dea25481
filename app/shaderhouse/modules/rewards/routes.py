from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.http import current_user
from app.shaderhouse.modules.rewards.service import (
    ACTION_LEVELS,
    LEVEL_BADGES,
    REWARD_AMOUNTS,
    can_perform_action,
    rewards_summary,
)
from app.shaderhouse.rbac import require_login
from app.shaderhouse.utils import parse_int

bp = Blueprint("rewards", __name__)


@bp.get("/me")
@require_login
def my_rewards():
    s = db_session()
    user = current_user()
    limit = parse_int(request.args.get("limit"), 20, minimum=1, maximum=100)
    data = rewards_summary(s, user, history_limit=limit)
    data["permissions"] = {action: can_perform_action(user.level, action) for action in ACTION_LEVELS}
    return jsonify(data)


@bp.get("/info")
def rewards_info():
    return jsonify(
        {
            "rewards": {k: {"xp": xp, "points": pts} for k, (xp, pts) in REWARD_AMOUNTS.items()},
            "badges": {str(level): name for level, name in LEVEL_BADGES.items()},
            "action_levels": ACTION_LEVELS,
        }
    )
