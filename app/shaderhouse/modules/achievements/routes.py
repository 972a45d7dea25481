from __future__ import annotations

from flask import Blueprint, jsonify

from app.shaderhouse.db import db_session
from app.shaderhouse.http import current_user
from app.shaderhouse.modules.achievements.service import achievement_progress, sync_achievements
from app.shaderhouse.rbac import require_login

bp = Blueprint("achievements", __name__)


@bp.get("")
@require_login
def achievements():
    return jsonify(achievement_progress(db_session(), current_user()))


@bp.post("/sync")
@require_login
def achievements_sync():
    s = db_session()
    result = sync_achievements(s, current_user())
    s.commit()
    return jsonify(result)
