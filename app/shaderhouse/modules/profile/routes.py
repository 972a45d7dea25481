from __future__ import annotations

from flask import Blueprint, jsonify, session
from werkzeug.security import check_password_hash

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, ValidationFailed
from app.shaderhouse.http import current_user, json_body
from app.shaderhouse.modules.profile.service import anonymize_account, export_user_data, update_profile
from app.shaderhouse.modules.rewards.service import xp_progress
from app.shaderhouse.rbac import require_login
from app.shaderhouse.users import serialize_user

bp = Blueprint("profile", __name__)


@bp.get("")
@require_login
def profile_get():
    user = current_user()
    data = serialize_user(user)
    data["progress"] = xp_progress(user.xp)
    return jsonify({"profile": data})


@bp.patch("")
@require_login
def profile_update():
    s = db_session()
    user = current_user()
    update_profile(s, user, json_body())
    s.commit()
    return jsonify({"profile": serialize_user(user)})


@bp.get("/export")
@require_login
def profile_export():
    s = db_session()
    user = current_user()
    resp = jsonify(export_user_data(s, user))
    resp.headers["Content-Disposition"] = f'attachment; filename="shaderhouse-export-{user.id}.json"'
    return resp


@bp.delete("")
@require_login
def profile_delete():
    s = db_session()
    user = current_user()
    payload = json_body()
    if user.is_admin:
        raise Forbidden("Admins cannot delete their own account")
    if payload.get("confirm") != "DELETE":
        raise ValidationFailed('Type "DELETE" to confirm')
    if not check_password_hash(user.password_hash, str(payload.get("password") or "")):
        raise ValidationFailed("Password is incorrect")
    anonymize_account(s, user)
    s.commit()
    session.clear()
    return jsonify({"deleted": True})
