from __future__ import annotations

from flask import Blueprint, jsonify

from app.shaderhouse.db import db_session
from app.shaderhouse.http import current_user, json_body
from app.shaderhouse.modules.reports.models import Report
from app.shaderhouse.modules.reports.service import create_report, serialize_report
from app.shaderhouse.ratelimit import enforce_content_limit, record_content
from app.shaderhouse.rbac import require_login, require_permission

bp = Blueprint("reports", __name__)


@bp.post("")
@require_permission("reports.create")
def reports_create():
    s = db_session()
    user = current_user()
    payload = json_body()
    enforce_content_limit(user.id, "report")
    report = create_report(s, user, payload)
    s.commit()
    record_content(user.id, "report")
    return jsonify({"report": serialize_report(report)}), 201


@bp.get("/mine")
@require_login
def reports_mine():
    s = db_session()
    reports = (
        s.query(Report).filter(Report.reporter_id == current_user().id).order_by(Report.created_at.desc()).all()
    )
    return jsonify({"reports": [serialize_report(r) for r in reports]})
