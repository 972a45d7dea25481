from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from app.shaderhouse.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return jsonify(
        {
            "name": "Shader House API",
            "endpoints": [
                "/api/auth",
                "/api/games",
                "/api/payments",
                "/api/subscriptions",
                "/api/beta",
                "/api/rewards",
                "/api/achievements",
                "/api/devlogs",
                "/api/discussions",
                "/api/notifications",
                "/api/developers",
                "/api/reports",
                "/api/profile",
                "/api/admin",
            ],
        }
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON, 503 when the database is unreachable."""
    try:
        db_session().execute(text("SELECT 1"))
    except Exception as e:
        current_app.logger.error("Health check DB error: %s", e)
        return jsonify({"ok": False, "database": "unavailable"}), 503
    return jsonify({"ok": True, "database": "ok"})


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200
