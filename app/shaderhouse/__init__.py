import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.shaderhouse.config import load_config
from app.shaderhouse.db import init_db, teardown_db_session
from app.shaderhouse import models  # noqa: F401  (registers every table on Base.metadata)
from app.shaderhouse.errors import ShaderHouseError, ServiceUnavailable
from app.shaderhouse.routes import bp as routes_bp
from app.shaderhouse.auth import bp as auth_bp, load_current_user
from app.shaderhouse.cache import ApiCache
from app.shaderhouse.ratelimit import ContentRateLimiter, FixedWindowRateLimiter
from app.shaderhouse.modules.achievements.routes import bp as achievements_bp
from app.shaderhouse.modules.admin.admin import bp as admin_bp
from app.shaderhouse.modules.beta.routes import bp as beta_bp
from app.shaderhouse.modules.developers.routes import bp as developers_bp
from app.shaderhouse.modules.devlogs.routes import bp as devlogs_bp
from app.shaderhouse.modules.discussions.routes import bp as discussions_bp
from app.shaderhouse.modules.games.routes import bp as games_bp
from app.shaderhouse.modules.notifications.routes import bp as notifications_bp
from app.shaderhouse.modules.payments.routes import bp as payments_bp
from app.shaderhouse.modules.profile.routes import bp as profile_bp
from app.shaderhouse.modules.reports.routes import bp as reports_bp
from app.shaderhouse.modules.rewards.routes import bp as rewards_bp
from app.shaderhouse.modules.subscriptions.routes import bp as subscriptions_bp

# state-changing endpoints that work without a CSRF token
CSRF_EXEMPT_ENDPOINTS = frozenset(
    {
        "auth.login",
        "auth.register",
        "auth.logout",
        "auth.reset_password_request",
        "auth.reset_password_verify",
        "auth.verify_email",
        "auth.email_change_verify",
        "payments.payments_webhook",
        "subscriptions.subscriptions_webhook",
    }
)
WEBHOOK_ENDPOINTS = frozenset({"payments.payments_webhook", "subscriptions.subscriptions_webhook"})


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    logging.basicConfig(level=app.config["LOG_LEVEL"], format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(app.config["LOG_LEVEL"])
    app.json.sort_keys = False

    from app.shaderhouse.security import ensure_csrf_token, validate_csrf

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # per-process limiters and cache
    app.extensions["login_limiter"] = FixedWindowRateLimiter(
        app.config["LOGIN_RATE_LIMIT"], app.config["LOGIN_RATE_WINDOW_SECONDS"]
    )
    app.extensions["content_limiter"] = ContentRateLimiter()
    app.extensions["api_cache"] = ApiCache()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(games_bp, url_prefix="/api/games")
    app.register_blueprint(payments_bp, url_prefix="/api")
    app.register_blueprint(subscriptions_bp, url_prefix="/api/subscriptions")
    app.register_blueprint(beta_bp, url_prefix="/api/beta")
    app.register_blueprint(rewards_bp, url_prefix="/api/rewards")
    app.register_blueprint(achievements_bp, url_prefix="/api/achievements")
    app.register_blueprint(devlogs_bp, url_prefix="/api/devlogs")
    app.register_blueprint(discussions_bp, url_prefix="/api/discussions")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(developers_bp, url_prefix="/api/developers")
    app.register_blueprint(reports_bp, url_prefix="/api/reports")
    app.register_blueprint(profile_bp, url_prefix="/api/profile")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    @app.before_request
    def _csrf_guard():
        if not request.path.startswith("/api/"):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if (request.endpoint or "") in CSRF_EXEMPT_ENDPOINTS:
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid"}), 400
        else:
            ensure_csrf_token()
        return None

    @app.before_request
    def _maintenance_guard():
        if not request.path.startswith("/api/"):
            return None
        endpoint = request.endpoint or ""
        if endpoint.startswith("auth.") or endpoint in WEBHOOK_ENDPOINTS:
            return None
        user = getattr(g, "current_user", None)
        if user is not None and user.is_admin:
            return None
        from app.shaderhouse.db import db_session
        from app.shaderhouse.modules.settings.service import get_setting

        if get_setting(db_session(), "maintenance_mode"):
            raise ServiceUnavailable("Shader House is down for maintenance. Please check back soon.")
        return None

    # user loading must run before the guards above
    app.before_request_funcs.setdefault(None, []).insert(0, _load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.after_request
    def _request_id_header(resp):
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers["X-Request-ID"] = rid
        return resp

    @app.errorhandler(ShaderHouseError)
    def _err_domain(e: ShaderHouseError):  # type: ignore[no-redef]
        if e.status_code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.description or e.name}), e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error", "request_id": getattr(g, "request_id", None)}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
