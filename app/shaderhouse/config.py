import os
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    base_url: str
    log_level: str

    stripe_secret_key: str
    stripe_webhook_secret: str
    stripe_payments_webhook_secret: str
    stripe_creator_support_price_id: str
    stripe_gamer_pro_price_id: str

    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    mail_from: str

    login_rate_limit: int
    login_rate_window_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///shaderhouse.db"),
        base_url=_getenv("BASE_URL", "http://localhost:8080"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        stripe_secret_key=_getenv("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=_getenv("STRIPE_WEBHOOK_SECRET", ""),
        stripe_payments_webhook_secret=_getenv("STRIPE_PAYMENTS_WEBHOOK_SECRET", ""),
        stripe_creator_support_price_id=_getenv("STRIPE_CREATOR_SUPPORT_PRICE_ID", ""),
        stripe_gamer_pro_price_id=_getenv("STRIPE_GAMER_PRO_PRICE_ID", ""),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_username=_getenv("SMTP_USERNAME", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        mail_from=_getenv("MAIL_FROM", "Shader House <no-reply@shaderhouse.local>"),
        login_rate_limit=_getenv_int("LOGIN_RATE_LIMIT", 5),
        login_rate_window_seconds=_getenv_int("LOGIN_RATE_WINDOW_SECONDS", 15 * 60),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "BASE_URL": s.base_url.rstrip("/"),
        "LOG_LEVEL": s.log_level,
        "STRIPE_SECRET_KEY": s.stripe_secret_key,
        "STRIPE_WEBHOOK_SECRET": s.stripe_webhook_secret,
        "STRIPE_PAYMENTS_WEBHOOK_SECRET": s.stripe_payments_webhook_secret,
        "STRIPE_CREATOR_SUPPORT_PRICE_ID": s.stripe_creator_support_price_id,
        "STRIPE_GAMER_PRO_PRICE_ID": s.stripe_gamer_pro_price_id,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USERNAME": s.smtp_username,
        "SMTP_PASSWORD": s.smtp_password,
        "MAIL_FROM": s.mail_from,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW_SECONDS": s.login_rate_window_seconds,
        # session cookie: signed by Flask, never readable from JS
        "SESSION_COOKIE_NAME": "session",
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        "PERMANENT_SESSION_LIFETIME": timedelta(days=30),
        "SESSION_REFRESH_EACH_REQUEST": True,
        "JSON_SORT_KEYS": False,
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }
