from __future__ import annotations

import hashlib
import json
import time
import uuid
from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.shaderhouse.audit import record_event
from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, NotAuthenticated, RateLimited, ValidationFailed
from app.shaderhouse.http import current_user, json_body
from app.shaderhouse.mailer import send_email_change_email, send_password_reset_email, send_verification_email
from app.shaderhouse.models import User
from app.shaderhouse.modules.developers.service import save_profile, validate_profile_payload
from app.shaderhouse.modules.rewards.service import award
from app.shaderhouse.modules.settings.service import get_settings
from app.shaderhouse.ratelimit import client_identifier
from app.shaderhouse.rbac import require_login
from app.shaderhouse.security import ensure_csrf_token, is_valid_email, validate_password
from app.shaderhouse.tokens import EMAIL_CHANGE, EMAIL_VERIFICATION, PASSWORD_RESET, consume_email_change, consume_token, issue_token
from app.shaderhouse.totp import generate_backup_codes, generate_secret, match_totp_counter, normalize_backup_code, provisioning_uri
from app.shaderhouse.users import serialize_user
from app.shaderhouse.utils import clean_str, utcnow

bp = Blueprint("auth", __name__)

SESSION_TTL = timedelta(hours=24)
REMEMBER_ME_TTL = timedelta(days=30)


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Expired sessions and accounts that can no longer sign in are logged out.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None

    user_id = session.get("user_id")
    if not user_id:
        return
    if float(session.get("expires_at") or 0) < time.time():
        session.clear()
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.clear()
        return
    if not user or not user.can_sign_in():
        session.clear()
        return
    g.current_user = user


def _start_session(user: User, *, remember: bool) -> None:
    session.clear()
    session.permanent = True
    session["user_id"] = user.id
    session["expires_at"] = time.time() + (REMEMBER_ME_TTL if remember else SESSION_TTL).total_seconds()
    session["remember_me"] = bool(remember)


def _hash_backup_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def _use_backup_code(user: User, code: str) -> bool:
    """Consume a backup code; each one works exactly once."""
    normalized = normalize_backup_code(code)
    if not normalized or not user.backup_codes_json:
        return False
    hashes = json.loads(user.backup_codes_json)
    digest = _hash_backup_code(normalized)
    if digest not in hashes:
        return False
    hashes.remove(digest)
    user.backup_codes_json = json.dumps(hashes)
    return True


def _accept_totp(user: User, code: str) -> bool:
    """Accept a TOTP code once; a step at or before the last accepted one is a replay."""
    counter = match_totp_counter(user.two_factor_secret or "", code)
    if counter is None:
        return False
    if user.totp_last_counter is not None and counter <= user.totp_last_counter:
        return False
    user.totp_last_counter = counter
    return True


def _check_second_factor(user: User, code: str) -> bool:
    if _accept_totp(user, code):
        return True
    return _use_backup_code(user, code)


@bp.post("/register")
def register():
    s = db_session()
    payload = json_body()
    settings = get_settings(s)
    if not settings["allow_registration"]:
        raise Forbidden("Registration is currently closed")

    name = clean_str(payload.get("name"))
    email = clean_str(payload.get("email")).lower()
    password = payload.get("password") or ""
    role = clean_str(payload.get("role") or "gamer").lower()

    errors: list[str] = []
    if not 2 <= len(name) <= 100:
        errors.append("Name must be between 2 and 100 characters.")
    if not is_valid_email(email):
        errors.append("A valid email address is required.")
    errors.extend(validate_password(password))
    if password != (payload.get("confirm_password") or ""):
        errors.append("Passwords do not match.")
    if role not in ("gamer", "developer"):
        errors.append("role must be gamer or developer.")

    profile_data = None
    if role == "developer":
        if not settings["allow_dev_registration"]:
            raise Forbidden("Developer registration is currently closed")
        if payload.get("developer_profile") is not None:
            profile_data, profile_errors = validate_profile_payload(payload.get("developer_profile"))
            errors.extend(profile_errors)
    if errors:
        raise ValidationFailed(details=errors)

    if s.query(User.id).filter(User.email == email).first():
        raise ValidationFailed("An account with this email already exists")

    user = User(
        name=name,
        email=email,
        password_hash=generate_password_hash(password),
        role=role.upper(),
        last_login_at=utcnow(),
    )
    s.add(user)
    s.flush()
    if profile_data is not None:
        save_profile(s, user, profile_data)
    token = issue_token(s, user, EMAIL_VERIFICATION)
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id), metadata={"role": user.role})
    s.commit()

    send_verification_email(current_app.config, user.email, token)
    _start_session(user, remember=False)
    current_app.logger.info("New %s account user_id=%s", user.role.lower(), user.id)
    return jsonify({"user": serialize_user(user), "csrf_token": ensure_csrf_token()}), 201


@bp.post("/login")
def login():
    payload = json_body()
    email = clean_str(payload.get("email")).lower()
    password = payload.get("password") or ""
    code = clean_str(payload.get("code"))
    remember = bool(payload.get("remember_me"))

    limiter = current_app.extensions["login_limiter"]
    identifier = client_identifier(request.remote_addr, request.headers.get("User-Agent"), email or None)
    limit = limiter.check(identifier)
    if not limit.allowed:
        raise RateLimited("Too many login attempts. Please try again later.", reset_at=int(limit.reset_at))

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none() if email else None
    if not user or not check_password_hash(user.password_hash, password) or not user.can_sign_in():
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email or None,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise NotAuthenticated("Invalid email or password")

    if user.two_factor_enabled:
        if not code:
            return jsonify({"error": "Two-factor code required", "requires_2fa": True}), 401
        if not _check_second_factor(user, code):
            record_event(s, actor=user, action="auth.login_failed", entity_type="User", entity_id=str(user.id), reason="Invalid 2FA code")
            s.commit()
            raise NotAuthenticated("Invalid two-factor code")

    limiter.reset(identifier)
    now = utcnow()
    user.last_login_at = now
    if user.last_daily_login_on != now.date():
        user.last_daily_login_on = now.date()
        award(s, user, "DAILY_LOGIN", description="Daily login")
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()

    _start_session(user, remember=remember)
    return jsonify({"user": serialize_user(user), "csrf_token": ensure_csrf_token()})


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"ok": True})


@bp.get("/me")
@require_login
def me():
    return jsonify({"user": serialize_user(current_user())})


@bp.get("/session")
def session_info():
    user = getattr(g, "current_user", None)
    if not user:
        return jsonify({"authenticated": False, "user": None, "expires_at": None})
    return jsonify(
        {
            "authenticated": True,
            "user": serialize_user(user),
            "expires_at": int(session.get("expires_at") or 0),
            "remember_me": bool(session.get("remember_me")),
        }
    )


@bp.get("/csrf")
def csrf():
    return jsonify({"csrf_token": ensure_csrf_token()})


# ---------- Two-factor ----------
@bp.post("/2fa/setup")
@require_login
def two_factor_setup():
    s = db_session()
    user = current_user()
    if user.two_factor_enabled:
        raise ValidationFailed("Two-factor authentication is already enabled")
    secret = generate_secret()
    codes = generate_backup_codes()
    user.two_factor_secret = secret
    user.totp_last_counter = None
    user.backup_codes_json = json.dumps([_hash_backup_code(c) for c in codes])
    s.commit()
    return jsonify(
        {
            "secret": secret,
            "otp_auth_url": provisioning_uri(secret, user.email),
            "backup_codes": codes,
        }
    )


@bp.post("/2fa/verify")
@require_login
def two_factor_verify():
    s = db_session()
    user = current_user()
    if user.two_factor_enabled:
        raise ValidationFailed("Two-factor authentication is already enabled")
    if not user.two_factor_secret:
        raise ValidationFailed("Start two-factor setup first")
    if not _accept_totp(user, clean_str(json_body().get("code"))):
        raise ValidationFailed("Invalid code")
    user.two_factor_enabled = True
    record_event(s, actor=user, action="auth.2fa_enabled", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"enabled": True})


@bp.post("/2fa/disable")
@require_login
def two_factor_disable():
    s = db_session()
    user = current_user()
    payload = json_body()
    if not user.two_factor_enabled:
        raise ValidationFailed("Two-factor authentication is not enabled")
    if not check_password_hash(user.password_hash, payload.get("password") or ""):
        raise ValidationFailed("Password is incorrect")
    if not _check_second_factor(user, clean_str(payload.get("code"))):
        raise ValidationFailed("Invalid code")
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.backup_codes_json = None
    user.totp_last_counter = None
    record_event(s, actor=user, action="auth.2fa_disabled", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"enabled": False})


# ---------- Passwords and email ----------
@bp.post("/change-password")
@require_login
def change_password():
    s = db_session()
    user = current_user()
    payload = json_body()
    if not check_password_hash(user.password_hash, payload.get("current_password") or ""):
        raise ValidationFailed("Current password is incorrect")
    new_password = payload.get("new_password") or ""
    errors = validate_password(new_password)
    if errors:
        raise ValidationFailed(details=errors)
    if check_password_hash(user.password_hash, new_password):
        raise ValidationFailed("New password must be different from the current one")
    user.password_hash = generate_password_hash(new_password)
    user.updated_at = utcnow()
    record_event(s, actor=user, action="auth.password_change", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"ok": True})


@bp.post("/send-verification")
@require_login
def send_verification():
    s = db_session()
    user = current_user()
    if user.is_email_verified:
        raise ValidationFailed("Email is already verified")
    token = issue_token(s, user, EMAIL_VERIFICATION)
    s.commit()
    send_verification_email(current_app.config, user.email, token)
    return jsonify({"sent": True})


@bp.post("/verify-email")
def verify_email():
    s = db_session()
    user = consume_token(s, clean_str(json_body().get("token")), EMAIL_VERIFICATION)
    if user.email_verified_at is None:
        user.email_verified_at = utcnow()
    record_event(s, actor=user, action="auth.email_verified", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"verified": True})


@bp.post("/email-change")
@require_login
def email_change_request():
    s = db_session()
    user = current_user()
    payload = json_body()
    new_email = clean_str(payload.get("new_email")).lower()
    if not is_valid_email(new_email):
        raise ValidationFailed("Please provide a valid email address")
    if not payload.get("password"):
        raise ValidationFailed("Password required to change email")
    if new_email == user.email.lower():
        raise ValidationFailed("New email must be different from current email")
    if s.query(User.id).filter(User.email == new_email).first():
        raise ValidationFailed("This email is already in use")
    if not check_password_hash(user.password_hash, payload.get("password") or ""):
        raise ValidationFailed("Incorrect password")

    token = issue_token(s, user, EMAIL_CHANGE, new_email=new_email)
    record_event(s, actor=user, action="auth.email_change_requested", entity_type="User", entity_id=str(user.id))
    s.commit()
    send_email_change_email(current_app.config, new_email, token)
    return jsonify({"sent": True, "message": "Verification email sent. Please check your new email inbox."})


@bp.post("/email-change/verify")
def email_change_verify():
    s = db_session()
    user, new_email = consume_email_change(s, clean_str(json_body().get("token")))
    taken = s.query(User.id).filter(User.email == new_email, User.id != user.id).first()
    if taken:
        s.commit()
        raise ValidationFailed("This email is already in use")
    old_email = user.email
    user.email = new_email
    user.email_verified_at = utcnow()
    user.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="auth.email_changed",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"from": old_email, "to": new_email},
    )
    s.commit()
    return jsonify({"email": new_email, "verified": True})


@bp.post("/reset-password/request")
def reset_password_request():
    s = db_session()
    email = clean_str(json_body().get("email")).lower()
    user = s.query(User).filter(User.email == email).one_or_none() if email else None
    if user and user.is_active:
        token = issue_token(s, user, PASSWORD_RESET)
        record_event(s, actor=user, action="auth.password_reset_requested", entity_type="User", entity_id=str(user.id))
        s.commit()
        send_password_reset_email(current_app.config, user.email, token)
    # same answer whether or not the account exists
    return jsonify({"ok": True, "message": "If an account exists for that email, a reset link has been sent."})


@bp.post("/reset-password/verify")
def reset_password_verify():
    s = db_session()
    payload = json_body()
    password = payload.get("password") or ""
    errors = validate_password(password)
    if password != (payload.get("confirm_password") or ""):
        errors.append("Passwords do not match.")
    if errors:
        raise ValidationFailed(details=errors)
    user = consume_token(s, clean_str(payload.get("token")), PASSWORD_RESET)
    user.password_hash = generate_password_hash(password)
    user.updated_at = utcnow()
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"ok": True})
