from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.errors import Forbidden, NotFound, ValidationFailed
from app.shaderhouse.http import current_user, json_body, require_int
from app.shaderhouse.models import User
from app.shaderhouse.modules.games.service import get_visible_game
from app.shaderhouse.modules.payments.fees import MINIMUM_TIP_CENTS
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.modules.payments.service import (
    connect_dashboard_link,
    connect_status,
    handle_payments_event,
    revenue_summary,
    serialize_purchase,
    start_connect_onboarding,
    start_game_checkout,
    start_publishing_fee,
    start_tip,
)
from app.shaderhouse.modules.payments.stripe_client import StripeSignatureError, construct_event
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.ratelimit import enforce_content_limit, record_content
from app.shaderhouse.rbac import require_login, require_permission
from app.shaderhouse.utils import clean_str

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__)


# ---------- Game purchase ----------
@bp.post("/games/<ref>/checkout")
@bp.post("/games/<ref>/purchase")
@require_permission("games.purchase")
def game_checkout(ref: str):
    s = db_session()
    user = current_user()
    game = get_visible_game(s, ref, user)
    result = start_game_checkout(s, current_app.config, user=user, game=game)
    s.commit()
    return jsonify(result)


@bp.get("/payments/purchases")
@require_login
def purchases_list():
    s = db_session()
    purchases = (
        s.query(Purchase).filter(Purchase.user_id == current_user().id).order_by(Purchase.created_at.desc()).all()
    )
    return jsonify({"purchases": [serialize_purchase(p) for p in purchases]})


# ---------- Tips ----------
@bp.post("/payments/tip")
@require_permission("payments.tip")
def tip_create():
    s = db_session()
    user = current_user()
    payload = json_body()
    developer_id = require_int(payload, "developer_id")
    amount = payload.get("amount_cents")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < MINIMUM_TIP_CENTS:
        raise ValidationFailed(f"Minimum tip is {MINIMUM_TIP_CENTS} cents")
    message = clean_str(payload.get("message")) or None
    if message and len(message) > 500:
        raise ValidationFailed("Message must be at most 500 characters")
    if developer_id == user.id:
        raise ValidationFailed("You cannot tip yourself")
    developer = s.get(User, developer_id)
    if developer is None or not developer.is_active:
        raise NotFound("Developer not found")
    if developer.role != "DEVELOPER":
        raise ValidationFailed("Tips can only be sent to developers")

    enforce_content_limit(user.id, "tip")
    result = start_tip(s, current_app.config, user=user, developer=developer, amount_cents=amount, message=message)
    s.commit()
    record_content(user.id, "tip")
    return jsonify(result)


# ---------- Publishing fee ----------
@bp.post("/payments/publishing-fee")
@require_permission("games.manage")
def publishing_fee():
    s = db_session()
    user = current_user()
    game = s.get(Game, require_int(json_body(), "game_id"))
    if game is None:
        raise NotFound("Game not found")
    if game.developer_id != user.id:
        raise Forbidden("Only the developer can publish this game")
    result = start_publishing_fee(s, current_app.config, user=user, game=game)
    s.commit()
    return jsonify(result)


# ---------- Payouts ----------
@bp.post("/payments/connect")
@require_permission("developer.profile")
def connect_onboarding():
    s = db_session()
    if not current_app.config.get("STRIPE_SECRET_KEY"):
        raise ValidationFailed("Payouts are not available in demo mode")
    result = start_connect_onboarding(s, current_app.config, user=current_user())
    s.commit()
    return jsonify(result)


@bp.get("/payments/connect/status")
@require_permission("developer.profile")
def connect_account_status():
    s = db_session()
    result = connect_status(s, current_app.config, user=current_user())
    s.commit()
    return jsonify(result)


@bp.get("/payments/connect/dashboard")
@require_permission("developer.profile")
def connect_dashboard():
    url = connect_dashboard_link(db_session(), current_app.config, user=current_user())
    return jsonify({"dashboard_url": url})


@bp.get("/developer/revenue")
@require_permission("revenue.view")
def developer_revenue():
    return jsonify(revenue_summary(db_session(), current_user()))


# ---------- Webhook ----------
@bp.post("/payments/webhook")
def payments_webhook():
    secret = current_app.config.get("STRIPE_PAYMENTS_WEBHOOK_SECRET")
    if not secret:
        return jsonify({"received": True, "skipped": True})
    payload = request.get_data()
    try:
        event = construct_event(payload, request.headers.get("Stripe-Signature"), secret)
    except StripeSignatureError as e:
        logger.warning("Payments webhook rejected: %s", e)
        return jsonify({"error": "Invalid signature"}), 400

    s = db_session()
    outcome = handle_payments_event(s, event)
    s.commit()
    logger.info("Payments webhook %s (%s): %s", event.get("id"), event.get("type"), outcome)
    return jsonify({"received": True, "result": outcome})
