from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from app.shaderhouse.db import db_session
from app.shaderhouse.http import current_user, json_body, optional_user, require_int
from app.shaderhouse.modules.payments.stripe_client import StripeSignatureError, construct_event
from app.shaderhouse.modules.subscriptions.service import (
    active_supports,
    cancel_subscription,
    create_checkout,
    handle_subscription_event,
    serialize_support,
    subscription_status,
    support_developer,
    unsupport_developer,
)
from app.shaderhouse.modules.subscriptions.tiers import has_active_feature, plans_with_features
from app.shaderhouse.rbac import require_permission
from app.shaderhouse.utils import clean_str

logger = logging.getLogger(__name__)

bp = Blueprint("subscriptions", __name__)


@bp.get("/plans")
def plans():
    user = optional_user()
    return jsonify({"plans": plans_with_features(), "current_tier": user.subscription_tier if user else None})


@bp.get("/me")
@require_permission("subscriptions.manage")
def my_subscription():
    s = db_session()
    user = current_user()
    status = subscription_status(s, user)
    status["features"] = {
        "beta_access": has_active_feature(user, "BETA_ACCESS"),
        "unlimited_library": has_active_feature(user, "UNLIMITED_LIBRARY"),
        "exclusive_cosmetics": has_active_feature(user, "EXCLUSIVE_COSMETICS"),
    }
    return jsonify(status)


@bp.post("/create-checkout")
@require_permission("subscriptions.manage")
def subscriptions_checkout():
    s = db_session()
    result = create_checkout(s, current_app.config, user=current_user(), tier=clean_str(json_body().get("tier")))
    s.commit()
    return jsonify(result)


@bp.post("/cancel")
@require_permission("subscriptions.manage")
def subscriptions_cancel():
    s = db_session()
    result = cancel_subscription(s, current_app.config, user=current_user())
    s.commit()
    return jsonify(result)


# ---------- Developer support ----------
@bp.post("/support-developer")
@require_permission("subscriptions.manage")
def support():
    s = db_session()
    sup = support_developer(s, current_user(), require_int(json_body(), "developer_id"))
    s.commit()
    return jsonify({"support": serialize_support(sup)})


@bp.post("/unsupport-developer")
@require_permission("subscriptions.manage")
def unsupport():
    s = db_session()
    unsupport_developer(s, current_user(), require_int(json_body(), "developer_id"))
    s.commit()
    return jsonify({"supported": False})


@bp.get("/supported-developers")
@require_permission("subscriptions.manage")
def supported_developers():
    s = db_session()
    user = current_user()
    supports = active_supports(s, user.id)
    return jsonify(
        {
            "developers": [serialize_support(x) for x in supports],
            "count": len(supports),
            "limit": subscription_status(s, user)["support_limit"],
        }
    )


# ---------- Webhook ----------
@bp.post("/webhook")
def subscriptions_webhook():
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        return jsonify({"received": True, "skipped": True})
    try:
        event = construct_event(request.get_data(), request.headers.get("Stripe-Signature"), secret)
    except StripeSignatureError as e:
        logger.warning("Subscription webhook rejected: %s", e)
        return jsonify({"error": "Invalid signature"}), 400

    s = db_session()
    outcome = handle_subscription_event(s, event)
    s.commit()
    logger.info("Subscription webhook %s (%s): %s", event.get("id"), event.get("type"), outcome)
    return jsonify({"received": True, "result": outcome})
