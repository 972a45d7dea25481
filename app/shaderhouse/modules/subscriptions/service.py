from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.errors import Forbidden, NotFound, ServiceUnavailable, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.payments.fees import calculate_creator_support_split, format_currency
from app.shaderhouse.modules.payments.service import is_stripe_configured, record_creator_support_revenue
from app.shaderhouse.modules.payments.stripe_client import StripeError, stripe_client_from_config
from app.shaderhouse.modules.settings.service import get_settings
from app.shaderhouse.modules.subscriptions.models import DeveloperSupport, Subscription
from app.shaderhouse.modules.subscriptions.tiers import (
    CREATOR_SUPPORT,
    FREE,
    GAMER_PRO,
    PAID_TIERS,
    SUPPORT_LIMITS,
    TIERS,
    price_cents_for,
)
from app.shaderhouse.utils import iso, utcnow

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    "active": "ACTIVE",
    "past_due": "PAST_DUE",
    "canceled": "CANCELED",
}


def map_stripe_status(status: str | None) -> str:
    return STRIPE_STATUS_MAP.get(status or "", "INACTIVE")


def has_active_paid_tier(user: User) -> bool:
    return user.subscription_tier in PAID_TIERS and user.subscription_status == "ACTIVE"


# ---------- Developer support ----------
def active_supports(s: Session, user_id: int) -> list[DeveloperSupport]:
    return (
        s.query(DeveloperSupport)
        .filter(DeveloperSupport.supporter_id == user_id, DeveloperSupport.is_active.is_(True))
        .order_by(DeveloperSupport.started_at.asc())
        .all()
    )


def is_supporting(s: Session, user_id: int, developer_id: int) -> bool:
    return (
        s.query(DeveloperSupport.id)
        .filter(
            DeveloperSupport.supporter_id == user_id,
            DeveloperSupport.developer_id == developer_id,
            DeveloperSupport.is_active.is_(True),
        )
        .first()
        is not None
    )


def support_developer(s: Session, user: User, developer_id: int) -> DeveloperSupport:
    if not has_active_paid_tier(user):
        raise Forbidden("An active paid subscription is required to support developers")
    if developer_id == user.id:
        raise ValidationFailed("You cannot support yourself")
    developer = s.get(User, developer_id)
    if developer is None or not developer.is_active:
        raise NotFound("Developer not found")
    if developer.role != "DEVELOPER":
        raise ValidationFailed("That user is not a developer")

    existing = (
        s.query(DeveloperSupport)
        .filter(DeveloperSupport.supporter_id == user.id, DeveloperSupport.developer_id == developer_id)
        .one_or_none()
    )
    if existing is not None and existing.is_active:
        raise ValidationFailed("You are already supporting this developer")

    limit = SUPPORT_LIMITS.get(user.subscription_tier)
    if limit is not None and len(active_supports(s, user.id)) >= limit:
        raise ValidationFailed(f"Your plan allows supporting up to {limit} developers")

    now = utcnow()
    if existing is not None:
        existing.is_active = True
        existing.started_at = now
        existing.ended_at = None
        support = existing
    else:
        support = DeveloperSupport(supporter_id=user.id, developer_id=developer_id, is_active=True, started_at=now)
        s.add(support)
    s.flush()
    record_event(s, actor=user, action="subscription.support_developer", entity_type="User", entity_id=str(developer_id))
    return support


def unsupport_developer(s: Session, user: User, developer_id: int) -> None:
    support = (
        s.query(DeveloperSupport)
        .filter(
            DeveloperSupport.supporter_id == user.id,
            DeveloperSupport.developer_id == developer_id,
            DeveloperSupport.is_active.is_(True),
        )
        .one_or_none()
    )
    if support is None:
        raise NotFound("You are not supporting this developer")
    support.is_active = False
    support.ended_at = utcnow()
    record_event(s, actor=user, action="subscription.unsupport_developer", entity_type="User", entity_id=str(developer_id))


def deactivate_supports(s: Session, user_id: int) -> int:
    return (
        s.query(DeveloperSupport)
        .filter(DeveloperSupport.supporter_id == user_id, DeveloperSupport.is_active.is_(True))
        .update({"is_active": False, "ended_at": utcnow()}, synchronize_session=False)
    )


def distribute_creator_support(s: Session, user: User, amount_cents: int) -> dict[str, Any]:
    """Split one subscription payment among the developers the user actively supports."""
    supports = active_supports(s, user.id)
    percent = int(get_settings(s)["creator_support_fee_percent"])
    split = calculate_creator_support_split(amount_cents, len(supports), percent)
    if split.per_developer > 0:
        for support in supports:
            record_creator_support_revenue(s, support.developer_id, split.per_developer)
    return split.to_dict()


# ---------- Beta access ----------
def can_access_beta(s: Session, user: User | None, game: Game) -> bool:
    if user is None:
        return False
    if user.is_admin or game.developer_id == user.id:
        return True
    if user.subscription_status != "ACTIVE":
        return False
    if user.subscription_tier == GAMER_PRO:
        return True
    if user.subscription_tier == CREATOR_SUPPORT:
        return is_supporting(s, user.id, game.developer_id)
    return False


# ---------- Status ----------
def subscription_status(s: Session, user: User) -> dict[str, Any]:
    supports = active_supports(s, user.id)
    limit = SUPPORT_LIMITS.get(user.subscription_tier)
    return {
        "tier": user.subscription_tier,
        "status": user.subscription_status,
        "started_at": iso(user.subscription_started_at),
        "ends_at": iso(user.subscription_ends_at),
        "is_paid": user.subscription_tier in PAID_TIERS,
        "supported_developers": len(supports),
        "support_limit": limit,
    }


def serialize_support(support: DeveloperSupport) -> dict[str, Any]:
    dev = support.developer
    return {
        "developer_id": support.developer_id,
        "developer_name": (dev.display_name or dev.name) if dev else None,
        "started_at": iso(support.started_at),
        "is_active": support.is_active,
    }


# ---------- Checkout / cancel ----------
def _activate(s: Session, user: User, tier: str, *, stripe_subscription_id: str | None = None) -> Subscription:
    now = utcnow()
    user.subscription_tier = tier
    user.subscription_status = "ACTIVE"
    user.subscription_started_at = now
    user.subscription_ends_at = None
    if stripe_subscription_id:
        user.stripe_subscription_id = stripe_subscription_id
    sub = Subscription(
        user_id=user.id,
        tier=tier,
        status="ACTIVE",
        amount_cents=price_cents_for(tier),
        stripe_subscription_id=stripe_subscription_id,
        started_at=now,
    )
    s.add(sub)
    create_notification(
        s,
        user=user,
        type="SUBSCRIPTION_CHANGED",
        title="Subscription active",
        message=f"Your {tier.replace('_', ' ').title()} subscription is now active.",
        link="/subscriptions",
        metadata={"tier": tier},
    )
    record_event(s, actor=user, action="subscription.activate", entity_type="User", entity_id=str(user.id), metadata={"tier": tier})
    return sub


def _downgrade(s: Session, user: User, *, reason: str) -> None:
    now = utcnow()
    user.subscription_tier = FREE
    user.subscription_status = "CANCELED"
    user.subscription_ends_at = now
    user.stripe_subscription_id = None
    (
        s.query(Subscription)
        .filter(Subscription.user_id == user.id, Subscription.ended_at.is_(None))
        .update({"status": "CANCELED", "ended_at": now}, synchronize_session=False)
    )
    deactivate_supports(s, user.id)
    create_notification(
        s,
        user=user,
        type="SUBSCRIPTION_CANCELED",
        title="Subscription canceled",
        message="Your subscription has ended. You are now on the Free plan.",
        link="/subscriptions",
    )
    record_event(s, actor=user, action="subscription.cancel", entity_type="User", entity_id=str(user.id), reason=reason)


def create_checkout(s: Session, config: Any, *, user: User, tier: str) -> dict[str, Any]:
    tier = (tier or "").upper()
    if tier not in TIERS:
        raise ValidationFailed("Invalid subscription tier")
    if tier == FREE:
        raise ValidationFailed("The Free tier cannot be purchased")
    if has_active_paid_tier(user):
        raise ValidationFailed("You already have an active subscription")

    if not is_stripe_configured(config):
        _activate(s, user, tier)
        return {"activated": True, "demo_mode": True, "tier": tier}

    price_id = config.get("STRIPE_CREATOR_SUPPORT_PRICE_ID") if tier == CREATOR_SUPPORT else config.get("STRIPE_GAMER_PRO_PRICE_ID")
    if not price_id:
        raise ServiceUnavailable("Subscription pricing is not configured")
    base_url = config.get("BASE_URL")
    params: dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "metadata": {"userId": user.id, "tier": tier},
        "subscription_data": {"metadata": {"userId": user.id, "tier": tier}},
        "success_url": f"{base_url}/subscriptions?success=1&session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{base_url}/subscriptions?canceled=1",
    }
    if user.stripe_customer_id:
        params["customer"] = user.stripe_customer_id
    else:
        params["customer_email"] = user.email
    try:
        session_obj = stripe_client_from_config(config).create_checkout_session(params)  # type: ignore[union-attr]
    except StripeError as e:
        logger.error("Stripe subscription checkout failed user_id=%s tier=%s: %s", user.id, tier, e)
        raise ServiceUnavailable("Payment provider unavailable") from e
    return {"checkout_url": session_obj.get("url"), "session_id": session_obj.get("id")}


def cancel_subscription(s: Session, config: Any, *, user: User) -> dict[str, Any]:
    if user.subscription_tier not in PAID_TIERS or user.subscription_status == "CANCELED":
        raise ValidationFailed("You do not have an active subscription")

    if is_stripe_configured(config) and user.stripe_subscription_id:
        try:
            stripe_client_from_config(config).cancel_subscription_at_period_end(user.stripe_subscription_id)  # type: ignore[union-attr]
        except StripeError as e:
            logger.error("Stripe cancel failed user_id=%s: %s", user.id, e)
            raise ServiceUnavailable("Payment provider unavailable") from e
        record_event(s, actor=user, action="subscription.cancel_requested", entity_type="User", entity_id=str(user.id))
        return {"canceled": False, "cancel_at_period_end": True}

    _downgrade(s, user, reason="Canceled by user")
    return {"canceled": True, "tier": FREE}


# ---------- Webhook ----------
def _find_user(s: Session, obj: dict[str, Any], *, subscription_id: str | None = None) -> User | None:
    metadata = obj.get("metadata") or {}
    user_id = metadata.get("userId")
    if user_id:
        try:
            user = s.get(User, int(user_id))
        except (TypeError, ValueError):
            user = None
        if user is not None:
            return user
    if subscription_id:
        user = s.query(User).filter(User.stripe_subscription_id == subscription_id).one_or_none()
        if user is not None:
            return user
    customer = obj.get("customer")
    if customer:
        return s.query(User).filter(User.stripe_customer_id == customer).one_or_none()
    return None


def _handle_checkout_completed(s: Session, obj: dict[str, Any]) -> str:
    if obj.get("mode") not in (None, "subscription"):
        return "ignored"
    tier = ((obj.get("metadata") or {}).get("tier") or "").upper()
    if tier not in PAID_TIERS:
        return "ignored"
    subscription_id = obj.get("subscription")
    user = _find_user(s, obj)
    if user is None:
        logger.warning("Subscription checkout completed for unknown user (session=%s)", obj.get("id"))
        return "ignored"
    if subscription_id and s.query(Subscription.id).filter(Subscription.stripe_subscription_id == subscription_id).first():
        return "already_processed"

    if obj.get("customer"):
        user.stripe_customer_id = obj["customer"]
    _activate(s, user, tier, stripe_subscription_id=subscription_id)
    if tier == CREATOR_SUPPORT:
        distribute_creator_support(s, user, int(obj.get("amount_total") or price_cents_for(tier)))
    return "activated"


def _handle_subscription_updated(s: Session, obj: dict[str, Any]) -> str:
    user = _find_user(s, obj, subscription_id=obj.get("id"))
    if user is None:
        return "ignored"
    status = map_stripe_status(obj.get("status"))
    if user.subscription_status == status:
        return "unchanged"
    user.subscription_status = status
    (
        s.query(Subscription)
        .filter(Subscription.stripe_subscription_id == obj.get("id"))
        .update({"status": status}, synchronize_session=False)
    )
    create_notification(
        s,
        user=user,
        type="SUBSCRIPTION_CHANGED",
        title="Subscription updated",
        message=f"Your subscription status is now {status.replace('_', ' ').lower()}.",
        link="/subscriptions",
        metadata={"status": status},
    )
    return "updated"


def _handle_subscription_deleted(s: Session, obj: dict[str, Any]) -> str:
    user = _find_user(s, obj, subscription_id=obj.get("id"))
    if user is None:
        return "ignored"
    _downgrade(s, user, reason="Subscription deleted in Stripe")
    return "canceled"


def _handle_payment_failed(s: Session, obj: dict[str, Any]) -> str:
    user = _find_user(s, obj, subscription_id=obj.get("subscription"))
    if user is None:
        return "ignored"
    user.subscription_status = "PAST_DUE"
    create_notification(
        s,
        user=user,
        type="SUBSCRIPTION_CHANGED",
        title="Payment failed",
        message="We couldn't process your subscription payment. Please update your payment method.",
        link="/subscriptions",
    )
    return "past_due"


def _handle_invoice_paid(s: Session, obj: dict[str, Any]) -> str:
    if obj.get("billing_reason") == "subscription_create":
        # first payment is split when the checkout session completes
        return "ignored"
    user = _find_user(s, obj, subscription_id=obj.get("subscription"))
    if user is None or user.subscription_tier not in PAID_TIERS:
        return "ignored"
    invoice_id = obj.get("id")
    record = (
        s.query(Subscription).filter(Subscription.stripe_subscription_id == obj.get("subscription")).one_or_none()
        if obj.get("subscription")
        else None
    )
    if record is not None and invoice_id:
        if record.last_invoice_id == invoice_id:
            return "already_processed"
        record.last_invoice_id = invoice_id
    user.subscription_status = "ACTIVE"
    amount = int(obj.get("amount_paid") or price_cents_for(user.subscription_tier))
    if user.subscription_tier == CREATOR_SUPPORT:
        distribute_creator_support(s, user, amount)
    create_notification(
        s,
        user=user,
        type="SUBSCRIPTION_RENEWED",
        title="Subscription renewed",
        message=f"Thanks for renewing! {format_currency(amount)} was charged.",
        link="/subscriptions",
    )
    return "renewed"


def handle_subscription_event(s: Session, event: dict[str, Any]) -> str:
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    handlers = {
        "checkout.session.completed": _handle_checkout_completed,
        "customer.subscription.updated": _handle_subscription_updated,
        "customer.subscription.deleted": _handle_subscription_deleted,
        "invoice.payment_failed": _handle_payment_failed,
        "invoice.paid": _handle_invoice_paid,
    }
    handler = handlers.get(event_type or "")
    if handler is None:
        logger.info("Unhandled subscription webhook event type=%s", event_type)
        return "ignored"
    return handler(s, obj)
