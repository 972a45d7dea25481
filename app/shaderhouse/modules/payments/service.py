"""
Purchases, tips, publishing fees and the monthly developer revenue ledger.

Without STRIPE_SECRET_KEY the platform runs in demo mode: payments complete
immediately and nothing leaves the process. With Stripe configured, a hosted
checkout session is created and the webhook completes the payment; every
completion path is idempotent on the Stripe session / payment intent id.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.shaderhouse.audit import record_event
from app.shaderhouse.cache import invalidate_game_caches
from app.shaderhouse.errors import NotFound, ServiceUnavailable, ValidationFailed
from app.shaderhouse.models import User
from app.shaderhouse.modules.developers.models import DeveloperProfile
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.payments.fees import (
    MINIMUM_PAYOUT_THRESHOLD_CENTS,
    PaymentSplit,
    calculate_donation_split,
    calculate_game_sale_split,
    format_currency,
)
from app.shaderhouse.modules.payments.models import DeveloperRevenue, PublishingFee, Purchase, Tip
from app.shaderhouse.modules.payments.stripe_client import StripeClient, StripeError, stripe_client_from_config
from app.shaderhouse.modules.settings.service import get_settings
from app.shaderhouse.utils import iso, month_start, utcnow

logger = logging.getLogger(__name__)


def is_stripe_configured(config: Any) -> bool:
    return bool(config.get("STRIPE_SECRET_KEY"))


def _client(config: Any) -> StripeClient:
    client = stripe_client_from_config(config)
    if client is None:
        raise ServiceUnavailable("Payments are not configured")
    return client


# ---------- Ledger ----------
def get_or_create_revenue(s: Session, developer_id: int, when: datetime | None = None) -> DeveloperRevenue:
    month = month_start(when)
    row = (
        s.query(DeveloperRevenue)
        .filter(DeveloperRevenue.developer_id == developer_id, DeveloperRevenue.month == month)
        .one_or_none()
    )
    if row is None:
        row = DeveloperRevenue(
            developer_id=developer_id,
            month=month,
            direct_sales_cents=0,
            units_sold=0,
            tips_cents=0,
            creator_support_cents=0,
            refunds_cents=0,
        )
        s.add(row)
        s.flush()
    return row


def record_sale_revenue(s: Session, developer_id: int, amount_cents: int) -> None:
    row = get_or_create_revenue(s, developer_id)
    row.direct_sales_cents += amount_cents
    row.units_sold += 1
    row.updated_at = utcnow()


def record_tip_revenue(s: Session, developer_id: int, amount_cents: int) -> None:
    row = get_or_create_revenue(s, developer_id)
    row.tips_cents += amount_cents
    row.updated_at = utcnow()


def record_creator_support_revenue(s: Session, developer_id: int, amount_cents: int) -> None:
    row = get_or_create_revenue(s, developer_id)
    row.creator_support_cents += amount_cents
    row.updated_at = utcnow()


def record_refund(s: Session, developer_id: int, amount_cents: int, *, units: int = 0) -> None:
    row = get_or_create_revenue(s, developer_id)
    row.refunds_cents += amount_cents
    if units:
        row.units_sold = max(0, row.units_sold - units)
    row.updated_at = utcnow()


def serialize_revenue(row: DeveloperRevenue) -> dict[str, Any]:
    return {
        "month": row.month.strftime("%Y-%m"),
        "direct_sales_cents": row.direct_sales_cents,
        "units_sold": row.units_sold,
        "tips_cents": row.tips_cents,
        "creator_support_cents": row.creator_support_cents,
        "refunds_cents": row.refunds_cents,
        "gross_cents": row.gross_cents,
        "net_cents": row.net_cents,
    }


def revenue_summary(s: Session, developer: User) -> dict[str, Any]:
    rows = (
        s.query(DeveloperRevenue)
        .filter(DeveloperRevenue.developer_id == developer.id)
        .order_by(DeveloperRevenue.month.desc())
        .all()
    )
    totals = {
        "direct_sales_cents": sum(r.direct_sales_cents for r in rows),
        "units_sold": sum(r.units_sold for r in rows),
        "tips_cents": sum(r.tips_cents for r in rows),
        "creator_support_cents": sum(r.creator_support_cents for r in rows),
        "refunds_cents": sum(r.refunds_cents for r in rows),
    }
    lifetime_net = sum(r.net_cents for r in rows)
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == developer.id).one_or_none()
    return {
        "months": [serialize_revenue(r) for r in rows],
        "totals": totals,
        "lifetime_net_cents": lifetime_net,
        "lifetime_net_formatted": format_currency(lifetime_net),
        "payout": {
            "minimum_cents": MINIMUM_PAYOUT_THRESHOLD_CENTS,
            "eligible": lifetime_net >= MINIMUM_PAYOUT_THRESHOLD_CENTS,
            "payouts_enabled": bool(profile and profile.payouts_enabled),
        },
    }


# ---------- Completion (shared by demo mode and webhooks) ----------
def owns_game(s: Session, user_id: int, game_id: int) -> bool:
    return (
        s.query(Purchase.id)
        .filter(Purchase.user_id == user_id, Purchase.game_id == game_id, Purchase.status == "COMPLETED")
        .first()
        is not None
    )


def complete_game_purchase(
    s: Session,
    *,
    user: User,
    game: Game,
    split: PaymentSplit,
    stripe_session_id: str | None = None,
    stripe_payment_intent_id: str | None = None,
) -> Purchase:
    if stripe_session_id:
        existing = s.query(Purchase).filter(Purchase.stripe_session_id == stripe_session_id).one_or_none()
        if existing is not None:
            return existing
    existing = s.query(Purchase).filter(Purchase.user_id == user.id, Purchase.game_id == game.id).one_or_none()
    if existing is not None:
        if existing.status == "COMPLETED":
            return existing
        # re-purchase after a refund
        s.delete(existing)
        s.flush()

    purchase = Purchase(
        user_id=user.id,
        game_id=game.id,
        price_cents=split.total,
        platform_fee_cents=split.platform_fee,
        developer_amount_cents=split.developer_amount,
        status="COMPLETED",
        stripe_session_id=stripe_session_id,
        stripe_payment_intent_id=stripe_payment_intent_id,
    )
    s.add(purchase)
    s.flush()

    if split.total > 0:
        record_sale_revenue(s, game.developer_id, split.developer_amount)
        create_notification(
            s,
            user=game.developer_id,
            type="GAME_PURCHASED",
            title="New sale!",
            message=f"{user.display_name or user.name} bought {game.title} ({format_currency(split.total)}).",
            link=f"/games/{game.slug}",
            metadata={"game_id": game.id, "amount_cents": split.total},
        )
    record_event(
        s,
        actor=user,
        action="payment.game_purchase",
        entity_type="Game",
        entity_id=str(game.id),
        metadata={"price_cents": split.total, "platform_fee": split.platform_fee, "stripe_session_id": stripe_session_id},
    )
    invalidate_game_caches()
    return purchase


def complete_tip(
    s: Session,
    *,
    from_user: User | None,
    developer: User,
    split: PaymentSplit,
    message: str | None = None,
    stripe_session_id: str | None = None,
    stripe_payment_intent_id: str | None = None,
) -> Tip:
    if stripe_session_id:
        existing = s.query(Tip).filter(Tip.stripe_session_id == stripe_session_id).one_or_none()
        if existing is not None:
            return existing
    tip = Tip(
        from_user_id=from_user.id if from_user else None,
        developer_id=developer.id,
        amount_cents=split.total,
        platform_fee_cents=split.platform_fee,
        developer_amount_cents=split.developer_amount,
        message=message,
        status="COMPLETED",
        stripe_session_id=stripe_session_id,
        stripe_payment_intent_id=stripe_payment_intent_id,
    )
    s.add(tip)
    s.flush()
    record_tip_revenue(s, developer.id, split.developer_amount)
    sender = (from_user.display_name or from_user.name) if from_user else "Someone"
    create_notification(
        s,
        user=developer,
        type="TIP_RECEIVED",
        title="You received a tip!",
        message=f"{sender} sent you {format_currency(split.total)}." + (f' "{message}"' if message else ""),
        metadata={"amount_cents": split.total},
    )
    record_event(
        s,
        actor=from_user,
        action="payment.tip",
        entity_type="User",
        entity_id=str(developer.id),
        metadata={"amount_cents": split.total, "stripe_session_id": stripe_session_id},
    )
    return tip


def publish_game(game: Game) -> None:
    if not game.is_published:
        game.is_published = True
        game.published_at = game.published_at or utcnow()
        game.updated_at = utcnow()


def complete_publishing_fee(
    s: Session,
    *,
    game: Game,
    amount_cents: int,
    stripe_session_id: str | None = None,
) -> PublishingFee:
    existing = s.query(PublishingFee).filter(PublishingFee.game_id == game.id).one_or_none()
    if existing is not None:
        publish_game(game)
        return existing
    fee = PublishingFee(
        game_id=game.id,
        developer_id=game.developer_id,
        amount_cents=amount_cents,
        status="COMPLETED",
        stripe_session_id=stripe_session_id,
    )
    s.add(fee)
    publish_game(game)
    record_event(
        s,
        actor=game.developer,
        action="payment.publishing_fee",
        entity_type="Game",
        entity_id=str(game.id),
        metadata={"amount_cents": amount_cents, "stripe_session_id": stripe_session_id},
    )
    invalidate_game_caches()
    return fee


# ---------- Checkout entry points ----------
def _connected_account(s: Session, developer_id: int) -> str | None:
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == developer_id).one_or_none()
    if profile and profile.stripe_account_id and profile.payouts_enabled:
        return profile.stripe_account_id
    return None


def start_game_checkout(s: Session, config: Any, *, user: User, game: Game) -> dict[str, Any]:
    if not game.is_published:
        raise NotFound("Game not found")
    if game.developer_id == user.id:
        raise ValidationFailed("You cannot purchase your own game")
    if owns_game(s, user.id, game.id):
        raise ValidationFailed("You already own this game")

    percent = int(get_settings(s)["game_sale_fee_percent"])
    if game.price_cents == 0:
        split = PaymentSplit(total=0, platform_fee=0, developer_amount=0, platform_percent=0, developer_percent=100)
        purchase = complete_game_purchase(s, user=user, game=game, split=split)
        return {"purchased": True, "free": True, "purchase_id": purchase.id}

    split = calculate_game_sale_split(game.price_cents, percent)
    if not is_stripe_configured(config):
        purchase = complete_game_purchase(s, user=user, game=game, split=split)
        return {"purchased": True, "demo_mode": True, "purchase_id": purchase.id, "split": split.to_dict()}

    base_url = config.get("BASE_URL")
    metadata = {
        "type": "game_purchase",
        "gameId": game.id,
        "userId": user.id,
        "developerId": game.developer_id,
        "platformFee": split.platform_fee,
        "developerAmount": split.developer_amount,
    }
    payment_intent_data: dict[str, Any] = {"metadata": metadata}
    destination = _connected_account(s, game.developer_id)
    if destination:
        payment_intent_data["application_fee_amount"] = split.platform_fee
        payment_intent_data["transfer_data"] = {"destination": destination}

    try:
        session_obj = _client(config).create_checkout_session(
            {
                "mode": "payment",
                "customer_email": user.email,
                "line_items": [
                    {
                        "price_data": {
                            "currency": "usd",
                            "product_data": {"name": game.title, "description": game.tagline},
                            "unit_amount": game.price_cents,
                        },
                        "quantity": 1,
                    }
                ],
                "metadata": metadata,
                "payment_intent_data": payment_intent_data,
                "success_url": f"{base_url}/games/{game.slug}?purchase=success&session_id={{CHECKOUT_SESSION_ID}}",
                "cancel_url": f"{base_url}/games/{game.slug}?purchase=canceled",
            }
        )
    except StripeError as e:
        logger.error("Stripe checkout failed for game_id=%s user_id=%s: %s", game.id, user.id, e)
        raise ServiceUnavailable("Payment provider unavailable") from e
    return {"checkout_url": session_obj.get("url"), "session_id": session_obj.get("id")}


def start_tip(
    s: Session,
    config: Any,
    *,
    user: User,
    developer: User,
    amount_cents: int,
    message: str | None,
) -> dict[str, Any]:
    percent = int(get_settings(s)["tip_fee_percent"])
    split = calculate_donation_split(amount_cents, percent)
    if not is_stripe_configured(config):
        tip = complete_tip(s, from_user=user, developer=developer, split=split, message=message)
        return {"tipped": True, "demo_mode": True, "tip_id": tip.id, "split": split.to_dict()}

    base_url = config.get("BASE_URL")
    metadata = {
        "type": "tip",
        "fromUserId": user.id,
        "developerId": developer.id,
        "amount": amount_cents,
        "platformFee": split.platform_fee,
        "developerAmount": split.developer_amount,
        "message": (message or "")[:500],
    }
    payment_intent_data: dict[str, Any] = {"metadata": metadata}
    destination = _connected_account(s, developer.id)
    if destination:
        payment_intent_data["application_fee_amount"] = split.platform_fee
        payment_intent_data["transfer_data"] = {"destination": destination}
    try:
        session_obj = _client(config).create_checkout_session(
            {
                "mode": "payment",
                "customer_email": user.email,
                "line_items": [
                    {
                        "price_data": {
                            "currency": "usd",
                            "product_data": {"name": f"Tip for {developer.display_name or developer.name}"},
                            "unit_amount": amount_cents,
                        },
                        "quantity": 1,
                    }
                ],
                "metadata": metadata,
                "payment_intent_data": payment_intent_data,
                "success_url": f"{base_url}/developers/{developer.id}?tip=success",
                "cancel_url": f"{base_url}/developers/{developer.id}?tip=canceled",
            }
        )
    except StripeError as e:
        logger.error("Stripe tip checkout failed developer_id=%s: %s", developer.id, e)
        raise ServiceUnavailable("Payment provider unavailable") from e
    return {"checkout_url": session_obj.get("url"), "session_id": session_obj.get("id")}


def start_publishing_fee(s: Session, config: Any, *, user: User, game: Game) -> dict[str, Any]:
    if s.query(PublishingFee.id).filter(PublishingFee.game_id == game.id).first() is not None:
        raise ValidationFailed("Publishing fee already paid for this game")

    amount = int(get_settings(s)["publishing_fee_cents"])
    if amount == 0 or not is_stripe_configured(config):
        complete_publishing_fee(s, game=game, amount_cents=amount)
        return {"published": True, "demo_mode": not is_stripe_configured(config), "amount_cents": amount}

    base_url = config.get("BASE_URL")
    try:
        session_obj = _client(config).create_checkout_session(
            {
                "mode": "payment",
                "customer_email": user.email,
                "line_items": [
                    {
                        "price_data": {
                            "currency": "usd",
                            "product_data": {"name": f"Publishing fee: {game.title}"},
                            "unit_amount": amount,
                        },
                        "quantity": 1,
                    }
                ],
                "metadata": {"type": "publishing_fee", "gameId": game.id, "developerId": user.id},
                "success_url": f"{base_url}/dashboard/games/{game.id}?publishing=success",
                "cancel_url": f"{base_url}/dashboard/games/{game.id}?publishing=canceled",
            }
        )
    except StripeError as e:
        logger.error("Stripe publishing-fee checkout failed game_id=%s: %s", game.id, e)
        raise ServiceUnavailable("Payment provider unavailable") from e
    return {"checkout_url": session_obj.get("url"), "session_id": session_obj.get("id")}


# ---------- Stripe Connect ----------
def start_connect_onboarding(s: Session, config: Any, *, user: User) -> dict[str, Any]:
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == user.id).one_or_none()
    if profile is None:
        raise ValidationFailed("Create your developer profile first")
    client = _client(config)
    base_url = config.get("BASE_URL")
    try:
        if not profile.stripe_account_id:
            account = client.create_express_account(email=user.email, metadata={"userId": user.id})
            profile.stripe_account_id = account.get("id")
            s.flush()
        link = client.create_account_link(
            profile.stripe_account_id,
            refresh_url=f"{base_url}/dashboard/payouts?refresh=1",
            return_url=f"{base_url}/dashboard/payouts?onboarded=1",
        )
    except StripeError as e:
        logger.error("Stripe Connect onboarding failed user_id=%s: %s", user.id, e)
        raise ServiceUnavailable("Payment provider unavailable") from e
    record_event(s, actor=user, action="payment.connect_onboarding", entity_type="DeveloperProfile", entity_id=str(user.id))
    return {"onboarding_url": link.get("url"), "account_id": profile.stripe_account_id}


def _account_status(account: dict[str, Any]) -> str:
    if account.get("charges_enabled") and account.get("payouts_enabled"):
        return "active"
    if (account.get("requirements") or {}).get("currently_due"):
        return "restricted"
    return "pending"


def connect_status(s: Session, config: Any, *, user: User) -> dict[str, Any]:
    """
    Payout account state for a developer. With Stripe configured the account is
    re-read from Stripe and the local profile refreshed; if Stripe cannot be
    reached the stored state is returned.
    """
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == user.id).one_or_none()
    if profile is None or not profile.stripe_account_id:
        return {"has_account": False, "status": None, "payouts_enabled": False, "requires_onboarding": True}

    client = stripe_client_from_config(config)
    if client is None:
        return {
            "has_account": True,
            "status": profile.stripe_account_status or "active",
            "payouts_enabled": profile.payouts_enabled,
            "requires_onboarding": False,
        }

    try:
        account = client.retrieve_account(profile.stripe_account_id)
    except StripeError as e:
        logger.warning("Stripe account lookup failed user_id=%s: %s", user.id, e)
        return {
            "has_account": True,
            "status": profile.stripe_account_status or "unknown",
            "payouts_enabled": profile.payouts_enabled,
            "requires_onboarding": True,
        }

    status = _account_status(account)
    payouts_enabled = bool(account.get("payouts_enabled"))
    if status == "active" and profile.stripe_onboarded_at is None:
        profile.stripe_onboarded_at = utcnow()
    profile.stripe_account_status = status
    profile.payouts_enabled = payouts_enabled
    profile.updated_at = utcnow()

    result: dict[str, Any] = {
        "has_account": True,
        "status": status,
        "payouts_enabled": payouts_enabled,
        "requires_onboarding": not account.get("details_submitted"),
    }
    if account.get("charges_enabled"):
        try:
            result["dashboard_url"] = client.create_login_link(profile.stripe_account_id).get("url")
        except StripeError as e:
            logger.warning("Stripe login link failed user_id=%s: %s", user.id, e)
    return result


def connect_dashboard_link(s: Session, config: Any, *, user: User) -> str:
    client = stripe_client_from_config(config)
    if client is None:
        return f"{config.get('BASE_URL')}/dashboard/revenue"
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == user.id).one_or_none()
    if profile is None or not profile.stripe_account_id:
        raise ValidationFailed("No Stripe account found")
    try:
        link = client.create_login_link(profile.stripe_account_id)
    except StripeError as e:
        logger.error("Stripe login link failed user_id=%s: %s", user.id, e)
        raise ServiceUnavailable("Payment provider unavailable") from e
    return link.get("url")


def _int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ---------- Webhook ----------
def _handle_checkout_completed(s: Session, obj: dict[str, Any]) -> str:
    metadata = obj.get("metadata") or {}
    kind = metadata.get("type")
    session_id = obj.get("id")
    payment_intent = obj.get("payment_intent")

    if kind == "game_purchase":
        user = s.get(User, _int(metadata.get("userId")) or 0)
        game = s.get(Game, _int(metadata.get("gameId")) or 0)
        if user is None or game is None:
            logger.warning("checkout.session.completed: game purchase refers to missing user/game (%s)", session_id)
            return "ignored"
        platform_fee = _int(metadata.get("platformFee")) or 0
        developer_amount = _int(metadata.get("developerAmount")) or 0
        total = platform_fee + developer_amount
        percent = round(platform_fee * 100 / total) if total else 0
        split = PaymentSplit(total, platform_fee, developer_amount, percent, 100 - percent)
        complete_game_purchase(
            s,
            user=user,
            game=game,
            split=split,
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent,
        )
        return "game_purchase"

    if kind == "tip":
        developer = s.get(User, _int(metadata.get("developerId")) or 0)
        if developer is None:
            return "ignored"
        from_user = s.get(User, _int(metadata.get("fromUserId")) or 0)
        amount = _int(metadata.get("amount")) or int(obj.get("amount_total") or 0)
        platform_fee = _int(metadata.get("platformFee")) or 0
        percent = round(platform_fee * 100 / amount) if amount else 0
        split = PaymentSplit(amount, platform_fee, amount - platform_fee, percent, 100 - percent)
        complete_tip(
            s,
            from_user=from_user,
            developer=developer,
            split=split,
            message=metadata.get("message") or None,
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent,
        )
        return "tip"

    if kind == "publishing_fee":
        game = s.get(Game, _int(metadata.get("gameId")) or 0)
        if game is None:
            return "ignored"
        complete_publishing_fee(s, game=game, amount_cents=int(obj.get("amount_total") or 0), stripe_session_id=session_id)
        return "publishing_fee"

    return "ignored"


def _handle_charge_refunded(s: Session, obj: dict[str, Any]) -> str:
    payment_intent = obj.get("payment_intent")
    if not payment_intent:
        return "ignored"
    now = utcnow()

    purchase = s.query(Purchase).filter(Purchase.stripe_payment_intent_id == payment_intent).one_or_none()
    if purchase is not None:
        if purchase.status == "REFUNDED":
            return "already_refunded"
        purchase.status = "REFUNDED"
        purchase.refunded_at = now
        game = s.get(Game, purchase.game_id)
        if game is not None:
            record_refund(s, game.developer_id, purchase.developer_amount_cents, units=1)
        record_event(s, actor=None, action="payment.refund", entity_type="Purchase", entity_id=str(purchase.id))
        return "purchase_refunded"

    tip = s.query(Tip).filter(Tip.stripe_payment_intent_id == payment_intent).one_or_none()
    if tip is not None:
        if tip.status == "REFUNDED":
            return "already_refunded"
        tip.status = "REFUNDED"
        tip.refunded_at = now
        record_refund(s, tip.developer_id, tip.developer_amount_cents)
        record_event(s, actor=None, action="payment.refund", entity_type="Tip", entity_id=str(tip.id))
        return "tip_refunded"
    return "ignored"


def _handle_account_updated(s: Session, obj: dict[str, Any]) -> str:
    account_id = obj.get("id")
    if not account_id:
        return "ignored"
    profile = s.query(DeveloperProfile).filter(DeveloperProfile.stripe_account_id == account_id).one_or_none()
    if profile is None:
        return "ignored"
    profile.payouts_enabled = bool(obj.get("payouts_enabled"))
    profile.stripe_account_status = _account_status(obj)
    if profile.stripe_account_status == "active" and profile.stripe_onboarded_at is None:
        profile.stripe_onboarded_at = utcnow()
    profile.updated_at = utcnow()
    return "account_updated"


def handle_payments_event(s: Session, event: dict[str, Any]) -> str:
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    if event_type == "checkout.session.completed":
        return _handle_checkout_completed(s, obj)
    if event_type == "charge.refunded":
        return _handle_charge_refunded(s, obj)
    if event_type == "account.updated":
        return _handle_account_updated(s, obj)
    logger.info("Unhandled payments webhook event type=%s", event_type)
    return "ignored"


def serialize_purchase(p: Purchase) -> dict[str, Any]:
    return {
        "id": p.id,
        "game_id": p.game_id,
        "game_title": p.game.title if p.game else None,
        "price_cents": p.price_cents,
        "status": p.status,
        "created_at": iso(p.created_at),
        "refunded_at": iso(p.refunded_at),
    }
