"""
Revenue split arithmetic. All amounts are integer cents.

The platform fee is rounded half-up and the developer always receives the
remainder, so platform_fee + developer_amount == total for every split.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

GAME_SALE_PLATFORM_FEE_PERCENT = 15
DONATION_PLATFORM_FEE_PERCENT = 15
CREATOR_SUPPORT_PLATFORM_FEE_PERCENT = 15

GAME_PUBLISHING_FEE_CENTS = 5000
MINIMUM_PAYOUT_THRESHOLD_CENTS = 2500
MINIMUM_TIP_CENTS = 100

CREATOR_SUPPORT_PRICE_CENTS = 1499
GAMER_PRO_PRICE_CENTS = 1200


@dataclass(frozen=True)
class PaymentSplit:
    total: int
    platform_fee: int
    developer_amount: int
    platform_percent: int
    developer_percent: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class CreatorSupportSplit:
    total: int
    platform_fee: int
    developer_pool: int
    per_developer: int
    developer_count: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _percent_of(amount_cents: int, percent: int) -> int:
    return int((Decimal(amount_cents) * Decimal(percent) / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _split(amount_cents: int, platform_percent: int) -> PaymentSplit:
    if amount_cents < 0:
        raise ValueError("amount_cents must be >= 0")
    if not 0 <= platform_percent <= 100:
        raise ValueError("platform_percent must be between 0 and 100")
    fee = _percent_of(amount_cents, platform_percent)
    return PaymentSplit(
        total=amount_cents,
        platform_fee=fee,
        developer_amount=amount_cents - fee,
        platform_percent=platform_percent,
        developer_percent=100 - platform_percent,
    )


def calculate_game_sale_split(price_cents: int, platform_percent: int = GAME_SALE_PLATFORM_FEE_PERCENT) -> PaymentSplit:
    return _split(price_cents, platform_percent)


def calculate_donation_split(amount_cents: int, platform_percent: int = DONATION_PLATFORM_FEE_PERCENT) -> PaymentSplit:
    return _split(amount_cents, platform_percent)


def calculate_creator_support_split(
    subscription_cents: int = CREATOR_SUPPORT_PRICE_CENTS,
    developer_count: int = 0,
    platform_percent: int = CREATOR_SUPPORT_PLATFORM_FEE_PERCENT,
) -> CreatorSupportSplit:
    if developer_count <= 0:
        # nobody to pay out: the platform keeps the whole payment
        return CreatorSupportSplit(
            total=subscription_cents,
            platform_fee=subscription_cents,
            developer_pool=0,
            per_developer=0,
            developer_count=0,
        )
    fee = _percent_of(subscription_cents, platform_percent)
    pool = subscription_cents - fee
    return CreatorSupportSplit(
        total=subscription_cents,
        platform_fee=fee,
        developer_pool=pool,
        per_developer=pool // developer_count,
        developer_count=developer_count,
    )


def format_currency(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100:.2f}"


def dollars_to_cents(dollars: float | str | Decimal) -> int:
    return int((Decimal(str(dollars)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int) -> float:
    return cents / 100
