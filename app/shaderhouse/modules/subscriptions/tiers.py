from __future__ import annotations

from typing import Any

from app.shaderhouse.modules.payments.fees import CREATOR_SUPPORT_PRICE_CENTS, GAMER_PRO_PRICE_CENTS

FREE = "FREE"
CREATOR_SUPPORT = "CREATOR_SUPPORT"
GAMER_PRO = "GAMER_PRO"

TIERS = (FREE, CREATOR_SUPPORT, GAMER_PRO)
PAID_TIERS = (CREATOR_SUPPORT, GAMER_PRO)

TIER_HIERARCHY: dict[str, int] = {FREE: 0, CREATOR_SUPPORT: 1, GAMER_PRO: 1}

STATUSES = ("ACTIVE", "PAST_DUE", "CANCELED", "INACTIVE")

# None = unlimited
SUPPORT_LIMITS: dict[str, int | None] = {FREE: 0, CREATOR_SUPPORT: 3, GAMER_PRO: None}

FEATURE_TIERS: dict[str, str] = {
    "BUY_GAMES": FREE,
    "COMMUNITY_REVIEWS": FREE,
    "FREE_DEMOS": FREE,
    "CLOUD_SAVES": FREE,
    "USER_PROFILES": FREE,
    "NEWSLETTER": FREE,
    "ACHIEVEMENTS": FREE,
    "SUPPORT_DEVELOPERS": FREE,
    "VOTING_POWER": FREE,
    "DEV_COMMUNITY": FREE,
    "BETA_ACCESS": CREATOR_SUPPORT,
    "GAME_TEST_ACCESS": CREATOR_SUPPORT,
    "EXCLUSIVE_COSMETICS": CREATOR_SUPPORT,
    "UNLIMITED_LIBRARY": CREATOR_SUPPORT,
}

PLANS: list[dict[str, Any]] = [
    {
        "tier": FREE,
        "name": "Free",
        "price_cents": 0,
        "description": "Buy games, join the community and support developers.",
    },
    {
        "tier": CREATOR_SUPPORT,
        "name": "Creator Support Pass",
        "price_cents": CREATOR_SUPPORT_PRICE_CENTS,
        "description": "Back up to 3 developers each month, with beta access to their games.",
    },
    {
        "tier": GAMER_PRO,
        "name": "Gamer Pro",
        "price_cents": GAMER_PRO_PRICE_CENTS,
        "description": "Every beta, the unlimited library and exclusive cosmetics.",
    },
]


def tier_level(tier: str | None) -> int:
    return TIER_HIERARCHY.get(tier or FREE, 0)


def can_access_feature(user_tier: str | None, required_tier: str) -> bool:
    return tier_level(user_tier) >= tier_level(required_tier)


def has_feature_access(user_tier: str | None, feature: str) -> bool:
    required = FEATURE_TIERS.get(feature)
    if required is None:
        return False
    return can_access_feature(user_tier, required)


def has_active_feature(user: Any, feature: str) -> bool:
    """Feature check that also requires the subscription to be ACTIVE for paid features."""
    required = FEATURE_TIERS.get(feature)
    if required is None or user is None:
        return False
    if tier_level(required) == 0:
        return True
    return user.subscription_status == "ACTIVE" and can_access_feature(user.subscription_tier, required)


def plans_with_features() -> list[dict[str, Any]]:
    out = []
    for plan in PLANS:
        features = [f for f in FEATURE_TIERS if has_feature_access(plan["tier"], f)]
        out.append({**plan, "features": features, "support_limit": SUPPORT_LIMITS[plan["tier"]]})
    return out


def price_cents_for(tier: str) -> int:
    for plan in PLANS:
        if plan["tier"] == tier:
            return plan["price_cents"]
    raise ValueError(f"Unknown tier: {tier}")
