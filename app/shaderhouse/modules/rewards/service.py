"""
XP, levels and points.

Levels grow exponentially: reaching level L+1 from L costs floor(100 * 1.5^(L-1)) XP,
so level 2 is reached at 100 XP, level 3 at 250, level 4 at 475.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, time as dtime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.shaderhouse.models import User
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.rewards.models import RewardHistory
from app.shaderhouse.utils import iso, utcnow

REWARD_AMOUNTS: dict[str, tuple[int, int]] = {
    # type: (xp, points)
    "THREAD_CREATED": (5, 10),
    "POST_CREATED": (3, 5),
    "UPVOTE_RECEIVED": (2, 3),
    "HELPFUL_MARKED": (30, 50),
    "DEV_LIKED": (50, 100),
    "BETA_TEST": (50, 100),
    "ACHIEVEMENT": (100, 200),
    "DAILY_LOGIN": (5, 10),
}

DISCUSSION_REWARD_TYPES = frozenset(
    {"THREAD_CREATED", "POST_CREATED", "UPVOTE_RECEIVED", "HELPFUL_MARKED", "DEV_LIKED"}
)
DISCUSSION_DAILY_XP_CAP = 500
DISCUSSION_DAILY_POINTS_CAP = 1000

LEVEL_BADGES: dict[int, str] = {
    3: "Active Member",
    6: "Experienced Gamer",
    10: "Community Helper",
    15: "Veteran",
    20: "Legend",
}

# minimum level per gated community action
ACTION_LEVELS: dict[str, int] = {
    "read": 1,
    "reply": 1,
    "post": 1,
    "vote": 3,
    "attach_images": 5,
    "flag_spam": 10,
}


def xp_for_level(level: int) -> int:
    """XP needed to go from `level` to `level + 1`."""
    return math.floor(100 * 1.5 ** (level - 1))


def total_xp_for_level(level: int) -> int:
    """Total XP at which `level` is reached."""
    return sum(xp_for_level(i) for i in range(1, level))


def level_from_xp(xp: int) -> int:
    level = 1
    threshold = xp_for_level(1)
    while xp >= threshold:
        level += 1
        threshold += xp_for_level(level)
    return level


def xp_progress(xp: int) -> dict[str, int]:
    level = level_from_xp(xp)
    current = xp - total_xp_for_level(level)
    needed = xp_for_level(level)
    return {
        "level": level,
        "current": current,
        "needed": needed,
        "remaining": needed - current,
        "percentage": math.floor(current * 100 / needed),
    }


def level_up_bonus(level: int) -> int:
    if level == 20:
        return 1000
    if level % 10 == 0:
        return 500
    if level % 5 == 0:
        return 200
    return 0


def can_perform_action(level: int, action: str) -> bool:
    required = ACTION_LEVELS.get(action)
    return required is not None and level >= required


def user_badges(user: User) -> list[str]:
    return json.loads(user.badges_json) if user.badges_json else []


@dataclass
class AwardResult:
    awarded: bool
    xp: int = 0
    points: int = 0
    old_level: int = 1
    new_level: int = 1
    level_up_bonus: int = 0
    unlocked_badges: list[str] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def _discussion_totals_today(s: Session, user_id: int) -> tuple[int, int]:
    day_start = datetime.combine(utcnow().date(), dtime.min)
    xp, points = (
        s.query(func.coalesce(func.sum(RewardHistory.xp), 0), func.coalesce(func.sum(RewardHistory.points), 0))
        .filter(
            RewardHistory.user_id == user_id,
            RewardHistory.created_at >= day_start,
            RewardHistory.type.in_(DISCUSSION_REWARD_TYPES),
        )
        .one()
    )
    return int(xp), int(points)


def award(
    s: Session,
    user: User,
    reward_type: str,
    *,
    description: str | None = None,
    xp: int | None = None,
    points: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> AwardResult:
    """
    Award XP/points for an action. `xp`/`points` override the standard amounts
    (beta tasks carry their own). Discussion rewards are capped per UTC day.
    """
    base_xp, base_points = REWARD_AMOUNTS.get(reward_type, (0, 0))
    xp_amount = base_xp if xp is None else max(0, xp)
    points_amount = base_points if points is None else max(0, points)

    if reward_type in DISCUSSION_REWARD_TYPES:
        s.flush()
        today_xp, today_points = _discussion_totals_today(s, user.id)
        xp_amount = min(xp_amount, max(0, DISCUSSION_DAILY_XP_CAP - today_xp))
        points_amount = min(points_amount, max(0, DISCUSSION_DAILY_POINTS_CAP - today_points))

    old_level = user.level or 1
    if xp_amount == 0 and points_amount == 0:
        return AwardResult(awarded=False, old_level=old_level, new_level=old_level)

    user.xp = (user.xp or 0) + xp_amount
    new_level = max(old_level, level_from_xp(user.xp))

    bonus = 0
    unlocked: list[str] = []
    badges = user_badges(user)
    for lvl in range(old_level + 1, new_level + 1):
        bonus += level_up_bonus(lvl)
        badge = LEVEL_BADGES.get(lvl)
        if badge and badge not in badges:
            badges.append(badge)
            unlocked.append(badge)

    user.level = new_level
    user.points = (user.points or 0) + points_amount + bonus
    if unlocked:
        user.badges_json = json.dumps(badges)

    s.add(
        RewardHistory(
            user_id=user.id,
            type=reward_type,
            xp=xp_amount,
            points=points_amount,
            description=(description or reward_type)[:255],
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
        )
    )
    if bonus:
        s.add(
            RewardHistory(
                user_id=user.id,
                type="LEVEL_UP_BONUS",
                xp=0,
                points=bonus,
                description=f"Level {old_level} -> {new_level}",
            )
        )

    if new_level > old_level:
        message = f"You reached level {new_level}!"
        if unlocked:
            message += f" New badge: {', '.join(unlocked)}."
        create_notification(
            s,
            user=user,
            type="ACHIEVEMENT_UNLOCKED",
            title="Level up!",
            message=message,
            link="/profile",
            metadata={"old_level": old_level, "new_level": new_level, "badges": unlocked, "bonus_points": bonus},
        )

    return AwardResult(
        awarded=True,
        xp=xp_amount,
        points=points_amount + bonus,
        old_level=old_level,
        new_level=new_level,
        level_up_bonus=bonus,
        unlocked_badges=unlocked,
    )


def serialize_history(h: RewardHistory) -> dict[str, Any]:
    return {
        "id": h.id,
        "type": h.type,
        "xp": h.xp,
        "points": h.points,
        "description": h.description,
        "created_at": iso(h.created_at),
    }


def rewards_summary(s: Session, user: User, *, history_limit: int = 20) -> dict[str, Any]:
    history = (
        s.query(RewardHistory)
        .filter(RewardHistory.user_id == user.id)
        .order_by(RewardHistory.created_at.desc(), RewardHistory.id.desc())
        .limit(history_limit)
        .all()
    )
    return {
        "xp": user.xp,
        "level": user.level,
        "points": user.points,
        "badges": user_badges(user),
        "progress": xp_progress(user.xp),
        "history": [serialize_history(h) for h in history],
    }
