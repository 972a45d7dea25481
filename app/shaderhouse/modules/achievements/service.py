"""
Gamer achievements.

Progress is computed from activity counts on every request; `sync_achievements`
persists newly unlocked ones as badges and grants the ACHIEVEMENT reward once each.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.shaderhouse.models import User
from app.shaderhouse.modules.beta.models import BetaTester
from app.shaderhouse.modules.games.models import Favorite, Rating
from app.shaderhouse.modules.notifications.service import create_notification
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.modules.rewards.models import RewardHistory
from app.shaderhouse.modules.rewards.service import award, user_badges
from app.shaderhouse.utils import iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    stat: str | None = None
    target: int = 1
    requires: tuple[str, ...] = ()


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first-steps", "First Steps", "Discover your first game", "gamepad", "common", stat="games"),
    Achievement("collector", "Collector", "Add your first game to favorites", "heart", "common", stat="favorites"),
    Achievement("game-tester", "Game Tester", "Test 5 beta games", "flask", "rare", stat="beta_tests", target=5),
    Achievement(
        "community-leader", "Community Leader", "Write 10 helpful reviews", "message", "epic", stat="reviews", target=10
    ),
    Achievement(
        "legend",
        "Legend",
        "Unlock all other achievements",
        "crown",
        "legendary",
        requires=("first-steps", "game-tester", "community-leader"),
    ),
)
ACHIEVEMENTS_BY_ID = {a.id: a for a in ACHIEVEMENTS}


def activity_counts(s: Session, user_id: int) -> dict[str, int]:
    def count(model: Any, *criteria: Any) -> int:
        return s.query(func.count(model.id)).filter(model.user_id == user_id, *criteria).scalar() or 0

    return {
        "games": count(Purchase, Purchase.status == "COMPLETED"),
        "favorites": count(Favorite),
        "beta_tests": count(BetaTester),
        "reviews": count(Rating, Rating.comment.isnot(None), Rating.comment != ""),
    }


def _unlocked_ids(counts: dict[str, int]) -> list[str]:
    unlocked: list[str] = []
    for a in ACHIEVEMENTS:
        if a.stat is not None:
            if counts.get(a.stat, 0) >= a.target:
                unlocked.append(a.id)
        elif all(r in unlocked for r in a.requires):
            unlocked.append(a.id)
    return unlocked


def _unlock_times(s: Session, user_id: int) -> dict[str, Any]:
    rows = (
        s.query(RewardHistory)
        .filter(RewardHistory.user_id == user_id, RewardHistory.type == "ACHIEVEMENT", RewardHistory.metadata_json.isnot(None))
        .all()
    )
    times: dict[str, Any] = {}
    for row in rows:
        achievement_id = json.loads(row.metadata_json).get("achievement")
        if achievement_id:
            times[achievement_id] = row.created_at
    return times


def achievement_progress(s: Session, user: User) -> dict[str, Any]:
    counts = activity_counts(s, user.id)
    unlocked = set(_unlocked_ids(counts))
    times = _unlock_times(s, user.id)
    items = []
    for a in ACHIEVEMENTS:
        item: dict[str, Any] = {
            "id": a.id,
            "name": a.name,
            "description": a.description,
            "icon": a.icon,
            "rarity": a.rarity,
            "unlocked": a.id in unlocked,
            "unlocked_at": iso(times.get(a.id)),
        }
        if a.stat is not None and a.target > 1:
            item["progress"] = min(counts.get(a.stat, 0), a.target)
            item["max_progress"] = a.target
        items.append(item)
    return {"achievements": items, "stats": counts}


def sync_achievements(s: Session, user: User) -> dict[str, Any]:
    """Record newly unlocked achievements as badges, reward and notify once per achievement."""
    if user.role != "GAMER":
        return {"badges": [], "unlocked": [], "newly_unlocked": [], "message": "Achievements are only available for gamers"}

    unlocked = _unlocked_ids(activity_counts(s, user.id))
    # the reward history is the record of what was already granted
    granted = _unlock_times(s, user.id)
    newly = [aid for aid in unlocked if aid not in granted]
    badges = user_badges(user)
    added = [ACHIEVEMENTS_BY_ID[aid].name for aid in newly if ACHIEVEMENTS_BY_ID[aid].name not in badges]
    if added:
        user.badges_json = json.dumps(badges + added)

    for aid in newly:
        a = ACHIEVEMENTS_BY_ID[aid]
        award(s, user, "ACHIEVEMENT", description=f"Achievement unlocked: {a.name}", metadata={"achievement": a.id})
        create_notification(
            s,
            user=user,
            type="ACHIEVEMENT_UNLOCKED",
            title=f"Achievement unlocked: {a.name}",
            message=a.description,
            link="/profile/achievements",
            metadata={"achievement": a.id, "rarity": a.rarity},
        )
    if newly:
        logger.info("Achievements unlocked user_id=%s ids=%s", user.id, newly)

    return {"badges": user_badges(user), "unlocked": unlocked, "newly_unlocked": newly}
