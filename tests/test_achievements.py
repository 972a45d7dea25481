from app.shaderhouse.db import session_scope
from app.shaderhouse.models import User
from app.shaderhouse.modules.beta.models import BetaTester
from app.shaderhouse.modules.games.models import Rating
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.modules.rewards.models import RewardHistory


def _by_id(payload):
    return {a["id"]: a for a in payload["achievements"]}


def test_progress_starts_locked(client, make_user, login):
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    r = client.get("/api/achievements")
    assert r.status_code == 200
    assert r.json["stats"] == {"games": 0, "favorites": 0, "beta_tests": 0, "reviews": 0}
    items = _by_id(r.json)
    assert list(items) == ["first-steps", "collector", "game-tester", "community-leader", "legend"]
    assert not any(a["unlocked"] for a in items.values())
    assert items["game-tester"]["progress"] == 0
    assert items["game-tester"]["max_progress"] == 5
    assert "progress" not in items["first-steps"]


def test_sync_unlocks_rewards_and_notifies_once(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    gamer_id = make_user("gamer@example.com")
    game_id = make_game(dev_id)
    login(client, "gamer@example.com")
    assert client.post(f"/api/games/{game_id}/purchase").status_code == 200
    assert client.post(f"/api/games/{game_id}/favorite").status_code == 200

    r = client.post("/api/achievements/sync")
    assert r.status_code == 200
    assert r.json["unlocked"] == ["first-steps", "collector"]
    assert r.json["newly_unlocked"] == ["first-steps", "collector"]
    assert {"First Steps", "Collector"} <= set(r.json["badges"])

    again = client.post("/api/achievements/sync")
    assert again.json["newly_unlocked"] == []

    items = _by_id(client.get("/api/achievements").json)
    assert items["first-steps"]["unlocked"] is True
    assert items["first-steps"]["unlocked_at"] is not None
    assert items["legend"]["unlocked"] is False

    with session_scope(app) as s:
        rewards = (
            s.query(RewardHistory)
            .filter(RewardHistory.user_id == gamer_id, RewardHistory.type == "ACHIEVEMENT")
            .count()
        )
        assert rewards == 2
        # daily login plus two achievements
        assert s.get(User, gamer_id).xp == 5 + 100 + 100
        titles = [
            n.title
            for n in s.query(Notification).filter(
                Notification.user_id == gamer_id, Notification.type == "ACHIEVEMENT_UNLOCKED"
            )
        ]
        assert "Achievement unlocked: First Steps" in titles
        assert "Achievement unlocked: Collector" in titles


def test_legend_requires_the_others(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    gamer_id = make_user("gamer@example.com")
    game_ids = [make_game(dev_id, f"Game {i}") for i in range(10)]
    with session_scope(app) as s:
        s.add(Purchase(user_id=gamer_id, game_id=game_ids[0], price_cents=0))
        for gid in game_ids:
            s.add(Rating(game_id=gid, user_id=gamer_id, stars=5, comment="Really enjoyed this one."))
        for gid in game_ids[:5]:
            s.add(BetaTester(game_id=gid, user_id=gamer_id))

    login(client, "gamer@example.com")
    r = client.post("/api/achievements/sync")
    assert r.json["unlocked"] == ["first-steps", "game-tester", "community-leader", "legend"]
    assert {"First Steps", "Game Tester", "Community Leader", "Legend"} <= set(r.json["badges"])

    items = _by_id(client.get("/api/achievements").json)
    assert items["community-leader"]["progress"] == 10
    assert items["collector"]["unlocked"] is False


def test_developers_have_no_achievements(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    r = client.post("/api/achievements/sync")
    assert r.json["badges"] == []
    assert r.json["message"] == "Achievements are only available for gamers"


def test_achievements_require_login(client):
    assert client.get("/api/achievements").status_code == 401
