from app.shaderhouse.db import session_scope
from app.shaderhouse.models import User
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.modules.rewards.models import RewardHistory
from app.shaderhouse.modules.rewards.service import (
    award,
    can_perform_action,
    level_from_xp,
    level_up_bonus,
    total_xp_for_level,
    xp_for_level,
    xp_progress,
)


def test_level_curve():
    assert xp_for_level(1) == 100
    assert xp_for_level(2) == 150
    assert xp_for_level(3) == 225
    assert total_xp_for_level(4) == 475
    assert [level_from_xp(x) for x in (0, 99, 100, 249, 250, 475)] == [1, 1, 2, 2, 3, 4]


def test_xp_progress():
    progress = xp_progress(130)
    assert progress == {"level": 2, "current": 30, "needed": 150, "remaining": 120, "percentage": 20}


def test_level_up_bonus_and_action_levels():
    assert level_up_bonus(4) == 0
    assert level_up_bonus(5) == 200
    assert level_up_bonus(10) == 500
    assert level_up_bonus(20) == 1000
    assert can_perform_action(3, "vote")
    assert not can_perform_action(2, "vote")
    assert not can_perform_action(99, "teleport")


def test_award_levels_up_and_notifies(app, make_user):
    uid = make_user("gamer@example.com")
    with session_scope(app) as s:
        user = s.get(User, uid)
        result = award(s, user, "ACHIEVEMENT", description="Finished the tutorial")
        assert result.awarded
        assert result.leveled_up
        assert result.new_level == 2

    with session_scope(app) as s:
        user = s.get(User, uid)
        assert (user.xp, user.level, user.points) == (100, 2, 200)
        n = s.query(Notification).filter(Notification.user_id == uid).one()
        assert n.type == "ACHIEVEMENT_UNLOCKED"
        assert "level 2" in n.message


def test_award_unlocks_badge(app, make_user):
    uid = make_user("grinder@example.com")
    with session_scope(app) as s:
        user = s.get(User, uid)
        result = award(s, user, "BETA_TEST", xp=300, points=0)
        assert result.new_level == 3
        assert result.unlocked_badges == ["Active Member"]

    with session_scope(app) as s:
        user = s.get(User, uid)
        assert user.badges_json == '["Active Member"]'


def test_discussion_rewards_are_capped_per_day(app, make_user):
    uid = make_user("chatty@example.com")
    with session_scope(app) as s:
        user = s.get(User, uid)
        for _ in range(10):
            assert award(s, user, "DEV_LIKED").awarded
        capped = award(s, user, "DEV_LIKED")
        assert not capped.awarded
        assert user.xp == 500
        assert user.points == 1000

        # non-discussion rewards are not capped
        assert award(s, user, "DAILY_LOGIN").awarded

    with session_scope(app) as s:
        assert s.query(RewardHistory).filter(RewardHistory.user_id == uid).count() == 11


def test_login_awards_daily_reward_once(client, make_user, login):
    make_user("daily@example.com")
    login(client, "daily@example.com")
    r = client.get("/api/rewards/me")
    assert r.status_code == 200
    assert r.json["xp"] == 5
    assert r.json["points"] == 10
    assert r.json["history"][0]["type"] == "DAILY_LOGIN"
    assert r.json["permissions"]["vote"] is False

    client.post("/api/auth/logout")
    login(client, "daily@example.com")
    assert client.get("/api/rewards/me").json["xp"] == 5


def test_rewards_info_is_public(client):
    r = client.get("/api/rewards/info")
    assert r.status_code == 200
    assert r.json["rewards"]["DAILY_LOGIN"] == {"xp": 5, "points": 10}
    assert r.json["badges"]["3"] == "Active Member"
