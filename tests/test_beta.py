import pytest

from app.shaderhouse.db import session_scope
from app.shaderhouse.models import User
from app.shaderhouse.modules.beta.models import NdaAcceptance
from app.shaderhouse.modules.notifications.models import Notification


@pytest.fixture()
def beta_setup(app, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    tester_id = make_user("tester@example.com", subscription_tier="GAMER_PRO", subscription_status="ACTIVE")
    game_id = make_game(dev_id, "Early Bird", release_status="BETA")
    dev = app.test_client()
    tester = app.test_client()
    login(dev, "dev@example.com")
    login(tester, "tester@example.com")
    return {"dev_id": dev_id, "tester_id": tester_id, "game_id": game_id, "dev": dev, "tester": tester}


def test_join_requires_subscription(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("free@example.com")
    beta_id = make_game(dev_id, "Early Bird", release_status="BETA")
    released_id = make_game(dev_id, "Shipped")
    login(client, "free@example.com")

    r = client.post("/api/beta/join", json={"game_id": beta_id})
    assert r.status_code == 403
    r = client.post("/api/beta/join", json={"game_id": released_id})
    assert r.status_code == 400
    assert r.json["error"] == "This game is not in beta"


def test_join_is_idempotent_and_notifies(app, beta_setup):
    tester = beta_setup["tester"]
    r = tester.post("/api/beta/join", json={"game_id": beta_setup["game_id"]})
    assert r.status_code == 201
    assert r.json["already_joined"] is False
    r = tester.post("/api/beta/join", json={"game_id": beta_setup["game_id"]})
    assert r.status_code == 200
    assert r.json["already_joined"] is True

    with session_scope(app) as s:
        types = {
            (n.user_id, n.type) for n in s.query(Notification).all()
        }
        assert (beta_setup["dev_id"], "BETA_TESTER_JOINED") in types
        assert (beta_setup["tester_id"], "BETA_ACCESS_GRANTED") in types


def test_feedback_tasks_and_verification(app, beta_setup):
    dev, tester, game_id = beta_setup["dev"], beta_setup["tester"], beta_setup["game_id"]

    r = tester.post(
        "/api/beta/feedback",
        json={"game_id": game_id, "type": "BUG", "title": "Crash", "description": "Crashes on level two."},
    )
    assert r.status_code == 403

    bug_task = dev.post(
        "/api/beta/tasks",
        json={"game_id": game_id, "title": "Report a bug", "description": "Find anything broken.", "type": "BUG_REPORT"},
    ).json["task"]
    play_task = dev.post(
        "/api/beta/tasks",
        json={
            "game_id": game_id,
            "title": "Beat level one",
            "description": "Play through the first level.",
            "type": "PLAY_LEVEL",
            "xp_reward": 120,
            "reward_points": 20,
        },
    ).json["task"]
    assert (bug_task["order"], play_task["order"]) == (1, 2)

    tester.post("/api/beta/join", json={"game_id": game_id})
    tasks = tester.get(f"/api/beta/tasks/game/{game_id}").json["tasks"]
    assert [t["completion"] for t in tasks] == [None, None]

    r = tester.post(
        "/api/beta/feedback",
        json={"game_id": game_id, "type": "bug", "title": "Crash", "description": "Crashes on level two."},
    )
    assert r.status_code == 201
    assert r.json["feedback"]["severity"] == "MEDIUM"
    assert r.json["tasks_completed"] == 1
    feedback_id = r.json["feedback"]["id"]

    r = tester.post(f"/api/beta/tasks/{bug_task['id']}/complete", json={"report": "Found a crash bug."})
    assert r.status_code == 400
    r = tester.post(f"/api/beta/tasks/{play_task['id']}/complete", json={"report": "short"})
    assert r.status_code == 400
    r = tester.post(f"/api/beta/tasks/{play_task['id']}/complete", json={"report": "Finished level one in 4 minutes."})
    assert r.status_code == 201
    completion_id = r.json["completion"]["id"]

    completions = dev.get(f"/api/beta/tasks/completions?game_id={game_id}&status=PENDING").json["completions"]
    assert len(completions) == 2

    # testers cannot verify their own work
    assert tester.post("/api/beta/tasks/verify", json={"completion_id": completion_id, "approved": True}).status_code == 403

    r = dev.post("/api/beta/tasks/verify", json={"completion_id": completion_id, "approved": True})
    assert r.status_code == 200
    assert r.json["completion"]["status"] == "VERIFIED"
    assert r.json["reward"] == {"xp": 120, "points": 20, "leveled_up": True}
    r = dev.post("/api/beta/tasks/verify", json={"completion_id": completion_id, "approved": False})
    assert r.status_code == 400

    r = dev.patch(f"/api/beta/feedback/{feedback_id}", json={"status": "acknowledged", "developer_response": "On it!"})
    assert r.json["feedback"]["status"] == "ACKNOWLEDGED"
    assert r.json["feedback"]["developer_response"] == "On it!"

    stats = dev.get(f"/api/beta/stats?game_id={game_id}").json
    assert stats["tester_count"] == 1
    assert stats["feedback"]["by_type"]["BUG"] == 1
    assert stats["feedback"]["by_status"]["ACKNOWLEDGED"] == 1
    assert stats["tasks"] == {"count": 2, "completions": 2, "completion_rate": 100}

    tests = tester.get("/api/beta/my-tests").json["tests"]
    assert tests[0]["bugs_reported"] == 1
    assert tests[0]["tasks_completed"] == 2
    assert tests[0]["progress"]["percentage"] == 100

    with session_scope(app) as s:
        user = s.get(User, beta_setup["tester_id"])
        assert user.xp == 125  # daily login + task
        types = [n.type for n in s.query(Notification).filter(Notification.user_id == user.id).all()]
        assert "TASK_VERIFIED" in types
        assert "FEEDBACK_RESPONSE" in types


def test_feedback_validation(beta_setup):
    tester, game_id = beta_setup["tester"], beta_setup["game_id"]
    tester.post("/api/beta/join", json={"game_id": game_id})
    r = tester.post("/api/beta/feedback", json={"game_id": game_id, "type": "RANT", "title": "x", "description": "short"})
    assert r.status_code == 400
    assert len(r.json["details"]) == 3


def test_only_developer_manages_tasks(beta_setup):
    tester, game_id = beta_setup["tester"], beta_setup["game_id"]
    r = tester.post(
        "/api/beta/tasks",
        json={"game_id": game_id, "title": "Sneaky", "description": "Not my game to edit.", "type": "PLAY_LEVEL"},
    )
    assert r.status_code == 403
    assert tester.get(f"/api/beta/stats?game_id={game_id}").status_code == 403


def test_nda_acceptance_flow(app, beta_setup):
    tester = beta_setup["tester"]
    game_id = beta_setup["game_id"]

    r = tester.get(f"/api/beta/nda/{game_id}")
    assert r.status_code == 200
    assert r.json["has_accepted"] is False
    assert r.json["accepted_version"] is None
    assert r.json["current_version"] == "1.0"
    assert r.json["game_title"] == "Early Bird"
    assert r.json["developer_name"] == "Dev"

    r = tester.post(f"/api/beta/nda/{game_id}", json={})
    assert r.status_code == 400
    assert r.json["error"] == "You must confirm acceptance of the NDA"

    r = tester.post(f"/api/beta/nda/{game_id}", json={"confirmed": True}, headers={"User-Agent": "pytest"})
    assert r.status_code == 200
    assert r.json["message"] == 'NDA accepted for "Early Bird"'
    assert r.json["nda"]["version"] == "1.0"

    status = tester.get(f"/api/beta/nda/{game_id}").json
    assert status["has_accepted"] is True
    assert status["needs_update"] is False

    # accepting again refreshes the same row
    assert tester.post(f"/api/beta/nda/{game_id}", json={"confirmed": True}).status_code == 200
    with session_scope(app) as s:
        assert s.query(NdaAcceptance).filter(NdaAcceptance.game_id == game_id).count() == 1

    assert tester.get("/api/beta/nda/999").status_code == 404


def test_nda_only_for_beta_games(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    released_id = make_game(dev_id, "Shipped")
    login(client, "gamer@example.com")
    r = client.post(f"/api/beta/nda/{released_id}", json={"confirmed": True})
    assert r.status_code == 400
    assert r.json["error"] == "This game is not in beta testing"


def test_nda_stats_for_developer(app, beta_setup, make_game):
    dev, tester = beta_setup["dev"], beta_setup["tester"]
    game_id = beta_setup["game_id"]
    make_game(beta_setup["dev_id"], "Another One")
    tester.post("/api/beta/join", json={"game_id": game_id})
    tester.post(f"/api/beta/nda/{game_id}", json={"confirmed": True})

    assert tester.get("/api/beta/nda/stats").status_code == 403

    r = dev.get("/api/beta/nda/stats")
    assert r.status_code == 200
    assert r.json["summary"] == {
        "total_games": 2,
        "total_nda_acceptances": 1,
        "total_beta_testers": 1,
        "games_in_beta": 1,
    }
    by_title = {g["game_title"]: g for g in r.json["games"]}
    early = by_title["Early Bird"]
    assert early["total_nda_acceptances"] == 1
    assert early["acceptances"][0]["user_email"] == "tester@example.com"
    assert by_title["Another One"]["total_nda_acceptances"] == 0

    r = dev.get(f"/api/beta/nda/stats?game_id={game_id}")
    assert [g["game_id"] for g in r.json["games"]] == [game_id]
