from app.shaderhouse.db import session_scope
from app.shaderhouse.modules.notifications.models import Notification


def test_report_a_game_notifies_admins(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    admin_id = make_user("admin@example.com", role="ADMIN")
    make_user("gamer@example.com")
    game_id = make_game(dev_id)

    login(client, "gamer@example.com")
    r = client.post("/api/reports", json={"type": "game", "reason": "malicious", "game_id": game_id})
    assert r.status_code == 201
    report = r.json["report"]
    assert (report["type"], report["reason"], report["status"], report["target_id"]) == ("GAME", "MALICIOUS", "PENDING", game_id)

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == admin_id).one()
        assert n.title == "New game report"

    assert [x["id"] for x in client.get("/api/reports/mine").json["reports"]] == [report["id"]]


def test_duplicate_open_reports_are_rejected(client, make_user, login):
    target_id = make_user("troll@example.com")
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    payload = {"type": "USER", "reason": "HARASSMENT", "user_id": target_id}
    assert client.post("/api/reports", json=payload).status_code == 201
    r = client.post("/api/reports", json=payload)
    assert r.status_code == 400
    assert r.json["error"] == "You have already reported this and it is under review"


def test_report_validation(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    gamer_id = make_user("gamer@example.com")
    login(client, "gamer@example.com")

    cases = [
        ({"type": "ALIEN", "reason": "SPAM"}, 400),
        ({"type": "GAME", "reason": "BORING", "game_id": game_id}, 400),
        ({"type": "GAME", "reason": "OTHER", "game_id": game_id}, 400),
        ({"type": "GAME", "reason": "SPAM"}, 400),
        ({"type": "GAME", "reason": "SPAM", "game_id": 9999}, 404),
        ({"type": "USER", "reason": "SPAM", "user_id": gamer_id}, 400),
    ]
    for payload, status in cases:
        assert client.post("/api/reports", json=payload).status_code == status, payload


def test_developers_cannot_report_their_own_game(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    login(client, "dev@example.com")
    r = client.post("/api/reports", json={"type": "GAME", "reason": "SPAM", "game_id": game_id})
    assert r.status_code == 400
    assert r.json["error"] == "You cannot report yourself or your own content"


def test_reports_require_login(client):
    token = client.get("/api/auth/csrf").json["csrf_token"]
    r = client.post(
        "/api/reports",
        json={"type": "GAME", "reason": "SPAM", "game_id": 1},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 401
