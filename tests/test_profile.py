from app.shaderhouse.db import session_scope
from app.shaderhouse.models import User
from app.shaderhouse.modules.devlogs.models import DevlogSubscription
from app.shaderhouse.modules.payments.models import Purchase

PASSWORD = "Passw0rd!"


def test_profile_shows_progress(client, make_user, login):
    make_user("gamer@example.com", name="Gamer One")
    login(client, "gamer@example.com")
    r = client.get("/api/profile")
    assert r.status_code == 200
    profile = r.json["profile"]
    assert profile["name"] == "Gamer One"
    assert profile["progress"]["level"] == 1
    assert profile["progress"]["current"] == 5
    assert profile["notification_preferences"]["notify_devlogs"] is True


def test_update_profile(client, make_user, login):
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    r = client.patch("/api/profile", json={"display_name": "PixelQueen", "bio": "I play roguelikes."})
    assert r.status_code == 200
    assert r.json["profile"]["display_name"] == "PixelQueen"
    assert r.json["profile"]["bio"] == "I play roguelikes."


def test_update_profile_validation(client, make_user, login):
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    r = client.patch("/api/profile", json={"name": "X", "notification_preferences": {"notify_pigeons": True, "notify_beta": "yes"}})
    assert r.status_code == 400
    assert set(r.json["details"]) == {
        "Name must be between 2 and 100 characters.",
        "Unknown notification preference: notify_pigeons",
        "notify_beta must be true or false.",
    }
    assert client.patch("/api/profile", json={}).status_code == 400


def test_export_contains_owned_data(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    client.post(f"/api/games/{game_id}/purchase")

    r = client.get("/api/profile/export")
    assert r.status_code == 200
    assert "attachment" in r.headers["Content-Disposition"]
    data = r.json
    assert data["profile"]["email"] == "gamer@example.com"
    assert [p["game_id"] for p in data["purchases"]] == [game_id]
    assert data["threads"] == []


def test_delete_account_anonymizes(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    uid = make_user("leaving@example.com")
    login(client, "leaving@example.com")
    client.post(f"/api/games/{game_id}/purchase")
    client.post("/api/devlogs/subscriptions", json={"developer_id": dev_id})

    assert client.delete("/api/profile", json={"password": PASSWORD}).status_code == 400
    assert client.delete("/api/profile", json={"confirm": "DELETE", "password": "wrong"}).status_code == 400
    r = client.delete("/api/profile", json={"confirm": "DELETE", "password": PASSWORD})
    assert r.json == {"deleted": True}

    assert client.get("/api/profile").status_code == 401
    r = client.post("/api/auth/login", json={"email": "leaving@example.com", "password": PASSWORD})
    assert r.status_code == 401

    with session_scope(app) as s:
        user = s.get(User, uid)
        assert user.is_active is False
        assert user.name == "Deleted user"
        assert user.email.endswith("@deleted.invalid")
        # purchases stay for the developer's ledger
        assert s.query(Purchase).filter(Purchase.user_id == uid).count() == 1
        assert s.query(DevlogSubscription).count() == 0


def test_admins_cannot_delete_themselves(client, make_user, login):
    make_user("admin@example.com", role="ADMIN")
    login(client, "admin@example.com")
    r = client.delete("/api/profile", json={"confirm": "DELETE", "password": PASSWORD})
    assert r.status_code == 403
