from app.shaderhouse.db import session_scope
from app.shaderhouse.models import AuditEvent, User
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.modules.notifications.models import Notification

PASSWORD = "Passw0rd!"


def _admin(app, make_user, login):
    make_user("admin@example.com", role="ADMIN")
    c = app.test_client()
    login(c, "admin@example.com")
    return c


def test_admin_routes_need_admin_role(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    for path in ("/api/admin/users", "/api/admin/games", "/api/admin/reports", "/api/admin/settings", "/api/admin/audit"):
        assert client.get(path).status_code == 403, path


def test_user_search_and_role_change(app, make_user, login):
    admin = _admin(app, make_user, login)
    gamer_id = make_user("gamer@example.com", name="Gamer Person")
    make_user("dev@example.com", role="DEVELOPER")

    r = admin.get("/api/admin/users?role=developer")
    assert [u["email"] for u in r.json["users"]] == ["dev@example.com"]
    assert admin.get("/api/admin/users?q=GAMER@").json["total"] == 1

    r = admin.patch(f"/api/admin/users/{gamer_id}", json={"role": "DEVELOPER", "reason": "Asked nicely"})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "DEVELOPER"
    assert admin.patch(f"/api/admin/users/{gamer_id}", json={"role": "DEVELOPER"}).status_code == 400
    assert admin.patch(f"/api/admin/users/{gamer_id}", json={"role": "WIZARD"}).status_code == 400

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == gamer_id).one()
        assert n.type == "ROLE_CHANGED"
        event = s.query(AuditEvent).filter(AuditEvent.action == "admin.user_update").one()
        assert event.reason == "Asked nicely"


def test_admin_cannot_lock_themselves_out(app, make_user, login):
    admin = _admin(app, make_user, login)
    admin_id = admin.get("/api/auth/me").json["user"]["id"]
    for payload in ({"role": "GAMER"}, {"is_active": False}, {"account_status": "BANNED"}):
        assert admin.patch(f"/api/admin/users/{admin_id}", json=payload).status_code == 400
    assert admin.delete(f"/api/admin/users/{admin_id}").status_code == 403


def test_banned_user_is_signed_out(app, client, make_user, login):
    admin = _admin(app, make_user, login)
    gamer_id = make_user("gamer@example.com")
    login(client, "gamer@example.com")
    assert client.get("/api/profile").status_code == 200

    r = admin.patch(f"/api/admin/users/{gamer_id}", json={"account_status": "SUSPENDED"})
    assert r.json["user"]["suspended_until"] is not None
    assert client.get("/api/profile").status_code == 401

    r = client.post("/api/auth/login", json={"email": "gamer@example.com", "password": PASSWORD})
    assert r.status_code == 401


def test_feature_and_unpublish_games(app, make_user, make_game, login):
    admin = _admin(app, make_user, login)
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    make_game(dev_id, "Draft Game", published=False)

    assert admin.get("/api/admin/games?status=unpublished").json["total"] == 1
    r = admin.patch(f"/api/admin/games/{game_id}", json={"is_featured": True})
    assert r.json["game"]["is_featured"] is True
    assert admin.get("/api/admin/games?featured=true").json["total"] == 1
    assert admin.patch(f"/api/admin/games/{game_id}", json={"release_status": "ALPHA"}).status_code == 400

    admin.patch(f"/api/admin/games/{game_id}", json={"is_published": False})
    assert app.test_client().get(f"/api/games/{game_id}").status_code == 404

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == dev_id).one()
        assert n.type == "GAME_FEATURED"

    assert admin.delete(f"/api/admin/games/{game_id}", json={"reason": "Malware"}).json == {"deleted": True}
    with session_scope(app) as s:
        assert s.get(Game, game_id) is None


def test_indie_verification_review(app, client, make_user, login):
    admin = _admin(app, make_user, login)
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    profile = {
        "developer_type": "INDIE",
        "team_size": 2,
        "has_publisher": False,
        "owns_ip": True,
        "funding_sources": ["SELF"],
        "evidence_links": ["https://dev.example.com"],
        "attest_indie": True,
    }
    client.put("/api/developers/me/profile", json=profile)

    pending = admin.get("/api/admin/indie-verification?status=pending").json["profiles"]
    assert [p["user"]["email"] for p in pending] == ["dev@example.com"]

    assert admin.patch(f"/api/admin/indie-verification/{dev_id}", json={"status": "REJECTED"}).status_code == 400
    r = admin.patch(
        f"/api/admin/indie-verification/{dev_id}",
        json={"status": "REJECTED", "rejection_reason": "Evidence link is broken"},
    )
    assert r.json["profile"]["verification_status"] == "REJECTED"

    # resubmitting after a rejection is an appeal
    r = client.put("/api/developers/me/profile", json=profile)
    assert r.json["profile"]["verification_status"] == "APPEALING"

    r = admin.patch(f"/api/admin/indie-verification/{dev_id}", json={"status": "APPROVED"})
    assert r.json["profile"]["verification_status"] == "APPROVED"
    assert r.json["profile"]["rejection_reason"] is None

    with session_scope(app) as s:
        types = [n.type for n in s.query(Notification).filter(Notification.user_id == dev_id).all()]
        assert types == ["INDIE_VERIFICATION", "INDIE_VERIFICATION"]


def test_resolving_a_report_bans_the_offender(app, client, make_user, login):
    admin = _admin(app, make_user, login)
    reporter_id = make_user("reporter@example.com")
    troll_id = make_user("troll@example.com")
    login(client, "reporter@example.com")
    report_id = client.post(
        "/api/reports", json={"type": "USER", "reason": "HARASSMENT", "user_id": troll_id}
    ).json["report"]["id"]

    r = admin.get(f"/api/admin/reports/{report_id}")
    assert r.json["report"]["target"]["email"] == "troll@example.com"
    assert r.json["report"]["reporter"]["id"] == reporter_id

    r = admin.patch(
        f"/api/admin/reports/{report_id}",
        json={"status": "RESOLVED", "action_taken": "USER_BANNED", "resolution": "Repeated abuse"},
    )
    assert r.json["report"]["status"] == "RESOLVED"
    assert r.json["report"]["resolved_at"] is not None

    with session_scope(app) as s:
        assert s.get(User, troll_id).account_status == "BANNED"
        by_user = {n.user_id: n.type for n in s.query(Notification).filter(Notification.type.like("REPORT_%")).all()}
        assert by_user == {reporter_id: "REPORT_RESOLVED", troll_id: "REPORT_ACTION_TAKEN"}

    assert admin.get("/api/admin/reports?status=pending").json["total"] == 0


def test_content_removed_unpublishes_game(app, client, make_user, make_game, login):
    admin = _admin(app, make_user, login)
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    report_id = client.post("/api/reports", json={"type": "GAME", "reason": "COPYRIGHT", "game_id": game_id}).json["report"]["id"]

    r = admin.patch(f"/api/admin/reports/{report_id}", json={"status": "RESOLVED", "action_taken": "CONTENT_REMOVED"})
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(Game, game_id).is_published is False

    assert admin.patch(f"/api/admin/reports/{report_id}", json={"status": "CLOSED"}).status_code == 400


def test_settings_roundtrip_and_validation(app, make_user, login):
    admin = _admin(app, make_user, login)
    assert admin.get("/api/admin/settings").json["settings"]["game_sale_fee_percent"] == 15

    r = admin.put("/api/admin/settings", json={"game_sale_fee_percent": 120, "site_name": " ", "colour": "red"})
    assert r.status_code == 400
    assert set(r.json["details"]) == {
        "game_sale_fee_percent must be between 0 and 100.",
        "site_name must be a non-empty string.",
        "Unknown setting: colour",
    }

    r = admin.put("/api/admin/settings", json={"game_sale_fee_percent": 10})
    assert r.json["settings"]["game_sale_fee_percent"] == 10
    assert admin.get("/api/admin/settings").json["settings"]["game_sale_fee_percent"] == 10


def test_audit_log_filters(app, make_user, login):
    admin = _admin(app, make_user, login)
    admin.put("/api/admin/settings", json={"allow_registration": False})

    events = admin.get("/api/admin/audit?action=settings").json["events"]
    assert [e["action"] for e in events] == ["settings.update"]
    assert events[0]["actor_email"] == "admin@example.com"
    assert events[0]["metadata"] == {"allow_registration": {"from": True, "to": False}}

    assert admin.get("/api/admin/audit?actor_email=nobody").json["events"] == []
    assert admin.get("/api/admin/audit?date_from=yesterday").status_code == 400
