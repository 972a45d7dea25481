from app.shaderhouse.db import session_scope
from app.shaderhouse.modules.settings.service import update_settings


def test_index_lists_api_areas(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "/api/games" in r.json["endpoints"]
    assert r.headers.get("X-Request-ID")


def test_health_checks(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json == {"ok": True, "database": "ok"}

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_unknown_api_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert "error" in r.json


def test_maintenance_mode_blocks_everyone_but_admins(app, client, make_user, login):
    make_user("admin@example.com", role="ADMIN")
    make_user("gamer@example.com")
    with app.app_context():
        with session_scope(app) as s:
            update_settings(s, {"maintenance_mode": True}, user=None)

    r = client.get("/api/games")
    assert r.status_code == 503
    assert r.json["error"].startswith("Shader House is down for maintenance")

    # sign-in stays reachable so admins can get in
    login(client, "gamer@example.com")
    assert client.get("/api/games").status_code == 503

    admin = app.test_client()
    login(admin, "admin@example.com")
    assert admin.get("/api/games").status_code == 200
    assert client.get("/health").status_code == 200
