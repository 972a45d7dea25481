import pytest

from app.shaderhouse.db import session_scope
from app.shaderhouse.models import User
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.modules.notifications.service import create_notification, notify_admins, notify_many


def _seed(app, user_id, count):
    with session_scope(app) as s:
        for i in range(count):
            create_notification(s, user=user_id, type="SYSTEM", title=f"Notice {i}", message="Hello")


def test_unknown_type_is_rejected(app, make_user):
    uid = make_user("gamer@example.com")
    with session_scope(app) as s:
        with pytest.raises(ValueError):
            create_notification(s, user=uid, type="PIGEON", title="x", message="y")


def test_preferences_suppress_optional_types(app, make_user):
    uid = make_user("quiet@example.com", notify_devlogs=False)
    muted_id = make_user("muted@example.com", notify_in_app=False)
    with session_scope(app) as s:
        assert create_notification(s, user=uid, type="NEW_DEVLOG", title="t", message="m") is None
        assert create_notification(s, user=uid, type="DISCUSSION_REPLY", title="t", message="m") is not None
        assert create_notification(s, user=muted_id, type="TIP_RECEIVED", title="t", message="m") is None
        # moderation notices always get through
        assert create_notification(s, user=muted_id, type="REPORT_RESOLVED", title="t", message="m") is not None


def test_inactive_users_and_duplicates(app, make_user):
    a = make_user("a@example.com")
    b = make_user("b@example.com", is_active=False)
    make_user("admin@example.com", role="ADMIN")
    with session_scope(app) as s:
        assert notify_many(s, [a, a, b], type="SYSTEM", title="t", message="m") == 1
        assert notify_admins(s, title="New report", message="Please review") == 1


def test_list_and_unread_count(app, client, make_user, login):
    uid = make_user("gamer@example.com")
    _seed(app, uid, 3)
    login(client, "gamer@example.com")

    r = client.get("/api/notifications?page_size=2")
    assert r.status_code == 200
    assert len(r.json["notifications"]) == 2
    assert r.json["notifications"][0]["title"] == "Notice 2"
    assert r.json["unread_count"] == 3
    assert r.json["total"] == 3
    assert r.json["total_pages"] == 2
    assert client.get("/api/notifications/unread-count").json == {"count": 3}


def test_mark_read_and_read_all(app, client, make_user, login):
    uid = make_user("gamer@example.com")
    _seed(app, uid, 3)
    login(client, "gamer@example.com")
    first = client.get("/api/notifications").json["notifications"][0]

    r = client.patch(f"/api/notifications/{first['id']}")
    assert r.json["notification"]["is_read"] is True
    assert r.json["notification"]["read_at"] is not None
    assert client.get("/api/notifications?unread_only=true").json["total"] == 2

    assert client.post("/api/notifications/read-all").json == {"updated": 2}
    assert client.get("/api/notifications/unread-count").json == {"count": 0}


def test_other_users_notifications_look_missing(app, client, make_user, login):
    owner = make_user("owner@example.com")
    make_user("snoop@example.com")
    _seed(app, owner, 1)
    with session_scope(app) as s:
        nid = s.query(Notification.id).filter(Notification.user_id == owner).scalar()

    login(client, "snoop@example.com")
    assert client.patch(f"/api/notifications/{nid}").status_code == 404
    assert client.delete(f"/api/notifications/{nid}").status_code == 404

    other = app.test_client()
    login(other, "owner@example.com")
    assert other.delete(f"/api/notifications/{nid}").json == {"deleted": True}
    assert other.get("/api/notifications").json["total"] == 0


def test_notifications_require_login(client):
    assert client.get("/api/notifications").status_code == 401


def test_preferences_from_profile_apply_to_delivery(app, client, make_user, login):
    uid = make_user("gamer@example.com")
    login(client, "gamer@example.com")
    r = client.patch("/api/profile", json={"notification_preferences": {"notify_achievements": False}})
    assert r.json["profile"]["notification_preferences"]["notify_achievements"] is False

    with session_scope(app) as s:
        assert create_notification(s, user=uid, type="ACHIEVEMENT_UNLOCKED", title="t", message="m") is None
        assert s.get(User, uid).notify_achievements is False
