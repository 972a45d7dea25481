from app.shaderhouse.db import session_scope
from app.shaderhouse.modules.notifications.models import Notification

POST = {
    "title": "Month one update",
    "content": "We rebuilt the renderer and the game now runs at 144 fps on a potato.",
    "category": "update",
}


def test_publish_notifies_followers_and_buyers(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    follower_id = make_user("follower@example.com")
    buyer_id = make_user("buyer@example.com")
    game_id = make_game(dev_id, "Potato Racer")

    follower = app.test_client()
    login(follower, "follower@example.com")
    r = follower.post("/api/devlogs/subscriptions", json={"developer_id": dev_id})
    assert r.status_code == 201
    assert r.json["subscription"]["notify_new_post"] is True

    buyer = app.test_client()
    login(buyer, "buyer@example.com")
    buyer.post(f"/api/games/{game_id}/purchase")

    login(client, "dev@example.com")
    r = client.post("/api/devlogs", json=dict(POST, game_id=game_id))
    assert r.status_code == 201
    devlog = r.json["devlog"]
    assert devlog["slug"] == "month-one-update"
    assert devlog["category"] == "UPDATE"
    assert devlog["game"]["title"] == "Potato Racer"
    assert devlog["excerpt"].startswith("We rebuilt the renderer")

    with session_scope(app) as s:
        notified = {n.user_id for n in s.query(Notification).filter(Notification.type == "NEW_DEVLOG").all()}
        assert notified == {follower_id, buyer_id}


def test_drafts_are_hidden_until_published(app, client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    r = client.post("/api/devlogs", json=dict(POST, is_published=False))
    slug = r.json["devlog"]["slug"]

    anon = app.test_client()
    assert anon.get(f"/api/devlogs/{slug}").status_code == 404
    assert anon.get("/api/devlogs").json["total"] == 0
    assert [d["slug"] for d in client.get("/api/devlogs/my").json["devlogs"]] == [slug]

    r = client.patch(f"/api/devlogs/{slug}", json={"is_published": True})
    assert r.json["devlog"]["published_at"] is not None
    assert anon.get("/api/devlogs").json["total"] == 1


def test_devlog_validation_and_game_ownership(client, make_user, make_game, login):
    make_user("dev@example.com", role="DEVELOPER")
    other_id = make_user("other@example.com", role="DEVELOPER")
    other_game = make_game(other_id, "Not Yours")
    login(client, "dev@example.com")
    r = client.post("/api/devlogs", json={"title": "Hi", "content": "too short", "category": "RANT", "game_id": other_game})
    assert r.status_code == 400
    assert len(r.json["details"]) == 4


def test_views_likes_and_comments(app, client, make_user, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("fan@example.com")
    make_user("other@example.com")
    login(client, "dev@example.com")
    slug = client.post("/api/devlogs", json=POST).json["devlog"]["slug"]

    fan = app.test_client()
    login(fan, "fan@example.com")
    assert fan.get(f"/api/devlogs/{slug}").json["devlog"]["view_count"] == 1
    # authors do not inflate their own view count
    assert client.get(f"/api/devlogs/{slug}").json["devlog"]["view_count"] == 1

    assert fan.post(f"/api/devlogs/{slug}/like").json == {"liked": True, "like_count": 1}
    assert fan.get(f"/api/devlogs/{slug}").json["devlog"]["liked_by_me"] is True
    assert fan.post(f"/api/devlogs/{slug}/like").json == {"liked": False, "like_count": 0}

    r = fan.post(f"/api/devlogs/{slug}/comments", json={"content": "Love the new renderer"})
    assert r.status_code == 201
    parent_id = r.json["comment"]["id"]

    other = app.test_client()
    login(other, "other@example.com")
    r = other.post(f"/api/devlogs/{slug}/comments", json={"content": "Agreed!", "parent_id": parent_id})
    assert r.json["comment"]["parent_id"] == parent_id
    r = other.post(f"/api/devlogs/{slug}/comments", json={"content": "Bad parent", "parent_id": 9999})
    assert r.status_code == 400

    assert len(client.get(f"/api/devlogs/{slug}/comments").json["comments"]) == 2
    assert other.delete(f"/api/devlogs/{slug}/comments/{parent_id}").status_code == 403

    # deleting a comment removes its replies from the count
    r = client.delete(f"/api/devlogs/{slug}/comments/{parent_id}")
    assert r.json == {"deleted": True, "comment_count": 0}
    assert client.get(f"/api/devlogs/{slug}/comments").json["comments"] == []

    with session_scope(app) as s:
        types = [n.type for n in s.query(Notification).all()]
        assert "DEVLOG_LIKE" in types
        assert "DEVLOG_COMMENT" in types
        assert "DEVLOG_COMMENT_REPLY" in types
        assert s.query(Notification).filter(Notification.user_id == dev_id).count() >= 3


def test_feeds_and_subscriptions(app, client, make_user, login):
    dev_a = make_user("a@example.com", role="DEVELOPER")
    dev_b = make_user("b@example.com", role="DEVELOPER")
    make_user("reader@example.com")
    for email, title in (("a@example.com", "Update from A"), ("b@example.com", "Update from B")):
        c = app.test_client()
        login(c, email)
        c.post("/api/devlogs", json=dict(POST, title=title))

    login(client, "reader@example.com")
    assert client.post("/api/devlogs/subscriptions", json={"developer_id": dev_a}).status_code == 201
    r = client.get("/api/devlogs?filter=followed")
    assert [d["title"] for d in r.json["devlogs"]] == ["Update from A"]
    assert [d["title"] for d in client.get(f"/api/devlogs?developer_id={dev_b}").json["devlogs"]] == ["Update from B"]

    assert len(client.get("/api/devlogs/subscriptions").json["subscriptions"]) == 1
    assert client.delete(f"/api/devlogs/subscriptions?developer_id={dev_a}").json == {"subscribed": False}
    assert client.delete(f"/api/devlogs/subscriptions?developer_id={dev_a}").status_code == 404
    assert client.get("/api/devlogs?filter=followed").json["total"] == 0


def test_cannot_follow_self_or_gamers(client, make_user, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    gamer_id = make_user("gamer@example.com")
    login(client, "dev@example.com")
    assert client.post("/api/devlogs/subscriptions", json={"developer_id": dev_id}).status_code == 400
    assert client.post("/api/devlogs/subscriptions", json={"developer_id": gamer_id}).status_code == 404
