from app.shaderhouse.db import session_scope
from app.shaderhouse.models import User
from app.shaderhouse.modules.discussions.models import DiscussionPost
from app.shaderhouse.modules.rewards.models import RewardHistory
from app.shaderhouse.modules.notifications.models import Notification

THREAD = {
    "title": "Crash on level 3",
    "content": "The game crashes whenever I open the map on level 3.",
    "category": "BUG_REPORT",
}


def _thread(c, game_id, **overrides):
    r = c.post("/api/discussions/threads", json=dict(THREAD, game_id=game_id, **overrides))
    assert r.status_code == 201, r.json
    return r.json["thread"]


def test_bug_report_notifies_developer_and_rewards_author(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    gamer_id = make_user("gamer@example.com")
    game_id = make_game(dev_id)

    login(client, "gamer@example.com")
    thread = _thread(client, game_id)
    assert thread["game_name"] == "Star Forge"
    assert thread["category"] == "BUG_REPORT"
    assert thread["author"]["id"] == gamer_id

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == dev_id).one()
        assert n.type == "BETA_FEEDBACK_RECEIVED"
        assert n.title == "New bug report for Star Forge"
        # daily login plus thread reward
        assert s.get(User, gamer_id).xp == 10

    r = client.get(f"/api/discussions/threads?game_id={game_id}")
    assert r.json["total"] == 1
    assert client.get("/api/discussions/global").json["threads"][0]["id"] == thread["id"]


def test_thread_validation(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    make_user("gamer@example.com")
    login(client, "gamer@example.com")

    r = client.post(
        "/api/discussions/threads",
        json={"game_id": game_id, "title": "Hi", "content": "short", "media_urls": ["https://cdn.example.com/a.png"]},
    )
    assert r.status_code == 400
    assert r.json["details"] == [
        "Title must be between 3 and 200 characters.",
        "Content must be between 10 and 10000 characters.",
        "Media can only be attached to SHOWCASE threads.",
    ]

    r = client.post("/api/discussions/threads", json=dict(THREAD, game_id=9999))
    assert r.status_code == 404


def test_category_rules(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("other@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    game_id = make_game(dev_id)

    login(client, "gamer@example.com")
    r = client.post("/api/discussions/threads", json=dict(THREAD, game_id=game_id, category="ANNOUNCEMENT"))
    assert r.status_code == 403

    other = app.test_client()
    login(other, "other@example.com")
    assert other.post("/api/discussions/threads", json=dict(THREAD, game_id=game_id)).status_code == 403
    assert other.post("/api/discussions/threads", json=dict(THREAD, game_id=game_id, category="ANNOUNCEMENT")).status_code == 403

    dev = app.test_client()
    login(dev, "dev@example.com")
    thread = _thread(dev, game_id, category="ANNOUNCEMENT", title="Patch 1.1 is live")
    assert thread["category"] == "ANNOUNCEMENT"

    showcase = _thread(client, game_id, category="SHOWCASE", media_urls=["https://cdn.example.com/shot.png"])
    assert showcase["media_urls"] == ["https://cdn.example.com/shot.png"]


def test_email_verification_gate(app, client, make_user, make_game, login):
    from app.shaderhouse.modules.settings.service import update_settings

    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id)
    make_user("unverified@example.com")
    with app.app_context():
        with session_scope(app) as s:
            update_settings(s, {"require_email_verification": True}, user=None)

    login(client, "unverified@example.com")
    r = client.post("/api/discussions/threads", json=dict(THREAD, game_id=game_id))
    assert r.status_code == 403


def test_posts_replies_and_locking(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    author_id = make_user("author@example.com")
    replier_id = make_user("replier@example.com")
    make_user("third@example.com")
    game_id = make_game(dev_id)

    login(client, "author@example.com")
    thread = _thread(client, game_id)

    replier = app.test_client()
    login(replier, "replier@example.com")
    r = replier.post("/api/discussions/posts", json={"thread_id": thread["id"], "content": "Same here, on Linux too."})
    assert r.status_code == 201
    parent_id = r.json["post"]["id"]

    third = app.test_client()
    login(third, "third@example.com")
    r = third.post("/api/discussions/posts", json={"thread_id": thread["id"], "content": "Which driver?", "parent_id": parent_id})
    assert r.status_code == 201

    detail = client.get(f"/api/discussions/threads/{thread['id']}").json["thread"]
    assert detail["post_count"] == 2
    assert [p["parent_id"] for p in detail["posts"]] == [None, parent_id]

    with session_scope(app) as s:
        replies = s.query(Notification).filter(Notification.type == "DISCUSSION_REPLY").all()
        assert sorted(n.user_id for n in replies) == sorted([author_id, author_id, replier_id])

    # deleting a post drops its replies from the count
    assert third.delete(f"/api/discussions/posts/{parent_id}").status_code == 403
    assert replier.delete(f"/api/discussions/posts/{parent_id}").json == {"deleted": True}
    assert client.get(f"/api/discussions/threads/{thread['id']}").json["thread"]["post_count"] == 0
    with session_scope(app) as s:
        assert s.query(DiscussionPost).count() == 0

    dev = app.test_client()
    login(dev, "dev@example.com")
    assert client.patch(f"/api/discussions/threads/{thread['id']}", json={"is_locked": True}).status_code == 403
    r = dev.patch(f"/api/discussions/threads/{thread['id']}", json={"is_locked": True, "is_pinned": True})
    assert r.json["thread"]["is_locked"] is True
    assert r.json["thread"]["is_pinned"] is True

    r = replier.post("/api/discussions/posts", json={"thread_id": thread["id"], "content": "Still broken"})
    assert r.status_code == 403
    assert r.json["error"] == "This thread is locked"


def test_author_edits_and_moderator_deletes(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("author@example.com")
    game_id = make_game(dev_id)

    login(client, "author@example.com")
    thread = _thread(client, game_id)
    r = client.patch(f"/api/discussions/threads/{thread['id']}", json={"title": "Crash on level 3 map"})
    assert r.json["thread"]["title"] == "Crash on level 3 map"
    assert client.patch(f"/api/discussions/threads/{thread['id']}", json={}).status_code == 400

    dev = app.test_client()
    login(dev, "dev@example.com")
    assert dev.patch(f"/api/discussions/threads/{thread['id']}", json={"title": "Hijacked"}).status_code == 403
    assert dev.delete(f"/api/discussions/threads/{thread['id']}").json == {"deleted": True}
    assert client.get(f"/api/discussions/threads/{thread['id']}").status_code == 404


def test_helpful_by_game_developer_awards_dev_liked(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("author@example.com")
    helper_id = make_user("helper@example.com")
    game_id = make_game(dev_id)

    login(client, "author@example.com")
    thread = _thread(client, game_id)
    helper = app.test_client()
    login(helper, "helper@example.com")
    post_id = helper.post("/api/discussions/posts", json={"thread_id": thread["id"], "content": "Update your GPU driver."}).json["post"]["id"]

    assert helper.post(f"/api/discussions/posts/{post_id}/helpful").status_code == 403

    dev = app.test_client()
    login(dev, "dev@example.com")
    r = dev.post(f"/api/discussions/posts/{post_id}/helpful")
    assert r.status_code == 200
    assert r.json["post"]["is_helpful"] is True
    assert r.json["reward"] == {"xp": 80, "points": 150, "dev_liked": True}

    assert client.post(f"/api/discussions/posts/{post_id}/helpful").status_code == 400
    with session_scope(app) as s:
        # daily login + post + helpful + dev liked
        assert s.get(User, helper_id).xp == 5 + 3 + 30 + 50


def test_voting_requires_level_and_tracks_changes(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    author_id = make_user("author@example.com")
    make_user("newbie@example.com")
    make_user("voter@example.com", xp=300, level=3)
    game_id = make_game(dev_id)

    login(client, "author@example.com")
    thread = _thread(client, game_id)
    assert client.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 1}).status_code == 403

    newbie = app.test_client()
    login(newbie, "newbie@example.com")
    r = newbie.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 1})
    assert r.status_code == 403
    assert r.json["error"] == "You need to reach level 3 to vote"

    voter = app.test_client()
    login(voter, "voter@example.com")
    assert voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "post_id": 1, "value": 1}).status_code == 400
    assert voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 2}).status_code == 400

    assert voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 1}).json == {
        "value": 1,
        "upvotes": 1,
        "downvotes": 0,
    }
    assert voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": -1}).json == {
        "value": -1,
        "upvotes": 0,
        "downvotes": 1,
    }
    assert voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 0}).json == {
        "value": 0,
        "upvotes": 0,
        "downvotes": 0,
    }
    detail = voter.get(f"/api/discussions/threads/{thread['id']}").json["thread"]
    assert detail["my_vote"] == 0

    with session_scope(app) as s:
        # daily login + thread + one upvote received
        assert s.get(User, author_id).xp == 5 + 5 + 2


def test_flipping_downvote_to_upvote_rewards_author(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    author_id = make_user("author@example.com")
    make_user("voter@example.com", xp=300, level=3)
    game_id = make_game(dev_id)

    login(client, "author@example.com")
    thread = _thread(client, game_id)

    voter = app.test_client()
    login(voter, "voter@example.com")
    assert voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": -1}).json["downvotes"] == 1
    r = voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 1})
    assert r.json == {"value": 1, "upvotes": 1, "downvotes": 0}
    # same vote again is a no-op
    voter.post("/api/discussions/vote", json={"thread_id": thread["id"], "value": 1})

    with session_scope(app) as s:
        upvotes = (
            s.query(RewardHistory)
            .filter(RewardHistory.user_id == author_id, RewardHistory.type == "UPVOTE_RECEIVED")
            .count()
        )
        assert upvotes == 1
