GAME_PAYLOAD = {
    "title": "Pixel Drift",
    "tagline": "Arcade racing in 16 colours",
    "description": "Drift through neon cities and beat the ghost of your best lap.",
    "cover_url": "https://cdn.example.com/pixel-drift.png",
    "external_url": "https://itch.example.com/pixel-drift",
    "price_cents": 999,
    "platforms": ["windows", "linux"],
    "tags": ["Racing", "Arcade"],
}


def test_developer_creates_and_publishes_game(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")

    r = client.post("/api/games", json=GAME_PAYLOAD)
    assert r.status_code == 201
    game = r.json["game"]
    assert game["slug"] == "pixel-drift"
    assert game["platforms"] == ["WINDOWS", "LINUX"]
    assert game["tags"] == ["Racing", "Arcade"]
    assert game["release_status"] == "RELEASED"
    assert game["is_published"] is False

    # unpublished games are only visible to their developer
    assert client.get("/api/games/pixel-drift").status_code == 200
    anon = client.application.test_client()
    assert anon.get("/api/games/pixel-drift").status_code == 404
    assert client.get("/api/games").json["total"] == 0

    r = client.post("/api/payments/publishing-fee", json={"game_id": game["id"]})
    assert r.status_code == 200
    assert r.json == {"published": True, "demo_mode": True, "amount_cents": 5000}

    r = client.post("/api/payments/publishing-fee", json={"game_id": game["id"]})
    assert r.status_code == 400

    r = anon.get("/api/games/pixel-drift")
    assert r.status_code == 200
    assert r.json["game"]["is_published"] is True
    assert r.json["reviews"] == []


def test_create_game_validation(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    bad = dict(GAME_PAYLOAD, title="X", tagline="no", cover_url="ftp://nope", platforms=["AMIGA"], price_cents=-5)
    r = client.post("/api/games", json=bad)
    assert r.status_code == 400
    details = r.json["details"]
    assert "Title must be at least 2 characters." in details
    assert "Tagline must be between 4 and 120 characters." in details
    assert "cover_url must be a valid http(s) URL." in details
    assert "Unknown platform: AMIGA" in details
    assert "price_cents must be an integer of 0 or greater." in details


def test_gamers_cannot_create_games(client, make_user, login):
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    r = client.post("/api/games", json=GAME_PAYLOAD)
    assert r.status_code == 403


def test_duplicate_titles_get_unique_slugs(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    first = client.post("/api/games", json=GAME_PAYLOAD).json["game"]
    second = client.post("/api/games", json=GAME_PAYLOAD).json["game"]
    assert first["slug"] == "pixel-drift"
    assert second["slug"] == "pixel-drift-2"


def test_update_game_only_by_developer(client, app, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("other@example.com", role="DEVELOPER")
    game_id = make_game(dev_id, "Moon Miner")

    other = app.test_client()
    login(other, "other@example.com")
    assert other.patch(f"/api/games/{game_id}", json={"tagline": "Stolen tagline"}).status_code == 403

    login(client, "dev@example.com")
    r = client.patch(f"/api/games/{game_id}", json={"tagline": "Mine the moon", "price_cents": 499})
    assert r.status_code == 200
    assert r.json["game"]["tagline"] == "Mine the moon"
    assert r.json["game"]["price_cents"] == 499
    assert r.json["game"]["title"] == "Moon Miner"


def test_list_filters_and_pagination(client, make_user, make_game):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_game(dev_id, "Free Fall", price_cents=0, platforms=("WEB",))
    make_game(dev_id, "Paid Peaks", price_cents=1500, platforms=("WINDOWS", "MAC"))
    make_game(dev_id, "Hidden Draft", published=False)

    r = client.get("/api/games")
    assert r.json["total"] == 2
    assert r.json["total_pages"] == 1

    assert [g["title"] for g in client.get("/api/games?price_filter=free").json["games"]] == ["Free Fall"]
    assert [g["title"] for g in client.get("/api/games?price_filter=paid").json["games"]] == ["Paid Peaks"]
    assert [g["title"] for g in client.get("/api/games?platform=mac").json["games"]] == ["Paid Peaks"]
    assert [g["title"] for g in client.get("/api/games?q=fall").json["games"]] == ["Free Fall"]

    r = client.get("/api/games?sort=price-high")
    assert [g["title"] for g in r.json["games"]] == ["Paid Peaks", "Free Fall"]

    r = client.get("/api/games?page=2&page_size=1")
    assert r.json["page"] == 2
    assert r.json["total_pages"] == 2
    assert len(r.json["games"]) == 1


def test_developer_me_listing_includes_drafts(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_game(dev_id, "Live Game")
    make_game(dev_id, "Draft Game", published=False)
    assert client.get("/api/games?developer=me").status_code == 403

    login(client, "dev@example.com")
    r = client.get("/api/games?developer=me")
    assert r.json["total"] == 2


def test_rating_requires_ownership(client, app, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    free_id = make_game(dev_id, "Free Fall")
    paid_id = make_game(dev_id, "Paid Peaks", price_cents=1500)

    login(client, "gamer@example.com")
    r = client.post(f"/api/games/{paid_id}/rate", json={"stars": 5})
    assert r.status_code == 403
    assert r.json["error"] == "You must own this game to rate it"

    assert client.post(f"/api/games/{free_id}/purchase").json["free"] is True
    r = client.post(f"/api/games/{free_id}/rate", json={"stars": 6})
    assert r.status_code == 400
    r = client.post(f"/api/games/{free_id}/rate", json={"stars": 4, "comment": "Nice physics"})
    assert r.status_code == 200
    assert r.json["rating"]["stars"] == 4

    # rating again updates the existing review
    client.post(f"/api/games/{free_id}/rate", json={"stars": 2})
    detail = client.get(f"/api/games/{free_id}").json
    assert detail["game"]["rating"] == {"average": 2.0, "count": 1}
    assert len(detail["reviews"]) == 1

    dev = app.test_client()
    login(dev, "dev@example.com")
    r = dev.post(f"/api/games/{free_id}/rate", json={"stars": 5})
    assert r.status_code == 400
    assert r.json["error"] == "You cannot rate your own game"


def test_favorites_toggle(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    game_id = make_game(dev_id, "Cozy Farm")
    login(client, "gamer@example.com")

    assert client.post(f"/api/games/{game_id}/favorite").json == {"favorited": True}
    assert [g["title"] for g in client.get("/api/games/favorites").json["games"]] == ["Cozy Farm"]
    assert client.post(f"/api/games/{game_id}/favorite").json == {"favorited": False}
    assert client.get("/api/games/favorites").json["games"] == []


def test_access_reasons(client, app, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    free_id = make_game(dev_id, "Free Fall")
    paid_id = make_game(dev_id, "Paid Peaks", price_cents=1500)

    login(client, "gamer@example.com")
    r = client.get(f"/api/games/{free_id}/access")
    assert r.json["has_access"] is True and r.json["reason"] == "free"
    r = client.get(f"/api/games/{paid_id}/access")
    assert r.json == {"has_access": False, "reason": "not_owned", "external_url": None}

    client.post(f"/api/games/{paid_id}/purchase")
    r = client.get(f"/api/games/{paid_id}/access")
    assert r.json["reason"] == "purchased"
    assert r.json["external_url"] == "https://example.com/download"

    dev = app.test_client()
    login(dev, "dev@example.com")
    assert dev.get(f"/api/games/{paid_id}/access").json["reason"] == "developer"


def test_library_lists_purchases(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    game_id = make_game(dev_id, "Paid Peaks", price_cents=1500)
    login(client, "gamer@example.com")
    client.post(f"/api/games/{game_id}/purchase")

    items = client.get("/api/games/library").json["games"]
    assert [g["title"] for g in items] == ["Paid Peaks"]
    assert items[0]["price_paid_cents"] == 1500


def test_similar_games_share_tags(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    ids = []
    for title, tags in (("Roguelike One", ["Roguelike", "Pixel"]), ("Roguelike Two", ["Roguelike"]), ("Farm Life", ["Cozy"])):
        game = client.post("/api/games", json=dict(GAME_PAYLOAD, title=title, tags=tags)).json["game"]
        client.post("/api/payments/publishing-fee", json={"game_id": game["id"]})
        ids.append(game["id"])

    r = client.get(f"/api/games/{ids[0]}/similar")
    assert [g["title"] for g in r.json["games"]] == ["Roguelike Two"]


def test_beta_listing(client, make_user, make_game):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_game(dev_id, "Early Bird", release_status="BETA")
    make_game(dev_id, "Shipped")
    r = client.get("/api/games/beta")
    assert [g["title"] for g in r.json["games"]] == ["Early Bird"]


def test_trending_counts_recent_purchases(client, app, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    hot_id = make_game(dev_id, "Hot Game")
    make_game(dev_id, "Cold Game")
    login(client, "gamer@example.com")
    client.post(f"/api/games/{hot_id}/purchase")

    r = client.get("/api/games/trending")
    assert r.json["days"] == 7
    assert [g["title"] for g in r.json["games"]] == ["Hot Game"]
    assert r.json["games"][0]["recent_purchases"] == 1


def test_delete_game(client, app, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    game_id = make_game(dev_id, "Short Lived")

    gamer = app.test_client()
    login(gamer, "gamer@example.com")
    assert gamer.delete(f"/api/games/{game_id}").status_code == 403

    login(client, "dev@example.com")
    assert client.delete(f"/api/games/{game_id}").json == {"deleted": True}
    assert client.get(f"/api/games/{game_id}").status_code == 404
