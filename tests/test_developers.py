from app.shaderhouse.db import session_scope
from app.shaderhouse.modules.notifications.models import Notification

PROFILE = {
    "studio_name": "Tiny Lantern",
    "developer_type": "INDIE",
    "team_size": 3,
    "has_publisher": False,
    "owns_ip": True,
    "funding_sources": ["self", "crowdfund"],
    "company_type": "LLC",
    "evidence_links": ["https://tinylantern.example.com"],
    "attest_indie": True,
    "website": "https://tinylantern.example.com",
}


def test_indie_policy_is_public(client):
    r = client.get("/api/developers/indie-policy")
    assert r.status_code == 200
    assert r.json["criteria"][0] == "Team size of 10 or fewer"


def test_save_profile_runs_eligibility_and_notifies_admins(app, client, make_user, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    admin_id = make_user("admin@example.com", role="ADMIN")
    login(client, "dev@example.com")
    assert client.get("/api/developers/me/profile").json == {"profile": None}

    r = client.put("/api/developers/me/profile", json=PROFILE)
    assert r.status_code == 200
    assert r.json["eligibility"] == {"is_eligible": True, "reasons": [], "warnings": []}
    profile = r.json["profile"]
    assert profile["verification_status"] == "PENDING"
    assert profile["funding_sources"] == ["SELF", "CROWDFUND"]
    assert profile["is_indie_eligible"] is True

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == admin_id).one()
        assert n.type == "SYSTEM"
        assert n.metadata_json == f'{{"user_id": {dev_id}}}'


def test_studio_sized_profile_is_ineligible(client, make_user, login):
    make_user("studio@example.com", role="DEVELOPER")
    login(client, "studio@example.com")
    r = client.put(
        "/api/developers/me/profile",
        json=dict(PROFILE, developer_type="STUDIO", team_size=40, funding_sources=["VC"], attest_indie=False),
    )
    assert r.status_code == 200
    assert r.json["eligibility"]["is_eligible"] is False
    assert r.json["eligibility"]["reasons"] == ["Team size (40) exceeds indie limit of 10"]
    assert "VC funding combined with large team size may indicate non-indie status." in r.json["eligibility"]["warnings"]


def test_profile_validation(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    r = client.put(
        "/api/developers/me/profile",
        json={"team_size": -1, "funding_sources": ["LOTTERY"], "evidence_links": [], "company_type": "GUILD"},
    )
    assert r.status_code == 400
    details = r.json["details"]
    assert "team_size must be an integer between 0 and 500." in details
    assert "Unknown funding source: LOTTERY" in details
    assert "Provide between 1 and 5 evidence links." in details
    assert "You must attest that you meet the indie criteria." in details


def test_gamers_have_no_developer_profile(client, make_user, login):
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    assert client.get("/api/developers/me/profile").status_code == 403


def test_directory_and_detail(app, client, make_user, make_game):
    dev_id = make_user("dev@example.com", role="DEVELOPER", name="Ada Dev")
    make_user("quiet@example.com", role="DEVELOPER", name="Zed Dev")
    gamer_id = make_user("gamer@example.com")
    make_game(dev_id, "Star Forge")
    make_game(dev_id, "Hidden Draft", published=False)

    developers = client.get("/api/developers").json["developers"]
    assert [(d["name"], d["published_games"]) for d in developers] == [("Ada Dev", 1), ("Zed Dev", 0)]
    assert [d["name"] for d in client.get("/api/developers?q=zed").json["developers"]] == ["Zed Dev"]

    r = client.get(f"/api/developers/{dev_id}")
    assert r.status_code == 200
    assert [g["title"] for g in r.json["games"]] == ["Star Forge"]
    assert r.json["is_supported_by_me"] is False
    assert client.get(f"/api/developers/{gamer_id}").status_code == 404
