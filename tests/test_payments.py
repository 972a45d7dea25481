import json
import time

from app.shaderhouse.db import session_scope
from app.shaderhouse.modules.developers.models import DeveloperProfile
from app.shaderhouse.modules.notifications.models import Notification
from app.shaderhouse.modules.payments.models import Purchase
from app.shaderhouse.modules.payments.stripe_client import StripeClient, compute_signature

WEBHOOK_SECRET = "whsec_test"


def _signed_post(client, path, event, secret=WEBHOOK_SECRET):
    payload = json.dumps(event).encode("utf-8")
    ts = int(time.time())
    header = f"t={ts},v1={compute_signature(payload, secret, ts)}"
    return client.post(path, data=payload, headers={"Stripe-Signature": header, "Content-Type": "application/json"})


def test_demo_purchase_splits_revenue(app, client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    game_id = make_game(dev_id, "Paid Peaks", price_cents=1999)
    login(client, "gamer@example.com")

    r = client.post(f"/api/games/{game_id}/checkout")
    assert r.status_code == 200
    assert r.json["purchased"] is True
    assert r.json["demo_mode"] is True
    assert r.json["split"] == {
        "total": 1999,
        "platform_fee": 300,
        "developer_amount": 1699,
        "platform_percent": 15,
        "developer_percent": 85,
    }

    r = client.post(f"/api/games/{game_id}/checkout")
    assert r.status_code == 400
    assert r.json["error"] == "You already own this game"

    purchases = client.get("/api/payments/purchases").json["purchases"]
    assert [(p["game_title"], p["price_cents"], p["status"]) for p in purchases] == [("Paid Peaks", 1999, "COMPLETED")]

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == dev_id).one()
        assert n.type == "GAME_PURCHASED"
        assert "$19.99" in n.message

    dev = app.test_client()
    login(dev, "dev@example.com")
    revenue = dev.get("/api/developer/revenue").json
    assert revenue["totals"]["direct_sales_cents"] == 1699
    assert revenue["totals"]["units_sold"] == 1
    assert revenue["lifetime_net_cents"] == 1699
    assert revenue["lifetime_net_formatted"] == "$16.99"
    assert revenue["payout"] == {"minimum_cents": 2500, "eligible": False, "payouts_enabled": False}


def test_cannot_buy_own_or_unpublished_game(client, make_user, make_game, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    own_id = make_game(dev_id, "My Game", price_cents=500)
    draft_id = make_game(dev_id, "Draft", price_cents=500, published=False)

    login(client, "dev@example.com")
    r = client.post(f"/api/games/{own_id}/purchase")
    assert r.status_code == 400
    assert r.json["error"] == "You cannot purchase your own game"

    client.post("/api/auth/logout")
    login(client, "gamer@example.com")
    assert client.post(f"/api/games/{draft_id}/purchase").status_code == 404


def test_purchase_requires_login(client, make_user, make_game):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    game_id = make_game(dev_id, "Paid Peaks", price_cents=500)
    r = client.get("/api/auth/csrf")
    client.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
    assert client.post(f"/api/games/{game_id}/purchase").status_code == 401


def test_demo_tip(app, client, make_user, login):
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    gamer_id = make_user("gamer@example.com")
    login(client, "gamer@example.com")

    r = client.post("/api/payments/tip", json={"developer_id": dev_id, "amount_cents": 99})
    assert r.status_code == 400
    assert r.json["error"] == "Minimum tip is 100 cents"

    r = client.post("/api/payments/tip", json={"developer_id": gamer_id, "amount_cents": 500})
    assert r.json["error"] == "You cannot tip yourself"

    r = client.post("/api/payments/tip", json={"developer_id": 9999, "amount_cents": 500})
    assert r.status_code == 404

    r = client.post("/api/payments/tip", json={"developer_id": dev_id, "amount_cents": 500, "message": "Love it"})
    assert r.status_code == 200
    assert r.json["tipped"] is True
    assert r.json["split"]["platform_fee"] == 75
    assert r.json["split"]["developer_amount"] == 425

    with session_scope(app) as s:
        n = s.query(Notification).filter(Notification.user_id == dev_id).one()
        assert n.type == "TIP_RECEIVED"
        assert '"Love it"' in n.message


def test_tips_only_go_to_developers(client, make_user, login):
    other_id = make_user("other@example.com")
    make_user("gamer@example.com")
    login(client, "gamer@example.com")
    r = client.post("/api/payments/tip", json={"developer_id": other_id, "amount_cents": 500})
    assert r.status_code == 400
    assert r.json["error"] == "Tips can only be sent to developers"


def test_connect_unavailable_in_demo_mode(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    r = client.post("/api/payments/connect")
    assert r.status_code == 400


def _developer_with_account(app, make_user, email="dev@example.com", **profile):
    dev_id = make_user(email, role="DEVELOPER")
    with session_scope(app) as s:
        s.add(DeveloperProfile(user_id=dev_id, stripe_account_id="acct_1", **profile))
    return dev_id


def test_connect_status_without_account(client, make_user, login):
    make_user("dev@example.com", role="DEVELOPER")
    make_user("gamer@example.com")
    login(client, "dev@example.com")
    r = client.get("/api/payments/connect/status")
    assert r.status_code == 200
    assert r.json == {"has_account": False, "status": None, "payouts_enabled": False, "requires_onboarding": True}

    client.post("/api/auth/logout")
    login(client, "gamer@example.com")
    assert client.get("/api/payments/connect/status").status_code == 403
    assert client.get("/api/payments/connect/dashboard").status_code == 403


def test_connect_status_and_dashboard_in_demo_mode(app, client, make_user, login):
    _developer_with_account(app, make_user, payouts_enabled=True)
    login(client, "dev@example.com")
    r = client.get("/api/payments/connect/status")
    assert r.json == {"has_account": True, "status": "active", "payouts_enabled": True, "requires_onboarding": False}
    r = client.get("/api/payments/connect/dashboard")
    assert r.json["dashboard_url"].endswith("/dashboard/revenue")


def test_connect_status_refreshes_from_stripe(app, client, make_user, login, monkeypatch):
    app.config["STRIPE_SECRET_KEY"] = "sk_test_123"
    dev_id = _developer_with_account(app, make_user)
    account = {
        "id": "acct_1",
        "charges_enabled": True,
        "payouts_enabled": True,
        "details_submitted": True,
    }
    monkeypatch.setattr(StripeClient, "retrieve_account", lambda self, account_id: account)
    monkeypatch.setattr(
        StripeClient, "create_login_link", lambda self, account_id: {"url": f"https://connect.stripe.test/{account_id}"}
    )

    login(client, "dev@example.com")
    r = client.get("/api/payments/connect/status")
    assert r.json == {
        "has_account": True,
        "status": "active",
        "payouts_enabled": True,
        "requires_onboarding": False,
        "dashboard_url": "https://connect.stripe.test/acct_1",
    }
    assert client.get("/api/payments/connect/dashboard").json == {"dashboard_url": "https://connect.stripe.test/acct_1"}

    with session_scope(app) as s:
        profile = s.query(DeveloperProfile).filter(DeveloperProfile.user_id == dev_id).one()
        assert profile.payouts_enabled is True
        assert profile.stripe_account_status == "active"
        assert profile.stripe_onboarded_at is not None

    account.update(charges_enabled=False, payouts_enabled=False, requirements={"currently_due": ["external_account"]})
    r = client.get("/api/payments/connect/status")
    assert r.json["status"] == "restricted"
    assert "dashboard_url" not in r.json


def test_connect_dashboard_needs_account_when_stripe_configured(app, client, make_user, login):
    app.config["STRIPE_SECRET_KEY"] = "sk_test_123"
    make_user("dev@example.com", role="DEVELOPER")
    login(client, "dev@example.com")
    r = client.get("/api/payments/connect/dashboard")
    assert r.status_code == 400
    assert r.json["error"] == "No Stripe account found"


def test_webhook_skipped_without_secret(client):
    r = client.post("/api/payments/webhook", data=b"{}")
    assert r.json == {"received": True, "skipped": True}


def test_webhook_rejects_bad_signature(app, client):
    app.config["STRIPE_PAYMENTS_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    r = _signed_post(client, "/api/payments/webhook", {"type": "checkout.session.completed"}, secret="wrong")
    assert r.status_code == 400
    assert r.json == {"error": "Invalid signature"}

    r = client.post("/api/payments/webhook", data=b"{}")
    assert r.status_code == 400


def test_webhook_purchase_and_refund(app, client, make_user, make_game):
    app.config["STRIPE_PAYMENTS_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    gamer_id = make_user("gamer@example.com")
    game_id = make_game(dev_id, "Paid Peaks", price_cents=1999)

    completed = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "payment_intent": "pi_test_1",
                "amount_total": 1999,
                "metadata": {
                    "type": "game_purchase",
                    "gameId": str(game_id),
                    "userId": str(gamer_id),
                    "developerId": str(dev_id),
                    "platformFee": "300",
                    "developerAmount": "1699",
                },
            }
        },
    }
    r = _signed_post(client, "/api/payments/webhook", completed)
    assert r.status_code == 200
    assert r.json == {"received": True, "result": "game_purchase"}

    # redelivery of the same session is idempotent
    _signed_post(client, "/api/payments/webhook", completed)
    with session_scope(app) as s:
        purchases = s.query(Purchase).all()
        assert len(purchases) == 1
        assert purchases[0].price_cents == 1999
        assert purchases[0].developer_amount_cents == 1699

    refunded = {"id": "evt_2", "type": "charge.refunded", "data": {"object": {"payment_intent": "pi_test_1"}}}
    assert _signed_post(client, "/api/payments/webhook", refunded).json["result"] == "purchase_refunded"
    assert _signed_post(client, "/api/payments/webhook", refunded).json["result"] == "already_refunded"

    with session_scope(app) as s:
        purchase = s.query(Purchase).one()
        assert purchase.status == "REFUNDED"
        assert purchase.refunded_at is not None


def test_webhook_tip_and_unknown_event(app, client, make_user):
    app.config["STRIPE_PAYMENTS_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    dev_id = make_user("dev@example.com", role="DEVELOPER")
    event = {
        "id": "evt_3",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_tip_1",
                "payment_intent": "pi_tip_1",
                "amount_total": 1000,
                "metadata": {"type": "tip", "developerId": str(dev_id), "amount": "1000", "platformFee": "150"},
            }
        },
    }
    assert _signed_post(client, "/api/payments/webhook", event).json["result"] == "tip"

    other = {"id": "evt_4", "type": "customer.created", "data": {"object": {}}}
    assert _signed_post(client, "/api/payments/webhook", other).json["result"] == "ignored"
