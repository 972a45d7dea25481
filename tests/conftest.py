import json

import pytest
from werkzeug.security import generate_password_hash

from app.shaderhouse import create_app
from app.shaderhouse.db import session_scope
from app.shaderhouse.models import Base, User
from app.shaderhouse.modules.games.models import Game
from app.shaderhouse.utils import slugify, utcnow

PASSWORD = "Passw0rd!"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in (
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "STRIPE_PAYMENTS_WEBHOOK_SECRET",
        "SMTP_HOST",
        "LOGIN_RATE_LIMIT",
        "LOGIN_RATE_WINDOW_SECONDS",
    ):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(email, *, role="GAMER", name=None, password=PASSWORD, **fields):
        with session_scope(app) as s:
            u = User(
                email=email,
                name=name or email.split("@")[0].title(),
                password_hash=generate_password_hash(password),
                role=role,
                **fields,
            )
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture()
def login():
    def _login(client, email, password=PASSWORD):
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        client.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
        return r.json["user"]

    return _login


@pytest.fixture()
def make_game(app):
    def _make(developer_id, title="Star Forge", *, price_cents=0, published=True, release_status="RELEASED", platforms=("WINDOWS",)):
        now = utcnow()
        with session_scope(app) as s:
            game = Game(
                developer_id=developer_id,
                title=title,
                slug=slugify(title),
                tagline="A short tagline",
                description="A longer description of the game for the store page.",
                cover_url="https://cdn.example.com/cover.png",
                price_cents=price_cents,
                platforms_json=json.dumps(list(platforms)),
                external_url="https://example.com/download",
                release_status=release_status,
                is_published=published,
                published_at=now if published else None,
                created_at=now,
                updated_at=now,
            )
            s.add(game)
            s.flush()
            return game.id

    return _make
