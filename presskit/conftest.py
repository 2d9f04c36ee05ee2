# presskit/conftest.py
from itertools import count

import pytest
from fastapi.testclient import TestClient

from presskit.core.cache import Cache
from presskit.core.config import Settings
from presskit.core.database import build_engine, metadata
from presskit.main import create_app
from presskit.tests.fakes import FakeAssetHost, FakeBillingProvider, FakeRedis, RecordingMailer

PASSWORD = "Str0ng!Pass"


@pytest.fixture
def settings():
    return Settings(
        ENV="test",
        DATABASE_URL="sqlite://",
        RATE_LIMIT_ENABLED=False,
        BCRYPT_ROUNDS=4,
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        STRIPE_BASIC_PLAN_ID="price_basic",
        STRIPE_PRO_PLAN_ID="price_pro",
        STRIPE_ENTERPRISE_PLAN_ID="price_enterprise",
        CLIENT_URL="http://client.test",
        ASSET_FOLDER="presskit-test",
    )


@pytest.fixture
def engine():
    """Fresh in-memory SQLite per test; StaticPool keeps one shared connection."""
    engine = build_engine("sqlite://")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis, settings):
    return Cache(fake_redis, settings.CACHE_PREFIX)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def assets():
    return FakeAssetHost()


@pytest.fixture
def payments():
    return FakeBillingProvider()


@pytest.fixture
def app(settings, engine, cache, mailer, assets, payments):
    return create_app(settings, engine=engine, cache=cache, mailer=mailer, assets=assets, payments=payments)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def register_user(client):
    """Factory: register a fresh account and return ``{user, token, refreshToken, headers}``."""
    seq = count(1)

    def _register(username=None, email=None, password=PASSWORD, **extra):
        n = next(seq)
        username = username or f"artist{n}"
        payload = {"email": email or f"{username}@example.com", "username": username, "password": password, **extra}
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        data["headers"] = {"Authorization": f"Bearer {data['token']}"}
        return data

    return _register


@pytest.fixture
def create_epk(client):
    """Factory: create an EPK for ``account`` and return its document."""

    def _create(account, title="Midnight Echoes", **fields):
        resp = client.post("/api/v1/epks", json={"title": title, **fields}, headers=account["headers"])
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _create
