import logging

import pytest
from sqlalchemy.exc import OperationalError

from presskit.core import database
from presskit.core.config import Settings, validate_config
from presskit.core.database import DatabaseConnectionError, connect_with_retry, retry_delay

CONFIGURED = dict(
    SMTP_HOST="smtp.example.com",
    ASSET_BUCKET="presskit-assets",
    STRIPE_SECRET_KEY="sk_test",
    STRIPE_WEBHOOK_SECRET="whsec_test",
    JWT_SECRET="a-real-secret",
    JWT_REFRESH_SECRET="another-real-secret",
)


def test_complete_config_validates():
    assert validate_config(strict=True, settings_obj=Settings(**CONFIGURED))


def test_strict_mode_raises_on_missing_keys():
    cfg = Settings(**{**CONFIGURED, "SMTP_HOST": None, "JWT_SECRET": "change-me"})
    with pytest.raises(RuntimeError) as exc:
        validate_config(strict=True, settings_obj=cfg)
    assert "SMTP_HOST" in str(exc.value)
    assert "JWT_SECRET" in str(exc.value)
    assert "a-real-secret" not in str(exc.value)


def test_lenient_mode_only_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="presskit"):
        assert validate_config(strict=False, settings_obj=Settings(STRIPE_SECRET_KEY=None))
    assert "STRIPE_SECRET_KEY" in caplog.text


def test_settings_helpers():
    cfg = Settings(ALLOWED_ORIGINS="http://a.test, http://b.test,", ENV="Production")
    assert cfg.allowed_origins == ["http://a.test", "http://b.test"]
    assert cfg.is_production


def test_retry_delay_doubles_and_caps():
    assert [retry_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]
    assert retry_delay(10) == 30.0


def test_connect_with_retry_succeeds_for_reachable_store():
    sleeps = []
    engine = connect_with_retry("sqlite://", retries=3, sleep=sleeps.append)
    engine.dispose()
    assert sleeps == []


def test_connect_with_retry_gives_up_after_backoff(monkeypatch):
    class Unreachable:
        def connect(self):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        def dispose(self):
            self.disposed = True

    unreachable = Unreachable()
    monkeypatch.setattr(database, "build_engine", lambda url: unreachable)
    sleeps = []

    with pytest.raises(DatabaseConnectionError, match="after 3 attempts"):
        connect_with_retry("postgresql://db.invalid/presskit", retries=3, sleep=sleeps.append)
    assert sleeps == [1.0, 2.0]
    assert unreachable.disposed
