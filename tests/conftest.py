from __future__ import annotations

import pytest


def configure_env(tmp_path, monkeypatch, env_overrides: dict[str, str] | None = None) -> None:
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6399/15")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("AUTH_SECRET", "test-secret-test-secret-test-secret-42")
    for key in ("SKIP_EMAIL_VERIFICATION", "MOCK_PAYMENTS", "SEED_DATABASE", "RESEND_API_KEY", "RATE_LIMIT_ENABLED"):
        monkeypatch.delenv(key, raising=False)
    for key, value in (env_overrides or {}).items():
        monkeypatch.setenv(key, value)

    from core.config import get_settings
    from core.db import create_schema, reset_engine
    from core.services.email import reset_email_client

    get_settings.cache_clear()
    reset_engine()
    reset_email_client()
    create_schema()


@pytest.fixture
def db(tmp_path, monkeypatch):
    """A fresh SQLite database; yields an open session that is committed on teardown."""
    configure_env(tmp_path, monkeypatch)
    from core.db import get_session_factory, reset_engine

    session = get_session_factory()()
    try:
        yield session
        session.commit()
    finally:
        session.close()
        reset_engine()


@pytest.fixture
def outbox():
    from core.services.email import get_email_client

    return get_email_client().outbox


@pytest.fixture
def failing_email(monkeypatch):
    """Every delivery attempt fails the way an unreachable Resend does."""
    from core.services.email import EmailClient, EmailDeliveryError

    def send(self, to, message):
        raise EmailDeliveryError("Resend delivery failed: connection refused")

    monkeypatch.setattr(EmailClient, "send", send)
