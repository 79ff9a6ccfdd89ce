"""Shared fixtures: fake clock, isolated database, app and client."""

import pytest
from fastapi.testclient import TestClient

from acquisitions.app.core.config import settings
from acquisitions.app.core.security import get_token_service
from acquisitions.app.db import async_session
from acquisitions.app.main import create_app
from acquisitions.app.middleware.security import InMemoryWindowStore, LocalPolicyEngine


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_000_000.0):
        self.start = start
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def at(self, offset: float) -> None:
        """Jump to ``start + offset`` seconds."""
        self.now = self.start + offset


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def window_store(clock):
    return InMemoryWindowStore(clock=clock)


@pytest.fixture
def policy_engine(window_store):
    return LocalPolicyEngine(store=window_store)


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    """Point the app at a fresh SQLite file for this test."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'acquisitions_test.db'}"
    monkeypatch.setattr(settings, "database_url", url)
    async_session.get_async_engine.cache_clear()
    monkeypatch.setattr(async_session, "_AsyncSessionLocal", None)
    return url


@pytest.fixture
def app(database_url, policy_engine):
    return create_app(policy_engine=policy_engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_token():
    """Sign a session token the way sign-in does."""
    def _make(user_id: int = 1, email: str = "user@example.com", role: str = "user") -> str:
        return get_token_service().sign({"id": user_id, "email": email, "role": role})
    return _make
