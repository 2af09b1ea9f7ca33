"""
Shared test fixtures.

Provides:
  • a fake clock and a gate over an in-memory store
  • an initialized temporary SQLite database
  • a FastAPI TestClient wired to an in-memory auth gate whose identity
    resolver never touches the network

The `client` fixture runs the full lifespan (DB init / shutdown).
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app import db
from app.dependencies import get_auth_gate
from app.main import app
from app.services.auth_gate import AuthGate
from app.services.rate_limit_gate import RateLimitGate
from tests.mocks.models import POLICY, FakeClock
from tests.mocks.services import FlakyStateStore, edge_resolver


# ── Gate fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> FlakyStateStore:
    return FlakyStateStore()


@pytest.fixture()
def gate(store: FlakyStateStore, clock: FakeClock) -> RateLimitGate:
    return RateLimitGate(store, POLICY, clock=clock)


# ── Database ───────────────────────────────────────────────────────────────


@pytest.fixture()
async def sqlite_db(monkeypatch, tmp_path):
    """Fresh database file, initialized and closed around the test."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    await db.init_db()
    yield db
    await db.close_db()


# ── HTTP ───────────────────────────────────────────────────────────────────


@pytest.fixture()
def _test_env(monkeypatch, tmp_path) -> AuthGate:
    """
    Internal fixture that patches the DB path and the auth gate so the
    app lifespan runs cleanly against a temp database and no network.
    """
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))

    test_gate = AuthGate(store=FlakyStateStore(), resolver=edge_resolver(), policy=POLICY)
    monkeypatch.setattr("app.main.auth_gate", test_gate)
    app.dependency_overrides[get_auth_gate] = lambda: test_gate

    # ── Disable rate limiting in tests ────────────────────────────────
    from app.rate_limit import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)

    yield test_gate

    app.dependency_overrides.clear()


@pytest.fixture()
def test_gate(_test_env) -> AuthGate:
    """Public alias for tests that inspect the gate behind the client."""
    return _test_env


@pytest.fixture()
def client(_test_env: AuthGate) -> TestClient:
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def trusted_proxy(monkeypatch) -> frozenset[str]:
    """Treat the TestClient peer and two internal hops as trusted proxies."""
    proxies = frozenset({"testclient", "10.0.0.1", "10.0.0.2"})
    monkeypatch.setattr("app.dependencies.TRUSTED_PROXIES", proxies)
    return proxies
