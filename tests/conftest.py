"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

# ---------------------------------------------------------------------------
# phaeton.api.deps validates the identity backend settings at import time,
# so they must be present before anything imports the app.
# ---------------------------------------------------------------------------
os.environ.setdefault("SUPABASE_URL", "https://identity.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("PHAETON_CONFIG", str(Path(__file__).parent / "config.test.yaml"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from phaeton.auth.identity import IdentitySession  # noqa: E402
from phaeton.config import PlatformSecrets  # noqa: E402
from phaeton.database.engine import init_db  # noqa: E402
from phaeton.errors import IdentityBackendError  # noqa: E402

TEST_SECRETS = PlatformSecrets(
    discord_bot_token="discord-bot-token",
    telegram_bot_token="123456:telegram-bot-token",
    discord_client_id="discord-client",
    discord_client_secret="discord-secret",
    twitter_client_id="twitter-client",
    twitter_client_secret="twitter-secret",
)


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.get_event_loop_policy().new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Phaeton tables.

    StaticPool so every thread (``run_db`` uses ``asyncio.to_thread``) sees
    the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Fake upstreams
# ---------------------------------------------------------------------------
class FakeUpstream:
    """Canned HTTP responses for platform APIs, recording every request.

    Routes match on method + URL prefix.  A route given several responses
    plays them in order and then repeats the last one.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: list[tuple[str, str, list]] = []

    def add(self, method: str, url_prefix: str, *responses) -> None:
        """Each response is ``status`` or ``(status, json_body)``."""
        self._routes.append((method.upper(), url_prefix, list(responses)))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, prefix, responses in self._routes:
            if request.method == method and str(request.url).startswith(prefix):
                spec = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(spec, tuple):
                    status, body = spec
                    return httpx.Response(status, json=body)
                return httpx.Response(spec)
        raise AssertionError(f"Unexpected upstream call: {request.method} {request.url}")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_to(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in str(r.url)]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


class FakeIdentityBackend:
    """In-memory identity backend: access token → user."""

    def __init__(self) -> None:
        self.users: dict[str, dict] = {}
        self.rotations: dict[str, IdentitySession] = {}
        self.signed_out: list[str] = []
        self.fail_wallet_login = False
        self._counter = 0

    def register(self, access_token: str, user: dict) -> None:
        self.users[access_token] = user

    def rotate(self, access_token: str, new_session: IdentitySession) -> None:
        """Make the next refresh of *access_token* hand out *new_session*."""
        self.rotations[access_token] = new_session

    async def refresh_session(self, access_token: str, refresh_token: str) -> IdentitySession:
        if access_token in self.rotations:
            return self.rotations[access_token]
        user = self.users.get(access_token)
        if user is None:
            raise IdentityBackendError("Identity backend returned 401", status_code=401)
        return IdentitySession(
            access_token=access_token,
            refresh_token=refresh_token or None,
            expires_in=3600,
            user=user,
        )

    async def wallet_login(self, address: str, message: str, signature: str) -> IdentitySession:
        if self.fail_wallet_login:
            raise IdentityBackendError("Identity backend returned 502", status_code=502)
        self._counter += 1
        user = {"id": f"user-{address[2:10]}", "email": f"{address}@wallet.phaeton"}
        access = f"access-{self._counter}"
        self.register(access, user)
        return IdentitySession(
            access_token=access,
            refresh_token=f"refresh-{self._counter}",
            expires_in=3600,
            user=user,
        )

    async def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)
        self.users.pop(access_token, None)


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------
class ApiHarness:
    def __init__(self, client, identity, upstream, engine, app) -> None:
        self.client = client
        self.identity = identity
        self.upstream = upstream
        self.engine = engine
        self.app = app

    def login(self, user_id: str = "user-1", email: str | None = None) -> dict:
        """Attach a session cookie for a registered fake user."""
        from phaeton.constants import ACCESS_TOKEN_COOKIE

        user = {"id": user_id, "email": email or f"{user_id}@example.com"}
        token = f"token-{user_id}"
        self.identity.register(token, user)
        self.client.cookies.set(ACCESS_TOKEN_COOKIE, token)
        return user


@pytest.fixture
def api(db_engine, upstream):
    """TestClient with the lifespan running and every upstream faked."""
    from fastapi.testclient import TestClient

    from phaeton.api.deps import get_engine, get_http_client, get_platform_secrets
    from phaeton.api.main import app
    from phaeton.auth.session import SessionManager

    http_client = upstream.client()
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_platform_secrets] = lambda: TEST_SECRETS

    identity = FakeIdentityBackend()
    with TestClient(app, raise_server_exceptions=False) as client:
        app.state.identity_backend = identity
        app.state.session_manager = SessionManager(identity)
        yield ApiHarness(client, identity, upstream, db_engine, app)

    app.dependency_overrides.clear()
