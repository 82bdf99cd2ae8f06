"""
tests/conftest.py -- Shared test fixtures for SessionGuard.

Contents:
  - FakeClock: a hand-advanced clock injected into the session table and
    the login limiter so expiry and window tests never sleep
  - _patch_lifespan(): wires isolated stores into app.state, bypassing real startup
  - web: a WebSession (TestClient + clock + form helpers) with
    follow_redirects=False, fresh state per test

Design: every web test gets its own lifespan run, so sessions, rate-limit
counters and the in-memory user table never leak between tests. Each
UserStore() opens its own private in-memory SQLite database.

Environment variables must be set before any core/auth import so
get_settings() sees them: DEBUG auto-generates SECRET_KEY, the low bcrypt
cost keeps hashing fast, and the app-wide request cap is lifted far above
anything a test sends.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENABLE_DEBUG_ENDPOINTS", "true")
os.environ.setdefault("REQUEST_RATE_LIMIT", "10000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.csrf import CsrfGuard
from auth.ratelimit import LoginRateLimiter
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

STRONG_PASSWORD = "Str0ng!Passw0rd"

_CSRF_RE = re.compile(r'name="_csrf" value="([0-9a-f]+)"')


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class WebSession:
    """A browser-like TestClient plus helpers for the HTML forms."""

    def __init__(self, client: TestClient, clock: FakeClock) -> None:
        self.client = client
        self.clock = clock

    @property
    def state(self):
        return self.client.app.state

    def csrf_token(self, path: str = "/login") -> str:
        """GET a page and pull the hidden _csrf field out of its form."""
        resp = self.client.get(path)
        match = _CSRF_RE.search(resp.text)
        assert match, f"No CSRF token on {path}: {resp.text[:200]}"
        return match.group(1)

    def register(
        self,
        username: str = "alice",
        password: str = STRONG_PASSWORD,
        email: str = "alice@example.com",
        age: str = "30",
        token: str | None = None,
    ):
        if token is None:
            token = self.csrf_token("/register")
        return self.client.post(
            "/register",
            data={"username": username, "email": email, "age": age, "password": password, "_csrf": token},
        )

    def login(self, username: str = "alice", password: str = STRONG_PASSWORD, token: str | None = None):
        if token is None:
            token = self.csrf_token("/login")
        return self.client.post("/login", data={"username": username, "password": password, "_csrf": token})

    def landing_page(self) -> str:
        return self.client.get("/").text

    def session_cookie(self) -> str | None:
        return self.client.cookies.get(get_settings().session_cookie_name)


# ---------------------------------------------------------------------------
# Lifespan patch
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, clock: FakeClock):
    """Build a lifespan that installs the given store and a clock-driven session
    table and login limiter.

    purge_task is a real asyncio.Task that just sleeps, because shutdown calls
    .cancel() on it and the real purge loop would touch the fake clock.
    """
    settings = get_settings()

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.session_manager = SessionManager(max_age=settings.session_max_age_seconds, clock=clock)
        app.state.csrf = CsrfGuard(settings.secret_key)
        app.state.login_limiter = LoginRateLimiter(
            max_attempts=settings.login_max_attempts,
            window_seconds=settings.login_window_seconds,
            clock=clock,
        )
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore()
    yield store
    store.close()


@pytest.fixture
def web(user_store: UserStore, clock: FakeClock) -> Generator[WebSession, None, None]:
    """Yield a WebSession against the real app with isolated state.

    follow_redirects=False is essential: tests assert on redirect
    locations and on the Set-Cookie headers of the redirect itself.
    """
    app.router.lifespan_context = _patch_lifespan(user_store, clock)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield WebSession(client, clock)
