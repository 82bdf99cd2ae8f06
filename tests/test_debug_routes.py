"""
tests/test_debug_routes.py -- The development-only /debug-users listing.

The test environment sets DEBUG=true and ENABLE_DEBUG_ENDPOINTS=true, so the
shared app has the route mounted. register_debug_routes() is also exercised
on a bare FastAPI() and driven over HTTP: 404 when switched off, the
listing when switched on.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.main import register_debug_routes
from auth.store import UserStore
from conftest import STRONG_PASSWORD
from core.config import Settings


def test_lists_registered_users_without_hashes(web):
    web.register(username="bob", email="bob@example.com", age="41")
    web.register(username="alice")

    resp = web.client.get("/debug-users")
    assert resp.status_code == 200
    users = resp.json()
    assert [u["username"] for u in users] == ["alice", "bob"]
    assert users[1]["email"] == "bob@example.com"
    assert users[1]["age"] == 41
    assert users[0]["created_at"]
    for u in users:
        assert "password_hash" not in u
        assert "password" not in u
    assert "$2b$" not in resp.text


def test_empty_listing(web):
    assert web.client.get("/debug-users").json() == []


def _bare_app(enabled: bool) -> tuple[FastAPI, bool]:
    """A FastAPI() with only the debug routes (maybe) mounted and a seeded store."""
    app = FastAPI()
    store = UserStore()
    store.register("carol", "carol@example.com", 52, STRONG_PASSWORD)
    app.state.user_store = store
    settings = Settings(_env_file=None, debug=True, enable_debug_endpoints=enabled)
    return app, register_debug_routes(app, settings)


def test_not_mounted_when_disabled():
    app, mounted = _bare_app(enabled=False)
    assert mounted is False
    assert TestClient(app).get("/debug-users").status_code == 404
    app.state.user_store.close()


def test_mounted_when_enabled():
    app, mounted = _bare_app(enabled=True)
    assert mounted is True
    resp = TestClient(app).get("/debug-users")
    assert resp.status_code == 200
    assert [u["username"] for u in resp.json()] == ["carol"]
    app.state.user_store.close()
