"""
auth/dependencies.py -- FastAPI Depends() helpers for sessions, CSRF and login throttling.

The session itself is loaded by the HTTP middleware in api/main.py and parked
on request.state.session; everything here reads it from there.

Dependencies raise auth.errors exceptions rather than HTTPException. The web
layer registers handlers that turn them into the right page or status, so
the same check can guard any route without knowing how it renders.

Order matters on POST /login: FastAPI resolves a route's `dependencies=[...]`
in list order, so listing enforce_login_rate_limit before
require_csrf_token makes the limiter the first gate.

Layer rule: no imports from api/ or web/.
  auth/dependencies.py may import from fastapi/slowapi because this module is
  part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request
from slowapi.util import get_remote_address

from auth.csrf import CSRF_FORM_FIELD, CSRF_HEADER, SAFE_METHODS, CsrfGuard
from auth.errors import InvalidToken
from auth.models import Session

logger = logging.getLogger("sessionguard.auth")


def get_session(request: Request) -> Session:
    """Return the session the middleware attached to this request."""
    return request.state.session


def try_get_current_user(request: Request) -> str | None:
    """Return the authenticated username, or None for anonymous sessions.

    Never raises -- safe to call from templates.
    """
    session: Session | None = getattr(request.state, "session", None)
    if session is None:
        return None
    return session.username


def csrf_token_for(request: Request) -> str:
    """Return the CSRF token to embed in forms rendered for this request."""
    guard: CsrfGuard = request.app.state.csrf
    return guard.issue_token(get_session(request))


def enforce_login_rate_limit(request: Request) -> None:
    """Count this login attempt against the client's address.

    Raises TooManyAttempts once the window's budget is spent. Runs before
    CSRF and credential checks, so a blocked client learns nothing more.
    """
    client_key = get_remote_address(request)
    request.app.state.login_limiter.check_and_record(client_key)


async def require_csrf_token(request: Request) -> None:
    """Reject mutating requests whose token does not match the session's.

    Token sources, first non-empty wins: X-CSRF-Token header, then the
    `_csrf` form field. Safe methods pass untouched. Raises InvalidToken.
    """
    if request.method in SAFE_METHODS:
        return
    submitted = request.headers.get(CSRF_HEADER, "")
    if not submitted:
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        submitted = value if isinstance(value, str) else ""

    guard: CsrfGuard = request.app.state.csrf
    try:
        guard.verify_token(get_session(request), submitted)
    except InvalidToken:
        logger.warning(
            "CSRF token rejected on %s %s from %s",
            request.method,
            request.url.path,
            get_remote_address(request),
        )
        raise
