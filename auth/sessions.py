"""
auth/sessions.py -- Server-side session table and the session cookie.

The browser only ever holds an opaque, unguessable session id
(secrets.token_urlsafe, 256 bits). Everything else -- the bound username,
the CSRF secret, the one-shot flash message -- stays in this process.

Lifecycle per browser:
  Anonymous --(login)--> Authenticated --(logout / expiry)--> Anonymous

  - Lifetime is fixed at creation (Settings.session_max_age_seconds, default
    60s). Activity does not extend it.
  - Login rotates the session id so an id planted before authentication is
    worthless afterwards (session fixation). The rotated session keeps the
    original expiry and CSRF secret.
  - An id that points at an expired session is dropped and answered with a
    fresh anonymous session; if the stale one was logged in, the new one
    carries a flash message saying so.

Concurrency: one threading.Lock guards the table. Every lookup-then-mutate
happens inside a single critical section.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import math
import secrets
import threading
import time
from collections.abc import Callable

from auth.errors import SessionExpired
from auth.models import Session
from core.config import get_settings

logger = logging.getLogger("sessionguard.auth")

Clock = Callable[[], float]


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionManager:
    """In-memory session table keyed by session id.

    Usage:
        manager = SessionManager(max_age=60)
        session = manager.start_or_resume(request.cookies.get("session_id"))
        session = manager.authenticate(session, "alice")   # new id
        manager.end(session)
    """

    def __init__(self, max_age: int = 60, clock: Clock = time.time) -> None:
        self.max_age = max_age
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lookup / creation
    # ------------------------------------------------------------------

    def start_or_resume(self, session_id: str | None) -> Session:
        """Return the live session for session_id, or issue a new anonymous one."""
        try:
            session = self.resume(session_id)
        except SessionExpired as exc:
            session = self._create()
            if exc.username is not None:
                logger.info("Session expired for user %r", exc.username)
                self.set_flash(session, exc.message)
            return session
        if session is None:
            session = self._create()
        return session

    def resume(self, session_id: str | None) -> Session | None:
        """Return the live session, None for unknown ids.

        Raises SessionExpired (after dropping the record) when the id names a
        session whose lifetime is over.
        """
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if self._clock() >= session.expires_at:
                del self._sessions[session_id]
                raise SessionExpired(username=session.username)
            return session

    def _create(self) -> Session:
        session = Session(
            id=_new_session_id(),
            expires_at=self._clock() + self.max_age,
            csrf_secret=secrets.token_urlsafe(32),
        )
        with self._lock:
            self._sessions[session.id] = session
        return session

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def authenticate(self, session: Session, username: str) -> Session:
        """Bind username to the session and rotate its id.

        Returns the rotated session; the old id no longer resolves. Expiry,
        CSRF secret and any pending flash message carry over unchanged.
        """
        with self._lock:
            self._sessions.pop(session.id, None)
            rotated = Session(
                id=_new_session_id(),
                expires_at=session.expires_at,
                csrf_secret=session.csrf_secret,
                username=username,
                flash=session.flash,
            )
            self._sessions[rotated.id] = rotated
        return rotated

    def end(self, session: Session) -> None:
        """Destroy the session. Later requests carrying its id are anonymous."""
        with self._lock:
            self._sessions.pop(session.id, None)

    def is_expired(self, session: Session) -> bool:
        return self._clock() >= session.expires_at

    def remaining_seconds(self, session: Session) -> int:
        """Whole seconds left before expiry, never negative."""
        return max(0, math.ceil(session.expires_at - self._clock()))

    # ------------------------------------------------------------------
    # Flash messages
    # ------------------------------------------------------------------

    def set_flash(self, session: Session, message: str) -> None:
        with self._lock:
            session.flash = message

    def pop_flash(self, session: Session) -> str | None:
        """Return the pending flash message and clear it."""
        with self._lock:
            message, session.flash = session.flash, None
        return message

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Drop every expired session. Returns the number removed."""
        now = self._clock()
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if now >= s.expires_at]
            for sid in stale:
                del self._sessions[sid]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session: Session, manager: SessionManager) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests, including top-level
        navigations -- the first line of CSRF defence, the token is the second.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: the session's remaining lifetime, so cookie and server record
        expire together. Re-sending it on every response does not extend
        anything; the server-side expiry is fixed.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=session.id,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
        max_age=manager.remaining_seconds(session),
    )


def clear_session_cookie(response) -> None:
    settings = get_settings()
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
    )
