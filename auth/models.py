"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, managers and
routes do the work; these only own the shape.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class User:
    """A registered account.

    Created once on registration and never mutated or deleted afterwards,
    hence frozen. password_hash is the full bcrypt string (algorithm, cost
    and salt embedded) and is never empty.
    """

    username: str
    password_hash: str
    email: str
    age: int
    created_at: str | None = None


@dataclass
class Session:
    """Server-side state for one browser, referenced by the cookie's id only.

    username is None while the session is anonymous. expires_at is a clock
    timestamp fixed at creation; login rotates `id` but keeps expires_at and
    csrf_secret. flash holds at most one message, cleared on first read.
    """

    id: str
    expires_at: float
    csrf_secret: str
    username: str | None = None
    flash: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.username is not None


@dataclass
class RateLimitCounter:
    """Login attempts seen from one client key in the current window."""

    client_key: str
    window_start: float
    attempt_count: int = 0
