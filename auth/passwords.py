"""
auth/passwords.py -- Password policy, bcrypt hashing, and credential checks.

Security design decisions:
  Hashing: bcrypt used directly (no passlib wrapper). bcrypt embeds a fresh
       random salt and the cost factor in every hash string, so
       verify_password() needs nothing but the stored value. The cost factor
       comes from Settings.bcrypt_rounds.

  Verification: bcrypt.checkpw compares digests in constant time, so the
       position of the first differing byte does not show up in timing.

  Policy: checked BEFORE hashing by the credential store, never by the
       hasher itself. bcrypt silently ignores everything past 72 bytes, so the
       policy caps the encoded length there instead of accepting passwords
       whose tail would not count.

  Enumeration: authenticate_user() always runs one bcrypt verification, against
       _DUMMY_HASH when the username is unknown, so an unknown user and a wrong
       password cost the same.

Hashing is slow on purpose. Callers are plain `def` FastAPI endpoints, which
run on the worker thread pool rather than the event loop.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import WeakPassword
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("sessionguard.auth")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 12
MAX_PASSWORD_BYTES = 72  # bcrypt input limit

# (pattern, human-readable rule). ASCII classes: an accented letter counts as
# a symbol, not as an upper/lowercase letter.
_CHARACTER_RULES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[0-9]"), "a digit"),
    (re.compile(r"[\W_]", re.ASCII), "a symbol"),
)


def password_policy_violations(password: str) -> list[str]:
    """Return every rule the password fails. An empty list means acceptable."""
    violations: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        violations.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        violations.append(f"at most {MAX_PASSWORD_BYTES} bytes")
    for pattern, rule in _CHARACTER_RULES:
        if not pattern.search(password):
            violations.append(rule)
    return violations


def check_password_policy(password: str) -> None:
    """Raise WeakPassword listing the unmet rules, or return None."""
    violations = password_policy_violations(password)
    if violations:
        raise WeakPassword(violations)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash or a password bcrypt refuses (over 72 bytes on
    bcrypt >= 5) is a non-match, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login against an unknown user is
# not measurably faster than later ones.
_DUMMY_HASH: str = hash_password("sessionguard_timing_dummy")


# ---------------------------------------------------------------------------
# Credential check (constant-time with respect to user existence)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Check a username/password pair with timing equalization.

    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure. Callers map None to
    InvalidCredentials without saying which half was wrong.
    """
    user = store.lookup(username)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
