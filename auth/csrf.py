"""
auth/csrf.py -- Per-session anti-forgery tokens.

Token = HMAC-SHA256(SECRET_KEY, session.csrf_secret), hex encoded.

  - Deterministic per session: every form rendered during one session
    carries the same token, so multiple open tabs keep working.
  - The csrf_secret never leaves the server; only the HMAC does. Without
    SECRET_KEY the token cannot be derived even from a leaked secret.
  - Different sessions have different secrets, so a token lifted from one
    session (or from an expired one) does not validate against another.

verify_token() uses hmac.compare_digest so a mismatch takes the same time
wherever the first differing character sits.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hashlib
import hmac

from auth.errors import InvalidToken
from auth.models import Session

CSRF_FORM_FIELD = "_csrf"
CSRF_HEADER = "X-CSRF-Token"
SAFE_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS"})


class CsrfGuard:
    """Issues and checks CSRF tokens bound to a session's csrf_secret."""

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("CsrfGuard requires a non-empty secret key")
        self._key = secret_key.encode("utf-8")

    def issue_token(self, session: Session) -> str:
        return hmac.new(self._key, session.csrf_secret.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify_token(self, session: Session, submitted: str | None) -> None:
        """Raise InvalidToken unless submitted matches the session's token."""
        if not submitted:
            raise InvalidToken()
        expected = self.issue_token(session)
        if not hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8")):
            raise InvalidToken()
