"""
auth/errors.py -- Failure taxonomy for registration, login, sessions and CSRF.

Every error carries a stable machine-readable `code` and a user-facing
`message`. Route code and the handlers in web/errors.py turn them into a
re-rendered form or a terminal status response; none of them is meant to
escape as an unhandled fault.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every recoverable auth failure."""

    code: str = "auth_error"
    message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class UsernameTaken(AuthError):
    code = "username_taken"
    message = "That username is already registered."


class WeakPassword(AuthError):
    """Password does not meet the policy. `violations` lists each unmet rule."""

    code = "weak_password"
    message = (
        "Password must be at least 12 characters and include an uppercase letter, "
        "a lowercase letter, a digit and a symbol."
    )

    def __init__(self, violations: list[str] | None = None) -> None:
        self.violations = list(violations or [])
        super().__init__()


class InvalidRegistration(AuthError):
    code = "invalid_registration"
    message = "Registration details are invalid."


class InvalidCredentials(AuthError):
    # Deliberately identical for unknown users and wrong passwords.
    code = "invalid_credentials"
    message = "Invalid username or password."


class TooManyAttempts(AuthError):
    code = "too_many_attempts"
    message = "Too many login attempts. Please try again later."

    def __init__(self, retry_after: int = 0) -> None:
        self.retry_after = max(0, int(retry_after))
        super().__init__()


class InvalidToken(AuthError):
    code = "invalid_csrf_token"
    message = "Invalid CSRF token. Please reload the page and try again."


class SessionExpired(AuthError):
    code = "session_expired"
    message = "Your session has expired. Please log in again."

    def __init__(self, username: str | None = None) -> None:
        self.username = username
        super().__init__()
