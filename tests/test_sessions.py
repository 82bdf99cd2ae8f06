"""Unit tests for auth/sessions.py -- SessionManager state transitions.

Covers:
- start_or_resume(): new session for missing/unknown ids, same session for live ids
- Fixed lifetime: live at 59s, expired at 60s, activity does not extend it
- authenticate(): binds the user, rotates the id, keeps expiry and CSRF secret
- end(): the id stops resolving
- Expired authenticated session -> fresh anonymous session with a flash message
- Flash messages are read once
- purge_expired()
"""

import pytest

from auth.errors import SessionExpired
from auth.sessions import SessionManager


@pytest.fixture
def manager(clock) -> SessionManager:
    return SessionManager(max_age=60, clock=clock)


def test_new_session_for_missing_cookie(manager: SessionManager, clock) -> None:
    session = manager.start_or_resume(None)
    assert session.username is None
    assert not session.is_authenticated
    assert session.expires_at == clock() + 60
    assert len(session.id) >= 32
    assert session.csrf_secret


def test_unknown_id_gets_new_session(manager: SessionManager) -> None:
    session = manager.start_or_resume("forged-session-id")
    assert session.id != "forged-session-id"


def test_ids_are_unique(manager: SessionManager) -> None:
    ids = {manager.start_or_resume(None).id for _ in range(50)}
    assert len(ids) == 50


def test_resume_live_session(manager: SessionManager) -> None:
    session = manager.start_or_resume(None)
    assert manager.start_or_resume(session.id) is session


def test_session_live_at_59_seconds(manager: SessionManager, clock) -> None:
    session = manager.authenticate(manager.start_or_resume(None), "alice")
    clock.advance(59)
    resumed = manager.start_or_resume(session.id)
    assert resumed.id == session.id
    assert resumed.username == "alice"
    assert not manager.is_expired(resumed)


def test_session_expired_at_60_seconds(manager: SessionManager, clock) -> None:
    session = manager.authenticate(manager.start_or_resume(None), "alice")
    clock.advance(60)
    assert manager.is_expired(session)
    resumed = manager.start_or_resume(session.id)
    assert resumed.id != session.id
    assert resumed.username is None


def test_activity_does_not_extend_lifetime(manager: SessionManager, clock) -> None:
    session = manager.start_or_resume(None)
    for _ in range(5):
        clock.advance(10)
        manager.start_or_resume(session.id)
    clock.advance(10)
    assert manager.start_or_resume(session.id).id != session.id


def test_resume_raises_session_expired(manager: SessionManager, clock) -> None:
    session = manager.authenticate(manager.start_or_resume(None), "alice")
    clock.advance(61)
    with pytest.raises(SessionExpired) as exc_info:
        manager.resume(session.id)
    assert exc_info.value.username == "alice"
    # Dropped on the first sighting; afterwards the id is simply unknown.
    assert manager.resume(session.id) is None


def test_expired_login_leaves_flash_on_new_session(manager: SessionManager, clock) -> None:
    session = manager.authenticate(manager.start_or_resume(None), "alice")
    clock.advance(60)
    fresh = manager.start_or_resume(session.id)
    assert manager.pop_flash(fresh) == SessionExpired.message


def test_expired_anonymous_session_has_no_flash(manager: SessionManager, clock) -> None:
    session = manager.start_or_resume(None)
    clock.advance(60)
    fresh = manager.start_or_resume(session.id)
    assert manager.pop_flash(fresh) is None


def test_authenticate_rotates_id(manager: SessionManager) -> None:
    anonymous = manager.start_or_resume(None)
    manager.set_flash(anonymous, "hello")
    authed = manager.authenticate(anonymous, "alice")

    assert authed.id != anonymous.id
    assert authed.username == "alice"
    assert authed.csrf_secret == anonymous.csrf_secret
    assert authed.expires_at == anonymous.expires_at
    assert authed.flash == "hello"
    # The pre-login id is dead: a planted id is worthless after login.
    assert manager.resume(anonymous.id) is None
    assert manager.resume(authed.id) is authed


def test_end_destroys_session(manager: SessionManager) -> None:
    session = manager.authenticate(manager.start_or_resume(None), "alice")
    manager.end(session)
    assert manager.resume(session.id) is None
    assert manager.start_or_resume(session.id).username is None


def test_flash_read_once(manager: SessionManager) -> None:
    session = manager.start_or_resume(None)
    manager.set_flash(session, "Registration successful.")
    assert manager.pop_flash(session) == "Registration successful."
    assert manager.pop_flash(session) is None


def test_remaining_seconds(manager: SessionManager, clock) -> None:
    session = manager.start_or_resume(None)
    clock.advance(20.5)
    assert manager.remaining_seconds(session) == 40
    clock.advance(100)
    assert manager.remaining_seconds(session) == 0


def test_purge_expired(manager: SessionManager, clock) -> None:
    old = manager.start_or_resume(None)
    clock.advance(30)
    young = manager.start_or_resume(None)
    clock.advance(30)
    assert manager.purge_expired() == 1
    assert len(manager) == 1
    assert manager.resume(young.id) is young
    assert manager.resume(old.id) is None
