"""
web/routes.py -- Jinja2 template routes for the SessionGuard web UI.

These routes serve server-rendered HTML and share app.state with the API
routes (same credential store, session table, CSRF guard, login limiter).

Routes:
  GET  /           -- landing page: current user, one-shot flash message
  GET  /login      -- login form
  POST /login      -- rate limit -> CSRF -> credentials -> rotate session
  GET  /register   -- registration form
  POST /register   -- CSRF -> uniqueness -> password policy -> store
  GET  /logout     -- destroy session, redirect /
  GET  /buscar     -- echo a URL-escaped copy of ?query=

Handlers that hash or verify passwords are plain `def` endpoints. FastAPI
runs those on its worker thread pool, so bcrypt's deliberate slowness never
blocks the event loop serving other requests.

Failures from the Depends() gates (TooManyAttempts, InvalidToken) are turned
into responses by web/errors.py; failures inside a handler re-render the
originating form with an inline error.
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import (
    csrf_token_for,
    enforce_login_rate_limit,
    get_session,
    require_csrf_token,
    try_get_current_user,
)
from auth.errors import AuthError, InvalidCredentials, InvalidRegistration, UsernameTaken, WeakPassword
from auth.passwords import authenticate_user
from auth.sessions import SessionManager
from auth.store import MAX_EMAIL_LENGTH, UserStore

logger = logging.getLogger("sessionguard.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can show the
# logged-in user without every handler passing it explicitly.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

_MIN_AGE = 0
_MAX_AGE = 150

# Characters JavaScript's encodeURIComponent leaves alone besides [A-Za-z0-9].
_URI_COMPONENT_SAFE = "-_.!~*'()"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def render(request: Request, name: str, context: Optional[dict] = None, status_code: int = 200) -> HTMLResponse:
    """Render a template with the CSRF token for the caller's session.

    Every page gets `csrf_token`, so any form on it can post back.
    """
    ctx = {"csrf_token": csrf_token_for(request)}
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)


def _session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def _parse_age(raw: str) -> int:
    """Parse the age form field. Raises InvalidRegistration."""
    try:
        age = int(raw.strip())
    except ValueError:
        raise InvalidRegistration("Age must be a whole number.") from None
    if not _MIN_AGE <= age <= _MAX_AGE:
        raise InvalidRegistration(f"Age must be between {_MIN_AGE} and {_MAX_AGE}.")
    return age


def _clean_email(raw: str) -> str:
    email = raw.strip()
    if not email or "@" not in email or len(email) > MAX_EMAIL_LENGTH:
        raise InvalidRegistration("A valid email address is required.")
    return email


# ---------------------------------------------------------------------------
# GET / -- landing page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    """Show who is logged in and any pending flash message (read once)."""
    session = get_session(request)
    message = _session_manager(request).pop_flash(session)
    return render(request, "index.html", {"username": session.username, "message": message})


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form, with any pending flash message."""
    message = _session_manager(request).pop_flash(get_session(request))
    return render(request, "login.html", {"error": None, "message": message})


@router.post(
    "/login",
    response_class=HTMLResponse,
    dependencies=[Depends(enforce_login_rate_limit), Depends(require_csrf_token)],
)
def login_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
):
    """Check credentials; on success bind the user to a rotated session.

    The rate limiter and CSRF check have already passed by the time this
    body runs (see the route's dependencies). Unknown username and wrong
    password produce the same message.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, username, password)
    if user is None:
        logger.info("Failed login for %r", username)
        return render(
            request,
            "login.html",
            {"error": InvalidCredentials.message, "message": None, "username": username},
        )

    manager = _session_manager(request)
    session = manager.authenticate(get_session(request), user.username)
    manager.set_flash(session, "Login successful.")
    request.state.session = session
    logger.info("User %r logged in", user.username)

    resp = RedirectResponse("/", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return render(request, "register.html", {"error": None, "form_data": {}})


@router.post("/register", response_class=HTMLResponse, dependencies=[Depends(require_csrf_token)])
def register_post(
    request: Request,
    username: str = Form(default=""),
    email: str = Form(default=""),
    age: str = Form(default=""),
    password: str = Form(default=""),
):
    """Create an account and send the user to the login form.

    Order: uniqueness, then email and age, then (inside the store) password
    policy, hash, insert. Any failure re-renders the form with the message
    and the non-secret fields filled back in.
    """
    form_data = {"username": username, "email": email, "age": age}
    user_store: UserStore = request.app.state.user_store
    try:
        if username and user_store.lookup(username) is not None:
            raise UsernameTaken()
        user_store.register(username, _clean_email(email), _parse_age(age), password)
    except AuthError as exc:
        logger.info("Registration rejected for %r: %s", username, exc.code)
        error = exc.message
        if isinstance(exc, WeakPassword) and exc.violations:
            error = f"{exc.message} Missing: {', '.join(exc.violations)}."
        return render(request, "register.html", {"error": error, "form_data": form_data})

    _session_manager(request).set_flash(get_session(request), "Registration successful. Please log in.")
    return RedirectResponse("/login", status_code=302)


# ---------------------------------------------------------------------------
# Logout -- a plain GET link from the nav; SameSite=Strict keeps cross-site
# links from carrying the cookie.
# ---------------------------------------------------------------------------


@router.get("/logout")
def logout(request: Request) -> RedirectResponse:
    """Destroy the session and redirect to the landing page."""
    session = get_session(request)
    if session.username is not None:
        logger.info("User %r logged out", session.username)
    _session_manager(request).end(session)
    request.state.session = None
    return RedirectResponse("/", status_code=302)


# ---------------------------------------------------------------------------
# GET /buscar -- escaping demo
# ---------------------------------------------------------------------------


@router.get("/buscar", response_class=HTMLResponse)
def search(query: str = "") -> HTMLResponse:
    """Echo the query parameter back, percent-encoded like encodeURIComponent.

    Percent-encoding leaves no <, >, &, or quote characters, so the echo is
    safe to place in HTML as-is.
    """
    safe_query = quote(query, safe=_URI_COMPONENT_SAFE)
    return HTMLResponse(f"Searching results for: {safe_query}")
