"""
api/main.py -- The SessionGuard FastAPI app: lifespan, middleware, JSON errors, health.

Run with:      uvicorn asgi:app --reload

Request path, outermost first (Starlette wraps each newly added middleware
around the ones added before it):
  log_requests          -- method, path, status, latency, client per request
  TrustedHostMiddleware -- 400 for Host headers outside ALLOWED_HOSTS
  SlowAPIMiddleware     -- app-wide per-IP request cap (api/limiter.py)
  load_session          -- cookie -> request.state.session on the way in,
                           session -> Set-Cookie on the way out

Requests turned away by the host filter or the request cap never reach
load_session, so they create no session and get no cookie.

The lifespan creates the credential store, session table, CSRF guard and
login limiter on app.state, and runs a background task that purges expired
sessions and elapsed login counters.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.debug import router as debug_router
from auth.csrf import CsrfGuard
from auth.ratelimit import LoginRateLimiter
from auth.sessions import SessionManager, clear_session_cookie, set_session_cookie
from auth.store import UserStore
from core.config import Settings, get_settings

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionguard.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Startup / shutdown
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: float) -> None:
    """Every `interval` seconds, drop expired sessions and stale login counters.

    Lookups already ignore expired entries; this keeps the tables from
    growing. Cancelled by the lifespan on shutdown.
    """
    while True:
        await asyncio.sleep(interval)
        sessions = app.state.session_manager.purge_expired()
        counters = app.state.login_limiter.purge_stale()
        if sessions or counters:
            logger.debug("Purged %d expired sessions, %d stale login counters", sessions, counters)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared auth state on app.state and tear it down on exit.

    Handlers reach these objects through request.app.state only.
    """
    settings = get_settings()
    logger.info("SessionGuard starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.session_manager = SessionManager(max_age=settings.session_max_age_seconds)
    app.state.csrf = CsrfGuard(settings.secret_key)
    app.state.login_limiter = LoginRateLimiter(
        max_attempts=settings.login_max_attempts,
        window_seconds=settings.login_window_seconds,
    )
    logger.info(
        "Auth initialized (session_max_age=%ds, login limit=%d per %ds)",
        settings.session_max_age_seconds,
        settings.login_max_attempts,
        settings.login_window_seconds,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("SessionGuard stopped")


app = FastAPI(
    title="SessionGuard",
    description="Session-based login demo with CSRF protection and login rate limiting.",
    version=VERSION,
    lifespan=lifespan,
    # Server-rendered app: no public schema browser.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware (registered innermost first)
# ---------------------------------------------------------------------------


@app.middleware("http")
async def load_session(request: Request, call_next):
    """Attach the caller's session to request.state and refresh its cookie.

    Handlers that change the session (login rotates it, logout ends it)
    replace request.state.session; whatever is there when the handler
    returns decides the cookie. None means the session was destroyed and the
    cookie is cleared.
    """
    settings = get_settings()
    manager: SessionManager = request.app.state.session_manager
    request.state.session = manager.start_or_resume(request.cookies.get(settings.session_cookie_name))

    response = await call_next(request)

    current = request.state.session
    if current is None:
        clear_session_cookie(response)
    else:
        set_session_cookie(response, current, manager)
    return response


app.state.limiter = limiter  # SlowAPIMiddleware reads it from here
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d in %.1fms (%s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "unknown",
    )
    return response


def register_debug_routes(app: FastAPI, settings: Settings) -> bool:
    """Mount the development user listing when the configuration allows it.

    Returns True if the routes were mounted. Settings validation already
    refuses ENABLE_DEBUG_ENDPOINTS without DEBUG, so this never mounts in a
    production configuration.
    """
    if not settings.enable_debug_endpoints:
        return False
    app.include_router(debug_router, tags=["Debug"])
    logger.warning("Debug endpoints enabled: /debug-users exposes every registered account")
    return True


register_debug_routes(app, _settings)
# asgi.py adds the HTML routes.


# ---------------------------------------------------------------------------
# JSON error envelope
#
# Auth failures on the HTML routes never reach these; web/errors.py answers
# them with pages or plain text.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 once a client exceeds the app-wide request cap."""
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unhandled. The traceback goes to the log, not the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
@limiter.exempt
def health(request: Request) -> HealthResponse:
    """Liveness probe: version plus one status per component.

    Exempt from the app-wide cap so load balancer probes are never throttled.
    """
    database_ok = request.app.state.user_store.ping()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if database_ok else "error"},
    )
