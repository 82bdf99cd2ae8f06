"""
web/errors.py -- Turn auth gate failures into HTML-side responses.

The Depends() gates in auth/dependencies.py raise auth.errors exceptions
before a route body runs. FastAPI routers cannot carry exception handlers,
so asgi.py calls register_error_handlers(app) when it mounts the web router.

  InvalidToken     -> 403 plain text. Terminal: the route never ran and the
                      form is not re-rendered.
  TooManyAttempts  -> the login form again, status 429, Retry-After header.
  other AuthError  -> 400 plain text with the error's message.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from auth.errors import AuthError, InvalidToken, TooManyAttempts
from web.routes import render


async def invalid_token_handler(request: Request, exc: InvalidToken) -> Response:
    return PlainTextResponse(f"Error: {exc.message}", status_code=403)


async def too_many_attempts_handler(request: Request, exc: TooManyAttempts) -> Response:
    response = render(request, "login.html", {"error": exc.message, "message": None}, status_code=429)
    response.headers["Retry-After"] = str(exc.retry_after)
    return response


async def auth_error_handler(request: Request, exc: AuthError) -> Response:
    return PlainTextResponse(f"Error: {exc.message}", status_code=400)


def register_error_handlers(app: FastAPI) -> None:
    # Starlette picks the handler registered for the closest class in the MRO,
    # so the AuthError fallback never shadows the specific ones.
    app.add_exception_handler(InvalidToken, invalid_token_handler)
    app.add_exception_handler(TooManyAttempts, too_many_attempts_handler)
    app.add_exception_handler(AuthError, auth_error_handler)
