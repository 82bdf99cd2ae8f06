"""
api/limiter.py -- Shared slowapi rate limiter instance.

This is the coarse, app-wide per-IP request cap (Settings.request_rate_limit),
applied to every route by SlowAPIMiddleware in api/main.py. Routes that must
never be throttled (health checks) opt out with @limiter.exempt.

It is NOT the login limiter. Login attempts are counted by
auth.ratelimit.LoginRateLimiter, which has its own window, budget and
failure page.

One module-level instance, so every route draws on the same in-memory
counters.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_settings().request_rate_limit],
    storage_uri="memory://",
)
