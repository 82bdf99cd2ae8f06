"""
api/routes/debug.py -- Development-only user listing.

Routes:
  GET /debug-users  -- every registered account as JSON

This router is only mounted when Settings.enable_debug_endpoints is true,
which core/config.py refuses unless DEBUG=true as well. In a production
configuration the path does not exist (404), rather than existing behind a
check that could be misconfigured.

Password hashes are never included (see DebugUserResponse).
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.models import DebugUserResponse
from auth.store import UserStore

router = APIRouter()


@router.get("/debug-users", response_model=list[DebugUserResponse])
def list_users(request: Request) -> list[DebugUserResponse]:
    """Return all registered users ordered by username."""
    user_store: UserStore = request.app.state.user_store
    return [
        DebugUserResponse(
            username=u.username,
            email=u.email,
            age=u.age,
            created_at=u.created_at or "",
        )
        for u in user_store.list_users()
    ]
