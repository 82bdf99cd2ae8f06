"""
API response models for SessionGuard JSON endpoints.

Pydantic v2 shapes for the JSON side of the app. The dataclasses in
auth/models.py stay internal; handlers copy the fields they expose, which is
how the password hash stays out of every response.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """Stable `code` for clients, human `message`, optional `detail`."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Every JSON error body: {"error": {...}}."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Body of GET /api/v1/health. `components` maps component name to "ok" or "error"."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class DebugUserResponse(BaseModel):
    """One row of the development-only user listing.

    There is deliberately no password_hash field: even in development the
    listing must not hand out material for offline cracking.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    email: str
    age: int
    created_at: str
