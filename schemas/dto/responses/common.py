"""
Response shapes shared by the verification and health endpoints.

ErrorResponse   — body produced by the AppError handler (AppError.to_dict())
HealthResponse  — GET /health
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict

CheckStatus = Literal["ok", "error", "not_configured"]


class ErrorResponse(BaseModel):
    """Typed errors only; verification rejections are rendered as pages or
    ``{status, reason}`` instead."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """``checks`` maps each backing service (mongodb, redis) to its status.

    Redis being ``not_configured`` is a valid single-instance deployment
    and does not degrade the overall status.
    """

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["healthy", "degraded", "unhealthy"]
    checks: dict[str, CheckStatus]
