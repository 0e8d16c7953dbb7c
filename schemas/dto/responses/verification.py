"""
Response DTOs for verification endpoints.

TokenIssuanceResponse       — GET /api/v1/verification/token
VerificationStatusResponse  — GET /api/v1/verification/callback
VerificationRecordResponse  — GET /user-info/{identity_id}
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.verification import VerificationRecord


class TokenIssuanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    authorize_url: str
    expires_in: int


class VerificationStatusResponse(BaseModel):
    """``status`` is "verified" or "rejected"; ``reason`` is set only on rejection."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    reason: Optional[str] = None


class VerificationRecordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str
    email: Optional[str] = None
    origin: str
    device: str
    updated_at: datetime

    @classmethod
    def from_record(cls, record: VerificationRecord) -> "VerificationRecordResponse":
        return cls(
            id=record.id,
            display_name=record.display_name,
            email=record.email,
            origin=record.origin,
            device=record.device,
            updated_at=record.updated_at,
        )
