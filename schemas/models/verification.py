"""
Verification record document model.

Maps to the `verifications` MongoDB collection.

One document per verified identity (``_id`` = provider user id). A repeat
verification by the same identity replaces the document. ``origin`` is the
client network address the verification came from and doubles as the
origin-level dedup key.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationRecord(MongoBaseModel):
    """Document model for the `verifications` collection."""

    display_name: str
    email: Optional[str] = None
    origin: str
    device: str
    updated_at: datetime = Field(default_factory=_utcnow)
