"""VerificationRecordStore protocol — the verification service depends on this, not on MongoDB."""

from typing import Optional, Protocol

from schemas.models.verification import VerificationRecord


class VerificationRecordStore(Protocol):
    async def find_by_origin(self, origin: str) -> Optional[VerificationRecord]: ...

    async def find_by_id(self, identity_id: str) -> Optional[VerificationRecord]: ...

    async def upsert(self, record: VerificationRecord) -> None:
        """Insert or replace keyed by identity id. Raises PersistenceError."""
        ...
