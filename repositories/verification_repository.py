"""MongoDB repository for verification records.

All driver errors are wrapped in PersistenceError so the verification
service can tell a storage failure apart from a missing record.
"""

from typing import Optional

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from errors import PersistenceError
from schemas.models.verification import VerificationRecord
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)


class VerificationRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("origin", ASCENDING)], name="origin_idx")

    async def find_by_origin(self, origin: str) -> Optional[VerificationRecord]:
        try:
            doc = await self._col.find_one({"origin": origin})
        except PyMongoError as e:
            log.error(
                "verification_lookup_failed",
                by="origin",
                origin_hash=hash_ip(origin),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError("Verification lookup failed") from e
        return VerificationRecord.from_mongo(doc)

    async def find_by_id(self, identity_id: str) -> Optional[VerificationRecord]:
        try:
            doc = await self._col.find_one({"_id": identity_id})
        except PyMongoError as e:
            log.error(
                "verification_lookup_failed",
                by="id",
                identity_id=identity_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError("Verification lookup failed") from e
        return VerificationRecord.from_mongo(doc)

    async def upsert(self, record: VerificationRecord) -> None:
        try:
            await self._col.replace_one({"_id": record.id}, record.to_mongo(), upsert=True)
        except PyMongoError as e:
            log.error(
                "verification_upsert_failed",
                identity_id=record.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError("Verification record could not be saved") from e
