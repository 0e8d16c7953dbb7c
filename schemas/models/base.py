"""
Base model for MongoDB document models.

Documents here are keyed by an externally assigned string id (the identity
provider's user id), so ``_id`` is a plain ``str`` rather than an ObjectId.
MongoBaseModel provides to_mongo() / from_mongo() for round-tripping between
Python objects and raw MongoDB dicts.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MongoBaseModel(BaseModel):
    """
    Base for all document models.

    to_mongo()  — converts model → dict suitable for pymongo insert/replace
    from_mongo() — converts raw pymongo dict → model instance (returns None
                    gracefully when passed None)
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")

    def to_mongo(self) -> dict:
        """Return a dict ready for MongoDB, with ``id`` renamed to ``_id``."""
        return self.model_dump(by_alias=True, exclude_none=False)

    @classmethod
    def from_mongo(cls, data: Optional[dict]) -> Optional["MongoBaseModel"]:
        """Build a model instance from a raw MongoDB document dict.

        Returns None when data is None (e.g. find_one returns None).
        """
        if data is None:
            return None
        return cls.model_validate(data)
