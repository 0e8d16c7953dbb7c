"""RoleGrantClient protocol — services depend on this, not the concrete implementation."""

from enum import Enum
from typing import Protocol


class GrantOutcome(str, Enum):
    GRANTED = "granted"
    ALREADY_HELD = "already_held"
    NOT_MEMBER = "not_member"
    ROLE_MISSING = "role_missing"


class RoleGrantClient(Protocol):
    async def grant(self, identity_id: str) -> GrantOutcome:
        """Raises RoleGrantError on transport failures or unexpected responses."""
        ...
