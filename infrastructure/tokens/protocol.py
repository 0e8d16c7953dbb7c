"""PendingTokenStore protocol — the verification service depends on this, not the concrete store."""

from typing import Protocol


class PendingTokenStore(Protocol):
    async def issue(self) -> str: ...

    async def consume(self, token: str) -> bool:
        """Atomically remove *token*; True for exactly one caller per issued token.

        Raises TokenExpiredError when the token existed but aged out.
        """
        ...
