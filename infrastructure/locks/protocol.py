"""OriginGuard protocol — the verification service depends on this, not the concrete guard."""

from typing import AsyncContextManager, Protocol


class OriginGuard(Protocol):
    def hold(self, origin: str) -> AsyncContextManager[None]:
        """Exclusive section for *origin*.

        Raises OriginBusyError when the section cannot be entered in time,
        PersistenceError when the guard backend is unreachable.
        """
        ...
