"""IdentityProvider protocol and the normalized Identity it returns."""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Identity:
    """Authenticated principal as reported by the provider (a copy, not owned here)."""

    id: str
    username: str
    display_name: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    def authorize_url(self, state: str) -> str: ...

    async def exchange_code(self, code: str) -> str:
        """Return an access token. Raises TokenExchangeError."""
        ...

    async def fetch_identity(self, access_token: str) -> Identity:
        """Raises IdentityFetchError."""
        ...
