"""Identity provider clients (OAuth2 authorization-code flow)."""

from infrastructure.oauth.discord import DiscordIdentityProvider, extract_identity_from_discord
from infrastructure.oauth.protocol import Identity, IdentityProvider

__all__ = [
    "DiscordIdentityProvider",
    "Identity",
    "IdentityProvider",
    "extract_identity_from_discord",
]
