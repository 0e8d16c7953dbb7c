"""Discord webhook implementation of WebhookProvider.

Delivery is best-effort: every failure (not configured, rate limited,
non-2xx, transport error) is logged and reported as ``False``; nothing is
raised to the caller. Mentions are disabled so user-controlled names in an
embed can never ping anyone.
"""

from typing import Any

import httpx

from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)


class DiscordWebhookProvider:
    def __init__(self, webhook_url: str, http_client: HttpClient) -> None:
        self._webhook_url = webhook_url
        self._http = http_client

    @property
    def configured(self) -> bool:
        return bool(self._webhook_url)

    async def send_embed(self, embed: dict[str, Any]) -> bool:
        return await self.send({"embeds": [embed], "allowed_mentions": {"parse": []}})

    async def send(self, payload: dict[str, Any]) -> bool:
        if not self._webhook_url:
            log.warning("discord_webhook_not_configured")
            return False
        try:
            response = await self._http.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            log.error(
                "discord_webhook_request_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code in (200, 204):
            return True
        if response.status_code == 429:
            log.warning(
                "discord_webhook_rate_limited",
                retry_after=response.headers.get("Retry-After"),
            )
            return False
        log.warning(
            "discord_webhook_failed",
            status_code=response.status_code,
            response_text=response.text[:200],
        )
        return False
