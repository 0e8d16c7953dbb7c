"""WebhookProvider protocol — the audit notifier depends on this, not the concrete implementation."""

from typing import Any, Protocol


class WebhookProvider(Protocol):
    async def send_embed(self, embed: dict[str, Any]) -> bool: ...
