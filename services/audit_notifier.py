"""Audit trail for completed verifications.

Builds a Discord embed describing the verification and hands it to the
webhook provider. Best-effort: a failed delivery is logged as
``notification_failed`` and never raised. Non-fatal failures from earlier
steps are listed in the embed so an operator can reconcile by hand.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from errors import ErrorKind
from infrastructure.webhook.protocol import WebhookProvider
from schemas.models.verification import VerificationRecord
from shared.logging import get_logger

log = get_logger(__name__)

COLOR_OK = 0x00FF00
COLOR_NEEDS_RECONCILE = 0xFFA500


def build_verification_embed(
    record: VerificationRecord, issues: Iterable[ErrorKind] = ()
) -> dict[str, Any]:
    issues = list(issues)
    fields = [
        {"name": "Display name", "value": record.display_name or "-"},
        {"name": "User ID", "value": record.id},
        {"name": "Email", "value": record.email or "unavailable"},
        {"name": "IP address", "value": record.origin},
        {"name": "OS / Browser", "value": record.device},
    ]
    if issues:
        fields.append(
            {
                "name": "Needs reconciliation",
                "value": ", ".join(kind.value for kind in issues),
            }
        )
    return {
        "title": "Verification completed",
        "color": COLOR_NEEDS_RECONCILE if issues else COLOR_OK,
        "fields": fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class AuditNotifier:
    def __init__(self, webhook: WebhookProvider) -> None:
        self._webhook = webhook

    async def notify(
        self, record: VerificationRecord, issues: Iterable[ErrorKind] = ()
    ) -> bool:
        issues = list(issues)
        try:
            delivered = await self._webhook.send_embed(
                build_verification_embed(record, issues)
            )
        except Exception as e:
            log.error(
                "audit_notification_error",
                kind=ErrorKind.NOTIFICATION_FAILED.value,
                identity_id=record.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        if not delivered:
            log.warning(
                "audit_notification_undelivered",
                kind=ErrorKind.NOTIFICATION_FAILED.value,
                identity_id=record.id,
                issues=[kind.value for kind in issues],
            )
        return delivered
