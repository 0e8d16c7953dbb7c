"""
Verification orchestration — one state machine run per OAuth callback.

    started → token_validated → origin_checked → dedup_checked
            → token_exchanged → identity_fetched → persisted
            → role_granted → notified → completed

Any step up to ``identity_fetched`` can end the attempt in ``rejected``;
nothing after the failing step runs. Once the identity is confirmed the
remaining steps are best-effort: a failed write, grant or notification is
logged and listed in ``VerificationResult.issues`` but never withholds the
verified outcome.

The pending token is consumed at the first step and stays consumed however
the attempt ends. No lock is held across provider calls except the
per-origin guard, which only serialises attempts that share one origin
(dedup check through record write).
"""

from __future__ import annotations

from config import DiscordSettings
from errors import (
    ConfigurationError,
    ErrorKind,
    ExternalServiceError,
    OriginBusyError,
    PersistenceError,
    RoleGrantError,
    TokenExpiredError,
)
from infrastructure.discord.protocol import GrantOutcome, RoleGrantClient
from infrastructure.locks.protocol import OriginGuard
from infrastructure.oauth.protocol import Identity, IdentityProvider
from infrastructure.tokens.protocol import PendingTokenStore
from repositories.protocol import VerificationRecordStore
from schemas.models.verification import VerificationRecord
from services.audit_notifier import AuditNotifier
from services.verification_types import (
    StepOutcome,
    TokenIssuance,
    VerificationAttempt,
    VerificationRejected,
    VerificationResult,
    VerificationState,
)
from shared.logging import get_logger, hash_ip
from shared.origin_classifier import OriginClassifier
from shared.user_agent import describe_device

log = get_logger(__name__)


class VerificationService:
    def __init__(
        self,
        *,
        tokens: PendingTokenStore,
        classifier: OriginClassifier,
        records: VerificationRecordStore,
        provider: IdentityProvider,
        role_grants: RoleGrantClient,
        notifier: AuditNotifier,
        origin_guard: OriginGuard,
        discord_settings: DiscordSettings,
        token_ttl_seconds: int = 900,
    ) -> None:
        self._tokens = tokens
        self._classifier = classifier
        self._records = records
        self._provider = provider
        self._role_grants = role_grants
        self._notifier = notifier
        self._origin_guard = origin_guard
        self._discord = discord_settings
        self._token_ttl_seconds = token_ttl_seconds

    # ── Token issuance ───────────────────────────────────────────────────────

    async def issue_token(self) -> TokenIssuance:
        """Issue a one-time token and the provider URL that carries it as ``state``.

        Raises ConfigurationError when the provider settings are incomplete,
        PersistenceError when the token store is unreachable.
        """
        missing = self._discord.missing_fields()
        if missing:
            log.error("verification_misconfigured", missing=missing)
            raise ConfigurationError("Verification is not configured")
        token = await self._tokens.issue()
        log.debug("verification_token_issued")
        return TokenIssuance(
            token=token,
            authorize_url=self._provider.authorize_url(token),
            expires_in=self._token_ttl_seconds,
        )

    # ── Callback ─────────────────────────────────────────────────────────────

    async def verify(self, attempt: VerificationAttempt) -> VerificationResult:
        state = VerificationState.STARTED
        attempt_log = log.bind(origin_hash=hash_ip(attempt.origin))

        try:
            self._check_configuration()

            await self._validate_token(attempt)
            state = VerificationState.TOKEN_VALIDATED

            self._check_origin(attempt.origin)
            state = VerificationState.ORIGIN_CHECKED

            try:
                async with self._origin_guard.hold(attempt.origin):
                    await self._check_dedup(attempt.origin)
                    state = VerificationState.DEDUP_CHECKED

                    access_token = await self._exchange_code(attempt.code or "")
                    state = VerificationState.TOKEN_EXCHANGED

                    identity = await self._fetch_identity(access_token)
                    state = VerificationState.IDENTITY_FETCHED

                    record = self._build_record(identity, attempt)
                    persisted = await self._persist(record)
                    state = VerificationState.PERSISTED
            except OriginBusyError as e:
                raise VerificationRejected(
                    ErrorKind.ORIGIN_ALREADY_VERIFIED, "Origin has a verification in flight"
                ) from e
            except PersistenceError as e:
                raise VerificationRejected(
                    ErrorKind.DEDUP_UNAVAILABLE, "Origin guard unavailable"
                ) from e
        except VerificationRejected as rejection:
            attempt_log.info(
                "verification_rejected",
                reason=rejection.reason.value,
                step=state.value,
            )
            return VerificationResult(
                state=VerificationState.REJECTED,
                reason=rejection.reason,
                rejected_at=state,
            )

        # Identity is confirmed from here on; nothing below may revoke it.
        attempt_log = attempt_log.bind(identity_id=identity.id)
        issues = [] if persisted.ok else [persisted.kind]

        granted, grant = await self._grant_role(identity.id)
        state = VerificationState.ROLE_GRANTED
        if not granted.ok:
            issues.append(granted.kind)

        await self._notifier.notify(record, issues)
        state = VerificationState.NOTIFIED

        attempt_log.info(
            "verification_completed",
            grant=grant.value if grant else None,
            issues=[kind.value for kind in issues],
        )
        return VerificationResult(
            state=VerificationState.COMPLETED,
            record=record,
            grant=grant,
            issues=issues,
        )

    # ── Terminal steps ───────────────────────────────────────────────────────

    def _check_configuration(self) -> None:
        missing = self._discord.missing_fields()
        if missing:
            log.error("verification_misconfigured", missing=missing)
            raise VerificationRejected(
                ErrorKind.CONFIGURATION_ERROR, "Verification is not configured"
            )

    async def _validate_token(self, attempt: VerificationAttempt) -> None:
        if not attempt.code or not attempt.token:
            raise VerificationRejected(ErrorKind.INVALID_REQUEST, "Missing code or state")
        try:
            consumed = await self._tokens.consume(attempt.token)
        except TokenExpiredError as e:
            raise VerificationRejected(ErrorKind.TOKEN_EXPIRED, "Token expired") from e
        except PersistenceError as e:
            raise VerificationRejected(
                ErrorKind.INVALID_REQUEST, "Token could not be validated"
            ) from e
        if not consumed:
            raise VerificationRejected(ErrorKind.INVALID_REQUEST, "Unknown or used token")

    def _check_origin(self, origin: str) -> None:
        if self._classifier.is_suspicious(origin):
            raise VerificationRejected(ErrorKind.ORIGIN_BLOCKED, "Origin blocked")

    async def _check_dedup(self, origin: str) -> None:
        try:
            existing = await self._records.find_by_origin(origin)
        except PersistenceError as e:
            # Dedup cannot be enforced without the store: fail closed
            raise VerificationRejected(
                ErrorKind.DEDUP_UNAVAILABLE, "Dedup lookup failed"
            ) from e
        if existing is not None:
            raise VerificationRejected(
                ErrorKind.ORIGIN_ALREADY_VERIFIED, "Origin already verified"
            )

    async def _exchange_code(self, code: str) -> str:
        try:
            return await self._provider.exchange_code(code)
        except ExternalServiceError as e:
            raise VerificationRejected(ErrorKind.PROVIDER_AUTH_FAILED, e.kind.value) from e

    async def _fetch_identity(self, access_token: str) -> Identity:
        try:
            return await self._provider.fetch_identity(access_token)
        except ExternalServiceError as e:
            raise VerificationRejected(ErrorKind.PROVIDER_AUTH_FAILED, e.kind.value) from e

    # ── Best-effort steps ────────────────────────────────────────────────────

    @staticmethod
    def _build_record(
        identity: Identity, attempt: VerificationAttempt
    ) -> VerificationRecord:
        return VerificationRecord(
            id=identity.id,
            display_name=identity.display_name,
            email=identity.email,
            origin=attempt.origin,
            device=describe_device(attempt.user_agent),
        )

    async def _persist(self, record: VerificationRecord) -> StepOutcome:
        try:
            await self._records.upsert(record)
        except PersistenceError as e:
            log.error(
                "verification_persist_failed",
                kind=ErrorKind.PERSISTENCE_FAILED.value,
                identity_id=record.id,
                error=e.message,
            )
            return StepOutcome.failure(ErrorKind.PERSISTENCE_FAILED, e.message)
        except Exception as e:
            log.error(
                "verification_persist_failed",
                kind=ErrorKind.PERSISTENCE_FAILED.value,
                identity_id=record.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return StepOutcome.failure(ErrorKind.PERSISTENCE_FAILED, str(e))
        return StepOutcome.success()

    async def _grant_role(
        self, identity_id: str
    ) -> tuple[StepOutcome, GrantOutcome | None]:
        try:
            grant = await self._role_grants.grant(identity_id)
        except RoleGrantError as e:
            log.error(
                "verification_role_grant_failed",
                kind=ErrorKind.ROLE_GRANT_FAILED.value,
                identity_id=identity_id,
                error=e.message,
                details=e.details,
            )
            return StepOutcome.failure(ErrorKind.ROLE_GRANT_FAILED, e.message), None
        except Exception as e:
            log.error(
                "verification_role_grant_failed",
                kind=ErrorKind.ROLE_GRANT_FAILED.value,
                identity_id=identity_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return StepOutcome.failure(ErrorKind.ROLE_GRANT_FAILED, str(e)), None
        return StepOutcome.success(), grant
