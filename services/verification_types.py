"""
Value types for a single verification attempt.

VerificationState   — the steps of the attempt state machine, in order
VerificationAttempt — inputs captured from the callback request
StepOutcome         — result of a best-effort step (logged, never raised)
VerificationResult  — what the service hands back to the HTTP layer
TokenIssuance       — a freshly issued token plus where to send the client
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from errors import AppError, ErrorKind
from infrastructure.discord.protocol import GrantOutcome
from schemas.models.verification import VerificationRecord


class VerificationState(str, Enum):
    STARTED = "started"
    TOKEN_VALIDATED = "token_validated"
    ORIGIN_CHECKED = "origin_checked"
    DEDUP_CHECKED = "dedup_checked"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_FETCHED = "identity_fetched"
    PERSISTED = "persisted"
    ROLE_GRANTED = "role_granted"
    NOTIFIED = "notified"
    COMPLETED = "completed"
    REJECTED = "rejected"


# Reasons an attempt can end in REJECTED
REJECTION_REASONS = frozenset(
    {
        ErrorKind.INVALID_REQUEST,
        ErrorKind.TOKEN_EXPIRED,
        ErrorKind.CONFIGURATION_ERROR,
        ErrorKind.ORIGIN_BLOCKED,
        ErrorKind.ORIGIN_ALREADY_VERIFIED,
        ErrorKind.DEDUP_UNAVAILABLE,
        ErrorKind.PROVIDER_AUTH_FAILED,
    }
)


@dataclass(frozen=True)
class VerificationAttempt:
    token: Optional[str]
    code: Optional[str]
    origin: str
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class StepOutcome:
    ok: bool
    kind: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls) -> "StepOutcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str) -> "StepOutcome":
        return cls(ok=False, kind=kind, detail=detail)


@dataclass
class VerificationResult:
    state: VerificationState
    reason: Optional[ErrorKind] = None
    rejected_at: Optional[VerificationState] = None
    record: Optional[VerificationRecord] = None
    grant: Optional[GrantOutcome] = None
    issues: list[ErrorKind] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.state is VerificationState.COMPLETED


@dataclass(frozen=True)
class TokenIssuance:
    token: str
    authorize_url: str
    expires_in: int


class VerificationRejected(AppError):
    """Internal short-circuit out of the state machine. Never leaves the service."""

    status_code = 400
    error_code = "verification_rejected"

    def __init__(self, reason: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.reason = reason
