"""
Shared fixtures: in-memory fakes for every collaborator of VerificationService.

The fakes keep state (records, calls) so tests can assert on side effects,
and yield to the event loop on each call so concurrent attempts interleave
the way they would against real network services.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

import pytest

from config import DiscordSettings
from errors import IdentityFetchError, PersistenceError, TokenExchangeError
from infrastructure.discord.protocol import GrantOutcome
from infrastructure.locks import InMemoryOriginGuard
from infrastructure.oauth.protocol import Identity
from infrastructure.tokens import InMemoryTokenStore
from schemas.models.verification import VerificationRecord
from services.audit_notifier import AuditNotifier
from services.verification_service import VerificationService
from shared.origin_classifier import OriginClassifier, OriginRuleset

# Ensure a MONGODB_URI is present so AppSettings can be instantiated
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/")


class FakeRecordStore:
    def __init__(self) -> None:
        self.records: dict[str, VerificationRecord] = {}
        self.upsert_calls = 0
        self.fail_upsert = False
        self.fail_lookup = False

    async def find_by_origin(self, origin: str) -> Optional[VerificationRecord]:
        await asyncio.sleep(0)
        if self.fail_lookup:
            raise PersistenceError("lookup down")
        return next((r for r in self.records.values() if r.origin == origin), None)

    async def find_by_id(self, identity_id: str) -> Optional[VerificationRecord]:
        await asyncio.sleep(0)
        return self.records.get(identity_id)

    async def upsert(self, record: VerificationRecord) -> None:
        await asyncio.sleep(0)
        self.upsert_calls += 1
        if self.fail_upsert:
            raise PersistenceError("write down")
        self.records[record.id] = record


class FakeIdentityProvider:
    """Exchanges ``code`` for ``"at-<code>"`` and resolves identities per code."""

    def __init__(self, identities: Optional[dict[str, Identity]] = None) -> None:
        self.identities = identities or {
            "abc": Identity(id="42", username="alice", display_name="alice"),
        }
        self.exchange_calls: list[str] = []
        self.fetch_calls: list[str] = []
        self.exchange_error: Optional[Exception] = None
        self.fetch_error: Optional[Exception] = None

    def authorize_url(self, state: str) -> str:
        return f"https://discord.test/oauth2/authorize?response_type=code&state={state}"

    async def exchange_code(self, code: str) -> str:
        await asyncio.sleep(0)
        self.exchange_calls.append(code)
        if self.exchange_error is not None:
            raise self.exchange_error
        if code not in self.identities:
            raise TokenExchangeError("invalid_grant")
        return f"at-{code}"

    async def fetch_identity(self, access_token: str) -> Identity:
        await asyncio.sleep(0)
        self.fetch_calls.append(access_token)
        if self.fetch_error is not None:
            raise self.fetch_error
        try:
            return self.identities[access_token.removeprefix("at-")]
        except KeyError as e:
            raise IdentityFetchError("unknown access token") from e


class FakeRoleGrants:
    def __init__(self, outcome: GrantOutcome = GrantOutcome.GRANTED) -> None:
        self.outcome = outcome
        self.calls: list[str] = []
        self.error: Optional[Exception] = None

    async def grant(self, identity_id: str) -> GrantOutcome:
        await asyncio.sleep(0)
        self.calls.append(identity_id)
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeWebhook:
    def __init__(self, delivered: bool = True) -> None:
        self.delivered = delivered
        self.embeds: list[dict[str, Any]] = []

    async def send_embed(self, embed: dict[str, Any]) -> bool:
        self.embeds.append(embed)
        return self.delivered


def make_discord_settings(**overrides: str) -> DiscordSettings:
    values = dict(
        discord_client_id="client-id",
        discord_client_secret="client-secret",
        discord_redirect_uri="https://verify.test/callback",
        discord_bot_token="bot-token",
        discord_guild_id="1000",
        discord_role_id="2000",
    )
    values.update(overrides)
    return DiscordSettings(**values)


def default_classifier() -> OriginClassifier:
    return OriginClassifier(OriginRuleset.from_config(["34.", "35."], ["198.51.100.0/24"]))


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore(ttl_seconds=900)


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def role_grants() -> FakeRoleGrants:
    return FakeRoleGrants()


@pytest.fixture
def webhook() -> FakeWebhook:
    return FakeWebhook()


@pytest.fixture
def discord_settings() -> DiscordSettings:
    return make_discord_settings()


@pytest.fixture
def build_service(token_store, record_store, provider, role_grants, webhook, discord_settings):
    """Factory for a VerificationService wired to the fakes; keyword overrides win."""

    def _build(**overrides: Any) -> VerificationService:
        kwargs: dict[str, Any] = dict(
            tokens=token_store,
            classifier=default_classifier(),
            records=record_store,
            provider=provider,
            role_grants=role_grants,
            notifier=AuditNotifier(webhook),
            origin_guard=InMemoryOriginGuard(wait_seconds=5),
            discord_settings=discord_settings,
            token_ttl_seconds=900,
        )
        kwargs.update(overrides)
        return VerificationService(**kwargs)

    return _build


@pytest.fixture
def service(build_service) -> VerificationService:
    return build_service()


@pytest.fixture
def settings_factory():
    """Build DiscordSettings with every required value set, plus overrides."""
    return make_discord_settings
