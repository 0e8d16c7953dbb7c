"""Unit tests for VerificationService — the verification state machine."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from bson.errors import InvalidDocument

from errors import (
    ConfigurationError,
    ErrorKind,
    IdentityFetchError,
    RoleGrantError,
    TokenExchangeError,
)
from infrastructure.discord.protocol import GrantOutcome
from infrastructure.discord.role_grant import DiscordRoleGrantClient
from infrastructure.http_client import HttpClient
from infrastructure.oauth.protocol import Identity
from infrastructure.tokens import InMemoryTokenStore
from services.verification_types import VerificationAttempt, VerificationState

TRUSTED_ORIGIN = "203.0.113.5"
SUSPICIOUS_ORIGIN = "34.0.0.1"
CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# ── Helpers ───────────────────────────────────────────────────────────────────


def _attempt(token, code="abc", origin=TRUSTED_ORIGIN, user_agent=CHROME_UA):
    return VerificationAttempt(token=token, code=code, origin=origin, user_agent=user_agent)


async def _issue(service) -> str:
    return (await service.issue_token()).token


# ── Happy path ────────────────────────────────────────────────────────────────


class TestEndToEnd:
    async def test_verifies_and_side_effects_run_in_order(
        self, mocker, service, token_store, record_store, provider, role_grants, webhook
    ):
        mocker.patch(
            "infrastructure.tokens.memory.generate_verification_token",
            return_value="T1",
        )
        issuance = await service.issue_token()
        assert issuance.token == "T1"
        assert "T1" in token_store

        result = await service.verify(_attempt("T1", code="abc", origin="203.0.113.5"))

        assert result.verified
        assert result.state is VerificationState.COMPLETED
        assert result.issues == []
        assert result.grant is GrantOutcome.GRANTED
        record = record_store.records["42"]
        assert record.origin == "203.0.113.5"
        assert record.display_name == "alice"
        assert record.email is None
        assert provider.exchange_calls == ["abc"]
        assert provider.fetch_calls == ["at-abc"]
        assert role_grants.calls == ["42"]
        assert len(webhook.embeds) == 1
        assert "T1" not in token_store

    async def test_record_carries_device_descriptor(self, service, record_store):
        token = await _issue(service)
        await service.verify(_attempt(token))
        device = record_store.records["42"].device
        assert "Windows" in device
        assert "Chrome" in device

    async def test_issue_token_embeds_token_in_authorize_url(self, service):
        issuance = await service.issue_token()
        assert f"state={issuance.token}" in issuance.authorize_url
        assert issuance.expires_in == 900


# ── Terminal rejections ───────────────────────────────────────────────────────


class TestTokenValidation:
    @pytest.mark.parametrize(
        "token, code",
        [(None, "abc"), ("", "abc"), ("tok", None), ("tok", "")],
        ids=["no_state", "empty_state", "no_code", "empty_code"],
    )
    async def test_missing_inputs_rejected(self, service, provider, token, code):
        result = await service.verify(_attempt(token, code=code))
        assert result.reason is ErrorKind.INVALID_REQUEST
        assert result.rejected_at is VerificationState.STARTED
        assert provider.exchange_calls == []

    async def test_missing_code_does_not_burn_token(self, service, token_store):
        token = await _issue(service)
        await service.verify(_attempt(token, code=""))
        assert token in token_store

    async def test_unknown_token_rejected(self, service, record_store):
        result = await service.verify(_attempt("never-issued"))
        assert result.state is VerificationState.REJECTED
        assert result.reason is ErrorKind.INVALID_REQUEST
        assert record_store.records == {}

    async def test_token_redeemable_once(self, service, provider):
        token = await _issue(service)
        first = await service.verify(_attempt(token))
        second = await service.verify(_attempt(token, origin="203.0.113.77"))
        assert first.verified
        assert second.reason is ErrorKind.INVALID_REQUEST
        assert provider.exchange_calls == ["abc"]

    async def test_concurrent_redemption_has_single_winner(self, service, provider):
        token = await _issue(service)
        results = await asyncio.gather(
            service.verify(_attempt(token)),
            service.verify(_attempt(token)),
        )
        outcomes = sorted(r.state.value for r in results)
        assert outcomes == ["completed", "rejected"]
        loser = next(r for r in results if not r.verified)
        assert loser.reason is ErrorKind.INVALID_REQUEST
        assert provider.exchange_calls == ["abc"]

    async def test_expired_token_reported_distinctly(self, build_service, provider):
        now = [1000.0]
        tokens = InMemoryTokenStore(ttl_seconds=900, clock=lambda: now[0])
        service = build_service(tokens=tokens)
        token = await _issue(service)
        now[0] += 901
        result = await service.verify(_attempt(token))
        assert result.reason is ErrorKind.TOKEN_EXPIRED
        assert token not in tokens
        assert provider.exchange_calls == []


class TestConfiguration:
    async def test_missing_settings_reject_before_token_is_touched(
        self, build_service, settings_factory, token_store
    ):
        service = build_service(
            discord_settings=settings_factory(discord_client_secret="")
        )
        token = await token_store.issue()
        result = await service.verify(_attempt(token))
        assert result.reason is ErrorKind.CONFIGURATION_ERROR
        assert token in token_store

    async def test_issue_token_raises_configuration_error(
        self, build_service, settings_factory, token_store
    ):
        service = build_service(discord_settings=settings_factory(discord_guild_id=""))
        with pytest.raises(ConfigurationError):
            await service.issue_token()
        assert len(token_store) == 0


class TestOriginChecks:
    async def test_blocked_origin_makes_no_provider_calls_and_burns_token(
        self, service, token_store, provider, record_store
    ):
        token = await _issue(service)
        result = await service.verify(_attempt(token, origin=SUSPICIOUS_ORIGIN))
        assert result.reason is ErrorKind.ORIGIN_BLOCKED
        assert result.rejected_at is VerificationState.TOKEN_VALIDATED
        assert provider.exchange_calls == []
        assert provider.fetch_calls == []
        assert record_store.records == {}
        assert token not in token_store

    @pytest.mark.parametrize("origin", ["", "unknown", "not-an-ip"])
    async def test_undetermined_origin_blocked(self, service, origin):
        token = await _issue(service)
        result = await service.verify(_attempt(token, origin=origin))
        assert result.reason is ErrorKind.ORIGIN_BLOCKED

    async def test_same_origin_different_identity_rejected(self, service, provider, record_store):
        provider.identities["def"] = Identity(id="43", username="bob", display_name="bob")
        first = await service.verify(_attempt(await _issue(service), code="abc"))
        second = await service.verify(_attempt(await _issue(service), code="def"))
        assert first.verified
        assert second.reason is ErrorKind.ORIGIN_ALREADY_VERIFIED
        assert second.rejected_at is VerificationState.ORIGIN_CHECKED
        assert provider.exchange_calls == ["abc"]
        assert set(record_store.records) == {"42"}

    async def test_concurrent_same_origin_only_one_verifies(self, service, provider, record_store):
        provider.identities["def"] = Identity(id="43", username="bob", display_name="bob")
        t1, t2 = await _issue(service), await _issue(service)
        results = await asyncio.gather(
            service.verify(_attempt(t1, code="abc")),
            service.verify(_attempt(t2, code="def")),
        )
        assert sum(r.verified for r in results) == 1
        rejected = next(r for r in results if not r.verified)
        assert rejected.reason is ErrorKind.ORIGIN_ALREADY_VERIFIED
        assert len(record_store.records) == 1

    async def test_dedup_lookup_failure_fails_closed(self, service, record_store, provider):
        record_store.fail_lookup = True
        result = await service.verify(_attempt(await _issue(service)))
        assert result.reason is ErrorKind.DEDUP_UNAVAILABLE
        assert provider.exchange_calls == []


class TestProviderFailures:
    async def test_exchange_failure(self, service, provider, record_store, role_grants):
        provider.exchange_error = TokenExchangeError("bad code")
        result = await service.verify(_attempt(await _issue(service)))
        assert result.reason is ErrorKind.PROVIDER_AUTH_FAILED
        assert result.rejected_at is VerificationState.DEDUP_CHECKED
        assert provider.fetch_calls == []
        assert record_store.upsert_calls == 0
        assert role_grants.calls == []

    async def test_identity_failure(self, service, provider, record_store, webhook):
        provider.fetch_error = IdentityFetchError("401")
        result = await service.verify(_attempt(await _issue(service)))
        assert result.reason is ErrorKind.PROVIDER_AUTH_FAILED
        assert result.rejected_at is VerificationState.TOKEN_EXCHANGED
        assert record_store.upsert_calls == 0
        assert webhook.embeds == []


# ── Best-effort steps ─────────────────────────────────────────────────────────


class TestDegradeNotRevoke:
    async def test_persistence_failure_still_completes_and_grants(
        self, service, record_store, role_grants, webhook
    ):
        record_store.fail_upsert = True
        result = await service.verify(_attempt(await _issue(service)))
        assert result.verified
        assert result.issues == [ErrorKind.PERSISTENCE_FAILED]
        assert role_grants.calls == ["42"]
        fields = {f["name"]: f["value"] for f in webhook.embeds[0]["fields"]}
        assert fields["Needs reconciliation"] == "persistence_failed"

    async def test_role_grant_failure_still_completes(self, service, role_grants, webhook):
        role_grants.error = RoleGrantError("discord 500")
        result = await service.verify(_attempt(await _issue(service)))
        assert result.verified
        assert result.grant is None
        assert result.issues == [ErrorKind.ROLE_GRANT_FAILED]
        assert len(webhook.embeds) == 1

    async def test_not_member_is_not_an_issue(self, service, role_grants):
        role_grants.outcome = GrantOutcome.NOT_MEMBER
        result = await service.verify(_attempt(await _issue(service)))
        assert result.verified
        assert result.grant is GrantOutcome.NOT_MEMBER
        assert result.issues == []

    async def test_undelivered_notification_still_completes(self, service, webhook):
        webhook.delivered = False
        result = await service.verify(_attempt(await _issue(service)))
        assert result.verified

    async def test_unexpected_role_grant_error_still_completes(self, service, role_grants, webhook):
        role_grants.error = RuntimeError("unexpected")
        result = await service.verify(_attempt(await _issue(service)))
        assert result.verified
        assert result.issues == [ErrorKind.ROLE_GRANT_FAILED]
        assert len(webhook.embeds) == 1

    async def test_unexpected_persist_error_still_completes(self, mocker, service, record_store, role_grants):
        mocker.patch.object(
            record_store, "upsert", AsyncMock(side_effect=InvalidDocument("cannot encode"))
        )
        result = await service.verify(_attempt(await _issue(service)))
        assert result.verified
        assert result.issues == [ErrorKind.PERSISTENCE_FAILED]
        assert role_grants.calls == ["42"]

    async def test_null_member_roles_from_discord_still_grants(self, build_service, discord_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "PUT":
                return httpx.Response(204)
            if request.url.path.endswith("/roles"):
                return httpx.Response(200, json=[{"id": "2000"}])
            return httpx.Response(200, json={"user": {"id": "42"}, "roles": None})

        http = HttpClient()
        http._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = build_service(role_grants=DiscordRoleGrantClient(discord_settings, http))
        result = await service.verify(_attempt(await _issue(service)))
        await http.aclose()
        assert result.verified
        assert result.grant is GrantOutcome.GRANTED
        assert result.issues == []


class TestUpsertIdempotence:
    async def test_reverification_updates_single_record(self, service, record_store):
        first = await service.verify(_attempt(await _issue(service), origin="203.0.113.5"))
        second = await service.verify(_attempt(await _issue(service), origin="203.0.113.9"))
        assert first.verified and second.verified
        assert list(record_store.records) == ["42"]
        assert record_store.records["42"].origin == "203.0.113.9"
        assert record_store.upsert_calls == 2
