"""
FastAPI application factory.
create_app() is the single entry point for building the app.

Every collaborator of the verification service is constructed once in the
lifespan and passed in explicitly; routes reach them through app.state via
the providers in dependencies.py.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from pymongo import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.discord.role_grant import DiscordRoleGrantClient
from infrastructure.http_client import HttpClient
from infrastructure.locks import InMemoryOriginGuard, RedisOriginGuard
from infrastructure.oauth import DiscordIdentityProvider
from infrastructure.redis_client import create_redis_client
from infrastructure.tokens import InMemoryTokenStore, RedisTokenStore
from infrastructure.webhook.discord import DiscordWebhookProvider
from repositories.verification_repository import VerificationRepository
from routes.health_routes import router as health_router
from routes.verification_routes import api_router as verification_api_router
from routes.verification_routes import router as verification_router
from services.audit_notifier import AuditNotifier
from services.verification_service import VerificationService
from shared.logging import get_logger, setup_logging
from shared.origin_classifier import OriginClassifier, OriginRuleset

log = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        vs = settings.verification

        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, timeoutMS=settings.db.mongodb_timeout_ms
        )
        db = mongo_client[settings.db.db_name]
        records = VerificationRepository(db[settings.db.verifications_collection])
        await records.ensure_indexes()

        # Redis is optional; a single instance works without it
        redis_client = await create_redis_client(settings.redis.redis_uri)
        if redis_client is not None:
            tokens = RedisTokenStore(
                redis_client,
                ttl_seconds=vs.token_ttl_seconds,
                key_prefix=settings.redis.redis_key_prefix,
            )
            origin_guard = RedisOriginGuard(
                redis_client,
                lock_ttl=settings.origin_lock_ttl_seconds,
                wait_seconds=vs.origin_lock_wait_seconds,
                key_prefix=settings.redis.redis_key_prefix,
            )
        else:
            tokens = InMemoryTokenStore(ttl_seconds=vs.token_ttl_seconds)
            origin_guard = InMemoryOriginGuard(wait_seconds=vs.origin_lock_wait_seconds)

        provider_http = HttpClient(
            timeout=vs.provider_timeout_seconds, deadline=vs.provider_timeout_seconds
        )
        webhook_http = HttpClient(
            timeout=vs.webhook_timeout_seconds, deadline=vs.webhook_timeout_seconds
        )

        classifier = OriginClassifier(
            OriginRuleset.from_config(
                vs.suspicious_origin_prefixes, vs.suspicious_origin_networks
            )
        )

        missing = settings.discord.missing_fields()
        if missing:
            log.warning("verification_settings_incomplete", missing=missing)

        app.state.settings = settings
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.redis = redis_client
        app.state.records = records
        app.state.verification_service = VerificationService(
            tokens=tokens,
            classifier=classifier,
            records=records,
            provider=DiscordIdentityProvider(settings.discord, provider_http),
            role_grants=DiscordRoleGrantClient(settings.discord, provider_http),
            notifier=AuditNotifier(
                DiscordWebhookProvider(settings.verification_webhook, webhook_http)
            ),
            origin_guard=origin_guard,
            discord_settings=settings.discord,
            token_ttl_seconds=vs.token_ttl_seconds,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await provider_http.aclose()
        await webhook_http.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(verification_router)
    app.include_router(verification_api_router)

    return app
