"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

The Discord values are not validated as required at construction time:
the process must boot (health checks, record lookups) even when the
callback path is misconfigured. The verification service checks
DiscordSettings.missing_fields() per attempt and rejects with a
configuration error instead.
"""

from __future__ import annotations

import ipaddress
import math
from typing import Optional

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# First octets of common hosting / VPN ranges. Matched as textual prefixes.
DEFAULT_SUSPICIOUS_PREFIXES: list[str] = [
    "3.", "13.", "15.", "18.", "34.", "35.", "44.",
    "52.", "54.", "64.4", "65.", "66.", "67.", "70.",
    "71.", "72.", "73.", "74.", "75.", "76.", "96.",
    "104.", "107.", "108.", "128.", "129.", "131.", "132.",
    "143.", "144.", "146.", "147.", "149.", "150.", "152.",
]  # fmt: skip


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "verify-gate"
    verifications_collection: str = "verifications"
    # Client-side operation timeout (pymongo CSOT), bounds every lookup and write
    mongodb_timeout_ms: int = 5000


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional — single-instance deployments fall back to in-process stores
    redis_uri: Optional[str] = None
    redis_key_prefix: str = "verify-gate"


class DiscordSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    discord_client_id: str = ""
    discord_client_secret: str = ""
    discord_redirect_uri: str = ""
    discord_bot_token: str = ""
    discord_guild_id: str = ""
    discord_role_id: str = ""

    discord_oauth_scope: str = "identify email"
    discord_api_base: str = "https://discord.com/api/v10"
    discord_authorize_url: str = "https://discord.com/oauth2/authorize"
    discord_token_url: str = "https://discord.com/api/oauth2/token"
    discord_user_agent: str = "verify-gate (https://github.com/verify-gate, 1.0.0)"

    def missing_fields(self) -> list[str]:
        """Names of required settings that are empty."""
        required = (
            "discord_client_id",
            "discord_client_secret",
            "discord_redirect_uri",
            "discord_bot_token",
            "discord_guild_id",
            "discord_role_id",
        )
        return [name for name in required if not getattr(self, name)]


class VerificationSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    token_ttl_seconds: int = 900
    provider_timeout_seconds: float = 10.0
    webhook_timeout_seconds: float = 5.0

    # Per-origin guard held across dedup check → persist
    origin_lock_ttl_seconds: int = 60
    origin_lock_wait_seconds: float = 15.0

    suspicious_origin_prefixes: list[str] = DEFAULT_SUSPICIOUS_PREFIXES
    suspicious_origin_networks: list[str] = []

    # Peers whose proxy headers (X-Forwarded-For, CF-Connecting-IP, ...) are
    # believed. Empty: headers are ignored and the socket peer is the origin.
    # "*" trusts any peer (only safe when the app is unreachable except
    # through the proxy).
    trusted_proxies: list[str] = []

    @field_validator("suspicious_origin_networks", "trusted_proxies")
    @classmethod
    def _check_networks(cls, values: list[str], info: ValidationInfo) -> list[str]:
        wildcard_ok = info.field_name == "trusted_proxies"
        for value in (v.strip() for v in values):
            if not value or (wildcard_ok and value == "*"):
                continue
            ipaddress.ip_network(value, strict=False)
        return values


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "verify-gate"
    static_dir: str = "static"

    # Audit trail destination (Discord webhook URL)
    verification_webhook: str = ""

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    discord: Optional[DiscordSettings] = None
    verification: Optional[VerificationSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.discord is None:
            self.discord = DiscordSettings()
        if self.verification is None:
            self.verification = VerificationSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def origin_lock_ttl_seconds(self) -> int:
        """Origin lock TTL, never shorter than the longest guarded section.

        The guard spans one record lookup, one token exchange, up to two
        identity fetches and one record write, each bounded by its own
        deadline.
        """
        vs = self.verification
        guarded = 3 * vs.provider_timeout_seconds + 2 * self.db.mongodb_timeout_ms / 1000
        return max(vs.origin_lock_ttl_seconds, math.ceil(guarded) + 5)
