"""
Unit test configuration for verify-gate.

Settings under test come only from monkeypatch.setenv(): the project's .env
file is never read, and Discord, Redis and webhook variables exported in the
developer's shell are cleared so a half-configured local setup cannot leak
into the configuration checks.
"""

import pytest

VERIFY_GATE_ENV = (
    "DISCORD_CLIENT_ID",
    "DISCORD_CLIENT_SECRET",
    "DISCORD_REDIRECT_URI",
    "DISCORD_BOT_TOKEN",
    "DISCORD_GUILD_ID",
    "DISCORD_ROLE_ID",
    "REDIS_URI",
    "VERIFICATION_WEBHOOK",
    "TRUSTED_PROXIES",
    "SENTRY_DSN",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep .env files and stray shell variables out of every settings object."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
    for var in VERIFY_GATE_ENV:
        monkeypatch.delenv(var, raising=False)
