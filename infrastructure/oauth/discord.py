"""Discord implementation of IdentityProvider.

Two single round-trips against the Discord OAuth2 API:

- ``exchange_code``: POST to the token endpoint with the client credentials.
  Never retried (the authorization code is single-use on Discord's side).
- ``fetch_identity``: GET ``/users/@me`` with the bearer token. Retried once
  on a transport failure (timeout, connection reset); an HTTP error status
  is final.

Neither the authorization code nor the client secret is ever passed to the
logger; response bodies are only previewed when they failed to parse.
"""

from typing import Any, Optional

import httpx
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from config import DiscordSettings
from errors import IdentityFetchError, TokenExchangeError
from infrastructure.http_client import HttpClient
from infrastructure.oauth.protocol import Identity
from shared.logging import get_logger

log = get_logger(__name__)

_IDENTITY_ATTEMPTS = 2


def _display_name(userinfo: dict[str, Any]) -> str:
    preferred = userinfo.get("global_name") or userinfo.get("display_name")
    if preferred:
        return str(preferred)
    username = str(userinfo.get("username") or "")
    discriminator = str(userinfo.get("discriminator") or "")
    if discriminator and discriminator != "0":
        return f"{username}#{discriminator}"
    return username


def extract_identity_from_discord(userinfo: dict[str, Any]) -> Identity:
    """Map a ``/users/@me`` payload onto the normalized Identity shape."""
    email: Optional[str] = userinfo.get("email") or None
    return Identity(
        id=str(userinfo["id"]),
        username=str(userinfo.get("username") or ""),
        display_name=_display_name(userinfo),
        email=email.lower().strip() if email else None,
    )


class DiscordIdentityProvider:
    def __init__(self, settings: DiscordSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def authorize_url(self, state: str) -> str:
        return prepare_grant_uri(
            self._settings.discord_authorize_url,
            client_id=self._settings.discord_client_id,
            response_type="code",
            redirect_uri=self._settings.discord_redirect_uri,
            scope=self._settings.discord_oauth_scope,
            state=state,
        )

    async def exchange_code(self, code: str) -> str:
        data = {
            "client_id": self._settings.discord_client_id,
            "client_secret": self._settings.discord_client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._settings.discord_redirect_uri,
            "scope": self._settings.discord_oauth_scope,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "User-Agent": self._settings.discord_user_agent,
        }
        try:
            response = await self._http.post(
                self._settings.discord_token_url, data=data, headers=headers
            )
        except httpx.TransportError as e:
            log.error("oauth_token_exchange_request_failed", error_type=type(e).__name__)
            raise TokenExchangeError("Token exchange request failed") from e

        try:
            payload = response.json()
        except ValueError as e:
            log.error(
                "oauth_token_exchange_unparseable",
                status_code=response.status_code,
                body_preview=response.text[:200],
            )
            raise TokenExchangeError("Token endpoint returned a non-JSON body") from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            log.error(
                "oauth_token_exchange_rejected",
                status_code=response.status_code,
                provider_error=payload.get("error") if isinstance(payload, dict) else None,
            )
            raise TokenExchangeError("Token endpoint did not return an access token")

        return str(payload["access_token"])

    async def _get_identity_response(self, access_token: str) -> httpx.Response:
        url = f"{self._settings.discord_api_base}/users/@me"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "User-Agent": self._settings.discord_user_agent,
        }
        for attempt in range(1, _IDENTITY_ATTEMPTS + 1):
            try:
                return await self._http.get(url, headers=headers)
            except httpx.TransportError as e:
                log.warning(
                    "oauth_identity_request_failed",
                    attempt=attempt,
                    error_type=type(e).__name__,
                )
                if attempt == _IDENTITY_ATTEMPTS:
                    raise IdentityFetchError("Identity request failed") from e
        raise IdentityFetchError("Identity request failed")

    async def fetch_identity(self, access_token: str) -> Identity:
        response = await self._get_identity_response(access_token)
        if response.status_code != 200:
            log.error("oauth_identity_rejected", status_code=response.status_code)
            raise IdentityFetchError("Identity endpoint returned an error status")

        try:
            payload = response.json()
        except ValueError as e:
            log.error("oauth_identity_unparseable", body_preview=response.text[:200])
            raise IdentityFetchError("Identity endpoint returned a non-JSON body") from e

        if not isinstance(payload, dict) or not payload.get("id"):
            log.error("oauth_identity_incomplete")
            raise IdentityFetchError("Identity payload has no id")

        return extract_identity_from_discord(payload)
