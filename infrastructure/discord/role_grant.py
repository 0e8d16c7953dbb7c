"""Discord guild role assignment over the REST API (bot token auth).

Resolution order mirrors what a gateway client would do: member first,
then the guild's roles, then the assignment. A user who left the guild
between authorizing and this call is not an error; they can rejoin and
verify again. Assigning a role the member already holds is skipped, and
the PUT itself is idempotent on Discord's side.
"""

from typing import Any

import httpx

from config import DiscordSettings
from errors import RoleGrantError
from infrastructure.discord.protocol import GrantOutcome
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)


class DiscordRoleGrantClient:
    def __init__(self, settings: DiscordSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    @property
    def _guild_url(self) -> str:
        return f"{self._settings.discord_api_base}/guilds/{self._settings.discord_guild_id}"

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bot {self._settings.discord_bot_token}",
            "User-Agent": self._settings.discord_user_agent,
        }

    async def _request(self, method: str, url: str) -> httpx.Response:
        try:
            if method == "PUT":
                return await self._http.put(url, headers=self._headers)
            return await self._http.get(url, headers=self._headers)
        except httpx.TransportError as e:
            log.error(
                "role_grant_request_failed",
                method=method,
                error_type=type(e).__name__,
            )
            raise RoleGrantError("Discord API request failed") from e

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RoleGrantError(f"Discord returned an unparseable {what} payload") from e

    async def grant(self, identity_id: str) -> GrantOutcome:
        role_id = self._settings.discord_role_id

        member_resp = await self._request("GET", f"{self._guild_url}/members/{identity_id}")
        if member_resp.status_code == 404:
            log.info("role_grant_skipped_not_member", identity_id=identity_id)
            return GrantOutcome.NOT_MEMBER
        if member_resp.status_code != 200:
            raise RoleGrantError(
                "Member lookup failed", details={"status_code": member_resp.status_code}
            )
        member = self._json(member_resp, "member")
        if not isinstance(member, dict):
            raise RoleGrantError("Discord returned a malformed member payload")

        roles_resp = await self._request("GET", f"{self._guild_url}/roles")
        if roles_resp.status_code != 200:
            raise RoleGrantError(
                "Role lookup failed", details={"status_code": roles_resp.status_code}
            )
        roles = self._json(roles_resp, "roles")
        if not isinstance(roles, list):
            raise RoleGrantError("Discord returned a malformed roles payload")
        if not any(
            isinstance(role, dict) and str(role.get("id")) == role_id for role in roles
        ):
            log.warning("role_grant_skipped_role_missing", role_id=role_id)
            return GrantOutcome.ROLE_MISSING

        if role_id in {str(r) for r in member.get("roles") or []}:
            return GrantOutcome.ALREADY_HELD

        assign_resp = await self._request(
            "PUT", f"{self._guild_url}/members/{identity_id}/roles/{role_id}"
        )
        if assign_resp.status_code not in (200, 204):
            raise RoleGrantError(
                "Role assignment failed", details={"status_code": assign_resp.status_code}
            )
        log.info("role_granted", identity_id=identity_id, role_id=role_id)
        return GrantOutcome.GRANTED
