"""
Discord role gateway adapter - Implements RoleGateway protocol over REST.

Uses the guild member role endpoints:

    PUT    /guilds/{guild_id}/members/{user_id}/roles/{role_id}
    DELETE /guilds/{guild_id}/members/{user_id}/roles/{role_id}

Both are idempotent on Discord's side (204 whether or not the member
already had the role).
"""

import logging

import httpx

from gatekeeper.domain.exceptions import RoleGatewayError

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"
AUDIT_LOG_REASON = "Gatekeeper verification"
USER_AGENT = "DiscordBot (gatekeeper, 0.1.0)"


def build_discord_client(
    bot_token: str, api_base: str = DISCORD_API_BASE, timeout: float = 10.0
) -> httpx.Client:
    """Create an httpx.Client authenticated as the bot, with a bounded timeout."""
    return httpx.Client(
        base_url=api_base,
        headers={"Authorization": f"Bot {bot_token}", "User-Agent": USER_AGENT},
        timeout=timeout,
    )


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _retry_after(response: httpx.Response) -> float | None:
    """Seconds from the Retry-After header, or None when absent or unparsable."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class DiscordRoleGateway:
    """
    Implements RoleGateway protocol via the Discord REST API.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, client: httpx.Client, audit_reason: str = AUDIT_LOG_REASON) -> None:
        self._client = client
        self._audit_reason = audit_reason

    def grant_role(self, guild_id: int, grantee_id: int, role_id: int) -> None:
        self._request("PUT", guild_id, grantee_id, role_id)

    def revoke_role(self, guild_id: int, grantee_id: int, role_id: int) -> None:
        """Remove a role. A member who already left the guild counts as revoked."""
        self._request("DELETE", guild_id, grantee_id, role_id, missing_ok=True)

    def _request(
        self,
        method: str,
        guild_id: int,
        grantee_id: int,
        role_id: int,
        *,
        missing_ok: bool = False,
    ) -> None:
        path = f"/guilds/{guild_id}/members/{grantee_id}/roles/{role_id}"
        try:
            response = self._client.request(
                method, path, headers={"X-Audit-Log-Reason": self._audit_reason}
            )
        except httpx.TimeoutException as exc:
            raise RoleGatewayError(f"Discord {method} timed out", retryable=True) from exc
        except httpx.TransportError as exc:
            raise RoleGatewayError(
                f"Discord {method} transport error: {type(exc).__name__}", retryable=True
            ) from exc

        if missing_ok and response.status_code == 404:
            logger.info(
                "Role revoke skipped, member or role gone guild=%s grantee=%s role=%s",
                guild_id,
                grantee_id,
                role_id,
            )
            return

        if response.is_error:
            raise RoleGatewayError(
                f"Discord {method} returned {response.status_code}",
                retryable=_is_retryable(response.status_code),
                retry_after=_retry_after(response),
            )
