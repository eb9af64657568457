"""
phaeton.verification.discord_check — Discord server membership
===============================================================

Asks the Discord REST API, authenticated as our bot, whether the user's
linked Discord account is a member of the task's guild::

    GET /guilds/{guild_id}/members/{user_id}    Authorization: Bot <token>

=====  ===========================================================
200    member
404    not a member (definitive)
401    bot token rejected (configuration)
403    bot not in the guild / missing permission (configuration)
other  transient
=====  ===========================================================
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from phaeton.constants import DISCORD_API, JOIN_ACTION, Platform
from phaeton.errors import InvalidTaskParameters
from phaeton.services.connection_service import ConnectionInfo
from phaeton.verification.base import (
    PlatformCheck,
    PlatformConfigError,
    PlatformError,
    first_param,
)

logger = logging.getLogger(__name__)


class DiscordMembershipCheck(PlatformCheck):
    platform = Platform.DISCORD
    success_message = "Discord membership verified successfully"
    failure_message = (
        "You are not a member of this Discord server. "
        "Please join the server and try again."
    )
    error_message = "Failed to verify Discord membership"

    def __init__(self, client: httpx.AsyncClient, bot_token: str) -> None:
        super().__init__(client)
        self._bot_token = bot_token

    def configuration_error(self) -> str | None:
        if not self._bot_token:
            return "DISCORD_BOT_TOKEN is not set"
        return None

    def validate(self, action: str | None, parameters: dict[str, Any]) -> dict[str, Any]:
        if action not in (None, JOIN_ACTION):
            raise InvalidTaskParameters(f"Unsupported Discord action: {action}")
        guild_id = first_param(parameters, "serverId", "guildId")
        if guild_id is None:
            raise InvalidTaskParameters("Server ID is required")
        if not guild_id.isdigit():
            raise InvalidTaskParameters("Server ID must be numeric")
        return {"guild_id": guild_id}

    async def check(
        self,
        connection: ConnectionInfo,
        action: str | None,
        params: dict[str, Any],
    ) -> bool:
        guild_id = params["guild_id"]
        resp = await self._send(
            "GET",
            f"{DISCORD_API}/guilds/{guild_id}/members/{connection.platform_user_id}",
            headers={"Authorization": f"Bot {self._bot_token}"},
        )

        if resp.status_code == 200:
            return True
        if resp.status_code == 404:
            return False
        if resp.status_code in (401, 403):
            raise PlatformConfigError(
                f"Discord bot cannot read members of guild {guild_id} (HTTP {resp.status_code})"
            )
        raise PlatformError(f"Discord API error: HTTP {resp.status_code}")
