"""
phaeton.verification.telegram_check — Telegram chat membership
===============================================================

Calls the Bot API's ``getChatMember`` for the task's chat and the user's
linked Telegram id.  The bot must be an administrator of channels (or a
member of groups) for Telegram to answer.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from phaeton.constants import JOIN_ACTION, TELEGRAM_API, TELEGRAM_MEMBER_STATUSES, Platform
from phaeton.errors import InvalidTaskParameters
from phaeton.services.connection_service import ConnectionInfo
from phaeton.verification.base import (
    PlatformCheck,
    PlatformConfigError,
    PlatformError,
    first_param,
)

logger = logging.getLogger(__name__)

# Bot API error descriptions (lower-cased substrings)
_NOT_MEMBER_ERRORS = ("user not found", "participant_id_invalid")
_CONFIG_ERRORS = ("member list is inaccessible", "chat not found", "bot is not a member")


def normalize_chat_id(channel_id: str | None, channel_username: str | None) -> str | None:
    """Numeric ids pass through; usernames get a leading ``@``."""
    if channel_id:
        return channel_id
    if channel_username:
        name = channel_username.removeprefix("https://t.me/").strip("/")
        return name if name.startswith("@") else f"@{name}"
    return None


class TelegramMembershipCheck(PlatformCheck):
    platform = Platform.TELEGRAM
    success_message = "Telegram membership verified successfully"
    failure_message = (
        "You are not a member of this Telegram channel. "
        "Please join the channel and try again."
    )
    error_message = "Failed to verify Telegram membership"

    def __init__(self, client: httpx.AsyncClient, bot_token: str) -> None:
        super().__init__(client)
        self._bot_token = bot_token

    def configuration_error(self) -> str | None:
        if not self._bot_token:
            return "TELEGRAM_BOT_TOKEN is not set"
        return None

    def validate(self, action: str | None, parameters: dict[str, Any]) -> dict[str, Any]:
        if action not in (None, JOIN_ACTION):
            raise InvalidTaskParameters(f"Unsupported Telegram action: {action}")
        chat_id = normalize_chat_id(
            first_param(parameters, "channelId"),
            first_param(parameters, "channelUsername"),
        )
        if chat_id is None:
            raise InvalidTaskParameters("Channel ID or username is required")
        return {"chat_id": chat_id}

    async def check(
        self,
        connection: ConnectionInfo,
        action: str | None,
        params: dict[str, Any],
    ) -> bool:
        user_id: int | str = connection.platform_user_id
        if isinstance(user_id, str) and user_id.lstrip("-").isdigit():
            user_id = int(user_id)

        resp = await self._send(
            "POST",
            f"{TELEGRAM_API}/bot{self._bot_token}/getChatMember",
            json={"chat_id": params["chat_id"], "user_id": user_id},
        )
        data = self._json(resp)

        if resp.status_code == 200 and data.get("ok"):
            result = data.get("result")
            if not isinstance(result, dict):
                raise PlatformError("Telegram returned no chat member")
            return result.get("status") in TELEGRAM_MEMBER_STATUSES

        description = str(data.get("description", "")).lower()
        if any(marker in description for marker in _NOT_MEMBER_ERRORS):
            return False
        if resp.status_code in (401, 403) or any(
            marker in description for marker in _CONFIG_ERRORS
        ):
            raise PlatformConfigError(
                f"Telegram bot cannot read members of {params['chat_id']} "
                f"(HTTP {resp.status_code})"
            )
        raise PlatformError(f"Telegram API error: HTTP {resp.status_code}")
