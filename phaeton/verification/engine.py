"""
phaeton.verification.engine — Social task verification
=======================================================

:class:`VerificationEngine` is the single entry point the task routes call.
It runs the same pipeline for every platform::

    validate parameters      → InvalidTaskParameters (400, no network)
    load the connection      → NotConnected (400)
    token expiry             → TokenExpired (401, no network)
    server configuration     → UpstreamUnavailable (500, logged)
    platform call + retries  → True / False / UpstreamUnavailable

Platform answers are never cached: every call asks the platform again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import httpx
from sqlalchemy import Engine

from phaeton.config import PhaetonConfig, PlatformSecrets
from phaeton.constants import Platform
from phaeton.database.engine import run_db
from phaeton.engine.retry import retry_with_backoff
from phaeton.errors import InvalidTaskParameters, NotConnected, TokenExpired, UpstreamUnavailable
from phaeton.services.connection_service import get_connection
from phaeton.verification.base import (
    PlatformCheck,
    PlatformConfigError,
    PlatformError,
    is_retryable,
)
from phaeton.verification.discord_check import DiscordMembershipCheck
from phaeton.verification.telegram_check import TelegramMembershipCheck
from phaeton.verification.twitter_check import TwitterActionCheck

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class VerificationEngine:
    """Proves a user performed a social action on an external platform."""

    def __init__(
        self,
        engine: Engine,
        client: httpx.AsyncClient,
        secrets: PlatformSecrets,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.engine = engine
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self._now = now
        self.checks: dict[Platform, PlatformCheck] = {
            Platform.DISCORD: DiscordMembershipCheck(client, secrets.discord_bot_token),
            Platform.TELEGRAM: TelegramMembershipCheck(client, secrets.telegram_bot_token),
            Platform.TWITTER: TwitterActionCheck(client),
        }

    @classmethod
    def from_config(
        cls,
        engine: Engine,
        client: httpx.AsyncClient,
        secrets: PlatformSecrets,
        cfg: PhaetonConfig,
    ) -> VerificationEngine:
        return cls(
            engine,
            client,
            secrets,
            max_attempts=cfg.retry_max_attempts,
            base_delay=cfg.retry_base_delay_seconds,
        )

    def check_for(self, platform: str) -> PlatformCheck:
        try:
            return self.checks[Platform(platform)]
        except ValueError:
            raise InvalidTaskParameters(f"Unsupported platform: {platform}") from None

    async def verify(
        self,
        user_id: str,
        platform: str,
        action: str | None,
        parameters: dict[str, Any],
    ) -> bool:
        """Return whether *user_id* completed *action* on *platform*.

        ``False`` is a definitive "not done"; anything the platform could not
        answer raises :class:`~phaeton.errors.UpstreamUnavailable`.
        """
        check = self.check_for(platform)
        platform = check.platform
        params = check.validate(action, parameters)

        connection = await run_db(get_connection, self.engine, user_id, platform.value)
        if connection is None:
            raise NotConnected(platform)

        if connection.is_expired(self._now()):
            raise TokenExpired(platform)
        if check.requires_user_token and not connection.access_token:
            raise TokenExpired(platform)

        problem = check.configuration_error()
        if problem:
            logger.error("%s verification unavailable: %s", platform.label, problem)
            raise UpstreamUnavailable(f"{platform.label} bot not configured", configuration=True)

        try:
            verified = await retry_with_backoff(
                lambda: check.check(connection, action, params),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                is_retryable=is_retryable,
                sleep=self._sleep,
                label=f"{platform.label} verification",
            )
        except PlatformConfigError as exc:
            logger.error("%s verification misconfigured: %s", platform.label, exc)
            raise UpstreamUnavailable(check.error_message, configuration=True) from exc
        except PlatformError as exc:
            logger.error("%s verification gave up for user %s: %s", platform.label, user_id, exc)
            raise UpstreamUnavailable(check.error_message) from exc

        logger.info(
            "%s verification for user %s: %s",
            platform.label, user_id, "verified" if verified else "not verified",
        )
        return verified
