"""
phaeton.verification.base — Platform check contract
====================================================

Every platform check answers one question: *did this user do the thing?*

* ``True`` / ``False`` are **definitive** answers and are never retried.
* :class:`PlatformError` means the platform could not answer right now
  (5xx, 429, timeout, garbled body).  The engine retries these.
* :class:`PlatformConfigError` means our side is misconfigured (bot not in
  the guild, bad bot token).  Retrying cannot help, so it is not retried.

Checks validate task parameters up front in :meth:`PlatformCheck.validate`,
which runs before any connection lookup or network access.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

import httpx

from phaeton.constants import Platform
from phaeton.services.connection_service import ConnectionInfo

logger = logging.getLogger(__name__)


class PlatformError(Exception):
    """Transient upstream failure; safe to retry."""


class PlatformConfigError(PlatformError):
    """Upstream refused because of our own configuration; not retried."""


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PlatformError) and not isinstance(exc, PlatformConfigError)


class PlatformCheck:
    """Base class for per-platform verifiers.

    Subclasses set :attr:`platform` and the two user-facing messages, and
    implement :meth:`validate` and :meth:`check`.
    """

    platform: ClassVar[Platform]
    success_message: ClassVar[str] = "Action verified successfully"
    failure_message: ClassVar[str] = "Could not verify action. Please complete the task and try again."
    error_message: ClassVar[str] = "Failed to verify task"

    # Checks that act with the user's own OAuth token need one on the connection
    requires_user_token: ClassVar[bool] = False

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    # -------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------
    def configuration_error(self) -> str | None:
        """Describe missing server-side configuration, or ``None`` if ready."""
        return None

    def validate(self, action: str | None, parameters: dict[str, Any]) -> dict[str, Any]:
        """Return normalized parameters or raise ``InvalidTaskParameters``."""
        raise NotImplementedError

    async def check(
        self,
        connection: ConnectionInfo,
        action: str | None,
        params: dict[str, Any],
    ) -> bool:
        raise NotImplementedError

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a request, turning transport failures into PlatformError.

        Only the exception class is reported: URLs may embed bot tokens.
        """
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PlatformError(
                f"{self.platform.label} request failed ({exc.__class__.__name__})"
            ) from exc

    def _json(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise PlatformError(
                f"{self.platform.label} returned a malformed body (HTTP {resp.status_code})"
            ) from exc
        if not isinstance(data, dict):
            raise PlatformError(
                f"{self.platform.label} returned a malformed body (HTTP {resp.status_code})"
            )
        return data


def first_param(parameters: dict[str, Any], *names: str) -> str | None:
    """Return the first non-blank string among *names* in *parameters*."""
    for name in names:
        value = parameters.get(name)
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
