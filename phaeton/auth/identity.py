"""
phaeton.auth.identity — External identity backend client
=========================================================

Phaeton does not store sessions.  Access/refresh tokens are minted by a
hosted identity service (GoTrue-compatible REST API, as exposed by Supabase)
and this module is the only place that talks to it:

* ``refresh_session`` — the per-request check behind the rolling cookies.
  The access token's ``exp`` claim is read locally (no signature check; the
  backend remains the authority).  A live token is validated against
  ``/auth/v1/user``; an expired one is exchanged for a fresh pair at
  ``/auth/v1/token?grant_type=refresh_token``.
* ``wallet_login`` — hands a verified wallet signature to the wallet-login
  function, which provisions the user and returns a session.
* ``sign_out`` — revokes the session server-side on logout.

All failures surface as :class:`~phaeton.errors.IdentityBackendError`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import jwt

from phaeton.errors import IdentityBackendError

logger = logging.getLogger(__name__)

# Refresh slightly early so a token does not expire mid-request
EXPIRY_MARGIN_SECONDS = 10


@dataclass(frozen=True, slots=True)
class IdentitySession:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    user: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str | None:
        return self.user.get("id")


class IdentityBackend(Protocol):
    async def refresh_session(self, access_token: str, refresh_token: str) -> IdentitySession: ...

    async def wallet_login(self, address: str, message: str, signature: str) -> IdentitySession: ...

    async def sign_out(self, access_token: str) -> None: ...


def session_from_payload(data: dict[str, Any]) -> IdentitySession:
    """Build an :class:`IdentitySession` from a token-endpoint style payload."""
    access_token = data.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise IdentityBackendError("Identity backend response missing session")
    expires_in = data.get("expires_in")
    if expires_in is not None:
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as exc:
            raise IdentityBackendError("Malformed identity backend response") from exc
    user = data.get("user")
    return IdentitySession(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or None,
        expires_in=expires_in,
        user=user if isinstance(user, dict) else {},
    )


class SupabaseIdentityBackend:
    """GoTrue REST client used by the session middleware and sign-in."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        anon_key: str,
        wallet_login_url: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.wallet_login_url = wallet_login_url or f"{self.url}/functions/v1/wallet-login"
        self._clock = clock

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        url: str,
        *,
        bearer: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer or self.anon_key}",
        }
        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityBackendError(
                f"Identity backend unreachable ({exc.__class__.__name__})"
            ) from exc

        if resp.status_code >= 400:
            raise IdentityBackendError(
                f"Identity backend returned {resp.status_code}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            raise IdentityBackendError("Malformed identity backend response") from exc
        if not isinstance(data, dict):
            raise IdentityBackendError("Malformed identity backend response")
        return data

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    async def refresh_session(self, access_token: str, refresh_token: str) -> IdentitySession:
        try:
            claims = jwt.decode(access_token, options={"verify_signature": False})
        except jwt.InvalidTokenError as exc:
            raise IdentityBackendError("Malformed access token") from exc

        exp = claims.get("exp")
        if not isinstance(exp, int | float):
            raise IdentityBackendError("Access token has no expiry")

        now = self._clock()
        if exp - EXPIRY_MARGIN_SECONDS <= now:
            if not refresh_token:
                raise IdentityBackendError("Access token expired and no refresh token")
            data = await self._request(
                "POST",
                f"{self.url}/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
            )
            return session_from_payload(data)

        user = await self._request("GET", f"{self.url}/auth/v1/user", bearer=access_token)
        if not user.get("id"):
            raise IdentityBackendError("Identity backend returned no user")
        return IdentitySession(
            access_token=access_token,
            refresh_token=refresh_token or None,
            expires_in=int(exp - now),
            user=user,
        )

    async def wallet_login(self, address: str, message: str, signature: str) -> IdentitySession:
        data = await self._request(
            "POST",
            self.wallet_login_url,
            json={"address": address, "message": message, "signature": signature},
        )
        session_data = data.get("session")
        if not isinstance(session_data, dict):
            raise IdentityBackendError("Identity backend response missing session")
        session = session_from_payload(session_data)
        user = data.get("user")
        if isinstance(user, dict) and user:
            session = IdentitySession(
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                expires_in=session.expires_in,
                user=user,
            )
        return session

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", f"{self.url}/auth/v1/logout", bearer=access_token)
