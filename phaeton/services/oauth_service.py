"""
phaeton.services.oauth_service — Account-linking OAuth flows
=============================================================

Server side of "Connect Discord / Twitter / Telegram":

* **State machine** — every ``connect`` issues a random ``state`` row in
  ``oauth_states`` bound to the platform, the signed-in user and the page to
  return to (plus the PKCE verifier for Twitter).  The matching ``callback``
  consumes it exactly once.  Rows older than the TTL are pruned on every
  issue and consume.
* **Token exchange** — authorization code → tokens → platform user, over the
  shared ``httpx.AsyncClient``.
* **Telegram login widget** — no OAuth; the widget's payload is signed with
  ``HMAC-SHA256(key=sha256(bot_token))`` and checked here.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy import Engine, delete

from phaeton.config import PlatformSecrets
from phaeton.constants import (
    DISCORD_API,
    DISCORD_AUTHORIZE_URL,
    DISCORD_OAUTH_SCOPE,
    TELEGRAM_AUTH_MAX_AGE_SECONDS,
    TWITTER_API,
    TWITTER_AUTHORIZE_URL,
    TWITTER_OAUTH_SCOPE,
    Platform,
)
from phaeton.database.engine import get_session
from phaeton.database.models import OAuthState
from phaeton.errors import BadRequest, InvalidOAuthState, UpstreamUnavailable

logger = logging.getLogger(__name__)

OAUTH_STATE_TTL_SECONDS = 600


@dataclass(frozen=True, slots=True)
class PendingAuthorization:
    state: str
    platform: str
    user_id: str
    return_to: str
    code_verifier: str | None = None


@dataclass(frozen=True, slots=True)
class OAuthTokens:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class PlatformAccount:
    platform_user_id: str
    username: str | None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def safe_return_to(value: str | None, default: str = "/dashboard") -> str:
    """Accept only same-origin paths so the callback cannot be an open redirect."""
    if value and value.startswith("/") and not value.startswith("//") and "\\" not in value:
        return value
    return default


def make_pkce_pair() -> tuple[str, str]:
    """Return ``(code_verifier, code_challenge)`` for PKCE S256."""
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def discord_authorize_url(client_id: str, redirect_uri: str, state: str) -> str:
    query = urlencode(
        {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": DISCORD_OAUTH_SCOPE,
            "state": state,
        }
    )
    return f"{DISCORD_AUTHORIZE_URL}?{query}"


def twitter_authorize_url(
    client_id: str, redirect_uri: str, state: str, code_challenge: str
) -> str:
    query = urlencode(
        {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": TWITTER_OAUTH_SCOPE,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
    )
    return f"{TWITTER_AUTHORIZE_URL}?{query}"


# ---------------------------------------------------------------------------
# State storage
# ---------------------------------------------------------------------------
def _prune(session, ttl_seconds: int) -> None:
    cutoff = datetime.now(UTC) - timedelta(seconds=ttl_seconds)
    session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))


def issue_state(
    engine: Engine,
    *,
    platform: str,
    user_id: str,
    return_to: str,
    code_verifier: str | None = None,
    ttl_seconds: int = OAUTH_STATE_TTL_SECONDS,
) -> str:
    """Persist a fresh one-time state token and return it."""
    state = secrets.token_hex(32)
    with get_session(engine) as session:
        _prune(session, ttl_seconds)
        session.add(
            OAuthState(
                state=state,
                platform=platform,
                user_id=user_id,
                code_verifier=code_verifier,
                return_to=return_to,
                created_at=datetime.now(UTC),
            )
        )
    return state


def consume_state(
    engine: Engine,
    state: str | None,
    *,
    platform: str,
    user_id: str,
    ttl_seconds: int = OAUTH_STATE_TTL_SECONDS,
) -> PendingAuthorization:
    """Redeem *state* for the given platform and user.

    The row is deleted as soon as it is presented, whether or not it
    matches.  Raises :class:`~phaeton.errors.InvalidOAuthState` otherwise.
    """
    if not state:
        raise InvalidOAuthState()

    pending: PendingAuthorization | None = None
    with get_session(engine) as session:
        _prune(session, ttl_seconds)
        row = session.get(OAuthState, state)
        if row is not None:
            pending = PendingAuthorization(
                state=row.state,
                platform=row.platform,
                user_id=row.user_id,
                return_to=row.return_to,
                code_verifier=row.code_verifier,
            )
            session.delete(row)

    # Raised after the block so the prune above is committed
    if pending is None:
        raise InvalidOAuthState()
    if pending.platform != platform or pending.user_id != user_id:
        logger.warning(
            "OAuth state presented for %s by user %s was issued for %s / %s",
            platform, user_id, pending.platform, pending.user_id,
        )
        raise InvalidOAuthState()
    return pending


# ---------------------------------------------------------------------------
# Telegram login widget
# ---------------------------------------------------------------------------
def verify_telegram_login(
    params: Mapping[str, str],
    bot_token: str,
    *,
    now: float | None = None,
    max_age_seconds: int = TELEGRAM_AUTH_MAX_AGE_SECONDS,
) -> PlatformAccount:
    """Check a Telegram login-widget payload and return the account it names."""
    if not bot_token:
        logger.error("Telegram login rejected: TELEGRAM_BOT_TOKEN is not set")
        raise UpstreamUnavailable("Telegram bot not configured", configuration=True)

    user_id = params.get("id")
    received_hash = params.get("hash")
    auth_date = params.get("auth_date")
    if not user_id or not received_hash or not auth_date:
        raise BadRequest("Missing required parameters")

    check_string = "\n".join(
        sorted(f"{key}={value}" for key, value in params.items() if key != "hash")
    )
    secret_key = hashlib.sha256(bot_token.encode()).digest()
    expected = hmac.new(secret_key, check_string.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, received_hash):
        raise BadRequest("Invalid authentication data")

    try:
        auth_ts = int(auth_date)
    except ValueError:
        raise BadRequest("Invalid authentication data") from None
    if (now if now is not None else time.time()) - auth_ts > max_age_seconds:
        raise BadRequest("Authentication data is too old")

    first_name = params.get("first_name") or ""
    last_name = params.get("last_name") or ""
    username = params.get("username") or f"{first_name} {last_name}".strip() or None
    return PlatformAccount(
        platform_user_id=user_id,
        username=username,
        metadata={
            "first_name": first_name or None,
            "last_name": last_name or None,
            "photo_url": params.get("photo_url"),
        },
    )


# ---------------------------------------------------------------------------
# Code exchange
# ---------------------------------------------------------------------------
class OAuthClient:
    """Authorization-code exchange and profile lookup for Discord and Twitter."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        platform_secrets: PlatformSecrets,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._client = client
        self._secrets = platform_secrets
        self._now = now

    def credentials(self, platform: Platform) -> tuple[str, str]:
        """Return ``(client_id, client_secret)`` or fail with a generic 500."""
        if platform is Platform.DISCORD:
            pair = (self._secrets.discord_client_id, self._secrets.discord_client_secret)
        elif platform is Platform.TWITTER:
            pair = (self._secrets.twitter_client_id, self._secrets.twitter_client_secret)
        else:
            raise BadRequest(f"{platform.label} does not use OAuth")
        if not all(pair):
            prefix = platform.value.upper()
            logger.error(
                "%s OAuth is not configured: set %s_CLIENT_ID and %s_CLIENT_SECRET",
                platform.label, prefix, prefix,
            )
            raise UpstreamUnavailable(f"{platform.label} OAuth is not configured", configuration=True)
        return pair

    async def _call(self, platform: Platform, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        failure = f"Failed to connect {platform.label} account"
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s OAuth request failed: %s", platform.label, exc.__class__.__name__)
            raise UpstreamUnavailable(failure) from exc
        if resp.status_code != 200:
            logger.warning("%s OAuth request returned HTTP %d", platform.label, resp.status_code)
            raise UpstreamUnavailable(failure)
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamUnavailable(failure) from exc
        if not isinstance(data, dict):
            raise UpstreamUnavailable(failure)
        return data

    def _tokens(self, platform: Platform, data: dict[str, Any]) -> OAuthTokens:
        access_token = data.get("access_token")
        if not access_token:
            raise UpstreamUnavailable(f"Failed to connect {platform.label} account")
        expires_in = data.get("expires_in")
        expires_at = (
            self._now() + timedelta(seconds=int(expires_in)) if expires_in is not None else None
        )
        return OAuthTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
        )

    # -------------------------------------------------------------------
    # Discord
    # -------------------------------------------------------------------
    async def exchange_discord_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        client_id, client_secret = self.credentials(Platform.DISCORD)
        data = await self._call(
            Platform.DISCORD,
            "POST",
            f"{DISCORD_API}/oauth2/token",
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
        return self._tokens(Platform.DISCORD, data)

    async def fetch_discord_user(self, access_token: str) -> PlatformAccount:
        user = await self._call(
            Platform.DISCORD,
            "GET",
            f"{DISCORD_API}/users/@me",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not user.get("id"):
            raise UpstreamUnavailable("Failed to connect Discord account")
        username = user.get("username")
        discriminator = user.get("discriminator")
        if username and discriminator not in (None, "", "0"):
            username = f"{username}#{discriminator}"
        return PlatformAccount(
            platform_user_id=str(user["id"]),
            username=username,
            metadata={"avatar": user.get("avatar"), "global_name": user.get("global_name")},
        )

    # -------------------------------------------------------------------
    # Twitter (OAuth 2.0 with PKCE)
    # -------------------------------------------------------------------
    async def exchange_twitter_code(
        self, code: str, redirect_uri: str, code_verifier: str
    ) -> OAuthTokens:
        client_id, client_secret = self.credentials(Platform.TWITTER)
        data = await self._call(
            Platform.TWITTER,
            "POST",
            f"{TWITTER_API}/oauth2/token",
            auth=(client_id, client_secret),
            data={
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
        )
        return self._tokens(Platform.TWITTER, data)

    async def fetch_twitter_user(self, access_token: str) -> PlatformAccount:
        body = await self._call(
            Platform.TWITTER,
            "GET",
            f"{TWITTER_API}/users/me",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        user = body.get("data")
        if not isinstance(user, dict) or not user.get("id"):
            raise UpstreamUnavailable("Failed to connect Twitter account")
        return PlatformAccount(
            platform_user_id=str(user["id"]),
            username=user.get("username"),
            metadata={"name": user.get("name")},
        )
