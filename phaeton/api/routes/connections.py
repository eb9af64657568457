"""
phaeton.api.routes.connections — Linking social accounts
=========================================================

Discord and Twitter link through OAuth 2.0 (Twitter with PKCE)::

    GET /api/auth/{discord,twitter}/connect?returnTo=/events/42
        → 302 to the provider consent screen
    GET /api/auth/{discord,twitter}/callback?code=…&state=…
        → 302 back to returnTo

Telegram has no OAuth; the login widget redirects to
``/api/auth/telegram/callback`` with a signed payload.

All endpoints require a session.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import Engine

from phaeton.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_oauth_client,
    get_platform_secrets,
)
from phaeton.config import PhaetonConfig, PlatformSecrets
from phaeton.constants import Platform
from phaeton.database.engine import run_db
from phaeton.errors import BadRequest
from phaeton.services.connection_service import (
    delete_connection,
    list_connections,
    upsert_connection,
)
from phaeton.services.oauth_service import (
    OAuthClient,
    consume_state,
    discord_authorize_url,
    issue_state,
    make_pkce_pair,
    safe_return_to,
    twitter_authorize_url,
    verify_telegram_login,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["connections"])


def _platform(value: str) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        raise BadRequest(f"Unsupported platform: {value}") from None


# ---------------------------------------------------------------------------
# Discord
# ---------------------------------------------------------------------------
@router.get("/discord/connect")
async def discord_connect(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    cfg: Annotated[PhaetonConfig, Depends(get_config)],
    engine: Annotated[Engine, Depends(get_engine)],
    oauth: Annotated[OAuthClient, Depends(get_oauth_client)],
    returnTo: str | None = None,
):
    """Redirect to the Discord consent screen."""
    client_id, _ = oauth.credentials(Platform.DISCORD)
    state = await run_db(
        issue_state,
        engine,
        platform=Platform.DISCORD.value,
        user_id=user["id"],
        return_to=safe_return_to(returnTo, cfg.default_return_to),
        ttl_seconds=cfg.oauth_state_ttl_seconds,
    )
    redirect_uri = str(request.url_for("discord_callback"))
    return RedirectResponse(discord_authorize_url(client_id, redirect_uri, state), status_code=302)


@router.get("/discord/callback")
async def discord_callback(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    cfg: Annotated[PhaetonConfig, Depends(get_config)],
    engine: Annotated[Engine, Depends(get_engine)],
    oauth: Annotated[OAuthClient, Depends(get_oauth_client)],
    code: str | None = None,
    state: str | None = None,
):
    """Exchange the code, store the Discord connection, go back."""
    if not code:
        raise BadRequest("Missing authorization code")
    pending = await run_db(
        consume_state,
        engine,
        state,
        platform=Platform.DISCORD.value,
        user_id=user["id"],
        ttl_seconds=cfg.oauth_state_ttl_seconds,
    )

    redirect_uri = str(request.url_for("discord_callback"))
    tokens = await oauth.exchange_discord_code(code, redirect_uri)
    account = await oauth.fetch_discord_user(tokens.access_token)

    await run_db(
        upsert_connection,
        engine,
        user_id=user["id"],
        platform=Platform.DISCORD.value,
        platform_user_id=account.platform_user_id,
        username=account.username,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expires_at=tokens.expires_at,
        metadata=account.metadata,
    )
    return RedirectResponse(pending.return_to, status_code=302)


# ---------------------------------------------------------------------------
# Twitter
# ---------------------------------------------------------------------------
@router.get("/twitter/connect")
async def twitter_connect(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    cfg: Annotated[PhaetonConfig, Depends(get_config)],
    engine: Annotated[Engine, Depends(get_engine)],
    oauth: Annotated[OAuthClient, Depends(get_oauth_client)],
    returnTo: str | None = None,
):
    """Redirect to the Twitter consent screen (PKCE S256)."""
    client_id, _ = oauth.credentials(Platform.TWITTER)
    verifier, challenge = make_pkce_pair()
    state = await run_db(
        issue_state,
        engine,
        platform=Platform.TWITTER.value,
        user_id=user["id"],
        return_to=safe_return_to(returnTo, cfg.default_return_to),
        code_verifier=verifier,
        ttl_seconds=cfg.oauth_state_ttl_seconds,
    )
    redirect_uri = str(request.url_for("twitter_callback"))
    return RedirectResponse(
        twitter_authorize_url(client_id, redirect_uri, state, challenge), status_code=302
    )


@router.get("/twitter/callback")
async def twitter_callback(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    cfg: Annotated[PhaetonConfig, Depends(get_config)],
    engine: Annotated[Engine, Depends(get_engine)],
    oauth: Annotated[OAuthClient, Depends(get_oauth_client)],
    code: str | None = None,
    state: str | None = None,
):
    if not code:
        raise BadRequest("Missing authorization code")
    pending = await run_db(
        consume_state,
        engine,
        state,
        platform=Platform.TWITTER.value,
        user_id=user["id"],
        ttl_seconds=cfg.oauth_state_ttl_seconds,
    )

    redirect_uri = str(request.url_for("twitter_callback"))
    tokens = await oauth.exchange_twitter_code(code, redirect_uri, pending.code_verifier or "")
    account = await oauth.fetch_twitter_user(tokens.access_token)

    await run_db(
        upsert_connection,
        engine,
        user_id=user["id"],
        platform=Platform.TWITTER.value,
        platform_user_id=account.platform_user_id,
        username=account.username,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expires_at=tokens.expires_at,
        metadata=account.metadata,
    )
    return RedirectResponse(pending.return_to, status_code=302)


# ---------------------------------------------------------------------------
# Telegram login widget
# ---------------------------------------------------------------------------
@router.get("/telegram/callback")
async def telegram_callback(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    cfg: Annotated[PhaetonConfig, Depends(get_config)],
    engine: Annotated[Engine, Depends(get_engine)],
    platform_secrets: Annotated[PlatformSecrets, Depends(get_platform_secrets)],
):
    """Verify the widget's signed payload and store a token-less connection."""
    account = verify_telegram_login(
        dict(request.query_params), platform_secrets.telegram_bot_token
    )
    await run_db(
        upsert_connection,
        engine,
        user_id=user["id"],
        platform=Platform.TELEGRAM.value,
        platform_user_id=account.platform_user_id,
        username=account.username,
        metadata=account.metadata,
    )
    return RedirectResponse(cfg.default_return_to, status_code=302)


# ---------------------------------------------------------------------------
# Status / unlink
# ---------------------------------------------------------------------------
@router.get("/connections")
async def connections(
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    """List the caller's linked accounts (never their tokens)."""
    rows = await run_db(list_connections, engine, user["id"])
    return {"connections": [row.public_dict() for row in rows]}


@router.post("/{platform}/disconnect")
async def disconnect(
    platform: str,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    target = _platform(platform)
    await run_db(delete_connection, engine, user["id"], target.value)
    return {"success": True}
