"""
phaeton.api.routes.tasks — Social task verification endpoints
===============================================================

``POST /api/tasks/verify-{discord,telegram,twitter}``

Responses::

    200 {"verified": true,  "message": ..., "remaining": n}
    400 {"verified": false, "message": ..., "remaining": n}   # not done yet

Everything else (not connected, token expired, quota, upstream failure)
is a typed error rendered by the app's error handler.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from phaeton.api.deps import get_current_user, get_verification_engine, read_body
from phaeton.api.rate_limit import verification_quota
from phaeton.constants import JOIN_ACTION, Platform
from phaeton.engine.rate_limit import RateLimitResult
from phaeton.verification.engine import VerificationEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["tasks"])


class DiscordTask(BaseModel):
    serverId: str | int | None = None
    guildId: str | int | None = None


class TelegramTask(BaseModel):
    channelId: str | int | None = None
    channelUsername: str | None = None


class TwitterTask(BaseModel):
    action: str | None = None
    username: str | None = None
    tweetUrl: str | None = None


async def _verify(
    engine: VerificationEngine,
    user: dict[str, Any],
    platform: Platform,
    action: str | None,
    params: dict[str, Any],
    quota: RateLimitResult,
) -> JSONResponse:
    verified = await engine.verify(user["id"], platform, action, params)
    check = engine.check_for(platform)
    return JSONResponse(
        {
            "verified": verified,
            "message": check.success_message if verified else check.failure_message,
            "remaining": quota.remaining,
        },
        status_code=200 if verified else 400,
    )


@router.post("/verify-discord")
async def verify_discord(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    quota: Annotated[RateLimitResult, Depends(verification_quota(Platform.DISCORD))],
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
):
    """Check the user's linked Discord account is in ``serverId``."""
    body = await read_body(request, DiscordTask)
    return await _verify(
        engine, user, Platform.DISCORD, JOIN_ACTION, body.model_dump(exclude_none=True), quota
    )


@router.post("/verify-telegram")
async def verify_telegram(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    quota: Annotated[RateLimitResult, Depends(verification_quota(Platform.TELEGRAM))],
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
):
    body = await read_body(request, TelegramTask)
    return await _verify(
        engine, user, Platform.TELEGRAM, JOIN_ACTION, body.model_dump(exclude_none=True), quota
    )


@router.post("/verify-twitter")
async def verify_twitter(
    request: Request,
    user: Annotated[dict[str, Any], Depends(get_current_user)],
    quota: Annotated[RateLimitResult, Depends(verification_quota(Platform.TWITTER))],
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
):
    """Check a follow / like / retweet / quote with the user's Twitter token."""
    body = await read_body(request, TwitterTask)
    params = body.model_dump(exclude_none=True, exclude={"action"})
    return await _verify(engine, user, Platform.TWITTER, body.action, params, quota)
