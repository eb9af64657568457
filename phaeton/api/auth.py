"""
phaeton.api.auth — Wallet sign-in, session hand-off and logout
================================================================

Sign-in is a two-step challenge/response:

1. ``POST /api/auth/nonce``  ``{address}`` → a one-time challenge message.
2. ``POST /api/auth/verify`` ``{address, signature}`` → the challenge is
   consumed, the signer recovered and compared, and the identity backend's
   wallet-login function mints a session.  Both cookies are set on the
   response.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from phaeton.api.deps import (
    get_current_user,
    get_identity_backend,
    get_nonce_store,
    get_session_manager,
    is_secure,
    read_body,
)
from phaeton.auth.identity import IdentityBackend, IdentitySession
from phaeton.auth.nonce_store import NonceStore, normalize_address
from phaeton.auth.session import SessionManager, apply_cookie_ops, plan_login_cookies
from phaeton.auth.signature import SignatureVerifier
from phaeton.constants import ACCESS_TOKEN_COOKIE, WALLET_EMAIL_DOMAIN
from phaeton.errors import BadRequest, IdentityBackendError, UpstreamUnavailable

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

_verifier = SignatureVerifier()


class NonceRequest(BaseModel):
    address: str | None = None


class VerifyRequest(BaseModel):
    address: str | None = None
    signature: str | None = None


class SessionHandoff(BaseModel):
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None


def _checked_address(address: str | None) -> str:
    if not address or not _ADDRESS_RE.match(address.strip()):
        raise BadRequest("Invalid wallet address")
    return normalize_address(address)


def wallet_address_of(user: dict[str, Any]) -> str | None:
    """Prefer ``user_metadata.wallet_address``; fall back to the synthetic e-mail."""
    metadata = user.get("user_metadata") or {}
    wallet = metadata.get("wallet_address") if isinstance(metadata, dict) else None
    if wallet:
        return wallet
    email = user.get("email")
    suffix = f"@{WALLET_EMAIL_DOMAIN}"
    if isinstance(email, str) and email.endswith(suffix):
        return email[: -len(suffix)]
    return None


# ---------------------------------------------------------------------------
# Challenge / response
# ---------------------------------------------------------------------------
@router.post("/nonce")
async def issue_nonce(
    request: Request,
    nonce_store: Annotated[NonceStore, Depends(get_nonce_store)],
):
    """Issue (or replace) the sign-in challenge for a wallet."""
    body = await read_body(request, NonceRequest)
    challenge = nonce_store.issue(_checked_address(body.address))
    return {
        "message": challenge.message,
        "nonce": challenge.nonce,
        "expiresAt": challenge.expires_at_ms,
    }


@router.post("/verify")
async def verify_signature(
    request: Request,
    nonce_store: Annotated[NonceStore, Depends(get_nonce_store)],
    identity: Annotated[IdentityBackend, Depends(get_identity_backend)],
):
    """Redeem a signed challenge for a session."""
    body = await read_body(request, VerifyRequest)
    if not body.address or not body.signature:
        raise BadRequest()
    address = normalize_address(body.address)

    challenge = nonce_store.consume(address)
    recovered = _verifier.verify(address, challenge.message, body.signature)

    try:
        session = await identity.wallet_login(recovered, challenge.message, body.signature)
    except IdentityBackendError as exc:
        logger.error("Wallet login failed for %s: %s", recovered, exc)
        raise UpstreamUnavailable("Auth error") from exc

    logger.info("Wallet %s signed in as user %s", recovered, session.user_id)
    response = JSONResponse({"walletAddress": recovered, "userId": session.user_id})
    apply_cookie_ops(response, plan_login_cookies(session, is_secure(request)))
    return response


# ---------------------------------------------------------------------------
# Session hand-off / logout / profile
# ---------------------------------------------------------------------------
@router.post("/session", status_code=204)
async def store_session(request: Request):
    """Store tokens obtained client-side as the session cookies."""
    body = await read_body(request, SessionHandoff)
    if not body.access_token:
        raise BadRequest("Missing access token")
    session = IdentitySession(
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_in=body.expires_in,
    )
    response = Response(status_code=204)
    apply_cookie_ops(response, plan_login_cookies(session, is_secure(request)))
    return response


@router.post("/logout")
async def logout(
    request: Request,
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
):
    ops = await sessions.logout(request.cookies.get(ACCESS_TOKEN_COOKIE), secure=is_secure(request))
    response = PlainTextResponse("OK")
    apply_cookie_ops(response, ops)
    return response


@router.get("/me")
async def me(user: Annotated[dict[str, Any], Depends(get_current_user)]):
    """Return the signed-in user's id, e-mail and wallet."""
    return {
        "id": user["id"],
        "email": user.get("email"),
        "walletAddress": wallet_address_of(user),
    }
