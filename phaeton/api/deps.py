"""
phaeton.api.deps — FastAPI dependency injection
=================================================

Process-wide collaborators (HTTP client, in-memory stores, identity backend)
are built once in the app lifespan and hung on ``app.state``; the getters
below hand them to routes.  Tests override them through
``app.dependency_overrides`` or by replacing the ``app.state`` attribute.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated, Any, TypeVar

import httpx
from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy import Engine

from phaeton.auth.identity import IdentityBackend
from phaeton.auth.nonce_store import NonceStore
from phaeton.auth.session import SessionManager
from phaeton.config import PhaetonConfig, PlatformSecrets, load_config, load_platform_secrets
from phaeton.database.engine import create_db_engine
from phaeton.engine.rate_limit import FixedWindowRateLimiter
from phaeton.errors import BadRequest, Unauthorized
from phaeton.services.oauth_service import OAuthClient
from phaeton.verification.engine import VerificationEngine

M = TypeVar("M", bound=BaseModel)


def _load_identity_env() -> tuple[str, str]:
    """Load and validate the identity backend settings from the environment.

    Raises RuntimeError at import time if either is missing, so a
    misconfigured deployment fails on boot rather than on first sign-in.
    """
    url = os.getenv("SUPABASE_URL", "").strip()
    anon_key = os.getenv("SUPABASE_ANON_KEY", "").strip()
    missing = [
        name
        for name, value in (("SUPABASE_URL", url), ("SUPABASE_ANON_KEY", anon_key))
        if not value
    ]
    if missing:
        raise RuntimeError(
            f"{' and '.join(missing)} not set. "
            "Copy .env.example → .env and fill in the identity backend settings."
        )
    if not url.startswith(("http://", "https://")):
        raise RuntimeError(f"SUPABASE_URL must be an http(s) URL, got {url!r}")
    return url.rstrip("/"), anon_key


SUPABASE_URL, SUPABASE_ANON_KEY = _load_identity_env()
WALLET_LOGIN_URL: str | None = os.getenv("SUPABASE_WALLET_LOGIN_FUNCTION_URL", "").strip() or None


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> PhaetonConfig:
    return load_config(os.getenv("PHAETON_CONFIG") or "config.yaml")


def get_platform_secrets() -> PlatformSecrets:
    return load_platform_secrets()


# ---------------------------------------------------------------------------
# Lifespan-owned collaborators
# ---------------------------------------------------------------------------
def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_nonce_store(request: Request) -> NonceStore:
    return request.app.state.nonce_store


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def get_identity_backend(request: Request) -> IdentityBackend:
    return request.app.state.identity_backend


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


# ---------------------------------------------------------------------------
# Per-request services
# ---------------------------------------------------------------------------
def get_verification_engine(
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[PhaetonConfig, Depends(get_config)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    platform_secrets: Annotated[PlatformSecrets, Depends(get_platform_secrets)],
) -> VerificationEngine:
    return VerificationEngine.from_config(engine, client, platform_secrets, cfg)


def get_oauth_client(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    platform_secrets: Annotated[PlatformSecrets, Depends(get_platform_secrets)],
) -> OAuthClient:
    return OAuthClient(client, platform_secrets)


def get_current_user(request: Request) -> dict[str, Any]:
    """Return the session user attached by the session middleware. 401 if none."""
    user = getattr(request.state, "user", None)
    if not user or not user.get("id"):
        raise Unauthorized()
    return user


async def read_body(request: Request, model: type[M]) -> M:
    """Parse the JSON body into *model*; anything unusable is a 400, not a 422."""
    try:
        raw = await request.json()
    except ValueError:
        raise BadRequest("Request body must be JSON") from None
    if not isinstance(raw, dict):
        raise BadRequest()
    try:
        return model.model_validate(raw)
    except ValidationError:
        raise BadRequest() from None


def is_secure(request: Request) -> bool:
    """Cookies get the ``Secure`` flag only when served over https."""
    return request.url.scheme == "https"
