"""
phaeton.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn phaeton.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from phaeton.api.auth import router as auth_router  # noqa: E402
from phaeton.api.deps import (  # noqa: E402
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
    WALLET_LOGIN_URL,
    get_config,
    is_secure,
)
from phaeton.api.routes.connections import router as connections_router  # noqa: E402
from phaeton.api.routes.tasks import router as tasks_router  # noqa: E402
from phaeton.auth.identity import SupabaseIdentityBackend  # noqa: E402
from phaeton.auth.nonce_store import NonceStore  # noqa: E402
from phaeton.auth.session import (  # noqa: E402
    SessionManager,
    apply_cookie_ops,
    cookies_set_on,
)
from phaeton.constants import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE  # noqa: E402
from phaeton.engine.rate_limit import FixedWindowRateLimiter  # noqa: E402
from phaeton.engine.store import Sweeper  # noqa: E402
from phaeton.errors import PhaetonError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared HTTP client and in-memory stores; start the sweeper."""
    cfg = get_config()

    client = httpx.AsyncClient(timeout=10, transport=httpx.AsyncHTTPTransport(retries=1))
    nonce_store = NonceStore(ttl_seconds=cfg.nonce_ttl_seconds)
    rate_limiter = FixedWindowRateLimiter()

    sweeper = Sweeper(interval=cfg.sweep_interval_seconds)
    sweeper.register("challenges", nonce_store)
    sweeper.register("rate_windows", rate_limiter)
    sweeper.start()

    identity = SupabaseIdentityBackend(
        client,
        url=SUPABASE_URL,
        anon_key=SUPABASE_ANON_KEY,
        wallet_login_url=WALLET_LOGIN_URL,
    )

    app.state.http_client = client
    app.state.nonce_store = nonce_store
    app.state.rate_limiter = rate_limiter
    app.state.sweeper = sweeper
    app.state.identity_backend = identity
    app.state.session_manager = SessionManager(identity)

    logger.info("%s API started", cfg.app_name)
    try:
        yield
    finally:
        await sweeper.stop()
        await client.aclose()
        logger.info("%s API shutting down", cfg.app_name)


app = FastAPI(
    title="Phaeton API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PhaetonError)
async def phaeton_error_handler(request: Request, exc: PhaetonError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()},
        headers=exc.headers,
    )


@app.middleware("http")
async def session_middleware(request: Request, call_next):
    """Resolve the cookie session before the handler; roll cookies after it.

    Cookies the handler set or deleted itself (sign-in, logout) win over the
    refresh plan.
    """
    sessions: SessionManager = request.app.state.session_manager
    outcome = await sessions.resolve(
        request.cookies.get(ACCESS_TOKEN_COOKIE),
        request.cookies.get(REFRESH_TOKEN_COOKIE),
        secure=is_secure(request),
    )
    request.state.user = outcome.user

    response = await call_next(request)
    if outcome.ops:
        apply_cookie_ops(response, outcome.ops, skip=cookies_set_on(response))
    return response


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(connections_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
