"""
phaeton.auth.session — Rolling session cookies
===============================================

The session lives entirely in two cookies, ``sb-access-token`` and
``sb-refresh-token``.  On every request the pair is presented to the
identity backend; whatever it answers decides what happens to the cookies.

Deciding and doing are kept apart:

* ``plan_*`` functions are pure — tokens in, a list of :class:`CookieOp` out;
* :func:`apply_cookie_ops` writes those operations onto a Starlette response.

Per-request protocol (:meth:`SessionManager.resolve`):

1. No access cookie → anonymous, nothing to write.
2. Backend error → anonymous, both cookies deleted.  The request still goes
   through; an identity outage must not turn every page into a 500.
3. Live session → user attached; each cookie is rewritten only if the
   backend handed back a different token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from starlette.responses import Response

from phaeton.auth.identity import IdentityBackend, IdentitySession
from phaeton.constants import (
    ACCESS_TOKEN_COOKIE,
    ACCESS_TOKEN_FALLBACK_MAX_AGE,
    REFRESH_TOKEN_COOKIE,
    REFRESH_TOKEN_MAX_AGE,
)
from phaeton.errors import IdentityBackendError

logger = logging.getLogger(__name__)

AUTH_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE)


@dataclass(frozen=True, slots=True)
class CookieOp:
    """Set (``value`` given) or delete (``value is None``) one auth cookie."""

    name: str
    value: str | None
    max_age: int | None = None
    secure: bool = False

    @property
    def is_delete(self) -> bool:
        return self.value is None


@dataclass(slots=True)
class SessionOutcome:
    user: dict[str, Any] | None = None
    ops: list[CookieOp] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure planning
# ---------------------------------------------------------------------------
def _access_op(session: IdentitySession, secure: bool) -> CookieOp:
    max_age = (
        session.expires_in if session.expires_in is not None else ACCESS_TOKEN_FALLBACK_MAX_AGE
    )
    return CookieOp(ACCESS_TOKEN_COOKIE, session.access_token, max_age=max_age, secure=secure)


def _refresh_op(refresh_token: str, secure: bool) -> CookieOp:
    return CookieOp(REFRESH_TOKEN_COOKIE, refresh_token, max_age=REFRESH_TOKEN_MAX_AGE, secure=secure)


def plan_clear_cookies(secure: bool) -> list[CookieOp]:
    return [CookieOp(name, None, secure=secure) for name in AUTH_COOKIES]


def plan_login_cookies(session: IdentitySession, secure: bool) -> list[CookieOp]:
    """Cookies for a freshly established session (sign-in / hand-off)."""
    ops = [_access_op(session, secure)]
    if session.refresh_token:
        ops.append(_refresh_op(session.refresh_token, secure))
    return ops


def plan_refresh_cookies(
    old_access: str,
    old_refresh: str,
    session: IdentitySession,
    secure: bool,
) -> list[CookieOp]:
    """Rewrite only the cookies whose token actually changed."""
    ops: list[CookieOp] = []
    if session.access_token and session.access_token != old_access:
        ops.append(_access_op(session, secure))
    if session.refresh_token and session.refresh_token != old_refresh:
        ops.append(_refresh_op(session.refresh_token, secure))
    return ops


# ---------------------------------------------------------------------------
# Imperative application
# ---------------------------------------------------------------------------
def cookies_set_on(response: Response) -> set[str]:
    """Names of cookies the response already sets or deletes."""
    names = set()
    for raw in response.headers.getlist("set-cookie"):
        names.add(raw.split("=", 1)[0].strip())
    return names


def apply_cookie_ops(
    response: Response,
    ops: list[CookieOp],
    *,
    skip: set[str] | None = None,
) -> None:
    """Write *ops* onto *response*, leaving cookies named in *skip* alone."""
    for op in ops:
        if skip and op.name in skip:
            continue
        if op.is_delete:
            response.delete_cookie(
                op.name, path="/", secure=op.secure, httponly=True, samesite="lax"
            )
        else:
            response.set_cookie(
                op.name,
                op.value,
                max_age=op.max_age,
                path="/",
                secure=op.secure,
                httponly=True,
                samesite="lax",
            )


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------
class SessionManager:
    def __init__(self, backend: IdentityBackend) -> None:
        self.backend = backend

    async def resolve(
        self,
        access_token: str | None,
        refresh_token: str | None,
        *,
        secure: bool,
    ) -> SessionOutcome:
        """Run the per-request session check; never raises for backend errors."""
        if not access_token:
            return SessionOutcome()

        refresh_token = refresh_token or ""
        try:
            session = await self.backend.refresh_session(access_token, refresh_token)
        except IdentityBackendError as exc:
            logger.warning("Session refresh failed, continuing anonymous: %s", exc)
            return SessionOutcome(ops=plan_clear_cookies(secure))

        return SessionOutcome(
            user=session.user or None,
            ops=plan_refresh_cookies(access_token, refresh_token, session, secure),
        )

    async def logout(self, access_token: str | None, *, secure: bool) -> list[CookieOp]:
        """Revoke the backend session (best effort) and plan cookie deletion."""
        if access_token:
            try:
                await self.backend.sign_out(access_token)
            except IdentityBackendError as exc:
                logger.warning("Backend sign-out failed, clearing cookies anyway: %s", exc)
        return plan_clear_cookies(secure)
