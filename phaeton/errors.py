"""
phaeton.errors — Typed Error Taxonomy
======================================

Every failure the core can report to a caller is a :class:`PhaetonError`
subclass.  Each carries its HTTP status, a stable machine-readable ``code``
and a short public message.  :mod:`phaeton.api.main` renders them all with a
single exception handler::

    {"detail": {"error": "<code>", "message": "<text>", ...extra}}

Messages are written for end users: no token values, no upstream payloads,
no stack traces.  Internal failures that are *absorbed* (identity backend
hiccups during cookie refresh, transient platform errors that get retried)
are modelled separately and never reach the response directly.
"""

from __future__ import annotations

from typing import Any


class PhaetonError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal error"

    def __init__(
        self,
        message: str | None = None,
        *,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.extra = extra or {}
        self.headers = headers
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


# ---------------------------------------------------------------------------
# 400 — caller supplied something unusable
# ---------------------------------------------------------------------------
class BadRequest(PhaetonError):
    status_code = 400
    code = "invalid_payload"
    default_message = "Invalid payload"


class InvalidTaskParameters(BadRequest):
    code = "invalid_task_parameters"
    default_message = "Invalid task parameters"


class InvalidOAuthState(BadRequest):
    code = "invalid_oauth_state"
    default_message = "Invalid or expired OAuth state"


class NotConnected(PhaetonError):
    """The caller has no SocialConnection for the requested platform."""

    status_code = 400
    code = "not_connected"
    default_message = "Account not connected"

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"{platform.capitalize()} account not connected",
            extra={"platform": platform},
        )


# ---------------------------------------------------------------------------
# 401 — authentication problems
# ---------------------------------------------------------------------------
class Unauthorized(PhaetonError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class NonceNotFoundOrExpired(Unauthorized):
    """No live challenge for the address.

    Deliberately the same error whether the challenge never existed or has
    expired.
    """

    code = "nonce_not_found"
    default_message = "Nonce expired or not found"


class InvalidSignature(Unauthorized):
    code = "invalid_signature"
    default_message = "Invalid signature"


class AddressMismatch(InvalidSignature):
    code = "address_mismatch"
    default_message = "Signature address mismatch"


class TokenExpired(Unauthorized):
    """The stored platform token is past its expiry; the user must reconnect."""

    code = "token_expired"

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"{platform.capitalize()} token expired. Please reconnect your account.",
            extra={"platform": platform},
        )


# ---------------------------------------------------------------------------
# 429 — quota
# ---------------------------------------------------------------------------
class RateLimited(PhaetonError):
    status_code = 429
    code = "rate_limit_exceeded"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after} seconds.",
            extra={"retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


# ---------------------------------------------------------------------------
# 500 — upstream / configuration
# ---------------------------------------------------------------------------
class UpstreamUnavailable(PhaetonError):
    """A platform or the identity backend could not give an answer.

    ``configuration`` is True when the cause is our own setup (missing bot
    token, bot without access to the guild) rather than a transient outage.
    """

    status_code = 500
    code = "upstream_unavailable"
    default_message = "Upstream service unavailable"

    def __init__(self, message: str | None = None, *, configuration: bool = False) -> None:
        self.configuration = configuration
        super().__init__(message)


# ---------------------------------------------------------------------------
# Internal — absorbed or translated before reaching a response
# ---------------------------------------------------------------------------
class IdentityBackendError(Exception):
    """The identity backend rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
