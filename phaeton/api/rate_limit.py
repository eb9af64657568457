"""
phaeton.api.rate_limit — Per-user verification quota
=====================================================

Each task-verification endpoint allows ``verify_rate_limit`` calls per
``verify_rate_window_seconds`` per user and platform (10 / 60 s by default),
keyed ``<platform>_verify:<user_id>``.

The quota is a route dependency, so it runs before the request body is read:
a throttled caller never reaches parsing, the database or the platform.
Denials return HTTP 429 with a ``Retry-After`` header.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Depends

from phaeton.api.deps import get_config, get_current_user, get_rate_limiter
from phaeton.config import PhaetonConfig
from phaeton.constants import Platform
from phaeton.engine.rate_limit import FixedWindowRateLimiter, RateLimitResult
from phaeton.errors import RateLimited

logger = logging.getLogger(__name__)


def rate_limit_key(platform: Platform, user_id: str) -> str:
    return f"{platform.value}_verify:{user_id}"


def verification_quota(platform: Platform):
    """Build the quota dependency for one platform's verify endpoint."""

    def _check_quota(
        user: Annotated[dict[str, Any], Depends(get_current_user)],
        limiter: Annotated[FixedWindowRateLimiter, Depends(get_rate_limiter)],
        cfg: Annotated[PhaetonConfig, Depends(get_config)],
    ) -> RateLimitResult:
        result = limiter.check(
            rate_limit_key(platform, user["id"]),
            max_requests=cfg.verify_rate_limit,
            window_seconds=cfg.verify_rate_window_seconds,
        )
        if not result.allowed:
            retry_after = limiter.retry_after(result)
            logger.warning(
                "Rate limit exceeded for %s verification by user %s: %d/%ds",
                platform.value, user["id"], cfg.verify_rate_limit,
                cfg.verify_rate_window_seconds,
            )
            raise RateLimited(retry_after)
        return result

    return _check_quota
