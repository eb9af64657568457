"""
phaeton.services.connection_service — Linked social accounts
=============================================================

Read/write access to the ``social_connections`` table.  One row per
``(user_id, platform)``; linking the same platform again replaces the row in
place.

Functions return :class:`ConnectionInfo` snapshots rather than ORM objects so
callers can use them after the session has closed (and from the event loop
after :func:`~phaeton.database.engine.run_db` returns).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from phaeton.database.engine import get_session
from phaeton.database.models import SocialConnection

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True, slots=True)
class ConnectionInfo:
    user_id: str
    platform: str
    platform_user_id: str
    username: str | None = None
    access_token: str | None = field(default=None, repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    token_expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once ``token_expires_at`` has passed.  No expiry means never."""
        if self.token_expires_at is None:
            return False
        return self.token_expires_at < (now or datetime.now(UTC))

    def public_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """Shape returned by ``GET /api/auth/connections`` (no tokens)."""
        return {
            "platform": self.platform,
            "platform_user_id": self.platform_user_id,
            "username": self.username,
            "token_expired": self.is_expired(now),
            "connected_at": self.created_at.isoformat() if self.created_at else None,
        }


def _snapshot(row: SocialConnection) -> ConnectionInfo:
    return ConnectionInfo(
        user_id=row.user_id,
        platform=row.platform,
        platform_user_id=row.platform_user_id,
        username=row.username,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        token_expires_at=as_utc(row.token_expires_at),
        metadata=dict(row.metadata_json or {}),
        created_at=as_utc(row.created_at),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_connection(engine: Engine, user_id: str, platform: str) -> ConnectionInfo | None:
    """Fetch the user's connection for *platform*, or ``None``."""
    with Session(engine) as session:
        row = session.scalar(
            select(SocialConnection).where(
                SocialConnection.user_id == user_id,
                SocialConnection.platform == platform,
            )
        )
        return _snapshot(row) if row is not None else None


def list_connections(engine: Engine, user_id: str) -> list[ConnectionInfo]:
    with Session(engine) as session:
        rows = session.scalars(
            select(SocialConnection)
            .where(SocialConnection.user_id == user_id)
            .order_by(SocialConnection.platform)
        ).all()
        return [_snapshot(r) for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def upsert_connection(
    engine: Engine,
    *,
    user_id: str,
    platform: str,
    platform_user_id: str,
    username: str | None = None,
    access_token: str | None = None,
    refresh_token: str | None = None,
    token_expires_at: datetime | None = None,
    metadata: dict[str, Any] | None = None,
) -> ConnectionInfo:
    """Create or replace the user's connection for *platform*."""
    with get_session(engine) as session:
        row = session.scalar(
            select(SocialConnection).where(
                SocialConnection.user_id == user_id,
                SocialConnection.platform == platform,
            )
        )
        if row is None:
            row = SocialConnection(user_id=user_id, platform=platform)
            session.add(row)
            action = "linked"
        else:
            action = "relinked"

        row.platform_user_id = platform_user_id
        row.username = username
        row.access_token = access_token
        row.refresh_token = refresh_token
        row.token_expires_at = token_expires_at
        row.metadata_json = metadata or {}
        session.flush()
        session.refresh(row)
        info = _snapshot(row)

    logger.info("User %s %s %s account %s", user_id, action, platform, platform_user_id)
    return info


def delete_connection(engine: Engine, user_id: str, platform: str) -> bool:
    """Remove the user's connection for *platform*.  Returns True if one existed."""
    with get_session(engine) as session:
        result = session.execute(
            delete(SocialConnection).where(
                SocialConnection.user_id == user_id,
                SocialConnection.platform == platform,
            )
        )
        removed = (result.rowcount or 0) > 0

    if removed:
        logger.info("User %s disconnected %s", user_id, platform)
    return removed
