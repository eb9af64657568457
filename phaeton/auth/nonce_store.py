"""
phaeton.auth.nonce_store — Single-use wallet sign-in challenges
================================================================

A wallet asks for a challenge, signs its ``message`` and posts the signature
back.  The challenge is keyed by the lower-cased address:

* :meth:`NonceStore.issue` always succeeds and replaces any challenge still
  pending for that address (last writer wins);
* :meth:`NonceStore.consume` removes the challenge in the same step it reads
  it, so a challenge can be redeemed at most once.  An expired challenge is
  deleted and reported exactly like a missing one.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from phaeton.engine.store import MemoryStore
from phaeton.errors import NonceNotFoundOrExpired

DEFAULT_TTL_SECONDS = 5 * 60

SIGN_IN_HEADLINE = "Sign in with your Ethereum wallet"


@dataclass(frozen=True, slots=True)
class Challenge:
    nonce: str
    message: str
    issued_at: float
    expires_at: float

    @property
    def expires_at_ms(self) -> int:
        return int(self.expires_at * 1000)


def normalize_address(address: str) -> str:
    return address.strip().lower()


def _iso(ts: float) -> str:
    """Millisecond ISO-8601 in UTC with a ``Z`` suffix."""
    stamp = datetime.fromtimestamp(ts, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def build_challenge_message(address: str, nonce: str, issued_at: float, expires_at: float) -> str:
    """Render the exact text the wallet signs.

    Any change to this text (field order, whitespace) invalidates signatures
    produced against a previously issued challenge.
    """
    return "\n".join(
        [
            SIGN_IN_HEADLINE,
            f"Wallet: {address}",
            f"Nonce: {nonce}",
            f"Issued At: {_iso(issued_at)}",
            f"Expires At: {_iso(expires_at)}",
        ]
    )


class NonceStore:
    """Issues and redeems sign-in challenges."""

    def __init__(
        self,
        store: MemoryStore[Challenge] | None = None,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store: MemoryStore[Challenge] = store or MemoryStore("challenges")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, address: str) -> Challenge:
        key = normalize_address(address)
        issued_at = self._clock()
        expires_at = issued_at + self.ttl_seconds
        nonce = str(uuid.uuid4())
        challenge = Challenge(
            nonce=nonce,
            message=build_challenge_message(key, nonce, issued_at, expires_at),
            issued_at=issued_at,
            expires_at=expires_at,
        )
        self.store.set(key, challenge)
        return challenge

    def consume(self, address: str) -> Challenge:
        """Redeem the pending challenge for *address*.

        Raises :class:`~phaeton.errors.NonceNotFoundOrExpired` if there is
        none or it has expired.
        """
        challenge = self.store.pop(normalize_address(address))
        if challenge is None or challenge.expires_at < self._clock():
            raise NonceNotFoundOrExpired()
        return challenge

    def sweep(self) -> int:
        now = self._clock()
        return self.store.sweep(lambda c: c.expires_at < now)
