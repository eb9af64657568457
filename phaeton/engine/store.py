"""
phaeton.engine.store — In-memory key/value store + periodic sweeper
====================================================================

The sign-in challenges and the verification rate windows are short-lived,
process-local state.  Instead of module-level dicts, each key space is a
:class:`MemoryStore` created once at startup (see ``phaeton.api.main``) and
injected wherever it is needed.

Every store guards its dict with its own lock.  Request handlers on the
event loop never hold it across an ``await``; sync handlers running in the
thread pool are still safe because every read-modify-write goes through
:meth:`MemoryStore.update` or :meth:`MemoryStore.pop`.

Expired entries are reclaimed by a :class:`Sweeper` every few minutes.  That
is housekeeping only: readers treat an expired entry as absent, so a window
or challenge that has not been swept yet behaves exactly like one that has.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class MemoryStore(Generic[V]):
    """Thread-safe dict wrapper with atomic read-modify-write."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._data: dict[str, V] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> V | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def pop(self, key: str) -> V | None:
        """Remove and return the value for *key* in one step."""
        with self._lock:
            return self._data.pop(key, None)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def update(self, key: str, fn: Callable[[V | None], V]) -> V:
        """Replace the value for *key* with ``fn(current)`` under the lock.

        *fn* must be quick and must not block; it receives ``None`` when the
        key is absent.
        """
        with self._lock:
            value = fn(self._data.get(key))
            self._data[key] = value
            return value

    def sweep(self, is_expired: Callable[[V], bool]) -> int:
        """Delete every entry for which *is_expired* is true.  Returns the count."""
        with self._lock:
            stale = [k for k, v in self._data.items() if is_expired(v)]
            for k in stale:
                del self._data[k]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data


class Sweepable(Protocol):
    def sweep(self) -> int: ...


class Sweeper:
    """Background task that calls ``sweep()`` on every registered target.

    - Runs every ``interval`` seconds regardless of request traffic.
    - A failing target is logged and skipped; the loop keeps running.
    """

    def __init__(self, interval: float = 300) -> None:
        self.interval = interval
        self._targets: list[tuple[str, Sweepable]] = []
        self._task: asyncio.Task | None = None

    def register(self, name: str, target: Sweepable) -> None:
        self._targets.append((name, target))

    def sweep_once(self) -> dict[str, int]:
        """Sweep all targets now and return how many entries each dropped."""
        removed: dict[str, int] = {}
        for name, target in self._targets:
            try:
                removed[name] = target.sweep()
            except Exception:
                logger.exception("Sweep failed for %s", name)
        if any(removed.values()):
            logger.debug("Swept expired entries: %s", removed)
        return removed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start the periodic sweep task (no-op if already running)."""
        if self._task is not None:
            return

        async def _sweep_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                self.sweep_once()

        loop = loop or asyncio.get_running_loop()
        self._task = loop.create_task(_sweep_loop(), name="store-sweeper")

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
