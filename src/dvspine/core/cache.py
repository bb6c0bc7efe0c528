"""
Session-scoped compute-once cache.

Discovery results (collection ids per role, attribute sets per entity) are
read-mostly: the first caller for a key pays for the metadata probe, every
later caller reads the memoised value. When several coroutines ask for the
same key at once, only one of them runs the probe; the others await its
result (single-flight).

Manifesto:
    The remote schema can change between runs, so discovery is never
    persisted and never held in a process-wide singleton. A cache lives
    exactly as long as the session that owns it.

    - **Compute once:** One probe per key per session
    - **Single-flight:** Concurrent callers share the in-flight probe
    - **Failures not memoised:** A raising factory leaves the key empty
    - **Explicit lifetime:** Owned by a StoreSession, cleared with it

Architecture:
    ::

        SingleFlightCache
        ├── get_or_compute(key, factory)  → value (awaits in-flight probe)
        ├── get(key)                      → value | None
        ├── set(key, value)
        ├── invalidate(key)
        └── clear()

Examples:
    >>> cache = SingleFlightCache()
    >>> async def probe() -> str:
    ...     return "toba_batches"
    >>> await cache.get_or_compute("batches", probe)
    'toba_batches'
    >>> "batches" in cache
    True

Tags:
    cache, single-flight, memoisation, asyncio, dvspine
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

V = TypeVar("V")


class SingleFlightCache(Generic[V]):
    """Async memo keyed by string with single-flight population.

    Not thread-safe; intended for use from one event loop.
    """

    def __init__(self) -> None:
        self._values: dict[str, V] = {}
        self._inflight: dict[str, asyncio.Future[V]] = {}
        self.computations = 0

    async def get_or_compute(self, key: str, factory: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value for ``key``, computing it at most once.

        Args:
            key: Cache key (role name, collection id, ...).
            factory: Zero-argument coroutine function producing the value.

        Returns:
            The memoised value.
        """
        while True:
            if key in self._values:
                return self._values[key]

            inflight = self._inflight.get(key)
            if inflight is None:
                return await self._compute(key, factory)

            try:
                return await asyncio.shield(inflight)
            except asyncio.CancelledError:
                # The leader was cancelled, not us: take over the computation.
                if inflight.cancelled():
                    continue
                raise

    async def _compute(self, key: str, factory: Callable[[], Awaitable[V]]) -> V:
        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        self.computations += 1
        try:
            value = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Waiters re-raise it; mark retrieved so an unobserved failure is quiet.
            future.exception()
            raise
        finally:
            self._inflight.pop(key, None)

        self._values[key] = value
        future.set_result(value)
        return value

    def get(self, key: str) -> V | None:
        """Memoised value, or ``None`` if the key was never computed."""
        return self._values.get(key)

    def set(self, key: str, value: V) -> None:
        """Store a value directly (e.g. after provisioning created the entity)."""
        self._values[key] = value

    def invalidate(self, key: str) -> None:
        """Forget a key so the next caller probes again."""
        self._values.pop(key, None)

    def clear(self) -> None:
        """Forget everything."""
        self._values.clear()

    def snapshot(self) -> dict[str, Any]:
        """Copy of the memoised values, for logging and CLI output."""
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


__all__ = ["SingleFlightCache"]
