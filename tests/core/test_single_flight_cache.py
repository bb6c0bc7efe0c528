"""Tests for SingleFlightCache — async memo with one in-flight computation per key."""

from __future__ import annotations

import asyncio

import pytest

from dvspine.core.cache import SingleFlightCache


class TestGetOrCompute:
    """Memoisation and single-flight behaviour."""

    @pytest.mark.asyncio
    async def test_computes_once(self):
        cache: SingleFlightCache[str] = SingleFlightCache()
        calls = []

        async def factory():
            calls.append(1)
            return "toba_batches"

        assert await cache.get_or_compute("batches", factory) == "toba_batches"
        assert await cache.get_or_compute("batches", factory) == "toba_batches"
        assert len(calls) == 1
        assert cache.computations == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(self):
        cache: SingleFlightCache[str] = SingleFlightCache()
        gate = asyncio.Event()

        async def factory():
            await gate.wait()
            return "value"

        tasks = [asyncio.create_task(cache.get_or_compute("k", factory)) for _ in range(10)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        assert results == ["value"] * 10
        assert cache.computations == 1

    @pytest.mark.asyncio
    async def test_failure_not_memoised(self):
        cache: SingleFlightCache[int] = SingleFlightCache()
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("probe failed")
            return 42

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", flaky)
        assert "k" not in cache
        assert await cache.get_or_compute("k", flaky) == 42
        assert cache.computations == 2

    @pytest.mark.asyncio
    async def test_waiters_see_leader_failure(self):
        cache: SingleFlightCache[int] = SingleFlightCache()
        gate = asyncio.Event()

        async def failing():
            await gate.wait()
            raise ValueError("nope")

        tasks = [asyncio.create_task(cache.get_or_compute("k", failing)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)
        assert cache.computations == 1

    @pytest.mark.asyncio
    async def test_distinct_keys_compute_separately(self):
        cache: SingleFlightCache[str] = SingleFlightCache()

        async def make(value):
            return value

        await cache.get_or_compute("a", lambda: make("A"))
        await cache.get_or_compute("b", lambda: make("B"))
        assert cache.snapshot() == {"a": "A", "b": "B"}
        assert cache.computations == 2


class TestDirectAccess:
    """get / set / invalidate / clear."""

    @pytest.mark.asyncio
    async def test_invalidate_forces_recompute(self):
        cache: SingleFlightCache[int] = SingleFlightCache()
        counter = iter(range(10))

        async def next_value():
            return next(counter)

        assert await cache.get_or_compute("k", next_value) == 0
        cache.invalidate("k")
        assert await cache.get_or_compute("k", next_value) == 1

    def test_set_and_get(self):
        cache: SingleFlightCache[str] = SingleFlightCache()
        assert cache.get("k") is None
        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert "k" in cache
        assert len(cache) == 1

    def test_clear(self):
        cache: SingleFlightCache[str] = SingleFlightCache()
        cache.set("a", "1")
        cache.set("b", "2")
        cache.clear()
        assert len(cache) == 0

    def test_invalidate_missing_key_is_noop(self):
        cache: SingleFlightCache[str] = SingleFlightCache()
        cache.invalidate("missing")
        assert len(cache) == 0
