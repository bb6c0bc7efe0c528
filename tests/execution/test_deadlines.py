"""Tests for dvspine.execution.timeout — deadlines for store calls and writes."""

from __future__ import annotations

import asyncio

import pytest

from dvspine.execution.timeout import (
    DeadlineContext,
    TimeoutExpired,
    get_current_deadline,
    get_effective_timeout,
    with_deadline_async,
)


class TestDeadlineContext:
    """DeadlineContext arithmetic."""

    def test_after_zero_is_expired(self):
        ctx = DeadlineContext.after(0, "write")
        assert ctx.is_expired()
        with pytest.raises(TimeoutExpired) as exc_info:
            ctx.check()
        assert exc_info.value.operation == "write"

    def test_future_deadline(self):
        ctx = DeadlineContext.after(60)
        assert not ctx.is_expired()
        assert 0 < ctx.remaining() <= 60
        ctx.check()

    def test_timeout_expired_message(self):
        error = TimeoutExpired(2.0, elapsed=2.5, operation="provision")
        assert "provision" in str(error)
        assert "2.50s" in str(error)
        assert isinstance(error, TimeoutError)


class TestWithDeadlineAsync:
    """Nested async deadlines."""

    @pytest.mark.asyncio
    async def test_sets_current_deadline(self):
        assert get_current_deadline() is None
        async with with_deadline_async(5, "outer") as ctx:
            assert get_current_deadline() is ctx
        assert get_current_deadline() is None

    @pytest.mark.asyncio
    async def test_expiry_raises_timeout_expired(self):
        with pytest.raises(TimeoutExpired) as exc_info:
            async with with_deadline_async(0.01, "slow"):
                await asyncio.sleep(1)
        assert exc_info.value.operation == "slow"

    @pytest.mark.asyncio
    async def test_inner_clamped_by_outer(self):
        async with with_deadline_async(0.5, "outer"):
            assert get_effective_timeout(10) <= 0.5
            async with with_deadline_async(10, "inner") as inner:
                assert inner.timeout_seconds <= 0.5

    @pytest.mark.asyncio
    async def test_negative_rejected(self):
        with pytest.raises(ValueError):
            async with with_deadline_async(-1):
                pass

    def test_effective_timeout_without_deadline(self):
        assert get_effective_timeout(7.5) == 7.5
