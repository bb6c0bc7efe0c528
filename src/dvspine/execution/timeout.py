"""
Deadline enforcement for store operations.

A caller wraps a provisioning pass or a batch of writes in
``with_deadline_async``; code deeper in the stack asks
``get_current_deadline()`` before starting another network round trip and
stops when the deadline has passed. Nothing already written is rolled back.

Deadlines nest. An inner deadline can only shorten the outer one. The stack
lives in a ContextVar so concurrent tasks each see the deadline they were
started under.

Example:
    >>> async with with_deadline_async(10.0, operation="persist_batch"):
    ...     outcome = await writer.adaptive_create("toba_batches", builder)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field


class TimeoutExpired(TimeoutError):
    """A store operation ran past its deadline."""

    def __init__(self, timeout: float, elapsed: float | None = None, operation: str = "operation"):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation
        detail = f" (ran for {elapsed:.2f}s)" if elapsed is not None else ""
        super().__init__(f"Operation '{operation}' timed out after {timeout}s{detail}")


@dataclass
class DeadlineContext:
    """Absolute deadline on the monotonic clock."""

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    @classmethod
    def after(cls, seconds: float, operation: str = "operation") -> DeadlineContext:
        now = time.monotonic()
        return cls(deadline=now + seconds, timeout_seconds=seconds, operation=operation, start_time=now)

    def remaining(self) -> float:
        """Seconds left; negative once expired."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        return self.remaining() <= 0

    def check(self, op_name: str | None = None) -> None:
        if self.is_expired():
            raise TimeoutExpired(self.timeout_seconds, self.elapsed, op_name or self.operation)


_deadline_stack: ContextVar[tuple[DeadlineContext, ...]] = ContextVar(
    "dvspine_deadline_stack", default=()
)


def get_current_deadline() -> DeadlineContext | None:
    """Innermost active deadline, or ``None`` outside any deadline."""
    stack = _deadline_stack.get()
    return stack[-1] if stack else None


def get_effective_timeout(requested: float) -> float:
    """Clamp ``requested`` to whatever the enclosing deadline still allows."""
    current = get_current_deadline()
    if current is None:
        return requested
    return max(0.0, min(requested, current.remaining()))


@asynccontextmanager
async def with_deadline_async(seconds: float, operation: str | None = None):
    """Bound the enclosed block to ``seconds``.

    An in-flight HTTP call is cancelled when the deadline passes.

    Raises:
        TimeoutExpired: The block overran.
        ValueError: ``seconds`` is negative.
    """
    if seconds < 0:
        raise ValueError(f"Timeout must be non-negative, got {seconds}")

    ctx = DeadlineContext.after(get_effective_timeout(seconds), operation or "operation")
    token = _deadline_stack.set(_deadline_stack.get() + (ctx,))
    try:
        async with asyncio.timeout(ctx.timeout_seconds):
            yield ctx
    except TimeoutError:
        raise TimeoutExpired(ctx.timeout_seconds, ctx.elapsed, ctx.operation) from None
    finally:
        _deadline_stack.reset(token)


__all__ = [
    "TimeoutExpired",
    "DeadlineContext",
    "get_current_deadline",
    "get_effective_timeout",
    "with_deadline_async",
]
