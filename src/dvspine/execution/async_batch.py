"""Bounded fan-out for independent store writes.

Persisting a batch means writing dozens of independent records (documents,
recipients). One at a time is slow; all at once trips the store's request
throttling. ``BoundedFanout`` runs zero-argument coroutine functions on the
current loop behind a semaphore and hands back one ``FanoutSlot`` per job,
in the order the jobs were added.

::

    fanout = BoundedFanout("toba_documents", limit=5)
    for doc in documents:
        fanout.add(doc.name, partial(writer.adaptive_create, "toba_documents", build(doc)))
    report = await fanout.gather()
    report.values      # results, None where a job raised
    report.errors      # [(name, exception), ...]

A job that raises marks only its own slot. Cancelling the awaiting task
cancels the jobs still in flight; writes that already landed stay.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from dvspine.core.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass
class FanoutSlot:
    """One job and, once run, what it produced."""

    name: str
    job: Job
    done: bool = False
    value: Any = None
    error: BaseException | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.done and self.error is None


@dataclass
class FanoutReport:
    label: str
    slots: list[FanoutSlot] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def values(self) -> list[Any]:
        return [s.value for s in self.slots]

    @property
    def errors(self) -> list[tuple[str, BaseException]]:
        return [(s.name, s.error) for s in self.slots if s.error is not None]

    @property
    def succeeded(self) -> int:
        return sum(1 for s in self.slots if s.ok)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "total": len(self.slots),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "elapsed": round(self.elapsed, 3),
            "errors": {name: str(err) for name, err in self.errors},
        }


class BoundedFanout:
    """Run queued jobs with at most ``limit`` in flight.

    Args:
        label: Name used in log events (usually the collection id).
        limit: Maximum concurrent jobs, at least 1.
    """

    def __init__(self, label: str, limit: int = 5) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.label = label
        self.limit = limit
        self._slots: list[FanoutSlot] = []

    def __len__(self) -> int:
        return len(self._slots)

    def add(self, name: str, job: Job) -> BoundedFanout:
        self._slots.append(FanoutSlot(name, job))
        return self

    async def gather(self) -> FanoutReport:
        """Run every queued job and report in insertion order."""
        gate = asyncio.Semaphore(self.limit)
        report = FanoutReport(self.label, list(self._slots))
        started = time.monotonic()

        async def _run(slot: FanoutSlot) -> None:
            async with gate:
                t0 = time.monotonic()
                try:
                    slot.value = await slot.job()
                except Exception as e:
                    slot.error = e
                    logger.warning("fanout.job_failed", label=self.label, job=slot.name, error=str(e))
                finally:
                    slot.done = True
                    slot.elapsed = time.monotonic() - t0

        await asyncio.gather(*(_run(s) for s in report.slots))
        report.elapsed = time.monotonic() - started
        logger.debug(
            "fanout.done",
            label=self.label,
            total=len(report.slots),
            failed=report.failed,
            limit=self.limit,
        )
        return report


__all__ = ["BoundedFanout", "FanoutReport", "FanoutSlot"]
