"""dvspine execution — bounded concurrency and deadlines.

::

    BoundedFanout        ─ semaphore-bounded fan-out of independent writes
    DeadlineContext      ─ per-operation deadline, checked between attempts
"""

from dvspine.execution.async_batch import BoundedFanout, FanoutReport, FanoutSlot
from dvspine.execution.timeout import (
    DeadlineContext,
    TimeoutExpired,
    get_current_deadline,
    get_effective_timeout,
    with_deadline_async,
)

__all__ = [
    "BoundedFanout",
    "DeadlineContext",
    "FanoutReport",
    "FanoutSlot",
    "TimeoutExpired",
    "get_current_deadline",
    "get_effective_timeout",
    "with_deadline_async",
]
