"""
Job Queue Protocol - the durable queue the orchestrator runs on.

The orchestrator only relies on:

    enqueue(job_type, payload, priority, delay) -> JobHandle
    handle.get_state() / handle.return_value / handle.remove()
    process(job_type, handler, concurrency)
    get_counts(job_type)
    prune(max_age)

Delivery is assumed at-least-once; consumers must tolerate a job's
completion being observed more than once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Job types
# ---------------------------------------------------------------------------

JOB_TYPE_MULTI_PLATFORM = "multi_platform_analysis"
JOB_TYPE_PLATFORM = "platform_analysis"
JOB_TYPE_CROSS_PLATFORM = "cross_platform_analysis"

JOB_TYPES: tuple[str, ...] = (
    JOB_TYPE_MULTI_PLATFORM,
    JOB_TYPE_PLATFORM,
    JOB_TYPE_CROSS_PLATFORM,
)


class JobPriority:
    """Higher value is served first."""

    LOW = 1
    NORMAL = 5
    HIGH = 10
    CRITICAL = 15


class JobState:
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    REMOVED = "removed"

    TERMINAL = frozenset({COMPLETED, FAILED, REMOVED})
    COUNTED = (WAITING, DELAYED, ACTIVE, COMPLETED, FAILED)


@dataclass
class JobContext:
    """What a job handler receives.

    ``report_progress`` updates the job-local progress value that pollers
    read from the handle; it never touches run-level progress.
    """

    id: str
    job_type: str
    payload: Dict[str, Any]
    attempt: int = 1
    _progress_sink: Optional[Callable[[int], None]] = field(default=None, repr=False)

    def report_progress(self, percent: int) -> None:
        if self._progress_sink is not None:
            self._progress_sink(max(0, min(100, int(percent))))


JobHandler = Callable[[JobContext], Any]


@runtime_checkable
class JobHandle(Protocol):
    @property
    def id(self) -> str:
        ...

    @property
    def job_type(self) -> str:
        ...

    @property
    def return_value(self) -> Any:
        ...

    @property
    def failed_reason(self) -> Optional[str]:
        ...

    @property
    def progress(self) -> int:
        ...

    def get_state(self) -> str:
        ...

    def remove(self) -> bool:
        """Remove a waiting/delayed job; False when it already started."""
        ...


@runtime_checkable
class JobQueue(Protocol):
    def enqueue(
        self,
        job_type: str,
        payload: Dict[str, Any],
        priority: int = JobPriority.NORMAL,
        delay: float = 0.0,
    ) -> JobHandle:
        ...

    def process(self, job_type: str, handler: JobHandler, concurrency: int = 1) -> None:
        ...

    def get_job(self, job_id: str) -> Optional[JobHandle]:
        ...

    def get_jobs(
        self,
        job_type: Optional[str] = None,
        states: Optional[List[str]] = None,
    ) -> List[JobHandle]:
        ...

    def get_counts(self, job_type: str) -> Dict[str, int]:
        ...

    def prune(self, max_age: Optional[float] = None) -> List[str]:
        """Drop finished jobs older than *max_age*; returns their ids."""
        ...
