#!/usr/bin/env python3
"""
In-memory, thread-backed implementation of the job queue protocol.

Each job type gets its own pool of worker threads (bounded concurrency per
type).  Ready jobs are served highest priority first, then in enqueue
order; a delayed job becomes ready once its delay has elapsed.  Suitable
for a single process and for tests; production deployments plug a durable
queue in behind the same protocol.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from chainaudit.jobs.protocol import JobContext, JobHandler, JobPriority, JobState

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Job:
    id: str
    job_type: str
    payload: Dict[str, Any]
    priority: int
    available_at: float
    seq: int
    state: str = JobState.WAITING
    progress: int = 0
    return_value: Any = None
    failed_reason: Optional[str] = None
    error: Optional[BaseException] = None
    created_at: float = 0.0
    finished_at: Optional[float] = None


class InMemoryJobHandle:
    """Live view of one job inside an ``InMemoryJobQueue``."""

    def __init__(self, queue: "InMemoryJobQueue", job: _Job) -> None:
        self._queue = queue
        self._job = job

    def __repr__(self) -> str:
        return f"InMemoryJobHandle(id={self.id!r}, type={self.job_type!r}, state={self.get_state()!r})"

    @property
    def id(self) -> str:
        return self._job.id

    @property
    def job_type(self) -> str:
        return self._job.job_type

    @property
    def payload(self) -> Dict[str, Any]:
        return self._job.payload

    @property
    def priority(self) -> int:
        return self._job.priority

    @property
    def return_value(self) -> Any:
        with self._queue._cond:
            return self._job.return_value

    @property
    def failed_reason(self) -> Optional[str]:
        with self._queue._cond:
            return self._job.failed_reason

    @property
    def error(self) -> Optional[BaseException]:
        with self._queue._cond:
            return self._job.error

    @property
    def progress(self) -> int:
        with self._queue._cond:
            return self._job.progress

    def get_state(self) -> str:
        return self._queue._state_of(self._job)

    def remove(self) -> bool:
        return self._queue._remove(self._job)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job is terminal; False on timeout."""
        return self._queue._wait_terminal(self._job, timeout)


class InMemoryJobQueue:
    """Priority + delay aware job queue with per-type worker pools.

    Args:
        retention_seconds: How long a finished job stays queryable before
            ``prune`` drops it.  None keeps finished jobs until an explicit
            ``prune(max_age)``.
        clock: Wall clock used for job timestamps (injectable for tests).
    """

    def __init__(
        self,
        retention_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._cond = threading.Condition()
        self._jobs: Dict[str, _Job] = {}
        self._pending: Dict[str, List[_Job]] = {}
        self._handlers: Dict[str, JobHandler] = {}
        self._workers: List[threading.Thread] = []
        self._seq = itertools.count()
        self._closed = False

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(
        self,
        job_type: str,
        payload: Dict[str, Any],
        priority: int = JobPriority.NORMAL,
        delay: float = 0.0,
    ) -> InMemoryJobHandle:
        job = _Job(
            id=uuid.uuid4().hex,
            job_type=job_type,
            payload=payload,
            priority=priority,
            available_at=time.monotonic() + max(delay, 0.0),
            seq=next(self._seq),
            created_at=self._clock(),
        )
        with self._cond:
            if self._closed:
                raise RuntimeError("Job queue is closed")
            self._jobs[job.id] = job
            self._pending.setdefault(job_type, []).append(job)
            self._cond.notify_all()
        logger.debug(
            "Enqueued %s job %s (priority=%d, delay=%.2fs)", job_type, job.id, priority, delay
        )
        return InMemoryJobHandle(self, job)

    def get_job(self, job_id: str) -> Optional[InMemoryJobHandle]:
        with self._cond:
            job = self._jobs.get(job_id)
        return InMemoryJobHandle(self, job) if job is not None else None

    def get_jobs(
        self,
        job_type: Optional[str] = None,
        states: Optional[List[str]] = None,
    ) -> List[InMemoryJobHandle]:
        with self._cond:
            jobs = [j for j in self._jobs.values() if job_type is None or j.job_type == job_type]
        handles = [InMemoryJobHandle(self, j) for j in jobs]
        if states is not None:
            handles = [h for h in handles if h.get_state() in states]
        return handles

    def get_counts(self, job_type: str) -> Dict[str, int]:
        counts = {state: 0 for state in JobState.COUNTED}
        with self._cond:
            jobs = [j for j in self._jobs.values() if j.job_type == job_type]
        for job in jobs:
            state = self._state_of(job)
            if state in counts:
                counts[state] += 1
        return counts

    def prune(self, max_age: Optional[float] = None) -> List[str]:
        """Forget finished jobs older than *max_age* seconds.

        Falls back to ``retention_seconds``; with neither set nothing is
        pruned.  Handles already held by callers keep working.  Returns the
        ids of the dropped jobs.
        """
        age = max_age if max_age is not None else self.retention_seconds
        if age is None:
            return []
        cutoff = self._clock() - age
        with self._cond:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.state in JobState.TERMINAL
                and job.finished_at is not None
                and job.finished_at <= cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            logger.info("Pruned %d finished job(s)", len(stale))
        return stale

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def process(self, job_type: str, handler: JobHandler, concurrency: int = 1) -> None:
        """Register *handler* and start *concurrency* workers for *job_type*."""
        with self._cond:
            if job_type in self._handlers:
                raise ValueError(f"A handler is already registered for {job_type}")
            self._handlers[job_type] = handler
        for index in range(max(1, concurrency)):
            worker = threading.Thread(
                target=self._worker_loop,
                args=(job_type,),
                name=f"chainaudit-{job_type}-{index}",
                daemon=True,
            )
            self._workers.append(worker)
            worker.start()
        logger.info("Started %d worker(s) for %s", max(1, concurrency), job_type)

    def close(self, timeout: float = 5.0) -> None:
        """Stop accepting work and join workers (running jobs finish first)."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        deadline = time.monotonic() + timeout
        for worker in self._workers:
            worker.join(max(0.0, deadline - time.monotonic()))

    def _worker_loop(self, job_type: str) -> None:
        while True:
            with self._cond:
                job = None
                while not self._closed:
                    job, wait = self._next_ready(job_type)
                    if job is not None:
                        break
                    self._cond.wait(timeout=wait)
                if job is None:
                    return
                job.state = JobState.ACTIVE
                handler = self._handlers[job_type]
            self._execute(job, handler)

    def _next_ready(self, job_type: str) -> tuple[Optional[_Job], Optional[float]]:
        """Pick the best ready job, or report how long until one is ready."""
        pending = self._pending.get(job_type, [])
        now = time.monotonic()
        ready = [j for j in pending if j.available_at <= now]
        if ready:
            job = min(ready, key=lambda j: (-j.priority, j.seq))
            pending.remove(job)
            return job, None
        if pending:
            return None, min(j.available_at for j in pending) - now
        return None, None

    def _execute(self, job: _Job, handler: JobHandler) -> None:
        def _sink(percent: int) -> None:
            with self._cond:
                job.progress = percent

        ctx = JobContext(id=job.id, job_type=job.job_type, payload=job.payload, _progress_sink=_sink)
        try:
            value = handler(ctx)
        except Exception as exc:
            logger.warning("%s job %s failed: %s", job.job_type, job.id, exc)
            with self._cond:
                job.state = JobState.FAILED
                job.failed_reason = str(exc) or type(exc).__name__
                job.error = exc
                job.finished_at = self._clock()
                self._cond.notify_all()
            return

        with self._cond:
            job.state = JobState.COMPLETED
            job.return_value = value
            job.progress = 100
            job.finished_at = self._clock()
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Handle support
    # ------------------------------------------------------------------

    def _state_of(self, job: _Job) -> str:
        with self._cond:
            if job.state == JobState.WAITING and job.available_at > time.monotonic():
                return JobState.DELAYED
            return job.state

    def _remove(self, job: _Job) -> bool:
        with self._cond:
            if job.state != JobState.WAITING:
                return False
            job.state = JobState.REMOVED
            job.finished_at = self._clock()
            pending = self._pending.get(job.job_type, [])
            if job in pending:
                pending.remove(job)
            self._cond.notify_all()
        logger.debug("Removed %s job %s", job.job_type, job.id)
        return True

    def _wait_terminal(self, job: _Job, timeout: Optional[float]) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: job.state in JobState.TERMINAL, timeout=timeout)


__all__ = ["InMemoryJobHandle", "InMemoryJobQueue"]
