#!/usr/bin/env python3
"""
Run progress tracking.

``RunProgress`` is an ephemeral, reconstructable view of a run: it is not
the source of truth.  ``ProgressTracker`` keeps the live snapshots in memory
under a single-writer discipline: only the orchestrator instance polling a
run writes that run's snapshot.  Overall progress never decreases.
``reconstruct_progress`` rebuilds a snapshot deterministically from the run
record plus per-platform job states.

Milestones:
    0    queued
    5    initializing
    10   platform jobs created
    10-80 settled platform fraction
    85   cross-platform aggregation
    95   finalizing
    100  completed
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from chainaudit.jobs.protocol import JobState
from chainaudit.persistence import MultiPlatformRun, RunStatus

logger = logging.getLogger(__name__)

PROGRESS_QUEUED = 0
PROGRESS_INITIALIZING = 5
PROGRESS_JOBS_CREATED = 10
PLATFORM_BAND_START = 10
PLATFORM_BAND_END = 80
PROGRESS_CROSS_PLATFORM = 85
PROGRESS_FINALIZING = 95
PROGRESS_COMPLETE = 100

STEP_BY_STATUS: Dict[str, str] = {
    RunStatus.PENDING: "Queued for analysis",
    RunStatus.ANALYZING: "Analysis in progress",
    RunStatus.COMPLETED: "Analysis completed",
    RunStatus.FAILED: "Analysis failed",
}


def platform_band_progress(settled: int, total: int) -> int:
    """Scale the settled-platform fraction into the 10-80 band."""
    if total <= 0:
        return PLATFORM_BAND_END
    span = PLATFORM_BAND_END - PLATFORM_BAND_START
    return min(PLATFORM_BAND_END, PLATFORM_BAND_START + (settled * span) // total)


@dataclass
class RunProgress:
    run_id: str
    status: str = RunStatus.PENDING
    overall_progress: int = PROGRESS_QUEUED
    platform_progress: Dict[str, int] = field(default_factory=dict)
    current_step: str = STEP_BY_STATUS[RunStatus.PENDING]
    completed_platforms: List[str] = field(default_factory=list)
    failed_platforms: List[str] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    recovery_suggestions: List[str] = field(default_factory=list)
    updated_at: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.status in RunStatus.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProgressTracker:
    """Process-local store of live progress snapshots.

    Attributes:
        retention_seconds: How long a terminal snapshot is kept before
            ``cleanup`` drops it.
    """

    def __init__(
        self,
        retention_seconds: float = 24 * 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshots: Dict[str, RunProgress] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def initialize(self, run_id: str, platforms: List[str]) -> RunProgress:
        snapshot = RunProgress(
            run_id=run_id,
            platform_progress={p: 0 for p in platforms},
            updated_at=self._clock(),
        )
        with self._lock:
            self._snapshots[run_id] = snapshot
            return copy.deepcopy(snapshot)

    def update(
        self,
        run_id: str,
        *,
        status: Optional[str] = None,
        overall: Optional[int] = None,
        step: Optional[str] = None,
        platform_progress: Optional[Mapping[str, int]] = None,
        completed_platform: Optional[str] = None,
        failed_platform: Optional[str] = None,
        error: Optional[Dict[str, Any]] = None,
        recovery_suggestions: Optional[List[str]] = None,
    ) -> Optional[RunProgress]:
        """Apply changes to a live snapshot; None when the run is unknown.

        Overall and per-platform percentages only ever move forward.
        A terminal snapshot keeps its status.
        """
        with self._lock:
            snapshot = self._snapshots.get(run_id)
            if snapshot is None:
                return None
            if status is not None and not snapshot.is_terminal:
                snapshot.status = status
            if overall is not None:
                snapshot.overall_progress = max(
                    snapshot.overall_progress, min(PROGRESS_COMPLETE, int(overall))
                )
            if step is not None:
                snapshot.current_step = step
            for platform, value in (platform_progress or {}).items():
                current = snapshot.platform_progress.get(platform, 0)
                snapshot.platform_progress[platform] = max(current, min(100, int(value)))
            if completed_platform and completed_platform not in snapshot.completed_platforms:
                snapshot.completed_platforms.append(completed_platform)
            if failed_platform and failed_platform not in snapshot.failed_platforms:
                snapshot.failed_platforms.append(failed_platform)
            if error is not None:
                snapshot.error = dict(error)
            if recovery_suggestions is not None:
                snapshot.recovery_suggestions = list(recovery_suggestions)
            snapshot.updated_at = self._clock()
            return copy.deepcopy(snapshot)

    def get(self, run_id: str) -> Optional[RunProgress]:
        with self._lock:
            snapshot = self._snapshots.get(run_id)
            return copy.deepcopy(snapshot) if snapshot is not None else None

    def discard(self, run_id: str) -> None:
        with self._lock:
            self._snapshots.pop(run_id, None)

    def cleanup(self) -> int:
        """Drop terminal snapshots older than the retention period."""
        cutoff = self._clock() - self.retention_seconds
        with self._lock:
            stale = [
                run_id
                for run_id, s in self._snapshots.items()
                if s.is_terminal and s.updated_at < cutoff
            ]
            for run_id in stale:
                del self._snapshots[run_id]
        if stale:
            logger.info("Garbage-collected %d progress snapshots", len(stale))
        return len(stale)


def reconstruct_progress(
    run: MultiPlatformRun,
    platform_states: Optional[Mapping[str, str]] = None,
) -> RunProgress:
    """Rebuild a snapshot from persisted state.

    Deterministic: the same run record and job states always produce the
    same snapshot.  Terminal runs are rebuilt from the run record alone;
    analyzing runs also use the platform sub-job states.
    """
    platform_states = platform_states or {}

    if run.is_terminal:
        completed = [p for p in run.platforms if p in run.platform_results]
        failed = [p for p in run.platforms if p not in run.platform_results]
    else:
        completed = [
            p for p in run.platforms
            if p in run.platform_results or platform_states.get(p) == JobState.COMPLETED
        ]
        failed = [
            p for p in run.platforms
            if p not in completed
            and (
                p in run.platform_errors
                or platform_states.get(p) in (JobState.FAILED, JobState.REMOVED)
            )
        ]

    settled = set(completed) | set(failed)
    if run.status == RunStatus.COMPLETED:
        overall = PROGRESS_COMPLETE
    elif run.status == RunStatus.PENDING:
        overall = PROGRESS_QUEUED
    else:
        overall = platform_band_progress(len(settled), len(run.platforms))

    error = copy.deepcopy(run.error) if run.error else None
    suggestions = list(error.get("recovery_suggestions", [])) if error else []

    return RunProgress(
        run_id=run.id,
        status=run.status,
        overall_progress=overall,
        platform_progress={p: (100 if p in settled else 0) for p in run.platforms},
        current_step=STEP_BY_STATUS.get(run.status, STEP_BY_STATUS[RunStatus.ANALYZING]),
        completed_platforms=completed,
        failed_platforms=failed,
        error=error,
        recovery_suggestions=suggestions,
        updated_at=run.updated_at,
    )


__all__ = [
    "PLATFORM_BAND_END",
    "PLATFORM_BAND_START",
    "PROGRESS_COMPLETE",
    "PROGRESS_CROSS_PLATFORM",
    "PROGRESS_FINALIZING",
    "PROGRESS_INITIALIZING",
    "PROGRESS_JOBS_CREATED",
    "PROGRESS_QUEUED",
    "ProgressTracker",
    "RunProgress",
    "STEP_BY_STATUS",
    "platform_band_progress",
    "reconstruct_progress",
]
