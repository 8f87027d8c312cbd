"""
Run persistence.

``RunStore`` is the persistence collaborator: it stores the
``MultiPlatformRun`` aggregate, platform-scoped vulnerability records and the
cross-platform result.  Only the orchestrator writes to it.
``InMemoryRunStore`` is a thread-safe implementation for single-process use
and tests; it hands out copies so callers can never mutate stored state.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from chainaudit.exceptions import RunNotFoundError
from chainaudit.schemas import AnalysisResult, CrossPlatformResult, Vulnerability

logger = logging.getLogger(__name__)


class RunStatus:
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = frozenset({COMPLETED, FAILED})


@dataclass
class MultiPlatformRun:
    """Aggregate root for one submitted multi-platform request.

    Attributes:
        id:                     Run identifier.
        owner:                  Submitting user; only they may read or cancel.
        platforms:              Requested platforms in submission order.
        status:                 pending -> analyzing -> completed | failed.
        platform_results:       Successful per-platform results.
        platform_errors:        Serialized ``PlatformError`` per failed platform.
        cross_platform_result:  Present only when aggregation succeeded.
        error:                  Serialized terminal error of a failed run.
    """

    id: str
    owner: str
    platforms: List[str]
    name: Optional[str] = None
    cross_platform_analysis: bool = False
    status: str = RunStatus.PENDING
    job_id: Optional[str] = None
    platform_results: Dict[str, AnalysisResult] = field(default_factory=dict)
    platform_errors: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    cross_platform_result: Optional[CrossPlatformResult] = None
    error: Optional[Dict[str, Any]] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in RunStatus.TERMINAL


@dataclass
class VulnerabilityRecord:
    run_id: str
    platform: str
    vulnerability: Vulnerability


@runtime_checkable
class RunStore(Protocol):
    def create_run(self, run: MultiPlatformRun) -> MultiPlatformRun:
        ...

    def get_run(self, run_id: str) -> Optional[MultiPlatformRun]:
        ...

    def update_run(self, run_id: str, **changes: Any) -> MultiPlatformRun:
        ...

    def save_vulnerabilities(
        self, run_id: str, platform: str, vulnerabilities: List[Vulnerability]
    ) -> int:
        ...

    def save_cross_platform_result(self, run_id: str, result: CrossPlatformResult) -> None:
        ...


class InMemoryRunStore:
    """Thread-safe in-memory ``RunStore``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: Dict[str, MultiPlatformRun] = {}
        self._vulnerabilities: List[VulnerabilityRecord] = []

    def create_run(self, run: MultiPlatformRun) -> MultiPlatformRun:
        with self._lock:
            if run.id in self._runs:
                raise ValueError(f"Run already exists: {run.id}")
            self._runs[run.id] = copy.deepcopy(run)
        logger.debug("Created run %s for %s", run.id, run.owner)
        return copy.deepcopy(run)

    def get_run(self, run_id: str) -> Optional[MultiPlatformRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return copy.deepcopy(run) if run is not None else None

    def update_run(self, run_id: str, **changes: Any) -> MultiPlatformRun:
        """Apply attribute *changes* and bump ``updated_at``.

        Raises:
            RunNotFoundError: If *run_id* is unknown.
            AttributeError: If a change names an unknown attribute.
        """
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise RunNotFoundError(f"Run not found: {run_id}")
            for key, value in changes.items():
                if not hasattr(run, key):
                    raise AttributeError(f"MultiPlatformRun has no attribute {key!r}")
                setattr(run, key, copy.deepcopy(value))
            run.updated_at = time.time()
            if run.is_terminal and run.completed_at is None:
                run.completed_at = run.updated_at
            return copy.deepcopy(run)

    def save_vulnerabilities(
        self, run_id: str, platform: str, vulnerabilities: List[Vulnerability]
    ) -> int:
        records = [VulnerabilityRecord(run_id, platform, v.model_copy()) for v in vulnerabilities]
        with self._lock:
            if run_id not in self._runs:
                raise RunNotFoundError(f"Run not found: {run_id}")
            self._vulnerabilities.extend(records)
        return len(records)

    def get_vulnerabilities(
        self, run_id: str, platform: Optional[str] = None
    ) -> List[Vulnerability]:
        with self._lock:
            return [
                r.vulnerability.model_copy()
                for r in self._vulnerabilities
                if r.run_id == run_id and (platform is None or r.platform == platform)
            ]

    def save_cross_platform_result(self, run_id: str, result: CrossPlatformResult) -> None:
        self.update_run(run_id, cross_platform_result=result)

    def list_runs(self, owner: Optional[str] = None) -> List[MultiPlatformRun]:
        with self._lock:
            runs = [r for r in self._runs.values() if owner is None or r.owner == owner]
            return [copy.deepcopy(r) for r in sorted(runs, key=lambda r: r.created_at)]


__all__ = [
    "InMemoryRunStore",
    "MultiPlatformRun",
    "RunStatus",
    "RunStore",
    "VulnerabilityRecord",
]
