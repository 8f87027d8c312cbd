"""Tests for run progress tracking and reconstruction."""

from __future__ import annotations

import pytest

from chainaudit.jobs import JobState
from chainaudit.orchestrator.progress import (
    PROGRESS_COMPLETE,
    ProgressTracker,
    platform_band_progress,
    reconstruct_progress,
)
from chainaudit.persistence import MultiPlatformRun, RunStatus
from chainaudit.schemas import AnalysisResult


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return ProgressTracker(retention_seconds=3600, clock=clock)


class TestPlatformBand:
    @pytest.mark.parametrize(
        "settled, total, expected",
        [(0, 3, 10), (1, 3, 33), (2, 3, 56), (3, 3, 80), (1, 2, 45), (0, 0, 80)],
    )
    def test_band(self, settled, total, expected):
        """Test the platform band mapping from settled count to progress"""
        assert platform_band_progress(settled, total) == expected


class TestProgressTracker:
    def test_initialize(self, tracker):
        """Test the snapshot created for a new run"""
        snapshot = tracker.initialize("run-1", ["ethereum", "solana"])
        assert snapshot.status == RunStatus.PENDING
        assert snapshot.overall_progress == 0
        assert snapshot.platform_progress == {"ethereum": 0, "solana": 0}
        assert len(tracker) == 1

    def test_update_unknown_run(self, tracker):
        """Updating an unknown run is a no-op."""
        assert tracker.update("nope", overall=50) is None

    def test_overall_never_decreases(self, tracker):
        """Overall progress is monotonic and capped at completion."""
        tracker.initialize("run-1", ["ethereum"])
        tracker.update("run-1", overall=45)
        snapshot = tracker.update("run-1", overall=10)
        assert snapshot.overall_progress == 45
        assert tracker.update("run-1", overall=500).overall_progress == PROGRESS_COMPLETE

    def test_platform_progress_never_decreases(self, tracker):
        """Test that per-platform progress never goes backwards"""
        tracker.initialize("run-1", ["ethereum"])
        tracker.update("run-1", platform_progress={"ethereum": 30})
        snapshot = tracker.update("run-1", platform_progress={"ethereum": 10})
        assert snapshot.platform_progress["ethereum"] == 30

    def test_completed_and_failed_platforms_deduplicated(self, tracker):
        """Test deduplication of settled platform lists"""
        tracker.initialize("run-1", ["ethereum", "solana"])
        tracker.update("run-1", completed_platform="ethereum")
        tracker.update("run-1", completed_platform="ethereum")
        snapshot = tracker.update("run-1", failed_platform="solana")
        assert snapshot.completed_platforms == ["ethereum"]
        assert snapshot.failed_platforms == ["solana"]

    def test_terminal_status_is_sticky(self, tracker):
        """A terminal status and its error survive later updates."""
        tracker.initialize("run-1", ["ethereum"])
        tracker.update("run-1", status=RunStatus.FAILED, error={"code": "RUN_CANCELLED"})
        snapshot = tracker.update("run-1", status=RunStatus.COMPLETED)
        assert snapshot.status == RunStatus.FAILED
        assert snapshot.error == {"code": "RUN_CANCELLED"}

    def test_get_returns_copy(self, tracker):
        """Test that snapshots handed out are copies"""
        tracker.initialize("run-1", ["ethereum"])
        snapshot = tracker.get("run-1")
        snapshot.platform_progress["ethereum"] = 99
        assert tracker.get("run-1").platform_progress["ethereum"] == 0

    def test_cleanup_drops_old_terminal_snapshots(self, tracker, clock):
        """Test cleanup of terminal snapshots past retention"""
        tracker.initialize("done", ["ethereum"])
        tracker.initialize("running", ["ethereum"])
        tracker.update("done", status=RunStatus.COMPLETED)
        clock.now = 3601
        assert tracker.cleanup() == 1
        assert tracker.get("done") is None
        assert tracker.get("running") is not None

    def test_cleanup_keeps_recent_terminal_snapshots(self, tracker, clock):
        """Recent terminal snapshots survive cleanup."""
        tracker.initialize("done", ["ethereum"])
        tracker.update("done", status=RunStatus.COMPLETED)
        clock.now = 100
        assert tracker.cleanup() == 0

    def test_discard(self, tracker):
        """Test discarding a snapshot"""
        tracker.initialize("run-1", ["ethereum"])
        tracker.discard("run-1")
        assert tracker.get("run-1") is None


class TestReconstructProgress:
    def _run(self, **kwargs) -> MultiPlatformRun:
        values = dict(id="run-1", owner="alice", platforms=["ethereum", "solana", "cardano"])
        values.update(kwargs)
        return MultiPlatformRun(**values)

    def test_pending(self):
        """Test reconstruction of a queued run"""
        snapshot = reconstruct_progress(self._run())
        assert snapshot.overall_progress == 0
        assert snapshot.current_step == "Queued for analysis"

    def test_analyzing_uses_job_states(self):
        """An analyzing run derives progress from its job states."""
        run = self._run(status=RunStatus.ANALYZING)
        snapshot = reconstruct_progress(
            run,
            {
                "ethereum": JobState.COMPLETED,
                "solana": JobState.FAILED,
                "cardano": JobState.ACTIVE,
            },
        )
        assert snapshot.completed_platforms == ["ethereum"]
        assert snapshot.failed_platforms == ["solana"]
        assert snapshot.overall_progress == platform_band_progress(2, 3)
        assert snapshot.platform_progress == {"ethereum": 100, "solana": 100, "cardano": 0}

    def test_completed(self):
        """Test reconstruction of a completed run"""
        run = self._run(
            status=RunStatus.COMPLETED,
            platform_results={"ethereum": AnalysisResult(success=True)},
        )
        snapshot = reconstruct_progress(run)
        assert snapshot.overall_progress == 100
        assert snapshot.completed_platforms == ["ethereum"]
        assert snapshot.failed_platforms == ["solana", "cardano"]

    def test_failed_carries_recovery_suggestions(self):
        """Test that a failed run keeps its error and suggestions"""
        run = self._run(
            status=RunStatus.FAILED,
            error={"code": "COMPILATION_FAILED", "recovery_suggestions": ["Fix the syntax"]},
        )
        snapshot = reconstruct_progress(run)
        assert snapshot.status == RunStatus.FAILED
        assert snapshot.recovery_suggestions == ["Fix the syntax"]
        assert snapshot.error["code"] == "COMPILATION_FAILED"

    def test_deterministic(self):
        """Reconstruction is a pure function of its inputs."""
        run = self._run(status=RunStatus.ANALYZING, platform_errors={"cardano": {"code": "X"}})
        states = {"ethereum": JobState.COMPLETED}
        assert reconstruct_progress(run, states) == reconstruct_progress(run, states)
