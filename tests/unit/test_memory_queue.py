"""Tests for the in-memory job queue."""

from __future__ import annotations

import threading
import time

import pytest

from chainaudit.jobs import InMemoryJobQueue, JobPriority, JobState


@pytest.fixture
def queue():
    q = InMemoryJobQueue()
    yield q
    q.close(timeout=2.0)


class TestEnqueue:
    def test_waiting_and_delayed_states(self, queue):
        """Test waiting and delayed states before workers start"""
        ready = queue.enqueue("work", {"n": 1})
        later = queue.enqueue("work", {"n": 2}, delay=60)
        assert ready.get_state() == JobState.WAITING
        assert later.get_state() == JobState.DELAYED
        assert queue.get_counts("work") == {
            "waiting": 1, "delayed": 1, "active": 0, "completed": 0, "failed": 0,
        }

    def test_get_job_and_get_jobs(self, queue):
        """Test job lookup by id and by type and state"""
        handle = queue.enqueue("work", {"n": 1}, priority=JobPriority.HIGH)
        queue.enqueue("other", {})
        assert queue.get_job(handle.id).payload == {"n": 1}
        assert queue.get_job("missing") is None
        assert [h.id for h in queue.get_jobs("work")] == [handle.id]
        assert queue.get_jobs("work", states=[JobState.COMPLETED]) == []
        assert handle.priority == JobPriority.HIGH

    def test_remove_waiting_job(self, queue):
        """A waiting job can be removed."""
        handle = queue.enqueue("work", {})
        assert handle.remove() is True
        assert handle.get_state() == JobState.REMOVED
        assert handle.remove() is False

    def test_closed_queue_rejects_jobs(self, queue):
        """Test that a closed queue refuses new jobs"""
        queue.close()
        with pytest.raises(RuntimeError):
            queue.enqueue("work", {})


class TestProcessing:
    def test_completed_job_value_and_progress(self, queue):
        """Test return value and progress of a completed job"""
        def handler(ctx):
            ctx.report_progress(50)
            return {"double": ctx.payload["n"] * 2}

        queue.process("work", handler)
        handle = queue.enqueue("work", {"n": 21})

        assert handle.wait(timeout=5)
        assert handle.get_state() == JobState.COMPLETED
        assert handle.return_value == {"double": 42}
        assert handle.progress == 100

    def test_failed_job_keeps_exception(self, queue):
        """A failed job keeps its reason and exception."""
        def handler(ctx):
            raise ValueError("bad payload")

        queue.process("work", handler)
        handle = queue.enqueue("work", {})

        assert handle.wait(timeout=5)
        assert handle.get_state() == JobState.FAILED
        assert handle.failed_reason == "bad payload"
        assert isinstance(handle.error, ValueError)
        assert queue.get_counts("work")["failed"] == 1

    def test_priority_order(self, queue):
        """Test that ready jobs run highest priority first"""
        gate = threading.Event()
        seen = []

        def handler(ctx):
            if ctx.payload["name"] == "blocker":
                gate.wait(timeout=5)
            seen.append(ctx.payload["name"])

        queue.process("work", handler, concurrency=1)
        blocker = queue.enqueue("work", {"name": "blocker"})
        # wait for the single worker to pick up the blocker
        for _ in range(200):
            if blocker.get_state() == JobState.ACTIVE:
                break
            time.sleep(0.01)

        low = queue.enqueue("work", {"name": "low"}, priority=JobPriority.LOW)
        normal = queue.enqueue("work", {"name": "normal"})
        critical = queue.enqueue("work", {"name": "critical"}, priority=JobPriority.CRITICAL)
        gate.set()

        for handle in (low, normal, critical):
            assert handle.wait(timeout=5)
        assert seen == ["blocker", "critical", "normal", "low"]

    def test_delayed_job_runs_after_delay(self, queue):
        """Test that a delayed job runs once its delay elapses"""
        queue.process("work", lambda ctx: "done")
        handle = queue.enqueue("work", {}, delay=0.1)
        assert handle.get_state() == JobState.DELAYED
        assert handle.wait(timeout=5)
        assert handle.return_value == "done"

    def test_duplicate_handler_rejected(self, queue):
        """Only one handler may be registered per job type."""
        queue.process("work", lambda ctx: None)
        with pytest.raises(ValueError):
            queue.process("work", lambda ctx: None)

    def test_concurrency_per_type(self, queue):
        """Test the worker concurrency bound per job type"""
        started = threading.Barrier(3, timeout=5)

        def handler(ctx):
            started.wait()
            return ctx.id

        queue.process("work", handler, concurrency=3)
        handles = [queue.enqueue("work", {}) for _ in range(3)]
        for handle in handles:
            assert handle.wait(timeout=5)
            assert handle.return_value == handle.id

    def test_removed_job_never_runs(self, queue):
        """Test that a removed job is never handed to a worker"""
        calls = []
        handle = queue.enqueue("work", {}, delay=0.2)
        assert handle.remove() is True
        queue.process("work", lambda ctx: calls.append(ctx.id))
        follow_up = queue.enqueue("work", {})
        assert follow_up.wait(timeout=5)
        assert calls == [follow_up.id]


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestPruning:
    def test_finished_jobs_pruned_after_retention(self):
        """Terminal jobs disappear once older than the retention period."""
        clock = _Clock()
        queue = InMemoryJobQueue(retention_seconds=60, clock=clock)
        try:
            queue.process("work", lambda ctx: "done")
            done = queue.enqueue("work", {})
            assert done.wait(timeout=5)
            removed = queue.enqueue("idle", {})
            assert removed.remove() is True
            waiting = queue.enqueue("idle", {})

            clock.now += 30
            assert queue.prune() == []
            assert queue.get_job(done.id) is not None

            clock.now += 31
            assert sorted(queue.prune()) == sorted([done.id, removed.id])
            assert queue.get_job(done.id) is None
            assert queue.get_job(removed.id) is None
            assert queue.get_job(waiting.id).get_state() == JobState.WAITING
            assert queue.get_counts("work")["completed"] == 0
            # handles held by callers still read the finished job
            assert done.return_value == "done"
        finally:
            queue.close(timeout=2.0)

    def test_explicit_max_age_overrides_retention(self):
        """``prune(max_age)`` works even without a configured retention."""
        clock = _Clock()
        queue = InMemoryJobQueue(clock=clock)
        handle = queue.enqueue("work", {})
        handle.remove()

        clock.now += 10
        assert queue.prune() == []
        assert queue.prune(max_age=5) == [handle.id]
        queue.close(timeout=2.0)
