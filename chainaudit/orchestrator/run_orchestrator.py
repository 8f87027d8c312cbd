#!/usr/bin/env python3
"""
Multi-Platform Run Orchestrator

Turns one submitted multi-platform request into a run and drives it through
the job queue:

    start_run  -> validate, persist a pending run, enqueue the parent job
    process_run (parent job)
        -> fan out one platform sub-job per platform (staggered, HIGH priority)
        -> poll sub-jobs until all settle or the wait ceiling passes
        -> continue or abort on each platform failure (ContinuePolicy)
        -> persist successful results and vulnerabilities
        -> optionally run cross-platform aggregation (>= 2 successes)
        -> complete the run
    process_platform (sub-job)
        -> validate contracts, run the fallback ladder, filter by severity
    process_cross_platform (sub-job)
        -> aggregate successful platform results

Only the orchestrator writes run state and run-level progress.  Sub-jobs
report job-local progress and hand their results back via return values.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from chainaudit.analyzers import AnalyzerRegistry
from chainaudit.contract_validator import ContractValidator, validate_request
from chainaudit.cross_platform.aggregator import CrossPlatformAggregator
from chainaudit.error_classifier import (
    ERROR_KIND_ANALYZER_UNAVAILABLE,
    ERROR_KIND_CROSS_PLATFORM,
    ERROR_KIND_TOOL_TIMEOUT,
    ERROR_KIND_VALIDATION,
    classify,
    create_platform_error,
)
from chainaudit.exceptions import (
    AccessDeniedError,
    PlatformError,
    RequestValidationError,
    RunCancelledError,
    RunNotFoundError,
)
from chainaudit.fallback_engine import STRATEGY_MINIMAL, FallbackConfig, FallbackEngine
from chainaudit.jobs.protocol import (
    JOB_TYPE_CROSS_PLATFORM,
    JOB_TYPE_MULTI_PLATFORM,
    JOB_TYPE_PLATFORM,
    JobContext,
    JobHandle,
    JobPriority,
    JobQueue,
    JobState,
)
from chainaudit.notifications import ProgressChannel, safe_notify
from chainaudit.orchestrator.config import OrchestratorSettings
from chainaudit.orchestrator.policy import recovery_suggestions
from chainaudit.orchestrator.progress import (
    PROGRESS_COMPLETE,
    PROGRESS_CROSS_PLATFORM,
    PROGRESS_FINALIZING,
    PROGRESS_INITIALIZING,
    PROGRESS_JOBS_CREATED,
    PLATFORM_BAND_END,
    ProgressTracker,
    RunProgress,
    platform_band_progress,
    reconstruct_progress,
)
from chainaudit.persistence import MultiPlatformRun, RunStatus, RunStore
from chainaudit.platform_registry import PlatformRegistry
from chainaudit.schemas import (
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    ContractInput,
    CrossPlatformResult,
    meets_threshold,
)

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Analysis was cancelled by user"


def _format_validation_errors(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return messages


class MultiPlatformOrchestrator:
    """Coordinates multi-platform analysis runs on a job queue.

    Parameters
    ----------
    queue:
        Job queue implementing ``JobQueue``.
    run_store:
        Persistence collaborator; the orchestrator is its only writer.
    registry:
        Platform registry used for request validation and recovery hints.
    analyzers:
        Per-platform primary analyzers.
    fallback_engine:
        Degradation ladder used by platform sub-jobs.
    aggregator:
        Cross-platform aggregator; a default one is built from *registry*.
    progress_tracker:
        Live progress snapshots; a fresh tracker is created when omitted.
    channel:
        Progress subscription channel (fire-and-forget).
    validator:
        Per-contract validator run inside platform sub-jobs.
    settings:
        Concurrency, wait and policy settings.
    fallback_config:
        Ladder configuration passed to every platform sub-job.
    sleep, clock:
        Injectable for tests.
    """

    def __init__(
        self,
        queue: JobQueue,
        run_store: RunStore,
        registry: PlatformRegistry,
        analyzers: AnalyzerRegistry,
        fallback_engine: FallbackEngine,
        aggregator: Optional[CrossPlatformAggregator] = None,
        progress_tracker: Optional[ProgressTracker] = None,
        channel: Optional[ProgressChannel] = None,
        validator: Optional[ContractValidator] = None,
        settings: Optional[OrchestratorSettings] = None,
        fallback_config: Optional[FallbackConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queue = queue
        self.run_store = run_store
        self.registry = registry
        self.analyzers = analyzers
        self.fallback_engine = fallback_engine
        self.aggregator = aggregator or CrossPlatformAggregator(registry.transaction_models())
        self.settings = settings or OrchestratorSettings()
        self.progress = progress_tracker or ProgressTracker(
            retention_seconds=self.settings.progress_retention_seconds
        )
        self.channel = channel
        self.validator = validator
        self.fallback_config = fallback_config
        self.policy = self.settings.policy
        self._sleep = sleep
        self._clock = clock

        # Serializes terminal transitions (complete / fail / cancel) per process
        self._state_lock = threading.Lock()
        self._jobs_lock = threading.Lock()
        self._platform_jobs: Dict[str, Dict[str, str]] = {}
        self._processors_registered = False

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def register_processors(self) -> None:
        """Attach the three job handlers to the queue (idempotent)."""
        if self._processors_registered:
            return
        self.queue.process(
            JOB_TYPE_MULTI_PLATFORM, self.process_run, self.settings.run_job_concurrency
        )
        self.queue.process(
            JOB_TYPE_PLATFORM, self.process_platform, self.settings.platform_job_concurrency
        )
        self.queue.process(
            JOB_TYPE_CROSS_PLATFORM,
            self.process_cross_platform,
            self.settings.cross_platform_job_concurrency,
        )
        self._processors_registered = True
        logger.info(
            "Registered job processors (run=%d, platform=%d, cross_platform=%d)",
            self.settings.run_job_concurrency,
            self.settings.platform_job_concurrency,
            self.settings.cross_platform_job_concurrency,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_run(
        self,
        owner: str,
        platforms: Sequence[str],
        contracts: Sequence[Any],
        options: Optional[Any] = None,
        cross_platform: bool = False,
        name: Optional[str] = None,
        priority: int = JobPriority.NORMAL,
    ) -> Dict[str, str]:
        """Validate and enqueue a multi-platform run.

        Returns:
            ``{"run_id": ..., "job_id": ...}``

        Raises:
            RequestValidationError: If the request is malformed, names an
                unknown or inactive platform, or has no usable contracts.
        """
        try:
            request = AnalysisRequest(
                platforms=list(platforms),
                contracts=list(contracts),
                options=options if options is not None else AnalysisOptions(),
                cross_platform_analysis=cross_platform,
                name=name,
            )
        except ValidationError as exc:
            raise RequestValidationError(_format_validation_errors(exc)) from exc

        errors, warnings = validate_request(request, self.registry)
        if errors:
            logger.warning("Rejected analysis request from %s: %s", owner, "; ".join(errors))
            raise RequestValidationError(errors)
        for warning in warnings:
            logger.warning("Analysis request from %s: %s", owner, warning)

        run_id = uuid.uuid4().hex
        self.run_store.create_run(
            MultiPlatformRun(
                id=run_id,
                owner=owner,
                platforms=list(request.platforms),
                name=request.name,
                cross_platform_analysis=request.cross_platform_analysis,
            )
        )
        snapshot = self.progress.initialize(run_id, list(request.platforms))
        safe_notify(self.channel, owner, run_id, snapshot)

        handle = self.queue.enqueue(
            JOB_TYPE_MULTI_PLATFORM,
            {"run_id": run_id, "owner": owner, "request": request.model_dump(mode="json")},
            priority=priority,
        )
        self.run_store.update_run(run_id, job_id=handle.id)
        logger.info(
            "Started run %s for %s on %s (job %s)",
            run_id, owner, ", ".join(request.platforms), handle.id,
        )

        self.cleanup_progress()
        return {"run_id": run_id, "job_id": handle.id}

    def get_progress(self, run_id: str, owner: str) -> RunProgress:
        """Return the live snapshot, or rebuild one from persisted state.

        Raises:
            RunNotFoundError: Unknown run.
            AccessDeniedError: *owner* does not own the run.
        """
        run = self._owned_run(run_id, owner)
        snapshot = self.progress.get(run_id)
        if snapshot is not None:
            return snapshot
        return reconstruct_progress(run, self._platform_job_states(run_id))

    def cancel_run(self, run_id: str, owner: str) -> bool:
        """Cancel a non-terminal run; False when it already finished."""
        run = self._owned_run(run_id, owner)
        if run.is_terminal:
            return False

        for job_id in [run.job_id, *self._platform_job_ids(run_id).values()]:
            if job_id is None:
                continue
            handle = self.queue.get_job(job_id)
            if handle is not None:
                handle.remove()

        error = {
            "kind": "cancelled",
            "code": RunCancelledError.code,
            "message": CANCELLED_MESSAGE,
            "status_code": RunCancelledError.status_code,
            "recovery_suggestions": [],
        }
        with self._state_lock:
            current = self.run_store.get_run(run_id)
            if current is None or current.is_terminal:
                return False
            self.run_store.update_run(run_id, status=RunStatus.FAILED, error=error)

        logger.info("Run %s cancelled by %s", run_id, owner)
        self._publish(
            run_id,
            owner,
            status=RunStatus.FAILED,
            step="Analysis cancelled",
            error=error,
            recovery_suggestions=[],
        )
        return True

    def get_queue_stats(self) -> Dict[str, Dict[str, int]]:
        return {
            job_type: self.queue.get_counts(job_type)
            for job_type in (JOB_TYPE_MULTI_PLATFORM, JOB_TYPE_PLATFORM, JOB_TYPE_CROSS_PLATFORM)
        }

    def cleanup_progress(self) -> int:
        """Drop stale progress snapshots, finished jobs and their bookkeeping.

        Returns the number of snapshots removed.
        """
        removed = self.progress.cleanup()
        self._prune_finished_jobs()
        return removed

    # ------------------------------------------------------------------
    # Parent job
    # ------------------------------------------------------------------

    def process_run(self, ctx: JobContext) -> Dict[str, Any]:
        """Handler for ``multi_platform_analysis`` jobs."""
        run_id = ctx.payload["run_id"]
        owner = ctx.payload["owner"]
        request = AnalysisRequest.model_validate(ctx.payload["request"])

        with self._state_lock:
            run = self.run_store.get_run(run_id)
            if run is None:
                raise RunNotFoundError(f"Run not found: {run_id}")
            if run.is_terminal:
                # Redelivered or cancelled before pickup
                logger.info("Run %s is already %s; skipping", run_id, run.status)
                return {"run_id": run_id, "status": run.status}
            self.run_store.update_run(run_id, status=RunStatus.ANALYZING)

        if self.progress.get(run_id) is None:
            self.progress.initialize(run_id, list(run.platforms))
        self._publish(
            run_id, owner,
            status=RunStatus.ANALYZING,
            overall=PROGRESS_INITIALIZING,
            step="Initializing analysis",
        )

        handles = self._enqueue_platform_jobs(run_id, request)
        self._publish(
            run_id, owner,
            overall=PROGRESS_JOBS_CREATED,
            step=f"Analyzing {len(handles)} platform(s)",
        )

        try:
            results, errors = self._await_platform_jobs(run_id, owner, handles)
        except RunCancelledError:
            self._remove_pending(handles)
            logger.info("Run %s was cancelled while analyzing", run_id)
            return {"run_id": run_id, "status": RunStatus.FAILED, "cancelled": True}

        if not results:
            error = self._summarize_failures(errors, list(handles))
            self._fail_run(run_id, owner, error, results, errors)
            raise error

        self.run_store.update_run(
            run_id,
            platform_results=results,
            platform_errors={p: e.to_dict() for p, e in errors.items()},
        )
        for platform, result in results.items():
            self.run_store.save_vulnerabilities(run_id, platform, result.vulnerabilities)
        self._publish(run_id, owner, overall=PLATFORM_BAND_END, step="Platform analysis finished")

        cross_platform = None
        if request.cross_platform_analysis:
            if len(results) >= 2:
                cross_platform = self._run_cross_platform(run_id, owner, results)
            else:
                logger.info(
                    "Skipping cross-platform analysis for run %s: %d successful platform(s)",
                    run_id, len(results),
                )

        self._publish(run_id, owner, overall=PROGRESS_FINALIZING, step="Finalizing results")

        with self._state_lock:
            current = self.run_store.get_run(run_id)
            if current is None or current.is_terminal:
                logger.info("Run %s finished after cancellation; result discarded", run_id)
                return {"run_id": run_id, "status": RunStatus.FAILED, "cancelled": True}
            self.run_store.update_run(run_id, status=RunStatus.COMPLETED)

        self._publish(
            run_id, owner,
            status=RunStatus.COMPLETED,
            overall=PROGRESS_COMPLETE,
            step="Analysis completed",
        )
        logger.info(
            "Run %s completed: %d succeeded, %d failed%s",
            run_id, len(results), len(errors),
            ", cross-platform analysis attached" if cross_platform else "",
        )
        return {
            "run_id": run_id,
            "status": RunStatus.COMPLETED,
            "completed_platforms": list(results),
            "failed_platforms": list(errors),
            "cross_platform": cross_platform is not None,
        }

    def _enqueue_platform_jobs(
        self, run_id: str, request: AnalysisRequest
    ) -> Dict[str, JobHandle]:
        handles: Dict[str, JobHandle] = {}
        options = request.options.model_dump(mode="json")
        for index, (platform, contracts) in enumerate(request.contracts_by_platform().items()):
            handle = self.queue.enqueue(
                JOB_TYPE_PLATFORM,
                {
                    "run_id": run_id,
                    "platform": platform,
                    "contracts": [c.model_dump(mode="json") for c in contracts],
                    "options": options,
                },
                priority=JobPriority.HIGH,
                delay=index * self.settings.platform_job_stagger,
            )
            handles[platform] = handle
            logger.debug("Queued %s sub-job %s for run %s", platform, handle.id, run_id)

        with self._jobs_lock:
            self._platform_jobs[run_id] = {p: h.id for p, h in handles.items()}
        return handles

    def _await_platform_jobs(
        self,
        run_id: str,
        owner: str,
        handles: Mapping[str, JobHandle],
    ) -> tuple[Dict[str, AnalysisResult], Dict[str, PlatformError]]:
        """Poll sub-jobs until every platform settled or the ceiling passed.

        Completion may be observed more than once; ``settled`` keeps the
        bookkeeping idempotent.

        Raises:
            RunCancelledError: The run was cancelled while polling.
            PlatformError: A failure the continue policy says to abort on.
        """
        total = len(handles)
        results: Dict[str, AnalysisResult] = {}
        errors: Dict[str, PlatformError] = {}
        settled: set[str] = set()
        deadline = self._clock() + self.settings.platform_wait_timeout

        while True:
            if self._is_cancelled(run_id):
                raise RunCancelledError(CANCELLED_MESSAGE)

            job_progress: Dict[str, int] = {}
            for platform, handle in handles.items():
                if platform in settled:
                    continue
                state = handle.get_state()
                if state == JobState.COMPLETED:
                    settled.add(platform)
                    results[platform] = self._parse_platform_result(handle)
                    logger.info("Platform %s finished for run %s", platform, run_id)
                    self._publish(
                        run_id, owner,
                        platform_progress={platform: 100},
                        completed_platform=platform,
                    )
                elif state in (JobState.FAILED, JobState.REMOVED):
                    settled.add(platform)
                    error = self._job_error(handle, platform)
                    errors[platform] = error
                    self._on_platform_failure(run_id, owner, error, handles, results, errors)
                else:
                    job_progress[platform] = handle.progress

            self._publish(
                run_id, owner,
                overall=platform_band_progress(len(settled), total),
                platform_progress=job_progress,
            )

            if len(settled) == total:
                return results, errors

            if self._clock() >= deadline:
                for platform, handle in handles.items():
                    if platform in settled:
                        continue
                    handle.remove()
                    settled.add(platform)
                    error = create_platform_error(
                        ERROR_KIND_TOOL_TIMEOUT,
                        f"Platform analysis did not finish within "
                        f"{self.settings.platform_wait_timeout:g}s",
                        platform=platform,
                    )
                    errors[platform] = error
                    self._on_platform_failure(run_id, owner, error, handles, results, errors)
                self._publish(run_id, owner, overall=PLATFORM_BAND_END)
                return results, errors

            self._sleep(self.settings.platform_poll_interval)

    def _on_platform_failure(
        self,
        run_id: str,
        owner: str,
        error: PlatformError,
        handles: Mapping[str, JobHandle],
        results: Dict[str, AnalysisResult],
        errors: Dict[str, PlatformError],
    ) -> None:
        logger.warning(
            "Platform %s failed for run %s (%s): %s",
            error.platform, run_id, error.code, error.message,
        )
        self._publish(
            run_id, owner,
            platform_progress={error.platform: 100} if error.platform else None,
            failed_platform=error.platform,
        )
        if self.policy.should_continue(error, len(handles)):
            return

        logger.error("Aborting run %s after %s failure", run_id, error.platform)
        self._remove_pending(handles)
        self._fail_run(run_id, owner, error, results, errors)
        raise error

    def _summarize_failures(
        self, errors: Mapping[str, PlatformError], platforms: List[str]
    ) -> PlatformError:
        if len(errors) == 1:
            return next(iter(errors.values()))
        return create_platform_error(
            ERROR_KIND_CROSS_PLATFORM,
            f"Analysis failed on all {len(platforms)} platforms",
            platforms=platforms,
            context={"platform_errors": {p: e.to_dict() for p, e in errors.items()}},
        )

    def _fail_run(
        self,
        run_id: str,
        owner: str,
        error: PlatformError,
        results: Mapping[str, AnalysisResult],
        errors: Mapping[str, PlatformError],
    ) -> None:
        suggestions = recovery_suggestions(error, self.registry)
        error_data = error.to_dict()
        error_data["recovery_suggestions"] = suggestions

        with self._state_lock:
            current = self.run_store.get_run(run_id)
            if current is None or current.is_terminal:
                return
            self.run_store.update_run(
                run_id,
                status=RunStatus.FAILED,
                error=error_data,
                platform_results=dict(results),
                platform_errors={p: e.to_dict() for p, e in errors.items()},
            )

        logger.error("Run %s failed (%s): %s", run_id, error.code, error.message)
        self._publish(
            run_id, owner,
            status=RunStatus.FAILED,
            step="Analysis failed",
            error=error_data,
            recovery_suggestions=suggestions,
        )

    def _run_cross_platform(
        self,
        run_id: str,
        owner: str,
        results: Mapping[str, AnalysisResult],
    ) -> Optional[CrossPlatformResult]:
        """Aggregate via a sub-job; failures are logged and omitted."""
        self._publish(
            run_id, owner,
            overall=PROGRESS_CROSS_PLATFORM,
            step="Running cross-platform analysis",
        )
        handle = self.queue.enqueue(
            JOB_TYPE_CROSS_PLATFORM,
            {
                "run_id": run_id,
                "platform_results": {p: r.model_dump(mode="json") for p, r in results.items()},
            },
            priority=JobPriority.HIGH,
        )

        deadline = self._clock() + self.settings.cross_platform_wait_timeout
        while True:
            state = handle.get_state()
            if state == JobState.COMPLETED:
                try:
                    cross_platform = CrossPlatformResult.model_validate(handle.return_value)
                except ValidationError as exc:
                    logger.warning("Discarding malformed cross-platform result for run %s: %s", run_id, exc)
                    return None
                self.run_store.save_cross_platform_result(run_id, cross_platform)
                return cross_platform
            if state in (JobState.FAILED, JobState.REMOVED):
                logger.warning(
                    "Cross-platform analysis failed for run %s: %s", run_id, handle.failed_reason
                )
                return None
            if self._clock() >= deadline or self._is_cancelled(run_id):
                handle.remove()
                logger.warning("Cross-platform analysis for run %s did not finish in time", run_id)
                return None
            self._sleep(self.settings.cross_platform_poll_interval)

    # ------------------------------------------------------------------
    # Sub-jobs
    # ------------------------------------------------------------------

    def process_platform(self, ctx: JobContext) -> Dict[str, Any]:
        """Handler for ``platform_analysis`` jobs.

        Raises:
            PlatformError: Validation failure, missing analyzer, or an
                unrecoverable primary failure when
                ``skip_fallback_on_unrecoverable`` kept the tiers from running.
        """
        platform = ctx.payload["platform"]
        contracts = [ContractInput.model_validate(c) for c in ctx.payload["contracts"]]
        options = AnalysisOptions.model_validate(ctx.payload.get("options") or {})
        ctx.report_progress(10)

        if self.validator is not None:
            problems: List[str] = []
            for contract in contracts:
                problems.extend(self.validator.validate_contract(contract).errors)
            if problems:
                raise create_platform_error(
                    ERROR_KIND_VALIDATION,
                    f"Contract validation failed: {'; '.join(problems)}",
                    platform=platform,
                    context={"errors": problems},
                )

        analyzer = self.analyzers.get(platform)
        if analyzer is None:
            raise create_platform_error(
                ERROR_KIND_ANALYZER_UNAVAILABLE,
                f"No analyzer registered for platform {platform}",
                platform=platform,
            )
        ctx.report_progress(30)

        config = self.fallback_config or self.fallback_engine.default_config
        outcome = self.fallback_engine.analyze_with_fallback(
            analyzer, contracts, options, config=config, platform=platform
        )
        original = outcome.original_error
        if (
            original is not None
            and outcome.strategy == STRATEGY_MINIMAL
            and config.skip_fallback_on_unrecoverable
            and not original.fallback_available
        ):
            # Tiers were skipped; the minimal stub is not a usable result
            raise original
        if not outcome.success:
            raise create_platform_error(
                ERROR_KIND_ANALYZER_UNAVAILABLE,
                f"Analysis produced no usable result for {platform}",
                platform=platform,
            )

        result = outcome.result
        kept = [v for v in result.vulnerabilities if meets_threshold(v.severity, options.severity_threshold)]
        if len(kept) != len(result.vulnerabilities):
            result = result.model_copy(update={"vulnerabilities": kept})
        ctx.report_progress(90)

        logger.info(
            "Platform %s analyzed via %s: %d finding(s)",
            platform, outcome.strategy, len(kept),
        )
        return {
            "platform": platform,
            "success": True,
            "result": result.model_dump(mode="json"),
            "fallback": outcome.summary(),
        }

    def process_cross_platform(self, ctx: JobContext) -> Dict[str, Any]:
        """Handler for ``cross_platform_analysis`` jobs."""
        raw = ctx.payload.get("platform_results") or {}
        results = {p: AnalysisResult.model_validate(r) for p, r in raw.items()}
        aggregated = self.aggregator.aggregate(results)
        return aggregated.model_dump(mode="json")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _owned_run(self, run_id: str, owner: str) -> MultiPlatformRun:
        run = self.run_store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Run not found: {run_id}")
        if run.owner != owner:
            raise AccessDeniedError(f"Access denied to run {run_id}")
        return run

    def _is_cancelled(self, run_id: str) -> bool:
        run = self.run_store.get_run(run_id)
        return run is None or run.status == RunStatus.FAILED

    def _platform_job_ids(self, run_id: str) -> Dict[str, str]:
        with self._jobs_lock:
            return dict(self._platform_jobs.get(run_id, {}))

    def _prune_finished_jobs(self) -> None:
        """Prune the queue and forget sub-job ids of finished, untracked runs."""
        self.queue.prune(self.settings.progress_retention_seconds)
        with self._jobs_lock:
            run_ids = list(self._platform_jobs)
        stale = []
        for run_id in run_ids:
            if self.progress.get(run_id) is not None:
                continue
            run = self.run_store.get_run(run_id)
            if run is None or run.is_terminal:
                stale.append(run_id)
        with self._jobs_lock:
            for run_id in stale:
                self._platform_jobs.pop(run_id, None)
        if stale:
            logger.debug("Forgot platform sub-jobs of %d finished run(s)", len(stale))

    def _platform_job_states(self, run_id: str) -> Dict[str, str]:
        states: Dict[str, str] = {}
        for platform, job_id in self._platform_job_ids(run_id).items():
            handle = self.queue.get_job(job_id)
            if handle is not None:
                states[platform] = handle.get_state()
        return states

    def _remove_pending(self, handles: Mapping[str, JobHandle]) -> None:
        for handle in handles.values():
            if handle.get_state() in (JobState.WAITING, JobState.DELAYED):
                handle.remove()

    @staticmethod
    def _parse_platform_result(handle: JobHandle) -> AnalysisResult:
        value = handle.return_value or {}
        return AnalysisResult.model_validate(value.get("result", value))

    @staticmethod
    def _job_error(handle: JobHandle, platform: str) -> PlatformError:
        error = getattr(handle, "error", None)
        if isinstance(error, PlatformError):
            if error.platform is None:
                error.platform = platform
            return error
        if handle.get_state() == JobState.REMOVED:
            return create_platform_error(
                ERROR_KIND_ANALYZER_UNAVAILABLE,
                f"Platform job for {platform} was removed before it ran",
                platform=platform,
            )
        return classify(error or handle.failed_reason or "Platform analysis failed", platform=platform)

    def _publish(self, run_id: str, owner: str, **changes: Any) -> None:
        snapshot = self.progress.update(run_id, **changes)
        if snapshot is not None:
            safe_notify(self.channel, owner, run_id, snapshot)


__all__ = ["CANCELLED_MESSAGE", "MultiPlatformOrchestrator"]
