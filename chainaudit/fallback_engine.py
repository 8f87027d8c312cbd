#!/usr/bin/env python3
"""
Fallback Degradation Engine.

Wraps a platform analyzer in an ordered ladder of progressively weaker
strategies and stops at the first one that succeeds:

    1. primary           analyzer, retried with exponential backoff   (none)
    2. ai-only           AI collaborator per contract                 (partial)
    3. basic-validation  structural validation only                   (significant)
    4. cached-results    previous per-contract results, TTL bound     (significant)
    5. minimal           unconditional floor, no analysis             (minimal)

Only the primary tier is retried; every fallback tier runs at most once.
``analyze_with_fallback`` never raises: tier 5 always succeeds.

Usage:
    engine = FallbackEngine(ai_analyzer=ai, validator=validator, cache=cache)
    outcome = engine.analyze_with_fallback(analyzer, contracts, options, config)
    if outcome.degradation_level != "none":
        ...
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from chainaudit.analyzers import AIAnalyzer, PlatformAnalyzer
from chainaudit.contract_validator import ContractValidator
from chainaudit.error_classifier import classified_retry_predicate, classify
from chainaudit.exceptions import PlatformError
from chainaudit.platform_registry import DEFAULT_FOCUS_AREAS, PlatformRegistry
from chainaudit.result_cache import ResultCache
from chainaudit.schemas import (
    AnalysisOptions,
    AnalysisResult,
    ContractInput,
    SourceLocation,
    Vulnerability,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Strategies and degradation levels
# ---------------------------------------------------------------------------

STRATEGY_PRIMARY = "primary"
STRATEGY_AI_ONLY = "ai-only"
STRATEGY_BASIC_VALIDATION = "basic-validation"
STRATEGY_CACHED_RESULTS = "cached-results"
STRATEGY_MINIMAL = "minimal"

STRATEGY_ORDER: tuple[str, ...] = (
    STRATEGY_PRIMARY,
    STRATEGY_AI_ONLY,
    STRATEGY_BASIC_VALIDATION,
    STRATEGY_CACHED_RESULTS,
    STRATEGY_MINIMAL,
)

DEGRADATION_NONE = "none"
DEGRADATION_PARTIAL = "partial"
DEGRADATION_SIGNIFICANT = "significant"
DEGRADATION_MINIMAL = "minimal"

# Non-decreasing along STRATEGY_ORDER
DEGRADATION_BY_STRATEGY: dict[str, str] = {
    STRATEGY_PRIMARY: DEGRADATION_NONE,
    STRATEGY_AI_ONLY: DEGRADATION_PARTIAL,
    STRATEGY_BASIC_VALIDATION: DEGRADATION_SIGNIFICANT,
    STRATEGY_CACHED_RESULTS: DEGRADATION_SIGNIFICANT,
    STRATEGY_MINIMAL: DEGRADATION_MINIMAL,
}

DEGRADATION_RANK: dict[str, int] = {
    DEGRADATION_NONE: 0,
    DEGRADATION_PARTIAL: 1,
    DEGRADATION_SIGNIFICANT: 2,
    DEGRADATION_MINIMAL: 3,
}

# strategy -> (available features, unavailable features)
STRATEGY_FEATURES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    STRATEGY_PRIMARY: (
        ("static-analysis", "ai-analysis", "full-vulnerability-detection"),
        (),
    ),
    STRATEGY_AI_ONLY: (
        ("ai-analysis", "vulnerability-detection"),
        ("static-analysis", "compilation-checks"),
    ),
    STRATEGY_BASIC_VALIDATION: (
        ("syntax-validation", "structure-checks"),
        ("static-analysis", "ai-analysis", "vulnerability-detection"),
    ),
    STRATEGY_CACHED_RESULTS: (
        ("cached-analysis",),
        ("real-time-analysis",),
    ),
    STRATEGY_MINIMAL: (
        ("basic-processing",),
        ("static-analysis", "ai-analysis", "vulnerability-detection", "validation"),
    ),
}

AI_ONLY_WARNING = "Analysis performed using AI-only fallback"
BASIC_VALIDATION_WARNING = "Analysis limited to basic validation checks"
CACHED_RESULTS_WARNING = "Using cached analysis results"
MINIMAL_WARNINGS = (
    "Analysis completed with minimal functionality",
    "Full security analysis unavailable",
    "Manual review recommended",
)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class FallbackConfig:
    """Which fallback tiers are enabled plus primary-tier retry settings."""

    enable_ai_fallback: bool = True
    enable_basic_validation: bool = True
    enable_cached_results: bool = True
    max_retry_attempts: int = 3
    retry_base_delay: float = 1.0
    attempt_timeout: Optional[float] = 120.0
    skip_fallback_on_unrecoverable: bool = False

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "FallbackConfig":
        """Build from a flat dict produced by ``build_unified_config``."""
        timeout = config.get("attempt_timeout", 120.0)
        return cls(
            enable_ai_fallback=bool(config.get("enable_ai_fallback", True)),
            enable_basic_validation=bool(config.get("enable_basic_validation", True)),
            enable_cached_results=bool(config.get("enable_cached_results", True)),
            max_retry_attempts=max(1, int(config.get("max_retry_attempts", 3))),
            retry_base_delay=float(config.get("retry_base_delay", 1.0)),
            attempt_timeout=float(timeout) if timeout else None,
            skip_fallback_on_unrecoverable=bool(
                config.get("skip_fallback_on_unrecoverable", False)
            ),
        )


@dataclass
class FallbackAttempt:
    """One entry of the ordered attempt log.

    Attributes:
        strategy:       Tier that ran.
        success:        Whether the tier produced the final result.
        execution_time: Wall-clock seconds spent in the tier.
        tries:          Calls made (only the primary tier retries).
        error:          Classified failure of the tier, if it failed.
        triggered_by:   Message of the earlier failure that led to this tier.
    """

    strategy: str
    success: bool
    execution_time: float = 0.0
    tries: int = 1
    error: Optional[PlatformError] = None
    triggered_by: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "success": self.success,
            "execution_time": round(self.execution_time, 4),
            "tries": self.tries,
            "error": self.error.to_dict() if self.error else None,
            "triggered_by": self.triggered_by,
        }


@dataclass
class FallbackAnalysisResult:
    """Analysis result plus the record of how it was obtained."""

    result: AnalysisResult
    strategy: str
    degradation_level: str
    attempts: list[FallbackAttempt] = field(default_factory=list)
    original_error: Optional[PlatformError] = None
    available_features: list[str] = field(default_factory=list)
    unavailable_features: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.result.success

    def summary(self) -> dict[str, Any]:
        return {
            "fallback_strategy": self.strategy,
            "degradation_level": self.degradation_level,
            "attempts": [a.to_dict() for a in self.attempts],
            "original_error": self.original_error.to_dict() if self.original_error else None,
            "available_features": list(self.available_features),
            "unavailable_features": list(self.unavailable_features),
        }


class _TierFailed(Exception):
    """Internal signal: a fallback tier ran but did not succeed."""


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class FallbackEngine:
    """Runs the degradation ladder for one platform at a time.

    One instance per process is expected; it owns the attempt-count map and
    (optionally) the shared result cache.  All collaborators are injected.
    """

    def __init__(
        self,
        ai_analyzer: Optional[AIAnalyzer] = None,
        validator: Optional[ContractValidator] = None,
        cache: Optional[ResultCache] = None,
        registry: Optional[PlatformRegistry] = None,
        default_config: Optional[FallbackConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ai_analyzer = ai_analyzer
        self.validator = validator
        self.cache = cache
        self.registry = registry
        self.default_config = default_config or FallbackConfig()
        self._sleep = sleep
        self._lock = threading.Lock()
        self._attempt_counts: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze_with_fallback(
        self,
        analyzer: PlatformAnalyzer,
        contracts: Sequence[ContractInput],
        options: Optional[AnalysisOptions] = None,
        config: Optional[FallbackConfig] = None,
        platform: Optional[str] = None,
    ) -> FallbackAnalysisResult:
        """Run the ladder and return the first successful tier's result."""
        config = config or self.default_config
        options = options or AnalysisOptions()
        platform = platform or _platform_of(analyzer, contracts)
        contracts = list(contracts)
        self._count_attempt(platform)

        attempts: list[FallbackAttempt] = []

        started = time.perf_counter()
        try:
            result, tries = self._run_primary(analyzer, contracts, platform, config)
        except PlatformError as error:
            original_error = error
            attempts.append(
                FallbackAttempt(
                    strategy=STRATEGY_PRIMARY,
                    success=False,
                    execution_time=time.perf_counter() - started,
                    tries=error.context.get("tries", 1),
                    error=error,
                )
            )
            logger.warning(
                "Primary analysis failed for %s (%s): %s",
                platform, error.code, error.message,
            )
        else:
            attempts.append(
                FallbackAttempt(
                    strategy=STRATEGY_PRIMARY,
                    success=True,
                    execution_time=time.perf_counter() - started,
                    tries=tries,
                )
            )
            self._remember(contracts, result)
            return self._finish(result, STRATEGY_PRIMARY, attempts, None)

        skip_fallbacks = (
            config.skip_fallback_on_unrecoverable and not original_error.fallback_available
        )
        if skip_fallbacks:
            logger.warning(
                "Skipping fallback tiers for %s: %s is not recoverable",
                platform, original_error.code,
            )
        else:
            tiers: list[tuple[str, bool, Callable[[], AnalysisResult]]] = [
                (
                    STRATEGY_AI_ONLY,
                    config.enable_ai_fallback
                    and options.enable_ai_analysis
                    and self.ai_analyzer is not None,
                    lambda: self._run_ai_only(contracts, platform, config),
                ),
                (
                    STRATEGY_BASIC_VALIDATION,
                    config.enable_basic_validation and self.validator is not None,
                    lambda: self._run_basic_validation(contracts, platform),
                ),
                (
                    STRATEGY_CACHED_RESULTS,
                    config.enable_cached_results and self.cache is not None,
                    lambda: self._run_cached(contracts),
                ),
            ]
            for strategy, enabled, run_tier in tiers:
                if not enabled:
                    continue
                result = self._attempt_tier(
                    strategy, run_tier, platform, attempts, original_error
                )
                if result is not None:
                    return self._finish(result, strategy, attempts, original_error)

        result = self._run_minimal(contracts, platform)
        attempts.append(
            FallbackAttempt(
                strategy=STRATEGY_MINIMAL,
                success=True,
                triggered_by=original_error.message,
            )
        )
        return self._finish(result, STRATEGY_MINIMAL, attempts, original_error)

    def cache_result(self, contract: ContractInput, result: AnalysisResult) -> None:
        """Seed the cached-results tier for *contract*."""
        if self.cache is not None:
            self.cache.put_for(contract, result)

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def attempt_count(self, platform: str) -> int:
        with self._lock:
            return self._attempt_counts.get(platform, 0)

    def reset_attempt_counts(self) -> None:
        with self._lock:
            self._attempt_counts.clear()

    # ------------------------------------------------------------------
    # Tier 1: primary
    # ------------------------------------------------------------------

    def _run_primary(
        self,
        analyzer: PlatformAnalyzer,
        contracts: list[ContractInput],
        platform: str,
        config: FallbackConfig,
    ) -> tuple[AnalysisResult, int]:
        """Call the analyzer with classified retries.

        Raises:
            PlatformError: The classified final failure, with the number of
                calls made in ``context["tries"]``.
        """
        tries = 0

        def _call() -> AnalysisResult:
            nonlocal tries
            tries += 1
            result = _call_with_timeout(
                analyzer.analyze, contracts, timeout=config.attempt_timeout
            )
            if not result.success:
                raise classify(
                    "; ".join(result.errors) or "Analyzer reported an unsuccessful analysis",
                    platform,
                )
            return result

        retrying = Retrying(
            stop=stop_after_attempt(config.max_retry_attempts),
            wait=wait_exponential(multiplier=config.retry_base_delay, exp_base=2),
            retry=retry_if_exception(classified_retry_predicate(platform)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            result = retrying(_call)
        except PlatformError as exc:
            exc.context["tries"] = tries
            raise
        except Exception as exc:
            error = classify(exc, platform)
            error.context["tries"] = tries
            raise error from exc
        return result, tries

    # ------------------------------------------------------------------
    # Tiers 2-4
    # ------------------------------------------------------------------

    def _attempt_tier(
        self,
        strategy: str,
        run_tier: Callable[[], AnalysisResult],
        platform: str,
        attempts: list[FallbackAttempt],
        original_error: PlatformError,
    ) -> Optional[AnalysisResult]:
        started = time.perf_counter()
        try:
            result = run_tier()
        except Exception as exc:
            error = classify(exc, platform)
            attempts.append(
                FallbackAttempt(
                    strategy=strategy,
                    success=False,
                    execution_time=time.perf_counter() - started,
                    error=error,
                    triggered_by=original_error.message,
                )
            )
            logger.warning("Fallback tier %s failed for %s: %s", strategy, platform, exc)
            return None

        attempts.append(
            FallbackAttempt(
                strategy=strategy,
                success=True,
                execution_time=time.perf_counter() - started,
                triggered_by=original_error.message,
            )
        )
        logger.info("Fallback tier %s succeeded for %s", strategy, platform)
        return result

    def _run_ai_only(
        self,
        contracts: list[ContractInput],
        platform: str,
        config: FallbackConfig,
    ) -> AnalysisResult:
        focus_areas = (
            self.registry.focus_areas(platform)
            if self.registry is not None
            else list(DEFAULT_FOCUS_AREAS)
        )
        vulnerabilities: list[Vulnerability] = []
        errors: list[str] = []
        usable = 0
        started = time.perf_counter()

        for contract in contracts:
            try:
                outcome = _call_with_timeout(
                    self.ai_analyzer.analyze_contract,
                    contract,
                    focus_areas,
                    timeout=config.attempt_timeout,
                )
            except Exception as exc:
                errors.append(f"AI analysis failed for {contract.filename}: {exc}")
                continue
            if outcome.success:
                usable += 1
                vulnerabilities.extend(outcome.vulnerabilities)
            else:
                errors.append(
                    f"AI analysis failed for {contract.filename}: {outcome.error or 'unknown error'}"
                )

        if usable == 0 and errors:
            raise _TierFailed("AI-only analysis failed: " + "; ".join(errors))

        return AnalysisResult(
            success=True,
            vulnerabilities=vulnerabilities,
            errors=errors,
            warnings=[AI_ONLY_WARNING],
            execution_time=time.perf_counter() - started,
            platform_specific={
                "focus_areas": focus_areas,
                "limitations": [
                    "Static analysis tools unavailable",
                    "Findings are AI-generated and require manual confirmation",
                ],
            },
        )

    def _run_basic_validation(
        self, contracts: list[ContractInput], platform: str
    ) -> AnalysisResult:
        vulnerabilities: list[Vulnerability] = []
        started = time.perf_counter()

        for contract in contracts:
            try:
                outcome = self.validator.validate_contract(contract)
                errors, warnings = outcome.errors, outcome.warnings
            except Exception as exc:
                errors, warnings = [f"Validation could not be completed: {exc}"], []
            for message in errors:
                vulnerabilities.append(
                    _validation_finding(contract, platform, "validation-error", "medium", 0.4, message)
                )
            for message in warnings:
                vulnerabilities.append(
                    _validation_finding(contract, platform, "validation-warning", "low", 0.3, message)
                )

        return AnalysisResult(
            success=True,
            vulnerabilities=vulnerabilities,
            warnings=[BASIC_VALIDATION_WARNING],
            execution_time=time.perf_counter() - started,
            platform_specific={
                "limitations": ["No static or AI analysis was performed"],
            },
        )

    def _run_cached(self, contracts: list[ContractInput]) -> AnalysisResult:
        cached: list[AnalysisResult] = []
        for contract in contracts:
            entry = self.cache.get_for(contract)
            if entry is None:
                raise _TierFailed(f"No cached results for {contract.filename}")
            cached.append(entry)

        logger.info("Serving %d contracts from the result cache", len(cached))
        return AnalysisResult(
            success=True,
            vulnerabilities=[v for r in cached for v in r.vulnerabilities],
            errors=[e for r in cached for e in r.errors],
            warnings=[w for r in cached for w in r.warnings] + [CACHED_RESULTS_WARNING],
            execution_time=sum(r.execution_time for r in cached),
        )

    # ------------------------------------------------------------------
    # Tier 5: minimal
    # ------------------------------------------------------------------

    def _run_minimal(self, contracts: list[ContractInput], platform: str) -> AnalysisResult:
        return AnalysisResult(
            success=True,
            vulnerabilities=[],
            warnings=list(MINIMAL_WARNINGS),
            execution_time=0.0,
            platform_specific={
                "contracts_processed": len(contracts),
                "total_lines_of_code": sum(len(c.code.splitlines()) for c in contracts),
                "limitations": [
                    f"No automated analysis was performed for {platform}",
                ],
                "recommendations": [
                    "Retry the analysis once the platform tooling is available",
                    "Perform a manual security review",
                ],
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _finish(
        self,
        result: AnalysisResult,
        strategy: str,
        attempts: list[FallbackAttempt],
        original_error: Optional[PlatformError],
    ) -> FallbackAnalysisResult:
        degradation = DEGRADATION_BY_STRATEGY[strategy]
        available, unavailable = STRATEGY_FEATURES[strategy]
        metadata = dict(result.platform_specific or {})
        metadata["fallback_strategy"] = strategy
        metadata["degradation_level"] = degradation
        result = result.model_copy(update={"platform_specific": metadata})
        return FallbackAnalysisResult(
            result=result,
            strategy=strategy,
            degradation_level=degradation,
            attempts=attempts,
            original_error=original_error,
            available_features=list(available),
            unavailable_features=list(unavailable),
        )

    def _remember(self, contracts: list[ContractInput], result: AnalysisResult) -> None:
        """Cache per-contract slices of a successful primary result."""
        if self.cache is None:
            return
        for contract in contracts:
            own = [v for v in result.vulnerabilities if v.location.file == contract.filename]
            self.cache.put_for(
                contract,
                AnalysisResult(
                    success=True,
                    vulnerabilities=own,
                    execution_time=result.execution_time / max(len(contracts), 1),
                ),
            )

    def _count_attempt(self, platform: str) -> None:
        with self._lock:
            self._attempt_counts[platform] = self._attempt_counts.get(platform, 0) + 1


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _platform_of(analyzer: Any, contracts: Sequence[ContractInput]) -> str:
    platform = getattr(analyzer, "platform", None)
    if platform:
        return platform
    return contracts[0].platform if contracts else "unknown"


def _call_with_timeout(func: Callable[..., Any], *args: Any, timeout: Optional[float]) -> Any:
    """Run ``func(*args)`` with an upper bound on wall-clock time.

    On timeout the worker thread is abandoned (best effort; an external tool
    call cannot be interrupted) and ``TimeoutError`` is raised.
    """
    if not timeout:
        return func(*args)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chainaudit-attempt")
    try:
        future = executor.submit(func, *args)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise TimeoutError(
                f"{getattr(func, '__name__', 'analysis')} timed out after {timeout:.1f}s"
            ) from None
    finally:
        executor.shutdown(wait=False)


def _validation_finding(
    contract: ContractInput,
    platform: str,
    kind: str,
    severity: str,
    confidence: float,
    message: str,
) -> Vulnerability:
    label = "Validation Error" if kind == "validation-error" else "Validation Warning"
    return Vulnerability(
        type=kind,
        severity=severity,
        title=f"{label}: {message}",
        description=message,
        location=SourceLocation(file=contract.filename, line=1, column=1),
        recommendation="Review and fix the reported issue before relying on further analysis",
        confidence=confidence,
        source="static",
        platform=platform,
    )


__all__ = [
    "DEGRADATION_BY_STRATEGY",
    "DEGRADATION_MINIMAL",
    "DEGRADATION_NONE",
    "DEGRADATION_PARTIAL",
    "DEGRADATION_RANK",
    "DEGRADATION_SIGNIFICANT",
    "FallbackAnalysisResult",
    "FallbackAttempt",
    "FallbackConfig",
    "FallbackEngine",
    "STRATEGY_AI_ONLY",
    "STRATEGY_BASIC_VALIDATION",
    "STRATEGY_CACHED_RESULTS",
    "STRATEGY_FEATURES",
    "STRATEGY_MINIMAL",
    "STRATEGY_ORDER",
    "STRATEGY_PRIMARY",
]
