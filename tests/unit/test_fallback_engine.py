#!/usr/bin/env python3
"""
Tests for the fallback degradation ladder.

Analyzers are plain fakes; the AI collaborator is a MagicMock and the
backoff sleep is injected so no test waits on real time.
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest

from chainaudit.analyzers import AIAnalysisOutcome, FunctionAnalyzer
from chainaudit.contract_validator import ContractValidator
from chainaudit.error_classifier import ERROR_KIND_COMPILATION, create_platform_error
from chainaudit.fallback_engine import (
    AI_ONLY_WARNING,
    BASIC_VALIDATION_WARNING,
    CACHED_RESULTS_WARNING,
    DEGRADATION_BY_STRATEGY,
    DEGRADATION_RANK,
    MINIMAL_WARNINGS,
    STRATEGY_AI_ONLY,
    STRATEGY_BASIC_VALIDATION,
    STRATEGY_CACHED_RESULTS,
    STRATEGY_MINIMAL,
    STRATEGY_ORDER,
    STRATEGY_PRIMARY,
    FallbackConfig,
    FallbackEngine,
)
from chainaudit.platform_registry import PlatformRegistry
from chainaudit.result_cache import ResultCache
from chainaudit.schemas import AnalysisResult, ContractInput, SourceLocation, Vulnerability

SOLIDITY = """pragma solidity ^0.8.20;

contract Vault {
    mapping(address => uint256) public balances;
}
"""


def _contract(filename: str = "Vault.sol", code: str = SOLIDITY) -> ContractInput:
    return ContractInput(platform="ethereum", code=code, filename=filename)


def _finding(filename: str = "Vault.sol", severity: str = "high") -> Vulnerability:
    return Vulnerability(
        type="reentrancy",
        severity=severity,
        title="Reentrancy in withdraw",
        location=SourceLocation(file=filename, line=4),
        platform="ethereum",
    )


class ScriptedAnalyzer:
    """Raises the queued errors in order, then returns *result*."""

    platform = "ethereum"

    def __init__(self, errors=(), result=None):
        self.errors = list(errors)
        self.result = result or AnalysisResult(success=True, vulnerabilities=[_finding()])
        self.calls = 0

    def analyze(self, contracts):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _config(**overrides) -> FallbackConfig:
    values = dict(
        max_retry_attempts=3,
        retry_base_delay=1.0,
        attempt_timeout=None,
        skip_fallback_on_unrecoverable=False,
    )
    values.update(overrides)
    return FallbackConfig(**values)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def registry():
    return PlatformRegistry()


def _engine(sleeps, **kwargs) -> FallbackEngine:
    return FallbackEngine(sleep=sleeps.append, **kwargs)


# ---------------------------------------------------------------------------
# Ladder constants
# ---------------------------------------------------------------------------


class TestLadderShape:
    def test_order(self):
        """Test the fixed order of the ladder"""
        assert STRATEGY_ORDER == (
            STRATEGY_PRIMARY,
            STRATEGY_AI_ONLY,
            STRATEGY_BASIC_VALIDATION,
            STRATEGY_CACHED_RESULTS,
            STRATEGY_MINIMAL,
        )

    def test_degradation_never_decreases(self):
        """Degradation only grows with the tier index."""
        ranks = [DEGRADATION_RANK[DEGRADATION_BY_STRATEGY[s]] for s in STRATEGY_ORDER]
        assert ranks == sorted(ranks)
        assert ranks[0] == 0
        assert DEGRADATION_BY_STRATEGY[STRATEGY_MINIMAL] == "minimal"

    def test_config_from_flat_dict(self):
        """Test FallbackConfig built from the flat config"""
        config = FallbackConfig.from_config(
            {"max_retry_attempts": 0, "attempt_timeout": 0, "enable_ai_fallback": False}
        )
        assert config.max_retry_attempts == 1
        assert config.attempt_timeout is None
        assert config.enable_ai_fallback is False


# ---------------------------------------------------------------------------
# Primary tier
# ---------------------------------------------------------------------------


class TestPrimary:
    def test_success_first_try(self, sleeps):
        """Test a primary success with no retries"""
        analyzer = ScriptedAnalyzer()
        outcome = _engine(sleeps).analyze_with_fallback(analyzer, [_contract()], config=_config())

        assert outcome.strategy == STRATEGY_PRIMARY
        assert outcome.degradation_level == "none"
        assert outcome.original_error is None
        assert outcome.result.platform_specific["fallback_strategy"] == STRATEGY_PRIMARY
        assert outcome.attempts[0].tries == 1
        assert sleeps == []

    def test_transient_failures_retried_with_backoff(self, sleeps):
        """Transient failures are retried with doubling delays."""
        analyzer = ScriptedAnalyzer(errors=[RuntimeError("ECONNRESET"), RuntimeError("ECONNRESET")])
        outcome = _engine(sleeps).analyze_with_fallback(analyzer, [_contract()], config=_config())

        assert outcome.strategy == STRATEGY_PRIMARY
        assert analyzer.calls == 3
        assert outcome.attempts[0].tries == 3
        assert sleeps == [1.0, 2.0]

    def test_backoff_uses_base_delay(self, sleeps):
        """Test that the first delay equals retry_base_delay"""
        analyzer = ScriptedAnalyzer(errors=[RuntimeError("connection refused")])
        _engine(sleeps).analyze_with_fallback(
            analyzer, [_contract()], config=_config(retry_base_delay=0.25)
        )
        assert sleeps == [0.25]

    def test_permanent_failure_not_retried(self, sleeps):
        """Test that compilation failures are never retried"""
        analyzer = ScriptedAnalyzer(errors=[RuntimeError("compilation failed")])
        outcome = _engine(sleeps).analyze_with_fallback(analyzer, [_contract()], config=_config())

        assert analyzer.calls == 1
        assert sleeps == []
        assert outcome.original_error.kind == ERROR_KIND_COMPILATION
        assert outcome.attempts[0].success is False

    def test_unsuccessful_result_is_classified(self, sleeps):
        """An unsuccessful result is classified from its error text."""
        analyzer = ScriptedAnalyzer(
            result=AnalysisResult(success=False, errors=["slither: command not found"])
        )
        outcome = _engine(sleeps).analyze_with_fallback(analyzer, [_contract()], config=_config())
        assert outcome.original_error.code == "TOOL_INSTALLATION_MISSING"
        assert analyzer.calls == 1

    def test_attempt_timeout(self, sleeps):
        """Test the per-attempt wall-clock timeout"""
        def slow(contracts):
            time.sleep(0.5)
            return AnalysisResult(success=True)

        analyzer = FunctionAnalyzer("ethereum", slow)
        outcome = _engine(sleeps).analyze_with_fallback(
            analyzer, [_contract()], config=_config(attempt_timeout=0.05, max_retry_attempts=1)
        )
        assert outcome.original_error.code == "TOOL_EXECUTION_TIMEOUT"
        assert outcome.strategy != STRATEGY_PRIMARY

    def test_attempt_counts(self, sleeps):
        """Test per-platform attempt counting and reset"""
        engine = _engine(sleeps)
        engine.analyze_with_fallback(ScriptedAnalyzer(), [_contract()], config=_config())
        engine.analyze_with_fallback(ScriptedAnalyzer(), [_contract()], config=_config())
        assert engine.attempt_count("ethereum") == 2
        engine.reset_attempt_counts()
        assert engine.attempt_count("ethereum") == 0


# ---------------------------------------------------------------------------
# Fallback tiers
# ---------------------------------------------------------------------------


class TestFallbackTiers:
    def test_ai_only(self, sleeps, registry):
        """Test the AI-only tier with platform focus areas"""
        ai = MagicMock()
        ai.analyze_contract.return_value = AIAnalysisOutcome(
            success=True, vulnerabilities=[_finding(severity="critical")]
        )
        analyzer = ScriptedAnalyzer(errors=[RuntimeError("slither: command not found")])

        outcome = _engine(sleeps, ai_analyzer=ai, registry=registry).analyze_with_fallback(
            analyzer, [_contract()], config=_config()
        )

        assert outcome.strategy == STRATEGY_AI_ONLY
        assert outcome.degradation_level == "partial"
        assert AI_ONLY_WARNING in outcome.result.warnings
        assert len(outcome.result.vulnerabilities) == 1
        contract, focus_areas = ai.analyze_contract.call_args.args
        assert contract.filename == "Vault.sol"
        assert focus_areas == registry.focus_areas("ethereum")

    def test_ai_only_skipped_when_options_disable_ai(self, sleeps, registry):
        """Options can turn the AI tier off for one request."""
        from chainaudit.schemas import AnalysisOptions

        ai = MagicMock()
        engine = _engine(
            sleeps, ai_analyzer=ai, validator=ContractValidator(registry), registry=registry
        )
        outcome = engine.analyze_with_fallback(
            ScriptedAnalyzer(errors=[RuntimeError("not installed")]),
            [_contract()],
            options=AnalysisOptions(enable_ai_analysis=False),
            config=_config(),
        )
        ai.analyze_contract.assert_not_called()
        assert outcome.strategy == STRATEGY_BASIC_VALIDATION

    def test_ai_failure_falls_to_basic_validation(self, sleeps, registry):
        """Test that a failed AI tier falls through to basic validation"""
        ai = MagicMock()
        ai.analyze_contract.return_value = AIAnalysisOutcome(success=False, error="quota")
        code = "contract Vault {}\n"
        engine = _engine(
            sleeps, ai_analyzer=ai, validator=ContractValidator(registry), registry=registry
        )

        outcome = engine.analyze_with_fallback(
            ScriptedAnalyzer(errors=[RuntimeError("not installed")]),
            [_contract(code=code)],
            config=_config(),
        )

        assert outcome.strategy == STRATEGY_BASIC_VALIDATION
        assert outcome.degradation_level == "significant"
        assert BASIC_VALIDATION_WARNING in outcome.result.warnings
        # missing pragma is reported as a low-confidence warning finding
        warning = outcome.result.vulnerabilities[0]
        assert warning.type == "validation-warning"
        assert warning.severity == "low"
        assert warning.confidence < 0.5
        assert [a.strategy for a in outcome.attempts] == [
            STRATEGY_PRIMARY,
            STRATEGY_AI_ONLY,
            STRATEGY_BASIC_VALIDATION,
        ]
        assert outcome.attempts[1].success is False

    def test_cached_results(self, sleeps):
        """Test the cached-results tier after a seeding run"""
        cache = ResultCache(ttl_seconds=60)
        engine = _engine(sleeps, cache=cache)
        contract = _contract()

        # seed the cache through a successful primary run
        engine.analyze_with_fallback(ScriptedAnalyzer(), [contract], config=_config())

        outcome = engine.analyze_with_fallback(
            ScriptedAnalyzer(errors=[RuntimeError("executable not found")]),
            [contract],
            config=_config(enable_ai_fallback=False, enable_basic_validation=False),
        )

        assert outcome.strategy == STRATEGY_CACHED_RESULTS
        assert outcome.degradation_level == "significant"
        assert CACHED_RESULTS_WARNING in outcome.result.warnings
        assert outcome.result.vulnerabilities[0].title == "Reentrancy in withdraw"

    def test_cache_miss_falls_to_minimal(self, sleeps):
        """A cache miss leaves only the minimal tier."""
        engine = _engine(sleeps, cache=ResultCache())
        outcome = engine.analyze_with_fallback(
            ScriptedAnalyzer(errors=[RuntimeError("executable not found")]),
            [_contract()],
            config=_config(enable_ai_fallback=False, enable_basic_validation=False),
        )
        assert outcome.strategy == STRATEGY_MINIMAL
        assert outcome.attempts[-2].strategy == STRATEGY_CACHED_RESULTS
        assert outcome.attempts[-2].success is False

    def test_all_tiers_fail_gives_minimal(self, sleeps, registry):
        """Test the minimal result when every other tier fails"""
        ai = MagicMock()
        ai.analyze_contract.side_effect = RuntimeError("model overloaded")
        cache = ResultCache()

        contracts = [_contract("A.sol"), _contract("B.sol", code="line1\nline2\n")]
        engine = _engine(sleeps, ai_analyzer=ai, cache=cache, registry=registry)
        outcome = engine.analyze_with_fallback(
            ScriptedAnalyzer(errors=[RuntimeError("not installed")]),
            contracts,
            config=_config(enable_basic_validation=False),
        )

        assert outcome.strategy == STRATEGY_MINIMAL
        assert outcome.degradation_level == "minimal"
        assert outcome.success is True
        result = outcome.result
        assert result.vulnerabilities == []
        assert result.warnings == list(MINIMAL_WARNINGS)
        meta = result.platform_specific
        assert meta["contracts_processed"] == 2
        assert meta["total_lines_of_code"] == len(SOLIDITY.splitlines()) + 2
        assert meta["limitations"]
        assert meta["recommendations"]
        assert meta["degradation_level"] == "minimal"
        assert outcome.unavailable_features

    def test_unrecoverable_error_skips_to_minimal(self, sleeps, registry):
        """Test skip_fallback_on_unrecoverable jumping straight to minimal"""
        ai = MagicMock()
        engine = _engine(
            sleeps,
            ai_analyzer=ai,
            validator=ContractValidator(registry),
            cache=ResultCache(),
            registry=registry,
        )
        outcome = engine.analyze_with_fallback(
            ScriptedAnalyzer(
                errors=[create_platform_error(ERROR_KIND_COMPILATION, "ParserError: Expected ';'")]
            ),
            [_contract()],
            config=_config(skip_fallback_on_unrecoverable=True),
        )
        ai.analyze_contract.assert_not_called()
        assert outcome.strategy == STRATEGY_MINIMAL
        assert [a.strategy for a in outcome.attempts] == [STRATEGY_PRIMARY, STRATEGY_MINIMAL]
        assert outcome.original_error.fallback_available is False

    def test_summary_is_serializable(self, sleeps):
        """The summary is plain data for job return values."""
        outcome = _engine(sleeps).analyze_with_fallback(
            ScriptedAnalyzer(errors=[RuntimeError("not installed")]),
            [_contract()],
            config=_config(),
        )
        summary = outcome.summary()
        assert summary["fallback_strategy"] == STRATEGY_MINIMAL
        assert summary["original_error"]["code"] == "TOOL_INSTALLATION_MISSING"
        assert summary["attempts"][0]["strategy"] == STRATEGY_PRIMARY


class TestCacheSeeding:
    def test_primary_success_caches_per_contract_slices(self, sleeps):
        """Test that each contract caches only its own findings"""
        cache = ResultCache()
        engine = _engine(sleeps, cache=cache)
        a, b = _contract("A.sol"), _contract("B.sol")
        analyzer = ScriptedAnalyzer(
            result=AnalysisResult(success=True, vulnerabilities=[_finding("A.sol")])
        )

        engine.analyze_with_fallback(analyzer, [a, b], config=_config())

        assert len(cache.get_for(a).vulnerabilities) == 1
        assert cache.get_for(b).vulnerabilities == []

    def test_cache_result_and_clear(self, sleeps):
        """Test explicit cache seeding and clearing"""
        cache = ResultCache()
        engine = _engine(sleeps, cache=cache)
        engine.cache_result(_contract(), AnalysisResult(success=True))
        assert len(cache) == 1
        engine.clear_cache()
        assert len(cache) == 0
