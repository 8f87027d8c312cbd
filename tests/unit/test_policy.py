"""Tests for the continue-vs-abort policy and recovery suggestions."""

import pytest

from chainaudit.error_classifier import (
    ERROR_KIND_ANALYZER_UNAVAILABLE,
    ERROR_KIND_COMPILATION,
    ERROR_KIND_TOOL_MISSING,
    ERROR_KIND_TOOL_TIMEOUT,
    TOOL_INSTALL_HINTS,
    classify,
    create_platform_error,
)
from chainaudit.orchestrator.config import OrchestratorSettings
from chainaudit.orchestrator.policy import (
    FALLBACK_SUGGESTION,
    GENERIC_SUGGESTIONS,
    RETRY_SUGGESTION,
    ContinuePolicy,
    recovery_suggestions,
)
from chainaudit.platform_registry import PlatformRegistry


def _error(kind, platform="ethereum"):
    return create_platform_error(kind, "boom", platform=platform)


class TestContinuePolicy:
    def test_multi_platform_run_continues(self):
        """Test that a multi-platform run continues by default"""
        policy = ContinuePolicy()
        assert policy.should_continue(_error(ERROR_KIND_COMPILATION), platforms_in_run=2)

    def test_single_platform_permanent_failure_aborts(self):
        """Test that a permanent failure aborts a single-platform run"""
        policy = ContinuePolicy()
        assert not policy.should_continue(_error(ERROR_KIND_COMPILATION), platforms_in_run=1)

    def test_recoverable_failure_continues(self):
        """A recoverable failure continues a multi-platform run when the broad switch is off."""
        policy = ContinuePolicy(continue_on_multi_platform_failure=False)
        assert policy.should_continue(_error(ERROR_KIND_ANALYZER_UNAVAILABLE), platforms_in_run=3)

    @pytest.mark.parametrize("kind", [ERROR_KIND_TOOL_TIMEOUT, ERROR_KIND_ANALYZER_UNAVAILABLE])
    def test_single_platform_recoverable_failure_aborts(self, kind):
        """Single-platform runs abort whatever the switches say."""
        assert not ContinuePolicy().should_continue(_error(kind), platforms_in_run=1)
        assert not ContinuePolicy(False, True).should_continue(_error(kind), platforms_in_run=1)

    def test_tool_missing_is_not_recoverable(self):
        """Test that a missing tool does not count as recoverable"""
        # fallback available but not retryable
        policy = ContinuePolicy(continue_on_multi_platform_failure=False)
        assert not policy.should_continue(_error(ERROR_KIND_TOOL_MISSING), platforms_in_run=3)

    def test_everything_disabled_aborts(self):
        """Test that disabling both switches always aborts"""
        policy = ContinuePolicy(False, False)
        assert not policy.should_continue(_error(ERROR_KIND_TOOL_TIMEOUT), platforms_in_run=5)

    def test_settings_build_policy(self):
        """Test policy and settings built from config"""
        settings = OrchestratorSettings.from_config(
            {"continue_on_multi_platform_failure": False, "platform_job_concurrency": "4"}
        )
        assert settings.platform_job_concurrency == 4
        assert settings.policy == ContinuePolicy(False, True)
        assert settings.progress_retention_seconds == 24 * 3600


class TestRecoverySuggestions:
    def test_retryable_with_fallback(self):
        """Test suggestions for a retryable error with fallback"""
        suggestions = recovery_suggestions(_error(ERROR_KIND_TOOL_TIMEOUT))
        assert suggestions == [RETRY_SUGGESTION, FALLBACK_SUGGESTION]

    def test_platform_hints_from_registry(self):
        """Platform errors pick their hints from the registry."""
        registry = PlatformRegistry()
        suggestions = recovery_suggestions(_error(ERROR_KIND_COMPILATION, "solana"), registry)
        assert suggestions == registry.recovery_hints("solana")

    def test_install_hint(self):
        """Test the install hint for a missing tool"""
        error = classify(RuntimeError("slither: command not found"), "ethereum")
        suggestions = recovery_suggestions(error)
        assert suggestions[0] == FALLBACK_SUGGESTION
        assert suggestions[-1] == TOOL_INSTALL_HINTS["slither"]

    def test_tool_without_hint(self):
        """Test the generic tool suggestion when no install hint is known"""
        error = _error(ERROR_KIND_COMPILATION)
        error.context["tool"] = "solc"
        assert recovery_suggestions(error) == ["Check solc installation and configuration"]

    def test_generic_fallback(self):
        """Errors without a platform get the generic suggestions."""
        assert recovery_suggestions(_error(ERROR_KIND_COMPILATION, None)) == list(GENERIC_SUGGESTIONS)

    @pytest.mark.parametrize("platforms", [["ethereum", "solana"]])
    def test_cross_platform_error_collects_hints(self, platforms):
        """Test that a cross-platform error collects hints of every platform"""
        registry = PlatformRegistry()
        error = create_platform_error("cross_platform_failure", "all failed", platforms=platforms)
        suggestions = recovery_suggestions(error, registry)
        for platform in platforms:
            for hint in registry.recovery_hints(platform):
                assert hint in suggestions
