"""
Continue-vs-abort policy and recovery suggestions.

A single-platform run aborts as soon as its only platform fails.  In a
multi-platform run the orchestrator keeps going with the other platforms
when either

    (a) continuing past platform failures is enabled (the run has
        completed + failed + pending > 1 platforms), or
    (b) the failure is both retryable and fallback-available.

Both switches are configurable; with both disabled every platform failure
aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from chainaudit.exceptions import PlatformError
from chainaudit.platform_registry import PlatformRegistry

logger = logging.getLogger(__name__)

RETRY_SUGGESTION = "This error is temporary - you can retry the analysis"
FALLBACK_SUGGESTION = "Alternative analysis methods are available"
GENERIC_SUGGESTIONS = (
    "Check system requirements and tool installations",
    "Contact support if the issue persists",
)


@dataclass(frozen=True)
class ContinuePolicy:
    continue_on_multi_platform_failure: bool = True
    continue_on_recoverable_failure: bool = True

    def should_continue(self, error: PlatformError, platforms_in_run: int) -> bool:
        """Decide whether the run survives *error*.

        Parameters
        ----------
        error:
            The classified failure of one platform sub-job.
        platforms_in_run:
            completed + failed + pending platform count for the run.
        """
        if platforms_in_run <= 1:
            return False
        if self.continue_on_multi_platform_failure:
            return True
        if (
            self.continue_on_recoverable_failure
            and error.retryable
            and error.fallback_available
        ):
            return True
        return False


def recovery_suggestions(
    error: PlatformError,
    registry: Optional[PlatformRegistry] = None,
) -> List[str]:
    """Human-readable next steps for a terminal failure.

    Order: retry guidance, fallback note, platform hints, tool hint; the
    generic pair is used only when nothing more specific applies.
    """
    suggestions: List[str] = []

    if error.retryable:
        suggestions.append(RETRY_SUGGESTION)
    if error.fallback_available:
        suggestions.append(FALLBACK_SUGGESTION)

    if registry is not None:
        platforms = [error.platform] if error.platform else list(error.platforms)
        for platform in platforms:
            for hint in registry.recovery_hints(platform):
                if hint not in suggestions:
                    suggestions.append(hint)

    install_hint = error.context.get("install_hint")
    tool = error.context.get("tool")
    if install_hint:
        suggestions.append(install_hint)
    elif tool:
        suggestions.append(f"Check {tool} installation and configuration")

    if not suggestions:
        suggestions.extend(GENERIC_SUGGESTIONS)
    return suggestions


__all__ = [
    "ContinuePolicy",
    "FALLBACK_SUGGESTION",
    "GENERIC_SUGGESTIONS",
    "RETRY_SUGGESTION",
    "recovery_suggestions",
]
