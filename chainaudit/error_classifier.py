#!/usr/bin/env python3
"""
Error Classification for the multi-platform analysis engine.

Turns arbitrary analyzer, tool and queue failures into a typed
``PlatformError``.  Kinds and their defaults:

- compilation_failure:       422, NOT retryable, no fallback
- tool_missing:              503, NOT retryable, fallback available
- tool_version_incompatible: 503, NOT retryable, fallback available
- tool_timeout:              504, retryable, fallback available
- validation_failure:        400, NOT retryable, no fallback
- analyzer_unavailable:      503, retryable, fallback available (fail-safe default)
- cross_platform_failure:    422, NOT retryable, no fallback
- platform_not_supported:    400, NOT retryable, no fallback

Usage:
    from chainaudit.error_classifier import classify, is_retryable_error

    try:
        analyzer.analyze(contracts)
    except Exception as exc:
        error = classify(exc, platform="ethereum")
        if error.retryable:
            ...

Classification is pure; callers are responsible for logging.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from chainaudit.exceptions import PlatformError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Error kind constants
# ---------------------------------------------------------------------------

ERROR_KIND_COMPILATION = "compilation_failure"
ERROR_KIND_TOOL_MISSING = "tool_missing"
ERROR_KIND_TOOL_VERSION = "tool_version_incompatible"
ERROR_KIND_TOOL_TIMEOUT = "tool_timeout"
ERROR_KIND_VALIDATION = "validation_failure"
ERROR_KIND_ANALYZER_UNAVAILABLE = "analyzer_unavailable"
ERROR_KIND_CROSS_PLATFORM = "cross_platform_failure"
ERROR_KIND_PLATFORM_NOT_SUPPORTED = "platform_not_supported"


@dataclass(frozen=True)
class ErrorKind:
    """Static defaults attached to every error of a given kind."""

    code: str
    status_code: int
    retryable: bool
    fallback_available: bool


ERROR_KINDS: dict[str, ErrorKind] = {
    ERROR_KIND_COMPILATION: ErrorKind("COMPILATION_FAILED", 422, False, False),
    ERROR_KIND_TOOL_MISSING: ErrorKind("TOOL_INSTALLATION_MISSING", 503, False, True),
    ERROR_KIND_TOOL_VERSION: ErrorKind("TOOL_VERSION_INCOMPATIBLE", 503, False, True),
    ERROR_KIND_TOOL_TIMEOUT: ErrorKind("TOOL_EXECUTION_TIMEOUT", 504, True, True),
    ERROR_KIND_VALIDATION: ErrorKind("VALIDATION_FAILED", 400, False, False),
    ERROR_KIND_ANALYZER_UNAVAILABLE: ErrorKind("ANALYZER_UNAVAILABLE", 503, True, True),
    ERROR_KIND_CROSS_PLATFORM: ErrorKind("CROSS_PLATFORM_ANALYSIS_FAILED", 422, False, False),
    ERROR_KIND_PLATFORM_NOT_SUPPORTED: ErrorKind("PLATFORM_NOT_SUPPORTED", 400, False, False),
}

# ---------------------------------------------------------------------------
# Pattern registries for error classification
# ---------------------------------------------------------------------------

TOOL_VERSION_PATTERNS: list[str] = [
    "version mismatch",
    "incompatible version",
    "unsupported version",
    "requires version",
    "version not supported",
    "requires different compiler version",
    "invalid compiler version",
]

COMPILATION_PATTERNS: list[str] = [
    "compilation failed",
    "compilation error",
    "compile error",
    "failed to compile",
    "could not compile",
    "syntax error",
    "syntaxerror",
    "parsererror",
    "parse error",
    "unexpected token",
    "expected ';'",
]

TOOL_MISSING_PATTERNS: list[str] = [
    "command not found",
    "not installed",
    "no such file or directory",
    "enoent",
    "is not recognized as",
    "executable not found",
    "not found in path",
]

TOOL_TIMEOUT_PATTERNS: list[str] = [
    "timed out",
    "timeout",
    "etimedout",
    "deadline exceeded",
]

PLATFORM_NOT_SUPPORTED_PATTERNS: list[str] = [
    "unsupported platform",
    "unknown platform",
    "platform not supported",
    "no analyzer registered",
]

CROSS_PLATFORM_PATTERNS: list[str] = [
    "cross-platform",
    "cross platform",
    "cross-chain",
    "cross chain",
]

VALIDATION_PATTERNS: list[str] = [
    "validation failed",
    "invalid contract",
    "invalid input",
    "empty contract",
    "contract code is empty",
]

ANALYZER_UNAVAILABLE_PATTERNS: list[str] = [
    "service unavailable",
    "temporarily unavailable",
    "econnreset",
    "econnrefused",
    "connection refused",
    "connection reset",
    "analyzer unavailable",
    "health check failed",
    "503",
]

# Ordered list for classification priority: more specific patterns first
_PATTERN_REGISTRY: list[tuple[str, list[str]]] = [
    (ERROR_KIND_TOOL_VERSION, TOOL_VERSION_PATTERNS),
    (ERROR_KIND_COMPILATION, COMPILATION_PATTERNS),
    (ERROR_KIND_TOOL_MISSING, TOOL_MISSING_PATTERNS),
    (ERROR_KIND_TOOL_TIMEOUT, TOOL_TIMEOUT_PATTERNS),
    (ERROR_KIND_PLATFORM_NOT_SUPPORTED, PLATFORM_NOT_SUPPORTED_PATTERNS),
    (ERROR_KIND_CROSS_PLATFORM, CROSS_PLATFORM_PATTERNS),
    (ERROR_KIND_VALIDATION, VALIDATION_PATTERNS),
    (ERROR_KIND_ANALYZER_UNAVAILABLE, ANALYZER_UNAVAILABLE_PATTERNS),
]

# ---------------------------------------------------------------------------
# Tool installation hints
# ---------------------------------------------------------------------------

TOOL_INSTALL_HINTS: dict[str, str] = {
    "slither": "Install Slither: pip install slither-analyzer",
    "solc": "Install solc: pip install solc-select && solc-select install latest",
    "clippy": "Install Clippy: rustup component add clippy",
    "anchor": "Install Anchor: cargo install --git https://github.com/coral-xyz/anchor avm",
    "rustc": "Install Rust: https://rustup.rs",
    "cabal": "Install the Haskell toolchain: https://www.haskell.org/ghcup/",
    "aptos": "Install the Aptos CLI: https://aptos.dev/tools/aptos-cli/",
}


def _detect_tool(text: str) -> Optional[str]:
    for tool in TOOL_INSTALL_HINTS:
        if tool in text:
            return tool
    return None


# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------


def create_platform_error(
    kind: str,
    message: str,
    platform: Optional[str] = None,
    platforms: Optional[Iterable[str]] = None,
    context: Optional[dict[str, Any]] = None,
) -> PlatformError:
    """Build a ``PlatformError`` carrying the static defaults of *kind*.

    Raises
    ------
    ValueError
        If *kind* is not a known error kind.
    """
    try:
        info = ERROR_KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown error kind: {kind!r}") from None

    return PlatformError(
        kind=kind,
        code=info.code,
        message=message,
        platform=platform,
        platforms=list(platforms) if platforms else None,
        retryable=info.retryable,
        fallback_available=info.fallback_available,
        status_code=info.status_code,
        context=context,
    )


# ---------------------------------------------------------------------------
# Classification function
# ---------------------------------------------------------------------------


def classify(
    error: Any,
    platform: Optional[str] = None,
    platforms: Optional[Iterable[str]] = None,
) -> PlatformError:
    """Classify an arbitrary failure into a ``PlatformError``.

    The error message (and class name) are matched against known patterns
    in priority order.  If no pattern matches the error is classified as
    ``analyzer_unavailable`` (retryable) as a fail-safe default.

    Parameters
    ----------
    error:
        An exception, a plain message string, or an existing ``PlatformError``
        (returned as-is, with *platform* filled in when it was missing).
    platform:
        Platform the failure belongs to.
    platforms:
        Platforms involved, for cross-platform failures.

    Returns
    -------
    PlatformError
        The classified error.
    """
    if isinstance(error, PlatformError):
        if error.platform is None and platform is not None:
            error.platform = platform
        return error

    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        error_class = type(error).__name__
    else:
        message = str(error)
        error_class = ""

    combined = f"{error_class.lower()} {message.lower()}"
    context: dict[str, Any] = {"original_message": message}
    if error_class:
        context["error_class"] = error_class

    tool = _detect_tool(combined)
    if tool is not None:
        context["tool"] = tool

    kind = _match_kind(combined)
    if kind is None:
        if isinstance(error, TimeoutError):
            kind = ERROR_KIND_TOOL_TIMEOUT
        else:
            kind = ERROR_KIND_ANALYZER_UNAVAILABLE

    if kind == ERROR_KIND_TOOL_MISSING and tool is not None:
        context["install_hint"] = TOOL_INSTALL_HINTS[tool]

    return create_platform_error(
        kind,
        message,
        platform=platform,
        platforms=platforms,
        context=context,
    )


def _match_kind(combined: str) -> Optional[str]:
    for kind, patterns in _PATTERN_REGISTRY:
        for pattern in patterns:
            if pattern in combined:
                return kind
    return None


# ---------------------------------------------------------------------------
# Retry helpers
# ---------------------------------------------------------------------------


def is_retryable_error(error: Any, platform: Optional[str] = None) -> bool:
    """Check if an error should be retried based on classification."""
    return classify(error, platform).retryable


def get_retry_delay(attempt: int, base_delay: float = 1.0) -> float:
    """Exponential backoff delay: ``base_delay * 2 ** (attempt - 1)``.

    *attempt* is 1-based; values below 1 are treated as 1.
    """
    return base_delay * (2 ** (max(attempt, 1) - 1))


def classified_retry_predicate(
    platform: Optional[str] = None,
) -> Callable[[BaseException], bool]:
    """Return a predicate suitable for tenacity's ``retry_if_exception``.

    Example
    -------
    ::

        from tenacity import Retrying, retry_if_exception, stop_after_attempt

        for attempt in Retrying(
            retry=retry_if_exception(classified_retry_predicate("solana")),
            stop=stop_after_attempt(3),
        ):
            with attempt:
                analyzer.analyze(contracts)
    """

    def _predicate(exc: BaseException) -> bool:
        return classify(exc, platform).retryable

    return _predicate


__all__ = [
    "ERROR_KIND_ANALYZER_UNAVAILABLE",
    "ERROR_KIND_COMPILATION",
    "ERROR_KIND_CROSS_PLATFORM",
    "ERROR_KIND_PLATFORM_NOT_SUPPORTED",
    "ERROR_KIND_TOOL_MISSING",
    "ERROR_KIND_TOOL_TIMEOUT",
    "ERROR_KIND_TOOL_VERSION",
    "ERROR_KIND_VALIDATION",
    "ERROR_KINDS",
    "ErrorKind",
    "TOOL_INSTALL_HINTS",
    "classified_retry_predicate",
    "classify",
    "create_platform_error",
    "get_retry_delay",
    "is_retryable_error",
]
