#!/usr/bin/env python3
"""
chainaudit Exceptions Module

Custom exception classes for the multi-platform analysis engine.
Centralized exception definitions for consistent error handling.

Every failure that crosses the orchestrator / fallback boundary is a
``PlatformError``; raw exceptions from analyzers and tools are turned into
one by ``chainaudit.error_classifier.classify``.
"""

from __future__ import annotations

from typing import Any, Optional

__all__ = [
    "ChainAuditError",
    "PlatformError",
    "RequestValidationError",
    "AccessDeniedError",
    "RunNotFoundError",
    "RunCancelledError",
]


class ChainAuditError(Exception):
    """Base exception for all chainaudit errors"""

    code = "CHAINAUDIT_ERROR"
    status_code = 500


class PlatformError(ChainAuditError):
    """Typed analysis failure with retry and fallback metadata.

    Attributes:
        kind:               Error kind (see ``error_classifier.ERROR_KINDS``).
        code:               Stable error code, e.g. ``TOOL_EXECUTION_TIMEOUT``.
        message:            Human readable message.
        platform:           Owning platform, ``None`` for cross-platform errors.
        platforms:          Platforms involved in a cross-platform error.
        retryable:          Whether retrying the same call may succeed.
        fallback_available: Whether a weaker analysis strategy may still help.
        status_code:        HTTP-equivalent status class.
        context:            Arbitrary structured context.
    """

    def __init__(
        self,
        kind: str,
        code: str,
        message: str,
        platform: Optional[str] = None,
        platforms: Optional[list[str]] = None,
        retryable: bool = False,
        fallback_available: bool = False,
        status_code: int = 500,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.platform = platform
        self.platforms = list(platforms) if platforms else []
        self.retryable = retryable
        self.fallback_available = fallback_available
        self.status_code = status_code
        self.context = dict(context) if context else {}

    def __repr__(self) -> str:
        return (
            f"PlatformError(code={self.code!r}, platform={self.platform!r}, "
            f"retryable={self.retryable}, message={self.message!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (job return values, run records)."""
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "platform": self.platform,
            "platforms": list(self.platforms),
            "retryable": self.retryable,
            "fallback_available": self.fallback_available,
            "status_code": self.status_code,
            "context": dict(self.context),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlatformError":
        return cls(
            kind=data.get("kind", "analyzer_unavailable"),
            code=data.get("code", "ANALYZER_UNAVAILABLE"),
            message=data.get("message", ""),
            platform=data.get("platform"),
            platforms=data.get("platforms") or [],
            retryable=bool(data.get("retryable", False)),
            fallback_available=bool(data.get("fallback_available", False)),
            status_code=int(data.get("status_code", 500)),
            context=data.get("context") or {},
        )


class RequestValidationError(PlatformError):
    """Raised when a submitted analysis request has a bad shape"""

    def __init__(self, errors: list[str], platform: Optional[str] = None) -> None:
        message = "Invalid analysis request: " + "; ".join(errors)
        super().__init__(
            kind="validation_failure",
            code="VALIDATION_FAILED",
            message=message,
            platform=platform,
            status_code=400,
            context={"errors": list(errors)},
        )
        self.errors = list(errors)


class AccessDeniedError(ChainAuditError):
    """Raised when a caller touches a run owned by someone else"""

    code = "ACCESS_DENIED"
    status_code = 403


class RunNotFoundError(ChainAuditError):
    """Raised when a run id is unknown"""

    code = "RUN_NOT_FOUND"
    status_code = 404


class RunCancelledError(ChainAuditError):
    """Raised inside a run's polling loop once the run was cancelled"""

    code = "RUN_CANCELLED"
    status_code = 409
