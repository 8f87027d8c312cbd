"""
chainaudit - multi-platform smart-contract analysis orchestration.

Classifies analyzer failures, degrades gracefully through a fallback ladder,
fans analysis out per platform on a job queue, and aggregates cross-platform
risk for runs that span several chains.
"""

__version__ = "0.4.0"

from chainaudit.analyzers import AnalyzerRegistry, FunctionAnalyzer
from chainaudit.config_loader import build_unified_config
from chainaudit.cross_platform import CrossPlatformAggregator
from chainaudit.error_classifier import classify
from chainaudit.exceptions import (
    AccessDeniedError,
    ChainAuditError,
    PlatformError,
    RequestValidationError,
    RunCancelledError,
    RunNotFoundError,
)
from chainaudit.fallback_engine import FallbackConfig, FallbackEngine
from chainaudit.orchestrator import MultiPlatformOrchestrator, build_orchestrator
from chainaudit.platform_registry import PlatformRegistry

__all__ = [
    "__version__",
    "AccessDeniedError",
    "AnalyzerRegistry",
    "ChainAuditError",
    "CrossPlatformAggregator",
    "FallbackConfig",
    "FallbackEngine",
    "FunctionAnalyzer",
    "MultiPlatformOrchestrator",
    "PlatformError",
    "PlatformRegistry",
    "RequestValidationError",
    "RunCancelledError",
    "RunNotFoundError",
    "build_orchestrator",
    "build_unified_config",
    "classify",
]
