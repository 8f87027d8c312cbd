"""Run orchestration: fan-out/fan-in of platform jobs, progress and policy."""

from chainaudit.orchestrator.config import OrchestratorSettings
from chainaudit.orchestrator.factory import build_orchestrator
from chainaudit.orchestrator.policy import ContinuePolicy, recovery_suggestions
from chainaudit.orchestrator.progress import (
    ProgressTracker,
    RunProgress,
    platform_band_progress,
    reconstruct_progress,
)
from chainaudit.orchestrator.run_orchestrator import MultiPlatformOrchestrator

__all__ = [
    "ContinuePolicy",
    "MultiPlatformOrchestrator",
    "OrchestratorSettings",
    "ProgressTracker",
    "RunProgress",
    "build_orchestrator",
    "platform_band_progress",
    "reconstruct_progress",
    "recovery_suggestions",
]
