"""
Orchestrator settings.

Typed view over the flat configuration dict for everything the run
orchestrator needs: worker concurrency per job type, the stagger between
platform sub-jobs, poll intervals and wait ceilings, progress retention, and
the continue-vs-abort switches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from chainaudit.orchestrator.policy import ContinuePolicy


@dataclass
class OrchestratorSettings:
    run_job_concurrency: int = 1
    platform_job_concurrency: int = 3
    cross_platform_job_concurrency: int = 1
    platform_job_stagger: float = 1.0
    platform_poll_interval: float = 2.0
    platform_wait_timeout: float = 600.0
    cross_platform_poll_interval: float = 1.0
    cross_platform_wait_timeout: float = 300.0
    progress_retention_hours: float = 24.0
    continue_on_multi_platform_failure: bool = True
    continue_on_recoverable_failure: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "OrchestratorSettings":
        defaults = cls()
        values = {}
        for name, default in vars(defaults).items():
            raw = config.get(name, default)
            values[name] = type(default)(raw)
        return cls(**values)

    @property
    def progress_retention_seconds(self) -> float:
        return self.progress_retention_hours * 3600.0

    @property
    def policy(self) -> ContinuePolicy:
        return ContinuePolicy(
            continue_on_multi_platform_failure=self.continue_on_multi_platform_failure,
            continue_on_recoverable_failure=self.continue_on_recoverable_failure,
        )
