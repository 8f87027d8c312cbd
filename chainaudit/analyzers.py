"""
Platform Analyzer Protocol - the interface every per-platform analyzer meets.

Concrete analyzers (Slither, Clippy, Plutus tooling adapters, ...) live
outside this package; they are registered per platform on an
``AnalyzerRegistry`` that the orchestrator consults when a platform sub-job
runs.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from chainaudit.schemas import AnalysisResult, ContractInput, Vulnerability


@runtime_checkable
class PlatformAnalyzer(Protocol):
    """Protocol that every platform analyzer must implement.

    ``analyze`` may raise any exception; failures are classified by the
    fallback engine, never by the analyzer itself.

    Example
    -------
    ::

        class SlitherAnalyzer:
            platform = "ethereum"

            def analyze(self, contracts):
                ...
                return AnalysisResult(success=True, vulnerabilities=findings)
    """

    @property
    def platform(self) -> str:
        ...

    def analyze(self, contracts: Sequence[ContractInput]) -> AnalysisResult:
        ...


@runtime_checkable
class AIAnalyzer(Protocol):
    """The AI-analysis collaborator used by the AI-only fallback tier."""

    def analyze_contract(
        self, contract: ContractInput, focus_areas: Sequence[str]
    ) -> "AIAnalysisOutcome":
        ...


@dataclass
class AIAnalysisOutcome:
    """``{success, vulnerabilities?, error?}`` returned by an AI analyzer."""

    success: bool
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    error: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"AIAnalysisOutcome(success={self.success}, "
            f"vulnerabilities={len(self.vulnerabilities)}, error={self.error!r})"
        )


class FunctionAnalyzer:
    """Adapt a plain ``analyze(contracts)`` callable to ``PlatformAnalyzer``."""

    def __init__(
        self,
        platform: str,
        func: Callable[[Sequence[ContractInput]], AnalysisResult],
    ) -> None:
        self._platform = platform
        self._func = func

    @property
    def platform(self) -> str:
        return self._platform

    def analyze(self, contracts: Sequence[ContractInput]) -> AnalysisResult:
        return self._func(contracts)


class AnalyzerRegistry:
    """Per-platform analyzer lookup shared by platform sub-jobs."""

    def __init__(self, analyzers: Optional[Dict[str, PlatformAnalyzer]] = None) -> None:
        self._lock = threading.Lock()
        self._analyzers: Dict[str, PlatformAnalyzer] = dict(analyzers or {})

    def register(self, analyzer: PlatformAnalyzer, platform: Optional[str] = None) -> None:
        key = platform or analyzer.platform
        with self._lock:
            self._analyzers[key] = analyzer

    def unregister(self, platform: str) -> None:
        with self._lock:
            self._analyzers.pop(platform, None)

    def get(self, platform: str) -> Optional[PlatformAnalyzer]:
        with self._lock:
            return self._analyzers.get(platform)

    def platforms(self) -> List[str]:
        with self._lock:
            return sorted(self._analyzers)


__all__ = [
    "AIAnalysisOutcome",
    "AIAnalyzer",
    "AnalyzerRegistry",
    "FunctionAnalyzer",
    "PlatformAnalyzer",
]
