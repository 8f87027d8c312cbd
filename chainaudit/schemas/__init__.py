"""
Pydantic schemas for chainaudit

Typed models for data crossing component boundaries: the submitted request,
per-platform analysis results and the cross-platform report.  Job payloads
and return values are the ``model_dump(mode="json")`` form of these models.
"""

from .analysis import (
    SEVERITY_LEVELS,
    SEVERITY_RANK,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    ContractInput,
    SourceLocation,
    Vulnerability,
    meets_threshold,
)
from .cross_platform import (
    BridgeSecurityResult,
    ConsistencyIssue,
    CrossChainRecommendation,
    CrossPlatformResult,
    InteroperabilityRisk,
    SecurityAssessment,
    StateConsistencyResult,
)

__all__ = [
    # Request
    "AnalysisOptions",
    "AnalysisRequest",
    "ContractInput",
    # Per-platform results
    "AnalysisResult",
    "SourceLocation",
    "Vulnerability",
    "SEVERITY_LEVELS",
    "SEVERITY_RANK",
    "meets_threshold",
    # Cross-platform report
    "BridgeSecurityResult",
    "ConsistencyIssue",
    "CrossChainRecommendation",
    "CrossPlatformResult",
    "InteroperabilityRisk",
    "SecurityAssessment",
    "StateConsistencyResult",
]
