"""
Analysis Schemas - Typed models for per-platform analysis input and output.

Hierarchy:
    ContractInput     - one contract tagged with its platform
    AnalysisOptions   - static/AI toggles and severity threshold
    AnalysisRequest   - immutable submission (platforms + contracts + options)
    SourceLocation    - file/line/column of a finding
    Vulnerability     - platform-scoped finding
    AnalysisResult    - output of one platform's analysis
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

SEVERITY_LEVELS = ("critical", "high", "medium", "low", "informational")

# Higher rank = more severe
SEVERITY_RANK: Dict[str, int] = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
    "informational": 0,
}


def _normalize_severity(v: str) -> str:
    value = (v or "").strip().lower()
    if value == "info":
        value = "informational"
    if value not in SEVERITY_RANK:
        raise ValueError(f"severity must be one of {SEVERITY_LEVELS}, got '{v}'")
    return value


def meets_threshold(severity: str, threshold: str) -> bool:
    """True when *severity* is at least as severe as *threshold*."""
    return SEVERITY_RANK.get(severity, 0) >= SEVERITY_RANK.get(threshold, 0)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ContractInput(BaseModel):
    """A single contract source file tagged with its platform."""

    platform: str
    code: str
    filename: str

    model_config = {"frozen": True}

    @field_validator("platform")
    @classmethod
    def normalize_platform(cls, v: str) -> str:
        return v.strip().lower()


class AnalysisOptions(BaseModel):
    """Per-run analysis toggles shared by every platform sub-job."""

    enable_static_analysis: bool = True
    enable_ai_analysis: bool = True
    severity_threshold: str = "informational"

    model_config = {"frozen": True}

    @field_validator("severity_threshold")
    @classmethod
    def validate_threshold(cls, v: str) -> str:
        return _normalize_severity(v)


class AnalysisRequest(BaseModel):
    """Immutable multi-platform submission.

    Shape only; the platform registry checks (known / active platforms,
    contract tags) live in ``contract_validator.validate_request`` so that
    every problem is reported at once.
    """

    platforms: List[str]
    contracts: List[ContractInput]
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)
    cross_platform_analysis: bool = False
    name: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("platforms")
    @classmethod
    def normalize_platforms(cls, v: List[str]) -> List[str]:
        """Lower-case and de-duplicate while keeping submission order."""
        seen: List[str] = []
        for platform in v:
            key = platform.strip().lower()
            if key and key not in seen:
                seen.append(key)
        return seen

    def contracts_by_platform(self) -> Dict[str, List[ContractInput]]:
        """Group contracts by platform tag, in requested-platform order."""
        groups: Dict[str, List[ContractInput]] = {p: [] for p in self.platforms}
        for contract in self.contracts:
            groups.setdefault(contract.platform, []).append(contract)
        return {p: group for p, group in groups.items() if group}


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class SourceLocation(BaseModel):
    file: str
    line: int = Field(default=1, ge=0)
    column: int = Field(default=1, ge=0)


class Vulnerability(BaseModel):
    """Platform-scoped security finding.

    The ``extra = "allow"`` policy lets analyzers attach tool-specific keys
    (detector ids, SWC references) without schema changes.
    """

    type: str
    severity: str
    title: str
    description: str = ""
    location: SourceLocation
    recommendation: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    source: Literal["static", "ai", "combined"] = "static"
    platform: str

    model_config = {"extra": "allow"}

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        """Ensure severity is one of the recognised levels."""
        return _normalize_severity(v)


class AnalysisResult(BaseModel):
    """Output of one platform's analysis.

    ``platform_specific`` carries analyzer metadata; results produced by the
    fallback ladder record ``fallback_strategy`` and ``degradation_level``
    there.
    """

    success: bool
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    execution_time: float = 0.0
    platform_specific: Optional[Dict[str, Any]] = None

    def findings_by_severity(self) -> Dict[str, int]:
        """Return a dict counting findings per severity level."""
        counts: Dict[str, int] = {}
        for v in self.vulnerabilities:
            counts[v.severity] = counts.get(v.severity, 0) + 1
        return counts

    def critical_findings(self) -> List[Vulnerability]:
        return [v for v in self.vulnerabilities if v.severity == "critical"]
