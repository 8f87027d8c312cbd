"""
Cross-Platform Schemas - read-only outputs of the cross-platform aggregator.

They are never persisted on their own; a ``CrossPlatformResult`` is always
stored as part of the owning run.
"""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field, field_validator

from .analysis import Vulnerability, _normalize_severity


class SecurityAssessment(BaseModel):
    """Score of one bridge sub-dimension (100 = no matched findings)."""

    score: int = Field(ge=0, le=100)
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class BridgeSecurityResult(BaseModel):
    locking_mechanism: SecurityAssessment
    message_passing: SecurityAssessment
    validator_set: SecurityAssessment
    overall_score: int = Field(ge=0, le=100)
    bridge_platforms: List[str] = Field(default_factory=list)


class ConsistencyIssue(BaseModel):
    """A state/storage finding type present on one platform but not another."""

    type: str
    description: str
    platforms: List[str]
    severity: str = "medium"
    risk: float = Field(ge=0.0, le=1.0)

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        return _normalize_severity(v)


class StateConsistencyResult(BaseModel):
    consistency_issues: List[ConsistencyIssue] = Field(default_factory=list)
    potential_inconsistencies: List[ConsistencyIssue] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class InteroperabilityRisk(BaseModel):
    type: str
    severity: str
    description: str
    affected_platforms: List[str]
    mitigation: str

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        return _normalize_severity(v)


class CrossChainRecommendation(BaseModel):
    category: str
    priority: Literal["high", "medium", "low"]
    title: str
    description: str
    platforms: List[str] = Field(default_factory=list)


class CrossPlatformResult(BaseModel):
    """Top-level envelope of the cross-platform aggregation."""

    analyzed_platforms: List[str] = Field(default_factory=list)
    bridge_security: BridgeSecurityResult
    state_consistency: StateConsistencyResult
    interoperability_risks: List[InteroperabilityRisk] = Field(default_factory=list)
    recommendations: List[CrossChainRecommendation] = Field(default_factory=list)
