"""
Cross-Platform Aggregator

Combines the successful per-platform results of a run into one
``CrossPlatformResult``:

1. Bridge security - scores locking, message passing and validator set for
   platforms that report bridge-related findings.
2. State consistency - compares state/storage finding types pairwise.
3. Interoperability risks - pair rules on transaction models plus risks that
   apply to any multi-platform deployment.
4. Recommendations - derived from the risks and the critical findings.

With an AI advisor attached, its risks are merged into (3) before sorting and
its recommendations into (4).

Each analysis degrades independently: a failure inside one of them is logged
and replaced by its empty form so ``aggregate`` never raises.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, TypeVar

from pydantic import ValidationError

from chainaudit.cross_platform.rules import (
    BRIDGE_DIMENSIONS,
    BRIDGE_KEYWORDS,
    CONSISTENCY_RECOMMENDATIONS,
    DIMENSION_KEYWORDS,
    DIMENSION_RECOMMENDATIONS,
    GENERAL_RECOMMENDATIONS,
    GOVERNANCE_KEYWORDS,
    GOVERNANCE_RISK,
    PRIORITY_WEIGHTS,
    SEVERITY_WEIGHTS,
    STATE_KEYWORDS,
    UNIVERSAL_RISKS,
    AggregatorSettings,
)
from chainaudit.schemas.analysis import AnalysisResult, Vulnerability
from chainaudit.schemas.cross_platform import (
    BridgeSecurityResult,
    ConsistencyIssue,
    CrossChainRecommendation,
    CrossPlatformResult,
    InteroperabilityRisk,
    SecurityAssessment,
    StateConsistencyResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _text_of(vuln: Vulnerability) -> str:
    return f"{vuln.type} {vuln.title} {vuln.description}".lower()


def _matches(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _empty_assessment() -> SecurityAssessment:
    return SecurityAssessment(score=0)


def _empty_bridge() -> BridgeSecurityResult:
    return BridgeSecurityResult(
        locking_mechanism=_empty_assessment(),
        message_passing=_empty_assessment(),
        validator_set=_empty_assessment(),
        overall_score=0,
    )


def _by_severity(risks: List[InteroperabilityRisk]) -> List[InteroperabilityRisk]:
    # sorted() is stable, so equal severities keep insertion order
    return sorted(risks, key=lambda r: SEVERITY_WEIGHTS.get(r.severity, 0), reverse=True)


def _by_priority(
    recommendations: List[CrossChainRecommendation],
) -> List[CrossChainRecommendation]:
    return sorted(recommendations, key=lambda r: PRIORITY_WEIGHTS.get(r.priority, 0), reverse=True)


class CrossPlatformAdvisor(Protocol):
    """Optional AI collaborator adding risks and recommendations."""

    def identify_risks(self, results: Mapping[str, AnalysisResult]) -> List[InteroperabilityRisk]:
        ...

    def recommend(
        self,
        results: Mapping[str, AnalysisResult],
        risks: Sequence[InteroperabilityRisk],
    ) -> List[CrossChainRecommendation]:
        ...


class CrossPlatformAggregator:
    """Aggregate per-platform analysis results into cross-platform findings.

    Parameters
    ----------
    platform_models:
        Mapping of platform id to transaction model, usually
        ``PlatformRegistry.transaction_models()``.  Platforms missing from
        the map produce no pair risks.
    settings:
        Penalties and risk weights; defaults match ``profiles/default.yml``.
    ai_advisor:
        Optional LLM collaborator.  Its output is best effort: a failure
        only drops the AI risks or recommendations.
    """

    def __init__(
        self,
        platform_models: Optional[Mapping[str, str]] = None,
        settings: Optional[AggregatorSettings] = None,
        ai_advisor: Optional[CrossPlatformAdvisor] = None,
    ) -> None:
        self.settings = settings or AggregatorSettings()
        models = dict(self.settings.platform_models)
        models.update(platform_models or {})
        self.platform_models: Dict[str, str] = models
        self.ai_advisor = ai_advisor

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def aggregate(self, platform_results: Mapping[str, Any]) -> CrossPlatformResult:
        """Aggregate results keyed by platform id.

        Values may be ``AnalysisResult`` instances or their dict form.
        Only results with ``success=True`` contribute.
        """
        results = self._successful(platform_results)
        platforms = list(results)
        logger.info("Aggregating cross-platform results for %s", platforms)
        use_ai = self.ai_advisor is not None and len(platforms) >= 2

        bridge = self._safely("bridge security", self.analyze_bridge_security, _empty_bridge, results)
        consistency = self._safely(
            "state consistency", self.analyze_state_consistency, StateConsistencyResult, results
        )
        risks = self._safely("interoperability", self.assess_interoperability_risks, list, results)
        if use_ai:
            ai_risks = self._safely("AI risk", self.ai_advisor.identify_risks, list, results)
            known = {r.type for r in risks}
            risks = _by_severity(risks + [r for r in ai_risks if r.type not in known])

        recommendations = self._safely(
            "recommendations",
            lambda r: self.generate_recommendations(r, risks),
            list,
            results,
        )
        if use_ai:
            ai_recommendations = self._safely(
                "AI recommendation",
                lambda r: self.ai_advisor.recommend(r, risks),
                list,
                results,
            )
            recommendations = _by_priority(recommendations + ai_recommendations)

        return CrossPlatformResult(
            analyzed_platforms=platforms,
            bridge_security=bridge,
            state_consistency=consistency,
            interoperability_risks=risks,
            recommendations=recommendations,
        )

    # ------------------------------------------------------------------
    # Bridge security
    # ------------------------------------------------------------------

    def analyze_bridge_security(self, results: Mapping[str, AnalysisResult]) -> BridgeSecurityResult:
        bridge_platforms = [
            platform
            for platform, result in results.items()
            if any(self._is_bridge_finding(v) for v in result.vulnerabilities)
        ]
        if not bridge_platforms:
            return _empty_bridge()

        findings = [v for p in bridge_platforms for v in results[p].vulnerabilities]
        assessments = {dimension: self._assess_dimension(dimension, findings) for dimension in BRIDGE_DIMENSIONS}
        overall = round(sum(a.score for a in assessments.values()) / len(assessments))

        return BridgeSecurityResult(
            locking_mechanism=assessments["locking"],
            message_passing=assessments["message"],
            validator_set=assessments["validator"],
            overall_score=overall,
            bridge_platforms=bridge_platforms,
        )

    @staticmethod
    def _is_bridge_finding(vuln: Vulnerability) -> bool:
        if vuln.type.lower() == "bridge":
            return True
        return _matches(f"{vuln.type} {vuln.description}".lower(), BRIDGE_KEYWORDS)

    def _assess_dimension(self, dimension: str, findings: List[Vulnerability]) -> SecurityAssessment:
        keywords = DIMENSION_KEYWORDS[dimension]
        penalties = self.settings.penalties.get(dimension, {})
        matched = [v for v in findings if _matches(_text_of(v), keywords)]
        score = 100 - sum(penalties.get(v.severity, 0) for v in matched)
        return SecurityAssessment(
            score=max(0, score),
            vulnerabilities=matched,
            recommendations=list(DIMENSION_RECOMMENDATIONS[dimension]) if matched else [],
        )

    # ------------------------------------------------------------------
    # State consistency
    # ------------------------------------------------------------------

    def analyze_state_consistency(self, results: Mapping[str, AnalysisResult]) -> StateConsistencyResult:
        state_types: Dict[str, set] = {}
        for platform, result in results.items():
            state_types[platform] = {
                v.type
                for v in result.vulnerabilities
                if _matches(f"{v.type} {v.description}".lower(), STATE_KEYWORDS)
            }

        issues: List[ConsistencyIssue] = []
        for first, second in itertools.combinations(list(state_types), 2):
            for present, absent in ((first, second), (second, first)):
                for vuln_type in sorted(state_types[present] - state_types[absent]):
                    issues.append(
                        ConsistencyIssue(
                            type=vuln_type,
                            description=(
                                f"State issue '{vuln_type}' reported on {present} but not on {absent}"
                            ),
                            platforms=[present, absent],
                            risk=self.settings.consistency_issue_risk,
                        )
                    )

        threshold = self.settings.consistency_risk_threshold
        return StateConsistencyResult(
            consistency_issues=issues,
            potential_inconsistencies=[i for i in issues if i.risk > threshold],
            recommendations=list(CONSISTENCY_RECOMMENDATIONS) if issues else [],
        )

    # ------------------------------------------------------------------
    # Interoperability
    # ------------------------------------------------------------------

    def assess_interoperability_risks(
        self, results: Mapping[str, AnalysisResult]
    ) -> List[InteroperabilityRisk]:
        platforms = list(results)
        risks: List[InteroperabilityRisk] = []

        for first, second in itertools.combinations(platforms, 2):
            first_model = self.platform_models.get(first)
            second_model = self.platform_models.get(second)
            if first_model is None or second_model is None:
                continue
            pair = frozenset({first_model, second_model})
            for rule in self.settings.pair_rules:
                if rule.models == pair:
                    risks.append(
                        InteroperabilityRisk(
                            type=rule.type,
                            severity=rule.severity,
                            description=rule.description.format(a=first, b=second),
                            affected_platforms=[first, second],
                            mitigation=rule.mitigation,
                        )
                    )

        if len(platforms) >= 2:
            for risk_type, severity, description, mitigation in UNIVERSAL_RISKS:
                risks.append(
                    InteroperabilityRisk(
                        type=risk_type,
                        severity=severity,
                        description=description,
                        affected_platforms=list(platforms),
                        mitigation=mitigation,
                    )
                )

        governance_platforms = [
            platform
            for platform, result in results.items()
            if any(_matches(v.type.lower(), GOVERNANCE_KEYWORDS) for v in result.vulnerabilities)
        ]
        if governance_platforms:
            risk_type, severity, description, mitigation = GOVERNANCE_RISK
            risks.append(
                InteroperabilityRisk(
                    type=risk_type,
                    severity=severity,
                    description=description,
                    affected_platforms=governance_platforms,
                    mitigation=mitigation,
                )
            )

        return _by_severity(risks)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def generate_recommendations(
        self,
        results: Mapping[str, AnalysisResult],
        risks: List[InteroperabilityRisk],
    ) -> List[CrossChainRecommendation]:
        recommendations: List[CrossChainRecommendation] = []

        for risk in risks:
            recommendations.append(
                CrossChainRecommendation(
                    category="risk_mitigation",
                    priority="high" if risk.severity in ("critical", "high") else "medium",
                    title=f"Mitigate {risk.type.replace('_', ' ')}",
                    description=risk.mitigation,
                    platforms=list(risk.affected_platforms),
                )
            )

        platforms = list(results)
        if len(platforms) >= 2:
            for category, priority, title, description in GENERAL_RECOMMENDATIONS:
                recommendations.append(
                    CrossChainRecommendation(
                        category=category,
                        priority=priority,
                        title=title,
                        description=description,
                        platforms=list(platforms),
                    )
                )

        for platform, result in results.items():
            critical = len(result.critical_findings())
            if critical:
                recommendations.append(
                    CrossChainRecommendation(
                        category="platform_security",
                        priority="high",
                        title=f"Resolve critical findings on {platform}",
                        description=(
                            f"Address {critical} critical vulnerabilities in {platform} "
                            "before cross-platform deployment"
                        ),
                        platforms=[platform],
                    )
                )

        return _by_priority(recommendations)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _successful(platform_results: Mapping[str, Any]) -> Dict[str, AnalysisResult]:
        successful: Dict[str, AnalysisResult] = {}
        for platform, raw in (platform_results or {}).items():
            if raw is None:
                continue
            if isinstance(raw, AnalysisResult):
                result = raw
            else:
                try:
                    result = AnalysisResult.model_validate(raw)
                except ValidationError as exc:
                    logger.warning("Skipping malformed result for %s: %s", platform, exc)
                    continue
            if result.success:
                successful[platform] = result
        return successful

    @staticmethod
    def _safely(
        name: str,
        func: Callable[[Dict[str, AnalysisResult]], T],
        empty: Callable[[], T],
        results: Dict[str, AnalysisResult],
    ) -> T:
        try:
            return func(results)
        except Exception as exc:  # noqa: BLE001
            logger.error("Cross-platform %s analysis failed: %s", name, exc, exc_info=True)
            return empty()


__all__ = ["CrossPlatformAdvisor", "CrossPlatformAggregator"]
