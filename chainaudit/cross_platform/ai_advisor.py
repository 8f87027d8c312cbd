"""
AI-assisted cross-platform risks and recommendations.

The rule-based aggregator only knows the risks its tables describe.  The
advisor asks the configured LLM for interoperability risks that the
per-platform findings suggest, and for recommendations covering the full
risk list.  Replies are JSON arrays; items that do not validate are dropped.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Sequence

from pydantic import ValidationError

from chainaudit.ai_analyzer import LLMClient, extract_json_array
from chainaudit.schemas.analysis import AnalysisResult
from chainaudit.schemas.cross_platform import CrossChainRecommendation, InteroperabilityRisk

logger = logging.getLogger(__name__)

TOP_VULNERABILITY_TYPES = 10

RISK_PROMPT_TEMPLATE = """Analyze cross-chain interoperability risks for a multi-blockchain system involving: {platforms}.

Total vulnerabilities found: {total}

Key vulnerability types across platforms:
{summary}

Identify additional interoperability risks that are not apparent from the individual platform analyses, focusing on:
1. Cross-chain message passing vulnerabilities
2. State synchronization risks
3. Economic attack vectors
4. Governance and upgrade risks
5. Platform-specific interaction risks

Respond with ONLY a JSON array. Each element must have the keys:
"type", "severity" (critical|high|medium|low|informational), "description",
"affected_platforms" (array drawn from: {platforms}), "mitigation".
Respond with [] when there is nothing to add.
"""

RECOMMENDATION_PROMPT_TEMPLATE = """Generate cross-chain security recommendations for a multi-blockchain system involving: {platforms}.

Identified risks:
{risks}

Provide specific, actionable recommendations for:
1. Mitigating the identified cross-chain risks
2. Implementing robust cross-chain security measures
3. Monitoring and incident response procedures
4. Testing and validation strategies

Respond with ONLY a JSON array. Each element must have the keys:
"category", "priority" (high|medium|low), "title", "description",
"platforms" (array drawn from: {platforms}).
Respond with [] when there is nothing to add.
"""


def summarize_vulnerability_types(results: Mapping[str, AnalysisResult]) -> str:
    """``type: count`` pairs for the most frequent finding types."""
    counts = Counter(v.type for result in results.values() for v in result.vulnerabilities)
    if not counts:
        return "none"
    return ", ".join(f"{t}: {n}" for t, n in counts.most_common(TOP_VULNERABILITY_TYPES))


def _platforms_of(item: Dict[str, Any], keys: Sequence[str], known: List[str]) -> List[str]:
    raw: Any = None
    for key in keys:
        if key in item:
            raw = item[key]
            break
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return list(known)
    named = [str(p).lower() for p in raw]
    platforms = [p for p in known if p in named]
    return platforms or list(known)


def _required_text(item: Dict[str, Any], key: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing '{key}'")
    return value.strip()


def parse_risks(text: str, platforms: List[str]) -> List[InteroperabilityRisk]:
    """Validate the risk objects of an LLM reply.

    Unknown platform names are ignored; a risk that names none of the run's
    platforms applies to all of them.

    Raises:
        ValueError: If the reply contains no JSON array.
    """
    risks: List[InteroperabilityRisk] = []
    for item in extract_json_array(text):
        if not isinstance(item, dict):
            continue
        try:
            risks.append(
                InteroperabilityRisk(
                    type=_required_text(item, "type"),
                    severity=_required_text(item, "severity"),
                    description=_required_text(item, "description"),
                    affected_platforms=_platforms_of(
                        item, ("affected_platforms", "affectedPlatforms"), platforms
                    ),
                    mitigation=_required_text(item, "mitigation"),
                )
            )
        except (ValidationError, ValueError) as exc:
            logger.warning("Skipping malformed AI risk: %s", exc)
    return risks


def parse_recommendations(text: str, platforms: List[str]) -> List[CrossChainRecommendation]:
    """Validate the recommendation objects of an LLM reply.

    Raises:
        ValueError: If the reply contains no JSON array.
    """
    recommendations: List[CrossChainRecommendation] = []
    for item in extract_json_array(text):
        if not isinstance(item, dict):
            continue
        try:
            category = _required_text(item, "category")
            recommendations.append(
                CrossChainRecommendation(
                    category=category,
                    priority=_required_text(item, "priority").lower(),
                    title=str(item.get("title") or category.replace("_", " ").capitalize()),
                    description=_required_text(item, "description"),
                    platforms=_platforms_of(item, ("platforms",), platforms),
                )
            )
        except (ValidationError, ValueError) as exc:
            logger.warning("Skipping malformed AI recommendation: %s", exc)
    return recommendations


class LLMCrossPlatformAdvisor(LLMClient):
    """LLM collaborator of ``CrossPlatformAggregator``.

    Both methods raise on client or parsing failure; the aggregator treats
    the AI stages as best effort and drops their output on error.
    """

    def identify_risks(self, results: Mapping[str, AnalysisResult]) -> List[InteroperabilityRisk]:
        platforms = list(results)
        prompt = RISK_PROMPT_TEMPLATE.format(
            platforms=", ".join(platforms),
            total=sum(len(r.vulnerabilities) for r in results.values()),
            summary=summarize_vulnerability_types(results),
        )
        risks = parse_risks(self.complete(prompt), platforms)
        logger.info("AI identified %d cross-platform risk(s) for %s", len(risks), platforms)
        return risks

    def recommend(
        self,
        results: Mapping[str, AnalysisResult],
        risks: Sequence[InteroperabilityRisk],
    ) -> List[CrossChainRecommendation]:
        platforms = list(results)
        listed = "\n".join(f"- {r.type}: {r.description}" for r in risks) or "- none"
        prompt = RECOMMENDATION_PROMPT_TEMPLATE.format(
            platforms=", ".join(platforms), risks=listed
        )
        recommendations = parse_recommendations(self.complete(prompt), platforms)
        logger.info(
            "AI generated %d cross-platform recommendation(s) for %s",
            len(recommendations), platforms,
        )
        return recommendations


__all__ = [
    "LLMCrossPlatformAdvisor",
    "parse_recommendations",
    "parse_risks",
    "summarize_vulnerability_types",
]
