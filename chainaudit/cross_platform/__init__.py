"""Cross-platform risk aggregation."""

from chainaudit.cross_platform.aggregator import CrossPlatformAdvisor, CrossPlatformAggregator
from chainaudit.cross_platform.ai_advisor import LLMCrossPlatformAdvisor
from chainaudit.cross_platform.rules import AggregatorSettings, PairRiskRule

__all__ = [
    "AggregatorSettings",
    "CrossPlatformAdvisor",
    "CrossPlatformAggregator",
    "LLMCrossPlatformAdvisor",
    "PairRiskRule",
]
