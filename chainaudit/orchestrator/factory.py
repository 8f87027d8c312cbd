"""
Wiring helper: build a ready-to-run orchestrator from unified config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from chainaudit.ai_analyzer import LLMContractAnalyzer, detect_ai_provider
from chainaudit.analyzers import AIAnalyzer, AnalyzerRegistry
from chainaudit.config_loader import build_unified_config, validate_config
from chainaudit.contract_validator import ContractValidator
from chainaudit.cross_platform import (
    AggregatorSettings,
    CrossPlatformAdvisor,
    CrossPlatformAggregator,
    LLMCrossPlatformAdvisor,
)
from chainaudit.fallback_engine import FallbackConfig, FallbackEngine
from chainaudit.jobs import InMemoryJobQueue, JobQueue
from chainaudit.notifications import LoggingProgressChannel, ProgressChannel
from chainaudit.orchestrator.config import OrchestratorSettings
from chainaudit.orchestrator.progress import ProgressTracker
from chainaudit.orchestrator.run_orchestrator import MultiPlatformOrchestrator
from chainaudit.persistence import InMemoryRunStore, RunStore
from chainaudit.platform_registry import PlatformRegistry
from chainaudit.result_cache import ResultCache

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: Optional[Dict[str, Any]] = None,
    analyzers: Optional[AnalyzerRegistry] = None,
    queue: Optional[JobQueue] = None,
    run_store: Optional[RunStore] = None,
    registry: Optional[PlatformRegistry] = None,
    channel: Optional[ProgressChannel] = None,
    ai_analyzer: Optional[AIAnalyzer] = None,
    ai_advisor: Optional[CrossPlatformAdvisor] = None,
    start_workers: bool = True,
) -> MultiPlatformOrchestrator:
    """Assemble the orchestrator and its collaborators.

    Args:
        config: Flat config dict; ``build_unified_config()`` when omitted.
        analyzers: Primary analyzers per platform.
        queue: Job queue; an ``InMemoryJobQueue`` by default.
        run_store: Run persistence; an ``InMemoryRunStore`` by default.
        registry: Platform registry; the built-in platforms by default.
        channel: Progress channel; logs snapshots by default.
        ai_analyzer: AI collaborator for the AI-only tier.  Built from the
            configured provider when omitted and AI fallback is enabled.
        ai_advisor: AI collaborator for cross-platform risks and
            recommendations.  Built from the configured provider when
            omitted and ``enable_cross_platform_ai`` is set.
        start_workers: Register the job processors on the queue.

    Raises:
        ValueError: If the config has errors.
    """
    config = config if config is not None else build_unified_config()
    issues = validate_config(config)
    for issue in issues:
        if not issue.startswith("ERROR"):
            logger.warning(issue)
    errors = [issue for issue in issues if issue.startswith("ERROR")]
    if errors:
        raise ValueError("Invalid configuration: " + " ".join(errors))

    registry = registry or PlatformRegistry()
    validator = ContractValidator(registry)
    fallback_config = FallbackConfig.from_config(config)

    cross_platform_ai = bool(config.get("enable_cross_platform_ai", True))
    provider = None
    if fallback_config.enable_ai_fallback or cross_platform_ai:
        provider = detect_ai_provider(config)
    if ai_analyzer is None and fallback_config.enable_ai_fallback and provider is not None:
        ai_analyzer = LLMContractAnalyzer(config, provider=provider)
    if ai_advisor is None and cross_platform_ai and provider is not None:
        ai_advisor = LLMCrossPlatformAdvisor(config, provider=provider)

    cache = ResultCache(ttl_seconds=float(config.get("result_cache_ttl_seconds", 600)))
    engine = FallbackEngine(
        ai_analyzer=ai_analyzer,
        validator=validator,
        cache=cache,
        registry=registry,
        default_config=fallback_config,
    )
    aggregator = CrossPlatformAggregator(
        settings=AggregatorSettings.from_config(config, registry.transaction_models()),
        ai_advisor=ai_advisor,
    )
    settings = OrchestratorSettings.from_config(config)

    orchestrator = MultiPlatformOrchestrator(
        queue=(
            queue
            if queue is not None
            else InMemoryJobQueue(retention_seconds=settings.progress_retention_seconds)
        ),
        run_store=run_store if run_store is not None else InMemoryRunStore(),
        registry=registry,
        analyzers=analyzers if analyzers is not None else AnalyzerRegistry(),
        fallback_engine=engine,
        aggregator=aggregator,
        progress_tracker=ProgressTracker(retention_seconds=settings.progress_retention_seconds),
        channel=channel if channel is not None else LoggingProgressChannel(),
        validator=validator,
        settings=settings,
        fallback_config=fallback_config,
    )
    if start_workers:
        orchestrator.register_processors()
    return orchestrator


__all__ = ["build_orchestrator"]
