"""
LLM-backed AI analysis collaborator.

Used by the AI-only fallback tier: each contract is sent to the configured
LLM provider together with its platform focus areas, and the JSON findings
in the reply are parsed into ``Vulnerability`` models (origin ``ai``).
``LLMClient`` also backs the cross-platform advisor
(``chainaudit.cross_platform.ai_advisor``).

Provider selection follows the config keys ``ai_provider`` / ``model`` /
``anthropic_api_key`` / ``openai_api_key``:

    auto  -> anthropic when an Anthropic key is set, else openai, else none
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from pydantic import ValidationError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from chainaudit.analyzers import AIAnalysisOutcome
from chainaudit.error_classifier import classified_retry_predicate, classify
from chainaudit.schemas import ContractInput, SourceLocation, Vulnerability

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4-turbo-preview",
}

PROMPT_TEMPLATE = """You are a smart-contract security auditor for the {platform} platform.
Focus areas: {focus_areas}.

Review the contract below and report security vulnerabilities.
Respond with ONLY a JSON array. Each element must have the keys:
"type", "severity" (critical|high|medium|low|informational), "title",
"description", "line", "column", "recommendation", "confidence" (0-1).
Respond with [] when nothing is found.

File: {filename}
```
{code}
```
"""


def detect_ai_provider(config: dict) -> Optional[str]:
    """Pick the provider from config; ``None`` when no provider is usable."""
    provider = config.get("ai_provider", "auto")
    if provider == "none":
        return None
    if provider != "auto":
        return provider
    if config.get("anthropic_api_key"):
        return "anthropic"
    if config.get("openai_api_key"):
        return "openai"
    logger.warning("No AI provider configured; set ANTHROPIC_API_KEY or OPENAI_API_KEY")
    return None


def get_ai_client(provider: str, config: dict) -> Any:
    """Build the SDK client for *provider*.

    Raises:
        ValueError: If the provider is unknown or its API key is missing.
    """
    if provider == "anthropic":
        from anthropic import Anthropic

        api_key = config.get("anthropic_api_key")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")
        logger.info("Using Anthropic API")
        return Anthropic(api_key=api_key)

    if provider == "openai":
        from openai import OpenAI

        api_key = config.get("openai_api_key")
        if not api_key:
            raise ValueError("OPENAI_API_KEY not set")
        logger.info("Using OpenAI API")
        return OpenAI(api_key=api_key)

    raise ValueError(f"Unknown provider: {provider}")


def extract_json_array(text: str) -> list:
    """Return the JSON array embedded in an LLM reply.

    Raises:
        ValueError: If the reply contains no JSON array.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        raise ValueError("Invalid JSON in AI response: no array found")
    items = json.loads(text[start : end + 1])
    if not isinstance(items, list):
        raise ValueError("Invalid JSON in AI response: expected an array")
    return items


def parse_findings(text: str, contract: ContractInput) -> list[Vulnerability]:
    """Parse the JSON array in an LLM reply into vulnerabilities.

    Items that fail validation are skipped with a warning.

    Raises:
        ValueError: If the reply contains no JSON array.
    """
    items = extract_json_array(text)

    findings: list[Vulnerability] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            findings.append(
                Vulnerability(
                    type=str(item.get("type") or "ai-finding"),
                    severity=str(item.get("severity") or "medium"),
                    title=str(item.get("title") or item.get("type") or "AI finding"),
                    description=str(item.get("description") or ""),
                    location=SourceLocation(
                        file=contract.filename,
                        line=int(item.get("line") or 1),
                        column=int(item.get("column") or 1),
                    ),
                    recommendation=str(item.get("recommendation") or ""),
                    confidence=float(item.get("confidence", 0.6)),
                    source="ai",
                    platform=contract.platform,
                )
            )
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed AI finding in %s: %s", contract.filename, exc)
    return findings


class LLMClient:
    """Provider, model and retry handling shared by the LLM collaborators.

    ``complete(prompt)`` sends one user message and returns the reply text.
    Retryable failures (as classified for *platform*) are retried with
    exponential backoff; anything else propagates.
    """

    def __init__(
        self,
        config: dict,
        client: Any = None,
        provider: Optional[str] = None,
    ) -> None:
        self.config = config
        self.provider = provider or detect_ai_provider(config)
        self.client = client
        self.model = self._model_name()
        self.max_tokens = int(config.get("ai_max_tokens", 4000))
        self.temperature = float(config.get("ai_temperature", 0.1))
        self.retry_attempts = max(1, int(config.get("ai_retry_attempts", 2)))

    def _model_name(self) -> str:
        model = self.config.get("model", "auto")
        if model != "auto":
            return model
        return DEFAULT_MODELS.get(self.provider or "anthropic", DEFAULT_MODELS["anthropic"])

    def _ensure_client(self) -> Any:
        if self.client is None:
            if self.provider is None:
                raise ValueError("No AI provider configured")
            self.client = get_ai_client(self.provider, self.config)
        return self.client

    def _call_llm(self, prompt: str) -> str:
        client = self._ensure_client()
        if self.provider == "anthropic":
            message = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
            return message.content[0].text
        if self.provider == "openai":
            response = client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
            return response.choices[0].message.content or ""
        raise ValueError(f"Unknown provider: {self.provider}")

    def complete(self, prompt: str, platform: Optional[str] = None) -> str:
        for attempt in Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(classified_retry_predicate(platform)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                text = self._call_llm(prompt)
        return text


class LLMContractAnalyzer(LLMClient):
    """AI collaborator: ``analyze_contract(contract, focus_areas)``.

    Never raises; client and parsing failures are returned as an unsuccessful
    ``AIAnalysisOutcome`` so the fallback tier can count them.
    """

    def analyze_contract(
        self, contract: ContractInput, focus_areas: Sequence[str]
    ) -> AIAnalysisOutcome:
        prompt = PROMPT_TEMPLATE.format(
            platform=contract.platform,
            focus_areas=", ".join(focus_areas),
            filename=contract.filename,
            code=contract.code,
        )
        try:
            text = self.complete(prompt, contract.platform)
            findings = parse_findings(text, contract)
        except Exception as exc:
            error = classify(exc, contract.platform)
            logger.warning(
                "AI analysis failed for %s (%s): %s",
                contract.filename, error.code, exc,
            )
            return AIAnalysisOutcome(success=False, error=str(exc))

        logger.info(
            "AI analysis of %s produced %d findings", contract.filename, len(findings)
        )
        return AIAnalysisOutcome(success=True, vulnerabilities=findings)


__all__ = [
    "DEFAULT_MODELS",
    "LLMClient",
    "LLMContractAnalyzer",
    "detect_ai_provider",
    "extract_json_array",
    "get_ai_client",
    "parse_findings",
]
