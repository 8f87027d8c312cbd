#!/usr/bin/env python3
"""
Platform Registry for chainaudit

Describes every blockchain platform the engine knows about: its transaction
model (used by the cross-platform risk catalog), accepted file extensions,
lightweight structural validation rules, AI focus areas for the AI-only
fallback tier, and platform-specific recovery hints.

Platforms can be registered, deactivated and re-activated at runtime; a
request naming an inactive platform is rejected by ``validate_request``.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Transaction models
# ---------------------------------------------------------------------------

MODEL_EVM_ACCOUNT = "evm-account"
MODEL_SVM_ACCOUNT = "svm-account"
MODEL_MOVE_RESOURCE = "move-resource"
MODEL_UTXO = "utxo"

DEFAULT_FOCUS_AREAS: tuple[str, ...] = ("general-security", "best-practices")

# (errors, warnings)
RuleOutcome = tuple[list[str], list[str]]


@dataclass(frozen=True)
class ValidationRule:
    """A named structural check run against contract source."""

    id: str
    description: str
    check: Callable[[str], RuleOutcome]


@dataclass
class PlatformDefinition:
    """Static description of one blockchain platform."""

    id: str
    name: str
    transaction_model: str
    file_extensions: tuple[str, ...]
    languages: tuple[str, ...] = ()
    validation_rules: tuple[ValidationRule, ...] = ()
    focus_areas: tuple[str, ...] = DEFAULT_FOCUS_AREAS
    recovery_hints: tuple[str, ...] = ()
    is_active: bool = True
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Built-in validation rules
# ---------------------------------------------------------------------------

_PRAGMA_RE = re.compile(r"pragma\s+solidity\s+([^;]+);")
_SOLIDITY_UNIT_RE = re.compile(r"\b(contract|interface|library)\s+\w+")


def _check_solidity_pragma(code: str) -> RuleOutcome:
    errors: list[str] = []
    warnings: list[str] = []
    if "pragma solidity" in code:
        if not _PRAGMA_RE.search(code):
            errors.append("Invalid pragma solidity directive")
    elif _SOLIDITY_UNIT_RE.search(code):
        warnings.append("Missing pragma solidity directive")
    return errors, warnings


def _check_solidity_unit(code: str) -> RuleOutcome:
    if code.strip() and not _SOLIDITY_UNIT_RE.search(code):
        return [], ["No contract, interface, or library definition found"]
    return [], []


def _check_anchor_program(code: str) -> RuleOutcome:
    if "use anchor_lang::" in code and "#[program]" not in code:
        return [], ["Anchor imports found but no #[program] attribute"]
    return [], []


def _check_plutus_validator(code: str) -> RuleOutcome:
    if ("Plutus.V" in code or "PlutusTx" in code) and "validator" not in code:
        return [], ["Plutus imports found but no validator function"]
    return [], []


def _check_move_module(code: str) -> RuleOutcome:
    if "module " not in code:
        return [], ["No Move module definition found"]
    return [], []


SOLIDITY_RULES = (
    ValidationRule("solidity-pragma", "Validates the pragma solidity directive", _check_solidity_pragma),
    ValidationRule("contract-definition", "Requires a contract, interface or library", _check_solidity_unit),
)
ANCHOR_RULES = (
    ValidationRule("anchor-program", "Anchor programs declare #[program]", _check_anchor_program),
)
PLUTUS_RULES = (
    ValidationRule("plutus-validator", "Plutus scripts define a validator", _check_plutus_validator),
)
MOVE_RULES = (
    ValidationRule("move-module", "Move sources define a module", _check_move_module),
)

_EVM_FOCUS = ("solidity-security", "evm-patterns", "gas-optimization", "reentrancy")
_EVM_HINTS = (
    "Verify the Solidity compiler (solc) version matches the pragma",
    "Check Slither installation: pip install slither-analyzer",
)
_MOVE_FOCUS = ("move-security", "resource-patterns", "capability-security")
_MOVE_HINTS = ("Check the Move toolchain installation (aptos / sui CLI)",)


def default_platforms() -> list[PlatformDefinition]:
    """Return fresh definitions for every built-in platform."""
    return [
        PlatformDefinition(
            id="ethereum",
            name="Ethereum",
            transaction_model=MODEL_EVM_ACCOUNT,
            file_extensions=(".sol", ".vy"),
            languages=("solidity", "vyper"),
            validation_rules=SOLIDITY_RULES,
            focus_areas=_EVM_FOCUS,
            recovery_hints=_EVM_HINTS,
        ),
        PlatformDefinition(
            id="bsc",
            name="BNB Smart Chain",
            transaction_model=MODEL_EVM_ACCOUNT,
            file_extensions=(".sol",),
            languages=("solidity",),
            validation_rules=SOLIDITY_RULES,
            focus_areas=_EVM_FOCUS,
            recovery_hints=_EVM_HINTS,
        ),
        PlatformDefinition(
            id="polygon",
            name="Polygon",
            transaction_model=MODEL_EVM_ACCOUNT,
            file_extensions=(".sol",),
            languages=("solidity",),
            validation_rules=SOLIDITY_RULES,
            focus_areas=_EVM_FOCUS,
            recovery_hints=_EVM_HINTS,
        ),
        PlatformDefinition(
            id="solana",
            name="Solana",
            transaction_model=MODEL_SVM_ACCOUNT,
            file_extensions=(".rs",),
            languages=("rust",),
            validation_rules=ANCHOR_RULES,
            focus_areas=("rust-security", "anchor-patterns", "pda-validation", "account-model"),
            recovery_hints=(
                "Verify the Rust toolchain is installed: rustup show",
                "Check Anchor CLI installation: anchor --version",
            ),
        ),
        PlatformDefinition(
            id="cardano",
            name="Cardano",
            transaction_model=MODEL_UTXO,
            file_extensions=(".hs", ".plutus"),
            languages=("haskell", "plutus"),
            validation_rules=PLUTUS_RULES,
            focus_areas=("haskell-security", "plutus-patterns", "utxo-model", "datum-validation"),
            recovery_hints=(
                "Verify the Haskell toolchain (ghc / cabal) is installed",
                "Check that Plutus dependencies resolve for the script",
            ),
        ),
        PlatformDefinition(
            id="aptos",
            name="Aptos",
            transaction_model=MODEL_MOVE_RESOURCE,
            file_extensions=(".move",),
            languages=("move",),
            validation_rules=MOVE_RULES,
            focus_areas=_MOVE_FOCUS,
            recovery_hints=_MOVE_HINTS,
        ),
        PlatformDefinition(
            id="sui",
            name="Sui",
            transaction_model=MODEL_MOVE_RESOURCE,
            file_extensions=(".move",),
            languages=("move",),
            validation_rules=MOVE_RULES,
            focus_areas=_MOVE_FOCUS,
            recovery_hints=_MOVE_HINTS,
        ),
    ]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PlatformRegistry:
    """Thread-safe lookup of platform definitions by id."""

    def __init__(
        self,
        platforms: Optional[Iterable[PlatformDefinition]] = None,
        include_defaults: bool = True,
    ) -> None:
        self._lock = threading.RLock()
        self._platforms: dict[str, PlatformDefinition] = {}
        if include_defaults:
            for definition in default_platforms():
                self.register(definition)
        for definition in platforms or ():
            self.register(definition)

    def register(self, definition: PlatformDefinition) -> None:
        """Add or replace a platform definition."""
        with self._lock:
            if definition.id in self._platforms:
                logger.info("Replacing platform definition '%s'", definition.id)
            self._platforms[definition.id] = definition

    def get(self, platform_id: str) -> Optional[PlatformDefinition]:
        with self._lock:
            return self._platforms.get(platform_id)

    def is_known(self, platform_id: str) -> bool:
        return self.get(platform_id) is not None

    def is_active(self, platform_id: str) -> bool:
        definition = self.get(platform_id)
        return definition is not None and definition.is_active

    def set_active(self, platform_id: str, active: bool) -> bool:
        """Toggle a platform; returns False when the platform is unknown."""
        with self._lock:
            definition = self._platforms.get(platform_id)
            if definition is None:
                return False
            definition.is_active = active
        logger.info("Platform '%s' %s", platform_id, "activated" if active else "deactivated")
        return True

    def active_platforms(self) -> list[str]:
        with self._lock:
            return [p.id for p in self._platforms.values() if p.is_active]

    def focus_areas(self, platform_id: str) -> list[str]:
        definition = self.get(platform_id)
        return list(definition.focus_areas if definition else DEFAULT_FOCUS_AREAS)

    def recovery_hints(self, platform_id: Optional[str]) -> list[str]:
        definition = self.get(platform_id) if platform_id else None
        return list(definition.recovery_hints) if definition else []

    def transaction_models(self) -> dict[str, str]:
        """Map of platform id -> transaction model for every known platform."""
        with self._lock:
            return {p.id: p.transaction_model for p in self._platforms.values()}


__all__ = [
    "DEFAULT_FOCUS_AREAS",
    "MODEL_EVM_ACCOUNT",
    "MODEL_MOVE_RESOURCE",
    "MODEL_SVM_ACCOUNT",
    "MODEL_UTXO",
    "PlatformDefinition",
    "PlatformRegistry",
    "ValidationRule",
    "default_platforms",
]
