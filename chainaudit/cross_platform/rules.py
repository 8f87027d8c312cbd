"""
Rule tables for cross-platform risk aggregation.

Keyword lists are a starting configuration; they drive heuristic matching
and are expected to be tuned.  Penalties and risk weights are exposed
through ``AggregatorSettings`` so deployments can override them from config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from chainaudit.platform_registry import (
    MODEL_EVM_ACCOUNT,
    MODEL_MOVE_RESOURCE,
    MODEL_SVM_ACCOUNT,
    MODEL_UTXO,
)

SEVERITY_WEIGHTS: Dict[str, int] = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
    "informational": 0,
}

PRIORITY_WEIGHTS: Dict[str, int] = {"high": 3, "medium": 2, "low": 1}

# ---------------------------------------------------------------------------
# Keyword sets
# ---------------------------------------------------------------------------

BRIDGE_KEYWORDS: Tuple[str, ...] = ("bridge", "cross-chain", "cross chain", "lock", "mint", "burn")

LOCKING_KEYWORDS: Tuple[str, ...] = ("lock", "access_control", "access-control", "reentrancy", "custody")
MESSAGE_KEYWORDS: Tuple[str, ...] = ("message", "signature", "validation", "relay", "replay", "nonce")
VALIDATOR_KEYWORDS: Tuple[str, ...] = ("validator", "governance", "admin", "guardian", "multisig")

STATE_KEYWORDS: Tuple[str, ...] = ("state", "storage", "variable")
GOVERNANCE_KEYWORDS: Tuple[str, ...] = ("governance", "admin", "upgrade")

BRIDGE_DIMENSIONS: Tuple[str, ...] = ("locking", "message", "validator")

DIMENSION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "locking": LOCKING_KEYWORDS,
    "message": MESSAGE_KEYWORDS,
    "validator": VALIDATOR_KEYWORDS,
}

DIMENSION_RECOMMENDATIONS: Dict[str, Tuple[str, ...]] = {
    "locking": (
        "Use time-locked, multi-signature custody for locked assets",
        "Guard lock and release paths against reentrancy",
        "Reconcile locked and minted supply across chains continuously",
    ),
    "message": (
        "Bind every cross-chain message to a nonce and the destination chain id",
        "Verify message signatures against the current validator set",
        "Reject replayed or out-of-order messages",
    ),
    "validator": (
        "Require a supermajority threshold for validator attestations",
        "Rotate validator keys and monitor validator set changes",
        "Decentralize validator selection to avoid single points of failure",
    ),
}

CONSISTENCY_RECOMMENDATIONS: Tuple[str, ...] = (
    "Implement state synchronization checks between platforms",
    "Use merkle proofs or state roots to verify cross-platform state",
    "Add reconciliation jobs that detect divergent state",
    "Document which platform is authoritative for each piece of shared state",
)

# ---------------------------------------------------------------------------
# Interoperability risk rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PairRiskRule:
    """Risk raised for every pair of platforms whose models match ``models``."""

    models: frozenset
    type: str
    severity: str
    description: str
    mitigation: str


DEFAULT_PAIR_RULES: Tuple[PairRiskRule, ...] = (
    PairRiskRule(
        frozenset({MODEL_EVM_ACCOUNT, MODEL_SVM_ACCOUNT}),
        "security_model_mismatch",
        "medium",
        "{a} and {b} use different account and execution security models",
        "Normalize authorization checks and account ownership semantics at the bridge boundary",
    ),
    PairRiskRule(
        frozenset({MODEL_EVM_ACCOUNT, MODEL_MOVE_RESOURCE}),
        "security_model_mismatch",
        "medium",
        "{a} and {b} differ in account versus resource ownership semantics",
        "Map resource capabilities to explicit access-control checks on the account side",
    ),
    PairRiskRule(
        frozenset({MODEL_SVM_ACCOUNT, MODEL_MOVE_RESOURCE}),
        "security_model_mismatch",
        "medium",
        "{a} and {b} differ in account versus resource ownership semantics",
        "Map resource capabilities to explicit access-control checks on the account side",
    ),
    PairRiskRule(
        frozenset({MODEL_EVM_ACCOUNT, MODEL_UTXO}),
        "transaction_model_mismatch",
        "high",
        "{a} (account model) and {b} (UTXO model) represent balances and state differently",
        "Model UTXO consumption explicitly and verify datum/state mapping on both sides",
    ),
    PairRiskRule(
        frozenset({MODEL_SVM_ACCOUNT, MODEL_UTXO}),
        "transaction_model_mismatch",
        "high",
        "{a} (account model) and {b} (UTXO model) represent balances and state differently",
        "Model UTXO consumption explicitly and verify datum/state mapping on both sides",
    ),
    PairRiskRule(
        frozenset({MODEL_MOVE_RESOURCE, MODEL_UTXO}),
        "transaction_model_mismatch",
        "high",
        "{a} (resource model) and {b} (UTXO model) represent balances and state differently",
        "Model UTXO consumption explicitly and verify datum/state mapping on both sides",
    ),
)

UNIVERSAL_RISKS: Tuple[Tuple[str, str, str, str], ...] = (
    (
        "finality_timing_mismatch",
        "medium",
        "Participating platforms reach finality on different schedules",
        "Wait for finality on the source chain before acting on the destination chain",
    ),
    (
        "economic_security_disparity",
        "high",
        "Participating platforms are secured by different economic stakes",
        "Cap bridged value relative to the weakest platform's economic security",
    ),
)

GOVERNANCE_RISK: Tuple[str, str, str, str] = (
    "governance_centralization",
    "high",
    "Governance, admin or upgrade capabilities can change cross-chain behaviour unilaterally",
    "Put privileged operations behind timelocks and multi-signature governance",
)

GENERAL_RECOMMENDATIONS: Tuple[Tuple[str, str, str, str], ...] = (
    (
        "monitoring",
        "high",
        "Implement Cross-Chain Monitoring",
        "Monitor bridge balances, message flow and validator activity on every platform",
    ),
    (
        "testing",
        "high",
        "Cross-Chain Integration Testing",
        "Exercise end-to-end flows across all platforms, including failure and replay scenarios",
    ),
    (
        "documentation",
        "medium",
        "Document Cross-Chain Assumptions",
        "Record trust assumptions, finality requirements and upgrade procedures per platform",
    ),
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _default_penalties() -> Dict[str, Dict[str, int]]:
    return {
        "locking": {"critical": 30, "high": 20},
        "message": {"critical": 25, "high": 15},
        "validator": {"critical": 20, "high": 10},
    }


@dataclass
class AggregatorSettings:
    """Tunable constants of the aggregator.

    Attributes:
        penalties:                  dimension -> severity -> points deducted.
        consistency_issue_risk:     Risk weight given to every consistency issue.
        consistency_risk_threshold: Issues above this are potential inconsistencies.
        pair_rules:                 Interoperability rules keyed on model pairs.
        platform_models:            platform id -> transaction model.
    """

    penalties: Dict[str, Dict[str, int]] = field(default_factory=_default_penalties)
    consistency_issue_risk: float = 0.7
    consistency_risk_threshold: float = 0.5
    pair_rules: Tuple[PairRiskRule, ...] = DEFAULT_PAIR_RULES
    platform_models: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        platform_models: Optional[Mapping[str, str]] = None,
    ) -> "AggregatorSettings":
        penalties = _default_penalties()
        for dimension, by_severity in penalties.items():
            for severity in by_severity:
                key = f"bridge_{dimension}_penalty_{severity}"
                if key in config:
                    by_severity[severity] = int(config[key])
        return cls(
            penalties=penalties,
            consistency_issue_risk=float(config.get("consistency_issue_risk", 0.7)),
            consistency_risk_threshold=float(config.get("consistency_risk_threshold", 0.5)),
            platform_models=dict(platform_models or {}),
        )
