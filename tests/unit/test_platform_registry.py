"""Tests for the platform registry and request / contract validation."""

import pytest

from chainaudit.contract_validator import ContractValidator, validate_request
from chainaudit.platform_registry import (
    MODEL_EVM_ACCOUNT,
    MODEL_MOVE_RESOURCE,
    MODEL_SVM_ACCOUNT,
    MODEL_UTXO,
    PlatformDefinition,
    PlatformRegistry,
)
from chainaudit.schemas import AnalysisRequest, ContractInput

SOLIDITY = "pragma solidity ^0.8.0;\ncontract Token {}\n"
ANCHOR = "use anchor_lang::prelude::*;\n#[program]\npub mod vault {}\n"


def _request(platforms, contracts, cross_platform=False):
    return AnalysisRequest(
        platforms=platforms,
        contracts=contracts,
        cross_platform_analysis=cross_platform,
    )


class TestPlatformRegistry:
    def test_builtin_platforms(self):
        """Test the seven built-in platforms"""
        registry = PlatformRegistry()
        assert set(registry.active_platforms()) == {
            "ethereum", "bsc", "polygon", "solana", "cardano", "aptos", "sui",
        }

    def test_transaction_models(self):
        """Test transaction models of the built-in platforms"""
        models = PlatformRegistry().transaction_models()
        assert models["ethereum"] == MODEL_EVM_ACCOUNT
        assert models["solana"] == MODEL_SVM_ACCOUNT
        assert models["cardano"] == MODEL_UTXO
        assert models["sui"] == MODEL_MOVE_RESOURCE

    def test_register_custom_platform(self):
        """A custom-only registry gets generic focus areas and no hints."""
        registry = PlatformRegistry(
            platforms=[PlatformDefinition("alpha", "Alpha", MODEL_EVM_ACCOUNT, (".alp",))],
            include_defaults=False,
        )
        assert registry.is_known("alpha")
        assert not registry.is_known("ethereum")
        assert registry.focus_areas("alpha") == ["general-security", "best-practices"]
        assert registry.recovery_hints("alpha") == []

    def test_set_active(self):
        """Test deactivating a platform and toggling an unknown one"""
        registry = PlatformRegistry()
        assert registry.set_active("bsc", False) is True
        assert registry.is_active("bsc") is False
        assert "bsc" not in registry.active_platforms()
        assert registry.set_active("tezos", True) is False

    def test_defaults_are_not_shared(self):
        """Registries never share mutable platform state."""
        first, second = PlatformRegistry(), PlatformRegistry()
        first.set_active("sui", False)
        assert second.is_active("sui") is True

    def test_hints_for_unknown_or_missing_platform(self):
        """Test recovery hints for None and unknown platforms"""
        registry = PlatformRegistry()
        assert registry.recovery_hints(None) == []
        assert registry.recovery_hints("tezos") == []
        assert registry.recovery_hints("ethereum")


class TestContractValidator:
    @pytest.fixture
    def validator(self):
        return ContractValidator(PlatformRegistry())

    def test_valid_solidity(self, validator):
        """Test a clean Solidity contract"""
        outcome = validator.validate_contract(ContractInput(platform="ethereum", code=SOLIDITY, filename="T.sol"))
        assert outcome.is_valid
        assert outcome.errors == []
        assert outcome.warnings == []

    def test_invalid_pragma_is_error(self, validator):
        """A malformed pragma is an error."""
        code = "pragma solidity ^0.8.0\ncontract Token {}\n"
        outcome = validator.validate_contract(ContractInput(platform="ethereum", code=code, filename="T.sol"))
        assert not outcome.is_valid
        assert outcome.errors == ["Invalid pragma solidity directive"]

    def test_missing_pragma_is_warning(self, validator):
        """Test that a missing pragma only warns"""
        outcome = validator.validate_contract(
            ContractInput(platform="bsc", code="contract Token {}", filename="T.sol")
        )
        assert outcome.is_valid
        assert outcome.warnings == ["Missing pragma solidity directive"]

    def test_unusual_extension(self, validator):
        """Test the warning for an unexpected file extension"""
        outcome = validator.validate_contract(ContractInput(platform="solana", code=ANCHOR, filename="lib.txt"))
        assert outcome.is_valid
        assert "Unusual file extension .txt" in outcome.warnings[0]

    def test_anchor_without_program(self, validator):
        """Anchor code without #[program] warns."""
        code = "use anchor_lang::prelude::*;\npub mod vault {}\n"
        outcome = validator.validate_contract(ContractInput(platform="solana", code=code, filename="lib.rs"))
        assert outcome.warnings == ["Anchor imports found but no #[program] attribute"]

    def test_move_without_module(self, validator):
        """Test the warning for Move code with no module"""
        outcome = validator.validate_contract(
            ContractInput(platform="aptos", code="fun main() {}", filename="main.move")
        )
        assert outcome.warnings == ["No Move module definition found"]

    def test_empty_code(self, validator):
        """Test that whitespace-only code is an error"""
        outcome = validator.validate_contract(ContractInput(platform="ethereum", code="  ", filename="E.sol"))
        assert not outcome.is_valid
        assert outcome.errors == ["Contract code is empty: E.sol"]

    def test_unknown_platform(self, validator):
        """Test validation of a contract for an unknown platform"""
        outcome = validator.validate_contract(ContractInput(platform="tezos", code="x", filename="a.tz"))
        assert outcome.errors == ["Unknown platform: tezos"]


class TestValidateRequest:
    @pytest.fixture
    def registry(self):
        return PlatformRegistry()

    def test_valid_request(self, registry):
        """A well-formed two-platform request has no errors or warnings."""
        request = _request(
            ["ethereum", "solana"],
            [
                ContractInput(platform="ethereum", code=SOLIDITY, filename="T.sol"),
                ContractInput(platform="solana", code=ANCHOR, filename="lib.rs"),
            ],
            cross_platform=True,
        )
        assert validate_request(request, registry) == ([], [])

    def test_empty_request(self, registry):
        """Test that every problem of an empty request is reported"""
        errors, _ = validate_request(_request([], []), registry)
        assert errors == [
            "At least one platform must be specified",
            "At least one contract must be provided",
        ]

    def test_unsupported_and_inactive(self, registry):
        """Test unsupported and inactive platforms in one request"""
        registry.set_active("bsc", False)
        request = _request(
            ["tezos", "bsc"],
            [
                ContractInput(platform="tezos", code="x", filename="a.tz"),
                ContractInput(platform="bsc", code=SOLIDITY, filename="T.sol"),
            ],
        )
        errors, _ = validate_request(request, registry)
        assert "Unsupported platform: tezos" in errors
        assert "Platform is not active: bsc" in errors

    def test_contract_for_unrequested_platform(self, registry):
        """Contracts for platforms not in the request are rejected."""
        request = _request(
            ["ethereum"],
            [
                ContractInput(platform="ethereum", code=SOLIDITY, filename="T.sol"),
                ContractInput(platform="solana", code=ANCHOR, filename="lib.rs"),
            ],
        )
        errors, _ = validate_request(request, registry)
        assert len(errors) == 1
        assert "lib.rs" in errors[0]

    def test_platform_without_contracts(self, registry):
        """Test a requested platform that has no contracts"""
        request = _request(
            ["ethereum", "solana"],
            [ContractInput(platform="ethereum", code=SOLIDITY, filename="T.sol")],
        )
        errors, _ = validate_request(request, registry)
        assert errors == ["No contracts provided for platform: solana"]

    def test_empty_contract_code(self, registry):
        """Test request rejection for an empty contract"""
        request = _request(["ethereum"], [ContractInput(platform="ethereum", code="", filename="E.sol")])
        errors, _ = validate_request(request, registry)
        assert errors == ["Contract code is empty: E.sol"]

    def test_cross_platform_with_single_platform_warns(self, registry):
        """Cross-platform on one platform is a warning, not an error."""
        request = _request(
            ["ethereum"],
            [ContractInput(platform="ethereum", code=SOLIDITY, filename="T.sol")],
            cross_platform=True,
        )
        errors, warnings = validate_request(request, registry)
        assert errors == []
        assert warnings == ["Cross-platform analysis requires at least two platforms"]

    def test_platforms_normalized_and_deduplicated(self):
        """Test platform id normalization in the request model"""
        request = _request(
            ["Ethereum", "ethereum", "SOLANA"],
            [ContractInput(platform="Ethereum", code=SOLIDITY, filename="T.sol")],
        )
        assert request.platforms == ["ethereum", "solana"]
        assert list(request.contracts_by_platform()) == ["ethereum"]
