"""
Contract and request validation.

``ContractValidator`` is the validation collaborator used by platform
sub-jobs and by the basic-validation fallback tier.  ``validate_request``
checks a whole submission against the platform registry and reports every
problem at once.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from chainaudit.platform_registry import PlatformRegistry
from chainaudit.schemas import AnalysisRequest, ContractInput

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ContractValidator:
    """Structural checks driven by each platform's registered rules."""

    def __init__(self, registry: PlatformRegistry) -> None:
        self.registry = registry

    def validate_contract(self, contract: ContractInput) -> ValidationOutcome:
        errors: list[str] = []
        warnings: list[str] = []

        if not contract.code.strip():
            errors.append(f"Contract code is empty: {contract.filename}")
            return ValidationOutcome(False, errors, warnings)

        definition = self.registry.get(contract.platform)
        if definition is None:
            errors.append(f"Unknown platform: {contract.platform}")
            return ValidationOutcome(False, errors, warnings)

        extension = os.path.splitext(contract.filename)[1].lower()
        if extension and extension not in definition.file_extensions:
            warnings.append(
                f"Unusual file extension {extension} for {definition.name}. "
                f"Expected: {', '.join(definition.file_extensions)}"
            )
            logger.warning(
                "Unusual extension %s for %s contract %s",
                extension, contract.platform, contract.filename,
            )

        for rule in definition.validation_rules:
            rule_errors, rule_warnings = rule.check(contract.code)
            errors.extend(rule_errors)
            warnings.extend(rule_warnings)

        return ValidationOutcome(not errors, errors, warnings)


def validate_request(
    request: AnalysisRequest,
    registry: PlatformRegistry,
) -> tuple[list[str], list[str]]:
    """Check a submission against the registry.

    Returns
    -------
    tuple[list[str], list[str]]
        ``(errors, warnings)``; the request is acceptable when *errors* is
        empty.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not request.platforms:
        errors.append("At least one platform must be specified")
    if not request.contracts:
        errors.append("At least one contract must be provided")

    for platform in request.platforms:
        if not registry.is_known(platform):
            errors.append(f"Unsupported platform: {platform}")
        elif not registry.is_active(platform):
            errors.append(f"Platform is not active: {platform}")

    requested = set(request.platforms)
    for contract in request.contracts:
        if not contract.code.strip():
            errors.append(f"Contract code is empty: {contract.filename}")
        if contract.platform not in requested:
            errors.append(
                f"Contract {contract.filename} targets platform "
                f"'{contract.platform}' which is not in the requested platforms"
            )

    targeted = {c.platform for c in request.contracts}
    for platform in request.platforms:
        if request.contracts and platform not in targeted:
            errors.append(f"No contracts provided for platform: {platform}")

    if request.cross_platform_analysis and len(request.platforms) < 2:
        warnings.append("Cross-platform analysis requires at least two platforms")

    return errors, warnings
