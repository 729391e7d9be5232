"""Topology validation for rule sets.

Confirms the bridges a rule set references exist before anything is applied.
"""
import logging

from ..switch.base import SwitchControl
from .schema import RuleSet, ValidationResult

logger = logging.getLogger(__name__)


class TopologyValidator:
    """Check rule references against the live switch."""

    def __init__(self, switch: SwitchControl):
        self.switch = switch

    async def validate_bridges(self, rules: RuleSet) -> ValidationResult:
        """
        Confirm every bridge referenced by the rules exists.

        Args:
            rules: Loaded rule set

        Returns:
            ValidationResult with one error per missing bridge
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not rules:
            warnings.append("Rule set is empty, nothing to validate")

        for bridge in rules.bridges():
            if not await self.switch.bridge_exists(bridge):
                message = f"Bridge '{bridge}' does not exist in OVS"
                logger.error(message)
                errors.append(message)

        if errors:
            logger.error(f"Config validation failed with {len(errors)} error(s)")
        else:
            logger.info(f"Config validation passed ({len(rules)} rules)")

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )
