"""Applying groups of rules.

Two policies:
- apply_batch: all-or-nothing for the rules of one target VM; the first
  failure rolls back every mirror the batch created.
- apply_all: best effort over the whole rule set; failures are counted,
  unrelated rules are unaffected.
"""
import asyncio
import logging
from typing import Iterable

from ..errors import BatchError, ReconcileError
from .reconciler import MirrorReconciler
from .schema import ApplySummary, MirrorRule, RemovalSummary, RuleFailure

logger = logging.getLogger(__name__)


class TransactionalApplier:
    """Apply rule batches through a MirrorReconciler."""

    def __init__(self, reconciler: MirrorReconciler):
        self.reconciler = reconciler

    async def apply_batch(self, rules: list[MirrorRule]) -> list[str]:
        """
        Apply rules in order, rolling all of them back on the first failure.

        Args:
            rules: Rules belonging to one logical target

        Returns:
            Names of the created mirrors

        Raises:
            BatchError: A rule failed; the batch has been rolled back
            asyncio.CancelledError: The caller cancelled; the batch has been
                rolled back before the cancellation propagates
        """
        created: list[str] = []

        for rule in rules:
            try:
                await self.reconciler.apply_rule(rule)
            except ReconcileError as e:
                logger.error(f"Cannot create {rule.mirror_name}: {e}")
                logger.warning(f"Rolling back {len(created)} mirror(s) due to failure")
                rolled_back, failures = await self._rollback(created)
                raise BatchError(e, rolled_back, failures) from e
            except (asyncio.CancelledError, KeyboardInterrupt):
                logger.warning(f"Batch interrupted, rolling back {len(created)} mirror(s)")
                await asyncio.shield(self._rollback(created))
                raise
            created.append(rule.mirror_name)

        return created

    async def _rollback(
        self, created: list[str]
    ) -> tuple[list[str], list[RuleFailure]]:
        """
        Remove created mirrors, newest first. Keeps going on errors.

        Returns:
            (names removed, removals that failed)
        """
        removed: list[str] = []
        failures: list[RuleFailure] = []
        for name in reversed(created):
            try:
                await self.reconciler.remove_mirror(name)
            except ReconcileError as e:
                logger.error(f"Rollback of {name} failed: {e}")
                failures.append(RuleFailure(name, str(e)))
                continue
            removed.append(name)
        return removed, failures

    async def apply_all(self, rules: Iterable[MirrorRule]) -> ApplySummary:
        """
        Apply every rule independently.

        Returns:
            ApplySummary with created mirrors and per-rule failures
        """
        summary = ApplySummary()

        for rule in rules:
            summary.total += 1
            try:
                await self.reconciler.apply_rule(rule)
            except ReconcileError as e:
                logger.error(f"Cannot create {rule.mirror_name}: {e}")
                summary.failures.append(RuleFailure(rule.mirror_name, str(e)))
                continue
            summary.created.append(rule.mirror_name)

        if summary.failed:
            logger.warning(
                f"Completed with {summary.failed} failure(s) out of {summary.total} rules"
            )
        else:
            logger.info(f"All {summary.total} mirrors configured successfully")

        return summary

    async def remove_rules(self, rules: Iterable[MirrorRule]) -> RemovalSummary:
        """Remove the mirrors of the given rules; failures don't stop siblings."""
        summary = RemovalSummary()

        for rule in rules:
            name = rule.mirror_name
            try:
                removed = await self.reconciler.remove_mirror(name)
            except ReconcileError as e:
                logger.error(str(e))
                summary.failures.append(RuleFailure(name, str(e)))
                continue
            (summary.removed if removed else summary.missing).append(name)

        return summary

    async def remove_for_destination(
        self, rules: Iterable[MirrorRule], entity_id: int
    ) -> RemovalSummary:
        """Remove mirrors whose destination is one of the entity's NICs."""
        logger.info(f"Cleaning up mirrors where VM {entity_id} is a destination")
        return await self.remove_rules(
            r for r in rules if r.dest_entity_id == entity_id
        )

    async def remove_for_source(
        self, rules: Iterable[MirrorRule], entity_id: int
    ) -> RemovalSummary:
        """Remove mirrors whose source is one of the entity's NICs."""
        logger.info(f"Cleaning up mirrors where VM {entity_id} is a source")
        return await self.remove_rules(
            r for r in rules if r.source_entity_id == entity_id
        )
