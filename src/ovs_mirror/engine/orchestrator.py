"""Lifecycle orchestration.

Maps VM lifecycle events and operator commands onto mirror actions. Every
action that changes the switch runs under the switch lock:

    | phase     | destination only       | source only        | both             |
    |-----------|------------------------|--------------------|------------------|
    | start     | batch for destination  | apply all rules    | apply all rules  |
    | pre-stop  | remove dest mirrors    | remove src mirrors | both removals    |
    | post-stop | remove dest mirrors    | remove src mirrors | both removals    |

post-stop repeats the pre-stop cleanup; removal is idempotent, so this only
matters when pre-stop did not run or failed.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional

from ..config.settings import Settings
from ..errors import BatchError, LockTimeout, NoRulesForEntity
from ..switch.base import SwitchControl
from ..utils.lock import SwitchLock
from ..utils.polling import SleepFunc
from .executor import TransactionalApplier
from .reconciler import MirrorReconciler
from .roles import resolve_role
from .schema import ApplySummary, RemovalSummary, RuleSet
from .waiter import InterfaceWaiter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_LOCK_TIMEOUT = 75  # EX_TEMPFAIL


class Phase(str, Enum):
    """Lifecycle phase of a managed VM."""
    START = "start"
    PRE_STOP = "pre-stop"
    POST_STOP = "post-stop"


class MirrorOrchestrator:
    """Entry point for every switch-mutating operation."""

    def __init__(
        self,
        switch: SwitchControl,
        settings: Optional[Settings] = None,
        lock: Optional[SwitchLock] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Args:
            switch: Switch to reconcile
            settings: Wait budgets and lock location
            lock: Lock to serialize on; built from settings when omitted
            sleep: Sleep used while waiting for interfaces
        """
        self.settings = settings or Settings()
        self.switch = switch
        self.lock = lock or SwitchLock(
            self.settings.lock_file, timeout=self.settings.effective_lock_timeout
        )
        waiter = InterfaceWaiter(
            switch,
            max_wait=self.settings.max_wait,
            poll_interval=self.settings.wait_interval,
            sleep=sleep,
        )
        self.reconciler = MirrorReconciler(switch, waiter)
        self.applier = TransactionalApplier(self.reconciler)

    # Operator commands

    async def apply_all(self, rules: RuleSet) -> ApplySummary:
        """Best-effort apply of every rule."""
        logger.info("Configuring all mirrors from config")
        async with self.lock.acquire():
            return await self.applier.apply_all(rules)

    async def apply_for_entity(self, rules: RuleSet, entity_id: int) -> list[str]:
        """
        Apply all rules targeting the entity as one transaction.

        Returns:
            Names of the created mirrors

        Raises:
            BatchError: A rule failed and the batch was rolled back
            LockTimeout: Lock not acquired
            NoRulesForEntity: No rules target the entity
        """
        batch = rules.for_destination(entity_id)
        if not batch:
            logger.warning(f"No mirror rules found for VM {entity_id}")
            raise NoRulesForEntity(entity_id)

        async with self.lock.acquire():
            created = await self.applier.apply_batch(batch)
        logger.info(f"Successfully configured {len(created)} mirror(s) for VM {entity_id}")
        return created

    async def remove_destination(self, rules: RuleSet, entity_id: int) -> RemovalSummary:
        async with self.lock.acquire():
            return await self.applier.remove_for_destination(rules, entity_id)

    async def remove_source(self, rules: RuleSet, entity_id: int) -> RemovalSummary:
        async with self.lock.acquire():
            return await self.applier.remove_for_source(rules, entity_id)

    async def remove_all(self, rules: RuleSet, entity_id: int) -> RemovalSummary:
        """Remove every mirror the entity takes part in."""
        async with self.lock.acquire():
            dest = await self.applier.remove_for_destination(rules, entity_id)
            src = await self.applier.remove_for_source(rules, entity_id)
        return dest.merge(src)

    # Lifecycle events

    async def handle_event(
        self,
        rules: RuleSet,
        entity_id: int,
        phase: str,
        strict: bool = False,
    ) -> int:
        """
        React to a lifecycle event of a VM.

        Args:
            rules: Rule set loaded for this invocation
            entity_id: VM id
            phase: "start", "pre-stop" or "post-stop"
            strict: Report rule failures through the exit status

        Returns:
            Exit status: 0 on success or no-op, EXIT_LOCK_TIMEOUT when the
            lock could not be taken, EXIT_FAILURE on failures when strict
        """
        try:
            event = Phase(phase)
        except ValueError:
            logger.info(f"Ignoring phase: {phase}")
            return EXIT_OK

        role = resolve_role(entity_id, rules)
        if not role.managed:
            logger.debug(f"VM {entity_id} is not managed, nothing to do")
            return EXIT_OK

        logger.info(
            f"Hook triggered for VM {entity_id}, phase: {event.value} "
            f"(source={role.is_source}, destination={role.is_destination})"
        )

        try:
            async with self.lock.acquire():
                if event == Phase.START:
                    failed = await self._on_start(rules, entity_id, role.is_source)
                else:
                    failed = await self._on_stop(
                        rules, entity_id, role.is_source, role.is_destination
                    )
        except LockTimeout as e:
            logger.error(f"Aborting VM {entity_id} {event.value}: {e}")
            return EXIT_LOCK_TIMEOUT

        if failed:
            logger.warning(f"VM {entity_id} {event.value}: {failed} failure(s)")
            return EXIT_FAILURE if strict else EXIT_OK

        logger.info(f"Mirror handling completed for VM {entity_id} ({event.value})")
        return EXIT_OK

    async def _on_start(self, rules: RuleSet, entity_id: int, is_source: bool) -> int:
        """Returns the number of failures. Caller holds the lock."""
        if is_source:
            # The VM's taps are now valid sources for any rule, including
            # ones whose destination is this same VM.
            summary = await self.applier.apply_all(rules)
            return summary.failed

        try:
            await self.applier.apply_batch(rules.for_destination(entity_id))
        except BatchError as e:
            logger.error(f"Mirror configuration for VM {entity_id} failed: {e}")
            return 1
        return 0

    async def _on_stop(
        self,
        rules: RuleSet,
        entity_id: int,
        is_source: bool,
        is_destination: bool,
    ) -> int:
        """Returns the number of failures. Caller holds the lock."""
        summary = RemovalSummary()
        if is_destination:
            summary = summary.merge(
                await self.applier.remove_for_destination(rules, entity_id)
            )
        if is_source:
            summary = summary.merge(
                await self.applier.remove_for_source(rules, entity_id)
            )
        logger.info(
            f"Removed {len(summary.removed)} mirror(s) for VM {entity_id} "
            f"({len(summary.missing)} already absent)"
        )
        return summary.failed
