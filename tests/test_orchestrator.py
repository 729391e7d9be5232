"""Tests for lifecycle orchestration."""
import asyncio

import pytest

from ovs_mirror.config import Settings
from ovs_mirror.engine import (
    EXIT_FAILURE,
    EXIT_LOCK_TIMEOUT,
    EXIT_OK,
    BatchError,
    LockTimeout,
    MirrorOrchestrator,
    NoRulesForEntity,
    load_rules,
)
from ovs_mirror.utils.lock import SwitchLock

RULES = """
vmbr0 eno1          100 1
vmbr0 entity200:0   100 1
"""


@pytest.fixture
def settings(lock_path):
    return Settings(max_wait=10, wait_interval=5, lock_file=str(lock_path), lock_timeout=0.3)


@pytest.fixture
def orchestrator(switch, settings, sleeper):
    return MirrorOrchestrator(switch, settings, sleep=sleeper)


@pytest.fixture
def rules():
    return load_rules(RULES).rules


class TestHandleEvent:
    """Tests for VM lifecycle events."""

    @pytest.mark.asyncio
    async def test_destination_start_applies_batch(self, orchestrator, switch, rules):
        rc = await orchestrator.handle_event(rules, 100, "start")

        assert rc == EXIT_OK
        assert switch.mirror_names() == sorted(rules.mirror_names())

    @pytest.mark.asyncio
    async def test_source_start_applies_all(self, orchestrator, switch, rules):
        rc = await orchestrator.handle_event(rules, 200, "start")

        assert rc == EXIT_OK
        assert len(switch.mirrors) == 2

    @pytest.mark.asyncio
    async def test_unmanaged_entity_takes_no_lock(self, orchestrator, switch, rules, lock_path):
        rc = await orchestrator.handle_event(rules, 999, "start")

        assert rc == EXIT_OK
        assert switch.ops == []
        assert not lock_path.exists()

    @pytest.mark.asyncio
    async def test_unknown_phase_ignored(self, orchestrator, switch, rules):
        assert await orchestrator.handle_event(rules, 100, "pre-start") == EXIT_OK
        assert switch.ops == []

    @pytest.mark.asyncio
    async def test_batch_failure_is_not_fatal_by_default(self, orchestrator, switch, rules):
        switch.fail_create.add(rules.mirror_names()[1])

        rc = await orchestrator.handle_event(rules, 100, "start")

        assert rc == EXIT_OK
        assert switch.mirrors == {}

    @pytest.mark.asyncio
    async def test_batch_failure_strict(self, orchestrator, switch, rules):
        switch.fail_create.add(rules.mirror_names()[1])

        rc = await orchestrator.handle_event(rules, 100, "start", strict=True)

        assert rc == EXIT_FAILURE
        assert switch.mirrors == {}

    @pytest.mark.asyncio
    async def test_source_failures_strict(self, orchestrator, switch, rules):
        switch.fail_create.add(rules.mirror_names()[0])

        rc = await orchestrator.handle_event(rules, 200, "start", strict=True)

        assert rc == EXIT_FAILURE
        # best effort: the other rule stays
        assert switch.mirror_names() == [rules.mirror_names()[1]]

    @pytest.mark.asyncio
    async def test_destination_stop(self, orchestrator, switch, rules):
        await orchestrator.handle_event(rules, 100, "start")

        assert await orchestrator.handle_event(rules, 100, "pre-stop") == EXIT_OK
        assert switch.mirrors == {}
        # post-stop repeats the cleanup harmlessly
        assert await orchestrator.handle_event(rules, 100, "post-stop") == EXIT_OK

    @pytest.mark.asyncio
    async def test_source_stop_keeps_other_mirrors(self, orchestrator, switch, rules):
        await orchestrator.handle_event(rules, 100, "start")

        await orchestrator.handle_event(rules, 200, "pre-stop")

        assert switch.mirror_names() == [rules.mirror_names()[0]]

    @pytest.mark.asyncio
    async def test_both_roles_stop_removes_both(self, switch, settings, sleeper):
        switch.ports["vmbr0"].append("tap200i1")
        rules = load_rules("vmbr0 eno1 200 1\nvmbr0 entity200:0 100 1").rules
        orchestrator = MirrorOrchestrator(switch, settings, sleep=sleeper)
        await orchestrator.apply_all(rules)

        rc = await orchestrator.handle_event(rules, 200, "pre-stop")

        assert rc == EXIT_OK
        assert switch.mirrors == {}

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere(self, orchestrator, switch, rules, foreign_holder):
        """Lock timeout aborts before any switch mutation."""
        rc = await orchestrator.handle_event(rules, 100, "start")

        assert rc == EXIT_LOCK_TIMEOUT
        assert switch.ops == []


class TestOperatorCommands:
    """Tests for operator-facing operations."""

    @pytest.mark.asyncio
    async def test_apply_for_entity(self, orchestrator, switch, rules):
        created = await orchestrator.apply_for_entity(rules, 100)

        assert created == rules.mirror_names()

    @pytest.mark.asyncio
    async def test_apply_for_entity_without_rules(self, orchestrator, switch, rules, lock_path):
        with pytest.raises(NoRulesForEntity) as exc:
            await orchestrator.apply_for_entity(rules, 999)

        assert exc.value.entity_id == 999

        assert not lock_path.exists()

    @pytest.mark.asyncio
    async def test_apply_for_entity_failure(self, orchestrator, switch, rules):
        switch.fail_create.add(rules.mirror_names()[1])

        with pytest.raises(BatchError):
            await orchestrator.apply_for_entity(rules, 100)

        assert switch.mirrors == {}

    @pytest.mark.asyncio
    async def test_apply_all_lock_held(self, orchestrator, switch, rules, foreign_holder):
        with pytest.raises(LockTimeout):
            await orchestrator.apply_all(rules)

        assert switch.ops == []

    @pytest.mark.asyncio
    async def test_remove_all(self, orchestrator, switch, rules):
        await orchestrator.apply_all(rules)

        summary = await orchestrator.remove_all(rules, 100)

        assert summary.success
        assert len(summary.removed) == 2
        assert switch.mirrors == {}

    @pytest.mark.asyncio
    async def test_remove_source(self, orchestrator, switch, rules):
        await orchestrator.apply_all(rules)

        summary = await orchestrator.remove_source(rules, 200)

        assert summary.removed == [rules.mirror_names()[1]]

    @pytest.mark.asyncio
    async def test_remove_destination_twice(self, orchestrator, switch, rules):
        await orchestrator.apply_all(rules)

        await orchestrator.remove_destination(rules, 100)
        summary = await orchestrator.remove_destination(rules, 100)

        assert summary.removed == []
        assert len(summary.missing) == 2


class TestConcurrency:
    """Overlapping invocations must serialize on the switch lock."""

    @pytest.mark.asyncio
    async def test_overlapping_batches_do_not_interleave(self, switch, settings, sleeper, lock_path):
        switch.ports["vmbr0"].append("tap300i0")
        rules = load_rules(
            RULES + "vmbr0 eno1 300 0\nvmbr0 entity200:0 300 0\n"
        ).rules

        def make():
            lock = SwitchLock(lock_path, timeout=5, poll_interval=0.01)
            return MirrorOrchestrator(switch, settings, lock=lock, sleep=sleeper)

        await asyncio.gather(
            make().apply_for_entity(rules, 100),
            make().apply_for_entity(rules, 300),
        )

        targets = [name.rsplit("_to_vm", 1)[1] for _, name in switch.ops]
        assert targets in (
            ["100i1", "100i1", "300i0", "300i0"],
            ["300i0", "300i0", "100i1", "100i1"],
        )
        assert len(switch.mirrors) == 4
