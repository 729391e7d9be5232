"""Idempotent create/destroy of single mirrors.

A rule is always applied as remove-then-create under its stable name, so a
half-configured or outdated mirror left by an earlier run is replaced rather
than patched.
"""
import logging
from typing import Optional

from ..errors import (
    BridgeNotFound,
    DestinationNotReady,
    ReconcileError,
    SourceNotFound,
    SourceNotReady,
    SwitchCommandError,
)
from ..switch.base import MirrorSpec, SwitchControl
from ..utils.audit_log import log_change
from ..utils.logging_config import timed
from .schema import MirrorRule, SelectMode
from .waiter import InterfaceWaiter

logger = logging.getLogger(__name__)


class MirrorReconciler:
    """Apply and remove individual mirrors on the switch."""

    def __init__(self, switch: SwitchControl, waiter: InterfaceWaiter):
        self.switch = switch
        self.waiter = waiter

    @timed("apply_rule")
    async def apply_rule(self, rule: MirrorRule) -> str:
        """
        Create the mirror described by a rule, replacing any same-named one.

        Args:
            rule: Rule to apply

        Returns:
            Switch uuid of the created mirror

        Raises:
            BridgeNotFound: Bridge missing
            DestinationNotReady: Destination tap did not appear in time
            SourceNotReady: Virtual source tap did not appear in time
            SourceNotFound: Physical source port missing
            ReconcileError: Switch rejected the change
        """
        name = rule.mirror_name
        bridge = rule.bridge
        src_port = rule.source_interface
        dest_tap = rule.dest_interface

        if not await self.switch.bridge_exists(bridge):
            raise BridgeNotFound(bridge, name)

        await self.remove_mirror(name)

        await self.waiter.wait_for_interface(
            bridge, dest_tap, DestinationNotReady, name
        )

        if rule.source.is_virtual:
            await self.waiter.wait_for_interface(
                bridge, src_port, SourceNotReady, name
            )
        elif not await self.switch.port_exists(bridge, src_port):
            raise SourceNotFound(
                f"Source port {src_port} does not exist on bridge {bridge}", name
            )

        if rule.promiscuous:
            await self._enable_promiscuous(src_port)

        src_ref = await self.switch.get_port(src_port)
        dest_ref = await self.switch.get_port(dest_tap)
        if src_ref is None or dest_ref is None:
            missing = src_port if src_ref is None else dest_tap
            raise ReconcileError(f"Port {missing} disappeared from {bridge}", name)

        spec = MirrorSpec(
            name=name,
            output_port=dest_ref,
            select_src_ports=[src_ref] if rule.select_mode != SelectMode.DST_ONLY else [],
            select_dst_ports=[src_ref] if rule.select_mode != SelectMode.SRC_ONLY else [],
        )
        parameters = {
            "source": src_port,
            "destination": dest_tap,
            "select": rule.select_mode.value,
        }

        logger.info(
            f"Creating {name} on {bridge} ({src_port} -> {dest_tap}, "
            f"select={rule.select_mode.value})"
        )
        try:
            uuid = await self.switch.create_mirror(bridge, spec)
        except SwitchCommandError as e:
            log_change("create_mirror", name, False, bridge=bridge,
                       parameters=parameters, error=str(e))
            raise ReconcileError(f"Failed to create mirror {name}: {e}", name) from e

        log_change("create_mirror", name, True, bridge=bridge, uuid=uuid,
                   parameters=parameters)
        return uuid

    async def remove_mirror(self, mirror_name: str) -> bool:
        """
        Remove a mirror by name from whichever bridge holds it.

        Removing a mirror that does not exist is a no-op.

        Returns:
            True if a mirror was removed

        Raises:
            ReconcileError: Switch rejected the removal
        """
        uuid = await self.switch.find_mirror_by_name(mirror_name)
        if not uuid:
            logger.debug(f"Mirror {mirror_name} not present, nothing to remove")
            return False

        bridge: Optional[str] = await self.switch.find_mirror_bridge(uuid)
        logger.info(f"Removing mirror {mirror_name} (UUID: {uuid})")
        try:
            if bridge:
                await self.switch.detach_mirror_from_bridge(bridge, uuid)
            await self.switch.destroy_mirror(uuid)
        except SwitchCommandError as e:
            log_change("remove_mirror", mirror_name, False, bridge=bridge,
                       uuid=uuid, error=str(e))
            raise ReconcileError(
                f"Failed to remove mirror {mirror_name}: {e}", mirror_name
            ) from e

        log_change("remove_mirror", mirror_name, True, bridge=bridge, uuid=uuid)
        return True

    async def _enable_promiscuous(self, interface: str) -> None:
        logger.info(f"Setting promiscuous mode on {interface}")
        try:
            await self.switch.set_promiscuous(interface, True)
        except SwitchCommandError as e:
            logger.warning(f"Failed to set promisc on {interface}: {e}")
