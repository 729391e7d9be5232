"""Waiting for VM interfaces to appear on a bridge.

The hypervisor attaches a VM's tap devices to the switch some time after the
VM start event fires; reconciliation has to wait for them.
"""
import asyncio
import logging
from typing import Type

from ..errors import InterfaceTimeout
from ..switch.base import SwitchControl
from ..utils.polling import SleepFunc, wait_until

logger = logging.getLogger(__name__)


class InterfaceWaiter:
    """Poll a bridge until an interface shows up."""

    def __init__(
        self,
        switch: SwitchControl,
        max_wait: float,
        poll_interval: float,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.switch = switch
        self.max_wait = max_wait
        self.poll_interval = poll_interval
        self.sleep = sleep

    async def wait_for_interface(
        self,
        bridge: str,
        interface: str,
        error_cls: Type[InterfaceTimeout] = InterfaceTimeout,
        mirror_name: str = "",
    ) -> None:
        """
        Block until `interface` is a port of `bridge`.

        Args:
            bridge: Bridge to watch
            interface: Port name to wait for
            error_cls: InterfaceTimeout subclass raised on timeout
            mirror_name: Mirror being built, for the error

        Raises:
            InterfaceTimeout: If the interface is still missing at max_wait
        """
        def _progress(waited: float) -> None:
            logger.info(f"Waiting for {interface} on {bridge}... ({waited:g}s)")

        async def _present() -> bool:
            return await self.switch.port_exists(bridge, interface)

        found = await wait_until(
            _present,
            timeout=self.max_wait,
            interval=self.poll_interval,
            sleep=self.sleep,
            on_retry=_progress,
        )
        if not found:
            error = error_cls(bridge, interface, self.max_wait, mirror_name or None)
            logger.error(str(error))
            raise error

        logger.info(f"Found {interface} on {bridge}")
