"""Base switch abstraction for mirror management."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MirrorSpec:
    """Structured arguments for creating a mirror.

    Port fields hold port references as returned by `SwitchControl.get_port`.
    """
    name: str
    output_port: str
    select_src_ports: list[str] = field(default_factory=list)
    select_dst_ports: list[str] = field(default_factory=list)


@dataclass
class SwitchMirror:
    """A live mirror object owned by the switch."""
    uuid: str
    name: str
    select_src_ports: list[str] = field(default_factory=list)
    select_dst_ports: list[str] = field(default_factory=list)
    output_port: Optional[str] = None


class SwitchControl(ABC):
    """Abstract control interface for a software switch.

    All arguments are structured values; implementations must never build
    shell strings from them.
    """

    # Topology
    @abstractmethod
    async def bridge_exists(self, bridge: str) -> bool:
        """Check whether a bridge exists."""
        pass

    @abstractmethod
    async def list_bridges(self) -> list[str]:
        """List all bridge names."""
        pass

    @abstractmethod
    async def list_ports(self, bridge: str) -> list[str]:
        """List port names attached to a bridge."""
        pass

    @abstractmethod
    async def get_port(self, name: str) -> Optional[str]:
        """Get the reference of a port, or None if it does not exist."""
        pass

    # Mirrors
    @abstractmethod
    async def create_mirror(self, bridge: str, spec: MirrorSpec) -> str:
        """Create a mirror and attach it to a bridge.

        Creation and attachment happen atomically.

        Returns:
            The uuid of the new mirror
        """
        pass

    @abstractmethod
    async def destroy_mirror(self, uuid: str) -> None:
        """Destroy a mirror object. Missing mirrors are ignored."""
        pass

    @abstractmethod
    async def detach_mirror_from_bridge(self, bridge: str, uuid: str) -> None:
        """Remove a mirror from a bridge's mirror set."""
        pass

    @abstractmethod
    async def get_bridge_mirrors(self, bridge: str) -> list[str]:
        """List uuids of the mirrors attached to a bridge."""
        pass

    @abstractmethod
    async def find_mirror_by_name(self, name: str) -> Optional[str]:
        """Get the uuid of the mirror with this name, if any."""
        pass

    @abstractmethod
    async def list_mirrors(self) -> list[SwitchMirror]:
        """List all mirror objects on the switch."""
        pass

    # Interfaces
    @abstractmethod
    async def set_promiscuous(self, interface: str, enabled: bool) -> None:
        """Set promiscuous mode on a host interface."""
        pass

    async def port_exists(self, bridge: str, port: str) -> bool:
        """Check whether a port is attached to a bridge."""
        return port in await self.list_ports(bridge)

    async def find_mirror_bridge(self, uuid: str) -> Optional[str]:
        """Find the bridge a mirror is attached to."""
        for bridge in await self.list_bridges():
            if uuid in await self.get_bridge_mirrors(bridge):
                return bridge
        return None
