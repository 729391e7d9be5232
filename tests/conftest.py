"""Shared test doubles: an in-memory switch and a recording sleep."""
import asyncio
import fcntl
import logging
import os
from types import SimpleNamespace
from typing import Optional

import pytest

from ovs_mirror.errors import SwitchCommandError
from ovs_mirror.switch.base import MirrorSpec, SwitchControl, SwitchMirror


class FakeSwitch(SwitchControl):
    """In-memory switch.

    Ports registered with `add_port_later` appear on their bridge only after
    that many `list_ports` calls, which is how late VM taps are simulated.
    Every mutating call is appended to `ops`.
    """

    def __init__(self, bridges: Optional[dict[str, list[str]]] = None):
        self.ports: dict[str, list[str]] = {
            bridge: list(ports) for bridge, ports in (bridges or {}).items()
        }
        self.bridge_mirrors: dict[str, list[str]] = {b: [] for b in self.ports}
        self.mirrors: dict[str, SwitchMirror] = {}
        self.pending: dict[tuple[str, str], int] = {}
        self.fail_create: set[str] = set()
        self.fail_destroy: set[str] = set()
        self.fail_promisc = False
        self.promisc: dict[str, bool] = {}
        self.ops: list[tuple] = []
        self._next_uuid = 0

    def add_port_later(self, bridge: str, port: str, after_checks: int) -> None:
        self.pending[(bridge, port)] = after_checks

    def mirror_names(self) -> list[str]:
        return sorted(m.name for m in self.mirrors.values())

    # Topology

    async def bridge_exists(self, bridge: str) -> bool:
        await asyncio.sleep(0)
        return bridge in self.ports

    async def list_bridges(self) -> list[str]:
        return list(self.ports)

    async def list_ports(self, bridge: str) -> list[str]:
        await asyncio.sleep(0)
        for (br, port), remaining in list(self.pending.items()):
            if br != bridge:
                continue
            if remaining <= 1:
                del self.pending[(br, port)]
                self.ports[br].append(port)
            else:
                self.pending[(br, port)] = remaining - 1
        return list(self.ports.get(bridge, []))

    async def get_port(self, name: str) -> Optional[str]:
        for ports in self.ports.values():
            if name in ports:
                return f"port-{name}"
        return None

    # Mirrors

    async def create_mirror(self, bridge: str, spec: MirrorSpec) -> str:
        await asyncio.sleep(0)
        if spec.name in self.fail_create:
            raise SwitchCommandError(["ovs-vsctl", "create", "Mirror"], 1, "injected failure")
        if bridge not in self.ports:
            raise SwitchCommandError(["ovs-vsctl", "add", "Bridge", bridge], 1, "no bridge")
        self._next_uuid += 1
        uuid = f"uuid-{self._next_uuid}"
        self.mirrors[uuid] = SwitchMirror(
            uuid=uuid,
            name=spec.name,
            select_src_ports=list(spec.select_src_ports),
            select_dst_ports=list(spec.select_dst_ports),
            output_port=spec.output_port,
        )
        self.bridge_mirrors[bridge].append(uuid)
        self.ops.append(("create", spec.name))
        return uuid

    async def destroy_mirror(self, uuid: str) -> None:
        await asyncio.sleep(0)
        mirror = self.mirrors.get(uuid)
        if mirror and mirror.name in self.fail_destroy:
            raise SwitchCommandError(["ovs-vsctl", "destroy", "Mirror", uuid], 1, "injected failure")
        if mirror:
            del self.mirrors[uuid]
            self.ops.append(("destroy", mirror.name))

    async def detach_mirror_from_bridge(self, bridge: str, uuid: str) -> None:
        if uuid in self.bridge_mirrors.get(bridge, []):
            self.bridge_mirrors[bridge].remove(uuid)

    async def get_bridge_mirrors(self, bridge: str) -> list[str]:
        return list(self.bridge_mirrors.get(bridge, []))

    async def find_mirror_by_name(self, name: str) -> Optional[str]:
        for uuid, mirror in self.mirrors.items():
            if mirror.name == name:
                return uuid
        return None

    async def list_mirrors(self) -> list[SwitchMirror]:
        return list(self.mirrors.values())

    # Interfaces

    async def set_promiscuous(self, interface: str, enabled: bool) -> None:
        if self.fail_promisc:
            raise SwitchCommandError(["ip", "link", "set", interface], 2, "Cannot find device")
        self.promisc[interface] = enabled


class RecordingSleep:
    """Async sleep replacement that records durations and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


@pytest.fixture
def switch():
    """Switch with one bridge holding a physical port and two VM taps."""
    return FakeSwitch({"vmbr0": ["eno1", "tap100i1", "tap200i0"]})


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "ovs-mirror.lock"


@pytest.fixture
def make_switch():
    """Factory for switches with a custom topology."""
    return FakeSwitch


@pytest.fixture
def foreign_holder(lock_path):
    """Hold the lock through a separate open file, like another process."""
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    os.write(fd, b"4242\n")
    yield fd
    fcntl.flock(fd, fcntl.LOCK_UN)
    os.close(fd)


CLI_RULES = """\
vmbr0 eno1          100 1
vmbr0 entity200:0   100 1
"""


@pytest.fixture
def cli_env(tmp_path, lock_path, switch, monkeypatch):
    """Rule file, settings file and a patched switch for entry-point tests."""
    for key in list(os.environ):
        if key.startswith("OVS_MIRROR_"):
            monkeypatch.delenv(key)

    rules = tmp_path / "mirrors.conf"
    rules.write_text(CLI_RULES)
    settings = tmp_path / "ovs-mirror.conf"
    settings.write_text(
        f"LOG_DIR={tmp_path / 'log'}\n"
        f"LOCK_FILE={lock_path}\n"
        "LOCK_TIMEOUT=0.3\n"
        "MAX_WAIT=0\n"
        "WAIT_INTERVAL=1\n"
        f"RULES_FILE={rules}\n"
    )
    monkeypatch.setattr("ovs_mirror.cli.OVSSwitch", lambda: switch)
    monkeypatch.setattr("ovs_mirror.hook.OVSSwitch", lambda: switch)

    yield SimpleNamespace(rules=rules, settings=settings, switch=switch, log_dir=tmp_path / "log")

    for name in ("ovs_mirror", "ovs_mirror.audit"):
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
    logging.getLogger("ovs_mirror.audit").propagate = True
