"""Open vSwitch control through ovs-vsctl.

Every command is run as an argument vector with asyncio subprocesses; no
shell is involved, so bridge, port and mirror names are never interpreted.

Mirror rows are not roots in the OVSDB schema: a Mirror that no Bridge
references is garbage-collected at commit. Creation and attachment are
therefore issued as one ovs-vsctl transaction:

    ovs-vsctl -- --id=@m create Mirror name=... select-src-port=<port> \\
              output-port=<port> -- add Bridge vmbr0 mirrors @m

String values are passed JSON-quoted so names with dots or slashes stay
single OVSDB atoms.
"""
import asyncio
import csv
import json
import logging
from typing import Optional

from ..errors import SwitchCommandError
from ..utils.logging_config import timed
from .base import MirrorSpec, SwitchControl, SwitchMirror

logger = logging.getLogger(__name__)

OVS_VSCTL = "ovs-vsctl"
IP = "ip"
DEFAULT_TIMEOUT = 30


class OVSSwitch(SwitchControl):
    """Switch control backed by the local ovs-vsctl and ip tools."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        """
        Args:
            timeout: Seconds ovs-vsctl waits for ovsdb-server before failing
        """
        self.timeout = timeout

    async def _run_cmd(self, cmd: list[str]) -> tuple[int, str, str]:
        """Run a command and return (return_code, stdout, stderr)."""
        logger.debug(f"Running: {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        return (
            process.returncode or 0,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    async def _vsctl(self, *args: str, check: bool = True) -> tuple[int, str]:
        """Run ovs-vsctl; raise SwitchCommandError on failure when `check`."""
        cmd = [OVS_VSCTL, f"--timeout={self.timeout}", *args]
        code, stdout, stderr = await self._run_cmd(cmd)
        if check and code != 0:
            raise SwitchCommandError(cmd, code, stderr)
        return code, stdout

    # Topology

    async def bridge_exists(self, bridge: str) -> bool:
        # br-exists exits 2 for a missing bridge
        code, _ = await self._vsctl("br-exists", bridge, check=False)
        return code == 0

    async def list_bridges(self) -> list[str]:
        _, out = await self._vsctl("list-br")
        return [line for line in out.splitlines() if line]

    async def list_ports(self, bridge: str) -> list[str]:
        code, out = await self._vsctl("list-ports", bridge, check=False)
        if code != 0:
            return []
        return [line for line in out.splitlines() if line]

    async def get_port(self, name: str) -> Optional[str]:
        code, out = await self._vsctl(
            "--if-exists", "get", "Port", name, "_uuid", check=False
        )
        uuid = out.strip()
        return uuid if code == 0 and uuid else None

    # Mirrors

    @timed("create_mirror")
    async def create_mirror(self, bridge: str, spec: MirrorSpec) -> str:
        columns = [f"name={json.dumps(spec.name)}", f"output-port={spec.output_port}"]
        if spec.select_src_ports:
            columns.append(f"select-src-port={','.join(spec.select_src_ports)}")
        if spec.select_dst_ports:
            columns.append(f"select-dst-port={','.join(spec.select_dst_ports)}")

        _, out = await self._vsctl(
            "--", "--id=@m", "create", "Mirror", *columns,
            "--", "add", "Bridge", bridge, "mirrors", "@m",
        )
        return out.strip()

    async def destroy_mirror(self, uuid: str) -> None:
        await self._vsctl("--if-exists", "destroy", "Mirror", uuid)

    async def detach_mirror_from_bridge(self, bridge: str, uuid: str) -> None:
        await self._vsctl("--if-exists", "remove", "Bridge", bridge, "mirrors", uuid)

    async def get_bridge_mirrors(self, bridge: str) -> list[str]:
        code, out = await self._vsctl(
            "--bare", "get", "Bridge", bridge, "mirrors", check=False
        )
        if code != 0:
            return []
        return out.split()

    async def find_mirror_by_name(self, name: str) -> Optional[str]:
        _, out = await self._vsctl(
            "--bare", "--columns=_uuid", "find", "Mirror", f"name={json.dumps(name)}"
        )
        uuids = out.split()
        return uuids[0] if uuids else None

    async def list_mirrors(self) -> list[SwitchMirror]:
        _, out = await self._vsctl(
            "--format=csv", "--data=bare", "--no-headings",
            "--columns=_uuid,name,select_src_port,select_dst_port,output_port",
            "list", "Mirror",
        )
        mirrors = []
        for row in csv.reader(out.splitlines()):
            if not row:
                continue
            if len(row) != 5:
                logger.warning(f"Unexpected Mirror row: {row}")
                continue
            uuid, name, src, dst, output = row
            mirrors.append(SwitchMirror(
                uuid=uuid,
                name=name,
                select_src_ports=src.split(),
                select_dst_ports=dst.split(),
                output_port=output or None,
            ))
        return mirrors

    # Interfaces

    async def set_promiscuous(self, interface: str, enabled: bool) -> None:
        cmd = [IP, "link", "set", interface, "promisc", "on" if enabled else "off"]
        code, _, stderr = await self._run_cmd(cmd)
        if code != 0:
            raise SwitchCommandError(cmd, code, stderr)
