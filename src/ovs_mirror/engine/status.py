"""Read-only health report: configured rules vs. live mirrors."""
import logging
from dataclasses import dataclass, field

from ..switch.base import SwitchControl, SwitchMirror
from .schema import MirrorRule, RuleSet

logger = logging.getLogger(__name__)


@dataclass
class StatusReport:
    """Configured rules matched by name against the switch."""
    rules: list[MirrorRule] = field(default_factory=list)
    live_mirrors: list[SwitchMirror] = field(default_factory=list)
    present: list[str] = field(default_factory=list)
    missing_from_switch: list[str] = field(default_factory=list)
    unmanaged: list[str] = field(default_factory=list)
    topology: dict[str, list[str]] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return not self.missing_from_switch

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "topology": self.topology,
            "rules": [
                {
                    "bridge": r.bridge,
                    "source": str(r.source),
                    "source_interface": r.source_interface,
                    "dest_entity_id": r.dest_entity_id,
                    "dest_interface": r.dest_interface,
                    "promiscuous": r.promiscuous,
                    "select": r.select_mode.value,
                    "mirror_name": r.mirror_name,
                }
                for r in self.rules
            ],
            "present": self.present,
            "missing_from_switch": self.missing_from_switch,
            "unmanaged": self.unmanaged,
        }


async def collect_status(rules: RuleSet, switch: SwitchControl) -> StatusReport:
    """
    Build a status report. Never modifies the switch.

    Args:
        rules: Loaded rule set
        switch: Switch to inspect

    Returns:
        StatusReport partitioning rules into present / missing
    """
    report = StatusReport(rules=list(rules))

    for bridge in await switch.list_bridges():
        report.topology[bridge] = await switch.list_ports(bridge)

    report.live_mirrors = await switch.list_mirrors()
    live_names = {m.name for m in report.live_mirrors}
    configured = set(rules.mirror_names())

    for name in rules.mirror_names():
        if name in live_names:
            report.present.append(name)
        else:
            report.missing_from_switch.append(name)

    report.unmanaged = sorted(live_names - configured)

    logger.debug(
        f"Status: {len(report.present)} active, "
        f"{len(report.missing_from_switch)} missing, "
        f"{len(report.unmanaged)} unmanaged"
    )
    return report


def format_status(report: StatusReport) -> str:
    """Render a status report for the terminal."""
    lines = ["=== OVS Bridges ==="]
    if not report.topology:
        lines.append("(no bridges)")
    for bridge, ports in report.topology.items():
        lines.append(f"  Bridge: {bridge}")
        lines.append(f"    Ports: {', '.join(ports) or 'none'}")

    lines += ["", "=== Active Mirrors ==="]
    if not report.live_mirrors:
        lines.append("(no mirrors)")
    for mirror in report.live_mirrors:
        lines.append(f"  {mirror.name} ({mirror.uuid})")

    lines += ["", "=== Config File Rules ==="]
    if not report.rules:
        lines.append("(no rules loaded)")
    else:
        row = "  {:<4} {:<15} {:<18} {:<10} {:<12} {}"
        lines.append(row.format("#", "Bridge", "Source", "Dest VM", "Dest TAP", "Mirror Name"))
        lines.append(row.format("---", "-" * 15, "-" * 18, "-" * 10, "-" * 12, "---"))
        for idx, rule in enumerate(report.rules, start=1):
            lines.append(row.format(
                idx, rule.bridge, str(rule.source), f"VM{rule.dest_entity_id}",
                rule.dest_interface, rule.mirror_name,
            ))
        lines.append(f"  Total: {len(report.rules)} rules")

    lines += ["", "=== Mirror Health Check ==="]
    if not report.rules:
        lines.append("(no rules to check)")
    else:
        missing = set(report.missing_from_switch)
        for name in (r.mirror_name for r in report.rules):
            if name in missing:
                lines.append(f"  [MISS] {name} (not active in OVS)")
            else:
                lines.append(f"  [OK]   {name}")
        for name in report.unmanaged:
            lines.append(f"  [----] {name} (not in config)")
        lines.append(
            f"  Result: {len(report.present)} active, "
            f"{len(report.missing_from_switch)} missing"
        )

    return "\n".join(lines)
