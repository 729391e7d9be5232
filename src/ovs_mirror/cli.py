#!/usr/bin/env python3
"""Operator CLI for ovs-mirror.

Usage:
    ovs-mirror [--all | --vm ID | --cleanup ID | --cleanup-dest ID |
                --cleanup-source ID | --status | --validate | --entities |
                --history [--mirror NAME] [--limit N]]
               [--config FILE] [--settings FILE] [--json] [-v]

Config files:
    /etc/ovs-mirror/mirrors.conf    Mirror rules
    /etc/ovs-mirror/ovs-mirror.conf Global settings
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from .config.settings import Settings
from .engine import (
    EXIT_FAILURE,
    EXIT_LOCK_TIMEOUT,
    EXIT_OK,
    BatchError,
    LockTimeout,
    LoadResult,
    MirrorOrchestrator,
    NoRulesForEntity,
    RuleFileNotFound,
    TopologyValidator,
    collect_status,
    format_status,
    load_rules_file,
)
from .switch.base import SwitchControl
from .switch.ovs import OVSSwitch
from .utils.audit_log import AUDIT_FILE_NAME, get_recent_changes, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger("ovs_mirror.cli")

# Failure counts are reported through the exit status, capped to stay clear
# of the shell's signal range.
MAX_FAILURE_EXIT = 100


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ovs-mirror",
        description="Configure Open vSwitch port mirrors from a rule file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Configure every rule
    ovs-mirror --all

    # Configure the mirrors that deliver into VM 100
    ovs-mirror --vm 100

    # Show rules and which mirrors are live
    ovs-mirror --status

    # Last changes made to one mirror
    ovs-mirror --history --mirror mirror_vmbr0_eno1_to_vm100i1
""",
    )
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument("--all", dest="mode", action="store_const", const="all",
                       help="Configure all mirrors (default)")
    modes.add_argument("--vm", type=int, metavar="VMID",
                       help="Configure mirrors for a specific destination VM")
    modes.add_argument("--cleanup", type=int, metavar="VMID",
                       help="Remove all mirrors for VM (source and destination)")
    modes.add_argument("--cleanup-dest", type=int, metavar="VMID",
                       help="Remove mirrors where VM is a destination")
    modes.add_argument("--cleanup-source", type=int, metavar="VMID",
                       help="Remove mirrors where VM is a source")
    modes.add_argument("--status", dest="mode", action="store_const", const="status",
                       help="Show current mirror status and health check")
    modes.add_argument("--validate", dest="mode", action="store_const", const="validate",
                       help="Validate config file without making changes")
    modes.add_argument("--entities", dest="mode", action="store_const", const="entities",
                       help="List VM ids referenced by the rules")
    modes.add_argument("--history", dest="mode", action="store_const", const="history",
                       help="Show recent mirror changes from the audit log")
    parser.add_argument("--config", metavar="FILE",
                        help="Use alternate rule file")
    parser.add_argument("--settings", metavar="FILE",
                        help="Use alternate global settings file")
    parser.add_argument("--json", action="store_true",
                        help="Print --status or --history output as JSON")
    parser.add_argument("--mirror", metavar="NAME",
                        help="Limit --history to one mirror")
    parser.add_argument("--limit", type=int, default=20, metavar="N",
                        help="Number of --history entries to show (default: 20)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    return parser


def resolve_mode(args: argparse.Namespace) -> tuple[str, Optional[int]]:
    """Return (mode, target VM id) from parsed arguments."""
    for mode in ("vm", "cleanup", "cleanup_dest", "cleanup_source"):
        value = getattr(args, mode)
        if value is not None:
            return mode.replace("_", "-"), value
    return args.mode or "all", None


async def run_mode(
    mode: str,
    target: Optional[int],
    loaded: LoadResult,
    switch: SwitchControl,
    settings: Settings,
    as_json: bool = False,
) -> int:
    """Execute one CLI mode and return its exit status."""
    rules = loaded.rules

    if mode == "status":
        report = await collect_status(rules, switch)
        print(json.dumps(report.to_dict(), indent=2) if as_json else format_status(report))
        return EXIT_OK

    if mode == "validate":
        result = await TopologyValidator(switch).validate_bridges(rules)
        problems = len(result.errors) + len(loaded.errors)
        if problems:
            for error in result.errors:
                print(f"ERROR: {error}")
            for diag in loaded.errors:
                print(f"ERROR: {diag}")
            return EXIT_FAILURE
        print(f"Config validation passed ({len(rules)} rules)")
        return EXIT_OK

    if mode == "entities":
        for entity_id in rules.entity_ids():
            print(entity_id)
        return EXIT_OK

    orchestrator = MirrorOrchestrator(switch, settings)
    try:
        if mode == "all":
            summary = await orchestrator.apply_all(rules)
            return min(summary.failed, MAX_FAILURE_EXIT)

        if mode == "vm":
            try:
                await orchestrator.apply_for_entity(rules, target)
            except (BatchError, NoRulesForEntity) as e:
                logger.error(str(e))
                return EXIT_FAILURE
            return EXIT_OK

        if mode == "cleanup":
            removal = await orchestrator.remove_all(rules, target)
        elif mode == "cleanup-dest":
            removal = await orchestrator.remove_destination(rules, target)
        else:
            removal = await orchestrator.remove_source(rules, target)
        return min(removal.failed, MAX_FAILURE_EXIT)

    except LockTimeout as e:
        logger.error(str(e))
        return EXIT_LOCK_TIMEOUT


def show_history(
    settings: Settings,
    mirror_name: Optional[str] = None,
    limit: int = 20,
    as_json: bool = False,
) -> int:
    """Print recent audit log entries, newest first."""
    records = get_recent_changes(
        Path(settings.log_dir) / AUDIT_FILE_NAME, mirror_name=mirror_name, limit=limit
    )
    if as_json:
        print(json.dumps([asdict(r) for r in records], indent=2))
        return EXIT_OK

    if not records:
        print("No recorded changes")
    for r in records:
        line = f"{r.timestamp} {r.operation:<14} {'OK' if r.success else 'FAIL'} {r.mirror_name}"
        if r.error:
            line += f": {r.error}"
        print(line)
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the operator CLI."""
    args = build_parser().parse_args(argv)
    mode, target = resolve_mode(args)

    settings = Settings.load(args.settings)
    setup_logging(settings.log_dir, level=logging.DEBUG if args.verbose else None)
    if mode == "history":
        return show_history(settings, args.mirror, args.limit, args.json)
    if mode not in ("status", "validate", "entities"):
        setup_audit_logging(settings.log_dir)

    config_file = args.config or settings.rules_file
    try:
        loaded = load_rules_file(config_file)
    except RuleFileNotFound as e:
        logger.error(str(e))
        return EXIT_FAILURE

    logger.info(f"Script started: mode={mode}, config={config_file}, rules={len(loaded.rules)}")

    try:
        rc = asyncio.run(run_mode(mode, target, loaded, OVSSwitch(), settings, args.json))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130

    logger.info(f"Script finished (exit code {rc})")
    return rc


if __name__ == "__main__":
    sys.exit(main())
