#!/usr/bin/env python3
"""VM lifecycle hook.

Bind as the hookscript of every VM listed by `ovs-mirror --entities`. The
hypervisor calls it as:

    ovs-mirror-hook VMID PHASE

Only post-start, pre-stop and post-stop are acted on. The hook exits 0 even
when a mirror fails (a VM must not fail to start because of mirroring)
unless --strict is given; a lock timeout always exits non-zero.
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config.settings import Settings
from .engine import EXIT_FAILURE, EXIT_OK, MirrorOrchestrator, RuleFileNotFound, load_rules_file
from .switch.ovs import OVSSwitch
from .utils.audit_log import setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger("ovs_mirror.hook")

# Hypervisor phase name -> orchestrator phase
PHASE_MAP = {
    "post-start": "start",
    "start": "start",
    "pre-stop": "pre-stop",
    "post-stop": "post-stop",
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the lifecycle hook."""
    parser = argparse.ArgumentParser(
        prog="ovs-mirror-hook",
        description="Reconcile OVS mirrors on VM lifecycle events",
    )
    parser.add_argument("vmid", type=int, help="VM id")
    parser.add_argument("phase", help="Lifecycle phase (e.g. post-start, pre-stop)")
    parser.add_argument("--strict", action="store_true",
                        help="Exit non-zero when any mirror operation fails")
    parser.add_argument("--settings", metavar="FILE",
                        help="Use alternate global settings file")
    args = parser.parse_args(argv)

    phase = PHASE_MAP.get(args.phase)
    if phase is None:
        # pre-start and other phases need no mirror work
        return EXIT_OK

    settings = Settings.load(args.settings)
    setup_logging(settings.log_dir)
    setup_audit_logging(settings.log_dir)

    try:
        rules = load_rules_file(settings.rules_file).rules
    except RuleFileNotFound as e:
        logger.error(f"VM {args.vmid} {args.phase}: {e}")
        return EXIT_FAILURE if args.strict else EXIT_OK

    orchestrator = MirrorOrchestrator(OVSSwitch(), settings)
    return asyncio.run(
        orchestrator.handle_event(rules, args.vmid, phase, strict=args.strict)
    )


if __name__ == "__main__":
    sys.exit(main())
