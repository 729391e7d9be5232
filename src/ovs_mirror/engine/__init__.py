"""Mirror Engine - declarative port-mirror reconciliation.

The engine keeps the mirrors described in a rule file in sync with the switch:
- Parse rule files into an immutable RuleSet
- Validate referenced bridges
- Wait for VM taps, then create mirrors idempotently by name
- Apply per-VM batches all-or-nothing with rollback
- Serialize concurrent hook invocations through one switch lock

Usage:
    from ovs_mirror.engine import MirrorOrchestrator, load_rules_file
    from ovs_mirror.switch import OVSSwitch

    rules = load_rules_file("/etc/ovs-mirror/mirrors.conf").rules
    orchestrator = MirrorOrchestrator(OVSSwitch(), settings)
    exit_code = await orchestrator.handle_event(rules, 100, "start")
"""

from ..errors import (
    MirrorError,
    ParseError,
    RuleFileNotFound,
    ReconcileError,
    BridgeNotFound,
    SourceNotFound,
    InterfaceTimeout,
    DestinationNotReady,
    SourceNotReady,
    SwitchCommandError,
    LockTimeout,
    BatchError,
    NoRulesForEntity,
)
from .schema import (
    SelectMode,
    Severity,
    PortSource,
    EntitySource,
    MirrorRule,
    RuleSet,
    LineDiagnostic,
    LoadResult,
    ValidationResult,
    EntityRole,
    ApplySummary,
    RemovalSummary,
    RuleFailure,
    tap_name,
)
from .parser import RuleParser, load_rules, load_rules_file
from .validator import TopologyValidator
from .waiter import InterfaceWaiter
from .reconciler import MirrorReconciler
from .executor import TransactionalApplier
from .roles import resolve_role
from .status import StatusReport, collect_status, format_status
from .orchestrator import (
    MirrorOrchestrator,
    Phase,
    EXIT_OK,
    EXIT_FAILURE,
    EXIT_LOCK_TIMEOUT,
)

__all__ = [
    # Main orchestrator
    "MirrorOrchestrator",
    "Phase",
    "EXIT_OK",
    "EXIT_FAILURE",
    "EXIT_LOCK_TIMEOUT",
    # Errors
    "MirrorError",
    "ParseError",
    "RuleFileNotFound",
    "ReconcileError",
    "BridgeNotFound",
    "SourceNotFound",
    "InterfaceTimeout",
    "DestinationNotReady",
    "SourceNotReady",
    "SwitchCommandError",
    "LockTimeout",
    "BatchError",
    "NoRulesForEntity",
    # Schema classes
    "SelectMode",
    "Severity",
    "PortSource",
    "EntitySource",
    "MirrorRule",
    "RuleSet",
    "LineDiagnostic",
    "LoadResult",
    "ValidationResult",
    "EntityRole",
    "ApplySummary",
    "RemovalSummary",
    "RuleFailure",
    "tap_name",
    # Parser
    "RuleParser",
    "load_rules",
    "load_rules_file",
    # Components (for advanced use)
    "TopologyValidator",
    "InterfaceWaiter",
    "MirrorReconciler",
    "TransactionalApplier",
    "resolve_role",
    "StatusReport",
    "collect_status",
    "format_status",
]
