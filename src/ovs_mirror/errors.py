"""Exception hierarchy for the mirror engine.

Per-rule failures (everything under ReconcileError) are recoverable: they fail
one rule and the caller decides whether to continue or roll back. LockTimeout
is the only error that aborts a whole invocation.
"""
from typing import Optional


class MirrorError(Exception):
    """Base class for all mirror engine errors."""
    pass


class ParseError(MirrorError):
    """A rule-file line could not be parsed."""

    def __init__(self, message: str, line_number: int = 0):
        super().__init__(message)
        self.line_number = line_number


class RuleFileNotFound(MirrorError):
    """The rule file does not exist."""
    pass


class ReconcileError(MirrorError):
    """Applying or removing a single mirror failed."""

    def __init__(self, message: str, mirror_name: Optional[str] = None):
        super().__init__(message)
        self.mirror_name = mirror_name


class BridgeNotFound(ReconcileError):
    """A rule references a bridge the switch does not have."""

    def __init__(self, bridge: str, mirror_name: Optional[str] = None):
        super().__init__(f"Bridge '{bridge}' does not exist in OVS", mirror_name)
        self.bridge = bridge


class SourceNotFound(ReconcileError):
    """A physical source port is missing from its bridge."""
    pass


class InterfaceTimeout(ReconcileError):
    """An interface did not appear on its bridge within the wait budget."""

    def __init__(
        self,
        bridge: str,
        interface: str,
        waited: float,
        mirror_name: Optional[str] = None,
    ):
        super().__init__(
            f"Timeout waiting for {interface} on {bridge} (waited {waited:g}s)",
            mirror_name,
        )
        self.bridge = bridge
        self.interface = interface
        self.waited = waited


class DestinationNotReady(InterfaceTimeout):
    """The destination tap never appeared."""
    pass


class SourceNotReady(InterfaceTimeout):
    """A virtual source tap never appeared."""
    pass


class SwitchCommandError(ReconcileError):
    """The switch rejected a command."""

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"'{' '.join(command)}' failed: {detail}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class LockTimeout(MirrorError):
    """The switch lock could not be acquired in time."""

    def __init__(self, path: str, timeout: float):
        super().__init__(
            f"Could not acquire lock {path} within {timeout:g}s; "
            f"another invocation is still modifying the switch"
        )
        self.path = path
        self.timeout = timeout


class BatchError(MirrorError):
    """A batch failed and the mirrors it had created were rolled back.

    `rolled_back` names the mirrors actually removed, newest first.
    `rollback_failures` holds the removals that failed; those mirrors are
    still on the switch.
    """

    def __init__(
        self,
        cause: ReconcileError,
        rolled_back: list[str],
        rollback_failures: Optional[list] = None,
    ):
        self.cause = cause
        self.rolled_back = rolled_back
        self.rollback_failures = rollback_failures or []
        message = f"Batch failed ({cause}); rolled back {len(rolled_back)} mirror(s)"
        if self.rollback_failures:
            message += f", {len(self.rollback_failures)} could not be removed"
        super().__init__(message)


class NoRulesForEntity(MirrorError):
    """No rule targets the requested VM."""

    def __init__(self, entity_id: int):
        super().__init__(f"No mirror rules found for VM {entity_id}")
        self.entity_id = entity_id
