"""Utility modules for logging, auditing, polling and locking."""
from .logging_config import setup_logging, timed, perf_logger
from .audit_log import setup_audit_logging, log_change, get_recent_changes
from .polling import wait_until, poll_attempts
from .lock import SwitchLock

__all__ = [
    "setup_logging",
    "timed",
    "perf_logger",
    "setup_audit_logging",
    "log_change",
    "get_recent_changes",
    "wait_until",
    "poll_attempts",
    "SwitchLock",
]
