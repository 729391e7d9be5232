"""Audit logging for mirror changes.

Every mirror created or removed on the switch is written as one JSON line to
a dedicated audit file, separate from the diagnostic log:

    {"timestamp": "...", "operation": "create_mirror", "mirror_name": "...",
     "bridge": "vmbr0", "success": true, ...}
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

AUDIT_FILE_NAME = "ovs-mirror-audit.log"

# Create dedicated audit logger
audit_logger = logging.getLogger("ovs_mirror.audit")


def setup_audit_logging(log_dir: Union[str, Path]) -> Optional[Path]:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for the audit log

    Returns:
        Path of the audit file, or None if it cannot be opened
    """
    audit_file = Path(log_dir) / AUDIT_FILE_NAME

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()
    # Don't propagate to the diagnostic log
    audit_logger.propagate = False

    try:
        audit_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            audit_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=10,
            encoding="utf-8",
        )
    except OSError as e:
        logging.getLogger(__name__).warning(
            f"Audit logging disabled, cannot open {audit_file}: {e}"
        )
        return None

    # Use JSON format for machine-readability
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    return audit_file


@dataclass
class ChangeRecord:
    """Record of a mirror change on the switch."""
    timestamp: str
    operation: str  # create_mirror, remove_mirror
    mirror_name: str
    success: bool
    bridge: Optional[str] = None
    uuid: Optional[str] = None
    parameters: dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


def log_change(
    operation: str,
    mirror_name: str,
    success: bool,
    bridge: Optional[str] = None,
    uuid: Optional[str] = None,
    parameters: Optional[dict] = None,
    error: Optional[str] = None,
) -> ChangeRecord:
    """Log a mirror change.

    Args:
        operation: The operation performed ("create_mirror", "remove_mirror")
        mirror_name: Name of the mirror affected
        success: Whether the operation succeeded
        bridge: Bridge holding the mirror
        uuid: Switch uuid of the mirror
        parameters: Source/destination details of the change
        error: Error message if failed

    Returns:
        The ChangeRecord that was logged
    """
    record = ChangeRecord(
        timestamp=datetime.now(timezone.utc).isoformat(),
        operation=operation,
        mirror_name=mirror_name,
        success=success,
        bridge=bridge,
        uuid=uuid,
        parameters=parameters or {},
        error=error,
    )

    audit_logger.info(record.to_json())

    return record


def get_recent_changes(
    log_file: Union[str, Path],
    mirror_name: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log.

    Args:
        log_file: Path to the audit log
        mirror_name: Filter by mirror name
        operation: Filter by operation type
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if mirror_name and record.mirror_name != mirror_name:
                continue
            if operation and record.operation != operation:
                continue

            records.append(record)

    return list(reversed(records[-limit:]))
