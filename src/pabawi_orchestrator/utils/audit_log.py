"""Audit logging for resource convergence.

Provides change tracking with:
- One timestamped JSON line per resource outcome
- Run identifiers to group the entries of one apply
- A dedicated, non-propagating audit logger per audit file
"""
import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from ..engine.schema import ResourceResult

AUDIT_LOGGER_PREFIX = "pabawi.audit"

DEFAULT_AUDIT_DIR = "~/.pabawi"


def audit_file_path(log_dir: Optional[str] = None) -> Path:
    """Resolve the audit log file for a directory (default ~/.pabawi/)."""
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)
    return (Path(log_dir) / "audit.log").resolve()


def setup_audit_logging(log_dir: Optional[str] = None) -> logging.Logger:
    """Configure an audit logger writing to <log_dir>/audit.log.

    Each audit file gets its own logger, so trails writing to different
    directories never share handlers.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.pabawi/

    Returns:
        Logger bound to the audit file
    """
    audit_file = audit_file_path(log_dir)
    audit_file.parent.mkdir(parents=True, exist_ok=True)
    audit_logger = logging.getLogger(f"{AUDIT_LOGGER_PREFIX}.{audit_file}")
    audit_logger.setLevel(logging.INFO)

    # Remove existing handlers
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )

    # Use JSON format for machine-readability
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    # Don't propagate to root logger
    audit_logger.propagate = False

    return audit_logger


@dataclass
class ChangeRecord:
    """Record of one resource outcome."""
    timestamp: str
    run_id: str
    resource_id: str
    kind: str
    owner: str
    status: str
    dry_run: bool
    user: str = "system"
    context: str = ""
    message: str = ""

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


class AuditTrail:
    """Write resource outcomes to the audit log."""

    def __init__(self, log_dir: Optional[str] = None, user: str = "system"):
        self.user = user
        self.log_file = audit_file_path(log_dir)
        self.logger = setup_audit_logging(log_dir)

    def record(
        self,
        result: ResourceResult,
        run_id: str,
        dry_run: bool = False,
        context: str = "",
        user: Optional[str] = None,
    ) -> ChangeRecord:
        """Log one resource outcome.

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            run_id=run_id,
            resource_id=result.resource_id,
            kind=result.kind.value,
            owner=result.owner,
            status=result.status.value,
            dry_run=dry_run,
            user=user or self.user,
            context=context,
            message=result.message[:1000] if result.message else "",
        )

        self.logger.info(record.to_json())

        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    resource_id: Optional[str] = None,
    status: Optional[str] = None,
    run_id: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent records from the audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.pabawi/audit.log
        resource_id: Filter by resource identifier
        status: Filter by outcome status (changed, failed, ...)
        run_id: Filter by run
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

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

            if resource_id and record.resource_id != resource_id:
                continue
            if status and record.status != status:
                continue
            if run_id and record.run_id != run_id:
                continue

            records.append(record)

    # Most recent first
    return list(reversed(records[-limit:]))
