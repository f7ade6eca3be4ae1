"""Audit logging service for TrackPool.

Records uploads, assignments, exhaustion failures, status changes and
pool administration as AuditLog rows. When an event log directory is
configured, assignment and status events are also appended as one-line
text records to the operator-facing event logs.

Rows are flushed, NOT committed, so an audit entry lands in the same
transaction as the change it describes. Event text lines are held until
that transaction commits and dropped if it rolls back.

Usage:
    from src.services.audit_service import AuditService

    audit = AuditService(db, event_log_dir=Path("/var/log/trackpool"))
    audit.log_assignment("1042", TrackingClass.EG, "EG123456789IN", 750.0)
    db.commit()

    print(audit.export_text(order_id="1042"))
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import event, select
from sqlalchemy.orm import Session

from src.db.models import AuditLog, EventType, LogLevel, TrackingClass, utc_now_iso

logger = logging.getLogger(__name__)

__all__ = [
    "AuditService",
    "LogLevel",
    "EventType",
    "ASSIGNMENT_LOG",
    "ASSIGNMENT_ERROR_LOG",
    "STATUS_UPDATE_LOG",
    "format_weight",
]

ASSIGNMENT_LOG = "tracking_assignment.log"
ASSIGNMENT_ERROR_LOG = "tracking_assignment_errors.log"
STATUS_UPDATE_LOG = "tracking_status_updates.log"


def format_weight(weight: float | None) -> str:
    """Render an order weight for logs: '750g', '1000.5g' or 'unknown'."""
    if weight is None:
        return "unknown"
    if float(weight).is_integer():
        return f"{int(weight)}g"
    return f"{weight}g"


def _local_timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class AuditService:
    """Service for the audit trail and the event text logs.

    Attributes:
        db: SQLAlchemy session for database operations.
        event_log_dir: Directory for event text logs, or None to skip them.
    """

    def __init__(self, db: Session, event_log_dir: Path | str | None = None) -> None:
        self.db = db
        self.event_log_dir = Path(event_log_dir) if event_log_dir else None
        self._pending_lines: list[tuple[str, str]] = []
        if self.event_log_dir is not None:
            event.listen(db, "after_commit", self._write_pending_lines)
            event.listen(db, "after_soft_rollback", self._discard_pending_lines)

    def log(
        self,
        level: LogLevel,
        event_type: EventType,
        message: str,
        details: dict[str, Any] | None = None,
        order_id: str | None = None,
        tracking_id: str | None = None,
        batch_id: str | None = None,
    ) -> AuditLog:
        """Create an audit log entry.

        Core method that all other log methods delegate to.

        Args:
            level: Severity level (INFO, WARNING, ERROR).
            event_type: Category of event.
            message: Human-readable event description.
            details: Optional structured data, stored as JSON.
            order_id: Order the event concerns.
            tracking_id: Tracking number the event concerns.
            batch_id: Upload batch the event belongs to.

        Returns:
            The created AuditLog entry (flushed, not committed).
        """
        entry = AuditLog(
            batch_id=batch_id,
            order_id=order_id,
            tracking_id=tracking_id,
            timestamp=utc_now_iso(),
            level=level.value,
            event_type=event_type.value,
            message=message,
            details=json.dumps(details) if details is not None else None,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def _append_event_line(self, file_name: str, line: str) -> None:
        """Queue one line for an event text log, written on commit."""
        if self.event_log_dir is None:
            return
        self._pending_lines.append((file_name, f"[{_local_timestamp()}] {line}\n"))

    def _write_pending_lines(self, session: Session) -> None:
        """Append queued lines to their event logs.

        Failures are logged and do not interrupt the operation being
        audited; the AuditLog row is the record of truth.
        """
        pending, self._pending_lines = self._pending_lines, []
        for file_name, text in pending:
            try:
                self.event_log_dir.mkdir(parents=True, exist_ok=True)
                with open(self.event_log_dir / file_name, "a", encoding="utf-8") as fh:
                    fh.write(text)
            except OSError as e:
                logger.warning("Could not write event log %s: %s", file_name, e)

    def _discard_pending_lines(self, session: Session, previous_transaction) -> None:
        if self._pending_lines:
            logger.debug(
                "Dropping %d event log lines from a rolled back transaction",
                len(self._pending_lines),
            )
        self._pending_lines = []

    # Event-specific methods

    def log_assignment(
        self,
        order_id: str,
        tracking_class: TrackingClass,
        tracking_id: str,
        weight: float | None,
    ) -> AuditLog:
        """Record a successful claim for an order."""
        text = (
            f"Order #{order_id} assigned {tracking_class.value} tracking number "
            f"{tracking_id}. Weight: {format_weight(weight)}"
        )
        self._append_event_line(ASSIGNMENT_LOG, text)
        return self.log(
            LogLevel.INFO,
            EventType.assignment,
            text,
            details={
                "tracking_class": tracking_class.value,
                "weight_grams": weight,
            },
            order_id=order_id,
            tracking_id=tracking_id,
        )

    def log_assignment_error(
        self,
        order_id: str,
        error_message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Record a failed assignment, such as pool exhaustion."""
        self._append_event_line(
            ASSIGNMENT_ERROR_LOG,
            f"Order #{order_id} tracking assignment failed: {error_message}",
        )
        error_details: dict[str, Any] = {"error_message": error_message}
        if error_code:
            error_details["error_code"] = error_code
        if details:
            error_details.update(details)
        prefix = f"{error_code}: " if error_code else ""
        return self.log(
            LogLevel.ERROR,
            EventType.error,
            f"{prefix}{error_message}",
            details=error_details,
            order_id=order_id,
        )

    def log_status_change(
        self,
        order_id: str,
        tracking_class: TrackingClass,
        tracking_id: str,
        new_status: str,
    ) -> AuditLog:
        """Record a status sync onto a bound entry."""
        text = (
            f"{tracking_class.value} tracking number {tracking_id} "
            f"status updated to: {new_status}"
        )
        self._append_event_line(STATUS_UPDATE_LOG, text)
        return self.log(
            LogLevel.INFO,
            EventType.status_change,
            text,
            details={"tracking_class": tracking_class.value, "status": new_status},
            order_id=order_id,
            tracking_id=tracking_id,
        )

    def log_upload(
        self,
        batch_id: str,
        message: str,
        level: LogLevel = LogLevel.INFO,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Record the outcome of an upload batch."""
        return self.log(level, EventType.upload, message, details=details, batch_id=batch_id)

    def log_pool_admin(
        self,
        action: str,
        tracking_class: TrackingClass,
        entry_ids: list[int],
        affected: int,
    ) -> AuditLog:
        """Record an operator bulk action on a pool."""
        return self.log(
            LogLevel.INFO,
            EventType.pool_admin,
            f"{action} on {affected} of {len(entry_ids)} {tracking_class.value} entries",
            details={
                "action": action,
                "tracking_class": tracking_class.value,
                "entry_ids": entry_ids,
                "affected": affected,
            },
        )

    # Query methods

    def get_logs(
        self,
        order_id: str | None = None,
        tracking_id: str | None = None,
        batch_id: str | None = None,
        level: LogLevel | None = None,
        event_type: EventType | None = None,
        limit: int = 1000,
    ) -> list[AuditLog]:
        """Get audit logs with optional filters, oldest first."""
        stmt = select(AuditLog)
        if order_id is not None:
            stmt = stmt.where(AuditLog.order_id == order_id)
        if tracking_id is not None:
            stmt = stmt.where(AuditLog.tracking_id == tracking_id)
        if batch_id is not None:
            stmt = stmt.where(AuditLog.batch_id == batch_id)
        if level is not None:
            stmt = stmt.where(AuditLog.level == level.value)
        if event_type is not None:
            stmt = stmt.where(AuditLog.event_type == event_type.value)
        stmt = stmt.order_by(AuditLog.timestamp.asc()).limit(limit)
        return list(self.db.execute(stmt).scalars())

    # Export methods

    def export_text(self, **filters: Any) -> str:
        """Export audit logs as plain text.

        Accepts the same filters as get_logs().

        Example output:
            [2024-01-23T10:30:45+00:00] [INFO] [assignment] Order #1042 assigned EG ...
                {
                    "tracking_class": "EG",
                    "weight_grams": 750.0
                }
        """
        lines = []
        for log_entry in self.get_logs(**filters):
            lines.append(
                f"[{log_entry.timestamp}] [{log_entry.level}] "
                f"[{log_entry.event_type}] {log_entry.message}"
            )
            if log_entry.details:
                try:
                    details_formatted = json.dumps(json.loads(log_entry.details), indent=4)
                    for detail_line in details_formatted.split("\n"):
                        lines.append(f"    {detail_line}")
                except json.JSONDecodeError:
                    lines.append(f"    {log_entry.details}")

        return "\n".join(lines)
