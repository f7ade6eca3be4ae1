"""In-process runner implementation of TrackPoolClient.

Runs the service stack directly against the local database without
requiring a daemon. Used for development, testing, and standalone
deployments. Every call opens its own session via get_db_context().
"""

import logging
import shutil
from pathlib import Path

from src.cli.config import TrackPoolConfig, get_config
from src.cli.protocol import (
    AssignOutcome,
    HealthStatus,
    ImportSummary,
    PoolCounts,
    RejectedRow,
    ReportOutcome,
    TrackingPage,
    TrackingRow,
    TrackPoolClientError,
    UploadLogEntry,
)
from src.errors import DomainError, ValidationError

logger = logging.getLogger(__name__)


def _client_error(exc: DomainError) -> TrackPoolClientError:
    return TrackPoolClientError(str(exc), error_code=exc.code)


class InProcessRunner:
    """TrackPoolClient implementation that runs the services in-process."""

    def __init__(self, config: TrackPoolConfig | None = None):
        """Initialize with optional config.

        Args:
            config: Loaded TrackPool config. Uses defaults if None.
        """
        self._config = config or get_config()

    async def __aenter__(self):
        """Create tables and indexes if needed."""
        from src.db.connection import init_db

        init_db()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    def _audit(self, db):
        from src.services.audit_service import AuditService

        return AuditService(db, event_log_dir=self._config.storage.resolved_log_dir())

    def _event_handler(self, db):
        from src.services.assignment_engine import TrackingAssignmentEngine
        from src.services.order_events import OrderEventHandler
        from src.services.order_source import SqlOrderDataSource
        from src.services.status_sync import TrackingStatusSync

        source = SqlOrderDataSource(db)
        audit = self._audit(db)
        assignment = self._config.assignment
        engine = TrackingAssignmentEngine(
            db,
            source,
            audit=audit,
            weight_threshold_grams=assignment.weight_threshold_grams,
            weight_policy=assignment.weight_policy,
            tracking_url_template=assignment.tracking_url_template,
        )
        sync = TrackingStatusSync(db, source, audit=audit)
        return OrderEventHandler(source, engine, sync, ready_status=assignment.ready_status)

    async def pool_summary(self) -> list[PoolCounts]:
        from src.db.connection import get_db_context
        from src.services.tracking_pool import TrackingPoolStore

        with get_db_context() as db:
            return [
                PoolCounts(
                    tracking_class=s.tracking_class.value,
                    total=s.total,
                    available=s.available,
                    bound=s.bound,
                    withdrawn=s.withdrawn,
                )
                for s in TrackingPoolStore(db).pool_summary()
            ]

    async def list_entries(
        self,
        tracking_class: str,
        search: str | None = None,
        order_by: str = "id",
        order: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> TrackingPage:
        """List one pool from the local database.

        Raises:
            TrackPoolClientError: Unknown pool or bad sort/paging arguments.
        """
        from src.db.connection import get_db_context
        from src.db.models import TrackingClass
        from src.services.tracking_pool import TrackingPoolStore

        try:
            pool = TrackingClass(tracking_class.upper())
        except ValueError:
            raise TrackPoolClientError(f"Unknown pool '{tracking_class}'") from None

        try:
            with get_db_context() as db:
                page = TrackingPoolStore(db).list_entries(
                    pool, search=search, order_by=order_by, order=order,
                    limit=limit, offset=offset,
                )
                rows = [
                    TrackingRow(
                        id=e.id,
                        tracking_id=e.tracking_id,
                        is_accessable=e.is_accessable,
                        order_id=e.order_id,
                        current_status=e.current_status,
                        assigned_at=e.assigned_at,
                        upload_userid=e.upload_userid,
                        modified_at=e.modified_at,
                    )
                    for e in page.entries
                ]
        except ValidationError as e:
            raise _client_error(e) from e
        return TrackingPage(rows=rows, total=page.total, limit=page.limit, offset=page.offset)

    async def bulk_action(self, tracking_class: str, action: str, ids: list[int]) -> int:
        from src.db.connection import get_db_context
        from src.db.models import TrackingClass
        from src.services.tracking_pool import TrackingPoolStore

        try:
            pool = TrackingClass(tracking_class.upper())
        except ValueError:
            raise TrackPoolClientError(f"Unknown pool '{tracking_class}'") from None

        with get_db_context() as db:
            store = TrackingPoolStore(db)
            if action == "delete":
                affected = store.delete_entries(pool, ids)
            elif action in ("make_accessible", "make_inaccessible"):
                affected = store.set_accessibility(
                    pool, ids, accessible=action == "make_accessible"
                )
            else:
                raise TrackPoolClientError(f"Unknown action '{action}'")
            self._audit(db).log_pool_admin(action, pool, ids, affected)
        return affected

    async def import_file(self, file_path: str, uploaded_by: str) -> ImportSummary:
        """Import a CSV into the local pools.

        Raises:
            TrackPoolClientError: Wrong file type, unreadable content, or
                an upload that was rolled back.
        """
        from src.db.connection import get_db_context
        from src.services.csv_ingestion import RowVerdict, TrackingImportService
        from src.services.upload_logs import UploadLogStore

        path = Path(file_path)
        if path.suffix.lower() != ".csv":
            raise _client_error(
                ValidationError.from_code(
                    "E-2004", extension=path.suffix or "(none)", expected=".csv"
                )
            )
        if not path.is_file():
            raise TrackPoolClientError(f"File not found: {file_path}")

        log_store = UploadLogStore(self._config.storage.resolved_log_dir())
        try:
            with get_db_context() as db:
                service = TrackingImportService(db, log_store, self._audit(db))
                result = service.import_file(path, uploaded_by)
        except DomainError as e:
            raise _client_error(e) from e

        return ImportSummary(
            batch_id=result.batch_id,
            file_name=result.file_name,
            log_file=result.log_file,
            total_lines=result.total_lines,
            eg_inserted=result.eg_inserted,
            cg_inserted=result.cg_inserted,
            duplicates=result.duplicates,
            invalid=result.invalid,
            rejected=[
                RejectedRow(line=row.line, value=row.value, code=row.code, reason=row.reason)
                for row in result.rows
                if row.verdict != RowVerdict.added
            ],
        )

    async def assign(self, order_id: str) -> AssignOutcome:
        from src.db.connection import get_db_context

        try:
            with get_db_context() as db:
                result = self._event_handler(db).engine.assign_tracking(order_id)
        except DomainError as e:
            raise _client_error(e) from e

        if result is None:
            return AssignOutcome(order_id=order_id, assigned=False)
        return AssignOutcome(
            order_id=order_id,
            assigned=True,
            tracking_id=result.tracking_id,
            tracking_class=result.tracking_class.value,
            weight_grams=result.weight_grams,
        )

    async def status_changed(
        self, order_id: str, to_status: str, from_status: str | None = None
    ) -> AssignOutcome:
        from src.db.connection import get_db_context

        try:
            with get_db_context() as db:
                outcome = self._event_handler(db).on_order_status_changed(
                    order_id, from_status, to_status
                )
        except DomainError as e:
            raise _client_error(e) from e

        assignment = outcome.assignment
        return AssignOutcome(
            order_id=order_id,
            assigned=assignment is not None,
            tracking_id=assignment.tracking_id if assignment else None,
            tracking_class=assignment.tracking_class.value if assignment else None,
            weight_grams=assignment.weight_grams if assignment else None,
            status_synced=outcome.status_synced,
            exhausted_class=outcome.exhausted_class,
            error=outcome.error,
        )

    async def list_upload_logs(self) -> list[UploadLogEntry]:
        from src.services.upload_logs import UploadLogStore

        store = UploadLogStore(self._config.storage.resolved_log_dir())
        return [
            UploadLogEntry(name=i.name, size=i.size, modified_at=i.modified_at)
            for i in store.list_logs()
        ]

    async def read_upload_log(self, name: str) -> str:
        from src.services.upload_logs import UploadLogStore

        store = UploadLogStore(self._config.storage.resolved_log_dir())
        try:
            return store.read(name)
        except DomainError as e:
            raise _client_error(e) from e

    async def generate_gst_report(
        self, file_path: str, output_path: str | None = None
    ) -> ReportOutcome:
        from src.db.connection import get_db_context
        from src.services.gst_report import GSTReportService
        from src.services.order_source import SqlOrderDataSource

        if not Path(file_path).is_file():
            raise TrackPoolClientError(f"File not found: {file_path}")

        try:
            with get_db_context() as db:
                service = GSTReportService(
                    SqlOrderDataSource(db), self._config.storage.resolved_report_dir()
                )
                report = service.generate(file_path)
        except DomainError as e:
            raise _client_error(e) from e

        outcome = ReportOutcome(
            report_id=report.report_id,
            rows_written=report.rows_written,
            skipped=report.skipped,
            saved_to=str(report.path),
        )
        if output_path:
            target = Path(output_path).expanduser()
            shutil.copyfile(report.path, target)
            outcome.saved_to = str(target)
        return outcome

    async def health(self) -> HealthStatus:
        """Report in-process health (always healthy)."""
        from importlib.metadata import PackageNotFoundError, version as pkg_version

        try:
            v = pkg_version("trackpool")
        except PackageNotFoundError:
            v = "unknown"
        available = {c.tracking_class: c.available for c in await self.pool_summary()}
        return HealthStatus(healthy=True, version=v, uptime_seconds=0, available=available)
