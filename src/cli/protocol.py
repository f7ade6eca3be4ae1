"""TrackPoolClient protocol and CLI data models.

Defines the abstract interface that both HttpClient and InProcessRunner
implement. The CLI commands call protocol methods without knowing which
backend is active.
"""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class PoolCounts:
    """Entry counts for one pool.

    Aligned with src/api/schemas.py:PoolSummaryResponse.
    """

    tracking_class: str
    total: int
    available: int
    bound: int
    withdrawn: int

    @classmethod
    def from_api(cls, data: dict) -> "PoolCounts":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            tracking_class=data["tracking_class"],
            total=data.get("total", 0),
            available=data.get("available", 0),
            bound=data.get("bound", 0),
            withdrawn=data.get("withdrawn", 0),
        )


@dataclass
class TrackingRow:
    """One pool entry for list views.

    Aligned with src/api/schemas.py:TrackingEntryResponse.
    """

    id: int
    tracking_id: str
    is_accessable: str
    order_id: str | None = None
    current_status: str | None = None
    assigned_at: str | None = None
    upload_userid: str = ""
    modified_at: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "TrackingRow":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            id=data["id"],
            tracking_id=data["tracking_id"],
            is_accessable=data.get("is_accessable", ""),
            order_id=data.get("order_id"),
            current_status=data.get("current_status"),
            assigned_at=data.get("datetime"),
            upload_userid=data.get("upload_userid", ""),
            modified_at=data.get("modified_at"),
        )


@dataclass
class TrackingPage:
    """One page of a pool listing."""

    rows: list[TrackingRow]
    total: int
    limit: int
    offset: int


@dataclass
class RejectedRow:
    """A row the upload skipped."""

    line: int
    value: str
    code: str | None
    reason: str | None


@dataclass
class ImportSummary:
    """Outcome of a tracking number upload.

    Aligned with src/api/schemas.py:ImportResultResponse.
    """

    batch_id: str
    file_name: str
    log_file: str | None
    total_lines: int
    eg_inserted: int
    cg_inserted: int
    duplicates: int
    invalid: int
    rejected: list[RejectedRow] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "ImportSummary":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            batch_id=data["batch_id"],
            file_name=data.get("file_name", ""),
            log_file=data.get("log_file"),
            total_lines=data.get("total_lines", 0),
            eg_inserted=data.get("eg_inserted", 0),
            cg_inserted=data.get("cg_inserted", 0),
            duplicates=data.get("duplicates", 0),
            invalid=data.get("invalid", 0),
            rejected=[
                RejectedRow(
                    line=row["line"],
                    value=row.get("value", ""),
                    code=row.get("code"),
                    reason=row.get("reason"),
                )
                for row in data.get("rows", [])
                if row.get("verdict") != "added"
            ],
        )


@dataclass
class AssignOutcome:
    """Outcome of an assignment or order event."""

    order_id: str
    assigned: bool
    tracking_id: str | None = None
    tracking_class: str | None = None
    weight_grams: float | None = None
    status_synced: bool = False
    exhausted_class: str | None = None
    error: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "AssignOutcome":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            order_id=data["order_id"],
            assigned=data.get("assigned", False),
            tracking_id=data.get("tracking_id"),
            tracking_class=data.get("tracking_class"),
            weight_grams=data.get("weight_grams"),
            status_synced=data.get("status_synced", False),
            exhausted_class=data.get("exhausted_class"),
            error=data.get("error"),
        )


@dataclass
class UploadLogEntry:
    """Listing entry for an upload log."""

    name: str
    size: int
    modified_at: str


@dataclass
class ReportOutcome:
    """A generated GST report, and where it was saved locally if requested."""

    report_id: str
    rows_written: int
    skipped: int
    saved_to: str | None = None


@dataclass
class HealthStatus:
    """Daemon health report."""

    healthy: bool
    version: str
    uptime_seconds: int
    available: dict[str, int] = field(default_factory=dict)


class TrackPoolClientError(Exception):
    """Transport-neutral error raised by TrackPoolClient implementations.

    HttpClient raises this on HTTP errors; InProcessRunner raises this
    on service-level failures. CLI commands catch this and convert to
    user-friendly Rich error messages + typer.Exit(1).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class TrackPoolClient(Protocol):
    """Protocol defining the interface for CLI backends.

    Both HttpClient (daemon mode) and InProcessRunner (standalone mode)
    implement this protocol. CLI commands are written against this
    abstraction and never know which backend is active.
    """

    async def __aenter__(self) -> "TrackPoolClient":
        """Initialize resources (HTTP session or database)."""
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Release resources on exit."""
        ...

    async def pool_summary(self) -> list[PoolCounts]:
        """Entry counts for both pools."""
        ...

    async def list_entries(
        self,
        tracking_class: str,
        search: str | None = None,
        order_by: str = "id",
        order: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> TrackingPage:
        """List one pool.

        Args:
            tracking_class: "EG" or "CG".
            search: Substring filter on the tracking number.
            order_by: Column to sort by.
            order: "asc" or "desc".
            limit: Page size.
            offset: Rows to skip.
        """
        ...

    async def bulk_action(self, tracking_class: str, action: str, ids: list[int]) -> int:
        """Apply delete / make_accessible / make_inaccessible; return rows affected."""
        ...

    async def import_file(self, file_path: str, uploaded_by: str) -> ImportSummary:
        """Upload a CSV of tracking numbers.

        Args:
            file_path: Path to the CSV file.
            uploaded_by: Operator id recorded on each inserted entry.

        Returns:
            ImportSummary with counts and rejected rows.
        """
        ...

    async def assign(self, order_id: str) -> AssignOutcome:
        """Assign a tracking number to an order."""
        ...

    async def status_changed(
        self, order_id: str, to_status: str, from_status: str | None = None
    ) -> AssignOutcome:
        """Report an order status change: assigns on ready, then mirrors the status."""
        ...

    async def list_upload_logs(self) -> list[UploadLogEntry]:
        ...

    async def read_upload_log(self, name: str) -> str:
        ...

    async def generate_gst_report(
        self, file_path: str, output_path: str | None = None
    ) -> ReportOutcome:
        """Build a GST report from an article list.

        Args:
            file_path: CSV or XLSX with an "Article Number" column.
            output_path: Where to save a copy of the report, if anywhere.
        """
        ...

    async def health(self) -> HealthStatus:
        """Check daemon health status."""
        ...
