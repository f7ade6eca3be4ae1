"""Bulk import of tracking numbers from CSV.

One tracking number per row, first column only. Each row is classified
as added, duplicate, or invalid; rejected rows are counted and the rest
are inserted into the pool matching their prefix. The whole upload is
one transaction: per-row rejections still commit, any unexpected error
rolls everything back and raises IngestionAbortedError.

Every attempt writes an upload log and an UploadBatch row.

Example:
    svc = TrackingImportService(db, UploadLogStore(log_dir))
    result = svc.import_csv(Path("numbers.csv").read_bytes(), "numbers.csv", "ops")
    print(result.eg_inserted, result.cg_inserted, result.duplicates, result.invalid)
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import LogLevel, TrackingClass, UploadBatch, UploadStatus, utc_now_iso
from src.errors import IngestionAbortedError, TrackPoolError, ValidationError
from src.services.audit_service import AuditService
from src.services.tracking_pool import TrackingPoolStore
from src.services.upload_logs import UploadLogStore

logger = logging.getLogger(__name__)

TRACKING_ID_PATTERN = re.compile(r"^[A-Z]{2}[0-9]+IN$")

RULE = "-" * 58
BANNER = "=" * 58


class RowVerdict(str, Enum):
    """Outcome of one CSV row."""

    added = "added"
    duplicate = "duplicate"
    invalid = "invalid"


@dataclass
class RowOutcome:
    """Classification of one physical CSV row.

    Attributes:
        line: 1-based physical row number.
        value: Trimmed first-column value ('' for empty rows).
        verdict: added, duplicate, or invalid.
        tracking_class: Destination pool for added rows.
        code: Registry code for rejected rows.
        reason: Rejection reason as written to the upload log.
    """

    line: int
    value: str
    verdict: RowVerdict
    tracking_class: TrackingClass | None = None
    code: str | None = None
    reason: str | None = None

    @classmethod
    def rejected(cls, line: int, value: str, verdict: RowVerdict, code: str) -> "RowOutcome":
        error = TrackPoolError.from_code(code)
        return cls(line=line, value=value, verdict=verdict, code=code, reason=error.message)

    def to_error(self) -> TrackPoolError | None:
        """Return the row rejection as a coded error, or None for added rows."""
        if self.code is None:
            return None
        return TrackPoolError.from_code(self.code, lines=[self.line], value=self.value)


@dataclass
class ImportResult:
    """Counts and per-row outcomes of a committed upload."""

    batch_id: str
    file_name: str
    log_file: str | None
    total_lines: int = 0
    eg_inserted: int = 0
    cg_inserted: int = 0
    duplicates: int = 0
    invalid: int = 0
    rows: list[RowOutcome] = field(default_factory=list)

    @property
    def total_inserted(self) -> int:
        return self.eg_inserted + self.cg_inserted

    @property
    def total_skipped(self) -> int:
        return self.duplicates + self.invalid

    def errors(self) -> list[TrackPoolError]:
        """Rejected rows as coded errors, for grouping and display."""
        return [e for e in (row.to_error() for row in self.rows) if e is not None]


def classify_row(
    line: int,
    raw: str | None,
    seen: set[str],
    store: TrackingPoolStore,
) -> RowOutcome:
    """Classify one row's first-column value.

    Args:
        line: 1-based physical row number.
        raw: Untrimmed first-column value, or None for a blank row.
        seen: Tracking numbers accepted earlier in the same file. Updated
            when the row is accepted.
        store: Pool store used for the cross-pool existence check.
    """
    value = (raw or "").strip()
    if not value:
        return RowOutcome.rejected(line, "", RowVerdict.invalid, "E-1001")
    if not TRACKING_ID_PATTERN.match(value):
        return RowOutcome.rejected(line, value, RowVerdict.invalid, "E-2001")
    if value in seen or store.exists_anywhere(value):
        return RowOutcome.rejected(line, value, RowVerdict.duplicate, "E-2002")
    tracking_class = TrackingClass.from_tracking_id(value)
    if tracking_class is None:
        return RowOutcome.rejected(line, value, RowVerdict.invalid, "E-2003")
    seen.add(value)
    return RowOutcome(line=line, value=value, verdict=RowVerdict.added, tracking_class=tracking_class)


def read_first_column(content: bytes | str) -> list[str | None]:
    """Return the first-column value of every physical CSV row.

    Blank rows yield None so line numbers stay aligned with the file.

    Raises:
        ValidationError: Bytes that are not UTF-8 text.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationError(f"File is not UTF-8 text: {e}") from e
    elif content.startswith("\ufeff"):
        content = content[1:]
    return [record[0] if record else None for record in csv.reader(io.StringIO(content))]


def render_upload_log(
    result: ImportResult,
    uploaded_by: str,
    started: datetime,
    error: str | None = None,
) -> str:
    """Render the plain-text upload log for one attempt."""
    out = [
        BANNER,
        "India Post Tracking CSV Upload Log",
        BANNER,
        f"Date: {started.strftime('%Y-%m-%d %H:%M:%S')}",
        f"File: {result.file_name}",
        f"User: {uploaded_by}",
        BANNER,
        "",
        "PROCESSING RESULTS:",
        RULE,
        "",
    ]

    if error is not None:
        out += [
            "ERROR:",
            RULE,
            f"An error occurred during processing: {error}",
            "Processing was aborted and changes were rolled back.",
        ]
        return "\n".join(out) + "\n"

    added = [row for row in result.rows if row.verdict == RowVerdict.added]
    failed = [row for row in result.rows if row.verdict != RowVerdict.added]

    out += [f"SUCCESSFUL UPLOADS ({len(added)}):", RULE]
    if added:
        for row in added:
            out.append(f"Line {row.line}: {row.value} ({row.tracking_class.value}) - Successfully added")
    else:
        out.append("No tracking numbers were successfully uploaded.")
    out.append("")

    out += [f"FAILED UPLOADS ({len(failed)}):", RULE]
    if failed:
        for row in failed:
            out.append(f"Line {row.line}: {row.value or '(empty)'} - Failed: {row.reason}")
    else:
        out.append("No tracking numbers failed to upload.")
    out.append("")

    out += [
        "SUMMARY:",
        RULE,
        f"Total lines processed: {result.total_lines}",
        f"Successfully added EG tracking numbers: {result.eg_inserted}",
        f"Successfully added CG tracking numbers: {result.cg_inserted}",
        f"Total successfully added: {result.total_inserted}",
        f"Duplicates skipped: {result.duplicates}",
        f"Invalid skipped: {result.invalid}",
        f"Total skipped: {result.total_skipped}",
    ]
    return "\n".join(out) + "\n"


class TrackingImportService:
    """Validates and loads tracking inventory uploads.

    import_csv() owns its transaction: it commits on success and rolls
    back on failure.
    """

    def __init__(
        self,
        db: Session,
        log_store: UploadLogStore,
        audit: AuditService | None = None,
    ) -> None:
        self.db = db
        self.log_store = log_store
        self.audit = audit or AuditService(db)
        self.store = TrackingPoolStore(db)

    def import_file(self, path: str | Path, uploaded_by: str) -> ImportResult:
        """Import a CSV file from disk."""
        path = Path(path)
        return self.import_csv(path.read_bytes(), path.name, uploaded_by)

    def import_csv(
        self,
        content: bytes | str,
        file_name: str,
        uploaded_by: str,
    ) -> ImportResult:
        """Import one upload.

        Args:
            content: Raw CSV bytes (UTF-8, optional BOM) or decoded text.
            file_name: Original file name, recorded in the log and batch.
            uploaded_by: Operator identity recorded on inserted rows.

        Returns:
            ImportResult for the committed upload.

        Raises:
            ValidationError: Content is not UTF-8 text.
            IngestionAbortedError: Processing failed and nothing was saved.
        """
        values = read_first_column(content)
        started = datetime.now()
        started_iso = utc_now_iso()
        log_name = self.log_store.new_log_name(started)
        result = ImportResult(batch_id="", file_name=file_name, log_file=log_name)

        try:
            seen: set[str] = set()
            for line, raw in enumerate(values, start=1):
                outcome = classify_row(line, raw, seen, self.store)
                result.rows.append(outcome)
                result.total_lines = line
                if outcome.verdict == RowVerdict.duplicate:
                    result.duplicates += 1
                elif outcome.verdict == RowVerdict.invalid:
                    result.invalid += 1

            for tracking_class in TrackingClass:
                ids = [
                    row.value
                    for row in result.rows
                    if row.verdict == RowVerdict.added and row.tracking_class == tracking_class
                ]
                inserted = self.store.insert_batch(tracking_class, ids, uploaded_by)
                if tracking_class == TrackingClass.EG:
                    result.eg_inserted = inserted
                else:
                    result.cg_inserted = inserted

            batch = UploadBatch(
                file_name=file_name,
                uploaded_by=uploaded_by,
                status=UploadStatus.committed.value,
                total_lines=result.total_lines,
                eg_inserted=result.eg_inserted,
                cg_inserted=result.cg_inserted,
                duplicates=result.duplicates,
                invalid=result.invalid,
                log_file=log_name,
                started_at=started_iso,
                completed_at=utc_now_iso(),
            )
            self.db.add(batch)
            self.db.flush()
            result.batch_id = batch.id

            self.audit.log_upload(
                batch.id,
                f"Upload {file_name}: {result.total_inserted} added "
                f"(EG {result.eg_inserted}, CG {result.cg_inserted}), "
                f"{result.duplicates} duplicates, {result.invalid} invalid",
                details={
                    "total_lines": result.total_lines,
                    "eg_inserted": result.eg_inserted,
                    "cg_inserted": result.cg_inserted,
                    "duplicates": result.duplicates,
                    "invalid": result.invalid,
                },
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.exception("Upload %s by %s rolled back", file_name, uploaded_by)
            self._write_log(log_name, render_upload_log(result, uploaded_by, started, error=str(e)))
            batch_id = self._record_rollback(
                file_name, uploaded_by, log_name, started_iso, result.total_lines, str(e)
            )
            raise IngestionAbortedError(str(e), batch_id=batch_id, log_file=log_name) from e

        self._write_log(log_name, render_upload_log(result, uploaded_by, started))
        logger.info(
            "Upload %s by %s: %d lines, EG %d, CG %d, %d duplicates, %d invalid",
            file_name, uploaded_by, result.total_lines, result.eg_inserted,
            result.cg_inserted, result.duplicates, result.invalid,
        )
        return result

    def _write_log(self, name: str, content: str) -> None:
        try:
            self.log_store.write(name, content)
        except OSError as e:
            logger.error("Could not write upload log %s: %s", name, e)

    def _record_rollback(
        self,
        file_name: str,
        uploaded_by: str,
        log_name: str,
        started_iso: str,
        total_lines: int,
        error: str,
    ) -> str | None:
        """Persist an UploadBatch row describing a rolled-back upload."""
        try:
            batch = UploadBatch(
                file_name=file_name,
                uploaded_by=uploaded_by,
                status=UploadStatus.rolled_back.value,
                total_lines=total_lines,
                log_file=log_name,
                error_message=error,
                started_at=started_iso,
                completed_at=utc_now_iso(),
            )
            self.db.add(batch)
            self.db.flush()
            self.audit.log_upload(
                batch.id,
                f"Upload {file_name} rolled back: {error}",
                level=LogLevel.ERROR,
                details={"error_code": IngestionAbortedError.code, "error": error},
            )
            self.db.commit()
            return batch.id
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not record rolled-back upload %s", file_name)
            return None
