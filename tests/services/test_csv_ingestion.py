"""Tests for CSV tracking number ingestion."""

from datetime import datetime

import pytest
from sqlalchemy import select

from src.db.models import (
    AuditLog,
    CGTrackingEntry,
    EGTrackingEntry,
    TrackingClass,
    UploadBatch,
    UploadStatus,
)
from src.errors import IngestionAbortedError, ValidationError
from src.services.csv_ingestion import (
    ImportResult,
    RowVerdict,
    TrackingImportService,
    classify_row,
    read_first_column,
    render_upload_log,
)
from src.services.tracking_pool import TrackingPoolStore
from src.services.upload_logs import UploadLogStore
from tests.helpers import add_entries


@pytest.fixture
def service(db_session, log_dir) -> TrackingImportService:
    return TrackingImportService(db_session, UploadLogStore(log_dir))


class TestClassifyRow:
    @pytest.mark.parametrize(
        "raw,verdict,code",
        [
            (None, RowVerdict.invalid, "E-1001"),
            ("   ", RowVerdict.invalid, "E-1001"),
            ("eg123in", RowVerdict.invalid, "E-2001"),
            ("EG12A3IN", RowVerdict.invalid, "E-2001"),
            ("EGIN", RowVerdict.invalid, "E-2001"),
            ("RR123456IN", RowVerdict.invalid, "E-2003"),
            (" EG123IN ", RowVerdict.added, None),
        ],
    )
    def test_verdicts(self, db_session, raw, verdict, code):
        outcome = classify_row(1, raw, set(), TrackingPoolStore(db_session))

        assert outcome.verdict == verdict
        assert outcome.code == code

    def test_added_row_is_trimmed_and_routed(self, db_session):
        seen: set[str] = set()
        outcome = classify_row(3, " CG9IN\t", seen, TrackingPoolStore(db_session))

        assert outcome.value == "CG9IN"
        assert outcome.tracking_class == TrackingClass.CG
        assert seen == {"CG9IN"}

    def test_duplicate_within_file(self, db_session):
        outcome = classify_row(2, "EG1IN", {"EG1IN"}, TrackingPoolStore(db_session))

        assert outcome.verdict == RowVerdict.duplicate
        assert outcome.reason == "Duplicate (already exists in database)"

    def test_duplicate_in_other_pool(self, db_session):
        add_entries(db_session, TrackingClass.CG, ["EG1IN"])

        outcome = classify_row(1, "EG1IN", set(), TrackingPoolStore(db_session))

        assert outcome.verdict == RowVerdict.duplicate

    def test_rejection_converts_to_coded_error(self, db_session):
        outcome = classify_row(4, "bad", set(), TrackingPoolStore(db_session))
        error = outcome.to_error()

        assert error.code == "E-2001"
        assert error.lines == [4]
        assert error.value == "bad"


class TestReadFirstColumn:
    def test_blank_rows_keep_line_numbers(self):
        assert read_first_column(b"EG1IN\n\nCG2IN,extra\n") == ["EG1IN", None, "CG2IN"]

    def test_strips_bom(self):
        assert read_first_column("\ufeffEG1IN\n".encode()) == ["EG1IN"]

    def test_rejects_non_utf8(self):
        with pytest.raises(ValidationError):
            read_first_column(b"\xff\xfe\x00E")


class TestImportCsv:
    def test_routes_by_prefix(self, db_session, service):
        result = service.import_csv(b"EG1IN\nCG1IN\nEG2IN\n", "numbers.csv", "7")

        assert (result.eg_inserted, result.cg_inserted) == (2, 1)
        assert result.total_lines == 3
        eg = db_session.execute(select(EGTrackingEntry.tracking_id)).scalars().all()
        cg = db_session.execute(select(CGTrackingEntry.tracking_id)).scalars().all()
        assert sorted(eg) == ["EG1IN", "EG2IN"]
        assert cg == ["CG1IN"]

    def test_mixed_file_counts(self, db_session, service):
        add_entries(db_session, TrackingClass.EG, ["EG123IN"])

        result = service.import_csv(
            b"EG123IN\nEG456IN\nXX1IN\n\nbad\nCG789IN\nEG456IN\n", "mixed.csv", "7"
        )

        assert result.total_lines == 7
        assert result.eg_inserted == 1
        assert result.cg_inserted == 1
        assert result.duplicates == 2
        assert result.invalid == 3
        assert result.total_inserted + result.total_skipped == result.total_lines

    def test_reimport_is_all_duplicates(self, service):
        service.import_csv(b"EG1IN\nCG1IN\n", "a.csv", "7")

        again = service.import_csv(b"EG1IN\nCG1IN\n", "a.csv", "7")

        assert again.total_inserted == 0
        assert again.duplicates == 2

    def test_records_batch_and_audit(self, db_session, service):
        result = service.import_csv(b"EG1IN\nbad\n", "numbers.csv", "ops")

        batch = db_session.get(UploadBatch, result.batch_id)
        assert batch.status == UploadStatus.committed.value
        assert batch.uploaded_by == "ops"
        assert (batch.eg_inserted, batch.invalid) == (1, 1)
        assert batch.log_file == result.log_file
        audit = db_session.execute(
            select(AuditLog).where(AuditLog.batch_id == result.batch_id)
        ).scalar_one()
        assert audit.event_type == "upload"

    def test_writes_upload_log(self, service, log_dir):
        result = service.import_csv(b"EG1IN\n\nXX1IN\n", "numbers.csv", "ops")

        text = (log_dir / result.log_file).read_text()
        assert result.log_file.startswith("tracking_upload_")
        assert "File: numbers.csv" in text
        assert "User: ops" in text
        assert "Line 1: EG1IN (EG) - Successfully added" in text
        assert "Line 2: (empty) - Failed: Empty tracking number" in text
        assert "Line 3: XX1IN - Failed: Unknown prefix (not EG or CG)" in text
        assert "Invalid skipped: 2" in text

    def test_failure_rolls_back_everything(self, db_session, service, log_dir, monkeypatch):
        real_insert = service.store.insert_batch

        def failing_insert(tracking_class, ids, uploaded_by):
            if tracking_class == TrackingClass.CG:
                raise RuntimeError("disk full")
            return real_insert(tracking_class, ids, uploaded_by)

        monkeypatch.setattr(service.store, "insert_batch", failing_insert)

        with pytest.raises(IngestionAbortedError) as exc_info:
            service.import_csv(b"EG1IN\nCG1IN\n", "numbers.csv", "7")

        error = exc_info.value
        assert error.reason == "disk full"
        assert db_session.execute(select(EGTrackingEntry)).first() is None

        batch = db_session.get(UploadBatch, error.batch_id)
        assert batch.status == UploadStatus.rolled_back.value
        assert batch.error_message == "disk full"

        text = (log_dir / error.log_file).read_text()
        assert "An error occurred during processing: disk full" in text
        assert "Processing was aborted and changes were rolled back." in text

    def test_import_file_uses_file_name(self, service, tmp_path):
        path = tmp_path / "from_disk.csv"
        path.write_text("CG5IN\n")

        result = service.import_file(path, "7")

        assert result.file_name == "from_disk.csv"
        assert result.cg_inserted == 1


def test_render_log_with_nothing_added():
    result = ImportResult(batch_id="b", file_name="empty.csv", log_file=None)

    text = render_upload_log(result, "7", datetime(2024, 3, 1, 9, 30, 0))

    assert "Date: 2024-03-01 09:30:00" in text
    assert "No tracking numbers were successfully uploaded." in text
    assert "No tracking numbers failed to upload." in text
    assert "Total lines processed: 0" in text
