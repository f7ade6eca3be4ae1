"""Tests for CLI output formatters."""

import json

from src.cli.output import (
    MAX_REJECTED_SHOWN,
    format_assign_outcome,
    format_entries_table,
    format_import_summary,
    format_pool_summary,
    format_report_outcome,
    format_upload_logs,
    format_weight,
)
from src.cli.protocol import (
    AssignOutcome,
    ImportSummary,
    PoolCounts,
    RejectedRow,
    ReportOutcome,
    TrackingPage,
    TrackingRow,
    UploadLogEntry,
)


def _summary(**overrides) -> ImportSummary:
    fields = dict(
        batch_id="b-1",
        file_name="numbers.csv",
        log_file="tracking_upload_2024-03-01_09-30-00_ab12.log",
        total_lines=4,
        eg_inserted=2,
        cg_inserted=1,
        duplicates=0,
        invalid=1,
        rejected=[RejectedRow(line=4, value="XX1IN", code="E-2003", reason="Unknown prefix")],
    )
    fields.update(overrides)
    return ImportSummary(**fields)


class TestFormatWeight:
    def test_none(self):
        assert format_weight(None) == "-"

    def test_grams(self):
        assert format_weight(750.0) == "750g"
        assert format_weight(1000.5) == "1000.5g"


class TestPoolSummary:
    def test_table(self):
        out = format_pool_summary([
            PoolCounts("EG", total=3, available=2, bound=1, withdrawn=0),
            PoolCounts("CG", total=0, available=0, bound=0, withdrawn=0),
        ])

        assert "Tracking Pools" in out
        assert "EG" in out and "CG" in out

    def test_json(self):
        out = format_pool_summary(
            [PoolCounts("EG", total=3, available=2, bound=1, withdrawn=0)], as_json=True
        )

        assert json.loads(out) == [
            {"tracking_class": "EG", "total": 3, "available": 2, "bound": 1, "withdrawn": 0}
        ]


class TestEntriesTable:
    def test_empty_page(self):
        page = TrackingPage(rows=[], total=0, limit=20, offset=0)

        assert format_entries_table(page, "EG Tracking Numbers") == "No tracking numbers found."

    def test_title_shows_range(self):
        page = TrackingPage(
            rows=[
                TrackingRow(id=7, tracking_id="EG7IN", is_accessable="Yes"),
                TrackingRow(id=6, tracking_id="EG6IN", is_accessable="No", order_id="12"),
            ],
            total=9,
            limit=2,
            offset=4,
        )

        out = format_entries_table(page, "EG")

        assert "(5-6 of 9)" in out
        assert "EG7IN" in out

    def test_json_keeps_rows(self):
        page = TrackingPage(
            rows=[TrackingRow(id=1, tracking_id="CG1IN", is_accessable="Yes")],
            total=1,
            limit=20,
            offset=0,
        )

        data = json.loads(format_entries_table(page, "CG", as_json=True))

        assert data["rows"][0]["tracking_id"] == "CG1IN"
        assert data["total"] == 1


class TestImportSummary:
    def test_panel_and_rejections(self):
        out = format_import_summary(_summary())

        assert "Upload Result" in out
        assert "numbers.csv" in out
        assert "E-2003" in out

    def test_truncates_long_rejection_lists(self):
        rejected = [
            RejectedRow(line=n, value="bad", code="E-2001", reason="Invalid format")
            for n in range(1, MAX_REJECTED_SHOWN + 6)
        ]

        out = format_import_summary(_summary(rejected=rejected, invalid=len(rejected)))

        assert "... and 5 more rejected rows (see the upload log)" in out

    def test_json(self):
        data = json.loads(format_import_summary(_summary(), as_json=True))

        assert data["eg_inserted"] == 2
        assert data["rejected"][0]["code"] == "E-2003"


class TestAssignOutcome:
    def test_assigned(self):
        out = format_assign_outcome(AssignOutcome(
            order_id="1042", assigned=True, tracking_id="EG1IN",
            tracking_class="EG", weight_grams=750.0,
        ))

        assert "Order #1042 assigned EG tracking number EG1IN" in out
        assert "(weight 750g)" in out

    def test_exhausted(self):
        out = format_assign_outcome(AssignOutcome(
            order_id="7", assigned=False, exhausted_class="CG",
            error="No available CG tracking numbers",
        ))

        assert "Order #7: No available CG tracking numbers" in out

    def test_nothing_assigned_but_synced(self):
        out = format_assign_outcome(
            AssignOutcome(order_id="9", assigned=False, status_synced=True)
        )

        assert "Order #9: no tracking number assigned." in out
        assert "Tracking status updated for order #9." in out

    def test_json(self):
        data = json.loads(format_assign_outcome(
            AssignOutcome(order_id="1", assigned=False), as_json=True
        ))

        assert data["order_id"] == "1"
        assert data["assigned"] is False


class TestUploadLogs:
    def test_empty(self):
        assert format_upload_logs([]) == "No upload logs found."

    def test_table(self):
        out = format_upload_logs([
            UploadLogEntry(name="a.log", size=2048, modified_at="2024-03-01T09:30:00+00:00"),
        ])

        assert "a.log" in out
        assert "2,048 B" in out


def test_report_outcome():
    outcome = ReportOutcome(report_id="r1", rows_written=3, skipped=1, saved_to="/tmp/gst.csv")

    out = format_report_outcome(outcome)
    data = json.loads(format_report_outcome(outcome, as_json=True))

    assert "GST Report" in out
    assert "(no matching order)" in out
    assert data["saved_to"] == "/tmp/gst.csv"
