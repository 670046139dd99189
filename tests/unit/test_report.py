"""
Unit tests for run report formatting and export
"""

import json

from car_reconciliation.models import RunState, RunSummary
from car_reconciliation.report import (
    build_report,
    export_summary_json,
    format_summary_console,
)


def committed_summary() -> RunSummary:
    return RunSummary(
        state=RunState.COMMITTED,
        expected_records=4,
        total_archives=3,
        completed_archives=3,
        matches=3,
        associations_inserted=3,
        workers=2,
        duration_seconds=1.25,
        timestamp="2026-01-01T00:00:00+00:00",
    )


class TestBuildReport:
    """Test build_report"""

    def test_committed_run_passes(self):
        report = build_report(committed_summary())

        assert report["status"] == "PASS"
        assert report["state"] == "COMMITTED"
        assert report["associations_inserted"] == 3

    def test_aborted_run_fails(self):
        summary = RunSummary(state=RunState.ABORTED, error="ArchiveFormatError: bad.car: empty file")

        assert build_report(summary)["status"] == "FAIL"


class TestExportSummaryJson:
    """Test export_summary_json"""

    def test_writes_json_and_creates_directories(self, tmp_path):
        output = tmp_path / "reports" / "run.json"

        export_summary_json(committed_summary(), str(output))

        data = json.loads(output.read_text())
        assert data["status"] == "PASS"
        assert data["completed_archives"] == 3
        assert data["failed_archives"] == []

    def test_round_trips_through_from_dict(self, tmp_path):
        output = tmp_path / "run.json"
        original = committed_summary()

        export_summary_json(original, str(output))
        restored = RunSummary.from_dict(json.loads(output.read_text()))

        assert restored == original


class TestFormatSummaryConsole:
    """Test format_summary_console"""

    def test_committed_summary(self):
        text = format_summary_console(committed_summary())

        assert "CAR RECONCILIATION REPORT" in text
        assert "Status: PASS (COMMITTED)" in text
        assert "CARs scanned: 3/3" in text
        assert "Associations inserted: 3" in text
        assert "ERRORS" not in text

    def test_aborted_summary_lists_failures(self):
        summary = RunSummary(
            state=RunState.ABORTED,
            total_archives=3,
            completed_archives=1,
            error="ArchiveFormatError: bad.car: empty file",
            failed_archives=["bad.car"],
        )

        text = format_summary_console(summary)

        assert "Status: FAIL (ABORTED)" in text
        assert "ERRORS" in text
        assert "Failed CAR: bad.car" in text
        assert "rolled back" in text
        assert "Timestamp: n/a" in text

    def test_large_counts_use_separators(self):
        summary = committed_summary()
        summary.associations_inserted = 1234567

        assert "Associations inserted: 1,234,567" in format_summary_console(summary)
