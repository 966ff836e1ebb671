from __future__ import annotations

import re

from asset_import.db.batch_insert import BatchInsertOutcome, RowFailure
from asset_import.models.asset import NormalizedRow
from asset_import.models.import_report import BatchStatsAccumulator, BulkImportReport, ImportReport
from asset_import.services.summary import (
    build_bulk_report,
    build_spreadsheet_report,
    render_summary_line,
)

"""Unit tests for report aggregation and SUMMARY line rendering."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+rows=([0-9]+)\s+created=([0-9]+)\s+failed=([0-9]+)\s+"
    r"skipped_empty=([0-9]+)\s+batches=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)\s+"
    r"throughput_rps=([0-9]+\.?[0-9]*)$"
)


def _rows(n: int) -> list[NormalizedRow]:
    return [
        NormalizedRow(row_number=i + 2, values={"serialNumber": f"S{i}"}, defaulted=frozenset())
        for i in range(n)
    ]


def _failure(index: int, message: str = "Duplicate serial number") -> RowFailure:
    return RowFailure(batch=1, position=index, index=index, message=message, error_type="DUPLICATE_SERIAL")


def test_spreadsheet_report_maps_failures_to_row_numbers():
    rows = _rows(4)
    outcome = BatchInsertOutcome(
        inserted=[{"serialNumber": "S0"}, {"serialNumber": "S2"}],
        failures=[_failure(1), _failure(3, "null value")],
        batches=1,
    )
    report = build_spreadsheet_report(6, 2, outcome, rows)

    assert report.total_rows == 6
    assert report.created == 2
    assert report.failed == 2
    assert report.skipped_empty_rows == 2
    assert [e.to_dict() for e in report.insert_errors] == [
        {"row": 3, "serialNumber": "S1", "message": "Duplicate serial number"},
        {"row": 5, "serialNumber": "S3", "message": "null value"},
    ]
    assert report.message == "Excel processed: 2 created, 2 failed"


def test_spreadsheet_report_caps_error_entries_but_not_failed_count():
    rows = _rows(120)
    outcome = BatchInsertOutcome(inserted=[], failures=[_failure(i) for i in range(120)], batches=1)
    report = build_spreadsheet_report(120, 0, outcome, rows)

    assert report.failed == 120
    assert len(report.insert_errors) == 50
    assert report.insert_errors[0].row == 2
    assert report.insert_errors[-1].row == 51

    narrow = build_spreadsheet_report(120, 0, outcome, rows, max_errors=5)
    assert len(narrow.insert_errors) == 5


def test_spreadsheet_report_to_dict_keys():
    report = ImportReport(total_rows=1, created=1, failed=0, skipped_empty_rows=0)
    assert list(report.to_dict()) == [
        "totalRows", "created", "failed", "skippedEmptyRows", "insertErrors"
    ]


def test_bulk_report_keeps_request_positions():
    outcome = BatchInsertOutcome(
        inserted=[{"serialNumber": "A"}],
        failures=[_failure(1)],
        batches=1,
    )
    report = build_bulk_report(outcome)
    assert report.to_dict() == {
        "created": 1,
        "failed": 1,
        "assets": [{"serialNumber": "A"}],
        "errors": [{"index": 1, "message": "Duplicate serial number"}],
    }
    assert report.message == "1 assets created, 1 failed"
    assert report.total_rows == 2
    assert report.skipped_empty_rows == 0


def test_render_summary_line_matches_pattern():
    report = ImportReport(total_rows=1000, created=990, failed=5, skipped_empty_rows=5, batches=2)
    line = render_summary_line(report, 2.0)
    m = SUMMARY_PATTERN.match(line)
    assert m, line
    assert m.groups() == ("1000", "990", "5", "5", "2", "2", "495")


def test_render_summary_line_fractional_and_zero_elapsed():
    report = BulkImportReport(created=3, failed=0, batches=1)
    line = render_summary_line(report, 0.25)
    assert SUMMARY_PATTERN.match(line), line
    assert line.endswith("elapsed_sec=0.25 throughput_rps=12")

    empty = BulkImportReport(created=0, failed=2, batches=1)
    assert "elapsed_sec=0.004 " in render_summary_line(empty, 0.004)

    zero = render_summary_line(report, 0.0)
    assert zero.endswith("elapsed_sec=0 throughput_rps=0")


def test_batch_stats_accumulator():
    stats = BatchStatsAccumulator()
    assert stats.get_stats() == (0, 0.0, 0.0)
    stats.add_batch_time(0.5)
    assert stats.get_stats() == (1, 0.5, 0.5)
    for t in (0.1, 0.2, 0.3):
        stats.add_batch_time(t)
    total, avg, p95 = stats.get_stats()
    assert total == 4
    assert abs(avg - 0.275) < 1e-9
    assert 0.3 <= p95 <= 0.5
