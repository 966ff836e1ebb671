from __future__ import annotations

from collections.abc import Sequence

from asset_import.db.batch_insert import BatchInsertOutcome
from asset_import.models.asset import NormalizedRow
from asset_import.models.import_report import (
    BulkErrorEntry,
    BulkImportReport,
    ImportReport,
    InsertErrorEntry,
)

"""Import report construction and SUMMARY line rendering.

Reports are pure aggregations over the batch inserter's outcome; nothing
here touches the store.
"""

__all__ = [
    "MAX_REPORTED_ERRORS",
    "build_spreadsheet_report",
    "build_bulk_report",
    "render_summary_line",
]

MAX_REPORTED_ERRORS = 50


def build_spreadsheet_report(
    total_rows: int,
    skipped_empty_rows: int,
    outcome: BatchInsertOutcome,
    rows: Sequence[NormalizedRow],
    max_errors: int = MAX_REPORTED_ERRORS,
) -> ImportReport:
    """Aggregate a spreadsheet import.

    Args:
        total_rows: data rows read from the sheet (before filtering)
        skipped_empty_rows: rows dropped by the row filter
        outcome: batch inserter result for the kept rows
        rows: the kept rows, in the order they were handed to batch_insert
        max_errors: cap on the number of insert error entries returned
    """
    entries = []
    for failure in outcome.failures[:max_errors]:
        source = rows[failure.index]
        entries.append(
            InsertErrorEntry(
                row=source.row_number,
                serial_number=source.serial_number,
                message=failure.message,
            )
        )
    return ImportReport(
        total_rows=total_rows,
        created=outcome.created,
        failed=outcome.failed,
        skipped_empty_rows=skipped_empty_rows,
        insert_errors=entries,
        batches=outcome.batches,
    )


def build_bulk_report(outcome: BatchInsertOutcome) -> BulkImportReport:
    return BulkImportReport(
        created=outcome.created,
        failed=outcome.failed,
        assets=list(outcome.inserted),
        errors=[BulkErrorEntry(index=f.index, message=f.message) for f in outcome.failures],
        batches=outcome.batches,
    )


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(report: ImportReport | BulkImportReport, elapsed_seconds: float) -> str:
    """Render the SUMMARY line for one import.

    Format:
    SUMMARY rows={total} created={created} failed={failed} skipped_empty={skipped}
    batches={batches} elapsed_sec={elapsed} throughput_rps={throughput}

    Examples:
        >>> r = ImportReport(total_rows=10, created=8, failed=1, skipped_empty_rows=1, batches=1)
        >>> render_summary_line(r, 2.0)
        'SUMMARY rows=10 created=8 failed=1 skipped_empty=1 batches=1 elapsed_sec=2 throughput_rps=4'
    """
    throughput = report.created / elapsed_seconds if elapsed_seconds > 0 else 0.0
    return (
        f"SUMMARY rows={report.total_rows} "
        f"created={report.created} "
        f"failed={report.failed} "
        f"skipped_empty={report.skipped_empty_rows} "
        f"batches={report.batches} "
        f"elapsed_sec={_format_number(elapsed_seconds)} "
        f"throughput_rps={_format_number(throughput)}"
    )
