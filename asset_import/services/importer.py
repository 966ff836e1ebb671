from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from asset_import.db.asset_store import AssetStore, AssetWriteError
from asset_import.db.batch_insert import BatchInsertOutcome, batch_insert
from asset_import.excel.column_map import detect_columns, map_columns
from asset_import.excel.reader import SheetData, SpreadsheetReadError, read_spreadsheet
from asset_import.logging.error_log import ErrorLogBuffer
from asset_import.logging.init import log_summary
from asset_import.models.asset import CANONICAL_FIELDS, NormalizedRow
from asset_import.models.config_models import ImportSettings
from asset_import.models.error_record import ErrorRecord
from asset_import.models.import_report import (
    BatchStatsAccumulator,
    BulkImportReport,
    ImportReport,
)
from asset_import.services.normalizer import normalize_row
from asset_import.services.row_filter import filter_rows
from asset_import.services.summary import (
    build_bulk_report,
    build_spreadsheet_report,
    render_summary_line,
)

"""Import entry points.

import_spreadsheet: upload bytes -> read -> map -> normalize -> filter ->
    batch insert -> ImportReport
bulk_create: JSON objects -> batch insert -> BulkImportReport (no mapping,
    no defaults, no empty-row filter; callers send canonical field names)
create_asset: single record, duplicate serial checked up front

Each entry point is split into a prepare_* step that raises ImportRejected
for input problems without touching the store, and an insert step. Rows
the store refuses are part of the returned report, not exceptions.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ImportRejected",
    "DuplicateAsset",
    "PreparedSheet",
    "require_creator",
    "prepare_spreadsheet",
    "insert_prepared_sheet",
    "import_spreadsheet",
    "prepare_bulk",
    "insert_bulk",
    "bulk_create",
    "prepare_asset",
    "create_asset",
    "normalize_sheet",
]

CreatedBy = str | int | None


class ImportRejected(Exception):
    """Request refused before processing (HTTP 400)."""

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


class DuplicateAsset(Exception):
    """Serial number already taken (HTTP 409)."""


def require_creator(created_by: CreatedBy) -> str:
    if created_by is None or str(created_by).strip() == "":
        raise ImportRejected("createdBy (user ID) is required")
    return str(created_by).strip()


def normalize_sheet(
    sheet: SheetData, created_by: str, now: datetime | None = None
) -> list[NormalizedRow]:
    """Column-map and normalize every data row of a sheet."""
    now = now or datetime.now(UTC)
    return [
        normalize_row(map_columns(raw), index, created_by, now)
        for index, raw in enumerate(sheet.rows)
    ]


def _log_failures(
    error_log: ErrorLogBuffer | None,
    source: str,
    outcome: BatchInsertOutcome,
    row_ref: Callable[[int], tuple[int, str]],
) -> None:
    if error_log is None:
        return
    for failure in outcome.failures:
        row, serial = row_ref(failure.index)
        error_log.append(
            ErrorRecord.create(source, row, serial, failure.error_type, failure.message)
        )
    path = error_log.flush()
    if path is not None:
        logger.info("wrote %d insert errors to %s", outcome.failed, path)


def _timed_batches(stats: BatchStatsAccumulator):
    def callback(metrics):
        stats.add_batch_time(metrics.elapsed_seconds)
        logger.debug(
            "batch=%d size=%d inserted=%d failed=%d elapsed=%.3fs",
            metrics.batch_number,
            metrics.batch_size,
            metrics.inserted,
            metrics.failed,
            metrics.elapsed_seconds,
        )
    return callback


@dataclass
class PreparedSheet:
    """Spreadsheet rows that passed every request-level check, ready to insert."""
    source_name: str
    total_rows: int
    skipped_empty_rows: int
    rows: list[NormalizedRow]
    started: float = field(default_factory=time.perf_counter)


def prepare_spreadsheet(
    content: bytes,
    created_by: CreatedBy,
    settings: ImportSettings | None = None,
    *,
    source_name: str = "upload.xlsx",
    now: datetime | None = None,
) -> PreparedSheet:
    """Read, map, normalize and filter an upload without touching the store.

    Raises:
        ImportRejected: missing creator, unreadable/encrypted workbook, empty
            sheet, too many rows, or every row empty
    """
    settings = settings or ImportSettings()
    started = time.perf_counter()
    creator = require_creator(created_by)

    try:
        sheet = read_spreadsheet(content)
    except SpreadsheetReadError as e:
        raise ImportRejected(str(e)) from e
    total_rows = len(sheet.rows)
    if total_rows == 0:
        raise ImportRejected("Excel file is empty")
    if total_rows > settings.max_spreadsheet_rows:
        raise ImportRejected(
            f"Maximum {settings.max_spreadsheet_rows} records allowed per file"
        )
    logger.info(
        "import %s: sheet=%s rows=%d detected=%s",
        source_name,
        sheet.sheet_name,
        total_rows,
        detect_columns(sheet.columns),
    )

    normalized = normalize_sheet(sheet, creator, now)
    kept, skipped = filter_rows(normalized)
    if not kept:
        raise ImportRejected(
            "No valid records found. Check that your Excel has data.",
            data={
                "totalRows": total_rows,
                "created": 0,
                "skippedEmptyRows": skipped,
                "detectedHeaders": sheet.columns,
                "expectedColumns": [f for f in CANONICAL_FIELDS if f != "serialNumber"],
                "message": "All rows appear to be empty. Make sure your Excel has data "
                "in at least one of these columns.",
            },
        )
    return PreparedSheet(
        source_name=source_name,
        total_rows=total_rows,
        skipped_empty_rows=skipped,
        rows=kept,
        started=started,
    )


def insert_prepared_sheet(
    prepared: PreparedSheet,
    store: AssetStore,
    settings: ImportSettings | None = None,
    *,
    error_log: ErrorLogBuffer | None = None,
    on_batch: Callable[[int, int], None] | None = None,
) -> ImportReport:
    """Batch insert prepared rows and build the report.

    Raises:
        BatchInsertError: the store failed outside of per-row refusals
    """
    settings = settings or ImportSettings()
    kept = prepared.rows
    stats = BatchStatsAccumulator()
    outcome = batch_insert(
        store,
        [row.to_record() for row in kept],
        batch_size=settings.batch_size,
        metrics_callback=_timed_batches(stats),
        on_batch=on_batch,
    )
    report = build_spreadsheet_report(
        prepared.total_rows,
        prepared.skipped_empty_rows,
        outcome,
        kept,
        max_errors=settings.max_reported_errors,
    )
    _log_failures(
        error_log,
        prepared.source_name,
        outcome,
        lambda i: (kept[i].row_number, kept[i].serial_number),
    )

    total_batches, avg, p95 = stats.get_stats()
    logger.debug("batches=%d avg_batch_sec=%.3f p95_batch_sec=%.3f", total_batches, avg, p95)
    elapsed = time.perf_counter() - prepared.started
    log_summary(render_summary_line(report, elapsed)[len("SUMMARY "):])
    return report


def import_spreadsheet(
    content: bytes,
    created_by: CreatedBy,
    store: AssetStore,
    settings: ImportSettings | None = None,
    *,
    source_name: str = "upload.xlsx",
    error_log: ErrorLogBuffer | None = None,
    now: datetime | None = None,
    on_batch: Callable[[int, int], None] | None = None,
) -> ImportReport:
    """Import the first sheet of an uploaded workbook.

    prepare_spreadsheet() followed by insert_prepared_sheet(); see both for
    the exceptions raised.
    """
    prepared = prepare_spreadsheet(
        content, created_by, settings, source_name=source_name, now=now
    )
    return insert_prepared_sheet(
        prepared, store, settings, error_log=error_log, on_batch=on_batch
    )


def prepare_bulk(
    assets: Any, created_by: CreatedBy, settings: ImportSettings | None = None
) -> list[dict[str, Any]]:
    """Check a JSON bulk request and return the records to insert.

    Raises:
        ImportRejected: assets missing / empty / not a list / too long / holding
            non-object entries, or createdBy missing
    """
    settings = settings or ImportSettings()
    if not isinstance(assets, list) or not assets:
        raise ImportRejected("Provide an array of assets")
    if len(assets) > settings.max_bulk_assets:
        raise ImportRejected(f"Maximum {settings.max_bulk_assets} assets allowed per batch")
    creator = require_creator(created_by)
    if not all(isinstance(a, Mapping) for a in assets):
        raise ImportRejected("Each asset must be an object")
    return [{**asset, "createdBy": creator} for asset in assets]


def insert_bulk(
    records: Sequence[Mapping[str, Any]],
    store: AssetStore,
    settings: ImportSettings | None = None,
    *,
    error_log: ErrorLogBuffer | None = None,
) -> BulkImportReport:
    """Insert records returned by prepare_bulk() as-is."""
    settings = settings or ImportSettings()
    started = time.perf_counter()
    outcome = batch_insert(store, records, batch_size=settings.batch_size)
    report = build_bulk_report(outcome)
    _log_failures(
        error_log,
        "bulk",
        outcome,
        lambda i: (i, str(records[i].get("serialNumber") or "")),
    )
    log_summary(render_summary_line(report, time.perf_counter() - started)[len("SUMMARY "):])
    return report


def bulk_create(
    assets: Any,
    created_by: CreatedBy,
    store: AssetStore,
    settings: ImportSettings | None = None,
    *,
    error_log: ErrorLogBuffer | None = None,
) -> BulkImportReport:
    """Insert caller-supplied asset objects as-is (plus the shared createdBy).

    No mapping, no defaults, no empty-row filter.
    """
    records = prepare_bulk(assets, created_by, settings)
    return insert_bulk(records, store, settings, error_log=error_log)


REQUIRED_FIELDS: Sequence[str] = (
    "serialNumber",
    "companyName",
    "branch",
    "department",
    "userName",
    "brand",
    "device",
    "deviceSerialNo",
    "dateOfPurchase",
)


def prepare_asset(payload: Mapping[str, Any], created_by: CreatedBy = None) -> dict[str, Any]:
    """Check a single-asset payload; returns the record with createdBy attached.

    createdBy may come from the payload itself or from `created_by`.
    """
    creator = require_creator(created_by if created_by is not None else payload.get("createdBy"))
    missing = [f for f in REQUIRED_FIELDS if str(payload.get(f) or "").strip() == ""]
    if missing:
        raise ImportRejected(", ".join(f"{f} is required" for f in missing))
    return {**payload, "createdBy": creator}


def create_asset(
    payload: Mapping[str, Any], store: AssetStore, created_by: CreatedBy = None
) -> dict[str, Any]:
    """Create a single asset; the serial number is checked for duplicates first."""
    record = prepare_asset(payload, created_by)
    if store.exists_by_serial(str(record["serialNumber"])):
        raise DuplicateAsset("Asset with this serial number already exists")
    try:
        asset = store.create(record)
    except AssetWriteError as e:
        raise ImportRejected(str(e)) from e
    logger.info("created asset serial=%s", asset.get("serialNumber"))
    return asset
