from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from asset_import.config.loader import ConfigError, load_config, resolve_dsn
from asset_import.db.asset_store import connect
from asset_import.db.batch_insert import BatchInsertError
from asset_import.excel.column_map import detect_columns
from asset_import.excel.reader import SpreadsheetReadError, read_spreadsheet
from asset_import.logging.error_log import ErrorLogBuffer
from asset_import.logging.init import setup_logging
from asset_import.services.importer import ImportRejected, import_spreadsheet, normalize_sheet
from asset_import.services.progress import ProgressTracker
from asset_import.services.row_filter import has_meaningful_data

"""CLI entrypoint.

Imports one spreadsheet into the configured PostgreSQL database:
- Load .env and config/import.yml (or --config)
- Optionally create the assets table (--init-schema)
- Run the spreadsheet import with a tqdm progress bar
- Print the SUMMARY line; exit code reflects the outcome

--inspect-data shows what the column mapper and normalizer make of the file
without connecting to the database.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; .env values win over the inherited environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Spreadsheet -> IT asset register importer")
    p.add_argument("file", help="Excel workbook to import (first sheet is used)")
    p.add_argument("--created-by", dest="created_by", help="Creator user ID stamped on every asset")
    p.add_argument("--config", type=Path, default=None, help="Config YAML (default: config/import.yml)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print header mapping & sample rows then exit")
    p.add_argument("--init-schema", action="store_true", help="Create the assets table if missing")
    return p.parse_args(argv)


def _inspect_data(path: Path, created_by: str) -> int:
    try:
        sheet = read_spreadsheet(path)
    except SpreadsheetReadError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    detected = detect_columns(sheet.columns)
    ignored = [c for c in sheet.columns if c not in detected]
    print(f"FILE: {path.name} SHEET: {sheet.sheet_name} rows={len(sheet.rows)}")
    print(f"  mapped={detected}")
    print(f"  ignored={ignored}")
    for row in normalize_sheet(sheet, created_by)[:3]:
        # datetime を含むため isoformat で表示
        safe = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in row.values.items()}
        print(f"  row={row.row_number} keep={has_meaningful_data(row)} values={safe}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] が与えられた場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    path = Path(args.file)
    if not path.is_file():
        logger.error(f"file not found: {path}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(path, args.created_by or "inspect")

    error_log = ErrorLogBuffer(cfg.error_log_dir) if cfg.error_log_dir else None
    try:
        with connect(resolve_dsn(cfg.database)) as store:
            if args.init_schema:
                store.ensure_schema()
                logger.info("assets table ready")
            with ProgressTracker(description=path.name) as progress:
                report = import_spreadsheet(
                    path.read_bytes(),
                    args.created_by,
                    store,
                    cfg.imports,
                    source_name=path.name,
                    error_log=error_log,
                    on_batch=progress.on_batch,
                )
    except ImportRejected as e:
        logger.error(f"rejected: {e.message}")
        return EXIT_FATAL
    except (BatchInsertError, psycopg2.Error) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    for entry in report.insert_errors:
        logger.warning(f"row={entry.row} serial={entry.serial_number} {entry.message}")
    if report.failed > len(report.insert_errors):
        logger.warning(f"{report.failed - len(report.insert_errors)} more failures not shown")

    return EXIT_PARTIAL_FAILURE if report.failed else EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
