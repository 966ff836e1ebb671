from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

import psycopg2
import pytest

from asset_import.cli.__main__ import (
    EXIT_FATAL,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS_ALL,
    main,
)
from asset_import.logging.init import LOGGER_NAME

HEADER = ["Sr No", "Company", "Dept", "User"]


@pytest.fixture()
def patched_connect(monkeypatch, make_store):
    """Replace the psycopg2 connection with an in-memory store; returns the store."""
    for name in ("DATABASE_URL", "PGDSN", "PGDATABASE"):
        monkeypatch.delenv(name, raising=False)
    store = make_store(existing_serials=["DUP-1"])
    seen: list[str] = []

    @contextmanager
    def fake_connect(dsn):
        seen.append(dsn)
        yield store

    monkeypatch.setattr("asset_import.cli.__main__.connect", fake_connect)
    store.dsns = seen
    return store


def _write_workbook(directory: Path, workbook, rows) -> Path:
    path = directory / "data" / "assets.xlsx"
    path.write_bytes(workbook(HEADER, rows))
    return path


def test_main_success(write_config, temp_workdir, workbook, patched_connect, capsys):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"], ["A-2", "Acme", "Ops", "Bob"]])
    code = main([str(path), "--created-by", "u1"])

    assert code == EXIT_SUCCESS_ALL
    assert len(patched_connect.assets) == 2
    assert patched_connect.dsns and "dbname=it_assets_db" in patched_connect.dsns[0]
    out = capsys.readouterr().out
    assert "SUMMARY rows=2 created=2 failed=0 skipped_empty=0 batches=1" in out


def test_main_partial_failure(write_config, temp_workdir, workbook, patched_connect, capsys):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"], ["dup-1", "Acme", "Ops", "Bob"]])
    code = main([str(path), "--created-by", "u1"])

    assert code == EXIT_PARTIAL_FAILURE
    out = capsys.readouterr().out
    assert "WARN row=3 serial=dup-1 Duplicate serial number" in out
    assert list((temp_workdir / "logs").glob("errors-*.log"))


def test_main_rejected_import(write_config, temp_workdir, workbook, patched_connect, capsys):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"]])
    assert main([str(path)]) == EXIT_FATAL
    assert "ERROR rejected: createdBy (user ID) is required" in capsys.readouterr().out
    assert patched_connect.assets == []


def test_main_database_error(write_config, temp_workdir, workbook, monkeypatch, capsys):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"]])

    def refuse(dsn):
        raise psycopg2.OperationalError("could not connect to server")

    monkeypatch.setattr("asset_import.cli.__main__.connect", refuse)
    assert main([str(path), "--created-by", "u1"]) == EXIT_FATAL
    assert "ERROR database: could not connect" in capsys.readouterr().out


def test_main_store_failure_mid_import(write_config, temp_workdir, workbook, patched_connect):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"]])
    patched_connect.fail_with = psycopg2.OperationalError("server closed the connection")
    assert main([str(path), "--created-by", "u1"]) == EXIT_FATAL


def test_main_missing_file(write_config, temp_workdir, capsys):
    assert main([str(temp_workdir / "nope.xlsx"), "--created-by", "u1"]) == EXIT_FATAL
    assert "file not found" in capsys.readouterr().out


def test_main_missing_config(temp_workdir, capsys):
    assert main(["whatever.xlsx", "--config", str(temp_workdir / "missing.yml")]) == EXIT_FATAL
    assert "ERROR config: config file not found" in capsys.readouterr().out


def test_main_init_schema(write_config, temp_workdir, workbook, patched_connect):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"]])
    main([str(path), "--created-by", "u1", "--init-schema"])
    assert patched_connect.schema_created is True


def test_main_debug_mode(write_config, temp_workdir, workbook, patched_connect):
    path = _write_workbook(temp_workdir, workbook, [["A-1", "Acme", "Eng", "Jane"]])
    main([str(path), "--created-by", "u1", "--debug"])
    assert logging.getLogger(LOGGER_NAME).level == logging.DEBUG


def test_inspect_data_does_not_touch_database(write_config, temp_workdir, workbook, monkeypatch, capsys):
    path = temp_workdir / "data" / "assets.xlsx"
    path.write_bytes(workbook(HEADER + ["Unused"], [["", "Acme", "Eng", "Jane", "x"], ["", "", "", "", "y"]]))

    def boom(dsn):
        raise AssertionError("connect must not be called")

    monkeypatch.setattr("asset_import.cli.__main__.connect", boom)
    assert main([str(path), "--inspect-data"]) == EXIT_SUCCESS_ALL

    out = capsys.readouterr().out
    assert "FILE: assets.xlsx SHEET: Assets rows=2" in out
    assert "'Sr No': 'serialNumber'" in out
    assert "ignored=['Unused']" in out
    assert "row=2 keep=True" in out
    assert "row=3 keep=False" in out


def test_inspect_data_unreadable_file(write_config, temp_workdir, capsys):
    path = temp_workdir / "data" / "broken.xlsx"
    path.write_bytes(b"garbage")
    assert main([str(path), "--inspect-data"]) == EXIT_FATAL
    assert "inspect: Unable to read Excel file" in capsys.readouterr().out
