# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from asset_import.db.asset_store import (
    AssetWriteError,
    InsertManyResult,
    WriteError,
    prepare_record,
)
from asset_import.logging.init import reset_logging
from asset_import.models.config_models import AppConfig, ImportSettings

UNIQUE_VIOLATION = "23505"
NOT_NULL_VIOLATION = "23502"


class InMemoryAssetStore:
    """AssetStore double honoring the serial_number unique index.

    Records go through the same prepare_record() coercion as the PostgreSQL
    store; a missing required field or an already used serial number comes
    back as a WriteError.
    """

    REQUIRED = ("serialNumber", "companyName", "branch", "department", "userName",
                "brand", "device", "deviceSerialNo", "dateOfPurchase", "createdBy")

    def __init__(self, existing_serials: Sequence[str] = ()) -> None:
        self.assets: list[dict[str, Any]] = []
        self.serials: set[str] = {s.upper() for s in existing_serials}
        self.insert_calls: list[int] = []
        self.fail_with: Exception | None = None
        self.schema_created = False

    def insert_many(
        self, records: Sequence[Mapping[str, Any]], ordered: bool = False
    ) -> InsertManyResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.insert_calls.append(len(records))
        result = InsertManyResult()
        for index, record in enumerate(records):
            doc = prepare_record(record)
            nested = [v for v in doc.values() if isinstance(v, (dict, list))]
            missing = [f for f in self.REQUIRED if doc.get(f) is None]
            if nested:
                result.write_errors.append(WriteError(
                    index=index, errmsg=f"can't adapt type '{type(nested[0]).__name__}'"
                ))
            elif missing:
                result.write_errors.append(WriteError(
                    index=index,
                    errmsg=f'null value in column "{missing[0]}" violates not-null constraint',
                    code=NOT_NULL_VIOLATION,
                ))
            elif doc["serialNumber"] in self.serials:
                result.write_errors.append(WriteError(
                    index=index,
                    errmsg='duplicate key value violates unique constraint "assets_serial_number_key"',
                    code=UNIQUE_VIOLATION,
                ))
            else:
                self.serials.add(doc["serialNumber"])
                stored = {"id": len(self.assets) + 1, **doc}
                self.assets.append(stored)
                result.inserted.append(stored)
                continue
            if ordered:
                break
        return result

    def ensure_schema(self) -> None:
        self.schema_created = True

    def exists_by_serial(self, serial_number: str) -> bool:
        return serial_number.strip().upper() in self.serials

    def create(self, record: Mapping[str, Any]) -> dict[str, Any]:
        result = self.insert_many([record], ordered=True)
        if result.write_errors:
            raise AssetWriteError(result.write_errors[0])
        return result.inserted[0]


@pytest.fixture()
def store() -> InMemoryAssetStore:
    return InMemoryAssetStore()


@pytest.fixture()
def make_store():
    """Build a store pre-seeded with serial numbers: make_store(existing_serials=[...])."""
    return InMemoryAssetStore


@pytest.fixture()
def settings() -> ImportSettings:
    return ImportSettings()


@pytest.fixture(autouse=True)
def _reset_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: it_assets_db
import:
  batch_size: 500
  max_spreadsheet_rows: 5000
  max_bulk_assets: 1000
  max_upload_bytes: 10485760
  max_reported_errors: 50
error_log_dir: logs
api:
  prefix: /api/v1
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def make_workbook(header: list[str], rows: list[list[Any]], sheet_name: str = "Assets") -> bytes:
    """Build an .xlsx in memory; row 1 is the header."""
    buf = io.BytesIO()
    df = pd.DataFrame([header, *rows])
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return buf.getvalue()


@pytest.fixture()
def workbook():
    return make_workbook


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(error_log_dir=str(tmp_path / "logs"))


@pytest.fixture()
def build_client():
    """build_client(config, store, **client_kwargs) -> TestClient bound to `store`."""
    from fastapi.testclient import TestClient

    from asset_import.api.app import create_app

    def _build(config: AppConfig, store: InMemoryAssetStore, **client_kwargs: Any):
        @contextmanager
        def factory():
            yield store

        return TestClient(create_app(config, store_factory=factory), **client_kwargs)

    return _build


@pytest.fixture()
def client(build_client, app_config: AppConfig, store: InMemoryAssetStore):
    return build_client(app_config, store)
