from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor, execute_values

from asset_import.models.asset import DEVICE_TYPES, REMARK_MAX_LENGTH, STATUS_TYPES

"""Asset store: PostgreSQL persistence for asset records.

insert_many(records, ordered=False) has bulk-write semantics: every record
is attempted, a record that violates a constraint is reported as a
WriteError (index = position in `records`) and does not stop the others.
The fast path inserts the whole batch with one execute_values call inside a
SAVEPOINT; only when that fails does the store fall back to one INSERT per
row, each under its own SAVEPOINT. Each call commits before returning.

Uniqueness of serial_number is enforced by the table's UNIQUE constraint,
which covers soft-deleted rows as well. Nothing here pre-checks serials
before inserting.
"""

__all__ = [
    "ASSETS_DDL",
    "WriteError",
    "InsertManyResult",
    "AssetStore",
    "AssetWriteError",
    "PostgresAssetStore",
    "prepare_record",
    "connect",
]

# canonical field -> column. createdBy / isDeleted are stored but never mapped from sheets.
FIELD_COLUMNS: tuple[tuple[str, str], ...] = (
    ("serialNumber", "serial_number"),
    ("companyName", "company_name"),
    ("branch", "branch"),
    ("department", "department"),
    ("userName", "user_name"),
    ("brand", "brand"),
    ("device", "device"),
    ("deviceSerialNo", "device_serial_no"),
    ("operatingSystem", "operating_system"),
    ("dateOfPurchase", "date_of_purchase"),
    ("remark", "remark"),
    ("status", "status"),
    ("isDeleted", "is_deleted"),
    ("createdBy", "created_by"),
)
_COLUMN_FIELDS = {col: name for name, col in FIELD_COLUMNS}
_COLUMN_FIELDS.update({"id": "id", "created_at": "createdAt", "updated_at": "updatedAt"})

UPPERCASE_FIELDS = frozenset({"serialNumber", "deviceSerialNo"})
SCHEMA_DEFAULTS: Mapping[str, Any] = {
    "operatingSystem": "",
    "remark": "",
    "status": "Active",
    "isDeleted": False,
}


def _sql_list(values: Sequence[str]) -> str:
    return ", ".join("'" + v.replace("'", "''") + "'" for v in values)


ASSETS_DDL = f"""
CREATE TABLE IF NOT EXISTS assets (
    id BIGSERIAL PRIMARY KEY,
    serial_number TEXT NOT NULL UNIQUE,
    company_name TEXT NOT NULL,
    branch TEXT NOT NULL,
    department TEXT NOT NULL,
    user_name TEXT NOT NULL,
    brand TEXT NOT NULL,
    device TEXT NOT NULL CHECK (device IN ({_sql_list(DEVICE_TYPES)})),
    device_serial_no TEXT NOT NULL,
    operating_system TEXT NOT NULL DEFAULT '',
    date_of_purchase TIMESTAMPTZ NOT NULL,
    remark TEXT NOT NULL DEFAULT '' CHECK (char_length(remark) <= {REMARK_MAX_LENGTH}),
    status TEXT NOT NULL DEFAULT 'Active' CHECK (status IN ({_sql_list(STATUS_TYPES)})),
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    created_by TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS assets_org_idx ON assets (company_name, branch, department);
CREATE INDEX IF NOT EXISTS assets_status_idx ON assets (status, is_deleted);
CREATE INDEX IF NOT EXISTS assets_created_at_idx ON assets (created_at DESC);
"""

_COLS_SQL = ", ".join(col for _, col in FIELD_COLUMNS)
INSERT_MANY_SQL = f"INSERT INTO assets ({_COLS_SQL}) VALUES %s RETURNING *"
INSERT_ONE_SQL = (
    f"INSERT INTO assets ({_COLS_SQL}) VALUES ({', '.join(['%s'] * len(FIELD_COLUMNS))}) RETURNING *"
)
EXISTS_SQL = "SELECT 1 FROM assets WHERE serial_number = %s LIMIT 1"


@dataclass(frozen=True)
class WriteError:
    """A record the store refused. index is the position in the insert_many input."""
    index: int
    errmsg: str
    code: str | None = None  # SQLSTATE (23505 = unique_violation)


@dataclass
class InsertManyResult:
    inserted: list[dict[str, Any]] = field(default_factory=list)
    write_errors: list[WriteError] = field(default_factory=list)


class AssetWriteError(Exception):
    """Raised by create() when the single record violates a constraint."""

    def __init__(self, error: WriteError) -> None:
        super().__init__(error.errmsg)
        self.error = error


class AssetStore(Protocol):
    def insert_many(
        self, records: Sequence[Mapping[str, Any]], ordered: bool = False
    ) -> InsertManyResult: ...

    def exists_by_serial(self, serial_number: str) -> bool: ...

    def create(self, record: Mapping[str, Any]) -> dict[str, Any]: ...


def prepare_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Apply the schema-level coercions every stored asset goes through.

    Only known fields are read; anything else in `record` is ignored.
    Strings are trimmed, serial numbers upper-cased, blank optional fields
    take their schema default and blank required fields become None so the
    NOT NULL constraint refuses them.
    """
    doc: dict[str, Any] = {}
    for name, _ in FIELD_COLUMNS:
        value = record.get(name)
        if isinstance(value, str):
            value = value.strip()
            if name in UPPERCASE_FIELDS:
                value = value.upper()
            if value == "":
                value = None
        if value is None and name in SCHEMA_DEFAULTS:
            value = SCHEMA_DEFAULTS[name]
        if name == "createdBy" and value is not None:
            value = str(value)
        doc[name] = value
    return doc


def _row_values(doc: Mapping[str, Any]) -> tuple[Any, ...]:
    return tuple(doc[name] for name, _ in FIELD_COLUMNS)


def _to_asset(row: Mapping[str, Any]) -> dict[str, Any]:
    return {_COLUMN_FIELDS.get(col, col): value for col, value in row.items()}


# 1 行だけの問題として扱う例外 (制約違反, 型変換不可, 配列など型不一致)
_ROW_ERRORS = (psycopg2.IntegrityError, psycopg2.DataError, psycopg2.ProgrammingError)


def _error_text(e: psycopg2.Error) -> str:
    return (e.pgerror or str(e)).strip()


class PostgresAssetStore:
    """psycopg2-backed AssetStore. The store does not own the connection."""

    def __init__(self, connection: Any) -> None:
        self._conn = connection

    def ensure_schema(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute(ASSETS_DDL)
        self._conn.commit()

    def insert_many(
        self, records: Sequence[Mapping[str, Any]], ordered: bool = False
    ) -> InsertManyResult:
        docs = [prepare_record(r) for r in records]
        if not docs:
            return InsertManyResult()

        with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SAVEPOINT asset_batch")
            try:
                returned = execute_values(
                    cur,
                    INSERT_MANY_SQL,
                    [_row_values(d) for d in docs],
                    page_size=len(docs),
                    fetch=True,
                )
            except _ROW_ERRORS:
                # バッチ全体を巻き戻し、1 行ずつ再試行して失敗行を特定する
                cur.execute("ROLLBACK TO SAVEPOINT asset_batch")
                result = self._insert_each(cur, docs, ordered)
            else:
                cur.execute("RELEASE SAVEPOINT asset_batch")
                result = InsertManyResult(inserted=[_to_asset(r) for r in returned])
        self._conn.commit()
        return result

    def _insert_each(
        self, cur: Any, docs: list[dict[str, Any]], ordered: bool
    ) -> InsertManyResult:
        result = InsertManyResult()
        for index, doc in enumerate(docs):
            cur.execute("SAVEPOINT asset_row")
            try:
                cur.execute(INSERT_ONE_SQL, _row_values(doc))
                row = cur.fetchone()
            except _ROW_ERRORS as e:
                cur.execute("ROLLBACK TO SAVEPOINT asset_row")
                result.write_errors.append(
                    WriteError(index=index, errmsg=_error_text(e), code=e.pgcode)
                )
                if ordered:
                    break
            else:
                cur.execute("RELEASE SAVEPOINT asset_row")
                result.inserted.append(_to_asset(row))
        return result

    def exists_by_serial(self, serial_number: str) -> bool:
        with self._conn.cursor() as cur:
            cur.execute(EXISTS_SQL, (serial_number.strip().upper(),))
            return cur.fetchone() is not None

    def create(self, record: Mapping[str, Any]) -> dict[str, Any]:
        result = self.insert_many([record], ordered=True)
        if result.write_errors:
            raise AssetWriteError(result.write_errors[0])
        return result.inserted[0]


@contextmanager
def connect(dsn: str) -> Iterator[PostgresAssetStore]:
    """Open a psycopg2 connection and yield a store bound to it."""
    conn = psycopg2.connect(dsn)
    conn.autocommit = False  # insert_many がバッチ単位で COMMIT する
    try:
        yield PostgresAssetStore(conn)
    except Exception:
        if not conn.closed:
            conn.rollback()
        raise
    finally:
        conn.close()

