from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from asset_import.db.asset_store import AssetStore, WriteError
from asset_import.models.error_record import CONSTRAINT_VIOLATION, DUPLICATE_SERIAL

"""Batched asset inserts.

Rows are split into fixed-size batches and sent to AssetStore.insert_many
with ordered=False, one batch at a time: batch N+1 starts only after batch
N has come back. A batch that has already committed stays committed when a
later batch fails.

Per-row refusals come back as RowFailure values. An exception raised by the
store (lost connection and the like) is wrapped in BatchInsertError and
aborts the remaining batches.
"""

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DUPLICATE_MESSAGE",
    "BatchInsertError",
    "BatchMetrics",
    "RowFailure",
    "BatchInsertOutcome",
    "batch_insert",
    "describe_write_error",
]

DEFAULT_BATCH_SIZE = 500
DUPLICATE_MESSAGE = "Duplicate serial number"
UNIQUE_VIOLATION = "23505"


class BatchInsertError(Exception):
    """Raised when a batch round-trip fails as a whole."""

    def __init__(self, message: str, *, batch: int, committed: int) -> None:
        super().__init__(message)
        self.batch = batch
        self.committed = committed  # 失敗前にコミット済みの行数


@dataclass(frozen=True)
class BatchMetrics:
    """Timing data for a single insert_many round-trip."""
    batch_number: int  # 0-based
    batch_size: int
    inserted: int
    failed: int
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float


@dataclass(frozen=True)
class RowFailure:
    """One row refused by the store.

    position is the 0-based offset inside its batch, index the offset in the
    whole input sequence.
    """
    batch: int
    position: int
    index: int
    message: str
    error_type: str


@dataclass
class BatchInsertOutcome:
    inserted: list[dict[str, Any]] = field(default_factory=list)
    failures: list[RowFailure] = field(default_factory=list)
    batches: int = 0

    @property
    def created(self) -> int:
        return len(self.inserted)

    @property
    def failed(self) -> int:
        return len(self.failures)


def describe_write_error(error: WriteError) -> tuple[str, str]:
    """Return (message, error_type); duplicate-key refusals get a fixed message."""
    if error.code == UNIQUE_VIOLATION or "duplicate" in error.errmsg.lower():
        return DUPLICATE_MESSAGE, DUPLICATE_SERIAL
    return error.errmsg, CONSTRAINT_VIOLATION


def batch_insert(
    store: AssetStore,
    rows: Sequence[Mapping[str, Any]],
    batch_size: int = DEFAULT_BATCH_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
    on_batch: Callable[[int, int], None] | None = None,
) -> BatchInsertOutcome:
    """Insert `rows` in sequential unordered batches.

    Parameters
    ----------
    store: asset store (insert_many with ordered=False semantics)
    rows: records ready for persistence
    batch_size: rows per insert_many call
    metrics_callback: receives BatchMetrics after every batch
        (not invoked when `rows` is empty)
    on_batch: progress hook called as on_batch(rows_in_batch, failed_in_batch)
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive: {batch_size}")

    outcome = BatchInsertOutcome()
    for number, offset in enumerate(range(0, len(rows), batch_size)):
        batch = rows[offset:offset + batch_size]
        start_time = time.time()
        try:
            result = store.insert_many(batch, ordered=False)
        except Exception as e:
            raise BatchInsertError(
                f"batch {number} failed: {e}", batch=number, committed=outcome.created
            ) from e
        end_time = time.time()

        outcome.inserted.extend(result.inserted)
        for err in result.write_errors:
            message, error_type = describe_write_error(err)
            outcome.failures.append(
                RowFailure(
                    batch=number,
                    position=err.index,
                    index=offset + err.index,
                    message=message,
                    error_type=error_type,
                )
            )
        outcome.batches += 1

        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_number=number,
                    batch_size=len(batch),
                    inserted=len(result.inserted),
                    failed=len(result.write_errors),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )
        if on_batch is not None:
            on_batch(len(batch), len(result.write_errors))
    return outcome
