from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

"""Result models returned by the import entry points.

to_dict() renders the exact wire shape placed in the response envelope's
`data` member.
"""

__all__ = [
    "InsertErrorEntry",
    "ImportReport",
    "BulkErrorEntry",
    "BulkImportReport",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class InsertErrorEntry:
    row: int  # spreadsheet row number
    serial_number: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "serialNumber": self.serial_number, "message": self.message}


@dataclass(frozen=True)
class ImportReport:
    """Spreadsheet import result.

    failed counts every refused row; insert_errors holds at most the
    configured number of entries (first failures first).
    """
    total_rows: int
    created: int
    failed: int
    skipped_empty_rows: int
    insert_errors: list[InsertErrorEntry] = field(default_factory=list)
    batches: int = 0

    @property
    def message(self) -> str:
        return f"Excel processed: {self.created} created, {self.failed} failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "created": self.created,
            "failed": self.failed,
            "skippedEmptyRows": self.skipped_empty_rows,
            "insertErrors": [e.to_dict() for e in self.insert_errors],
        }


@dataclass(frozen=True)
class BulkErrorEntry:
    index: int  # position in the request's assets array
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "message": self.message}


@dataclass(frozen=True)
class BulkImportReport:
    """JSON array import result."""
    created: int
    failed: int
    assets: list[dict[str, Any]] = field(default_factory=list)
    errors: list[BulkErrorEntry] = field(default_factory=list)
    batches: int = 0

    @property
    def total_rows(self) -> int:
        return self.created + self.failed

    @property
    def skipped_empty_rows(self) -> int:
        return 0

    @property
    def message(self) -> str:
        return f"{self.created} assets created, {self.failed} failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "failed": self.failed,
            "assets": self.assets,
            "errors": [e.to_dict() for e in self.errors],
        }


class BatchStatsAccumulator:
    """Accumulates per-batch timing measurements."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_batches, avg_batch_seconds, p95_batch_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 20 分位の 19 番目 = p95
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method="inclusive"
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
