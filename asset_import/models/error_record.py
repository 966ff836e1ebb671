from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

One record per asset row that the store refused. The record is written as a
JSON Lines entry by asset_import.logging.error_log.ErrorLogBuffer; the key
set is fixed, extra keys are never emitted.

row carries the spreadsheet row number for spreadsheet imports and the
0-based position in the request array for JSON bulk imports. -1 marks a
failure that cannot be tied to a row.
"""

__all__ = [
    "ErrorRecord",
    "DUPLICATE_SERIAL",
    "CONSTRAINT_VIOLATION",
]

DUPLICATE_SERIAL = "DUPLICATE_SERIAL"
CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: upload file name, or "bulk" for JSON array imports
        row: row reference (see module docstring), -1 when unknown
        serial_number: serial number the row tried to claim ("" if none)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: message reported back to the caller
    """
    timestamp: str  # ISO8601 UTC
    source: str
    row: int
    serial_number: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(
        source: str, row: int, serial_number: str, error_type: str, message: str
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            row=row,
            serial_number=serial_number,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
