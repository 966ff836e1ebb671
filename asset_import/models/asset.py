from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Asset domain vocabulary and the NormalizedRow model.

Field names are the canonical (camelCase) names used on the wire; the
PostgreSQL column for each lives in asset_import.db.asset_store.
"""

__all__ = [
    "PLACEHOLDER",
    "DEFAULT_DEVICE",
    "DEFAULT_STATUS",
    "DEVICE_TYPES",
    "STATUS_TYPES",
    "REMARK_MAX_LENGTH",
    "CANONICAL_FIELDS",
    "TEXT_FIELDS",
    "MEANINGFUL_FIELDS",
    "NormalizedRow",
]

PLACEHOLDER = "NA"
DEFAULT_DEVICE = "Other"
DEFAULT_STATUS = "Active"
REMARK_MAX_LENGTH = 500

DEVICE_TYPES: tuple[str, ...] = (
    "Desktop",
    "Laptop",
    "Tablet",
    "Monitor",
    "Printer",
    "Scanner",
    "Server",
    "Network Device",
    "Other",
)
STATUS_TYPES: tuple[str, ...] = (
    "Active",
    "Inactive",
    "Under Maintenance",
    "Disposed",
    "Lost",
)

CANONICAL_FIELDS: tuple[str, ...] = (
    "serialNumber",
    "companyName",
    "branch",
    "department",
    "userName",
    "brand",
    "device",
    "deviceSerialNo",
    "operatingSystem",
    "dateOfPurchase",
    "remark",
    "status",
)

# 空欄時に PLACEHOLDER で埋める列
TEXT_FIELDS: tuple[str, ...] = (
    "companyName",
    "branch",
    "department",
    "userName",
    "brand",
    "device",
    "deviceSerialNo",
    "operatingSystem",
    "remark",
)

# 空行判定に使う列 (operatingSystem / remark / status / date は対象外)
MEANINGFUL_FIELDS: tuple[str, ...] = (
    "companyName",
    "branch",
    "department",
    "userName",
    "brand",
    "device",
    "deviceSerialNo",
)


@dataclass(frozen=True)
class NormalizedRow:
    """One spreadsheet row after column mapping and normalization.

    row_number is the spreadsheet row (header = row 1, first data row = 2).
    It is diagnostic context only and never persisted. defaulted lists the
    canonical fields whose value was filled in rather than read from a cell.
    """
    row_number: int
    values: dict[str, Any]
    defaulted: frozenset[str] = field(default_factory=frozenset)

    @property
    def serial_number(self) -> str:
        return str(self.values.get("serialNumber", ""))

    def to_record(self) -> dict[str, Any]:
        return dict(self.values)
