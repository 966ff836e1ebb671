from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

import pandas as pd

from asset_import.models.asset import (
    DEFAULT_DEVICE,
    DEFAULT_STATUS,
    DEVICE_TYPES,
    PLACEHOLDER,
    STATUS_TYPES,
    TEXT_FIELDS,
    NormalizedRow,
)

"""Row normalization for spreadsheet imports.

normalize_row never fails: every mapped row comes out as a complete asset
record. Coercion rules per field:

- text fields: trimmed, blank -> "NA"
- device: case-insensitive match against DEVICE_TYPES, otherwise "Other";
  blank or "NA" counts as absent
- status: case-insensitive match against STATUS_TYPES, blank -> "Active";
  unknown values are kept as typed and left to the store to refuse
- dateOfPurchase: date cells pass through, text is parsed; unparseable or
  blank -> current timestamp
- serialNumber: blank or "NA" -> IT-<YYYYMMDD>-<HHMMSS>-<NNNN>
"""

__all__ = [
    "coerce_text",
    "coerce_date",
    "match_device",
    "match_status",
    "synthesize_serial_number",
    "normalize_row",
]

_DEVICE_LOOKUP = {d.lower(): d for d in DEVICE_TYPES}
_STATUS_LOOKUP = {s.lower(): s for s in STATUS_TYPES}


def coerce_text(value: Any) -> str:
    """Cell value -> trimmed string ("" for blank cells)."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            # 12345.0 のような数値セルは整数表記に戻す
            return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def coerce_date(value: Any) -> datetime | None:
    """Return a datetime for date-like values, None when the value does not parse."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = pd.to_datetime(text, errors="coerce")
        if pd.isna(parsed):
            return None
        return parsed.to_pydatetime()
    return None


def match_device(value: str) -> str:
    return _DEVICE_LOOKUP.get(value.strip().lower(), DEFAULT_DEVICE)


def match_status(value: str) -> str:
    text = value.strip()
    if not text:
        return DEFAULT_STATUS
    return _STATUS_LOOKUP.get(text.lower(), text)


def synthesize_serial_number(now: datetime, row_number: int) -> str:
    """IT-<YYYYMMDD>-<HHMMSS>-<NNNN>, now taken in UTC.

    Unique within one import (row numbers differ) but two imports started in
    the same second produce the same serials for the same row positions; the
    store's unique index reports those as duplicates.
    """
    stamp = now.astimezone(UTC) if now.tzinfo is not None else now
    return f"IT-{stamp:%Y%m%d}-{stamp:%H%M%S}-{row_number:04d}"


def normalize_row(
    mapped: Mapping[str, Any],
    row_index: int,
    created_by: str,
    now: datetime | None = None,
) -> NormalizedRow:
    """Build a complete asset record from a column-mapped row.

    Args:
        mapped: canonical field -> raw cell value (output of map_columns)
        row_index: 0-based position of the row among the data rows
        created_by: creator reference stamped on the record
        now: clock used for defaults and serial synthesis (UTC now if omitted)
    """
    now = now or datetime.now(UTC)
    values: dict[str, Any] = {}
    defaulted: set[str] = set()

    for field in TEXT_FIELDS:
        text = coerce_text(mapped.get(field))
        if text == "":
            text = PLACEHOLDER
            defaulted.add(field)
        values[field] = text

    device = values["device"]
    if "device" in defaulted or device.upper() == PLACEHOLDER:
        # "NA" と書かれたセルは空欄と同じ扱い
        values["device"] = DEFAULT_DEVICE
        defaulted.add("device")
    else:
        values["device"] = match_device(device)

    status = coerce_text(mapped.get("status"))
    if status == "":
        defaulted.add("status")
    values["status"] = match_status(status)

    purchased = coerce_date(mapped.get("dateOfPurchase"))
    if purchased is None:
        purchased = now
        defaulted.add("dateOfPurchase")
    values["dateOfPurchase"] = purchased

    serial = coerce_text(mapped.get("serialNumber"))
    if serial == "" or serial.upper() == PLACEHOLDER:
        serial = synthesize_serial_number(now, row_index + 1)
        defaulted.add("serialNumber")
    values["serialNumber"] = serial

    values["createdBy"] = created_by
    # ヘッダ行 = 1 行目なので、データ行は index + 2
    return NormalizedRow(row_number=row_index + 2, values=values, defaulted=frozenset(defaulted))
