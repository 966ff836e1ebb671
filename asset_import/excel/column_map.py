from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

"""Spreadsheet header -> canonical asset field mapping.

Headers are matched after strip() + lower(); the comparison is exact, no
fuzzy matching. Headers that match nothing are dropped without error.
"""

__all__ = [
    "COLUMN_ALIASES",
    "resolve_header",
    "map_columns",
    "detect_columns",
]

_ALIASES: dict[str, tuple[str, ...]] = {
    "serialNumber": (
        "serialnumber", "serial number", "serial_number", "sn",
        "sr no", "sr.no", "sr. no", "srno", "sl no", "sl.no", "slno",
        "asset id", "assetid", "asset_id",
    ),
    "companyName": (
        "companyname", "company name", "company", "organization", "org", "firm",
    ),
    "branch": ("branch", "location", "site", "office"),
    "department": ("department", "dept", "division", "team"),
    "userName": (
        "username", "user name", "user", "name", "employee", "employee name",
        "employeename", "assigned to", "assignedto", "assigned",
    ),
    "brand": ("brand", "make", "manufacturer", "vendor"),
    "device": (
        "device", "device type", "devicetype", "type", "asset type", "assettype",
        "equipment", "category",
    ),
    "deviceSerialNo": (
        "deviceserialno", "device serial no", "device serial", "device_serial",
        "device serial number", "deviceserialnumber", "equipment serial",
        "equipment serial no", "asset serial", "asset serial no", "serial no",
        "serialno", "product serial", "device s.no", "device sno",
    ),
    "operatingSystem": ("operatingsystem", "operating system", "os"),
    "dateOfPurchase": (
        "dateofpurchase", "date of purchase", "purchase date", "purchasedate",
        "purchase_date", "purchased on", "date", "bought on", "acquisition date",
        "purchase",
    ),
    "remark": ("remark", "remarks", "notes", "comment", "comments", "description"),
    "status": ("status", "state", "condition"),
}

COLUMN_ALIASES: Mapping[str, str] = MappingProxyType(
    {alias: canonical for canonical, aliases in _ALIASES.items() for alias in aliases}
)


def resolve_header(header: Any) -> str | None:
    """Return the canonical field for a header cell, or None if unknown."""
    if header is None:
        return None
    return COLUMN_ALIASES.get(str(header).strip().lower())


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def map_columns(raw_row: Mapping[Any, Any]) -> dict[str, Any]:
    """Project a raw row (header -> cell) onto canonical field names.

    When several headers resolve to the same field, the left-most non-blank
    cell wins.
    """
    mapped: dict[str, Any] = {}
    for header, value in raw_row.items():
        canonical = resolve_header(header)
        if canonical is None:
            continue
        if canonical in mapped and not _is_blank(mapped[canonical]):
            continue
        mapped[canonical] = value
    return mapped


def detect_columns(headers: Iterable[Any]) -> dict[str, str]:
    """Header -> canonical field for every recognised header (diagnostics)."""
    detected: dict[str, str] = {}
    for header in headers:
        canonical = resolve_header(header)
        if canonical is not None:
            detected[str(header)] = canonical
    return detected
