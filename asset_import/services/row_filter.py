from __future__ import annotations

from collections.abc import Iterable

from asset_import.models.asset import MEANINGFUL_FIELDS, PLACEHOLDER, NormalizedRow

__all__ = [
    "has_meaningful_data",
    "filter_rows",
]


def has_meaningful_data(row: NormalizedRow) -> bool:
    """True when at least one identifying column holds a value read from the sheet.

    Values filled in by the normalizer (the "NA" placeholder, the "Other"
    device fallback for an empty cell) are not data.
    """
    for field in MEANINGFUL_FIELDS:
        if field in row.defaulted:
            continue
        value = row.values.get(field)
        if value not in (None, "", PLACEHOLDER):
            return True
    return False


def filter_rows(rows: Iterable[NormalizedRow]) -> tuple[list[NormalizedRow], int]:
    """Split rows into (kept, skipped_count)."""
    kept: list[NormalizedRow] = []
    skipped = 0
    for row in rows:
        if has_meaningful_data(row):
            kept.append(row)
        else:
            skipped += 1
    return kept, skipped
