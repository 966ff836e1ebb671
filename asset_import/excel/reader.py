from __future__ import annotations

import io
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Spreadsheet reader.

- 先頭シートのみ対象、1行目をヘッダ行として扱い 2行目以降がデータ行
- "NA" 等の文字列は pandas 既定の NaN 変換をせず文字列のまま保持する
  (NA はプレースホルダとして正規化段で解釈する)
- 空セル (None / NaN) は "" に揃える

Password-protected .xlsx files are not zip archives but OLE2 compound files
wrapping an "EncryptedPackage" stream; they are detected up front so the
caller gets a specific message instead of a generic parse failure.
"""

__all__ = [
    "SheetData",
    "SpreadsheetReadError",
    "EncryptedWorkbookError",
    "read_spreadsheet",
    "is_encrypted_workbook",
]

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ENCRYPTED_STREAM = "EncryptedPackage".encode("utf-16-le")


class SpreadsheetReadError(Exception):
    """Raised when the uploaded bytes cannot be parsed as a spreadsheet."""


class EncryptedWorkbookError(SpreadsheetReadError):
    """Raised for password-protected workbooks."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]  # header -> cell value (空セルは "")


def is_encrypted_workbook(content: bytes) -> bool:
    return content.startswith(OLE2_SIGNATURE) and _ENCRYPTED_STREAM in content


def _clean_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if value is pd.NaT:
        return ""
    return value


def read_spreadsheet(source: bytes | Path) -> SheetData:
    """Parse the first sheet of a workbook into header-keyed rows.

    Parameters
    ----------
    source: raw upload bytes or a path to a workbook on disk
    """
    content = source.read_bytes() if isinstance(source, Path) else source
    if is_encrypted_workbook(content):
        raise EncryptedWorkbookError("Cannot read password-protected Excel files")

    try:
        xls = pd.ExcelFile(io.BytesIO(content))
        if not xls.sheet_names:
            raise SpreadsheetReadError("Excel file has no sheets")
        sheet_name = str(xls.sheet_names[0])
        df = xls.parse(xls.sheet_names[0], header=0, dtype=object, keep_default_na=False)
    except SpreadsheetReadError:
        raise
    except Exception as e:
        if "encrypt" in str(e).lower():
            raise EncryptedWorkbookError("Cannot read password-protected Excel files") from e
        raise SpreadsheetReadError(f"Unable to read Excel file: {e}") from e

    columns = [str(c).strip() for c in df.columns.tolist()]
    rows: list[dict[str, Any]] = []
    for raw in df.itertuples(index=False, name=None):
        rows.append({col: _clean_cell(val) for col, val in zip(columns, raw, strict=False)})
    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)
