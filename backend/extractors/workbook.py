"""Read uploaded spreadsheets into plain text grids.

Only the shape the validators need is kept: sheets, rows, columns and the
text of every cell.  Formatting, formulas and merged ranges are ignored.
"""

from __future__ import annotations

import io
from pathlib import Path

import pandas as pd

from backend.domain import SpreadsheetDocument

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
SUPPORTED_SUFFIXES = EXCEL_SUFFIXES | {".csv"}


class UnsupportedDocument(ValueError):
    """Raised when an upload cannot be read as a spreadsheet."""


def _frame_to_rows(frame: pd.DataFrame) -> list[list[str]]:
    frame = frame.fillna("")
    rows: list[list[str]] = []
    for values in frame.itertuples(index=False, name=None):
        rows.append(["" if value is None else str(value) for value in values])
    # Trailing blank rows carry no cells; keep interior ones so row numbers stay true.
    while rows and not any(cell.strip() for cell in rows[-1]):
        rows.pop()
    return rows


def read_document(content: bytes, filename: str) -> SpreadsheetDocument:
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedDocument(f"{filename}: only .xlsx, .xlsm and .csv files are supported")

    buffer = io.BytesIO(content)
    try:
        if suffix == ".csv":
            frames = {"Sheet1": pd.read_csv(buffer, header=None, dtype=str, keep_default_na=False, encoding="utf-8-sig")}
        else:
            frames = pd.read_excel(buffer, sheet_name=None, header=None, dtype=str, engine="openpyxl")
    except pd.errors.EmptyDataError:
        frames = {"Sheet1": pd.DataFrame()}
    except Exception as exc:
        raise UnsupportedDocument(f"{filename}: unable to read spreadsheet ({exc})") from exc

    sheets = {str(name): _frame_to_rows(frame) for name, frame in frames.items()}
    return SpreadsheetDocument(file_name=filename, sheets=sheets, file_size=len(content))
