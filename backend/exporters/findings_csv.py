from __future__ import annotations

from typing import Sequence

from backend.core.schema import ValidationResult

from .findings_table import findings_frame


def export_findings_csv(results: Sequence[ValidationResult], *, merged: bool) -> bytes:
    """UTF-8 CSV with a BOM so spreadsheet apps detect the Korean text."""

    df = findings_frame(results, with_file_name=merged)
    return df.to_csv(index=False).encode("utf-8-sig")
