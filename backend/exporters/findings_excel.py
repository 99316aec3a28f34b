from __future__ import annotations

import io
from typing import Sequence

import pandas as pd

from backend.core.schema import ValidationResult

from .findings_table import findings_frame, summary_frame

SEVERITY_SHEETS = [("error", "Errors"), ("warning", "Warnings"), ("info", "Info")]


def export_findings_excel(results: Sequence[ValidationResult], *, merged: bool) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        summary_frame(results).to_excel(writer, sheet_name="Summary", index=False)
        for severity, sheet_name in SEVERITY_SHEETS:
            df = findings_frame(results, with_file_name=merged, severity=severity)
            df.to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()
