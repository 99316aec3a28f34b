"""Domain layer definitions."""

from .sessions import FileRecord, SessionState, SpreadsheetDocument, column_letter

__all__ = [
    "FileRecord",
    "SessionState",
    "SpreadsheetDocument",
    "column_letter",
]
