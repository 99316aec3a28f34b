"""Helpers for locating a finding inside its cell text.

``marked_text`` is the cell text with the highlighted span wrapped in a
severity-tagged ``<mark>`` element.  It is built per finding so overlapping
findings in the same cell never interfere with each other.
"""
from __future__ import annotations

MARK_CLOSE = "</mark>"
CONTEXT_WIDTH = 15


def mark_open(severity: str) -> str:
    return f'<mark class="{severity}">'


def clamp_range(text: str, start: int, end: int) -> tuple[int, int]:
    length = len(text)
    start = min(max(start, 0), length)
    end = min(max(end, start), length)
    return start, end


def build_marked_text(text: str, start: int, end: int, severity: str) -> str:
    start, end = clamp_range(text, start, end)
    return f"{text[:start]}{mark_open(severity)}{text[start:end]}{MARK_CLOSE}{text[end:]}"


def strip_marker(marked_text: str, start: int, end: int, severity: str) -> str:
    """Remove the marker injected by :func:`build_marked_text`."""

    opening = mark_open(severity)
    if marked_text[start : start + len(opening)] != opening:
        raise ValueError("marked text does not carry a marker at the expected offset")
    span_start = start + len(opening)
    span_end = span_start + (end - start)
    if marked_text[span_end : span_end + len(MARK_CLOSE)] != MARK_CLOSE:
        raise ValueError("marked text is missing the closing marker")
    return marked_text[:start] + marked_text[span_start:span_end] + marked_text[span_end + len(MARK_CLOSE) :]


def context_window(text: str, start: int, end: int, width: int = CONTEXT_WIDTH) -> tuple[str, str]:
    start, end = clamp_range(text, start, end)
    return text[max(0, start - width) : start], text[end : end + width]
