from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.schema import CellLocation, Finding, HighlightRange
from backend.validators.highlight import build_marked_text, context_window, strip_marker

LOCATION = CellLocation(sheet="Sheet1", row=1, column="A", cell="A1")


@pytest.mark.parametrize(
    ("text", "start", "end", "severity"),
    [
        ("과학 경진대회에서 우수상을 받음", 3, 7, "error"),
        ("presentation 발표", 0, 12, "warning"),
        ("끝에 표시", 3, 5, "info"),
        ("빈 범위", 2, 2, "info"),
    ],
)
def test_marked_text_round_trips(text, start, end, severity):
    marked = build_marked_text(text, start, end, severity)

    assert marked == f'{text[:start]}<mark class="{severity}">{text[start:end]}</mark>{text[end:]}'
    assert strip_marker(marked, start, end, severity) == text


def test_overlapping_findings_are_marked_independently():
    text = "교내 최우수상 수상"
    first = build_marked_text(text, 3, 7, "error")
    second = build_marked_text(text, 4, 7, "warning")

    assert first.count("<mark") == 1
    assert second.count("<mark") == 1
    assert strip_marker(first, 3, 7, "error") == text
    assert strip_marker(second, 4, 7, "warning") == text


def test_strip_marker_rejects_mismatched_offsets():
    marked = build_marked_text("abcdef", 1, 3, "error")
    with pytest.raises(ValueError):
        strip_marker(marked, 2, 3, "error")
    with pytest.raises(ValueError):
        strip_marker(marked, 1, 3, "warning")


def test_context_window_is_clamped_to_text():
    assert context_window("가나다라마", 1, 2, width=15) == ("가", "다라마")
    assert context_window("0123456789" * 4, 20, 22) == ("56789012345678" + "9", "234567890123456")


def test_finding_range_must_fit_original_text():
    with pytest.raises(ValidationError):
        Finding(
            id="f-1",
            type="spacing",
            severity="warning",
            message="too long",
            location=LOCATION,
            original_text="abc",
            rule="spacing",
            highlight_range=HighlightRange(start=1, end=4),
        )

    with pytest.raises(ValidationError):
        HighlightRange(start=3, end=1)
