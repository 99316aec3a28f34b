from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.schema import CellLocation
from backend.validators import (
    DateFormatValidator,
    EnglishAlphabetValidator,
    InstitutionNameValidator,
    ProhibitedKeywordValidator,
    RuleFinding,
    SpacingValidator,
    ValidatorRegistry,
    build_default_registry,
)

LOCATION = CellLocation(sheet="Sheet1", row=2, column="B", cell="B2")


def test_three_spaces_are_not_flagged_but_five_are():
    validator = SpacingValidator(min_consecutive_spaces=5)

    assert validator("학생은   잘   참여했습니다.", LOCATION) == []

    text = "학생은     매우     잘     참여했습니다."
    findings = validator(text, LOCATION)
    assert len(findings) == 3
    assert all(item.severity == "warning" for item in findings)
    start, end = findings[0].highlight_range
    assert text[start:end] == "     "


def test_spacing_threshold_comes_from_rules_file():
    assert SpacingValidator().min_consecutive_spaces == 5


def test_spacing_flags_blank_before_punctuation():
    findings = SpacingValidator()("열심히 참여함 .", LOCATION)
    assert [item.rule for item in findings] == ["spacing-before-punctuation"]
    assert findings[0].severity == "info"


def test_english_letters_inside_korean_text():
    validator = EnglishAlphabetValidator()
    text = "영어 presentation 활동에서 NEIS 자료를 활용함"
    findings = validator(text, LOCATION)

    assert len(findings) == 1
    start, end = findings[0].highlight_range
    assert text[start:end] == "presentation"
    assert findings[0].context_before == "영어 "
    assert validator("Homework 1", LOCATION) == []


def test_prohibited_keywords_carry_context():
    text = "과학 경진대회에서 우수상을 받았으며 보고서를 작성함."
    findings = ProhibitedKeywordValidator()(text, LOCATION)

    assert [text[slice(*item.highlight_range)] for item in findings] == ["경진대회", "우수상"]
    assert all(item.severity == "error" for item in findings)
    first = findings[0]
    assert first.rule == "prohibited-keyword-competitions"
    assert first.context_before == "과학 "
    assert first.context_after == "에서 우수상을 받았으며 보고"
    assert len(first.context_after) == 15


def test_longest_keyword_wins_over_embedded_term():
    findings = ProhibitedKeywordValidator()("교내 최우수상 수상", LOCATION)
    assert len(findings) == 1
    assert findings[0].message.startswith('금지 키워드 검출: "최우수상"')


def test_institution_names_are_flagged_unless_allowed():
    validator = InstitutionNameValidator()
    text = "진로 탐색 중 서울대학교 교수의 강연을 들음"
    findings = validator(text, LOCATION)

    assert len(findings) == 1
    assert text[slice(*findings[0].highlight_range)] == "서울대학교"
    assert validator("서울특별시교육청 주관 행사에 참여함", LOCATION) == []


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2025-03-02", "2025.03.02."),
        ("2025년 3월 2일 지각", "2025.03.02."),
        ("2025.3.2", "2025.03.02."),
    ],
)
def test_dates_outside_preferred_format(text, expected):
    findings = DateFormatValidator()(text, LOCATION)
    assert len(findings) == 1
    assert findings[0].severity == "info"
    assert findings[0].suggestion == expected


def test_preferred_and_impossible_dates():
    validator = DateFormatValidator()
    assert validator("2025.03.02.", LOCATION) == []
    findings = validator("2025.13.02.", LOCATION)
    assert [item.rule for item in findings] == ["date-invalid"]
    assert findings[0].severity == "error"


def test_registry_resolves_global_then_scoped_in_registration_order():
    registry = ValidatorRegistry()
    registry.register("first", lambda text, location: [])
    registry.register("scoped", lambda text, location: [], categories=["awards"])
    registry.register("last", lambda text, location: [])

    assert [item.name for item in registry.resolve("awards")] == ["first", "scoped", "last"]
    assert [item.name for item in registry.resolve("reading")] == ["first", "last"]
    assert [item.name for item in registry.resolve(None)] == ["first", "last"]


def test_registry_rejects_duplicate_names_and_supports_decorator():
    registry = ValidatorRegistry()

    @registry.validator("note_cell", categories=["attendance"])
    def note_cell(text, location):
        return [RuleFinding(type="note_cell", severity="info", message="note_cell", rule="note_cell")]

    with pytest.raises(ValueError):
        registry.register("note_cell", note_cell)

    registry.unregister("note_cell")
    assert len(registry) == 0


def test_default_registry_scopes():
    registry = build_default_registry()
    assert registry.names() == [
        "spacing",
        "english_alphabet",
        "prohibited_keyword",
        "institution_name",
        "date_format",
    ]
    assert [item.name for item in registry.resolve("attendance")] == ["spacing", "english_alphabet", "date_format"]
    assert [item.name for item in registry.resolve("generic")] == ["spacing", "english_alphabet"]
