"""Category detection for school-record workbooks.

The detector inspects a parsed workbook and sorts it into one of the NEIS
record sections:

* 출결상황 → ``attendance``
* 개인세부능력 → ``subject_details``
* 인적사항 → ``personal_info``
* 수상경력 → ``awards``
* 창의적체험활동 → ``creative_activities``
* 독서활동 → ``reading``
* 행동특성및종합의견 → ``behavior_opinion``

Four independent signals are scored (file name, sheet names, cell content
and NEIS structural markers) and blended with fixed weights.  The goal is not
to be bullet proof but to route the canonical exports to the right rule set;
anything that scores nothing falls back to ``generic`` (기타).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from backend.core.config import load_rules
from backend.domain import SpreadsheetDocument

SIGNAL_WEIGHTS = {"file_name": 0.3, "sheet_names": 0.4, "content": 0.25, "structure": 0.05}
CONTENT_SAMPLE_ROWS = 20

DATE_PATTERNS = [
    re.compile(r"\d{4}[-.]?\d{1,2}[-.]?\d{1,2}"),
    re.compile(r"\d{4}년\s*\d{1,2}월\s*\d{1,2}일"),
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}"),
]


@dataclass
class SignalScore:
    category: str | None
    confidence: float
    keywords: list[str] = field(default_factory=list)


@dataclass
class ClassificationResult:
    category: str
    confidence: float
    detected_keywords: list[str] = field(default_factory=list)
    suggested_alternatives: list[str] = field(default_factory=list)
    sheet_count: int = 0

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "sheet_count": self.sheet_count,
            "detected_keywords": list(self.detected_keywords),
            "suggested_alternatives": list(self.suggested_alternatives),
        }


def _normalise(text: str | int | float | None) -> str:
    if text is None:
        return ""
    return str(text).strip().lower()


def _patterns() -> dict[str, dict[str, Any]]:
    return load_rules().get("categories", {})


def fallback_category() -> str:
    return str(load_rules().get("fallback_category", "generic"))


def category_labels() -> dict[str, str]:
    labels = {slug: str(spec.get("label", slug)) for slug, spec in _patterns().items()}
    labels[fallback_category()] = str(load_rules().get("fallback_label", "기타"))
    return labels


def _top(scores: dict[str, float]) -> tuple[str | None, float]:
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    if not ranked or ranked[0][1] <= 0:
        return None, 0.0
    return ranked[0]


def _score_file_name(file_name: str) -> SignalScore:
    lowered = _normalise(file_name)
    scores: dict[str, float] = {}
    keywords: list[str] = []
    for category, spec in _patterns().items():
        weight = float(spec.get("weight", 1.0))
        score = 0.0
        for keyword in spec.get("keywords", []):
            if _normalise(keyword) in lowered:
                score += weight
                keywords.append(keyword)
        for synonym in spec.get("synonyms", []):
            if _normalise(synonym) in lowered:
                score += weight * 0.8
                keywords.append(synonym)
        scores[category] = score
    category, top = _top(scores)
    return SignalScore(category, min(top / 3, 1.0), keywords[:10])


def _score_sheet_names(sheet_names: Iterable[str]) -> SignalScore:
    excluded = [_normalise(name) for name in load_rules().get("excluded_sheet_names", [])]
    scores: dict[str, float] = {}
    keywords: list[str] = []
    for sheet_name in sheet_names:
        lowered = _normalise(sheet_name)
        if any(name in lowered for name in excluded):
            continue
        for category, spec in _patterns().items():
            weight = float(spec.get("weight", 1.0))
            for keyword in [*spec.get("keywords", []), *spec.get("synonyms", [])]:
                if _normalise(keyword) in lowered:
                    scores[category] = scores.get(category, 0.0) + weight * 1.5
                    keywords.append(keyword)
    category, top = _top(scores)
    return SignalScore(category, min(top / 5, 1.0), keywords)


def _score_content(document: SpreadsheetDocument) -> SignalScore:
    scores: dict[str, float] = {}
    keywords: list[str] = []
    for rows in document.sheets.values():
        for row in rows[:CONTENT_SAMPLE_ROWS]:
            for cell in row:
                text = _normalise(cell)
                if not text:
                    continue
                for category, spec in _patterns().items():
                    weight = float(spec.get("weight", 1.0))
                    for keyword in [*spec.get("keywords", []), *spec.get("synonyms", [])]:
                        count = text.count(_normalise(keyword))
                        if count:
                            scores[category] = scores.get(category, 0.0) + weight * count
                            if keyword not in keywords:
                                keywords.append(keyword)
    category, top = _top(scores)
    return SignalScore(category, min(top / 10, 1.0), keywords[:15])


def _all_text(document: SpreadsheetDocument) -> str:
    return " ".join(text for _, _, _, text in document.iter_cells())


def _has_student_info(document: SpreadsheetDocument) -> bool:
    if not document.sheets:
        return False
    first_sheet = next(iter(document.sheets.values()))
    if len(first_sheet) < 5:
        return False
    head = " ".join(str(cell) for row in first_sheet[:5] for cell in row).lower()
    indicators = load_rules().get("student_info_indicators", [])
    return sum(1 for indicator in indicators if _normalise(indicator) in head) >= 2


def _score_structure(document: SpreadsheetDocument) -> SignalScore:
    text = _all_text(document).lower()
    score = 0
    hints: list[str] = []
    for indicator in load_rules().get("neis_indicators", []):
        if _normalise(indicator) in text:
            score += 1
            hints.append(indicator)
    if _has_student_info(document):
        score += 2
        hints.append("학생정보패턴")
    sample = text[:1000]
    for index, pattern in enumerate(DATE_PATTERNS, start=1):
        if len(pattern.findall(sample)) > 2:
            score += 1
            hints.append(f"날짜패턴{index}")
    category = "personal_info" if score > 3 else None
    return SignalScore(category, min(score / 6, 0.8), hints)


def classify(document: SpreadsheetDocument) -> ClassificationResult:
    """Blend the four detection signals into one category decision."""

    signals = {
        "file_name": _score_file_name(document.file_name),
        "sheet_names": _score_sheet_names(document.sheet_names),
        "content": _score_content(document),
        "structure": _score_structure(document),
    }

    combined: dict[str, float] = {}
    keywords: list[str] = []
    for name, signal in signals.items():
        if signal.category:
            combined[signal.category] = combined.get(signal.category, 0.0) + signal.confidence * SIGNAL_WEIGHTS[name]
        for keyword in signal.keywords:
            if keyword not in keywords:
                keywords.append(keyword)

    ranked = sorted(combined.items(), key=lambda item: item[1], reverse=True)
    if ranked and ranked[0][1] > 0:
        category, confidence = ranked[0][0], min(ranked[0][1], 1.0)
    else:
        category, confidence = fallback_category(), 0.0

    return ClassificationResult(
        category=category,
        confidence=round(confidence, 4),
        detected_keywords=keywords[:20],
        suggested_alternatives=[name for name, _ in ranked[1:4]],
        sheet_count=len(document.sheets),
    )
