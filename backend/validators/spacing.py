from __future__ import annotations

import re

from backend.core.config import load_rules
from backend.core.schema import CellLocation

from .base import RuleFinding

DEFAULT_MIN_SPACES = 5


class SpacingValidator:
    """Flags long runs of blanks and blanks before sentence punctuation."""

    def __init__(self, min_consecutive_spaces: int | None = None) -> None:
        if min_consecutive_spaces is None:
            spacing = load_rules().get("spacing", {})
            min_consecutive_spaces = int(spacing.get("min_consecutive_spaces", DEFAULT_MIN_SPACES))
        if min_consecutive_spaces < 2:
            raise ValueError("min_consecutive_spaces must be at least 2")
        self.min_consecutive_spaces = min_consecutive_spaces
        self._excessive = re.compile(rf"[ \t\u00a0\u3000]{{{min_consecutive_spaces},}}")
        self._before_punctuation = re.compile(r"(?<=\S)[ \t\u00a0]+(?=[.!?,])")

    def __call__(self, text: str, location: CellLocation) -> list[RuleFinding]:
        findings: list[RuleFinding] = []
        for match in self._excessive.finditer(text):
            findings.append(
                RuleFinding.at(
                    text,
                    match.start(),
                    match.end(),
                    type="spacing",
                    severity="warning",
                    message=f"연속된 공백이 {len(match.group())}개 있습니다",
                    rule="spacing-excessive-spaces",
                    confidence=0.8,
                    suggestion="공백을 한 칸으로 줄이세요",
                )
            )
        for match in self._before_punctuation.finditer(text):
            findings.append(
                RuleFinding.at(
                    text,
                    match.start(),
                    match.end(),
                    type="spacing",
                    severity="info",
                    message="문장부호 앞에는 공백이 없어야 합니다",
                    rule="spacing-before-punctuation",
                    confidence=0.7,
                    suggestion="문장부호 앞의 공백을 지우세요",
                )
            )
        return findings
