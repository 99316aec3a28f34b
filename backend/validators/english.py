from __future__ import annotations

import re

from backend.core.config import load_rules
from backend.core.schema import CellLocation

from .base import RuleFinding

HANGUL = re.compile(r"[\u1100-\u11ff\u3130-\u318f\uac00-\ud7af]")
LATIN_RUN = re.compile(r"[A-Za-z]+")


class EnglishAlphabetValidator:
    """Flags Latin letters inside Korean narrative text.

    Cells without any Hangul (codes, names, headers) are left alone, as are
    acronyms listed under ``english.allowed_acronyms``.
    """

    def __init__(self, allowed_acronyms: set[str] | None = None) -> None:
        if allowed_acronyms is None:
            allowed_acronyms = set(load_rules().get("english", {}).get("allowed_acronyms", []))
        self.allowed = {item.upper() for item in allowed_acronyms}

    def __call__(self, text: str, location: CellLocation) -> list[RuleFinding]:
        if not HANGUL.search(text):
            return []
        findings: list[RuleFinding] = []
        for match in LATIN_RUN.finditer(text):
            token = match.group()
            if token.isupper() and token in self.allowed:
                continue
            findings.append(
                RuleFinding.at(
                    text,
                    match.start(),
                    match.end(),
                    with_context=True,
                    type="korean_english",
                    severity="warning",
                    message=f'영문 표기 검출: "{token}" - 한글로 입력해야 합니다',
                    rule="english-alphabet",
                    confidence=0.9,
                    suggestion="한글 표기로 바꾸어 입력하세요",
                )
            )
        return findings
