from __future__ import annotations

import re
from dataclasses import dataclass

from backend.core.config import load_rules
from backend.core.schema import CellLocation

from .base import RuleFinding

WORD_CHAR = re.compile(r"[가-힣A-Za-z0-9]")


@dataclass(frozen=True, slots=True)
class KeywordGroup:
    name: str
    description: str
    terms: tuple[str, ...]


def _load_groups() -> list[KeywordGroup]:
    groups: list[KeywordGroup] = []
    for name, spec in (load_rules().get("prohibited_keywords") or {}).items():
        terms = tuple(sorted({str(term) for term in spec.get("terms", [])}, key=len, reverse=True))
        groups.append(KeywordGroup(name=name, description=str(spec.get("description", "")), terms=terms))
    return groups


class ProhibitedKeywordValidator:
    """Flags terms that may not appear in narrative record sections."""

    def __init__(self, groups: list[KeywordGroup] | None = None) -> None:
        self.groups = groups if groups is not None else _load_groups()

    @staticmethod
    def _starts_word(text: str, start: int) -> bool:
        return start == 0 or not WORD_CHAR.match(text[start - 1])

    def _occurrences(self, text: str) -> list[tuple[int, int, str, KeywordGroup]]:
        lowered = text.lower()
        hits: list[tuple[int, int, str, KeywordGroup]] = []
        claimed: set[int] = set()
        for group in self.groups:
            for term in group.terms:
                needle = term.lower()
                position = lowered.find(needle)
                while position != -1:
                    end = position + len(needle)
                    span = set(range(position, end))
                    if self._starts_word(text, position) and not span & claimed:
                        claimed |= span
                        hits.append((position, end, text[position:end], group))
                    position = lowered.find(needle, position + 1)
        hits.sort(key=lambda item: (item[0], item[1]))
        return hits

    def __call__(self, text: str, location: CellLocation) -> list[RuleFinding]:
        findings: list[RuleFinding] = []
        for start, end, keyword, group in self._occurrences(text):
            findings.append(
                RuleFinding.at(
                    text,
                    start,
                    end,
                    with_context=True,
                    type="prohibited_keyword",
                    severity="error",
                    message=f'금지 키워드 검출: "{keyword}" - {group.description}',
                    rule=f"prohibited-keyword-{group.name}",
                    confidence=0.95,
                    suggestion="해당 표현을 삭제하거나 일반적인 활동 서술로 바꾸세요",
                )
            )
        return findings
