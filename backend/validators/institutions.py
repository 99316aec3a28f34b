from __future__ import annotations

import re

from backend.core.config import load_rules
from backend.core.schema import CellLocation

from .base import RuleFinding


class InstitutionNameValidator:
    """Flags specific university, hospital, company or academy names."""

    def __init__(self, suffixes: list[str] | None = None, allowed: list[str] | None = None) -> None:
        config = load_rules().get("institutions", {})
        suffixes = suffixes if suffixes is not None else list(config.get("suffixes", []))
        self.allowed = tuple(allowed if allowed is not None else config.get("allowed", []))
        alternation = "|".join(re.escape(item) for item in sorted(suffixes, key=len, reverse=True))
        self._pattern = re.compile(rf"[가-힣]{{2,10}}(?:{alternation})") if alternation else None

    def __call__(self, text: str, location: CellLocation) -> list[RuleFinding]:
        if self._pattern is None:
            return []
        findings: list[RuleFinding] = []
        for match in self._pattern.finditer(text):
            name = match.group()
            if any(allowed in name for allowed in self.allowed):
                continue
            findings.append(
                RuleFinding.at(
                    text,
                    match.start(),
                    match.end(),
                    with_context=True,
                    type="institution_name",
                    severity="warning",
                    message=f'구체적인 기관명 검출: "{name}"',
                    rule="institution-name",
                    confidence=0.75,
                    suggestion="기관명 대신 '대학', '연구기관' 등 일반 명칭을 사용하세요",
                )
            )
        return findings
