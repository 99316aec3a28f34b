from __future__ import annotations

import re

from backend.core.schema import CellLocation

from .base import RuleFinding

DATE_TOKEN = re.compile(
    r"(?<!\d)(\d{4})\s*(?:[-./]|년)\s*(\d{1,2})\s*(?:[-./]|월)\s*(\d{1,2})(?!\d)\s*(?:일|\.)?"
)


class DateFormatValidator:
    """Flags dates not written as ``YYYY.MM.DD.`` and impossible dates."""

    def __call__(self, text: str, location: CellLocation) -> list[RuleFinding]:
        findings: list[RuleFinding] = []
        for match in DATE_TOKEN.finditer(text):
            year, month, day = (int(part) for part in match.groups())
            token = match.group()
            if not (1 <= month <= 12 and 1 <= day <= 31):
                findings.append(
                    RuleFinding.at(
                        text,
                        match.start(),
                        match.end(),
                        type="format",
                        severity="error",
                        message=f'존재하지 않는 날짜입니다: "{token}"',
                        rule="date-invalid",
                        confidence=0.95,
                    )
                )
                continue
            preferred = f"{year:04d}.{month:02d}.{day:02d}."
            if token != preferred:
                findings.append(
                    RuleFinding.at(
                        text,
                        match.start(),
                        match.end(),
                        type="format",
                        severity="info",
                        message="날짜는 YYYY.MM.DD. 형식으로 입력해야 합니다",
                        rule="date-format",
                        confidence=0.85,
                        suggestion=preferred,
                    )
                )
        return findings
