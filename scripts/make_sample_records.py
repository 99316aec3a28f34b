#!/usr/bin/env python
from __future__ import annotations

import argparse
from pathlib import Path

from openpyxl import Workbook

SAMPLES = {
    "attendance": (
        "출결상황",
        ["학년", "수업일수", "결석", "지각", "조퇴", "특기사항"],
        [
            [1, 190, 0, 1, 0, "2025-03-02 지각 1회"],
            [2, 190, 2, 0, 0, "2025.04.15. 병결"],
        ],
    ),
    "subject_details": (
        "세부능력및특기사항",
        ["과목", "세부능력 및 특기사항"],
        [
            ["국어", "수업 시간에 적극적으로 참여하며 발표 능력이 뛰어남."],
            ["과학", "과학 경진대회에서 우수상을 받았으며     실험 보고서를 꼼꼼히 작성함."],
            ["영어", "영어 presentation 활동에서 서울대학교 교수의 강연을 듣고 소감을 발표함."],
        ],
    ),
    "creative_activities": (
        "창의적체험활동",
        ["영역", "시간", "특기사항"],
        [
            ["자율활동", 20, "학급 회의에서 의견을 조율하는 역할을 맡음."],
            ["동아리활동", 34, "사설학원 강사를 초빙한 동아리 활동에 참여함."],
        ],
    ),
}


def main() -> None:
    parser = argparse.ArgumentParser(description="학교생활기록부 예시 워크북 생성")
    parser.add_argument("--category", choices=sorted(SAMPLES), default="subject_details", help="생성할 영역")
    parser.add_argument("--output", required=True, help="출력 파일 경로 (.xlsx)")
    parser.add_argument("--student", default="홍길동", help="학생 성명")
    args = parser.parse_args()

    title, header, rows = SAMPLES[args.category]
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    sheet.append(["성명", args.student, "학년", 1, "학급", 3])
    sheet.append(header)
    for row in rows:
        sheet.append(row)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output)
    print(f"예시 워크북 생성 완료: {output}")


if __name__ == "__main__":
    main()
