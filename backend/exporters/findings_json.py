from __future__ import annotations

import json
from typing import Sequence

from backend.core.aggregation import aggregate
from backend.core.schema import ValidationResult


def export_findings_json(results: Sequence[ValidationResult], *, merged: bool) -> bytes:
    if merged:
        payload: dict = {
            "stats": aggregate(results).model_dump(),
            "results": [result.model_dump(mode="json") for result in results],
        }
    else:
        (result,) = results
        payload = result.model_dump(mode="json")
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
