from __future__ import annotations

import math
from typing import Any

from app.schemas.analysis import (
    DEFAULT_INDUSTRY,
    DEFAULT_SENIORITY,
    NEXT_STEPS_MAX,
    RED_FLAGS_MAX,
    SCORE_DEFAULT,
    SCORE_MAX,
    SCORE_MIN,
    SKILLS_MAX,
    TOP_ROLES_MAX,
    AnalysisResult,
)


def _safe_str(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def _safe_str_list(value: Any, max_items: int, *, dedupe: bool = False) -> list[str]:
    if not isinstance(value, list):
        return []
    output: list[str] = []
    seen: set[str] = set()
    for item in value:
        # JSON null counts as an empty element
        if item is None:
            continue
        text = str(item).strip()
        if not text:
            continue
        if dedupe:
            folded = text.casefold()
            if folded in seen:
                continue
            seen.add(folded)
        output.append(text)
        if len(output) >= max_items:
            break
    return output


def _safe_score(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return SCORE_DEFAULT
    try:
        number = float(value)
    except OverflowError:
        return SCORE_MAX if value > 0 else SCORE_MIN
    if not math.isfinite(number):
        return SCORE_DEFAULT
    return max(SCORE_MIN, min(SCORE_MAX, number))


def shape_analysis(candidate: Any) -> AnalysisResult:
    """Coerce an untrusted candidate (provider JSON or local heuristic) into AnalysisResult."""
    data = candidate if isinstance(candidate, dict) else {}
    return AnalysisResult(
        industry=_safe_str(data.get("industry"), DEFAULT_INDUSTRY),
        role_seniority=_safe_str(data.get("role_seniority"), DEFAULT_SENIORITY),
        top_roles=_safe_str_list(data.get("top_roles"), TOP_ROLES_MAX),
        skills=_safe_str_list(data.get("skills"), SKILLS_MAX, dedupe=True),
        score=_safe_score(data.get("score")),
        red_flags=_safe_str_list(data.get("red_flags"), RED_FLAGS_MAX),
        summary=_safe_str(data.get("summary"), ""),
        next_steps=_safe_str_list(data.get("next_steps"), NEXT_STEPS_MAX),
    )
