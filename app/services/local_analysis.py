from __future__ import annotations

import math
import re
from typing import Any

from app.core.heuristics import get_heuristics_config

YEARS_RE = re.compile(r"(\d+)\s*(?:años|years|año)", re.IGNORECASE)


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item)]


def detect_industry(text_lower: str, config: dict[str, Any]) -> tuple[str, list[str]]:
    for family in config.get("industries") or []:
        if not isinstance(family, dict):
            continue
        keywords = _str_list(family.get("keywords"))
        if any(keyword.lower() in text_lower for keyword in keywords):
            return str(family.get("name") or "General"), _str_list(family.get("top_roles"))
    return str(config.get("default_industry") or "General"), _str_list(config.get("default_top_roles"))


def extract_years(text_lower: str, default: int) -> int:
    match = YEARS_RE.search(text_lower)
    if not match:
        return default
    try:
        return int(match.group(1))
    except ValueError:
        # digit runs past the int conversion limit
        return default


def detect_skills(text_lower: str, vocabulary: list[str]) -> list[str]:
    return [skill for skill in vocabulary if skill.lower() in text_lower]


def seniority_for(years: int, config: dict[str, Any]) -> str:
    experience = config.get("experience") or {}
    labels = config.get("seniority_labels") or {}
    if years >= int(experience.get("senior_min_years", 5)):
        return str(labels.get("senior", "Senior"))
    if years <= int(experience.get("junior_max_years", 2)):
        return str(labels.get("junior", "Junior"))
    return str(labels.get("mid", "Mid-Level"))


def score_for(years: int, config: dict[str, Any]) -> int:
    score_cfg = config.get("score") or {}
    raw = math.floor(years * float(score_cfg.get("years_multiplier", 1.5)))
    return min(int(score_cfg.get("max", 10)), max(int(score_cfg.get("min", 5)), raw))


def local_cv_analysis(text: str) -> dict[str, Any]:
    """Deterministic analysis used when the AI provider gives nothing usable.

    ``text`` is expected to be normalized already. Output is a candidate dict
    that still goes through the response shaper.
    """
    config = get_heuristics_config()
    text_lower = (text or "").lower()

    industry, top_roles = detect_industry(text_lower, config)
    experience_cfg = config.get("experience") or {}
    years = extract_years(text_lower, int(experience_cfg.get("default_years", 3)))
    skills = detect_skills(text_lower, _str_list(config.get("skills")))

    red_flag_cfg = config.get("red_flags") or {}
    red_flags: list[str] = []
    if len(text_lower) < int(red_flag_cfg.get("min_text_chars", 100)):
        red_flags.append(str(red_flag_cfg.get("short_text") or "CV muy breve"))

    return {
        "industry": industry,
        "role_seniority": seniority_for(years, config),
        "top_roles": top_roles,
        "skills": skills,
        "score": score_for(years, config),
        "red_flags": red_flags,
        "summary": f"Análisis local: {years} años en {industry}. {len(skills)} habilidades detectadas.",
        "next_steps": _str_list(config.get("next_steps")),
    }
