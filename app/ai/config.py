from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings, settings

MIN_API_KEY_LENGTH = 20


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str
    base_url: str
    api_key: str | None
    timeout_s: float
    temperature: float
    max_tokens: int
    max_input_chars: int
    json_mode: bool


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def usable_api_key(value: str | None) -> str | None:
    key = (value or "").strip()
    if len(key) < MIN_API_KEY_LENGTH or _looks_like_placeholder(key):
        return None
    return key


def load_ai_config(source: Settings = settings) -> AIConfig:
    return AIConfig(
        provider=source.ai_provider,
        model=source.ai_model,
        base_url=source.ai_api_url,
        api_key=usable_api_key(source.ai_api_key),
        timeout_s=max(0.1, float(source.ai_timeout_s)),
        temperature=float(source.ai_temperature),
        max_tokens=max(1, int(source.ai_max_tokens)),
        max_input_chars=max(1, int(source.ai_max_input_chars)),
        json_mode=bool(source.ai_json_mode),
    )
