from __future__ import annotations

from app.ai.config import AIConfig, load_ai_config
from app.ai.types import AIClient

from app.ai.providers.openai_provider import OpenAICompatibleProvider


def get_ai_client(cfg: AIConfig | None = None) -> AIClient | None:
    """Provider for remote analysis, or None when no usable credential is configured."""
    cfg = cfg or load_ai_config()

    if not cfg.api_key:
        return None

    if cfg.provider in {"deepseek", "openai"}:
        return OpenAICompatibleProvider(
            model=cfg.model,
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            timeout_s=cfg.timeout_s,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            json_mode=cfg.json_mode,
        )

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
