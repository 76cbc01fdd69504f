from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    service_name: str
    api_key: str | None
    rate_limit_enabled: bool
    public_rate_limit: str
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    ai_provider: str
    ai_model: str
    ai_api_url: str
    ai_api_key: str | None
    ai_timeout_s: float
    ai_temperature: float
    ai_max_tokens: int
    ai_max_input_chars: int
    ai_json_mode: bool
    public_max_free: int
    public_min_text_chars: int
    quota_store: str
    quota_db_path: str
    quota_bucket_seconds: int
    quota_retention_days: int
    quota_purge_interval_s: int
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int
    cta_message: str
    cta_url: str


def _default_api_url(provider: str) -> str:
    if provider == "openai":
        return "https://api.openai.com/v1"
    return "https://api.deepseek.com/v1"


def _default_model(provider: str) -> str:
    if provider == "openai":
        return "gpt-4o-mini"
    return "deepseek-chat"


def load_settings() -> Settings:
    provider = (_get_env("AI_PROVIDER", "deepseek") or "deepseek").strip().lower()
    loaded = Settings(
        service_name=_get_env("SERVICE_NAME", "petrolink-api") or "petrolink-api",
        api_key=_get_env("API_KEY"),
        rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
        public_rate_limit=_get_env("PUBLIC_RATE_LIMIT", "30/minute") or "30/minute",
        log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
        sentry_dsn=_get_env("SENTRY_DSN"),
        cors_allowed_origins=_get_env_list(
            "CORS_ALLOWED_ORIGINS",
            [
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                "http://localhost:3000",
                "https://www.petrolinkvzla.com",
                "https://petrolinkvzla.com",
            ],
        ),
        cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
        cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
        ai_provider=provider,
        ai_model=(_get_env("AI_MODEL", _default_model(provider)) or _default_model(provider)).strip(),
        ai_api_url=(_get_env("AI_API_URL", _default_api_url(provider)) or _default_api_url(provider)).strip(),
        ai_api_key=_get_env("AI_API_KEY") or _get_env("DEEPSEEK_API_KEY") or _get_env("OPENAI_API_KEY"),
        ai_timeout_s=_get_env_float("AI_TIMEOUT_S", 15.0),
        ai_temperature=_get_env_float("AI_TEMPERATURE", 0.3),
        ai_max_tokens=_get_env_int("AI_MAX_TOKENS", 1000),
        ai_max_input_chars=_get_env_int("AI_MAX_INPUT_CHARS", 4000),
        ai_json_mode=_get_env_bool("AI_JSON_MODE", True),
        public_max_free=_get_env_int("PUBLIC_MAX_FREE", 3),
        public_min_text_chars=_get_env_int("PUBLIC_MIN_TEXT_CHARS", 50),
        quota_store=(_get_env("QUOTA_STORE", "memory") or "memory").strip().lower(),
        quota_db_path=_get_env("QUOTA_DB_PATH", "data/quota.db") or "data/quota.db",
        quota_bucket_seconds=_get_env_int("QUOTA_BUCKET_SECONDS", 86400),
        quota_retention_days=_get_env_int("QUOTA_RETENTION_DAYS", 7),
        quota_purge_interval_s=_get_env_int("QUOTA_PURGE_INTERVAL_S", 3600),
        analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
        analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
        analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 90),
        cta_message=_get_env(
            "CTA_MESSAGE",
            "Registrate en Petrolink para posicionarte y estar en el radar de operadoras",
        ) or "",
        cta_url=_get_env("CTA_URL", "https://www.petrolinkvzla.com") or "",
    )
    _validate(loaded)
    return loaded


def _validate(loaded: Settings) -> None:
    if loaded.ai_provider not in {"deepseek", "openai"}:
        raise RuntimeError("AI_PROVIDER must be either 'deepseek' or 'openai'.")

    if loaded.quota_store not in {"memory", "sqlite"}:
        raise RuntimeError("QUOTA_STORE must be either 'memory' or 'sqlite'.")

    if loaded.quota_bucket_seconds < 1:
        raise RuntimeError("QUOTA_BUCKET_SECONDS must be a positive number of seconds.")

    if loaded.quota_retention_days * 86400 <= loaded.quota_bucket_seconds:
        raise RuntimeError("QUOTA_RETENTION_DAYS must be longer than the quota bucket width.")


settings = load_settings()
