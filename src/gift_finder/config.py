"""Environment-driven settings for the gift finder service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except Exception:
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except Exception:
        return default
    return value if value >= 0 else default


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path("data/gift_finder.db")

    completion_provider: str = "cohere"
    cohere_api_key: str = ""
    cohere_base_url: str = "https://api.cohere.com/v2"
    chat_model: str = "command-r-08-2024"
    translate_model: str = "command-r-08-2024"
    llamacpp_url: str = "http://127.0.0.1:8080"
    provider_timeout_seconds: float = 30.0
    provider_max_retries: int = 1

    pexels_api_key: str = ""
    pexels_base_url: str = "https://api.pexels.com/v1"
    image_locale: str = "uk-UA"
    rate_limit_retries: int = 3
    rate_limit_delay_seconds: float = 2.0

    catalog_language: str = "Ukrainian"
    display_limit: int = 8
    default_ai_gift_count: int = 3
    max_ai_gift_count: int = 10
    generator_workers: int = 2
    status_ttl_seconds: float = 900.0

    jwt_secret: str = ""
    jwt_ttl_hours: int = 24
    dedupe_interval_seconds: int = 900
    cors_origins: tuple[str, ...] = field(default_factory=lambda: ("http://localhost:5173",))
    log_level: str = "info"

    @classmethod
    def from_env(cls, root_dir: Path | None = None) -> "Settings":
        base = root_dir or Path.cwd()
        db_path = Path(_env_str("GF_DB_PATH", "data/gift_finder.db"))
        if not db_path.is_absolute():
            db_path = base / db_path

        chat_model = _env_str("GF_CHAT_MODEL", "command-r-08-2024")
        origins = tuple(
            origin.strip()
            for origin in _env_str("GF_CORS_ORIGINS", "http://localhost:5173").split(",")
            if origin.strip()
        )

        return cls(
            db_path=db_path,
            completion_provider=_env_str("GF_COMPLETION_PROVIDER", "cohere").lower(),
            cohere_api_key=_env_str("COHERE_API_KEY", ""),
            cohere_base_url=_env_str("COHERE_API_BASE_URL", "https://api.cohere.com/v2"),
            chat_model=chat_model,
            translate_model=_env_str("GF_TRANSLATE_MODEL", chat_model),
            llamacpp_url=_env_str("GF_LLAMACPP_URL", "http://127.0.0.1:8080"),
            provider_timeout_seconds=_env_float("GF_PROVIDER_TIMEOUT_SECONDS", 30.0),
            provider_max_retries=_env_int("GF_PROVIDER_MAX_RETRIES", 1),
            pexels_api_key=_env_str("PEXELS_API_KEY", ""),
            pexels_base_url=_env_str("PEXELS_API_BASE_URL", "https://api.pexels.com/v1"),
            image_locale=_env_str("GF_IMAGE_LOCALE", "uk-UA"),
            rate_limit_retries=_env_int("GF_RATE_LIMIT_RETRIES", 3),
            rate_limit_delay_seconds=_env_float("GF_RATE_LIMIT_DELAY_SECONDS", 2.0),
            catalog_language=_env_str("GF_CATALOG_LANGUAGE", "Ukrainian"),
            display_limit=max(1, _env_int("GF_DISPLAY_LIMIT", 8)),
            default_ai_gift_count=max(1, _env_int("GF_DEFAULT_AI_GIFT_COUNT", 3)),
            max_ai_gift_count=max(1, _env_int("GF_MAX_AI_GIFT_COUNT", 10)),
            generator_workers=max(1, _env_int("GF_GENERATOR_WORKERS", 2)),
            status_ttl_seconds=_env_float("GF_STATUS_TTL_SECONDS", 900.0),
            jwt_secret=_env_str("GF_JWT_SECRET", ""),
            jwt_ttl_hours=max(1, _env_int("GF_JWT_TTL_HOURS", 24)),
            dedupe_interval_seconds=_env_int("GF_DEDUPE_INTERVAL_SECONDS", 900),
            cors_origins=origins,
            log_level=_env_str("LOG_LEVEL", "info"),
        )
