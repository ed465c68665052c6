from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_LLM_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_LLM_MODEL = "gpt-4o-mini"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///taskmind.db"
    secret_key: str = "dev-secret-change-me"
    owner_email: Optional[str] = None
    dev_login: bool = False
    cookie_secure: bool = False
    cors_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ])

    llm_api_url: str = DEFAULT_LLM_API_URL
    llm_api_key: Optional[str] = None
    llm_model: str = DEFAULT_LLM_MODEL
    llm_timeout: float = 30.0

    log_level: str = "INFO"

    @property
    def ai_configured(self) -> bool:
        return bool(self.llm_api_key)


def load_settings() -> Settings:
    defaults = Settings()
    return Settings(
        database_url=_env("DATABASE_URL", defaults.database_url) or defaults.database_url,
        secret_key=_env("TASKMIND_SECRET_KEY", defaults.secret_key),
        owner_email=(_env("TASKMIND_OWNER_EMAIL").strip().lower() or None),
        dev_login=_env_bool("TASKMIND_DEV_LOGIN", False),
        cookie_secure=_env_bool("TASKMIND_COOKIE_SECURE", False),
        cors_origins=_env_list("TASKMIND_CORS_ORIGINS", defaults.cors_origins),
        llm_api_url=_env("TASKMIND_LLM_API_URL", DEFAULT_LLM_API_URL),
        llm_api_key=(_env("TASKMIND_LLM_API_KEY").strip() or None),
        llm_model=_env("TASKMIND_LLM_MODEL", DEFAULT_LLM_MODEL),
        llm_timeout=_env_float("TASKMIND_LLM_TIMEOUT", defaults.llm_timeout),
        log_level=_env("TASKMIND_LOG_LEVEL", defaults.log_level).upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings; tests call ``get_settings.cache_clear()`` after touching env."""
    return load_settings()
