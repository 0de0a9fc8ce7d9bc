from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env(*names: str, default: str | None = None) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value is not None and value != "":
            return value
    return default


def _env_bool(*names: str, default: bool) -> bool:
    value = _env(*names, default=None)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(*names: str, default: int) -> int:
    value = _env(*names, default=None)
    return int(value) if value is not None else default


def _env_float(*names: str, default: float) -> float:
    value = _env(*names, default=None)
    return float(value) if value is not None else default


_OUTPUT_DIR = Path(_env("JOBSCOUT_OUTPUT_DIR", default="output") or "output")
_LLM_PROVIDER = (_env("JOBSCOUT_LLM_PROVIDER", default="ollama") or "ollama").lower()
_DEFAULT_MODELS = {"ollama": "gemma3:1b", "openai": "gpt-4o-mini"}


@dataclass(frozen=True)
class Settings:
    """
    Central runtime settings. Values can be overridden via env vars.
    Canonical names use the JOBSCOUT_ prefix; the unprefixed names used by
    older deployments are still honoured as fallbacks.
    """

    # Listing / description source (ScrapingDog LinkedIn jobs API)
    scrapingdog_api_key: str | None = _env("JOBSCOUT_SCRAPINGDOG_API_KEY", "SCRAPINGDOG_API_KEY", default=None)
    scrapingdog_base_url: str = _env(
        "JOBSCOUT_SCRAPINGDOG_BASE_URL",
        default="https://api.scrapingdog.com/linkedinjobs",
    ) or "https://api.scrapingdog.com/linkedinjobs"
    search_field: str = _env("JOBSCOUT_SEARCH_FIELD", default="Software Engineer") or "Software Engineer"
    search_geoid: str = _env("JOBSCOUT_SEARCH_GEOID", default="106142749") or "106142749"
    search_location: str = _env("JOBSCOUT_SEARCH_LOCATION", default="") or ""
    search_sort_by: str = _env("JOBSCOUT_SEARCH_SORT_BY", default="day") or "day"
    search_max_pages: int = _env_int("JOBSCOUT_SEARCH_MAX_PAGES", default=1)
    http_timeout_sec: float = _env_float("JOBSCOUT_HTTP_TIMEOUT_SEC", default=30.0)

    # Resolution stage
    max_concurrent_requests: int = _env_int("JOBSCOUT_MAX_CONCURRENT_REQUESTS", default=2)
    rate_limit_delay_sec: float = _env_float("JOBSCOUT_RATE_LIMIT_DELAY_SEC", default=2.0)
    max_attempts: int = _env_int("JOBSCOUT_MAX_ATTEMPTS", default=5)
    retry_base_delay_sec: float = _env_float("JOBSCOUT_RETRY_BASE_DELAY_SEC", default=2.0)
    retry_max_delay_sec: float = _env_float("JOBSCOUT_RETRY_MAX_DELAY_SEC", default=10.0)

    # Cache
    cache_backend: str = (_env("JOBSCOUT_CACHE_BACKEND", default="file") or "file").lower()
    cache_ttl_hours: float = _env_float("JOBSCOUT_CACHE_TTL_HOURS", default=24.0)
    cache_version: str = _env("JOBSCOUT_CACHE_VERSION", default="v1") or "v1"
    redis_url: str = _env("JOBSCOUT_REDIS_URL", "REDIS_URL", default="redis://localhost:6379/0") or "redis://localhost:6379/0"
    cache_dir: Path = Path(_env("JOBSCOUT_CACHE_DIR", default=str(_OUTPUT_DIR / "_cache")) or str(_OUTPUT_DIR / "_cache"))

    # Scoring stage / evaluation oracle
    llm_provider: str = _LLM_PROVIDER
    ollama_url: str = _env("JOBSCOUT_OLLAMA_URL", "OLLAMA_URL", default="http://localhost:11434/api/chat") or ""
    llm_model: str = _env("JOBSCOUT_LLM_MODEL", "OLLAMA_MODEL", default=_DEFAULT_MODELS.get(_LLM_PROVIDER, "")) or ""
    openai_api_key: str | None = _env("JOBSCOUT_OPENAI_API_KEY", "OPENAI_API_KEY", default=None)
    llm_temperature: float = _env_float("JOBSCOUT_LLM_TEMPERATURE", "OLLAMA_TEMP", default=0.3)
    llm_timeout_sec: float = _env_float("JOBSCOUT_LLM_TIMEOUT_SEC", default=300.0)
    max_concurrent_evaluations: int = _env_int("JOBSCOUT_MAX_CONCURRENT_EVALUATIONS", default=1)
    profile_path: Path = Path(_env("JOBSCOUT_PROFILE_PATH", default="resume.txt") or "resume.txt")

    # Report / email
    output_dir: Path = _OUTPUT_DIR
    report_filename: str = _env("JOBSCOUT_REPORT_FILENAME", default="LinkedinEvaluations.html") or "LinkedinEvaluations.html"
    email_enabled: bool = _env_bool("JOBSCOUT_EMAIL_ENABLED", default=False)
    email_from: str | None = _env("JOBSCOUT_EMAIL_FROM", "EMAIL_FROM", default=None)
    email_to: str | None = _env("JOBSCOUT_EMAIL_TO", "EMAIL_TO", default=None)
    smtp_host: str | None = _env("JOBSCOUT_SMTP_HOST", "SMTP_HOST", default=None)
    smtp_port: int = _env_int("JOBSCOUT_SMTP_PORT", "SMTP_PORT", default=587)
    email_password: str | None = _env("JOBSCOUT_EMAIL_PASSWORD", "EMAIL_PASSWORD", default=None)

    # Logging
    log_level: str = (_env("JOBSCOUT_LOG_LEVEL", "LOG_LEVEL", default="INFO") or "INFO").upper()

    @property
    def cache_ttl_sec(self) -> int:
        return int(self.cache_ttl_hours * 3600)


settings = Settings()
