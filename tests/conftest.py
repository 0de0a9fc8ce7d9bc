from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from jobscout.config.settings import Settings, settings
from jobscout.pipeline.retry import RetryPolicy, linear_backoff


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=5, backoff=linear_backoff(0))


@pytest.fixture
def profile_file(tmp_path: Path) -> Path:
    p = tmp_path / "resume.txt"
    p.write_text("Jane Doe\nPython, asyncio, SQL. Five years backend work.", encoding="utf-8")
    return p


@pytest.fixture
def test_settings(tmp_path: Path, profile_file: Path) -> Settings:
    """Settings with no pacing, no backoff and everything on disk under tmp_path."""
    return replace(
        settings,
        scrapingdog_api_key="test-key",
        rate_limit_delay_sec=0.0,
        retry_base_delay_sec=0.0,
        cache_backend="memory",
        cache_dir=tmp_path / "_cache",
        output_dir=tmp_path / "output",
        profile_path=profile_file,
        llm_provider="ollama",
        llm_model="gemma3:1b",
        openai_api_key=None,
        email_enabled=False,
        email_from=None,
        email_to=None,
        smtp_host=None,
        email_password=None,
    )
