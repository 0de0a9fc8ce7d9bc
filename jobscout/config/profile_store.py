from __future__ import annotations

from pathlib import Path
from typing import Union

from loguru import logger

MAX_PROFILE_CHARS = 20000


def load_profile_text(path: Union[str, Path]) -> str:
    """Read the candidate profile (plain-text resume) that every listing is scored against."""
    p = Path(path).expanduser()
    if not p.is_file():
        raise FileNotFoundError(f"Profile document not found: {p}")
    text = p.read_text(encoding="utf-8", errors="replace").strip()
    if not text:
        raise ValueError(f"Profile document is empty: {p}")
    if len(text) > MAX_PROFILE_CHARS:
        logger.warning("profile {} is {} chars; truncating to {}", p, len(text), MAX_PROFILE_CHARS)
        text = text[:MAX_PROFILE_CHARS]
    return text
