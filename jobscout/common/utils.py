from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Union


def ensure_dir(p: Union[str, Path]) -> None:
    Path(p).mkdir(parents=True, exist_ok=True)


def utc_now_iso(dt: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with a trailing Z, e.g. 2025-01-01T09:30:00Z."""
    dt = dt or datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
