from __future__ import annotations

import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from loguru import logger

_run_ctx: ContextVar[Optional[Dict[str, Any]]] = ContextVar("run_ctx", default=None)

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "run={extra[run_id]} | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def get_run_ctx() -> Dict[str, Any]:
    return dict(_run_ctx.get() or {})


@contextmanager
def run_ctx_scope(*, run_id: Optional[str] = None) -> Iterator[None]:
    ctx = get_run_ctx()
    if run_id is not None:
        ctx["run_id"] = str(run_id)
    token = _run_ctx.set(ctx)
    try:
        yield
    finally:
        _run_ctx.reset(token)


def _patch_record(record: Dict[str, Any]) -> None:
    record["extra"].setdefault("run_id", get_run_ctx().get("run_id", "-"))


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with one that tags lines with the active run id."""
    logger.remove()
    logger.configure(patcher=_patch_record)
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def add_run_log_sink(path: Union[str, Path], level: str = "DEBUG") -> int:
    """Mirror log lines of one run into its run.log; returns the handler id."""
    run_id = get_run_ctx().get("run_id")
    logger.configure(patcher=_patch_record)
    return logger.add(
        str(path),
        level=level.upper(),
        format=LOG_FORMAT,
        filter=(lambda record: record["extra"].get("run_id") == run_id) if run_id else None,
        encoding="utf-8",
    )


def remove_sink(handler_id: int) -> None:
    logger.remove(handler_id)
