from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from jobscout.common.logging_ctx import add_run_log_sink, remove_sink, run_ctx_scope
from jobscout.config.settings import Settings, settings
from jobscout.fetching.scrapingdog import ScrapingdogClient
from jobscout.notify.email_report import send_report_email
from jobscout.pipeline.errors import EmailDeliveryError
from jobscout.pipeline.models import ListingRef
from jobscout.pipeline.output import write_report
from jobscout.pipeline.pipeline import build_pipeline, preflight
from jobscout.pipeline.state import DescriptionCache, build_cache
from jobscout.runs import run_manager


async def _close(resource: Any) -> None:
    close = getattr(resource, "aclose", None)
    if close is not None:
        await close()


async def run_preflight(cfg: Settings, *, send_email: bool = False) -> str:
    """Setup checks with a short-lived cache handle; returns the profile text."""
    cache = build_cache(cfg)
    try:
        return await preflight(cfg, cache=cache, require_source=True, require_email=send_email)
    finally:
        await _close(cache)


async def collect_listings(
    cfg: Settings,
    *,
    field: str,
    max_pages: int,
    job_ids: Sequence[str] = (),
) -> List[ListingRef]:
    if job_ids:
        return [ListingRef(id=str(job_id).strip()) for job_id in job_ids if str(job_id).strip()]
    async with ScrapingdogClient.from_settings(cfg) as client:
        return await client.collect_listings(
            field,
            max_pages=max_pages,
            geoid=cfg.search_geoid,
            location=cfg.search_location,
            sort_by=cfg.search_sort_by,
        )


async def evaluate(
    run_dir: Path,
    *,
    cfg: Settings,
    profile_text: str,
    field: str,
    max_pages: int,
    job_ids: Sequence[str] = (),
    deadline_sec: Optional[float] = None,
    cache: Optional[DescriptionCache] = None,
) -> Dict[str, Any]:
    """
    Collect listings, run both stages and write the report into `run_dir`.
    Returns the report summary plus the path of the HTML file.
    """
    own_cache = cache is None
    cache = cache or build_cache(cfg)
    pipeline = None
    try:
        listings = await collect_listings(cfg, field=field, max_pages=max_pages, job_ids=job_ids)
        logger.info("collected {} listings (field='{}', explicit ids={})", len(listings), field, len(job_ids))
        pipeline = build_pipeline(cfg, profile_text=profile_text, cache=cache)
        report = await pipeline.run(listings, deadline_sec=deadline_sec)
        html_path = write_report(report, run_dir, cfg.report_filename)
        return {"summary": report.summary(), "report_path": str(html_path)}
    finally:
        if pipeline is not None:
            await pipeline.aclose()
        if own_cache:
            await _close(cache)


def execute_run(
    run_id: str,
    *,
    profile_text: str,
    field: Optional[str] = None,
    max_pages: Optional[int] = None,
    job_ids: Sequence[str] = (),
    send_email: bool = False,
    deadline_sec: Optional[float] = None,
    cfg: Settings = settings,
) -> Dict[str, Any]:
    """
    Run body shared by the Prefect flow and the API background task. Never raises
    for per-run failures; the outcome is recorded in the run's status.json.
    """
    field = field or cfg.search_field
    max_pages = max_pages or cfg.search_max_pages
    params = {
        "field": field,
        "max_pages": max_pages,
        "job_ids": list(job_ids),
        "send_email": send_email,
        "deadline_sec": deadline_sec,
    }
    status = run_manager.new_status(run_id, params)
    run_manager.write_status(run_id, status)

    with run_ctx_scope(run_id=run_id):
        sink_id = add_run_log_sink(run_manager.log_path(run_id), level=cfg.log_level)
        error: Optional[str] = None
        try:
            result = asyncio.run(
                evaluate(
                    run_manager.get_run_dir(run_id),
                    cfg=cfg,
                    profile_text=profile_text,
                    field=field,
                    max_pages=max_pages,
                    job_ids=job_ids,
                    deadline_sec=deadline_sec,
                )
            )
            status.update(result)
            if send_email:
                send_report_email(Path(result["report_path"]), settings=cfg)
                status["emailed"] = True
        except TimeoutError:
            error = f"deadline of {deadline_sec}s exceeded; in-flight work cancelled"
            logger.error("run {}: {}", run_id, error)
        except EmailDeliveryError as exc:
            error = f"report written but email failed: {exc}"
            logger.error("run {}: {}", run_id, error)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("run {} failed", run_id)
        finally:
            run_manager.write_status(run_id, run_manager.finish_status(status, error=error))
            remove_sink(sink_id)
    return status
