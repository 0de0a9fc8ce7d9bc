from __future__ import annotations

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, status
from fastapi.responses import HTMLResponse
from loguru import logger

from jobscout.api.schemas import Health, RunStatus, StartRunRequest
from jobscout.config.settings import settings
from jobscout.pipeline.errors import CacheError, SetupError
from jobscout.pipeline.state import build_cache
from jobscout.runs import run_manager
from jobscout.runs.executor import execute_run, run_preflight

load_dotenv()

app = FastAPI(title="LinkedIn Job Scout", version="0.1.0")


# -------------------------
# Health
# -------------------------

@app.get("/health", response_model=Health)
async def health():
    cache = build_cache(settings)
    cache_ok = True
    message = "ready"
    try:
        await cache.ping()
    except CacheError as exc:
        cache_ok = False
        message = str(exc)
    finally:
        close = getattr(cache, "aclose", None)
        if close is not None:
            await close()
    return Health(
        ok=cache_ok,
        cache_backend=settings.cache_backend,
        cache_ok=cache_ok,
        llm_provider=settings.llm_provider,
        llm_model=settings.llm_model,
        message=message,
    )


# -------------------------
# Runs
# -------------------------

@app.post("/api/runs", response_model=RunStatus, status_code=status.HTTP_202_ACCEPTED)
async def start_run(req: StartRunRequest, background_tasks: BackgroundTasks) -> RunStatus:
    send_email = settings.email_enabled if req.send_email is None else req.send_email
    try:
        profile_text = await run_preflight(settings, send_email=send_email)
    except SetupError as exc:
        raise HTTPException(status_code=400, detail={"error": "setup", "problems": (exc.data or {}).get("problems", [str(exc)])})

    run_id = run_manager.create_run_dir()
    field = req.field or settings.search_field
    max_pages = req.max_pages or settings.search_max_pages
    params = {
        "field": field,
        "max_pages": max_pages,
        "job_ids": req.job_ids,
        "send_email": send_email,
        "deadline_sec": req.deadline_sec,
    }
    initial = run_manager.new_status(run_id, params)
    run_manager.write_status(run_id, initial)

    background_tasks.add_task(
        execute_run,
        run_id,
        profile_text=profile_text,
        field=field,
        max_pages=max_pages,
        job_ids=req.job_ids,
        send_email=send_email,
        deadline_sec=req.deadline_sec,
    )
    logger.info("run {} scheduled ({} explicit ids, field='{}')", run_id, len(req.job_ids), field)
    return RunStatus(**initial)


@app.get("/api/runs/{run_id}", response_model=RunStatus)
def get_run(run_id: str):
    data = run_manager.load_status(run_id)
    if not data:
        raise HTTPException(status_code=404, detail="Run not found")
    return RunStatus(**data)


@app.get("/api/runs/{run_id}/report", response_class=HTMLResponse)
def get_run_report(run_id: str):
    data = run_manager.load_status(run_id)
    if not data:
        raise HTTPException(status_code=404, detail="Run not found")
    path = run_manager.report_path(run_id)
    if not path.exists():
        raise HTTPException(status_code=404, detail=f"Report not written yet (status: {data.get('status')})")
    return HTMLResponse(path.read_text(encoding="utf-8"))
