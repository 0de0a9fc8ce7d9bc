from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from jobscout.common.utils import utc_now_iso
from jobscout.config.settings import settings


def output_root() -> Path:
    return Path(settings.output_dir) / "runs"


def create_run_dir() -> str:
    root = output_root()
    root.mkdir(parents=True, exist_ok=True)
    # Two runs can start within the same second (API + scheduled flow).
    run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S") + "-" + uuid.uuid4().hex[:6]
    (root / run_id).mkdir(parents=True, exist_ok=False)
    return run_id


def get_run_dir(run_id: str) -> Path:
    return output_root() / run_id


def status_path(run_id: str) -> Path:
    return get_run_dir(run_id) / "status.json"


def log_path(run_id: str) -> Path:
    return get_run_dir(run_id) / "run.log"


def report_path(run_id: str, filename: Optional[str] = None) -> Path:
    return get_run_dir(run_id) / (filename or settings.report_filename)


def write_status(run_id: str, data: Dict[str, Any]) -> None:
    sp = status_path(run_id)
    sp.parent.mkdir(parents=True, exist_ok=True)
    tmp = sp.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(sp)


def load_status(run_id: str) -> Optional[Dict[str, Any]]:
    # run ids come from URLs; never let one escape the runs root
    if not run_id or "/" in run_id or "\\" in run_id or run_id in (".", ".."):
        return None
    sp = status_path(run_id)
    if not sp.exists():
        return None
    try:
        return json.loads(sp.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None


def new_status(run_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "run_id": run_id,
        "status": "running",
        "started_at": utc_now_iso(),
        "finished_at": None,
        "params": params,
        "summary": None,
        "report_path": None,
        "emailed": False,
        "error": None,
    }


def finish_status(status: Dict[str, Any], *, error: Optional[str] = None) -> Dict[str, Any]:
    status["finished_at"] = utc_now_iso()
    status["status"] = "failed" if error else "completed"
    status["error"] = error
    return status
