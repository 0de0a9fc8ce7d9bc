from __future__ import annotations

import json
from pathlib import Path
from typing import Union

from ..common.utils import ensure_dir, utc_now_iso
from .models import RankedReport
from .templating import render_report_html, render_report_text


def write_report(report: RankedReport, out_dir: Union[str, Path], filename: str = "LinkedinEvaluations.html") -> Path:
    """
    Persist the ranked report: the HTML document handed to the reader, a plain
    text twin and report.json with scores and skipped listings.
    Returns the HTML path.
    """
    out_path = Path(out_dir)
    ensure_dir(out_path)

    html_path = out_path / filename
    html_path.write_text(render_report_html(report), encoding="utf-8")
    (out_path / "LinkedinEvaluations.txt").write_text(render_report_text(report), encoding="utf-8")

    meta = {
        "written_at": utc_now_iso(),
        "summary": report.summary(),
        "report": report.model_dump(mode="json"),
        "html": str(html_path),
    }
    (out_path / "report.json").write_text(
        json.dumps(meta, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return html_path


def load_report(path: Union[str, Path]) -> RankedReport:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return RankedReport.model_validate(data.get("report") or {})
