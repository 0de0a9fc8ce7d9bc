from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from .models import RankedReport

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

URL_RE = re.compile(r"(https?://[^\s<]+)")


def linkify(text: str) -> Markup:
    """Escape text, make bare URLs clickable and keep line breaks."""
    escaped = str(escape(text or ""))
    # escape() turns & into &amp; inside URLs too; that is still a valid href.
    linked = URL_RE.sub(r'<a href="\1" target="_blank">\1</a>', escaped)
    return Markup(linked.replace("\n", "<br>"))


def _env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html", "j2")),
    )
    env.filters["linkify"] = linkify
    return env


def _context(report: RankedReport) -> Dict[str, Any]:
    return {
        "records": report.records,
        "failed": report.failed_listings,
        "generated_at": report.generated_at.strftime("%Y-%m-%d %H:%M UTC"),
    }


def render_report_html(report: RankedReport) -> str:
    template = TEMPLATES_DIR / "report_html.j2"
    if template.exists():
        return _env().get_template("report_html.j2").render(**_context(report))
    # Minimal fallback if template is missing
    parts = ["<!DOCTYPE html><html><head><meta charset=\"UTF-8\"><title>Job Evaluations</title></head><body>"]
    parts.append("<h1>Job Fit Evaluations</h1>")
    for i, rec in enumerate(report.records, start=1):
        parts.append(f"<div class='eval'><h2>Job Evaluation #{i}</h2>{linkify(rec.rendered_text)}</div>")
    parts.append("</body></html>")
    return "".join(parts)


def render_report_text(report: RankedReport) -> str:
    env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)), autoescape=False)
    return env.get_template("report_txt.j2").render(**_context(report))
