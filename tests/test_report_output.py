from __future__ import annotations

import json
from pathlib import Path

from jobscout.pipeline.models import EvaluationRecord, FailedListing, RankedReport
from jobscout.pipeline.output import load_report, write_report
from jobscout.pipeline.templating import linkify, render_report_html, render_report_text


def _report() -> RankedReport:
    return RankedReport(
        records=[
            EvaluationRecord(
                score=90,
                rendered_text="Job Title: <Lead> & Co\nApply: https://jobs.example.com/1?a=1&b=2",
                source_index=2,
                listing_id="1",
                position_title="Lead",
            ),
            EvaluationRecord(score=0, rendered_text="no score", source_index=1, listing_id="2", score_parsed=False),
        ],
        resolved_count=3,
        failed_listings=[FailedListing(listing_id="3", stage="resolution", error_type="EmptyResult")],
    )


def test_linkify_escapes_and_links():
    out = str(linkify("a <b>\nsee https://x.test/p"))
    assert "&lt;b&gt;" in out
    assert "<br>" in out
    assert '<a href="https://x.test/p" target="_blank">https://x.test/p</a>' in out


def test_html_report_lists_records_in_rank_order():
    html = render_report_html(_report())

    assert "<h1>Job Fit Evaluations</h1>" in html
    assert html.index("Job Evaluation #1") < html.index("Job Evaluation #2")
    assert html.index('<span class="score">90/100</span>') < html.index('<span class="score">0/100</span>')
    assert "&lt;Lead&gt; &amp; Co" in html
    assert '<a href="https://jobs.example.com/1?a=1&amp;b=2" target="_blank">' in html
    assert "<Lead>" not in html
    assert "Skipped listings" in html
    assert "EmptyResult" in html


def test_text_report_is_plain():
    text = render_report_text(_report())
    assert "Job Evaluation #1 - 90/100" in text
    assert "Job Title: <Lead> & Co" in text


def test_write_report_writes_html_and_json(tmp_path: Path):
    html_path = write_report(_report(), tmp_path / "run", "LinkedinEvaluations.html")

    assert html_path == tmp_path / "run" / "LinkedinEvaluations.html"
    assert html_path.is_file()
    assert (tmp_path / "run" / "LinkedinEvaluations.txt").is_file()
    data = json.loads((tmp_path / "run" / "report.json").read_text(encoding="utf-8"))
    assert data["summary"] == {"records": 2, "resolved": 3, "failed": 1, "top_score": 90}
    assert data["report"]["failed_listings"][0]["listing_id"] == "3"

    loaded = load_report(tmp_path / "run" / "report.json")
    assert loaded.scores == [90, 0]
