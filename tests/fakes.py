"""Hand-written collaborators shared by the pipeline tests."""
from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, Iterable, List, Optional

from jobscout.pipeline.errors import RateLimited, UpstreamError
from jobscout.pipeline.llm_oracle import OracleRequest, OracleResponse


def job_payload(job_id: str, title: Optional[str] = None, company: str = "Acme") -> List[Dict[str, Any]]:
    """Shape of a job-detail answer: a single-element list."""
    return [
        {
            "job_position": title or f"Engineer {job_id}",
            "company_name": company,
            "job_location": "Berlin, DE",
            "job_posting_time": "1 day ago",
            "job_description": f"Build things for listing {job_id}.",
            "job_apply_link": f"https://jobs.example.com/{job_id}",
            "Seniority_level": "Mid-Senior level",
            "Employment_type": "Full-time",
            "similar_jobs": None,
            "people_also_viewed": [],
        }
    ]


class FakeSource:
    """
    Description source keyed by job id. Ids in `failing` always raise
    UpstreamError; `throttle_first` maps an id to how many RateLimited answers
    precede success.
    """

    def __init__(
        self,
        *,
        titles: Optional[Dict[str, str]] = None,
        failing: Iterable[str] = (),
        throttle_first: Optional[Dict[str, int]] = None,
        delay: float = 0.0,
    ) -> None:
        self.titles = titles or {}
        self.failing = set(failing)
        self.throttle_first = dict(throttle_first or {})
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def fetch_description_payload(self, job_id: str) -> Any:
        self.calls.append(job_id)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if job_id in self.failing:
                raise UpstreamError("HTTP 500 from upstream", listing_id=job_id, status=500)
            if self.throttle_first.get(job_id, 0) > 0:
                self.throttle_first[job_id] -= 1
                raise RateLimited("HTTP 429 from upstream", listing_id=job_id, status=429)
            return job_payload(job_id, self.titles.get(job_id))
        finally:
            self.in_flight -= 1


TITLE_RE = re.compile(r"^Title: (.+)$", re.MULTILINE)


class ScriptedOracle:
    """Answers with `Fit Score: <scores[title]>/100`; titles missing from `scores` get free text."""

    def __init__(self, scores: Optional[Dict[str, Any]] = None, *, fail_titles: Iterable[str] = ()) -> None:
        self.scores = scores or {}
        self.fail_titles = set(fail_titles)
        self.requests: List[OracleRequest] = []

    async def complete(self, request: OracleRequest) -> OracleResponse:
        self.requests.append(request)
        prompt = request.messages[-1]["content"]
        titles = TITLE_RE.findall(prompt)
        title = titles[-1] if titles else "?"
        if title in self.fail_titles:
            raise UpstreamError(f"oracle HTTP 500 for {title}", status=500)
        await asyncio.sleep(0)
        if title not in self.scores:
            return OracleResponse(text=f"Job Title: {title}\n\nI cannot rate this one.")
        return OracleResponse(
            text=f"<think>weighing</think>Job Title: {title}\n\nFit Score: {self.scores[title]}/100\n\nExplanation: ok",
            model="fake",
        )
