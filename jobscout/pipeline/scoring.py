from __future__ import annotations

import asyncio
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .errors import ParseError, PipelineError
from .llm_oracle import EvaluationOracle, OracleRequest, build_evaluation_prompt
from .models import Description, EvaluationRecord, FailedListing, RankedReport
from .resolution_pool import UnitTracker
from .retry import RetryPolicy

SCORE_RE = re.compile(r"Fit Score:\s*(\d+(?:\.\d+)?)/100", re.IGNORECASE)
MARKDOWN_LINK_RE = re.compile(r"\[[^\]]*\]\(([^)]+)\)")
THINK_TAGS = ("<think>", "</think>")

MIN_SCORE = 0
MAX_SCORE = 100


def clean_response(text: str) -> str:
    """Strip reasoning delimiters, reduce markdown links to bare URLs, trim."""
    clean = text or ""
    for tag in THINK_TAGS:
        clean = clean.replace(tag, "")
    clean = MARKDOWN_LINK_RE.sub(r"\1", clean)
    return clean.strip()


def parse_score(text: str) -> int:
    """Like `extract_score` but raises ParseError instead of defaulting."""
    m = SCORE_RE.search(text or "")
    if not m:
        raise ParseError("no 'Fit Score: <n>/100' line found")
    try:
        value = Decimal(m.group(1)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ParseError(f"unparseable score {m.group(1)!r}") from exc
    return max(MIN_SCORE, min(MAX_SCORE, int(value)))


def extract_score(text: str) -> int:
    try:
        return parse_score(text)
    except ParseError as exc:
        logger.warning("score not found or invalid, defaulting to 0: {}", exc)
        return 0


def rank_evaluations(records: Iterable[EvaluationRecord]) -> List[EvaluationRecord]:
    """Highest score first; equal scores keep submission order."""
    return sorted(records, key=lambda r: (-r.score, r.source_index))


class ScoringPool:
    """
    Sends each description to the evaluation oracle with at most
    `max_concurrent` calls in flight, turns every answer into an
    EvaluationRecord and ranks them once all calls have finished.
    """

    def __init__(
        self,
        oracle: EvaluationOracle,
        *,
        profile_text: str,
        model: str,
        temperature: float = 0.3,
        max_concurrent: int = 1,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.oracle = oracle
        self.profile_text = profile_text
        self.model = model
        self.temperature = temperature
        self.max_concurrent = max_concurrent
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self.tracker = UnitTracker()

    def build_request(self, description: Description) -> OracleRequest:
        prompt = build_evaluation_prompt(self.profile_text, description.to_prompt_text())
        return OracleRequest.for_evaluation(model=self.model, temperature=self.temperature, prompt=prompt)

    def to_record(self, index: int, description: Description, raw_text: str, listing_id: Optional[str]) -> EvaluationRecord:
        cleaned = clean_response(raw_text)
        try:
            score = parse_score(cleaned)
            parsed = True
        except ParseError as exc:
            logger.warning("invalid or malformed response for job #{} ({}); scoring 0: {}", index, listing_id, exc)
            score = 0
            parsed = False
        return EvaluationRecord(
            score=score,
            rendered_text=cleaned,
            source_index=index,
            listing_id=listing_id,
            position_title=description.position_title,
            company_name=description.company_name,
            apply_link=description.apply_link,
            score_parsed=parsed,
        )

    async def _score_one(
        self,
        index: int,
        description: Description,
        listing_id: Optional[str],
        semaphore: asyncio.Semaphore,
        results: "asyncio.Queue[Tuple[int, Optional[EvaluationRecord], Optional[BaseException]]]",
    ) -> None:
        async with semaphore:
            self.tracker.start(index)
            logger.info("evaluating job #{} ({})", index, description.position_title)
            request = self.build_request(description)
            try:
                response = await self.retry_policy.run(
                    lambda attempt: self.oracle.complete(request),
                    label=f"evaluate #{index}",
                )
            except asyncio.CancelledError:
                self.tracker.finish(index, ok=False)
                raise
            except Exception as exc:
                attempts = exc.attempt if isinstance(exc, PipelineError) else None
                logger.error(
                    "evaluation failed for job #{} ({}) attempts={}: {}: {}",
                    index,
                    listing_id,
                    attempts,
                    type(exc).__name__,
                    exc,
                )
                self.tracker.finish(index, ok=False)
                await results.put((index, None, exc))
                return
            record = self.to_record(index, description, response.text, listing_id)
            self.tracker.finish(index, ok=True)
            await results.put((index, record, None))

    async def score_all(
        self,
        descriptions: Sequence[Description],
        *,
        listing_ids: Optional[Sequence[Optional[str]]] = None,
    ) -> RankedReport:
        """
        Score `descriptions`; position i (1-based) becomes the record's source
        index. Oracle failures drop the unit, malformed answers score 0.
        """
        ids: List[Optional[str]] = list(listing_ids) if listing_ids is not None else [None] * len(descriptions)
        if len(ids) != len(descriptions):
            raise ValueError("listing_ids must match descriptions")

        semaphore = asyncio.Semaphore(self.max_concurrent)
        results: "asyncio.Queue[Tuple[int, Optional[EvaluationRecord], Optional[BaseException]]]" = asyncio.Queue()
        self.tracker = UnitTracker()

        tasks = []
        for index, (description, listing_id) in enumerate(zip(descriptions, ids), start=1):
            self.tracker.submit(index)
            tasks.append(
                asyncio.create_task(
                    self._score_one(index, description, listing_id, semaphore, results),
                    name=f"evaluate-{index}",
                )
            )
        logger.info("scoring {} descriptions with {} workers", len(tasks), self.max_concurrent)

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        records: List[EvaluationRecord] = []
        failures: List[FailedListing] = []
        while not results.empty():
            index, record, error = results.get_nowait()
            if record is not None:
                records.append(record)
                continue
            failures.append(
                FailedListing(
                    listing_id=ids[index - 1] or f"#{index}",
                    stage="scoring",
                    error_type=type(error).__name__ if error else None,
                    error_message=str(error) if error else None,
                )
            )

        ranked = rank_evaluations(records)
        logger.info("scoring finished: {} evaluated, {} failed", len(ranked), len(failures))
        return RankedReport(
            records=ranked,
            resolved_count=len(descriptions),
            failed_listings=sorted(failures, key=lambda f: f.listing_id),
        )
