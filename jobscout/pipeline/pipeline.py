from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger

from jobscout.config.profile_store import load_profile_text
from jobscout.config.settings import Settings
from jobscout.fetching.scrapingdog import ScrapingdogClient

from .errors import CacheError, SetupError
from .llm_oracle import EvaluationOracle, build_oracle
from .models import FailedListing, ListingRef, RankedReport, ResolutionOutcome
from .rate_gate import RateGate
from .resolution_pool import ResolutionPool
from .resolver import DescriptionResolver, DescriptionSource
from .retry import RetryPolicy, linear_backoff
from .scoring import ScoringPool
from .state import DescriptionCache


def looks_like_ollama_tag(model: str) -> bool:
    """Ollama names carry a `name:tag` suffix (`gemma3:1b`); OpenAI fine-tunes start with `ft:`."""
    return ":" in model and not model.startswith("ft:")


def build_retry_policy(cfg: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=cfg.max_attempts,
        backoff=linear_backoff(cfg.retry_base_delay_sec),
        max_delay=cfg.retry_max_delay_sec,
    )


async def preflight(
    cfg: Settings,
    *,
    cache: DescriptionCache,
    require_source: bool = True,
    require_email: bool = False,
) -> str:
    """
    Check everything that would make the whole run pointless before any work
    is scheduled. Returns the profile text on success, raises SetupError otherwise.
    """
    problems: List[str] = []
    if require_source and not cfg.scrapingdog_api_key:
        problems.append("no ScrapingDog API key (JOBSCOUT_SCRAPINGDOG_API_KEY / SCRAPINGDOG_API_KEY)")
    if cfg.llm_provider not in ("ollama", "openai"):
        problems.append(f"unknown llm provider '{cfg.llm_provider}'")
    if not cfg.llm_model:
        problems.append("no llm model configured (JOBSCOUT_LLM_MODEL)")
    if cfg.llm_provider == "openai":
        if not cfg.openai_api_key:
            problems.append("llm provider is openai but no API key (JOBSCOUT_OPENAI_API_KEY / OPENAI_API_KEY)")
        if looks_like_ollama_tag(cfg.llm_model):
            logger.warning("llm model '{}' looks like an Ollama tag but the provider is openai", cfg.llm_model)
    if require_email:
        missing = [
            name
            for name, value in (
                ("email_from", cfg.email_from),
                ("email_to", cfg.email_to),
                ("smtp_host", cfg.smtp_host),
                ("email_password", cfg.email_password),
            )
            if not value
        ]
        if missing:
            problems.append(f"email enabled but missing: {', '.join(missing)}")

    profile_text = ""
    try:
        profile_text = load_profile_text(cfg.profile_path)
    except (OSError, ValueError) as exc:
        problems.append(str(exc))

    try:
        await cache.ping()
    except CacheError as exc:
        problems.append(f"cache unreachable: {exc}")

    if problems:
        for problem in problems:
            logger.error("setup check failed: {}", problem)
        raise SetupError("; ".join(problems), data={"problems": problems})
    return profile_text


def dedupe_for_scoring(outcomes: Sequence[ResolutionOutcome]) -> List[ResolutionOutcome]:
    """Keep the first successful outcome per listing id so no description is evaluated twice."""
    seen: set[str] = set()
    unique: List[ResolutionOutcome] = []
    for outcome in outcomes:
        if not outcome.ok:
            continue
        if outcome.listing.id in seen:
            logger.debug("skipping duplicate listing {} at position {}", outcome.listing.id, outcome.index)
            continue
        seen.add(outcome.listing.id)
        unique.append(outcome)
    return unique


@dataclass
class JobScoutPipeline:
    resolution_pool: ResolutionPool
    scoring_pool: ScoringPool

    async def _run(self, listings: Sequence[ListingRef]) -> RankedReport:
        outcomes = await self.resolution_pool.resolve_all(listings)
        failed = [
            FailedListing(
                listing_id=o.listing.id or f"#{o.index}",
                stage="resolution",
                error_type=o.error_type,
                error_message=o.error_message,
            )
            for o in outcomes
            if not o.ok
        ]
        unique = dedupe_for_scoring(outcomes)
        if not unique:
            logger.warning("no listing resolved; nothing to score")
            return RankedReport(records=[], resolved_count=0, failed_listings=failed)

        report = await self.scoring_pool.score_all(
            [o.description for o in unique if o.description is not None],
            listing_ids=[o.listing.id for o in unique],
        )
        return report.model_copy(update={"failed_listings": failed + report.failed_listings})

    async def run(self, listings: Sequence[ListingRef], *, deadline_sec: Optional[float] = None) -> RankedReport:
        """
        Resolve, de-duplicate and score `listings`. With `deadline_sec`, the whole
        run is bounded and every in-flight request is cancelled when it expires.
        """
        logger.info("pipeline run: {} listings, deadline={}", len(listings), deadline_sec)
        if deadline_sec is None:
            report = await self._run(listings)
        else:
            async with asyncio.timeout(deadline_sec):
                report = await self._run(listings)
        logger.info("pipeline done: {}", report.summary())
        return report

    async def aclose(self) -> None:
        for resource in (self.resolution_pool.resolver.source, self.scoring_pool.oracle):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()


def build_pipeline(
    cfg: Settings,
    *,
    profile_text: str,
    cache: DescriptionCache,
    source: Optional[DescriptionSource] = None,
    oracle: Optional[EvaluationOracle] = None,
) -> JobScoutPipeline:
    """Wire both pools from one Settings; collaborators can be injected."""
    retry_policy = build_retry_policy(cfg)
    resolver = DescriptionResolver(
        source or ScrapingdogClient.from_settings(cfg),
        cache,
        rate_gate=RateGate(cfg.rate_limit_delay_sec),
        retry_policy=retry_policy,
        ttl_sec=cfg.cache_ttl_sec,
        cache_version=cfg.cache_version,
    )
    logger.info(
        "resolution: {} workers, {:.1f}s rate gate, {} attempts (max backoff {:.0f}s per listing)",
        cfg.max_concurrent_requests,
        cfg.rate_limit_delay_sec,
        retry_policy.max_attempts,
        retry_policy.max_total_delay(),
    )
    return JobScoutPipeline(
        resolution_pool=ResolutionPool(resolver, max_concurrent=cfg.max_concurrent_requests),
        scoring_pool=ScoringPool(
            oracle or build_oracle(cfg),
            profile_text=profile_text,
            model=cfg.llm_model,
            temperature=cfg.llm_temperature,
            max_concurrent=cfg.max_concurrent_evaluations,
            retry_policy=retry_policy,
        ),
    )
