from __future__ import annotations

import time
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from loguru import logger

from jobscout.config.settings import Settings
from jobscout.pipeline.errors import RateLimited, TransportError, UpstreamError, parse_retry_after
from jobscout.pipeline.models import ListingRef

THROTTLE_STATUSES = frozenset({429})


class ScrapingdogClient:
    """
    Thin async wrapper around the ScrapingDog LinkedIn jobs endpoint. The same
    URL serves both listing search (`field`, `page`, ...) and job details
    (`job_id`). Status handling:
      - 200: decoded JSON
      - 429: RateLimited (retry later)
      - other: UpstreamError (fatal for that request)
      - network failure: TransportError
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.scrapingdog.com/linkedinjobs",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.requests_sent = 0

    @classmethod
    def from_settings(cls, cfg: Settings, **kwargs: Any) -> "ScrapingdogClient":
        return cls(
            cfg.scrapingdog_api_key or "",
            base_url=cfg.scrapingdog_base_url,
            timeout=cfg.http_timeout_sec,
            **kwargs,
        )

    async def __aenter__(self) -> "ScrapingdogClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, params: Dict[str, Any], *, listing_id: Optional[str] = None) -> Any:
        query = {"api_key": self.api_key, **params}
        start = time.perf_counter()
        self.requests_sent += 1
        try:
            resp = await self._client.get(self.base_url, params=query)
        except httpx.RequestError as exc:
            logger.warning("scrapingdog request error id={} params={}: {}", listing_id, _redact(params), exc)
            raise TransportError(f"HTTP request failed: {exc}", listing_id=listing_id) from exc

        elapsed = round(time.perf_counter() - start, 3)
        status = resp.status_code
        meta = {"status": status, "elapsed": elapsed}

        if status in THROTTLE_STATUSES:
            retry_after = parse_retry_after(resp.headers.get("Retry-After"))
            logger.warning("scrapingdog throttled id={} status={} retry_after={}", listing_id, status, retry_after)
            raise RateLimited(
                f"HTTP {status} from upstream: {resp.text[:200]}",
                retry_after=retry_after,
                listing_id=listing_id,
                status=status,
                data=meta,
            )

        if status != 200:
            logger.error("scrapingdog HTTP {} id={}: {}", status, listing_id, resp.text[:300])
            raise UpstreamError(
                f"unexpected status {status}: {resp.text[:300]}",
                listing_id=listing_id,
                status=status,
                data=meta,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError(
                f"response is not JSON: {exc}",
                listing_id=listing_id,
                status=status,
                data=meta,
            ) from exc

        logger.debug("scrapingdog ok id={} status={} elapsed={}s", listing_id, status, elapsed)
        return payload

    async def fetch_description_payload(self, job_id: str) -> Any:
        """Raw job-detail payload; normally a single-element list."""
        return await self._get_json({"job_id": job_id}, listing_id=job_id)

    async def search_listings(
        self,
        field: str,
        *,
        geoid: str = "",
        location: str = "",
        page: int = 1,
        sort_by: str = "day",
        job_type: str = "",
        exp_level: str = "",
        work_type: str = "",
        filter_by_company: str = "",
    ) -> List[ListingRef]:
        params = {
            "field": field,
            "geoid": geoid,
            "location": location,
            "page": page,
            "sort_by": sort_by,
            "job_type": job_type,
            "exp_level": exp_level,
            "work_type": work_type,
            "filter_by_company": filter_by_company,
        }
        payload = await self._get_json(params)
        if not isinstance(payload, list):
            raise UpstreamError(f"listing page {page} is not a list", data={"page": page})

        listings: List[ListingRef] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            ref = ListingRef.model_validate(item)
            if not ref.id:
                logger.warning("skipping listing without job_id on page {}: {}", page, item.get("job_position"))
                continue
            listings.append(ref)
        return listings

    async def iter_listing_pages(self, field: str, *, max_pages: int = 1, **kwargs: Any) -> AsyncIterator[List[ListingRef]]:
        for page in range(1, max(1, max_pages) + 1):
            listings = await self.search_listings(field, page=page, **kwargs)
            logger.info("listing page {} for '{}' returned {} jobs", page, field, len(listings))
            if not listings:
                return
            yield listings

    async def collect_listings(self, field: str, *, max_pages: int = 1, **kwargs: Any) -> List[ListingRef]:
        seen: set[str] = set()
        out: List[ListingRef] = []
        async for page in self.iter_listing_pages(field, max_pages=max_pages, **kwargs):
            for ref in page:
                if ref.id in seen:
                    continue
                seen.add(ref.id)
                out.append(ref)
        return out


def _redact(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if k != "api_key"}
