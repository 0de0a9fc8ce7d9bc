from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol

from loguru import logger
from pydantic import ValidationError

from .errors import CacheError, EmptyResult, InvalidInput, UpstreamError
from .models import Description, ListingRef
from .rate_gate import RateGate
from .retry import RetryPolicy
from .state import DescriptionCache, cache_key


class DescriptionSource(Protocol):
    async def fetch_description_payload(self, job_id: str) -> Any: ...


def parse_description_payload(payload: Any, *, listing_id: str) -> Description:
    """The source answers with a single-element list; anything emptier is EmptyResult."""
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise UpstreamError(
            f"unexpected payload type {type(payload).__name__}",
            listing_id=listing_id,
        )
    if not payload:
        raise EmptyResult("source returned an empty list", listing_id=listing_id)
    first = payload[0]
    if not isinstance(first, dict) or not first:
        raise EmptyResult("source returned an empty record", listing_id=listing_id)
    try:
        description = Description.model_validate(first)
    except ValidationError as exc:
        raise UpstreamError(f"malformed description record: {exc}", listing_id=listing_id) from exc
    if description.is_empty():
        raise EmptyResult("description has neither title nor text", listing_id=listing_id)
    return description


class DescriptionResolver:
    """
    Cache-aside resolution of one listing:
      cache hit -> return (no network, no rate-gate wait)
      miss      -> validate id, fetch under the retry policy with every attempt
                   paced by the shared rate gate, parse, then write back.
    Cache failures are logged and never fail a resolution.
    """

    def __init__(
        self,
        source: DescriptionSource,
        cache: DescriptionCache,
        *,
        rate_gate: RateGate,
        retry_policy: RetryPolicy,
        ttl_sec: int = 24 * 3600,
        cache_version: str = "v1",
    ) -> None:
        self.source = source
        self.cache = cache
        self.rate_gate = rate_gate
        self.retry_policy = retry_policy
        self.ttl_sec = ttl_sec
        self.cache_version = cache_version
        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._locks_guard = asyncio.Lock()
        self.network_attempts = 0
        self.cache_hits = 0

    async def _key_lock(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is not None:
            return lock
        async with self._locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._key_locks[key] = lock
        return lock

    async def _cache_get(self, key: str, listing_id: str) -> Optional[Description]:
        try:
            return await self.cache.get(key)
        except CacheError as exc:
            logger.warning("cache read failed for {}; treating as miss: {}", listing_id, exc)
            return None

    async def _cache_set(self, key: str, description: Description, listing_id: str) -> None:
        try:
            await self.cache.set(key, description, self.ttl_sec)
        except CacheError as exc:
            logger.warning("cache write failed for {}; continuing: {}", listing_id, exc)

    async def _attempt(self, listing_id: str, attempt: int) -> Description:
        await self.rate_gate.wait()
        self.network_attempts += 1
        logger.debug("fetching description {} (attempt {})", listing_id, attempt)
        payload = await self.source.fetch_description_payload(listing_id)
        return parse_description_payload(payload, listing_id=listing_id)

    async def resolve_with_meta(self, listing: ListingRef) -> tuple[Description, bool, int]:
        """Returns (description, from_cache, network_attempts)."""
        listing_id = (listing.id or "").strip()
        key = cache_key(listing_id, self.cache_version)

        # Same-id resolutions queue behind each other so the second sees the first one's write.
        lock = await self._key_lock(key)
        async with lock:
            cached = await self._cache_get(key, listing_id)
            if cached is not None:
                self.cache_hits += 1
                logger.debug("cache hit for {}", listing_id)
                return cached, True, 0

            if not listing_id:
                raise InvalidInput("listing id is empty", listing_id=listing.id)

            attempts = 0

            async def _call(attempt: int) -> Description:
                nonlocal attempts
                attempts = attempt
                return await self._attempt(listing_id, attempt)

            description = await self.retry_policy.run(_call, label=f"resolve {listing_id}")
            await self._cache_set(key, description, listing_id)
            logger.info(
                "resolved {} -> '{}' at {}",
                listing_id,
                description.position_title,
                description.company_name,
            )
            return description, False, attempts

    async def resolve(self, listing: ListingRef) -> Description:
        description, _, _ = await self.resolve_with_meta(listing)
        return description
