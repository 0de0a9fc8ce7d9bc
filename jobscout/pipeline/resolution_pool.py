from __future__ import annotations

import asyncio
from enum import Enum
from typing import Dict, List, Sequence

from loguru import logger

from .errors import PipelineError
from .models import ListingRef, ResolutionOutcome
from .resolver import DescriptionResolver


class UnitState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({UnitState.SUCCEEDED, UnitState.FAILED})


class UnitTracker:
    """Per-unit Pending -> InFlight -> Succeeded|Failed bookkeeping shared by both pools."""

    def __init__(self) -> None:
        self.states: Dict[int, UnitState] = {}
        self.in_flight = 0
        self.peak_in_flight = 0

    def submit(self, index: int) -> None:
        self.states[index] = UnitState.PENDING

    def start(self, index: int) -> None:
        self._move(index, UnitState.IN_FLIGHT)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def finish(self, index: int, ok: bool) -> None:
        if self.states.get(index) == UnitState.IN_FLIGHT:
            self.in_flight -= 1
        self._move(index, UnitState.SUCCEEDED if ok else UnitState.FAILED)

    def _move(self, index: int, new: UnitState) -> None:
        current = self.states.get(index)
        if current in TERMINAL_STATES:
            raise RuntimeError(f"unit {index} already {current.value}; cannot move to {new.value}")
        self.states[index] = new

    def all_terminal(self) -> bool:
        return all(state in TERMINAL_STATES for state in self.states.values())


class ResolutionPool:
    """
    Resolves many listings concurrently. At most `max_concurrent` resolutions
    are in flight; the resolver's shared rate gate paces the requests they
    make. Outcomes travel through a queue and are returned in submission
    order once every unit has finished.
    """

    def __init__(self, resolver: DescriptionResolver, *, max_concurrent: int = 2) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.resolver = resolver
        self.max_concurrent = max_concurrent
        self.tracker = UnitTracker()

    @property
    def states(self) -> Dict[int, UnitState]:
        return dict(self.tracker.states)

    async def _resolve_one(
        self,
        index: int,
        listing: ListingRef,
        semaphore: asyncio.Semaphore,
        results: "asyncio.Queue[ResolutionOutcome]",
    ) -> None:
        async with semaphore:
            self.tracker.start(index)
            try:
                description, from_cache, attempts = await self.resolver.resolve_with_meta(listing)
            except asyncio.CancelledError:
                self.tracker.finish(index, ok=False)
                raise
            except Exception as exc:
                attempts = exc.attempt if isinstance(exc, PipelineError) and exc.attempt else 0
                logger.error(
                    "resolution failed id={} attempts={} error={}: {}",
                    listing.id,
                    attempts,
                    type(exc).__name__,
                    exc,
                )
                self.tracker.finish(index, ok=False)
                await results.put(
                    ResolutionOutcome(
                        listing=listing,
                        index=index,
                        error_type=type(exc).__name__,
                        error_message=str(exc),
                        attempts=attempts,
                    )
                )
                return
            self.tracker.finish(index, ok=True)
            await results.put(
                ResolutionOutcome(
                    listing=listing,
                    index=index,
                    description=description,
                    from_cache=from_cache,
                    attempts=attempts,
                )
            )

    async def resolve_all(self, listings: Sequence[ListingRef]) -> List[ResolutionOutcome]:
        semaphore = asyncio.Semaphore(self.max_concurrent)
        results: "asyncio.Queue[ResolutionOutcome]" = asyncio.Queue()
        self.tracker = UnitTracker()

        tasks = []
        for index, listing in enumerate(listings, start=1):
            self.tracker.submit(index)
            tasks.append(
                asyncio.create_task(
                    self._resolve_one(index, listing, semaphore, results),
                    name=f"resolve-{listing.id}",
                )
            )
        logger.info("resolving {} listings with {} workers", len(tasks), self.max_concurrent)

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        outcomes: List[ResolutionOutcome] = []
        while not results.empty():
            outcomes.append(results.get_nowait())
        outcomes.sort(key=lambda o: o.index)

        ok = sum(1 for o in outcomes if o.ok)
        logger.info("resolution finished: {} ok, {} failed", ok, len(outcomes) - ok)
        return outcomes
