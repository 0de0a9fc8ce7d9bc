from __future__ import annotations

import asyncio

import pytest

from jobscout.pipeline.errors import EmptyResult, RateLimited, TransportError
from jobscout.pipeline.rate_gate import RateGate
from jobscout.pipeline.retry import RetryPolicy, linear_backoff


class _Recorder:
    def __init__(self) -> None:
        self.delays = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)


def test_linear_backoff_and_worst_case_delay():
    backoff = linear_backoff(2.0)
    assert [backoff(n) for n in range(1, 5)] == [2.0, 4.0, 6.0, 8.0]
    assert RetryPolicy(max_attempts=5, backoff=backoff, max_delay=0).max_total_delay() == 20.0
    # every hint at the 10s cap: 10 + 10 + 10 + 10
    assert RetryPolicy(max_attempts=5, backoff=backoff).max_total_delay() == 40.0


def test_retry_until_success_sleeps_linearly():
    rec = _Recorder()
    policy = RetryPolicy(max_attempts=5, backoff=linear_backoff(2.0), sleep=rec.sleep)
    seen = []

    async def flaky(attempt: int) -> str:
        seen.append(attempt)
        if attempt < 3:
            raise TransportError("connection reset")
        return "ok"

    assert asyncio.run(policy.run(flaky)) == "ok"
    assert seen == [1, 2, 3]
    assert rec.delays == [2.0, 4.0]


def test_retry_gives_up_after_max_attempts_with_last_error():
    rec = _Recorder()
    policy = RetryPolicy(max_attempts=5, backoff=linear_backoff(2.0), sleep=rec.sleep)

    async def always_throttled(attempt: int) -> str:
        raise RateLimited(f"429 #{attempt}")

    with pytest.raises(RateLimited) as info:
        asyncio.run(policy.run(always_throttled))
    assert info.value.attempt == 5
    assert str(info.value) == "429 #5"
    assert rec.delays == [2.0, 4.0, 6.0, 8.0]


def test_non_retryable_error_is_not_retried():
    rec = _Recorder()
    policy = RetryPolicy(max_attempts=5, sleep=rec.sleep)
    calls = []

    async def empty(attempt: int) -> str:
        calls.append(attempt)
        raise EmptyResult("nothing there")

    with pytest.raises(EmptyResult) as info:
        asyncio.run(policy.run(empty))
    assert calls == [1]
    assert info.value.attempt == 1
    assert rec.delays == []


def test_retry_after_hint_extends_the_delay():
    rec = _Recorder()
    policy = RetryPolicy(max_attempts=2, backoff=linear_backoff(2.0), sleep=rec.sleep)

    async def fn(attempt: int) -> str:
        if attempt == 1:
            raise RateLimited("slow down", retry_after=7)
        return "ok"

    asyncio.run(policy.run(fn))
    assert rec.delays == [7]


def test_retry_after_hint_is_capped_by_max_delay():
    rec = _Recorder()
    policy = RetryPolicy(max_attempts=3, backoff=linear_backoff(2.0), max_delay=10.0, sleep=rec.sleep)

    async def fn(attempt: int) -> str:
        raise RateLimited("come back in an hour", retry_after=3600)

    with pytest.raises(RateLimited):
        asyncio.run(policy.run(fn))
    assert rec.delays == [10.0, 10.0]
    assert sum(rec.delays) <= policy.max_total_delay()


def test_small_retry_after_hint_never_shortens_backoff():
    policy = RetryPolicy(max_attempts=5, backoff=linear_backoff(2.0))
    assert policy.delay_for(4, RateLimited("slow", retry_after=1)) == 8.0


def test_policy_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(max_delay=-1)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.slept = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.slept.append(round(delay, 6))
        self.now += delay


def test_rate_gate_spaces_passes_by_interval():
    clock = _FakeClock()
    gate = RateGate(2.0, clock=clock, sleep=clock.sleep)

    async def run() -> None:
        await asyncio.gather(*(gate.wait() for _ in range(4)))

    asyncio.run(run())
    assert gate.passes == 4
    # first pass is free, every later one waits out the remainder of the interval
    assert clock.slept == [2.0, 2.0, 2.0]


def test_rate_gate_does_not_wait_when_interval_already_elapsed():
    clock = _FakeClock()
    gate = RateGate(2.0, clock=clock, sleep=clock.sleep)

    async def run() -> None:
        await gate.wait()
        clock.now += 5
        await gate.wait()
        clock.now += 0.5
        await gate.wait()

    asyncio.run(run())
    assert clock.slept == [1.5]


def test_rate_gate_zero_interval_never_sleeps():
    clock = _FakeClock()
    gate = RateGate(0, clock=clock, sleep=clock.sleep)
    asyncio.run(gate.wait())
    asyncio.run(gate.wait())
    assert gate.passes == 2
    assert clock.slept == []
