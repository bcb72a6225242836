"""
Tests for the in-process circuit breaker
"""

import asyncio

import pytest

from ..resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpenError,
    CircuitBreakerTimeoutError,
    CircuitState,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class Boom(Exception):
    pass


async def ok():
    return "ok"


async def fail():
    raise Boom("vendor down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=3, recovery_timeout=30.0, expected_exception=(Boom,), name="test"
        ),
        clock=clock,
    )


async def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(Boom):
            await breaker.call(fail)


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_closed_passes_through(self, breaker):
        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker):
        await trip(breaker, 3)
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(ok)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        await trip(breaker, 2)
        await breaker.call(ok)
        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 2

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_not_counted(self, breaker):
        async def bad_request():
            raise ValueError("client bug")

        for _ in range(5):
            with pytest.raises(ValueError):
                await breaker.call(bad_request)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_probe_closes(self, breaker, clock):
        await trip(breaker, 3)
        clock.now += 30.0

        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        await trip(breaker, 3)
        clock.now += 31.0

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(ok)

    @pytest.mark.asyncio
    async def test_single_probe_in_half_open(self, breaker, clock):
        await trip(breaker, 3)
        clock.now += 31.0
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "probe"

        probe = asyncio.create_task(breaker.call(slow))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(ok)

        release.set()
        assert await probe == "probe"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_timeout(self, clock):
        breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=1,
                timeout=0.01,
                expected_exception=(CircuitBreakerTimeoutError,),
            ),
            clock=clock,
        )

        async def hang():
            await asyncio.sleep(1)

        with pytest.raises(CircuitBreakerTimeoutError):
            await breaker.call(hang)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_stats_and_reset(self, breaker):
        await breaker.call(ok)
        await trip(breaker, 3)

        stats = await breaker.get_stats()
        assert stats.state == CircuitState.OPEN
        assert stats.total_requests == 4
        assert stats.total_failures == 3
        assert stats.total_successes == 1
        assert stats.next_attempt_time is not None

        await breaker.reset()
        assert breaker.snapshot() == {"state": "closed", "failure_count": 0, "success_count": 0}
