"""
Circuit Breaker Implementation for PMS Vendor Calls
Closed/open/half-open breaker with in-process state, one per transport
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from ..utils.logging import get_logger

logger = get_logger("pms_connectors.circuit_breaker")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration"""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0  # seconds
    expected_exception: tuple = (Exception,)
    success_threshold: int = 1  # probes needed to close from half-open
    timeout: Optional[float] = None  # per-call timeout, None leaves it to the caller
    name: Optional[str] = None


class CircuitBreakerStats(BaseModel):
    """Circuit breaker statistics"""

    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: Optional[datetime]
    last_success_time: Optional[datetime]
    total_requests: int
    total_failures: int
    total_successes: int
    next_attempt_time: Optional[datetime]


class CircuitBreakerOpenError(Exception):
    """Exception raised when circuit breaker is open"""

    def __init__(self, circuit_name: str, next_attempt_time: Optional[datetime]):
        self.circuit_name = circuit_name
        self.next_attempt_time = next_attempt_time
        super().__init__(
            f"Circuit breaker '{circuit_name}' is open. Next attempt at {next_attempt_time}"
        )


class CircuitBreakerTimeoutError(Exception):
    """Exception raised when circuit breaker times out"""

    pass


class CircuitBreaker:
    """
    In-process circuit breaker.

    Counts consecutive failures of ``expected_exception``; other exceptions
    pass through without touching the counters. After ``recovery_timeout``
    an open breaker admits a single half-open probe at a time.
    """

    def __init__(self, config: CircuitBreakerConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.name = config.name or f"circuit_{id(self)}"
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._last_failure_time: Optional[datetime] = None
        self._last_success_time: Optional[datetime] = None
        self._total_requests = 0
        self._total_failures = 0
        self._total_successes = 0

        logger.debug(
            "circuit_breaker_created",
            name=self.name,
            failure_threshold=config.failure_threshold,
            recovery_timeout=config.recovery_timeout,
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    def _set_state(self, state: CircuitState):
        if state != self._state:
            self._state = state
            logger.info("circuit_breaker_state_changed", name=self.name, state=state.value)

    def _seconds_until_retry(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.config.recovery_timeout - (self._clock() - self._opened_at))

    def _next_attempt_time(self) -> Optional[datetime]:
        if self._state != CircuitState.OPEN:
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=self._seconds_until_retry())

    async def _before_call(self):
        async with self._lock:
            self._total_requests += 1

            if self._state == CircuitState.OPEN:
                if self._seconds_until_retry() > 0:
                    raise CircuitBreakerOpenError(self.name, self._next_attempt_time())
                self._set_state(CircuitState.HALF_OPEN)
                self._success_count = 0
                logger.info("circuit_breaker_half_open", name=self.name)

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitBreakerOpenError(self.name, None)
                self._probe_in_flight = True

    async def _on_success(self):
        async with self._lock:
            self._total_successes += 1
            self._last_success_time = datetime.now(timezone.utc)
            self._failure_count = 0

            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)
                    self._opened_at = None
                    logger.info(
                        "circuit_breaker_closed", name=self.name, success_count=self._success_count
                    )
            else:
                self._success_count += 1

    async def _on_failure(self, exception: BaseException):
        async with self._lock:
            self._total_failures += 1
            self._last_failure_time = datetime.now(timezone.utc)
            self._failure_count += 1
            self._success_count = 0

            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                self._set_state(CircuitState.OPEN)
                self._opened_at = self._clock()
                logger.warning("circuit_breaker_reopened", name=self.name, exception=str(exception))
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._set_state(CircuitState.OPEN)
                self._opened_at = self._clock()
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failure_count=self._failure_count,
                    exception=str(exception),
                )

    async def _release_probe(self):
        async with self._lock:
            self._probe_in_flight = False

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function with circuit breaker protection
        """
        await self._before_call()

        try:
            result = await self._execute_with_timeout(func, *args, **kwargs)
        except self.config.expected_exception as e:
            await self._on_failure(e)
            raise
        except BaseException:
            # Unexpected exceptions don't count as failures
            await self._release_probe()
            raise

        await self._on_success()
        return result

    async def _execute_with_timeout(self, func: Callable, *args, **kwargs) -> Any:
        if self.config.timeout is None:
            return await func(*args, **kwargs)
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            raise CircuitBreakerTimeoutError(f"Function timed out after {self.config.timeout}s")

    def snapshot(self) -> Dict[str, Any]:
        """Current phase and counters for diagnostics"""
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
        }

    async def get_stats(self) -> CircuitBreakerStats:
        """Get current circuit breaker statistics"""
        return CircuitBreakerStats(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            last_failure_time=self._last_failure_time,
            last_success_time=self._last_success_time,
            total_requests=self._total_requests,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
            next_attempt_time=self._next_attempt_time(),
        )

    async def reset(self):
        """Reset circuit breaker to closed state (admin function)"""
        async with self._lock:
            self._set_state(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
            self._probe_in_flight = False
        logger.info("circuit_breaker_reset", name=self.name)
