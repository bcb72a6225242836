"""
In-process Token Bucket Rate Limiting
One bucket per transport, sized to the vendor's documented quota
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from ..utils.logging import get_logger

logger = get_logger("pms_connectors.rate_limiter")


@dataclass
class RateLimitConfig:
    """Token bucket configuration: ``refill_rate`` tokens per ``interval`` seconds"""

    capacity: int = 60
    refill_rate: int = 60
    interval: float = 60.0


class RateLimitResult(BaseModel):
    """Rate limiting result"""

    allowed: bool
    remaining: int
    retry_after: Optional[float] = None


class TokenBucketRateLimiter:
    """
    Token bucket that starts full and refills continuously.

    ``acquire()`` waits until a token is available, so callers are slowed
    down rather than rejected.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: Optional[str] = None,
    ):
        self.config = config or RateLimitConfig()
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._tokens = float(self.config.capacity)
        self._last_refill = clock()

    @property
    def tokens_per_second(self) -> float:
        return self.config.refill_rate / self.config.interval

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self):
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(
                float(self.config.capacity), self._tokens + elapsed * self.tokens_per_second
            )
            self._last_refill = now

    def try_acquire(self) -> RateLimitResult:
        """Take a token without waiting"""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return RateLimitResult(allowed=True, remaining=int(self._tokens))

        retry_after = (1 - self._tokens) / self.tokens_per_second
        return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

    async def acquire(self):
        """Wait for and take one token"""
        async with self._lock:
            while True:
                result = self.try_acquire()
                if result.allowed:
                    return
                logger.debug(
                    "rate_limit_wait", name=self.name, retry_after=round(result.retry_after, 3)
                )
                await self._sleep(result.retry_after)

    def snapshot(self) -> Dict[str, float]:
        return {
            "capacity": self.config.capacity,
            "tokens": round(self.tokens, 3),
            "refill_rate": self.config.refill_rate,
            "interval": self.config.interval,
        }
