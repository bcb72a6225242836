"""
Resilience primitives shared by every PMS adapter
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpenError,
    CircuitBreakerStats,
    CircuitBreakerTimeoutError,
    CircuitState,
)
from .rate_limiter import RateLimitConfig, RateLimitResult, TokenBucketRateLimiter
from .transport import ResilientTransport, TransportOptions

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpenError",
    "CircuitBreakerStats",
    "CircuitBreakerTimeoutError",
    "CircuitState",
    "RateLimitConfig",
    "RateLimitResult",
    "TokenBucketRateLimiter",
    "ResilientTransport",
    "TransportOptions",
]
