"""
Resilient HTTP Transport for PMS Vendors
httpx client with header injection, token bucket rate limiting, circuit
breaker and tenacity retry with Retry-After support
"""

import random
import time
from dataclasses import dataclass, field, fields, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..config import HubSettings, get_settings
from ..contracts import (
    AuthenticationError,
    NotFoundError,
    PMSError,
    RateLimitError,
    ServiceUnavailableError,
    TransientError,
    ValidationError,
)
from ..utils.logging import ConnectorLogger, sanitize_url
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpenError
from .rate_limiter import RateLimitConfig, TokenBucketRateLimiter

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": "ChargeGuard-PMS/1.0",
}

# Returns fresh auth headers after re-authenticating
AuthFailureHandler = Callable[[], Awaitable[Mapping[str, str]]]


@dataclass(frozen=True)
class TransportOptions:
    """Per-transport resilience settings"""

    timeout: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_jitter: float = 0.1
    breaker_failure_threshold: int = 5
    breaker_recovery_timeout: float = 30.0
    breaker_success_threshold: int = 1
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_settings(
        cls, settings: Optional[HubSettings] = None, **overrides: Any
    ) -> "TransportOptions":
        """
        Build options from HubSettings, then apply overrides.

        ``rate_limit_capacity``, ``rate_limit_refill_rate`` and
        ``rate_limit_interval`` overrides are folded into ``rate_limit``.
        """
        settings = settings or get_settings()
        rate_limit = RateLimitConfig(
            capacity=overrides.pop("rate_limit_capacity", settings.rate_limit_capacity),
            refill_rate=overrides.pop("rate_limit_refill_rate", settings.rate_limit_refill_rate),
            interval=overrides.pop("rate_limit_interval", settings.rate_limit_interval),
        )
        options = cls(
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay,
            retry_jitter=settings.retry_jitter,
            breaker_failure_threshold=settings.breaker_failure_threshold,
            breaker_recovery_timeout=settings.breaker_recovery_timeout,
            breaker_success_threshold=settings.breaker_success_threshold,
            rate_limit=rate_limit,
        )
        known = {f.name for f in fields(cls)}
        return replace(options, **{k: v for k, v in overrides.items() if k in known})


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ResilientTransport:
    """
    Authenticated HTTP client for one vendor credential set.

    Every attempt takes a rate limiter token and runs through the circuit
    breaker. 429, 500, 502, 503, 504 and network failures are retried up to
    ``max_retries`` times; an open breaker is never retried. A 401 triggers
    ``on_auth_failure`` once per request, without consuming a retry.
    """

    def __init__(
        self,
        vendor: str,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[TransportOptions] = None,
        on_auth_failure: Optional[AuthFailureHandler] = None,
        hotel_id: Optional[str] = None,
    ):
        self.vendor = vendor
        self.base_url = base_url
        self.options = options or TransportOptions.from_settings()
        self._on_auth_failure = on_auth_failure
        self.logger = ConnectorLogger(
            name="pms_connectors.transport", vendor=vendor, hotel_id=hotel_id
        )

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={**DEFAULT_HEADERS, **(headers or {})},
            timeout=httpx.Timeout(self.options.timeout),
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=25,
                keepalive_expiry=30.0,
            ),
        )

        self.breaker = CircuitBreaker(
            CircuitBreakerConfig(
                name=f"{vendor}_api",
                failure_threshold=self.options.breaker_failure_threshold,
                recovery_timeout=self.options.breaker_recovery_timeout,
                success_threshold=self.options.breaker_success_threshold,
                expected_exception=(TransientError, RateLimitError),
            )
        )
        self.limiter = TokenBucketRateLimiter(self.options.rate_limit, name=vendor)

        self._in_flight = 0
        self._retired = False
        self._closed = False

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._client.headers)

    @property
    def closed(self) -> bool:
        return self._closed

    def state(self) -> Dict[str, Any]:
        """Breaker and limiter state for diagnostics"""
        return {
            "circuit_breaker": self.breaker.snapshot(),
            "rate_limiter": self.limiter.snapshot(),
        }

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        operation: Optional[str] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (None when empty).

        Raises:
            AuthenticationError: 401/403 after any refresh attempt
            NotFoundError: 404
            ValidationError: 400/422
            RateLimitError: 429 after retries are exhausted
            TransientError: 5xx, network error or timeout after retries
            ServiceUnavailableError: circuit breaker is open
        """
        if self._closed:
            raise PMSError("Transport is closed", vendor=self.vendor, operation=operation)

        request_kwargs: Dict[str, Any] = {"headers": dict(headers or {})}
        if params:
            request_kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if json is not None:
            request_kwargs["json"] = json

        self._in_flight += 1
        try:
            return await self._request_with_retry(
                method, path, request_kwargs, operation or f"{method} {path}"
            )
        finally:
            self._in_flight -= 1
            if self._retired and self._in_flight == 0:
                await self.aclose()

    async def _request_with_retry(
        self, method: str, path: str, request_kwargs: Dict[str, Any], operation: str
    ) -> Any:
        auth_refreshed = False
        result = None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.options.max_retries + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type((TransientError, RateLimitError)),
            before_sleep=self._log_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                response = await self._attempt(method, path, request_kwargs, operation)

                if (
                    response.status_code == 401
                    and self._on_auth_failure is not None
                    and not auth_refreshed
                ):
                    auth_refreshed = True
                    response = await self._refresh_and_resend(
                        response, method, path, request_kwargs, operation
                    )

                result = self._handle_response(response, operation)

        return result

    async def _refresh_and_resend(
        self,
        response: httpx.Response,
        method: str,
        path: str,
        request_kwargs: Dict[str, Any],
        operation: str,
    ) -> httpx.Response:
        self.logger.info("auth_refresh_on_401", operation=operation)
        try:
            new_headers = await self._on_auth_failure()
        except Exception as e:
            self.logger.warning("auth_refresh_failed", operation=operation, error=str(e))
            raise self._error_for(response, operation) from e

        self._client.headers.update(new_headers)
        request_kwargs["headers"].update(new_headers)
        return await self._attempt(method, path, request_kwargs, operation)

    async def _attempt(
        self, method: str, path: str, request_kwargs: Dict[str, Any], operation: str
    ) -> httpx.Response:
        try:
            return await self.breaker.call(self._send, method, path, request_kwargs, operation)
        except CircuitBreakerOpenError as e:
            self.logger.error(
                "circuit_breaker_open",
                operation=operation,
                circuit_name=e.circuit_name,
                next_attempt=e.next_attempt_time,
            )
            raise ServiceUnavailableError(
                f"{self.vendor} API unavailable: {e}", vendor=self.vendor, operation=operation
            ) from e

    async def _send(
        self, method: str, path: str, request_kwargs: Dict[str, Any], operation: str
    ) -> httpx.Response:
        # only reached once the breaker admits the call
        await self.limiter.acquire()
        start_time = time.monotonic()
        try:
            response = await self._client.request(method, path, **request_kwargs)
        except httpx.TimeoutException as e:
            self.logger.log_api_call(
                operation=operation, duration_ms=(time.monotonic() - start_time) * 1000, error=e
            )
            raise TransientError(
                f"Request timed out: {sanitize_url(path)}", vendor=self.vendor, operation=operation
            ) from e
        except httpx.TransportError as e:
            self.logger.log_api_call(
                operation=operation, duration_ms=(time.monotonic() - start_time) * 1000, error=e
            )
            raise TransientError(
                f"Network error: {e}", vendor=self.vendor, operation=operation
            ) from e

        self.logger.log_api_call(
            operation=operation,
            duration_ms=(time.monotonic() - start_time) * 1000,
            status_code=response.status_code,
        )

        if response.status_code == 429:
            retry_after = _retry_after_seconds(response)
            raise RateLimitError(
                "Rate limit exceeded"
                + (f", retry after {retry_after}s" if retry_after is not None else ""),
                retry_after=retry_after,
                vendor=self.vendor,
                operation=operation,
                status_code=429,
            )
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientError(
                f"Server error {response.status_code}",
                vendor=self.vendor,
                operation=operation,
                status_code=response.status_code,
            )
        return response

    def _error_for(self, response: httpx.Response, operation: str) -> PMSError:
        status = response.status_code
        detail = response.text[:500]
        kwargs = {"vendor": self.vendor, "operation": operation, "status_code": status}
        if status in (401, 403):
            return AuthenticationError(f"Authentication failed ({status})", **kwargs)
        if status == 404:
            return NotFoundError(f"Resource not found: {response.request.url.path}", **kwargs)
        if status in (400, 422):
            return ValidationError(f"Validation error: {detail}", **kwargs)
        return PMSError(f"API error {status}: {detail}", **kwargs)

    def _handle_response(self, response: httpx.Response, operation: str) -> Any:
        if response.status_code >= 400:
            raise self._error_for(response, operation)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _retry_wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            return exc.retry_after
        delay = self.options.retry_base_delay * (2 ** (retry_state.attempt_number - 1))
        return delay + random.uniform(0, delay * self.options.retry_jitter)

    def _log_retry(self, retry_state: RetryCallState):
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            "request_retry",
            attempt=retry_state.attempt_number,
            delay=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(exc),
        )

    async def retire(self):
        """Stop accepting this transport; close it once in-flight calls drain"""
        self._retired = True
        if self._in_flight == 0:
            await self.aclose()

    async def aclose(self):
        if not self._closed:
            self._closed = True
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
