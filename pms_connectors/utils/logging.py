"""
Secure Logging Utilities for PMS Connectors
Structured logging on structlog with automatic PII redaction and correlation IDs
"""

import logging
import sys
import time
import uuid
from functools import wraps
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog

from .pii_redactor import get_default_redactor, redact_event_dict

SENSITIVE_QUERY_PARAMS = frozenset(
    {
        "api_key", "apikey", "key", "token", "secret",
        "password", "pwd", "auth", "authorization",
        "client_secret", "client_id", "access_token",
        "refresh_token", "session", "sid", "clienttoken", "accesstoken",
    }
)


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog for the connector layer

    Args:
        level: Minimum log level name
        json_output: Render JSON lines instead of the console renderer
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_event_dict,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None) -> Any:
    """Get a structlog logger, optionally named"""
    return structlog.get_logger(name) if name else structlog.get_logger()


def with_correlation_id(correlation_id_val: Optional[str] = None) -> str:
    """Bind a correlation ID (generated when absent) to the current context"""
    value = correlation_id_val or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(correlation_id=value)
    return value


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("correlation_id")


class ConnectorLogger:
    """
    Logger for PMS connectors with vendor and property context bound

    Features:
    - Automatic PII redaction of request and response bodies
    - Correlation ID tracking through context variables
    - Standardized API call records
    """

    def __init__(self, name: str, vendor: str, hotel_id: Optional[str] = None):
        self.vendor = vendor
        self.hotel_id = hotel_id
        self._logger = structlog.get_logger(name).bind(vendor=vendor, hotel_id=hotel_id)

    def bind(self, **kwargs) -> "ConnectorLogger":
        bound = ConnectorLogger.__new__(ConnectorLogger)
        bound.vendor = self.vendor
        bound.hotel_id = self.hotel_id
        bound._logger = self._logger.bind(**kwargs)
        return bound

    def with_correlation_id(self, correlation_id_val: Optional[str] = None) -> str:
        return with_correlation_id(correlation_id_val)

    def log_api_call(
        self,
        operation: str,
        request_data: Optional[Dict[str, Any]] = None,
        response_data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        status_code: Optional[int] = None,
        error: Optional[Exception] = None,
    ):
        """Log API call with standardized fields"""
        log_data: Dict[str, Any] = {
            "operation": operation,
            "duration_ms": round(duration_ms, 2) if duration_ms is not None else None,
            "status_code": status_code,
        }

        redactor = get_default_redactor()
        if request_data:
            log_data["request"] = redactor.redact_dict(request_data)
        if response_data:
            log_data["response"] = redactor.redact_dict(response_data)

        if error:
            log_data["error"] = str(error)
            log_data["error_type"] = type(error).__name__
            self._logger.error("api_call_failed", **log_data)
        else:
            self._logger.info("api_call_completed", **log_data)

    def debug(self, msg: str, **kwargs):
        self._logger.debug(msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._logger.info(msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._logger.warning(msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._logger.error(msg, **kwargs)


def log_performance(operation: str):
    """
    Decorator to log duration and outcome of async adapter methods

    Usage:
        @log_performance("get_reservation")
        async def get_reservation(self, ...):
            ...
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            start_time = time.monotonic()
            error = None

            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                error = e
                raise
            finally:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger = getattr(self, "logger", None)
                if isinstance(logger, ConnectorLogger):
                    logger.log_api_call(operation=operation, duration_ms=duration_ms, error=error)

        return wrapper

    return decorator


def sanitize_url(url: str) -> str:
    """
    Sanitize URL for logging by removing sensitive query parameters

    Args:
        url: URL to sanitize

    Returns:
        Sanitized URL safe for logging
    """
    parsed = urlparse(url)
    query_params = parse_qs(parsed.query, keep_blank_values=True)

    sanitized_params = {}
    for param, values in query_params.items():
        if param.lower() in SENSITIVE_QUERY_PARAMS:
            sanitized_params[param] = ["<REDACTED>"]
        else:
            sanitized_params[param] = values

    sanitized_query = urlencode(sanitized_params, doseq=True)
    return urlunparse(
        (
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            sanitized_query,
            parsed.fragment,
        )
    )
