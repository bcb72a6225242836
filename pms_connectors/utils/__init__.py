"""
Utility modules for PMS Connectors
"""

from .pii_redactor import (
    PIIRedactor,
    get_default_redactor,
    redact_pii,
    redact_event_dict,
)

from .logging import (
    ConnectorLogger,
    configure_logging,
    get_logger,
    get_correlation_id,
    log_performance,
    sanitize_url,
    with_correlation_id,
)

__all__ = [
    # PII Redaction
    "PIIRedactor",
    "get_default_redactor",
    "redact_pii",
    "redact_event_dict",
    # Logging
    "ConnectorLogger",
    "configure_logging",
    "get_logger",
    "get_correlation_id",
    "log_performance",
    "sanitize_url",
    "with_correlation_id",
]
