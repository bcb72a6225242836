"""
PII Redaction Utility for ChargeGuard PMS Connectors
Keeps guest and card data out of logs, using the same field tables as
``normalizers.sanitize_pii`` plus regex detection for free text
"""

import re
from typing import Any, Dict, List, Mapping, Optional

from ..normalizers import (
    FULLY_MASKED_FIELDS,
    PARTIALLY_MASKED_FIELDS,
    REDACTED,
    mask_partial,
    sanitize_pii,
)

# structlog keys that never carry guest data
_STRUCTURAL_KEYS = frozenset({"event", "timestamp", "level", "logger", "log_level"})


class PIIRedactor:
    """
    Regex-based PII redactor

    Detects and redacts:
    - Email addresses
    - Card numbers (13-19 digits)
    - Social security numbers
    - International phone numbers
    - Confirmation and loyalty numbers mentioned in text
    """

    PATTERNS = (
        (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "<EMAIL>"),
        (re.compile(r"\b(?:\d[ -]?){12,18}\d\b"), "<CREDIT_CARD>"),
        (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "<SSN>"),
        (re.compile(r"\+\d{1,3}[-.\s]?\(?\d{1,4}\)?(?:[-.\s]?\d{2,4}){2,4}\b"), "<PHONE>"),
    )

    CONFIRMATION_NUMBER_PATTERN = re.compile(
        r"\b(confirmation|conf|booking|res)\s*#\s*([A-Z0-9]{6,12})\b", re.IGNORECASE
    )
    LOYALTY_NUMBER_PATTERN = re.compile(
        r"\b(member|loyalty|woh)\s*#\s*([A-Z0-9]{8,16})\b", re.IGNORECASE
    )

    def __init__(self, enable_custom_patterns: bool = True):
        self.enable_custom = enable_custom_patterns

    def redact_text(self, text: str) -> str:
        """Redact PII from free text"""
        if not text:
            return text

        redacted = text
        for pattern, replacement in self.PATTERNS:
            redacted = pattern.sub(replacement, redacted)

        if self.enable_custom:
            redacted = self.CONFIRMATION_NUMBER_PATTERN.sub(r"\1 #<CONFIRMATION>", redacted)
            redacted = self.LOYALTY_NUMBER_PATTERN.sub(r"\1 #<LOYALTY_ID>", redacted)

        return redacted

    def redact_dict(
        self, data: Mapping[str, Any], sensitive_keys: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Redact PII from a nested mapping

        Args:
            data: Mapping to redact
            sensitive_keys: Additional keys to fully redact

        Returns:
            New dictionary; known PII fields are masked, other strings are
            scanned with the text patterns
        """
        extra = set(sensitive_keys or [])
        return self._redact_value(sanitize_pii(data), extra)

    def _redact_value(self, value: Any, extra: set) -> Any:
        if isinstance(value, Mapping):
            return {
                key: REDACTED if key in extra else self._redact_value(item, extra)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self._redact_value(item, extra) for item in value]
        if isinstance(value, str) and value != REDACTED:
            return self.redact_text(value)
        return value


_default_redactor: Optional[PIIRedactor] = None


def get_default_redactor() -> PIIRedactor:
    """Get or create the default PII redactor instance"""
    global _default_redactor
    if _default_redactor is None:
        _default_redactor = PIIRedactor()
    return _default_redactor


def redact_pii(text: str) -> str:
    """Convenience function to redact PII from text"""
    return get_default_redactor().redact_text(text)


def redact_event_dict(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor masking PII in every bound and call-site field"""
    redactor = get_default_redactor()
    for key, value in list(event_dict.items()):
        if key in _STRUCTURAL_KEYS:
            continue
        if key in FULLY_MASKED_FIELDS:
            event_dict[key] = REDACTED
        elif key in PARTIALLY_MASKED_FIELDS:
            event_dict[key] = mask_partial(value)
        elif isinstance(value, Mapping):
            event_dict[key] = redactor.redact_dict(value)
        elif isinstance(value, list):
            event_dict[key] = redactor._redact_value(sanitize_pii(value), set())
        elif isinstance(value, str):
            event_dict[key] = redactor.redact_text(value)
    return event_dict
