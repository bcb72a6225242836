"""
Tests for PII redaction in logs
"""

import pytest

from ..normalizers import REDACTED
from ..utils.pii_redactor import PIIRedactor, redact_event_dict, redact_pii


@pytest.fixture
def redactor():
    return PIIRedactor()


class TestRedactText:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Contact john.doe@example.com today", "Contact <EMAIL> today"),
            ("Card 4111 1111 1111 1111 declined", "Card <CREDIT_CARD> declined"),
            ("SSN 123-45-6789 on file", "SSN <SSN> on file"),
            ("Call +1 555 123 4567", "Call <PHONE>"),
            ("See confirmation #ABC12345", "See confirmation #<CONFIRMATION>"),
            ("Gold member #WOH12345678", "Gold member #<LOYALTY_ID>"),
        ],
    )
    def test_patterns(self, redactor, text, expected):
        assert redactor.redact_text(text) == expected

    def test_custom_patterns_can_be_disabled(self):
        redactor = PIIRedactor(enable_custom_patterns=False)
        assert redactor.redact_text("confirmation #ABC12345") == "confirmation #ABC12345"

    def test_empty_text(self, redactor):
        assert redactor.redact_text("") == ""

    def test_convenience_function(self):
        assert redact_pii("mail me at a.b@example.org") == "mail me at <EMAIL>"


class TestRedactDict:
    def test_fields_and_free_text(self, redactor):
        data = {
            "email": "a@b.com",
            "notes": "call +44 20 7946 0958",
            "guest": {"passport": "X1234567", "room": "101"},
        }

        result = redactor.redact_dict(data)

        assert result == {
            "email": "***.com",
            "notes": "call <PHONE>",
            "guest": {"passport": REDACTED, "room": "101"},
        }

    def test_extra_sensitive_keys(self, redactor):
        result = redactor.redact_dict({"room": "101", "nested": {"room": "102"}}, ["room"])
        assert result == {"room": REDACTED, "nested": {"room": REDACTED}}


class TestStructlogProcessor:
    def test_event_dict_redacted(self):
        event_dict = {
            "event": "guest_updated",
            "level": "info",
            "email": "john@example.com",
            "token": "abc",
            "detail": "ssn 123-45-6789",
            "payload": {"password": "hunter2"},
            "items": [{"cvv": "123"}],
            "count": 3,
        }

        result = redact_event_dict(None, "info", event_dict)

        assert result == {
            "event": "guest_updated",
            "level": "info",
            "email": "***.com",
            "token": REDACTED,
            "detail": "ssn <SSN>",
            "payload": {"password": REDACTED},
            "items": [{"cvv": REDACTED}],
            "count": 3,
        }
