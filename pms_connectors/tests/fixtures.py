"""
Shared test fixtures for connector tests
Uses pytest-httpx for mocking HTTP calls
"""

import json
import re
from typing import Any, Dict
from urllib.parse import parse_qs

import httpx
import pytest

from ..config import HubSettings
from ..contracts import (
    ChargebackAlert,
    DisputeOutcome,
    GuestFlag,
    Note,
    WebhookSubscriptionRequest,
)


def json_body(request: httpx.Request) -> Any:
    """Decoded JSON body of a captured request"""
    return json.loads(request.content)


def form_body(request: httpx.Request) -> Dict[str, str]:
    """Decoded form body of a captured token request"""
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


@pytest.fixture
def settings() -> HubSettings:
    """No retry delays so failure paths run instantly"""
    return HubSettings(
        max_retries=0,
        retry_base_delay=0.0,
        retry_jitter=0.0,
        breaker_failure_threshold=5,
        log_json=False,
    )


@pytest.fixture
def oauth_token_response() -> Dict[str, Any]:
    """Standard OAuth token response"""
    return {
        "access_token": "test-token-123",
        "token_type": "Bearer",
        "expires_in": 3600,
    }


@pytest.fixture
def chargeback_alert() -> ChargebackAlert:
    return ChargebackAlert(
        case_number="CB-2024-0042",
        amount=450.0,
        reason_code="13.1",
        dispute_date="2024-05-10",
        status="OPEN",
    )


@pytest.fixture
def dispute_won() -> DisputeOutcome:
    return DisputeOutcome(
        case_number="CB-2024-0042", outcome="WON", amount=450.0, resolved_date="2024-06-20"
    )


@pytest.fixture
def dispute_lost() -> DisputeOutcome:
    return DisputeOutcome(
        case_number="CB-2024-0042", outcome="LOST", amount=450.0, resolved_date="2024-06-20"
    )


@pytest.fixture
def note() -> Note:
    return Note(
        title="Chargeback history",
        content="Guest disputed a previous stay",
        priority="high",
        category="CHARGEBACK",
    )


@pytest.fixture
def guest_flag() -> GuestFlag:
    return GuestFlag(
        reason="Repeated friendly fraud", severity="high", chargeback_id="CB-2024-0042", amount=450.0
    )


@pytest.fixture
def webhook_request() -> WebhookSubscriptionRequest:
    return WebhookSubscriptionRequest(
        callback_url="https://hooks.chargeguard.test/pms",
        events=["reservation.created", "reservation.cancelled", "payment.received"],
    )


def url_for(base: str, path: str) -> re.Pattern:
    """Match a vendor URL with any query string"""
    return re.compile(re.escape(base + path) + r"(\?.*)?$")
