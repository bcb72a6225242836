"""
Webhook Pipeline Helpers
Signing secrets, HMAC-SHA256 verification, body decoding and the
bidirectional vendor/canonical event tables
"""

import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .contracts import ValidationError, WebhookBody


def generate_signing_secret() -> str:
    """256-bit random secret, hex encoded"""
    return secrets.token_hex(32)


def serialize_body(payload: WebhookBody) -> bytes:
    """Raw bytes the vendor signed; mappings are serialized compactly"""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(payload: WebhookBody, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), serialize_body(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: WebhookBody, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Constant-time HMAC-SHA256 check of a webhook body.

    Returns False rather than raising for a missing signature or secret,
    an unserializable payload, or a mismatch.
    """
    if not signature or not secret:
        return False
    try:
        expected = compute_signature(payload, secret)
        return hmac.compare_digest(expected, signature.strip().lower())
    except (TypeError, ValueError, AttributeError):
        return False


def get_header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup"""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def decode_body(body: WebhookBody, vendor: Optional[str] = None) -> Dict[str, Any]:
    """Decode a webhook body into a mapping"""
    if isinstance(body, Mapping):
        return dict(body)
    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Webhook body is not valid JSON: {e}", vendor=vendor, operation="parse_webhook_payload"
        ) from e
    if not isinstance(data, dict):
        raise ValidationError(
            "Webhook body must be a JSON object", vendor=vendor, operation="parse_webhook_payload"
        )
    return data


def utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class EventMap:
    """
    Bijective vendor <-> canonical event table.

    Names missing from the table pass through unchanged in both directions.
    """

    vendor_to_canonical: Mapping[str, str]
    canonical_to_vendor: Mapping[str, str] = field(init=False)

    def __post_init__(self):
        reverse: Dict[str, str] = {}
        for vendor_event, canonical in self.vendor_to_canonical.items():
            if canonical in reverse:
                raise ValueError(
                    f"Canonical event {canonical!r} mapped from both "
                    f"{reverse[canonical]!r} and {vendor_event!r}"
                )
            reverse[canonical] = vendor_event
        object.__setattr__(
            self, "vendor_to_canonical", MappingProxyType(dict(self.vendor_to_canonical))
        )
        object.__setattr__(self, "canonical_to_vendor", MappingProxyType(reverse))

    def to_canonical(self, vendor_event: Optional[str]) -> Optional[str]:
        if vendor_event is None:
            return None
        return self.vendor_to_canonical.get(vendor_event, vendor_event)

    def to_vendor(self, canonical_event: str) -> str:
        return self.canonical_to_vendor.get(canonical_event, canonical_event)

    def to_vendor_list(self, canonical_events: Iterable[str]) -> List[str]:
        return [self.to_vendor(event) for event in canonical_events]


def verify_webhook_request(
    headers: Mapping[str, str], body: WebhookBody, secret: str, signature_header: str
) -> bool:
    """Verify a request using the signature carried in ``signature_header``"""
    return verify_signature(body, get_header(headers, signature_header), secret)
