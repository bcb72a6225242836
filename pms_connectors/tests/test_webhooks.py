"""
Tests for webhook signing, decoding and event tables
"""

import hashlib
import hmac
import re

import pytest

from ..contracts import ValidationError
from ..webhooks import (
    EventMap,
    compute_signature,
    decode_body,
    generate_signing_secret,
    get_header,
    serialize_body,
    utc_now_iso,
    verify_signature,
    verify_webhook_request,
)

SECRET = "whsec_test"


def sign(raw: bytes) -> str:
    return hmac.new(SECRET.encode(), raw, hashlib.sha256).hexdigest()


class TestSigningSecret:
    def test_secret_is_256_bit_hex(self):
        secret = generate_signing_secret()
        assert re.fullmatch(r"[0-9a-f]{64}", secret)

    def test_secrets_are_unique(self):
        assert generate_signing_secret() != generate_signing_secret()


class TestSignatures:
    def test_mapping_serialized_compactly(self):
        assert serialize_body({"a": 1, "b": "x"}) == b'{"a":1,"b":"x"}'

    @pytest.mark.parametrize(
        "payload", [b'{"a":1,"b":"x"}', '{"a":1,"b":"x"}', {"a": 1, "b": "x"}]
    )
    def test_signature_over_raw_bytes(self, payload):
        assert compute_signature(payload, SECRET) == sign(b'{"a":1,"b":"x"}')

    def test_verify_round_trip(self):
        body = b'{"event":"reservation.created"}'
        assert verify_signature(body, sign(body), SECRET)

    def test_verify_accepts_uppercase_hex(self):
        body = b"{}"
        assert verify_signature(body, sign(body).upper(), SECRET)

    @pytest.mark.parametrize(
        "signature,secret",
        [("deadbeef", SECRET), (None, SECRET), ("", SECRET), ("abc", None), ("abc", "")],
    )
    def test_verify_rejects(self, signature, secret):
        assert verify_signature(b"{}", signature, secret) is False

    def test_verify_tampered_body(self):
        assert not verify_signature(b'{"amount":2}', sign(b'{"amount":1}'), SECRET)

    def test_unserializable_payload(self):
        assert verify_signature({"x": object()}, "abc", SECRET) is False

    def test_verify_request_uses_named_header(self):
        body = b'{"id":1}'
        headers = {"x-vendor-signature": sign(body)}

        assert verify_webhook_request(headers, body, SECRET, "X-Vendor-Signature")
        assert not verify_webhook_request({}, body, SECRET, "X-Vendor-Signature")


class TestDecoding:
    def test_get_header_case_insensitive(self):
        assert get_header({"Content-Type": "application/json"}, "content-type") == "application/json"
        assert get_header(None, "x") is None
        assert get_header({}, "x") is None

    @pytest.mark.parametrize("body", [b'{"a":1}', '{"a":1}', {"a": 1}])
    def test_decode_body(self, body):
        assert decode_body(body) == {"a": 1}

    @pytest.mark.parametrize("body", [b"not json", "", "[1, 2]", b"\xff\xfe"])
    def test_decode_invalid(self, body):
        with pytest.raises(ValidationError) as exc_info:
            decode_body(body, vendor="testvendor")
        assert exc_info.value.operation == "parse_webhook_payload"

    def test_utc_now_iso_format(self):
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", utc_now_iso())


class TestEventMap:
    @pytest.fixture
    def events(self):
        return EventMap(
            {
                "booking.new": "reservation.created",
                "booking.cancel": "reservation.cancelled",
            }
        )

    def test_both_directions(self, events):
        assert events.to_canonical("booking.new") == "reservation.created"
        assert events.to_vendor("reservation.cancelled") == "booking.cancel"

    def test_unknown_names_pass_through(self, events):
        assert events.to_canonical("booking.other") == "booking.other"
        assert events.to_vendor("folio.updated") == "folio.updated"
        assert events.to_canonical(None) is None

    def test_vendor_list(self, events):
        assert events.to_vendor_list(["reservation.created", "folio.updated"]) == [
            "booking.new",
            "folio.updated",
        ]

    def test_duplicate_canonical_rejected(self):
        with pytest.raises(ValueError):
            EventMap({"a": "reservation.created", "b": "reservation.created"})

    def test_tables_are_read_only(self, events):
        with pytest.raises(TypeError):
            events.vendor_to_canonical["x"] = "y"
