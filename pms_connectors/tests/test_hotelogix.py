"""
Tests for the Hotelogix connector
"""

import pytest
import pytest_asyncio

from ..adapters.hotelogix.connector import HotelogixConnector
from ..config import HubSettings
from ..contracts import AuthenticationError, RateLimitError, ReservationSearch
from .fixtures import json_body, url_for

BASE = "https://hotelogix.test"
CONFIG = {"api_key": "hlx-key", "hotel_code": "HLX42", "base_url": BASE}

BOOKING = {
    "bookingId": "9001",
    "confirmationNo": "HLX-9001",
    "bookingStatus": "CHECKEDIN",
    "guest": {
        "guestId": "GX-1",
        "firstName": "Priya",
        "lastName": "Shah",
        "email": "priya@example.in",
        "mobile": "9876543210",
    },
    "checkInDate": "2024-08-14",
    "checkOutDate": "2024-08-16",
    "room": {"roomNo": "305", "roomTypeName": "Deluxe"},
    "ratePlan": {"ratePlanCode": "BB", "ratePlanName": "Bed & Breakfast"},
    "totalAmount": "8400",
    "currency": "INR",
    "pax": 2,
    "paymentInfo": {"brand": "RuPay", "last4": "6521"},
    "channel": "Booking.com",
    "createdOn": "2024-07-01T09:30:00+05:30",
}


@pytest_asyncio.fixture
async def connector(settings, httpx_mock):
    connector = HotelogixConnector(dict(CONFIG), settings)
    httpx_mock.add_response(url=url_for(BASE, "/api/v2/hotel/info"), json={"hotelCode": "HLX42"})
    await connector.authenticate()
    yield connector
    await connector.close()


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_key_and_hotel_code_headers(self, connector, httpx_mock):
        request = httpx_mock.get_requests()[0]

        assert request.headers["X-Api-Key"] == "hlx-key"
        assert request.headers["X-Hotel-Code"] == "HLX42"

    @pytest.mark.asyncio
    async def test_forbidden_key(self, settings, httpx_mock):
        connector = HotelogixConnector(dict(CONFIG), settings)
        httpx_mock.add_response(url=url_for(BASE, "/api/v2/hotel/info"), status_code=403)

        with pytest.raises(AuthenticationError, match="Hotelogix authentication failed"):
            await connector.authenticate()
        await connector.close()

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self, settings, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v2/hotel/info"), json={})

        async with HotelogixConnector(dict(CONFIG), settings) as connector:
            transport = connector.transport
            assert transport is not None

        assert transport.closed
        assert connector.transport is None


class TestReservations:
    @pytest.mark.asyncio
    async def test_get_reservation(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v2/bookings"), json={"bookings": [BOOKING]})

        reservation = await connector.get_reservation("HLX-9001")

        assert reservation.confirmation_number == "HLX-9001"
        assert reservation.pms_reservation_id == "9001"
        assert reservation.status == "checked_in"
        assert reservation.phone == "+19876543210"
        assert reservation.room_type == "Deluxe"
        assert reservation.rate_code == "BB"
        assert reservation.total_amount == 8400.0
        assert reservation.currency == "INR"
        assert reservation.number_of_guests == 2
        assert reservation.payment_method.card_last_four == "6521"
        assert reservation.booking_source == "Booking.com"
        assert reservation.created_at == "2024-07-01T04:00:00.000Z"

        params = httpx_mock.get_requests()[-1].url.params
        assert params["confirmationNo"] == "HLX-9001"
        assert params["hotelCode"] == "HLX42"

    @pytest.mark.asyncio
    async def test_search_translates_status(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v2/bookings"), json={"data": [BOOKING]})

        results = await connector.search_reservations(
            ReservationSearch(status="no_show", check_in_date="2024-08-01")
        )

        assert [r.confirmation_number for r in results] == ["HLX-9001"]
        params = httpx_mock.get_requests()[-1].url.params
        assert params["bookingStatus"] == "NOSHOW"
        assert params["checkInFrom"] == "2024-08-01"

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_succeeds(self, httpx_mock):
        settings = HubSettings(max_retries=1, retry_base_delay=0.0, retry_jitter=0.0, log_json=False)
        connector = HotelogixConnector(dict(CONFIG), settings)
        httpx_mock.add_response(url=url_for(BASE, "/api/v2/hotel/info"), json={})
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v2/bookings"), status_code=429, headers={"Retry-After": "0"}
        )
        httpx_mock.add_response(url=url_for(BASE, "/api/v2/bookings"), json={"bookings": []})

        await connector.authenticate()
        assert await connector.search_reservations(ReservationSearch()) == []
        await connector.close()

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v2/bookings"), status_code=429, headers={"Retry-After": "7"}
        )

        with pytest.raises(RateLimitError) as exc_info:
            await connector.search_reservations(ReservationSearch())

        assert exc_info.value.retry_after == 7.0


class TestFolioAndProfile:
    @pytest.mark.asyncio
    async def test_folio_reversal_and_quantity(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v2/bookings/9001/folio"),
            json={
                "folioList": [
                    {
                        "folioId": "FL-1",
                        "windowNo": "1",
                        "charges": [
                            {
                                "id": "C1",
                                "chargeCode": "MINIBAR",
                                "chargeName": "Minibar",
                                "amount": 350,
                                "quantity": "2",
                                "isReversal": "Y",
                            }
                        ],
                    }
                ]
            },
        )

        items = await connector.get_guest_folio("9001")

        assert items[0].transaction_code == "MINIBAR"
        assert items[0].description == "Minibar"
        assert items[0].quantity == 2.0
        assert items[0].reversal_flag is True
        assert items[0].folio_window_number == 1

    @pytest.mark.asyncio
    async def test_profile(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v2/guests/GX-1"),
            json={
                "profile": {
                    "id": "GX-1",
                    "firstName": "Priya",
                    "lastName": "Shah",
                    "emailAddress": "priya@example.in",
                    "vipStatus": "GOLD",
                    "membershipTier": "Silver",
                    "stayCount": 4,
                    "lifetimeValue": "33600.00",
                    "dob": "1990-02-11",
                }
            },
        )

        profile = await connector.get_guest_profile("GX-1")

        assert profile.name.full_name == "Priya Shah"
        assert profile.vip_code == "GOLD"
        assert profile.loyalty_level == "Silver"
        assert profile.total_stays == 4
        assert profile.total_revenue == 33600.0
        assert profile.date_of_birth == "1990-02-11T00:00:00.000Z"
        assert profile.pms_raw["emailAddress"] != "priya@example.in"


class TestWrites:
    @pytest.mark.asyncio
    async def test_note_and_flag(self, connector, httpx_mock, note, guest_flag):
        httpx_mock.add_response(method="POST", url=f"{BASE}/api/v2/guests/GX-1/notes", json={"id": 11})
        httpx_mock.add_response(method="POST", url=f"{BASE}/api/v2/guests/GX-1/alerts", json={"alertId": "A7"})

        note_receipt = await connector.push_note("GX-1", note)
        flag_receipt = await connector.push_flag("GX-1", guest_flag)

        assert note_receipt.note_id == "11"
        assert flag_receipt.flag_id == "A7"
        note_body = json_body(httpx_mock.get_requests()[-2])
        assert note_body["hotelCode"] == "HLX42"
        assert note_body["content"].startswith("[CHARGEBACK] Chargeback history")
        flag_body = json_body(httpx_mock.get_requests()[-1])
        assert flag_body["alertType"] == "chargeback_risk"
        assert flag_body["message"] == (
            "CHARGEBACK ALERT: Repeated friendly fraud | Amount: $450 | Case: CB-2024-0042"
        )

    @pytest.mark.asyncio
    async def test_dispute_lost(self, connector, httpx_mock, dispute_lost):
        httpx_mock.add_response(method="POST", url=f"{BASE}/api/v2/bookings/9001/notes", json={})

        receipt = await connector.push_dispute_outcome("9001", dispute_lost)

        assert receipt.comment_id is None
        assert receipt.outcome == "LOST"
        body = json_body(httpx_mock.get_requests()[-1])
        assert body["noteType"] == "alert"
        assert body["priority"] == "high"


def test_parse_payload(settings):
    connector = HotelogixConnector(dict(CONFIG), settings)

    event = connector.parse_webhook_payload(
        {},
        '{"event": "booking_cancelled", "triggeredAt": 1717228800, "data": {"confirmationNo": "HLX-9001"}}',
    )

    assert event.event_type == "reservation.cancelled"
    assert event.reservation_id == "HLX-9001"
    assert event.timestamp == "2024-06-01T08:00:00.000Z"
    assert event.property_id == "HLX42"
