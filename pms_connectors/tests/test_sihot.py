"""
Tests for the SIHOT connector
"""

import pytest
import pytest_asyncio

from ..adapters.sihot.connector import SihotConnector
from ..contracts import AuthenticationError, ReservationSearch, RateQuery
from ..webhooks import compute_signature
from .fixtures import json_body, url_for

BASE = "https://sihot.test"
CONFIG = {"api_key": "sk-test", "hotel_id": "H100", "base_url": BASE}

SIHOT_RESERVATION = {
    "ConfirmationNo": "SH-1001",
    "ReservationId": "R-1",
    "Status": "INHOUSE",
    "Gast": {
        "GastNr": "G-7",
        "Vorname": "Jonas",
        "Nachname": "Becker",
        "Email": "jonas@example.de",
        "Telefon": "+49 30 1234567",
    },
    "Zimmer": {"Zimmernummer": "305", "Kategorie": "DZ"},
    "RatePlan": {"RateCode": "FLEX", "Description": "Flexible"},
    "Payment": {"CardType": "MC", "CardLast4": "4444", "AuthCode": "Z9"},
    "Anreise": "2024-06-10",
    "Abreise": "2024-06-12",
    "Gesamtbetrag": "1.234,50",
    "Buchungsquelle": "DIRECT",
}


@pytest_asyncio.fixture
async def connector(settings, httpx_mock):
    connector = SihotConnector(dict(CONFIG), settings)
    httpx_mock.add_response(url=url_for(BASE, "/api/v1/hotel/status"), json={"Status": "OK"})
    await connector.authenticate()
    yield connector
    await connector.close()


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_api_key_headers(self, connector, httpx_mock):
        request = httpx_mock.get_requests()[0]
        assert request.headers["X-SIHOT-ApiKey"] == "sk-test"
        assert request.headers["X-Hotel-Number"] == "H100"
        assert request.url.params["HN"] == "H100"

    @pytest.mark.asyncio
    async def test_rejected_key(self, settings, httpx_mock):
        connector = SihotConnector(dict(CONFIG), settings)
        httpx_mock.add_response(url=url_for(BASE, "/api/v1/hotel/status"), status_code=401)

        with pytest.raises(AuthenticationError) as exc_info:
            await connector.authenticate()

        assert "SIHOT authentication failed" in str(exc_info.value)
        await connector.close()


class TestReservations:
    @pytest.mark.asyncio
    async def test_get_reservation(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v1/reservations"), json={"Reservations": [SIHOT_RESERVATION]}
        )

        reservation = await connector.get_reservation("SH-1001")

        assert reservation.confirmation_number == "SH-1001"
        assert reservation.pms_reservation_id == "R-1"
        assert reservation.status == "checked_in"
        assert reservation.guest_profile_id == "G-7"
        assert reservation.guest_name.full_name == "Jonas Becker"
        assert reservation.phone == "+49301234567"
        assert reservation.room_number == "305"
        assert reservation.room_type == "DZ"
        assert reservation.rate_code == "FLEX"
        assert reservation.total_amount == 1234.5
        assert reservation.currency == "EUR"
        assert reservation.number_of_nights == 2
        assert reservation.payment_method.card_brand == "Mastercard"
        assert reservation.payment_method.card_last_four == "4444"
        assert reservation.booking_source == "DIRECT"
        assert reservation.pms_raw["Gast"]["Email"] == "***e.de"

        params = httpx_mock.get_requests()[-1].url.params
        assert params["ConfirmationNo"] == "SH-1001"
        assert params["Limit"] == "1"

    @pytest.mark.asyncio
    async def test_not_found(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v1/reservations"), status_code=404)

        assert await connector.get_reservation("missing") is None

    @pytest.mark.asyncio
    async def test_empty_result(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v1/reservations"), json={"Reservations": []})

        assert await connector.get_reservation("missing") is None

    @pytest.mark.asyncio
    async def test_search(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v1/reservations"), json={"data": [SIHOT_RESERVATION]}
        )

        results = await connector.search_reservations(
            ReservationSearch(guest_name="Becker", status="cancelled", card_last_four="4444", limit=25)
        )

        assert [r.confirmation_number for r in results] == ["SH-1001"]
        params = httpx_mock.get_requests()[-1].url.params
        assert params["GuestName"] == "Becker"
        assert params["Status"] == "CANCELLED"
        assert params["CardLast4"] == "4444"
        assert params["Limit"] == "25"
        assert "ConfirmationNo" not in params


class TestFolioAndProfile:
    @pytest.mark.asyncio
    async def test_folio(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v1/reservations/R-1/folios"),
            json={
                "Konten": [
                    {
                        "KontoNr": "K1",
                        "FensterNr": 2,
                        "Buchungen": [
                            {
                                "BuchungsNr": "B1",
                                "Buchungscode": "LOGIS",
                                "Kategorie": "ROOM",
                                "Bezeichnung": "Logis",
                                "Betrag": "150,00",
                                "Buchungsdatum": "2024-06-10",
                                "Storno": True,
                            }
                        ],
                    }
                ]
            },
        )

        items = await connector.get_guest_folio("R-1")

        assert len(items) == 1
        item = items[0]
        assert (item.folio_id, item.folio_window_number) == ("K1", 2)
        assert item.transaction_id == "B1"
        assert item.category == "room"
        assert item.amount == 150.0
        assert item.currency == "EUR"
        assert item.post_date == "2024-06-10T00:00:00.000Z"
        assert item.reversal_flag is True

    @pytest.mark.asyncio
    async def test_profile(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v1/guests/G-7"),
            json={
                "Guest": {
                    "GuestId": "G-7",
                    "FirstName": "Jonas",
                    "LastName": "Becker",
                    "VipStatus": "V1",
                    "Bonusnummer": "B-77",
                    "AnzahlAufenthalte": "5",
                    "Gesamtumsatz": "2.500,00",
                }
            },
        )

        profile = await connector.get_guest_profile("G-7")

        assert profile.guest_id == "G-7"
        assert profile.name.full_name == "Jonas Becker"
        assert profile.vip_code == "V1"
        assert profile.loyalty_number == "B-77"
        assert profile.total_stays == 5
        assert profile.total_revenue == 2500.0

    @pytest.mark.asyncio
    async def test_profile_not_found(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v1/guests/G-0"), status_code=404)

        assert await connector.get_guest_profile("G-0") is None

    @pytest.mark.asyncio
    async def test_rates(self, connector, httpx_mock):
        httpx_mock.add_response(
            url=url_for(BASE, "/api/v1/rates"),
            json={"RatePlans": [{"RateCode": "FLEX", "RatePlanName": "Flexible", "Grundpreis": "120,00", "Active": False}]},
        )

        rates = await connector.get_rates(RateQuery(start_date="2024-06-01"))

        assert rates[0].rate_code == "FLEX"
        assert rates[0].base_amount == 120.0
        assert rates[0].currency == "EUR"
        assert rates[0].is_active is False
        params = httpx_mock.get_requests()[-1].url.params
        assert params["HN"] == "H100"
        assert params["startDate"] == "2024-06-01"


class TestWrites:
    @pytest.mark.asyncio
    async def test_push_note(self, connector, httpx_mock, note):
        httpx_mock.add_response(
            method="POST", url=f"{BASE}/api/v1/guests/G-7/notes", json={"NoteId": "N-1"}
        )

        receipt = await connector.push_note("G-7", note)

        assert receipt.note_id == "N-1"
        assert receipt.pms_type == "sihot"
        assert receipt.success is True
        body = json_body(httpx_mock.get_requests()[-1])
        assert body["NoteType"] == "CHARGEBACK"
        assert body["Priority"] == "HIGH"
        assert body["Text"] == "[CHARGEBACK] Chargeback history\n\nGuest disputed a previous stay"

    @pytest.mark.asyncio
    async def test_push_flag(self, connector, httpx_mock, guest_flag):
        httpx_mock.add_response(
            method="POST", url=f"{BASE}/api/v1/guests/G-7/alerts", json={"AlertId": "A-1"}
        )

        receipt = await connector.push_flag("G-7", guest_flag)

        assert receipt.flag_id == "A-1"
        assert receipt.severity == "high"
        body = json_body(httpx_mock.get_requests()[-1])
        assert body["Subject"] == "ChargeGuard Flag: HIGH"
        assert body["Message"] == (
            "CHARGEBACK ALERT: Repeated friendly fraud | Amount: $450 | Case: CB-2024-0042"
        )

    @pytest.mark.asyncio
    async def test_push_chargeback_alert(self, connector, httpx_mock, chargeback_alert):
        httpx_mock.add_response(
            method="POST", url=f"{BASE}/api/v1/reservations/R-1/notes", json={"NoteId": "N-2"}
        )

        receipt = await connector.push_chargeback_alert("R-1", chargeback_alert)

        assert receipt.comment_id == "N-2"
        assert receipt.case_number == "CB-2024-0042"
        body = json_body(httpx_mock.get_requests()[-1])
        assert body["Subject"] == "Chargeback Alert - Case CB-2024-0042"
        assert "Reason Code: 13.1" in body["Text"]

    @pytest.mark.asyncio
    async def test_push_dispute_won(self, connector, httpx_mock, dispute_won):
        httpx_mock.add_response(
            method="POST", url=f"{BASE}/api/v1/reservations/R-1/notes", json={"NoteId": "N-3"}
        )

        receipt = await connector.push_dispute_outcome("R-1", dispute_won)

        assert receipt.outcome == "WON"
        body = json_body(httpx_mock.get_requests()[-1])
        assert body["NoteType"] == "INFO"
        assert body["Priority"] == "MEDIUM"
        assert "Amount: $450 (recovered)" in body["Text"]


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_register_and_deregister(self, connector, httpx_mock, webhook_request):
        httpx_mock.add_response(
            method="POST", url=f"{BASE}/api/v1/webhooks", json={"WebhookId": "WH-9"}
        )
        httpx_mock.add_response(method="DELETE", url=f"{BASE}/api/v1/webhooks/WH-9", status_code=204)

        registration = await connector.register_webhook(webhook_request)
        await connector.deregister_webhook("WH-9")

        assert registration.webhook_id == "WH-9"
        assert registration.events == webhook_request.events
        body = json_body(httpx_mock.get_requests()[-2])
        assert body["Events"] == ["RESERVATION_CREATE", "RESERVATION_CANCEL", "POSTING_CREATE"]
        assert body["SigningSecret"] == registration.secret
        assert body["HotelNumber"] == "H100"

    def test_parse_payload(self, settings):
        connector = SihotConnector(dict(CONFIG), settings)
        event = connector.parse_webhook_payload(
            {},
            b'{"EventType":"RESERVATION_CANCEL","Timestamp":"2024-06-01T08:00:00Z",'
            b'"HotelNumber":"H100","Data":{"ReservationId":"R-1","GuestId":"G-7"}}',
        )

        assert event.event_type == "reservation.cancelled"
        assert event.vendor_event_type == "RESERVATION_CANCEL"
        assert event.timestamp == "2024-06-01T08:00:00.000Z"
        assert (event.reservation_id, event.guest_id, event.property_id) == ("R-1", "G-7", "H100")

    def test_verify_request(self, settings):
        connector = SihotConnector(dict(CONFIG), settings)
        body = b'{"EventType":"GUEST_CHECKIN"}'
        headers = {"x-sihot-signature": compute_signature(body, "secret")}

        assert connector.verify_webhook_request(headers, body, "secret")
        assert not connector.verify_webhook_request(headers, body, "other")


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v1/hotel/status"), json={"Status": "OK"})

        health = await connector.health_check()

        assert health["healthy"] is True
        assert health["details"]["hotel_number"] == "H100"
        assert health["details"]["circuit_breaker"]["state"] == "closed"
        assert health["latency_ms"] >= 0

    @pytest.mark.asyncio
    async def test_unhealthy_never_raises(self, connector, httpx_mock):
        httpx_mock.add_response(url=url_for(BASE, "/api/v1/hotel/status"), status_code=503)

        health = await connector.health_check()

        assert health["healthy"] is False
        assert "error" in health["details"]
