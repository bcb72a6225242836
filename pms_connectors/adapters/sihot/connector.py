"""
SIHOT PMS Connector for ChargeGuard
Static API key authentication with a hotel number scope
"""

from typing import Any, Dict, List, Mapping

from ...contracts import (
    Capabilities,
    ChargebackAlert,
    DisputeOutcome,
    GuestFlag,
    Note,
    ReservationSearch,
    WebhookSubscriptionRequest,
)
from ...webhooks import EventMap, utc_now_iso
from ..base import (
    SOURCE_NAME,
    RestEndpoints,
    RestVendorAdapter,
    VendorProfile,
    chargeback_alert_text,
    chargeback_alert_title,
    dispute_outcome_text,
    dispute_outcome_title,
    flag_message,
    flag_title,
    note_text,
)
from ..mapping import FolioFields, ProfileFields, RateFields, ReservationFields, first_of

# SIHOT payloads mix PascalCase, camelCase and German field names
SIHOT_PROFILE = VendorProfile(
    vendor="sihot",
    display_name="SIHOT",
    base_url="https://api.sihot.com/v1",
    signature_header="X-SIHOT-Signature",
    events=EventMap(
        {
            "RESERVATION_CREATE": "reservation.created",
            "RESERVATION_MODIFY": "reservation.updated",
            "RESERVATION_CANCEL": "reservation.cancelled",
            "GUEST_CHECKIN": "guest.checked_in",
            "GUEST_CHECKOUT": "guest.checked_out",
            "POSTING_CREATE": "payment.received",
            "FOLIO_UPDATE": "folio.updated",
        }
    ),
    statuses={
        "confirmed": "DEFINITE",
        "checked_in": "INHOUSE",
        "checked_out": "DEPARTED",
        "cancelled": "CANCELLED",
        "no_show": "NOSHOW",
        "pending": "TENTATIVE",
    },
    requests_per_minute=80,
)


class SihotConnector(RestVendorAdapter):
    """SIHOT REST API connector"""

    vendor_name = "sihot"
    profile = SIHOT_PROFILE

    capabilities = {
        Capabilities.RESERVATIONS.value: True,
        Capabilities.FOLIOS.value: True,
        Capabilities.PROFILES.value: True,
        Capabilities.RATES.value: True,
        Capabilities.NOTES.value: True,
        Capabilities.FLAGS.value: True,
        Capabilities.WEBHOOKS.value: True,
        Capabilities.LOYALTY.value: False,
        Capabilities.MULTI_TENANT.value: False,
    }

    endpoints = RestEndpoints(
        reservations="/api/v1/reservations",
        folio="/api/v1/reservations/{id}/folios",
        guest="/api/v1/guests/{id}",
        rates="/api/v1/rates",
        guest_notes="/api/v1/guests/{id}/notes",
        guest_alerts="/api/v1/guests/{id}/alerts",
        reservation_notes="/api/v1/reservations/{id}/notes",
        webhooks="/api/v1/webhooks",
        health="/api/v1/hotel/status",
    )

    reservation_list_paths = ("Reservations", "reservations", "data")

    reservation_fields = ReservationFields(
        scopes={
            "guest": ("Guest", "guest", "Gast"),
            "room": ("Room", "room", "Zimmer"),
            "rate": ("RatePlan", "ratePlan", "Rate"),
            "payment": ("Payment", "payment", "Zahlung"),
        },
        confirmation_number=("ConfirmationNo", "confirmationNo", "Buchungsnummer"),
        reservation_id=("ReservationId", "reservationId", "Id"),
        status=("Status", "status", "ReservationStatus"),
        guest_id=("@guest.GuestId", "@guest.guestId", "@guest.GastNr"),
        first_name=("@guest.FirstName", "@guest.firstName", "@guest.Vorname"),
        last_name=("@guest.LastName", "@guest.lastName", "@guest.Nachname"),
        email=("@guest.Email", "@guest.email"),
        phone=("@guest.Phone", "@guest.phone", "@guest.Telefon"),
        address=("@guest.Address", "@guest.address", "@guest.Adresse"),
        check_in=("ArrivalDate", "arrivalDate", "Anreise"),
        check_out=("DepartureDate", "departureDate", "Abreise"),
        room_number=("@room.RoomNumber", "@room.roomNumber", "@room.Zimmernummer"),
        room_type=("@room.RoomType", "@room.roomType", "@room.Zimmertyp", "@room.Kategorie"),
        rate_code=("@rate.RateCode", "@rate.rateCode", "@rate.Ratencode"),
        rate_description=("@rate.Description", "@rate.description", "@rate.Bezeichnung"),
        total_amount=("TotalAmount", "totalAmount", "Gesamtbetrag"),
        currency=("CurrencyCode", "currencyCode", "Waehrung"),
        number_of_guests=("NumberOfGuests", "numberOfGuests", "Gaestezahl"),
        card_brand=("@payment.CardType", "@payment.cardType", "@payment.Kartentyp"),
        card_last_four=("@payment.CardLast4", "@payment.cardLast4", "@payment.KartenNr4"),
        auth_code=("@payment.AuthCode", "@payment.authCode"),
        booking_source=("Source", "source", "Buchungsquelle"),
        created_at=("CreatedAt", "createdAt", "Erstellungsdatum"),
        updated_at=("UpdatedAt", "updatedAt", "Aenderungsdatum"),
        special_requests=("SpecialRequests", "specialRequests", "Sonderwuensche"),
        loyalty_number=("LoyaltyNumber", "loyaltyNumber", "Bonusnummer"),
        default_currency="EUR",
    )

    folio_fields = FolioFields(
        folios=("Folios", "folios", "Konten", "data"),
        items=("Postings", "postings", "Buchungen"),
        folio_id=("@folio.FolioId", "@folio.folioId", "@folio.KontoNr"),
        window_number=("@folio.WindowNumber", "@folio.windowNumber", "@folio.FensterNr"),
        transaction_id=("TransactionId", "transactionId", "BuchungsNr"),
        transaction_code=("TransactionCode", "transactionCode", "Buchungscode"),
        category=("Category", "category", "Kategorie", "TransactionCode"),
        description=("Description", "description", "Bezeichnung"),
        amount=("Amount", "amount", "Betrag"),
        currency=("CurrencyCode", "currencyCode", "Waehrung"),
        post_date=("PostDate", "postDate", "Buchungsdatum"),
        card_last_four=("CardLast4", "cardLast4"),
        auth_code=("AuthCode", "authCode"),
        reference=("Reference", "reference", "Referenz"),
        reversal=("IsReversal", "isReversal", "Storno"),
        quantity=("Quantity", "quantity", "Menge"),
        default_currency="EUR",
    )

    profile_fields = ProfileFields(
        root=("Guest", "guest", "Gast"),
        guest_id=("GuestId", "guestId", "GastNr"),
        first_name=("FirstName", "firstName", "Vorname"),
        last_name=("LastName", "lastName", "Nachname"),
        email=("Email", "email"),
        phone=("Phone", "phone", "Telefon"),
        address=("Address", "address", "Adresse"),
        vip_code=("VipCode", "vipCode", "VipStatus"),
        loyalty_number=("LoyaltyNumber", "loyaltyNumber", "Bonusnummer"),
        loyalty_level=("LoyaltyLevel", "loyaltyLevel", "BonusStufe"),
        nationality=("Nationality", "nationality", "Nationalitaet"),
        language=("Language", "language", "Sprache"),
        date_of_birth=("DateOfBirth", "dateOfBirth", "Geburtsdatum"),
        company_name=("CompanyName", "companyName", "Firma"),
        total_stays=("TotalStays", "totalStays", "AnzahlAufenthalte"),
        total_revenue=("TotalRevenue", "totalRevenue", "Gesamtumsatz"),
        last_stay_date=("LastStayDate", "lastStayDate", "LetzterAufenthalt"),
        created_at=("CreatedAt", "createdAt", "Erstellungsdatum"),
    )

    rate_fields = RateFields(
        rates=("RatePlans", "ratePlans", "Raten", "data"),
        rate_code=("RateCode", "rateCode", "Ratencode"),
        name=("RatePlanName", "name", "Bezeichnung"),
        description=("Description", "description", "Beschreibung"),
        category=("Category", "category", "Kategorie"),
        base_amount=("BaseAmount", "baseAmount", "Grundpreis"),
        currency=("CurrencyCode", "currencyCode", "Waehrung"),
        start_date=("StartDate", "startDate", "GueltigVon"),
        end_date=("EndDate", "endDate", "GueltigBis"),
        active_flag=("Active", "active", "IsActive"),
        status=("Status", "status"),
        room_types=("RoomTypes", "roomTypes", "Zimmertypen"),
        inclusions=("Inclusions", "inclusions", "Leistungen"),
        cancellation_policy=("CancellationPolicy", "cancellationPolicy", "Stornobedingungen"),
        default_currency="EUR",
    )

    note_id_paths = ("NoteId", "noteId", "Id")
    alert_id_paths = ("AlertId", "alertId", "Id")
    comment_id_paths = ("NoteId", "noteId", "Id")

    @property
    def hotel_number(self) -> str:
        return str(
            self.config.get("hotel_number")
            or self.config.get("property_id")
            or self.hotel_id
            or ""
        )

    @property
    def property_code(self) -> str:
        return self.hotel_number

    def auth_headers(self) -> Dict[str, str]:
        return {
            "X-SIHOT-ApiKey": self.config.get("api_key", ""),
            "X-Hotel-Number": self.hotel_number,
        }

    def _scope(self) -> Dict[str, Any]:
        return {"HN": self.hotel_number}

    def _lookup_params(self, confirmation_number: str) -> Dict[str, Any]:
        return {"ConfirmationNo": confirmation_number, "HN": self.hotel_number, "Limit": 1}

    def _search_params(self, search: ReservationSearch) -> Dict[str, Any]:
        params = {
            "HN": self.hotel_number,
            "ConfirmationNo": search.confirmation_number,
            "GuestName": search.guest_name,
            "ArrivalFrom": search.check_in_date,
            "DepartureTo": search.check_out_date,
            "CardLast4": search.card_last_four,
            "Status": self.profile.to_vendor_status(search.status),
        }
        params = {key: value for key, value in params.items() if value}
        params["Limit"] = search.limit or 50
        return params

    def _folio_params(self, reservation_id: str) -> Dict[str, Any]:
        return self._scope()

    def _guest_params(self) -> Dict[str, Any]:
        return self._scope()

    def _rate_params(self, query) -> Dict[str, Any]:
        params = self._scope()
        params.update(query.to_params())
        return params

    def _health_params(self) -> Dict[str, Any]:
        return self._scope()

    def _note_payload(self, guest_id: str, note: Note) -> Dict[str, Any]:
        return {
            "GuestId": guest_id,
            "HotelNumber": self.hotel_number,
            "NoteType": note.category or "GENERAL",
            "Subject": note.title,
            "Text": note_text(note),
            "Priority": (note.priority or "MEDIUM").upper(),
            "IsInternal": True,
            "Source": SOURCE_NAME,
            "CreatedAt": utc_now_iso(),
        }

    def _flag_payload(self, guest_id: str, flag: GuestFlag) -> Dict[str, Any]:
        return {
            "GuestId": guest_id,
            "HotelNumber": self.hotel_number,
            "AlertType": "CHARGEBACK_RISK",
            "Severity": (flag.severity or "HIGH").upper(),
            "Subject": flag_title(flag),
            "Message": flag_message(flag),
            "IsActive": True,
            "Source": SOURCE_NAME,
            "CreatedAt": utc_now_iso(),
        }

    def _chargeback_alert_payload(self, reservation_id: str, alert: ChargebackAlert) -> Dict[str, Any]:
        return {
            "ReservationId": reservation_id,
            "HotelNumber": self.hotel_number,
            "NoteType": "ALERT",
            "Subject": chargeback_alert_title(alert),
            "Text": chargeback_alert_text(alert),
            "Priority": "HIGH",
            "IsInternal": True,
            "Source": SOURCE_NAME,
        }

    def _dispute_outcome_payload(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> Dict[str, Any]:
        return {
            "ReservationId": reservation_id,
            "HotelNumber": self.hotel_number,
            "NoteType": "INFO" if outcome.won else "ALERT",
            "Subject": dispute_outcome_title(outcome),
            "Text": dispute_outcome_text(outcome),
            "Priority": "MEDIUM" if outcome.won else "HIGH",
            "IsInternal": True,
            "Source": SOURCE_NAME,
        }

    def _webhook_payload(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Dict[str, Any]:
        return {
            "CallbackUrl": config.callback_url,
            "Events": vendor_events,
            "SigningSecret": secret,
            "Active": True,
            "HotelNumber": self.hotel_number,
            "Description": config.description or "ChargeGuard Chargeback Defense Webhook",
        }

    def _extract_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = first_of(payload, "Data", "data")
        if not isinstance(data, Mapping):
            data = payload
        return {
            "vendor_event_type": first_of(payload, "EventType", "eventType", "event"),
            "timestamp": first_of(payload, "Timestamp", "timestamp"),
            "property_id": first_of(payload, "HotelNumber", "hotelNumber") or self.hotel_number,
            "reservation_id": first_of(data, "ReservationId", "reservationId", "ConfirmationNo"),
            "guest_id": first_of(data, "GuestId", "guestId", "ProfileId"),
            "data": dict(data),
        }

    async def _health_probe(self) -> Dict[str, Any]:
        await self._request(
            "GET", self.endpoints.health, "health_check", params=self._health_params()
        )
        return {"hotel_number": self.hotel_number}
