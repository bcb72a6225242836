"""
Hotelogix PMS Connector for ChargeGuard
Cloud PMS for mid-scale hotels, authenticated with an API key and hotel code
"""

from typing import Any, Dict, List, Mapping

from ...contracts import (
    Capabilities,
    ChargebackAlert,
    DisputeOutcome,
    GuestFlag,
    Note,
    RateQuery,
    ReservationSearch,
    WebhookSubscriptionRequest,
)
from ...webhooks import EventMap
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

HOTELOGIX_PROFILE = VendorProfile(
    vendor="hotelogix",
    display_name="Hotelogix",
    base_url="https://api.hotelogix.com/v2",
    signature_header="X-Hotelogix-Signature",
    events=EventMap(
        {
            "booking_created": "reservation.created",
            "booking_modified": "reservation.updated",
            "booking_cancelled": "reservation.cancelled",
            "guest_checkin": "guest.checked_in",
            "guest_checkout": "guest.checked_out",
            "payment_posted": "payment.received",
            "folio_updated": "folio.updated",
        }
    ),
    statuses={
        "confirmed": "CONFIRMED",
        "checked_in": "CHECKEDIN",
        "checked_out": "CHECKEDOUT",
        "cancelled": "CANCELLED",
        "no_show": "NOSHOW",
        "pending": "TENTATIVE",
    },
    requests_per_minute=90,
)


class HotelogixConnector(RestVendorAdapter):
    """Hotelogix REST API v2 connector"""

    vendor_name = "hotelogix"
    profile = HOTELOGIX_PROFILE

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
        reservations="/api/v2/bookings",
        folio="/api/v2/bookings/{id}/folio",
        guest="/api/v2/guests/{id}",
        rates="/api/v2/rates",
        guest_notes="/api/v2/guests/{id}/notes",
        guest_alerts="/api/v2/guests/{id}/alerts",
        reservation_notes="/api/v2/bookings/{id}/notes",
        webhooks="/api/v2/webhooks",
        health="/api/v2/hotel/info",
    )

    reservation_list_paths = ("bookings", "data")

    reservation_fields = ReservationFields(
        scopes={
            "guest": ("guest", "primaryGuest"),
            "room": ("room", "roomAssignment"),
            "rate": ("ratePlan", "rate"),
            "payment": ("payment", "paymentInfo"),
        },
        confirmation_number=("confirmationNo", "bookingNo"),
        reservation_id=("bookingId", "id"),
        status=("bookingStatus", "status"),
        guest_id=("@guest.guestId", "@guest.id"),
        first_name=("@guest.firstName", "@guest.givenName"),
        last_name=("@guest.lastName", "@guest.surName"),
        email=("@guest.email", "@guest.emailAddress"),
        phone=("@guest.phone", "@guest.mobile"),
        address=("@guest.address",),
        check_in=("checkInDate", "arrivalDate"),
        check_out=("checkOutDate", "departureDate"),
        room_number=("@room.roomNo", "@room.roomNumber"),
        room_type=("@room.roomType", "@room.roomTypeName"),
        rate_code=("@rate.rateCode", "@rate.ratePlanCode"),
        rate_description=("@rate.ratePlanName", "@rate.description"),
        total_amount=("totalAmount", "totalCharges"),
        currency=("currencyCode", "currency"),
        number_of_guests=("numberOfGuests", "pax"),
        card_brand=("@payment.cardType", "@payment.brand"),
        card_last_four=("@payment.cardLast4", "@payment.last4"),
        auth_code=("@payment.authCode", "@payment.authorizationCode"),
        booking_source=("source", "channel", "bookingSource"),
        created_at=("createdOn", "createDate"),
        updated_at=("modifiedOn", "updateDate"),
        special_requests=("specialRequests", "guestRemarks"),
        loyalty_number=("loyaltyNo", "membershipId"),
    )

    folio_fields = FolioFields(
        folios=("folios", "folioList", "data"),
        items=("charges", "lineItems", "transactions"),
        folio_id=("@folio.folioId", "@folio.id"),
        window_number=("@folio.windowNo", "@folio.windowNumber"),
        transaction_id=("transactionId", "id"),
        transaction_code=("chargeCode", "transactionCode"),
        category=("category", "chargeCategory", "chargeCode"),
        description=("description", "chargeName"),
        amount=("amount", "netAmount"),
        currency=("currencyCode", "currency"),
        post_date=("postDate", "chargeDate"),
        card_last_four=("cardLast4",),
        auth_code=("authCode",),
        reference=("reference", "receiptNo"),
        reversal=("isReversal", "reversed"),
        quantity=("quantity",),
    )

    profile_fields = ProfileFields(
        root=("guest", "profile"),
        guest_id=("guestId", "id"),
        first_name=("firstName",),
        last_name=("lastName",),
        email=("email", "emailAddress"),
        phone=("phone", "mobile"),
        address=("address",),
        vip_code=("vipCode", "vipStatus"),
        loyalty_number=("loyaltyNo", "membershipId"),
        loyalty_level=("loyaltyLevel", "membershipTier"),
        nationality=("nationality", "country"),
        language=("language", "preferredLanguage"),
        date_of_birth=("dateOfBirth", "dob"),
        company_name=("companyName", "company"),
        total_stays=("totalStays", "stayCount"),
        total_revenue=("totalRevenue", "lifetimeValue"),
        last_stay_date=("lastStayDate", "lastVisit"),
        created_at=("createdOn", "createDate"),
    )

    rate_fields = RateFields(
        rates=("ratePlans", "rates"),
        rate_code=("rateCode", "ratePlanCode"),
        name=("ratePlanName", "name"),
        description=("description", "longDescription"),
        category=("category", "rateCategory"),
        base_amount=("baseRate", "amount"),
        currency=("currencyCode",),
        start_date=("startDate", "validFrom"),
        end_date=("endDate", "validTo"),
        active_flag=("isActive",),
        status=("status",),
        room_types=("roomTypes", "applicableRoomTypes"),
        inclusions=("inclusions", "addOns"),
        cancellation_policy=("cancellationPolicy", "cancelPolicy"),
    )

    note_id_paths = ("noteId", "id")
    alert_id_paths = ("alertId", "id")
    comment_id_paths = ("noteId", "id")

    @property
    def hotel_code(self) -> str:
        return str(
            self.config.get("hotel_code") or self.config.get("property_id") or self.hotel_id or ""
        )

    @property
    def property_code(self) -> str:
        return self.hotel_code

    def auth_headers(self) -> Dict[str, str]:
        return {"X-Api-Key": self.config.get("api_key", ""), "X-Hotel-Code": self.hotel_code}

    def _lookup_params(self, confirmation_number: str) -> Dict[str, Any]:
        return {"confirmationNo": confirmation_number, "hotelCode": self.hotel_code, "limit": 1}

    def _search_params(self, search: ReservationSearch) -> Dict[str, Any]:
        params = {
            "hotelCode": self.hotel_code,
            "confirmationNo": search.confirmation_number,
            "guestName": search.guest_name,
            "checkInFrom": search.check_in_date,
            "checkOutTo": search.check_out_date,
            "cardLast4": search.card_last_four,
            "bookingStatus": self.profile.to_vendor_status(search.status),
        }
        params = {key: value for key, value in params.items() if value}
        params["limit"] = search.limit or 50
        return params

    def _scope(self) -> Dict[str, Any]:
        return {"hotelCode": self.hotel_code}

    def _folio_params(self, reservation_id: str) -> Dict[str, Any]:
        return self._scope()

    def _guest_params(self) -> Dict[str, Any]:
        return self._scope()

    def _health_params(self) -> Dict[str, Any]:
        return self._scope()

    def _rate_params(self, query: RateQuery) -> Dict[str, Any]:
        params = query.to_params()
        params["hotelCode"] = self.hotel_code
        return params

    def _note_payload(self, guest_id: str, note: Note) -> Dict[str, Any]:
        return {
            "guestId": guest_id,
            "hotelCode": self.hotel_code,
            "noteType": note.category or "general",
            "subject": note.title,
            "content": note_text(note),
            "priority": note.priority or "medium",
            "isInternal": True,
            "source": SOURCE_NAME,
        }

    def _flag_payload(self, guest_id: str, flag: GuestFlag) -> Dict[str, Any]:
        return {
            "guestId": guest_id,
            "hotelCode": self.hotel_code,
            "alertType": "chargeback_risk",
            "severity": (flag.severity or "high").lower(),
            "subject": flag_title(flag),
            "message": flag_message(flag),
            "isActive": True,
            "source": SOURCE_NAME,
        }

    def _chargeback_alert_payload(self, reservation_id: str, alert: ChargebackAlert) -> Dict[str, Any]:
        return {
            "bookingId": reservation_id,
            "hotelCode": self.hotel_code,
            "noteType": "alert",
            "subject": chargeback_alert_title(alert),
            "content": chargeback_alert_text(alert),
            "priority": "high",
            "isInternal": True,
        }

    def _dispute_outcome_payload(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> Dict[str, Any]:
        return {
            "bookingId": reservation_id,
            "hotelCode": self.hotel_code,
            "noteType": "info" if outcome.won else "alert",
            "subject": dispute_outcome_title(outcome),
            "content": dispute_outcome_text(outcome),
            "priority": "medium" if outcome.won else "high",
            "isInternal": True,
        }

    def _webhook_payload(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Dict[str, Any]:
        return {
            "callbackUrl": config.callback_url,
            "events": vendor_events,
            "signingSecret": secret,
            "active": True,
            "hotelCode": self.hotel_code,
            "description": config.description or "ChargeGuard Chargeback Defense Webhook",
        }

    def _extract_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = first_of(payload, "data", "payload")
        if not isinstance(data, Mapping):
            data = payload
        return {
            "vendor_event_type": first_of(payload, "eventType", "event", "type"),
            "timestamp": first_of(payload, "timestamp", "triggeredAt"),
            "property_id": payload.get("hotelCode") or self.hotel_code,
            "reservation_id": first_of(data, "bookingId", "reservationId", "confirmationNo"),
            "guest_id": first_of(data, "guestId", "profileId"),
            "data": dict(data),
        }

    async def _health_probe(self) -> Dict[str, Any]:
        await self._request(
            "GET", self.endpoints.health, "health_check", params=self._health_params()
        )
        return {"hotel_code": self.hotel_code}
