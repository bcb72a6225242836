"""
RoomKey PMS Connector for ChargeGuard
Small-property PMS authenticated with an API key and property code
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

ROOMKEY_PROFILE = VendorProfile(
    vendor="roomkey",
    display_name="RoomKey",
    base_url="https://api.roomkeypms.com/v1",
    signature_header="X-RoomKey-Signature",
    events=EventMap(
        {
            "booking.created": "reservation.created",
            "booking.updated": "reservation.updated",
            "booking.cancelled": "reservation.cancelled",
            "guest.checkin": "guest.checked_in",
            "guest.checkout": "guest.checked_out",
            "payment.posted": "payment.received",
            "billing.updated": "folio.updated",
        }
    ),
    statuses={
        "confirmed": "CONFIRMED",
        "checked_in": "CHECKED_IN",
        "checked_out": "CHECKED_OUT",
        "cancelled": "CANCELLED",
        "no_show": "NO_SHOW",
        "pending": "PENDING",
    },
    requests_per_minute=60,
)


class RoomKeyConnector(RestVendorAdapter):
    """RoomKey PMS REST API connector"""

    vendor_name = "roomkey"
    profile = ROOMKEY_PROFILE

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
        reservations="/api/v1/bookings",
        folio="/api/v1/bookings/{id}/billing",
        guest="/api/v1/guests/{id}",
        rates="/api/v1/rates",
        guest_notes="/api/v1/guests/{id}/notes",
        guest_alerts="/api/v1/guests/{id}/alerts",
        reservation_notes="/api/v1/bookings/{id}/notes",
        webhooks="/api/v1/webhooks",
        health="/api/v1/properties/current",
    )

    reservation_list_paths = ("bookings", "data")

    reservation_fields = ReservationFields(
        scopes={
            "guest": ("guest", "primaryGuest"),
            "room": ("room", "roomAssignment"),
            "rate": ("ratePlan", "rate"),
            "payment": ("payment", "paymentMethod"),
        },
        confirmation_number=("confirmationNumber", "bookingNumber"),
        reservation_id=("bookingId", "id"),
        status=("status", "bookingStatus"),
        guest_id=("@guest.guestId", "@guest.id"),
        first_name=("@guest.firstName", "@guest.givenName"),
        last_name=("@guest.lastName", "@guest.surname"),
        email=("@guest.email", "@guest.emailAddress"),
        phone=("@guest.phone", "@guest.phoneNumber"),
        address=("@guest.address",),
        room_number=("@room.roomNumber", "@room.number"),
        room_type=("@room.roomType", "@room.type"),
        rate_code=("@rate.rateCode", "@rate.code"),
        rate_description=("@rate.description", "@rate.name"),
        total_amount=("totalAmount", "totalCharges"),
        number_of_guests=("numberOfGuests", "guestCount"),
        card_brand=("@payment.cardType", "@payment.brand"),
        card_last_four=("@payment.cardLastFour", "@payment.last4"),
        auth_code=("@payment.authCode", "@payment.authorizationCode"),
        created_at=("createdAt", "createDate"),
        updated_at=("updatedAt", "modifyDate"),
        special_requests=("specialRequests", "notes"),
        loyalty_number=("loyaltyNumber", "membershipId"),
    )

    folio_fields = FolioFields(
        folios=("folios", "billing", "data"),
        items=("charges", "lineItems", "transactions"),
        transaction_code=("transactionCode", "chargeCode"),
        category=("category", "chargeType", "transactionCode"),
        description=("description", "itemName"),
        amount=("amount", "total"),
        currency=("currencyCode", "currency"),
        post_date=("postDate", "date"),
    )

    profile_fields = ProfileFields(
        phone=("phone", "phoneNumber"),
        total_stays=("totalStays", "stayCount"),
        total_revenue=("totalRevenue", "lifetimeValue"),
        last_stay_date=("lastStayDate", "lastVisit"),
        created_at=("createdAt", "createDate"),
    )

    rate_fields = RateFields(
        name=("name", "ratePlanName"),
    )

    note_id_paths = ("noteId", "id")
    alert_id_paths = ("alertId", "id")
    comment_id_paths = ("noteId", "id")

    @property
    def property_code(self) -> str:
        return str(
            self.config.get("property_code") or self.config.get("property_id") or self.hotel_id or ""
        )

    def auth_headers(self) -> Dict[str, str]:
        return {
            "X-RoomKey-ApiKey": self.config.get("api_key", ""),
            "X-Property-Code": self.property_code,
        }

    def _scope(self) -> Dict[str, Any]:
        return {"propertyCode": self.property_code}

    def _lookup_params(self, confirmation_number: str) -> Dict[str, Any]:
        return {
            "confirmationNumber": confirmation_number,
            "propertyCode": self.property_code,
            "limit": 1,
        }

    def _search_params(self, search: ReservationSearch) -> Dict[str, Any]:
        params = {
            "propertyCode": self.property_code,
            "confirmationNumber": search.confirmation_number,
            "guestName": search.guest_name,
            "checkInDate": search.check_in_date,
            "checkOutDate": search.check_out_date,
            "cardLast4": search.card_last_four,
            "status": self.profile.to_vendor_status(search.status),
        }
        params = {key: value for key, value in params.items() if value}
        params["limit"] = search.limit or 50
        return params

    def _folio_params(self, reservation_id: str) -> Dict[str, Any]:
        return self._scope()

    def _guest_params(self) -> Dict[str, Any]:
        return self._scope()

    def _health_params(self) -> Dict[str, Any]:
        return self._scope()

    def _rate_params(self, query: RateQuery) -> Dict[str, Any]:
        params = query.to_params()
        params.update(self._scope())
        return params

    def _note_payload(self, guest_id: str, note: Note) -> Dict[str, Any]:
        return {
            "guestId": guest_id,
            "propertyCode": self.property_code,
            "type": note.category or "general",
            "title": note.title,
            "content": note_text(note),
            "priority": note.priority or "medium",
            "isInternal": True,
            "source": SOURCE_NAME,
        }

    def _flag_payload(self, guest_id: str, flag: GuestFlag) -> Dict[str, Any]:
        return {
            "guestId": guest_id,
            "propertyCode": self.property_code,
            "alertType": "chargeback",
            "severity": flag.severity or "high",
            "title": flag_title(flag),
            "message": flag_message(flag),
            "isActive": True,
            "source": SOURCE_NAME,
        }

    def _chargeback_alert_payload(self, reservation_id: str, alert: ChargebackAlert) -> Dict[str, Any]:
        return {
            "bookingId": reservation_id,
            "propertyCode": self.property_code,
            "type": "alert",
            "title": chargeback_alert_title(alert),
            "content": chargeback_alert_text(alert),
            "priority": "high",
            "isInternal": True,
        }

    def _dispute_outcome_payload(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> Dict[str, Any]:
        return {
            "bookingId": reservation_id,
            "propertyCode": self.property_code,
            "type": "info" if outcome.won else "alert",
            "title": dispute_outcome_title(outcome),
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
            "propertyCode": self.property_code,
            "description": config.description or "ChargeGuard Chargeback Defense Webhook",
        }

    def _extract_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = first_of(payload, "data", "payload")
        if not isinstance(data, Mapping):
            data = payload
        return {
            "vendor_event_type": first_of(payload, "eventType", "event", "type"),
            "timestamp": first_of(payload, "timestamp", "occurredAt"),
            "property_id": payload.get("propertyCode") or self.property_code,
            "reservation_id": first_of(data, "bookingId", "reservationId", "confirmationNumber"),
            "guest_id": first_of(data, "guestId", "profileId"),
            "data": dict(data),
        }
