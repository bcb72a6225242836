"""
Infor HMS Connector for ChargeGuard
OAuth2 against the Infor ION API gateway; tenant id scopes both the API
base URL and the token endpoint
"""

from typing import Any, Dict, List, Mapping, Optional

from ...auth import OAuthClientConfig
from ...config import HubSettings
from ...contracts import (
    Capabilities,
    ChargebackAlert,
    DisputeOutcome,
    GuestFlag,
    Note,
    Reservation,
    ReservationSearch,
    WebhookSubscriptionRequest,
)
from ...webhooks import EventMap, utc_now_iso
from ..base import (
    SOURCE_NAME,
    OAuthAdapterMixin,
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

BASE_URL_TEMPLATE = "https://mingle-ionapi.inforcloudsuite.com/{tenant}/HMS/v1"
TOKEN_URL_TEMPLATE = "https://mingle-sso.inforcloudsuite.com/{tenant}/as/token.oauth2"

INFOR_PROFILE = VendorProfile(
    vendor="infor",
    display_name="Infor HMS",
    base_url=BASE_URL_TEMPLATE,
    signature_header="X-Infor-Signature",
    events=EventMap(
        {
            "ReservationCreated": "reservation.created",
            "ReservationModified": "reservation.updated",
            "ReservationCancelled": "reservation.cancelled",
            "GuestCheckIn": "guest.checked_in",
            "GuestCheckOut": "guest.checked_out",
            "PaymentPosted": "payment.received",
            "FolioUpdated": "folio.updated",
        }
    ),
    statuses={
        "confirmed": "CONFIRMED",
        "checked_in": "IN_HOUSE",
        "checked_out": "DEPARTED",
        "cancelled": "CANCELLED",
        "no_show": "NO_SHOW",
        "pending": "TENTATIVE",
    },
    requests_per_minute=80,
)


class InforConnector(OAuthAdapterMixin, RestVendorAdapter):
    """Infor HMS connector (ION API, OAuth2)"""

    vendor_name = "infor"
    profile = INFOR_PROFILE

    capabilities = {
        Capabilities.RESERVATIONS.value: True,
        Capabilities.FOLIOS.value: True,
        Capabilities.PROFILES.value: True,
        Capabilities.RATES.value: True,
        Capabilities.NOTES.value: True,
        Capabilities.FLAGS.value: True,
        Capabilities.WEBHOOKS.value: True,
        Capabilities.LOYALTY.value: False,
        Capabilities.MULTI_TENANT.value: True,
    }

    endpoints = RestEndpoints(
        reservations="/api/v1/properties/{property}/reservations",
        folio="/api/v1/properties/{property}/reservations/{id}/folios",
        guest="/api/v1/properties/{property}/guests/{id}",
        rates="/api/v1/properties/{property}/rates",
        guest_notes="/api/v1/properties/{property}/guests/{id}/notes",
        guest_alerts="/api/v1/properties/{property}/guests/{id}/alerts",
        reservation_notes="/api/v1/properties/{property}/reservations/{id}/notes",
        webhooks="/api/v1/properties/{property}/webhooks",
        health="/api/v1/properties/{property}",
    )

    reservation_fields = ReservationFields(
        scopes={
            "guest": ("guest", "primaryGuest"),
            "room": ("roomAssignment", "room"),
            "rate": ("ratePlan", "rate"),
            "payment": ("payment", "paymentInfo"),
        },
        confirmation_number=("confirmationNumber", "bookingReference"),
        reservation_id=("reservationId", "id"),
        status=("status", "reservationStatus"),
        guest_id=("@guest.guestId", "@guest.profileId"),
        first_name=("@guest.firstName", "@guest.givenName"),
        last_name=("@guest.lastName", "@guest.surname"),
        email=("@guest.email", "@guest.emailAddress"),
        phone=("@guest.phone", "@guest.phoneNumber"),
        address=("@guest.address",),
        check_in=("arrivalDate", "checkInDate"),
        check_out=("departureDate", "checkOutDate"),
        room_number=("@room.roomNumber", "@room.number"),
        room_type=("@room.roomType", "@room.roomTypeCode"),
        rate_code=("@rate.rateCode", "@rate.ratePlanCode"),
        rate_description=("@rate.description", "@rate.ratePlanName"),
        total_amount=("totalAmount", "totalCharges"),
        number_of_guests=("numberOfGuests", "adults"),
        card_brand=("@payment.cardType", "@payment.cardBrand"),
        card_last_four=("@payment.cardLast4",),
        auth_code=("@payment.authorizationCode", "@payment.authCode"),
        created_at=("createdDateTime", "createDate"),
        updated_at=("modifiedDateTime", "updateDate"),
        special_requests=("specialRequests", "guestComments"),
        loyalty_number=("loyaltyNumber", "membershipId"),
    )

    folio_fields = FolioFields(
        folios=("folios", "folioList"),
        items=("postings", "transactions", "charges"),
        window_number=("@folio.windowNumber", "@folio.folioWindowNo"),
        transaction_code=("transactionCode", "chargeCode"),
        category=("revenueCategory", "category", "transactionCode"),
        description=("description", "narrative"),
        amount=("amount", "netAmount"),
        post_date=("postingDate", "transactionDate"),
        card_last_four=("cardLast4",),
        auth_code=("authorizationCode",),
        reference=("reference", "receiptNumber"),
    )

    profile_fields = ProfileFields(
        first_name=("firstName", "givenName"),
        last_name=("lastName", "surname"),
        phone=("phone", "phoneNumber"),
        address=("addresses.0", "addresses", "address"),
        nationality=("nationality", "countryCode"),
        language=("preferredLanguage", "language"),
        date_of_birth=("dateOfBirth", "birthDate"),
        total_stays=("totalStays", "visitCount"),
        total_revenue=("totalRevenue", "lifetimeRevenue"),
        last_stay_date=("lastStayDate", "lastVisitDate"),
        created_at=("createdDateTime", "createDate"),
    )

    rate_fields = RateFields(
        name=("name", "ratePlanName"),
        description=("description", "longDescription"),
        category=("category", "rateCategory"),
        room_types=("roomTypes", "applicableRoomTypes"),
        inclusions=("inclusions", "packages"),
    )

    note_id_paths = ("noteId", "id")
    alert_id_paths = ("alertId", "id")
    comment_id_paths = ("noteId", "id")

    def __init__(self, config: Dict[str, Any], settings: Optional[HubSettings] = None):
        super().__init__(config, settings)
        self._init_oauth()

    @property
    def tenant_id(self) -> str:
        return self.config.get("tenant_id") or "default"

    @property
    def base_url(self) -> str:
        return self.config.get("base_url") or BASE_URL_TEMPLATE.format(tenant=self.tenant_id)

    @property
    def property_code(self) -> str:
        return str(
            self.config.get("hotel_code") or self.config.get("property_id") or self.hotel_id or ""
        )

    def oauth_client_config(self) -> OAuthClientConfig:
        return OAuthClientConfig(
            token_url=self.config.get("token_url") or TOKEN_URL_TEMPLATE.format(tenant=self.tenant_id),
            client_id=self.config.get("client_id", ""),
            client_secret=self.config.get("client_secret", ""),
        )

    def auth_headers(self) -> Dict[str, str]:
        return {**self.bearer_headers(), "X-Infor-TenantId": self.tenant_id}

    def normalize_reservation(self, raw: Any) -> Optional[Reservation]:
        reservation = super().normalize_reservation(raw)
        if reservation is not None and not reservation.payment_method.card_last_four:
            # Infor often sends only a masked PAN
            masked = first_of(raw, "payment.maskedCard", "paymentInfo.maskedCard")
            if masked:
                reservation.payment_method.card_last_four = str(masked)[-4:]
        return reservation

    def _lookup_params(self, confirmation_number: str) -> Dict[str, Any]:
        return {"confirmationNumber": confirmation_number, "limit": 1}

    def _search_params(self, search: ReservationSearch) -> Dict[str, Any]:
        params = {
            "confirmationNumber": search.confirmation_number,
            "guestName": search.guest_name,
            "arrivalFrom": search.check_in_date,
            "departureTo": search.check_out_date,
            "cardLast4": search.card_last_four,
            "status": self.profile.to_vendor_status(search.status),
        }
        params = {key: value for key, value in params.items() if value}
        params["limit"] = search.limit or 50
        return params

    def _note_payload(self, guest_id: str, note: Note) -> Dict[str, Any]:
        return {
            "noteType": note.category or "GENERAL",
            "subject": note.title,
            "text": note_text(note),
            "priority": (note.priority or "medium").upper(),
            "isInternal": True,
            "source": SOURCE_NAME,
            "createdDateTime": utc_now_iso(),
        }

    def _flag_payload(self, guest_id: str, flag: GuestFlag) -> Dict[str, Any]:
        return {
            "alertType": "CHARGEBACK_RISK",
            "severity": (flag.severity or "HIGH").upper(),
            "subject": flag_title(flag),
            "message": flag_message(flag),
            "isActive": True,
            "source": SOURCE_NAME,
            "createdDateTime": utc_now_iso(),
        }

    def _chargeback_alert_payload(self, reservation_id: str, alert: ChargebackAlert) -> Dict[str, Any]:
        return {
            "noteType": "ALERT",
            "subject": chargeback_alert_title(alert),
            "text": chargeback_alert_text(alert),
            "priority": "HIGH",
            "isInternal": True,
            "source": SOURCE_NAME,
        }

    def _dispute_outcome_payload(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> Dict[str, Any]:
        return {
            "noteType": "INFO" if outcome.won else "ALERT",
            "subject": dispute_outcome_title(outcome),
            "text": dispute_outcome_text(outcome),
            "priority": "MEDIUM" if outcome.won else "HIGH",
            "isInternal": True,
            "source": SOURCE_NAME,
        }

    def _webhook_payload(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Dict[str, Any]:
        return {
            "callbackUrl": config.callback_url,
            "events": vendor_events,
            "secret": secret,
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
            "timestamp": first_of(payload, "timestamp", "eventDateTime"),
            "property_id": payload.get("propertyCode") or self.property_code,
            "reservation_id": first_of(data, "reservationId", "confirmationNumber"),
            "guest_id": first_of(data, "guestId", "profileId"),
            "data": dict(data),
        }

    async def _health_probe(self) -> Dict[str, Any]:
        await self._request("GET", self._path(self.endpoints.health), "health_check")
        return {
            "hotel_code": self.property_code,
            "tenant_id": self.tenant_id,
            "token_expires_in": self.token_manager.expires_in(),
        }
