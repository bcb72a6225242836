"""
Hyatt OPERA Connector for ChargeGuard
Hyatt's customized OPERA deployment behind the Hyatt API Portal.

OAuth2 client_credentials with refresh, property and brand headers on every
call, World of Hyatt loyalty data and the FIND experience platform.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from ...auth import OAuthClientConfig
from ...config import HubSettings
from ...contracts import (
    Capabilities,
    ChargebackAlert,
    DisputeOutcome,
    FlagReceipt,
    GuestFlag,
    GuestProfile,
    Note,
    Rate,
    RateQuery,
    Reservation,
    ReservationSearch,
    WebhookSubscriptionRequest,
)
from ...normalizers import normalize_phone
from ...utils.logging import log_performance
from ...webhooks import EventMap, utc_now_iso
from ..base import (
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
    format_amount,
    note_text,
    optional_str,
)
from ..mapping import (
    FolioFields,
    ProfileFields,
    RateFields,
    ReservationFields,
    as_list,
    first_of,
    to_int,
)

TOKEN_URL = "https://auth.hyatt.com/oauth2/token"
TOKEN_SCOPE = "opera.reservations opera.guests opera.folios opera.rates opera.webhooks"
COMMENT_SOURCE = "CHARGEGUARD"

# World of Hyatt tier codes
WOH_TIERS = MappingProxyType(
    {
        "MBR": "Member",
        "DSC": "Discoverist",
        "EXP": "Explorist",
        "GLB": "Globalist",
        "LTG": "Lifetime Globalist",
    }
)

HYATT_BRAND_CODES = MappingProxyType(
    {
        "PH": "Park Hyatt",
        "GH": "Grand Hyatt",
        "HR": "Hyatt Regency",
        "HH": "Hyatt",
        "AH": "Andaz",
        "AL": "Alila",
        "TU": "Thompson Hotels",
        "HY": "Hyatt Centric",
        "HC": "Caption by Hyatt",
        "JH": "JdV by Hyatt",
        "BH": "The Unbound Collection by Hyatt",
        "DH": "Destination by Hyatt",
        "HP": "Hyatt Place",
        "HW": "Hyatt House",
        "UR": "UrCove",
        "HG": "Hyatt Studios",
        "EX": "Exhale",
        "MR": "Miraval",
    }
)

PRIORITIES = MappingProxyType(
    {"low": "LOW", "medium": "NORMAL", "high": "HIGH", "critical": "URGENT"}
)
SEVERITIES = MappingProxyType(
    {"low": "INFO", "medium": "WARNING", "high": "CRITICAL", "critical": "EMERGENCY"}
)
TRACE_SEVERITIES = frozenset({"high", "critical"})

HYATT_PROFILE = VendorProfile(
    vendor="hyatt_opera",
    display_name="Hyatt OPERA",
    base_url="https://api.hyatt.com/opera/v1",
    signature_header="x-hyatt-webhook-signature",
    events=EventMap(
        {
            "RESERVATION_CREATED": "reservation.created",
            "RESERVATION_UPDATED": "reservation.updated",
            "RESERVATION_CANCELLED": "reservation.cancelled",
            "GUEST_CHECKIN": "guest.checked_in",
            "GUEST_CHECKOUT": "guest.checked_out",
            "PAYMENT_POSTED": "payment.received",
            "FOLIO_UPDATED": "folio.updated",
            "WOH_STATUS_CHANGE": "loyalty.updated",
            "FIND_EXPERIENCE_BOOKED": "find.booked",
        }
    ),
    statuses={
        "confirmed": "RESERVED",
        "checked_in": "INHOUSE",
        "checked_out": "CHECKEDOUT",
        "cancelled": "CANCELLED",
        "no_show": "NOSHOW",
        "pending": "TENTATIVE",
    },
    requests_per_minute=80,
)


def _primary(collection: Any) -> Any:
    """Entry flagged primary, else the first one"""
    if isinstance(collection, list):
        for entry in collection:
            if isinstance(entry, Mapping) and entry.get("primary"):
                return entry
        return collection[0] if collection else None
    return collection


def _contact_value(entry: Any, *keys: str) -> Optional[str]:
    if isinstance(entry, Mapping):
        value = first_of(entry, *keys)
        return str(value) if value is not None else None
    return entry if isinstance(entry, str) else None


class HyattOperaConnector(OAuthAdapterMixin, RestVendorAdapter):
    """Hyatt OPERA connector with World of Hyatt and FIND extensions"""

    vendor_name = "hyatt_opera"
    profile = HYATT_PROFILE

    capabilities = {
        Capabilities.RESERVATIONS.value: True,
        Capabilities.FOLIOS.value: True,
        Capabilities.PROFILES.value: True,
        Capabilities.RATES.value: True,
        Capabilities.NOTES.value: True,
        Capabilities.FLAGS.value: True,
        Capabilities.WEBHOOKS.value: True,
        Capabilities.LOYALTY.value: True,
        Capabilities.MULTI_TENANT.value: False,
    }

    endpoints = RestEndpoints(
        reservations="/api/v1/properties/{property}/reservations",
        folio="/api/v1/properties/{property}/folios",
        guest="/api/v1/guests/{id}",
        rates="/api/v1/properties/{property}/rates",
        guest_notes="/api/v1/guests/{id}/comments",
        guest_alerts="/api/v1/guests/{id}/comments",
        reservation_notes="/api/v1/properties/{property}/reservations/{id}/comments",
        webhooks="/api/v1/properties/{property}/webhooks",
        health="/api/v1/properties/{property}/reservations",
    )
    find_alerts_path = "/api/v1/properties/{property}/find/alerts"

    reservation_list_paths = ("reservations.reservationInfo", "reservations")

    reservation_fields = ReservationFields(
        scopes={
            "info": ("reservationIdList",),
            "stay": ("roomStay", "roomStays.0"),
            "guest": ("guestNameList.guestName.0", "guestNames.0", "primaryGuest", "guest"),
            "payment": ("paymentMethods.0", "cashiering.payment"),
            "rate": ("@stay.ratePlans.0", "@stay.ratePlan"),
            "room_type": ("@stay.roomTypes.0", "@stay.roomType"),
        },
        confirmation_number=(
            "@info.confirmationNumber",
            "@info.id.value",
            "confirmationNumber",
            "reservationId",
        ),
        reservation_id=(
            "reservationId",
            "id.value",
            "@info.confirmationNumber",
            "@info.id.value",
            "confirmationNumber",
        ),
        status=("reservationStatus", "status", "@stay.status"),
        guest_id=("@guest.profileId.value", "@guest.profileId", "guestProfileId"),
        first_name=("@guest.givenName", "@guest.name.givenName", "@guest.name.firstName"),
        last_name=("@guest.surname", "@guest.name.surname", "@guest.name.lastName"),
        guest_name=("@guest.nameTitle", "@guest"),
        email=("@guest.email.value", "@guest.email"),
        phone=("@guest.phone.value", "@guest.phone"),
        address=("@guest.address", "@guest.addressInfo"),
        check_in=("@stay.arrivalDate", "@stay.stayDateRange.startDate", "arrivalDate"),
        check_out=("@stay.departureDate", "@stay.stayDateRange.endDate", "departureDate"),
        room_number=("@stay.roomId", "@stay.room.roomNumber"),
        room_type=("@room_type.roomTypeCode", "@room_type.code", "@room_type.description"),
        rate_code=("@rate.ratePlanCode", "@rate.code"),
        rate_description=("@rate.ratePlanName", "@rate.description"),
        total_amount=("@stay.total.amount", "@stay.totalAmount", "totalAmount"),
        currency=("@stay.total.currencyCode", "@stay.currencyCode", "currencyCode"),
        number_of_guests=("numberOfGuests", "@stay.guestCount"),
        card_brand=("@payment.cardType", "@payment.paymentCard.cardType"),
        card_last_four=(),
        auth_code=("@payment.approvalCode", "@payment.paymentCard.approvalCode"),
        booking_source=("sourceCode", "origin"),
        created_at=("createDateTime", "createdAt"),
        updated_at=("lastModifyDateTime", "updatedAt"),
        special_requests=("specialRequests",),
        loyalty_number=(),
    )

    folio_fields = FolioFields(
        folios=("folios", "folioWindows"),
        items=("postings", "folioItems", "transactions"),
        window_number=("@folio.windowNumber", "@folio.folioWindowNo"),
        transaction_code=("transactionCode", "trxCode"),
        category=("transactionGroup", "category", "transactionCode"),
        description=("description", "transactionDescription", "remark"),
        amount=("amount", "netAmount"),
        currency=("currencyCode",),
        post_date=("postingDate", "transactionDate"),
        card_last_four=("cardLastFour",),
        auth_code=("approvalCode", "authorizationCode"),
        reference=("reference", "folioView"),
        reversal=("reversal", "reversalFlag"),
    )

    profile_fields = ProfileFields(
        root=("profileDetails.profile", "profile"),
        scopes={
            "name": ("name", "customer.name"),
            "loyalty": ("loyaltyInfo", "wohInfo"),
        },
        guest_id=("profileId.value", "id"),
        first_name=("@name.givenName", "@name.firstName"),
        last_name=("@name.surname", "@name.lastName"),
        email=(),
        phone=(),
        address=("addresses.address.0", "addresses.0", "addresses.address", "addresses"),
        loyalty_number=("@loyalty.wohNumber", "@loyalty.membershipId", "wohNumber"),
        loyalty_level=("@loyalty.tierName",),
        loyalty_points=("@loyalty.pointsBalance", "@loyalty.availablePoints"),
        nationality=("nationality", "nationCode"),
        language=("language", "communicationLanguage"),
        date_of_birth=("birthDate", "dateOfBirth"),
        company_name=("company.companyName", "companyName"),
        total_stays=("stayHistory.totalStays", "totalVisits"),
        total_revenue=("stayHistory.totalRevenue", "totalRevenue"),
        last_stay_date=("stayHistory.lastStayDate", "lastVisitDate"),
        created_at=("createDateTime", "createdAt"),
    )

    rate_fields = RateFields(
        rates=("ratePlanCodes", "ratePlans", "rates"),
        rate_code=("ratePlanCode", "code"),
        name=("ratePlanName", "shortDescription", "description"),
        description=("longDescription", "description"),
        category=("ratePlanCategory", "category"),
        start_date=("startDate", "effectiveDate"),
        end_date=("endDate", "expiryDate"),
        room_types=("roomTypes", "applicableRoomTypes"),
        inclusions=("inclusions", "packages"),
        cancellation_policy=("cancelPolicy", "cancellationPolicy"),
    )

    note_id_paths = ("commentId", "id")
    alert_id_paths = ("commentId", "id")
    comment_id_paths = ("commentId", "id")

    def __init__(self, config: Dict[str, Any], settings: Optional[HubSettings] = None):
        super().__init__(config, settings)
        self._init_oauth()

    @property
    def property_code(self) -> str:
        return str(
            self.config.get("property_code") or self.config.get("property_id") or self.hotel_id or ""
        )

    @property
    def brand_code(self) -> str:
        return self.config.get("brand_code") or "HR"

    @property
    def brand_name(self) -> str:
        return HYATT_BRAND_CODES.get(self.brand_code, "Unknown")

    def oauth_client_config(self) -> OAuthClientConfig:
        return OAuthClientConfig(
            token_url=self.config.get("token_url") or TOKEN_URL,
            client_id=self.config.get("client_id", ""),
            client_secret=self.config.get("client_secret", ""),
            scope=TOKEN_SCOPE,
            extra_headers={"x-hyatt-api-key": self.config.get("api_key", "")},
        )

    def auth_headers(self) -> Dict[str, str]:
        return {
            **self.bearer_headers(),
            "x-hyatt-api-key": self.config.get("api_key", ""),
            "x-hyatt-property-code": self.property_code,
            "x-hyatt-brand-code": self.brand_code,
        }

    # Normalization

    def normalize_reservation(self, raw: Any) -> Optional[Reservation]:
        reservation = super().normalize_reservation(raw)
        if reservation is None:
            return None

        card_number = first_of(
            raw,
            "paymentMethods.0.cardNumber",
            "paymentMethods.0.paymentCard.cardNumberMasked",
            "cashiering.payment.cardNumber",
            "cashiering.payment.paymentCard.cardNumberMasked",
        )
        if card_number:
            reservation.payment_method.card_last_four = str(card_number)[-4:]

        loyalty = self._loyalty(raw)
        reservation.loyalty_number = str(
            first_of(loyalty, "wohNumber", "membershipId") or raw.get("wohNumber") or ""
        )

        if not reservation.special_requests:
            comments = [
                first_of(comment, "text.value")
                for comment in as_list(raw.get("comments"))
                if isinstance(comment, Mapping)
            ]
            reservation.special_requests = "; ".join(str(text) for text in comments if text)

        if not first_of(raw, "numberOfGuests", "roomStay.guestCount", "roomStays.0.guestCount"):
            guests = first_of(raw, "guestNameList.guestName", "guestNames")
            if isinstance(guests, list) and guests:
                reservation.number_of_guests = len(guests)
        return reservation

    def _loyalty(self, raw: Mapping[str, Any]) -> Mapping[str, Any]:
        loyalty = first_of(
            raw,
            "loyaltyInfo",
            "wohInfo",
            "guestNameList.guestName.0.loyalty",
            "guestNames.0.loyalty",
            "primaryGuest.loyalty",
            "guest.loyalty",
        )
        return loyalty if isinstance(loyalty, Mapping) else {}

    def _reservation_extensions(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        loyalty = self._loyalty(raw)
        find = first_of(raw, "findExperience", "findInfo") or {}
        brand_code = raw.get("brandCode") or self.brand_code
        booked = find.get("bookedExperiences") if isinstance(find, Mapping) else None
        return {
            "loyalty_tier": WOH_TIERS.get(loyalty.get("tierCode"))
            or first_of(loyalty, "tierName", "membershipLevel")
            or "",
            "brand_code": brand_code,
            "brand_name": HYATT_BRAND_CODES.get(brand_code, ""),
            "spirit_code": raw.get("spiritCode") or self.property_code,
            "find_experience_id": first_of(find, "experienceId", "id"),
            "find_experience_booked": booked if isinstance(booked, list) else [],
        }

    def normalize_guest_profile(self, data: Any) -> Optional[GuestProfile]:
        profile = super().normalize_guest_profile(data)
        if profile is None:
            return None
        source = first_of(data, *self.profile_fields.root, default=data)

        email = _primary(first_of(source, "emails.email", "emails"))
        profile.email = _contact_value(email, "value", "email") or ""
        phone = _primary(first_of(source, "phones.phone", "phones"))
        profile.phone = normalize_phone(_contact_value(phone, "value", "phoneNumber"))

        loyalty = first_of(source, "loyaltyInfo", "wohInfo") or {}
        tier = WOH_TIERS.get(loyalty.get("tierCode")) if isinstance(loyalty, Mapping) else None
        if tier:
            profile.loyalty_level = tier
        return profile

    def _profile_extensions(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        profile = first_of(raw, *self.profile_fields.root, default=raw)
        loyalty = first_of(profile, "loyaltyInfo", "wohInfo") or {}
        find = first_of(profile, "findExperience", "findPreferences") or {}
        return {
            "loyalty_lifetime_nights": to_int(first_of(loyalty, "lifetimeNights")),
            "loyalty_year_nights": to_int(
                first_of(loyalty, "qualifyingNightsThisYear", "currentYearNights")
            ),
            "loyalty_milestone_rewards": as_list(first_of(loyalty, "milestoneRewards")),
            "find_preferences": as_list(first_of(find, "categories", "interests")),
            "find_booked_experiences": as_list(first_of(find, "bookedExperiences")),
        }

    def normalize_rates(self, data: Any) -> List[Rate]:
        rates = super().normalize_rates(data)
        plans = data if isinstance(data, list) else first_of(data, *self.rate_fields.rates, default=[])
        raw_plans = [plan for plan in as_list(plans) if isinstance(plan, Mapping)]
        for rate, plan in zip(rates, raw_plans):
            rate.extensions = {
                "is_woh_rate": plan.get("wohExclusive") is True or plan.get("loyaltyRate") is True,
                "woh_points_required": to_int(first_of(plan, "pointsRequired", "wohPoints")),
                "woh_points_cash_option": plan.get("pointsCashAmount"),
                "woh_tier_required": WOH_TIERS.get(plan.get("requiredTier"))
                or plan.get("minimumTier")
                or "",
            }
        return rates

    # Request shapes

    def _lookup_params(self, confirmation_number: str) -> Dict[str, Any]:
        return {
            "confirmationNumber": confirmation_number,
            "limit": 1,
            "expand": "guest,payment,loyalty,findExperience",
        }

    def _search_params(self, search: ReservationSearch) -> Dict[str, Any]:
        params = {
            "confirmationNumber": search.confirmation_number,
            "guestName": search.guest_name,
            "arrivalStartDate": search.check_in_date,
            "departureEndDate": search.check_out_date,
            "paymentCardLastFour": search.card_last_four,
            "reservationStatus": self.profile.to_vendor_status(search.status),
            "loyaltyMemberId": search.loyalty_number,
        }
        params = {key: value for key, value in params.items() if value}
        params["limit"] = search.limit or 50
        params["expand"] = "guest,payment,loyalty"
        return params

    def _folio_params(self, reservation_id: str) -> Dict[str, Any]:
        return {"reservationId": reservation_id, "includePayments": True, "includeAdjustments": True}

    def _guest_params(self) -> Dict[str, Any]:
        return {"expand": "loyalty,preferences,stayHistory,findExperience"}

    def _rate_params(self, query: RateQuery) -> Dict[str, Any]:
        params = query.to_params()
        params.update({"includeWoHRates": True, "includePointsCash": True})
        return params

    def _health_params(self) -> Dict[str, Any]:
        return {"limit": 1}

    def _comment(self, **fields: Any) -> Dict[str, Any]:
        comment = {
            "source": COMMENT_SOURCE,
            "internal": True,
            "guestViewable": False,
            "time": utc_now_iso(),
        }
        comment.update(fields)
        return {"comment": comment}

    def _note_payload(self, guest_id: str, note: Note) -> Dict[str, Any]:
        return self._comment(
            text={"value": note_text(note)},
            type="GEN",
            title=note.title,
            category=note.category or "CHARGEBACK_DEFENSE",
            priority=PRIORITIES.get((note.priority or "").lower(), "NORMAL"),
        )

    def _flag_payload(self, guest_id: str, flag: GuestFlag) -> Dict[str, Any]:
        severity = (flag.severity or "").lower()
        return self._comment(
            text={"value": flag_message(flag)},
            type="ALT",
            title=flag_title(flag),
            severity=SEVERITIES.get(severity, "WARNING"),
            operaTrace=severity in TRACE_SEVERITIES,
        )

    def _chargeback_alert_payload(self, reservation_id: str, alert: ChargebackAlert) -> Dict[str, Any]:
        return self._comment(
            text={"value": chargeback_alert_text(alert)},
            type="ALT",
            title=chargeback_alert_title(alert),
        )

    def _dispute_outcome_payload(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> Dict[str, Any]:
        return self._comment(
            text={"value": dispute_outcome_text(outcome)},
            type="GEN" if outcome.won else "ALT",
            title=dispute_outcome_title(outcome),
        )

    def _webhook_payload(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Dict[str, Any]:
        return {
            "webhook": {
                "callbackUrl": config.callback_url,
                "events": vendor_events,
                "secret": secret,
                "active": True,
                "propertyCode": self.property_code,
                "brandCode": self.brand_code,
                "format": "JSON",
            }
        }

    # Operations with Hyatt-specific behavior

    @log_performance("push_flag")
    async def push_flag(self, guest_id: str, flag: GuestFlag) -> FlagReceipt:
        severity = (flag.severity or "").lower()
        response = await self._request(
            "POST",
            self._path(self.endpoints.guest_alerts, guest_id),
            "push_flag",
            json=self._flag_payload(guest_id, flag),
        )
        if severity == "critical":
            await self._push_find_alert(guest_id, flag)

        return FlagReceipt(
            flag_id=optional_str(first_of(response, *self.alert_id_paths)),
            pms_type=self.vendor_name,
            severity=flag.severity,
            created_at=utc_now_iso(),
            extensions={"operaTraceSet": severity in TRACE_SEVERITIES},
        )

    async def _push_find_alert(self, guest_id: str, flag: GuestFlag) -> bool:
        """Best-effort FIND platform alert; failures never fail the flag push"""
        amount = format_amount(flag.amount) if flag.amount else "N/A"
        payload = {
            "alert": {
                "type": "CHARGEBACK_CRITICAL",
                "guestId": guest_id,
                "message": f"Critical chargeback alert: {flag.reason} | Amount: ${amount}",
                "priority": "IMMEDIATE",
                "source": COMMENT_SOURCE,
            }
        }
        try:
            await self._request(
                "POST", self._path(self.find_alerts_path), "push_find_alert", json=payload
            )
        except Exception as e:
            self.logger.warning("find_alert_failed", guest_id=guest_id, error=str(e))
            return False
        self.logger.info("find_alert_pushed", guest_id=guest_id)
        return True

    def _extract_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = first_of(payload, "data", "details")
        if not isinstance(data, Mapping):
            data = payload
        enriched = {
            "wohNumber": first_of(data, "loyaltyMemberId", "wohNumber"),
            "findExperienceId": data.get("findExperienceId"),
            "brandCode": payload.get("brandCode") or self.brand_code,
            **data,
        }
        return {
            "vendor_event_type": first_of(payload, "eventType", "event", "type"),
            "timestamp": first_of(payload, "timestamp", "createdAt"),
            "property_id": first_of(payload, "propertyCode", "hotelId") or self.property_code,
            "reservation_id": first_of(data, "reservationId", "confirmationNumber"),
            "guest_id": first_of(data, "profileId", "guestId"),
            "data": enriched,
        }

    async def _health_probe(self) -> Dict[str, Any]:
        await self._request(
            "GET", self._path(self.endpoints.health), "health_check", params=self._health_params()
        )
        expires_in = self.token_manager.expires_in()
        return {
            "property_code": self.property_code,
            "brand_code": self.brand_code,
            "brand_name": self.brand_name,
            "token_expires_in": max(0, int(expires_in)) if expires_in is not None else 0,
        }