"""
Mews Connector for ChargeGuard
Mews Connector API v1: every endpoint is a POST with a JSON body carrying
ClientToken, AccessToken and Client. Customers come back beside reservations
and are joined client-side.
"""

import asyncio
import base64
import binascii
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from ...contracts import (
    AuthenticationError,
    Capabilities,
    ChargebackAlert,
    ChargebackAlertReceipt,
    DisputeOutcome,
    DisputeOutcomeReceipt,
    FlagReceipt,
    FolioItem,
    GuestFlag,
    GuestProfile,
    Note,
    NoteReceipt,
    NotFoundError,
    PMSError,
    Rate,
    RateQuery,
    Reservation,
    ReservationDocument,
    ReservationSearch,
    WebhookSubscriptionRequest,
)
from ...normalizers import normalize_amount, normalize_currency, normalize_date
from ...utils.logging import log_performance
from ...webhooks import EventMap, utc_now_iso
from ..base import (
    BaseAdapter,
    VendorProfile,
    chargeback_alert_text,
    dispute_outcome_text,
    flag_message,
    note_text,
    optional_str,
)
from ..mapping import (
    FolioFields,
    ProfileFields,
    RateFields,
    ReservationFields,
    as_list,
    build_folio_items,
    build_profile,
    build_rate,
    build_reservation,
    first_of,
    get_path,
)

SEARCH_WINDOW = timedelta(days=30)
FLAG_CLASSIFICATION = "Problematic"
BLOCK_CLASSIFICATION = "Blacklisted"

MEWS_PROFILE = VendorProfile(
    vendor="mews",
    display_name="Mews",
    base_url="https://api.mews.com/api/connector/v1",
    signature_header="X-Mews-Signature",
    events=EventMap(
        {
            "ReservationCreated": "reservation.created",
            "ReservationUpdated": "reservation.updated",
            "ReservationCanceled": "reservation.cancelled",
            "ReservationStarted": "guest.checked_in",
            "ReservationProcessed": "guest.checked_out",
            "PaymentCreated": "payment.received",
            "BillUpdated": "folio.updated",
            "CustomerCreated": "guest.created",
            "CustomerUpdated": "guest.updated",
        }
    ),
    # Mews has no separate no-show state
    statuses={
        "confirmed": "Confirmed",
        "checked_in": "Started",
        "checked_out": "Processed",
        "cancelled": "Canceled",
        "no_show": "Canceled",
        "pending": "Optional",
    },
    requests_per_minute=120,
)


class MewsConnector(BaseAdapter):
    """Mews Connector API adapter (token-in-body RPC)"""

    vendor_name = "mews"
    profile = MEWS_PROFILE

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

    reservation_fields = ReservationFields(
        confirmation_number=("Id", "Number"),
        reservation_id=("Id",),
        status=("State", "Status"),
        guest_id=("CustomerId", "CompanionIds.0"),
        first_name=("@customer.FirstName",),
        last_name=("@customer.LastName",),
        email=("@customer.Email",),
        phone=("@customer.Phone", "@customer.CellPhone"),
        address=("@customer.Address",),
        check_in=("StartUtc", "CheckInUtc"),
        check_out=("EndUtc", "CheckOutUtc"),
        room_number=("AssignedResourceId", "RoomNumber"),
        room_type=("RequestedCategoryId", "RoomCategoryId"),
        rate_code=("RateId",),
        rate_description=(),
        total_amount=("TotalAmount", "Cost"),
        currency=("Currency", "CurrencyCode"),
        number_of_guests=("AdultCount",),
        card_brand=("@customer.PaymentCardType",),
        card_last_four=("@customer.PaymentCardLast4",),
        booking_source=("Origin",),
        created_at=("CreatedUtc",),
        updated_at=("UpdatedUtc",),
        special_requests=("Notes",),
        loyalty_number=("@customer.LoyaltyCode",),
    )

    bill_fields = FolioFields(
        folios=("Bills",),
        items=("Items", "Revenue"),
        folio_id=("@folio.Id",),
        window_number=(),
        transaction_id=("Id",),
        transaction_code=("AccountingCategoryId",),
        category=("Type", "Category", "Name"),
        description=("Name", "Description"),
        amount=("Amount.Value", "Amount", "TotalAmount"),
        currency=("Amount.Currency", "Currency"),
        post_date=("ConsumedUtc", "CreatedUtc"),
        card_last_four=(),
        auth_code=(),
        reference=("OrderId",),
        reversal=("IsCorrection",),
        quantity=("Count",),
    )

    profile_fields = ProfileFields(
        root=(),
        guest_id=("Id",),
        first_name=("FirstName",),
        last_name=("LastName",),
        email=("Email",),
        phone=("Phone", "CellPhone"),
        address=("Address",),
        vip_code=("Loyalty.Code",),
        loyalty_number=("LoyaltyCode", "Loyalty.MembershipId"),
        loyalty_level=("Loyalty.Level",),
        nationality=("NationalityCode", "Nationality"),
        language=("LanguageCode", "Language"),
        date_of_birth=("BirthDateUtc", "BirthDate"),
        company_name=("CompanyId",),
        total_stays=("Statistics.TotalStays",),
        total_revenue=("Statistics.TotalRevenue",),
        last_stay_date=("Statistics.LastStayDate",),
        created_at=("CreatedUtc",),
    )

    rate_fields = RateFields(
        rates=("Rates",),
        rate_code=("Id",),
        name=("Name.en", "Name"),
        description=("Description.en", "Description"),
        category=("Type",),
        base_amount=("Price.Value", "BasePrice"),
        currency=("Price.Currency", "Currency"),
        start_date=("StartUtc", "ValidFrom"),
        end_date=("EndUtc", "ValidTo"),
        active_flag=("IsActive",),
        status=(),
        room_types=("ApplicableCategoryIds",),
        inclusions=("IncludedProducts",),
        cancellation_policy=("CancellationPolicy",),
    )

    def __init__(self, config: Dict[str, Any], settings=None):
        super().__init__(config, settings)
        self.enterprise_id = config.get("enterprise_id") or ""
        self.enterprise_name = ""

    @property
    def client_name(self) -> str:
        return self.config.get("client") or self.settings.client_name

    def auth_headers(self) -> Dict[str, str]:
        # Credentials travel in the request body
        return {}

    def _body(self, **fields: Any) -> Dict[str, Any]:
        return {
            "ClientToken": self.config.get("client_token", ""),
            "AccessToken": self.config.get("access_token", ""),
            "Client": self.client_name,
            **fields,
        }

    async def _rpc(self, path: str, operation: str, **fields: Any) -> Any:
        return await self._request("POST", path, operation, json=self._body(**fields))

    async def _load_configuration(self, operation: str):
        data = await self._rpc("/configuration/get", operation)
        enterprise = first_of(data, "Enterprise") or {}
        self.enterprise_id = first_of(enterprise, "Id") or self.enterprise_id
        self.enterprise_name = first_of(enterprise, "Name") or self.enterprise_name

    async def authenticate(self):
        """Mews tokens are static; confirm them with a configuration read"""
        await self._build_transport()
        try:
            await self._load_configuration("authenticate")
        except PMSError as e:
            raise AuthenticationError(
                f"Mews authentication failed: {e.message}",
                vendor=self.vendor_name,
                operation="authenticate",
                status_code=e.status_code,
            ) from e
        self.logger.info("authenticated", enterprise_id=self.enterprise_id)

    # Normalization

    def normalize_reservation(
        self, raw: Any, customers: Optional[Mapping[str, Any]] = None
    ) -> Optional[Reservation]:
        if not isinstance(raw, Mapping) or not raw:
            return None
        customer_id = first_of(raw, *self.reservation_fields.guest_id)
        customer = (customers or {}).get(customer_id) or {}

        reservation = build_reservation(
            raw,
            self.reservation_fields,
            vendor_statuses=self.profile.vendor_statuses,
            extensions={"group_name": first_of(raw, "GroupName", "TravelAgencyId") or ""},
            bound={"customer": customer},
        )
        if not raw.get("AdultCount"):
            reservation.number_of_guests = len(as_list(raw.get("CompanionIds"))) + 1
        if raw.get("ChannelManagerNumber"):
            reservation.booking_source = "OTA"
        elif not reservation.booking_source:
            reservation.booking_source = "direct"
        return reservation

    def normalize_folio_items(self, data: Any) -> List[FolioItem]:
        """Bill items first, then payments"""
        items = build_folio_items(data, self.bill_fields)
        for payment in as_list(first_of(data, "Payments", default=[])):
            if isinstance(payment, Mapping):
                items.append(self._payment_item(payment))
        return items

    @staticmethod
    def _payment_item(payment: Mapping[str, Any]) -> FolioItem:
        card_number = get_path(payment, "CreditCard.ObfuscatedNumber")
        return FolioItem(
            folio_id=str(payment.get("BillId") or ""),
            folio_window_number=1,
            transaction_id=str(payment.get("Id") or ""),
            transaction_code="PAYMENT",
            category="payment",
            description=f"Payment - {payment.get('Type') or 'Card'}",
            amount=normalize_amount(first_of(payment, "Amount.Value", "Amount")),
            currency=normalize_currency(first_of(payment, "Amount.Currency", "Currency")),
            post_date=normalize_date(first_of(payment, "CreatedUtc", "SettledUtc")),
            card_last_four=str(card_number)[-4:] if card_number else "",
            auth_code=str(get_path(payment, "CreditCard.AuthorizationCode") or ""),
            reference=str(payment.get("ReceiptIdentifier") or ""),
            reversal_flag=payment.get("State") in ("Canceled", "Failed"),
            quantity=1.0,
        )

    def normalize_guest_profile(self, data: Any) -> Optional[GuestProfile]:
        if not isinstance(data, Mapping) or not data:
            return None
        return build_profile(
            data,
            self.profile_fields,
            extensions={"classifications": as_list(data.get("Classifications"))},
        )

    def normalize_rates(self, data: Any) -> List[Rate]:
        """Rates grouped under active or reservable services, else every rate"""
        raw_rates = [
            rate for rate in as_list(first_of(data, "Rates", default=[])) if isinstance(rate, Mapping)
        ]
        rates: List[Rate] = []
        for service in as_list(first_of(data, "Services", default=[])):
            if not isinstance(service, Mapping):
                continue
            if service.get("Type") != "Reservable" and not service.get("IsActive"):
                continue
            service_name = first_of(service, "Name.en", "Name") or ""
            for raw in raw_rates:
                if raw.get("ServiceId") != service.get("Id"):
                    continue
                rate = build_rate(raw, self.rate_fields)
                rate.name = rate.name or str(service_name)
                rate.category = rate.category or str(service.get("Type") or "")
                rate.extensions = {"service_id": service.get("Id")}
                rates.append(rate)

        if not rates:
            rates = [build_rate(raw, self.rate_fields) for raw in raw_rates]
        return rates

    def _customers_by_id(self, data: Any) -> Dict[str, Any]:
        return {
            customer["Id"]: customer
            for customer in as_list(first_of(data, "Customers", default=[]))
            if isinstance(customer, Mapping) and customer.get("Id")
        }

    # Contract operations

    @log_performance("get_reservation")
    async def get_reservation(self, confirmation_number: str) -> Optional[Reservation]:
        try:
            data = await self._rpc(
                "/reservations/getAll",
                "get_reservation",
                ReservationIds=[confirmation_number],
                Extent={"Reservations": True, "Customers": True, "Items": True, "Services": True},
            )
        except NotFoundError:
            return None
        records = as_list(first_of(data, "Reservations", default=[]))
        if not records:
            return None
        return self.normalize_reservation(records[0], self._customers_by_id(data))

    def _search_body(self, search: ReservationSearch) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        default_start = (now - SEARCH_WINDOW).isoformat()
        body: Dict[str, Any] = {
            "Extent": {"Reservations": True, "Customers": True, "Items": True},
            "Limitation": {"Count": search.limit or 50},
        }
        if search.check_in_date or search.check_out_date:
            body["TimeFilter"] = "Start"
            body["StartUtc"] = normalize_date(search.check_in_date) or default_start
            body["EndUtc"] = normalize_date(search.check_out_date) or now.isoformat()
        else:
            body["TimeFilter"] = "Updated"
            body["StartUtc"] = default_start
            body["EndUtc"] = now.isoformat()

        if search.confirmation_number:
            body["ReservationIds"] = [search.confirmation_number]
        if search.status:
            body["States"] = [self.profile.to_vendor_status(search.status)]
        return body

    @log_performance("search_reservations")
    async def search_reservations(self, search: ReservationSearch) -> List[Reservation]:
        data = await self._rpc(
            "/reservations/getAll", "search_reservations", **self._search_body(search)
        )
        customers = self._customers_by_id(data)
        reservations = [
            reservation
            for reservation in (
                self.normalize_reservation(raw, customers)
                for raw in as_list(first_of(data, "Reservations", default=[]))
            )
            if reservation is not None
        ]

        # Mews cannot filter these server-side
        if search.guest_name:
            needle = search.guest_name.lower()
            reservations = [r for r in reservations if needle in r.guest_name.full_name.lower()]
        if search.card_last_four:
            reservations = [
                r for r in reservations if r.payment_method.card_last_four == search.card_last_four
            ]
        return reservations

    @log_performance("get_guest_folio")
    async def get_guest_folio(self, reservation_id: str) -> List[FolioItem]:
        bills, payments = await asyncio.gather(
            self._rpc(
                "/bills/getAll",
                "get_guest_folio",
                ReservationIds=[reservation_id],
                Extent={"Bills": True, "Items": True},
            ),
            self._rpc("/payments/getAll", "get_guest_folio", ReservationIds=[reservation_id]),
        )
        return self.normalize_folio_items(
            {
                "Bills": first_of(bills, "Bills", default=[]),
                "Payments": first_of(payments, "Payments", default=[]),
            }
        )

    @log_performance("get_guest_profile")
    async def get_guest_profile(self, guest_id: str) -> Optional[GuestProfile]:
        try:
            data = await self._rpc(
                "/customers/getAll",
                "get_guest_profile",
                CustomerIds=[guest_id],
                Extent={"Customers": True, "Addresses": True, "Documents": True},
            )
        except NotFoundError:
            return None
        customers = as_list(first_of(data, "Customers", default=[]))
        if not customers:
            return None
        return self.normalize_guest_profile(customers[0])

    @log_performance("get_rates")
    async def get_rates(self, query: Optional[RateQuery] = None) -> List[Rate]:
        extra = dict(query.extra) if query else {}
        data = await self._rpc(
            "/services/getAll", "get_rates", Extent={"Services": True, "Rates": True}, **extra
        )
        return self.normalize_rates(data)

    @staticmethod
    def normalize_documents(data: Any) -> List[ReservationDocument]:
        documents = []
        for raw in as_list(first_of(data, "Documents", default=[])):
            if not isinstance(raw, Mapping):
                continue
            content = raw.get("Content")
            try:
                decoded = base64.b64decode(content, validate=True) if content else None
            except (binascii.Error, TypeError, ValueError):
                decoded = None
            documents.append(
                ReservationDocument(
                    type=str(raw.get("Type") or "other"),
                    file_name=str(raw.get("FileName") or f"mews_doc_{raw.get('Id')}"),
                    mime_type=str(raw.get("ContentType") or "application/octet-stream"),
                    description=str(raw.get("Name") or raw.get("Type") or ""),
                    data=decoded,
                )
            )
        return documents

    @log_performance("get_reservation_documents")
    async def get_reservation_documents(self, reservation_id: str) -> List[ReservationDocument]:
        """
        Documents held on the reservation's customer (ID scans and the like).

        Mews has no per-reservation document store, so this resolves the
        reservation's customer and reads that customer's documents.
        """
        reservation = await self.get_reservation(reservation_id)
        if reservation is None or not reservation.guest_profile_id:
            return []

        data = await self._rpc(
            "/customers/getAll",
            "get_reservation_documents",
            CustomerIds=[reservation.guest_profile_id],
            Extent={"Documents": True},
        )
        return self.normalize_documents(data)

    async def _update_customer(self, guest_id: str, operation: str, **update: Any) -> Any:
        return await self._rpc(
            "/customers/update",
            operation,
            CustomerUpdates=[{"CustomerId": guest_id, **update}],
        )

    async def _update_reservation_notes(self, reservation_id: str, operation: str, text: str) -> Any:
        return await self._rpc(
            "/reservations/update",
            operation,
            ReservationUpdates=[{"ReservationId": reservation_id, "Notes": {"Value": text}}],
        )

    @log_performance("push_note")
    async def push_note(self, guest_id: str, note: Note) -> NoteReceipt:
        update: Dict[str, Any] = {"Notes": {"Value": note_text(note, separator="\n")}}
        if (note.priority or "").lower() == "high":
            update["Classifications"] = {"Value": [FLAG_CLASSIFICATION]}
        response = await self._update_customer(guest_id, "push_note", **update)
        return NoteReceipt(
            note_id=optional_str(first_of(response, "Customers.0.Id")) or guest_id,
            pms_type=self.vendor_name,
            created_at=utc_now_iso(),
        )

    @log_performance("push_flag")
    async def push_flag(self, guest_id: str, flag: GuestFlag) -> FlagReceipt:
        classifications = [FLAG_CLASSIFICATION]
        if (flag.severity or "").lower() in ("high", "critical"):
            classifications.append(BLOCK_CLASSIFICATION)
        response = await self._update_customer(
            guest_id,
            "push_flag",
            Classifications={"Value": classifications},
            Notes={"Value": flag_message(flag, prefix="CHARGEGUARD FLAG")},
        )
        return FlagReceipt(
            flag_id=optional_str(first_of(response, "Customers.0.Id")) or guest_id,
            pms_type=self.vendor_name,
            severity=flag.severity,
            created_at=utc_now_iso(),
            extensions={"classifications": classifications},
        )

    @log_performance("push_chargeback_alert")
    async def push_chargeback_alert(
        self, reservation_id: str, alert: ChargebackAlert
    ) -> ChargebackAlertReceipt:
        await self._update_reservation_notes(
            reservation_id, "push_chargeback_alert", chargeback_alert_text(alert)
        )
        return ChargebackAlertReceipt(
            comment_id=reservation_id,
            pms_type=self.vendor_name,
            case_number=alert.case_number,
            created_at=utc_now_iso(),
        )

    @log_performance("push_dispute_outcome")
    async def push_dispute_outcome(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> DisputeOutcomeReceipt:
        await self._update_reservation_notes(
            reservation_id, "push_dispute_outcome", dispute_outcome_text(outcome)
        )
        return DisputeOutcomeReceipt(
            comment_id=reservation_id,
            pms_type=self.vendor_name,
            outcome=outcome.outcome,
            created_at=utc_now_iso(),
        )

    # Webhooks

    async def _submit_webhook(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Any:
        return await self._rpc(
            "/webhooks/subscribe",
            "register_webhook",
            Url=config.callback_url,
            Events=vendor_events,
            IsActive=True,
            SigningSecret=secret,
        )

    async def deregister_webhook(self, webhook_id: str) -> None:
        """Remove a webhook subscription"""
        await self._rpc("/webhooks/unsubscribe", "deregister_webhook", WebhookIds=[webhook_id])
        self.logger.info("webhook_deregistered", webhook_id=webhook_id)

    def _extract_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        events = [event for event in as_list(payload.get("Events") or [payload]) if isinstance(event, Mapping)]
        first = events[0] if events else {}
        return {
            "vendor_event_type": first_of(first, "Type", "Event"),
            "timestamp": first_of(payload, "CreatedUtc", "Timestamp"),
            "property_id": payload.get("EnterpriseId") or self.enterprise_id or None,
            "reservation_id": first_of(first, "EntityId", "ReservationId"),
            "guest_id": first.get("CustomerId"),
            "data": {
                "entityType": first.get("EntityType"),
                "events": [
                    {
                        "type": self.profile.events.to_canonical(first_of(event, "Type", "Event")),
                        "entityId": first_of(event, "EntityId", "Id"),
                        "entityType": event.get("EntityType"),
                    }
                    for event in events
                ],
            },
        }

    async def _health_probe(self) -> Dict[str, Any]:
        await self._load_configuration("health_check")
        return {"enterprise_id": self.enterprise_id, "enterprise_name": self.enterprise_name}
