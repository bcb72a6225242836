"""
Base adapter classes shared by every PMS vendor

``BaseAdapter`` owns configuration, logging, the resilient transport and the
vendor-agnostic parts of the contract (webhook verification and parsing,
health checks, receipts). ``RestVendorAdapter`` implements the full contract
for conventional REST vendors from a declarative endpoint table plus a few
payload hooks. ``OAuthAdapterMixin`` swaps static headers for an OAuth
token manager.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..auth import OAuthClientConfig, OAuthTokenManager, TokenState
from ..config import HubSettings, get_settings
from ..contracts import (
    AuthenticationError,
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
    ReservationSearch,
    WebhookBody,
    WebhookEvent,
    WebhookRegistration,
    WebhookSubscriptionRequest,
)
from ..normalizers import normalize_date
from ..resilience.transport import ResilientTransport, TransportOptions
from ..utils.logging import ConnectorLogger, log_performance
from ..webhooks import (
    EventMap,
    decode_body,
    generate_signing_secret,
    utc_now_iso,
    verify_signature,
    verify_webhook_request,
)
from .mapping import (
    FolioFields,
    ProfileFields,
    RateFields,
    ReservationFields,
    build_folio_items,
    build_profile,
    build_rates,
    build_reservation,
    first_of,
    iter_records,
    reverse_status_table,
)

SOURCE_NAME = "ChargeGuard"
SIGNATURE_LINE = "Generated by ChargeGuard Chargeback Defense System"


def format_amount(amount: Any) -> str:
    """Render an amount the way it reads in a PMS comment (150 or 150.5)"""
    try:
        number = float(amount)
    except (TypeError, ValueError):
        return str(amount)
    return str(int(number)) if number.is_integer() else str(number)


def note_text(note: Note, separator: str = "\n\n") -> str:
    return f"[{note.category or SOURCE_NAME}] {note.title}{separator}{note.content}"


def flag_title(flag: GuestFlag) -> str:
    return f"{SOURCE_NAME} Flag: {(flag.severity or 'high').upper()}"


def flag_message(flag: GuestFlag, prefix: str = "CHARGEBACK ALERT") -> str:
    message = f"{prefix}: {flag.reason}"
    if flag.amount:
        message += f" | Amount: ${format_amount(flag.amount)}"
    if flag.chargeback_id:
        message += f" | Case: {flag.chargeback_id}"
    return message


def chargeback_alert_title(alert: ChargebackAlert) -> str:
    return f"Chargeback Alert - Case {alert.case_number}"


def chargeback_alert_text(alert: ChargebackAlert) -> str:
    return "\n".join(
        [
            "=== CHARGEBACK ALERT ===",
            f"Case #: {alert.case_number}",
            f"Amount: ${format_amount(alert.amount)}",
            f"Reason Code: {alert.reason_code}",
            f"Dispute Date: {alert.dispute_date}",
            f"Status: {alert.status}",
            "---",
            SIGNATURE_LINE,
        ]
    )


def dispute_outcome_title(outcome: DisputeOutcome) -> str:
    return f"Dispute {outcome.outcome} - Case {outcome.case_number}"


def dispute_outcome_text(outcome: DisputeOutcome) -> str:
    return "\n".join(
        [
            f"=== DISPUTE {outcome.outcome} ===",
            f"Case #: {outcome.case_number}",
            f"Outcome: {outcome.outcome}",
            f"Amount: ${format_amount(outcome.amount)} "
            + ("(recovered)" if outcome.won else "(lost)"),
            f"Resolved: {outcome.resolved_date}",
            "---",
            SIGNATURE_LINE,
        ]
    )


@dataclass(frozen=True)
class VendorProfile:
    """Static description of one vendor's API surface"""

    vendor: str
    display_name: str
    base_url: str
    signature_header: str
    events: EventMap
    statuses: Mapping[str, str]  # canonical -> vendor
    requests_per_minute: int = 60

    @property
    def vendor_statuses(self) -> Mapping[str, str]:
        return reverse_status_table(self.statuses)

    def to_vendor_status(self, canonical: Optional[str]) -> Optional[str]:
        if not canonical:
            return None
        return self.statuses.get(canonical, canonical)


@dataclass(frozen=True)
class RestEndpoints:
    """Path templates; ``{property}`` and ``{id}`` are substituted per call"""

    reservations: str
    folio: str
    guest: str
    rates: str
    guest_notes: str
    guest_alerts: str
    reservation_notes: str
    webhooks: str
    health: str
    webhook: Optional[str] = None


class BaseAdapter(ABC):
    """Base class with common functionality for all PMS adapters"""

    vendor_name: str = "unknown"
    profile: VendorProfile
    capabilities: Dict[str, bool] = {}

    def __init__(self, config: Dict[str, Any], settings: Optional[HubSettings] = None):
        self.config = config
        self.settings = settings or get_settings()
        self.hotel_id = config.get("hotel_id")
        self.transport: Optional[ResilientTransport] = None
        self.logger = ConnectorLogger(
            name=f"{self.__class__.__module__}.{self.__class__.__name__}",
            vendor=self.vendor_name,
            hotel_id=self.hotel_id,
        )

    async def __aenter__(self):
        await self.authenticate()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Release the HTTP client"""
        if self.transport is not None:
            await self.transport.aclose()
            self.transport = None

    @property
    def base_url(self) -> str:
        return self.config.get("base_url") or self.profile.base_url

    def transport_options(self) -> TransportOptions:
        """Settings, then the vendor quota, then per-adapter ``options``"""
        overrides: Dict[str, Any] = {
            "rate_limit_capacity": self.profile.requests_per_minute,
            "rate_limit_refill_rate": self.profile.requests_per_minute,
            "rate_limit_interval": 60.0,
        }
        overrides.update(self.config.get("options") or {})
        return TransportOptions.from_settings(self.settings, **overrides)

    @abstractmethod
    async def authenticate(self):
        """Acquire credentials and build the authenticated transport"""

    @abstractmethod
    def auth_headers(self) -> Dict[str, str]:
        """Headers carrying this vendor's credentials"""

    async def _build_transport(self):
        """Replace the transport; the old one closes once its calls drain"""
        previous = self.transport
        self.transport = ResilientTransport(
            vendor=self.vendor_name,
            base_url=self.base_url,
            headers=self.auth_headers(),
            options=self.transport_options(),
            on_auth_failure=self._auth_failure_handler(),
            hotel_id=self.hotel_id,
        )
        if previous is not None:
            await previous.retire()

    def _auth_failure_handler(self):
        return None

    async def _ensure_authenticated(self):
        if self.transport is None:
            raise AuthenticationError(
                "Not authenticated. Call authenticate() first.", vendor=self.vendor_name
            )

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Any:
        await self._ensure_authenticated()
        return await self.transport.request(method, path, operation=operation, **kwargs)

    async def _get_optional(self, path: str, operation: str, **kwargs) -> Any:
        """GET that maps a vendor 404 to None"""
        try:
            return await self._request("GET", path, operation, **kwargs)
        except NotFoundError:
            return None

    async def refresh_auth(self):
        """Static-credential vendors only need a fresh transport"""
        await self._build_transport()
        self.logger.info("transport_rebuilt")

    # Webhooks

    def verify_webhook_signature(self, payload: WebhookBody, signature: str, secret: str) -> bool:
        return verify_signature(payload, signature, secret)

    def verify_webhook_request(
        self, headers: Mapping[str, str], body: WebhookBody, secret: str
    ) -> bool:
        """Verify using this vendor's signature header"""
        return verify_webhook_request(headers, body, secret, self.profile.signature_header)

    def parse_webhook_payload(self, headers: Mapping[str, str], body: WebhookBody) -> WebhookEvent:
        """
        Decode a vendor webhook into a canonical WebhookEvent.

        Raises:
            ValidationError: body is not a JSON object
        """
        payload = decode_body(body, vendor=self.vendor_name)
        fields = self._extract_event(payload)
        vendor_event = fields.get("vendor_event_type")
        return WebhookEvent(
            event_type=self.profile.events.to_canonical(vendor_event) or "unknown",
            vendor_event_type=vendor_event,
            timestamp=normalize_date(fields.get("timestamp")) or utc_now_iso(),
            reservation_id=optional_str(fields.get("reservation_id")),
            guest_id=optional_str(fields.get("guest_id")),
            property_id=optional_str(fields.get("property_id")),
            data=fields.get("data") or {},
            raw=payload,
        )

    @abstractmethod
    def _extract_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Vendor event fields: vendor_event_type, timestamp, ids and data"""

    async def register_webhook(self, config: WebhookSubscriptionRequest) -> WebhookRegistration:
        """Subscribe a callback; the generated secret is returned once"""
        secret = generate_signing_secret()
        vendor_events = self.profile.events.to_vendor_list(config.events)
        response = await self._submit_webhook(config, vendor_events, secret)
        webhook_id = self._webhook_id(response)

        self.logger.info(
            "webhook_registered", webhook_id=webhook_id, events=vendor_events
        )
        return WebhookRegistration(
            webhook_id=webhook_id,
            callback_url=config.callback_url,
            events=list(config.events),
            secret=secret,
            created_at=utc_now_iso(),
            status="active",
        )

    @abstractmethod
    async def _submit_webhook(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Any:
        ...

    def _webhook_id(self, response: Any) -> Optional[str]:
        return optional_str(first_of(response, "webhookId", "WebhookId", "id", "Id"))

    # Health

    async def _health_probe(self) -> Dict[str, Any]:
        """Cheap authenticated call; returns extra health details"""
        return {}

    async def health_check(self) -> Dict[str, Any]:
        """Never raises; returns {healthy, latency_ms, details}"""
        start = time.monotonic()
        details: Dict[str, Any] = {"pms_type": self.vendor_name}
        try:
            await self._ensure_authenticated()
            details.update(await self._health_probe())
            healthy = True
        except Exception as e:
            healthy = False
            details["error"] = str(e)
            self.logger.warning("health_check_failed", error=str(e))

        if self.transport is not None:
            details.update(self.transport.state())
        else:
            details["circuit_breaker"] = {"state": "closed", "failure_count": 0, "success_count": 0}

        return {
            "healthy": healthy,
            "latency_ms": round((time.monotonic() - start) * 1000, 2),
            "details": details,
        }


class RestVendorAdapter(BaseAdapter):
    """
    Contract implementation for conventional REST vendors.

    Subclasses supply ``endpoints``, field tables, the property identifier
    and payload hooks for their write formats.
    """

    endpoints: RestEndpoints
    reservation_fields: ReservationFields
    folio_fields: FolioFields
    profile_fields: ProfileFields
    rate_fields: RateFields
    reservation_list_paths: Tuple[str, ...] = ("reservations", "data")
    note_id_paths: Tuple[str, ...] = ("noteId", "NoteId", "id", "Id")
    alert_id_paths: Tuple[str, ...] = ("alertId", "AlertId", "id", "Id")
    comment_id_paths: Tuple[str, ...] = ("noteId", "NoteId", "commentId", "id", "Id")

    @property
    @abstractmethod
    def property_code(self) -> str:
        ...

    def _path(self, template: str, id: Any = None) -> str:
        return template.format(property=self.property_code, id=id)

    # Hooks for vendor request and payload shapes

    @abstractmethod
    def _lookup_params(self, confirmation_number: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _search_params(self, search: ReservationSearch) -> Dict[str, Any]:
        ...

    def _folio_params(self, reservation_id: str) -> Optional[Dict[str, Any]]:
        return None

    def _guest_params(self) -> Optional[Dict[str, Any]]:
        return None

    def _rate_params(self, query: RateQuery) -> Dict[str, Any]:
        return query.to_params()

    @abstractmethod
    def _note_payload(self, guest_id: str, note: Note) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _flag_payload(self, guest_id: str, flag: GuestFlag) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _chargeback_alert_payload(self, reservation_id: str, alert: ChargebackAlert) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _dispute_outcome_payload(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _webhook_payload(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Dict[str, Any]:
        ...

    def _reservation_extensions(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        return {}

    def _profile_extensions(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        return {}

    def normalize_reservation(self, raw: Any) -> Optional[Reservation]:
        if not isinstance(raw, Mapping) or not raw:
            return None
        return build_reservation(
            raw,
            self.reservation_fields,
            vendor_statuses=self.profile.vendor_statuses,
            extensions=self._reservation_extensions(raw),
        )

    def normalize_folio_items(self, data: Any) -> List[FolioItem]:
        return build_folio_items(data, self.folio_fields)

    def normalize_guest_profile(self, data: Any) -> Optional[GuestProfile]:
        if not isinstance(data, Mapping) or not data:
            return None
        return build_profile(data, self.profile_fields, self._profile_extensions(data))

    def normalize_rates(self, data: Any) -> List[Rate]:
        return build_rates(data, self.rate_fields)

    # Contract operations

    @log_performance("get_reservation")
    async def get_reservation(self, confirmation_number: str) -> Optional[Reservation]:
        data = await self._get_optional(
            self._path(self.endpoints.reservations),
            "get_reservation",
            params=self._lookup_params(confirmation_number),
        )
        for record in iter_records(data, self.reservation_list_paths):
            reservation = self.normalize_reservation(record)
            # an empty result wrapper normalizes to a record with no identifiers
            if reservation is not None and (
                reservation.confirmation_number or reservation.pms_reservation_id
            ):
                return reservation
        return None

    @log_performance("search_reservations")
    async def search_reservations(self, search: ReservationSearch) -> List[Reservation]:
        data = await self._request(
            "GET",
            self._path(self.endpoints.reservations),
            "search_reservations",
            params=self._search_params(search),
        )
        records = iter_records(data, self.reservation_list_paths)
        return [
            reservation
            for reservation in (self.normalize_reservation(record) for record in records)
            if reservation is not None
        ]

    @log_performance("get_guest_folio")
    async def get_guest_folio(self, reservation_id: str) -> List[FolioItem]:
        data = await self._request(
            "GET",
            self._path(self.endpoints.folio, reservation_id),
            "get_guest_folio",
            params=self._folio_params(reservation_id),
        )
        return self.normalize_folio_items(data)

    @log_performance("get_guest_profile")
    async def get_guest_profile(self, guest_id: str) -> Optional[GuestProfile]:
        data = await self._get_optional(
            self._path(self.endpoints.guest, guest_id),
            "get_guest_profile",
            params=self._guest_params(),
        )
        return self.normalize_guest_profile(data)

    @log_performance("get_rates")
    async def get_rates(self, query: Optional[RateQuery] = None) -> List[Rate]:
        data = await self._request(
            "GET",
            self._path(self.endpoints.rates),
            "get_rates",
            params=self._rate_params(query or RateQuery()),
        )
        return self.normalize_rates(data)

    @log_performance("push_note")
    async def push_note(self, guest_id: str, note: Note) -> NoteReceipt:
        response = await self._request(
            "POST",
            self._path(self.endpoints.guest_notes, guest_id),
            "push_note",
            json=self._note_payload(guest_id, note),
        )
        return NoteReceipt(
            note_id=optional_str(first_of(response, *self.note_id_paths)),
            pms_type=self.vendor_name,
            created_at=utc_now_iso(),
        )

    @log_performance("push_flag")
    async def push_flag(self, guest_id: str, flag: GuestFlag) -> FlagReceipt:
        response = await self._request(
            "POST",
            self._path(self.endpoints.guest_alerts, guest_id),
            "push_flag",
            json=self._flag_payload(guest_id, flag),
        )
        return FlagReceipt(
            flag_id=optional_str(first_of(response, *self.alert_id_paths)),
            pms_type=self.vendor_name,
            severity=flag.severity,
            created_at=utc_now_iso(),
        )

    @log_performance("push_chargeback_alert")
    async def push_chargeback_alert(
        self, reservation_id: str, alert: ChargebackAlert
    ) -> ChargebackAlertReceipt:
        response = await self._request(
            "POST",
            self._path(self.endpoints.reservation_notes, reservation_id),
            "push_chargeback_alert",
            json=self._chargeback_alert_payload(reservation_id, alert),
        )
        return ChargebackAlertReceipt(
            comment_id=optional_str(first_of(response, *self.comment_id_paths)),
            pms_type=self.vendor_name,
            case_number=alert.case_number,
            created_at=utc_now_iso(),
        )

    @log_performance("push_dispute_outcome")
    async def push_dispute_outcome(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> DisputeOutcomeReceipt:
        response = await self._request(
            "POST",
            self._path(self.endpoints.reservation_notes, reservation_id),
            "push_dispute_outcome",
            json=self._dispute_outcome_payload(reservation_id, outcome),
        )
        return DisputeOutcomeReceipt(
            comment_id=optional_str(first_of(response, *self.comment_id_paths)),
            pms_type=self.vendor_name,
            outcome=outcome.outcome,
            created_at=utc_now_iso(),
        )

    async def _submit_webhook(
        self, config: WebhookSubscriptionRequest, vendor_events: List[str], secret: str
    ) -> Any:
        return await self._request(
            "POST",
            self._path(self.endpoints.webhooks),
            "register_webhook",
            json=self._webhook_payload(config, vendor_events, secret),
        )

    async def deregister_webhook(self, webhook_id: str) -> None:
        """Remove a webhook subscription"""
        template = self.endpoints.webhook or self.endpoints.webhooks + "/{id}"
        await self._request("DELETE", self._path(template, webhook_id), "deregister_webhook")
        self.logger.info("webhook_deregistered", webhook_id=webhook_id)

    async def authenticate(self):
        """Build the transport and confirm the credentials with a cheap call"""
        await self._build_transport()
        try:
            await self._request(
                "GET", self._path(self.endpoints.health), "authenticate", params=self._health_params()
            )
        except PMSError as e:
            raise AuthenticationError(
                f"{self.profile.display_name} authentication failed: {e.message}",
                vendor=self.vendor_name,
                operation="authenticate",
                status_code=e.status_code,
            ) from e
        self.logger.info("authenticated")

    async def _health_probe(self) -> Dict[str, Any]:
        await self._request(
            "GET", self._path(self.endpoints.health), "health_check", params=self._health_params()
        )
        return {"property_code": self.property_code}

    def _health_params(self) -> Optional[Dict[str, Any]]:
        return None


class OAuthAdapterMixin:
    """
    OAuth2 credential handling for BaseAdapter subclasses.

    Subclasses provide ``oauth_client_config()``. The transport is rebuilt
    whenever the token manager issues a new token.
    """

    token_manager: OAuthTokenManager
    _transport_token_version: int = -1

    def _init_oauth(self):
        self.token_manager = OAuthTokenManager(
            vendor=self.vendor_name,
            config=self.oauth_client_config(),
            timeout=self.settings.auth_timeout,
            refresh_margin=self.settings.token_refresh_margin,
            logger=self.logger,
        )
        self.token_manager.seed(
            access_token=self.config.get("access_token"),
            refresh_token=self.config.get("refresh_token"),
            expires_at=self.config.get("expires_at"),
        )

    def oauth_client_config(self) -> OAuthClientConfig:
        raise NotImplementedError

    def bearer_headers(self) -> Dict[str, str]:
        token = self.token_manager.access_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _sync_transport(self):
        if (
            self.transport is None
            or self._transport_token_version != self.token_manager.version
        ):
            self._transport_token_version = self.token_manager.version
            await self._build_transport()

    async def authenticate(self):
        """Obtain a token (refresh grant first when one is held) and build the transport"""
        await self.token_manager.ensure_valid()
        await self._sync_transport()
        self.logger.info("authenticated", expires_in=self.token_manager.expires_in())

    async def refresh_auth(self):
        """Force a new token and rebuild the transport"""
        await self.token_manager.refresh(force=True)
        await self._sync_transport()

    async def _ensure_authenticated(self):
        if self.token_manager.state == TokenState.NO_TOKEN and self.transport is None:
            raise AuthenticationError(
                "Not authenticated. Call authenticate() first.", vendor=self.vendor_name
            )
        await self.token_manager.ensure_valid()
        await self._sync_transport()

    def _auth_failure_handler(self):
        async def handle_401() -> Mapping[str, str]:
            await self.token_manager.refresh(force=True)
            headers = self.auth_headers()
            await self._sync_transport()
            return headers

        return handle_401


def optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)

