"""
ChargeGuard PMS Connector Contracts
Universal interface that all PMS adapters must implement
"""

from typing import Protocol, Optional, List, Dict, Any, Union, Mapping, runtime_checkable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# Canonical vocabularies
class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    PENDING = "pending"
    UNKNOWN = "unknown"


class FolioCategory(str, Enum):
    ROOM = "room"
    TAX = "tax"
    INCIDENTAL = "incidental"
    FOOD_BEVERAGE = "food_beverage"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"
    FEE = "fee"
    OTHER = "other"


class CanonicalEvent(str, Enum):
    """Webhook event names shared by every vendor"""

    RESERVATION_CREATED = "reservation.created"
    RESERVATION_UPDATED = "reservation.updated"
    RESERVATION_CANCELLED = "reservation.cancelled"
    GUEST_CHECKED_IN = "guest.checked_in"
    GUEST_CHECKED_OUT = "guest.checked_out"
    PAYMENT_RECEIVED = "payment.received"
    FOLIO_UPDATED = "folio.updated"


class Capabilities(Enum):
    """Standard capability flags"""

    RESERVATIONS = "reservations"
    FOLIOS = "folios"
    PROFILES = "profiles"
    RATES = "rates"
    NOTES = "notes"
    FLAGS = "flags"
    WEBHOOKS = "webhooks"
    LOYALTY = "loyalty"
    MULTI_TENANT = "multi_tenant"


# Domain Models (vendor-agnostic)
@dataclass
class GuestName:
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""


@dataclass
class Address:
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


@dataclass
class PaymentMethod:
    card_brand: str = "Unknown"
    card_last_four: str = ""
    auth_code: str = ""


@dataclass
class Reservation:
    confirmation_number: str
    pms_reservation_id: str
    status: str
    guest_profile_id: str
    guest_name: GuestName
    email: str
    phone: Optional[str]
    address: Address
    check_in_date: Optional[str]
    check_out_date: Optional[str]
    room_number: str
    room_type: str
    rate_code: str
    rate_plan_description: str
    total_amount: float
    currency: str
    number_of_guests: int
    number_of_nights: int
    payment_method: PaymentMethod
    booking_source: str
    created_at: Optional[str]
    updated_at: Optional[str]
    special_requests: str
    loyalty_number: str = ""
    extensions: Dict[str, Any] = field(default_factory=dict)
    pms_raw: Any = None


@dataclass
class FolioItem:
    folio_id: str
    folio_window_number: int
    transaction_id: str
    transaction_code: str
    category: str
    description: str
    amount: float
    currency: str
    post_date: Optional[str]
    card_last_four: str
    auth_code: str
    reference: str
    reversal_flag: bool
    quantity: float
    extensions: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GuestProfile:
    guest_id: str
    name: GuestName
    email: str
    phone: Optional[str]
    address: Address
    vip_code: str = ""
    loyalty_number: str = ""
    loyalty_level: str = ""
    loyalty_points: int = 0
    nationality: str = ""
    language: str = ""
    date_of_birth: Optional[str] = None
    company_name: str = ""
    total_stays: int = 0
    total_revenue: float = 0.0
    last_stay_date: Optional[str] = None
    created_at: Optional[str] = None
    extensions: Dict[str, Any] = field(default_factory=dict)
    pms_raw: Any = None


@dataclass
class Rate:
    rate_code: str
    name: str
    description: str
    category: str
    base_amount: float
    currency: str
    start_date: Optional[str]
    end_date: Optional[str]
    is_active: bool
    room_types: List[Any] = field(default_factory=list)
    inclusions: List[Any] = field(default_factory=list)
    cancellation_policy: Any = ""
    extensions: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReservationDocument:
    """A file attached to a reservation or its guest, e.g. an ID scan"""

    type: str
    file_name: str
    mime_type: str
    description: str
    data: Optional[bytes] = None
    url: Optional[str] = None


@dataclass
class WebhookEvent:
    event_type: str
    vendor_event_type: Optional[str]
    timestamp: str
    reservation_id: Optional[str]
    guest_id: Optional[str]
    property_id: Optional[str]
    data: Dict[str, Any]
    raw: Any


# Operation inputs
@dataclass
class ReservationSearch:
    confirmation_number: Optional[str] = None
    guest_name: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    card_last_four: Optional[str] = None
    status: Optional[str] = None
    loyalty_number: Optional[str] = None
    limit: int = 50


@dataclass
class RateQuery:
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    room_type: Optional[str] = None
    rate_code: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        """Query parameters for REST vendors, omitting unset filters"""
        params = {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "roomType": self.room_type,
            "rateCode": self.rate_code,
        }
        params = {key: value for key, value in params.items() if value}
        params.update(self.extra)
        return params


@dataclass
class Note:
    title: str
    content: str
    priority: str = "medium"  # low, medium, high
    category: Optional[str] = None


@dataclass
class GuestFlag:
    reason: str
    severity: str = "high"  # low, medium, high, critical
    chargeback_id: Optional[str] = None
    amount: Optional[float] = None


@dataclass
class ChargebackAlert:
    case_number: str
    amount: float
    reason_code: str
    dispute_date: str
    status: str


@dataclass
class DisputeOutcome:
    case_number: str
    outcome: str  # WON, LOST
    amount: float
    resolved_date: str

    @property
    def won(self) -> bool:
        return self.outcome.upper() == "WON"


class WebhookSubscriptionRequest(BaseModel):
    """Caller-side webhook subscription request"""

    callback_url: str = Field(..., min_length=1)
    events: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator("callback_url")
    @classmethod
    def validate_callback_url(cls, v):
        if not v.startswith(("https://", "http://")):
            raise ValueError("callback_url must be an absolute http(s) URL")
        return v


# Write receipts
@dataclass
class NoteReceipt:
    note_id: Optional[str]
    pms_type: str
    created_at: str
    success: bool = True


@dataclass
class FlagReceipt:
    flag_id: Optional[str]
    pms_type: str
    severity: str
    created_at: str
    success: bool = True
    extensions: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChargebackAlertReceipt:
    comment_id: Optional[str]
    pms_type: str
    case_number: str
    created_at: str
    success: bool = True


@dataclass
class DisputeOutcomeReceipt:
    comment_id: Optional[str]
    pms_type: str
    outcome: str
    created_at: str
    success: bool = True


@dataclass
class WebhookRegistration:
    webhook_id: Optional[str]
    callback_url: str
    events: List[str]
    secret: str
    created_at: str
    status: str = "active"


# Error types
class PMSError(Exception):
    """Base exception for PMS operations"""

    def __init__(
        self,
        message: str,
        vendor: Optional[str] = None,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.vendor = vendor
        self.operation = operation
        self.status_code = status_code

    def __str__(self) -> str:
        context = [part for part in (self.vendor, self.operation) if part]
        if context:
            return f"[{':'.join(context)}] {self.message}"
        return self.message


class AuthenticationError(PMSError):
    """Failed to authenticate with PMS"""

    pass


class RateLimitError(PMSError):
    """Rate limit exceeded"""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ValidationError(PMSError):
    """Invalid data provided to PMS"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field


class NotFoundError(PMSError):
    """Resource not found in PMS"""

    pass


class TransientError(PMSError):
    """Server error, network failure or timeout that may succeed on retry"""

    pass


class ServiceUnavailableError(PMSError):
    """Circuit breaker is open for this vendor"""

    pass


WebhookBody = Union[str, bytes, Mapping[str, Any]]


# Main Protocol
@runtime_checkable
class PMSAdapter(Protocol):
    """
    Universal PMS adapter interface.
    All network operations are async; webhook parsing and verification are sync.
    """

    @property
    def vendor_name(self) -> str:
        """Return the PMS vendor key (e.g., 'mews', 'hyatt_opera')"""
        ...

    async def authenticate(self) -> None:
        """Acquire credentials and build the authenticated transport"""
        ...

    async def refresh_auth(self) -> None:
        """Refresh credentials and rebuild the transport"""
        ...

    async def get_reservation(self, confirmation_number: str) -> Optional[Reservation]:
        """Fetch one reservation; None when the PMS reports no match"""
        ...

    async def search_reservations(self, search: ReservationSearch) -> List[Reservation]:
        """Search reservations; possibly empty, in PMS order"""
        ...

    async def get_guest_folio(self, reservation_id: str) -> List[FolioItem]:
        """Fetch itemized folio lines for a reservation"""
        ...

    async def get_guest_profile(self, guest_id: str) -> Optional[GuestProfile]:
        """Fetch a guest profile; None when the PMS reports no match"""
        ...

    async def get_rates(self, query: Optional[RateQuery] = None) -> List[Rate]:
        """Fetch rate plans"""
        ...

    async def push_note(self, guest_id: str, note: Note) -> NoteReceipt:
        ...

    async def push_flag(self, guest_id: str, flag: GuestFlag) -> FlagReceipt:
        ...

    async def push_chargeback_alert(
        self, reservation_id: str, alert: ChargebackAlert
    ) -> ChargebackAlertReceipt:
        ...

    async def push_dispute_outcome(
        self, reservation_id: str, outcome: DisputeOutcome
    ) -> DisputeOutcomeReceipt:
        ...

    async def register_webhook(
        self, config: WebhookSubscriptionRequest
    ) -> WebhookRegistration:
        """Subscribe a callback; the returned secret must be persisted by the caller"""
        ...

    def parse_webhook_payload(
        self, headers: Mapping[str, str], body: WebhookBody
    ) -> WebhookEvent:
        ...

    def verify_webhook_signature(
        self, payload: WebhookBody, signature: str, secret: str
    ) -> bool:
        ...

    async def health_check(self) -> Dict[str, Any]:
        """Never raises; returns {healthy, latency_ms, details}"""
        ...
