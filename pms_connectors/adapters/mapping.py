"""
Data-driven field mapping for vendor payloads

Each adapter declares, per canonical field, an ordered tuple of candidate
paths into the vendor payload. Paths are dotted (``roomStays.0.total.amount``);
a leading ``@name`` starts from a named scope, which is itself resolved from
candidate paths (``{"guest": ("guest", "primaryGuest")}``). The builders take
the first non-empty candidate and hand it to the normalization library.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..contracts import FolioItem, GuestName, GuestProfile, PaymentMethod, Rate, Reservation
from ..normalizers import (
    calculate_nights,
    normalize_address,
    normalize_amount,
    normalize_card_brand,
    normalize_currency,
    normalize_date,
    normalize_folio_category,
    normalize_guest_name,
    normalize_phone,
    normalize_reservation_status,
    sanitize_pii,
)

Paths = Tuple[str, ...]


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, dict)) and not value)


def get_path(data: Any, path: str) -> Any:
    """Walk a dotted path through mappings and lists; None when absent"""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def first_of(data: Any, *paths: str, default: Any = None) -> Any:
    """First non-empty value among candidate paths"""
    for path in paths:
        value = get_path(data, path)
        if not is_empty(value):
            return value
    return default


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def to_str(value: Any) -> str:
    return "" if value is None else str(value)


def to_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def to_float(value: Any, default: float = 1.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def is_truthy_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().upper() in ("Y", "YES", "TRUE")


class FieldResolver:
    """Resolves candidate paths against a payload and its named scopes"""

    def __init__(
        self,
        data: Any,
        scopes: Mapping[str, Sequence[str]] = MappingProxyType({}),
        bound: Optional[Mapping[str, Any]] = None,
    ):
        self.data = data if data is not None else {}
        self._scopes: Dict[str, Any] = dict(bound or {})
        # scopes may refer to scopes declared before them
        for name, paths in scopes.items():
            self._scopes[name] = self.get(*paths, default={})

    def _resolve(self, path: str) -> Any:
        if path.startswith("@"):
            name, _, rest = path[1:].partition(".")
            base = self._scopes.get(name)
            return get_path(base, rest) if rest else base
        return get_path(self.data, path)

    def get(self, *paths: str, default: Any = None) -> Any:
        for path in paths:
            value = self._resolve(path)
            if not is_empty(value):
                return value
        return default

    def text(self, *paths: str) -> str:
        return to_str(self.get(*paths))

    def any_flag(self, *paths: str) -> bool:
        return any(is_truthy_flag(self._resolve(path)) for path in paths)


def reverse_status_table(canonical_to_vendor: Mapping[str, str]) -> Mapping[str, str]:
    """Vendor status -> canonical; the first canonical status listed wins"""
    reverse: Dict[str, str] = {}
    for canonical, vendor_status in canonical_to_vendor.items():
        reverse.setdefault(vendor_status.upper(), canonical)
    return MappingProxyType(reverse)


def resolve_status(value: Any, vendor_statuses: Optional[Mapping[str, str]] = None) -> str:
    if vendor_statuses and isinstance(value, str) and value.strip().upper() in vendor_statuses:
        return vendor_statuses[value.strip().upper()]
    return normalize_reservation_status(value)


@dataclass(frozen=True)
class ReservationFields:
    """Candidate paths for each Reservation field"""

    scopes: Mapping[str, Paths] = field(default_factory=dict)
    confirmation_number: Paths = ("confirmationNumber",)
    reservation_id: Paths = ("reservationId", "id")
    status: Paths = ("status",)
    guest_id: Paths = ()
    first_name: Paths = ()
    last_name: Paths = ()
    guest_name: Paths = ()
    email: Paths = ()
    phone: Paths = ()
    address: Paths = ()
    check_in: Paths = ("checkInDate", "arrivalDate")
    check_out: Paths = ("checkOutDate", "departureDate")
    room_number: Paths = ()
    room_type: Paths = ()
    rate_code: Paths = ()
    rate_description: Paths = ()
    total_amount: Paths = ("totalAmount",)
    currency: Paths = ("currencyCode", "currency")
    number_of_guests: Paths = ("numberOfGuests",)
    card_brand: Paths = ()
    card_last_four: Paths = ()
    auth_code: Paths = ()
    booking_source: Paths = ("source", "channel")
    created_at: Paths = ("createdAt",)
    updated_at: Paths = ("updatedAt",)
    special_requests: Paths = ("specialRequests",)
    loyalty_number: Paths = ("loyaltyNumber",)
    default_currency: Optional[str] = None


@dataclass(frozen=True)
class FolioFields:
    """Candidate paths for folio windows and their line items"""

    folios: Paths = ("folios", "data")
    items: Paths = ("postings", "transactions", "charges")
    folio_id: Paths = ("@folio.folioId", "@folio.id")
    window_number: Paths = ("@folio.windowNumber",)
    transaction_id: Paths = ("transactionId", "id")
    transaction_code: Paths = ("transactionCode",)
    category: Paths = ("category", "transactionCode")
    description: Paths = ("description",)
    amount: Paths = ("amount",)
    currency: Paths = ("currencyCode", "currency")
    post_date: Paths = ("postDate", "date")
    card_last_four: Paths = ("cardLastFour",)
    auth_code: Paths = ("authCode",)
    reference: Paths = ("reference",)
    reversal: Paths = ("isReversal", "reversed")
    quantity: Paths = ("quantity",)
    default_currency: Optional[str] = None


@dataclass(frozen=True)
class ProfileFields:
    """Candidate paths for GuestProfile fields; ``root`` selects the profile object"""

    root: Paths = ("guest", "profile")
    scopes: Mapping[str, Paths] = field(default_factory=dict)
    guest_id: Paths = ("guestId", "id")
    first_name: Paths = ("firstName",)
    last_name: Paths = ("lastName",)
    guest_name: Paths = ()
    email: Paths = ("email", "emailAddress")
    phone: Paths = ("phone", "phoneNumber")
    address: Paths = ("address",)
    vip_code: Paths = ("vipCode", "vipStatus")
    loyalty_number: Paths = ("loyaltyNumber", "membershipId")
    loyalty_level: Paths = ("loyaltyLevel", "membershipTier")
    loyalty_points: Paths = ()
    nationality: Paths = ("nationality",)
    language: Paths = ("language", "preferredLanguage")
    date_of_birth: Paths = ("dateOfBirth",)
    company_name: Paths = ("companyName", "company")
    total_stays: Paths = ("totalStays",)
    total_revenue: Paths = ("totalRevenue",)
    last_stay_date: Paths = ("lastStayDate",)
    created_at: Paths = ("createdAt",)


@dataclass(frozen=True)
class RateFields:
    """Candidate paths for rate plans"""

    rates: Paths = ("ratePlans", "rates")
    rate_code: Paths = ("rateCode", "code")
    name: Paths = ("name", "ratePlanName")
    description: Paths = ("description",)
    category: Paths = ("category",)
    base_amount: Paths = ("baseAmount", "amount")
    currency: Paths = ("currencyCode",)
    start_date: Paths = ("startDate", "validFrom")
    end_date: Paths = ("endDate", "validTo")
    active_flag: Paths = ("active",)
    status: Paths = ("status",)
    room_types: Paths = ("roomTypes",)
    inclusions: Paths = ("inclusions",)
    cancellation_policy: Paths = ("cancellationPolicy",)
    default_currency: Optional[str] = None


def _currency(value: Any, default: Optional[str]) -> str:
    if is_empty(value) and default:
        return default
    return normalize_currency(value)


def _guest_name(resolver: FieldResolver, first: Paths, last: Paths, full: Paths) -> GuestName:
    first_name = resolver.get(*first) if first else None
    last_name = resolver.get(*last) if last else None
    if first_name or last_name:
        return normalize_guest_name({"firstName": first_name or "", "lastName": last_name or ""})
    return normalize_guest_name(resolver.get(*full) if full else None)


def build_reservation(
    raw: Any,
    fields: ReservationFields,
    vendor_statuses: Optional[Mapping[str, str]] = None,
    extensions: Optional[Dict[str, Any]] = None,
    bound: Optional[Mapping[str, Any]] = None,
) -> Optional[Reservation]:
    """Build a canonical Reservation; None for an empty payload"""
    if is_empty(raw):
        return None

    r = FieldResolver(raw, fields.scopes, bound)
    check_in = r.get(*fields.check_in)
    check_out = r.get(*fields.check_out)

    return Reservation(
        confirmation_number=r.text(*fields.confirmation_number),
        pms_reservation_id=r.text(*fields.reservation_id),
        status=resolve_status(r.get(*fields.status), vendor_statuses),
        guest_profile_id=r.text(*fields.guest_id),
        guest_name=_guest_name(r, fields.first_name, fields.last_name, fields.guest_name),
        email=r.text(*fields.email),
        phone=normalize_phone(r.get(*fields.phone)),
        address=normalize_address(r.get(*fields.address)),
        check_in_date=normalize_date(check_in),
        check_out_date=normalize_date(check_out),
        room_number=r.text(*fields.room_number),
        room_type=r.text(*fields.room_type),
        rate_code=r.text(*fields.rate_code),
        rate_plan_description=r.text(*fields.rate_description),
        total_amount=normalize_amount(r.get(*fields.total_amount)),
        currency=_currency(r.get(*fields.currency), fields.default_currency),
        number_of_guests=to_int(r.get(*fields.number_of_guests), default=1) or 1,
        number_of_nights=calculate_nights(check_in, check_out),
        payment_method=PaymentMethod(
            card_brand=normalize_card_brand(r.get(*fields.card_brand)),
            card_last_four=r.text(*fields.card_last_four),
            auth_code=r.text(*fields.auth_code),
        ),
        booking_source=r.text(*fields.booking_source),
        created_at=normalize_date(r.get(*fields.created_at)),
        updated_at=normalize_date(r.get(*fields.updated_at)),
        special_requests=r.text(*fields.special_requests),
        loyalty_number=r.text(*fields.loyalty_number),
        extensions=extensions or {},
        pms_raw=sanitize_pii(raw),
    )


def build_folio_item(
    charge: Mapping[str, Any], folio: Mapping[str, Any], fields: FolioFields
) -> FolioItem:
    r = FieldResolver(charge, bound={"folio": folio})
    return FolioItem(
        folio_id=r.text(*fields.folio_id),
        folio_window_number=to_int(r.get(*fields.window_number), default=1),
        transaction_id=r.text(*fields.transaction_id),
        transaction_code=r.text(*fields.transaction_code),
        category=normalize_folio_category(r.get(*fields.category)),
        description=r.text(*fields.description),
        amount=normalize_amount(r.get(*fields.amount)),
        currency=_currency(r.get(*fields.currency), fields.default_currency),
        post_date=normalize_date(r.get(*fields.post_date)),
        card_last_four=r.text(*fields.card_last_four),
        auth_code=r.text(*fields.auth_code),
        reference=r.text(*fields.reference),
        reversal_flag=r.any_flag(*fields.reversal),
        quantity=to_float(r.get(*fields.quantity), default=1.0),
    )


def build_folio_items(data: Any, fields: FolioFields) -> List[FolioItem]:
    """Flatten every folio window's line items, in vendor order"""
    if isinstance(data, list):
        folios = data
    else:
        folios = as_list(first_of(data, *fields.folios, default=[]))

    items: List[FolioItem] = []
    for folio in folios:
        if not isinstance(folio, Mapping):
            continue
        for charge in as_list(first_of(folio, *fields.items, default=[])):
            if isinstance(charge, Mapping):
                items.append(build_folio_item(charge, folio, fields))
    return items


def build_profile(
    data: Any, fields: ProfileFields, extensions: Optional[Dict[str, Any]] = None
) -> Optional[GuestProfile]:
    """Build a canonical GuestProfile; None for an empty payload"""
    if is_empty(data):
        return None

    profile = first_of(data, *fields.root, default=data) if fields.root else data
    if is_empty(profile):
        return None

    r = FieldResolver(profile, fields.scopes)
    return GuestProfile(
        guest_id=r.text(*fields.guest_id),
        name=_guest_name(r, fields.first_name, fields.last_name, fields.guest_name),
        email=r.text(*fields.email),
        phone=normalize_phone(r.get(*fields.phone)),
        address=normalize_address(r.get(*fields.address)),
        vip_code=r.text(*fields.vip_code),
        loyalty_number=r.text(*fields.loyalty_number),
        loyalty_level=r.text(*fields.loyalty_level),
        loyalty_points=to_int(r.get(*fields.loyalty_points)) if fields.loyalty_points else 0,
        nationality=r.text(*fields.nationality),
        language=r.text(*fields.language),
        date_of_birth=normalize_date(r.get(*fields.date_of_birth)),
        company_name=r.text(*fields.company_name),
        total_stays=to_int(r.get(*fields.total_stays)),
        total_revenue=normalize_amount(r.get(*fields.total_revenue)),
        last_stay_date=normalize_date(r.get(*fields.last_stay_date)),
        created_at=normalize_date(r.get(*fields.created_at)),
        extensions=extensions or {},
        pms_raw=sanitize_pii(profile),
    )


def build_rate(rate: Mapping[str, Any], fields: RateFields) -> Rate:
    r = FieldResolver(rate)
    inactive = any(get_path(rate, path) is False for path in fields.active_flag) or any(
        str(get_path(rate, path) or "").upper() == "INACTIVE" for path in fields.status
    )
    return Rate(
        rate_code=r.text(*fields.rate_code),
        name=r.text(*fields.name),
        description=r.text(*fields.description),
        category=r.text(*fields.category),
        base_amount=normalize_amount(r.get(*fields.base_amount)),
        currency=_currency(r.get(*fields.currency), fields.default_currency),
        start_date=normalize_date(r.get(*fields.start_date)),
        end_date=normalize_date(r.get(*fields.end_date)),
        is_active=not inactive,
        room_types=as_list(r.get(*fields.room_types, default=[])),
        inclusions=as_list(r.get(*fields.inclusions, default=[])),
        cancellation_policy=r.get(*fields.cancellation_policy, default=""),
    )


def build_rates(data: Any, fields: RateFields) -> List[Rate]:
    if isinstance(data, list):
        plans = data
    else:
        plans = first_of(data, *fields.rates, default=[])
    if not isinstance(plans, list):
        return []
    return [build_rate(plan, fields) for plan in plans if isinstance(plan, Mapping)]


def iter_records(data: Any, paths: Iterable[str]) -> List[Any]:
    """Records list at the first matching path, or the payload itself if it is a list"""
    if isinstance(data, list):
        return data
    return as_list(first_of(data, *paths, default=[]))
