"""
Normalization Library for PMS Data
Converts heterogeneous vendor representations into canonical scalar/record types.

Every function here is pure and total: malformed input degrades to a safe
empty value instead of raising, so one bad vendor field never aborts the
normalization of a whole record.
"""

import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Optional

from dateutil import parser as date_parser

from .contracts import Address, FolioCategory, GuestName, ReservationStatus

REDACTED = "***REDACTED***"

_MONTHS = MappingProxyType(
    {
        "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
        "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
    }
)

_EPOCH_RE = re.compile(r"^\d{10,13}$")
_DD_MMM_YY_RE = re.compile(r"^(\d{1,2})[-/\s]([A-Za-z]{3})[-/\s](\d{2,4})$")
_MM_DD_YYYY_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_YYYY_MM_DD_RE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")

ISO_NUMERIC_CURRENCIES = MappingProxyType(
    {
        840: "USD", 978: "EUR", 826: "GBP", 124: "CAD", 36: "AUD",
        392: "JPY", 756: "CHF", 484: "MXN", 986: "BRL", 156: "CNY",
        356: "INR", 702: "SGD", 344: "HKD", 554: "NZD", 752: "SEK",
        578: "NOK", 208: "DKK", 710: "ZAR", 682: "SAR", 784: "AED",
        764: "THB", 410: "KRW",
    }
)

CURRENCY_ALIASES = MappingProxyType(
    {
        "DOLLAR": "USD", "DOLLARS": "USD", "US": "USD",
        "EURO": "EUR", "EUROS": "EUR",
        "POUND": "GBP", "POUNDS": "GBP", "STERLING": "GBP",
        "YEN": "JPY", "FRANC": "CHF",
    }
)

DEFAULT_CURRENCY = "USD"

CARD_BRANDS = MappingProxyType(
    {
        # Visa
        "VI": "Visa", "VISA": "Visa", "VS": "Visa", "4": "Visa", "VISD": "Visa",
        # Mastercard
        "MC": "Mastercard", "MASTERCARD": "Mastercard", "MASTER": "Mastercard",
        "MAST": "Mastercard", "5": "Mastercard", "2": "Mastercard",
        "MASTER_CARD": "Mastercard", "MSCD": "Mastercard",
        # American Express
        "AX": "American Express", "AMEX": "American Express",
        "AMERICAN_EXPRESS": "American Express", "AMERICANEXPRESS": "American Express",
        "3": "American Express", "AXPS": "American Express",
        # Discover
        "DS": "Discover", "DISCOVER": "Discover", "DISC": "Discover",
        "6": "Discover", "DCVR": "Discover",
        # Diners Club
        "DC": "Diners Club", "DINERS": "Diners Club", "DINERS_CLUB": "Diners Club",
        "DINERSCLUB": "Diners Club",
        "JC": "JCB", "JCB": "JCB",
        "UP": "UnionPay", "UNIONPAY": "UnionPay", "CUP": "UnionPay",
        "CHINA_UNIONPAY": "UnionPay",
        "DB": "Debit", "DEBIT": "Debit",
        "CA": "Cash", "CASH": "Cash",
    }
)

# Substring fallbacks, checked in order
_CARD_BRAND_FRAGMENTS = (
    (("VISA",), "Visa"),
    (("MASTER",), "Mastercard"),
    (("AMEX", "AMERICAN"), "American Express"),
    (("DISCOVER",), "Discover"),
    (("DINER",), "Diners Club"),
    (("JCB",), "JCB"),
    (("UNION",), "UnionPay"),
)

_S = ReservationStatus
RESERVATION_STATUSES = MappingProxyType(
    {
        "CONFIRMED": _S.CONFIRMED, "CONFIRM": _S.CONFIRMED, "CNF": _S.CONFIRMED,
        "RESERVED": _S.CONFIRMED, "DEFINITE": _S.CONFIRMED, "DEF": _S.CONFIRMED,
        "BOOKED": _S.CONFIRMED, "GUARANTEED": _S.CONFIRMED,
        "CHECKED_IN": _S.CHECKED_IN, "CHECKEDIN": _S.CHECKED_IN, "IN_HOUSE": _S.CHECKED_IN,
        "INHOUSE": _S.CHECKED_IN, "ARRIVED": _S.CHECKED_IN, "CI": _S.CHECKED_IN,
        "STAY": _S.CHECKED_IN, "STAYING": _S.CHECKED_IN, "STARTED": _S.CHECKED_IN,
        "CHECKED_OUT": _S.CHECKED_OUT, "CHECKEDOUT": _S.CHECKED_OUT,
        "DEPARTED": _S.CHECKED_OUT, "CO": _S.CHECKED_OUT, "COMPLETED": _S.CHECKED_OUT,
        "FINISHED": _S.CHECKED_OUT,
        "CANCELLED": _S.CANCELLED, "CANCELED": _S.CANCELLED, "CANCEL": _S.CANCELLED,
        "CXL": _S.CANCELLED, "CAN": _S.CANCELLED, "VOID": _S.CANCELLED,
        "NO_SHOW": _S.NO_SHOW, "NOSHOW": _S.NO_SHOW, "NS": _S.NO_SHOW,
        "PENDING": _S.PENDING, "TENTATIVE": _S.PENDING, "TENT": _S.PENDING,
        "WAITLIST": _S.PENDING, "WAITLISTED": _S.PENDING, "OPTIONAL": _S.PENDING,
        "REQUESTED": _S.PENDING, "INQUIRY": _S.PENDING,
    }
)

_C = FolioCategory
FOLIO_CATEGORIES = MappingProxyType(
    {
        # Room charges
        "ROOM": _C.ROOM, "ROOM_CHARGE": _C.ROOM, "ROOM_REVENUE": _C.ROOM,
        "ACCOMMODATION": _C.ROOM, "LODGING": _C.ROOM, "ROOM_RATE": _C.ROOM,
        "NIGHT_AUDIT": _C.ROOM, "RATE": _C.ROOM, "NIGHTLY_RATE": _C.ROOM,
        "ROOM_AND_TAX": _C.ROOM,
        # Tax
        "TAX": _C.TAX, "TAXES": _C.TAX, "TAX_CHARGE": _C.TAX, "VAT": _C.TAX,
        "CITY_TAX": _C.TAX, "STATE_TAX": _C.TAX, "OCCUPANCY_TAX": _C.TAX,
        "TOURISM_TAX": _C.TAX, "SALES_TAX": _C.TAX, "GST": _C.TAX,
        # Incidentals
        "INCIDENTAL": _C.INCIDENTAL, "MINIBAR": _C.INCIDENTAL, "TELEPHONE": _C.INCIDENTAL,
        "LAUNDRY": _C.INCIDENTAL, "DRY_CLEANING": _C.INCIDENTAL, "SPA": _C.INCIDENTAL,
        "PARKING": _C.INCIDENTAL, "INTERNET": _C.INCIDENTAL, "WIFI": _C.INCIDENTAL,
        "MOVIE": _C.INCIDENTAL, "IN_ROOM": _C.INCIDENTAL, "GIFT_SHOP": _C.INCIDENTAL,
        "MISCELLANEOUS": _C.INCIDENTAL, "MISC": _C.INCIDENTAL, "SUNDRY": _C.INCIDENTAL,
        "OTHER_REVENUE": _C.INCIDENTAL, "VALET": _C.INCIDENTAL,
        "BUSINESS_CENTER": _C.INCIDENTAL, "GYM": _C.INCIDENTAL, "FITNESS": _C.INCIDENTAL,
        "POOL": _C.INCIDENTAL,
        # Food & beverage
        "FOOD": _C.FOOD_BEVERAGE, "BEVERAGE": _C.FOOD_BEVERAGE, "FB": _C.FOOD_BEVERAGE,
        "F_B": _C.FOOD_BEVERAGE, "FOOD_BEVERAGE": _C.FOOD_BEVERAGE,
        "RESTAURANT": _C.FOOD_BEVERAGE, "BAR": _C.FOOD_BEVERAGE, "DINING": _C.FOOD_BEVERAGE,
        "ROOM_SERVICE": _C.FOOD_BEVERAGE, "BREAKFAST": _C.FOOD_BEVERAGE,
        "LUNCH": _C.FOOD_BEVERAGE, "DINNER": _C.FOOD_BEVERAGE,
        "CATERING": _C.FOOD_BEVERAGE, "BANQUET": _C.FOOD_BEVERAGE,
        # Payments
        "PAYMENT": _C.PAYMENT, "CASH": _C.PAYMENT, "CREDIT_CARD": _C.PAYMENT,
        "CC": _C.PAYMENT, "CHECK": _C.PAYMENT, "WIRE": _C.PAYMENT, "DEPOSIT": _C.PAYMENT,
        "ADVANCE_DEPOSIT": _C.PAYMENT, "PREPAYMENT": _C.PAYMENT,
        "ONLINE_PAYMENT": _C.PAYMENT, "DIRECT_BILL": _C.PAYMENT, "AR": _C.PAYMENT,
        "ACCOUNTS_RECEIVABLE": _C.PAYMENT,
        # Adjustments
        "ADJUSTMENT": _C.ADJUSTMENT, "ADJ": _C.ADJUSTMENT, "REBATE": _C.ADJUSTMENT,
        "DISCOUNT": _C.ADJUSTMENT, "ALLOWANCE": _C.ADJUSTMENT, "CORRECTION": _C.ADJUSTMENT,
        "REFUND": _C.ADJUSTMENT, "COMP": _C.ADJUSTMENT, "COMPLIMENTARY": _C.ADJUSTMENT,
        "CREDIT": _C.ADJUSTMENT, "WRITE_OFF": _C.ADJUSTMENT,
        # Fees
        "FEE": _C.FEE, "RESORT_FEE": _C.FEE, "SERVICE_FEE": _C.FEE,
        "EARLY_DEPARTURE": _C.FEE, "LATE_CHECKOUT": _C.FEE, "CANCELLATION_FEE": _C.FEE,
        "NO_SHOW_FEE": _C.FEE, "PET_FEE": _C.FEE, "EXTRA_PERSON": _C.FEE,
        "DAMAGE": _C.FEE, "SMOKING_FEE": _C.FEE,
    }
)

FULLY_MASKED_FIELDS = frozenset(
    {
        "ssn", "social_security", "socialSecurityNumber", "SSN",
        "passport", "passportNumber", "passport_number",
        "driverLicense", "driver_license", "driversLicense",
        "password", "secret", "token", "accessToken", "refreshToken",
        "access_token", "refresh_token", "apiKey", "api_key",
        "creditCardNumber", "credit_card_number", "cardNumber", "card_number",
        "cvv", "cvc", "securityCode", "security_code",
        "pin", "PIN",
    }
)

PARTIALLY_MASKED_FIELDS = frozenset(
    {
        "email", "Email", "emailAddress", "email_address",
        "phone", "Phone", "phoneNumber", "phone_number", "mobile", "cellPhone",
        "cardLast4", "card_last_four", "cardLastFour",
        "accountNumber", "account_number",
        "idNumber", "id_number",
        "taxId", "tax_id",
    }
)

_FIRST_NAME_KEYS = ("firstName", "first_name", "givenName", "nameFirst", "FirstName", "GivenName")
_LAST_NAME_KEYS = (
    "lastName", "last_name", "surname", "nameLast", "LastName", "Surname", "FamilyName",
)
_FULL_NAME_KEYS = ("fullName", "full_name", "name", "Name", "GuestName", "guestName")

_ADDRESS_KEYS = MappingProxyType(
    {
        "line1": ("line1", "addressLine1", "address1", "Address1", "street", "Street"),
        "line2": ("line2", "addressLine2", "address2", "Address2"),
        "city": ("city", "City", "cityName"),
        "state": ("state", "State", "stateProvince", "stateProv", "region"),
        "postal_code": ("postalCode", "postal_code", "zip", "zipCode", "PostalCode", "Zip"),
        "country": ("country", "Country", "countryCode", "CountryCode"),
    }
)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _round2(value: float) -> float:
    # half-up to the cent, matching what vendor UIs display
    return math.floor(value * 100 + 0.5) / 100


def _to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _from_epoch(value: float) -> str:
    millis = value * 1000 if value < 1e12 else value
    return _to_iso(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))


def _parse_date(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return _to_iso(value)
    if isinstance(value, date):
        return _to_iso(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return _from_epoch(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if _EPOCH_RE.match(text):
        return _from_epoch(int(text))

    match = _DD_MMM_YY_RE.match(text)
    if match and match.group(2).upper() in _MONTHS:
        year = int(match.group(3))
        if year < 100:
            year += 2000
        month = _MONTHS[match.group(2).upper()]
        return _to_iso(datetime(year, month, int(match.group(1)), tzinfo=timezone.utc))

    match = _MM_DD_YYYY_RE.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        return _to_iso(datetime(year, month, day, tzinfo=timezone.utc))

    match = _YYYY_MM_DD_RE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _to_iso(datetime(year, month, day, tzinfo=timezone.utc))

    return _to_iso(date_parser.parse(text))


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a vendor date into an ISO-8601 UTC string.

    Accepts ISO strings, epoch numbers or numeric strings (values below 1e12
    are seconds, otherwise milliseconds), ``DD-MMM-YY[YY]``, ``MM/DD/YYYY``,
    ``YYYY/MM/DD`` and anything python-dateutil can parse. Naive values are
    taken as UTC.

    Returns:
        ``YYYY-MM-DDTHH:MM:SS.mmmZ`` or None when the input is empty or unparseable
    """
    if _is_blank(value):
        return None
    try:
        return _parse_date(value)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def normalize_currency(value: Any) -> str:
    """Normalize ISO-4217 numeric codes, 3-letter codes and common aliases"""
    if _is_blank(value) or isinstance(value, bool):
        return DEFAULT_CURRENCY

    if isinstance(value, (int, float, Decimal)):
        try:
            return ISO_NUMERIC_CURRENCIES.get(int(value), DEFAULT_CURRENCY)
        except (ValueError, OverflowError):
            return DEFAULT_CURRENCY

    text = str(value).strip().upper()

    numeric = re.match(r"^[+-]?\d+", text)
    if numeric and int(numeric.group(0)) in ISO_NUMERIC_CURRENCIES:
        return ISO_NUMERIC_CURRENCIES[int(numeric.group(0))]

    if re.fullmatch(r"[A-Z]{3}", text):
        return text

    return CURRENCY_ALIASES.get(text, DEFAULT_CURRENCY)


def normalize_amount(value: Any, is_cents: bool = False) -> float:
    """
    Normalize a monetary amount to a float rounded to 2 decimals.

    Strings may carry currency symbols and a leading ``-`` or surrounding
    parentheses for negatives. Whichever of ``.`` and ``,`` appears last is
    the decimal separator, so ``"1.234,56"`` and ``"1,234.56"`` both give
    1234.56. With ``is_cents`` the value is taken to be in minor units.
    """
    if _is_blank(value) or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return 0.0
        if is_cents:
            return math.floor(number + 0.5) / 100
        return _round2(number)

    text = str(value).strip()
    negative = text.startswith("-") or text.startswith("(")
    text = re.sub(r"^[(-]+|\)+$", "", text)
    text = re.sub(r"[^0-9.,]", "", text)
    if not text:
        return 0.0

    if text.rfind(",") > text.rfind("."):
        text = text.replace(".", "").replace(",", ".", 1)
    else:
        text = text.replace(",", "")

    # leading numeric prefix, like parseFloat
    match = re.match(r"\d*(?:\.\d*)?", text)
    prefix = match.group(0) if match else ""
    if not prefix or prefix == ".":
        return 0.0
    number = float(prefix)
    if math.isinf(number):
        return 0.0

    if is_cents:
        number = math.floor(number + 0.5) / 100

    number = _round2(number)
    return -number if negative else number


def normalize_card_brand(value: Any) -> str:
    """Map vendor card codes, names and leading-digit codes to a canonical brand"""
    if _is_blank(value):
        return "Unknown"

    text = str(value).strip().upper()
    if text in CARD_BRANDS:
        return CARD_BRANDS[text]

    for fragments, brand in _CARD_BRAND_FRAGMENTS:
        if any(fragment in text for fragment in fragments):
            return brand

    return "Unknown"


def normalize_reservation_status(value: Any) -> str:
    """Map vendor status vocabulary to a canonical ReservationStatus value"""
    if _is_blank(value):
        return ReservationStatus.UNKNOWN.value

    text = re.sub(r"[_\-\s]+", "_", str(value).strip().upper())
    if text in RESERVATION_STATUSES:
        return RESERVATION_STATUSES[text].value

    if "CHECK" in text and "IN" in text:
        return ReservationStatus.CHECKED_IN.value
    if "CHECK" in text and "OUT" in text:
        return ReservationStatus.CHECKED_OUT.value
    if "CANCEL" in text:
        return ReservationStatus.CANCELLED.value
    if "NO" in text and "SHOW" in text:
        return ReservationStatus.NO_SHOW.value
    if "CONFIRM" in text or "RESERV" in text:
        return ReservationStatus.CONFIRMED.value

    return ReservationStatus.UNKNOWN.value


def _first_key(data: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def normalize_guest_name(value: Any) -> GuestName:
    """
    Normalize a guest name from a structured mapping or a free string.

    Strings containing a comma are read as ``"Last, First [Middle]"``;
    otherwise the first and last tokens are first and last name. A single
    token fills ``first_name`` only.
    """
    if value is None:
        return GuestName()

    if isinstance(value, GuestName):
        return value

    if isinstance(value, Mapping):
        first = _first_key(value, _FIRST_NAME_KEYS)
        last = _first_key(value, _LAST_NAME_KEYS)
        if first or last:
            first_name = str(first or "").strip()
            last_name = str(last or "").strip()
            return GuestName(
                first_name=first_name,
                last_name=last_name,
                full_name=" ".join(part for part in (first_name, last_name) if part),
            )

        nested = _first_key(value, _FULL_NAME_KEYS)
        if nested:
            return normalize_guest_name(nested)
        return GuestName()

    if not isinstance(value, str):
        return GuestName()

    text = value.strip()
    if not text:
        return GuestName()

    if "," in text:
        parts = [part.strip() for part in text.split(",")]
        last_name = parts[0]
        first_name = " ".join(parts[1:]).strip()
        return GuestName(
            first_name=first_name,
            last_name=last_name,
            full_name=" ".join(part for part in (first_name, last_name) if part),
        )

    words = text.split()
    if len(words) == 1:
        return GuestName(first_name=words[0], full_name=words[0])

    return GuestName(first_name=words[0], last_name=words[-1], full_name=text)


def normalize_folio_category(value: Any) -> str:
    """Map transaction codes and descriptions to a canonical FolioCategory value"""
    if _is_blank(value):
        return FolioCategory.OTHER.value

    text = re.sub(r"[_\-\s]+", "_", str(value).strip().upper())
    if text in FOLIO_CATEGORIES:
        return FOLIO_CATEGORIES[text].value

    if "ROOM" in text and "SERVICE" not in text:
        return FolioCategory.ROOM.value
    if "TAX" in text or "VAT" in text:
        return FolioCategory.TAX.value
    if "FOOD" in text or "BEVERAGE" in text or "RESTAURANT" in text:
        return FolioCategory.FOOD_BEVERAGE.value
    if "PAYMENT" in text or "CREDIT_CARD" in text or "DEPOSIT" in text:
        return FolioCategory.PAYMENT.value
    if "ADJ" in text or "REFUND" in text or "DISCOUNT" in text:
        return FolioCategory.ADJUSTMENT.value
    if "FEE" in text or "CHARGE" in text or "SURCHARGE" in text:
        return FolioCategory.FEE.value

    return FolioCategory.OTHER.value


def normalize_phone(value: Any) -> Optional[str]:
    """
    Strip a phone number to digits with a leading ``+``.

    Ten-digit numbers are assumed North American. Not full E.164 validation.
    """
    if _is_blank(value):
        return None

    digits = re.sub(r"[^\d+]", "", str(value))
    if len(digits) < 7:
        return None
    if digits.startswith("+"):
        return digits
    if len(digits) == 10:
        return "+1" + digits
    return "+" + digits


def normalize_address(value: Any) -> Address:
    """Normalize a string or mapping address into the canonical Address"""
    if value is None:
        return Address()

    if isinstance(value, str):
        return Address(line1=value.strip())

    if isinstance(value, Mapping):
        return Address(
            **{
                field_name: str(_first_key(value, keys) or "")
                for field_name, keys in _ADDRESS_KEYS.items()
            }
        )

    return Address()


def calculate_nights(check_in: Any, check_out: Any) -> int:
    """Whole nights between two vendor dates; 0 when either is missing"""
    start = normalize_date(check_in)
    end = normalize_date(check_out)
    if not start or not end:
        return 0

    start_dt = datetime.strptime(start, "%Y-%m-%dT%H:%M:%S.%fZ")
    end_dt = datetime.strptime(end, "%Y-%m-%dT%H:%M:%S.%fZ")
    days = (end_dt - start_dt).total_seconds() / 86400
    return max(0, math.floor(days + 0.5))


def mask_partial(value: Any) -> str:
    """Keep only the last 4 characters of a value"""
    if value is None:
        return "***"
    text = str(value)
    if len(text) <= 4:
        return "***"
    return "***" + text[-4:]


def sanitize_pii(data: Any) -> Any:
    """
    Deep-copy a nested structure with PII fields masked.

    Fully masked fields become ``***REDACTED***``; partially masked fields
    keep their last 4 characters. The result has the same key structure and
    applying it twice gives the same result.
    """
    if isinstance(data, list):
        return [sanitize_pii(item) for item in data]
    if isinstance(data, tuple):
        return tuple(sanitize_pii(item) for item in data)
    if not isinstance(data, Mapping):
        return data

    result = {}
    for key, value in data.items():
        if key in FULLY_MASKED_FIELDS:
            result[key] = REDACTED
        elif key in PARTIALLY_MASKED_FIELDS:
            result[key] = mask_partial(value)
        elif isinstance(value, (Mapping, list, tuple)):
            result[key] = sanitize_pii(value)
        else:
            result[key] = value
    return result

