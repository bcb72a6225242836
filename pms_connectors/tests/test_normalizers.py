"""
Tests for the vendor data normalizers
"""

from datetime import date, datetime

import pytest

from ..contracts import Address, GuestName
from ..normalizers import (
    REDACTED,
    calculate_nights,
    mask_partial,
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

MARCH_15 = "2024-03-15T00:00:00.000Z"


class TestNormalizeDate:
    @pytest.mark.parametrize(
        "value",
        [
            "2024-03-15",
            "2024/03/15",
            "03/15/2024",
            "15-MAR-24",
            "15-Mar-2024",
            1710460800,
            1710460800000,
            "1710460800",
            date(2024, 3, 15),
            datetime(2024, 3, 15),
        ],
    )
    def test_formats_to_iso_utc(self, value):
        assert normalize_date(value) == MARCH_15

    def test_offset_converted_to_utc(self):
        assert normalize_date("2024-03-15T10:30:00+02:00") == "2024-03-15T08:30:00.000Z"

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", "2024-02-30", True, {}])
    def test_unparseable_returns_none(self, value):
        assert normalize_date(value) is None


class TestNormalizeCurrency:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (840, "USD"),
            ("978", "EUR"),
            ("eur", "EUR"),
            ("euro", "EUR"),
            ("Sterling", "GBP"),
            (None, "USD"),
            ("", "USD"),
            ("XX", "USD"),
            (999, "USD"),
        ],
    )
    def test_currency(self, value, expected):
        assert normalize_currency(value) == expected


class TestNormalizeAmount:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("$1,234.56", 1234.56),
            ("1.234,56", 1234.56),
            ("(50.00)", -50.0),
            ("-12.5", -12.5),
            (19.999, 20.0),
            (100, 100.0),
            ("abc", 0.0),
            (None, 0.0),
            (float("nan"), 0.0),
            ("9" * 400, 0.0),
            (float("inf"), 0.0),
        ],
    )
    def test_amount(self, value, expected):
        assert normalize_amount(value) == expected

    def test_cents(self):
        assert normalize_amount(12345, is_cents=True) == 123.45
        assert normalize_amount("12345", is_cents=True) == 123.45


class TestNormalizeCardBrand:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("VI", "Visa"),
            ("amex", "American Express"),
            ("4", "Visa"),
            ("MC", "Mastercard"),
            ("Visa Debit", "Visa"),
            ("Diners Club International", "Diners Club"),
            ("foo", "Unknown"),
            (None, "Unknown"),
        ],
    )
    def test_card_brand(self, value, expected):
        assert normalize_card_brand(value) == expected


class TestNormalizeReservationStatus:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("In House", "checked_in"),
            ("CXL", "cancelled"),
            ("no-show", "no_show"),
            ("Checked Out", "checked_out"),
            ("Started", "checked_in"),
            ("Optional", "pending"),
            ("RESERVATION_CONFIRMED", "confirmed"),
            ("weird", "unknown"),
            (None, "unknown"),
        ],
    )
    def test_status(self, value, expected):
        assert normalize_reservation_status(value) == expected


class TestNormalizeGuestName:
    def test_last_first_string(self):
        assert normalize_guest_name("Smith, John") == GuestName("John", "Smith", "John Smith")

    def test_free_string(self):
        name = normalize_guest_name("John Michael Smith")
        assert name.first_name == "John"
        assert name.last_name == "Smith"
        assert name.full_name == "John Michael Smith"

    def test_single_token(self):
        assert normalize_guest_name("Cher") == GuestName(first_name="Cher", full_name="Cher")

    def test_mapping(self):
        name = normalize_guest_name({"firstName": "Ana", "lastName": "Ruiz"})
        assert name.full_name == "Ana Ruiz"

    def test_nested_full_name(self):
        name = normalize_guest_name({"name": "Doe, Jane"})
        assert (name.first_name, name.last_name) == ("Jane", "Doe")

    @pytest.mark.parametrize("value", [None, "", 42, {}])
    def test_empty(self, value):
        assert normalize_guest_name(value) == GuestName()


class TestNormalizeFolioCategory:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("ROOM_CHARGE", "room"),
            ("Minibar", "incidental"),
            ("City Tax", "tax"),
            ("Room Service", "food_beverage"),
            ("Late fee charge", "fee"),
            ("Guest refund", "adjustment"),
            ("XYZ", "other"),
            (None, "other"),
        ],
    )
    def test_category(self, value, expected):
        assert normalize_folio_category(value) == expected


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("(555) 123-4567", "+15551234567"),
            ("+44 20 7946 0958", "+442079460958"),
            ("44 20 7946 0958", "+442079460958"),
            ("123", None),
            (None, None),
        ],
    )
    def test_phone(self, value, expected):
        assert normalize_phone(value) == expected


class TestNormalizeAddress:
    def test_string(self):
        assert normalize_address(" 1 Main St ") == Address(line1="1 Main St")

    def test_mapping(self):
        address = normalize_address(
            {
                "addressLine1": "1 Main St",
                "city": "Austin",
                "stateProv": "TX",
                "postalCode": "78701",
                "countryCode": "US",
            }
        )
        assert address == Address(
            line1="1 Main St", city="Austin", state="TX", postal_code="78701", country="US"
        )

    def test_other(self):
        assert normalize_address(None) == Address()
        assert normalize_address(["x"]) == Address()


class TestCalculateNights:
    def test_nights(self):
        assert calculate_nights("2024-03-15", "2024-03-18") == 3

    def test_reversed_is_zero(self):
        assert calculate_nights("2024-03-18", "2024-03-15") == 0

    def test_missing(self):
        assert calculate_nights(None, "2024-03-15") == 0


class TestPIIMasking:
    def test_mask_partial(self):
        assert mask_partial("4111111111111111") == "***1111"
        assert mask_partial("12") == "***"
        assert mask_partial(None) == "***"

    def test_sanitize_nested(self):
        data = {
            "guest": {"email": "john@example.com", "password": "hunter2"},
            "cards": [{"cardNumber": "4111111111111111", "cardLast4": "1111"}],
            "room": "101",
        }
        result = sanitize_pii(data)

        assert result == {
            "guest": {"email": "***.com", "password": REDACTED},
            "cards": [{"cardNumber": REDACTED, "cardLast4": "***"}],
            "room": "101",
        }
        assert data["guest"]["password"] == "hunter2"

    def test_sanitize_idempotent(self):
        data = {"phone": "+15551234567", "nested": {"token": "abc"}}
        once = sanitize_pii(data)
        assert sanitize_pii(once) == once
