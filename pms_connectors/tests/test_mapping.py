"""
Tests for declarative field mapping
"""

import pytest

from ..adapters.mapping import (
    FieldResolver,
    FolioFields,
    ReservationFields,
    build_folio_items,
    build_reservation,
    first_of,
    get_path,
    iter_records,
    reverse_status_table,
    to_float,
    to_int,
)


class TestPaths:
    def test_get_path_through_lists(self):
        data = {"roomStays": [{"total": {"amount": 120}}, {"total": {"amount": 80}}]}

        assert get_path(data, "roomStays.0.total.amount") == 120
        assert get_path(data, "roomStays.-1.total.amount") == 80
        assert get_path(data, "roomStays.5.total") is None
        assert get_path(data, "missing.path") is None

    def test_first_of_skips_empty(self):
        data = {"a": "", "b": [], "c": "value"}
        assert first_of(data, "a", "b", "c") == "value"
        assert first_of(data, "a", default="fallback") == "fallback"

    def test_iter_records(self):
        assert iter_records([1, 2], ("items",)) == [1, 2]
        assert iter_records({"items": {"id": 1}}, ("items",)) == [{"id": 1}]
        assert iter_records(None, ("items",)) == []


class TestScopes:
    def test_scope_refers_to_earlier_scope(self):
        resolver = FieldResolver(
            {"stay": {"guest": {"name": "Ana"}}},
            scopes={"stay": ("stay",), "guest": ("@stay.guest",)},
        )
        assert resolver.get("@guest.name") == "Ana"

    def test_bound_scope(self):
        resolver = FieldResolver({"id": "T1"}, bound={"folio": {"id": "F1"}})
        assert resolver.text("@folio.id") == "F1"
        assert resolver.text("id") == "T1"


class TestStatusTable:
    def test_first_canonical_wins(self):
        table = reverse_status_table({"cancelled": "Canceled", "no_show": "Canceled"})
        assert table == {"CANCELED": "cancelled"}


class TestBuilders:
    def test_reservation_defaults(self):
        reservation = build_reservation(
            {
                "confirmationNumber": "C1",
                "status": "BOOKED",
                "checkInDate": "2024-03-15",
                "checkOutDate": "2024-03-17",
                "totalAmount": "300.00",
                "email": "guest@example.com",
            },
            ReservationFields(),
        )

        assert reservation.confirmation_number == "C1"
        assert reservation.status == "confirmed"
        assert reservation.number_of_nights == 2
        assert reservation.number_of_guests == 1
        assert reservation.currency == "USD"
        assert reservation.total_amount == 300.0
        assert reservation.pms_raw["email"] == "***.com"

    def test_empty_reservation(self):
        assert build_reservation({}, ReservationFields()) is None

    def test_folio_items_carry_window(self):
        items = build_folio_items(
            {
                "folios": [
                    {
                        "folioId": "F1",
                        "windowNumber": 2,
                        "postings": [
                            {"transactionId": "T1", "category": "ROOM", "amount": 100, "isReversal": "Y"},
                            "junk",
                        ],
                    },
                    "junk",
                ]
            },
            FolioFields(),
        )

        assert len(items) == 1
        assert items[0].folio_id == "F1"
        assert items[0].folio_window_number == 2
        assert items[0].category == "room"
        assert items[0].reversal_flag is True
        assert items[0].quantity == 1.0

    def test_non_finite_counts_fall_back_to_defaults(self):
        reservation = build_reservation(
            {"confirmationNumber": "X", "numberOfGuests": "Infinity"}, ReservationFields()
        )

        assert reservation.confirmation_number == "X"
        assert reservation.number_of_guests == 1

    def test_non_finite_folio_window_and_quantity(self):
        items = build_folio_items(
            {
                "folios": [
                    {
                        "folioId": "F1",
                        "windowNumber": 1e400,
                        "postings": [
                            {"transactionId": "T1", "category": "ROOM", "amount": 100, "quantity": "inf"}
                        ],
                    }
                ]
            },
            FolioFields(),
        )

        assert items[0].folio_window_number == 1
        assert items[0].quantity == 1.0


class TestCoercion:
    @pytest.mark.parametrize(
        "value,expected",
        [("3", 3), (2.9, 2), ("inf", 0), ("-Infinity", 0), (1e400, 0), ("nan", 0), ("x", 0), (True, 0)],
    )
    def test_to_int(self, value, expected):
        assert to_int(value) == expected

    @pytest.mark.parametrize("value", ["inf", 1e400, "nan", None, "abc"])
    def test_to_float_rejects_non_finite(self, value):
        assert to_float(value, default=1.0) == 1.0
