"""
Ledger & aggregation tests.

Verifies:
- Append-only record validation
- Month bounds (inclusive last instant, default current month)
- List mode ordering/pagination and two-pass aggregate mode
"""

from datetime import datetime

import pytest

from deskhub.errors import ValidationError
from deskhub.services import ledger_service
from deskhub.time_utils import utcnow


def record(type_, amount, source="manual", when=datetime(2030, 1, 15, 12), **kwargs):
    return ledger_service.record(type_, amount, source, f"{type_} {amount}", occurred_at=when, **kwargs)


class TestRecord:

    @pytest.mark.parametrize("amount", [0, -100, 1.5, "100", True])
    def test_amount_must_be_positive_integer(self, db_session, amount):
        with pytest.raises(ValidationError):
            record("income", amount)

    def test_type_must_be_known(self, db_session):
        with pytest.raises(ValidationError):
            record("refund", 100)

    def test_source_is_lowercased_tag(self, db_session):
        entry = record("expense", 100, source=" Utilities ")
        assert entry.source == "utilities"

    def test_defaults_to_now(self, db_session):
        before = utcnow()
        entry = ledger_service.record("income", 100, "manual", "cash sale")
        assert entry.occurred_at >= before.replace(microsecond=0)


class TestMonthBounds:

    def test_inclusive_bounds(self):
        start, end, key = ledger_service.month_bounds("2024-02")
        assert start == datetime(2024, 2, 1)
        assert end == datetime(2024, 2, 29, 23, 59, 59, 999999)
        assert key == "2024-02"

    def test_defaults_to_current_month(self):
        start, end, key = ledger_service.month_bounds(None, now=datetime(2030, 12, 31, 23, 0))
        assert key == "2030-12"
        assert start == datetime(2030, 12, 1)
        assert end.day == 31

    @pytest.mark.parametrize("bad", ["2024-13", "2024-2", "24-02", "February", "2024/02"])
    def test_malformed(self, bad):
        with pytest.raises(ValidationError):
            ledger_service.month_bounds(bad)


class TestAggregate:

    def test_income_minus_expense(self, db_session):
        record("income", 10000, source="booking")
        record("expense", 4000, source="utilities")

        summary = ledger_service.aggregate_period("2030-01")["summary"]
        assert summary == {
            "total_income_cents": 10000,
            "total_expenses_cents": 4000,
            "net_income_cents": 6000,
            "transaction_count": 2,
        }

    def test_empty_month_reports_zeros_for_both_types(self, db_session):
        result = ledger_service.aggregate_period("2031-05")

        assert [g["type"] for g in result["groups"]] == ["income", "expense"]
        assert all(g["total_amount_cents"] == 0 and g["count"] == 0 for g in result["groups"])
        assert result["summary"]["net_income_cents"] == 0

    def test_groups_by_source_and_day(self, db_session):
        record("income", 1000, source="booking", when=datetime(2030, 1, 3, 9))
        record("income", 500, source="booking", when=datetime(2030, 1, 3, 17))
        record("income", 300, source="order", when=datetime(2030, 1, 3, 10))
        record("income", 700, source="booking", when=datetime(2030, 1, 4, 9))

        income = ledger_service.aggregate_period("2030-01")["groups"][0]
        assert income["total_amount_cents"] == 2500
        assert income["count"] == 4
        assert sorted((s["date"], s["source"], s["amount_cents"], s["count"]) for s in income["sources"]) == [
            ("2030-01-03", "booking", 1500, 2),
            ("2030-01-03", "order", 300, 1),
            ("2030-01-04", "booking", 700, 1),
        ]

    def test_month_edges(self, db_session):
        record("income", 100, when=datetime(2030, 1, 1, 0, 0))
        record("income", 200, when=datetime(2030, 1, 31, 23, 59, 59))
        record("income", 400, when=datetime(2030, 2, 1, 0, 0))

        assert ledger_service.aggregate_period("2030-01")["summary"]["total_income_cents"] == 300

    def test_filters(self, db_session):
        record("income", 1000, source="booking")
        record("income", 300, source="order")
        record("expense", 200, source="order")

        assert ledger_service.aggregate_period("2030-01", type="expense")["summary"]["total_income_cents"] == 0
        assert ledger_service.aggregate_period("2030-01", source="order")["summary"]["transaction_count"] == 2


class TestListPeriod:

    def test_newest_first_and_paginated(self, db_session):
        first = record("income", 100, when=datetime(2030, 1, 2))
        second = record("income", 200, when=datetime(2030, 1, 5))
        same_day = record("expense", 50, when=datetime(2030, 1, 5))

        page = ledger_service.list_period("2030-01", page=1, limit=2)
        assert [t["id"] for t in page["items"]] == [same_day.id, second.id]
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True

        page = ledger_service.list_period("2030-01", page=2, limit=2)
        assert [t["id"] for t in page["items"]] == [first.id]

    def test_reference_and_creator_expanded(self, db_session, desk, make_booking, admin_user):
        booking = make_booking(desk, datetime(2030, 1, 7, 10), datetime(2030, 1, 7, 11),
                               created_by_user_id=admin_user.id)
        month = utcnow().strftime("%Y-%m")

        items = ledger_service.list_period(month, source="booking")["items"]
        entry = next(t for t in items if t["reference_id"] == booking.id)
        assert entry["reference"]["type"] == "booking"
        assert entry["reference"]["desk_label"] == "D1"
        assert entry["created_by"]["id"] == admin_user.id

    def test_bad_type_filter(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.list_period("2030-01", type="gift")
