"""
Booking scheduler tests.

Verifies:
- Closed-open overlap detection per desk (touching is not overlap)
- Lifecycle state machine and terminal immutability
- Desk cost, combo duration, ledger entries and add-on orders
- Public check-in window and elapsed completion
"""

from datetime import datetime, timedelta
from itertools import combinations

import pytest

from deskhub.errors import ConflictError, InvalidTransition, NotFoundError, ValidationError
from deskhub.models import Booking, Desk, Order, Transaction
from deskhub.services import booking_service, desk_service, token_service
from deskhub.time_utils import utcnow

DAY = datetime(2030, 1, 7)


def at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


class TestConflicts:

    def test_overlap_rejected_touching_allowed(self, db_session, desk, make_booking):
        make_booking(desk, at(10), at(12))

        with pytest.raises(ConflictError):
            make_booking(desk, at(11), at(13))
        db_session.rollback()

        later = make_booking(desk, at(12), at(13))
        assert later.status == "pending"

    def test_other_desk_is_independent(self, db_session, desk, make_booking):
        other = Desk(label="D2", hourly_rate_cents=1000)
        db_session.add(other)
        db_session.commit()

        make_booking(desk, at(10), at(12))
        assert make_booking(other, at(10), at(12)).desk_id == other.id

    def test_cancelled_booking_frees_the_slot(self, db_session, desk, make_booking):
        first = make_booking(desk, at(10), at(12))
        booking_service.transition(first.id, "cancel")

        assert make_booking(desk, at(10), at(12)).status == "pending"

    def test_conflicts_for_excludes_itself(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(12))
        assert booking_service.conflicts_for(desk.id, at(11), at(13)) is True
        assert booking_service.conflicts_for(desk.id, at(11), at(13), exclude_booking_id=b.id) is False
        assert booking_service.conflicts_for(desk.id, at(12), at(14)) is False
        assert booking_service.conflicts_for(desk.id, at(8), at(10)) is False

    def test_no_two_open_bookings_overlap(self, db_session, desk, make_booking):
        attempts = [(9, 11), (10, 12), (11, 13), (12, 14), (8, 9), (13, 15), (14, 16), (10, 11)]
        for start, end in attempts:
            try:
                make_booking(desk, at(start), at(end))
            except ConflictError:
                db_session.rollback()

        open_bookings = (
            db_session.query(Booking)
            .filter(Booking.desk_id == desk.id, Booking.status.in_(("pending", "confirmed", "checked-in")))
            .all()
        )
        assert len(open_bookings) >= 3
        for b1, b2 in combinations(open_bookings, 2):
            assert not (b1.start_time < b2.end_time and b2.start_time < b1.end_time)


class TestCreateBooking:

    def test_start_must_precede_end(self, db_session, desk, make_booking):
        with pytest.raises(ValidationError):
            make_booking(desk, at(12), at(12))
        with pytest.raises(ValidationError):
            make_booking(desk, at(12), at(11))

    def test_customer_name_required(self, db_session, desk, make_booking):
        with pytest.raises(ValidationError):
            make_booking(desk, at(10), at(11), customer={"name": "  "})

    @pytest.mark.parametrize("customer,field", [
        ({"name": 42}, "customer.name"),
        ({"name": "Ada", "email": 5}, "customer.email"),
        ({"name": "Ada", "phone": ["555"]}, "customer.phone"),
        ("Ada", "customer"),
    ])
    def test_customer_fields_must_be_strings(self, db_session, desk, customer, field):
        with pytest.raises(ValidationError) as exc:
            booking_service.create_booking(desk_id=desk.id, customer=customer, start_time=at(10), end_time=at(11))
        assert exc.value.field == field

    def test_stock_shortage_writes_nothing(self, db_session, desk, make_item):
        tea = make_item("tea", price_cents=250, quantity=1)

        with pytest.raises(ConflictError):
            booking_service.create_booking(
                desk_id=desk.id,
                customer={"name": "Ada"},
                start_time=at(10),
                end_time=at(11),
                cart_lines=[{"item_id": tea.id, "quantity": 2}],
            )
        desk_service.create_desk({"label": "D2"})

        assert db_session.query(Booking).count() == 0
        assert db_session.query(Transaction).count() == 0

    def test_unknown_desk(self, db_session, desk):
        with pytest.raises(NotFoundError):
            booking_service.create_booking(
                desk_id=desk.id + 999, customer={"name": "Ada"}, start_time=at(10), end_time=at(11)
            )

    def test_desk_in_maintenance(self, db_session, desk, make_booking):
        desk.status = "maintenance"
        db_session.commit()

        with pytest.raises(ConflictError):
            make_booking(desk, at(10), at(11))

    def test_iso_strings_accepted(self, db_session, desk):
        receipt = booking_service.create_booking(
            desk_id=desk.id,
            customer={"name": "Ada"},
            start_time="2030-01-07T10:00:00Z",
            end_time="2030-01-07T11:00:00+00:00",
        )
        assert receipt.booking.start_time == at(10)
        assert receipt.booking.end_time == at(11)

    def test_initial_status_and_immediate_check_in(self, db_session, desk, make_booking):
        assert make_booking(desk, at(8), at(9)).status == "pending"

        walk_in = make_booking(desk, at(10), at(11), check_in=True)
        assert walk_in.status == "checked-in"
        assert walk_in.checked_in_at is not None

    def test_desk_cost_rounds_up_to_the_cent(self, db_session, desk, make_booking):
        assert make_booking(desk, at(10), at(11, 30)).amount_cents == 1500
        # 20 minutes at 10.00/h = 3.333...
        assert make_booking(desk, at(12), at(12, 20)).amount_cents == 334

    def test_records_booking_income(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(12))

        entry = db_session.query(Transaction).filter_by(reference_type="booking", reference_id=b.id).one()
        assert entry.type == "income"
        assert entry.source == "booking"
        assert entry.amount_cents == 2000

    def test_combo_duration_fixes_end_time(self, db_session, desk, make_item, make_booking):
        coffee = make_item("coffee", price_cents=300)
        combo = make_item(
            "halfday", price_cents=4500, category="combo", duration_minutes=240,
            included_items=[{"item_id": coffee.id, "quantity": 1}],
        )

        b = make_booking(desk, at(9), None, combo_id=combo.id)
        assert b.end_time == at(13)
        assert b.amount_cents == 4500
        assert b.combo_item_id == combo.id

    def test_combo_in_cart_carries_duration(self, db_session, desk, make_item, make_booking):
        coffee = make_item("coffee", price_cents=300)
        combo = make_item(
            "hourpack", price_cents=1200, category="combo", duration_minutes=60,
            included_items=[{"item_id": coffee.id, "quantity": 1}],
        )

        b = make_booking(desk, at(9), None, cart_lines=[{"item_id": combo.id, "quantity": 1}])
        assert b.end_time == at(10)
        assert len(b.orders) == 1

    def test_end_required_without_combo_duration(self, db_session, desk, make_booking):
        with pytest.raises(ValidationError):
            make_booking(desk, at(9), None)

    def test_cart_becomes_order(self, db_session, desk, make_item):
        tea = make_item("tea", price_cents=250, quantity=5)

        receipt = booking_service.create_booking(
            desk_id=desk.id,
            customer={"name": "Ada"},
            start_time=at(10),
            end_time=at(11),
            cart_lines=[{"item_id": tea.id, "quantity": 2}],
            cart_total_cents=500,
        )
        assert receipt.order is not None
        assert receipt.order.total_cents == 500
        assert receipt.order.booking_id == receipt.booking.id
        assert tea.quantity == 3

    def test_cart_total_mismatch_writes_nothing(self, db_session, desk, make_item):
        tea = make_item("tea", price_cents=250, quantity=5)

        with pytest.raises(ConflictError):
            booking_service.create_booking(
                desk_id=desk.id,
                customer={"name": "Ada"},
                start_time=at(10),
                end_time=at(11),
                cart_lines=[{"item_id": tea.id, "quantity": 2}],
                cart_total_cents=900,
            )

        # A later, unrelated commit must not carry anything from the failed call
        desk_service.create_desk({"label": "D2"})

        assert db_session.query(Booking).count() == 0
        assert db_session.query(Order).count() == 0
        assert db_session.query(Transaction).count() == 0
        assert tea.quantity == 5

    def test_returns_public_link(self, db_session, desk):
        receipt = booking_service.create_booking(
            desk_id=desk.id, customer={"name": "Ada"}, start_time=at(10), end_time=at(11)
        )
        assert token_service.verify_public_booking_access(receipt.booking.id, receipt.public_token)
        assert receipt.public_expires_at == at(11, 30)
        assert receipt.public_url.startswith(f"http://desk.test/p/{receipt.booking.id}?t=")


class TestTransitions:

    @pytest.mark.parametrize(
        "events,expected",
        [
            (["confirm"], "confirmed"),
            (["check-in"], "checked-in"),
            (["confirm", "check-in"], "checked-in"),
            (["confirm", "check-in", "complete"], "completed"),
            (["cancel"], "cancelled"),
            (["confirm", "cancel"], "cancelled"),
            (["check-in", "cancel"], "cancelled"),
        ],
    )
    def test_legal_paths(self, db_session, desk, make_booking, events, expected):
        b = make_booking(desk, at(10), at(11))
        for event in events:
            booking_service.transition(b.id, event)
        assert b.status == expected

    @pytest.mark.parametrize(
        "events,illegal",
        [
            ([], "complete"),
            (["confirm"], "confirm"),
            (["confirm"], "complete"),
            (["check-in"], "confirm"),
            (["check-in", "complete"], "cancel"),
            (["check-in", "complete"], "check-in"),
            (["cancel"], "confirm"),
            (["cancel"], "cancel"),
        ],
    )
    def test_illegal_transitions(self, db_session, desk, make_booking, events, illegal):
        b = make_booking(desk, at(10), at(11))
        for event in events:
            booking_service.transition(b.id, event)

        with pytest.raises(InvalidTransition):
            booking_service.transition(b.id, illegal)

    def test_unknown_event(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        with pytest.raises(ValidationError):
            booking_service.transition(b.id, "teleport")

    def test_event_aliases(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        booking_service.transition(b.id, "checkIn")
        assert b.status == "checked-in"

    def test_timestamps(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        booking_service.transition(b.id, "check-in")
        booking_service.transition(b.id, "complete")
        assert b.checked_in_at is not None
        assert b.completed_at is not None

        c = make_booking(desk, at(12), at(13))
        booking_service.transition(c.id, "cancel")
        assert c.cancelled_at is not None

    def test_cancel_offsets_income_and_refunds(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(12), payment_status="paid")
        booking_service.transition(b.id, "cancel")

        entries = db_session.query(Transaction).filter_by(reference_type="booking", reference_id=b.id).all()
        assert sorted((e.type, e.amount_cents) for e in entries) == [("expense", 2000), ("income", 2000)]
        assert b.payment_status == "refunded"

    def test_desk_status_not_touched(self, db_session, desk, make_booking):
        desk.status = "occupied"
        db_session.commit()

        b = make_booking(desk, at(10), at(11), check_in=True)
        booking_service.transition(b.id, "complete")
        assert desk.status == "occupied"

        c = make_booking(desk, at(12), at(13))
        booking_service.transition(c.id, "cancel")
        assert desk.status == "occupied"


class TestUpdateBooking:

    def test_terminal_booking_is_immutable(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        booking_service.transition(b.id, "cancel")

        with pytest.raises(ConflictError):
            booking_service.update_booking(b.id, {"notes": "late change"})

    def test_move_rechecks_conflicts(self, db_session, desk, make_booking):
        make_booking(desk, at(10), at(12))
        b = make_booking(desk, at(13), at(14))

        with pytest.raises(ConflictError):
            booking_service.update_booking(b.id, {"start_time": at(11), "end_time": at(14)})
        db_session.rollback()

        moved = booking_service.update_booking(b.id, {"start_time": at(12), "end_time": at(14)})
        assert moved.start_time == at(12)

    def test_rejected_move_leaves_other_edits_unapplied(self, db_session, desk, make_booking):
        make_booking(desk, at(10), at(12))
        b = make_booking(desk, at(13), at(14))

        with pytest.raises(ConflictError):
            booking_service.update_booking(
                b.id, {"customer_name": "Mallory", "notes": "moved", "start_time": at(11), "end_time": at(14)}
            )
        desk_service.create_desk({"label": "D2"})
        db_session.expire_all()

        reloaded = db_session.get(Booking, b.id)
        assert reloaded.customer_name == "Ada"
        assert reloaded.notes is None
        assert reloaded.start_time == at(13)

    def test_non_string_customer_field_rejected(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        with pytest.raises(ValidationError) as exc:
            booking_service.update_booking(b.id, {"customer_email": 12})
        assert exc.value.field == "customer_email"

    def test_amount_change_is_offset_in_ledger(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(12))
        booking_service.update_booking(b.id, {"end_time": at(11)})

        assert b.amount_cents == 1000
        entries = db_session.query(Transaction).filter_by(reference_type="booking", reference_id=b.id).all()
        net = sum(e.amount_cents if e.type == "income" else -e.amount_cents for e in entries)
        assert net == 1000

    def test_move_to_maintenance_desk_rejected(self, db_session, desk, make_booking):
        other = Desk(label="D2", status="maintenance", hourly_rate_cents=1000)
        db_session.add(other)
        db_session.commit()
        b = make_booking(desk, at(10), at(11))

        with pytest.raises(ConflictError):
            booking_service.update_booking(b.id, {"desk_id": other.id})

    def test_unknown_field_rejected(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        with pytest.raises(ValidationError):
            booking_service.update_booking(b.id, {"status": "completed"})

    def test_payment_status_editable(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        booking_service.update_booking(b.id, {"payment_status": "paid"})
        assert b.payment_status == "paid"

        with pytest.raises(ValidationError):
            booking_service.update_booking(b.id, {"payment_status": "refunded"})


class TestPublicCheckIn:

    def test_window(self, db_session, desk, make_booking):
        now = utcnow().replace(microsecond=0)
        soon = make_booking(desk, now + timedelta(minutes=10), now + timedelta(hours=1))
        booking_service.transition(soon.id, "confirm")

        booking_service.public_check_in(soon.id, now=now)
        assert soon.status == "checked-in"

    def test_too_early(self, db_session, desk, make_booking):
        now = utcnow().replace(microsecond=0)
        later = make_booking(desk, now + timedelta(minutes=30), now + timedelta(hours=1))
        booking_service.transition(later.id, "confirm")

        with pytest.raises(ConflictError):
            booking_service.public_check_in(later.id, now=now)

    def test_after_end(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        booking_service.transition(b.id, "confirm")

        with pytest.raises(ConflictError):
            booking_service.public_check_in(b.id, now=at(11))

    def test_requires_confirmed(self, db_session, desk, make_booking):
        b = make_booking(desk, at(10), at(11))
        with pytest.raises(InvalidTransition):
            booking_service.public_check_in(b.id, now=at(10))


def test_complete_elapsed_bookings(db_session, desk, make_booking):
    done = make_booking(desk, at(8), at(9), check_in=True)
    running = make_booking(desk, at(10), at(12), check_in=True)
    pending = make_booking(desk, at(6), at(7))

    assert booking_service.complete_elapsed_bookings(now=at(11)) == 1
    assert done.status == "completed"
    assert running.status == "checked-in"
    assert pending.status == "pending"


def test_public_view_hides_contact_details(db_session, desk, make_booking):
    b = make_booking(desk, at(10), at(11))
    view = booking_service.public_view(b)

    assert view["customer_name"] == "Ada"
    assert "ada@example.com" not in str(view)
    assert "555-0100" not in str(view)


def test_list_bookings_filters(db_session, desk, make_booking):
    make_booking(desk, at(8), at(9))
    b = make_booking(desk, at(10), at(11))
    booking_service.transition(b.id, "confirm")

    result = booking_service.list_bookings(status="confirmed")
    assert [item["id"] for item in result["items"]] == [b.id]

    result = booking_service.list_bookings(start=at(8, 30), end=at(9, 30))
    assert result["count"] == 1

    with pytest.raises(ValidationError):
        booking_service.list_bookings(status="lost")
