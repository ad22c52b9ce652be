# Overview: Service-layer operations for bookings; conflict detection, lifecycle and public links.

"""
Booking lifecycle and desk conflict detection.

STATE MACHINE:
    confirm   pending              -> confirmed
    check-in  pending | confirmed  -> checked-in
    complete  checked-in           -> completed
    cancel    pending | confirmed | checked-in -> cancelled
completed and cancelled are terminal.

CONFLICTS:
Two bookings on one desk conflict when both are non-terminal and their
[start, end) intervals overlap (a.start < b.end and b.start < a.end).
Touching endpoints do not overlap.

The desk row is locked (SELECT ... FOR UPDATE) before the conflict check on
stores that support row locks. SQLite ignores the lock; there the window
between check and insert is an accepted limitation.

Desk status is never changed here; it is staff-managed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, DeskhubError, InvalidTransition, NotFoundError, ValidationError
from ..models import Booking, ComboItem, Desk, Order
from ..models.bookings import BOOKING_STATUSES, NON_TERMINAL_STATUSES
from ..pagination import paginate
from ..validation import clean_text, coerce_datetime, normalize_email
from . import ledger_service
from .inventory_service import get_item, resolve_cart_line
from .order_service import build_order, check_cart
from .token_service import (
    issue_public_booking_token,
    public_booking_expiry,
    public_booking_url,
)
from deskhub.time_utils import utcnow, to_utc_z

# event -> (allowed source statuses, target status)
TRANSITIONS = {
    "confirm": (("pending",), "confirmed"),
    "check-in": (("pending", "confirmed"), "checked-in"),
    "complete": (("checked-in",), "completed"),
    "cancel": (("pending", "confirmed", "checked-in"), "cancelled"),
}

_EVENT_ALIASES = {
    "checkin": "check-in",
    "check_in": "check-in",
    "checkIn": "check-in",
}

EDITABLE_PAYMENT_STATUSES = ("pending", "paid")

BOOKING_PATCH_FIELDS = {
    "desk_id", "start_time", "end_time",
    "customer_name", "customer_email", "customer_phone",
    "notes", "payment_status",
}


@dataclass
class BookingReceipt:
    """Result of create_booking: the booking, its add-on order and the customer link."""
    booking: Booking
    order: Order | None
    public_token: str
    public_url: str
    public_expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "booking": self.booking.to_dict(),
            "order": self.order.to_dict() if self.order else None,
            "public_token": self.public_token,
            "public_url": self.public_url,
            "public_expires_at": to_utc_z(self.public_expires_at),
        }


def desk_cost_cents(hourly_rate_cents: int, start: datetime, end: datetime) -> int:
    """hourly rate x duration hours, rounded up to the cent."""
    seconds = int((end - start).total_seconds())
    return -(-hourly_rate_cents * seconds // 3600)


def conflicts_for(
    desk_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: int | None = None,
    statuses=NON_TERMINAL_STATUSES,
) -> bool:
    """True if a booking on desk_id in one of `statuses` overlaps [start, end)."""
    q = db.session.query(Booking.id).filter(
        Booking.desk_id == desk_id,
        Booking.status.in_(tuple(statuses)),
        Booking.start_time < end,
        Booking.end_time > start,
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.first() is not None


def _lock_bookable_desk(desk_id) -> Desk:
    desk = (
        db.session.query(Desk)
        .filter(Desk.id == desk_id)
        .with_for_update()
        .first()
    )
    if desk is None or not desk.is_active:
        raise NotFoundError("Desk not found")
    if desk.status == "maintenance":
        raise ConflictError(f"Desk '{desk.label}' is under maintenance", field="desk_id")
    return desk


def _check_window(desk_id: int, start: datetime, end: datetime, exclude_booking_id: int | None = None) -> None:
    if start >= end:
        raise ValidationError("start_time must be before end_time", field="start_time")
    if conflicts_for(desk_id, start, end, exclude_booking_id=exclude_booking_id):
        raise ConflictError("Desk is already booked for an overlapping time", field="start_time")


def _resolve_combo(combo_id) -> ComboItem:
    combo = get_item(combo_id)
    if not combo.is_combo:
        raise ValidationError("combo_id must reference a combo item", field="combo_id")
    if not combo.is_active:
        raise ValidationError(f"Combo '{combo.name}' is not available", field="combo_id")
    return combo


def create_booking(
    *,
    desk_id: int,
    customer: dict,
    start_time,
    end_time=None,
    combo_id: int | None = None,
    cart_lines: list | None = None,
    cart_total_cents: int | None = None,
    check_in: bool = False,
    payment_status: str = "pending",
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> BookingReceipt:
    """
    Reserve a desk.

    A combo (combo_id, or a combo line in the cart) with a fixed duration
    sets end_time = start_time + duration. The booking, its ledger income and
    its add-on order are written in one transaction.

    Raises:
        ValidationError: bad customer, times or payment status
        NotFoundError: desk missing or archived
        ConflictError: desk in maintenance, overlapping booking, cart total mismatch
    """
    customer = customer or {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object", field="customer")
    name = clean_text(customer.get("name"), "customer.name")
    if not name:
        raise ValidationError("customer name is required", field="customer.name")
    email = normalize_email(customer.get("email"), "customer.email")
    phone = clean_text(customer.get("phone"), "customer.phone")
    notes = clean_text(notes, "notes")
    if payment_status not in EDITABLE_PAYMENT_STATUSES:
        raise ValidationError("payment_status must be pending or paid", field="payment_status")

    start = coerce_datetime(start_time, "start_time")
    end = coerce_datetime(end_time, "end_time") if end_time not in (None, "") else None

    combo = _resolve_combo(combo_id) if combo_id is not None else None

    duration_minutes = combo.duration_minutes if combo else None
    if duration_minutes is None and cart_lines:
        for line in cart_lines:
            if not isinstance(line, dict):
                raise ValidationError("cart lines must be objects", field="cart")
            resolved = resolve_cart_line(line.get("item_id"), line.get("quantity"))
            if resolved.duration_minutes:
                duration_minutes = resolved.duration_minutes
                break

    if duration_minutes:
        end = start + timedelta(minutes=duration_minutes)
    if end is None:
        raise ValidationError("end_time is required", field="end_time")
    if start >= end:
        raise ValidationError("start_time must be before end_time", field="start_time")

    desk = _lock_bookable_desk(desk_id)
    _check_window(desk.id, start, end)
    if cart_lines:
        check_cart(cart_lines, cart_total_cents)

    amount = combo.price_cents if combo else desk_cost_cents(desk.hourly_rate_cents, start, end)
    now = utcnow()

    booking = Booking(
        desk_id=desk.id,
        customer_name=name,
        customer_email=email,
        customer_phone=phone,
        start_time=start,
        end_time=end,
        status="checked-in" if check_in else "pending",
        checked_in_at=now if check_in else None,
        payment_status=payment_status,
        amount_cents=amount,
        combo_item_id=combo.id if combo else None,
        notes=notes,
        created_by_user_id=created_by_user_id,
    )
    try:
        db.session.add(booking)
        db.session.flush()

        if amount > 0:
            ledger_service.record(
                "income",
                amount,
                "booking",
                f"Booking #{booking.id} {desk.label} for {name}",
                occurred_at=now,
                reference_type="booking",
                reference_id=booking.id,
                created_by_user_id=created_by_user_id,
                commit=False,
            )

        order = None
        if cart_lines:
            order = build_order(
                booking.id,
                cart_lines,
                total_cents=cart_total_cents,
                created_by_user_id=created_by_user_id,
                commit=False,
            )

        db.session.commit()
    except DeskhubError:
        db.session.rollback()
        raise

    expires_at = public_booking_expiry(booking.end_time)
    token = issue_public_booking_token(booking.id, expires_at)
    return BookingReceipt(
        booking=booking,
        order=order,
        public_token=token,
        public_url=public_booking_url(booking.id, token),
        public_expires_at=expires_at,
    )


def get_booking(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def normalize_event(event: str) -> str:
    event = _EVENT_ALIASES.get((event or "").strip(), (event or "").strip().lower())
    if event not in TRANSITIONS:
        raise ValidationError(
            f"event must be one of: {', '.join(TRANSITIONS)}", field="event"
        )
    return event


def transition(booking_id: int, event: str, actor_user_id: int | None = None) -> Booking:
    """
    Apply one state-machine event.

    Cancelling offsets the booking income with an expense and marks a paid
    booking as refunded. Desk status is left alone.
    """
    event = normalize_event(event)
    booking = get_booking(booking_id)

    allowed_from, target = TRANSITIONS[event]
    if booking.status not in allowed_from:
        raise InvalidTransition(f"Cannot {event} a booking that is {booking.status}")

    now = utcnow()
    booking.status = target
    if target == "checked-in":
        booking.checked_in_at = now
    elif target == "completed":
        booking.completed_at = now
    elif target == "cancelled":
        booking.cancelled_at = now
        if booking.amount_cents > 0:
            ledger_service.record(
                "expense",
                booking.amount_cents,
                "booking",
                f"Booking #{booking.id} cancelled",
                occurred_at=now,
                reference_type="booking",
                reference_id=booking.id,
                created_by_user_id=actor_user_id,
                commit=False,
            )
        if booking.payment_status == "paid":
            booking.payment_status = "refunded"

    db.session.commit()
    return booking


def update_booking(booking_id: int, patch: dict, actor_user_id: int | None = None) -> Booking:
    """
    Edit a non-terminal booking.

    Desk or time changes re-run the maintenance and conflict checks
    (excluding this booking) and recompute the amount. The amount difference
    goes to the ledger as an offsetting entry.
    """
    booking = get_booking(booking_id)
    if booking.is_terminal:
        raise ConflictError(f"Booking is {booking.status} and can no longer be changed")

    patch = dict(patch or {})
    for k in patch:
        if k not in BOOKING_PATCH_FIELDS:
            raise ValidationError(f"Field not allowed: {k}", field=k)

    # Every check runs before the booking is touched.
    changes = {}
    if "customer_name" in patch:
        name = clean_text(patch["customer_name"], "customer_name")
        if not name:
            raise ValidationError("customer name is required", field="customer_name")
        changes["customer_name"] = name
    if "customer_email" in patch:
        changes["customer_email"] = normalize_email(patch["customer_email"], "customer_email")
    if "customer_phone" in patch:
        changes["customer_phone"] = clean_text(patch["customer_phone"], "customer_phone")
    if "notes" in patch:
        changes["notes"] = clean_text(patch["notes"], "notes")
    if "payment_status" in patch:
        if patch["payment_status"] not in EDITABLE_PAYMENT_STATUSES:
            raise ValidationError("payment_status must be pending or paid", field="payment_status")
        changes["payment_status"] = patch["payment_status"]

    delta = 0
    if {"desk_id", "start_time", "end_time"} & patch.keys():
        start = coerce_datetime(patch["start_time"], "start_time") if "start_time" in patch else booking.start_time
        end = coerce_datetime(patch["end_time"], "end_time") if "end_time" in patch else booking.end_time

        combo = booking.combo_item
        if combo is not None and combo.duration_minutes:
            if "end_time" in patch:
                raise ValidationError("end_time is fixed by the booking's combo", field="end_time")
            end = start + timedelta(minutes=combo.duration_minutes)

        desk_id = patch.get("desk_id", booking.desk_id)
        desk = _lock_bookable_desk(desk_id) if desk_id != booking.desk_id else booking.desk
        _check_window(desk.id, start, end, exclude_booking_id=booking.id)

        new_amount = combo.price_cents if combo is not None else desk_cost_cents(desk.hourly_rate_cents, start, end)
        delta = new_amount - booking.amount_cents
        changes.update(desk_id=desk.id, start_time=start, end_time=end, amount_cents=new_amount)

    for k, v in changes.items():
        setattr(booking, k, v)

    if delta:
        ledger_service.record(
            "income" if delta > 0 else "expense",
            abs(delta),
            "booking",
            f"Booking #{booking.id} adjusted",
            reference_type="booking",
            reference_id=booking.id,
            created_by_user_id=actor_user_id,
            commit=False,
        )

    db.session.commit()
    return booking


def public_check_in(booking_id: int, now: datetime | None = None) -> Booking:
    """
    Customer self check-in from the public link.

    Only confirmed bookings, from EARLY_CHECK_IN_MINUTES before start until
    the end of the booking.
    """
    booking = get_booking(booking_id)
    if booking.status != "confirmed":
        raise InvalidTransition(f"Only confirmed bookings can be checked in (booking is {booking.status})")

    now = now or utcnow()
    opens_at = booking.start_time - timedelta(minutes=current_app.config["EARLY_CHECK_IN_MINUTES"])
    if now < opens_at:
        raise ConflictError(f"Check-in opens at {to_utc_z(opens_at)}")
    if now >= booking.end_time:
        raise ConflictError("Booking has already ended")

    booking.status = "checked-in"
    booking.checked_in_at = now
    db.session.commit()
    return booking


def complete_elapsed_bookings(now: datetime | None = None) -> int:
    """Complete checked-in bookings whose end time has passed. Returns the count."""
    now = now or utcnow()
    rows = (
        db.session.query(Booking)
        .filter(Booking.status == "checked-in", Booking.end_time <= now)
        .all()
    )
    for booking in rows:
        booking.status = "completed"
        booking.completed_at = now
    db.session.commit()
    return len(rows)


def list_bookings(
    status: str | None = None,
    desk_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = 1,
    limit: int | None = None,
) -> dict:
    """Bookings, newest start first; start/end select bookings overlapping that window."""
    q = db.session.query(Booking)
    if status:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(BOOKING_STATUSES)}", field="status")
        q = q.filter(Booking.status == status)
    if desk_id is not None:
        q = q.filter(Booking.desk_id == desk_id)
    if end is not None:
        q = q.filter(Booking.start_time < end)
    if start is not None:
        q = q.filter(Booking.end_time > start)
    q = q.order_by(Booking.start_time.desc(), Booking.id.desc())
    return paginate(q, page, limit)


def regenerate_public_link(booking_id: int, now: datetime | None = None) -> dict:
    """New customer link, valid until end + buffer and at least 24h from now."""
    booking = get_booking(booking_id)
    expires_at = public_booking_expiry(booking.end_time, now=now, at_least_24h=True)
    token = issue_public_booking_token(booking.id, expires_at)
    return {
        "booking_id": booking.id,
        "public_token": token,
        "public_url": public_booking_url(booking.id, token),
        "public_expires_at": to_utc_z(expires_at),
    }


def public_view(booking: Booking) -> dict:
    """Customer-facing projection; contact details are never included."""
    return {
        "id": booking.id,
        "desk_label": booking.desk.label if booking.desk else None,
        "customer_name": booking.customer_name,
        "start_time": to_utc_z(booking.start_time),
        "end_time": to_utc_z(booking.end_time),
        "status": booking.status,
        "payment_status": booking.payment_status,
        "amount_cents": booking.amount_cents,
        "checked_in_at": to_utc_z(booking.checked_in_at),
        "orders": [
            {
                "id": o.id,
                "status": o.status,
                "total_cents": o.total_cents,
                "items": [i.to_dict() for i in o.items],
            }
            for o in booking.orders
        ],
    }
