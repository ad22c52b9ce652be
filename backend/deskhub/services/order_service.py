# Overview: Service-layer operations for add-on orders; cart resolution, stock and status flow.

"""
Orders turn a cart into priced lines bound to a booking.

WRITE-TIME CHECKS (build and item replacement, never on read):
- booking exists and is non-terminal (checked-in for customer orders)
- at least one line, every line resolved against the live catalog
- stock covers every line; stock is decremented in the same transaction
- total is the exact sum of subtotals; a client-supplied total may differ
  by at most 1 cent

STATUS FLOW:
    pending -> confirmed -> preparing -> ready -> delivered
    cancel from any state before delivered

Cancelling restores stock and offsets the order income with an expense.
"""

from __future__ import annotations

from collections import Counter

from ..extensions import db
from ..errors import ConflictError, InvalidTransition, NotFoundError, ValidationError
from ..models import Booking, InventoryItem, Order, OrderItem
from ..models.orders import ORDER_STATUSES
from ..pagination import paginate
from . import ledger_service
from .inventory_service import ResolvedLine, resolve_cart_line
from deskhub.time_utils import utcnow

TOTAL_TOLERANCE_CENTS = 1

# event -> (allowed source statuses, target status)
ORDER_TRANSITIONS = {
    "confirm": (("pending",), "confirmed"),
    "prepare": (("confirmed",), "preparing"),
    "ready": (("preparing",), "ready"),
    "deliver": (("ready",), "delivered"),
    "cancel": (("pending", "confirmed", "preparing", "ready"), "cancelled"),
}


def _require_open_booking(booking_id, *, require_checked_in: bool) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if booking.is_terminal:
        raise ConflictError(f"Booking is {booking.status}; orders can no longer be placed")
    if require_checked_in and booking.status != "checked-in":
        raise ConflictError("Orders can only be placed after checking in")
    return booking


def _resolve_lines(cart_lines) -> list[ResolvedLine]:
    if not isinstance(cart_lines, list) or not cart_lines:
        raise ValidationError("An order needs at least one item", field="items")
    resolved = []
    for line in cart_lines:
        if not isinstance(line, dict):
            raise ValidationError("Each order line must be an object", field="items")
        resolved.append(resolve_cart_line(line.get("item_id"), line.get("quantity")))
    return resolved


def _check_total(lines: list[ResolvedLine], total_cents) -> int:
    computed = sum(line.subtotal_cents for line in lines)
    if total_cents is None:
        return computed
    if isinstance(total_cents, bool) or not isinstance(total_cents, int):
        raise ValidationError("total_cents must be an integer", field="total_cents")
    if abs(computed - total_cents) > TOTAL_TOLERANCE_CENTS:
        raise ConflictError(
            "Order total does not match the sum of its items",
            field="total_cents",
            details={"computed_total_cents": computed, "supplied_total_cents": total_cents},
        )
    return computed


def _check_stock(lines: list[ResolvedLine], released: Counter | None = None) -> dict[int, InventoryItem]:
    """Every line must be covered by stock (plus what this order already holds)."""
    released = released or Counter()
    wanted = Counter()
    for line in lines:
        wanted[line.item_id] += line.quantity

    items = {}
    for item_id, qty in wanted.items():
        item = db.session.get(InventoryItem, item_id)
        available = item.quantity + released[item_id]
        if qty > available:
            raise ConflictError(
                f"Insufficient stock for '{item.name}': {available} available, {qty} requested",
                field="items",
                details={"item_id": item_id, "available": available, "requested": qty},
            )
        items[item_id] = item
    return items


def _held_quantities(order: Order) -> Counter:
    held = Counter()
    for oi in order.items:
        held[oi.item_id] += oi.quantity
    return held


def _order_lines(lines: list[ResolvedLine]) -> list[OrderItem]:
    return [
        OrderItem(
            item_id=line.item_id,
            name=line.name,
            item_type=line.item_type,
            unit_price_cents=line.unit_price_cents,
            quantity=line.quantity,
            subtotal_cents=line.subtotal_cents,
        )
        for line in lines
    ]


def check_cart(cart_lines, total_cents: int | None = None) -> int:
    """Run the write-time cart checks without touching the session; returns the total."""
    lines = _resolve_lines(cart_lines)
    total = _check_total(lines, total_cents)
    _check_stock(lines)
    return total


def build_order(
    booking_id: int,
    cart_lines,
    total_cents: int | None = None,
    notes: str | None = None,
    require_checked_in: bool = False,
    created_by_user_id: int | None = None,
    commit: bool = True,
) -> Order:
    """
    Price a cart against the catalog and attach it to a booking.

    Nothing is written unless every check passes. Pass commit=False to build
    the order inside a larger transaction (booking creation).
    """
    booking = _require_open_booking(booking_id, require_checked_in=require_checked_in)
    lines = _resolve_lines(cart_lines)
    total = _check_total(lines, total_cents)
    items = _check_stock(lines)

    for line in lines:
        items[line.item_id].quantity -= line.quantity

    order = Order(
        booking_id=booking.id,
        status="pending",
        total_cents=total,
        notes=notes,
        created_by_user_id=created_by_user_id,
    )
    order.items = _order_lines(lines)
    db.session.add(order)
    db.session.flush()

    if total > 0:
        ledger_service.record(
            "income",
            total,
            "order",
            f"Order #{order.id} for booking #{booking.id}",
            reference_type="order",
            reference_id=order.id,
            created_by_user_id=created_by_user_id,
            commit=False,
        )

    if commit:
        db.session.commit()
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def replace_order_items(
    order_id: int,
    cart_lines,
    total_cents: int | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """
    Swap the item list of a pending order.

    Same write-time checks as build_order. Stock moves by the difference and
    the ledger gets one offsetting entry for the total difference.
    """
    order = get_order(order_id)
    if order.status != "pending":
        raise InvalidTransition(f"Only pending orders can be edited (order is {order.status})")
    _require_open_booking(order.booking_id, require_checked_in=False)

    lines = _resolve_lines(cart_lines)
    total = _check_total(lines, total_cents)
    held = _held_quantities(order)
    items = _check_stock(lines, released=held)

    for item_id, qty in held.items():
        item = db.session.get(InventoryItem, item_id)
        if item is not None:
            item.quantity += qty
    for line in lines:
        items[line.item_id].quantity -= line.quantity

    delta = total - order.total_cents
    order.items = _order_lines(lines)
    order.total_cents = total

    if delta:
        ledger_service.record(
            "income" if delta > 0 else "expense",
            abs(delta),
            "order",
            f"Order #{order.id} items changed",
            reference_type="order",
            reference_id=order.id,
            created_by_user_id=actor_user_id,
            commit=False,
        )

    db.session.commit()
    return order


def _cancel(order: Order, actor_user_id: int | None) -> None:
    now = utcnow()
    for item_id, qty in _held_quantities(order).items():
        item = db.session.get(InventoryItem, item_id)
        if item is not None:
            item.quantity += qty

    if order.total_cents > 0:
        ledger_service.record(
            "expense",
            order.total_cents,
            "order",
            f"Order #{order.id} cancelled",
            occurred_at=now,
            reference_type="order",
            reference_id=order.id,
            created_by_user_id=actor_user_id,
            commit=False,
        )
    order.status = "cancelled"
    order.cancelled_at = now


def advance_order_status(order_id: int, event: str, actor_user_id: int | None = None) -> Order:
    event = (event or "").strip().lower()
    if event not in ORDER_TRANSITIONS:
        raise ValidationError(f"event must be one of: {', '.join(ORDER_TRANSITIONS)}", field="event")

    order = get_order(order_id)
    allowed_from, target = ORDER_TRANSITIONS[event]
    if order.status not in allowed_from:
        raise InvalidTransition(f"Cannot {event} an order that is {order.status}")

    if target == "cancelled":
        _cancel(order, actor_user_id)
    else:
        order.status = target
        if target == "delivered":
            order.delivered_at = utcnow()

    db.session.commit()
    return order


def delete_order(order_id: int, actor_user_id: int | None = None) -> dict:
    """Only pending or cancelled orders; a pending order is cancelled first."""
    order = get_order(order_id)
    if order.status not in ("pending", "cancelled"):
        raise ConflictError(f"Order is {order.status} and cannot be deleted")

    if order.status == "pending":
        _cancel(order, actor_user_id)

    db.session.delete(order)
    db.session.commit()
    return {"id": order_id, "deleted": True}


def list_orders(
    status: str | None = None,
    booking_id: int | None = None,
    page: int | None = 1,
    limit: int | None = None,
) -> dict:
    q = db.session.query(Order)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}", field="status")
        q = q.filter(Order.status == status)
    if booking_id is not None:
        q = q.filter(Order.booking_id == booking_id)
    q = q.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(q, page, limit)
