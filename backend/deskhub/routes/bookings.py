# Overview: Flask API routes for bookings; parses input and returns JSON responses.

"""
Booking routes (admin, staff).

Creating a booking returns the customer link (public token + URL) alongside
the booking and any add-on order.
"""
from flask import Blueprint, request, g, current_app

from ..services import booking_service
from ..validation import ValidationError, coerce_datetime, coerce_positive_int
from ..decorators import require_auth, require_role

bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


def _optional_datetime(name: str):
    raw = request.args.get(name)
    return coerce_datetime(raw, name) if raw else None


@bookings_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_bookings():
    """
    Query params:
    - status, desk_id
    - start, end (ISO-8601): bookings overlapping [start, end)
    - page (default 1), limit (default 20, max 100)
    """
    return booking_service.list_bookings(
        status=request.args.get("status"),
        desk_id=request.args.get("desk_id", type=int),
        start=_optional_datetime("start"),
        end=_optional_datetime("end"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", type=int),
    )


@bookings_bp.post("")
@require_auth
@require_role("admin", "staff")
def create_booking():
    """
    Body:
    {
      "desk_id": 1,
      "customer": {"name": "...", "email": "...", "phone": "..."},
      "start_time": "2026-01-05T10:00:00Z",
      "end_time": "2026-01-05T12:00:00Z",   # optional when the combo fixes a duration
      "combo_id": 7,                         # optional
      "items": [{"item_id": 3, "quantity": 2}],
      "total_cents": 2500,                   # optional, checked against the items
      "check_in": false,
      "payment_status": "pending" | "paid",
      "notes": "..."
    }
    """
    payload = request.get_json(silent=True) or {}
    if payload.get("desk_id") in (None, ""):
        raise ValidationError("desk_id is required", field="desk_id")
    if payload.get("start_time") in (None, ""):
        raise ValidationError("start_time is required", field="start_time")

    customer = payload.get("customer")
    if not isinstance(customer, dict):
        customer = {
            "name": payload.get("customer_name"),
            "email": payload.get("customer_email"),
            "phone": payload.get("customer_phone"),
        }

    check_in = payload.get("check_in", False)
    if not isinstance(check_in, bool):
        raise ValidationError("check_in must be true or false", field="check_in")

    combo_id = payload.get("combo_id")
    receipt = booking_service.create_booking(
        desk_id=coerce_positive_int(payload["desk_id"], "desk_id"),
        customer=customer,
        start_time=payload["start_time"],
        end_time=payload.get("end_time"),
        combo_id=coerce_positive_int(combo_id, "combo_id") if combo_id not in (None, "") else None,
        cart_lines=payload.get("items") or None,
        cart_total_cents=payload.get("total_cents"),
        check_in=check_in,
        payment_status=payload.get("payment_status", "pending"),
        notes=payload.get("notes"),
        created_by_user_id=g.staff.user_id,
    )
    booking = receipt.booking
    current_app.logger.info(
        "Booking created id=%s desk_id=%s amount_cents=%s by user_id=%s",
        booking.id, booking.desk_id, booking.amount_cents, g.staff.user_id,
    )
    return receipt.to_dict(), 201


@bookings_bp.get("/<int:booking_id>")
@require_auth
@require_role("admin", "staff")
def get_booking(booking_id: int):
    booking = booking_service.get_booking(booking_id)
    data = booking.to_dict()
    data["orders"] = [o.to_dict() for o in booking.orders]
    return data


@bookings_bp.patch("/<int:booking_id>")
@bookings_bp.put("/<int:booking_id>")
@require_auth
@require_role("admin", "staff")
def update_booking(booking_id: int):
    payload = request.get_json(silent=True) or {}
    if "desk_id" in payload:
        payload["desk_id"] = coerce_positive_int(payload["desk_id"], "desk_id")
    booking = booking_service.update_booking(booking_id, payload, actor_user_id=g.staff.user_id)
    return booking.to_dict()


@bookings_bp.post("/<int:booking_id>/transitions")
@require_auth
@require_role("admin", "staff")
def transition_booking(booking_id: int):
    """Body: {"event": "confirm" | "check-in" | "complete" | "cancel"}"""
    payload = request.get_json(silent=True) or {}
    booking = booking_service.transition(booking_id, payload.get("event"), actor_user_id=g.staff.user_id)
    current_app.logger.info("Booking %s -> %s by user_id=%s", booking.id, booking.status, g.staff.user_id)
    return booking.to_dict()


@bookings_bp.post("/<int:booking_id>/cancel")
@require_auth
@require_role("admin", "staff")
def cancel_booking(booking_id: int):
    booking = booking_service.transition(booking_id, "cancel", actor_user_id=g.staff.user_id)
    current_app.logger.info("Booking %s cancelled by user_id=%s", booking.id, g.staff.user_id)
    return booking.to_dict()


@bookings_bp.post("/<int:booking_id>/generate-token")
@require_auth
@require_role("admin", "staff")
def generate_token(booking_id: int):
    return booking_service.regenerate_public_link(booking_id)
