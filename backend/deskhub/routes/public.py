# Overview: Flask API routes for customer booking links; no staff token, booking-scoped token only.

"""
Public customer routes.

Every /api/public/<booking_id> route requires ?t=<public booking token>
issued for that booking. The catalog is open.
"""
from flask import Blueprint, request, current_app

from ..services import booking_service, inventory_service, order_service
from ..errors import ValidationError
from ..decorators import require_public_booking_access

public_bp = Blueprint("public", __name__, url_prefix="/api/public")


@public_bp.get("/inventory")
def public_inventory():
    return {"categories": inventory_service.public_catalog(request.args.get("category"))}


@public_bp.get("/<int:booking_id>")
@require_public_booking_access
def view_booking(booking_id: int):
    return booking_service.public_view(booking_service.get_booking(booking_id))


@public_bp.patch("/<int:booking_id>")
@require_public_booking_access
def check_in(booking_id: int):
    """Body: {"action": "check-in"}"""
    payload = request.get_json(silent=True) or {}
    action = (payload.get("action") or "check-in").strip().lower()
    if action not in ("check-in", "checkin", "check_in"):
        raise ValidationError("action must be check-in", field="action")

    booking = booking_service.public_check_in(booking_id)
    current_app.logger.info("Public check-in booking_id=%s", booking.id)
    return booking_service.public_view(booking)


@public_bp.get("/<int:booking_id>/orders")
@require_public_booking_access
def list_orders(booking_id: int):
    booking_service.get_booking(booking_id)
    result = order_service.list_orders(booking_id=booking_id, page=None)
    return result


@public_bp.post("/<int:booking_id>/orders")
@require_public_booking_access
def place_order(booking_id: int):
    """Customer add-on order; only after check-in. Body: {"items": [...], "total_cents": ...}"""
    payload = request.get_json(silent=True) or {}
    order = order_service.build_order(
        booking_id,
        payload.get("items"),
        total_cents=payload.get("total_cents"),
        notes=payload.get("notes"),
        require_checked_in=True,
    )
    current_app.logger.info(
        "Public order placed id=%s booking_id=%s total_cents=%s",
        order.id, booking_id, order.total_cents,
    )
    return order.to_dict(), 201
