# Overview: Flask API routes for add-on orders; parses input and returns JSON responses.

"""
Order routes.

SECURITY:
- list/get/create/update/transition: admin, staff
- delete: admin
"""
from flask import Blueprint, request, g, current_app

from ..services import order_service
from ..validation import ValidationError, coerce_positive_int
from ..decorators import require_auth, require_role

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_orders():
    return order_service.list_orders(
        status=request.args.get("status"),
        booking_id=request.args.get("booking_id", type=int),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", type=int),
    )


@orders_bp.post("")
@require_auth
@require_role("admin", "staff")
def create_order():
    """Body: {"booking_id": 1, "items": [{"item_id": 3, "quantity": 2}], "total_cents": 2500, "notes": "..."}"""
    payload = request.get_json(silent=True) or {}
    if payload.get("booking_id") in (None, ""):
        raise ValidationError("booking_id is required", field="booking_id")

    order = order_service.build_order(
        coerce_positive_int(payload["booking_id"], "booking_id"),
        payload.get("items"),
        total_cents=payload.get("total_cents"),
        notes=payload.get("notes"),
        created_by_user_id=g.staff.user_id,
    )
    current_app.logger.info(
        "Order placed id=%s booking_id=%s total_cents=%s by user_id=%s",
        order.id, order.booking_id, order.total_cents, g.staff.user_id,
    )
    return order.to_dict(), 201


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role("admin", "staff")
def get_order(order_id: int):
    return order_service.get_order(order_id).to_dict()


@orders_bp.patch("/<int:order_id>")
@orders_bp.put("/<int:order_id>")
@require_auth
@require_role("admin", "staff")
def update_order(order_id: int):
    """Replace the item list of a pending order. Body: {"items": [...], "total_cents": ...}"""
    payload = request.get_json(silent=True) or {}
    order = order_service.replace_order_items(
        order_id,
        payload.get("items"),
        total_cents=payload.get("total_cents"),
        actor_user_id=g.staff.user_id,
    )
    return order.to_dict()


@orders_bp.post("/<int:order_id>/transitions")
@require_auth
@require_role("admin", "staff")
def transition_order(order_id: int):
    """Body: {"event": "confirm" | "prepare" | "ready" | "deliver" | "cancel"}"""
    payload = request.get_json(silent=True) or {}
    order = order_service.advance_order_status(order_id, payload.get("event"), actor_user_id=g.staff.user_id)
    return order.to_dict()


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_role("admin")
def delete_order(order_id: int):
    return order_service.delete_order(order_id, actor_user_id=g.staff.user_id)
