# Overview: Flask API routes for inventory items and combos; parses input and returns JSON responses.

"""
Inventory routes.

SECURITY:
- list/get/create/update: admin, staff
- delete: admin
"""
from flask import Blueprint, request

from ..services import inventory_service
from ..models import ComboItem, PlainItem
from ..validation import ModelValidationPolicy, validate_payload, normalize_category, ValidationError
from ..decorators import require_auth, require_role

ITEM_FIELDS = {
    "sku", "name", "description", "category", "price_cents",
    "quantity", "low_stock_threshold", "unit", "is_active",
}

ITEM_POLICY = ModelValidationPolicy(
    writable_fields=ITEM_FIELDS,
    required_on_create={"sku", "name", "category"},
)

COMBO_POLICY = ModelValidationPolicy(
    writable_fields=ITEM_FIELDS | {"duration_minutes"},
    required_on_create={"sku", "name", "category"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _split_payload(payload: dict) -> tuple[dict, object, object]:
    payload = dict(payload)
    included = payload.pop("included_items", None)
    adjustment = payload.pop("stock_adjustment", None)
    return payload, included, adjustment


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


@inventory_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_items():
    """
    Query params:
    - category (aliases accepted, e.g. supplies, drinks)
    - low_stock_only: true | false
    - sort_by: name | sku | category | price_cents | quantity | created_at
    - order: asc | desc
    """
    items = inventory_service.list_items(
        category=request.args.get("category"),
        low_stock_only=_truthy(request.args.get("low_stock_only")),
        sort_by=request.args.get("sort_by", "name"),
        order=request.args.get("order", "asc"),
        include_inactive=_truthy(request.args.get("include_inactive")),
    )
    return {
        "items": [i.to_dict() for i in items],
        "count": len(items),
        "low_stock_count": sum(1 for i in items if inventory_service.is_low_stock(i)),
    }


@inventory_bp.post("")
@require_auth
@require_role("admin", "staff")
def create_item():
    payload, included, _ = _split_payload(request.get_json(silent=True) or {})
    if payload.get("category") in (None, ""):
        raise ValidationError("category is required", field="category")

    is_combo = normalize_category(payload["category"]) == "combo"
    patch = validate_payload(
        model=ComboItem if is_combo else PlainItem,
        payload=payload,
        policy=COMBO_POLICY if is_combo else ITEM_POLICY,
        partial=False,
    )
    item = inventory_service.create_item(patch, included_items=included)
    return item.to_dict(), 201


@inventory_bp.get("/<int:item_id>")
@require_auth
@require_role("admin", "staff")
def get_item(item_id: int):
    return inventory_service.get_item(item_id).to_dict()


@inventory_bp.patch("/<int:item_id>")
@inventory_bp.put("/<int:item_id>")
@require_auth
@require_role("admin", "staff")
def update_item(item_id: int):
    """
    Body: any writable field, plus optionally
    - "included_items": [{"item_id": 1, "quantity": 2}]  (combos only)
    - "stock_adjustment": {"type": "add" | "subtract" | "set", "quantity": 5}
    """
    item = inventory_service.get_item(item_id)
    payload, included, adjustment = _split_payload(request.get_json(silent=True) or {})
    patch = validate_payload(
        model=ComboItem if item.is_combo else PlainItem,
        payload=payload,
        policy=COMBO_POLICY if item.is_combo else ITEM_POLICY,
        partial=True,
    )
    item = inventory_service.update_item(
        item_id, patch, included_items=included, stock_adjustment=adjustment
    )
    return item.to_dict()


@inventory_bp.delete("/<int:item_id>")
@require_auth
@require_role("admin")
def delete_item(item_id: int):
    return inventory_service.delete_item(item_id)
