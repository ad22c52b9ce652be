# Overview: Service-layer operations for inventory; combo composition, stock and cart-line pricing.

"""
Inventory items come in two variants (see models.inventory):

- PlainItem: stocked goods
- ComboItem: ordered list of PlainItem components; sells as one unit at the
  combo's own price and may fix the duration of the booking it is sold with

Combo composition is validated before anything is written: every component
id must be well formed, resolve to an existing item, and that item must not
itself be a combo.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import ComboComponent, ComboItem, InventoryItem, OrderItem, PlainItem, Booking
from ..validation import coerce_positive_int, enforce_rules_inventory_item, normalize_category, normalize_sku

ITEM_MUTABLE_FIELDS = {
    "sku", "name", "description", "category", "price_cents",
    "quantity", "low_stock_threshold", "unit", "is_active",
}
COMBO_MUTABLE_FIELDS = ITEM_MUTABLE_FIELDS | {"duration_minutes"}

ITEM_SORT_FIELDS = {"name", "sku", "category", "price_cents", "quantity", "created_at"}

ITEM_DEFAULTS = {"quantity": 0, "low_stock_threshold": 5, "unit": "pcs"}

STOCK_ADJUSTMENTS = ("add", "subtract", "set")


@dataclass(frozen=True)
class ResolvedLine:
    """A cart line priced against the current catalog."""
    item_id: int
    name: str
    item_type: str
    unit_price_cents: int
    quantity: int
    subtotal_cents: int
    duration_minutes: int | None = None


def is_low_stock(item: InventoryItem) -> bool:
    return item.quantity <= item.low_stock_threshold


def _prepare_patch(patch: dict, *, creating: bool) -> dict:
    patch = dict(patch or {})
    if creating:
        for k, v in ITEM_DEFAULTS.items():
            if patch.get(k) is None:
                patch[k] = v
    enforce_rules_inventory_item(patch)
    return patch


def _require_unique_sku(sku: str, exclude_item_id: int | None = None) -> None:
    q = db.session.query(InventoryItem).filter(InventoryItem.sku == normalize_sku(sku))
    if exclude_item_id is not None:
        q = q.filter(InventoryItem.id != exclude_item_id)
    if q.first():
        raise ConflictError(f"SKU '{normalize_sku(sku)}' already exists", field="sku")


def _resolve_components(included_items, *, combo_id: int | None = None) -> list[ComboComponent]:
    """Validate a combo's component list and build (unsaved) rows in order."""
    if not isinstance(included_items, list) or not included_items:
        raise ValidationError("A combo must include at least one item", field="included_items")

    components = []
    for position, entry in enumerate(included_items):
        if not isinstance(entry, dict):
            raise ValidationError(f"included_items[{position}] must be an object", field="included_items")

        raw_id = entry.get("item_id")
        if isinstance(raw_id, bool) or not isinstance(raw_id, (int, str)) or not str(raw_id).strip().isdigit():
            raise ValidationError(f"Malformed item id: {raw_id!r}", field="included_items")
        item_id = int(str(raw_id).strip())

        quantity = coerce_positive_int(entry.get("quantity", 1), "quantity")

        item = db.session.get(InventoryItem, item_id)
        if item is None:
            raise ValidationError(f"Included item {item_id} does not exist", field="included_items")
        if item.is_combo or (combo_id is not None and item.id == combo_id):
            raise ValidationError(
                f"Included item {item_id} is a combo; combos cannot contain combos",
                field="included_items",
            )

        components.append(ComboComponent(item_id=item.id, quantity=quantity, position=position))
    return components


def create_item(patch: dict, included_items=None) -> InventoryItem:
    """
    Create a plain item or, for category "combo", a combo item.

    Raises:
        ValidationError: bad fields or combo composition
        ConflictError: SKU already in use (case-insensitive)
    """
    patch = _prepare_patch(patch, creating=True)
    for required in ("sku", "name", "category"):
        if not patch.get(required):
            raise ValidationError(f"{required} is required", field=required)

    _require_unique_sku(patch["sku"])

    if patch["category"] == "combo":
        components = _resolve_components(included_items)
        item = ComboItem()
        for k, v in patch.items():
            if k in COMBO_MUTABLE_FIELDS:
                setattr(item, k, v)
        item.components = components
    else:
        if included_items:
            raise ValidationError("Only combo items can include other items", field="included_items")
        if patch.get("duration_minutes") is not None:
            raise ValidationError("Only combo items can carry a duration", field="duration_minutes")
        item = PlainItem()
        for k, v in patch.items():
            if k in ITEM_MUTABLE_FIELDS:
                setattr(item, k, v)

    db.session.add(item)
    db.session.commit()
    return item


def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")
    return item


def _parse_stock_adjustment(adjustment) -> tuple[str, int]:
    if not isinstance(adjustment, dict):
        raise ValidationError("stock_adjustment must be an object", field="stock_adjustment")
    kind = adjustment.get("type")
    if kind not in STOCK_ADJUSTMENTS:
        raise ValidationError(
            f"stock_adjustment.type must be one of: {', '.join(STOCK_ADJUSTMENTS)}",
            field="stock_adjustment",
        )
    return kind, coerce_positive_int(adjustment.get("quantity"), "quantity", minimum=0)


def _apply_stock_adjustment(item: InventoryItem, kind: str, amount: int) -> None:
    if kind == "add":
        item.quantity = item.quantity + amount
    elif kind == "subtract":
        item.quantity = max(0, item.quantity - amount)
    else:
        item.quantity = max(0, amount)


def update_item(item_id: int, patch: dict, included_items=None, stock_adjustment=None) -> InventoryItem:
    """
    Field edits, an optional stock adjustment (add | subtract | set, floored
    at zero) and, for combos, an optional replacement component list.

    The variant is fixed at creation: category cannot move to or from combo.
    Nothing on the item changes unless every part of the update is valid.
    """
    item = get_item(item_id)
    patch = _prepare_patch(patch, creating=False)

    if "category" in patch and (patch["category"] == "combo") != item.is_combo:
        raise ValidationError("Category cannot change to or from combo", field="category")

    if "sku" in patch and patch["sku"] != item.sku:
        _require_unique_sku(patch["sku"], exclude_item_id=item.id)

    allowed = COMBO_MUTABLE_FIELDS if item.is_combo else ITEM_MUTABLE_FIELDS
    for k in patch:
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}", field=k)

    adjustment = _parse_stock_adjustment(stock_adjustment) if stock_adjustment is not None else None

    components = None
    if included_items is not None:
        if not item.is_combo:
            raise ValidationError("Only combo items can include other items", field="included_items")
        components = _resolve_components(included_items, combo_id=item.id)

    if components is not None:
        item.components = components
    for k, v in patch.items():
        setattr(item, k, v)
    if adjustment is not None:
        _apply_stock_adjustment(item, *adjustment)

    db.session.commit()
    return item


def delete_item(item_id: int) -> dict:
    """
    Delete an item.

    Rejected while any combo includes it. Items already sold (order lines or
    combo bookings) are deactivated instead so history keeps resolving.
    """
    item = get_item(item_id)

    used_by = (
        db.session.query(ComboComponent)
        .filter(ComboComponent.item_id == item.id)
        .first()
    )
    if used_by:
        raise ConflictError(f"Item is included in combo {used_by.combo_id} and cannot be deleted")

    sold = (
        db.session.query(OrderItem.id).filter(OrderItem.item_id == item.id).first()
        or db.session.query(Booking.id).filter(Booking.combo_item_id == item.id).first()
    )
    if sold:
        item.is_active = False
        db.session.commit()
        return {"id": item_id, "deleted": False, "archived": True}

    db.session.delete(item)
    db.session.commit()
    return {"id": item_id, "deleted": True, "archived": False}


def list_items(
    category: str | None = None,
    low_stock_only: bool = False,
    sort_by: str = "name",
    order: str = "asc",
    include_inactive: bool = False,
) -> list[InventoryItem]:
    if sort_by not in ITEM_SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(sorted(ITEM_SORT_FIELDS))}", field="sort_by")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be asc or desc", field="order")

    q = db.session.query(InventoryItem)
    if not include_inactive:
        q = q.filter(InventoryItem.is_active.is_(True))
    if category:
        q = q.filter(InventoryItem.category == normalize_category(category))
    if low_stock_only:
        q = q.filter(InventoryItem.quantity <= InventoryItem.low_stock_threshold)

    col = getattr(InventoryItem, sort_by)
    q = q.order_by(col.desc() if order == "desc" else col.asc(), InventoryItem.id.asc())
    return q.all()


def public_catalog(category: str | None = None) -> dict:
    """Active, in-stock items grouped by category, without stock internals."""
    q = db.session.query(InventoryItem).filter(
        InventoryItem.is_active.is_(True),
        InventoryItem.quantity > 0,
    )
    if category:
        q = q.filter(InventoryItem.category == normalize_category(category))

    grouped: dict[str, list[dict]] = {}
    for item in q.order_by(InventoryItem.category.asc(), InventoryItem.name.asc()).all():
        entry = {
            "id": item.id,
            "name": item.name,
            "description": item.description,
            "type": item.item_type,
            "price_cents": item.price_cents,
            "unit": item.unit,
        }
        if item.is_combo:
            entry["duration_minutes"] = item.duration_minutes
            entry["included_items"] = [c.to_dict() for c in item.components]
        grouped.setdefault(item.category, []).append(entry)
    return grouped


def resolve_cart_line(item_id, quantity) -> ResolvedLine:
    """
    Price one cart line.

    Combos price at their own price; components are informational. A combo's
    duration rides along for the enclosing booking.
    """
    if isinstance(item_id, bool) or not isinstance(item_id, (int, str)) or not str(item_id).strip().isdigit():
        raise ValidationError(f"Malformed item id: {item_id!r}", field="item_id")
    quantity = coerce_positive_int(quantity, "quantity")

    item = get_item(int(str(item_id).strip()))
    if not item.is_active:
        raise ValidationError(f"Item '{item.name}' is not available", field="item_id")

    return ResolvedLine(
        item_id=item.id,
        name=item.name,
        item_type=item.item_type,
        unit_price_cents=item.price_cents,
        quantity=quantity,
        subtotal_cents=item.price_cents * quantity,
        duration_minutes=item.duration_minutes if item.is_combo else None,
    )
