from __future__ import annotations

from ..extensions import db
from deskhub.time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Purchasable item. Two variants share the table (single-table inheritance):

    - PlainItem  (item_type="item"):  stocked goods, priced per unit
    - ComboItem  (item_type="combo"): a bundle of PlainItems, priced as one
      unit, optionally fixing the duration of the booking it is sold with

    The variant is chosen at creation and never changes. SKU is stored
    uppercased; category is stored in canonical form (see validation).

    is_low_stock is derived on every read and never persisted.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_inventory_items_sku"),
        db.Index("ix_inventory_items_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(16), nullable=False)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"polymorphic_on": item_type}

    @property
    def is_combo(self) -> bool:
        return self.item_type == "combo"

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} sku={self.sku!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.item_type,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "unit": self.unit,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PlainItem(InventoryItem):
    __mapper_args__ = {"polymorphic_identity": "item"}


class ComboItem(InventoryItem):
    """Bundle of plain items; components are informational, never priced."""

    # Fixed booking duration imposed by the combo (None = caller's window)
    duration_minutes = db.Column(db.Integer, nullable=True)

    components = db.relationship(
        "ComboComponent",
        foreign_keys="ComboComponent.combo_id",
        order_by="ComboComponent.position",
        cascade="all, delete-orphan",
        back_populates="combo",
    )

    __mapper_args__ = {"polymorphic_identity": "combo"}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["duration_minutes"] = self.duration_minutes
        data["included_items"] = [c.to_dict() for c in self.components]
        return data


class ComboComponent(db.Model):
    """One ordered {item, quantity} entry inside a combo."""
    __tablename__ = "combo_components"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_combo_components_quantity"),
        db.Index("ix_combo_components_item", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    position = db.Column(db.Integer, nullable=False, default=0)

    combo = db.relationship("ComboItem", foreign_keys=[combo_id], back_populates="components")
    item = db.relationship("InventoryItem", foreign_keys=[item_id])

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.item.name if self.item else None,
            "sku": self.item.sku if self.item else None,
            "quantity": self.quantity,
        }
