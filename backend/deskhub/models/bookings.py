from __future__ import annotations

from ..extensions import db
from deskhub.time_utils import to_utc_z

BOOKING_STATUSES = ("pending", "confirmed", "checked-in", "completed", "cancelled")

# Non-terminal bookings still hold their desk interval
NON_TERMINAL_STATUSES = ("pending", "confirmed", "checked-in")
TERMINAL_STATUSES = ("completed", "cancelled")

PAYMENT_STATUSES = ("pending", "paid", "refunded")


class Booking(db.Model):
    """
    A reservation of one desk for [start_time, end_time).

    LIFECYCLE:
    - pending -> confirmed -> checked-in -> completed
    - pending -> checked-in (walk-in)
    - pending | confirmed | checked-in -> cancelled
    completed and cancelled are terminal; the row is immutable afterwards.

    amount_cents is fixed at write time (desk rate x duration, or the combo
    price for combo bookings) and mirrored by an income entry in the ledger.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.CheckConstraint("start_time < end_time", name="ck_bookings_interval"),
        db.Index("ix_bookings_desk_window", "desk_id", "start_time", "end_time"),
        db.Index("ix_bookings_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    desk_id = db.Column(db.Integer, db.ForeignKey("desks.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(128), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending")
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set when the booking was made through a combo carrying a fixed duration
    combo_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    checked_in_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    desk = db.relationship("Desk", backref=db.backref("bookings", lazy=True))
    combo_item = db.relationship("InventoryItem", foreign_keys=[combo_item_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600

    def __repr__(self) -> str:
        return f"<Booking id={self.id} desk_id={self.desk_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "desk_id": self.desk_id,
            "desk_label": self.desk.label if self.desk else None,
            "customer": {
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
            },
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "duration_hours": round(self.duration_hours, 2),
            "status": self.status,
            "payment_status": self.payment_status,
            "amount_cents": self.amount_cents,
            "combo_item_id": self.combo_item_id,
            "notes": self.notes,
            "checked_in_at": to_utc_z(self.checked_in_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
