from __future__ import annotations

from ..extensions import db
from deskhub.time_utils import to_utc_z

TRANSACTION_TYPES = ("income", "expense")


class Transaction(db.Model):
    """
    Append-only financial entry.

    amount_cents is always a positive magnitude; direction comes from type.
    Rows are never updated or deleted. Corrections (cancellations, changed
    booking amounts, cancelled orders) are new offsetting rows pointing at
    the same reference.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        db.Index("ix_transactions_occurred_at", "occurred_at"),
        db.Index("ix_transactions_type_source", "type", "source"),
        db.Index("ix_transactions_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # Free-form lowercase tag: booking, order, manual, utilities...
    source = db.Column(db.String(64), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Originating document (booking | order), if any
    reference_type = db.Column(db.String(16), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "source": self.source,
            "category": self.category,
            "description": self.description,
            "occurred_at": to_utc_z(self.occurred_at),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
