from __future__ import annotations

from ..extensions import db
from deskhub.time_utils import to_utc_z

DESK_STATUSES = ("available", "reserved", "occupied", "maintenance")

DEFAULT_HOURLY_RATE_CENTS = 1000


class Desk(db.Model):
    """
    A bookable desk.

    Status is staff-managed. Booking completion or cancellation never writes
    it; the only automatic check is the maintenance guard in desk_service.

    Desks referenced by past bookings are archived (is_active=False) rather
    than deleted so booking history keeps resolving.
    """
    __tablename__ = "desks"
    __table_args__ = (
        db.UniqueConstraint("label", name="uq_desks_label"),
        db.Index("ix_desks_active_status", "is_active", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="available")

    hourly_rate_cents = db.Column(db.Integer, nullable=False, default=DEFAULT_HOURLY_RATE_CENTS)

    location = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Desk id={self.id} label={self.label!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status,
            "hourly_rate_cents": self.hourly_rate_cents,
            "location": self.location,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
