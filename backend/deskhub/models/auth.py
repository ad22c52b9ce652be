from __future__ import annotations

from ..extensions import db
from deskhub.time_utils import to_utc_z

STAFF_ROLES = ("admin", "staff")
USER_ROLES = ("admin", "staff", "customer")


class User(db.Model):
    """
    Accounts for staff sign-in and attribution of bookings, orders and
    manual ledger entries.

    Only admin and staff roles can obtain a staff token; customer rows exist
    for attribution only.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored lowercased
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(128), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default="staff")
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_brief(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}
