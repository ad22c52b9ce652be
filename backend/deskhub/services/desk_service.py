# Overview: Service-layer operations for desks; label uniqueness, maintenance guard, archival.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Booking, Desk
from ..models.bookings import NON_TERMINAL_STATUSES
from ..models.desks import DEFAULT_HOURLY_RATE_CENTS
from .booking_service import conflicts_for
from deskhub.time_utils import utcnow

DESK_MUTABLE_FIELDS = {"label", "status", "hourly_rate_cents", "location", "description"}
DESK_SORT_FIELDS = {"label", "status", "hourly_rate_cents", "created_at"}

# Bookings that make "now" occupied for the maintenance guard
ACTIVE_STATUSES = ("confirmed", "checked-in")


def apply_desk_patch(desk: Desk, patch: dict) -> None:
    for k, v in patch.items():
        if k not in DESK_MUTABLE_FIELDS:
            continue
        setattr(desk, k, v)


def _require_unique_label(label: str, exclude_desk_id: int | None = None) -> None:
    q = db.session.query(Desk).filter(db.func.lower(Desk.label) == label.lower())
    if exclude_desk_id is not None:
        q = q.filter(Desk.id != exclude_desk_id)
    if q.first():
        raise ConflictError(f"Desk label '{label}' already exists", field="label")


def create_desk(patch: dict) -> Desk:
    label = patch.get("label")
    if not label:
        raise ValidationError("label is required", field="label")
    _require_unique_label(label)

    desk = Desk(status="available", hourly_rate_cents=DEFAULT_HOURLY_RATE_CENTS)
    apply_desk_patch(desk, patch)

    db.session.add(desk)
    db.session.commit()
    return desk


def list_desks(status: str | None = None, sort_by: str = "label", order: str = "asc") -> list[Desk]:
    """Active (non-archived) desks, optionally filtered by status."""
    if sort_by not in DESK_SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(sorted(DESK_SORT_FIELDS))}", field="sort_by")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be asc or desc", field="order")

    q = db.session.query(Desk).filter(Desk.is_active.is_(True))
    if status:
        q = q.filter(Desk.status == status)

    col = getattr(Desk, sort_by)
    q = q.order_by(col.desc() if order == "desc" else col.asc(), Desk.id.asc())
    return q.all()


def get_desk(desk_id: int) -> Desk:
    desk = db.session.query(Desk).filter_by(id=desk_id).first()
    if not desk or not desk.is_active:
        raise NotFoundError("Desk not found")
    return desk


def update_desk(desk_id: int, patch: dict, now=None) -> Desk:
    """
    Apply a validated patch.

    Moving a desk into maintenance is rejected while a confirmed or
    checked-in booking covers the current instant.
    """
    desk = get_desk(desk_id)

    if "label" in patch and patch["label"] != desk.label:
        _require_unique_label(patch["label"], exclude_desk_id=desk.id)

    if patch.get("status") == "maintenance" and desk.status != "maintenance":
        now = now or utcnow()
        if conflicts_for(desk.id, now, now + timedelta(microseconds=1), statuses=ACTIVE_STATUSES):
            raise ConflictError(
                "Desk has an active booking right now and cannot be put into maintenance",
                field="status",
            )

    apply_desk_patch(desk, patch)
    db.session.commit()
    return desk


def delete_desk(desk_id: int) -> dict:
    """
    Remove a desk.

    - any non-terminal booking -> ConflictError
    - no bookings at all -> row deleted
    - only terminal bookings -> archived (is_active=False), history kept
    """
    desk = get_desk(desk_id)

    open_count = (
        db.session.query(db.func.count(Booking.id))
        .filter(Booking.desk_id == desk.id, Booking.status.in_(NON_TERMINAL_STATUSES))
        .scalar()
    )
    if open_count:
        raise ConflictError(f"Desk has {open_count} open booking(s) and cannot be deleted")

    referenced = db.session.query(Booking.id).filter(Booking.desk_id == desk.id).first()
    if referenced:
        desk.is_active = False
        db.session.commit()
        return {"id": desk_id, "deleted": False, "archived": True}

    db.session.delete(desk)
    db.session.commit()
    return {"id": desk_id, "deleted": True, "archived": False}
