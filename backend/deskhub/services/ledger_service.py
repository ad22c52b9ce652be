# Overview: Service-layer operations for the financial ledger; append-only writes and period reporting.

"""
Append-only income/expense ledger.

Every money-moving event in bookings and orders lands here. There is no
update or delete API: a correction is a new entry of the opposite type for
the same reference.

Reporting works on calendar months (UTC). aggregate_period is two passes:

  pass 1 (SQL):    GROUP BY type, source, day  -> per-day-per-source subtotals
  pass 2 (Python): fold subtotals by type      -> {type, total, count, sources}

and finally a summary across both types. Both types are always present.
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Booking, Order, Transaction
from ..models.ledger import TRANSACTION_TYPES
from ..pagination import paginate
from deskhub.time_utils import utcnow, to_utc_z

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def record(
    type: str,
    amount_cents: int,
    source: str,
    description: str,
    occurred_at: datetime | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    category: str | None = None,
    created_by_user_id: int | None = None,
    commit: bool = True,
) -> Transaction:
    """
    Append one ledger entry.

    amount_cents must be a positive integer; expenses are positive amounts
    tagged "expense". Pass commit=False to join a larger transaction.
    """
    if type not in TRANSACTION_TYPES:
        raise ValidationError("type must be income or expense", field="type")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer", field="amount_cents")
    source = (source or "").strip().lower()
    if not source:
        raise ValidationError("source is required", field="source")
    description = (description or "").strip()
    if not description:
        raise ValidationError("description is required", field="description")

    entry = Transaction(
        type=type,
        amount_cents=amount_cents,
        source=source,
        description=description[:255],
        occurred_at=occurred_at or utcnow(),
        reference_type=reference_type,
        reference_id=reference_id,
        category=category,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return entry


def month_bounds(month_key: str | None = None, now: datetime | None = None) -> tuple[datetime, datetime, str]:
    """
    "YYYY-MM" -> (first instant, last instant inclusive, month key).

    None selects the current UTC month.
    """
    if not month_key:
        now = now or utcnow()
        year, month = now.year, now.month
    else:
        m = _MONTH_RE.match(month_key.strip())
        if not m:
            raise ValidationError("month must be in YYYY-MM format", field="month")
        year, month = int(m.group(1)), int(m.group(2))
        if not 1 <= month <= 12:
            raise ValidationError("month must be in YYYY-MM format", field="month")

    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day) + timedelta(days=1) - timedelta(microseconds=1)
    return start, end, f"{year:04d}-{month:02d}"


def _period_query(start: datetime, end: datetime, type: str | None, source: str | None):
    if type is not None and type not in TRANSACTION_TYPES:
        raise ValidationError("type must be income or expense", field="type")

    q = db.session.query(Transaction).filter(
        Transaction.occurred_at >= start,
        Transaction.occurred_at <= end,
    )
    if type:
        q = q.filter(Transaction.type == type)
    if source:
        q = q.filter(Transaction.source == source.strip().lower())
    return q


def _expand_reference(entry: Transaction) -> dict:
    data = entry.to_dict()
    data["reference"] = None
    if entry.reference_type == "booking" and entry.reference_id:
        b = db.session.get(Booking, entry.reference_id)
        if b:
            data["reference"] = {
                "type": "booking",
                "id": b.id,
                "customer_name": b.customer_name,
                "desk_label": b.desk.label if b.desk else None,
                "start_time": to_utc_z(b.start_time),
            }
    elif entry.reference_type == "order" and entry.reference_id:
        o = db.session.get(Order, entry.reference_id)
        if o:
            data["reference"] = {
                "type": "order",
                "id": o.id,
                "booking_id": o.booking_id,
                "total_cents": o.total_cents,
            }
    data["created_by"] = entry.created_by.to_brief() if entry.created_by else None
    return data


def list_period(
    month: str | None = None,
    type: str | None = None,
    source: str | None = None,
    page: int | None = 1,
    limit: int | None = None,
) -> dict:
    """Entries of one month, newest first (date desc, then id desc)."""
    start, end, key = month_bounds(month)
    q = _period_query(start, end, type, source).order_by(
        Transaction.occurred_at.desc(), Transaction.id.desc()
    )
    result = paginate(q, page, limit, serialize=_expand_reference)
    result["month"] = key
    return result


def aggregate_period(month: str | None = None, type: str | None = None, source: str | None = None) -> dict:
    start, end, key = month_bounds(month)
    if type is not None and type not in TRANSACTION_TYPES:
        raise ValidationError("type must be income or expense", field="type")

    day = func.date(Transaction.occurred_at)

    # Pass 1: per (type, source, day)
    q = db.session.query(
        Transaction.type.label("type"),
        Transaction.source.label("source"),
        day.label("day"),
        func.sum(Transaction.amount_cents).label("amount_cents"),
        func.count(Transaction.id).label("count"),
    ).filter(
        Transaction.occurred_at >= start,
        Transaction.occurred_at <= end,
    )
    if type:
        q = q.filter(Transaction.type == type)
    if source:
        q = q.filter(Transaction.source == source.strip().lower())

    rows = q.group_by(Transaction.type, Transaction.source, day).order_by(day.asc(), Transaction.source.asc()).all()

    # Pass 2: fold by type
    groups = {
        t: {"type": t, "total_amount_cents": 0, "count": 0, "sources": []}
        for t in TRANSACTION_TYPES
    }
    for r in rows:
        g = groups[r.type]
        amount = int(r.amount_cents or 0)
        g["total_amount_cents"] += amount
        g["count"] += int(r.count)
        g["sources"].append({
            "source": r.source,
            "date": str(r.day),
            "amount_cents": amount,
            "count": int(r.count),
        })

    income = groups["income"]["total_amount_cents"]
    expenses = groups["expense"]["total_amount_cents"]

    return {
        "month": key,
        "period": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "groups": [groups[t] for t in TRANSACTION_TYPES],
        "summary": {
            "total_income_cents": income,
            "total_expenses_cents": expenses,
            "net_income_cents": income - expenses,
            "transaction_count": groups["income"]["count"] + groups["expense"]["count"],
        },
    }
