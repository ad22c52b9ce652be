# Overview: Flask API routes for the ledger; listing, monthly aggregation and manual entries.

"""
Ledger routes.

SECURITY:
- list/aggregate: admin, staff
- manual create: admin

GET /api/transactions?month=YYYY-MM&type=income|expense&source=...&page=&limit=
GET /api/transactions?...&aggregate=true   -> two-pass monthly aggregation
"""
from flask import Blueprint, request, g, current_app

from ..services import ledger_service
from ..models import Transaction
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_transaction
from ..decorators import require_auth, require_role

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"type", "amount_cents", "source", "category", "description", "occurred_at"},
    required_on_create={"type", "amount_cents", "source", "description"},
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_transactions():
    month = request.args.get("month")
    tx_type = request.args.get("type")
    source = request.args.get("source")

    if (request.args.get("aggregate") or "").lower() in ("1", "true", "yes"):
        return ledger_service.aggregate_period(month, tx_type, source)

    return ledger_service.list_period(
        month,
        tx_type,
        source,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", type=int),
    )


@transactions_bp.get("/summary")
@require_auth
@require_role("admin", "staff")
def aggregate_transactions():
    return ledger_service.aggregate_period(
        request.args.get("month"),
        request.args.get("type"),
        request.args.get("source"),
    )


@transactions_bp.post("")
@require_auth
@require_role("admin")
def create_transaction():
    """Manual entry, e.g. {"type": "expense", "amount_cents": 4000, "source": "utilities", "description": "..."}"""
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY, partial=False)
    enforce_rules_transaction(patch)

    entry = ledger_service.record(
        patch["type"],
        patch["amount_cents"],
        patch["source"],
        patch["description"],
        occurred_at=patch.get("occurred_at"),
        category=patch.get("category"),
        reference_type="manual",
        created_by_user_id=g.staff.user_id,
    )
    current_app.logger.info(
        "Manual %s recorded id=%s amount_cents=%s by user_id=%s",
        entry.type, entry.id, entry.amount_cents, g.staff.user_id,
    )
    return entry.to_dict(), 201
