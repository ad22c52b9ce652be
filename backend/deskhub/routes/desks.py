# Overview: Flask API routes for desks; parses input and returns JSON responses.

"""
Desk management routes.

SECURITY:
- list/get/update: admin, staff
- create/delete: admin
"""
from flask import Blueprint, request

from ..services import desk_service
from ..models import Desk
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_desk
from ..decorators import require_auth, require_role

DESK_POLICY = ModelValidationPolicy(
    writable_fields={"label", "status", "hourly_rate_cents", "location", "description"},
    required_on_create={"label"},
)

desks_bp = Blueprint("desks", __name__, url_prefix="/api/desks")


@desks_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_desks():
    """
    Query params:
    - status: available | reserved | occupied | maintenance
    - sort_by: label | status | hourly_rate_cents | created_at
    - order: asc | desc
    """
    desks = desk_service.list_desks(
        status=request.args.get("status"),
        sort_by=request.args.get("sort_by", "label"),
        order=request.args.get("order", "asc"),
    )
    return {"items": [d.to_dict() for d in desks], "count": len(desks)}


@desks_bp.post("")
@require_auth
@require_role("admin")
def create_desk():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Desk, payload=payload, policy=DESK_POLICY, partial=False)
    enforce_rules_desk(patch)
    desk = desk_service.create_desk(patch)
    return desk.to_dict(), 201


@desks_bp.get("/<int:desk_id>")
@require_auth
@require_role("admin", "staff")
def get_desk(desk_id: int):
    return desk_service.get_desk(desk_id).to_dict()


@desks_bp.patch("/<int:desk_id>")
@desks_bp.put("/<int:desk_id>")
@require_auth
@require_role("admin", "staff")
def update_desk(desk_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Desk, payload=payload, policy=DESK_POLICY, partial=True)
    enforce_rules_desk(patch)
    return desk_service.update_desk(desk_id, patch).to_dict()


@desks_bp.delete("/<int:desk_id>")
@require_auth
@require_role("admin")
def delete_desk(desk_id: int):
    return desk_service.delete_desk(desk_id)
