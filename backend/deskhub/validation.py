from __future__ import annotations
from datetime import datetime
from deskhub.time_utils import parse_iso_datetime, normalize_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum money value: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999

INVENTORY_CATEGORIES = ("food", "beverage", "merchandise", "office-supplies", "combo")

# Client-supplied category aliases; one mapping applied at every boundary
CATEGORY_ALIASES = {
    "supplies": "office-supplies",
    "office_supplies": "office-supplies",
    "officesupplies": "office-supplies",
    "drinks": "beverage",
    "beverages": "beverage",
    "snacks": "food",
    "combos": "combo",
}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - defaults_on_create: explicit defaults applied once at the boundary
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    defaults_on_create: dict = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(
                    f"{col.key} must be a plain integer (scientific notation not allowed)", field=col.key
                )
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", field=col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", field=col.key)
        raise ValidationError(f"{col.key} must be an integer", field=col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false", field=col.key)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        return coerce_datetime(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string", field=col.key)
        return str(value).strip()

    return value


def coerce_datetime(value: Any, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return normalize_datetime(value)
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field_name} must be an ISO-8601 datetime", field=field_name)
        if dt is None:
            raise ValidationError(f"{field_name} must be an ISO-8601 datetime", field=field_name)
        return dt
    raise ValidationError(f"{field_name} must be a datetime", field=field_name)


def coerce_positive_int(value: Any, field_name: str, *, minimum: int = 1) -> int:
    """Strict integer parse for values that do not live in a model column."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field_name} must be an integer", field=field_name)
        value = int(stripped)
    if value < minimum:
        raise ValidationError(f"{field_name} must be >= {minimum}", field=field_name)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create, apply defaults)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])
        payload = {**policy.defaults_on_create, **payload}

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


# ---------------------------------------------------------------------------
# Boundary normalization (applied once, never relied upon in storage)
# ---------------------------------------------------------------------------

def normalize_sku(value: str) -> str:
    return value.strip().upper()


def clean_text(value: Any, field_name: str) -> str | None:
    """Strip a free-text value; None and blanks become None, non-strings are rejected."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string", field=field_name)
    return value.strip() or None


def normalize_email(value: str | None, field_name: str = "email") -> str | None:
    value = clean_text(value, field_name)
    return value.lower() if value else None


def normalize_category(value: str) -> str:
    """Canonical inventory category; unknown values are rejected."""
    key = str(value).strip().lower()
    key = CATEGORY_ALIASES.get(key, key)
    if key not in INVENTORY_CATEGORIES:
        raise ValidationError(
            f"category must be one of: {', '.join(INVENTORY_CATEGORIES)}", field="category"
        )
    return key


def _check_amount(patch: dict, key: str, *, allow_zero: bool = True) -> None:
    if key not in patch or patch[key] is None:
        return
    value = patch[key]
    if value < 0 or (value == 0 and not allow_zero):
        op = ">=" if allow_zero else ">"
        raise ValidationError(f"{key} must be {op} 0", field=key)
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(
            f"{key} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})", field=key
        )


def enforce_rules_desk(patch: dict) -> None:
    _check_amount(patch, "hourly_rate_cents")
    if "status" in patch:
        from .models.desks import DESK_STATUSES
        if patch["status"] not in DESK_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(DESK_STATUSES)}", field="status"
            )


def enforce_rules_inventory_item(patch: dict) -> None:
    """Non-negative money and counts; SKU/category normalized in place."""
    _check_amount(patch, "price_cents")
    for key in ("quantity", "low_stock_threshold", "duration_minutes"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0", field=key)
    if patch.get("sku") is not None:
        patch["sku"] = normalize_sku(patch["sku"])
        if not patch["sku"]:
            raise ValidationError("sku cannot be blank", field="sku")
    if patch.get("category") is not None:
        patch["category"] = normalize_category(patch["category"])


def enforce_rules_transaction(patch: dict) -> None:
    _check_amount(patch, "amount_cents", allow_zero=False)
    if "type" in patch and patch["type"] not in ("income", "expense"):
        raise ValidationError("type must be income or expense", field="type")
    if patch.get("source") is not None:
        patch["source"] = patch["source"].lower()
