# Overview: Service-layer operations for signed access tokens (staff and public booking links).

"""
Two token kinds, signed with two different keys:

- staff token           (JWT_SECRET):        {user_id, email, role, type="staff", iat, exp}
- public booking token  (JWT_PUBLIC_SECRET): {booking_id, type="public_booking", exp}

A token of one kind never verifies as the other: the signature check fails
first, and the "type" claim is checked on top of that.

Staff verification raises Unauthenticated. Public verification guards a
best-effort customer link and only ever answers True/False.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import quote

from flask import current_app
from jose import JWTError, jwt

from ..errors import Unauthenticated
from deskhub.time_utils import utcnow, to_utc_z, to_epoch_seconds, from_epoch_seconds

STAFF_TOKEN_TYPE = "staff"
PUBLIC_BOOKING_TOKEN_TYPE = "public_booking"


@dataclass(frozen=True)
class StaffClaims:
    user_id: int
    email: str
    role: str
    issued_at: datetime
    expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
        }


def _algorithm() -> str:
    return current_app.config["JWT_ALGORITHM"]


def issue_staff_token(user_id: int, email: str, role: str, now: datetime | None = None) -> str:
    """Staff token valid STAFF_TOKEN_TTL_HOURS (24h) from issuance."""
    issued_at = (now or utcnow()).replace(microsecond=0)
    expires_at = issued_at + timedelta(hours=current_app.config["STAFF_TOKEN_TTL_HOURS"])
    payload = {
        "user_id": user_id,
        "email": email,
        "role": role,
        "type": STAFF_TOKEN_TYPE,
        "iat": to_epoch_seconds(issued_at),
        "exp": to_epoch_seconds(expires_at),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=_algorithm())


def verify_staff_token(token: str | None) -> StaffClaims:
    """
    Decode a staff token.

    Raises Unauthenticated on a bad signature, an expired token, or a token
    that is not a staff token.
    """
    if not token:
        raise Unauthenticated("Missing authentication token")
    try:
        payload = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[_algorithm()])
    except JWTError as e:
        raise Unauthenticated(f"Invalid or expired token: {e}")

    if payload.get("type") != STAFF_TOKEN_TYPE:
        raise Unauthenticated("Token is not a staff token")

    try:
        return StaffClaims(
            user_id=int(payload["user_id"]),
            email=payload["email"],
            role=payload["role"],
            issued_at=from_epoch_seconds(payload["iat"]),
            expires_at=from_epoch_seconds(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Malformed token claims")


def issue_public_booking_token(booking_id: int, expires_at: datetime) -> str:
    """Token scoped to exactly one booking; the caller chooses the expiry."""
    payload = {
        "booking_id": int(booking_id),
        "type": PUBLIC_BOOKING_TOKEN_TYPE,
        "exp": to_epoch_seconds(expires_at),
    }
    return jwt.encode(payload, current_app.config["JWT_PUBLIC_SECRET"], algorithm=_algorithm())


def verify_public_booking_access(booking_id, token: str | None) -> bool:
    """True only for a valid, unexpired public token issued for this booking id."""
    if not token:
        return False
    try:
        payload = jwt.decode(token, current_app.config["JWT_PUBLIC_SECRET"], algorithms=[_algorithm()])
        if payload.get("type") != PUBLIC_BOOKING_TOKEN_TYPE:
            return False
        return int(payload.get("booking_id")) == int(booking_id)
    except (JWTError, TypeError, ValueError):
        return False


def public_booking_expiry(
    booking_end: datetime,
    now: datetime | None = None,
    at_least_24h: bool = False,
) -> datetime:
    """
    booking end + PUBLIC_BOOKING_BUFFER_MINUTES.

    at_least_24h is used when staff regenerate a link: the link then lives
    at least a day even for bookings that already ended.
    """
    expires_at = booking_end + timedelta(minutes=current_app.config["PUBLIC_BOOKING_BUFFER_MINUTES"])
    if at_least_24h:
        expires_at = max(expires_at, (now or utcnow()) + timedelta(hours=24))
    return expires_at


def public_booking_url(booking_id: int, token: str) -> str:
    base = current_app.config["PUBLIC_BASE_URL"].rstrip("/")
    return f"{base}/p/{booking_id}?t={quote(token)}"
