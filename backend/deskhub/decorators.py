# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import Forbidden, Unauthenticated
from .services import token_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid staff token.

    Sets g.staff (StaffClaims). Raises Unauthenticated (401) when the header
    is missing or the token is invalid, expired, or not a staff token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise Unauthenticated("Authentication required")

        g.staff = token_service.verify_staff_token(token)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Allow-list of roles for one operation. Apply below @require_auth.

    Returns 403 when the token's role is not in the list.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            staff = getattr(g, "staff", None)
            if staff is None:
                raise Unauthenticated("Authentication required")
            if staff.role not in roles:
                raise Forbidden(
                    "Permission denied",
                    details={"required_roles": list(roles), "role": staff.role},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_public_booking_access(f):
    """
    Guard for customer links: /api/public/<booking_id>...?t=<token>.

    The token must be a public booking token issued for exactly this booking.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        booking_id = kwargs.get("booking_id")
        token = request.args.get("t") or request.headers.get("X-Booking-Token")
        if not token_service.verify_public_booking_access(booking_id, token):
            raise Unauthenticated("Invalid or expired booking link")
        return f(*args, **kwargs)

    return decorated_function
