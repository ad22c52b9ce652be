# Overview: Flask API routes for staff sign-in; returns staff tokens.

from flask import Blueprint, request, g, current_app

from ..services import auth_service, token_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Exchange email + password for a staff token (24h).

    401 on bad credentials, 403 for accounts without a staff role.
    """
    data = request.get_json(silent=True) or {}
    user = auth_service.authenticate(data.get("email"), data.get("password"))

    token = token_service.issue_staff_token(user.id, user.email, user.role)
    current_app.logger.info("Staff sign-in user_id=%s role=%s", user.id, user.role)

    return {
        "token": token,
        "expires_in_hours": current_app.config["STAFF_TOKEN_TTL_HOURS"],
        "user": user.to_dict(),
    }


@auth_bp.get("/me")
@require_auth
def me_route():
    user = auth_service.get_user(g.staff.user_id)
    return {
        "claims": g.staff.to_dict(),
        "user": user.to_dict() if user else None,
    }
