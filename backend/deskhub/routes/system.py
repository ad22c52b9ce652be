# backend/deskhub/routes/system.py
"""
Health endpoint: store connectivity plus basic service wiring.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from deskhub.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "response_time_ms": round(elapsed_ms, 2)}
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "error": str(e) if current_app.config.get("DESKHUB_ENV") != "production" else None}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "environment": current_app.config.get("DESKHUB_ENV"),
        "checks": {"database": database},
    }
    return body, (200 if healthy else 503)
