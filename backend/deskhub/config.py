# backend/deskhub/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/deskhub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///deskhub.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Storage calls must finish or fail within this bound (seconds)
    STORE_TIMEOUT_SECONDS = int(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))

    # Staff and public booking tokens are signed with different keys
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-staff-jwt-secret-change-me")
    JWT_PUBLIC_SECRET = os.environ.get("JWT_PUBLIC_SECRET", "dev-public-jwt-secret-change-me")
    JWT_ALGORITHM = "HS256"
    STAFF_TOKEN_TTL_HOURS = int(os.environ.get("STAFF_TOKEN_TTL_HOURS", "24"))

    # Public booking links stay valid until booking end + buffer
    PUBLIC_BOOKING_BUFFER_MINUTES = int(os.environ.get("PUBLIC_BOOKING_BUFFER_MINUTES", "30"))
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:3000")
    EARLY_CHECK_IN_MINUTES = int(os.environ.get("EARLY_CHECK_IN_MINUTES", "15"))

    # "production" hides diagnostic detail in error responses
    DESKHUB_ENV = os.environ.get("DESKHUB_ENV", "development")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options(uri: str, timeout_seconds: int) -> dict:
    """SQLAlchemy engine options that bound how long a storage call may block."""
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    return {"pool_timeout": timeout_seconds, "pool_pre_ping": True}
