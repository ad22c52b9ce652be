# Overview: Domain error taxonomy and the boundary mapping to JSON responses.

"""
Every service raises one of the errors below. The HTTP boundary never builds
error payloads by hand: it raises (or lets through) a DeskhubError and the
handlers registered in create_app() turn it into

    {"error": <message>, "category": <category>, ["field"], ["details"]}

Raw storage errors are reported as `unavailable`; the driver message is only
attached (as "diagnostic") outside production.
"""

from __future__ import annotations

from flask import current_app, jsonify, request
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from werkzeug.exceptions import HTTPException

from .extensions import db


class DeskhubError(Exception):
    """Base class for errors that map 1:1 to an API response."""
    category = "error"
    status_code = 500

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "category": self.category}
        if self.field:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DeskhubError, ValueError):
    """400-level input problem (malformed or missing field)."""
    category = "validation_error"
    status_code = 400


class ConflictError(DeskhubError, ValueError):
    """409-level business rule conflict (overlap, duplicate SKU/label, total mismatch)."""
    category = "conflict"
    status_code = 409


class InvalidTransition(ConflictError):
    """A status change the state machine does not allow."""
    category = "invalid_transition"


class NotFoundError(DeskhubError):
    category = "not_found"
    status_code = 404


class Unauthenticated(DeskhubError):
    category = "unauthenticated"
    status_code = 401


class Forbidden(DeskhubError):
    category = "forbidden"
    status_code = 403


class Unavailable(DeskhubError):
    """Storage timed out or the connection failed."""
    category = "unavailable"
    status_code = 503


def _is_production() -> bool:
    return current_app.config.get("DESKHUB_ENV") == "production"


def error_response(err: DeskhubError, diagnostic: str | None = None):
    payload = err.to_dict()
    if diagnostic and not _is_production():
        payload["diagnostic"] = diagnostic
    return jsonify(payload), err.status_code


def register_error_handlers(app) -> None:
    """Map the error taxonomy (and storage failures) onto fixed responses."""

    @app.errorhandler(DeskhubError)
    def handle_domain_error(err: DeskhubError):
        db.session.rollback()
        if isinstance(err, (Unauthenticated, Forbidden)):
            current_app.logger.warning("%s on %s %s: %s", err.category, request.method, request.path, err.message)
        return error_response(err)

    @app.errorhandler(OperationalError)
    @app.errorhandler(DisconnectionError)
    @app.errorhandler(PoolTimeoutError)
    def handle_storage_error(err):
        db.session.rollback()
        current_app.logger.error("Storage unavailable on %s %s: %s", request.method, request.path, err)
        return error_response(Unavailable("Storage is temporarily unavailable"), diagnostic=str(err))

    @app.errorhandler(HTTPException)
    def handle_http_error(err: HTTPException):
        if err.code == 404:
            return error_response(NotFoundError("Resource not found"))
        category = (err.name or "http_error").lower().replace(" ", "_")
        return jsonify({"error": err.description or err.name, "category": category}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        payload = {"error": "Internal server error", "category": "internal_error"}
        if not _is_production():
            payload["diagnostic"] = f"{type(err).__name__}: {err}"
        return jsonify(payload), 500
