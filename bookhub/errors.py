"""Error types raised by the service layer and their JSON rendering."""
from __future__ import annotations

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


class ServiceError(Exception):
    """Base class for errors that map onto an API error payload."""

    code = "server_error"
    status = 500

    def __init__(self, message: str | None = None, *, code: str | None = None, status: int | None = None):
        super().__init__(message or self.code)
        self.message = message
        if code:
            self.code = code
        if status:
            self.status = status

    def to_dict(self) -> dict[str, str]:
        payload = {"error": self.code}
        if self.message:
            payload["message"] = self.message
        return payload


class InvalidPayload(ServiceError):
    code = "invalid_payload"
    status = 400


class Unauthorized(ServiceError):
    code = "unauthorized"
    status = 401


class Forbidden(ServiceError):
    code = "forbidden"
    status = 403


class NotFound(ServiceError):
    code = "not_found"
    status = 404


class Conflict(ServiceError):
    code = "conflict"
    status = 409


class RateLimited(ServiceError):
    code = "rate_limited"
    status = 429


class EmailError(ServiceError):
    code = "email_error"
    status = 502


class SmsError(ServiceError):
    code = "sms_error"
    status = 502


class PaymentError(ServiceError):
    code = "payment_error"
    status = 502


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        if exc.status >= 500:
            current_app.logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database operation failed", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    @app.errorhandler(404)
    def handle_not_found(_exc):
        return jsonify({"error": "not_found", "message": "resource not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_exc):
        return jsonify({"error": "method_not_allowed"}), 405
