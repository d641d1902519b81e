"""Callable functions used by the web client for booking notifications.

The request bodies use camelCase keys. Every failure is answered with
``{"error": <message>}`` and status 400.
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .auth import STAFF_ROLES, require_roles, require_user
from .errors import InvalidPayload, NotFound, ServiceError
from .extensions import db
from .models import Booking
from .services import get_services
from .services.email import RECIPIENT_MODES, parse_recipient_list
from .timeutils import format_for_email

bp_functions = Blueprint("functions", __name__, url_prefix="/functions")

TEST_SMS_TYPES = ("created", "status")


def _recipients(payload: dict) -> tuple[str, str | None]:
    mode = payload.get("emailRecipients") or "both"
    if mode not in RECIPIENT_MODES:
        raise InvalidPayload(f"emailRecipients must be one of {', '.join(RECIPIENT_MODES)}")
    return mode, payload.get("customEmailAddresses")


def _failure(description: str, exc: Exception):
    if isinstance(exc, SQLAlchemyError):
        db.session.rollback()
    current_app.logger.error("Error sending %s: %s", description, exc)
    message = exc.message if isinstance(exc, ServiceError) and exc.message else str(exc)
    return jsonify({"error": message}), 400


@bp_functions.post("/send-booking-status-email")
def send_booking_status_email() -> tuple[dict[str, object], int]:
    """Email the customer and/or staff about a booking status change.
    ---
    tags:
      - Functions
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - bookingId
          properties:
            bookingId:
              type: integer
            oldStatus:
              type: string
            newStatus:
              type: string
              description: Defaults to the booking's current status
            emailRecipients:
              type: string
              enum: [both, customer, provider]
            customEmailAddresses:
              type: string
              description: Comma separated; replaces the booking's own addresses
    responses:
      200:
        description: Emails sent (or skipped when email is not configured)
      400:
        description: Booking missing or sending failed
    """
    require_user()
    payload = request.get_json(silent=True) or {}
    try:
        mode, custom = _recipients(payload)
        sent = get_services().booking_emails.send_status_email(
            payload.get("bookingId"),
            payload.get("oldStatus"),
            payload.get("newStatus"),
            recipients=mode,
            custom=custom,
        )
    except (ServiceError, SQLAlchemyError) as exc:
        return _failure("booking status emails", exc)

    current_app.logger.info("Booking %s status email sent to %d recipient(s)", payload.get("bookingId"), sent)
    return jsonify({"success": True, "message": "Emails sent successfully"}), 200


@bp_functions.post("/send-booking-created-email")
def send_booking_created_email() -> tuple[dict[str, object], int]:
    """Email the customer and/or staff about a new booking.
    ---
    tags:
      - Functions
    responses:
      200:
        description: Emails sent (or skipped when email is not configured)
      400:
        description: Booking missing or sending failed
    """
    require_user()
    payload = request.get_json(silent=True) or {}
    try:
        mode, custom = _recipients(payload)
        sent = get_services().booking_emails.send_created_email(
            payload.get("bookingId"), recipients=mode, custom=custom
        )
    except (ServiceError, SQLAlchemyError) as exc:
        return _failure("booking creation emails", exc)

    current_app.logger.info("Booking %s created email sent to %d recipient(s)", payload.get("bookingId"), sent)
    return jsonify({"success": True, "message": "Booking creation emails sent successfully"}), 200


@bp_functions.post("/send-test-sms")
@require_roles(*STAFF_ROLES)
def send_test_sms() -> tuple[dict[str, object], int]:
    """Text a sample booking notification to one or more numbers."""
    payload = request.get_json(silent=True) or {}
    try:
        phone_numbers = parse_recipient_list(payload.get("phoneNumbers"))
        if not phone_numbers:
            raise InvalidPayload("phoneNumbers is required")
        test_type = payload.get("testType") or "created"
        if test_type not in TEST_SMS_TYPES:
            raise InvalidPayload(f"testType must be one of {', '.join(TEST_SMS_TYPES)}")

        try:
            booking = db.session.get(Booking, int(payload.get("bookingId")))
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("bookingId must be an integer") from exc
        if booking is None:
            raise NotFound(f"Failed to fetch booking: {payload.get('bookingId')}")

        service_name = booking.service.name if booking.service else "Service"
        when = format_for_email(booking.start_time)
        if test_type == "created":
            body = f"Booking Confirmation - {service_name} on {when}"
        else:
            body = f"Booking {booking.status}: {service_name} on {when}"

        sms = get_services().sms
        for phone in phone_numbers:
            sms.send(phone, body)
    except (ServiceError, SQLAlchemyError) as exc:
        return _failure("test SMS", exc)

    return jsonify({"success": True, "message": f"Test SMS sent to {len(phone_numbers)} number(s)"}), 200
