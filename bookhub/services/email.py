"""Transactional email through Resend.

Booking emails are rendered from the Jinja templates under
``templates/emails`` and every recipient is checked against a blocklist of
placeholder domains before anything is sent.
"""
from __future__ import annotations

import logging
import re

import resend
from flask import render_template

from ..errors import EmailError, InvalidPayload, NotFound
from ..extensions import db
from ..models import Booking
from ..timeutils import format_for_email
from .bookings import parse_duration

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
FAKE_EMAIL_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"@temp\.local$",
        r"\.temp\.local$",
        r"\.fake\.com$",
        r"\.test\.com$",
        r"fake.*@",
        r"test.*@",
        r"temp.*@",
    )
)

RECIPIENT_MODES = ("both", "customer", "provider")

STATUS_LABELS = {
    "pending": "Pending Confirmation",
    "confirmed": "Confirmed",
    "cancelled": "Cancelled",
    "completed": "Completed",
    "blocked": "Blocked",
}

STATUS_COLORS = {
    "pending": "#ffc107",
    "confirmed": "#28a745",
    "cancelled": "#dc3545",
    "completed": "#007bff",
}


def is_fake_email(address: str | None) -> bool:
    """Accounts created without a real mailbox use ``@temp.local`` addresses."""
    return bool(address) and address.strip().lower().endswith("@temp.local")


def is_deliverable_email(address: str | None) -> bool:
    if not address or not EMAIL_PATTERN.match(address):
        return False
    return not any(pattern.search(address) for pattern in FAKE_EMAIL_PATTERNS)


def parse_recipient_list(custom: str | None) -> list[str]:
    return [part.strip() for part in (custom or "").split(",") if part.strip()]


def plan_recipients(
    mode: str,
    customer_email: str | None,
    provider_email: str | None,
    custom: str | None = None,
) -> list[tuple[str, str]]:
    """Return ``(address, audience)`` pairs; audience is ``customer`` or ``staff``.

    A non-empty custom list replaces the booking's own addresses. With mode
    ``both`` a custom list only receives the staff version when it holds a
    single address. Undeliverable addresses are dropped with a log line.
    """
    if mode not in RECIPIENT_MODES:
        raise InvalidPayload(f"emailRecipients must be one of {', '.join(RECIPIENT_MODES)}")

    planned: list[tuple[str, str]] = []
    custom_list = parse_recipient_list(custom)
    if custom_list:
        for address in custom_list:
            if mode in ("customer", "both"):
                planned.append((address, "customer"))
            if mode == "provider" or (mode == "both" and len(custom_list) == 1):
                planned.append((address, "staff"))
    else:
        if mode in ("customer", "both") and customer_email:
            planned.append((customer_email, "customer"))
        if mode in ("provider", "both") and provider_email:
            planned.append((provider_email, "staff"))

    deliverable = []
    for address, audience in planned:
        if is_deliverable_email(address):
            deliverable.append((address, audience))
        else:
            logger.info("Skipping %s email to fake address: %s", audience, address)
    return deliverable


class EmailService:
    def __init__(self, api_key: str | None, from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html: str) -> dict | None:
        if not self.configured:
            logger.warning("RESEND_API_KEY missing; skipping email to %s (%s)", to, subject)
            return None
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(
                {"from": self.from_address, "to": [to], "subject": subject, "html": html}
            )
        except Exception as exc:
            logger.error("Email send error to %s: %s", to, exc)
            raise EmailError(f"Failed to send email: {exc}") from exc
        logger.info("Email sent via Resend to %s: %s", to, response)
        return response

    def send_template(self, to: str, subject: str, template: str, **context) -> dict | None:
        return self.send(to, subject, render_template(template, **context))


class BookingEmailService:
    """Builds and sends the booking-created and booking-status emails."""

    def __init__(self, email: EmailService, locations):
        self.email = email
        self.locations = locations

    def _load(self, booking_id) -> Booking:
        if booking_id in (None, ""):
            raise InvalidPayload("bookingId is required")
        try:
            booking = db.session.get(Booking, int(booking_id))
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("bookingId must be an integer") from exc
        if booking is None:
            raise NotFound(f"Failed to fetch booking: {booking_id}")
        return booking

    def _context(self, booking: Booking) -> dict[str, object]:
        customer, provider, service = booking.customer, booking.provider, booking.service
        if booking.start_time and booking.end_time:
            minutes = round((booking.end_time - booking.start_time).total_seconds() / 60)
            duration = f"{minutes} minutes"
        else:
            minutes = parse_duration(service.duration if service else None)
            duration = f"{minutes} minutes" if minutes else "TBD"
        location_name = self.locations.location_name(booking.location_id) if booking.location_id else None
        return {
            "booking": booking,
            "customer_name": (customer.full_name if customer else None) or "Customer",
            "customer_phone": (customer.phone_number if customer else None) or "Not provided",
            "provider_name": (provider.full_name if provider else None) or "Staff Member",
            "service_name": (service.name if service else None) or "Service",
            "start_time": format_for_email(booking.start_time),
            "duration": duration,
            "location_name": location_name,
            "status": booking.status or "confirmed",
            "notes": booking.notes,
        }

    def _deliver(self, booking: Booking, mode: str, custom: str | None, content: dict[str, tuple[str, str]], context) -> int:
        recipients = plan_recipients(
            mode,
            booking.customer.email if booking.customer else None,
            booking.provider.email if booking.provider else None,
            custom,
        )
        for address, audience in recipients:
            subject, template = content[audience]
            self.email.send_template(address, subject, template, **context)
        return len(recipients)

    def send_created_email(self, booking_id, recipients: str = "both", custom: str | None = None) -> int:
        booking = self._load(booking_id)
        context = self._context(booking)
        content = {
            "customer": (f"Booking Confirmation - {context['service_name']}", "emails/booking_created_customer.html"),
            "staff": (f"New Booking Assignment - {context['service_name']}", "emails/booking_created_staff.html"),
        }
        return self._deliver(booking, recipients, custom, content, context)

    def send_status_email(
        self,
        booking_id,
        old_status: str | None,
        new_status: str | None,
        recipients: str = "both",
        custom: str | None = None,
    ) -> int:
        booking = self._load(booking_id)
        new_status = new_status or booking.status
        context = self._context(booking)
        context.update(
            {
                "old_status_label": STATUS_LABELS.get(old_status or "", old_status or "Unknown"),
                "new_status": new_status,
                "new_status_label": STATUS_LABELS.get(new_status, new_status),
                "status_color": STATUS_COLORS.get(new_status, "#6c757d"),
            }
        )
        content = {
            "customer": (
                f"Booking {context['new_status_label']}: {context['service_name']}",
                "emails/booking_status_customer.html",
            ),
            "staff": (
                f"Booking Status Update: {context['customer_name']} - {context['service_name']}",
                "emails/booking_status_staff.html",
            ),
        }
        return self._deliver(booking, recipients, custom, content, context)
