"""Service objects wired together once per application."""
from __future__ import annotations

from flask import Flask, current_app

from ..realtime import RealtimeHub, ToastHistory
from .auth import AuthService
from .availability import AvailabilityService
from .blocked_slots import BlockedSlotService
from .bookings import BookingService
from .catalog import CatalogService
from .email import BookingEmailService, EmailService
from .locations import LocationService
from .notifications import NotificationDispatcher
from .payments import PaymentService
from .sessions import SessionService
from .sms import SmsService
from .users import UserService

EXTENSION_KEY = "bookhub"


class ServiceRegistry:
    """Holds every service for one app; stored in ``app.extensions["bookhub"]``."""

    def __init__(self, app: Flask):
        config = app.config

        self.realtime = RealtimeHub(history_size=config.get("REALTIME_HISTORY_SIZE", 200))
        self.toasts = ToastHistory(size=config.get("REALTIME_HISTORY_SIZE", 200))
        self.realtime.subscribe(self.toasts)

        self.locations = LocationService()
        self.catalog = CatalogService()
        self.email = EmailService(config.get("RESEND_API_KEY"), config["EMAIL_FROM_ADDRESS"])
        self.booking_emails = BookingEmailService(self.email, self.locations)
        self.sms = SmsService(
            config.get("TWILIO_ACCOUNT_SID"),
            config.get("TWILIO_AUTH_TOKEN"),
            config.get("TWILIO_FROM_NUMBER"),
        )
        self.notifier = NotificationDispatcher(
            app, self.booking_emails, run_async=config.get("NOTIFICATIONS_ASYNC", True)
        )
        self.bookings = BookingService(notifier=self.notifier)
        self.blocked_slots = BlockedSlotService(self.catalog)
        self.availability = AvailabilityService()
        self.sessions = SessionService()
        self.users = UserService()
        self.payments = PaymentService(
            config.get("STRIPE_SECRET_KEY"),
            currency=config.get("STRIPE_CURRENCY", "aud"),
            frontend_url=config["FRONTEND_URL"],
        )
        self.auth = AuthService(
            self.email,
            self.sms,
            self.users,
            self.sessions,
            frontend_url=config["FRONTEND_URL"],
            verification_timeout=config.get("VERIFICATION_TIMEOUT_SECONDS", 60),
            otp_resend_seconds=config.get("OTP_RESEND_SECONDS", 120),
            otp_ttl_seconds=config.get("OTP_TTL_SECONDS", 600),
            require_verified_fake_email=config.get("REQUIRE_VERIFIED_FAKE_EMAIL_USERS", False),
        )
        self.users.auth = self.auth


def init_services(app: Flask) -> ServiceRegistry:
    registry = ServiceRegistry(app)
    app.extensions[EXTENSION_KEY] = registry
    return registry


def get_services() -> ServiceRegistry:
    return current_app.extensions[EXTENSION_KEY]
