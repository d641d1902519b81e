"""Environment driven configuration for the BookHub backend."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, "1" if default else "0").lower() in {"1", "true", "yes"}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///bookhub.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Links in emails point back at the web client
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Booking times are stored as wall-clock values in this zone
    BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Australia/Sydney")

    # Resend
    RESEND_API_KEY = os.getenv("RESEND_API_KEY")
    EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "BookHub <noreply@bookhub.example>")

    # Twilio, used for phone OTP delivery
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "aud")

    # Auth flow timings (seconds)
    VERIFICATION_TIMEOUT_SECONDS = int(os.getenv("VERIFICATION_TIMEOUT_SECONDS", "60"))
    OTP_RESEND_SECONDS = int(os.getenv("OTP_RESEND_SECONDS", "120"))
    OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))

    # Fake-email accounts currently sign in without an email_verified check.
    REQUIRE_VERIFIED_FAKE_EMAIL_USERS = _env_bool("REQUIRE_VERIFIED_FAKE_EMAIL_USERS")

    REALTIME_HISTORY_SIZE = int(os.getenv("REALTIME_HISTORY_SIZE", "200"))

    # Booking emails go out on a worker thread unless this is off
    NOTIFICATIONS_ASYNC = _env_bool("NOTIFICATIONS_ASYNC", default=True)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RESEND_API_KEY = None
    STRIPE_SECRET_KEY = None
    TWILIO_ACCOUNT_SID = None
    NOTIFICATIONS_ASYNC = False
