"""Database models for the BookHub backend."""
from __future__ import annotations

import secrets
from datetime import datetime, time, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_flow_token() -> str:
    return secrets.token_urlsafe(32)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _clock(value: time | None) -> str | None:
    """``HH:MM``; an end of day stored as 23:59:59 renders as ``24:00``."""
    if value is None:
        return None
    if value >= time(23, 59, 59):
        return "24:00"
    return value.strftime("%H:%M")


USER_ROLES = ("customer", "staff", "manager", "admin")
BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed", "blocked")

# Association table for the staff assigned to a service
service_staff = db.Table(
    "service_staff",
    db.Column("service_id", db.Integer, db.ForeignKey("services.id"), primary_key=True),
    db.Column("staff_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class Location(db.Model):
    __tablename__ = "locations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    phone_number = db.Column(db.String(30))
    post_code = db.Column(db.String(20))
    birthday = db.Column(db.Date)
    gender = db.Column(db.String(30))
    address = db.Column(db.String(255))
    emergency_contact = db.Column(db.String(255))
    role = db.Column(
        db.Enum(
            *USER_ROLES,
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="customer",
        server_default="customer",
    )
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    last_sign_in = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    location = db.relationship("Location")
    auth_account = db.relationship(
        "AuthAccount", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "phone_number": self.phone_number,
        }

    def to_dict(self) -> dict[str, object]:
        data = self.to_dict_basic()
        data.update(
            {
                "post_code": self.post_code,
                "birthday": _iso(self.birthday),
                "gender": self.gender,
                "address": self.address,
                "emergency_contact": self.emergency_contact,
                "location_id": self.location_id,
                "email_verified": bool(self.email_verified),
                "last_sign_in": _iso(self.last_sign_in),
                "created_at": _iso(self.created_at),
            }
        )
        return data


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    confirmed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    user = db.relationship("User", back_populates="auth_account")


class Service(db.Model):
    """A bookable offering; duration is stored in minutes."""

    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    duration = db.Column(db.Integer, nullable=False, default=60)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    staff = db.relationship("User", secondary=service_staff, lazy="selectin")

    @property
    def staff_ids(self) -> list[int]:
        return sorted(member.id for member in self.staff)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price or 0),
            "duration": self.duration,
            "staff_ids": self.staff_ids,
            "created_at": _iso(self.created_at),
        }


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    provider_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    status = db.Column(
        db.Enum(
            *BOOKING_STATUSES,
            name="booking_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    notes = db.Column(db.Text)
    recurring_type = db.Column(db.String(30))
    recurring_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    customer = db.relationship("User", foreign_keys=[customer_id])
    provider = db.relationship("User", foreign_keys=[provider_id])
    service = db.relationship("Service")
    location = db.relationship("Location")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "location_id": self.location_id,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status,
            "notes": self.notes,
            "recurring_type": self.recurring_type,
            "recurring_count": self.recurring_count or 0,
            "created_at": _iso(self.created_at),
        }


class StaffAvailability(db.Model):
    """Open time window for one staff member on one date."""

    __tablename__ = "staff_availability"

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=False)

    staff = db.relationship("User")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "location_id": self.location_id,
            "date": _iso(self.date),
            "start_time": _clock(self.start_time),
            "end_time": _clock(self.end_time),
            "is_available": bool(self.is_available),
        }


class Setting(db.Model):
    __tablename__ = "settings"
    __table_args__ = (db.UniqueConstraint("category", "key", name="uq_settings_category_key"),)

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(50), nullable=False, index=True)
    key = db.Column(db.String(100), nullable=False)
    value = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    def to_dict(self) -> dict[str, object]:
        return {"category": self.category, "key": self.key, "value": self.value}


class UserSession(db.Model):
    """Presence record backing the connected users report."""

    __tablename__ = "user_sessions"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(100), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user_name = db.Column(db.String(150))
    user_role = db.Column(db.String(30))
    last_activity = db.Column(db.DateTime, nullable=False)
    browser_info = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "last_activity": _iso(self.last_activity),
            "browser_info": self.browser_info,
            "is_active": bool(self.is_active),
            "created_at": _iso(self.created_at),
        }


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="aud")
    payment_method = db.Column(db.String(30), nullable=False, default="stripe")
    stripe_session_id = db.Column(db.String(255))
    status = db.Column(db.String(30), nullable=False, default="pending")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    booking = db.relationship("Booking")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "payment_method": self.payment_method,
            "stripe_session_id": self.stripe_session_id,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


class AuthFlowRecord(db.Model):
    """Persisted state of one sign-up, OTP or recovery flow."""

    __tablename__ = "auth_flows"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(30), nullable=False)
    state = db.Column(db.String(40), nullable=False, default="idle")
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    error = db.Column(db.String(255))
    verifying_since = db.Column(db.DateTime)
    flow_token = db.Column(db.String(64), nullable=False, default=new_flow_token)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )


class OtpChallenge(db.Model):
    __tablename__ = "otp_challenges"

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(30), nullable=False, index=True)
    code_hash = db.Column(db.String(255), nullable=False)
    purpose = db.Column(db.String(20), nullable=False, default="signin")
    full_name = db.Column(db.String(150))
    expires_at = db.Column(db.DateTime, nullable=False)
    resend_after = db.Column(db.DateTime, nullable=False)
    consumed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
