"""Booking lifecycle: validation, conflict checks, status changes and stats."""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta

from sqlalchemy import and_, func, or_

from .. import messages
from ..errors import Conflict, Forbidden, InvalidPayload, NotFound
from ..extensions import db
from ..models import Booking, Service, User
from ..timeutils import local_now, parse_datetime

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ("pending", "confirmed", "cancelled", "completed")
PROVIDER_ROLES = ("staff", "manager", "admin")
DEFAULT_DURATION_MINUTES = 60

_VERBOSE_PARTS = (
    (re.compile(r"(\d+)\s+hour", re.IGNORECASE), 60.0),
    (re.compile(r"(\d+)\s+min", re.IGNORECASE), 1.0),
    (re.compile(r"(\d+)\s+sec", re.IGNORECASE), 1 / 60),
)


def parse_duration(value) -> int | None:
    """Duration in whole minutes.

    Accepts plain numbers (minutes), ``HH:MM:SS``, ``MM:SS`` and verbose
    intervals such as ``1 hour 30 minutes``. Returns ``None`` when the value
    cannot be interpreted.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, timedelta):
        return round(value.total_seconds() / 60)
    if isinstance(value, (int, float)):
        return round(value)

    text = str(value).strip()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return round(float(text))
    if ":" in text:
        parts = text.split(":")
        try:
            numbers = [float(part) for part in parts]
        except ValueError:
            return None
        if len(numbers) == 3:
            return round(numbers[0] * 60 + numbers[1] + numbers[2] / 60)
        if len(numbers) == 2:
            return round(numbers[0] + numbers[1] / 60)
        return None

    minutes, matched = 0.0, False
    for pattern, factor in _VERBOSE_PARTS:
        match = pattern.search(text)
        if match:
            minutes += int(match.group(1)) * factor
            matched = True
    return round(minutes) if matched else None


def time_until_edit_cutoff(start_time: datetime, limit_hours: int, now: datetime) -> timedelta:
    """Time left before changes close; zero once the cutoff has passed."""
    remaining = (start_time - timedelta(hours=limit_hours)) - now
    return max(remaining, timedelta(0))


def can_edit_booking(booking: Booking, limit_hours: int, now: datetime) -> bool:
    if booking.status in ("cancelled", "completed", "blocked"):
        return False
    return now <= booking.start_time - timedelta(hours=limit_hours)


def _int_or_none(value, message: str) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPayload(message) from exc


class BookingService:
    def __init__(self, notifier=None):
        self.notifier = notifier

    # --- queries ----------------------------------------------------------

    def get_booking(self, booking_id: int) -> Booking:
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            raise NotFound("booking not found")
        return booking

    def enrich(self, booking: Booking) -> dict[str, object]:
        data = booking.to_dict()
        data["service_name"] = booking.service.name if booking.service else None
        data["customer_name"] = booking.customer.full_name if booking.customer else None
        data["staff_name"] = booking.provider.full_name if booking.provider else None
        data["duration"] = round((booking.end_time - booking.start_time).total_seconds() / 60)
        data["location_name"] = booking.location.name if booking.location else None
        return data

    def list_bookings(
        self,
        status: str | None = None,
        time_filter: str | None = None,
        customer_id: int | None = None,
        provider_id: int | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, object]]:
        now = now or local_now()
        query = Booking.query
        if status and status != "all":
            query = query.filter(Booking.status == status)
        if customer_id is not None:
            query = query.filter(Booking.customer_id == customer_id)
        if provider_id is not None:
            query = query.filter(Booking.provider_id == provider_id)

        if time_filter == "upcoming":
            query = query.filter(Booking.start_time >= now)
        elif time_filter == "past":
            query = query.filter(Booking.start_time < now)
        elif time_filter == "today":
            start_of_day = datetime.combine(now.date(), datetime.min.time())
            query = query.filter(
                Booking.start_time >= start_of_day,
                Booking.start_time < start_of_day + timedelta(days=1),
            )
        elif time_filter not in (None, "", "all"):
            raise InvalidPayload("time_filter must be one of all, upcoming, past, today")

        order = Booking.start_time.asc() if time_filter == "upcoming" else Booking.start_time.desc()
        return [self.enrich(booking) for booking in query.order_by(order).all()]

    def find_conflicts(self, provider_id: int, start: datetime, end: datetime, exclude_id: int | None = None) -> list[Booking]:
        """Non-cancelled bookings (blocked slots included) overlapping ``[start, end)``."""
        query = Booking.query.filter(
            Booking.provider_id == provider_id,
            Booking.status != "cancelled",
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(Booking.id != exclude_id)
        return query.all()

    # --- validation -------------------------------------------------------

    def _resolve_times(self, payload: dict, service: Service | None, current: Booking | None = None):
        start_raw = payload.get("start_time", current.start_time if current else None)
        start = parse_datetime(start_raw)
        if start is None:
            raise InvalidPayload(messages.INVALID_START_TIME)

        if payload.get("end_time"):
            end = parse_datetime(payload["end_time"])
            if end is None:
                raise InvalidPayload(messages.END_BEFORE_START)
        elif payload.get("duration") not in (None, ""):
            minutes = parse_duration(payload["duration"])
            if not minutes:
                raise InvalidPayload("duration must be a positive number of minutes")
            end = start + timedelta(minutes=minutes)
        elif current is not None and "start_time" not in payload:
            end = current.end_time
        elif current is not None:
            end = start + (current.end_time - current.start_time)
        else:
            minutes = parse_duration(service.duration if service else None) or DEFAULT_DURATION_MINUTES
            end = start + timedelta(minutes=minutes)

        if end <= start:
            raise InvalidPayload(messages.END_BEFORE_START)
        return start, end

    def _check_window(self, start: datetime, settings, now: datetime) -> None:
        if start < now:
            raise InvalidPayload(messages.START_IN_PAST)
        advance_days = settings.get("booking", "advanceBookingDays") if settings else 30
        if start.date() > now.date() + timedelta(days=advance_days):
            raise InvalidPayload(messages.BEYOND_ADVANCE_WINDOW.format(days=advance_days))

    def _check_conflicts(self, provider_id, start, end, exclude_id=None) -> None:
        conflicts = self.find_conflicts(provider_id, start, end, exclude_id)
        if conflicts:
            logger.info(
                "Booking for provider %s at %s-%s overlaps booking(s) %s",
                provider_id,
                start,
                end,
                [booking.id for booking in conflicts],
            )
            raise Conflict(messages.BOOKING_OVERLAP)

    def _customer(self, customer_id) -> User:
        customer = db.session.get(User, customer_id) if customer_id is not None else None
        if customer is None or customer.role != "customer":
            raise InvalidPayload(messages.INVALID_CUSTOMER)
        return customer

    def _provider(self, provider_id) -> User:
        provider = db.session.get(User, provider_id) if provider_id is not None else None
        if provider is None or provider.role not in PROVIDER_ROLES:
            raise InvalidPayload(messages.INVALID_PROVIDER)
        return provider

    def _service(self, service_id) -> Service:
        service = db.session.get(Service, service_id) if service_id is not None else None
        if service is None:
            raise InvalidPayload(messages.INVALID_SERVICE)
        return service

    # --- commands ---------------------------------------------------------

    def create_booking(self, payload: dict, settings=None, actor: User | None = None, now: datetime | None = None) -> Booking:
        now = now or local_now()
        customer_id = _int_or_none(payload.get("customer_id"), messages.INVALID_CUSTOMER)
        if actor is not None and actor.role == "customer":
            customer_id = actor.id

        customer = self._customer(customer_id)
        service = self._service(_int_or_none(payload.get("service_id"), messages.INVALID_SERVICE))
        provider = self._provider(_int_or_none(payload.get("provider_id"), messages.INVALID_PROVIDER))
        start, end = self._resolve_times(payload, service)
        self._check_window(start, settings, now)
        self._check_conflicts(provider.id, start, end)

        status = payload.get("status") or "pending"
        if status not in EDITABLE_STATUSES:
            raise InvalidPayload(f"status must be one of {', '.join(EDITABLE_STATUSES)}")

        booking = Booking(
            customer_id=customer.id,
            provider_id=provider.id,
            service_id=service.id,
            location_id=_int_or_none(payload.get("location_id"), "location_id must be an integer"),
            start_time=start,
            end_time=end,
            status=status,
            notes=payload.get("notes"),
            recurring_type=payload.get("recurring_type"),
            recurring_count=_int_or_none(payload.get("recurring_count"), "recurring_count must be an integer") or 0,
        )
        db.session.add(booking)
        db.session.commit()
        logger.info("Created booking %s for customer %s with provider %s", booking.id, customer.id, provider.id)

        if self.notifier is not None:
            self.notifier.booking_created(booking.id)
        return booking

    def update_booking(
        self,
        booking_id: int,
        payload: dict,
        settings=None,
        actor: User | None = None,
        now: datetime | None = None,
    ) -> Booking:
        now = now or local_now()
        booking = self.get_booking(booking_id)
        if booking.status == "blocked":
            raise InvalidPayload("blocked slots are managed through the blocked slot endpoints")

        if actor is not None and actor.role == "customer":
            if booking.customer_id != actor.id:
                raise Forbidden("you may only change your own bookings")
            limit = settings.get("booking", "bookingEditTimeLimit") if settings else 24
            if not can_edit_booking(booking, limit, now):
                raise Forbidden(messages.EDIT_WINDOW_CLOSED)
            payload = {key: value for key, value in payload.items() if key in ("start_time", "end_time", "duration", "notes", "status")}
            if payload.get("status") not in (None, "cancelled", booking.status):
                raise Forbidden("customers may only cancel a booking")

        old_status = booking.status
        if "customer_id" in payload:
            booking.customer_id = self._customer(_int_or_none(payload["customer_id"], messages.INVALID_CUSTOMER)).id
        if "service_id" in payload:
            booking.service_id = self._service(_int_or_none(payload["service_id"], messages.INVALID_SERVICE)).id
        if "provider_id" in payload:
            booking.provider_id = self._provider(_int_or_none(payload["provider_id"], messages.INVALID_PROVIDER)).id
        if "location_id" in payload:
            booking.location_id = _int_or_none(payload["location_id"], "location_id must be an integer")
        if "notes" in payload:
            booking.notes = payload["notes"]
        if "status" in payload:
            if payload["status"] not in EDITABLE_STATUSES:
                raise InvalidPayload(f"status must be one of {', '.join(EDITABLE_STATUSES)}")
            booking.status = payload["status"]

        if any(key in payload for key in ("start_time", "end_time", "duration")):
            start, end = self._resolve_times(payload, booking.service, current=booking)
            if start != booking.start_time:
                self._check_window(start, settings, now)
            booking.start_time, booking.end_time = start, end

        if booking.status != "cancelled":
            self._check_conflicts(booking.provider_id, booking.start_time, booking.end_time, exclude_id=booking.id)

        db.session.commit()
        if self.notifier is not None and booking.status != old_status:
            self.notifier.booking_status_changed(booking.id, old_status, booking.status)
        return booking

    def update_status(self, booking_id: int, status: str) -> Booking:
        if status not in EDITABLE_STATUSES:
            raise InvalidPayload(f"status must be one of {', '.join(EDITABLE_STATUSES)}")
        booking = self.get_booking(booking_id)
        if booking.status == "blocked":
            raise InvalidPayload("blocked slots have no status workflow")
        old_status = booking.status
        if old_status == status:
            return booking
        booking.status = status
        db.session.commit()
        logger.info("Booking %s status %s -> %s", booking.id, old_status, status)
        if self.notifier is not None:
            self.notifier.booking_status_changed(booking.id, old_status, status)
        return booking

    def confirm_booking(self, booking_id: int) -> Booking:
        return self.update_status(booking_id, "confirmed")

    def delete_booking(self, booking_id: int) -> None:
        booking = self.get_booking(booking_id)
        db.session.delete(booking)
        db.session.commit()

    def delete_bookings(self, booking_ids) -> int:
        """Delete several bookings in one transaction; unknown ids are ignored."""
        if not isinstance(booking_ids, (list, tuple)) or not booking_ids:
            raise InvalidPayload("ids must be a non-empty list")
        try:
            ids = [int(booking_id) for booking_id in booking_ids]
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("ids must be integers") from exc
        bookings = Booking.query.filter(Booking.id.in_(ids)).all()
        for booking in bookings:
            db.session.delete(booking)
        db.session.commit()
        logger.info("Deleted %d booking(s)", len(bookings))
        return len(bookings)

    def dashboard_stats(self, today: date | None = None) -> dict[str, int]:
        today = today or local_now().date()
        start_of_day = datetime.combine(today, datetime.min.time())
        real = Booking.query.filter(Booking.status != "blocked")

        counts = dict(
            db.session.query(Booking.status, func.count(Booking.id))
            .filter(Booking.status != "blocked")
            .group_by(Booking.status)
            .all()
        )
        return {
            "total_bookings": real.count(),
            "today_bookings": real.filter(
                and_(Booking.start_time >= start_of_day, Booking.start_time < start_of_day + timedelta(days=1))
            ).count(),
            "upcoming_bookings": real.filter(
                Booking.start_time >= start_of_day,
                or_(Booking.status == "pending", Booking.status == "confirmed"),
            ).count(),
            "pending_bookings": counts.get("pending", 0),
            "confirmed_bookings": counts.get("confirmed", 0),
            "completed_bookings": counts.get("completed", 0),
            "cancelled_bookings": counts.get("cancelled", 0),
            "total_customers": User.query.filter_by(role="customer").count(),
            "total_staff": User.query.filter(User.role.in_(PROVIDER_ROLES)).count(),
            "total_services": Service.query.filter(Service.name != "__Blocked").count(),
        }
