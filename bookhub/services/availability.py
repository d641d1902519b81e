"""Date-scoped staff availability."""
from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta

from ..errors import InvalidPayload, NotFound
from ..extensions import db
from ..models import Booking, Service, StaffAvailability, User
from ..settings import HoursRange, load_settings
from ..timeutils import combine, date_range, format_time, parse_date, parse_time

logger = logging.getLogger(__name__)

DEFAULT_HOURS = HoursRange("09:00", "17:00")
AVAILABLE_STAFF_ROLES = ("staff", "admin")


def _month_of(value) -> tuple[int, int]:
    if isinstance(value, date):
        return value.year, value.month
    try:
        year, month = str(value).split("-")[:2]
        return int(year), int(month)
    except ValueError as exc:
        raise InvalidPayload("month must be YYYY-MM") from exc


def toggle_all(window: list[dict], displayed_month, today: date, value: bool) -> list[dict]:
    """Mark or unmark every entry in the displayed month from ``today`` onwards.

    Entries in other months and dates before today keep their current flag.
    """
    year, month = _month_of(displayed_month)
    toggled = []
    for entry in window:
        day = parse_date(entry.get("date"))
        if day is not None and (day.year, day.month) == (year, month) and day >= today:
            toggled.append({**entry, "is_available": bool(value)})
        else:
            toggled.append(dict(entry))
    return toggled


def changed_entries(original: list[dict], edited: list[dict]) -> list[dict]:
    """Entries of ``edited`` whose hours or flag differ from ``original`` for the same date."""
    before = {str(entry.get("date")): entry for entry in original}
    changed = []
    for entry in edited:
        previous = before.get(str(entry.get("date")))
        if previous is None:
            changed.append(entry)
            continue
        if (
            parse_time(previous.get("start_time")) != parse_time(entry.get("start_time"))
            or parse_time(previous.get("end_time")) != parse_time(entry.get("end_time"))
            or bool(previous.get("is_available")) != bool(entry.get("is_available"))
        ):
            changed.append(entry)
    return changed


def time_slots(
    day: date,
    windows: list[tuple[time, time]],
    bookings: list[tuple[datetime, datetime]],
    interval: int = 30,
    duration: int = 30,
    service_has_staff: bool = True,
) -> dict[str, list[str]]:
    """Start times on ``day`` for a service of ``duration`` minutes.

    Candidates are every hour at minutes ``0, interval, 2 * interval`` and so
    on below 60; ``all`` keeps those starting inside one of ``windows``.
    A start that falls inside one of ``bookings`` is ``booked``. A start whose
    duration would run into a booking is neither booked nor ``available``.
    Without assigned staff a service never conflicts, so every slot in
    hours is available.
    """
    step = interval if interval and interval > 0 else 30
    length = timedelta(minutes=duration if duration and duration > 0 else 30)
    slots: dict[str, list[str]] = {"all": [], "available": [], "booked": []}
    for hour in range(24):
        for minute in range(0, 60, step):
            moment = time(hour, minute)
            if not any(start <= moment < end for start, end in windows):
                continue
            label = format_time(moment)
            slots["all"].append(label)
            if not service_has_staff:
                slots["available"].append(label)
                continue
            slot_start = combine(day, moment)
            slot_end = slot_start + length
            if any(start <= slot_start < end for start, end in bookings):
                slots["booked"].append(label)
            elif not any(slot_start < end and slot_end > start for start, end in bookings):
                slots["available"].append(label)
    return slots


def month_grid(month) -> list[list[date]]:
    """Monday-first weeks covering ``month``, padded with neighbouring days."""
    year, month_number = _month_of(month)
    return calendar.Calendar(firstweekday=calendar.MONDAY).monthdatescalendar(year, month_number)


class AvailabilityService:
    def _staff(self, staff_id: int) -> User:
        staff = db.session.get(User, staff_id)
        if staff is None or staff.role not in ("staff", "manager", "admin"):
            raise NotFound("staff member not found")
        return staff

    def get_availability(self, staff_id: int, start_date=None, end_date=None, location_id: int | None = None) -> list[StaffAvailability]:
        query = StaffAvailability.query.filter(StaffAvailability.staff_id == staff_id)
        first, last = parse_date(start_date), parse_date(end_date)
        if first is not None:
            query = query.filter(StaffAvailability.date >= first)
        if last is not None:
            query = query.filter(StaffAvailability.date <= last)
        if location_id is not None:
            query = query.filter(StaffAvailability.location_id == location_id)
        return query.order_by(StaffAvailability.date.asc(), StaffAvailability.start_time.asc()).all()

    def save_availability(self, staff_id: int, entries: list[dict]) -> list[StaffAvailability]:
        """Upsert entries by id, or by (staff, date, location); all rows commit together."""
        self._staff(staff_id)
        if not isinstance(entries, list):
            raise InvalidPayload("entries must be a list")

        saved = []
        try:
            for entry in entries:
                day = parse_date(entry.get("date"))
                start, end = parse_time(entry.get("start_time")), parse_time(entry.get("end_time"))
                if day is None or start is None or end is None:
                    raise InvalidPayload(f"invalid availability entry: {entry!r}")
                if end <= start:
                    raise InvalidPayload(f"end_time must be after start_time for {day.isoformat()}")
                location_id = entry.get("location_id")

                row = None
                if entry.get("id"):
                    row = StaffAvailability.query.filter_by(id=entry["id"], staff_id=staff_id).first()
                    if row is None:
                        raise NotFound(f"availability {entry['id']} not found")
                if row is None:
                    row = StaffAvailability.query.filter_by(
                        staff_id=staff_id, date=day, location_id=location_id
                    ).first()
                if row is None:
                    row = StaffAvailability(staff_id=staff_id, date=day)
                    db.session.add(row)

                row.date = day
                row.start_time = start
                row.end_time = end
                row.location_id = location_id
                row.is_available = bool(entry.get("is_available"))
                saved.append(row)
            db.session.commit()
        except (InvalidPayload, NotFound):
            db.session.rollback()
            raise
        logger.info("Saved %d availability row(s) for staff %s", len(saved), staff_id)
        return saved

    def is_staff_available(self, staff_id: int, day, start, end) -> bool:
        parsed_day, start_time, end_time = parse_date(day), parse_time(start), parse_time(end)
        if parsed_day is None or start_time is None or end_time is None:
            raise InvalidPayload("date, start and end are required")
        query = StaffAvailability.query.filter(
            StaffAvailability.staff_id == staff_id,
            StaffAvailability.date == parsed_day,
            StaffAvailability.is_available.is_(True),
            StaffAvailability.start_time <= start_time,
            StaffAvailability.end_time >= end_time,
        )
        return db.session.query(query.exists()).scalar()

    def available_staff_for_slot(self, day, start, end) -> list[User]:
        staff = User.query.filter(User.role.in_(AVAILABLE_STAFF_ROLES)).order_by(User.full_name.asc()).all()
        return [member for member in staff if self.is_staff_available(member.id, day, start, end)]

    def availability_window(
        self,
        staff_id: int,
        today: date,
        days: int = 30,
        business_hours: HoursRange | None = None,
        location_id: int | None = None,
    ) -> list[dict]:
        """One entry per day from ``today``; missing days get default hours, unavailable."""
        self._staff(staff_id)
        hours = business_hours or DEFAULT_HOURS
        last = today + timedelta(days=days - 1)
        existing = {row.date: row for row in self.get_availability(staff_id, today, last, location_id)}

        window = []
        for day in date_range(today, last):
            row = existing.get(day)
            if row is not None:
                window.append(row.to_dict())
            else:
                window.append(
                    {
                        "id": None,
                        "staff_id": staff_id,
                        "location_id": location_id,
                        "date": day.isoformat(),
                        "start_time": hours.start_time,
                        "end_time": hours.end_time,
                        "is_available": False,
                    }
                )
        return window

    def day_time_slots(
        self,
        staff_id: int,
        day,
        service_id: int | None = None,
        location_id: int | None = None,
        exclude_booking_id: int | None = None,
    ) -> dict[str, object]:
        """Slot lists for booking ``service_id`` with ``staff_id`` on ``day``.

        Cancelled bookings and ``exclude_booking_id`` (the booking being
        edited) do not block slots.
        """
        self._staff(staff_id)
        parsed_day = parse_date(day)
        if parsed_day is None:
            raise InvalidPayload("date must be YYYY-MM-DD")
        service = None
        if service_id is not None:
            service = db.session.get(Service, service_id)
            if service is None:
                raise NotFound("service not found")

        windows = [
            (row.start_time, row.end_time)
            for row in self.get_availability(staff_id, parsed_day, parsed_day, location_id)
            if row.is_available
        ]
        day_start = combine(parsed_day, time.min)
        query = Booking.query.filter(
            Booking.provider_id == staff_id,
            Booking.status != "cancelled",
            Booking.start_time < day_start + timedelta(days=1),
            Booking.end_time > day_start,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        bookings = [(booking.start_time, booking.end_time) for booking in query.all()]

        interval = load_settings().get("booking", "bookingTimeSlotInterval")
        duration = service.duration if service is not None else 30
        slots = time_slots(
            parsed_day,
            windows,
            bookings,
            interval=interval,
            duration=duration,
            service_has_staff=bool(service.staff) if service is not None else True,
        )
        logger.debug("Staff %s has %d of %d slot(s) free on %s", staff_id, len(slots["available"]), len(slots["all"]), parsed_day)
        return {"date": parsed_day.isoformat(), "interval": interval, "duration": duration, **slots}
