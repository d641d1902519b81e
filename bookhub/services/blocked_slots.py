"""Blocked time slots.

A blocked slot is a ``bookings`` row with status ``blocked`` whose customer
and provider are both the staff member, attached to the ``__Blocked``
sentinel service.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from ..errors import InvalidPayload, NotFound
from ..extensions import db
from ..models import Booking, User
from ..timeutils import parse_date, parse_datetime, parse_time

logger = logging.getLogger(__name__)


class BlockedSlotService:
    def __init__(self, catalog):
        self.catalog = catalog

    def _staff(self, staff_id: int) -> User:
        staff = db.session.get(User, staff_id)
        if staff is None or staff.role not in ("staff", "manager", "admin"):
            raise NotFound("staff member not found")
        return staff

    def create_blocked_slot(
        self,
        staff_id: int,
        start,
        end,
        notes: str | None = None,
        location_id: int | None = None,
    ) -> Booking:
        staff = self._staff(staff_id)
        start_time, end_time = parse_datetime(start), parse_datetime(end)
        if start_time is None or end_time is None:
            raise InvalidPayload("start_time and end_time must be ISO date-times")
        if end_time <= start_time:
            raise InvalidPayload("end_time must be after start_time")

        sentinel = self.catalog.blocked_service()
        slot = Booking(
            customer_id=staff.id,
            provider_id=staff.id,
            service_id=sentinel.id,
            location_id=location_id,
            start_time=start_time,
            end_time=end_time,
            status="blocked",
            notes=notes or "Blocked time slot",
        )
        db.session.add(slot)
        db.session.commit()
        logger.info("Blocked %s-%s for staff %s", start_time, end_time, staff.id)
        return slot

    def _query(self, staff_ids):
        return Booking.query.filter(Booking.status == "blocked", Booking.provider_id.in_(staff_ids))

    def blocked_slots(self, staff_id: int) -> list[Booking]:
        return self._query([staff_id]).order_by(Booking.start_time.asc()).all()

    def blocked_slots_for_date(self, staff_id: int, day) -> list[Booking]:
        parsed = parse_date(day)
        if parsed is None:
            raise InvalidPayload("date must be YYYY-MM-DD")
        start = datetime.combine(parsed, time.min)
        return (
            self._query([staff_id])
            .filter(Booking.start_time >= start, Booking.start_time < start + timedelta(days=1))
            .order_by(Booking.start_time.asc())
            .all()
        )

    def blocked_slots_for_staff(self, staff_ids, start_date, end_date) -> list[Booking]:
        first, last = parse_date(start_date), parse_date(end_date)
        if first is None or last is None:
            raise InvalidPayload("start_date and end_date must be YYYY-MM-DD")
        return (
            self._query(list(staff_ids))
            .filter(
                Booking.start_time >= datetime.combine(first, time.min),
                Booking.start_time < datetime.combine(last + timedelta(days=1), time.min),
            )
            .order_by(Booking.start_time.asc())
            .all()
        )

    def delete_blocked_slot(self, slot_id: int) -> None:
        slot = Booking.query.filter_by(id=slot_id, status="blocked").first()
        if slot is None:
            raise NotFound("blocked slot not found")
        db.session.delete(slot)
        db.session.commit()

    def is_time_slot_blocked(self, staff_id: int, day: date | str, start, end) -> bool:
        parsed_day = parse_date(day)
        start_time, end_time = parse_time(start), parse_time(end)
        if parsed_day is None or start_time is None or end_time is None:
            raise InvalidPayload("date, start and end are required")
        window_start = datetime.combine(parsed_day, start_time)
        window_end = datetime.combine(parsed_day, end_time)
        overlapping = self._query([staff_id]).filter(
            Booking.start_time < window_end,
            Booking.end_time > window_start,
        )
        return db.session.query(overlapping.exists()).scalar()
