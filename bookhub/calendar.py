"""Calendar event assembly and resource (column) assignment.

All functions here are pure: they take plain dictionaries as produced by the
models' ``to_dict`` methods and return event and resource dictionaries in the
shape the dashboard calendar renders.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from . import messages
from .settings import HoursRange
from .timeutils import parse_date, parse_datetime, parse_time

logger = logging.getLogger(__name__)

GENERIC_RESOURCE_ID = "generic"
GENERIC_COLOR = "#6B7280"
DEFAULT_STAFF_COLOR = "#4C7F50"
BOOKING_BORDER_COLOR = "#1e40af"

STAFF_PALETTE = (
    "#4C7F50",  # green
    "#2196F3",  # blue
    "#9C27B0",  # purple
    "#FF9800",  # orange
    "#E91E63",  # pink
    "#00BCD4",  # cyan
    "#FF5722",  # deep orange
    "#3F51B5",  # indigo
    "#009688",  # teal
    "#FFC107",  # amber
)

STATUS_COLORS = {
    "pending": "#fff3cd",
    "confirmed": "#d4edda",
    "completed": "#cce5ff",
    "cancelled": "#e2e3e5",
}

AVAILABILITY_CLASS = "availability-event"


def _key(value) -> str | None:
    return None if value is None or value == "" else str(value)


def _index(records) -> dict[str, dict]:
    return {_key(record.get("id")): record for record in records or [] if record.get("id") is not None}


def staff_colors(staff) -> dict[str, str]:
    return {
        _key(member["id"]): STAFF_PALETTE[position % len(STAFF_PALETTE)]
        for position, member in enumerate(staff or [])
    }


def build_resources(staff, colors: dict[str, str] | None = None) -> list[dict[str, str]]:
    """The ``generic`` column always comes first, then one column per staff member."""
    colors = colors if colors is not None else staff_colors(staff)
    resources = [{"id": GENERIC_RESOURCE_ID, "title": messages.UNASSIGNED, "eventColor": GENERIC_COLOR}]
    for member in staff or []:
        member_id = _key(member["id"])
        resources.append(
            {
                "id": member_id,
                "title": member.get("full_name") or "",
                "eventColor": colors.get(member_id, DEFAULT_STAFF_COLOR),
            }
        )
    return resources


def build_booking_events(bookings, services, staff, customers, show_staff_name: bool = False) -> list[dict]:
    """Convert booking rows into calendar events.

    Bookings whose start or end is missing or unparsable are dropped with a
    warning; this never raises on bad data.
    """
    services_by_id = _index(services)
    staff_by_id = _index(staff)
    customers_by_id = _index(customers)
    colors = staff_colors(staff)

    events = []
    for booking in bookings or []:
        start = parse_datetime(booking.get("start_time"))
        end = parse_datetime(booking.get("end_time"))
        if start is None or end is None:
            logger.warning(
                "Dropping booking %s with invalid times start=%r end=%r",
                booking.get("id"),
                booking.get("start_time"),
                booking.get("end_time"),
            )
            continue

        service = services_by_id.get(_key(booking.get("service_id")))
        provider_id = _key(booking.get("provider_id"))
        staff_member = staff_by_id.get(provider_id)
        customer = customers_by_id.get(_key(booking.get("customer_id")))

        service_name = (service or {}).get("name") or "Appointment"
        staff_name = (staff_member or {}).get("full_name") or "Unknown"
        customer_name = (customer or {}).get("full_name") or "Unknown"
        status = booking.get("status") or "pending"

        title = f"{service_name}-{staff_name}" if show_staff_name else service_name
        events.append(
            {
                "id": booking.get("id"),
                "title": title,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "backgroundColor": STATUS_COLORS.get(status, colors.get(provider_id, "#666")),
                "borderColor": BOOKING_BORDER_COLOR,
                "classNames": ["booking-event"],
                "extendedProps": {
                    "staffId": booking.get("provider_id"),
                    "staffName": staff_name,
                    "customerName": customer_name,
                    "customerId": booking.get("customer_id"),
                    "serviceName": service_name,
                    "serviceId": booking.get("service_id"),
                    "status": status,
                    "notes": booking.get("notes") or "No notes",
                    "locationId": booking.get("location_id"),
                },
            }
        )
    return events


def build_availability_events(staff, availability, locations=None) -> list[dict]:
    """One background event per open availability window.

    Windows sharing a date get increasing ``positionIndex`` values so they can
    be laid out side by side in non-resource views.
    """
    locations_by_id = _index(locations)
    positions: dict[str, int] = {}
    events = []

    for member in staff or []:
        member_id = _key(member["id"])
        for row in availability or []:
            if _key(row.get("staff_id")) != member_id:
                continue
            if row.get("is_available") is False:
                continue
            day = parse_date(row.get("date"))
            start = parse_time(row.get("start_time"))
            end = parse_time(row.get("end_time"))
            if day is None or start is None or end is None:
                logger.warning("Dropping invalid availability row %r", row)
                continue

            day_key = day.isoformat()
            position = positions.get(day_key, 0)
            positions[day_key] = position + 1
            location = locations_by_id.get(_key(row.get("location_id")))
            row_id = row.get("id") or f"{member_id}-{day_key}"

            events.append(
                {
                    "id": f"availability-{row_id}",
                    "title": f"{member.get('full_name') or ''} - Available",
                    "start": datetime.combine(day, start).isoformat(),
                    "end": datetime.combine(day, end).isoformat(),
                    "display": "background",
                    "backgroundColor": "#d4edda",
                    "borderColor": "#28a745",
                    "color": "#155724",
                    "classNames": [AVAILABILITY_CLASS, f"availability-position-{position}"],
                    "allDay": False,
                    "extendedProps": {
                        "staffId": member["id"],
                        "staffName": member.get("full_name"),
                        "status": "Available",
                        "startTime": start.strftime("%H:%M"),
                        "endTime": end.strftime("%H:%M"),
                        "isAvailability": True,
                        "positionIndex": position,
                        "locationId": row.get("location_id"),
                        "locationName": (location or {}).get("name"),
                    },
                }
            )
    return events


def is_availability_event(event: dict) -> bool:
    props = event.get("extendedProps") or {}
    return bool(props.get("isAvailability")) or AVAILABILITY_CLASS in (event.get("classNames") or [])


def _window_covers(row: dict, staff_id: str, start: datetime, end: datetime) -> bool:
    if _key(row.get("staff_id")) != staff_id or not row.get("is_available"):
        return False
    if parse_date(row.get("date")) != start.date():
        return False
    if end.date() == start.date():
        end_time = end.time()
    elif end.date() == start.date() + timedelta(days=1) and end.time() == time.min:
        # ends at midnight; only a window running to 24:00 covers it
        end_time = time.max
    else:
        return False
    window_start = parse_time(row.get("start_time"))
    window_end = parse_time(row.get("end_time"))
    if window_start is None or window_end is None:
        return False
    return window_start <= start.time() and end_time <= window_end


def assign_resource(event: dict, services, staff_ids, availability) -> str:
    """Return the resource id an event renders under.

    Availability events always go to their staff column. A booking goes to
    its provider's column only when the service has staff assigned, the
    booking has a provider, the provider is a known staff member, and an open
    availability window for that staff covers the booking on its date.
    Everything else lands in ``generic``.
    """
    props = event.get("extendedProps") or {}
    staff_id = _key(props.get("staffId") or props.get("providerId"))

    if is_availability_event(event):
        return staff_id or GENERIC_RESOURCE_ID

    service = _index(services).get(_key(props.get("serviceId")))
    if not service or not service.get("staff_ids"):
        return GENERIC_RESOURCE_ID
    if staff_id is None:
        return GENERIC_RESOURCE_ID
    if staff_id not in {_key(known) for known in staff_ids or []}:
        return GENERIC_RESOURCE_ID

    start = parse_datetime(event.get("start"))
    end = parse_datetime(event.get("end"))
    if start is None or end is None:
        return GENERIC_RESOURCE_ID
    if any(_window_covers(row, staff_id, start, end) for row in availability or []):
        return staff_id
    return GENERIC_RESOURCE_ID


def assign_resources(events, services, staff_ids, availability) -> list[dict]:
    return [
        {**event, "resourceId": assign_resource(event, services, staff_ids, availability)}
        for event in events
    ]


def filter_events(
    events,
    show_availability: bool = True,
    show_bookings: bool = True,
    hide_past: bool = False,
    today: date | None = None,
) -> list[dict]:
    filtered = list(events or [])
    if not show_availability:
        filtered = [event for event in filtered if not is_availability_event(event)]
    if not show_bookings:
        filtered = [event for event in filtered if is_availability_event(event)]
    if hide_past:
        today = today or date.today()
        kept = []
        for event in filtered:
            start = parse_datetime(event.get("start"))
            if start is not None and start.date() >= today:
                kept.append(event)
        filtered = kept
    return filtered


def business_hours(hours: HoursRange | None, show_non_working_hours: bool = False):
    if show_non_working_hours or hours is None:
        return False
    return {
        "daysOfWeek": [1, 2, 3, 4, 5, 6, 0],
        "startTime": hours.start_time,
        "endTime": hours.end_time,
    }


def slot_limits(hours: HoursRange | None, show_non_working_hours: bool = False) -> dict[str, str]:
    if show_non_working_hours or hours is None:
        return {"slotMinTime": "00:00:00", "slotMaxTime": "24:00:00"}
    return {"slotMinTime": hours.start_time, "slotMaxTime": hours.end_time}
