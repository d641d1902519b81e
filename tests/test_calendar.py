"""Tests for calendar event building and resource assignment."""
from __future__ import annotations

from datetime import date

import pytest

from bookhub import calendar
from bookhub.settings import HoursRange

STAFF = [{"id": "staff-1", "full_name": "Sam Stylist"}, {"id": "staff-2", "full_name": "Kim Colour"}]
SERVICES = [
    {"id": "svc-1", "name": "Haircut", "staff_ids": ["staff-1"]},
    {"id": "svc-2", "name": "Walk-in", "staff_ids": []},
]
CUSTOMERS = [{"id": "cust-1", "full_name": "Carla Customer"}]
AVAILABILITY = [
    {
        "id": 7,
        "staff_id": "staff-1",
        "date": "2025-06-01",
        "start_time": "09:00",
        "end_time": "17:00",
        "is_available": True,
    }
]


def _booking(**overrides):
    booking = {
        "id": 1,
        "start_time": "2025-06-01T09:00",
        "end_time": "2025-06-01T09:30",
        "provider_id": "staff-1",
        "service_id": "svc-1",
        "customer_id": "cust-1",
        "status": "confirmed",
    }
    booking.update(overrides)
    return booking


def _event(**overrides):
    (event,) = calendar.build_booking_events([_booking(**overrides)], SERVICES, STAFF, CUSTOMERS)
    return event


def test_booking_with_covering_availability_goes_to_staff_column() -> None:
    event = _event()

    assert calendar.assign_resource(event, SERVICES, ["staff-1", "staff-2"], AVAILABILITY) == "staff-1"


def test_booking_moves_to_generic_when_availability_removed() -> None:
    event = _event()

    assert calendar.assign_resource(event, SERVICES, ["staff-1", "staff-2"], []) == calendar.GENERIC_RESOURCE_ID


def test_service_without_staff_is_always_generic() -> None:
    event = _event(service_id="svc-2")

    assert calendar.assign_resource(event, SERVICES, ["staff-1"], AVAILABILITY) == "generic"


@pytest.mark.parametrize(
    "row",
    [
        {**AVAILABILITY[0], "date": "2025-06-02"},
        {**AVAILABILITY[0], "is_available": False},
        {**AVAILABILITY[0], "start_time": "09:15"},
        {**AVAILABILITY[0], "staff_id": "staff-2"},
    ],
)
def test_availability_must_match_staff_date_and_time(row) -> None:
    event = _event()

    assert calendar.assign_resource(event, SERVICES, ["staff-1", "staff-2"], [row]) == "generic"


@pytest.mark.parametrize(
    "window_end, booking_end, resource",
    [
        ("24:00", "2025-06-02T00:00", "staff-1"),
        ("23:59", "2025-06-02T00:00", "generic"),
        ("24:00", "2025-06-02T00:30", "generic"),
    ],
)
def test_booking_ending_at_midnight(window_end, booking_end, resource) -> None:
    availability = [{**AVAILABILITY[0], "start_time": "00:00", "end_time": window_end}]
    event = _event(start_time="2025-06-01T23:30", end_time=booking_end)

    assert calendar.assign_resource(event, SERVICES, ["staff-1"], availability) == resource


def test_unknown_provider_is_generic() -> None:
    event = _event(provider_id="staff-9")

    assert calendar.assign_resource(event, SERVICES, ["staff-1"], AVAILABILITY) == "generic"


def test_numeric_and_string_ids_compare_equal() -> None:
    services = [{"id": 3, "name": "Haircut", "staff_ids": [5]}]
    staff = [{"id": 5, "full_name": "Sam"}]
    availability = [{**AVAILABILITY[0], "staff_id": 5}]
    (event,) = calendar.build_booking_events([_booking(service_id=3, provider_id=5)], services, staff, [])

    assert calendar.assign_resource(event, services, ["5"], availability) == "5"


def test_invalid_times_are_dropped_without_raising() -> None:
    bookings = [
        _booking(id=1),
        _booking(id=2, start_time=None),
        _booking(id=3, end_time="not a date"),
        _booking(id=4, start_time=""),
    ]

    events = calendar.build_booking_events(bookings, SERVICES, STAFF, CUSTOMERS)

    assert [event["id"] for event in events] == [1]


def test_booking_event_title_and_props() -> None:
    (event,) = calendar.build_booking_events([_booking(notes=None)], SERVICES, STAFF, CUSTOMERS, show_staff_name=True)

    assert event["title"] == "Haircut-Sam Stylist"
    assert event["start"] == "2025-06-01T09:00:00"
    props = event["extendedProps"]
    assert props["customerName"] == "Carla Customer"
    assert props["staffId"] == "staff-1"
    assert props["notes"] == "No notes"


def test_availability_events_are_background_and_positioned() -> None:
    rows = AVAILABILITY + [
        {"id": 8, "staff_id": "staff-2", "date": "2025-06-01", "start_time": "10:00", "end_time": "12:00", "is_available": True},
        {"id": 9, "staff_id": "staff-2", "date": "2025-06-02", "start_time": "bad", "end_time": "12:00", "is_available": True},
    ]

    events = calendar.build_availability_events(STAFF, rows)

    assert [event["id"] for event in events] == ["availability-7", "availability-8"]
    assert [event["extendedProps"]["positionIndex"] for event in events] == [0, 1]
    assert all(event["display"] == "background" for event in events)
    assert calendar.assign_resource(events[1], SERVICES, [], []) == "staff-2"


def test_resources_put_generic_first() -> None:
    resources = calendar.build_resources(STAFF)

    assert [resource["id"] for resource in resources] == ["generic", "staff-1", "staff-2"]
    assert resources[0]["title"] == "Unassigned"
    assert resources[1]["eventColor"] == calendar.STAFF_PALETTE[0]


def test_filter_events_hides_past_and_availability() -> None:
    booking_events = calendar.build_booking_events(
        [_booking(id=1), _booking(id=2, start_time="2025-06-03T09:00", end_time="2025-06-03T10:00")],
        SERVICES,
        STAFF,
        CUSTOMERS,
    )
    events = booking_events + calendar.build_availability_events(STAFF, AVAILABILITY)

    filtered = calendar.filter_events(events, show_availability=False, hide_past=True, today=date(2025, 6, 2))

    assert [event["id"] for event in filtered] == [2]
    assert calendar.filter_events(events, show_bookings=False) == events[2:]


def test_business_hours_and_slot_limits() -> None:
    hours = HoursRange("08:00", "18:00")

    assert calendar.business_hours(hours)["startTime"] == "08:00"
    assert calendar.business_hours(hours, show_non_working_hours=True) is False
    assert calendar.slot_limits(hours) == {"slotMinTime": "08:00", "slotMaxTime": "18:00"}
    assert calendar.slot_limits(None)["slotMaxTime"] == "24:00:00"
