"""Calendar, realtime feed, presence reports, payments, settings and stats."""
from __future__ import annotations

from datetime import datetime, time, timedelta

from flask import Blueprint, jsonify, request

from . import calendar, messages
from .auth import ADMIN_ROLES, STAFF_ROLES, require_roles, require_user
from .errors import Forbidden, InvalidPayload
from .models import Booking, StaffAvailability, User
from .services import get_services
from .settings import DEFINITIONS, load_settings, save_settings
from .timeutils import local_now, parse_date

bp_ext = Blueprint("api_ext", __name__)

TRUE_VALUES = ("1", "true", "yes")


def _flag(name: str, default: bool) -> bool:
    value = request.args.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUE_VALUES


# CALENDAR
@bp_ext.get("/calendar")
@require_roles(*STAFF_ROLES)
def get_calendar() -> tuple[dict[str, object], int]:
    """Resources and events for the staff calendar.
    ---
    tags:
      - Calendar
    parameters:
      - name: start_date
        in: query
        type: string
        format: date
        description: Defaults to the first day of the current month
      - name: end_date
        in: query
        type: string
        format: date
        description: Defaults to 42 days after start_date
      - name: show_availability
        in: query
        type: boolean
        default: true
      - name: show_bookings
        in: query
        type: boolean
        default: true
      - name: hide_past
        in: query
        type: boolean
        default: false
      - name: show_non_working_hours
        in: query
        type: boolean
        default: false
      - name: location_id
        in: query
        type: integer
    responses:
      200:
        description: Resources (generic column first), events with resourceId, and display limits
    """
    today = local_now().date()
    first = parse_date(request.args.get("start_date")) or today.replace(day=1)
    last = parse_date(request.args.get("end_date")) or first + timedelta(days=42)
    if last < first:
        raise InvalidPayload("end_date must not be before start_date")

    services = get_services()
    settings = load_settings()
    location_id = request.args.get("location_id", type=int)

    staff = [member.to_dict_basic() for member in services.users.list_staff()]
    service_rows = [service.to_dict() for service in services.catalog.list_services(include_blocked=True)]

    booking_query = Booking.query.filter(
        Booking.start_time >= datetime.combine(first, time.min),
        Booking.start_time < datetime.combine(last + timedelta(days=1), time.min),
    )
    availability_query = StaffAvailability.query.filter(
        StaffAvailability.date >= first,
        StaffAvailability.date <= last,
    )
    if location_id is not None:
        booking_query = booking_query.filter(Booking.location_id == location_id)
        availability_query = availability_query.filter(StaffAvailability.location_id == location_id)
    bookings = [booking.to_dict() for booking in booking_query.all()]
    availability = [row.to_dict() for row in availability_query.all()]

    customer_ids = {booking["customer_id"] for booking in bookings}
    customers = (
        [user.to_dict_basic() for user in User.query.filter(User.id.in_(customer_ids)).all()] if customer_ids else []
    )
    locations = [location.to_dict() for location in services.locations.list_locations()]

    events = calendar.build_booking_events(
        bookings,
        service_rows,
        staff,
        customers,
        show_staff_name=settings.get("booking", "showStaffName"),
    )
    events += calendar.build_availability_events(staff, availability, locations)
    events = calendar.filter_events(
        events,
        show_availability=_flag("show_availability", True),
        show_bookings=_flag("show_bookings", True),
        hide_past=_flag("hide_past", False),
        today=today,
    )
    events = calendar.assign_resources(events, service_rows, [member["id"] for member in staff], availability)

    show_non_working = _flag("show_non_working_hours", False)
    colors = calendar.staff_colors(staff)
    return jsonify(
        {
            "resources": calendar.build_resources(staff, colors),
            "events": events,
            "businessHours": calendar.business_hours(settings.business_hours, show_non_working),
            **calendar.slot_limits(settings.business_hours, show_non_working),
            "slotDuration": settings.get("booking", "bookingTimeSlotInterval"),
        }
    ), 200


# REALTIME
@bp_ext.get("/realtime/events")
def realtime_events() -> tuple[dict[str, object], int]:
    """Replay booking and user changes after a sequence number.
    ---
    tags:
      - Realtime
    parameters:
      - name: since
        in: query
        type: integer
        default: 0
      - name: table
        in: query
        type: string
        enum: [bookings, users]
      - name: customer_id
        in: query
        type: integer
        description: Customers always receive only their own booking changes
    responses:
      200:
        description: Changes in sequence order
    """
    user = require_user()
    customer_id = request.args.get("customer_id", type=int)
    table = request.args.get("table") or None
    if user.role == "customer":
        customer_id = user.id
        table = "bookings"
    hub = get_services().realtime
    changes = hub.events(since=request.args.get("since", 0, type=int), table=table, customer_id=customer_id)
    return jsonify({"events": [change.to_dict() for change in changes], "last_sequence": hub.last_sequence}), 200


@bp_ext.get("/realtime/toasts")
def realtime_toasts() -> tuple[dict[str, object], int]:
    user = require_user()
    toasts = get_services().toasts
    if user.role == "customer":
        entries = toasts.toasts(audience="customer", customer_id=user.id)
    else:
        entries = toasts.toasts(audience=request.args.get("audience") or "staff")
    return jsonify({"toasts": entries}), 200


@bp_ext.delete("/realtime/toasts")
@require_roles(*STAFF_ROLES)
def clear_realtime_toasts() -> tuple[dict[str, object], int]:
    get_services().toasts.clear()
    return jsonify({"status": "cleared"}), 200


# SESSIONS / CONNECTED USERS REPORT
def _own_session(session_id: str):
    user = require_user()
    session = get_services().sessions.get_session(session_id)
    if session.user_id != user.id and user.role not in ADMIN_ROLES:
        raise Forbidden("you may only update your own session")
    return session


@bp_ext.post("/sessions")
def create_session() -> tuple[dict[str, object], int]:
    user = require_user()
    session = get_services().sessions.create_session(user, request.headers.get("User-Agent"))
    return jsonify({"session": session.to_dict()}), 201


@bp_ext.put("/sessions/<string:session_id>/heartbeat")
def session_heartbeat(session_id: str) -> tuple[dict[str, object], int]:
    _own_session(session_id)
    session = get_services().sessions.heartbeat(session_id)
    return jsonify({"session": session.to_dict()}), 200


@bp_ext.post("/sessions/<string:session_id>/end")
def end_session(session_id: str) -> tuple[dict[str, object], int]:
    _own_session(session_id)
    session = get_services().sessions.deactivate(session_id)
    return jsonify({"session": session.to_dict()}), 200


@bp_ext.get("/reports/connected-users")
@require_roles(*ADMIN_ROLES)
def connected_users_report() -> tuple[dict[str, object], int]:
    """Connected users (latest active session each) and disconnected sessions.
    ---
    tags:
      - Reports
    responses:
      200:
        description: Both lists, most recent activity first
    """
    sessions = get_services().sessions
    return jsonify(
        {
            "connected": [session.to_dict() for session in sessions.connected_users()],
            "disconnected": [session.to_dict() for session in sessions.disconnected_sessions()],
        }
    ), 200


@bp_ext.delete("/reports/sessions")
@require_roles(*ADMIN_ROLES)
def delete_sessions() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    deleted = get_services().sessions.delete_sessions(payload.get("session_ids"))
    return jsonify({"deleted": deleted}), 200


@bp_ext.delete("/reports/sessions/disconnected")
@require_roles(*ADMIN_ROLES)
def clear_disconnected_sessions() -> tuple[dict[str, object], int]:
    deleted = get_services().sessions.clear_disconnected()
    return jsonify({"deleted": deleted}), 200


@bp_ext.delete("/reports/sessions/<string:session_id>")
@require_roles(*ADMIN_ROLES)
def delete_session(session_id: str) -> tuple[dict[str, object], int]:
    get_services().sessions.delete_session(session_id)
    return jsonify({"deleted": 1}), 200


# PAYMENTS
@bp_ext.post("/payments")
def create_payment() -> tuple[dict[str, object], int]:
    """Start a Stripe Checkout payment for a booking.
    ---
    tags:
      - Payments
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - booking_id
          properties:
            booking_id:
              type: integer
            amount:
              type: number
              description: Defaults to the service price
    responses:
      201:
        description: Payment recorded as pending with the Checkout URL
      401:
        description: Not signed in
      403:
        description: Booking belongs to another customer
      503:
        description: Payments are not configured
    """
    user = require_user()
    payload = request.get_json(silent=True) or {}
    if payload.get("booking_id") in (None, ""):
        raise InvalidPayload("booking_id is required")
    payment, checkout_url = get_services().payments.create_checkout(
        payload["booking_id"], payload.get("amount"), actor=user
    )
    return jsonify({"payment": payment.to_dict(), "checkout_url": checkout_url}), 201


@bp_ext.post("/payments/<int:payment_id>/refresh")
def refresh_payment(payment_id: int) -> tuple[dict[str, object], int]:
    user = require_user()
    payment = get_services().payments.refresh_status(payment_id, actor=user)
    return jsonify({"payment": payment.to_dict()}), 200


@bp_ext.get("/bookings/<int:booking_id>/payments")
def booking_payments(booking_id: int) -> tuple[dict[str, object], int]:
    user = require_user()
    payments = get_services().payments.payments_for_booking(booking_id, actor=user)
    return jsonify({"payments": [payment.to_dict() for payment in payments]}), 200


# SETTINGS
@bp_ext.get("/settings")
def get_settings() -> tuple[dict[str, object], int]:
    return jsonify({"settings": load_settings().as_dict()}), 200


@bp_ext.get("/settings/<string:category>")
def get_settings_category(category: str) -> tuple[dict[str, object], int]:
    return jsonify({"category": category, "settings": load_settings().category(category)}), 200


@bp_ext.put("/settings/<string:category>")
@require_roles(*ADMIN_ROLES)
def update_settings_category(category: str) -> tuple[dict[str, object], int]:
    """Validate and save every value of one settings category.
    ---
    tags:
      - Settings
    responses:
      200:
        description: Saved values for the category
      400:
        description: One or more values failed validation; nothing was saved
    """
    payload = request.get_json(silent=True) or {}
    values = payload.get("settings", payload)
    if category not in {cat for cat, _ in DEFINITIONS} and not values:
        raise InvalidPayload(f"unknown settings category: {category}")
    settings = save_settings(category, values)
    return jsonify({"settings": settings.category(category), "message": messages.SETTINGS_SAVED}), 200


# DASHBOARD
@bp_ext.get("/dashboard/stats")
@require_roles(*STAFF_ROLES)
def dashboard_stats() -> tuple[dict[str, object], int]:
    return jsonify({"stats": get_services().bookings.dashboard_stats(local_now().date())}), 200
