from __future__ import annotations

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import messages
from .auth import ADMIN_ROLES, STAFF_ROLES, current_user, ensure_self_or_roles, require_roles, require_user
from .errors import Forbidden, InvalidPayload
from .extensions import db
from .services import get_services
from .services.availability import changed_entries, month_grid, toggle_all
from .services.bookings import can_edit_booking, time_until_edit_cutoff
from .settings import load_settings
from .timeutils import local_now

bp = Blueprint("api", __name__)


def _browser_info() -> str | None:
    return request.headers.get("User-Agent")


def _flow_token(payload: dict | None = None) -> str | None:
    """Secret returned with a new auth flow; body field or ``X-Flow-Token`` header."""
    token = (payload or {}).get("flow_token")
    return token or request.headers.get("X-Flow-Token") or request.args.get("flow_token")


def _int_arg(name: str) -> int | None:
    value = request.args.get(name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise InvalidPayload(f"{name} must be an integer") from exc


def _required_fields(settings) -> list[str]:
    return list(settings.get("user", "requiredUserFields") or [])


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- Auth -------------------------------------------------------------------


@bp.post("/auth/signup")
def signup() -> tuple[dict[str, object], int]:
    """Register a customer with email and password.
    ---
    tags:
      - Auth
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
            - full_name
          properties:
            email:
              type: string
            password:
              type: string
            full_name:
              type: string
            phone_number:
              type: string
            post_code:
              type: string
    responses:
      201:
        description: Account created; the flow waits for email confirmation
      400:
        description: Invalid payload or missing required fields
      409:
        description: Email already registered
    """
    payload = request.get_json(silent=True) or {}
    result = get_services().auth.signup(payload, _required_fields(load_settings()))
    return jsonify(result), 201


@bp.post("/auth/confirm")
def confirm_email() -> tuple[dict[str, object], int]:
    """Confirm an email address with the token from the confirmation link.
    ---
    tags:
      - Auth
    responses:
      200:
        description: Email verified and signed in, or already verified
      400:
        description: Link is invalid or has expired
    """
    payload = request.get_json(silent=True) or {}
    result = get_services().auth.confirm_email(
        payload.get("token") or payload.get("access_token"),
        flow_id=payload.get("flow_id"),
        flow_token=_flow_token(payload),
        browser_info=_browser_info(),
    )
    return jsonify(result), 200


@bp.post("/auth/confirm/resend")
def resend_confirmation() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    get_services().auth.resend_confirmation(payload.get("email"))
    return jsonify({"message": messages.CHECK_EMAIL_CONFIRMATION}), 200


@bp.post("/auth/signin")
def signin() -> tuple[dict[str, object], int]:
    """Sign in with email and password.
    ---
    tags:
      - Auth
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - email
            - password
          properties:
            email:
              type: string
            password:
              type: string
    responses:
      200:
        description: Session tokens, the user and the route for their role
      401:
        description: Invalid credentials
      403:
        description: Email not confirmed or unknown role
    """
    payload = request.get_json(silent=True) or {}
    result = get_services().auth.signin(payload.get("email"), payload.get("password"), _browser_info())
    current_app.logger.info("User %s signed in", result["user"]["id"])
    return jsonify(result), 200


@bp.post("/auth/signout")
def signout() -> tuple[dict[str, object], int]:
    user = require_user()
    payload = request.get_json(silent=True) or {}
    get_services().auth.signout(user, payload.get("session_id"))
    return jsonify({"status": "signed_out"}), 200


@bp.post("/auth/refresh")
def refresh_token() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    return jsonify(get_services().auth.refresh(payload.get("refresh_token"))), 200


@bp.get("/auth/me")
def who_am_i() -> tuple[dict[str, object], int]:
    user = require_user()
    return jsonify({"user": user.to_dict()}), 200


@bp.post("/auth/otp/send")
def send_otp() -> tuple[dict[str, object], int]:
    """Text a one-time code to a phone number.
    ---
    tags:
      - Auth
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - phone
          properties:
            phone:
              type: string
            purpose:
              type: string
              enum: [signin, signup]
            full_name:
              type: string
            flow_id:
              type: integer
              description: Pass the existing flow to resend a code
    responses:
      200:
        description: Code sent; the flow is awaiting the code
      403:
        description: Mobile authentication is disabled
      429:
        description: A code was sent too recently
    """
    payload = request.get_json(silent=True) or {}
    result = get_services().auth.send_otp(
        payload.get("phone"),
        purpose=payload.get("purpose") or "signin",
        full_name=payload.get("full_name"),
        flow_id=payload.get("flow_id"),
        flow_token=_flow_token(payload),
    )
    return jsonify(result), 200


@bp.post("/auth/otp/verify")
def verify_otp() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    result = get_services().auth.verify_otp(
        payload.get("flow_id"), _flow_token(payload), payload.get("code"), _browser_info()
    )
    return jsonify(result), 200


@bp.get("/auth/flows/<int:flow_id>")
def get_auth_flow(flow_id: int) -> tuple[dict[str, object], int]:
    """Current state of an auth flow; a stuck verification reports ``timed_out``."""
    return jsonify(get_services().auth.get_flow(flow_id, _flow_token())), 200


@bp.post("/auth/flows/<int:flow_id>/refresh")
def refresh_auth_flow(flow_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    return jsonify(get_services().auth.refresh_flow(flow_id, _flow_token(payload))), 200


@bp.post("/auth/forgot-password")
def forgot_password() -> tuple[dict[str, object], int]:
    """Email a password recovery link.
    ---
    tags:
      - Auth
    responses:
      200:
        description: Always returned for a non-empty email
      400:
        description: Email missing
    """
    payload = request.get_json(silent=True) or {}
    message = get_services().auth.forgot_password(payload.get("email"))
    return jsonify({"message": message}), 200


@bp.post("/auth/recovery")
def begin_recovery() -> tuple[dict[str, object], int]:
    """Validate the fragment of a recovery link and open a recovery flow."""
    payload = request.get_json(silent=True) or {}
    result, ready = get_services().auth.begin_recovery(payload.get("fragment"))
    return jsonify(result), 200 if ready else 400


@bp.post("/auth/reset-password")
def reset_password() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    result = get_services().auth.reset_password(
        payload.get("flow_id"),
        _flow_token(payload),
        payload.get("password"),
        payload.get("confirm_password"),
    )
    return jsonify(result), 200


# --- Users ------------------------------------------------------------------


@bp.get("/users")
@require_roles(*ADMIN_ROLES)
def list_users() -> tuple[dict[str, object], int]:
    """List users, optionally filtered by role.
    ---
    tags:
      - Users
    parameters:
      - name: role
        in: query
        type: string
        description: customer, staff, manager, admin, or a group (staff_admin, staff_manager, providers)
    responses:
      200:
        description: Users, newest first
    """
    users = get_services().users.list_users(request.args.get("role"))
    return jsonify({"users": [user.to_dict() for user in users]}), 200


@bp.post("/users")
@require_roles(*ADMIN_ROLES)
def create_user() -> tuple[dict[str, object], int]:
    """Create a user from the admin panel.
    ---
    tags:
      - Users
    responses:
      201:
        description: User created; a generated password is returned when none was supplied
      400:
        description: Missing required fields
      409:
        description: Email already registered
    """
    payload = request.get_json(silent=True) or {}
    user, generated = get_services().users.create_user(payload, _required_fields(load_settings()))
    body = {"user": user.to_dict(), "message": messages.USER_CREATED}
    if generated:
        body["temporary_password"] = generated
    return jsonify(body), 201


@bp.delete("/users")
@require_roles(*ADMIN_ROLES)
def delete_users() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    deleted = get_services().users.delete_users(payload.get("ids"))
    return jsonify({"deleted": deleted}), 200


@bp.get("/users/<int:user_id>")
def get_user(user_id: int) -> tuple[dict[str, object], int]:
    ensure_self_or_roles(user_id, *ADMIN_ROLES)
    return jsonify({"user": get_services().users.get_user(user_id).to_dict()}), 200


@bp.put("/users/<int:user_id>")
@require_roles(*ADMIN_ROLES)
def update_user(user_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    user = get_services().users.update_user(user_id, payload)
    return jsonify({"user": user.to_dict(), "message": messages.USER_UPDATED}), 200


@bp.get("/users/<int:user_id>/profile")
def get_profile(user_id: int) -> tuple[dict[str, object], int]:
    ensure_self_or_roles(user_id, *ADMIN_ROLES)
    user = get_services().users.get_user(user_id)
    return jsonify({"profile": user.to_dict(), "required_fields": _required_fields(load_settings())}), 200


@bp.put("/users/<int:user_id>/profile")
def update_profile(user_id: int) -> tuple[dict[str, object], int]:
    """Update the caller's own profile; required fields come from settings."""
    ensure_self_or_roles(user_id, *ADMIN_ROLES)
    payload = request.get_json(silent=True) or {}
    users = get_services().users
    target = users.get_user(user_id)
    required = _required_fields(load_settings()) if target.role == "customer" else []
    user = users.update_profile(user_id, payload, required)
    return jsonify({"profile": user.to_dict(), "message": messages.PROFILE_UPDATED}), 200


@bp.post("/users/<int:user_id>/reset-password")
@require_roles(*ADMIN_ROLES)
def admin_reset_password(user_id: int) -> tuple[dict[str, object], int]:
    """Reset a user's password by email link or manually.
    ---
    tags:
      - Users
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            mode:
              type: string
              enum: [email, manual]
            password:
              type: string
              description: Manual mode only; a temporary password is generated when omitted
    responses:
      200:
        description: Reset email sent, or the new password for manual resets
    """
    payload = request.get_json(silent=True) or {}
    users = get_services().users
    if payload.get("mode") == "manual":
        password = users.manual_password_reset(user_id, payload.get("password"))
        return jsonify({"password": password, "message": messages.PASSWORD_UPDATED}), 200
    users.send_password_reset(user_id)
    return jsonify({"message": messages.PASSWORD_RESET_SENT}), 200


@bp.get("/staff")
def list_staff() -> tuple[dict[str, object], int]:
    require_user()
    staff = get_services().users.list_staff()
    return jsonify({"staff": [member.to_dict_basic() for member in staff]}), 200


# --- Bookings ---------------------------------------------------------------


@bp.get("/bookings")
def list_bookings() -> tuple[dict[str, object], int]:
    """List bookings enriched with service, customer and staff names.
    ---
    tags:
      - Bookings
    parameters:
      - name: status
        in: query
        type: string
      - name: time_filter
        in: query
        type: string
        enum: [all, upcoming, past, today]
      - name: provider_id
        in: query
        type: integer
    responses:
      200:
        description: Bookings; customers only see their own
    """
    user = require_user()
    customer_id = user.id if user.role == "customer" else _int_arg("customer_id")
    bookings = get_services().bookings.list_bookings(
        status=request.args.get("status"),
        time_filter=request.args.get("time_filter"),
        customer_id=customer_id,
        provider_id=_int_arg("provider_id"),
    )
    if user.role == "customer":
        bookings = [booking for booking in bookings if booking["status"] != "blocked"]
    return jsonify({"bookings": bookings}), 200


@bp.post("/bookings")
def create_booking() -> tuple[dict[str, object], int]:
    """Create a booking.
    ---
    tags:
      - Bookings
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - service_id
            - provider_id
            - start_time
          properties:
            customer_id:
              type: integer
              description: Ignored for customers, who always book for themselves
            service_id:
              type: integer
            provider_id:
              type: integer
            location_id:
              type: integer
            start_time:
              type: string
              format: date-time
            end_time:
              type: string
              format: date-time
            duration:
              type: integer
              description: Minutes; defaults to the service duration
            notes:
              type: string
    responses:
      201:
        description: Booking created
      400:
        description: Validation failed
      409:
        description: Overlaps an existing booking or blocked slot
    """
    user = require_user()
    payload = request.get_json(silent=True) or {}
    services = get_services()
    booking = services.bookings.create_booking(payload, load_settings(), actor=user)
    return jsonify({"booking": services.bookings.enrich(booking), "message": messages.BOOKING_CREATED}), 201


@bp.delete("/bookings")
@require_roles(*STAFF_ROLES)
def delete_bookings() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    deleted = get_services().bookings.delete_bookings(payload.get("ids"))
    return jsonify({"deleted": deleted, "message": messages.BOOKINGS_DELETED}), 200


@bp.get("/bookings/<int:booking_id>")
def get_booking(booking_id: int) -> tuple[dict[str, object], int]:
    user = require_user()
    bookings = get_services().bookings
    booking = bookings.get_booking(booking_id)
    if user.role == "customer" and booking.customer_id != user.id:
        raise Forbidden("you may only view your own bookings")

    limit = load_settings().get("booking", "bookingEditTimeLimit")
    now = local_now()
    data = bookings.enrich(booking)
    data["can_edit"] = can_edit_booking(booking, limit, now)
    data["edit_cutoff_seconds"] = int(time_until_edit_cutoff(booking.start_time, limit, now).total_seconds())
    return jsonify({"booking": data}), 200


@bp.put("/bookings/<int:booking_id>")
def update_booking(booking_id: int) -> tuple[dict[str, object], int]:
    user = require_user()
    payload = request.get_json(silent=True) or {}
    bookings = get_services().bookings
    booking = bookings.update_booking(booking_id, payload, load_settings(), actor=user)
    return jsonify({"booking": bookings.enrich(booking), "message": messages.BOOKING_UPDATED}), 200


@bp.delete("/bookings/<int:booking_id>")
@require_roles(*STAFF_ROLES)
def delete_booking(booking_id: int) -> tuple[dict[str, object], int]:
    get_services().bookings.delete_booking(booking_id)
    return jsonify({"status": "deleted"}), 200


@bp.put("/bookings/<int:booking_id>/status")
@require_roles(*STAFF_ROLES)
def update_booking_status(booking_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    bookings = get_services().bookings
    booking = bookings.update_status(booking_id, payload.get("status"))
    return jsonify({"booking": bookings.enrich(booking), "message": messages.BOOKING_UPDATED}), 200


@bp.post("/bookings/<int:booking_id>/confirm")
@require_roles(*STAFF_ROLES)
def confirm_booking(booking_id: int) -> tuple[dict[str, object], int]:
    bookings = get_services().bookings
    booking = bookings.confirm_booking(booking_id)
    return jsonify({"booking": bookings.enrich(booking), "message": messages.BOOKING_CONFIRMED}), 200


# --- Services catalog -------------------------------------------------------


@bp.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    """List bookable services; the blocked-slot sentinel is only shown to staff on request."""
    user = current_user()
    include_blocked = (
        request.args.get("include_blocked") in ("1", "true") and user is not None and user.role in STAFF_ROLES
    )
    services = get_services().catalog.list_services(include_blocked=include_blocked)
    return jsonify({"services": [service.to_dict() for service in services]}), 200


@bp.post("/services")
@require_roles(*ADMIN_ROLES)
def create_service() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    service = get_services().catalog.create_service(payload, defaults=load_settings())
    return jsonify({"service": service.to_dict()}), 201


@bp.get("/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"service": get_services().catalog.get_service(service_id).to_dict()}), 200


@bp.put("/services/<int:service_id>")
@require_roles(*ADMIN_ROLES)
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    service = get_services().catalog.update_service(service_id, payload)
    return jsonify({"service": service.to_dict()}), 200


@bp.delete("/services/<int:service_id>")
@require_roles(*ADMIN_ROLES)
def delete_service(service_id: int) -> tuple[dict[str, object], int]:
    get_services().catalog.delete_service(service_id)
    return jsonify({"status": "deleted"}), 200


@bp.put("/services/<int:service_id>/staff")
@require_roles(*ADMIN_ROLES)
def set_service_staff(service_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    service = get_services().catalog.set_service_staff(service_id, payload.get("staff_ids"))
    return jsonify({"service": service.to_dict()}), 200


# --- Locations --------------------------------------------------------------


@bp.get("/locations")
def list_locations() -> tuple[dict[str, object], int]:
    locations = get_services().locations.list_locations()
    return jsonify({"locations": [location.to_dict() for location in locations]}), 200


@bp.post("/locations")
@require_roles(*ADMIN_ROLES)
def create_location() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    location = get_services().locations.create_location(payload)
    return jsonify({"location": location.to_dict()}), 201


@bp.put("/locations/<int:location_id>")
@require_roles(*ADMIN_ROLES)
def update_location(location_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    location = get_services().locations.update_location(location_id, payload)
    return jsonify({"location": location.to_dict()}), 200


@bp.delete("/locations/<int:location_id>")
@require_roles(*ADMIN_ROLES)
def delete_location(location_id: int) -> tuple[dict[str, object], int]:
    get_services().locations.delete_location(location_id)
    return jsonify({"status": "deleted"}), 200


# --- Staff availability -----------------------------------------------------


@bp.get("/staff/<int:staff_id>/availability")
@require_roles(*STAFF_ROLES)
def get_staff_availability(staff_id: int) -> tuple[dict[str, object], int]:
    """Availability rows for one staff member.
    ---
    tags:
      - Staff Availability
    parameters:
      - name: start_date
        in: query
        type: string
        format: date
      - name: end_date
        in: query
        type: string
        format: date
      - name: location_id
        in: query
        type: integer
        description: Only rows for exactly this location
    responses:
      200:
        description: Availability rows ordered by date
    """
    rows = get_services().availability.get_availability(
        staff_id,
        request.args.get("start_date"),
        request.args.get("end_date"),
        _int_arg("location_id"),
    )
    return jsonify({"availability": [row.to_dict() for row in rows]}), 200


@bp.put("/staff/<int:staff_id>/availability")
def save_staff_availability(staff_id: int) -> tuple[dict[str, object], int]:
    """Save changed availability entries in one transaction."""
    ensure_self_or_roles(staff_id, *ADMIN_ROLES)
    payload = request.get_json(silent=True) or {}
    entries = payload.get("entries")
    if "original" in payload and isinstance(entries, list):
        entries = changed_entries(payload.get("original") or [], entries)
    rows = get_services().availability.save_availability(staff_id, entries)
    return jsonify(
        {"availability": [row.to_dict() for row in rows], "message": messages.STAFF_AVAILABILITY_UPDATED}
    ), 200


@bp.get("/staff/<int:staff_id>/availability/window")
@require_roles(*STAFF_ROLES)
def staff_availability_window(staff_id: int) -> tuple[dict[str, object], int]:
    days = _int_arg("days") or 30
    window = get_services().availability.availability_window(
        staff_id,
        local_now().date(),
        days=days,
        business_hours=load_settings().business_hours,
        location_id=_int_arg("location_id"),
    )
    return jsonify({"availability": window}), 200


@bp.get("/staff/<int:staff_id>/time-slots")
def staff_time_slots(staff_id: int) -> tuple[dict[str, object], int]:
    """Bookable start times for one staff member on one day.
    ---
    tags:
      - Staff Availability
    parameters:
      - name: date
        in: query
        type: string
        format: date
        required: true
      - name: service_id
        in: query
        type: integer
        description: Service whose duration each slot must fit
      - name: location_id
        in: query
        type: integer
      - name: exclude_booking_id
        in: query
        type: integer
        description: Booking being edited; it does not block its own slots
    responses:
      200:
        description: all, available and booked slot lists as HH:MM strings
    """
    require_user()
    slots = get_services().availability.day_time_slots(
        staff_id,
        request.args.get("date"),
        service_id=_int_arg("service_id"),
        location_id=_int_arg("location_id"),
        exclude_booking_id=_int_arg("exclude_booking_id"),
    )
    return jsonify(slots), 200


@bp.post("/staff/<int:staff_id>/availability/window/toggle-all")
@require_roles(*STAFF_ROLES)
def toggle_staff_availability(staff_id: int) -> tuple[dict[str, object], int]:
    """Mark or unmark every day of the displayed month from today onwards.

    Nothing is saved; the toggled window and the entries that changed are
    returned for the client to review and submit.
    """
    payload = request.get_json(silent=True) or {}
    window = payload.get("window")
    if not isinstance(window, list):
        window = get_services().availability.availability_window(
            staff_id, local_now().date(), business_hours=load_settings().business_hours
        )
    today = local_now().date()
    toggled = toggle_all(window, payload.get("month") or today, today, bool(payload.get("value", True)))
    return jsonify({"availability": toggled, "changed": changed_entries(window, toggled)}), 200


@bp.get("/availability/month")
def availability_month_grid() -> tuple[dict[str, object], int]:
    require_user()
    month = request.args.get("month") or local_now().date()
    weeks = month_grid(month)
    return jsonify({"weeks": [[day.isoformat() for day in week] for week in weeks]}), 200


@bp.get("/availability/staff")
def available_staff() -> tuple[dict[str, object], int]:
    """Staff with an open window covering ``date`` ``start``-``end``."""
    require_user()
    staff = get_services().availability.available_staff_for_slot(
        request.args.get("date"), request.args.get("start"), request.args.get("end")
    )
    return jsonify({"staff": [member.to_dict_basic() for member in staff]}), 200


# --- Blocked slots ----------------------------------------------------------


@bp.get("/staff/<int:staff_id>/blocked-slots")
@require_roles(*STAFF_ROLES)
def list_blocked_slots(staff_id: int) -> tuple[dict[str, object], int]:
    blocked = get_services().blocked_slots
    if request.args.get("date"):
        slots = blocked.blocked_slots_for_date(staff_id, request.args["date"])
    elif request.args.get("start_date") or request.args.get("end_date"):
        slots = blocked.blocked_slots_for_staff([staff_id], request.args.get("start_date"), request.args.get("end_date"))
    else:
        slots = blocked.blocked_slots(staff_id)
    return jsonify({"blocked_slots": [slot.to_dict() for slot in slots]}), 200


@bp.post("/staff/<int:staff_id>/blocked-slots")
def create_blocked_slot(staff_id: int) -> tuple[dict[str, object], int]:
    """Block a time range in a staff member's calendar.
    ---
    tags:
      - Blocked Slots
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - start_time
            - end_time
          properties:
            start_time:
              type: string
              format: date-time
            end_time:
              type: string
              format: date-time
            notes:
              type: string
            location_id:
              type: integer
    responses:
      201:
        description: Blocked slot created
    """
    user = ensure_self_or_roles(staff_id, *ADMIN_ROLES)
    if user.role not in STAFF_ROLES:
        raise Forbidden("only staff may block time")
    payload = request.get_json(silent=True) or {}
    slot = get_services().blocked_slots.create_blocked_slot(
        staff_id,
        payload.get("start_time"),
        payload.get("end_time"),
        notes=payload.get("notes"),
        location_id=payload.get("location_id"),
    )
    return jsonify({"blocked_slot": slot.to_dict()}), 201


@bp.get("/staff/<int:staff_id>/blocked-slots/check")
@require_roles(*STAFF_ROLES)
def check_blocked_slot(staff_id: int) -> tuple[dict[str, object], int]:
    blocked = get_services().blocked_slots.is_time_slot_blocked(
        staff_id, request.args.get("date"), request.args.get("start"), request.args.get("end")
    )
    return jsonify({"blocked": blocked}), 200


@bp.get("/blocked-slots")
@require_roles(*STAFF_ROLES)
def list_blocked_slots_for_staff() -> tuple[dict[str, object], int]:
    raw_ids = [part for part in request.args.get("staff_ids", "").split(",") if part.strip()]
    try:
        staff_ids = [int(part) for part in raw_ids]
    except ValueError as exc:
        raise InvalidPayload("staff_ids must be a comma separated list of integers") from exc
    slots = get_services().blocked_slots.blocked_slots_for_staff(
        staff_ids, request.args.get("start_date"), request.args.get("end_date")
    )
    return jsonify({"blocked_slots": [slot.to_dict() for slot in slots]}), 200


@bp.delete("/blocked-slots/<int:slot_id>")
@require_roles(*STAFF_ROLES)
def delete_blocked_slot(slot_id: int) -> tuple[dict[str, object], int]:
    get_services().blocked_slots.delete_blocked_slot(slot_id)
    return jsonify({"status": "deleted"}), 200


def register_routes(app: Flask) -> None:
    from .functions import bp_functions
    from .routes_extended import bp_ext

    app.register_blueprint(bp)
    app.register_blueprint(bp_ext)
    app.register_blueprint(bp_functions)
