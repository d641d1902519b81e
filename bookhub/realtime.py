"""Change feed for bookings and users.

SQLAlchemy session events collect inserts, updates and deletes during a flush
and publish them to the application's :class:`RealtimeHub` once the
transaction commits. Subscribers register on the hub explicitly;
:class:`ToastHistory` is the built-in subscriber that turns change events
into human readable notifications.
"""
from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from flask import current_app, has_app_context
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from .models import Booking, User
from .timeutils import parse_date, parse_datetime

logger = logging.getLogger(__name__)

INSERT, UPDATE, DELETE = "INSERT", "UPDATE", "DELETE"

TRACKED_MODELS = {Booking: "bookings", User: "users"}

_PENDING_KEY = "bookhub_realtime_pending"


@dataclass
class ChangeEvent:
    sequence: int
    table: str
    type: str
    new: dict | None
    old: dict | None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def record(self) -> dict:
        return self.new or self.old or {}

    def to_dict(self) -> dict[str, object]:
        return {
            "sequence": self.sequence,
            "table": self.table,
            "eventType": self.type,
            "new": self.new,
            "old": self.old,
            "occurred_at": self.occurred_at.isoformat(),
        }


class RealtimeHub:
    """Application-scoped publisher with a bounded replay buffer."""

    def __init__(self, history_size: int = 200):
        self._subscribers: list[Callable[[ChangeEvent], None]] = []
        self._events: deque[ChangeEvent] = deque(maxlen=history_size)
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[ChangeEvent], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, table: str, event_type: str, new: dict | None = None, old: dict | None = None) -> ChangeEvent:
        with self._lock:
            change = ChangeEvent(next(self._sequence), table, event_type, new, old)
            self._events.append(change)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(change)
            except Exception:  # keep notifying the remaining subscribers
                logger.exception("Realtime subscriber %r failed for %s %s", callback, table, event_type)
        return change

    def events(self, since: int = 0, table: str | None = None, customer_id: int | None = None) -> list[ChangeEvent]:
        with self._lock:
            snapshot = list(self._events)
        selected = []
        for change in snapshot:
            if change.sequence <= since:
                continue
            if table and change.table != table:
                continue
            if customer_id is not None and change.record.get("customer_id") != customer_id:
                continue
            selected.append(change)
        return selected

    @property
    def last_sequence(self) -> int:
        with self._lock:
            return self._events[-1].sequence if self._events else 0


# --- field diffing --------------------------------------------------------


def _format_datetime(value) -> str:
    parsed = parse_datetime(value)
    return parsed.strftime("%d/%m/%Y, %I:%M %p") if parsed else "Not set"


def _format_date(value) -> str:
    parsed = parse_date(value)
    return parsed.strftime("%d/%m/%Y") if parsed else "Not set"


BOOKING_FIELDS = (
    ("start_time", "Start Time", _format_datetime),
    ("end_time", "End Time", _format_datetime),
    ("status", "Status", None),
    ("notes", "Notes", None),
)

USER_FIELDS = (
    ("full_name", "Name", None),
    ("email", "Email", None),
    ("phone_number", "Phone", None),
    ("birthday", "Birthday", _format_date),
    ("gender", "Gender", None),
    ("post_code", "Post Code", None),
    ("address", "Address", None),
    ("emergency_contact", "Emergency Contact", None),
    ("role", "Role", None),
    ("location_id", "Location", None),
)


def _is_empty(value) -> bool:
    return value is None or value == ""


def field_changes(old: dict | None, new: dict | None, fields=BOOKING_FIELDS) -> list[str]:
    """``Label: new value`` for each configured field whose value changed."""
    old, new = old or {}, new or {}
    changes = []
    for key, label, formatter in fields:
        before, after = old.get(key), new.get(key)
        if _is_empty(before) and _is_empty(after):
            continue
        if before == after:
            continue
        shown = formatter(after) if formatter else (after if not _is_empty(after) else "Not set")
        changes.append(f"{label}: {shown}")
    return changes


def status_update_message(old_status: str | None, new_status: str | None) -> str:
    if not new_status or old_status == new_status:
        return "Your booking has been updated!"
    return {
        "confirmed": "Your booking has been confirmed!",
        "completed": "Your booking has been completed!",
        "cancelled": "Your booking has been cancelled!",
    }.get(new_status, "Your booking has been updated!")


_STATUS_ICONS = {"confirmed": "✅", "completed": "🎯", "cancelled": "❌"}


def booking_toast(change: ChangeEvent, customer_view: bool = False) -> dict[str, object]:
    changes: list[str] = []
    if change.type == INSERT:
        title = "Your new booking has been created!" if customer_view else "New booking created"
        icon, level = ("🎉" if customer_view else "📅"), "success"
    elif change.type == UPDATE:
        changes = field_changes(change.old, change.new, BOOKING_FIELDS)
        old_status = (change.old or {}).get("status")
        new_status = (change.new or {}).get("status")
        icon, level = "📝", "info"
        if customer_view:
            title = status_update_message(old_status, new_status)
            if new_status and new_status != old_status:
                icon = _STATUS_ICONS.get(new_status, icon)
        else:
            title = "Booking updated"
    else:
        title = "Your booking has been cancelled!" if customer_view else "Booking deleted"
        icon, level = "🗑️", "warning"
    return {"title": title, "icon": icon, "level": level, "changes": changes}


def user_toast(change: ChangeEvent) -> dict[str, object]:
    record = change.record
    who = record.get("full_name") or record.get("email")
    if change.type == INSERT:
        title, level, changes = "New User Added", "success", []
    elif change.type == UPDATE:
        changes = field_changes(change.old, change.new, USER_FIELDS)
        title = "User Profile Updated" if changes else "User information updated"
        level = "info"
    else:
        title, level, changes = "User Removed", "warning", []
    return {"title": title, "icon": "👤", "level": level, "changes": changes, "user": who}


class ToastHistory:
    """Bounded subscriber that records a staff and a customer toast per change."""

    def __init__(self, size: int = 200):
        self._toasts: deque[dict] = deque(maxlen=size)
        self._lock = threading.Lock()

    def __call__(self, change: ChangeEvent) -> None:
        record = change.record
        base = {
            "sequence": change.sequence,
            "table": change.table,
            "eventType": change.type,
            "record_id": record.get("id"),
            "created_at": change.occurred_at.isoformat(),
        }
        entries = []
        if change.table == "bookings":
            entries.append({**base, "audience": "staff", **booking_toast(change)})
            entries.append(
                {
                    **base,
                    "audience": "customer",
                    "customer_id": record.get("customer_id"),
                    **booking_toast(change, customer_view=True),
                }
            )
        elif change.table == "users":
            entries.append({**base, "audience": "staff", **user_toast(change)})
        with self._lock:
            self._toasts.extend(entries)

    def toasts(self, audience: str | None = None, customer_id: int | None = None) -> list[dict]:
        with self._lock:
            snapshot = list(self._toasts)
        if audience:
            snapshot = [toast for toast in snapshot if toast["audience"] == audience]
        if customer_id is not None:
            snapshot = [toast for toast in snapshot if toast.get("customer_id") == customer_id]
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._toasts.clear()

    def __len__(self) -> int:
        return len(self._toasts)


# --- ORM wiring -----------------------------------------------------------


def _old_values(instance) -> dict:
    """Serialize ``instance`` with each modified column reverted to its old value."""
    data = instance.to_dict()
    state = inspect(instance)
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            previous = history.deleted[0]
            data[attr.key] = previous.isoformat() if hasattr(previous, "isoformat") else previous
    return data


def _load_previous(target, value, oldvalue, initiator) -> None:
    """No-op; registered with ``active_history`` so a set loads the old value first."""


# UPDATE events carry the pre-change value even for expired attributes
for _model in TRACKED_MODELS:
    for _column in inspect(_model).column_attrs:
        event.listen(getattr(_model, _column.key), "set", _load_previous, active_history=True)


def _current_hub() -> RealtimeHub | None:
    if not has_app_context():
        return None
    services = current_app.extensions.get("bookhub")
    return services.realtime if services is not None else None


@event.listens_for(Session, "after_flush")
def _collect_changes(session, _flush_context) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    for instance in session.new:
        table = TRACKED_MODELS.get(type(instance))
        if table:
            pending.append((table, INSERT, instance.to_dict(), None))
    for instance in session.dirty:
        table = TRACKED_MODELS.get(type(instance))
        if table and session.is_modified(instance, include_collections=False):
            pending.append((table, UPDATE, instance.to_dict(), _old_values(instance)))
    for instance in session.deleted:
        table = TRACKED_MODELS.get(type(instance))
        if table:
            pending.append((table, DELETE, None, instance.to_dict()))


@event.listens_for(Session, "after_commit")
def _publish_changes(session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    hub = _current_hub()
    if hub is None:
        return
    for table, event_type, new, old in pending:
        hub.publish(table, event_type, new=new, old=old)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session) -> None:
    session.info.pop(_PENDING_KEY, None)
