"""Date and time helpers.

Booking and availability times are stored as naive wall-clock values in the
business time zone. Bookkeeping timestamps (expiry, heartbeats) are naive UTC.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Australia/Sydney"


def business_tz(name: str | None = None) -> ZoneInfo:
    if name is None and has_app_context():
        name = current_app.config.get("BUSINESS_TIMEZONE")
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown time zone %r, falling back to %s", name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def utc_naive_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now(tz: ZoneInfo | None = None) -> datetime:
    """Current wall-clock time in the business time zone, without tzinfo."""
    return datetime.now(tz or business_tz()).replace(tzinfo=None)


def parse_datetime(value, tz: ZoneInfo | None = None) -> datetime | None:
    """Parse an ISO date-time into a naive business-local datetime.

    Values with an offset (including a trailing ``Z``) are converted into the
    business time zone first. Returns ``None`` for empty or unparsable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz or business_tz()).replace(tzinfo=None)
    return parsed


def parse_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_time(value) -> time | None:
    """Parse ``HH:MM`` or ``HH:MM:SS``; ``24:00`` maps to the end of day."""
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, str):
        text = value.strip()
        if text in ("24:00", "24:00:00"):
            return time.max
        try:
            return time.fromisoformat(text)
        except ValueError:
            return None
    return None


def format_time(value: time | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%H:%M")


def combine(day: date, moment: time) -> datetime:
    return datetime.combine(day, moment)


def date_range(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def format_for_email(value: datetime | None, tz: ZoneInfo | None = None) -> str:
    """Human readable wall-clock time, e.g. ``Sunday, 01 June 2025, 09:00 AM AEST``."""
    if value is None:
        return "TBD"
    tz = tz or business_tz()
    aware = value.replace(tzinfo=tz) if value.tzinfo is None else value.astimezone(tz)
    return aware.strftime("%A, %d %B %Y, %I:%M %p %Z").strip()
