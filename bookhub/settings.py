"""Typed registry over the ``settings`` table.

Every known ``(category, key)`` pair has a :class:`SettingDefinition` that
knows how to parse the stored text and how to serialize a new value. Rows are
read once per :func:`load_settings` call; malformed values fall back to the
definition default and unknown keys are kept as raw strings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable

from .errors import InvalidPayload
from .extensions import db
from .models import Setting
from .timeutils import format_time, parse_time

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class HoursRange:
    start_time: str
    end_time: str

    def __str__(self) -> str:
        return f"{self.start_time}-{self.end_time}"


def _parse_int(raw) -> int:
    if isinstance(raw, bool):
        raise ValueError("boolean is not an integer")
    value = int(str(raw).strip())
    if value < 0:
        raise ValueError("must not be negative")
    return value


def _parse_bool(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in {"true", "1", "yes", "on"}:
        return True
    if text in {"false", "0", "no", "off", ""}:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_str(raw) -> str:
    return "" if raw is None else str(raw)


def _parse_decimal(raw) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {raw!r}") from exc
    if value < 0:
        raise ValueError("must not be negative")
    return value


def _parse_csv(raw) -> list[str]:
    if isinstance(raw, (list, tuple)):
        items = [str(item).strip() for item in raw]
    else:
        items = [part.strip() for part in str(raw or "").split(",")]
    return [item for item in items if item]


def _parse_hours(raw) -> HoursRange | None:
    """``HH:MM-HH:MM``; an empty value means closed."""
    if raw is None or str(raw).strip() == "":
        return None
    if isinstance(raw, HoursRange):
        return raw
    if isinstance(raw, dict):
        start_raw, end_raw = raw.get("start_time") or raw.get("startTime"), raw.get("end_time") or raw.get("endTime")
    else:
        parts = str(raw).strip().split("-")
        if len(parts) != 2:
            raise ValueError(f"not an hours range: {raw!r}")
        start_raw, end_raw = parts
    start, end = parse_time(start_raw), parse_time(end_raw)
    if start is None or end is None or start >= end:
        raise ValueError(f"not an hours range: {raw!r}")
    return HoursRange(format_time(start), "24:00" if end.hour == 23 and end.minute == 59 and end.second == 59 else format_time(end))


def _choice(*options: str) -> Callable[[object], str]:
    def parse(raw) -> str:
        text = str(raw).strip()
        if text not in options:
            raise ValueError(f"expected one of {', '.join(options)}")
        return text

    return parse


def _serialize(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if value is None:
        return ""
    return str(value)


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, HoursRange):
        return {"start_time": value.start_time, "end_time": value.end_time}
    return value


@dataclass(frozen=True)
class SettingDefinition:
    category: str
    key: str
    parse: Callable[[object], object]
    default: object

    @property
    def name(self) -> str:
        return f"{self.category}.{self.key}"


DEFINITIONS: dict[tuple[str, str], SettingDefinition] = {}


def _define(category: str, key: str, parse, default) -> None:
    DEFINITIONS[(category, key)] = SettingDefinition(category, key, parse, default)


_define("booking", "bookingTimeSlotInterval", _parse_int, 30)
_define("booking", "advanceBookingDays", _parse_int, 30)
_define("booking", "showStaffName", _parse_bool, False)
_define("booking", "bookingEditTimeLimit", _parse_int, 24)
_define("booking", "emailRecipients", _choice("both", "customer", "provider"), "both")
_define("booking", "customEmailAddresses", _parse_str, "")
_define("system", "businessHours", _parse_hours, HoursRange("09:00", "17:00"))
_define("system", "businessName", _parse_str, "BookHub")
_define("system", "enableMobileAuth", _parse_bool, False)
_define("system", "version", _parse_str, "1.0.0")
_define("user", "requiredUserFields", _parse_csv, ["email", "full_name", "post_code"])
_define("service", "defaultServiceDuration", _parse_int, 60)
_define("service", "defaultServicePrice", _parse_decimal, Decimal("0"))
_define("datetime", "timeFormat", _choice("12h", "24h"), "12h")
_define("datetime", "showWeekday", _parse_bool, True)
for _day in WEEKDAYS:
    _define(
        "working_hours",
        _day,
        _parse_hours,
        None if _day in ("saturday", "sunday") else HoursRange("09:00", "17:00"),
    )


class Settings:
    """Snapshot of all settings rows, typed where a definition exists."""

    def __init__(self, values: dict[tuple[str, str], object] | None = None, raw: dict[tuple[str, str], str] | None = None):
        self._values = dict(values or {})
        self._raw = dict(raw or {})

    def get(self, category: str, key: str, default=None):
        if (category, key) in self._values:
            return self._values[(category, key)]
        definition = DEFINITIONS.get((category, key))
        if definition is not None:
            return definition.default
        return self._raw.get((category, key), default)

    def category(self, category: str) -> dict[str, object]:
        data = {
            definition.key: _jsonable(self.get(category, definition.key))
            for (cat, _), definition in DEFINITIONS.items()
            if cat == category
        }
        for (cat, key), value in self._raw.items():
            if cat == category:
                data[key] = value
        return data

    def as_dict(self) -> dict[str, dict[str, object]]:
        categories = {cat for cat, _ in DEFINITIONS} | {cat for cat, _ in self._raw}
        return {cat: self.category(cat) for cat in sorted(categories)}

    @property
    def business_hours(self) -> HoursRange | None:
        return self.get("system", "businessHours")


def parse_value(category: str, key: str, raw):
    """Parse one value for a known key; raises ``ValueError`` when malformed."""
    definition = DEFINITIONS[(category, key)]
    return definition.parse(raw)


def load_settings() -> Settings:
    values: dict[tuple[str, str], object] = {}
    raw_values: dict[tuple[str, str], str] = {}
    for row in Setting.query.all():
        definition = DEFINITIONS.get((row.category, row.key))
        if definition is None:
            raw_values[(row.category, row.key)] = row.value
            continue
        try:
            values[(row.category, row.key)] = definition.parse(row.value)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Malformed setting %s=%r (%s); using default %r",
                definition.name,
                row.value,
                exc,
                definition.default,
            )
    return Settings(values, raw_values)


def get_setting(category: str, key: str, default=None):
    return load_settings().get(category, key, default)


def save_settings(category: str, values: dict[str, object]) -> Settings:
    """Validate every value first, then upsert the whole category in one commit."""
    if not category or not isinstance(values, dict):
        raise InvalidPayload("settings must be an object keyed by setting name")

    serialized: dict[str, str] = {}
    errors: list[str] = []
    for key, raw in values.items():
        definition = DEFINITIONS.get((category, key))
        if definition is None:
            serialized[key] = _serialize(raw)
            continue
        try:
            serialized[key] = _serialize(definition.parse(raw))
        except (TypeError, ValueError) as exc:
            errors.append(f"{definition.name}: {exc}")
    if errors:
        raise InvalidPayload("; ".join(errors))

    existing = {row.key: row for row in Setting.query.filter_by(category=category).all()}
    for key, text in serialized.items():
        row = existing.get(key)
        if row is None:
            db.session.add(Setting(category=category, key=key, value=text))
        else:
            row.value = text
    db.session.commit()
    logger.info("Saved %d setting(s) in category %s", len(serialized), category)
    return load_settings()
