"""Tests for the typed settings registry and its endpoints."""
from __future__ import annotations

from decimal import Decimal

import pytest

from bookhub.errors import InvalidPayload
from bookhub.extensions import db
from bookhub.models import Setting
from bookhub.settings import HoursRange, load_settings, parse_value, save_settings


def test_defaults_when_table_is_empty(app) -> None:
    settings = load_settings()

    assert settings.get("booking", "bookingTimeSlotInterval") == 30
    assert settings.get("booking", "showStaffName") is False
    assert settings.get("system", "businessHours") == HoursRange("09:00", "17:00")
    assert settings.get("working_hours", "sunday") is None
    assert settings.get("user", "requiredUserFields") == ["email", "full_name", "post_code"]
    assert settings.get("misc", "unknown", "fallback") == "fallback"


def test_stored_values_are_parsed(app) -> None:
    db.session.add_all(
        [
            Setting(category="booking", key="advanceBookingDays", value="14"),
            Setting(category="booking", key="showStaffName", value="true"),
            Setting(category="system", key="businessHours", value="08:30-18:00"),
            Setting(category="service", key="defaultServicePrice", value="25.50"),
            Setting(category="user", key="requiredUserFields", value="email, phone_number"),
            Setting(category="branding", key="accent", value="#ff0000"),
        ]
    )
    db.session.commit()

    settings = load_settings()

    assert settings.get("booking", "advanceBookingDays") == 14
    assert settings.get("booking", "showStaffName") is True
    assert settings.business_hours == HoursRange("08:30", "18:00")
    assert settings.get("service", "defaultServicePrice") == Decimal("25.50")
    assert settings.get("user", "requiredUserFields") == ["email", "phone_number"]
    assert settings.get("branding", "accent") == "#ff0000"


def test_malformed_values_fall_back_to_default(app, caplog) -> None:
    db.session.add_all(
        [
            Setting(category="booking", key="advanceBookingDays", value="soon"),
            Setting(category="system", key="businessHours", value="17:00-09:00"),
        ]
    )
    db.session.commit()

    settings = load_settings()

    assert settings.get("booking", "advanceBookingDays") == 30
    assert settings.business_hours == HoursRange("09:00", "17:00")
    assert "booking.advanceBookingDays" in caplog.text


@pytest.mark.parametrize(
    "category, key, raw, expected",
    [
        ("system", "businessHours", "", None),
        ("system", "businessHours", "00:00-23:59:59", HoursRange("00:00", "24:00")),
        ("system", "businessHours", {"start_time": "07:00", "end_time": "15:00"}, HoursRange("07:00", "15:00")),
        ("datetime", "timeFormat", "24h", "24h"),
        ("booking", "emailRecipients", "provider", "provider"),
    ],
)
def test_parse_value(category, key, raw, expected) -> None:
    assert parse_value(category, key, raw) == expected


@pytest.mark.parametrize(
    "category, key, raw",
    [
        ("booking", "bookingTimeSlotInterval", "-5"),
        ("booking", "showStaffName", "maybe"),
        ("datetime", "timeFormat", "36h"),
        ("booking", "emailRecipients", "everyone"),
    ],
)
def test_parse_value_rejects(category, key, raw) -> None:
    with pytest.raises(ValueError):
        parse_value(category, key, raw)


def test_save_is_all_or_nothing(app) -> None:
    with pytest.raises(InvalidPayload) as excinfo:
        save_settings("booking", {"advanceBookingDays": 10, "showStaffName": "maybe"})

    assert "booking.showStaffName" in excinfo.value.message
    assert Setting.query.count() == 0


def test_save_upserts(app) -> None:
    save_settings("booking", {"advanceBookingDays": 10})
    settings = save_settings("booking", {"advanceBookingDays": "12", "showStaffName": True})

    assert settings.get("booking", "advanceBookingDays") == 12
    assert Setting.query.filter_by(category="booking", key="showStaffName").one().value == "true"
    assert Setting.query.count() == 2


def test_settings_endpoints(client, admin, staff_member, auth_headers):
    saved = client.put(
        "/settings/system",
        json={"settings": {"businessHours": "08:00-16:00", "businessName": "Shear Bliss"}},
        headers=auth_headers(admin),
    )
    forbidden = client.put("/settings/system", json={"businessName": "Nope"}, headers=auth_headers(staff_member))
    invalid = client.put("/settings/booking", json={"advanceBookingDays": "lots"}, headers=auth_headers(admin))

    assert saved.status_code == 200
    assert saved.get_json()["settings"]["businessHours"] == {"start_time": "08:00", "end_time": "16:00"}
    assert forbidden.status_code == 403
    assert invalid.status_code == 400

    everything = client.get("/settings").get_json()["settings"]
    assert everything["system"]["businessName"] == "Shear Bliss"
    assert everything["working_hours"]["saturday"] is None
    assert client.get("/settings/service").get_json()["settings"]["defaultServicePrice"] == 0.0


def test_unknown_empty_category_is_rejected(client, admin, auth_headers):
    response = client.put("/settings/nonsense", json={}, headers=auth_headers(admin))

    assert response.status_code == 400
