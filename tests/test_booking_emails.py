"""Tests for booking email recipients and the notification function endpoints."""
from __future__ import annotations

import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from bookhub.extensions import db
from bookhub.models import Booking
from bookhub.services.email import is_deliverable_email, is_fake_email, plan_recipients
from bookhub.services.notifications import NotificationDispatcher
from bookhub.settings import save_settings


@pytest.mark.parametrize(
    "address, deliverable",
    [
        ("carla@example.com", True),
        ("61400000001_1700000000000@temp.local", False),
        ("someone@shop.fake.com", False),
        ("tester@example.com", False),
        ("fakeuser@example.com", False),
        ("temporary@example.com", False),
        ("not-an-email", False),
        ("", False),
    ],
)
def test_is_deliverable_email(address, deliverable) -> None:
    assert is_deliverable_email(address) is deliverable


def test_is_fake_email_only_matches_placeholder_domain() -> None:
    assert is_fake_email("61400000001_1700000000000@temp.local")
    assert not is_fake_email("tester@example.com")
    assert not is_fake_email(None)


def test_plan_recipients_modes() -> None:
    assert plan_recipients("both", "c@example.com", "s@example.com") == [
        ("c@example.com", "customer"),
        ("s@example.com", "staff"),
    ]
    assert plan_recipients("customer", "c@example.com", "s@example.com") == [("c@example.com", "customer")]
    assert plan_recipients("provider", "c@example.com", "s@example.com") == [("s@example.com", "staff")]


def test_plan_recipients_custom_list_replaces_booking_addresses() -> None:
    single = plan_recipients("both", "c@example.com", "s@example.com", "desk@example.com")
    several = plan_recipients("both", "c@example.com", "s@example.com", "desk@example.com, owner@example.com")
    providers = plan_recipients("provider", "c@example.com", "s@example.com", "desk@example.com,owner@example.com")

    assert single == [("desk@example.com", "customer"), ("desk@example.com", "staff")]
    assert several == [("desk@example.com", "customer"), ("owner@example.com", "customer")]
    assert providers == [("desk@example.com", "staff"), ("owner@example.com", "staff")]


def test_plan_recipients_drops_placeholder_addresses() -> None:
    planned = plan_recipients("both", "123_1700000000000@temp.local", "s@example.com")

    assert planned == [("s@example.com", "staff")]


@pytest.fixture
def booking(customer, staff_member, service, location, tomorrow_at):
    booking = Booking(
        customer_id=customer.id,
        provider_id=staff_member.id,
        service_id=service.id,
        location_id=location.id,
        start_time=tomorrow_at(10),
        end_time=tomorrow_at(10) + timedelta(minutes=45),
        status="confirmed",
        notes="Bring reference photos",
    )
    db.session.add(booking)
    db.session.commit()
    return booking


@pytest.fixture
def resend_mock(services):
    services.email.api_key = "re_123"
    with patch("bookhub.services.email.resend") as mocked:
        mocked.Emails.send.return_value = {"id": "email-1"}
        yield mocked


def _sent(resend_mock) -> list[dict]:
    return [call.args[0] for call in resend_mock.Emails.send.call_args_list]


def test_created_email_function(client, booking, customer, auth_headers, resend_mock):
    response = client.post("/functions/send-booking-created-email", json={"bookingId": booking.id}, headers=auth_headers(customer))

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "message": "Booking creation emails sent successfully"}
    sent = _sent(resend_mock)
    assert [email["subject"] for email in sent] == [
        "Booking Confirmation - Haircut",
        "New Booking Assignment - Haircut",
    ]
    assert "45 minutes" in sent[0]["html"]
    assert "Main Studio" in sent[0]["html"]
    assert "Bring reference photos" in sent[1]["html"]


def test_status_email_function_with_custom_recipients(client, booking, staff_member, auth_headers, resend_mock):
    response = client.post(
        "/functions/send-booking-status-email",
        json={
            "bookingId": booking.id,
            "oldStatus": "pending",
            "newStatus": "cancelled",
            "emailRecipients": "customer",
            "customEmailAddresses": "desk@example.com",
        },
        headers=auth_headers(staff_member),
    )

    assert response.get_json()["message"] == "Emails sent successfully"
    (email,) = _sent(resend_mock)
    assert email["to"] == ["desk@example.com"]
    assert email["subject"] == "Booking Cancelled: Haircut"
    assert "Your booking has been cancelled" in email["html"]


def test_status_email_defaults_to_current_status(client, booking, staff_member, auth_headers, resend_mock):
    client.post("/functions/send-booking-status-email", json={"bookingId": booking.id}, headers=auth_headers(staff_member))

    subjects = [email["subject"] for email in _sent(resend_mock)]
    assert subjects[0] == "Booking Confirmed: Haircut"


def test_function_errors_are_reported_as_400(client, staff_member, auth_headers, resend_mock):
    missing = client.post("/functions/send-booking-created-email", json={}, headers=auth_headers(staff_member))
    unknown = client.post("/functions/send-booking-created-email", json={"bookingId": 999}, headers=auth_headers(staff_member))
    bad_mode = client.post(
        "/functions/send-booking-status-email", json={"bookingId": 1, "emailRecipients": "everyone"}, headers=auth_headers(staff_member)
    )

    assert missing.status_code == 400
    assert missing.get_json() == {"error": "bookingId is required"}
    assert unknown.get_json() == {"error": "Failed to fetch booking: 999"}
    assert bad_mode.status_code == 400


def test_send_failure_is_reported(client, booking, staff_member, auth_headers, resend_mock):
    resend_mock.Emails.send.side_effect = RuntimeError("invalid api key")

    response = client.post("/functions/send-booking-created-email", json={"bookingId": booking.id}, headers=auth_headers(staff_member))

    assert response.status_code == 400
    assert "invalid api key" in response.get_json()["error"]


def test_functions_require_sign_in(client, booking):
    response = client.post("/functions/send-booking-created-email", json={"bookingId": booking.id})

    assert response.status_code == 401


def test_unconfigured_email_is_skipped(client, services, booking, staff_member, auth_headers):
    services.email.api_key = None

    with patch("bookhub.services.email.resend") as mocked:
        response = client.post("/functions/send-booking-created-email", json={"bookingId": booking.id}, headers=auth_headers(staff_member))

    assert response.status_code == 200
    mocked.Emails.send.assert_not_called()


def test_new_booking_uses_recipient_settings(client, services, customer, staff_member, service, auth_headers, tomorrow_at, resend_mock):
    save_settings("booking", {"emailRecipients": "provider"})

    client.post(
        "/bookings",
        json={"service_id": service.id, "provider_id": staff_member.id, "start_time": tomorrow_at(15).isoformat()},
        headers=auth_headers(customer),
    )

    assert [email["to"] for email in _sent(resend_mock)] == [["sam@example.com"]]


def test_send_test_sms(client, services, booking, staff_member, customer, auth_headers):
    with patch.object(services.sms, "send") as send:
        response = client.post(
            "/functions/send-test-sms",
            json={"bookingId": booking.id, "phoneNumbers": "+61400000001, +61400000002", "testType": "status"},
            headers=auth_headers(staff_member),
        )

    assert response.status_code == 200
    assert [call.args[0] for call in send.call_args_list] == ["+61400000001", "+61400000002"]
    assert send.call_args.args[1].startswith("Booking confirmed: Haircut on ")
    assert client.post("/functions/send-test-sms", json={"bookingId": booking.id, "phoneNumbers": "+61400000001"}, headers=auth_headers(customer)).status_code == 403
    assert client.post("/functions/send-test-sms", json={"bookingId": booking.id}, headers=auth_headers(staff_member)).get_json() == {
        "error": "phoneNumbers is required"
    }


def _dispatcher(app, run_async: bool, error: Exception) -> NotificationDispatcher:
    emails = MagicMock()
    emails.send_created_email.side_effect = error
    dispatcher = NotificationDispatcher(app, emails, run_async=run_async)
    dispatcher._recipients = MagicMock(return_value=("both", ""))
    return dispatcher


def test_unexpected_error_in_background_send_is_logged(app, caplog):
    dispatcher = _dispatcher(app, True, RuntimeError("template exploded"))

    with caplog.at_level(logging.ERROR, logger="bookhub.services.notifications"):
        future = dispatcher.booking_created(7)
        future.result(timeout=5)
        dispatcher.shutdown()

    (record,) = [r for r in caplog.records if r.name == "bookhub.services.notifications"]
    assert record.getMessage() == "Booking 7 created email failed unexpectedly"
    assert record.exc_info[0] is RuntimeError


def test_unexpected_error_in_inline_send_does_not_escape(app, caplog):
    dispatcher = _dispatcher(app, False, KeyError("customer"))

    with caplog.at_level(logging.ERROR, logger="bookhub.services.notifications"):
        assert dispatcher.booking_created(8) is None

    assert "Booking 8 created email failed unexpectedly" in caplog.text
