"""Tests for Stripe Checkout payments."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from bookhub.extensions import db
from bookhub.models import Booking, Payment
from bookhub.services.payments import PAYMENTS_UNAVAILABLE, to_cents


@pytest.fixture
def booking(customer, staff_member, service, tomorrow_at):
    booking = Booking(
        customer_id=customer.id,
        provider_id=staff_member.id,
        service_id=service.id,
        start_time=tomorrow_at(10),
        end_time=tomorrow_at(10) + timedelta(minutes=30),
        status="confirmed",
    )
    db.session.add(booking)
    db.session.commit()
    return booking


@pytest.fixture
def stripe_key(services):
    services.payments.secret_key = "sk_test_123"


CHECKOUT = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1")


def test_to_cents() -> None:
    assert to_cents(Decimal("45")) == 4500
    assert to_cents(Decimal("19.99")) == 1999


def test_checkout_uses_service_price(client, booking, customer, auth_headers, stripe_key):
    with patch.object(stripe.checkout.Session, "create", return_value=CHECKOUT) as create:
        response = client.post("/payments", json={"booking_id": booking.id}, headers=auth_headers(customer))

    assert response.status_code == 201
    body = response.get_json()
    assert body["checkout_url"] == CHECKOUT.url
    assert body["payment"]["status"] == "pending"
    assert body["payment"]["amount"] == 45.0
    assert body["payment"]["stripe_session_id"] == "cs_test_1"
    kwargs = create.call_args.kwargs
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 4500
    assert kwargs["line_items"][0]["price_data"]["currency"] == "aud"
    assert kwargs["metadata"] == {"booking_id": str(booking.id), "customer_id": str(customer.id)}


def test_checkout_with_explicit_amount(client, booking, staff_member, auth_headers, stripe_key):
    with patch.object(stripe.checkout.Session, "create", return_value=CHECKOUT) as create:
        client.post("/payments", json={"booking_id": booking.id, "amount": "20.50"}, headers=auth_headers(staff_member))

    assert create.call_args.kwargs["line_items"][0]["price_data"]["unit_amount"] == 2050


@pytest.mark.parametrize("amount", [0, -5, "lots"])
def test_checkout_rejects_bad_amounts(client, booking, customer, auth_headers, stripe_key, amount):
    response = client.post("/payments", json={"booking_id": booking.id, "amount": amount}, headers=auth_headers(customer))

    assert response.status_code == 400


def test_checkout_requires_configuration(client, booking, customer, auth_headers):
    response = client.post("/payments", json={"booking_id": booking.id}, headers=auth_headers(customer))

    assert response.status_code == 503
    assert response.get_json()["message"] == PAYMENTS_UNAVAILABLE
    assert Payment.query.count() == 0


def test_checkout_for_someone_elses_booking(client, booking, make_user, auth_headers, stripe_key):
    stranger = make_user("customer")

    response = client.post("/payments", json={"booking_id": booking.id}, headers=auth_headers(stranger))

    assert response.status_code == 403


def test_stripe_error_becomes_payment_error(client, booking, customer, auth_headers, stripe_key):
    with patch.object(stripe.checkout.Session, "create", side_effect=stripe.StripeError("card declined")):
        response = client.post("/payments", json={"booking_id": booking.id}, headers=auth_headers(customer))

    assert response.status_code == 502
    assert response.get_json()["error"] == "payment_error"
    assert Payment.query.count() == 0


def test_refresh_marks_paid_and_lists_payments(client, booking, customer, auth_headers, stripe_key):
    with patch.object(stripe.checkout.Session, "create", return_value=CHECKOUT):
        payment_id = client.post("/payments", json={"booking_id": booking.id}, headers=auth_headers(customer)).get_json()["payment"]["id"]

    paid = SimpleNamespace(payment_status="paid", status="complete")
    with patch.object(stripe.checkout.Session, "retrieve", return_value=paid) as retrieve:
        refreshed = client.post(f"/payments/{payment_id}/refresh", headers=auth_headers(customer))
        again = client.post(f"/payments/{payment_id}/refresh", headers=auth_headers(customer))

    assert refreshed.get_json()["payment"]["status"] == "completed"
    assert again.get_json()["payment"]["status"] == "completed"
    retrieve.assert_called_once_with("cs_test_1")

    listed = client.get(f"/bookings/{booking.id}/payments", headers=auth_headers(customer)).get_json()["payments"]
    assert [payment["id"] for payment in listed] == [payment_id]


def test_refresh_marks_expired(client, services, booking, customer, auth_headers, stripe_key):
    payment = Payment(booking_id=booking.id, amount=45, stripe_session_id="cs_old", status="pending")
    db.session.add(payment)
    db.session.commit()

    expired = SimpleNamespace(payment_status="unpaid", status="expired")
    with patch.object(stripe.checkout.Session, "retrieve", return_value=expired):
        response = client.post(f"/payments/{payment.id}/refresh", headers=auth_headers(customer))

    assert response.get_json()["payment"]["status"] == "expired"


def test_blocked_slots_cannot_be_paid(client, services, staff_member, auth_headers, stripe_key, tomorrow_at):
    slot = services.blocked_slots.create_blocked_slot(staff_member.id, tomorrow_at(9), tomorrow_at(10))

    response = client.post("/payments", json={"booking_id": slot.id, "amount": 10}, headers=auth_headers(staff_member))

    assert response.status_code == 404
