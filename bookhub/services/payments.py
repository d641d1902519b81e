"""Booking payments through Stripe Checkout."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import stripe

from ..errors import Forbidden, InvalidPayload, NotFound, PaymentError
from ..extensions import db
from ..models import Booking, Payment, User

logger = logging.getLogger(__name__)

PAYMENTS_UNAVAILABLE = "Payments are not currently available. Please contact support."


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


class PaymentService:
    def __init__(self, secret_key: str | None, currency: str = "aud", frontend_url: str = ""):
        self.secret_key = secret_key
        self.currency = currency
        self.frontend_url = frontend_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _booking_for(self, booking_id, actor: User | None) -> Booking:
        try:
            booking = db.session.get(Booking, int(booking_id))
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("booking_id must be an integer") from exc
        if booking is None or booking.status == "blocked":
            raise NotFound("booking not found")
        if actor is not None and actor.role == "customer" and booking.customer_id != actor.id:
            raise Forbidden("you may only pay for your own bookings")
        return booking

    def _amount(self, booking: Booking, value) -> Decimal:
        if value in (None, ""):
            if booking.service is None:
                raise InvalidPayload("amount is required for bookings without a service")
            return Decimal(booking.service.price or 0)
        try:
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise InvalidPayload("amount must be a number") from exc
        if amount <= 0:
            raise InvalidPayload("amount must be greater than zero")
        return amount

    def create_checkout(self, booking_id, amount=None, actor: User | None = None) -> tuple[Payment, str]:
        """Record a pending payment and open a Checkout session; returns the payment and its URL."""
        booking = self._booking_for(booking_id, actor)
        total = self._amount(booking, amount)
        if total <= 0:
            raise InvalidPayload("nothing to pay for this booking")
        if not self.configured:
            logger.warning("Stripe secret key not configured")
            raise PaymentError(PAYMENTS_UNAVAILABLE, status=503)

        stripe.api_key = self.secret_key
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {"name": booking.service.name if booking.service else "Booking"},
                            "unit_amount": to_cents(total),
                        },
                        "quantity": 1,
                    }
                ],
                success_url=f"{self.frontend_url}/booking?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.frontend_url}/booking?payment=cancelled",
                metadata={"booking_id": str(booking.id), "customer_id": str(booking.customer_id)},
            )
        except stripe.StripeError as exc:
            logger.exception("Stripe API error while creating checkout session")
            raise PaymentError("An error occurred while processing the payment.") from exc

        payment = Payment(
            booking_id=booking.id,
            amount=total,
            currency=self.currency,
            payment_method="stripe",
            stripe_session_id=session.id,
            status="pending",
        )
        db.session.add(payment)
        db.session.commit()
        logger.info("Opened checkout %s for booking %s (%s %s)", session.id, booking.id, total, self.currency)
        return payment, session.url

    def refresh_status(self, payment_id: int, actor: User | None = None) -> Payment:
        """Pull the Checkout session state from Stripe and mark the payment paid or expired."""
        payment = db.session.get(Payment, payment_id)
        if payment is None:
            raise NotFound("payment not found")
        self._booking_for(payment.booking_id, actor)
        if payment.status != "pending":
            return payment
        if not self.configured:
            raise PaymentError(PAYMENTS_UNAVAILABLE, status=503)

        stripe.api_key = self.secret_key
        try:
            session = stripe.checkout.Session.retrieve(payment.stripe_session_id)
        except stripe.StripeError as exc:
            logger.exception("Stripe API error while retrieving checkout session")
            raise PaymentError("Failed to retrieve checkout session") from exc

        if session.payment_status == "paid":
            payment.status = "completed"
        elif session.status == "expired":
            payment.status = "expired"
        db.session.commit()
        return payment

    def payments_for_booking(self, booking_id, actor: User | None = None) -> list[Payment]:
        booking = self._booking_for(booking_id, actor)
        return Payment.query.filter_by(booking_id=booking.id).order_by(Payment.created_at.desc()).all()
