"""
Tests for Stripe Checkout session creation (Stripe API is mocked)
"""

import pytest
from unittest.mock import MagicMock, patch

import stripe
from fastapi import HTTPException

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.booking import BookingStatus
from app.services.checkout_service import CheckoutService


@pytest.fixture
def session_create():
    with patch("stripe.checkout.Session.create") as create:
        create.return_value = MagicMock(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")
        yield create


class TestDepositCheckout:

    def test_quarter_deposit(self, db, make_booking, session_create):
        booking = make_booking(total=100000)

        result = CheckoutService(db, api_key="sk_test").create_deposit_checkout(
            booking.id, booking.public_view_token, 25
        )

        assert result.amount == 25000
        assert result.session_id == "cs_test_123"
        assert result.url.startswith("https://checkout.stripe.com/")
        _, kwargs = session_create.call_args
        line_item = kwargs["line_items"][0]
        assert line_item["price_data"]["unit_amount"] == 25000
        assert line_item["price_data"]["currency"] == "jpy"
        assert kwargs["metadata"] == {"booking_id": booking.id, "pay_type": "deposit", "pay_percent": "25"}
        assert kwargs["client_reference_id"] == booking.id
        assert kwargs["customer_email"] == booking.customer_email

        db.refresh(booking)
        assert booking.deposit_choice == 25

    def test_half_deposit_rounds_half_up(self, db, make_booking, session_create):
        booking = make_booking(total=9999)
        result = CheckoutService(db, api_key="sk_test").create_deposit_checkout(
            booking.id, booking.public_view_token, 50
        )
        assert result.amount == 5000

    def test_invalid_choice(self, db, make_booking, session_create):
        booking = make_booking()
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_deposit_checkout(booking.id, booking.public_view_token, 30)
        assert exc.value.status_code == 400
        session_create.assert_not_called()

    def test_wrong_token_is_not_found(self, db, make_booking, session_create):
        booking = make_booking()
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_deposit_checkout(booking.id, "guess", 100)
        assert exc.value.status_code == 404
        session_create.assert_not_called()

    def test_cancelled_booking(self, db, make_booking, session_create):
        booking = make_booking(booking_status=BookingStatus.CANCELLED)
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_deposit_checkout(
                booking.id, booking.public_view_token, 100
            )
        assert exc.value.detail["error"] == "booking_cancelled"

    @pytest.mark.parametrize("amount_paid", [25000, 100000])
    def test_refused_once_a_payment_is_recorded(self, db, make_booking, session_create, amount_paid):
        booking = make_booking(total=100000, amount_paid=amount_paid)
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_deposit_checkout(
                booking.id, booking.public_view_token, 100
            )
        assert exc.value.status_code == 400
        assert exc.value.detail["error"] == "deposit_already_paid"
        session_create.assert_not_called()

    def test_stripe_not_configured(self, db, make_booking, session_create):
        booking = make_booking()
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="").create_deposit_checkout(booking.id, booking.public_view_token, 100)
        assert exc.value.status_code == 500

    def test_stripe_error(self, db, make_booking, session_create):
        session_create.side_effect = stripe.StripeError("card network down")
        booking = make_booking()
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_deposit_checkout(
                booking.id, booking.public_view_token, 100
            )
        assert exc.value.status_code == 502


class TestBalanceCheckout:

    def test_charges_remaining(self, db, make_booking, session_create):
        booking = make_booking(total=100000, amount_paid=25000)

        result = CheckoutService(db, api_key="sk_test").create_balance_checkout(booking.id)

        assert result.amount == 75000
        _, kwargs = session_create.call_args
        assert kwargs["metadata"] == {"booking_id": booking.id, "pay_type": "balance"}
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 75000

    def test_nothing_to_pay(self, db, make_booking, session_create):
        booking = make_booking(total=100000, amount_paid=100000)
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_balance_checkout(booking.id)
        assert exc.value.status_code == 400
        assert exc.value.detail["error"] == "nothing_to_pay"

    def test_cancelled_booking(self, db, make_booking, session_create):
        booking = make_booking(amount_paid=25000, booking_status=BookingStatus.CANCELLED)
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_balance_checkout(booking.id)
        assert exc.value.status_code == 400

    def test_unknown_booking(self, db, session_create):
        with pytest.raises(HTTPException) as exc:
            CheckoutService(db, api_key="sk_test").create_balance_checkout("missing")
        assert exc.value.status_code == 404
