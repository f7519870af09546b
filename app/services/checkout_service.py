"""
Stripe Checkout session creation for deposits and remaining balances.
"""

import logging
import secrets
from typing import Optional

import stripe
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..config import settings
from ..models.booking import Booking, BookingStatus, PayType, DEPOSIT_CHOICES
from .payment_calculator import InvalidChargeError, calculate_balance_charge, calculate_deposit_charge

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


class CheckoutResult:
    def __init__(self, url: str, session_id: str, amount: int):
        self.url = url
        self.session_id = session_id
        self.amount = amount

    def as_dict(self) -> dict:
        return {"url": self.url, "session_id": self.session_id, "amount": self.amount}


class CheckoutService:
    def __init__(self, db: Session, api_key: Optional[str] = None):
        self.db = db
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key

    def _require_stripe(self):
        if not self.api_key:
            logger.error("STRIPE_SECRET_KEY is not configured")
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "stripe_not_configured", "Payments are not configured")
        stripe.api_key = self.api_key

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise _error(status.HTTP_404_NOT_FOUND, "not_found", "Booking not found")
        return booking

    def _product_name(self, booking: Booking, label: str) -> str:
        titles = [item.title for item in booking.items] if booking.items else []
        base = titles[0] if titles else "Booking"
        if len(titles) > 1:
            base = f"{base} +{len(titles) - 1} more"
        return f"{label} - {booking.reference_code} ({base})"[:250]

    def _create_session(
        self,
        booking: Booking,
        amount: int,
        product_name: str,
        metadata: dict,
        success_path: str
    ):
        site = settings.public_site_url
        return stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            customer_email=booking.customer_email,
            client_reference_id=booking.id,
            line_items=[{
                "price_data": {
                    "currency": settings.payment_currency,
                    "product_data": {"name": product_name},
                    # Zero-decimal currency: unit_amount is the whole amount
                    "unit_amount": amount,
                },
                "quantity": 1,
            }],
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            success_url=f"{site}{success_path}",
            cancel_url=f"{site}/booking/track?ref={booking.reference_code}",
        )

    def create_deposit_checkout(self, booking_id: str, public_view_token: str, deposit_choice: int) -> CheckoutResult:
        """Initial checkout for 25/50/100% of the total."""
        if deposit_choice not in DEPOSIT_CHOICES:
            raise _error(status.HTTP_400_BAD_REQUEST, "invalid_deposit_choice", "depositChoice must be 25, 50, or 100")

        booking = self._get_booking(booking_id)
        if not public_view_token or not secrets.compare_digest(booking.public_view_token, public_view_token):
            raise _error(status.HTTP_404_NOT_FOUND, "not_found", "Booking not found")
        if booking.booking_status == BookingStatus.CANCELLED.value:
            raise _error(status.HTTP_400_BAD_REQUEST, "booking_cancelled", "Booking is cancelled")
        if booking.amount_paid > 0:
            # Further payments go through the balance checkout
            raise _error(status.HTTP_400_BAD_REQUEST, "deposit_already_paid", "A payment has already been recorded for this booking")

        try:
            amount = calculate_deposit_charge(booking.total_amount, deposit_choice)
        except InvalidChargeError as e:
            raise _error(status.HTTP_400_BAD_REQUEST, "invalid_amount", str(e))

        self._require_stripe()
        metadata = {
            "booking_id": booking.id,
            "pay_type": PayType.DEPOSIT.value,
            "pay_percent": str(deposit_choice),
        }
        try:
            session = self._create_session(
                booking,
                amount,
                self._product_name(booking, f"{deposit_choice}% payment" if deposit_choice < 100 else "Full payment"),
                metadata,
                f"/booking/success?bookingId={booking.id}&t={booking.public_view_token}",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed for booking {booking.id}: {e}")
            raise _error(status.HTTP_502_BAD_GATEWAY, "stripe_error", "Could not create checkout session")

        if booking.deposit_choice != deposit_choice:
            booking.deposit_choice = deposit_choice
            self.db.commit()

        logger.info(f"Deposit checkout created: booking={booking.id} amount={amount} session={session.id}")
        return CheckoutResult(url=session.url, session_id=session.id, amount=amount)

    def create_balance_checkout(self, booking_id: str) -> CheckoutResult:
        """Checkout for whatever remains after the deposit."""
        booking = self._get_booking(booking_id)
        if booking.booking_status == BookingStatus.CANCELLED.value:
            raise _error(status.HTTP_400_BAD_REQUEST, "booking_cancelled", "Booking is cancelled")

        try:
            amount = calculate_balance_charge(booking.remaining_amount)
        except InvalidChargeError as e:
            raise _error(status.HTTP_400_BAD_REQUEST, "nothing_to_pay", str(e))

        self._require_stripe()
        metadata = {
            "booking_id": booking.id,
            "pay_type": PayType.BALANCE.value,
        }
        try:
            session = self._create_session(
                booking,
                amount,
                self._product_name(booking, "Remaining balance"),
                metadata,
                f"/booking/success?bookingId={booking.id}&t={booking.public_view_token}&type=remaining",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe balance checkout failed for booking {booking.id}: {e}")
            raise _error(status.HTTP_502_BAD_GATEWAY, "stripe_error", "Could not create checkout session")

        logger.info(f"Balance checkout created: booking={booking.id} amount={amount} session={session.id}")
        return CheckoutResult(url=session.url, session_id=session.id, amount=amount)
