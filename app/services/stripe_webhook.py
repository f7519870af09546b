"""
Stripe Webhook Handler

Flow per delivery:
1. Verify the Stripe-Signature header against STRIPE_WEBHOOK_SECRET
2. Skip event ids already handled (stripe_webhook_events)
3. Route by event type
4. Record the event id and outcome

Payment recording is protected by the ledger row
stripe_payment_recorded/<payment_intent_id>, inserted in the same
transaction as the booking update. A concurrent duplicate loses on the
unique index and its whole transaction rolls back.

Only signature and configuration problems return non-2xx. Everything a
retry cannot fix is logged and acknowledged.
"""

import json
import logging
from datetime import datetime
from typing import Optional

import stripe
from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.booking import Booking, PaymentStatus, PayType
from ..models.booking_event import BookingEvent, BookingEventType, ONCE
from ..models.webhook_event import StripeWebhookEvent, WebhookEventStatus
from ..utils.db_helpers import acquire_row_lock
from ..utils.logging_config import get_logger
from .booking_ledger import BookingLedger
from .notification_service import NotificationService
from .payment_calculator import apply_payment

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)


CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
CHARGE_REFUNDED = "charge.refunded"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"

# pay_type values written by checkout (and older clients) that pay the balance
BALANCE_PAY_TYPES = {PayType.BALANCE.value, "remaining"}


class WebhookOutcome:
    """Result of handling one webhook event."""

    def __init__(
        self,
        action: str,
        booking_id: Optional[str] = None,
        message: str = "",
        status: WebhookEventStatus = WebhookEventStatus.PROCESSED
    ):
        self.action = action
        self.booking_id = booking_id
        self.message = message
        self.status = status

    def as_dict(self) -> dict:
        data = {"received": True, "action": self.action}
        if self.booking_id:
            data["booking_id"] = self.booking_id
        if self.message:
            data["message"] = self.message
        return data


def _ignored(action: str, message: str, booking_id: Optional[str] = None) -> WebhookOutcome:
    return WebhookOutcome(action, booking_id=booking_id, message=message, status=WebhookEventStatus.IGNORED)


def _object_id(value) -> Optional[str]:
    """Stripe fields may be an id string or an expanded object"""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


class StripeWebhookHandler:
    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationService] = None,
        webhook_secret: Optional[str] = None
    ):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        self.ledger = BookingLedger(db)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, payload: bytes, sig_header: Optional[str]) -> dict:
        """
        Verify the signature and return the event as a plain dict.
        Raises HTTPException(500) when unconfigured, 400 when invalid.
        """
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured")
            raise HTTPException(status_code=500, detail="Webhook secret not configured")
        if not sig_header:
            logger.warning("Missing Stripe-Signature header")
            raise HTTPException(status_code=400, detail="Missing signature")

        try:
            stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe signature: {e}")
            raise HTTPException(status_code=400, detail="Invalid signature")
        except ValueError as e:
            logger.warning(f"Invalid Stripe payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid payload")

        return json.loads(payload)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, event: dict) -> WebhookOutcome:
        event_id = event.get("id")
        event_type = event.get("type", "unknown")
        obj = (event.get("data") or {}).get("object") or {}

        if event_id and self._already_handled(event_id):
            logger.info(f"Stripe event {event_id} already processed")
            return WebhookOutcome("duplicate", message="Already processed")

        logger.info(f"Stripe webhook received: type={event_type} id={event_id}")

        try:
            if event_type in (CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED):
                outcome = self.handle_checkout_completed(obj)
            elif event_type == ASYNC_PAYMENT_FAILED:
                outcome = self.handle_async_payment_failed(obj)
            elif event_type == CHARGE_REFUNDED:
                outcome = self.handle_charge_refunded(obj)
            elif event_type == PAYMENT_INTENT_SUCCEEDED:
                outcome = self.handle_payment_intent_succeeded(obj)
            else:
                outcome = _ignored("unhandled", "Unhandled event type")
        except Exception as e:
            logger.exception(f"Error handling Stripe event {event_id} ({event_type}): {e}")
            self.db.rollback()
            outcome = WebhookOutcome("error", message=str(e), status=WebhookEventStatus.FAILED)

        if event_id:
            self._record_event(event_id, event_type, outcome)
        return outcome

    def _already_handled(self, event_id: str) -> bool:
        existing = self.db.query(StripeWebhookEvent).filter(
            StripeWebhookEvent.event_id == event_id
        ).first()
        return existing is not None and existing.status != WebhookEventStatus.FAILED.value

    def _record_event(self, event_id: str, event_type: str, outcome: WebhookOutcome) -> None:
        try:
            existing = self.db.query(StripeWebhookEvent).filter(
                StripeWebhookEvent.event_id == event_id
            ).first()
            metadata = {"action": outcome.action, "message": outcome.message}
            if existing:
                existing.status = outcome.status.value
                existing.booking_id = outcome.booking_id or existing.booking_id
                existing.event_metadata = metadata
            else:
                self.db.add(StripeWebhookEvent(
                    event_id=event_id,
                    event_type=event_type,
                    booking_id=outcome.booking_id,
                    status=outcome.status.value,
                    event_metadata=metadata,
                ))
            self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same event recorded it first
            self.db.rollback()
        except Exception as e:
            logger.error(f"Failed to record Stripe event {event_id}: {e}")
            self.db.rollback()

    def _record_anomaly(self, booking_id: str, session_id: Optional[str], reason: str) -> None:
        """Timeline row for a known booking whose session could not be applied"""
        exists = self.db.query(Booking.id).filter(Booking.id == booking_id).first()
        if not exists:
            return
        self.ledger.claim(
            booking_id,
            BookingEventType.WEBHOOK_ANOMALY,
            dedupe_key=session_id or ONCE,
            payload={"session_id": session_id, "reason": reason},
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def handle_checkout_completed(self, session: dict) -> WebhookOutcome:
        metadata = session.get("metadata") or {}
        booking_id = metadata.get("booking_id") or metadata.get("bookingId") or session.get("client_reference_id")
        session_id = session.get("id")

        if not booking_id:
            logger.error(f"Checkout session {session_id} has no booking id")
            return _ignored("missing_booking_id", "No booking id in session")

        if session.get("payment_status") == "unpaid":
            # Delayed payment method; async_payment_succeeded/failed follows
            booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
            if not booking:
                logger.error(f"Pending payment for unknown booking {booking_id}")
                return _ignored("booking_not_found", "Booking not found", booking_id)
            self.notifier.notify_payment_pending(booking, session_id or "")
            return WebhookOutcome("payment_pending", booking_id=booking_id)

        payment_intent_id = _object_id(session.get("payment_intent"))
        if not payment_intent_id:
            logger.error(f"Checkout session {session_id} for booking {booking_id} has no payment_intent")
            self._record_anomaly(booking_id, session_id, "missing_payment_intent")
            return _ignored("missing_payment_intent", "No payment intent in session", booking_id)

        return self.record_payment(
            booking_id=booking_id,
            payment_intent_id=payment_intent_id,
            session_id=session_id,
            paid_amount=int(session.get("amount_total") or 0),
            pay_type=metadata.get("pay_type") or metadata.get("paymentType") or PayType.DEPOSIT.value,
        )

    def record_payment(
        self,
        booking_id: str,
        payment_intent_id: str,
        session_id: Optional[str],
        paid_amount: int,
        pay_type: str
    ) -> WebhookOutcome:
        if self.ledger.has_event(booking_id, BookingEventType.STRIPE_PAYMENT_RECORDED, payment_intent_id):
            logger.info(f"Payment {payment_intent_id} already recorded for booking {booking_id}")
            return WebhookOutcome("duplicate", booking_id=booking_id, message="Payment already recorded")

        booking = acquire_row_lock(self.db, Booking, Booking.id == booking_id)
        if not booking:
            logger.error(f"Payment {payment_intent_id} for unknown booking {booking_id}")
            return _ignored("booking_not_found", "Booking not found", booking_id)

        previous_status = booking.payment_status
        update = apply_payment(booking.total_amount, booking.amount_paid, paid_amount)

        booking.amount_paid = update.amount_paid
        booking.remaining_amount = update.remaining_amount
        booking.payment_status = update.payment_status.value
        booking.last_action_at = datetime.utcnow()
        if pay_type in BALANCE_PAY_TYPES:
            booking.stripe_balance_session_id = session_id
            booking.stripe_balance_payment_intent_id = payment_intent_id
        else:
            booking.stripe_deposit_session_id = session_id
            booking.stripe_deposit_payment_intent_id = payment_intent_id

        self.ledger.add(
            booking.id,
            BookingEventType.STRIPE_PAYMENT_RECORDED,
            payload={
                "payment_intent_id": payment_intent_id,
                "session_id": session_id,
                "pay_type": pay_type,
                "amount": paid_amount,
                "amount_paid": update.amount_paid,
                "remaining_amount": update.remaining_amount,
                "previous_status": previous_status,
                "payment_status": update.payment_status.value,
            },
            dedupe_key=payment_intent_id,
        )

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Payment {payment_intent_id} recorded concurrently for booking {booking_id}")
            return WebhookOutcome("duplicate", booking_id=booking_id, message="Payment already recorded")

        structured_logger.payment_recorded(booking.id, payment_intent_id, paid_amount, update.payment_status.value)

        self.notifier.notify_payment_received(
            booking,
            payment_intent_id,
            paid_amount=paid_amount,
            remaining_amount=update.remaining_amount,
        )
        return WebhookOutcome("payment_recorded", booking_id=booking.id)

    def handle_async_payment_failed(self, session: dict) -> WebhookOutcome:
        metadata = session.get("metadata") or {}
        booking_id = metadata.get("booking_id") or metadata.get("bookingId") or session.get("client_reference_id")
        session_id = session.get("id") or ""

        if not booking_id:
            return _ignored("missing_booking_id", "No booking id in session")

        booking = acquire_row_lock(self.db, Booking, Booking.id == booking_id)
        if not booking:
            return _ignored("booking_not_found", "Booking not found", booking_id)

        previous_status = booking.payment_status
        booking.payment_status = PaymentStatus.PAYMENT_FAILED.value
        booking.last_action_at = datetime.utcnow()
        self.ledger.add(
            booking.id,
            BookingEventType.PAYMENT_FAILED,
            payload={
                "session_id": session_id,
                "pay_type": metadata.get("pay_type") or PayType.DEPOSIT.value,
                "previous_status": previous_status,
            },
            dedupe_key=session_id,
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return WebhookOutcome("duplicate", booking_id=booking_id, message="Failure already recorded")

        logger.warning(f"Async payment failed for booking {booking.id} (session {session_id})")
        self.notifier.notify_payment_failed(booking, session_id)
        return WebhookOutcome("payment_failed", booking_id=booking.id)

    def handle_charge_refunded(self, charge: dict) -> WebhookOutcome:
        payment_intent_id = _object_id(charge.get("payment_intent"))
        charge_id = charge.get("id") or ""
        if not payment_intent_id:
            logger.error(f"Refunded charge {charge_id} has no payment_intent")
            return _ignored("missing_payment_intent", "No payment intent in charge")

        booking = self.db.query(Booking).filter(or_(
            Booking.stripe_deposit_payment_intent_id == payment_intent_id,
            Booking.stripe_balance_payment_intent_id == payment_intent_id,
        )).first()
        if not booking:
            logger.error(f"No booking found for refunded payment_intent {payment_intent_id}")
            return _ignored("booking_not_found", "No booking for payment intent")

        refunds = (charge.get("refunds") or {}).get("data") or []
        reason = refunds[0].get("reason") if refunds else None
        refund_amount = int(charge.get("amount_refunded") or 0)

        previous_status = booking.payment_status
        booking.payment_status = PaymentStatus.REFUNDED.value
        booking.refund_amount = refund_amount
        booking.refund_reason = reason or "unknown"
        booking.refunded_at = datetime.utcnow()
        booking.last_action_at = datetime.utcnow()
        self.ledger.add(
            booking.id,
            BookingEventType.REFUND_PROCESSED,
            payload={
                "charge_id": charge_id,
                "payment_intent_id": payment_intent_id,
                "refund_amount": refund_amount,
                "reason": booking.refund_reason,
                "previous_status": previous_status,
            },
            # amount_refunded is cumulative, so each further partial refund gets its own row
            dedupe_key=f"{charge_id}:{refund_amount}",
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return WebhookOutcome("duplicate", booking_id=booking.id, message="Refund already recorded")

        logger.info(f"Refund recorded for booking {booking.id}: {refund_amount}")
        return WebhookOutcome("refund_recorded", booking_id=booking.id)

    def handle_payment_intent_succeeded(self, payment_intent: dict) -> WebhookOutcome:
        """Checkout sessions carry the real work; this only notes whether one was seen."""
        payment_intent_id = payment_intent.get("id")
        recorded = self.db.query(BookingEvent).filter(
            BookingEvent.event_type == BookingEventType.STRIPE_PAYMENT_RECORDED.value,
            BookingEvent.dedupe_key == payment_intent_id,
        ).first()
        if recorded:
            return WebhookOutcome(
                "already_recorded",
                booking_id=recorded.booking_id,
                message="Processed via checkout session",
            )
        logger.info(f"payment_intent.succeeded {payment_intent_id} without a recorded checkout session")
        return _ignored("no_checkout_session", "Awaiting checkout session event")
