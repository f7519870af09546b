"""
Booking lifecycle: creation, guest access, tracking and admin transitions.

Every admin transition checks the current status against an explicit
allow-list, writes a timeline row in the same commit as the status change,
then fires the matching notification. Notifications never fail the action.
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.booking import Booking, BookingItem, BookingStatus, PaymentStatus, ItemType
from ..models.booking_event import BookingEvent, BookingEventType, summarize_event
from ..models.user import User
from ..schemas.booking import BookingCreate
from ..utils.logging_config import get_logger
from ..utils.security import (
    generate_public_view_token, generate_reference_code,
    normalize_email, normalize_reference_code
)
from .booking_ledger import BookingLedger
from .notification_service import NotificationService, NotificationType
from .review_service import ReviewService

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)

REFERENCE_CODE_ATTEMPTS = 5
TIMELINE_LIMIT = 20


class AdminAction:
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"
    MARK_PAID = "mark_paid"


def _booking_status(booking: Booking) -> BookingStatus:
    return BookingStatus(booking.booking_status)


def _payment_status(booking: Booking) -> PaymentStatus:
    return PaymentStatus(booking.payment_status)


def check_transition(action: str, booking_status: BookingStatus, payment_status: PaymentStatus) -> Optional[str]:
    """
    Returns None when the action is allowed, otherwise the reason it is not.
    Every (action, status) pair is decided explicitly.
    """
    if action == AdminAction.CONFIRM:
        if booking_status == BookingStatus.PENDING:
            return None
        if booking_status in (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            return f"Cannot confirm a {booking_status.value} booking"

    elif action == AdminAction.CANCEL:
        if booking_status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            return None
        if booking_status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            return f"Cannot cancel a {booking_status.value} booking"

    elif action == AdminAction.COMPLETE:
        if booking_status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            return f"Cannot complete a {booking_status.value} booking"
        if booking_status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            if payment_status == PaymentStatus.PAID:
                return None
            if payment_status in (
                PaymentStatus.UNPAID, PaymentStatus.PARTIAL,
                PaymentStatus.REFUNDED, PaymentStatus.PAYMENT_FAILED
            ):
                return "Booking must be fully paid before it can be completed"

    elif action == AdminAction.MARK_PAID:
        if booking_status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            return f"Cannot mark a {booking_status.value} booking as paid"
        if booking_status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            if payment_status == PaymentStatus.PAID:
                return "Booking is already paid"
            if payment_status in (
                PaymentStatus.UNPAID, PaymentStatus.PARTIAL,
                PaymentStatus.REFUNDED, PaymentStatus.PAYMENT_FAILED
            ):
                return None

    raise ValueError(f"Unhandled transition: {action} from {booking_status}/{payment_status}")


class BookingService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.ledger = BookingLedger(db)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _build_items(self, data: BookingCreate) -> List[BookingItem]:
        items = []
        for item in data.items:
            is_package = item.item_type == ItemType.PACKAGE
            meta = {}
            if item.flight_number:
                meta["flight_number"] = item.flight_number
            if item.special_requests:
                meta["special_requests"] = item.special_requests
            items.append(BookingItem(
                item_type=item.item_type.value,
                item_id=item.item_id,
                title=item.title,
                slug=item.slug,
                vehicle_selection=item.vehicle_selection,
                vehicle_rates=item.vehicle_rates,
                subtotal_amount=item.subtotal_amount,
                pickup_location=item.pickup_location or "",
                dropoff_location=item.dropoff_location or "",
                travel_date=None if is_package else item.travel_date,
                start_date=item.start_date if is_package else None,
                end_date=item.end_date if is_package else None,
                pickup_time=item.pickup_time,
                passengers_count=item.passengers_count,
                large_suitcases=item.large_suitcases,
                meta=meta or None,
            ))
        return items

    def create_booking(self, data: BookingCreate, user: Optional[User] = None) -> Booking:
        """
        Insert the booking and all of its items in one transaction. The
        reference code is regenerated on a unique-index collision.
        """
        total = sum(item.subtotal_amount for item in data.items)
        first = data.items[0]

        for attempt in range(REFERENCE_CODE_ATTEMPTS):
            booking = Booking(
                reference_code=generate_reference_code(),
                user_id=user.id if user else None,
                customer_name=data.customer_name,
                customer_email=normalize_email(data.customer_email),
                customer_phone=data.customer_phone,
                travel_date=first.travel_date or first.start_date,
                passengers_count=first.passengers_count,
                large_suitcases=first.large_suitcases,
                pickup_location=first.pickup_location,
                dropoff_location=first.dropoff_location,
                special_requests=data.special_requests or first.special_requests,
                total_amount=total,
                amount_paid=0,
                remaining_amount=total,
                deposit_choice=data.deposit_choice,
                booking_status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.UNPAID.value,
                public_view_token=generate_public_view_token(),
            )
            booking.items = self._build_items(data)
            self.db.add(booking)
            try:
                self.db.flush()
            except IntegrityError:
                self.db.rollback()
                logger.warning(f"Reference code collision, retrying ({attempt + 1}/{REFERENCE_CODE_ATTEMPTS})")
                continue

            self.ledger.add(
                booking.id,
                BookingEventType.BOOKING_CREATED,
                payload={
                    "reference_code": booking.reference_code,
                    "total_amount": total,
                    "items_count": len(booking.items),
                    "user_id": booking.user_id,
                },
                dedupe_key=None,
            )
            self.db.commit()
            self.db.refresh(booking)
            break
        else:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not allocate a booking reference"
            )

        structured_logger.booking_created(booking.id, booking.reference_code, booking.total_amount)
        self.notifier.notify_booking_created(booking)
        return booking

    # ------------------------------------------------------------------
    # Customer access
    # ------------------------------------------------------------------

    def get_public_booking(self, booking_id: str, token: Optional[str], user: Optional[User] = None) -> Booking:
        """Token must match unless the caller owns the booking. Misses are 404 either way."""
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if booking:
            if user is not None and booking.user_id == user.id:
                return booking
            if token and secrets.compare_digest(booking.public_view_token, token):
                return booking
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    def track_booking(self, reference_code: str, email: str) -> Tuple[Booking, List[dict]]:
        booking = self.db.query(Booking).filter(
            Booking.reference_code == normalize_reference_code(reference_code),
            Booking.customer_email == normalize_email(email),
        ).first()
        if not booking:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No booking found with that reference code and email"
            )

        events = [
            {
                "event_type": event.event_type,
                "summary": summarize_event(event.event_type),
                "created_at": event.created_at,
            }
            for event in self.ledger.timeline(booking.id, limit=TIMELINE_LIMIT)
        ]
        return booking, events

    def list_user_bookings(self, user: User) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.user_id == user.id)
            .order_by(Booking.created_at.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
        return booking

    def list_bookings(
        self,
        booking_status: Optional[BookingStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Booking]:
        query = self.db.query(Booking)
        if booking_status:
            query = query.filter(Booking.booking_status == booking_status.value)
        if payment_status:
            query = query.filter(Booking.payment_status == payment_status.value)
        return query.order_by(Booking.created_at.desc()).offset(offset).limit(limit).all()

    def list_events(self, booking_id: str) -> List[BookingEvent]:
        self.get_booking(booking_id)
        return (
            self.db.query(BookingEvent)
            .filter(BookingEvent.booking_id == booking_id)
            .order_by(BookingEvent.created_at.asc())
            .all()
        )

    def _transition(self, booking_id: str, action: str, admin: User) -> Booking:
        booking = self.get_booking(booking_id)
        reason = check_transition(action, _booking_status(booking), _payment_status(booking))
        if reason:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=reason)

        old_status = booking.booking_status
        now = datetime.utcnow()
        payload = {"admin_id": admin.id, "previous_status": old_status}

        if action == AdminAction.CONFIRM:
            booking.booking_status = BookingStatus.CONFIRMED.value
            event_type = BookingEventType.BOOKING_CONFIRMED
        elif action == AdminAction.CANCEL:
            booking.booking_status = BookingStatus.CANCELLED.value
            event_type = BookingEventType.BOOKING_CANCELLED
        elif action == AdminAction.COMPLETE:
            booking.booking_status = BookingStatus.COMPLETED.value
            event_type = BookingEventType.BOOKING_COMPLETED
        elif action == AdminAction.MARK_PAID:
            payload["previous_payment_status"] = booking.payment_status
            payload["previous_amount_paid"] = booking.amount_paid
            booking.amount_paid = booking.total_amount
            booking.remaining_amount = 0
            booking.payment_status = PaymentStatus.PAID.value
            event_type = BookingEventType.PAYMENT_MARKED_PAID
        else:
            raise ValueError(f"Unknown admin action: {action}")

        booking.last_action_at = now
        self.ledger.add(booking.id, event_type, payload=payload, dedupe_key=None)
        self.db.commit()
        self.db.refresh(booking)

        structured_logger.booking_status_changed(booking.id, old_status, booking.booking_status)
        return booking

    def confirm(self, booking_id: str, admin: User) -> Booking:
        booking = self._transition(booking_id, AdminAction.CONFIRM, admin)
        self.notifier.notify_booking_event(booking, NotificationType.BOOKING_CONFIRMED)
        return booking

    def cancel(self, booking_id: str, admin: User) -> Booking:
        booking = self._transition(booking_id, AdminAction.CANCEL, admin)
        self.notifier.notify_booking_event(booking, NotificationType.BOOKING_CANCELLED)
        return booking

    def mark_paid(self, booking_id: str, admin: User) -> Booking:
        booking = self._transition(booking_id, AdminAction.MARK_PAID, admin)
        self.notifier.notify_booking_event(booking, NotificationType.PAYMENT_MARKED_PAID)
        return booking

    def complete(self, booking_id: str, admin: User) -> Booking:
        booking = self._transition(booking_id, AdminAction.COMPLETE, admin)
        try:
            ReviewService(self.db, notifier=self.notifier).request_review(booking.id)
        except HTTPException as e:
            logger.warning(f"Review request skipped for booking {booking.id}: {e.detail}")
        return booking

    def update_notes(self, booking_id: str, notes: Optional[str], admin: User) -> Booking:
        booking = self.get_booking(booking_id)
        booking.admin_notes = notes
        booking.last_action_at = datetime.utcnow()
        self.ledger.add(booking.id, BookingEventType.ADMIN_NOTE_ADDED, payload={"admin_id": admin.id}, dedupe_key=None)
        self.db.commit()
        self.db.refresh(booking)
        return booking

    def resend_notification(self, booking_id: str, notification_type: NotificationType):
        """Manual trigger; still deduplicated by the ledger."""
        booking = self.get_booking(booking_id)
        return self.notifier.notify_booking_event(booking, notification_type)
