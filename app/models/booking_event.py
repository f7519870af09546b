"""
Booking Event Model - append-only idempotency ledger and timeline.

A row with a non-NULL dedupe_key can exist at most once per
(booking_id, event_type, dedupe_key):
- "" marks once-per-booking events (email_sent_booking_confirmed)
- a payment intent or session id marks once-per-payment events;
  refunds use "<charge id>:<cumulative amount refunded>"
- NULL marks plain timeline rows that may repeat (status_updated)
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from ..database import Base
import enum


ONCE = ""


class BookingEventType(str, enum.Enum):
    # Lifecycle
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    PAYMENT_MARKED_PAID = "payment_marked_paid"
    ADMIN_NOTE_ADDED = "admin_note_added"
    BOOKING_CLAIMED = "booking_claimed"

    # Payment processor
    STRIPE_PAYMENT_RECORDED = "stripe_payment_recorded"
    PAYMENT_FAILED = "payment_failed"
    REFUND_PROCESSED = "refund_processed"
    WEBHOOK_ANOMALY = "webhook_anomaly"

    # Reviews
    REVIEW_SUBMITTED = "review_submitted"

    # Email guards
    EMAIL_SENT_BOOKING_CREATED = "email_sent_booking_created"
    EMAIL_SENT_BOOKING_CONFIRMED = "email_sent_booking_confirmed"
    EMAIL_SENT_PAYMENT_MARKED_PAID = "email_sent_payment_marked_paid"
    EMAIL_SENT_BOOKING_CANCELLED = "email_sent_booking_cancelled"
    EMAIL_SENT_PAYMENT_RECEIVED = "email_sent_payment_received"
    EMAIL_SENT_PAYMENT_PENDING = "email_sent_payment_pending"
    EMAIL_SENT_PAYMENT_FAILED = "email_sent_payment_failed"
    EMAIL_SENT_REVIEW_REQUEST = "email_sent_review_request"


# Customer-safe timeline summaries
EVENT_SUMMARIES = {
    BookingEventType.EMAIL_SENT_BOOKING_CREATED: "Booking confirmation email sent",
    BookingEventType.EMAIL_SENT_BOOKING_CONFIRMED: "Booking confirmed notification sent",
    BookingEventType.EMAIL_SENT_PAYMENT_MARKED_PAID: "Payment confirmation email sent",
    BookingEventType.EMAIL_SENT_BOOKING_CANCELLED: "Cancellation notification sent",
    BookingEventType.EMAIL_SENT_PAYMENT_RECEIVED: "Payment receipt email sent",
    BookingEventType.BOOKING_CREATED: "Booking created",
    BookingEventType.BOOKING_CONFIRMED: "Booking confirmed by admin",
    BookingEventType.BOOKING_CANCELLED: "Booking cancelled",
    BookingEventType.BOOKING_COMPLETED: "Booking completed",
    BookingEventType.STRIPE_PAYMENT_RECORDED: "Payment received",
    BookingEventType.PAYMENT_MARKED_PAID: "Payment marked as paid",
    BookingEventType.PAYMENT_FAILED: "Payment failed",
    BookingEventType.REFUND_PROCESSED: "Refund processed",
    BookingEventType.WEBHOOK_ANOMALY: "Payment update under review",
    BookingEventType.ADMIN_NOTE_ADDED: "Admin added a note",
    BookingEventType.REVIEW_SUBMITTED: "Review submitted",
}


def summarize_event(event_type: str) -> str:
    """Friendly summary, falling back to a title-cased event type"""
    try:
        return EVENT_SUMMARIES[BookingEventType(event_type)]
    except (ValueError, KeyError):
        return event_type.replace("_", " ").title()


class BookingEvent(Base):
    __tablename__ = "booking_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(64), nullable=False)
    event_payload = Column(JSON, nullable=True)
    dedupe_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    booking = relationship("Booking", back_populates="events")

    __table_args__ = (
        Index("ux_booking_event_dedupe", "booking_id", "event_type", "dedupe_key", unique=True),
        Index("ix_booking_event_timeline", "booking_id", "created_at"),
    )

    def __repr__(self):
        return f"<BookingEvent {self.event_type} booking={self.booking_id}>"
