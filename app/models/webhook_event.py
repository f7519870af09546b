"""
Stripe Webhook Event Model

Event-level dedupe: every Stripe event id is stored once. This sits in front
of the booking-level ledger so replayed deliveries are acknowledged early.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Index, JSON
from ..database import Base
import enum


class WebhookEventStatus(str, enum.Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"  # Unhandled event type or missing identifiers
    FAILED = "failed"


class StripeWebhookEvent(Base):
    __tablename__ = "stripe_webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False)
    booking_id = Column(String(36), nullable=True)
    status = Column(String(20), default=WebhookEventStatus.PROCESSED.value)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ux_stripe_webhook_event_id", "event_id", unique=True),
        Index("ix_stripe_webhook_booking", "booking_id"),
    )

    def __repr__(self):
        return f"<StripeWebhookEvent {self.event_type} {self.event_id}>"
