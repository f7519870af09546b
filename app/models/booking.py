import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, Integer, Text, ForeignKey, DateTime, Index, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    """
    unpaid/partial/paid are derived from amount_paid vs total_amount.
    refunded and payment_failed are only set by payment processor events.
    """
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"
    PAYMENT_FAILED = "payment_failed"


class ItemType(str, enum.Enum):
    TOUR = "tour"
    TRANSFER = "transfer"
    PACKAGE = "package"


class PayType(str, enum.Enum):
    """Which slot a checkout session pays into"""
    DEPOSIT = "deposit"
    BALANCE = "balance"


# Allowed deposit percentages offered at checkout
DEPOSIT_CHOICES = (25, 50, 100)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reference_code = Column(String(16), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Customer
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=True)

    # Trip summary (mirrors the first item)
    travel_date = Column(Date, nullable=True)
    passengers_count = Column(Integer, default=1)
    large_suitcases = Column(Integer, default=0)
    pickup_location = Column(String(500), nullable=True)
    dropoff_location = Column(String(500), nullable=True)
    special_requests = Column(Text, nullable=True)

    # Money, whole currency units (no minor unit)
    total_amount = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False, default=0)
    remaining_amount = Column(Integer, nullable=False, default=0)
    deposit_choice = Column(Integer, nullable=False, default=100)

    booking_status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)

    public_view_token = Column(String(64), nullable=False)

    # Stripe bookkeeping
    stripe_deposit_session_id = Column(String(255), nullable=True)
    stripe_deposit_payment_intent_id = Column(String(255), nullable=True)
    stripe_balance_session_id = Column(String(255), nullable=True)
    stripe_balance_payment_intent_id = Column(String(255), nullable=True)

    # Refunds
    refund_amount = Column(Integer, nullable=True)
    refund_reason = Column(String(255), nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    admin_notes = Column(Text, nullable=True)
    last_action_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="bookings")
    items = relationship(
        "BookingItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingItem.created_at",
    )
    events = relationship("BookingEvent", back_populates="booking", order_by="BookingEvent.created_at")

    __table_args__ = (
        Index("ix_booking_reference_code", "reference_code", unique=True),
        Index("ix_booking_user", "user_id"),
        Index("ix_booking_status", "booking_status", "payment_status"),
        Index("ix_booking_deposit_intent", "stripe_deposit_payment_intent_id"),
        Index("ix_booking_balance_intent", "stripe_balance_payment_intent_id"),
        CheckConstraint("amount_paid >= 0 AND remaining_amount >= 0", name="ck_booking_amounts_non_negative"),
    )

    def __repr__(self):
        return f"<Booking {self.reference_code} {self.booking_status}/{self.payment_status}>"


class BookingItem(Base):
    __tablename__ = "booking_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)

    item_type = Column(String(20), nullable=False)
    item_id = Column(String(36), nullable=False)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True)

    vehicle_selection = Column(JSON, nullable=True)
    vehicle_rates = Column(JSON, nullable=True)
    subtotal_amount = Column(Integer, nullable=False, default=0)

    pickup_location = Column(String(500), nullable=True)
    dropoff_location = Column(String(500), nullable=True)

    # Tours/transfers use travel_date, packages use start/end
    travel_date = Column(Date, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    pickup_time = Column(String(10), nullable=True)

    passengers_count = Column(Integer, default=1)
    large_suitcases = Column(Integer, default=0)

    # flight_number, special_requests
    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="items")

    __table_args__ = (
        Index("ix_booking_item_booking", "booking_id"),
    )

    def __repr__(self):
        return f"<BookingItem {self.item_type} {self.title}>"
