"""
Business settings - single row keyed by singleton_key="default".
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Index
from ..database import Base
import enum


SINGLETON_KEY = "default"


class EmailToggle(str, enum.Enum):
    """Per-audience email switches. A missing toggle counts as on."""
    BOOKING_RECEIVED_CUSTOMER = "booking_received_customer"
    BOOKING_RECEIVED_ADMIN = "booking_received_admin"
    BOOKING_CONFIRMED = "booking_confirmed"
    PAYMENT_PAID = "payment_paid"
    BOOKING_CANCELLED = "booking_cancelled"
    PAYMENT_RECEIVED = "payment_received"
    REVIEW_REQUEST = "review_request"


class AppSettings(Base):
    __tablename__ = "app_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    singleton_key = Column(String(20), nullable=False, default=SINGLETON_KEY)
    business_name = Column(String(200), nullable=True)
    support_email = Column(String(255), nullable=True)
    support_phone = Column(String(50), nullable=True)
    admin_notify_email = Column(String(255), nullable=True)
    timezone = Column(String(64), default="Asia/Tokyo")
    email_toggles = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ux_app_settings_singleton", "singleton_key", unique=True),
    )

    def is_enabled(self, toggle: EmailToggle) -> bool:
        """Only an explicit False disables a toggle"""
        toggles = self.email_toggles or {}
        return toggles.get(toggle.value) is not False
