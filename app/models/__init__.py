# Models package
from .user import User
from .booking import (
    Booking,
    BookingItem,
    BookingStatus,
    PaymentStatus,
    ItemType,
    PayType,
    DEPOSIT_CHOICES
)
from .booking_event import BookingEvent, BookingEventType, EVENT_SUMMARIES, ONCE, summarize_event
from .review import Review, ReviewRequest
from .app_settings import AppSettings, EmailToggle, SINGLETON_KEY
from .webhook_event import StripeWebhookEvent, WebhookEventStatus

__all__ = [
    "User",
    "Booking", "BookingItem", "BookingStatus", "PaymentStatus", "ItemType", "PayType", "DEPOSIT_CHOICES",
    "BookingEvent", "BookingEventType", "EVENT_SUMMARIES", "ONCE", "summarize_event",
    "Review", "ReviewRequest",
    "AppSettings", "EmailToggle", "SINGLETON_KEY",
    "StripeWebhookEvent", "WebhookEventStatus",
]
