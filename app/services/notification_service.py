"""
Notification Dispatcher

One templated email per (booking, notification type, sub-key). Flow:
1. Resolve audiences (customer/admin) and drop the ones toggled off
2. Claim the email_sent_<type> ledger row under its unique index
3. Render and send through the email client
4. Store the delivery outcome in the claimed row's payload

A lost claim means another request already sent (or is sending) the same
email. Delivery failures are logged and recorded, never raised.
"""

import logging
from typing import Callable, List, Optional, Tuple
import enum

from sqlalchemy.orm import Session

from ..models.app_settings import EmailToggle
from ..models.booking import Booking
from ..models.booking_event import ONCE
from . import email_templates as templates
from .booking_ledger import BookingLedger
from .email_client import EmailClient
from .email_templates import RenderedEmail
from .settings_service import get_app_settings, is_toggle_enabled, resolve_admin_email
from ..utils.logging_config import get_logger

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)


class NotificationType(str, enum.Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    PAYMENT_MARKED_PAID = "payment_marked_paid"
    BOOKING_CANCELLED = "booking_cancelled"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_FAILED = "payment_failed"
    REVIEW_REQUEST = "review_request"

    @property
    def ledger_event(self) -> str:
        return f"email_sent_{self.value}"


# Types an admin may (re)trigger by hand
ADMIN_TRIGGERABLE = (
    NotificationType.BOOKING_CONFIRMED,
    NotificationType.PAYMENT_MARKED_PAID,
    NotificationType.BOOKING_CANCELLED,
)


class DispatchStatus(str, enum.Enum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    DISABLED = "disabled"
    FAILED = "failed"


class NotificationResult:
    def __init__(
        self,
        status: DispatchStatus,
        recipients: Optional[List[str]] = None,
        errors: Optional[List[str]] = None
    ):
        self.status = status
        self.recipients = recipients or []
        self.errors = errors or []

    @property
    def sent(self) -> bool:
        return self.status == DispatchStatus.SENT

    def as_dict(self) -> dict:
        return {"status": self.status.value, "recipients": self.recipients, "errors": self.errors}


# (audience, recipient, renderer)
Message = Tuple[str, str, Callable[[], RenderedEmail]]


class NotificationService:
    def __init__(self, db: Session, email_client: Optional[EmailClient] = None):
        self.db = db
        self.email_client = email_client or EmailClient()
        self.ledger = BookingLedger(db)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def notify_booking_created(self, booking: Booking) -> NotificationResult:
        return self.dispatch(booking, NotificationType.BOOKING_CREATED)

    def notify_booking_event(self, booking: Booking, notification_type: NotificationType) -> NotificationResult:
        if notification_type not in ADMIN_TRIGGERABLE:
            raise ValueError(f"Unsupported booking event: {notification_type}")
        return self.dispatch(booking, notification_type)

    def notify_payment_received(
        self,
        booking: Booking,
        payment_intent_id: str,
        paid_amount: int,
        remaining_amount: int
    ) -> NotificationResult:
        return self.dispatch(
            booking,
            NotificationType.PAYMENT_RECEIVED,
            sub_key=payment_intent_id,
            paid_amount=paid_amount,
            remaining_amount=remaining_amount,
        )

    def notify_payment_pending(self, booking: Booking, session_id: str) -> NotificationResult:
        return self.dispatch(booking, NotificationType.PAYMENT_PENDING, sub_key=session_id)

    def notify_payment_failed(self, booking: Booking, session_id: str) -> NotificationResult:
        return self.dispatch(booking, NotificationType.PAYMENT_FAILED, sub_key=session_id)

    def send_review_request(self, booking: Booking, token: str, item_titles: List[str]) -> NotificationResult:
        return self.dispatch(
            booking,
            NotificationType.REVIEW_REQUEST,
            token=token,
            item_titles=item_titles,
        )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def dispatch(
        self,
        booking: Booking,
        notification_type: NotificationType,
        sub_key: str = ONCE,
        **context
    ) -> NotificationResult:
        try:
            return self._dispatch(booking, notification_type, sub_key, context)
        except Exception as e:
            logger.exception(f"Notification {notification_type.value} failed for booking {booking.id}: {e}")
            self.db.rollback()
            return NotificationResult(DispatchStatus.FAILED, errors=[str(e)])

    def _dispatch(
        self,
        booking: Booking,
        notification_type: NotificationType,
        sub_key: str,
        context: dict
    ) -> NotificationResult:
        messages = self._build_messages(booking, notification_type, context)
        if not messages:
            logger.info(f"Notification {notification_type.value} disabled for booking {booking.id}")
            return NotificationResult(DispatchStatus.DISABLED)

        claimed = self.ledger.claim(
            booking.id,
            notification_type.ledger_event,
            dedupe_key=sub_key or ONCE,
            payload={"notification": notification_type.value, "sub_key": sub_key or None},
        )
        if claimed is None:
            logger.info(f"Notification {notification_type.value} already sent for booking {booking.id}")
            return NotificationResult(DispatchStatus.ALREADY_SENT)

        sent: List[str] = []
        errors: List[str] = []
        for audience, recipient, render in messages:
            rendered = render()
            result = self.email_client.send([recipient], rendered.subject, rendered.html, rendered.text)
            if result.success:
                sent.append(recipient)
            else:
                errors.append(f"{audience}: {result.error}")

        self.ledger.update_payload(claimed, recipients=sent, errors=errors)

        if not sent:
            logger.warning(f"Notification {notification_type.value} not delivered for booking {booking.id}: {errors}")
            return NotificationResult(DispatchStatus.FAILED, errors=errors)

        structured_logger.email_sent(booking.id, notification_type.value, sent)
        return NotificationResult(DispatchStatus.SENT, recipients=sent, errors=errors)

    def _build_messages(
        self,
        booking: Booking,
        notification_type: NotificationType,
        context: dict
    ) -> List[Message]:
        app_settings = get_app_settings(self.db)
        customer = booking.customer_email
        admin = resolve_admin_email(app_settings)

        def enabled(toggle: EmailToggle) -> bool:
            return is_toggle_enabled(app_settings, toggle)

        messages: List[Message] = []

        if notification_type == NotificationType.BOOKING_CREATED:
            if enabled(EmailToggle.BOOKING_RECEIVED_CUSTOMER):
                messages.append(("customer", customer, lambda: templates.booking_received_customer(booking)))
            if admin and enabled(EmailToggle.BOOKING_RECEIVED_ADMIN):
                messages.append(("admin", admin, lambda: templates.booking_received_admin(booking)))

        elif notification_type == NotificationType.BOOKING_CONFIRMED:
            if enabled(EmailToggle.BOOKING_CONFIRMED):
                messages.append(("customer", customer, lambda: templates.booking_confirmed_customer(booking)))

        elif notification_type == NotificationType.PAYMENT_MARKED_PAID:
            if enabled(EmailToggle.PAYMENT_PAID):
                messages.append(("customer", customer, lambda: templates.payment_marked_paid_customer(booking)))

        elif notification_type == NotificationType.BOOKING_CANCELLED:
            if enabled(EmailToggle.BOOKING_CANCELLED):
                messages.append(("customer", customer, lambda: templates.booking_cancelled_customer(booking)))

        elif notification_type == NotificationType.PAYMENT_RECEIVED:
            if enabled(EmailToggle.PAYMENT_RECEIVED):
                messages.append((
                    "customer",
                    customer,
                    lambda: templates.payment_received_customer(
                        booking, context["paid_amount"], context["remaining_amount"]
                    ),
                ))

        elif notification_type == NotificationType.PAYMENT_PENDING:
            messages.append(("customer", customer, lambda: templates.payment_pending_customer(booking)))
            if admin:
                messages.append(("admin", admin, lambda: templates.payment_pending_admin(booking)))

        elif notification_type == NotificationType.PAYMENT_FAILED:
            messages.append(("customer", customer, lambda: templates.payment_failed_customer(booking)))
            if admin:
                messages.append(("admin", admin, lambda: templates.payment_failed_admin(booking)))

        elif notification_type == NotificationType.REVIEW_REQUEST:
            if enabled(EmailToggle.REVIEW_REQUEST):
                messages.append((
                    "customer",
                    customer,
                    lambda: templates.review_request_customer(
                        booking, context["token"], context.get("item_titles") or []
                    ),
                ))

        else:
            raise ValueError(f"Unknown notification type: {notification_type}")

        return [m for m in messages if m[1]]
