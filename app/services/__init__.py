# Services package
from .payment_calculator import (
    InvalidChargeError,
    PaymentUpdate,
    round_half_up,
    calculate_deposit_charge,
    calculate_balance_charge,
    derive_payment_status,
    apply_payment
)
from .booking_ledger import BookingLedger
from .email_client import EmailClient, EmailResult
from .notification_service import NotificationService, NotificationType, NotificationResult, DispatchStatus
from .review_service import ReviewService, ReviewRequestOutcome
from .booking_service import BookingService, AdminAction, check_transition
from .checkout_service import CheckoutService, CheckoutResult
from .claim_service import ClaimService, ClaimError
from .stripe_webhook import StripeWebhookHandler, WebhookOutcome

__all__ = [
    "InvalidChargeError", "PaymentUpdate", "round_half_up",
    "calculate_deposit_charge", "calculate_balance_charge",
    "derive_payment_status", "apply_payment",
    "BookingLedger",
    "EmailClient", "EmailResult",
    "NotificationService", "NotificationType", "NotificationResult", "DispatchStatus",
    "ReviewService", "ReviewRequestOutcome",
    "BookingService", "AdminAction", "check_transition",
    "CheckoutService", "CheckoutResult",
    "ClaimService", "ClaimError",
    "StripeWebhookHandler", "WebhookOutcome"
]
