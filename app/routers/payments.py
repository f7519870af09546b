"""
Stripe endpoints: checkout session creation and the signed webhook.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..schemas.payment import DepositCheckoutRequest, BalanceCheckoutRequest, CheckoutResponse
from ..services.checkout_service import CheckoutService
from ..services.stripe_webhook import StripeWebhookHandler
from ..utils.rate_limiter import limiter, get_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["Payments"])


@router.post("/create-checkout", response_model=CheckoutResponse)
@limiter.limit(get_rate_limit("checkout"))
async def create_checkout(
    request: Request,
    data: DepositCheckoutRequest,
    db: Session = Depends(get_db)
):
    """Checkout for the chosen deposit (25/50/100%)"""
    result = CheckoutService(db).create_deposit_checkout(
        data.booking_id, data.public_view_token, data.deposit_choice
    )
    return result.as_dict()


@router.post("/create-checkout-remaining", response_model=CheckoutResponse)
@limiter.limit(get_rate_limit("checkout"))
async def create_checkout_remaining(
    request: Request,
    data: BalanceCheckoutRequest,
    db: Session = Depends(get_db)
):
    """Checkout for the remaining balance"""
    result = CheckoutService(db).create_balance_checkout(data.booking_id)
    return result.as_dict()


@router.post("/webhook")
@limiter.limit(get_rate_limit("webhook"))
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe event receiver. 400 on a bad signature, 500 when the secret is
    not configured, 200 for everything else (including ignored events).
    """
    payload = await request.body()
    handler = StripeWebhookHandler(db)
    event = handler.verify(payload, request.headers.get("stripe-signature"))
    outcome = handler.handle(event)
    return outcome.as_dict()
