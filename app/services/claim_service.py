"""
Guest booking claim: attach a guest booking to the signed-in account.

Checks run in order and the first failure wins:
rate limit -> booking exists -> email matches -> not yet claimed.
The final write is a conditional UPDATE ... WHERE user_id IS NULL so two
accounts racing for the same booking cannot both win.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..models.booking import Booking
from ..models.booking_event import BookingEventType
from ..models.user import User
from ..utils.rate_limiter import UserRateLimiter, claim_limiter
from ..utils.security import normalize_email, normalize_reference_code
from .booking_ledger import BookingLedger

logger = logging.getLogger(__name__)


class ClaimError(HTTPException):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(status_code=status_code, detail={"error": code, "message": message})
        self.code = code


class ClaimService:
    def __init__(self, db: Session, limiter: Optional[UserRateLimiter] = None):
        self.db = db
        self.limiter = limiter or claim_limiter

    def claim(self, user: User, reference_code: str, email: str) -> Booking:
        if not self.limiter.hit(user.id):
            raise ClaimError(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "rate_limited",
                "Too many claim attempts. Please wait a minute and try again."
            )

        code = normalize_reference_code(reference_code)
        booking = self.db.query(Booking).filter(Booking.reference_code == code).first()
        if not booking:
            raise ClaimError(status.HTTP_404_NOT_FOUND, "not_found", "No booking found with that reference code")

        if normalize_email(booking.customer_email) != normalize_email(email):
            raise ClaimError(status.HTTP_403_FORBIDDEN, "email_mismatch", "Email does not match this booking")

        if booking.user_id is not None:
            raise ClaimError(status.HTTP_409_CONFLICT, "already_claimed", "This booking is already linked to an account")

        updated = (
            self.db.query(Booking)
            .filter(Booking.id == booking.id, Booking.user_id.is_(None))
            .update(
                {Booking.user_id: user.id, Booking.last_action_at: datetime.utcnow()},
                synchronize_session=False
            )
        )
        if updated == 0:
            self.db.rollback()
            raise ClaimError(status.HTTP_409_CONFLICT, "already_claimed", "This booking is already linked to an account")

        BookingLedger(self.db).add(
            booking.id,
            BookingEventType.BOOKING_CLAIMED,
            payload={"user_id": user.id},
            dedupe_key=None,
        )
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} claimed by user {user.id}")
        return booking
