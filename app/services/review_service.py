"""
Review request / submission / moderation.

Tokens are single-use and expire after REVIEW_TOKEN_DAYS. Submission marks
the token used with a conditional update and inserts the reviews plus the
review_submitted ledger row in one transaction, so a double submit can only
succeed once.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.booking import Booking, BookingItem
from ..models.booking_event import BookingEventType
from ..models.review import Review, ReviewRequest
from ..schemas.review import ReviewSubmit
from ..utils.security import generate_review_token
from .booking_ledger import BookingLedger
from .notification_service import DispatchStatus, NotificationService

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


class ReviewRequestOutcome:
    def __init__(self, status: str, token_reused: bool = False):
        self.status = status
        self.token_reused = token_reused

    def as_dict(self) -> dict:
        return {"status": self.status, "token_reused": self.token_reused}


class ReviewService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.ledger = BookingLedger(db)

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def request_review(self, booking_id: str, now: Optional[datetime] = None) -> ReviewRequestOutcome:
        now = now or datetime.utcnow()

        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise _error(status.HTTP_404_NOT_FOUND, "not_found", "Booking not found")
        if not booking.items:
            raise _error(status.HTTP_404_NOT_FOUND, "no_items", "Booking has no items to review")

        if self.ledger.has_event(booking.id, BookingEventType.EMAIL_SENT_REVIEW_REQUEST):
            logger.info(f"Review request already sent for booking {booking.id}")
            return ReviewRequestOutcome(DispatchStatus.ALREADY_SENT.value)

        request = (
            self.db.query(ReviewRequest)
            .filter(
                ReviewRequest.booking_id == booking.id,
                ReviewRequest.used_at.is_(None),
                ReviewRequest.expires_at > now,
            )
            .order_by(ReviewRequest.created_at.desc())
            .first()
        )
        reused = request is not None
        if not request:
            request = ReviewRequest(
                booking_id=booking.id,
                token=generate_review_token(),
                expires_at=now + timedelta(days=settings.review_token_days),
                created_at=now,
            )
            self.db.add(request)
            self.db.commit()

        result = self.notifier.send_review_request(
            booking,
            request.token,
            [item.title for item in booking.items],
        )
        return ReviewRequestOutcome(result.status.value, token_reused=reused)

    # ------------------------------------------------------------------
    # Validate / submit
    # ------------------------------------------------------------------

    def _resolve_token(self, token: str, now: datetime) -> ReviewRequest:
        request = self.db.query(ReviewRequest).filter(ReviewRequest.token == token).first()
        if not request:
            raise _error(status.HTTP_400_BAD_REQUEST, "invalid", "Invalid token")
        if request.used_at is not None:
            raise _error(status.HTTP_400_BAD_REQUEST, "used", "This review link has already been used")
        if request.is_expired(now):
            raise _error(status.HTTP_400_BAD_REQUEST, "expired", "This review link has expired")
        return request

    def validate_token(self, token: str, now: Optional[datetime] = None) -> Tuple[Booking, List[BookingItem]]:
        request = self._resolve_token(token, now or datetime.utcnow())
        booking = self.db.query(Booking).filter(Booking.id == request.booking_id).first()
        if not booking:
            raise _error(status.HTTP_400_BAD_REQUEST, "invalid", "Invalid token")
        return booking, list(booking.items)

    def submit(self, data: ReviewSubmit, now: Optional[datetime] = None) -> List[Review]:
        now = now or datetime.utcnow()

        for item_review in data.item_reviews:
            if not isinstance(item_review.rating, int) or not 1 <= item_review.rating <= 5:
                raise _error(status.HTTP_400_BAD_REQUEST, "invalid_rating", "Rating must be between 1 and 5")

        request = self._resolve_token(data.token, now)

        item_ids = {
            row.id for row in
            self.db.query(BookingItem.id).filter(BookingItem.booking_id == request.booking_id).all()
        }
        for item_review in data.item_reviews:
            if item_review.booking_item_id not in item_ids:
                raise _error(status.HTTP_400_BAD_REQUEST, "invalid_item", "Item does not belong to this booking")

        marked = (
            self.db.query(ReviewRequest)
            .filter(ReviewRequest.id == request.id, ReviewRequest.used_at.is_(None))
            .update({ReviewRequest.used_at: now}, synchronize_session=False)
        )
        if marked == 0:
            self.db.rollback()
            raise _error(status.HTTP_400_BAD_REQUEST, "used", "This review link has already been used")

        display_name = (data.display_name or "").strip() or None
        reviews = [
            Review(
                booking_id=request.booking_id,
                booking_item_id=item_review.booking_item_id,
                rating=item_review.rating,
                comment=(item_review.comment or data.overall_comment or None),
                display_name=display_name,
                is_approved=False,
                is_featured=False,
            )
            for item_review in data.item_reviews
        ]
        self.db.add_all(reviews)
        self.ledger.add(
            request.booking_id,
            BookingEventType.REVIEW_SUBMITTED,
            payload={"review_request_id": request.id, "review_count": len(reviews)},
            dedupe_key=request.id,
        )

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise _error(status.HTTP_400_BAD_REQUEST, "used", "This review link has already been used")

        logger.info(f"Reviews submitted for booking {request.booking_id}: {len(reviews)}")
        return reviews

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    def _get_review(self, review_id: str) -> Review:
        review = self.db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
        return review

    def set_approved(self, review_id: str, is_approved: bool) -> Review:
        review = self._get_review(review_id)
        review.is_approved = is_approved
        if not is_approved:
            review.is_featured = False
        self.db.commit()
        self.db.refresh(review)
        return review

    def set_featured(self, review_id: str, is_featured: bool) -> Review:
        review = self._get_review(review_id)
        if is_featured and not review.is_approved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only approved reviews can be featured"
            )
        review.is_featured = is_featured
        self.db.commit()
        self.db.refresh(review)
        return review

    def list_reviews(self, is_approved: Optional[bool] = None, limit: int = 100, offset: int = 0) -> List[Review]:
        query = self.db.query(Review)
        if is_approved is not None:
            query = query.filter(Review.is_approved == is_approved)
        return query.order_by(Review.created_at.desc()).offset(offset).limit(limit).all()

    def list_public_reviews(self, featured_only: bool = False, limit: int = 50) -> List[Review]:
        query = self.db.query(Review).filter(Review.is_approved.is_(True))
        if featured_only:
            query = query.filter(Review.is_featured.is_(True))
        return query.order_by(Review.created_at.desc()).limit(limit).all()
