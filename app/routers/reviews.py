from fastapi import APIRouter, Depends, Request, Query, status
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..models.user import User
from ..schemas.review import (
    ReviewRequestCreate, ReviewSubmit, ReviewValidateResponse,
    ReviewBookingInfo, ReviewItemInfo, ReviewResponse
)
from ..services.review_service import ReviewService
from ..utils.dependencies import require_admin
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/review", tags=["Reviews"])


@router.post("/request")
async def request_review(
    data: ReviewRequestCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Send (or skip, if already sent) the review request email for a booking"""
    outcome = ReviewService(db).request_review(data.booking_id)
    return outcome.as_dict()


@router.get("/validate", response_model=ReviewValidateResponse)
@limiter.limit(get_rate_limit("review_validate"))
async def validate_review_token(
    request: Request,
    token: str = Query(..., min_length=1, max_length=64),
    db: Session = Depends(get_db)
):
    booking, items = ReviewService(db).validate_token(token)
    return ReviewValidateResponse(
        booking=ReviewBookingInfo.model_validate(booking),
        items=[ReviewItemInfo.model_validate(item) for item in items],
    )


@router.post("/submit", response_model=List[ReviewResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("review_submit"))
async def submit_review(
    request: Request,
    data: ReviewSubmit,
    db: Session = Depends(get_db)
):
    """Submit ratings for the booking items; the token becomes unusable"""
    return ReviewService(db).submit(data)


@router.get("/public", response_model=List[ReviewResponse])
async def list_public_reviews(
    featured: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db)
):
    return ReviewService(db).list_public_reviews(featured_only=featured, limit=limit)
