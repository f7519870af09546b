from fastapi import APIRouter, Depends, Request, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..database import get_db
from ..models.user import User
from ..schemas.booking import (
    BookingCreate, BookingCreateResponse, BookingResponse,
    TrackRequest, TrackResponse, ClaimRequest, ClaimResponse
)
from ..services.booking_service import BookingService
from ..services.claim_service import ClaimService, ClaimError
from ..utils.audit_logger import log_claim_attempt, get_request_id
from ..utils.dependencies import get_current_user, get_optional_user
from ..utils.rate_limiter import limiter, get_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED, include_in_schema=False)
@limiter.limit(get_rate_limit("booking_create"))
async def create_booking(
    request: Request,
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """Create a pending booking; linked to the caller when signed in"""
    booking = BookingService(db).create_booking(data, user=current_user)
    return BookingCreateResponse(
        booking_id=booking.id,
        reference_code=booking.reference_code,
        public_view_token=booking.public_view_token,
    )


@router.get("/public", response_model=BookingResponse)
async def get_public_booking(
    booking_id: str = Query(..., min_length=1, max_length=36),
    token: Optional[str] = Query(None, max_length=64),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """Guest view by (id, token); the owner may omit the token"""
    return BookingService(db).get_public_booking(booking_id, token, user=current_user)


@router.post("/track", response_model=TrackResponse)
@limiter.limit(get_rate_limit("booking_track"))
async def track_booking(
    request: Request,
    data: TrackRequest,
    db: Session = Depends(get_db)
):
    """Look up a booking by reference code + email, with a customer-safe timeline"""
    booking, events = BookingService(db).track_booking(data.reference_code, data.email)
    return TrackResponse(booking=BookingResponse.model_validate(booking), events=events)


@router.post("/claim", response_model=ClaimResponse)
@limiter.limit(get_rate_limit("booking_claim"))
async def claim_booking(
    request: Request,
    data: ClaimRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Attach a guest booking to the signed-in account"""
    request_id = get_request_id(request)
    try:
        booking = ClaimService(db).claim(current_user, data.reference_code, data.email)
    except ClaimError as e:
        log_claim_attempt(current_user.id, data.reference_code, e.code, request_id=request_id)
        raise

    log_claim_attempt(current_user.id, booking.reference_code, "claimed", request_id=request_id)
    return ClaimResponse(booking_id=booking.id, reference_code=booking.reference_code)


@router.get("/mine", response_model=List[BookingResponse])
async def list_my_bookings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return BookingService(db).list_user_bookings(current_user)
