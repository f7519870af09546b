"""
Admin endpoints: booking state transitions, notes, timeline, manual
notifications, review moderation and app settings.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..models.user import User
from ..models.booking import BookingStatus, PaymentStatus
from ..schemas.booking import AdminBookingResponse, AdminNotesUpdate, AdminEventResponse
from ..schemas.review import ReviewResponse, ReviewApproveRequest, ReviewFeatureRequest
from ..schemas.settings import AppSettingsUpdate, AppSettingsResponse, NotifyBookingEventRequest
from ..services.booking_service import BookingService
from ..services.notification_service import NotificationType, ADMIN_TRIGGERABLE
from ..services.review_service import ReviewService
from ..services.settings_service import get_or_create_app_settings, update_app_settings
from ..utils.audit_logger import log_admin_action, get_request_id
from ..utils.dependencies import require_admin

router = APIRouter(prefix="/api/admin", tags=["Admin"])


# ================================
# BOOKINGS
# ================================

@router.get("/bookings", response_model=List[AdminBookingResponse])
async def list_bookings(
    booking_status: Optional[BookingStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return BookingService(db).list_bookings(
        booking_status=booking_status,
        payment_status=payment_status,
        limit=limit,
        offset=offset
    )


@router.get("/bookings/{booking_id}", response_model=AdminBookingResponse)
async def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return BookingService(db).get_booking(booking_id)


@router.post("/bookings/{booking_id}/confirm", response_model=AdminBookingResponse)
async def confirm_booking(
    booking_id: str,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    booking = BookingService(db).confirm(booking_id, admin)
    log_admin_action(admin.id, "confirm", booking_id, request_id=get_request_id(request))
    return booking


@router.post("/bookings/{booking_id}/cancel", response_model=AdminBookingResponse)
async def cancel_booking(
    booking_id: str,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    booking = BookingService(db).cancel(booking_id, admin)
    log_admin_action(admin.id, "cancel", booking_id, request_id=get_request_id(request))
    return booking


@router.post("/bookings/{booking_id}/complete", response_model=AdminBookingResponse)
async def complete_booking(
    booking_id: str,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Mark completed; also sends the review request email"""
    booking = BookingService(db).complete(booking_id, admin)
    log_admin_action(admin.id, "complete", booking_id, request_id=get_request_id(request))
    return booking


@router.post("/bookings/{booking_id}/mark-paid", response_model=AdminBookingResponse)
async def mark_booking_paid(
    booking_id: str,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Record an offline payment for the full amount"""
    booking = BookingService(db).mark_paid(booking_id, admin)
    log_admin_action(admin.id, "mark_paid", booking_id, request_id=get_request_id(request))
    return booking


@router.patch("/bookings/{booking_id}/notes", response_model=AdminBookingResponse)
async def update_booking_notes(
    booking_id: str,
    data: AdminNotesUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return BookingService(db).update_notes(booking_id, data.admin_notes, admin)


@router.get("/bookings/{booking_id}/events", response_model=List[AdminEventResponse])
async def list_booking_events(
    booking_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return BookingService(db).list_events(booking_id)


@router.post("/bookings/{booking_id}/notify")
async def notify_booking_event(
    booking_id: str,
    data: NotifyBookingEventRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Manually (re)send a customer email; duplicates come back as already_sent"""
    try:
        notification_type = NotificationType(data.event_type)
    except ValueError:
        notification_type = None
    if notification_type not in ADMIN_TRIGGERABLE:
        allowed = ", ".join(t.value for t in ADMIN_TRIGGERABLE)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported event_type. Allowed: {allowed}"
        )

    result = BookingService(db).resend_notification(booking_id, notification_type)
    log_admin_action(
        admin.id, "notify", booking_id,
        details=f"{notification_type.value}: {result.status.value}",
        request_id=get_request_id(request)
    )
    return result.as_dict()


# ================================
# REVIEWS
# ================================

@router.get("/reviews", response_model=List[ReviewResponse])
async def list_reviews(
    is_approved: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return ReviewService(db).list_reviews(is_approved=is_approved, limit=limit, offset=offset)


@router.patch("/reviews/{review_id}/approve", response_model=ReviewResponse)
async def approve_review(
    review_id: str,
    data: ReviewApproveRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return ReviewService(db).set_approved(review_id, data.is_approved)


@router.patch("/reviews/{review_id}/feature", response_model=ReviewResponse)
async def feature_review(
    review_id: str,
    data: ReviewFeatureRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return ReviewService(db).set_featured(review_id, data.is_featured)


# ================================
# SETTINGS
# ================================

@router.get("/settings", response_model=AppSettingsResponse)
async def get_settings(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return get_or_create_app_settings(db)


@router.put("/settings", response_model=AppSettingsResponse)
async def put_settings(
    data: AppSettingsUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    row = update_app_settings(db, data.model_dump(exclude_unset=True))
    log_admin_action(admin.id, "update_settings", "app_settings", request_id=get_request_id(request))
    return row
