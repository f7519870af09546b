from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date
import re

from ..models.booking import BookingStatus, PaymentStatus, ItemType, DEPOSIT_CHOICES


def _strip_markup(v):
    """Drop script tags and inline event handlers from free text"""
    if isinstance(v, str):
        v = re.sub(r'<script[^>]*>.*?</script>', '', v, flags=re.IGNORECASE | re.DOTALL)
        v = re.sub(r'on\w+\s*=', '', v, flags=re.IGNORECASE)
        v = v.strip()
    return v


class BookingItemCreate(BaseModel):
    item_type: ItemType
    item_id: str = Field(..., min_length=1, max_length=36)
    title: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    vehicle_selection: Optional[Dict[str, Any]] = None
    vehicle_rates: Optional[Dict[str, Any]] = None
    subtotal_amount: int = Field(..., ge=0)

    pickup_location: Optional[str] = Field(None, max_length=500)
    dropoff_location: Optional[str] = Field(None, max_length=500)
    travel_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    pickup_time: Optional[str] = Field(None, max_length=10)
    passengers_count: int = Field(1, ge=1, le=100)
    large_suitcases: int = Field(0, ge=0, le=100)

    flight_number: Optional[str] = Field(None, max_length=20)
    special_requests: Optional[str] = Field(None, max_length=2000)

    @field_validator('special_requests', 'pickup_location', 'dropoff_location', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _strip_markup(v)

    @model_validator(mode='after')
    def validate_dates(self):
        if self.item_type == ItemType.PACKAGE:
            if self.start_date and self.end_date and self.end_date < self.start_date:
                raise ValueError("end_date must not be before start_date")
        return self


class BookingCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(None, max_length=50)
    deposit_choice: int = 100
    total_amount: Optional[int] = Field(None, ge=0, description="Must equal the sum of item subtotals when given")
    special_requests: Optional[str] = Field(None, max_length=2000)
    items: List[BookingItemCreate] = Field(..., min_length=1)

    @field_validator('customer_name', 'special_requests', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _strip_markup(v)

    @field_validator('deposit_choice')
    @classmethod
    def validate_deposit_choice(cls, v: int) -> int:
        if v not in DEPOSIT_CHOICES:
            raise ValueError("deposit_choice must be 25, 50, or 100")
        return v

    @model_validator(mode='after')
    def validate_total(self):
        items_total = sum(item.subtotal_amount for item in self.items)
        if self.total_amount is not None and self.total_amount != items_total:
            raise ValueError("total_amount does not match item subtotals")
        if items_total <= 0:
            raise ValueError("Booking total must be greater than zero")
        return self


class BookingCreateResponse(BaseModel):
    booking_id: str
    reference_code: str
    public_view_token: str


class BookingItemResponse(BaseModel):
    id: str
    item_type: str
    item_id: str
    title: str
    slug: Optional[str] = None
    vehicle_selection: Optional[Dict[str, Any]] = None
    subtotal_amount: int
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    travel_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    pickup_time: Optional[str] = None
    passengers_count: Optional[int] = None
    large_suitcases: Optional[int] = None
    meta: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Customer-safe view of a booking"""
    id: str
    reference_code: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    travel_date: Optional[date] = None
    passengers_count: Optional[int] = None
    large_suitcases: Optional[int] = None
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    total_amount: int
    amount_paid: int
    remaining_amount: int
    deposit_choice: int
    booking_status: BookingStatus
    payment_status: PaymentStatus
    created_at: Optional[datetime] = None
    items: List[BookingItemResponse] = []

    class Config:
        from_attributes = True


class AdminBookingResponse(BookingResponse):
    user_id: Optional[str] = None
    special_requests: Optional[str] = None
    admin_notes: Optional[str] = None
    stripe_deposit_payment_intent_id: Optional[str] = None
    stripe_balance_payment_intent_id: Optional[str] = None
    refund_amount: Optional[int] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    last_action_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TrackRequest(BaseModel):
    reference_code: str = Field(..., min_length=1, max_length=16)
    email: EmailStr


class TimelineEntry(BaseModel):
    event_type: str
    summary: str
    created_at: datetime


class TrackResponse(BaseModel):
    booking: BookingResponse
    events: List[TimelineEntry]


class ClaimRequest(BaseModel):
    reference_code: str = Field(..., min_length=1, max_length=16)
    email: EmailStr


class ClaimResponse(BaseModel):
    ok: bool = True
    booking_id: str
    reference_code: str


class AdminNotesUpdate(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=5000)


class AdminEventResponse(BaseModel):
    id: str
    event_type: str
    event_payload: Optional[Dict[str, Any]] = None
    dedupe_key: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
