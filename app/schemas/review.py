from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date


class ReviewRequestCreate(BaseModel):
    booking_id: str = Field(..., min_length=1, max_length=36)


class ItemReview(BaseModel):
    booking_item_id: str = Field(..., min_length=1, max_length=36)
    # Range is checked by the service so the error is a 400 with a clear message
    rating: int
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewSubmit(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)
    display_name: Optional[str] = Field(None, max_length=100)
    overall_comment: Optional[str] = Field(None, max_length=2000)
    item_reviews: List[ItemReview] = Field(..., min_length=1)


class ReviewItemInfo(BaseModel):
    id: str
    item_type: str
    title: str
    travel_date: Optional[date] = None
    start_date: Optional[date] = None

    class Config:
        from_attributes = True


class ReviewBookingInfo(BaseModel):
    id: str
    reference_code: str
    customer_name: str
    travel_date: Optional[date] = None

    class Config:
        from_attributes = True


class ReviewValidateResponse(BaseModel):
    valid: bool = True
    booking: ReviewBookingInfo
    items: List[ReviewItemInfo]


class ReviewResponse(BaseModel):
    id: str
    booking_id: str
    booking_item_id: str
    rating: int
    comment: Optional[str] = None
    display_name: Optional[str] = None
    is_approved: bool
    is_featured: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReviewApproveRequest(BaseModel):
    is_approved: bool


class ReviewFeatureRequest(BaseModel):
    is_featured: bool
