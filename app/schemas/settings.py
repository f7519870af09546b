from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Dict
from datetime import datetime


class AppSettingsUpdate(BaseModel):
    business_name: Optional[str] = Field(None, max_length=200)
    support_email: Optional[EmailStr] = None
    support_phone: Optional[str] = Field(None, max_length=50)
    admin_notify_email: Optional[EmailStr] = None
    timezone: Optional[str] = Field(None, max_length=64)
    email_toggles: Optional[Dict[str, bool]] = None


class AppSettingsResponse(BaseModel):
    business_name: Optional[str] = None
    support_email: Optional[str] = None
    support_phone: Optional[str] = None
    admin_notify_email: Optional[str] = None
    timezone: Optional[str] = None
    email_toggles: Optional[Dict[str, bool]] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotifyBookingEventRequest(BaseModel):
    event_type: str = Field(..., description="booking_confirmed, payment_marked_paid or booking_cancelled")
