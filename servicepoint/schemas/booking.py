from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from servicepoint.core.booking_rules import SERVICE_TYPES
from servicepoint.schemas.common import PHONE_PATTERN, TIME_PATTERN, Coordinates, Money


class VehicleInfo(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    license_plate: Optional[str] = None
    color: Optional[str] = None


class ServiceLocation(BaseModel):
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None


# --- CREATE ---
class BookingCreate(BaseModel):
    service: str
    user_name: str = Field(min_length=2, max_length=50)
    user_phone: str = Field(pattern=PHONE_PATTERN)
    user_email: EmailStr
    garage_id: int
    scheduled_date: date
    scheduled_time: str = Field(pattern=TIME_PATTERN)
    notes: Optional[str] = Field(default=None, max_length=500)
    vehicle_info: Optional[VehicleInfo] = None
    location: Optional[ServiceLocation] = None

    @field_validator("service")
    @classmethod
    def known_service(cls, v):
        if v not in SERVICE_TYPES:
            raise ValueError(f"Service must be one of: {', '.join(SERVICE_TYPES)}")
        return v

    @field_validator("user_name")
    @classmethod
    def strip_name(cls, v):
        return v.strip()

    @field_validator("user_email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator("scheduled_time")
    @classmethod
    def zero_pad(cls, v):
        hours, minutes = v.split(":")
        return f"{int(hours):02d}:{minutes}"


# --- UPDATE (customer / garage / admin) ---
class BookingCancel(BaseModel):
    cancellation_reason: Optional[str] = Field(default=None, max_length=200)


class FeedbackCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=300)


class StatusUpdate(BaseModel):
    status: Literal["pending", "confirmed", "in_progress", "completed", "cancelled"]
    note: Optional[str] = Field(default=None, max_length=300)
    estimated_cost: Optional[Money] = None
    actual_cost: Optional[Money] = None


# --- RESPONSE ---
class StatusHistoryResponse(BaseModel):
    status: str
    timestamp: datetime
    updated_by: str
    note: Optional[str] = None

    class Config:
        from_attributes = True


class FeedbackResponse(BaseModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: Optional[datetime] = None


class GarageSummary(BaseModel):
    id: int
    garage_id: str
    garage_name: str
    owner_name: str
    location: str
    contact_number: str
    email: str

    class Config:
        from_attributes = True


class BookingListItem(BaseModel):
    booking_id: str
    service: str
    user_name: str
    user_phone: str
    scheduled_date: date
    scheduled_time: str
    status: str
    priority: str
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingResponse(BookingListItem):
    user_email: Optional[str] = None
    notes: Optional[str] = None
    vehicle_info: Optional[dict] = None
    location: Optional[dict] = None
    estimated_cost: Optional[Money] = None
    actual_cost: Optional[Money] = None
    feedback: Optional[FeedbackResponse] = None
    status_history: List[StatusHistoryResponse] = []
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    updated_at: Optional[datetime] = None


class BookingDetailResponse(BookingResponse):
    garage: Optional[GarageSummary] = None
