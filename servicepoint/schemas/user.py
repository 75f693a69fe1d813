from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from servicepoint.core.booking_rules import SERVICE_TYPES
from servicepoint.schemas.booking import VehicleInfo
from servicepoint.schemas.common import PHONE_PATTERN


class ProfileUpsert(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    phone: str = Field(pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None


class VehicleCreate(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    vehicle: VehicleInfo


class DefaultVehicle(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    vehicle_id: int


class PreferencesChange(BaseModel):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    preferred_services: Optional[List[str]] = None
    max_distance: Optional[int] = Field(default=None, ge=1, le=100)

    @field_validator("preferred_services")
    @classmethod
    def known_services(cls, v):
        if v is None:
            return v
        unknown = [s for s in v if s not in SERVICE_TYPES]
        if unknown:
            raise ValueError(f"Service must be one of: {', '.join(SERVICE_TYPES)}")
        return list(dict.fromkeys(v))


class PreferencesUpdate(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    preferences: PreferencesChange


class UserPreferences(BaseModel):
    email_notifications: bool = True
    sms_notifications: bool = True
    preferred_services: List[str] = []
    max_distance: int = 10


class VehicleResponse(BaseModel):
    id: int
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    license_plate: Optional[str] = None
    color: Optional[str] = None
    is_default: bool
    added_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: int
    user_id: str
    name: str
    phone: str
    email: Optional[str] = None
    vehicles: List[VehicleResponse] = []
    preferences: UserPreferences = UserPreferences()
    is_active: bool
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
