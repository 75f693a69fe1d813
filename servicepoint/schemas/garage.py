from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from servicepoint.core.booking_rules import GARAGE_SERVICE_TYPES
from servicepoint.schemas.common import CONTACT_PATTERN


def _check_services(services):
    if services is None:
        return services
    unknown = [s for s in services if s not in GARAGE_SERVICE_TYPES]
    if unknown:
        raise ValueError(f"Unknown service type(s): {', '.join(unknown)}")
    # keep order, drop duplicates
    return list(dict.fromkeys(services))


# --- CREATE (admin) ---
class GarageCreate(BaseModel):
    garage_name: str = Field(min_length=2, max_length=100)
    owner_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    contact_number: str = Field(pattern=CONTACT_PATTERN)
    location: str = Field(min_length=5)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    country: str = "India"
    services: List[str] = []
    garage_id: Optional[str] = Field(default=None, min_length=3)

    @field_validator("services")
    @classmethod
    def known_services(cls, v):
        return _check_services(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator("garage_name", "owner_name", "location")
    @classmethod
    def strip(cls, v):
        return v.strip()


# --- UPDATE (admin) ---
class GarageUpdate(BaseModel):
    garage_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    owner_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    contact_number: Optional[str] = Field(default=None, pattern=CONTACT_PATTERN)
    location: Optional[str] = Field(default=None, min_length=5)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    services: Optional[List[str]] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("services")
    @classmethod
    def known_services(cls, v):
        return _check_services(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower() if v else v


# --- UPDATE (garage owner; email and location stay admin-managed) ---
class GarageProfileUpdate(BaseModel):
    garage_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    owner_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    contact_number: Optional[str] = Field(default=None, pattern=CONTACT_PATTERN)
    services: Optional[List[str]] = Field(default=None, min_length=1)

    @field_validator("services")
    @classmethod
    def known_services(cls, v):
        return _check_services(v)


# --- RESPONSE ---
class GaragePublic(BaseModel):
    id: int
    garage_id: str
    garage_name: str
    owner_name: str
    email: str
    contact_number: str
    location: str
    country: str
    state: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    latitude: float
    longitude: float
    services: List[str]
    rating: float
    total_ratings: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GarageResponse(GaragePublic):
    is_active: bool
    is_claimed: bool
    registration_date: Optional[datetime] = None
    last_login: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NearbyGarage(GaragePublic):
    distance_km: float


class ReviewItem(BaseModel):
    user_name: str
    rating: int
    comment: Optional[str] = None
    date: Optional[datetime] = None
