from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from servicepoint.core.booking_rules import SERVICE_CATEGORIES
from servicepoint.schemas.common import Money


def _check_category(v):
    if v is not None and v not in SERVICE_CATEGORIES:
        raise ValueError(f"Category must be one of: {', '.join(SERVICE_CATEGORIES)}")
    return v


class ServiceCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: str = "Other"
    price: Money
    estimated_duration: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        return v.strip()

    @field_validator("category")
    @classmethod
    def known_category(cls, v):
        return _check_category(v)


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = None
    price: Optional[Money] = None
    estimated_duration: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, v):
        return _check_category(v)


class ServiceResponse(BaseModel):
    id: int
    service_id: str
    garage_id: int
    name: str
    description: Optional[str] = None
    category: str
    price: Money
    estimated_duration: Optional[str] = None
    is_active: bool
    added_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
