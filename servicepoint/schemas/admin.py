from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class AdminCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["admin", "main_admin"] = "admin"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class AdminResponse(BaseModel):
    id: int
    admin_id: str
    name: str
    email: EmailStr
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
