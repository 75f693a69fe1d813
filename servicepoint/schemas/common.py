import math
from typing import Optional

from pydantic import BaseModel, Field

PHONE_PATTERN = r"^[0-9]{10,15}$"
CONTACT_PATTERN = r"^[0-9+\-\s\(\)]{10,18}$"
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class Money(BaseModel):
    amount: float = Field(ge=0)
    currency: str = "USD"


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


def pagination(page: int, limit: int, total: int, total_key: str = "total_items") -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        total_key: total,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def ilike_term(value: Optional[str]) -> Optional[str]:
    return f"%{value.strip()}%" if value and value.strip() else None
