# servicepoint/db/models/garage.py
import math
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, cast
from sqlalchemy.orm import relationship

from servicepoint.db.base import Base
from servicepoint.db.models.mixins import CredentialMixin, generate_external_id


class Garage(CredentialMixin, Base):
    """
    A garage listed on the platform.

    Garages are created by an admin with a random placeholder password and
    is_claimed = False. The owner claims the account once by presenting the
    garage id and email and choosing a real password.
    """
    __tablename__ = "garages"

    id = Column(Integer, primary_key=True, index=True)
    garage_id = Column(
        String, unique=True, index=True, nullable=False,
        default=lambda: generate_external_id("GAR", upper=True),
    )

    garage_name = Column(String, nullable=False)
    owner_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    contact_number = Column(String, nullable=False)

    # free text, plus the hierarchy parsed out of it
    location = Column(String, nullable=False)
    country = Column(String, nullable=False, default="India")
    state = Column(String, nullable=True, index=True)
    city = Column(String, nullable=True, index=True)
    district = Column(String, nullable=True, index=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    services = Column(JSON, nullable=False, default=list)

    rating = Column(Float, nullable=False, default=0)
    total_ratings = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_claimed = Column(Boolean, nullable=False, default=False)
    registration_date = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    created_by_id = Column(Integer, ForeignKey("admins.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = relationship("Admin", foreign_keys=[created_by_id])
    bookings = relationship("Booking", back_populates="garage", lazy="select")
    catalog = relationship(
        "Service",
        back_populates="garage",
        cascade="all, delete-orphan",
        order_by="Service.name",
    )

    def token_claims(self) -> dict:
        return {
            "id": self.id,
            "garage_id": self.garage_id,
            "email": self.email,
            "type": "garage",
        }

    def offers(self, service: str) -> bool:
        return service in (self.services or [])

    def add_service_type(self, service: str) -> None:
        # reassign so the JSON column is flagged dirty
        self.services = list(self.services or []) + [service]


def parse_location_hierarchy(location: str) -> dict:
    """'Street, District, City, State' -> district/city/state, read from the right."""
    parts = [p.strip() for p in location.split(",") if p.strip()]

    def pick(offset, fallback):
        return parts[-offset] if len(parts) >= offset else fallback

    return {
        "state": pick(1, "Unknown State"),
        "city": pick(2, "Unknown City"),
        "district": pick(3, "Unknown District"),
    }


EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance (haversine)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def offers_service(service: str):
    """SQL filter: the JSON services list contains `service`."""
    return cast(Garage.services, String).like(f'%"{service}"%')
