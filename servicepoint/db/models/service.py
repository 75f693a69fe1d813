# servicepoint/db/models/service.py

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import Session, relationship

from servicepoint.core.exceptions import Conflict
from servicepoint.db.base import Base
from servicepoint.db.models.mixins import generate_external_id


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(String, unique=True, nullable=False, default=lambda: generate_external_id("SRV"))

    # Foreign keys
    garage_id = Column(Integer, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic details
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, nullable=False, default="Other")

    # Pricing
    price_amount = Column(Float, nullable=False)
    price_currency = Column(String, nullable=False, default="USD")

    estimated_duration = Column(String, nullable=True)  # e.g. "30 minutes"

    # Status
    is_active = Column(Boolean, default=True)
    added_by = Column(String, nullable=False, default="garage")  # admin / garage

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    garage = relationship("Garage", back_populates="catalog")

    @property
    def price(self) -> dict:
        return {"amount": self.price_amount, "currency": self.price_currency}


def ensure_unique_service_name(db: Session, garage_id: int, name: str, exclude_id=None) -> None:
    """Service names are unique per garage, ignoring case."""
    q = db.query(Service).filter(
        Service.garage_id == garage_id,
        func.lower(Service.name) == name.strip().lower(),
    )
    if exclude_id is not None:
        q = q.filter(Service.id != exclude_id)
    if q.first():
        raise Conflict("Service with this name already exists for this garage")
