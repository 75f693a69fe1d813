# servicepoint/db/models/user.py
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Session, relationship

from servicepoint.core.exceptions import NotFound
from servicepoint.db.base import Base
from servicepoint.db.models.mixins import generate_external_id


class User(Base):
    """A customer. Customers never log in; they are identified by phone."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, default=lambda: generate_external_id("USER"))

    name = Column(String, nullable=False)
    phone = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, nullable=True, index=True)

    # notification and search preferences
    notify_email = Column(Boolean, nullable=False, default=True)
    notify_sms = Column(Boolean, nullable=False, default=True)
    preferred_services = Column(JSON, nullable=False, default=list)
    max_distance = Column(Integer, nullable=False, default=10)

    is_active = Column(Boolean, nullable=False, default=True)
    last_activity = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vehicles = relationship(
        "Vehicle",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Vehicle.id",
        lazy="selectin",
    )
    bookings = relationship("Booking", back_populates="user", order_by="Booking.created_at.desc()")

    def add_vehicle(self, **vehicle_data) -> "Vehicle":
        vehicle = Vehicle(**vehicle_data)
        vehicle.is_default = not self.vehicles
        self.vehicles.append(vehicle)
        return vehicle

    def _vehicle(self, vehicle_id: int) -> "Vehicle":
        for vehicle in self.vehicles:
            if vehicle.id == vehicle_id:
                return vehicle
        raise NotFound("Vehicle not found")

    def set_default_vehicle(self, vehicle_id: int) -> "Vehicle":
        chosen = self._vehicle(vehicle_id)
        for vehicle in self.vehicles:
            vehicle.is_default = vehicle is chosen
        return chosen

    def remove_vehicle(self, vehicle_id: int) -> None:
        vehicle = self._vehicle(vehicle_id)
        self.vehicles.remove(vehicle)
        # promote the oldest remaining vehicle
        if vehicle.is_default and self.vehicles:
            self.vehicles[0].is_default = True

    @property
    def preferences(self) -> dict:
        return {
            "email_notifications": self.notify_email,
            "sms_notifications": self.notify_sms,
            "preferred_services": list(self.preferred_services or []),
            "max_distance": self.max_distance,
        }

    def update_preferences(self, changes: dict) -> None:
        """Apply only the keys present in `changes`."""
        columns = {
            "email_notifications": "notify_email",
            "sms_notifications": "notify_sms",
            "preferred_services": "preferred_services",
            "max_distance": "max_distance",
        }
        for key, value in changes.items():
            setattr(self, columns[key], value)
        self.last_activity = datetime.utcnow()

    def add_booking(self, booking) -> None:
        if booking not in self.bookings:
            self.bookings.append(booking)
        self.last_activity = datetime.utcnow()


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    make = Column(String, nullable=True)
    model = Column(String, nullable=True)
    year = Column(Integer, nullable=True)
    license_plate = Column(String, nullable=True)
    color = Column(String, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    added_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="vehicles")


def find_or_create_user(db: Session, name: str, phone: str, email=None) -> User:
    user = db.query(User).filter(User.phone == phone).first()
    if user:
        return user
    user = User(name=name, phone=phone, email=email)
    db.add(user)
    db.flush()
    return user
