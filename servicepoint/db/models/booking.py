# servicepoint/db/models/booking.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from servicepoint.core import booking_rules as rules
from servicepoint.core.exceptions import FeedbackAlreadySubmitted, InvalidTransition, ServicePointError
from servicepoint.db.base import Base
from servicepoint.db.models.mixins import generate_external_id


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        String, unique=True, index=True, nullable=False,
        default=lambda: generate_external_id("BK", upper=True),
    )

    service = Column(String, nullable=False)

    # customer contact; bookings do not require an account
    user_name = Column(String, nullable=False)
    user_phone = Column(String, nullable=False, index=True)
    user_email = Column(String, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    garage_id = Column(Integer, ForeignKey("garages.id"), nullable=False, index=True)

    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String, nullable=False)  # HH:MM

    notes = Column(String, nullable=True)
    status = Column(String, nullable=False, default=rules.PENDING, index=True)
    priority = Column(String, nullable=False, default="medium")

    estimated_cost_amount = Column(Float, nullable=True)
    estimated_cost_currency = Column(String, nullable=False, default="USD")
    actual_cost_amount = Column(Float, nullable=True)
    actual_cost_currency = Column(String, nullable=False, default="USD")

    vehicle_info = Column(JSON, nullable=True)
    location = Column(JSON, nullable=True)

    feedback_rating = Column(Integer, nullable=True)
    feedback_comment = Column(String, nullable=True)
    feedback_submitted_at = Column(DateTime, nullable=True)

    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # relationships
    garage = relationship("Garage", back_populates="bookings")
    user = relationship("User", back_populates="bookings")
    status_history = relationship(
        "StatusHistoryEntry",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="StatusHistoryEntry.id",
        lazy="selectin",
    )

    @property
    def scheduled_datetime(self) -> Optional[datetime]:
        if self.scheduled_date and self.scheduled_time:
            return rules.combine_schedule(self.scheduled_date, self.scheduled_time)
        return None

    @property
    def has_feedback(self) -> bool:
        return self.feedback_rating is not None

    @property
    def is_terminal(self) -> bool:
        return not rules.ALLOWED_TRANSITIONS.get(self.status)

    def record_status(self, status: str, updated_by: str, note: Optional[str] = None) -> "StatusHistoryEntry":
        entry = StatusHistoryEntry(
            status=status,
            updated_by=updated_by,
            note=note or None,
            timestamp=datetime.utcnow(),
        )
        self.status_history.append(entry)
        return entry

    def update_status(
        self,
        new_status: str,
        updated_by: str = "system",
        note: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Move along the transition table, or raise InvalidTransition and change nothing."""
        if not rules.can_transition(self.status, new_status):
            raise InvalidTransition(self.status, new_status)

        now = datetime.utcnow()
        self.status = new_status
        self.record_status(new_status, updated_by, note)

        if new_status == rules.COMPLETED and self.completed_at is None:
            self.completed_at = now
        elif new_status == rules.CANCELLED and self.cancelled_at is None:
            self.cancelled_at = now
            if reason or note:
                self.cancellation_reason = reason or note

    def can_be_cancelled(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        scheduled = self.scheduled_datetime
        return self.status in rules.CANCELLABLE_STATUSES and scheduled is not None and scheduled > now

    def cancel(self, reason: str = "Cancelled by user", updated_by: str = "user") -> None:
        self.update_status(rules.CANCELLED, updated_by, f"Cancelled: {reason}", reason=reason)

    def attach_feedback(self, rating: int, comment: Optional[str] = None) -> None:
        if self.status != rules.COMPLETED:
            raise ServicePointError("Feedback can only be submitted for completed bookings")
        if self.has_feedback:
            raise FeedbackAlreadySubmitted()
        self.feedback_rating = rating
        self.feedback_comment = comment
        self.feedback_submitted_at = datetime.utcnow()

    def set_costs(self, estimated: Optional[dict] = None, actual: Optional[dict] = None) -> None:
        """Costs are {amount, currency} mappings; omitted ones stay untouched."""
        for prefix, cost in (("estimated_cost", estimated), ("actual_cost", actual)):
            if cost is None:
                continue
            amount = float(cost["amount"])
            if amount < 0:
                raise ServicePointError("Cost amount cannot be negative")
            setattr(self, f"{prefix}_amount", amount)
            setattr(self, f"{prefix}_currency", cost.get("currency") or "USD")

    @property
    def estimated_cost(self) -> Optional[dict]:
        if self.estimated_cost_amount is None:
            return None
        return {"amount": self.estimated_cost_amount, "currency": self.estimated_cost_currency}

    @property
    def actual_cost(self) -> Optional[dict]:
        if self.actual_cost_amount is None:
            return None
        return {"amount": self.actual_cost_amount, "currency": self.actual_cost_currency}

    @property
    def feedback(self) -> Optional[dict]:
        if not self.has_feedback:
            return None
        return {
            "rating": self.feedback_rating,
            "comment": self.feedback_comment,
            "submitted_at": self.feedback_submitted_at,
        }


class StatusHistoryEntry(Base):
    """Append-only log of booking status changes."""
    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String, nullable=False)
    updated_by = Column(String, nullable=False)  # user / garage / admin / system
    note = Column(String, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    booking = relationship("Booking", back_populates="status_history")
