# servicepoint/core/booking_rules.py
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from servicepoint.core.exceptions import BookingValidationError

SERVICE_TYPES = [
    "Towing",
    "Oil Change",
    "Battery Change",
    "Servicing",
    "Inspection",
    "Tire Repair",
    "Engine Repair",
    "Brake Service",
]

# garages may advertise more than customers can book online
GARAGE_SERVICE_TYPES = SERVICE_TYPES + [
    "AC Repair",
    "Body Work",
    "Painting",
    "Electrical",
    "General Repair",
    "Diagnostics",
    "Maintenance",
]

SERVICE_CATEGORIES = SERVICE_TYPES + ["Other"]

PENDING = "pending"
CONFIRMED = "confirmed"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

BOOKING_STATUSES = [PENDING, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED]

ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {IN_PROGRESS, CANCELLED},
    IN_PROGRESS: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

CANCELLABLE_STATUSES = {PENDING, CONFIRMED}
ACTIVE_STATUSES = [PENDING, CONFIRMED, IN_PROGRESS]

MINIMUM_LEAD_TIME = timedelta(minutes=15)

# hourly slots offered on every day
OPENING_TIME = "09:00"
CLOSING_TIME = "18:00"


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def combine_schedule(scheduled_date: date, scheduled_time: str) -> datetime:
    hours, minutes = scheduled_time.split(":")
    return datetime.combine(scheduled_date, datetime.min.time()).replace(
        hour=int(hours), minute=int(minutes)
    )


def validate_schedule(scheduled_date: date, scheduled_time: str, now: datetime) -> datetime:
    """Reject slots closer than the minimum lead time. Returns the slot datetime."""
    slot = combine_schedule(scheduled_date, scheduled_time)
    if slot < now + MINIMUM_LEAD_TIME:
        if scheduled_date == now.date():
            raise BookingValidationError(
                "For today's bookings, please select a time at least 15 minutes from now"
            )
        raise BookingValidationError("Cannot book for past dates and times")
    return slot


def available_slots(day: date, booked: Iterable[str], now: Optional[datetime] = None) -> List[str]:
    """Hourly HH:00 slots between opening and closing, minus booked and too-soon ones."""
    taken = set(booked)
    open_hour = int(OPENING_TIME.split(":")[0])
    close_hour = int(CLOSING_TIME.split(":")[0])

    slots = []
    for hour in range(open_hour, close_hour):
        slot = f"{hour:02d}:00"
        if slot in taken:
            continue
        if now is not None and combine_schedule(day, slot) < now + MINIMUM_LEAD_TIME:
            continue
        slots.append(slot)
    return slots
