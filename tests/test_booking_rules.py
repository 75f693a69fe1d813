from datetime import date, datetime

import pytest

from servicepoint.core import booking_rules as rules
from servicepoint.core.exceptions import (
    BookingValidationError,
    FeedbackAlreadySubmitted,
    InvalidTransition,
    ServicePointError,
)
from servicepoint.db.models import Booking


def make_booking(status=rules.PENDING, day=date(2030, 5, 20), time="10:00"):
    return Booking(
        service="Oil Change",
        user_name="Asha Rao",
        user_phone="9123456789",
        garage_id=1,
        scheduled_date=day,
        scheduled_time=time,
        status=status,
    )


# --- transition table ---

@pytest.mark.parametrize("current,target", [
    ("pending", "confirmed"),
    ("pending", "cancelled"),
    ("confirmed", "in_progress"),
    ("confirmed", "cancelled"),
    ("in_progress", "completed"),
    ("in_progress", "cancelled"),
])
def test_allowed_transitions(current, target):
    assert rules.can_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("pending", "completed"),
    ("pending", "in_progress"),
    ("confirmed", "pending"),
    ("completed", "cancelled"),
    ("cancelled", "confirmed"),
    ("completed", "completed"),
])
def test_rejected_transitions(current, target):
    assert not rules.can_transition(current, target)


def test_update_status_records_history():
    booking = make_booking()
    booking.update_status("confirmed", "garage", "See you soon")

    assert booking.status == "confirmed"
    entry = booking.status_history[-1]
    assert entry.status == "confirmed"
    assert entry.updated_by == "garage"
    assert entry.note == "See you soon"


def test_invalid_transition_changes_nothing():
    booking = make_booking()
    with pytest.raises(InvalidTransition) as exc:
        booking.update_status("completed", "garage")

    assert str(exc.value) == "Cannot change status from pending to completed"
    assert booking.status == "pending"
    assert booking.status_history == []
    assert booking.completed_at is None


def test_completion_and_cancellation_timestamps():
    done = make_booking(status="in_progress")
    done.update_status("completed", "garage")
    assert done.completed_at is not None

    dropped = make_booking(status="confirmed")
    dropped.update_status("cancelled", "garage", "No parts available")
    assert dropped.cancelled_at is not None
    assert dropped.cancellation_reason == "No parts available"


def test_terminal_statuses():
    assert make_booking(status="completed").is_terminal
    assert make_booking(status="cancelled").is_terminal
    assert not make_booking(status="in_progress").is_terminal


# --- cancellation ---

def test_can_be_cancelled_only_before_the_slot():
    booking = make_booking(day=date(2030, 5, 20), time="10:00")
    assert booking.can_be_cancelled(now=datetime(2030, 5, 20, 9, 59))
    assert not booking.can_be_cancelled(now=datetime(2030, 5, 20, 10, 0))


def test_in_progress_booking_cannot_be_cancelled_by_customer():
    booking = make_booking(status="in_progress")
    assert not booking.can_be_cancelled(now=datetime(2030, 1, 1))


def test_cancel_uses_reason_in_history():
    booking = make_booking()
    booking.cancel("Changed plans")
    assert booking.status == "cancelled"
    assert booking.cancellation_reason == "Changed plans"
    assert booking.status_history[-1].note == "Cancelled: Changed plans"
    assert booking.status_history[-1].updated_by == "user"


# --- feedback / costs ---

def test_feedback_requires_completion():
    with pytest.raises(ServicePointError) as exc:
        make_booking(status="confirmed").attach_feedback(5)
    assert exc.value.message == "Feedback can only be submitted for completed bookings"


def test_feedback_only_once():
    booking = make_booking(status="completed")
    booking.attach_feedback(4, "Good job")
    assert booking.feedback["rating"] == 4

    with pytest.raises(FeedbackAlreadySubmitted):
        booking.attach_feedback(5)
    assert booking.feedback_rating == 4


def test_set_costs_defaults_currency():
    booking = make_booking()
    booking.set_costs(estimated={"amount": 1500})
    assert booking.estimated_cost == {"amount": 1500.0, "currency": "USD"}
    assert booking.actual_cost is None


def test_negative_cost_rejected():
    with pytest.raises(ServicePointError):
        make_booking().set_costs(actual={"amount": -1, "currency": "INR"})


# --- scheduling ---

def test_same_day_slot_inside_lead_time():
    now = datetime(2030, 5, 20, 9, 50)
    with pytest.raises(BookingValidationError) as exc:
        rules.validate_schedule(date(2030, 5, 20), "10:00", now)
    assert "at least 15 minutes" in exc.value.message


def test_past_day_rejected():
    with pytest.raises(BookingValidationError) as exc:
        rules.validate_schedule(date(2030, 5, 19), "10:00", datetime(2030, 5, 20, 8, 0))
    assert exc.value.message == "Cannot book for past dates and times"


def test_slot_exactly_at_lead_time_is_accepted():
    slot = rules.validate_schedule(date(2030, 5, 20), "10:00", datetime(2030, 5, 20, 9, 45))
    assert slot == datetime(2030, 5, 20, 10, 0)


def test_available_slots_full_day():
    slots = rules.available_slots(date(2030, 5, 20), [])
    assert slots[0] == "09:00"
    assert slots[-1] == "17:00"
    assert len(slots) == 9


def test_available_slots_excludes_booked_and_too_soon():
    slots = rules.available_slots(
        date(2030, 5, 20), ["13:00"], now=datetime(2030, 5, 20, 11, 50)
    )
    assert slots == ["14:00", "15:00", "16:00", "17:00"]
