# servicepoint/api/routes/bookings.py
import logging
import re
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from servicepoint.api.deps import RateLimiter, authorize_garage_owner, validate_session_timeout
from servicepoint.core import booking_rules as rules
from servicepoint.core.exceptions import BookingValidationError, NotFound
from servicepoint.db.base import get_db
from servicepoint.db.models.booking import Booking
from servicepoint.db.models.garage import Garage
from servicepoint.db.models.user import find_or_create_user
from servicepoint.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
    FeedbackCreate,
    StatusUpdate,
)
from servicepoint.schemas.common import PHONE_PATTERN, offset, pagination
from servicepoint.services.bookings import change_status, status_counts
from servicepoint.services.notifications import (
    Notifier,
    PostCommitHooks,
    get_notifier,
    notify_garage_of_booking,
)
from servicepoint.services.ratings import recalculate_garage_rating

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/booking",
    tags=["booking"],
    dependencies=[Depends(RateLimiter("booking", max_requests=50))],
)


def get_booking_or_404(db: Session, booking_id: str) -> Booking:
    booking = db.query(Booking).filter(Booking.booking_id == booking_id.strip().upper()).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def check_phone(phone: str) -> None:
    if not re.match(PHONE_PATTERN, phone):
        raise BookingValidationError("Invalid phone number format")


# Customer creates a booking (no account needed)
@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    # Step 1: garage must exist and be active
    garage = db.query(Garage).filter(Garage.id == payload.garage_id).first()
    if not garage or not garage.is_active:
        raise BookingValidationError("Selected garage is not available")

    # Step 2: slot must be at least the lead time away
    rules.validate_schedule(payload.scheduled_date, payload.scheduled_time, datetime.now())

    # Step 3: garages always accept the service that was booked with them
    if not garage.offers(payload.service):
        logger.info("Adding service %r to garage %s", payload.service, garage.garage_id)
        garage.add_service_type(payload.service)

    # Step 4: persist with the initial history entry
    booking = Booking(
        service=payload.service,
        user_name=payload.user_name,
        user_phone=payload.user_phone,
        user_email=payload.user_email,
        garage_id=garage.id,
        scheduled_date=payload.scheduled_date,
        scheduled_time=payload.scheduled_time,
        notes=payload.notes,
        vehicle_info=payload.vehicle_info.model_dump(exclude_none=True) if payload.vehicle_info else None,
        location=payload.location.model_dump(exclude_none=True) if payload.location else None,
        status=rules.PENDING,
    )
    booking.record_status(rules.PENDING, "user")
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s created for garage %s", booking.booking_id, garage.garage_id)

    # Step 5: link to the customer profile; the booking stands either way
    try:
        user = find_or_create_user(db, payload.user_name, payload.user_phone, payload.user_email)
        user.add_booking(booking)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not link booking %s to a customer profile", booking.booking_id)

    # Step 6: tell the garage
    hooks = PostCommitHooks()
    hooks.add("notify_garage", notify_garage_of_booking, notifier, booking, garage)
    hooks.run_from_worker()

    return {
        "success": True,
        "message": f"Booking Successful - Your booking ID is {booking.booking_id}",
        "booking": BookingDetailResponse.model_validate(booking),
    }


# Public tracking by booking id
@router.get("/track/{booking_id}")
def track_booking(booking_id: str, db: Session = Depends(get_db)):
    booking = get_booking_or_404(db, booking_id)
    return {"success": True, "data": BookingDetailResponse.model_validate(booking)}


# All bookings made with a phone number
@router.get("/user/{phone}")
def bookings_by_phone(
    phone: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    check_phone(phone)

    q = db.query(Booking).filter(Booking.user_phone == phone)
    if status_filter:
        q = q.filter(Booking.status == status_filter)

    total = q.count()
    bookings = q.order_by(Booking.created_at.desc()).offset(offset(page, limit)).limit(limit).all()

    return {
        "success": True,
        "data": {
            "bookings": [BookingDetailResponse.model_validate(b) for b in bookings],
            "pagination": pagination(page, limit, total, "total_bookings"),
        },
    }


# Customer cancels
@router.put("/{booking_id}/cancel")
def cancel_booking(
    booking_id: str,
    payload: Optional[BookingCancel] = None,
    db: Session = Depends(get_db),
):
    booking = get_booking_or_404(db, booking_id)

    if not booking.can_be_cancelled():
        raise BookingValidationError("Booking cannot be cancelled at this time")

    reason = (payload.cancellation_reason if payload else None) or "Cancelled by user"
    booking.cancel(reason, updated_by="user")
    db.commit()
    logger.info("Booking %s cancelled by customer", booking.booking_id)

    return {
        "success": True,
        "message": "Booking cancelled successfully",
        "booking_id": booking.booking_id,
    }


# Customer rates a completed booking (once)
@router.post("/{booking_id}/feedback")
def submit_feedback(
    booking_id: str,
    payload: FeedbackCreate,
    db: Session = Depends(get_db),
):
    booking = get_booking_or_404(db, booking_id)

    booking.attach_feedback(payload.rating, payload.comment)
    db.commit()
    db.refresh(booking)
    feedback = booking.feedback

    # aggregate is a second write; the feedback is already saved
    hooks = PostCommitHooks()
    hooks.add("recalculate_rating", recalculate_garage_rating, db, booking.garage)
    hooks.run_from_worker()

    return {
        "success": True,
        "message": "Feedback submitted successfully",
        "feedback": feedback,
    }


@router.get("/available-slots/{garage_id}/{day}")
def available_slots(garage_id: int, day: date, db: Session = Depends(get_db)):
    garage = db.query(Garage).filter(Garage.id == garage_id).first()
    if not garage or not garage.is_active:
        raise NotFound("Garage not found")

    booked = [
        row[0]
        for row in db.query(Booking.scheduled_time).filter(
            Booking.garage_id == garage.id,
            Booking.scheduled_date == day,
            Booking.status.in_(rules.ACTIVE_STATUSES),
        )
    ]
    slots = rules.available_slots(day, booked, now=datetime.now())

    return {
        "success": True,
        "data": {
            "available_slots": slots,
            "operating_hours": {"open": rules.OPENING_TIME, "close": rules.CLOSING_TIME},
            "total_slots": len(slots),
        },
    }


# --------------------------------------------------
# garage side
# --------------------------------------------------

@router.get("/garage/{garage_id}", dependencies=[Depends(validate_session_timeout)])
def garage_bookings(
    garage_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    garage: Garage = Depends(authorize_garage_owner),
):
    q = db.query(Booking).filter(Booking.garage_id == garage.id)
    if status_filter:
        q = q.filter(Booking.status == status_filter)

    total = q.count()
    bookings = q.order_by(Booking.created_at.desc()).offset(offset(page, limit)).limit(limit).all()

    return {
        "success": True,
        "data": {
            "bookings": [BookingResponse.model_validate(b) for b in bookings],
            "stats": status_counts(db, garage.id),
            "pagination": pagination(page, limit, total, "total_bookings"),
        },
    }


@router.put(
    "/garage/{garage_id}/{booking_id}/status",
    dependencies=[Depends(validate_session_timeout)],
)
def update_booking_status(
    garage_id: int,
    booking_id: str,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    garage: Garage = Depends(authorize_garage_owner),
    notifier: Notifier = Depends(get_notifier),
):
    booking = get_booking_or_404(db, booking_id)
    if booking.garage_id != garage.id:
        raise NotFound("Booking not found")

    message = change_status(db, booking, payload, "garage", notifier)

    return {
        "success": True,
        "message": message,
        "data": {
            "booking_id": booking.booking_id,
            "status": booking.status,
            "updated_at": booking.updated_at,
        },
    }
