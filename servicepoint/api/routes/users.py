# servicepoint/api/routes/users.py
from collections import Counter
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from servicepoint.api.deps import RateLimiter
from servicepoint.api.routes.bookings import check_phone
from servicepoint.core import booking_rules as rules
from servicepoint.core.exceptions import NotFound
from servicepoint.db.base import get_db
from servicepoint.db.models.booking import Booking
from servicepoint.db.models.user import User, find_or_create_user
from servicepoint.schemas.booking import BookingDetailResponse
from servicepoint.schemas.user import (
    DefaultVehicle,
    PreferencesUpdate,
    ProfileUpsert,
    UserPreferences,
    UserResponse,
    VehicleCreate,
    VehicleResponse,
)

router = APIRouter(
    prefix="/user",
    tags=["user"],
    dependencies=[Depends(RateLimiter("user", max_requests=100))],
)


def get_user_or_404(db: Session, phone: str) -> User:
    user = db.query(User).filter(User.phone == phone).first()
    if not user:
        raise NotFound("User not found")
    return user


@router.get("/dashboard/{phone}")
def dashboard(phone: str, db: Session = Depends(get_db)):
    check_phone(phone)

    user = db.query(User).filter(User.phone == phone).first()
    bookings = (
        db.query(Booking)
        .filter(Booking.user_phone == phone)
        .order_by(Booking.created_at.desc())
        .limit(20)
        .all()
    )
    by_status = {s: [b for b in bookings if b.status == s] for s in rules.BOOKING_STATUSES}

    if user:
        profile = UserResponse.model_validate(user).model_dump()
    else:
        # customer who booked before a profile existed
        latest = bookings[0] if bookings else None
        profile = {
            "phone": phone,
            "name": latest.user_name if latest else None,
            "email": latest.user_email if latest else None,
        }

    return {
        "success": True,
        "data": {
            "user": profile,
            "stats": {
                "total_bookings": len(bookings),
                "completed_bookings": len(by_status[rules.COMPLETED]),
                "pending_bookings": sum(len(by_status[s]) for s in rules.ACTIVE_STATUSES),
                "cancelled_bookings": len(by_status[rules.CANCELLED]),
            },
            "recent_bookings": [BookingDetailResponse.model_validate(b) for b in bookings[:5]],
            "bookings_by_status": [
                {
                    "status": s,
                    "count": len(items),
                    "bookings": [
                        {
                            "booking_id": b.booking_id,
                            "service": b.service,
                            "garage": b.garage.garage_name if b.garage else "Unknown Garage",
                            "scheduled_date": b.scheduled_date,
                            "scheduled_time": b.scheduled_time,
                        }
                        for b in items[:3]
                    ],
                }
                for s, items in by_status.items()
            ],
            "service_stats": [
                {"service": service, "count": count}
                for service, count in Counter(b.service for b in bookings).most_common()
            ],
        },
    }


@router.post("/profile")
def upsert_profile(payload: ProfileUpsert, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.phone == payload.phone).first()
    created = user is None
    if created:
        user = User(name=payload.name.strip(), phone=payload.phone, email=payload.email)
        db.add(user)
    else:
        user.name = payload.name.strip()
        if payload.email:
            user.email = payload.email
        user.last_activity = datetime.utcnow()

    db.commit()
    db.refresh(user)
    return {
        "success": True,
        "message": "Profile created successfully" if created else "Profile updated successfully",
        "user": UserResponse.model_validate(user),
    }


@router.get("/profile/{phone}")
def get_profile(phone: str, db: Session = Depends(get_db)):
    check_phone(phone)
    user = db.query(User).filter(User.phone == phone).first()
    if not user:
        raise NotFound("User profile not found")

    return {
        "success": True,
        "data": {
            "user": UserResponse.model_validate(user),
            "total_bookings": len(user.bookings),
        },
    }


@router.put("/preferences")
def update_preferences(payload: PreferencesUpdate, db: Session = Depends(get_db)):
    user = get_user_or_404(db, payload.phone)
    user.update_preferences(payload.preferences.model_dump(exclude_unset=True, exclude_none=True))
    db.commit()
    db.refresh(user)
    return {
        "success": True,
        "message": "Preferences updated successfully",
        "preferences": UserPreferences.model_validate(user.preferences),
    }


# --- vehicles ---

@router.post("/vehicle")
def add_vehicle(payload: VehicleCreate, db: Session = Depends(get_db)):
    # unknown phone numbers get a placeholder profile
    user = find_or_create_user(db, "User", payload.phone)
    user.add_vehicle(**payload.vehicle.model_dump())
    db.commit()
    db.refresh(user)
    return {
        "success": True,
        "message": "Vehicle added successfully",
        "vehicles": [VehicleResponse.model_validate(v) for v in user.vehicles],
    }


@router.put("/vehicle/default")
def set_default_vehicle(payload: DefaultVehicle, db: Session = Depends(get_db)):
    user = get_user_or_404(db, payload.phone)
    user.set_default_vehicle(payload.vehicle_id)
    db.commit()
    db.refresh(user)
    return {
        "success": True,
        "message": "Default vehicle updated successfully",
        "vehicles": [VehicleResponse.model_validate(v) for v in user.vehicles],
    }


@router.delete("/vehicle/{phone}/{vehicle_id}")
def remove_vehicle(phone: str, vehicle_id: int, db: Session = Depends(get_db)):
    check_phone(phone)
    user = get_user_or_404(db, phone)
    user.remove_vehicle(vehicle_id)
    db.commit()
    db.refresh(user)
    return {
        "success": True,
        "message": "Vehicle removed successfully",
        "vehicles": [VehicleResponse.model_validate(v) for v in user.vehicles],
    }
