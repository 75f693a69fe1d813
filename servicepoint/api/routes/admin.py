# servicepoint/api/routes/admin.py
import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from servicepoint.api.deps import authenticate_admin, require_main_admin, validate_session_timeout
from servicepoint.core import booking_rules as rules
from servicepoint.core.exceptions import Conflict, NotFound
from servicepoint.core.security import generate_placeholder_password
from servicepoint.db.base import get_db
from servicepoint.db.models.admin import Admin
from servicepoint.db.models.booking import Booking
from servicepoint.db.models.garage import Garage, offers_service, parse_location_hierarchy
from servicepoint.schemas.admin import AdminCreate, AdminResponse
from servicepoint.schemas.booking import BookingDetailResponse, StatusUpdate
from servicepoint.schemas.common import ilike_term, offset, pagination
from servicepoint.schemas.garage import GarageCreate, GarageResponse, GarageUpdate
from servicepoint.services.bookings import change_status
from servicepoint.services.notifications import (
    Notifier,
    PostCommitHooks,
    get_notifier,
    notify_garage_email_changed,
    notify_garage_welcome,
)

logger = logging.getLogger(__name__)

# session age is checked before the token is authenticated
router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(validate_session_timeout), Depends(authenticate_admin)],
)

GARAGE_SORT_COLUMNS = {
    "created_at": Garage.created_at,
    "garage_name": Garage.garage_name,
    "rating": Garage.rating,
}


def get_garage_or_404(db: Session, garage_id: int) -> Garage:
    garage = db.query(Garage).filter(Garage.id == garage_id).first()
    if not garage:
        raise NotFound("Garage not found")
    return garage


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    recent_bookings = db.query(Booking).order_by(Booking.created_at.desc()).limit(10).all()
    active_garages = (
        db.query(Garage)
        .filter(Garage.is_active.is_(True))
        .order_by(Garage.created_at.desc())
        .limit(10)
        .all()
    )

    return {
        "success": True,
        "data": {
            "total_garages": db.query(Garage).filter(Garage.is_active.is_(True)).count(),
            "total_bookings": db.query(Booking).count(),
            "pending_bookings": db.query(Booking).filter(Booking.status == rules.PENDING).count(),
            "completed_bookings": db.query(Booking).filter(Booking.status == rules.COMPLETED).count(),
            "total_admins": db.query(Admin).filter(Admin.is_active.is_(True)).count(),
            "recent_bookings": [BookingDetailResponse.model_validate(b) for b in recent_bookings],
            "active_garages": [GarageResponse.model_validate(g) for g in active_garages],
        },
    }


# --------------------------------------------------
# garages
# --------------------------------------------------

@router.post("/garage", status_code=status.HTTP_201_CREATED)
def create_garage(
    payload: GarageCreate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(authenticate_admin),
    notifier: Notifier = Depends(get_notifier),
):
    # Step 1: unique login handle
    if db.query(Garage).filter(Garage.email == payload.email).first():
        raise Conflict("Email already registered")

    # Step 2: optional custom external id
    garage_id = payload.garage_id.strip().upper() if payload.garage_id else None
    if garage_id and db.query(Garage).filter(Garage.garage_id == garage_id).first():
        raise Conflict("Garage ID already exists")

    # Step 3: create unclaimed, with a throwaway password
    garage = Garage(
        garage_name=payload.garage_name,
        owner_name=payload.owner_name,
        email=payload.email,
        contact_number=payload.contact_number,
        location=payload.location,
        country=payload.country,
        latitude=payload.latitude,
        longitude=payload.longitude,
        services=payload.services,
        is_claimed=False,
        created_by_id=admin.id,
        **parse_location_hierarchy(payload.location),
    )
    if garage_id:
        garage.garage_id = garage_id
    garage.set_password(generate_placeholder_password())

    db.add(garage)
    db.commit()
    db.refresh(garage)
    logger.info("Admin %s created garage %s", admin.admin_id, garage.garage_id)

    # Step 4: welcome mail with the garage id needed to claim the account
    hooks = PostCommitHooks()
    hooks.add("welcome_garage", notify_garage_welcome, notifier, garage)
    hooks.run_from_worker()

    return {
        "success": True,
        "message": "Garage added successfully",
        "garage": GarageResponse.model_validate(garage),
    }


@router.get("/garages")
def list_garages(
    search: Optional[str] = None,
    country: Optional[str] = None,
    state: Optional[str] = None,
    city: Optional[str] = None,
    district: Optional[str] = None,
    service: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["created_at", "garage_name", "rating"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
):
    q = db.query(Garage)

    term = ilike_term(search)
    if term:
        q = q.filter(or_(
            Garage.garage_name.ilike(term),
            Garage.owner_name.ilike(term),
            Garage.email.ilike(term),
            Garage.garage_id.ilike(term),
        ))

    for column, value in ((Garage.country, country), (Garage.state, state),
                          (Garage.city, city), (Garage.district, district)):
        value_term = ilike_term(value)
        if value_term:
            q = q.filter(column.ilike(value_term))

    if service:
        q = q.filter(offers_service(service))

    column = GARAGE_SORT_COLUMNS[sort_by]
    total = q.count()
    garages = (
        q.order_by(column.desc() if sort_order == "desc" else column.asc(), Garage.id)
        .offset(offset(page, limit))
        .limit(limit)
        .all()
    )

    return {
        "success": True,
        "data": {
            "garages": [GarageResponse.model_validate(g) for g in garages],
            "pagination": pagination(page, limit, total, "total_garages"),
        },
    }


@router.get("/garage/{garage_id}")
def get_garage(garage_id: int, db: Session = Depends(get_db)):
    garage = get_garage_or_404(db, garage_id)
    return {"success": True, "data": GarageResponse.model_validate(garage)}


@router.put("/garage/{garage_id}")
def update_garage(
    garage_id: int,
    payload: GarageUpdate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(authenticate_admin),
    notifier: Notifier = Depends(get_notifier),
):
    garage = get_garage_or_404(db, garage_id)
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    old_email = garage.email

    email_changed = "email" in updates and updates["email"] != old_email
    if email_changed:
        taken = db.query(Garage).filter(Garage.email == updates["email"], Garage.id != garage.id).first()
        if taken:
            raise Conflict("Email already registered")

    for field, value in updates.items():
        setattr(garage, field, value)
    if "location" in updates:
        for field, value in parse_location_hierarchy(updates["location"]).items():
            setattr(garage, field, value)

    db.commit()
    db.refresh(garage)
    logger.info("Admin %s updated garage %s", admin.admin_id, garage.garage_id)

    if email_changed:
        hooks = PostCommitHooks()
        hooks.add("email_changed_notice", notify_garage_email_changed, notifier, garage, old_email)
        hooks.run_from_worker()

    return {
        "success": True,
        "message": "Garage updated successfully",
        "garage": GarageResponse.model_validate(garage),
    }


# Soft delete: bookings keep pointing at the garage
@router.delete("/garage/{garage_id}")
def remove_garage(
    garage_id: int,
    db: Session = Depends(get_db),
    admin: Admin = Depends(authenticate_admin),
):
    garage = get_garage_or_404(db, garage_id)
    garage.is_active = False
    db.commit()
    logger.info("Admin %s deactivated garage %s", admin.admin_id, garage.garage_id)
    return {"success": True, "message": "Garage removed successfully"}


# --------------------------------------------------
# bookings
# --------------------------------------------------

@router.get("/bookings")
def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    service: Optional[str] = None,
    garage_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    q = db.query(Booking)
    if status_filter:
        q = q.filter(Booking.status == status_filter)
    if service:
        q = q.filter(Booking.service == service)
    if garage_id:
        q = q.filter(Booking.garage_id == garage_id)
    if date_from:
        q = q.filter(Booking.scheduled_date >= date_from)
    if date_to:
        q = q.filter(Booking.scheduled_date <= date_to)

    total = q.count()
    bookings = q.order_by(Booking.created_at.desc()).offset(offset(page, limit)).limit(limit).all()

    return {
        "success": True,
        "data": {
            "bookings": [BookingDetailResponse.model_validate(b) for b in bookings],
            "pagination": pagination(page, limit, total, "total_bookings"),
        },
    }


@router.put("/bookings/{booking_id}/status")
def update_booking_status(
    booking_id: str,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = db.query(Booking).filter(Booking.booking_id == booking_id.strip().upper()).first()
    if not booking:
        raise NotFound("Booking not found")

    message = change_status(db, booking, payload, "admin", notifier)

    return {
        "success": True,
        "message": message,
        "data": {
            "booking_id": booking.booking_id,
            "status": booking.status,
            "updated_at": booking.updated_at,
        },
    }


# --------------------------------------------------
# admins (main admin only)
# --------------------------------------------------

@router.post("/admins", status_code=status.HTTP_201_CREATED)
def create_admin(
    payload: AdminCreate,
    db: Session = Depends(get_db),
    main_admin: Admin = Depends(require_main_admin),
):
    if db.query(Admin).filter(Admin.email == payload.email).first():
        raise Conflict("Email already registered")

    admin = Admin(
        name=payload.name.strip(),
        email=payload.email,
        role=payload.role,
        created_by_id=main_admin.id,
    )
    admin.set_password(payload.password)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Main admin %s created admin %s", main_admin.admin_id, admin.admin_id)

    return {
        "success": True,
        "message": "Admin created successfully",
        "admin": AdminResponse.model_validate(admin),
    }


@router.get("/admins", dependencies=[Depends(require_main_admin)])
def list_admins(db: Session = Depends(get_db)):
    admins = db.query(Admin).filter(Admin.is_active.is_(True)).order_by(Admin.created_at.desc()).all()
    return {"success": True, "data": [AdminResponse.model_validate(a) for a in admins]}
