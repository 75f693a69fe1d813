# servicepoint/api/routes/garages.py
import logging
from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import extract, or_
from sqlalchemy.orm import Session

from servicepoint.api.deps import RateLimiter, authenticate_garage, validate_session_timeout
from servicepoint.core import booking_rules as rules
from servicepoint.core.exceptions import NotFound
from servicepoint.db.base import get_db
from servicepoint.db.models.booking import Booking
from servicepoint.db.models.garage import Garage, distance_km, offers_service
from servicepoint.db.models.service import Service, ensure_unique_service_name
from servicepoint.schemas.booking import BookingListItem, BookingResponse
from servicepoint.schemas.common import ilike_term, offset, pagination
from servicepoint.schemas.garage import GarageProfileUpdate, GaragePublic, GarageResponse, NearbyGarage, ReviewItem
from servicepoint.schemas.service import ServiceCreate, ServiceResponse, ServiceUpdate
from servicepoint.services.bookings import service_breakdown, status_counts

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/garage",
    tags=["garage"],
    dependencies=[Depends(RateLimiter("garage", max_requests=100))],
)

# applied per route below; public routes share the router
owner_only = [Depends(validate_session_timeout)]

SORT_COLUMNS = {
    "rating": Garage.rating,
    "created_at": Garage.created_at,
    "garage_name": Garage.garage_name,
}


# --------------------------------------------------
# public discovery
# --------------------------------------------------

@router.get("/search")
def search_garages(
    service: Optional[str] = None,
    country: Optional[str] = None,
    state: Optional[str] = None,
    city: Optional[str] = None,
    district: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["rating", "created_at", "garage_name"] = "rating",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
):
    query = db.query(Garage).filter(Garage.is_active.is_(True))

    for column, value in ((Garage.country, country), (Garage.state, state),
                          (Garage.city, city), (Garage.district, district)):
        term = ilike_term(value)
        if term:
            query = query.filter(column.ilike(term))

    term = ilike_term(q)
    if term:
        query = query.filter(or_(
            Garage.garage_name.ilike(term),
            Garage.owner_name.ilike(term),
            Garage.location.ilike(term),
        ))

    if service:
        query = query.filter(offers_service(service))

    column = SORT_COLUMNS[sort_by]
    total = query.count()
    garages = (
        query.order_by(column.desc() if sort_order == "desc" else column.asc(), Garage.id)
        .offset(offset(page, limit))
        .limit(limit)
        .all()
    )

    return {
        "success": True,
        "data": {
            "garages": [GaragePublic.model_validate(g) for g in garages],
            "pagination": pagination(page, limit, total, "total_garages"),
            "filters": {
                "country": country,
                "state": state,
                "city": city,
                "district": district,
                "service": service,
                "q": q,
            },
        },
    }


@router.get("/nearby")
def nearby_garages(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    max_distance: float = Query(50, gt=0),
    service: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Garage).filter(Garage.is_active.is_(True))
    if service:
        query = query.filter(offers_service(service))

    found = []
    for garage in query.all():
        distance = distance_km(lat, lng, garage.latitude, garage.longitude)
        if distance <= max_distance:
            found.append((distance, garage))
    found.sort(key=lambda pair: pair[0])

    garages = [
        NearbyGarage(**GaragePublic.model_validate(g).model_dump(), distance_km=round(d, 2))
        for d, g in found[:limit]
    ]
    return {
        "success": True,
        "data": {
            "garages": garages,
            "total": len(found),
            "center": {"lat": lat, "lng": lng},
            "max_distance_km": max_distance,
        },
    }


@router.get("/locations")
def garage_locations(
    state: Optional[str] = None,
    city: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Distinct states, or cities of a state, or districts of a city."""
    active = db.query(Garage).filter(Garage.is_active.is_(True))

    if state and city:
        level, column = "districts", Garage.district
        active = active.filter(Garage.state == state, Garage.city == city)
    elif state:
        level, column = "cities", Garage.city
        active = active.filter(Garage.state == state)
    else:
        level, column = "states", Garage.state

    values = sorted({row[0] for row in active.with_entities(column).distinct() if row[0]})
    return {"success": True, "data": {level: values}}


@router.get("/service-categories")
def service_categories():
    return {"success": True, "data": {"services": sorted(rules.GARAGE_SERVICE_TYPES)}}


# --------------------------------------------------
# garage owner
# --------------------------------------------------

@router.get("/dashboard/stats", dependencies=owner_only)
def dashboard_stats(db: Session = Depends(get_db), garage: Garage = Depends(authenticate_garage)):
    today = date.today()
    own = Booking.garage_id == garage.id

    def in_month(column):
        return (extract("year", column) == today.year) & (extract("month", column) == today.month)

    recent = (
        db.query(Booking)
        .filter(Booking.garage_id == garage.id)
        .order_by(Booking.created_at.desc())
        .limit(10)
        .all()
    )

    return {
        "success": True,
        "data": {
            "stats": status_counts(db, garage.id),
            "this_month": {
                "bookings": db.query(Booking).filter(own, in_month(Booking.created_at)).count(),
                "completed": db.query(Booking).filter(
                    own,
                    Booking.status == rules.COMPLETED,
                    in_month(Booking.completed_at),
                ).count(),
            },
            "rating": {"average": garage.rating, "total_ratings": garage.total_ratings},
            "recent_bookings": [BookingListItem.model_validate(b) for b in recent],
            "service_stats": service_breakdown(db, garage.id),
        },
    }


@router.get("/bookings", dependencies=owner_only)
def own_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    service: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    garage: Garage = Depends(authenticate_garage),
):
    q = db.query(Booking).filter(Booking.garage_id == garage.id)
    if status_filter:
        q = q.filter(Booking.status == status_filter)
    if service:
        q = q.filter(Booking.service == service)
    if date_from:
        q = q.filter(Booking.scheduled_date >= date_from)
    if date_to:
        q = q.filter(Booking.scheduled_date <= date_to)

    total = q.count()
    bookings = (
        q.order_by(Booking.scheduled_date.asc(), Booking.scheduled_time.asc())
        .offset(offset(page, limit))
        .limit(limit)
        .all()
    )
    return {
        "success": True,
        "data": {
            "bookings": [BookingResponse.model_validate(b) for b in bookings],
            "pagination": pagination(page, limit, total, "total_bookings"),
        },
    }


@router.get("/profile", dependencies=owner_only)
def get_profile(garage: Garage = Depends(authenticate_garage)):
    return {"success": True, "data": GarageResponse.model_validate(garage)}


@router.put("/profile", dependencies=owner_only)
def update_profile(
    payload: GarageProfileUpdate,
    db: Session = Depends(get_db),
    garage: Garage = Depends(authenticate_garage),
):
    # email and location are changed by admins only; the schema has no such fields
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(garage, field, value)

    db.commit()
    db.refresh(garage)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "garage": GarageResponse.model_validate(garage),
    }


# --- service catalog ---

def get_service_or_404(db: Session, garage: Garage, service_id: int) -> Service:
    service = db.query(Service).filter(Service.id == service_id, Service.garage_id == garage.id).first()
    if not service:
        raise NotFound("Service not found")
    return service


@router.get("/services", dependencies=owner_only)
def list_services(db: Session = Depends(get_db), garage: Garage = Depends(authenticate_garage)):
    services = db.query(Service).filter(Service.garage_id == garage.id).order_by(Service.name).all()
    return {
        "success": True,
        "data": {
            "services": [ServiceResponse.model_validate(s) for s in services],
            "total_services": len(services),
        },
    }


@router.post("/services", status_code=status.HTTP_201_CREATED, dependencies=owner_only)
def add_service(
    payload: ServiceCreate,
    db: Session = Depends(get_db),
    garage: Garage = Depends(authenticate_garage),
):
    ensure_unique_service_name(db, garage.id, payload.name)

    service = Service(
        garage_id=garage.id,
        name=payload.name,
        description=payload.description,
        category=payload.category,
        price_amount=payload.price.amount,
        price_currency=payload.price.currency,
        estimated_duration=payload.estimated_duration,
        added_by="garage",
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info("Garage %s added service %s", garage.garage_id, service.service_id)

    return {
        "success": True,
        "message": "Service added successfully",
        "service": ServiceResponse.model_validate(service),
    }


@router.put("/services/{service_id}", dependencies=owner_only)
def update_service(
    service_id: int,
    payload: ServiceUpdate,
    db: Session = Depends(get_db),
    garage: Garage = Depends(authenticate_garage),
):
    service = get_service_or_404(db, garage, service_id)
    updates = payload.model_dump(exclude_unset=True)

    if updates.get("name"):
        updates["name"] = updates["name"].strip()
        ensure_unique_service_name(db, garage.id, updates["name"], exclude_id=service.id)

    price = updates.pop("price", None)
    if price:
        service.price_amount = price["amount"]
        service.price_currency = price.get("currency") or service.price_currency

    for field, value in updates.items():
        if value is not None:
            setattr(service, field, value)

    service.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(service)

    return {
        "success": True,
        "message": "Service updated successfully",
        "service": ServiceResponse.model_validate(service),
    }


@router.delete("/services/{service_id}", dependencies=owner_only)
def delete_service(
    service_id: int,
    db: Session = Depends(get_db),
    garage: Garage = Depends(authenticate_garage),
):
    service = get_service_or_404(db, garage, service_id)
    db.delete(service)
    db.commit()
    return {"success": True, "message": "Service deleted successfully"}


# --------------------------------------------------
# public detail (last: the path parameter would shadow the routes above)
# --------------------------------------------------

@router.get("/{garage_id}")
def garage_detail(garage_id: int, db: Session = Depends(get_db)):
    garage = db.query(Garage).filter(Garage.id == garage_id).first()
    if not garage or not garage.is_active:
        raise NotFound("Garage not found")

    reviewed = (
        db.query(Booking)
        .filter(Booking.garage_id == garage.id, Booking.feedback_rating.isnot(None))
        .order_by(Booking.feedback_submitted_at.desc())
        .limit(5)
        .all()
    )
    reviews = [
        ReviewItem(
            user_name=b.user_name,
            rating=b.feedback_rating,
            comment=b.feedback_comment,
            date=b.feedback_submitted_at or b.created_at,
        )
        for b in reviewed
    ]

    return {
        "success": True,
        "data": {
            "garage": GaragePublic.model_validate(garage),
            "recent_reviews": reviews,
        },
    }
