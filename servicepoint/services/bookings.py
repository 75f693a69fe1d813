# servicepoint/services/bookings.py
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from servicepoint.core.booking_rules import BOOKING_STATUSES
from servicepoint.db.models.booking import Booking
from servicepoint.schemas.booking import StatusUpdate
from servicepoint.services.notifications import Notifier, PostCommitHooks, notify_customer_of_status

logger = logging.getLogger(__name__)

STATUS_UPDATE_MESSAGES = {
    "confirmed": "Booking accepted successfully",
    "cancelled": "Booking rejected",
    "in_progress": "Service started",
    "completed": "Service completed successfully",
}


def status_counts(db: Session, garage_id: Optional[int] = None) -> dict:
    q = db.query(Booking.status, func.count(Booking.id))
    if garage_id is not None:
        q = q.filter(Booking.garage_id == garage_id)
    counts = dict(q.group_by(Booking.status).all())

    stats = {"total": sum(counts.values())}
    for status in BOOKING_STATUSES:
        stats[status] = counts.get(status, 0)
    return stats


def service_breakdown(db: Session, garage_id: Optional[int] = None) -> List[dict]:
    q = db.query(Booking.service, func.count(Booking.id).label("count"))
    if garage_id is not None:
        q = q.filter(Booking.garage_id == garage_id)
    rows = q.group_by(Booking.service).order_by(func.count(Booking.id).desc()).all()
    return [{"service": service, "count": count} for service, count in rows]


def change_status(
    db: Session,
    booking: Booking,
    update: StatusUpdate,
    actor: str,
    notifier: Notifier,
) -> str:
    """Apply a garage/admin status change, commit, then tell the customer.

    Returns the human readable outcome for the response envelope.
    """
    booking.update_status(update.status, actor, update.note)
    booking.set_costs(
        estimated=update.estimated_cost.model_dump() if update.estimated_cost else None,
        actual=update.actual_cost.model_dump() if update.actual_cost else None,
    )
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s moved to %s by %s", booking.booking_id, booking.status, actor)

    hooks = PostCommitHooks()
    hooks.add("notify_customer", notify_customer_of_status, notifier, booking, booking.garage, update.status)
    hooks.run_from_worker()

    return STATUS_UPDATE_MESSAGES.get(update.status, "Booking status updated")
