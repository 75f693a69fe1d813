# servicepoint/services/ratings.py
from typing import Iterable, Tuple

from sqlalchemy.orm import Session

from servicepoint.db.models.booking import Booking
from servicepoint.db.models.garage import Garage


def average_rating(ratings: Iterable[int]) -> Tuple[float, int]:
    values = list(ratings)
    if not values:
        return 0.0, 0
    return round(sum(values) / len(values), 1), len(values)


# recalc from every rated booking; fine at garage scale
def recalculate_garage_rating(db: Session, garage: Garage) -> Garage:
    rows = (
        db.query(Booking.feedback_rating)
        .filter(Booking.garage_id == garage.id, Booking.feedback_rating.isnot(None))
        .all()
    )
    garage.rating, garage.total_ratings = average_rating(r[0] for r in rows)
    db.add(garage)
    db.commit()
    return garage
