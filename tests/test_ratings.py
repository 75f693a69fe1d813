import asyncio
from datetime import date

from servicepoint.db.models import Booking
from servicepoint.services.notifications import PostCommitHooks
from servicepoint.services.ratings import average_rating, recalculate_garage_rating


def test_average_rating_rounds_to_one_decimal():
    assert average_rating([5, 4, 4]) == (4.3, 3)


def test_average_rating_empty():
    assert average_rating([]) == (0.0, 0)


def rated_booking(garage, rating, status="completed"):
    return Booking(
        service="Oil Change",
        user_name="Asha Rao",
        user_phone="9123456789",
        garage_id=garage.id,
        scheduled_date=date(2030, 1, 1),
        scheduled_time="10:00",
        status=status,
        feedback_rating=rating,
    )


def test_recalculate_ignores_unrated_bookings(db, garage):
    db.add_all([
        rated_booking(garage, 5),
        rated_booking(garage, 2),
        rated_booking(garage, None, status="pending"),
    ])
    db.commit()

    recalculate_garage_rating(db, garage)

    db.refresh(garage)
    assert garage.rating == 3.5
    assert garage.total_ratings == 2


def test_post_commit_hooks_isolate_failures(caplog):
    calls = []

    async def ok(value):
        calls.append(value)

    def boom():
        raise RuntimeError("mail server down")

    hooks = PostCommitHooks()
    hooks.add("first", ok, 1)
    hooks.add("broken", boom)
    hooks.add("last", ok, 2)
    assert len(hooks) == 3

    results = asyncio.run(hooks.run())

    assert results == [("first", True), ("broken", False), ("last", True)]
    assert calls == [1, 2]
    assert "broken" in caplog.text
    assert len(hooks) == 0
