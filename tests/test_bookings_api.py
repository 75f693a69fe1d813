import inspect
import threading
from datetime import date, datetime, timedelta

import pytest
from fastapi.routing import APIRoute

from servicepoint.api.routes import bookings as booking_routes
from servicepoint.db.models import Garage, User
from servicepoint.main import app

from conftest import bearer, make_garage


# --- creating ---

def test_create_booking(client, booking_payload, garage, notifier):
    response = client.post("/api/booking/create", json=booking_payload)

    assert response.status_code == 201, response.text
    body = response.json()
    booking = body["booking"]
    assert body["message"] == f"Booking Successful - Your booking ID is {booking['booking_id']}"
    assert booking["booking_id"].startswith("BK_")
    assert booking["status"] == "pending"
    assert booking["garage"]["garage_name"] == "Speedy Motors"
    assert [(h["status"], h["updated_by"]) for h in booking["status_history"]] == [("pending", "user")]

    # the garage hears about it
    assert notifier.subjects_for("owner@speedymotors.com") == ["New Service Booking - Oil Change"]


def test_create_booking_links_customer_profile(client, db, create_booking):
    create_booking()
    create_booking(scheduled_time="11:00")

    user = db.query(User).filter(User.phone == "9123456789").one()
    assert user.name == "Asha Rao"
    assert user.email == "asha@example.com"
    assert len(user.bookings) == 2


def test_booking_adds_missing_service_to_garage(client, db, booking_payload, garage):
    response = client.post("/api/booking/create", json=dict(booking_payload, service="Brake Service"))
    assert response.status_code == 201

    db.expire_all()
    assert db.get(Garage, garage.id).services == ["Oil Change", "Towing", "Brake Service"]


def test_booking_survives_mail_outage(client, booking_payload, notifier):
    notifier.fail = True
    response = client.post("/api/booking/create", json=booking_payload)
    assert response.status_code == 201
    assert notifier.sent == []


def test_booking_work_stays_off_the_event_loop(client, booking_payload, notifier, monkeypatch):
    threads = {}
    real_find = booking_routes.find_or_create_user
    real_send = notifier.send

    def find_or_create_user(*args, **kwargs):
        threads["db"] = threading.current_thread().name
        return real_find(*args, **kwargs)

    async def send(*args, **kwargs):
        threads["loop"] = threading.current_thread().name
        await real_send(*args, **kwargs)

    monkeypatch.setattr(booking_routes, "find_or_create_user", find_or_create_user)
    monkeypatch.setattr(notifier, "send", send)

    response = client.post("/api/booking/create", json=booking_payload)

    assert response.status_code == 201
    assert notifier.subjects_for("owner@speedymotors.com") == ["New Service Booking - Oil Change"]
    assert threads["db"] != threads["loop"]


def test_route_handlers_are_plain_functions():
    handlers = [r.endpoint for r in app.routes if isinstance(r, APIRoute)]
    assert handlers
    assert not [h.__name__ for h in handlers if inspect.iscoroutinefunction(h)]


def test_same_day_slot_inside_lead_time(client, booking_payload):
    slot = datetime.now() + timedelta(minutes=5)
    if slot.date() != date.today():
        pytest.skip("too close to midnight for a same-day slot")

    response = client.post("/api/booking/create", json=dict(
        booking_payload,
        scheduled_date=slot.date().isoformat(),
        scheduled_time=slot.strftime("%H:%M"),
    ))

    assert response.status_code == 400
    assert response.json()["message"] == (
        "For today's bookings, please select a time at least 15 minutes from now"
    )


def test_past_day_rejected(client, booking_payload):
    yesterday = date.today() - timedelta(days=1)
    response = client.post("/api/booking/create", json=dict(booking_payload, scheduled_date=yesterday.isoformat()))
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot book for past dates and times"


def test_unknown_service_rejected(client, booking_payload):
    response = client.post("/api/booking/create", json=dict(booking_payload, service="Teleportation"))
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid input data"
    assert body["errors"][0]["field"] == "service"


def test_validation_errors_list_every_field(client, booking_payload):
    response = client.post("/api/booking/create", json=dict(
        booking_payload, user_phone="12ab", scheduled_time="25:00",
    ))
    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"user_phone", "scheduled_time"} <= fields


def test_inactive_garage_not_bookable(client, db, booking_payload, garage):
    garage.is_active = False
    db.commit()

    response = client.post("/api/booking/create", json=booking_payload)
    assert response.status_code == 400
    assert response.json()["message"] == "Selected garage is not available"


# --- customer side ---

def test_track_booking_is_case_insensitive(client, create_booking):
    booking_id = create_booking()
    response = client.get(f"/api/booking/track/{booking_id.lower()}")
    assert response.status_code == 200
    assert response.json()["data"]["booking_id"] == booking_id


def test_track_unknown_booking(client):
    response = client.get("/api/booking/track/BK_0_NOPE")
    assert response.status_code == 404
    assert response.json()["message"] == "Booking not found"


def test_bookings_by_phone(client, create_booking):
    create_booking()
    create_booking(scheduled_time="11:00")
    create_booking(scheduled_time="12:00", user_phone="9000000000")

    response = client.get("/api/booking/user/9123456789", params={"limit": 1})

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["bookings"]) == 1
    assert data["pagination"]["total_bookings"] == 2
    assert data["pagination"]["total_pages"] == 2
    assert data["pagination"]["has_next_page"] is True


def test_bookings_by_bad_phone(client):
    response = client.get("/api/booking/user/abc")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid phone number format"


def test_customer_cancels(client, create_booking, notifier):
    booking_id = create_booking()

    response = client.put(f"/api/booking/{booking_id}/cancel", json={"cancellation_reason": "Changed plans"})

    assert response.status_code == 200
    assert response.json()["booking_id"] == booking_id
    booking = client.get(f"/api/booking/track/{booking_id}").json()["data"]
    assert booking["status"] == "cancelled"
    assert booking["cancellation_reason"] == "Changed plans"
    assert booking["status_history"][-1]["updated_by"] == "user"


def test_cancel_without_body(client, create_booking):
    booking_id = create_booking()
    response = client.put(f"/api/booking/{booking_id}/cancel")
    assert response.status_code == 200

    booking = client.get(f"/api/booking/track/{booking_id}").json()["data"]
    assert booking["cancellation_reason"] == "Cancelled by user"


def test_cannot_cancel_started_service(client, create_booking, move_booking):
    booking_id = create_booking()
    move_booking(booking_id, "confirmed", "in_progress")

    response = client.put(f"/api/booking/{booking_id}/cancel")

    assert response.status_code == 400
    assert response.json()["message"] == "Booking cannot be cancelled at this time"


def test_available_slots(client, create_booking, garage, future_day):
    create_booking(scheduled_time="10:00")

    response = client.get(f"/api/booking/available-slots/{garage.id}/{future_day.isoformat()}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert "10:00" not in data["available_slots"]
    assert "09:00" in data["available_slots"]
    assert data["total_slots"] == 8
    assert data["operating_hours"] == {"open": "09:00", "close": "18:00"}


def test_cancelled_booking_frees_its_slot(client, create_booking, garage, future_day):
    booking_id = create_booking(scheduled_time="10:00")
    client.put(f"/api/booking/{booking_id}/cancel")

    data = client.get(f"/api/booking/available-slots/{garage.id}/{future_day.isoformat()}").json()["data"]
    assert "10:00" in data["available_slots"]


# --- garage side ---

def test_garage_confirms_then_cannot_go_back(client, create_booking, garage, garage_headers, notifier):
    booking_id = create_booking()
    url = f"/api/booking/garage/{garage.id}/{booking_id}/status"

    response = client.put(url, json={"status": "confirmed", "note": "accepted"}, headers=garage_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Booking accepted successfully"
    history = client.get(f"/api/booking/track/{booking_id}").json()["data"]["status_history"]
    assert len(history) == 2
    assert history[-1]["status"] == "confirmed"
    assert history[-1]["updated_by"] == "garage"
    assert history[-1]["note"] == "accepted"
    assert notifier.subjects_for("asha@example.com") == ["Booking Update: Your booking has been accepted!"]

    back = client.put(url, json={"status": "pending"}, headers=garage_headers)
    assert back.status_code == 400
    assert back.json()["error"] == "InvalidTransition"
    assert client.get(f"/api/booking/track/{booking_id}").json()["data"]["status"] == "confirmed"


def test_invalid_transition_reports_both_ends(client, create_booking, garage, garage_headers):
    booking_id = create_booking()
    response = client.put(
        f"/api/booking/garage/{garage.id}/{booking_id}/status",
        json={"status": "completed"},
        headers=garage_headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Cannot change status from pending to completed"
    assert body["error"] == "InvalidTransition"


def test_completed_booking_records_costs(client, create_booking, move_booking):
    booking_id = create_booking()
    move_booking(booking_id, "confirmed", estimated_cost={"amount": 1200, "currency": "INR"})
    move_booking(booking_id, "in_progress")
    response = move_booking(booking_id, "completed", actual_cost={"amount": 1350})

    assert response.json()["message"] == "Service completed successfully"
    booking = client.get(f"/api/booking/track/{booking_id}").json()["data"]
    assert booking["status"] == "completed"
    assert booking["completed_at"] is not None
    assert booking["estimated_cost"] == {"amount": 1200.0, "currency": "INR"}
    assert booking["actual_cost"] == {"amount": 1350.0, "currency": "USD"}


def test_status_change_survives_mail_outage(client, create_booking, move_booking, notifier):
    booking_id = create_booking()
    notifier.fail = True

    move_booking(booking_id, "confirmed")

    assert client.get(f"/api/booking/track/{booking_id}").json()["data"]["status"] == "confirmed"


def test_other_garage_cannot_touch_booking(client, db, main_admin, create_booking, garage, tokens):
    booking_id = create_booking()
    rival = make_garage(db, main_admin, garage_name="Rival Auto", email="rival@autohub.com")
    rival_headers = bearer(tokens.issue(rival.token_claims()))

    response = client.put(
        f"/api/booking/garage/{garage.id}/{booking_id}/status",
        json={"status": "confirmed"},
        headers=rival_headers,
    )

    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Can only access own garage data."


def test_booking_of_another_garage_is_hidden(client, db, main_admin, create_booking, tokens):
    rival = make_garage(db, main_admin, garage_name="Rival Auto", email="rival@autohub.com")
    booking_id = create_booking()

    response = client.put(
        f"/api/booking/garage/{rival.id}/{booking_id}/status",
        json={"status": "confirmed"},
        headers=bearer(tokens.issue(rival.token_claims())),
    )
    assert response.status_code == 404


def test_garage_bookings_with_stats(client, create_booking, move_booking, garage, garage_headers):
    first = create_booking()
    create_booking(scheduled_time="11:00")
    move_booking(first, "confirmed")

    response = client.get(f"/api/booking/garage/{garage.id}", headers=garage_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["bookings"]) == 2
    assert data["stats"]["total"] == 2
    assert data["stats"]["pending"] == 1
    assert data["stats"]["confirmed"] == 1

    only_pending = client.get(
        f"/api/booking/garage/{garage.id}", params={"status": "pending"}, headers=garage_headers
    ).json()["data"]
    assert len(only_pending["bookings"]) == 1


def test_garage_bookings_need_a_token(client, garage):
    response = client.get(f"/api/booking/garage/{garage.id}")
    assert response.status_code == 401
    assert response.json()["message"] == "Garage access denied. No token provided."


# --- feedback ---

def test_feedback_updates_garage_rating(client, create_booking, move_booking, garage):
    booking_id = create_booking()
    move_booking(booking_id, "confirmed", "in_progress", "completed")

    response = client.post(f"/api/booking/{booking_id}/feedback", json={"rating": 5, "comment": "great"})

    assert response.status_code == 200
    assert response.json()["feedback"]["rating"] == 5
    detail = client.get(f"/api/garage/{garage.id}").json()["data"]
    assert detail["garage"]["rating"] == 5.0
    assert detail["garage"]["total_ratings"] == 1
    assert detail["recent_reviews"][0]["comment"] == "great"

    again = client.post(f"/api/booking/{booking_id}/feedback", json={"rating": 1})
    assert again.status_code == 400
    assert again.json()["error"] == "FeedbackAlreadySubmitted"


def test_rating_is_the_mean_of_all_feedback(client, create_booking, move_booking, garage):
    for slot, rating in (("10:00", 5), ("11:00", 4), ("12:00", 4)):
        booking_id = create_booking(scheduled_time=slot)
        move_booking(booking_id, "confirmed", "in_progress", "completed")
        client.post(f"/api/booking/{booking_id}/feedback", json={"rating": rating})

    garage_data = client.get(f"/api/garage/{garage.id}").json()["data"]["garage"]
    assert garage_data["rating"] == 4.3
    assert garage_data["total_ratings"] == 3


def test_feedback_before_completion(client, create_booking):
    booking_id = create_booking()
    response = client.post(f"/api/booking/{booking_id}/feedback", json={"rating": 4})
    assert response.status_code == 400
    assert response.json()["message"] == "Feedback can only be submitted for completed bookings"


def test_feedback_rating_range(client, create_booking):
    booking_id = create_booking()
    response = client.post(f"/api/booking/{booking_id}/feedback", json={"rating": 6})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "rating"
