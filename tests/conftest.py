import os

# settings are read once, at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["MAIL_USERNAME"] = ""
os.environ["MAIL_PASSWORD"] = ""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from servicepoint.core.security import get_token_service
from servicepoint.db.base import Base, get_db
from servicepoint.db.models import Admin, Garage
from servicepoint.main import app
from servicepoint.services.notifications import Notifier, get_notifier

# ------------------ engine ------------------
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False)


class RecordingNotifier(Notifier):
    """Keeps outgoing mail in memory; set `fail` to simulate an SMTP outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, to, subject, html, text=None):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})

    def subjects_for(self, address):
        return [m["subject"] for m in self.sent if m["to"] == address]


# ------------------ fixtures ------------------
@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(notifier):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.state.rate_limit_store.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.rate_limit_store.reset()


@pytest.fixture
def tokens():
    return get_token_service()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def main_admin(db):
    admin = Admin(name="Main Admin", email="main@servicepoint.com", role="main_admin")
    admin.set_password("secret123")
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def admin_headers(main_admin, tokens):
    return bearer(tokens.issue(main_admin.token_claims()))


def make_garage(db, admin, **overrides):
    data = dict(
        garage_name="Speedy Motors",
        owner_name="Ravi Kumar",
        email="owner@speedymotors.com",
        contact_number="9876543210",
        location="12 MG Road, Indiranagar, Bengaluru, Karnataka",
        district="Indiranagar",
        city="Bengaluru",
        state="Karnataka",
        latitude=12.9716,
        longitude=77.5946,
        services=["Oil Change", "Towing"],
        is_claimed=True,
        created_by_id=admin.id,
    )
    data.update(overrides)
    garage = Garage(**data)
    garage.set_password("garagepass")
    db.add(garage)
    db.commit()
    db.refresh(garage)
    return garage


@pytest.fixture
def garage(db, main_admin):
    return make_garage(db, main_admin)


@pytest.fixture
def garage_headers(garage, tokens):
    return bearer(tokens.issue(garage.token_claims()))


@pytest.fixture
def future_day():
    return date.today() + timedelta(days=7)


@pytest.fixture
def booking_payload(garage, future_day):
    return {
        "service": "Oil Change",
        "user_name": "Asha Rao",
        "user_phone": "9123456789",
        "user_email": "asha@example.com",
        "garage_id": garage.id,
        "scheduled_date": future_day.isoformat(),
        "scheduled_time": "10:00",
        "notes": "Please check the brakes too",
        "vehicle_info": {"make": "Honda", "model": "City", "year": 2019, "license_plate": "KA01AB1234"},
    }


@pytest.fixture
def create_booking(client, booking_payload):
    def _create(**overrides):
        payload = dict(booking_payload, **overrides)
        response = client.post("/api/booking/create", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["booking"]["booking_id"]

    return _create


@pytest.fixture
def move_booking(client, garage, garage_headers):
    """Drive a booking through garage status updates."""

    def _move(booking_id, *statuses, **body):
        response = None
        for status in statuses:
            response = client.put(
                f"/api/booking/garage/{garage.id}/{booking_id}/status",
                json=dict(body, status=status),
                headers=garage_headers,
            )
            assert response.status_code == 200, response.text
        return response

    return _move
