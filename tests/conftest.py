from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.visite import create_app
from app.visite import auth as auth_module
from app.visite.db import session_scope
from app.visite.models import Base, User
from app.visite.modules.cars.models import Car
from app.visite.modules.centers.models import InspectionCenter
from app.visite.modules.time_slots.models import TimeSlot

PASSWORD = "password123"

_INTEGRATION_ENV = (
    "SMTP_HOST",
    "SMTP_USER",
    "SMTP_PASS",
    "SMS_API_KEY",
    "SMS_SENDER_ID",
    "CMI_MERCHANT_ID",
    "CMI_ACCESS_KEY",
    "CMI_SECRET_KEY",
    "GOOGLE_MAPS_API_KEY",
)


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    auth_module._login_attempts.clear()
    yield
    auth_module._login_attempts.clear()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("APP_URL", "http://localhost")
    for k in _INTEGRATION_ENV:
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def slot_day():
    return date.today() + timedelta(days=5)


@pytest.fixture()
def seed(app, slot_day):
    """Three accounts (one per role), a second customer, one center with two slots and one car."""
    now = datetime.utcnow()
    with session_scope(app) as s:
        user = User(email="user@example.com", name="Yassine Alaoui", phone="0612345678", role="USER",
                    password_hash=generate_password_hash(PASSWORD), is_active=True)
        other = User(email="other@example.com", name="Salma Idrissi", role="USER",
                     password_hash=generate_password_hash(PASSWORD), is_active=True)
        admin = User(email="admin@example.com", name="Admin", role="ADMIN",
                     password_hash=generate_password_hash(PASSWORD), is_active=True)
        super_admin = User(email="root@example.com", name="Root", role="SUPER_ADMIN",
                           password_hash=generate_password_hash(PASSWORD), is_active=True)
        center = InspectionCenter(
            name="Centre Test Casablanca",
            name_ar="مركز الاختبار",
            name_en="Test Center Casablanca",
            address="Zone Industrielle Ain Sebaâ, Rue 12",
            city="Casablanca",
            latitude=33.6156,
            longitude=-7.5370,
            is_active=True,
            services=["Contrôle technique automobile"],
            working_hours={"monday": "08:00-18:00"},
            created_at=now,
            updated_at=now,
        )
        slot = TimeSlot(center=center, date=slot_day, start_time="09:00", end_time="10:00",
                        capacity=2, booked_count=0, is_available=True, price=Decimal("200.00"))
        single = TimeSlot(center=center, date=slot_day, start_time="10:00", end_time="11:00",
                          capacity=1, booked_count=0, is_available=True, price=Decimal("250.00"))
        car = Car(user=user, license_plate="1234|أ|56", brand="Dacia", model="Logan", year=2019)
        other_car = Car(user=other, license_plate="77|ب|6", brand="Renault", model="Clio", year=2021)
        s.add_all([user, other, admin, super_admin, center, slot, single, car, other_car])
        s.flush()
        ids = {
            "user": user.id,
            "other": other.id,
            "admin": admin.id,
            "super_admin": super_admin.id,
            "center": center.id,
            "slot": slot.id,
            "single_slot": single.id,
            "car": car.id,
            "other_car": other_car.id,
        }
    return ids


@pytest.fixture()
def client(app, seed):
    return app.test_client()


def _login(client, email, password=PASSWORD):
    return client.post("/fr/auth/signin", data={"email": email, "password": password}, follow_redirects=False)


def _csrf(client) -> dict:
    with client.session_transaction() as sess:
        token = sess.get("csrf_token") or "test-csrf-token"
        sess["csrf_token"] = token
    return {"X-CSRF-Token": token}


@pytest.fixture()
def login():
    return _login


@pytest.fixture()
def csrf():
    return _csrf


@pytest.fixture()
def user_client(client):
    _login(client, "user@example.com")
    return client


@pytest.fixture()
def admin_client(client):
    _login(client, "admin@example.com")
    return client


@pytest.fixture()
def super_client(client):
    _login(client, "root@example.com")
    return client


@pytest.fixture()
def make_booking(csrf):
    """POST a booking through the API and return the JSON booking."""

    def _make(client, seed, *, slot_key="slot", car_key="car"):
        r = client.post(
            "/api/bookings",
            json={
                "carId": seed[car_key],
                "inspectionCenterId": seed["center"],
                "timeSlotId": seed[slot_key],
            },
            headers=csrf(client),
        )
        assert r.status_code == 201, r.get_json()
        return r.get_json()["booking"]

    return _make
