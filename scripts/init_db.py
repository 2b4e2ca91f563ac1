import argparse
import os
import random
import sys
from contextlib import contextmanager
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.visite.models import User
from app.visite.modules.centers.models import InspectionCenter
from app.visite.modules.time_slots.models import TimeSlot
from app.visite.rbac import SUPER_ADMIN

SLOT_DAYS = 30
STANDARD_TIMES = (
    ("09:00", "10:00"),
    ("10:00", "11:00"),
    ("11:00", "12:00"),
    ("14:00", "15:00"),
    ("15:00", "16:00"),
    ("16:00", "17:00"),
)
SATURDAY_SKIPPED = ("15:00", "16:00")


def _week(weekdays: str, saturday: str) -> dict:
    hours = {day: weekdays for day in ("monday", "tuesday", "wednesday", "thursday", "friday")}
    hours.update({"saturday": saturday, "sunday": "Fermé"})
    return hours


CENTERS = [
    {
        "name": "Centre d'Inspection Casablanca Nord",
        "name_ar": "مركز فحص الدار البيضاء الشمال",
        "name_en": "Casablanca North Inspection Center",
        "address": "Zone Industrielle Ain Sebaâ, Rue 12",
        "address_ar": "المنطقة الصناعية عين السبع، شارع 12",
        "address_en": "Ain Sebaâ Industrial Zone, Street 12",
        "city": "Casablanca",
        "latitude": 33.6156,
        "longitude": -7.5370,
        "phone": "+212 522 123 456",
        "email": "casablanca.nord@visite-sri3a.ma",
        "services": ["Contrôle technique automobile", "Véhicules légers", "Véhicules utilitaires"],
        "working_hours": _week("08:00-18:00", "08:00-16:00"),
    },
    {
        "name": "Centre d'Inspection Rabat Centre",
        "name_ar": "مركز فحص الرباط المركز",
        "name_en": "Rabat Central Inspection Center",
        "address": "Avenue Mohammed V, Agdal",
        "address_ar": "شارع محمد الخامس، أكدال",
        "address_en": "Mohammed V Avenue, Agdal",
        "city": "Rabat",
        "latitude": 34.0150,
        "longitude": -6.8326,
        "phone": "+212 537 654 321",
        "email": "rabat.centre@visite-sri3a.ma",
        "services": ["Contrôle technique automobile", "Véhicules légers", "Motos"],
        "working_hours": _week("08:30-18:30", "09:00-17:00"),
    },
    {
        "name": "Centre d'Inspection Marrakech",
        "name_ar": "مركز فحص مراكش",
        "name_en": "Marrakech Inspection Center",
        "address": "Route de Casablanca, Sidi Ghanem",
        "address_ar": "طريق الدار البيضاء، سيدي غانم",
        "address_en": "Casablanca Road, Sidi Ghanem",
        "city": "Marrakech",
        "latitude": 31.6295,
        "longitude": -7.9811,
        "phone": "+212 524 987 654",
        "email": "marrakech@visite-sri3a.ma",
        "services": ["Contrôle technique automobile", "Véhicules légers", "Véhicules lourds"],
        "working_hours": _week("08:00-17:30", "08:00-16:00"),
    },
    {
        "name": "Centre d'Inspection Tanger",
        "name_ar": "مركز فحص طنجة",
        "name_en": "Tangier Inspection Center",
        "address": "Zone Franche, Gzenaya",
        "address_ar": "المنطقة الحرة، كزناية",
        "address_en": "Free Zone, Gzenaya",
        "city": "Tanger",
        "latitude": 35.7595,
        "longitude": -5.8340,
        "phone": "+212 539 456 789",
        "email": "tanger@visite-sri3a.ma",
        "services": ["Contrôle technique automobile", "Véhicules légers", "Véhicules utilitaires", "Import/Export"],
        "working_hours": _week("08:00-18:00", "08:00-15:00"),
    },
    {
        "name": "Centre d'Inspection Fès",
        "name_ar": "مركز فحص فاس",
        "name_en": "Fez Inspection Center",
        "address": "Route de Meknès, Sidi Brahim",
        "address_ar": "طريق مكناس، سيدي إبراهيم",
        "address_en": "Meknes Road, Sidi Brahim",
        "city": "Fès",
        "latitude": 34.0181,
        "longitude": -5.0078,
        "phone": "+212 535 789 123",
        "email": "fes@visite-sri3a.ma",
        "services": ["Contrôle technique automobile", "Véhicules légers", "Motos"],
        "working_hours": _week("08:30-17:30", "09:00-16:00"),
    },
    {
        "name": "Centre d'Inspection Agadir",
        "name_ar": "مركز فحص أكادير",
        "name_en": "Agadir Inspection Center",
        "address": "Zone Industrielle Tassila",
        "address_ar": "المنطقة الصناعية تاسيلة",
        "address_en": "Tassila Industrial Zone",
        "city": "Agadir",
        "latitude": 30.4278,
        "longitude": -9.5981,
        "phone": "+212 528 321 654",
        "email": "agadir@visite-sri3a.ma",
        "services": ["Contrôle technique automobile", "Véhicules légers", "Véhicules agricoles"],
        "working_hours": _week("08:00-17:00", "08:00-15:00"),
    },
]


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def _seed_admin(s: Session, email: str, password: str) -> None:
    user = s.scalars(select(User).where(User.email == email)).one_or_none()
    if not user:
        user = User(
            email=email,
            name="Administrateur",
            password_hash=generate_password_hash(password),
            role=SUPER_ADMIN,
            is_active=True,
        )
        s.add(user)
    # Existing passwords are never overwritten; the role is.
    user.role = SUPER_ADMIN


def _seed_centers(s: Session) -> list[InspectionCenter]:
    centers = []
    for data in CENTERS:
        center = s.scalars(select(InspectionCenter).where(InspectionCenter.name == data["name"])).one_or_none()
        if not center:
            center = InspectionCenter(is_active=True, **data)
            s.add(center)
        centers.append(center)
    s.flush()
    return centers


def seed_time_slots(s: Session, centers: list[InspectionCenter], *, start: date | None = None, days: int = SLOT_DAYS) -> int:
    """
    Create hourly slots for the next ``days`` days (Sundays skipped, Saturday afternoons trimmed).
    Slots that already exist are left alone. Returns the number created.
    """
    start = start or date.today()
    rng = random.Random(start.toordinal())
    created = 0
    for offset in range(1, days + 1):
        day = start + timedelta(days=offset)
        if day.weekday() == 6:
            continue
        for center in centers:
            existing = set(
                s.scalars(select(TimeSlot.start_time).where(TimeSlot.center_id == center.id).where(TimeSlot.date == day))
            )
            for start_time, end_time in STANDARD_TIMES:
                if day.weekday() == 5 and start_time in SATURDAY_SKIPPED:
                    continue
                if start_time in existing:
                    continue
                s.add(
                    TimeSlot(
                        center_id=center.id,
                        date=day,
                        start_time=start_time,
                        end_time=end_time,
                        capacity=2 if rng.random() > 0.7 else 1,
                        booked_count=0,
                        is_available=True,
                        price=Decimal("250.00") if rng.random() > 0.5 else Decimal("200.00"),
                    )
                )
                created += 1
    return created


def seed_only(*, database_url: str | None = None, with_slots: bool | None = None) -> None:
    """
    Seed the super-admin account and the inspection centers in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@visite-sri3a.ma").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    if with_slots is None:
        with_slots = (os.environ.get("SEED_TIME_SLOTS") or "").strip().lower() in ("1", "true", "yes", "on")

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///visite.db").strip()

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with _session_scope(db_url) as s:
        _seed_admin(s, admin_email, admin_password)
        centers = _seed_centers(s)
        created = seed_time_slots(s, centers) if with_slots else 0

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"Inspection centers: {len(CENTERS)}")
    if with_slots:
        print(f"Time slots created: {created}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the admin account, centers and optional time slots.")
    parser.add_argument("--with-slots", action="store_true", help=f"also create slots for the next {SLOT_DAYS} days")
    args = parser.parse_args()
    seed_only(database_url=None, with_slots=args.with_slots or None)


if __name__ == "__main__":
    main()
