from __future__ import annotations

import re
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.visite.audit import record_event
from app.visite.errors import Conflict, Forbidden, ValidationFailed
from app.visite.rbac import is_admin
from app.visite.utils import parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.visite.models import User
    from app.visite.modules.cars.models import Car


# Moroccan plate: serial | Arabic letter | region code, e.g. "1234|أ|56".
PLATE_RE = re.compile(r"^[0-9]{1,4}\|[أ-ي]\|[0-9]{1,2}$")
MIN_YEAR = 1990


def max_year() -> int:
    return date.today().year + 1


def validate_car_payload(payload: dict) -> list[str]:
    """Validate car creation payload. Returns list of errors."""
    errors = []
    plate = (payload.get("licensePlate") or "").strip()
    brand = (payload.get("brand") or "").strip()
    model = (payload.get("model") or "").strip()
    raw_year = payload.get("year")
    if not plate or not brand or not model or raw_year in (None, ""):
        return ["Missing required fields"]
    if not PLATE_RE.match(plate):
        errors.append("Format de plaque invalide (ex: 1234|أ|56)")
    year = parse_int(raw_year)
    if year is None or year < MIN_YEAR or year > max_year():
        errors.append(f"L'année doit être comprise entre {MIN_YEAR} et {max_year()}")
    return errors


def car_to_dict(car: "Car") -> dict:
    return {
        "id": car.id,
        "userId": car.user_id,
        "licensePlate": car.license_plate,
        "brand": car.brand,
        "model": car.model,
        "year": car.year,
        "createdAt": car.created_at.isoformat(),
        "updatedAt": car.updated_at.isoformat(),
    }


def list_cars(s: "Session", owner_id: int, viewer: "User") -> list["Car"]:
    """Cars of ``owner_id``, newest first. Only admins may look at someone else's cars."""
    from app.visite.modules.cars.models import Car

    if owner_id != viewer.id and not is_admin(viewer.role):
        raise Forbidden()
    return list(s.scalars(select(Car).where(Car.user_id == owner_id).order_by(Car.created_at.desc(), Car.id.desc())))


def create_car(s: "Session", payload: dict, user: "User") -> "Car":
    """Register a car for ``user``."""
    from app.visite.modules.cars.models import Car

    errors = validate_car_payload(payload)
    if errors:
        raise ValidationFailed(errors[0], errors=errors)

    plate = payload["licensePlate"].strip()
    if s.scalar(select(Car.id).where(Car.license_plate == plate)) is not None:
        raise Conflict("License plate already exists")

    now = datetime.utcnow()
    car = Car(
        user=user,
        license_plate=plate,
        brand=payload["brand"].strip(),
        model=payload["model"].strip(),
        year=int(payload["year"]),
        created_at=now,
        updated_at=now,
    )
    s.add(car)
    s.flush()

    record_event(
        s,
        actor=user,
        action="car.create",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"license_plate": car.license_plate},
    )
    return car
