from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.visite.audit import record_event
from app.visite.errors import NotFound, ValidationFailed
from app.visite.modules.bookings.models import ACTIVE_STATUSES
from app.visite.utils import is_valid_email, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.visite.models import User
    from app.visite.modules.centers.models import InspectionCenter


# payload key -> model attribute
_TEXT_FIELDS = {
    "name": "name",
    "nameAr": "name_ar",
    "nameEn": "name_en",
    "address": "address",
    "addressAr": "address_ar",
    "addressEn": "address_en",
    "city": "city",
    "phone": "phone",
    "email": "email",
}
_REQUIRED = ("name", "nameAr", "nameEn", "address", "city", "latitude", "longitude", "services")


def _float(value) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_center_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """
    Validate center creation/update payload. Returns list of errors.
    With ``partial`` only the keys present are checked.
    """
    errors: list[str] = []

    def present(key: str) -> bool:
        return key in payload if partial else True

    for key in ("name", "nameAr", "nameEn"):
        if present(key) and len((payload.get(key) or "").strip()) < 2:
            errors.append(f"{key}: au moins 2 caractères requis")
    if present("address") and len((payload.get("address") or "").strip()) < 10:
        errors.append("address: au moins 10 caractères requis")
    if present("city") and len((payload.get("city") or "").strip()) < 2:
        errors.append("city: au moins 2 caractères requis")
    if present("latitude"):
        lat = _float(payload.get("latitude"))
        if lat is None or not -90 <= lat <= 90:
            errors.append("latitude: doit être comprise entre -90 et 90")
    if present("longitude"):
        lng = _float(payload.get("longitude"))
        if lng is None or not -180 <= lng <= 180:
            errors.append("longitude: doit être comprise entre -180 et 180")
    email = (payload.get("email") or "").strip()
    if email and not is_valid_email(email):
        errors.append("email: adresse email invalide")
    if present("services"):
        services = payload.get("services")
        if not isinstance(services, list) or not [x for x in services if str(x).strip()]:
            errors.append("services: au moins un service requis")
    if "workingHours" in payload and payload["workingHours"] is not None and not isinstance(payload["workingHours"], dict):
        errors.append("workingHours: objet attendu")
    return errors


def center_to_dict(center: "InspectionCenter", *, with_counts: bool = False, s: "Session | None" = None) -> dict:
    data = {
        "id": center.id,
        "name": center.name,
        "nameAr": center.name_ar,
        "nameEn": center.name_en,
        "address": center.address,
        "addressAr": center.address_ar,
        "addressEn": center.address_en,
        "city": center.city,
        "latitude": center.latitude,
        "longitude": center.longitude,
        "phone": center.phone,
        "email": center.email,
        "isActive": center.is_active,
        "services": list(center.services or []),
        "workingHours": dict(center.working_hours or {}),
        "createdAt": center.created_at.isoformat(),
        "updatedAt": center.updated_at.isoformat(),
    }
    if with_counts and s is not None:
        from app.visite.modules.bookings.models import Booking
        from app.visite.modules.time_slots.models import TimeSlot

        data["_count"] = {
            "bookings": s.scalar(select(func.count(Booking.id)).where(Booking.center_id == center.id)) or 0,
            "timeSlots": s.scalar(select(func.count(TimeSlot.id)).where(TimeSlot.center_id == center.id)) or 0,
        }
    return data


def list_centers(s: "Session", *, include_inactive: bool = False) -> list["InspectionCenter"]:
    from app.visite.modules.centers.models import InspectionCenter

    stmt = select(InspectionCenter)
    if not include_inactive:
        stmt = stmt.where(InspectionCenter.is_active.is_(True))
    return list(s.scalars(stmt.order_by(InspectionCenter.name.asc())))


def get_center(s: "Session", center_id: int) -> "InspectionCenter":
    from app.visite.modules.centers.models import InspectionCenter

    center = s.get(InspectionCenter, center_id)
    if not center:
        raise NotFound("Centre non trouvé")
    return center


def _clean_services(raw) -> list[str]:
    return [str(x).strip() for x in raw if str(x).strip()]


def create_center(s: "Session", payload: dict, user: "User") -> "InspectionCenter":
    """Create a new inspection center."""
    from app.visite.modules.centers.models import InspectionCenter

    errors = validate_center_payload(payload)
    if errors:
        raise ValidationFailed("Données invalides", errors=errors)

    now = datetime.utcnow()
    center = InspectionCenter(
        name=payload["name"].strip(),
        name_ar=payload["nameAr"].strip(),
        name_en=payload["nameEn"].strip(),
        address=payload["address"].strip(),
        address_ar=(payload.get("addressAr") or "").strip() or None,
        address_en=(payload.get("addressEn") or "").strip() or None,
        city=payload["city"].strip(),
        latitude=float(payload["latitude"]),
        longitude=float(payload["longitude"]),
        phone=(payload.get("phone") or "").strip() or None,
        email=(payload.get("email") or "").strip() or None,
        is_active=parse_bool(payload.get("isActive"), default=True),
        services=_clean_services(payload["services"]),
        working_hours=payload.get("workingHours") or {},
        created_at=now,
        updated_at=now,
    )
    s.add(center)
    s.flush()

    record_event(
        s,
        actor=user,
        action="center.create",
        entity_type="InspectionCenter",
        entity_id=str(center.id),
        metadata={"name": center.name, "city": center.city},
    )
    return center


def update_center(s: "Session", center: "InspectionCenter", payload: dict, user: "User") -> "InspectionCenter":
    """Partial update; only keys present in ``payload`` are touched."""
    errors = validate_center_payload(payload, partial=True)
    if errors:
        raise ValidationFailed("Données invalides", errors=errors)

    changes: dict[str, dict] = {}

    def _set(attr: str, new) -> None:
        old = getattr(center, attr)
        if new != old:
            changes[attr] = {"old": old, "new": new}
            setattr(center, attr, new)

    for key, attr in _TEXT_FIELDS.items():
        if key in payload:
            value = (payload.get(key) or "").strip() or None
            if attr in ("name", "name_ar", "name_en", "address", "city"):
                value = value or getattr(center, attr)
            _set(attr, value)
    if "latitude" in payload:
        _set("latitude", float(payload["latitude"]))
    if "longitude" in payload:
        _set("longitude", float(payload["longitude"]))
    if "isActive" in payload:
        _set("is_active", parse_bool(payload.get("isActive")))
    if "services" in payload:
        _set("services", _clean_services(payload["services"]))
    if "workingHours" in payload:
        _set("working_hours", payload.get("workingHours") or {})

    center.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="center.edit",
        entity_type="InspectionCenter",
        entity_id=str(center.id),
        metadata={"name": center.name, "changes": changes},
    )
    return center


def active_booking_count(s: "Session", center: "InspectionCenter") -> int:
    from app.visite.modules.bookings.models import Booking

    return s.scalar(
        select(func.count(Booking.id))
        .where(Booking.center_id == center.id)
        .where(Booking.status.in_(ACTIVE_STATUSES))
    ) or 0


def delete_center(s: "Session", center: "InspectionCenter", user: "User") -> None:
    """Delete a center with its slots and past bookings; refused while bookings are active."""
    if active_booking_count(s, center):
        raise ValidationFailed("Impossible de supprimer un centre avec des réservations actives")

    record_event(
        s,
        actor=user,
        action="center.delete",
        entity_type="InspectionCenter",
        entity_id=str(center.id),
        metadata={"name": center.name, "city": center.city},
    )
    s.delete(center)
