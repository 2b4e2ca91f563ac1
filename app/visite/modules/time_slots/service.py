from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.visite.audit import record_event
from app.visite.errors import Conflict, NotFound, ValidationFailed
from app.visite.modules.bookings.models import ACTIVE_STATUSES
from app.visite.utils import money, parse_bool, parse_date, parse_decimal, parse_int, parse_time

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.visite.models import User
    from app.visite.modules.time_slots.models import TimeSlot


DEFAULT_WINDOW_DAYS = 30
MAX_BULK_DAYS = 366


def slot_to_dict(slot: "TimeSlot", *, include_center: bool = False) -> dict:
    data = {
        "id": slot.id,
        "inspectionCenterId": slot.center_id,
        "date": slot.date.isoformat(),
        "startTime": slot.start_time,
        "endTime": slot.end_time,
        "capacity": slot.capacity,
        "bookedCount": slot.booked_count,
        "isAvailable": slot.has_room,
        "price": money(slot.price),
    }
    if include_center:
        data["inspectionCenter"] = {"id": slot.center.id, "name": slot.center.name, "city": slot.center.city}
    return data


def get_slot(s: "Session", slot_id: int) -> "TimeSlot":
    from app.visite.modules.time_slots.models import TimeSlot

    slot = s.get(TimeSlot, slot_id)
    if not slot:
        raise NotFound("Créneau non trouvé")
    return slot


def available_slots(s: "Session", center_id: int, day: date) -> list["TimeSlot"]:
    """Bookable slots of one center on one day, by start time."""
    from app.visite.modules.time_slots.models import TimeSlot

    stmt = (
        select(TimeSlot)
        .where(TimeSlot.center_id == center_id)
        .where(TimeSlot.date == day)
        .where(TimeSlot.is_available.is_(True))
        .order_by(TimeSlot.start_time.asc())
    )
    return list(s.scalars(stmt))


def list_slots(
    s: "Session",
    *,
    center_id: int | None = None,
    day: date | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list["TimeSlot"]:
    """Admin listing. Without an explicit range this covers today and the next 30 days."""
    from app.visite.modules.time_slots.models import TimeSlot

    stmt = select(TimeSlot)
    if center_id:
        stmt = stmt.where(TimeSlot.center_id == center_id)
    if day:
        stmt = stmt.where(TimeSlot.date == day)
    elif start and end:
        stmt = stmt.where(TimeSlot.date >= start).where(TimeSlot.date <= end)
    else:
        today = date.today()
        stmt = stmt.where(TimeSlot.date >= today).where(TimeSlot.date <= today + timedelta(days=DEFAULT_WINDOW_DAYS))
    stmt = stmt.order_by(TimeSlot.date.asc(), TimeSlot.start_time.asc(), TimeSlot.center_id.asc())
    return list(s.scalars(stmt))


def _slot_exists(s: "Session", center_id: int, day: date, start_time: str, exclude_id: int | None = None) -> bool:
    from app.visite.modules.time_slots.models import TimeSlot

    stmt = (
        select(TimeSlot.id)
        .where(TimeSlot.center_id == center_id)
        .where(TimeSlot.date == day)
        .where(TimeSlot.start_time == start_time)
    )
    if exclude_id is not None:
        stmt = stmt.where(TimeSlot.id != exclude_id)
    return s.scalar(stmt) is not None


def _validate_times(start_time: str | None, end_time: str | None) -> list[str]:
    if not start_time or not end_time:
        return ["Format d'heure invalide (HH:MM)"]
    if start_time >= end_time:
        return ["L'heure de fin doit être postérieure à l'heure de début"]
    return []


def create_slot(s: "Session", payload: dict, user: "User") -> "TimeSlot":
    """Create a single slot."""
    from app.visite.modules.centers.models import InspectionCenter
    from app.visite.modules.time_slots.models import TimeSlot

    required = ("inspectionCenterId", "date", "startTime", "endTime", "capacity", "price")
    if any(payload.get(k) in (None, "") for k in required):
        raise ValidationFailed("Missing required fields")

    center_id = parse_int(payload.get("inspectionCenterId"))
    day = parse_date(payload.get("date"))
    start_time = parse_time(payload.get("startTime"))
    end_time = parse_time(payload.get("endTime"))
    capacity = parse_int(payload.get("capacity"))
    price = parse_decimal(payload.get("price"))

    errors: list[str] = []
    if day is None:
        errors.append("Invalid date format")
    errors.extend(_validate_times(start_time, end_time))
    if capacity is None or capacity < 1:
        errors.append("La capacité doit être au moins 1")
    if price is None or price < 0:
        errors.append("Le prix doit être positif")
    if errors:
        raise ValidationFailed(errors[0], errors=errors)

    center = s.get(InspectionCenter, center_id) if center_id else None
    if not center:
        raise NotFound("Centre d'inspection non trouvé")
    if _slot_exists(s, center.id, day, start_time):
        raise Conflict("Time slot already exists")

    now = datetime.utcnow()
    slot = TimeSlot(
        center=center,
        date=day,
        start_time=start_time,
        end_time=end_time,
        capacity=capacity,
        booked_count=0,
        is_available=parse_bool(payload.get("isAvailable"), default=True),
        price=price,
        created_at=now,
        updated_at=now,
    )
    s.add(slot)
    s.flush()

    record_event(
        s,
        actor=user,
        action="time_slot.create",
        entity_type="TimeSlot",
        entity_id=str(slot.id),
        metadata={"center_id": center.id, "date": day.isoformat(), "start_time": start_time},
    )
    return slot


def active_booking_count(s: "Session", slot: "TimeSlot") -> int:
    from app.visite.modules.bookings.models import Booking

    return s.scalar(
        select(func.count(Booking.id))
        .where(Booking.time_slot_id == slot.id)
        .where(Booking.status.in_(ACTIVE_STATUSES))
    ) or 0


def update_slot(s: "Session", slot: "TimeSlot", payload: dict, user: "User") -> "TimeSlot":
    """
    Partial update.
    Date/time cannot move while bookings are active, and capacity cannot drop below the seats already taken.
    """
    errors: list[str] = []
    new_date = slot.date
    new_start = slot.start_time
    new_end = slot.end_time

    if "date" in payload:
        new_date = parse_date(payload.get("date"))
        if new_date is None:
            errors.append("Format de date invalide")
    if "startTime" in payload:
        new_start = parse_time(payload.get("startTime"))
    if "endTime" in payload:
        new_end = parse_time(payload.get("endTime"))
    if "startTime" in payload or "endTime" in payload:
        errors.extend(_validate_times(new_start, new_end))

    capacity = slot.capacity
    if "capacity" in payload:
        capacity = parse_int(payload.get("capacity"))
        if capacity is None or capacity < 1:
            errors.append("La capacité doit être au moins 1")
    price = slot.price
    if "price" in payload:
        price = parse_decimal(payload.get("price"))
        if price is None or price < 0:
            errors.append("Le prix doit être positif")
    if errors:
        raise ValidationFailed(errors[0], errors=errors)

    moved = new_date != slot.date or new_start != slot.start_time or new_end != slot.end_time
    if moved and active_booking_count(s, slot):
        raise ValidationFailed("Impossible de modifier la date ou l'heure d'un créneau avec des réservations actives")
    if capacity < slot.booked_count:
        raise ValidationFailed(
            f"La capacité ne peut pas être inférieure au nombre de réservations ({slot.booked_count})"
        )
    if moved and _slot_exists(s, slot.center_id, new_date, new_start, exclude_id=slot.id):
        raise Conflict("Un créneau existe déjà à cette date et heure pour ce centre")

    changes: dict[str, dict] = {}
    for attr, new in (
        ("date", new_date),
        ("start_time", new_start),
        ("end_time", new_end),
        ("capacity", capacity),
        ("price", price),
    ):
        old = getattr(slot, attr)
        if new != old:
            changes[attr] = {"old": str(old), "new": str(new)}
            setattr(slot, attr, new)
    if "isAvailable" in payload:
        flag = parse_bool(payload.get("isAvailable"))
        if flag != slot.is_available:
            changes["is_available"] = {"old": slot.is_available, "new": flag}
            slot.is_available = flag
    slot.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="time_slot.edit",
        entity_type="TimeSlot",
        entity_id=str(slot.id),
        metadata={"changes": changes},
    )
    return slot


def delete_slot(s: "Session", slot: "TimeSlot", user: "User") -> None:
    if active_booking_count(s, slot):
        raise ValidationFailed("Impossible de supprimer un créneau avec des réservations actives")
    record_event(
        s,
        actor=user,
        action="time_slot.delete",
        entity_type="TimeSlot",
        entity_id=str(slot.id),
        metadata={"center_id": slot.center_id, "date": slot.date.isoformat(), "start_time": slot.start_time},
    )
    s.delete(slot)


def _bulk_dates(start: date, end: date, skip_weekends: bool) -> list[date]:
    dates = []
    day = start
    while day <= end:
        # Saturday=5, Sunday=6
        if not (skip_weekends and day.weekday() >= 5):
            dates.append(day)
        day += timedelta(days=1)
    return dates


def validate_bulk_templates(templates) -> list[str]:
    if not isinstance(templates, list) or not templates:
        return ["Au moins un créneau horaire est requis"]
    errors: list[str] = []
    for i, tpl in enumerate(templates, start=1):
        if not isinstance(tpl, dict):
            errors.append(f"Créneau {i}: format invalide")
            continue
        start_time = parse_time(tpl.get("startTime"))
        end_time = parse_time(tpl.get("endTime"))
        for msg in _validate_times(start_time, end_time):
            errors.append(f"Créneau {i}: {msg}")
        capacity = parse_int(tpl.get("capacity"))
        if capacity is None or capacity < 1:
            errors.append(f"Créneau {i}: la capacité doit être au moins 1")
        price = parse_decimal(tpl.get("price"))
        if price is None or price < 0:
            errors.append(f"Créneau {i}: le prix doit être positif")
    return errors


def bulk_create_slots(s: "Session", payload: dict, user: "User") -> dict:
    """
    Generate the same daily template over a date range.
    Slots that already exist are counted as skipped; nothing new to create is an error.
    """
    from app.visite.modules.centers.models import InspectionCenter
    from app.visite.modules.time_slots.models import TimeSlot

    start = parse_date(payload.get("startDate"))
    end = parse_date(payload.get("endDate"))
    if start is None or end is None:
        raise ValidationFailed("Format de date invalide")
    if start > end:
        raise ValidationFailed("La date de début doit être antérieure à la date de fin")
    if (end - start).days > MAX_BULK_DAYS:
        raise ValidationFailed(f"La période ne peut pas dépasser {MAX_BULK_DAYS} jours")

    center_id = parse_int(payload.get("inspectionCenterId"))
    center = s.get(InspectionCenter, center_id) if center_id else None
    if not center:
        raise NotFound("Centre d'inspection non trouvé")

    templates = payload.get("timeSlots")
    errors = validate_bulk_templates(templates)
    if errors:
        raise ValidationFailed(errors[0], errors=errors)

    dates = _bulk_dates(start, end, parse_bool(payload.get("skipWeekends"), default=True))
    existing = set(
        s.execute(
            select(TimeSlot.date, TimeSlot.start_time)
            .where(TimeSlot.center_id == center.id)
            .where(TimeSlot.date >= start)
            .where(TimeSlot.date <= end)
        ).all()
    )

    now = datetime.utcnow()
    created = 0
    skipped = 0
    for day in dates:
        for tpl in templates:
            start_time = parse_time(tpl["startTime"])
            if (day, start_time) in existing:
                skipped += 1
                continue
            existing.add((day, start_time))
            s.add(
                TimeSlot(
                    center=center,
                    date=day,
                    start_time=start_time,
                    end_time=parse_time(tpl["endTime"]),
                    capacity=parse_int(tpl["capacity"]),
                    booked_count=0,
                    is_available=True,
                    price=parse_decimal(tpl["price"]),
                    created_at=now,
                    updated_at=now,
                )
            )
            created += 1

    if created == 0:
        raise ValidationFailed(
            "Aucun nouveau créneau à créer. Tous les créneaux existent déjà.",
            extra={"created": 0, "skipped": skipped},
        )
    s.flush()

    record_event(
        s,
        actor=user,
        action="time_slot.bulk_create",
        entity_type="InspectionCenter",
        entity_id=str(center.id),
        metadata={"created": created, "skipped": skipped, "start": start.isoformat(), "end": end.isoformat()},
    )
    return {
        "message": f"{created} créneaux créés avec succès",
        "created": created,
        "skipped": skipped,
        "details": {
            "totalDates": len(dates),
            "slotsPerDate": len(templates),
            "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
        },
    }
