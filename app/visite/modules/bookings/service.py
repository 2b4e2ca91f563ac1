from __future__ import annotations

import random
import time as _time
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update

from app.visite.audit import record_event
from app.visite.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.visite.modules.bookings.models import ACTIVE_STATUSES, BOOKING_STATUSES
from app.visite.rbac import is_admin
from app.visite.utils import local_now, money, parse_int, time_of

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.time_slots.models import TimeSlot


CANCELLATION_NOTICE_HOURS = 24


def generate_booking_number() -> str:
    """``VT`` + last 8 digits of the millisecond clock + 3 random digits."""
    millis = str(int(_time.time() * 1000))[-8:]
    return f"VT{millis}{random.randint(0, 999):03d}"


def appointment_start(booking: "Booking") -> datetime:
    slot = booking.time_slot
    return datetime.combine(slot.date, time_of(slot.start_time))


def booking_to_dict(booking: "Booking", *, include_user: bool = False) -> dict:
    slot = booking.time_slot
    center = booking.center
    car = booking.car
    payment = booking.payment
    data = {
        "id": booking.id,
        "bookingNumber": booking.booking_number,
        "userId": booking.user_id,
        "status": booking.status,
        "totalAmount": money(booking.total_amount),
        "notes": booking.notes,
        "createdAt": booking.created_at.isoformat(),
        "updatedAt": booking.updated_at.isoformat(),
        "car": {
            "id": car.id,
            "licensePlate": car.license_plate,
            "brand": car.brand,
            "model": car.model,
            "year": car.year,
        },
        "inspectionCenter": {
            "id": center.id,
            "name": center.name,
            "nameAr": center.name_ar,
            "nameEn": center.name_en,
            "address": center.address,
            "city": center.city,
        },
        "timeSlot": {
            "id": slot.id,
            "date": slot.date.isoformat(),
            "startTime": slot.start_time,
            "endTime": slot.end_time,
        },
        "payment": None,
    }
    if payment is not None:
        data["payment"] = {
            "id": payment.id,
            "status": payment.status,
            "amount": money(payment.amount),
            "transactionId": payment.transaction_id,
            "paymentDate": payment.payment_date.isoformat() if payment.payment_date else None,
        }
    if include_user:
        u = booking.user
        data["user"] = {"id": u.id, "name": u.name, "email": u.email, "phone": u.phone}
    return data


def get_booking(s: "Session", booking_id: int) -> "Booking":
    from app.visite.modules.bookings.models import Booking

    booking = s.get(Booking, booking_id)
    if not booking:
        raise NotFound("Réservation non trouvée")
    return booking


def list_bookings(s: "Session", owner_id: int, viewer: "User", *, status: str | None = None) -> list["Booking"]:
    """Bookings of ``owner_id``, newest first. Only admins may look at someone else's bookings."""
    from app.visite.modules.bookings.models import Booking

    if owner_id != viewer.id and not is_admin(viewer.role):
        raise Forbidden()
    stmt = select(Booking).where(Booking.user_id == owner_id)
    if status:
        stmt = stmt.where(Booking.status == status)
    return list(s.scalars(stmt.order_by(Booking.created_at.desc(), Booking.id.desc())))


def reserve_seat(s: "Session", slot: "TimeSlot") -> None:
    """Take one seat; the guarded UPDATE keeps concurrent bookings from overfilling the slot."""
    from app.visite.modules.time_slots.models import TimeSlot

    result = s.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot.id)
        .where(TimeSlot.is_available.is_(True))
        .where(TimeSlot.booked_count < TimeSlot.capacity)
        .values(booked_count=TimeSlot.booked_count + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("Ce créneau n'est plus disponible")
    s.refresh(slot)


def release_seat(s: "Session", slot: "TimeSlot") -> None:
    from app.visite.modules.time_slots.models import TimeSlot

    s.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot.id)
        .where(TimeSlot.booked_count > 0)
        .values(booked_count=TimeSlot.booked_count - 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    s.refresh(slot)


def create_booking(s: "Session", payload: dict, user: "User") -> "Booking":
    """
    Book a seat on a slot for ``user`` (or, for admins, for ``payload["userId"]``).
    The booking starts PENDING at the slot price.
    """
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.cars.models import Car
    from app.visite.modules.time_slots.models import TimeSlot

    car_id = parse_int(payload.get("carId"))
    center_id = parse_int(payload.get("inspectionCenterId"))
    slot_id = parse_int(payload.get("timeSlotId"))
    if not car_id or not center_id or not slot_id:
        raise ValidationFailed("Missing required fields")

    owner_id = parse_int(payload.get("userId"), user.id)
    if owner_id != user.id and not is_admin(user.role):
        raise Forbidden()
    owner = user if owner_id == user.id else s.get(User, owner_id)
    if not owner:
        raise NotFound("Utilisateur non trouvé")

    slot = s.get(TimeSlot, slot_id)
    if not slot:
        raise NotFound("Time slot not found")
    car = s.get(Car, car_id)
    if not car or car.user_id != owner.id:
        raise NotFound("Véhicule non trouvé")
    if slot.center_id != center_id:
        raise ValidationFailed("Ce créneau n'appartient pas au centre sélectionné")
    if not slot.has_room:
        raise Conflict("Time slot is not available")

    duplicate = s.scalar(
        select(Booking.id)
        .where(Booking.user_id == owner.id)
        .where(Booking.time_slot_id == slot.id)
        .where(Booking.status != "CANCELLED")
    )
    if duplicate is not None:
        raise Conflict("Vous avez déjà une réservation pour ce créneau")

    reserve_seat(s, slot)

    now = datetime.utcnow()
    booking = Booking(
        booking_number=generate_booking_number(),
        user=owner,
        car=car,
        center=slot.center,
        time_slot=slot,
        status="PENDING",
        total_amount=slot.price,
        notes=(payload.get("notes") or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    s.add(booking)
    s.flush()

    record_event(
        s,
        actor=user,
        action="booking.create",
        entity_type="Booking",
        entity_id=str(booking.id),
        metadata={
            "booking_number": booking.booking_number,
            "user_id": owner.id,
            "time_slot_id": slot.id,
        },
    )
    return booking


def _refund_if_paid(booking: "Booking") -> bool:
    payment = booking.payment
    if payment is not None and payment.status == "COMPLETED":
        payment.status = "REFUNDED"
        payment.updated_at = datetime.utcnow()
        return True
    return False


def cancel_booking(s: "Session", booking: "Booking", user: "User", reason: str | None = None) -> "Booking":
    """Cancel up to 24 hours before the appointment; releases the seat and refunds a completed payment."""
    if booking.user_id != user.id and not is_admin(user.role):
        raise Forbidden()
    if booking.status == "CANCELLED":
        raise Conflict("Cette réservation est déjà annulée")
    if booking.status == "COMPLETED":
        raise Conflict("Impossible d'annuler une réservation terminée")

    hours_left = (appointment_start(booking) - local_now()).total_seconds() / 3600
    if 0 < hours_left < CANCELLATION_NOTICE_HOURS:
        raise Conflict("Impossible d'annuler moins de 24 heures avant le rendez-vous")

    old_status = booking.status
    booking.status = "CANCELLED"
    booking.updated_at = datetime.utcnow()
    release_seat(s, booking.time_slot)
    refunded = _refund_if_paid(booking)

    record_event(
        s,
        actor=user,
        action="booking.cancel",
        entity_type="Booking",
        entity_id=str(booking.id),
        reason=reason,
        metadata={"booking_number": booking.booking_number, "old_status": old_status, "refunded": refunded},
    )
    return booking


def admin_list_bookings(
    s: "Session",
    *,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list["Booking"], int]:
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.cars.models import Car

    stmt = select(Booking).join(User, Booking.user_id == User.id).join(Car, Booking.car_id == Car.id)
    if status:
        stmt = stmt.where(Booking.status == status)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(
            or_(
                Booking.booking_number.ilike(like),
                User.name.ilike(like),
                User.email.ilike(like),
                Car.license_plate.ilike(like),
            )
        )
    total = s.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = list(
        s.scalars(
            stmt.order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    )
    return rows, total


def admin_update_booking(s: "Session", payload: dict, user: "User") -> "Booking":
    """Back-office status/notes change. Cancelling releases the seat; a cancelled booking stays cancelled."""
    booking_id = parse_int(payload.get("bookingId"))
    if not booking_id:
        raise ValidationFailed("bookingId requis")
    booking = get_booking(s, booking_id)

    changes: dict[str, dict] = {}
    new_status = (payload.get("status") or "").strip().upper()
    if new_status:
        if new_status not in BOOKING_STATUSES:
            raise ValidationFailed(f"Statut invalide. Valeurs possibles : {', '.join(BOOKING_STATUSES)}")
        if new_status != booking.status:
            if booking.status == "CANCELLED":
                raise Conflict("Une réservation annulée ne peut pas être réactivée")
            if new_status == "CANCELLED":
                release_seat(s, booking.time_slot)
                if _refund_if_paid(booking):
                    changes["payment"] = {"old": "COMPLETED", "new": "REFUNDED"}
            changes["status"] = {"old": booking.status, "new": new_status}
            booking.status = new_status

    if "notes" in payload:
        new_notes = (payload.get("notes") or "").strip() or None
        if new_notes != booking.notes:
            changes["notes"] = {"old": booking.notes, "new": new_notes}
            booking.notes = new_notes

    booking.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="booking.admin_edit",
        entity_type="Booking",
        entity_id=str(booking.id),
        metadata={"booking_number": booking.booking_number, "changes": changes},
    )
    return booking


def bookings_due_on(s: "Session", day: date) -> list["Booking"]:
    """Active bookings whose appointment falls on ``day`` (used by the reminder job)."""
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.time_slots.models import TimeSlot

    stmt = (
        select(Booking)
        .join(TimeSlot, Booking.time_slot_id == TimeSlot.id)
        .where(TimeSlot.date == day)
        .where(Booking.status.in_(ACTIVE_STATUSES))
        .order_by(TimeSlot.start_time.asc())
    )
    return list(s.scalars(stmt))


def dashboard_stats(s: "Session", user: "User") -> dict:
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.cars.models import Car
    from app.visite.modules.payments.models import Payment

    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total_bookings = s.scalar(select(func.count(Booking.id)).where(Booking.user_id == user.id)) or 0
    completed_bookings = s.scalar(
        select(func.count(Booking.id)).where(Booking.user_id == user.id).where(Booking.status == "COMPLETED")
    ) or 0
    total_cars = s.scalar(select(func.count(Car.id)).where(Car.user_id == user.id)) or 0
    recent_bookings = s.scalar(
        select(func.count(Booking.id)).where(Booking.user_id == user.id).where(Booking.created_at >= month_start)
    ) or 0

    paid = (
        select(func.coalesce(func.sum(Payment.amount), 0))
        .join(Booking, Payment.booking_id == Booking.id)
        .where(Booking.user_id == user.id)
        .where(Payment.status == "COMPLETED")
    )
    total_spent = s.scalar(paid)
    recent_spent = s.scalar(paid.where(Payment.created_at >= month_start))

    return {
        "totalBookings": total_bookings,
        "completedBookings": completed_bookings,
        "totalCars": total_cars,
        "totalSpent": money(total_spent),
        "recentBookings": recent_bookings,
        "recentSpent": money(recent_spent),
        "completionRate": round(completed_bookings / total_bookings * 100) if total_bookings else 0,
    }
