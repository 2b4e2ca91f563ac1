from __future__ import annotations

import logging
import time as _time
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy import func, or_, select

from app.visite.audit import record_event
from app.visite.errors import Forbidden, ServiceUnavailable, ValidationFailed
from app.visite.i18n import DEFAULT_LOCALE, normalize_locale
from app.visite.modules.bookings.service import get_booking
from app.visite.modules.payments.cmi import (
    CmiCallback,
    build_payment_request,
    cmi_config_from,
    parse_callback,
    verify_callback,
)
from app.visite.modules.payments.models import PAYMENT_STATUSES
from app.visite.rbac import is_admin
from app.visite.utils import money, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.visite.models import User
    from app.visite.modules.payments.models import Payment

logger = logging.getLogger(__name__)

PAYABLE_BOOKING_STATUSES = ("PENDING", "CONFIRMED")


def payment_to_dict(payment: "Payment", *, include_booking: bool = False) -> dict:
    data = {
        "id": payment.id,
        "bookingId": payment.booking_id,
        "amount": money(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "paymentMethod": payment.payment_method,
        "transactionId": payment.transaction_id,
        "cmiOrderId": payment.cmi_order_id,
        "cmiResponseCode": payment.cmi_response_code,
        "cmiResponseMessage": payment.cmi_response_message,
        "paymentDate": payment.payment_date.isoformat() if payment.payment_date else None,
        "createdAt": payment.created_at.isoformat(),
    }
    if include_booking:
        b = payment.booking
        data["booking"] = {
            "id": b.id,
            "bookingNumber": b.booking_number,
            "status": b.status,
            "user": {"id": b.user.id, "name": b.user.name, "email": b.user.email},
            "car": {"licensePlate": b.car.license_plate, "brand": b.car.brand, "model": b.car.model},
            "inspectionCenter": {"id": b.center.id, "name": b.center.name, "city": b.center.city},
        }
    return data


def initiate_payment(s: "Session", payload: dict, user: "User") -> dict:
    """
    Prepare (or re-arm) the payment row of a booking and return the signed
    form the browser must post to the gateway: ``{"gatewayUrl", "fields", "payment"}``.
    """
    from app.visite.modules.payments.models import Payment

    cfg = cmi_config_from(current_app.config)
    if not cfg.configured:
        raise ServiceUnavailable("Le paiement en ligne n'est pas configuré")

    booking_id = parse_int(payload.get("bookingId"))
    if not booking_id:
        raise ValidationFailed("bookingId requis")
    booking = get_booking(s, booking_id)
    if booking.user_id != user.id and not is_admin(user.role):
        raise Forbidden()
    if booking.status not in PAYABLE_BOOKING_STATUSES:
        raise ValidationFailed("Cette réservation ne peut pas être payée")

    payment = booking.payment
    if payment is not None and payment.status == "COMPLETED":
        raise ValidationFailed("Cette réservation est déjà payée")

    now = datetime.utcnow()
    order_id = f"VT-{booking.booking_number}-{int(_time.time() * 1000)}"
    if payment is None:
        payment = Payment(booking=booking, created_at=now)
        s.add(payment)
    payment.amount = booking.total_amount
    payment.currency = "MAD"
    payment.status = "PENDING"
    payment.payment_method = "CMI"
    payment.cmi_order_id = order_id
    payment.cmi_response_code = None
    payment.cmi_response_message = None
    payment.updated_at = now
    s.flush()

    owner = booking.user
    fields = build_payment_request(
        cfg,
        order_id=order_id,
        amount=booking.total_amount,
        email=owner.email,
        name=owner.name or "",
        phone=owner.phone or "",
        lang="ar" if owner.preferred_language == "ar" else "fr",
        description=f"Visite technique - {booking.car.license_plate} - {booking.center.name}",
    )

    record_event(
        s,
        actor=user,
        action="payment.initiate",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"booking_number": booking.booking_number, "order_id": order_id, "amount": money(payment.amount)},
    )
    logger.info("CMI payment initiated booking=%s order_id=%s", booking.booking_number, order_id)
    return {"gatewayUrl": cfg.gateway_url, "fields": fields, "payment": payment}


def handle_callback(s: "Session", params: dict[str, str]) -> tuple[str, dict]:
    """
    Apply a gateway callback. Returns ``(outcome, info)`` where outcome is
    ``"success"`` or ``"failed"`` and info carries ``locale``, ``booking_id``,
    ``error`` and ``message`` for the redirect.
    """
    from app.visite.modules.payments.models import Payment

    cfg = cmi_config_from(current_app.config)
    cb: CmiCallback = parse_callback(params)

    if not cb.order_id:
        logger.warning("CMI callback without order id")
        return "failed", {"locale": DEFAULT_LOCALE, "booking_id": None, "error": "no-order-id", "message": None}

    payment = s.scalar(select(Payment).where(Payment.cmi_order_id == cb.order_id))
    if payment is None:
        logger.warning("CMI callback for unknown order_id=%s", cb.order_id)
        return "failed", {"locale": DEFAULT_LOCALE, "booking_id": None, "error": "payment-not-found", "message": None}

    booking = payment.booking
    locale = normalize_locale(booking.user.preferred_language)
    now = datetime.utcnow()

    if not verify_callback(params, cfg.secret_key):
        payment.status = "FAILED"
        payment.cmi_response_code = "HASH_ERROR"
        payment.cmi_response_message = "Invalid security hash"
        payment.updated_at = now
        record_event(
            s,
            actor=None,
            action="payment.callback_rejected",
            entity_type="Payment",
            entity_id=str(payment.id),
            reason="Invalid security hash",
            metadata={"order_id": cb.order_id},
        )
        logger.warning("CMI callback hash mismatch order_id=%s", cb.order_id)
        return "failed", {"locale": locale, "booking_id": booking.id, "error": "invalid-hash", "message": None}

    payment.cmi_response_code = cb.response or cb.proc_return_code or None
    payment.cmi_response_message = cb.status_message
    payment.updated_at = now

    if cb.is_success and booking.status not in PAYABLE_BOOKING_STATUSES:
        # The booking was closed while the customer was on the gateway; its seat is gone.
        payment.status = "REFUNDED"
        payment.payment_date = now
        payment.transaction_id = cb.transaction_id or cb.auth_code or None
        record_event(
            s,
            actor=None,
            action="payment.refunded",
            entity_type="Payment",
            entity_id=str(payment.id),
            reason=f"Booking is {booking.status}",
            metadata={
                "order_id": cb.order_id,
                "booking_number": booking.booking_number,
                "booking_status": booking.status,
                "transaction_id": payment.transaction_id,
            },
        )
        logger.warning(
            "CMI payment completed for %s booking %s; refunded order_id=%s",
            booking.status,
            booking.booking_number,
            cb.order_id,
        )
        return "failed", {
            "locale": locale,
            "booking_id": booking.id,
            "error": "booking-not-payable",
            "message": "La réservation a été annulée, le paiement sera remboursé",
        }

    if cb.is_success:
        payment.status = "COMPLETED"
        payment.payment_date = now
        payment.transaction_id = cb.transaction_id or cb.auth_code or None
        booking.status = "CONFIRMED"
        booking.updated_at = now
        outcome = "success"
    else:
        payment.status = "FAILED"
        outcome = "failed"

    record_event(
        s,
        actor=None,
        action=f"payment.{'completed' if outcome == 'success' else 'failed'}",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={
            "order_id": cb.order_id,
            "booking_number": booking.booking_number,
            "response": cb.response,
            "md_status": cb.md_status,
            "transaction_id": payment.transaction_id,
        },
    )
    logger.info("CMI callback order_id=%s outcome=%s response=%s", cb.order_id, outcome, cb.response)
    return outcome, {
        "locale": locale,
        "booking_id": booking.id,
        "error": None if outcome == "success" else "payment-failed",
        "message": None if outcome == "success" else cb.status_message,
        "payment": payment,
    }


def admin_list_payments(
    s: "Session",
    *,
    status: str | None = None,
    search: str | None = None,
    start: date | None = None,
    end: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list["Payment"], int]:
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.payments.models import Payment

    stmt = select(Payment).join(Booking, Payment.booking_id == Booking.id).join(User, Booking.user_id == User.id)
    if status:
        if status not in PAYMENT_STATUSES:
            raise ValidationFailed(f"Statut invalide. Valeurs possibles : {', '.join(PAYMENT_STATUSES)}")
        stmt = stmt.where(Payment.status == status)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(
            or_(
                Booking.booking_number.ilike(like),
                Payment.transaction_id.ilike(like),
                User.name.ilike(like),
                User.email.ilike(like),
            )
        )
    if start:
        stmt = stmt.where(Payment.created_at >= datetime.combine(start, datetime.min.time()))
    if end:
        stmt = stmt.where(Payment.created_at < datetime.combine(end + timedelta(days=1), datetime.min.time()))
    total = s.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = list(
        s.scalars(stmt.order_by(Payment.created_at.desc(), Payment.id.desc()).offset((page - 1) * limit).limit(limit))
    )
    return rows, total


def payment_stats(s: "Session") -> dict:
    from app.visite.modules.payments.models import Payment

    now = datetime.utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    year_start = month_start.replace(month=1)

    def _count(status: str | None = None) -> int:
        stmt = select(func.count(Payment.id))
        if status:
            stmt = stmt.where(Payment.status == status)
        return s.scalar(stmt) or 0

    def _revenue(since: datetime):
        return s.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0))
            .where(Payment.status == "COMPLETED")
            .where(Payment.payment_date >= since)
        )

    return {
        "totalPayments": _count(),
        "completedPayments": _count("COMPLETED"),
        "pendingPayments": _count("PENDING"),
        "failedPayments": _count("FAILED"),
        "monthlyRevenue": money(_revenue(month_start)),
        "yearlyRevenue": money(_revenue(year_start)),
    }
