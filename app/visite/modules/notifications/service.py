from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING

from flask import current_app

from app.visite.errors import DeliveryFailed, ServiceUnavailable, ValidationFailed
from app.visite.i18n import normalize_locale
from app.visite.modules.notifications.mailer import MailerError, mailer_from_config
from app.visite.modules.notifications.messages import render, supports_sms
from app.visite.modules.notifications.sms import SmsError, sms_client_from_config
from app.visite.utils import is_valid_email, money

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking

logger = logging.getLogger(__name__)

# Admin test endpoints accept these lowercase names.
TEST_TYPES = {
    "booking_confirmation": "BOOKING_CONFIRMATION",
    "payment_confirmation": "PAYMENT_CONFIRMATION",
    "booking_reminder": "BOOKING_REMINDER",
    "booking_cancellation": "BOOKING_CANCELLATION",
}


def _features() -> dict:
    return current_app.config.get("FEATURES") or {}


def _app_name() -> str:
    return current_app.config.get("APP_NAME") or "Visite Sri3a"


def booking_context(booking: "Booking", **extra) -> dict:
    slot = booking.time_slot
    car = booking.car
    user = booking.user
    locale = normalize_locale(user.preferred_language)
    ctx = {
        "app_name": _app_name(),
        "customer_name": user.name or "Client",
        "booking_number": booking.booking_number,
        "car_info": car.label,
        "center_name": booking.center.localized_name(locale),
        "center_address": booking.center.localized_address(locale),
        "date": slot.date.strftime("%d/%m/%Y"),
        "time": f"{slot.start_time} - {slot.end_time}",
        "amount": f"{money(booking.total_amount):.2f}",
        "transaction_id": "N/A",
        "reason": "",
    }
    ctx.update(extra)
    return ctx


def sample_context() -> dict:
    """Placeholder values for the admin test sends."""
    return {
        "app_name": _app_name(),
        "customer_name": "Client Test",
        "booking_number": "VT12345678001",
        "car_info": "Dacia Logan (1234|أ|56)",
        "center_name": "Centre de Test",
        "center_address": "123 Boulevard Mohammed V, Casablanca",
        "date": date.today().strftime("%d/%m/%Y"),
        "time": "09:00 - 10:00",
        "amount": "250.00",
        "transaction_id": "TEST-TXN-001",
        "reason": "Test d'annulation",
    }


def _record(
    s: "Session",
    *,
    user: "User | None",
    booking: "Booking | None",
    kind: str,
    channel: str,
    recipient: str,
    subject: str | None,
    message: str,
    error: str | None,
) -> None:
    from app.visite.modules.notifications.models import Notification

    now = datetime.utcnow()
    s.add(
        Notification(
            user=user,
            booking=booking,
            type=kind,
            channel=channel,
            recipient=recipient,
            subject=subject,
            message=message,
            status="FAILED" if error else "SENT",
            error=error,
            sent_at=None if error else now,
            created_at=now,
        )
    )


def dispatch(
    s: "Session",
    user: "User",
    kind: str,
    context: dict,
    *,
    booking: "Booking | None" = None,
    ignore_preferences: bool = False,
) -> dict[str, bool | None]:
    """
    Send ``kind`` to ``user`` on every enabled channel.
    Returns per-channel results: True sent, False failed, None skipped.
    Delivery errors are logged and recorded, never raised.
    """
    features = _features()
    locale = normalize_locale(user.preferred_language)
    results: dict[str, bool | None] = {"email": None, "sms": None}

    wants_reminders = ignore_preferences or kind != "BOOKING_REMINDER" or user.reminder_notifications

    if features.get("email_notifications") and wants_reminders and (ignore_preferences or user.email_notifications):
        msg = render(kind, "EMAIL", locale, context)
        error = None
        try:
            mailer_from_config(current_app.config).send(user.email, msg.subject, msg.body)
        except MailerError as e:
            error = str(e)
            logger.error("Email %s to user_id=%s failed: %s", kind, user.id, e)
        _record(s, user=user, booking=booking, kind=kind, channel="EMAIL", recipient=user.email,
                subject=msg.subject, message=msg.body, error=error)
        results["email"] = error is None

    if (
        features.get("sms_notifications")
        and supports_sms(kind)
        and wants_reminders
        and user.phone
        and (ignore_preferences or user.sms_notifications)
    ):
        msg = render(kind, "SMS", locale, context)
        error = None
        try:
            sms_client_from_config(current_app.config).send(user.phone, msg.body)
        except SmsError as e:
            error = str(e)
            logger.error("SMS %s to user_id=%s failed: %s", kind, user.id, e)
        _record(s, user=user, booking=booking, kind=kind, channel="SMS", recipient=user.phone,
                subject=None, message=msg.body, error=error)
        results["sms"] = error is None

    logger.info("Notification %s for user_id=%s: %s", kind, user.id, results)
    return results


def notify_booking_confirmation(s: "Session", booking: "Booking") -> dict[str, bool | None]:
    return dispatch(s, booking.user, "BOOKING_CONFIRMATION", booking_context(booking), booking=booking)


def notify_payment_confirmation(s: "Session", booking: "Booking") -> dict[str, bool | None]:
    payment = booking.payment
    ctx = booking_context(
        booking,
        amount=f"{money(payment.amount if payment else booking.total_amount):.2f}",
        transaction_id=(payment.transaction_id if payment else None) or "N/A",
    )
    return dispatch(s, booking.user, "PAYMENT_CONFIRMATION", ctx, booking=booking)


def notify_booking_reminder(s: "Session", booking: "Booking") -> dict[str, bool | None]:
    return dispatch(s, booking.user, "BOOKING_REMINDER", booking_context(booking), booking=booking)


def notify_booking_cancellation(s: "Session", booking: "Booking", reason: str | None = None) -> dict[str, bool | None]:
    return dispatch(
        s, booking.user, "BOOKING_CANCELLATION", booking_context(booking, reason=reason or ""), booking=booking
    )


def send_password_reset(s: "Session", user: "User", reset_url: str) -> dict[str, bool | None]:
    ctx = {"app_name": _app_name(), "reset_url": reset_url}
    return dispatch(s, user, "PASSWORD_RESET", ctx, ignore_preferences=True)


def email_status() -> dict:
    configured = bool(_features().get("email_notifications"))
    return {"configured": configured, "status": "ready" if configured else "not_configured"}


def sms_status() -> dict:
    configured = bool(_features().get("sms_notifications"))
    return {"configured": configured, "status": "ready" if configured else "not_configured"}


def _test_kind(raw: str | None) -> str:
    kind = TEST_TYPES.get((raw or "").strip())
    if not kind:
        raise ValidationFailed(f"Type invalide. Valeurs possibles : {', '.join(TEST_TYPES)}")
    return kind


def send_test_email(email_type: str | None, to: str | None, locale: str = "fr") -> None:
    if not _features().get("email_notifications"):
        raise ServiceUnavailable("Le service email n'est pas configuré")
    kind = _test_kind(email_type)
    if not is_valid_email(to):
        raise ValidationFailed("Adresse email de test invalide")
    msg = render(kind, "EMAIL", normalize_locale(locale), sample_context())
    try:
        mailer_from_config(current_app.config).send(to.strip(), msg.subject, msg.body)
    except MailerError as e:
        logger.error("Test email %s to %s failed: %s", kind, to, e)
        raise DeliveryFailed("Échec de l'envoi de l'email de test") from e


def send_test_sms(sms_type: str | None, to: str | None, locale: str = "fr") -> None:
    if not _features().get("sms_notifications"):
        raise ServiceUnavailable("Le service SMS n'est pas configuré")
    kind = _test_kind(sms_type)
    if not (to or "").strip():
        raise ValidationFailed("Numéro de téléphone de test requis")
    msg = render(kind, "SMS", normalize_locale(locale), sample_context())
    try:
        sms_client_from_config(current_app.config).send(to.strip(), msg.body)
    except SmsError as e:
        logger.error("Test SMS %s to %s failed: %s", kind, to, e)
        raise DeliveryFailed("Échec de l'envoi du SMS de test") from e
