"""
Localized notification texts.

Each entry has an email subject/body and an SMS body per locale. Placeholders
use ``str.format`` names; missing locales fall back to French.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.visite.i18n import DEFAULT_LOCALE


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


_BOOKING_CONFIRMATION = {
    "fr": {
        "subject": "Confirmation de votre réservation - {app_name}",
        "email": (
            "Bonjour {customer_name},\n\n"
            "Votre réservation a été confirmée avec succès !\n\n"
            "Numéro de réservation : {booking_number}\n"
            "Véhicule : {car_info}\n"
            "Centre : {center_name}\n"
            "Adresse : {center_address}\n"
            "Date : {date}\n"
            "Heure : {time}\n"
            "Montant : {amount} MAD\n\n"
            "Rappel important :\n"
            "- Arrivez 15 minutes avant votre rendez-vous\n"
            "- Apportez votre carte grise et permis de conduire\n"
            "- Le véhicule doit être propre (intérieur et extérieur)\n\n"
            "Cordialement,\nL'équipe {app_name}"
        ),
        "sms": (
            "{app_name} - Confirmation de réservation\n"
            "Bonjour {customer_name},\n"
            "Votre RDV est confirmé:\n"
            "Réservation: {booking_number}\n"
            "Véhicule: {car_info}\n"
            "Centre: {center_name}\n"
            "Date: {date} à {time}\n"
            "Montant: {amount} MAD\n"
            "Arrivez 15 min avant."
        ),
    },
    "ar": {
        "subject": "تأكيد حجزك - {app_name}",
        "email": (
            "مرحبا {customer_name}،\n\n"
            "تم تأكيد حجزك بنجاح!\n\n"
            "رقم الحجز: {booking_number}\n"
            "المركبة: {car_info}\n"
            "المركز: {center_name}\n"
            "العنوان: {center_address}\n"
            "التاريخ: {date}\n"
            "الوقت: {time}\n"
            "المبلغ: {amount} درهم\n\n"
            "مع أطيب التحيات،\nفريق {app_name}"
        ),
        "sms": (
            "{app_name} - تأكيد الحجز\n"
            "مرحبا {customer_name}\n"
            "تم تأكيد موعدك:\n"
            "رقم الحجز: {booking_number}\n"
            "المركبة: {car_info}\n"
            "المركز: {center_name}\n"
            "التاريخ: {date} في {time}\n"
            "المبلغ: {amount} درهم\n"
            "الوصول قبل 15 دقيقة"
        ),
    },
    "en": {
        "subject": "Booking Confirmation - {app_name}",
        "email": (
            "Hello {customer_name},\n\n"
            "Your booking has been confirmed successfully!\n\n"
            "Booking Number: {booking_number}\n"
            "Vehicle: {car_info}\n"
            "Center: {center_name}\n"
            "Address: {center_address}\n"
            "Date: {date}\n"
            "Time: {time}\n"
            "Amount: {amount} MAD\n\n"
            "Best regards,\n{app_name} Team"
        ),
        "sms": (
            "{app_name} - Booking Confirmed\n"
            "Hello {customer_name},\n"
            "Your appointment is confirmed:\n"
            "Booking: {booking_number}\n"
            "Vehicle: {car_info}\n"
            "Center: {center_name}\n"
            "Date: {date} at {time}\n"
            "Amount: {amount} MAD\n"
            "Arrive 15 min early."
        ),
    },
}

_PAYMENT_CONFIRMATION = {
    "fr": {
        "subject": "Confirmation de paiement - {app_name}",
        "email": (
            "Bonjour {customer_name},\n\n"
            "Votre paiement a été traité avec succès.\n\n"
            "Réservation : {booking_number}\n"
            "Montant payé : {amount} MAD\n"
            "Transaction : {transaction_id}\n\n"
            "Cordialement,\nL'équipe {app_name}"
        ),
        "sms": (
            "{app_name} - Paiement confirmé\n"
            "Bonjour {customer_name},\n"
            "Paiement reçu:\n"
            "Réservation: {booking_number}\n"
            "Montant: {amount} MAD\n"
            "Transaction: {transaction_id}\n"
            "Merci !"
        ),
    },
    "ar": {
        "subject": "تأكيد الدفع - {app_name}",
        "email": (
            "مرحبا {customer_name}،\n\n"
            "تمت معالجة دفعتك بنجاح.\n\n"
            "رقم الحجز: {booking_number}\n"
            "المبلغ المدفوع: {amount} درهم\n"
            "رقم المعاملة: {transaction_id}\n\n"
            "مع أطيب التحيات،\nفريق {app_name}"
        ),
        "sms": (
            "{app_name} - تأكيد الدفع\n"
            "مرحبا {customer_name}\n"
            "تم استلام الدفع:\n"
            "رقم الحجز: {booking_number}\n"
            "المبلغ: {amount} درهم\n"
            "رقم المعاملة: {transaction_id}\n"
            "شكرا لك!"
        ),
    },
    "en": {
        "subject": "Payment Confirmation - {app_name}",
        "email": (
            "Hello {customer_name},\n\n"
            "Your payment has been processed successfully.\n\n"
            "Booking: {booking_number}\n"
            "Amount paid: {amount} MAD\n"
            "Transaction: {transaction_id}\n\n"
            "Best regards,\n{app_name} Team"
        ),
        "sms": (
            "{app_name} - Payment Confirmed\n"
            "Hello {customer_name},\n"
            "Payment received:\n"
            "Booking: {booking_number}\n"
            "Amount: {amount} MAD\n"
            "Transaction: {transaction_id}\n"
            "Thank you!"
        ),
    },
}

_BOOKING_REMINDER = {
    "fr": {
        "subject": "Rappel : votre visite technique demain - {app_name}",
        "email": (
            "Bonjour {customer_name},\n\n"
            "Nous vous rappelons votre rendez-vous de demain.\n\n"
            "Réservation : {booking_number}\n"
            "Véhicule : {car_info}\n"
            "Centre : {center_name}\n"
            "Adresse : {center_address}\n"
            "Date : {date} à {time}\n\n"
            "N'oubliez pas votre carte grise et votre permis de conduire.\n\n"
            "Cordialement,\nL'équipe {app_name}"
        ),
        "sms": (
            "{app_name} - Rappel RDV\n"
            "Bonjour {customer_name},\n"
            "Rappel: Votre RDV est demain\n"
            "Réservation: {booking_number}\n"
            "Véhicule: {car_info}\n"
            "Centre: {center_name}\n"
            "Date: {date} à {time}\n"
            "N'oubliez pas vos documents!"
        ),
    },
    "ar": {
        "subject": "تذكير: فحصك التقني غدا - {app_name}",
        "email": (
            "مرحبا {customer_name}،\n\n"
            "نذكرك بموعدك غدا.\n\n"
            "رقم الحجز: {booking_number}\n"
            "المركبة: {car_info}\n"
            "المركز: {center_name}\n"
            "العنوان: {center_address}\n"
            "التاريخ: {date} في {time}\n\n"
            "مع أطيب التحيات،\nفريق {app_name}"
        ),
        "sms": (
            "{app_name} - تذكير بالموعد\n"
            "مرحبا {customer_name}\n"
            "تذكير: موعدك غدا\n"
            "رقم الحجز: {booking_number}\n"
            "المركبة: {car_info}\n"
            "المركز: {center_name}\n"
            "التاريخ: {date} في {time}\n"
            "لا تنس وثائقك!"
        ),
    },
    "en": {
        "subject": "Reminder: your inspection is tomorrow - {app_name}",
        "email": (
            "Hello {customer_name},\n\n"
            "This is a reminder of your appointment tomorrow.\n\n"
            "Booking: {booking_number}\n"
            "Vehicle: {car_info}\n"
            "Center: {center_name}\n"
            "Address: {center_address}\n"
            "Date: {date} at {time}\n\n"
            "Don't forget your registration card and driving licence.\n\n"
            "Best regards,\n{app_name} Team"
        ),
        "sms": (
            "{app_name} - Appointment Reminder\n"
            "Hello {customer_name},\n"
            "Reminder: Your appointment is tomorrow\n"
            "Booking: {booking_number}\n"
            "Vehicle: {car_info}\n"
            "Center: {center_name}\n"
            "Date: {date} at {time}\n"
            "Don't forget your documents!"
        ),
    },
}

_BOOKING_CANCELLATION = {
    "fr": {
        "subject": "Annulation de votre réservation - {app_name}",
        "email": (
            "Bonjour {customer_name},\n\n"
            "Votre réservation {booking_number} pour {car_info} a été annulée.\n"
            "{reason_line}\n"
            "Vous pouvez reprendre rendez-vous à tout moment sur notre site.\n\n"
            "Cordialement,\nL'équipe {app_name}"
        ),
        "sms": (
            "{app_name} - Annulation\n"
            "Bonjour {customer_name},\n"
            "Votre réservation {booking_number} pour {car_info} a été annulée.\n"
            "{reason_line}\n"
            "Vous pouvez reprendre RDV sur notre site."
        ),
        "reason": "Raison : {reason}",
    },
    "ar": {
        "subject": "إلغاء حجزك - {app_name}",
        "email": (
            "مرحبا {customer_name}،\n\n"
            "تم إلغاء حجزك {booking_number} للمركبة {car_info}.\n"
            "{reason_line}\n"
            "يمكنك حجز موعد جديد على موقعنا.\n\n"
            "مع أطيب التحيات،\nفريق {app_name}"
        ),
        "sms": (
            "{app_name} - إلغاء الحجز\n"
            "مرحبا {customer_name}\n"
            "تم إلغاء حجزك {booking_number} للمركبة {car_info}\n"
            "{reason_line}\n"
            "يمكنك حجز موعد جديد على موقعنا"
        ),
        "reason": "السبب: {reason}",
    },
    "en": {
        "subject": "Booking Cancelled - {app_name}",
        "email": (
            "Hello {customer_name},\n\n"
            "Your booking {booking_number} for {car_info} has been cancelled.\n"
            "{reason_line}\n"
            "You can book again on our website at any time.\n\n"
            "Best regards,\n{app_name} Team"
        ),
        "sms": (
            "{app_name} - Booking Cancelled\n"
            "Hello {customer_name},\n"
            "Your booking {booking_number} for {car_info} has been cancelled.\n"
            "{reason_line}\n"
            "You can book again on our website."
        ),
        "reason": "Reason: {reason}",
    },
}

_PASSWORD_RESET = {
    "fr": {
        "subject": "Réinitialisation de votre mot de passe - {app_name}",
        "email": (
            "Bonjour,\n\n"
            "Vous avez demandé la réinitialisation de votre mot de passe.\n"
            "Cliquez sur le lien ci-dessous pour choisir un nouveau mot de passe :\n\n"
            "{reset_url}\n\n"
            "Ce lien expire dans 1 heure. Si vous n'êtes pas à l'origine de cette demande, ignorez cet email.\n\n"
            "L'équipe {app_name}"
        ),
    },
    "ar": {
        "subject": "إعادة تعيين كلمة المرور - {app_name}",
        "email": (
            "مرحبا،\n\n"
            "لقد طلبت إعادة تعيين كلمة المرور.\n"
            "اضغط على الرابط التالي لاختيار كلمة مرور جديدة:\n\n"
            "{reset_url}\n\n"
            "تنتهي صلاحية هذا الرابط خلال ساعة واحدة.\n\n"
            "فريق {app_name}"
        ),
    },
    "en": {
        "subject": "Reset your password - {app_name}",
        "email": (
            "Hello,\n\n"
            "You asked to reset your password.\n"
            "Follow the link below to choose a new one:\n\n"
            "{reset_url}\n\n"
            "This link expires in 1 hour. If you did not request it, ignore this email.\n\n"
            "The {app_name} team"
        ),
    },
}

TEMPLATES: dict[str, dict[str, dict[str, str]]] = {
    "BOOKING_CONFIRMATION": _BOOKING_CONFIRMATION,
    "PAYMENT_CONFIRMATION": _PAYMENT_CONFIRMATION,
    "BOOKING_REMINDER": _BOOKING_REMINDER,
    "BOOKING_CANCELLATION": _BOOKING_CANCELLATION,
    "PASSWORD_RESET": _PASSWORD_RESET,
}


def _entry(kind: str, locale: str) -> dict[str, str]:
    by_locale = TEMPLATES[kind]
    return by_locale.get(locale) or by_locale[DEFAULT_LOCALE]


def supports_sms(kind: str) -> bool:
    return "sms" in TEMPLATES[kind][DEFAULT_LOCALE]


def render(kind: str, channel: str, locale: str, context: dict) -> RenderedMessage:
    """Render ``kind`` for ``channel`` ("EMAIL" or "SMS") in ``locale``."""
    entry = _entry(kind, locale)
    ctx = dict(context)
    reason = (ctx.get("reason") or "").strip()
    template = entry["email" if channel == "EMAIL" else "sms"]
    if reason and "reason" in entry:
        ctx["reason_line"] = entry["reason"].format(reason=reason)
    else:
        template = template.replace("{reason_line}\n", "")
    return RenderedMessage(subject=entry["subject"].format(**ctx), body=template.format(**ctx))
