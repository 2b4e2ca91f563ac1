"""
Locale-prefixed routing and the small built-in message catalog.

Every page lives under ``/<locale>/...``. The ``locale`` URL value is popped
into ``g.locale`` before the view runs and injected back by ``url_for``, so
views and templates never pass it around explicitly.
"""

from __future__ import annotations

from flask import Flask, Request, g
from werkzeug.routing import BaseConverter

LOCALES = ("fr", "ar", "en")
DEFAULT_LOCALE = "fr"
RTL_LOCALES = ("ar",)


class LocaleConverter(BaseConverter):
    regex = "(?:fr|ar|en)"


def best_locale(req: Request) -> str:
    return req.accept_languages.best_match(LOCALES) or DEFAULT_LOCALE


def normalize_locale(value: str | None) -> str:
    value = (value or "").strip().lower()
    return value if value in LOCALES else DEFAULT_LOCALE


def current_locale() -> str:
    return getattr(g, "locale", None) or DEFAULT_LOCALE


def split_locale(path: str) -> tuple[str | None, str]:
    """Split ``/ar/admin/users`` into ``("ar", "/admin/users")``; unprefixed paths give ``(None, path)``."""
    parts = path.split("/", 2)
    if len(parts) >= 2 and parts[1] in LOCALES:
        rest = "/" + parts[2] if len(parts) == 3 else "/"
        return parts[1], rest
    return None, path


MESSAGES: dict[str, dict[str, str]] = {
    "fr": {
        "app.tagline": "Réservez votre visite technique en quelques clics",
        "nav.home": "Accueil",
        "nav.centers": "Centres",
        "nav.dashboard": "Tableau de bord",
        "nav.cars": "Mes véhicules",
        "nav.booking": "Réserver",
        "nav.bookings": "Mes réservations",
        "nav.profile": "Profil",
        "nav.admin": "Administration",
        "nav.signin": "Connexion",
        "nav.signup": "Inscription",
        "nav.signout": "Déconnexion",
        "admin.overview": "Vue d'ensemble",
        "admin.centers": "Centres",
        "admin.time_slots": "Créneaux",
        "admin.bookings": "Réservations",
        "admin.users": "Utilisateurs",
        "admin.payments": "Paiements",
        "admin.email": "Notifications",
        "admin.audit": "Journal d'audit",
        "auth.invalid_credentials": "Email ou mot de passe incorrect.",
        "auth.rate_limited": "Trop de tentatives de connexion. Veuillez patienter 5 minutes.",
        "auth.signed_up": "Compte créé avec succès. Vous pouvez vous connecter.",
        "auth.reset_sent": "Si un compte existe avec cet email, vous recevrez un lien de réinitialisation.",
        "auth.reset_done": "Mot de passe réinitialisé. Vous pouvez vous connecter.",
        "auth.reset_invalid": "Lien de réinitialisation invalide ou expiré.",
        "access.denied": "Vous n'avez pas accès à cette page.",
        "saved": "Modifications enregistrées.",
        "booking.created": "Réservation créée avec succès.",
        "booking.cancelled": "Réservation annulée.",
        "car.created": "Véhicule ajouté.",
    },
    "ar": {
        "app.tagline": "احجز فحصك التقني ببضع نقرات",
        "nav.home": "الرئيسية",
        "nav.centers": "المراكز",
        "nav.dashboard": "لوحة التحكم",
        "nav.cars": "مركباتي",
        "nav.booking": "احجز",
        "nav.bookings": "حجوزاتي",
        "nav.profile": "الملف الشخصي",
        "nav.admin": "الإدارة",
        "nav.signin": "تسجيل الدخول",
        "nav.signup": "إنشاء حساب",
        "nav.signout": "تسجيل الخروج",
        "admin.overview": "نظرة عامة",
        "admin.centers": "المراكز",
        "admin.time_slots": "المواعيد",
        "admin.bookings": "الحجوزات",
        "admin.users": "المستخدمون",
        "admin.payments": "المدفوعات",
        "admin.email": "الإشعارات",
        "admin.audit": "سجل التدقيق",
        "auth.invalid_credentials": "البريد الإلكتروني أو كلمة المرور غير صحيحة.",
        "auth.rate_limited": "محاولات كثيرة. يرجى الانتظار 5 دقائق.",
        "auth.signed_up": "تم إنشاء الحساب بنجاح.",
        "auth.reset_sent": "إذا كان هناك حساب بهذا البريد، ستتلقى رابط إعادة التعيين.",
        "auth.reset_done": "تمت إعادة تعيين كلمة المرور.",
        "auth.reset_invalid": "رابط إعادة التعيين غير صالح أو منتهي الصلاحية.",
        "access.denied": "ليس لديك صلاحية الوصول إلى هذه الصفحة.",
        "saved": "تم حفظ التغييرات.",
        "booking.created": "تم إنشاء الحجز بنجاح.",
        "booking.cancelled": "تم إلغاء الحجز.",
        "car.created": "تمت إضافة المركبة.",
    },
    "en": {
        "app.tagline": "Book your technical inspection in a few clicks",
        "nav.home": "Home",
        "nav.centers": "Centers",
        "nav.dashboard": "Dashboard",
        "nav.cars": "My cars",
        "nav.booking": "Book",
        "nav.bookings": "My bookings",
        "nav.profile": "Profile",
        "nav.admin": "Administration",
        "nav.signin": "Sign in",
        "nav.signup": "Sign up",
        "nav.signout": "Sign out",
        "admin.overview": "Overview",
        "admin.centers": "Centers",
        "admin.time_slots": "Time slots",
        "admin.bookings": "Bookings",
        "admin.users": "Users",
        "admin.payments": "Payments",
        "admin.email": "Notifications",
        "admin.audit": "Audit log",
        "auth.invalid_credentials": "Invalid email or password.",
        "auth.rate_limited": "Too many login attempts. Please wait 5 minutes.",
        "auth.signed_up": "Account created. You can sign in now.",
        "auth.reset_sent": "If an account with this email exists, you will receive a password reset link.",
        "auth.reset_done": "Password reset. You can sign in now.",
        "auth.reset_invalid": "Invalid or expired reset link.",
        "access.denied": "You do not have access to this page.",
        "saved": "Changes saved.",
        "booking.created": "Booking created successfully.",
        "booking.cancelled": "Booking cancelled.",
        "car.created": "Car added.",
    },
}


def t(key: str, locale: str | None = None, **kwargs) -> str:
    loc = locale or current_locale()
    text = MESSAGES.get(loc, {}).get(key) or MESSAGES[DEFAULT_LOCALE].get(key) or key
    return text.format(**kwargs) if kwargs else text


def init_i18n(app: Flask) -> None:
    app.url_map.converters["locale"] = LocaleConverter

    @app.url_value_preprocessor
    def _pull_locale(endpoint, values):  # type: ignore[no-redef]
        if values and "locale" in values:
            g.locale = values.pop("locale")

    @app.url_defaults
    def _inject_locale(endpoint, values):  # type: ignore[no-redef]
        if "locale" in values:
            return
        if app.url_map.is_endpoint_expecting(endpoint, "locale"):
            values["locale"] = current_locale()

    @app.context_processor
    def _inject_i18n() -> dict:
        loc = current_locale()
        return {
            "t": t,
            "locale": loc,
            "locales": LOCALES,
            "text_dir": "rtl" if loc in RTL_LOCALES else "ltr",
        }
