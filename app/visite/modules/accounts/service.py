from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy import func, or_, select
from werkzeug.security import check_password_hash, generate_password_hash

from app.visite.audit import record_event
from app.visite.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.visite.i18n import LOCALES, normalize_locale
from app.visite.models import User
from app.visite.rbac import ROLES, SUPER_ADMIN, USER, is_admin, is_super_admin
from app.visite.utils import is_valid_email, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 2
RESET_TOKEN_TTL = timedelta(hours=1)
RECENT_USERS_DAYS = 30

PREFERENCE_FIELDS = {
    "emailNotifications": "email_notifications",
    "smsNotifications": "sms_notifications",
    "reminderNotifications": "reminder_notifications",
    "marketingEmails": "marketing_emails",
}


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "preferredLanguage": user.preferred_language,
        "isActive": user.is_active,
        "emailVerified": user.email_verified_at.isoformat() if user.email_verified_at else None,
        "createdAt": user.created_at.isoformat(),
    }


def _email_taken(s: "Session", email: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return s.scalar(stmt) is not None


def validate_registration(payload: dict) -> list[str]:
    errors: list[str] = []
    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if len(name) < MIN_NAME_LENGTH:
        errors.append("Le nom doit contenir au moins 2 caractères")
    if not is_valid_email(email):
        errors.append("Invalid email format")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append("Le mot de passe doit contenir au moins 8 caractères")
    lang = payload.get("preferredLanguage")
    if lang and lang not in LOCALES:
        errors.append(f"Langue invalide. Valeurs possibles : {', '.join(LOCALES)}")
    return errors


def register_user(s: "Session", payload: dict) -> User:
    errors = validate_registration(payload)
    if errors:
        raise ValidationFailed(errors=errors)
    email = payload["email"].strip().lower()
    if _email_taken(s, email):
        raise Conflict("Un compte avec cet email existe déjà")

    now = datetime.utcnow()
    user = User(
        name=payload["name"].strip(),
        email=email,
        phone=(payload.get("phone") or "").strip() or None,
        password_hash=generate_password_hash(payload["password"]),
        role=USER,
        preferred_language=normalize_locale(payload.get("preferredLanguage")),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="user.register", entity_type="User", entity_id=str(user.id))
    return user


def authenticate(s: "Session", email: str, password: str) -> User | None:
    user = s.scalar(select(User).where(func.lower(User.email) == (email or "").strip().lower()))
    if not user or not user.is_active or not user.password_hash:
        return None
    if not check_password_hash(user.password_hash, password or ""):
        return None
    return user


def reset_url_for(user: User, token: str) -> str:
    base = (current_app.config.get("APP_URL") or "").rstrip("/")
    return f"{base}/{normalize_locale(user.preferred_language)}/auth/reset-password?token={token}"


def request_password_reset(s: "Session", email: str | None) -> User | None:
    """
    Issue a one-hour reset token and email the link. Returns the user, or
    None for unknown/inactive emails; callers answer identically either way.
    """
    from app.visite.modules.notifications.service import send_password_reset

    email = (email or "").strip().lower()
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email format")
    user = s.scalar(select(User).where(func.lower(User.email) == email))
    if not user or not user.is_active:
        logger.info("Password reset requested for unknown email")
        return None

    token = secrets.token_urlsafe(32)
    user.reset_token = token
    user.reset_token_expiry = datetime.utcnow() + RESET_TOKEN_TTL
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="user.password_reset_requested", entity_type="User", entity_id=str(user.id))
    send_password_reset(s, user, reset_url_for(user, token))
    return user


def user_for_reset_token(s: "Session", token: str | None) -> User:
    token = (token or "").strip()
    user = s.scalar(select(User).where(User.reset_token == token)) if token else None
    if not user or not user.reset_token_expiry or user.reset_token_expiry < datetime.utcnow():
        raise ValidationFailed("Invalid or expired reset token")
    return user


def reset_password(s: "Session", token: str | None, password: str | None) -> User:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Le mot de passe doit contenir au moins 8 caractères")
    user = user_for_reset_token(s, token)
    user.password_hash = generate_password_hash(password)
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="user.password_reset", entity_type="User", entity_id=str(user.id))
    return user


def update_profile(s: "Session", user: User, payload: dict) -> User:
    errors: list[str] = []
    changes: dict[str, dict] = {}

    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if len(name) < MIN_NAME_LENGTH:
            errors.append("Le nom doit contenir au moins 2 caractères")
        elif name != user.name:
            changes["name"] = {"old": user.name, "new": name}
    if "email" in payload:
        email = (payload.get("email") or "").strip().lower()
        if not is_valid_email(email):
            errors.append("Invalid email format")
        elif email != user.email:
            if _email_taken(s, email, exclude_id=user.id):
                errors.append("Cet email est déjà utilisé")
            else:
                changes["email"] = {"old": user.email, "new": email}
    if "phone" in payload:
        phone = (payload.get("phone") or "").strip() or None
        if phone != user.phone:
            changes["phone"] = {"old": user.phone, "new": phone}
    if "preferredLanguage" in payload:
        lang = payload.get("preferredLanguage")
        if lang not in LOCALES:
            errors.append(f"Langue invalide. Valeurs possibles : {', '.join(LOCALES)}")
        elif lang != user.preferred_language:
            changes["preferred_language"] = {"old": user.preferred_language, "new": lang}

    if errors:
        raise ValidationFailed(errors=errors)

    for field, change in changes.items():
        setattr(user, field, change["new"])
    if changes:
        user.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="user.update_profile",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"changes": changes},
        )
    return user


def change_password(s: "Session", user: User, payload: dict) -> None:
    current = payload.get("currentPassword") or ""
    new = payload.get("newPassword") or ""
    if not current or not new:
        raise ValidationFailed("Mot de passe actuel et nouveau mot de passe requis")
    if len(new) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Le nouveau mot de passe doit contenir au moins 8 caractères")
    if not user.password_hash:
        raise ValidationFailed("Ce compte n'a pas de mot de passe local")
    if not check_password_hash(user.password_hash, current):
        raise ValidationFailed("Mot de passe actuel incorrect")
    user.password_hash = generate_password_hash(new)
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="user.change_password", entity_type="User", entity_id=str(user.id))


def _release_active_seats(s: "Session", user: User) -> None:
    from app.visite.modules.bookings.service import release_seat

    for booking in user.bookings:
        if booking.is_active:
            release_seat(s, booking.time_slot)


def delete_account(s: "Session", user: User, *, actor: User | None = None) -> None:
    """Remove the user with their cars, bookings, payments and notifications."""
    record_event(
        s,
        actor=actor or user,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "self": actor is None or actor.id == user.id},
    )
    _release_active_seats(s, user)
    s.delete(user)
    s.flush()


def preferences_to_dict(user: User) -> dict:
    return {key: bool(getattr(user, attr)) for key, attr in PREFERENCE_FIELDS.items()}


def update_preferences(s: "Session", user: User, payload: dict) -> dict:
    changed = {}
    for key, attr in PREFERENCE_FIELDS.items():
        if key in payload:
            value = parse_bool(payload.get(key), getattr(user, attr))
            if value != getattr(user, attr):
                changed[key] = value
                setattr(user, attr, value)
    if changed:
        user.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="user.update_preferences",
            entity_type="User",
            entity_id=str(user.id),
            metadata=changed,
        )
    return preferences_to_dict(user)


# ---------- Back-office ----------
def admin_list_users(
    s: "Session",
    *,
    role: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict], int]:
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.cars.models import Car

    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == role)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(User.name.ilike(like), User.email.ilike(like), User.phone.ilike(like)))
    total = s.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    users = list(s.scalars(stmt.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit)))

    ids = [u.id for u in users]
    car_counts: dict[int, int] = {}
    booking_counts: dict[int, int] = {}
    if ids:
        car_counts = dict(s.execute(select(Car.user_id, func.count(Car.id)).where(Car.user_id.in_(ids)).group_by(Car.user_id)).all())
        booking_counts = dict(
            s.execute(
                select(Booking.user_id, func.count(Booking.id)).where(Booking.user_id.in_(ids)).group_by(Booking.user_id)
            ).all()
        )
    rows = []
    for u in users:
        data = user_to_dict(u)
        data["_count"] = {"cars": car_counts.get(u.id, 0), "bookings": booking_counts.get(u.id, 0)}
        rows.append(data)
    return rows, total


def user_stats(s: "Session") -> dict:
    since = datetime.utcnow() - timedelta(days=RECENT_USERS_DAYS)
    total = s.scalar(select(func.count(User.id))) or 0
    admins = s.scalar(select(func.count(User.id)).where(User.role.in_(("ADMIN", SUPER_ADMIN)))) or 0
    recent = s.scalar(select(func.count(User.id)).where(User.created_at >= since)) or 0
    return {"totalUsers": total, "adminUsers": admins, "regularUsers": total - admins, "recentUsers": recent}


def get_user(s: "Session", user_id: int | None) -> User:
    user = s.get(User, user_id) if user_id else None
    if not user:
        raise NotFound("Utilisateur non trouvé")
    return user


def admin_update_user(s: "Session", payload: dict, actor: User) -> User:
    """Only a super admin may touch another super admin or hand out SUPER_ADMIN."""
    user = get_user(s, parse_int(payload.get("userId")))

    if is_super_admin(user.role) and not is_super_admin(actor.role):
        raise Forbidden("Seul un super administrateur peut modifier un super administrateur")

    changes: dict[str, dict] = {}
    if "role" in payload and payload.get("role") != user.role:
        role = (payload.get("role") or "").strip().upper()
        if role not in ROLES:
            raise ValidationFailed(f"Rôle invalide. Valeurs possibles : {', '.join(ROLES)}")
        if role == SUPER_ADMIN and not is_super_admin(actor.role):
            raise Forbidden("Seul un super administrateur peut attribuer ce rôle")
        if user.id == actor.id and not is_admin(role):
            raise ValidationFailed("Vous ne pouvez pas retirer vos propres droits d'administration")
        changes["role"] = {"old": user.role, "new": role}

    if "email" in payload:
        email = (payload.get("email") or "").strip().lower()
        if not is_valid_email(email):
            raise ValidationFailed("Invalid email format")
        if email != user.email:
            if _email_taken(s, email, exclude_id=user.id):
                raise Conflict("Cet email est déjà utilisé")
            changes["email"] = {"old": user.email, "new": email}

    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if len(name) < MIN_NAME_LENGTH:
            raise ValidationFailed("Le nom doit contenir au moins 2 caractères")
        if name != user.name:
            changes["name"] = {"old": user.name, "new": name}

    if "phone" in payload:
        phone = (payload.get("phone") or "").strip() or None
        if phone != user.phone:
            changes["phone"] = {"old": user.phone, "new": phone}

    if "preferredLanguage" in payload:
        lang = payload.get("preferredLanguage")
        if lang not in LOCALES:
            raise ValidationFailed(f"Langue invalide. Valeurs possibles : {', '.join(LOCALES)}")
        if lang != user.preferred_language:
            changes["preferred_language"] = {"old": user.preferred_language, "new": lang}

    if "isActive" in payload:
        active = parse_bool(payload.get("isActive"), user.is_active)
        if active != user.is_active:
            if user.id == actor.id:
                raise ValidationFailed("Vous ne pouvez pas désactiver votre propre compte")
            changes["is_active"] = {"old": user.is_active, "new": active}

    for field, change in changes.items():
        setattr(user, field, change["new"])
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="user.admin_edit",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "changes": changes},
    )
    return user


def admin_delete_user(s: "Session", user_id: int | None, actor: User) -> None:
    if not user_id:
        raise ValidationFailed("userId requis")
    user = get_user(s, user_id)
    if user.id == actor.id:
        raise ValidationFailed("Vous ne pouvez pas supprimer votre propre compte")
    if is_super_admin(user.role) and not is_super_admin(actor.role):
        raise Forbidden()
    delete_account(s, user, actor=actor)
