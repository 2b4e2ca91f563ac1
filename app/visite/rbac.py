"""
Role-based access control.

Roles map to a fixed set of permissions. The same table backs the request
guard for locale-prefixed pages, the view decorators, the API decorators
and the template helpers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import current_app, flash, g, redirect, request, url_for

from app.visite.errors import Forbidden, Unauthorized
from app.visite.i18n import DEFAULT_LOCALE, current_locale, split_locale, t
from app.visite.models import User

logger = logging.getLogger(__name__)

USER = "USER"
ADMIN = "ADMIN"
SUPER_ADMIN = "SUPER_ADMIN"
ROLES = (USER, ADMIN, SUPER_ADMIN)

ROLE_HIERARCHY = {USER: 1, ADMIN: 2, SUPER_ADMIN: 3}

_ALL = (USER, ADMIN, SUPER_ADMIN)
_STAFF = (ADMIN, SUPER_ADMIN)
_SUPER = (SUPER_ADMIN,)

PERMISSIONS: dict[str, tuple[str, ...]] = {
    # Self-service
    "VIEW_OWN_DASHBOARD": _ALL,
    "MANAGE_OWN_CARS": _ALL,
    "CREATE_BOOKINGS": _ALL,
    "VIEW_OWN_BOOKINGS": _ALL,
    "MANAGE_OWN_PROFILE": _ALL,
    # Back-office
    "VIEW_ADMIN_DASHBOARD": _STAFF,
    "MANAGE_INSPECTION_CENTERS": _STAFF,
    "MANAGE_TIME_SLOTS": _STAFF,
    "VIEW_ALL_BOOKINGS": _STAFF,
    "MANAGE_BOOKINGS": _STAFF,
    "VIEW_ALL_USERS": _STAFF,
    "MANAGE_USERS": _STAFF,
    "VIEW_PAYMENTS": _STAFF,
    "VIEW_ANALYTICS": _STAFF,
    # System
    "MANAGE_SYSTEM_SETTINGS": _SUPER,
    "MANAGE_ADMIN_USERS": _SUPER,
    "VIEW_SYSTEM_LOGS": _SUPER,
    "MANAGE_ROLES": _SUPER,
    "BACKUP_DATABASE": _SUPER,
}

# Paths are matched without their locale prefix; the longest matching prefix wins.
PROTECTED_ROUTES: dict[str, str] = {
    "/admin": "VIEW_ADMIN_DASHBOARD",
    "/admin/centers": "MANAGE_INSPECTION_CENTERS",
    "/admin/bookings": "VIEW_ALL_BOOKINGS",
    "/admin/users": "VIEW_ALL_USERS",
    "/admin/payments": "VIEW_PAYMENTS",
    "/admin/analytics": "VIEW_ANALYTICS",
    "/admin/settings": "MANAGE_SYSTEM_SETTINGS",
    "/admin/email": "MANAGE_SYSTEM_SETTINGS",
    "/admin/time-slots": "MANAGE_TIME_SLOTS",
    "/admin/audit": "VIEW_SYSTEM_LOGS",
}

SESSION_ROUTES = ("/dashboard", "/profile", "/cars", "/bookings", "/booking", "/centers")

ROLE_DISPLAY_NAMES: dict[str, dict[str, str]] = {
    "fr": {USER: "Utilisateur", ADMIN: "Administrateur", SUPER_ADMIN: "Super Administrateur"},
    "en": {USER: "User", ADMIN: "Administrator", SUPER_ADMIN: "Super Administrator"},
    "ar": {USER: "مستخدم", ADMIN: "مدير", SUPER_ADMIN: "مدير أعلى"},
}


def has_permission(role: str | None, permission: str) -> bool:
    return bool(role) and role in PERMISSIONS.get(permission, ())


def has_any_permission(role: str | None, permissions: Iterable[str]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def has_all_permissions(role: str | None, permissions: Iterable[str]) -> bool:
    return all(has_permission(role, p) for p in permissions)


def get_user_permissions(role: str | None) -> list[str]:
    return [p for p, roles in PERMISSIONS.items() if role in roles]


def is_admin(role: str | None) -> bool:
    return role in (ADMIN, SUPER_ADMIN)


def is_super_admin(role: str | None) -> bool:
    return role == SUPER_ADMIN


def can_access_admin(role: str | None) -> bool:
    return has_permission(role, "VIEW_ADMIN_DASHBOARD")


def default_redirect_path(role: str | None, locale: str = DEFAULT_LOCALE) -> str:
    if can_access_admin(role):
        return f"/{locale}/admin"
    return f"/{locale}/dashboard"


def role_level(role: str | None) -> int:
    return ROLE_HIERARCHY.get(role or "", 0)


def has_higher_or_equal_role(role: str | None, required: str) -> bool:
    return role_level(role) >= role_level(required)


def role_display_name(role: str, locale: str = DEFAULT_LOCALE) -> str:
    return ROLE_DISPLAY_NAMES.get(locale, {}).get(role, role)


def required_permission_for(path: str) -> str | None:
    """Permission for an unprefixed page path, matching whole path segments."""
    best: str | None = None
    for prefix in PROTECTED_ROUTES:
        if path == prefix or path.startswith(prefix + "/"):
            if best is None or len(prefix) > len(best):
                best = prefix
    return PROTECTED_ROUTES[best] if best else None


def requires_session(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in SESSION_ROUTES)


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return has_permission(user.role, permission_key)


def _current_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return user


def _next_path() -> str:
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return nxt


def _signin_redirect(locale: str):
    return redirect(url_for("auth.signin_get", locale=locale, next=_next_path()))


def _denied_redirect(permission_key: str, locale: str):
    g.missing_permission = permission_key
    logger.warning(
        "Forbidden: missing_permission=%s path=%s request_id=%s",
        permission_key,
        request.path,
        getattr(g, "request_id", None),
    )
    flash(t("access.denied", locale), "danger")
    return redirect(f"/{locale}/dashboard")


def guard_request():
    """
    before_request hook for locale-prefixed pages.
    Anonymous visitors go to sign-in; authenticated users missing the route permission go to their dashboard.
    """
    locale, path = split_locale(request.path)
    if locale is None:
        return None
    permission = required_permission_for(path)
    if permission is None and not requires_session(path):
        return None
    user = _current_user()
    if user is None:
        return _signin_redirect(locale)
    if permission and not has_permission(user.role, permission):
        return _denied_redirect(permission, locale)
    return None


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if _current_user() is None:
            return _signin_redirect(current_locale())
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = _current_user()
            if user is None:
                return _signin_redirect(current_locale())
            if not has_permission(user.role, permission_key):
                return _denied_redirect(permission_key, current_locale())
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def api_login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if _current_user() is None:
            raise Unauthorized()
        return fn(*args, **kwargs)

    return wrapped


def api_require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = _current_user()
            if user is None:
                raise Unauthorized()
            if not has_permission(user.role, permission_key):
                g.missing_permission = permission_key
                current_app.logger.warning(
                    "Forbidden: missing_permission=%s request_id=%s",
                    permission_key,
                    getattr(g, "request_id", None),
                )
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapped

    return decorator


ADMIN_NAVIGATION: tuple[tuple[str, str, str], ...] = (
    ("admin.overview", "admin.index", "VIEW_ADMIN_DASHBOARD"),
    ("admin.centers", "centers_admin.centers_list", "MANAGE_INSPECTION_CENTERS"),
    ("admin.time_slots", "time_slots_admin.time_slots_list", "MANAGE_TIME_SLOTS"),
    ("admin.bookings", "bookings_admin.bookings_list", "VIEW_ALL_BOOKINGS"),
    ("admin.users", "admin.users_list", "VIEW_ALL_USERS"),
    ("admin.payments", "payments_admin.payments_list", "VIEW_PAYMENTS"),
    ("admin.email", "admin.notifications_settings", "MANAGE_SYSTEM_SETTINGS"),
    ("admin.audit", "admin.audit_list", "VIEW_SYSTEM_LOGS"),
)


def permission_context() -> dict:
    """Template-side view of the current user's permissions."""
    user = _current_user()
    role = user.role if user else None

    def has_perm(key: str) -> bool:
        return has_permission(role, key)

    def has_any_perm(*keys: str) -> bool:
        return has_any_permission(role, keys)

    def has_all_perm(*keys: str) -> bool:
        return has_all_permissions(role, keys)

    return {
        "current_user": user,
        "is_authenticated": user is not None,
        "user_role": role,
        "user_permissions": get_user_permissions(role) if role else [],
        "has_perm": has_perm,
        "has_any_perm": has_any_perm,
        "has_all_perm": has_all_perm,
        "is_admin": is_admin(role),
        "is_super_admin": is_super_admin(role),
        "can_access_admin": can_access_admin(role),
        "role_display_name": role_display_name,
        "admin_navigation": [item for item in ADMIN_NAVIGATION if has_permission(role, item[2])],
    }
