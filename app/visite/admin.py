from datetime import datetime, time, timedelta

from flask import Blueprint, flash, g, redirect, render_template, request, url_for
from sqlalchemy import func, select

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import LOCALES, t
from app.visite.models import AuditEvent, User
from app.visite.modules.accounts.service import admin_delete_user, admin_list_users, admin_update_user, user_stats
from app.visite.modules.notifications.service import (
    TEST_TYPES,
    email_status,
    send_test_email,
    send_test_sms,
    sms_status,
)
from app.visite.rbac import ROLES, require_permission
from app.visite.utils import money, pagination_args, pagination_dict, parse_date

bp = Blueprint("admin", __name__)

RECENT_BOOKINGS = 5
AUDIT_LIMIT = 200


@bp.get("/")
@require_permission("VIEW_ADMIN_DASHBOARD")
def index():
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.centers.models import InspectionCenter
    from app.visite.modules.payments.models import Payment

    s = db_session()
    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    stats = {
        "totalUsers": s.scalar(select(func.count(User.id))) or 0,
        "totalBookings": s.scalar(select(func.count(Booking.id))) or 0,
        "totalCenters": s.scalar(select(func.count(InspectionCenter.id))) or 0,
        "pendingBookings": s.scalar(select(func.count(Booking.id)).where(Booking.status == "PENDING")) or 0,
        "monthlyRevenue": money(
            s.scalar(
                select(func.coalesce(func.sum(Payment.amount), 0))
                .where(Payment.status == "COMPLETED")
                .where(Payment.payment_date >= month_start)
            )
        ),
    }
    recent = list(s.scalars(select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()).limit(RECENT_BOOKINGS)))
    return render_template("admin/index.html", stats=stats, recent_bookings=recent)


# ---------- Users ----------
@bp.get("/users")
@require_permission("VIEW_ALL_USERS")
def users_list():
    s = db_session()
    page, limit = pagination_args(default_limit=20)
    role = (request.args.get("role") or "").strip().upper() or None
    if role not in ROLES:
        role = None
    search = (request.args.get("search") or "").strip()
    rows, total = admin_list_users(s, role=role, search=search or None, page=page, limit=limit)
    return render_template(
        "admin/users/list.html",
        users=rows,
        stats=user_stats(s),
        pagination=pagination_dict(page, limit, total),
        roles=ROLES,
        role=role,
        search=search,
        locales=LOCALES,
    )


@bp.post("/users/<int:user_id>/update")
@require_permission("MANAGE_USERS")
def users_update(user_id: int):
    s = db_session()
    payload: dict = {"userId": user_id}
    for field in ("role", "preferredLanguage"):
        if request.form.get(field):
            payload[field] = request.form.get(field)
    if "isActive" in request.form:
        payload["isActive"] = request.form.get("isActive")
    try:
        admin_update_user(s, payload, g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    flash(t("saved"), "success")
    return redirect(url_for("admin.users_list"))


@bp.post("/users/<int:user_id>/delete")
@require_permission("MANAGE_ADMIN_USERS")
def users_delete(user_id: int):
    s = db_session()
    try:
        admin_delete_user(s, user_id, g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    flash("Utilisateur supprimé.", "success")
    return redirect(url_for("admin.users_list"))


# ---------- Notifications ----------
@bp.get("/email")
@require_permission("MANAGE_SYSTEM_SETTINGS")
def notifications_settings():
    return render_template(
        "admin/notifications.html",
        email=email_status(),
        sms=sms_status(),
        types=list(TEST_TYPES),
    )


@bp.post("/email/test")
@require_permission("MANAGE_SYSTEM_SETTINGS")
def notifications_email_test():
    to = (request.form.get("email") or "").strip()
    try:
        send_test_email(request.form.get("type"), to, request.form.get("language") or "fr")
    except ServiceError as e:
        flash(e.message, "danger")
        return redirect(url_for("admin.notifications_settings"))
    flash(f"Email de test envoyé à {to}", "success")
    return redirect(url_for("admin.notifications_settings"))


@bp.post("/email/sms-test")
@require_permission("MANAGE_SYSTEM_SETTINGS")
def notifications_sms_test():
    to = (request.form.get("phone") or "").strip()
    try:
        send_test_sms(request.form.get("type"), to, request.form.get("language") or "fr")
    except ServiceError as e:
        flash(e.message, "danger")
        return redirect(url_for("admin.notifications_settings"))
    flash(f"SMS de test envoyé au {to}", "success")
    return redirect(url_for("admin.notifications_settings"))


# ---------- Audit ----------
@bp.get("/audit")
@require_permission("VIEW_SYSTEM_LOGS")
def audit_list():
    """
    Audit trail (last 200 events) with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = parse_date(request.args.get("date_from"))
    date_to = parse_date(request.args.get("date_to"))

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from doit être au format AAAA-MM-JJ", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to doit être au format AAAA-MM-JJ", "danger")

    stmt = select(AuditEvent)
    if action:
        stmt = stmt.where(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        stmt = stmt.where(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        stmt = stmt.where(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        stmt = stmt.where(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = list(s.scalars(stmt.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_LIMIT)))
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
