from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import t
from app.visite.modules.bookings.models import BOOKING_STATUSES
from app.visite.modules.bookings.service import admin_list_bookings, admin_update_booking, get_booking
from app.visite.modules.notifications.service import notify_booking_cancellation
from app.visite.rbac import require_permission
from app.visite.utils import pagination_args, pagination_dict

bp = Blueprint("bookings_admin", __name__)


@bp.get("/bookings")
@require_permission("VIEW_ALL_BOOKINGS")
def bookings_list():
    s = db_session()
    page, limit = pagination_args(default_limit=20)
    status = (request.args.get("status") or "").strip().upper() or None
    if status not in BOOKING_STATUSES:
        status = None
    search = (request.args.get("search") or "").strip()
    rows, total = admin_list_bookings(s, status=status, search=search or None, page=page, limit=limit)
    return render_template(
        "admin/bookings/list.html",
        bookings=rows,
        pagination=pagination_dict(page, limit, total),
        statuses=BOOKING_STATUSES,
        status=status,
        search=search,
    )


@bp.post("/bookings/<int:booking_id>/status")
@require_permission("MANAGE_BOOKINGS")
def booking_status(booking_id: int):
    s = db_session()
    payload = {"bookingId": booking_id, "status": request.form.get("status")}
    if "notes" in request.form:
        payload["notes"] = request.form.get("notes")
    try:
        before = get_booking(s, booking_id).status
        booking = admin_update_booking(s, payload, g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("bookings_admin.bookings_list"))
    s.commit()
    if before != "CANCELLED" and booking.status == "CANCELLED":
        notify_booking_cancellation(s, booking)
        s.commit()
    flash(t("saved"), "success")
    return redirect(url_for("bookings_admin.bookings_list"))
