from datetime import date, timedelta

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import t
from app.visite.modules.bookings.models import BOOKING_STATUSES
from app.visite.modules.bookings.service import cancel_booking, create_booking, get_booking, list_bookings
from app.visite.modules.cars.service import list_cars
from app.visite.modules.centers.service import list_centers
from app.visite.modules.notifications.service import notify_booking_cancellation, notify_booking_confirmation
from app.visite.modules.payments.service import initiate_payment
from app.visite.modules.time_slots.service import available_slots
from app.visite.rbac import require_permission
from app.visite.utils import parse_date, parse_int

bp = Blueprint("bookings", __name__)


@bp.get("/booking")
@require_permission("CREATE_BOOKINGS")
def booking_new():
    s = db_session()
    user = g.current_user
    centers = list_centers(s)
    cars = list_cars(s, user.id, user)
    center_id = parse_int(request.args.get("centerId"))
    car_id = parse_int(request.args.get("carId"))
    tomorrow = date.today() + timedelta(days=1)
    day = parse_date(request.args.get("date")) or tomorrow
    slots = available_slots(s, center_id, day) if center_id else []
    return render_template(
        "booking/new.html",
        centers=centers,
        cars=cars,
        center_id=center_id,
        car_id=car_id,
        day=day,
        min_day=tomorrow,
        slots=slots,
    )


@bp.post("/booking")
@require_permission("CREATE_BOOKINGS")
def booking_create():
    s = db_session()
    payload = {
        "carId": request.form.get("carId"),
        "inspectionCenterId": request.form.get("inspectionCenterId"),
        "timeSlotId": request.form.get("timeSlotId"),
        "notes": request.form.get("notes"),
    }
    try:
        booking = create_booking(s, payload, g.current_user)
    except ServiceError as e:
        s.rollback()
        for msg in e.errors or [e.message]:
            flash(msg, "danger")
        return redirect(
            url_for(
                "bookings.booking_new",
                centerId=payload["inspectionCenterId"],
                carId=payload["carId"],
                date=request.form.get("date"),
            )
        )
    s.commit()
    notify_booking_confirmation(s, booking)
    s.commit()
    flash(t("booking.created"), "success")
    return redirect(url_for("bookings.bookings_list"))


@bp.get("/bookings")
@require_permission("VIEW_OWN_BOOKINGS")
def bookings_list():
    s = db_session()
    user = g.current_user
    status = (request.args.get("status") or "").strip().upper() or None
    if status not in BOOKING_STATUSES:
        status = None
    return render_template(
        "bookings/list.html",
        bookings=list_bookings(s, user.id, user, status=status),
        statuses=BOOKING_STATUSES,
        status=status,
    )


@bp.post("/bookings/<int:booking_id>/cancel")
@require_permission("VIEW_OWN_BOOKINGS")
def booking_cancel(booking_id: int):
    s = db_session()
    reason = (request.form.get("reason") or "").strip() or None
    try:
        booking = cancel_booking(s, get_booking(s, booking_id), g.current_user, reason=reason)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("bookings.bookings_list"))
    s.commit()
    notify_booking_cancellation(s, booking, reason)
    s.commit()
    flash(t("booking.cancelled"), "success")
    return redirect(url_for("bookings.bookings_list"))


@bp.post("/bookings/<int:booking_id>/pay")
@require_permission("VIEW_OWN_BOOKINGS")
def booking_pay(booking_id: int):
    s = db_session()
    try:
        result = initiate_payment(s, {"bookingId": booking_id}, g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("bookings.bookings_list"))
    s.commit()
    return render_template("payments/redirect.html", gateway_url=result["gatewayUrl"], fields=result["fields"])
