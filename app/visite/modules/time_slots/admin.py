from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.modules.centers.service import list_centers
from app.visite.modules.time_slots.service import bulk_create_slots, delete_slot, get_slot, list_slots
from app.visite.rbac import require_permission
from app.visite.utils import parse_date, parse_int

bp = Blueprint("time_slots_admin", __name__)


@bp.get("/time-slots")
@require_permission("MANAGE_TIME_SLOTS")
def time_slots_list():
    s = db_session()
    center_id = parse_int(request.args.get("centerId"))
    day = parse_date(request.args.get("date"))
    slots = list_slots(s, center_id=center_id, day=day)
    today = date.today()
    return render_template(
        "admin/time_slots/list.html",
        slots=slots,
        centers=list_centers(s, include_inactive=True),
        center_id=center_id,
        day=day,
        default_start=today + timedelta(days=1),
        default_end=today + timedelta(days=7),
    )


@bp.post("/time-slots/bulk")
@require_permission("MANAGE_TIME_SLOTS")
def time_slots_bulk():
    s = db_session()
    starts = request.form.getlist("startTime")
    ends = request.form.getlist("endTime")
    capacities = request.form.getlist("capacity")
    prices = request.form.getlist("price")
    templates = [
        {"startTime": st, "endTime": en, "capacity": cap, "price": pr}
        for st, en, cap, pr in zip(starts, ends, capacities, prices)
        if (st or "").strip()
    ]
    payload = {
        "inspectionCenterId": request.form.get("inspectionCenterId"),
        "startDate": request.form.get("startDate"),
        "endDate": request.form.get("endDate"),
        "skipWeekends": request.form.get("skipWeekends") == "on",
        "timeSlots": templates,
    }
    try:
        result = bulk_create_slots(s, payload, g.current_user)
    except ServiceError as e:
        s.rollback()
        for msg in e.errors or [e.message]:
            flash(msg, "danger")
        return redirect(url_for("time_slots_admin.time_slots_list"))
    s.commit()
    flash(f"{result['message']} ({result['skipped']} ignorés)", "success")
    return redirect(url_for("time_slots_admin.time_slots_list", centerId=payload["inspectionCenterId"]))


@bp.post("/time-slots/<int:slot_id>/delete")
@require_permission("MANAGE_TIME_SLOTS")
def time_slot_delete(slot_id: int):
    s = db_session()
    try:
        delete_slot(s, get_slot(s, slot_id), g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("time_slots_admin.time_slots_list"))
    s.commit()
    flash("Créneau supprimé.", "success")
    return redirect(url_for("time_slots_admin.time_slots_list"))
