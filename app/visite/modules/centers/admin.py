from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import t
from app.visite.modules.centers.service import (
    center_to_dict,
    create_center,
    delete_center,
    get_center,
    list_centers,
    update_center,
)
from app.visite.rbac import require_permission

bp = Blueprint("centers_admin", __name__)


def _form_payload() -> dict:
    services = [x.strip() for x in (request.form.get("services") or "").split(",") if x.strip()]
    return {
        "name": request.form.get("name"),
        "nameAr": request.form.get("nameAr"),
        "nameEn": request.form.get("nameEn"),
        "address": request.form.get("address"),
        "addressAr": request.form.get("addressAr"),
        "addressEn": request.form.get("addressEn"),
        "city": request.form.get("city"),
        "latitude": request.form.get("latitude"),
        "longitude": request.form.get("longitude"),
        "phone": request.form.get("phone"),
        "email": request.form.get("email"),
        "isActive": request.form.get("isActive", "true"),
        "services": services,
    }


@bp.get("/centers")
@require_permission("MANAGE_INSPECTION_CENTERS")
def centers_list():
    s = db_session()
    search = (request.args.get("q") or "").strip().lower()
    centers = list_centers(s, include_inactive=True)
    if search:
        centers = [c for c in centers if search in c.name.lower() or search in c.city.lower()]
    rows = [center_to_dict(c, with_counts=True, s=s) for c in centers]
    return render_template("admin/centers/list.html", centers=rows, search=search)


@bp.post("/centers")
@require_permission("MANAGE_INSPECTION_CENTERS")
def centers_create():
    s = db_session()
    try:
        center = create_center(s, _form_payload(), g.current_user)
    except ServiceError as e:
        s.rollback()
        for msg in e.errors or [e.message]:
            flash(msg, "danger")
        return redirect(url_for("centers_admin.centers_list"))
    s.commit()
    flash(f"Centre « {center.name} » créé.", "success")
    return redirect(url_for("centers_admin.centers_list"))


@bp.post("/centers/<int:center_id>/toggle")
@require_permission("MANAGE_INSPECTION_CENTERS")
def center_toggle(center_id: int):
    s = db_session()
    try:
        center = get_center(s, center_id)
        update_center(s, center, {"isActive": not center.is_active}, g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("centers_admin.centers_list"))
    s.commit()
    flash(t("saved"), "success")
    return redirect(url_for("centers_admin.centers_list"))


@bp.post("/centers/<int:center_id>/delete")
@require_permission("MANAGE_INSPECTION_CENTERS")
def center_delete(center_id: int):
    s = db_session()
    try:
        delete_center(s, get_center(s, center_id), g.current_user)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("centers_admin.centers_list"))
    s.commit()
    flash("Centre supprimé.", "success")
    return redirect(url_for("centers_admin.centers_list"))
