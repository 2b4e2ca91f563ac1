from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import t
from app.visite.modules.cars.service import MIN_YEAR, create_car, list_cars, max_year
from app.visite.rbac import require_permission

bp = Blueprint("cars", __name__)


@bp.get("/cars")
@require_permission("MANAGE_OWN_CARS")
def cars_list():
    s = db_session()
    user = g.current_user
    return render_template(
        "cars/list.html",
        cars=list_cars(s, user.id, user),
        min_year=MIN_YEAR,
        max_year=max_year(),
    )


@bp.post("/cars")
@require_permission("MANAGE_OWN_CARS")
def cars_create():
    s = db_session()
    payload = {
        "licensePlate": request.form.get("licensePlate"),
        "brand": request.form.get("brand"),
        "model": request.form.get("model"),
        "year": request.form.get("year"),
    }
    try:
        create_car(s, payload, g.current_user)
    except ServiceError as e:
        s.rollback()
        for msg in e.errors or [e.message]:
            flash(msg, "danger")
        return redirect(url_for("cars.cars_list"))
    s.commit()
    flash(t("car.created"), "success")
    return redirect(url_for("cars.cars_list"))
