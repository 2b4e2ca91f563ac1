from flask import Blueprint, abort, g, redirect, render_template, request

from app.visite.db import db_session
from app.visite.i18n import LOCALES, best_locale
from app.visite.modules.bookings.service import dashboard_stats, list_bookings
from app.visite.modules.centers.service import list_centers
from app.visite.rbac import is_admin, require_permission
from app.visite.utils import parse_int

bp = Blueprint("routes", __name__)

RECENT_BOOKINGS = 5


@bp.get("/")
def index():
    return redirect(f"/{best_locale(request)}/")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/<locale:locale>/")
def home():
    s = db_session()
    return render_template("public/index.html", centers=list_centers(s))


@bp.get("/<locale:locale>/dashboard")
@require_permission("VIEW_OWN_DASHBOARD")
def dashboard():
    s = db_session()
    user = g.current_user
    bookings = list_bookings(s, user.id, user)
    return render_template(
        "dashboard/index.html",
        stats=dashboard_stats(s, user),
        recent_bookings=bookings[:RECENT_BOOKINGS],
    )


def _visible_booking(booking_id: int | None):
    from app.visite.modules.bookings.models import Booking

    user = getattr(g, "current_user", None)
    if not booking_id or user is None:
        return None
    booking = db_session().get(Booking, booking_id)
    if booking is None or (booking.user_id != user.id and not is_admin(user.role)):
        return None
    return booking


@bp.get("/<locale:locale>/booking-success")
def booking_success():
    booking = _visible_booking(parse_int(request.args.get("booking")))
    return render_template("booking/success.html", booking=booking)


@bp.get("/<locale:locale>/booking-failed")
def booking_failed():
    booking = _visible_booking(parse_int(request.args.get("booking")))
    return render_template(
        "booking/failed.html",
        booking=booking,
        error=(request.args.get("error") or "").strip(),
        message=(request.args.get("message") or "").strip(),
    )


@bp.get("/<path:path>")
def unprefixed(path: str):
    """Pages requested without a locale are sent to the visitor's best locale."""
    first = path.split("/", 1)[0]
    if first in LOCALES or len(first) == 2 or first in ("api", "static"):
        abort(404)
    target = f"/{best_locale(request)}/{path}"
    if request.query_string:
        target += "?" + request.query_string.decode("utf-8", "replace")
    return redirect(target)
