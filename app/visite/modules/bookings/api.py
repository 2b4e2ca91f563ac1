from flask import Blueprint, g, request

from app.visite.db import db_session
from app.visite.modules.bookings.service import (
    admin_list_bookings,
    admin_update_booking,
    booking_to_dict,
    cancel_booking,
    create_booking,
    get_booking,
    list_bookings,
)
from app.visite.modules.notifications.service import notify_booking_cancellation, notify_booking_confirmation
from app.visite.rbac import api_require_permission
from app.visite.utils import json_payload, pagination_args, pagination_dict, parse_int

bp = Blueprint("bookings_api", __name__)
admin_bp = Blueprint("bookings_admin_api", __name__)


@bp.get("")
@api_require_permission("VIEW_OWN_BOOKINGS")
def bookings_index():
    s = db_session()
    user = g.current_user
    owner_id = parse_int(request.args.get("userId"), user.id)
    bookings = list_bookings(s, owner_id, user, status=(request.args.get("status") or "").strip().upper() or None)
    return {"bookings": [booking_to_dict(b) for b in bookings]}


@bp.post("")
@api_require_permission("CREATE_BOOKINGS")
def bookings_create():
    s = db_session()
    booking = create_booking(s, json_payload(), g.current_user)
    s.commit()
    # Delivery problems are recorded on the notification rows, not surfaced to the caller.
    notify_booking_confirmation(s, booking)
    s.commit()
    return {"message": "Réservation créée avec succès", "booking": booking_to_dict(booking)}, 201


@bp.patch("/<int:booking_id>/cancel")
@api_require_permission("VIEW_OWN_BOOKINGS")
def bookings_cancel(booking_id: int):
    s = db_session()
    payload = json_payload()
    reason = (payload.get("reason") or "").strip() or None
    booking = cancel_booking(s, get_booking(s, booking_id), g.current_user, reason=reason)
    s.commit()
    notify_booking_cancellation(s, booking, reason)
    s.commit()
    return {"message": "Réservation annulée avec succès", "booking": booking_to_dict(booking)}


# ---------- Admin ----------
@admin_bp.get("")
@api_require_permission("VIEW_ALL_BOOKINGS")
def admin_bookings_index():
    s = db_session()
    page, limit = pagination_args()
    rows, total = admin_list_bookings(
        s,
        status=(request.args.get("status") or "").strip().upper() or None,
        search=(request.args.get("search") or "").strip() or None,
        page=page,
        limit=limit,
    )
    return {
        "bookings": [booking_to_dict(b, include_user=True) for b in rows],
        "pagination": pagination_dict(page, limit, total),
    }


@admin_bp.patch("")
@api_require_permission("MANAGE_BOOKINGS")
def admin_bookings_update():
    s = db_session()
    payload = json_payload()
    before = None
    booking_id = parse_int(payload.get("bookingId"))
    if booking_id:
        before = get_booking(s, booking_id).status
    booking = admin_update_booking(s, payload, g.current_user)
    s.commit()
    if before != "CANCELLED" and booking.status == "CANCELLED":
        notify_booking_cancellation(s, booking, (payload.get("reason") or "").strip() or None)
        s.commit()
    elif before == "PENDING" and booking.status == "CONFIRMED":
        notify_booking_confirmation(s, booking)
        s.commit()
    return {"message": "Réservation mise à jour avec succès", "booking": booking_to_dict(booking, include_user=True)}
