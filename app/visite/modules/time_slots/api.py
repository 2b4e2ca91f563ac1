from flask import Blueprint, g, request

from app.visite.db import db_session
from app.visite.errors import ValidationFailed
from app.visite.modules.time_slots.service import (
    available_slots,
    bulk_create_slots,
    create_slot,
    delete_slot,
    get_slot,
    list_slots,
    slot_to_dict,
    update_slot,
)
from app.visite.rbac import api_login_required, api_require_permission
from app.visite.utils import json_payload, parse_date, parse_int

bp = Blueprint("time_slots_api", __name__)
admin_bp = Blueprint("time_slots_admin_api", __name__)


@bp.get("")
@api_login_required
def time_slots_index():
    center_id = parse_int(request.args.get("centerId"))
    raw_date = (request.args.get("date") or "").strip()
    if not center_id or not raw_date:
        raise ValidationFailed("Missing centerId or date parameter")
    day = parse_date(raw_date)
    if day is None:
        raise ValidationFailed("Invalid date format")
    s = db_session()
    return {"timeSlots": [slot_to_dict(slot) for slot in available_slots(s, center_id, day)]}


@bp.post("")
@api_require_permission("MANAGE_TIME_SLOTS")
def time_slots_create():
    s = db_session()
    slot = create_slot(s, json_payload(), g.current_user)
    s.commit()
    return slot_to_dict(slot), 201


# ---------- Admin ----------
@admin_bp.get("")
@api_require_permission("MANAGE_TIME_SLOTS")
def admin_time_slots_index():
    s = db_session()
    slots = list_slots(
        s,
        center_id=parse_int(request.args.get("centerId")),
        day=parse_date(request.args.get("date")),
        start=parse_date(request.args.get("startDate")),
        end=parse_date(request.args.get("endDate")),
    )
    return {"timeSlots": [slot_to_dict(slot, include_center=True) for slot in slots], "total": len(slots)}


@admin_bp.post("/bulk")
@api_require_permission("MANAGE_TIME_SLOTS")
def admin_time_slots_bulk():
    s = db_session()
    result = bulk_create_slots(s, json_payload(), g.current_user)
    s.commit()
    return result


@admin_bp.get("/<int:slot_id>")
@api_require_permission("MANAGE_TIME_SLOTS")
def admin_time_slot_detail(slot_id: int):
    s = db_session()
    return {"timeSlot": slot_to_dict(get_slot(s, slot_id), include_center=True)}


@admin_bp.patch("/<int:slot_id>")
@api_require_permission("MANAGE_TIME_SLOTS")
def admin_time_slot_update(slot_id: int):
    s = db_session()
    slot = update_slot(s, get_slot(s, slot_id), json_payload(), g.current_user)
    s.commit()
    return {"message": "Créneau mis à jour avec succès", "timeSlot": slot_to_dict(slot, include_center=True)}


@admin_bp.delete("/<int:slot_id>")
@api_require_permission("MANAGE_TIME_SLOTS")
def admin_time_slot_delete(slot_id: int):
    s = db_session()
    delete_slot(s, get_slot(s, slot_id), g.current_user)
    s.commit()
    return {"message": "Créneau supprimé avec succès"}
