from flask import Blueprint, g, request

from app.visite.db import db_session
from app.visite.modules.centers.service import (
    center_to_dict,
    create_center,
    delete_center,
    get_center,
    list_centers,
    update_center,
)
from app.visite.rbac import api_require_permission, user_has_permission
from app.visite.utils import json_payload

bp = Blueprint("centers_api", __name__)


@bp.get("")
def centers_index():
    s = db_session()
    include_inactive = request.args.get("admin") == "true" and user_has_permission(
        getattr(g, "current_user", None), "MANAGE_INSPECTION_CENTERS"
    )
    centers = list_centers(s, include_inactive=include_inactive)
    return {"centers": [center_to_dict(c, with_counts=include_inactive, s=s) for c in centers]}


@bp.post("")
@api_require_permission("MANAGE_INSPECTION_CENTERS")
def centers_create():
    s = db_session()
    center = create_center(s, json_payload(), g.current_user)
    s.commit()
    return {"message": "Centre créé avec succès", "center": center_to_dict(center)}, 201


@bp.get("/<int:center_id>")
def center_detail(center_id: int):
    s = db_session()
    return {"center": center_to_dict(get_center(s, center_id))}


@bp.patch("/<int:center_id>")
@api_require_permission("MANAGE_INSPECTION_CENTERS")
def center_update(center_id: int):
    s = db_session()
    center = update_center(s, get_center(s, center_id), json_payload(), g.current_user)
    s.commit()
    return {"message": "Centre mis à jour avec succès", "center": center_to_dict(center)}


@bp.delete("/<int:center_id>")
@api_require_permission("MANAGE_INSPECTION_CENTERS")
def center_delete(center_id: int):
    s = db_session()
    delete_center(s, get_center(s, center_id), g.current_user)
    s.commit()
    return {"message": "Centre supprimé avec succès"}
