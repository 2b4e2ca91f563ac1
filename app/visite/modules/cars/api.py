from flask import Blueprint, g, request

from app.visite.db import db_session
from app.visite.modules.cars.service import car_to_dict, create_car, list_cars
from app.visite.rbac import api_require_permission
from app.visite.utils import json_payload, parse_int

bp = Blueprint("cars_api", __name__)


@bp.get("")
@api_require_permission("MANAGE_OWN_CARS")
def cars_index():
    s = db_session()
    user = g.current_user
    owner_id = parse_int(request.args.get("userId"), user.id)
    cars = list_cars(s, owner_id, user)
    return {"cars": [car_to_dict(c) for c in cars]}


@bp.post("")
@api_require_permission("MANAGE_OWN_CARS")
def cars_create():
    s = db_session()
    car = create_car(s, json_payload(), g.current_user)
    s.commit()
    return {"message": "Véhicule ajouté avec succès", "car": car_to_dict(car)}, 201
