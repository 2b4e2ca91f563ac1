from flask import Blueprint, render_template

from app.visite.db import db_session
from app.visite.modules.centers.service import list_centers
from app.visite.rbac import login_required

bp = Blueprint("centers", __name__)


@bp.get("/centers")
@login_required
def centers_list():
    s = db_session()
    centers = list_centers(s)
    cities = sorted({c.city for c in centers})
    return render_template("centers/list.html", centers=centers, cities=cities)
