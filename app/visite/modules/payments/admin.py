from flask import Blueprint, flash, render_template, request

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.modules.payments.models import PAYMENT_STATUSES
from app.visite.modules.payments.service import admin_list_payments, payment_stats
from app.visite.rbac import require_permission
from app.visite.utils import pagination_args, pagination_dict, parse_date

bp = Blueprint("payments_admin", __name__)


@bp.get("/payments")
@require_permission("VIEW_PAYMENTS")
def payments_list():
    s = db_session()
    page, limit = pagination_args(default_limit=20)
    status = (request.args.get("status") or "").strip().upper() or None
    search = (request.args.get("search") or "").strip() or None
    start = parse_date(request.args.get("startDate"))
    end = parse_date(request.args.get("endDate"))
    try:
        rows, total = admin_list_payments(s, status=status, search=search, start=start, end=end, page=page, limit=limit)
    except ServiceError as e:
        flash(e.message, "danger")
        rows, total = [], 0
    return render_template(
        "admin/payments/list.html",
        payments=rows,
        stats=payment_stats(s),
        pagination=pagination_dict(page, limit, total),
        statuses=PAYMENT_STATUSES,
        status=status,
        search=search or "",
        start=start,
        end=end,
    )
