from flask import Blueprint, current_app, g, redirect, render_template, request, url_for

from app.visite.db import db_session
from app.visite.modules.notifications.service import notify_booking_confirmation, notify_payment_confirmation
from app.visite.modules.payments.service import (
    admin_list_payments,
    handle_callback,
    initiate_payment,
    payment_stats,
    payment_to_dict,
)
from app.visite.rbac import api_login_required, api_require_permission
from app.visite.utils import json_payload, pagination_args, pagination_dict, parse_date

bp = Blueprint("payments_api", __name__)
admin_bp = Blueprint("payments_admin_api", __name__)

# The gateway posts back without our session cookie or CSRF token.
CSRF_EXEMPT_ENDPOINTS = ("payments_api.cmi_callback",)


@bp.post("/cmi/initiate")
@api_login_required
def cmi_initiate():
    s = db_session()
    payload = json_payload() or request.form.to_dict()
    result = initiate_payment(s, payload, g.current_user)
    s.commit()
    return render_template(
        "payments/redirect.html",
        gateway_url=result["gatewayUrl"],
        fields=result["fields"],
    )


@bp.route("/cmi/callback", methods=["GET", "POST"])
def cmi_callback():
    s = db_session()
    params = {k: v for k, v in request.values.items()}
    outcome, info = handle_callback(s, params)
    s.commit()

    if outcome == "success":
        booking = info["payment"].booking
        notify_payment_confirmation(s, booking)
        notify_booking_confirmation(s, booking)
        s.commit()
        return redirect(url_for("routes.booking_success", locale=info["locale"], booking=info["booking_id"]))

    current_app.logger.info("CMI payment not completed: error=%s booking=%s", info["error"], info["booking_id"])
    args = {"error": info["error"]}
    if info["booking_id"]:
        args["booking"] = info["booking_id"]
    if info["message"]:
        args["message"] = info["message"]
    return redirect(url_for("routes.booking_failed", locale=info["locale"], **args))


@admin_bp.get("")
@api_require_permission("VIEW_PAYMENTS")
def payments_index():
    s = db_session()
    page, limit = pagination_args()
    rows, total = admin_list_payments(
        s,
        status=(request.args.get("status") or "").strip().upper() or None,
        search=(request.args.get("search") or "").strip() or None,
        start=parse_date(request.args.get("startDate")),
        end=parse_date(request.args.get("endDate")),
        page=page,
        limit=limit,
    )
    return {
        "payments": [payment_to_dict(p, include_booking=True) for p in rows],
        "stats": payment_stats(s),
        "pagination": pagination_dict(page, limit, total),
    }
