from flask import Blueprint

from app.visite.modules.notifications.service import (
    TEST_TYPES,
    email_status,
    send_test_email,
    send_test_sms,
    sms_status,
)
from app.visite.rbac import api_require_permission
from app.visite.utils import json_payload

bp = Blueprint("notifications_admin_api", __name__)


@bp.get("/email/test")
@api_require_permission("MANAGE_SYSTEM_SETTINGS")
def email_test_status():
    return {**email_status(), "types": list(TEST_TYPES)}


@bp.post("/email/test")
@api_require_permission("MANAGE_SYSTEM_SETTINGS")
def email_test_send():
    payload = json_payload()
    send_test_email(payload.get("type"), payload.get("email"), payload.get("language") or "fr")
    return {"message": f"Email de test envoyé à {payload.get('email')}"}


@bp.get("/notifications/sms/test")
@api_require_permission("MANAGE_SYSTEM_SETTINGS")
def sms_test_status():
    return {**sms_status(), "types": list(TEST_TYPES)}


@bp.post("/notifications/sms/test")
@api_require_permission("MANAGE_SYSTEM_SETTINGS")
def sms_test_send():
    payload = json_payload()
    send_test_sms(payload.get("type"), payload.get("phone"), payload.get("language") or "fr")
    return {"message": f"SMS de test envoyé au {payload.get('phone')}"}
