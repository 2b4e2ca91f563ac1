from datetime import timedelta

import pytest
from sqlalchemy import select

from app.visite.db import session_scope
from app.visite.models import User
from app.visite.modules.bookings.models import Booking
from app.visite.modules.notifications import service as notification_service
from app.visite.modules.notifications.mailer import MailerError
from app.visite.modules.notifications.messages import render, supports_sms
from app.visite.modules.notifications.models import Notification
from app.visite.modules.notifications.sms import format_phone_number
from scripts.send_reminders import send_reminders


class FakeMailer:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, to, subject, body, html=None):
        if self.fail:
            raise MailerError("boom")
        self.sent.append((to, subject, body))


class FakeSms:
    def __init__(self):
        self.sent = []

    def send(self, to, body):
        self.sent.append((to, body))
        return "SM1"


@pytest.fixture()
def channels(app, monkeypatch):
    """Turn both channels on and capture what would be delivered."""
    mailer, sms = FakeMailer(), FakeSms()
    app.config["FEATURES"] = {**app.config["FEATURES"], "email_notifications": True, "sms_notifications": True}
    monkeypatch.setattr(notification_service, "mailer_from_config", lambda config: mailer)
    monkeypatch.setattr(notification_service, "sms_client_from_config", lambda config: sms)
    return mailer, sms


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0612345678", "+212612345678"),
        ("06 12 34 56 78", "+212612345678"),
        ("212612345678", "+212612345678"),
        ("+212 612-345-678", "+212612345678"),
        ("612345678", "+212612345678"),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_render_localized_messages():
    ctx = {
        "app_name": "Visite Sri3a",
        "customer_name": "Yassine",
        "booking_number": "VT1",
        "car_info": "Dacia Logan",
        "center_name": "Centre",
        "center_address": "Rue 1",
        "date": "01/01/2030",
        "time": "09:00 - 10:00",
        "amount": "200.00",
        "transaction_id": "T1",
        "reason": "",
    }
    fr = render("BOOKING_CONFIRMATION", "EMAIL", "fr", ctx)
    assert "VT1" in fr.body
    assert "Visite Sri3a" in fr.subject
    en = render("BOOKING_CONFIRMATION", "EMAIL", "en", ctx)
    assert en.subject != fr.subject

    with_reason = render("BOOKING_CANCELLATION", "EMAIL", "fr", {**ctx, "reason": "Panne"})
    without = render("BOOKING_CANCELLATION", "EMAIL", "fr", ctx)
    assert "Panne" in with_reason.body
    assert "{reason_line}" not in without.body


def test_sms_support():
    assert supports_sms("BOOKING_REMINDER")
    assert not supports_sms("PASSWORD_RESET")


def test_booking_confirmation_is_recorded(app, user_client, seed, make_booking, channels):
    mailer, sms = channels
    booking = make_booking(user_client, seed)
    assert len(mailer.sent) == 1
    assert mailer.sent[0][0] == "user@example.com"
    # SMS is off in the default preferences
    assert sms.sent == []

    with session_scope(app) as s:
        rows = list(s.scalars(select(Notification).where(Notification.booking_id == booking["id"])))
        assert [(n.type, n.channel, n.status) for n in rows] == [("BOOKING_CONFIRMATION", "EMAIL", "SENT")]


def test_dispatch_honours_preferences(app, seed, channels):
    mailer, sms = channels
    with app.app_context(), session_scope(app) as s:
        user = s.get(User, seed["user"])
        user.sms_notifications = True
        user.reminder_notifications = False
        ctx = notification_service.sample_context()

        results = notification_service.dispatch(s, user, "BOOKING_REMINDER", ctx)
        assert results == {"email": None, "sms": None}

        results = notification_service.dispatch(s, user, "BOOKING_CONFIRMATION", ctx)
        assert results == {"email": True, "sms": True}
        assert sms.sent[0][0] == "0612345678"

        user.email_notifications = False
        results = notification_service.dispatch(s, user, "PASSWORD_RESET", {"app_name": "X", "reset_url": "u"},
                                                ignore_preferences=True)
        assert results == {"email": True, "sms": None}


def test_delivery_failure_is_recorded_not_raised(app, seed, channels, monkeypatch):
    failing = FakeMailer(fail=True)
    monkeypatch.setattr(notification_service, "mailer_from_config", lambda config: failing)
    with app.app_context(), session_scope(app) as s:
        user = s.get(User, seed["user"])
        results = notification_service.dispatch(s, user, "BOOKING_CONFIRMATION", notification_service.sample_context())
        assert results["email"] is False
    with session_scope(app) as s:
        row = s.scalars(select(Notification)).one()
        assert row.status == "FAILED"
        assert row.error == "boom"
        assert row.sent_at is None


def test_reminders_for_day(app, user_client, seed, slot_day, make_booking, channels):
    mailer, _ = channels
    make_booking(user_client, seed)
    mailer.sent.clear()

    counts = send_reminders(app, slot_day)
    assert counts == {"bookings": 1, "email": 1, "sms": 0, "failed": 0}
    assert send_reminders(app, slot_day + timedelta(days=365))["bookings"] == 0


def test_reminders_skip_cancelled(app, user_client, csrf, seed, slot_day, make_booking):
    booking = make_booking(user_client, seed)
    user_client.patch(f"/api/bookings/{booking['id']}/cancel", json={}, headers=csrf(user_client))
    with session_scope(app) as s:
        assert s.get(Booking, booking["id"]).status == "CANCELLED"
    assert send_reminders(app, slot_day)["bookings"] == 0


def test_test_endpoints_unconfigured(super_client, csrf):
    headers = csrf(super_client)
    r = super_client.get("/api/admin/email/test")
    assert r.get_json()["configured"] is False
    r = super_client.post("/api/admin/email/test", json={"type": "booking_confirmation", "email": "a@b.ma"},
                          headers=headers)
    assert r.status_code == 503
    r = super_client.post("/api/admin/notifications/sms/test", json={"type": "booking_reminder", "phone": "0612345678"},
                          headers=headers)
    assert r.status_code == 503


def test_test_endpoints_configured(super_client, csrf, channels, monkeypatch):
    mailer, sms = channels
    headers = csrf(super_client)
    r = super_client.post("/api/admin/email/test", json={"type": "nope", "email": "a@b.ma"}, headers=headers)
    assert r.status_code == 400
    r = super_client.post("/api/admin/email/test", json={"type": "booking_confirmation", "email": "bad"},
                          headers=headers)
    assert r.status_code == 400

    r = super_client.post("/api/admin/email/test", json={"type": "booking_reminder", "email": "ops@visite.ma",
                                                          "language": "ar"}, headers=headers)
    assert r.status_code == 200
    assert mailer.sent[0][0] == "ops@visite.ma"

    r = super_client.post("/api/admin/notifications/sms/test", json={"type": "booking_reminder", "phone": "0612345678"},
                          headers=headers)
    assert r.status_code == 200
    assert len(sms.sent) == 1

    monkeypatch.setattr(notification_service, "mailer_from_config", lambda config: FakeMailer(fail=True))
    r = super_client.post("/api/admin/email/test", json={"type": "booking_confirmation", "email": "ops@visite.ma"},
                          headers=headers)
    assert r.status_code == 502


def test_test_endpoints_need_super_admin(admin_client):
    assert admin_client.get("/api/admin/email/test").status_code == 403
