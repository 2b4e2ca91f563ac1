from sqlalchemy import func, select
from werkzeug.security import check_password_hash

from app.visite.db import session_scope
from app.visite.models import User
from app.visite.modules.cars.models import Car
from app.visite.modules.time_slots.models import TimeSlot


def test_profile_requires_login(client, seed):
    assert client.get("/api/profile").status_code == 401
    r = client.get("/fr/profile")
    assert r.status_code == 302
    assert "/fr/auth/signin" in r.headers["Location"]


def test_get_and_update_profile(app, user_client, csrf, seed):
    r = user_client.get("/api/profile")
    assert r.status_code == 200
    assert r.get_json()["user"]["email"] == "user@example.com"

    r = user_client.patch(
        "/api/profile",
        json={"name": "Yassine A.", "phone": "0699999999", "preferredLanguage": "ar"},
        headers=csrf(user_client),
    )
    assert r.status_code == 200
    user = r.get_json()["user"]
    assert user["name"] == "Yassine A."
    assert user["preferredLanguage"] == "ar"


def test_update_profile_validation(user_client, csrf, seed):
    headers = csrf(user_client)
    r = user_client.patch("/api/profile", json={"name": "Y", "email": "nope"}, headers=headers)
    assert r.status_code == 400
    assert len(r.get_json()["errors"]) == 2

    r = user_client.patch("/api/profile", json={"email": "other@example.com"}, headers=headers)
    assert r.status_code == 400

    r = user_client.patch("/api/profile", json={"preferredLanguage": "de"}, headers=headers)
    assert r.status_code == 400


def test_change_password(app, user_client, csrf, seed):
    headers = csrf(user_client)
    r = user_client.patch(
        "/api/profile/password", json={"currentPassword": "wrong-pass", "newPassword": "newpassword1"}, headers=headers
    )
    assert r.status_code == 400
    r = user_client.patch(
        "/api/profile/password", json={"currentPassword": "password123", "newPassword": "short"}, headers=headers
    )
    assert r.status_code == 400
    r = user_client.patch(
        "/api/profile/password", json={"currentPassword": "password123", "newPassword": "newpassword1"}, headers=headers
    )
    assert r.status_code == 200
    with session_scope(app) as s:
        u = s.get(User, seed["user"])
        assert check_password_hash(u.password_hash, "newpassword1")


def test_preferences(user_client, csrf, seed):
    r = user_client.get("/api/profile/preferences")
    assert r.get_json()["preferences"] == {
        "emailNotifications": True,
        "smsNotifications": False,
        "reminderNotifications": True,
        "marketingEmails": False,
    }
    r = user_client.patch(
        "/api/profile/preferences",
        json={"smsNotifications": True, "reminderNotifications": False},
        headers=csrf(user_client),
    )
    assert r.status_code == 200
    prefs = r.get_json()["preferences"]
    assert prefs["smsNotifications"] is True
    assert prefs["reminderNotifications"] is False
    assert prefs["emailNotifications"] is True


def test_preferences_form_unchecks_missing_boxes(app, user_client, csrf, seed):
    token = csrf(user_client)["X-CSRF-Token"]
    r = user_client.post("/fr/profile/preferences", data={"csrf_token": token, "smsNotifications": "on"})
    assert r.status_code == 302
    with session_scope(app) as s:
        u = s.get(User, seed["user"])
        assert u.sms_notifications is True
        assert u.email_notifications is False
        assert u.reminder_notifications is False


def test_profile_page_language_switch(user_client, csrf, seed):
    token = csrf(user_client)["X-CSRF-Token"]
    r = user_client.post(
        "/fr/profile",
        data={"csrf_token": token, "name": "Yassine Alaoui", "email": "user@example.com",
              "phone": "0612345678", "preferredLanguage": "en"},
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/en/profile")


def test_delete_account_releases_seats(app, user_client, csrf, seed, make_booking):
    make_booking(user_client, seed)
    r = user_client.delete("/api/profile", headers=csrf(user_client))
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.get(User, seed["user"]) is None
        assert s.scalar(select(func.count(Car.id)).where(Car.user_id == seed["user"])) == 0
        assert s.get(TimeSlot, seed["slot"]).booked_count == 0

    # Session is gone with the account
    assert user_client.get("/api/profile").status_code == 401


def test_delete_page_needs_confirmation(app, user_client, csrf, seed):
    token = csrf(user_client)["X-CSRF-Token"]
    r = user_client.post("/fr/profile/delete", data={"csrf_token": token, "confirm": "nope"})
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(User, seed["user"]) is not None
