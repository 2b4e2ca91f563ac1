import pytest

from app.visite.db import session_scope
from app.visite.models import User
from app.visite.modules.time_slots.models import TimeSlot


def test_users_listing_with_counts(admin_client, seed):
    r = admin_client.get("/api/admin/users?search=example.com&limit=10")
    assert r.status_code == 200
    body = r.get_json()
    assert body["pagination"]["total"] == 4
    assert body["stats"] == {"totalUsers": 4, "adminUsers": 2, "regularUsers": 2, "recentUsers": 4}
    by_email = {u["email"]: u for u in body["users"]}
    assert by_email["user@example.com"]["_count"] == {"cars": 1, "bookings": 0}

    r = admin_client.get("/api/admin/users?role=ADMIN")
    assert [u["email"] for u in r.get_json()["users"]] == ["admin@example.com"]

    assert admin_client.get("/api/admin/users?role=OWNER").status_code == 400


def test_users_listing_denied_to_customers(user_client):
    assert user_client.get("/api/admin/users").status_code == 403


def test_admin_updates_user(app, admin_client, csrf, seed):
    headers = csrf(admin_client)
    r = admin_client.patch(
        "/api/admin/users",
        json={"userId": seed["user"], "role": "ADMIN", "isActive": False, "preferredLanguage": "en"},
        headers=headers,
    )
    assert r.status_code == 200
    user = r.get_json()["user"]
    assert user["role"] == "ADMIN"
    assert user["isActive"] is False
    assert user["preferredLanguage"] == "en"

    r = admin_client.patch(
        "/api/admin/users", json={"userId": seed["other"], "email": "admin@example.com"}, headers=headers
    )
    assert r.status_code == 409


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"role": "SUPER_ADMIN"}, 403),
        ({"role": "KING"}, 400),
    ],
)
def test_admin_role_rules(admin_client, csrf, seed, payload, expected):
    r = admin_client.patch("/api/admin/users", json={"userId": seed["user"], **payload}, headers=csrf(admin_client))
    assert r.status_code == expected


def test_admin_cannot_touch_super_admin_or_self(admin_client, csrf, seed):
    headers = csrf(admin_client)
    r = admin_client.patch("/api/admin/users", json={"userId": seed["super_admin"], "name": "X Y"}, headers=headers)
    assert r.status_code == 403
    r = admin_client.patch("/api/admin/users", json={"userId": seed["admin"], "role": "USER"}, headers=headers)
    assert r.status_code == 400
    r = admin_client.patch("/api/admin/users", json={"userId": seed["admin"], "isActive": False}, headers=headers)
    assert r.status_code == 400


def test_delete_user_is_super_admin_only(admin_client, csrf, seed):
    r = admin_client.delete(f"/api/admin/users?userId={seed['other']}", headers=csrf(admin_client))
    assert r.status_code == 403


def test_super_admin_deletes_user(app, client, login, csrf, seed, make_booking):
    login(client, "user@example.com")
    make_booking(client, seed)
    client.get("/fr/auth/signout")

    login(client, "root@example.com")
    headers = csrf(client)
    r = client.delete(f"/api/admin/users?userId={seed['super_admin']}", headers=headers)
    assert r.status_code == 400

    r = client.delete(f"/api/admin/users?userId={seed['user']}", headers=headers)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(User, seed["user"]) is None
        assert s.get(TimeSlot, seed["slot"]).booked_count == 0

    r = client.delete("/api/admin/users?userId=9999", headers=headers)
    assert r.status_code == 404


def test_deactivated_user_is_signed_out(app, client, login, seed):
    login(client, "user@example.com")
    assert client.get("/api/profile").status_code == 200
    with session_scope(app) as s:
        s.get(User, seed["user"]).is_active = False
    assert client.get("/api/profile").status_code == 401


@pytest.mark.parametrize(
    "path",
    ["/fr/admin/", "/fr/admin/users", "/fr/admin/bookings", "/fr/admin/centers", "/fr/admin/time-slots",
     "/fr/admin/payments"],
)
def test_admin_pages_render(admin_client, path):
    r = admin_client.get(path)
    assert r.status_code == 200


@pytest.mark.parametrize("path", ["/fr/admin/email", "/fr/admin/audit"])
def test_system_pages_are_super_admin_only(client, login, path):
    login(client, "admin@example.com")
    r = client.get(path)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/dashboard")

    client.get("/fr/auth/signout")
    login(client, "root@example.com")
    assert client.get(path).status_code == 200


def test_admin_page_user_update(app, admin_client, csrf, seed):
    token = csrf(admin_client)["X-CSRF-Token"]
    r = admin_client.post(
        f"/fr/admin/users/{seed['other']}/update", data={"csrf_token": token, "role": "ADMIN", "isActive": "true"}
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(User, seed["other"]).role == "ADMIN"


def test_admin_page_booking_status(app, client, login, csrf, seed, make_booking):
    login(client, "user@example.com")
    booking = make_booking(client, seed)
    client.get("/fr/auth/signout")
    login(client, "admin@example.com")
    token = csrf(client)["X-CSRF-Token"]
    r = client.post(f"/fr/admin/bookings/{booking['id']}/status", data={"csrf_token": token, "status": "CANCELLED"})
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(TimeSlot, seed["slot"]).booked_count == 0
