"""Tests for the role/permission table and the request guards."""
from flask import g

from app.visite.models import User
from app.visite.rbac import (
    can_access_admin,
    default_redirect_path,
    get_user_permissions,
    has_all_permissions,
    has_any_permission,
    has_higher_or_equal_role,
    has_permission,
    is_admin,
    is_super_admin,
    permission_context,
    required_permission_for,
    requires_session,
    role_display_name,
)


def test_permission_table():
    assert has_permission("USER", "CREATE_BOOKINGS")
    assert not has_permission("USER", "VIEW_ADMIN_DASHBOARD")
    assert has_permission("ADMIN", "MANAGE_TIME_SLOTS")
    assert not has_permission("ADMIN", "MANAGE_SYSTEM_SETTINGS")
    assert has_permission("SUPER_ADMIN", "VIEW_SYSTEM_LOGS")
    assert not has_permission(None, "VIEW_OWN_DASHBOARD")
    assert not has_permission("GUEST", "VIEW_OWN_DASHBOARD")


def test_super_admin_holds_every_permission():
    admin_perms = set(get_user_permissions("ADMIN"))
    super_perms = set(get_user_permissions("SUPER_ADMIN"))
    assert set(get_user_permissions("USER")) < admin_perms < super_perms


def test_longest_prefix_wins():
    assert required_permission_for("/admin") == "VIEW_ADMIN_DASHBOARD"
    assert required_permission_for("/admin/") == "VIEW_ADMIN_DASHBOARD"
    assert required_permission_for("/admin/email/test") == "MANAGE_SYSTEM_SETTINGS"
    assert required_permission_for("/admin/time-slots") == "MANAGE_TIME_SLOTS"
    assert required_permission_for("/admin/usersfoo") == "VIEW_ADMIN_DASHBOARD"
    assert required_permission_for("/dashboard") is None


def test_session_routes():
    assert requires_session("/booking")
    assert requires_session("/bookings/3/cancel")
    assert not requires_session("/bookingsx")
    assert not requires_session("/")


def test_redirects_and_roles():
    assert default_redirect_path("USER", "ar") == "/ar/dashboard"
    assert default_redirect_path("ADMIN") == "/fr/admin"
    assert has_higher_or_equal_role("SUPER_ADMIN", "ADMIN")
    assert not has_higher_or_equal_role("USER", "ADMIN")
    assert role_display_name("ADMIN", "en") == "Administrator"
    assert role_display_name("ADMIN", "xx") == "ADMIN"
    assert role_display_name("OWNER", "fr") == "OWNER"


def test_permission_set_helpers():
    assert has_any_permission("USER", ["VIEW_PAYMENTS", "CREATE_BOOKINGS"])
    assert not has_any_permission("USER", ["VIEW_PAYMENTS", "MANAGE_USERS"])
    assert not has_any_permission("SUPER_ADMIN", [])
    assert has_all_permissions("ADMIN", ["VIEW_PAYMENTS", "MANAGE_BOOKINGS"])
    assert not has_all_permissions("ADMIN", ["VIEW_PAYMENTS", "VIEW_SYSTEM_LOGS"])
    assert has_all_permissions("USER", [])


def test_role_predicates():
    assert not is_admin("USER")
    assert is_admin("ADMIN")
    assert is_admin("SUPER_ADMIN")
    assert not is_admin(None)
    assert is_super_admin("SUPER_ADMIN")
    assert not is_super_admin("ADMIN")
    assert can_access_admin("ADMIN")
    assert not can_access_admin("USER")
    assert not can_access_admin(None)


def _context_for(app, role):
    with app.test_request_context("/fr/"):
        g.current_user = User(email="x@example.com", role=role, is_active=True) if role else None
        return permission_context()


def test_template_helpers_for_admin(app):
    ctx = _context_for(app, "ADMIN")
    assert ctx["is_authenticated"]
    assert ctx["has_perm"]("MANAGE_TIME_SLOTS")
    assert not ctx["has_perm"]("MANAGE_SYSTEM_SETTINGS")
    assert ctx["has_any_perm"]("VIEW_SYSTEM_LOGS", "VIEW_PAYMENTS")
    assert not ctx["has_any_perm"]()
    assert ctx["has_all_perm"]()
    assert not ctx["has_all_perm"]("VIEW_PAYMENTS", "MANAGE_ROLES")
    assert ctx["user_permissions"] == get_user_permissions("ADMIN")
    assert ctx["is_admin"] and not ctx["is_super_admin"]

    endpoints = [endpoint for _label, endpoint, _perm in ctx["admin_navigation"]]
    assert "admin.index" in endpoints
    assert "admin.audit_list" not in endpoints
    assert "admin.notifications_settings" not in endpoints


def test_template_helpers_for_super_admin_and_anonymous(app):
    ctx = _context_for(app, "SUPER_ADMIN")
    endpoints = [endpoint for _label, endpoint, _perm in ctx["admin_navigation"]]
    assert "admin.audit_list" in endpoints
    assert "admin.notifications_settings" in endpoints

    ctx = _context_for(app, None)
    assert not ctx["is_authenticated"]
    assert ctx["user_permissions"] == []
    assert ctx["admin_navigation"] == []
    assert not ctx["has_perm"]("VIEW_OWN_DASHBOARD")


def test_admin_layout_hides_system_links(client, login):
    login(client, "admin@example.com")
    html = client.get("/fr/admin/").get_data(as_text=True)
    assert "/fr/admin/users" in html
    assert "/fr/admin/audit" not in html
    assert "/fr/admin/email" not in html

    client.get("/fr/auth/signout")
    login(client, "root@example.com")
    html = client.get("/fr/admin/").get_data(as_text=True)
    assert "/fr/admin/audit" in html
    assert "/fr/admin/email" in html


def test_anonymous_page_goes_to_signin_with_next(client):
    r = client.get("/en/cars")
    assert r.status_code == 302
    assert "/en/auth/signin" in r.headers["Location"]
    assert "next=" in r.headers["Location"]


def test_user_denied_admin_pages(user_client):
    r = user_client.get("/fr/admin/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/dashboard")


def test_admin_denied_super_admin_pages(admin_client):
    r = admin_client.get("/fr/admin/audit")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/dashboard")

    r = admin_client.get("/fr/admin/bookings")
    assert r.status_code == 200


def test_super_admin_sees_audit(super_client):
    r = super_client.get("/fr/admin/audit")
    assert r.status_code == 200
    assert "auth.login" in r.get_data(as_text=True)


def test_api_requires_session(client):
    r = client.get("/api/cars")
    assert r.status_code == 401
    assert r.get_json()["error"] == "Unauthorized"


def test_api_requires_permission(user_client):
    r = user_client.get("/api/admin/bookings")
    assert r.status_code == 403

    r = user_client.get("/api/admin/users")
    assert r.status_code == 403


def test_inactive_user_is_signed_out(app, user_client, seed):
    from app.visite.db import session_scope
    from app.visite.models import User

    with session_scope(app) as s:
        s.get(User, seed["user"]).is_active = False

    r = user_client.get("/api/profile")
    assert r.status_code == 401
