"""Sign-in, rate limit, registration and password reset."""
from datetime import datetime, timedelta

from sqlalchemy import select
from werkzeug.security import check_password_hash

from app.visite import auth as auth_module
from app.visite.db import session_scope
from app.visite.models import AuditEvent, User


def test_signin_bad_password_is_audited(app, client, login):
    r = login(client, "user@example.com", "wrong-password")
    assert r.status_code == 302
    assert "/fr/auth/signin" in r.headers["Location"]

    with session_scope(app) as s:
        ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "auth.login_failed")).first()
        assert ev is not None
        assert ev.entity_id == "user@example.com"


def test_signin_respects_safe_next(client):
    r = client.post(
        "/fr/auth/signin",
        data={"email": "user@example.com", "password": "password123", "next": "/fr/cars"},
    )
    assert r.headers["Location"].endswith("/fr/cars")


def test_signin_ignores_external_next(client):
    r = client.post(
        "/fr/auth/signin",
        data={"email": "user@example.com", "password": "password123", "next": "https://evil.example/"},
    )
    assert r.headers["Location"].endswith("/fr/dashboard")


def test_signin_rate_limited_after_five_failures(client, login):
    for _ in range(5):
        login(client, "user@example.com", "nope")
    r = login(client, "user@example.com")
    assert r.status_code == 302
    # Even the right password is refused while the window is open.
    r = client.get("/fr/dashboard")
    assert r.status_code == 302
    assert "/fr/auth/signin" in r.headers["Location"]


def test_successful_signin_forgets_the_address(client, login):
    login(client, "user@example.com", "nope")
    assert "127.0.0.1" in auth_module._login_attempts
    r = login(client, "user@example.com")
    assert r.status_code == 302
    assert "127.0.0.1" not in auth_module._login_attempts


def test_stale_attempts_are_evicted():
    old = datetime.utcnow() - timedelta(seconds=auth_module._LOGIN_RATE_WINDOW + 60)
    auth_module._login_attempts["10.0.0.9"] = [old] * 5
    assert auth_module._check_rate_limit("10.0.0.9") is False
    assert "10.0.0.9" not in auth_module._login_attempts
    assert auth_module._check_rate_limit("10.0.0.10") is False
    assert "10.0.0.10" not in auth_module._login_attempts


def test_signout_clears_session(user_client):
    r = user_client.get("/fr/auth/signout")
    assert r.status_code == 302
    r = user_client.get("/fr/dashboard")
    assert r.status_code == 302


def test_register_api(app, client):
    r = client.post(
        "/api/auth/register",
        json={"name": "Nadia", "email": "Nadia@Example.com", "password": "secret123", "preferredLanguage": "ar"},
    )
    assert r.status_code == 201
    body = r.get_json()
    assert body["user"]["email"] == "nadia@example.com"
    assert body["user"]["role"] == "USER"
    assert body["user"]["preferredLanguage"] == "ar"
    assert "password_hash" not in body["user"]


def test_register_api_validation(client):
    r = client.post("/api/auth/register", json={"name": "N", "email": "bad", "password": "short"})
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert len(errors) == 3


def test_register_api_duplicate_email(client):
    r = client.post(
        "/api/auth/register",
        json={"name": "Someone", "email": "USER@example.com", "password": "secret123"},
    )
    assert r.status_code == 409
    assert r.get_json()["error"] == "Un compte avec cet email existe déjà"


def test_signup_form_then_signin(client, login):
    r = client.post(
        "/en/auth/signup",
        data={
            "name": "Karim",
            "email": "karim@example.com",
            "password": "secret123",
            "confirmPassword": "secret123",
        },
    )
    assert r.status_code == 302
    r = login(client, "karim@example.com", "secret123")
    assert r.headers["Location"].endswith("/fr/dashboard")


def test_signup_form_password_mismatch(client):
    r = client.post(
        "/fr/auth/signup",
        data={"name": "Karim", "email": "karim@example.com", "password": "secret123", "confirmPassword": "other123"},
    )
    assert r.status_code == 400


def test_forgot_password_same_answer_for_unknown_email(client):
    known = client.post("/api/auth/forgot-password", json={"email": "user@example.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()


def test_forgot_password_rejects_bad_email(client):
    r = client.post("/api/auth/forgot-password", json={"email": "not-an-email"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid email format"


def test_reset_password_flow(app, client, seed, login):
    client.post("/api/auth/forgot-password", json={"email": "user@example.com"})
    with session_scope(app) as s:
        token = s.get(User, seed["user"]).reset_token
    assert token

    r = client.get(f"/api/auth/reset-password?token={token}")
    assert r.status_code == 200
    assert r.get_json() == {"valid": True, "email": "user@example.com"}

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert r.status_code == 200

    with session_scope(app) as s:
        user = s.get(User, seed["user"])
        assert user.reset_token is None
        assert check_password_hash(user.password_hash, "brand-new-pass")

    # Single use
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "another-pass"})
    assert r.status_code == 400

    r = login(client, "user@example.com", "brand-new-pass")
    assert r.headers["Location"].endswith("/fr/dashboard")


def test_reset_password_expired_token(app, client, seed):
    with session_scope(app) as s:
        user = s.get(User, seed["user"])
        user.reset_token = "expired-token"
        user.reset_token_expiry = datetime.utcnow() - timedelta(minutes=1)

    r = client.get("/api/auth/reset-password?token=expired-token")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid or expired reset token"

    r = client.get("/fr/auth/reset-password?token=expired-token")
    assert r.status_code == 302
    assert "/fr/auth/forgot-password" in r.headers["Location"]
