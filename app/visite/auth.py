from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.visite.audit import record_event
from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import current_locale, t
from app.visite.models import User
from app.visite.modules.accounts.service import (
    authenticate,
    register_user,
    request_password_reset,
    reset_password,
    user_for_reset_token,
)
from app.visite.rbac import default_redirect_path
from app.visite.utils import safe_next

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    recent = [ts for ts in _login_attempts.get(ip, ()) if ts > cutoff]
    if not recent:
        # Idle addresses leave the table so it only holds open windows.
        _login_attempts.pop(ip, None)
        return False
    _login_attempts[ip] = recent
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except (SQLAlchemyError, ValueError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


@bp.get("/signin")
def signin_get():
    if getattr(g, "current_user", None):
        return redirect(default_redirect_path(g.current_user.role, current_locale()))
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/signin.html", next=nxt)


@bp.post("/signin")
def signin_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash(t("auth.rate_limited"), "danger")
        return redirect(url_for("auth.signin_get", next=nxt or None))

    _record_attempt(ip)

    s = db_session()
    user = authenticate(s, email, password)
    if user is None:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        flash(t("auth.invalid_credentials"), "danger")
        return redirect(url_for("auth.signin_get", next=nxt or None))

    session["user_id"] = user.id
    session.permanent = True
    _login_attempts.pop(ip, None)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Sign-in user_id=%s request_id=%s", user.id, getattr(g, "request_id", None))
    return redirect(safe_next(nxt) or default_redirect_path(user.role, current_locale()))


@bp.get("/signup")
def signup_get():
    return render_template("auth/signup.html", form={})


@bp.post("/signup")
def signup_post():
    s = db_session()
    payload = {
        "name": request.form.get("name"),
        "email": request.form.get("email"),
        "phone": request.form.get("phone"),
        "password": request.form.get("password"),
        "preferredLanguage": current_locale(),
    }
    if (request.form.get("password") or "") != (request.form.get("confirmPassword") or ""):
        flash("Les mots de passe ne correspondent pas", "danger")
        return render_template("auth/signup.html", form=payload), 400
    try:
        register_user(s, payload)
    except ServiceError as e:
        s.rollback()
        for msg in e.errors or [e.message]:
            flash(msg, "danger")
        return render_template("auth/signup.html", form=payload), e.status_code
    s.commit()
    flash(t("auth.signed_up"), "success")
    return redirect(url_for("auth.signin_get"))


@bp.get("/signout")
def signout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.home"))


@bp.get("/forgot-password")
def forgot_password_get():
    return render_template("auth/forgot_password.html")


@bp.post("/forgot-password")
def forgot_password_post():
    s = db_session()
    try:
        request_password_reset(s, request.form.get("email"))
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("auth.forgot_password_get"))
    s.commit()
    flash(t("auth.reset_sent"), "info")
    return redirect(url_for("auth.signin_get"))


@bp.get("/reset-password")
def reset_password_get():
    s = db_session()
    token = (request.args.get("token") or "").strip()
    try:
        user_for_reset_token(s, token)
    except ServiceError:
        flash(t("auth.reset_invalid"), "danger")
        return redirect(url_for("auth.forgot_password_get"))
    return render_template("auth/reset_password.html", token=token)


@bp.post("/reset-password")
def reset_password_post():
    s = db_session()
    token = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    if password != (request.form.get("confirmPassword") or ""):
        flash("Les mots de passe ne correspondent pas", "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    try:
        reset_password(s, token, password)
    except ServiceError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("auth.reset_password_get", token=token))
    s.commit()
    flash(t("auth.reset_done"), "success")
    return redirect(url_for("auth.signin_get"))
