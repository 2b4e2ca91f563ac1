from flask import Blueprint, flash, g, redirect, render_template, request, session, url_for

from app.visite.db import db_session
from app.visite.errors import ServiceError
from app.visite.i18n import t
from app.visite.modules.accounts.service import (
    PREFERENCE_FIELDS,
    change_password,
    delete_account,
    preferences_to_dict,
    update_preferences,
    update_profile,
)
from app.visite.rbac import require_permission

bp = Blueprint("profile", __name__)


def _flash_error(e: ServiceError) -> None:
    for msg in e.errors or [e.message]:
        flash(msg, "danger")


@bp.get("/profile")
@require_permission("MANAGE_OWN_PROFILE")
def profile_get():
    return render_template("profile/index.html", user=g.current_user, preferences=preferences_to_dict(g.current_user))


@bp.post("/profile")
@require_permission("MANAGE_OWN_PROFILE")
def profile_post():
    s = db_session()
    payload = {
        "name": request.form.get("name"),
        "email": request.form.get("email"),
        "phone": request.form.get("phone"),
        "preferredLanguage": request.form.get("preferredLanguage"),
    }
    try:
        user = update_profile(s, g.current_user, payload)
    except ServiceError as e:
        s.rollback()
        _flash_error(e)
        return redirect(url_for("profile.profile_get"))
    s.commit()
    flash(t("saved", user.preferred_language), "success")
    return redirect(url_for("profile.profile_get", locale=user.preferred_language))


@bp.post("/profile/password")
@require_permission("MANAGE_OWN_PROFILE")
def profile_password():
    s = db_session()
    if (request.form.get("newPassword") or "") != (request.form.get("confirmPassword") or ""):
        flash("Les mots de passe ne correspondent pas", "danger")
        return redirect(url_for("profile.profile_get"))
    payload = {
        "currentPassword": request.form.get("currentPassword"),
        "newPassword": request.form.get("newPassword"),
    }
    try:
        change_password(s, g.current_user, payload)
    except ServiceError as e:
        s.rollback()
        _flash_error(e)
        return redirect(url_for("profile.profile_get"))
    s.commit()
    flash(t("saved"), "success")
    return redirect(url_for("profile.profile_get"))


@bp.post("/profile/preferences")
@require_permission("MANAGE_OWN_PROFILE")
def profile_preferences():
    s = db_session()
    # Unchecked boxes are absent from the form, so every field is sent explicitly.
    payload = {key: request.form.get(key) == "on" for key in PREFERENCE_FIELDS}
    update_preferences(s, g.current_user, payload)
    s.commit()
    flash(t("saved"), "success")
    return redirect(url_for("profile.profile_get"))


@bp.post("/profile/delete")
@require_permission("MANAGE_OWN_PROFILE")
def profile_delete():
    s = db_session()
    if (request.form.get("confirm") or "").strip().upper() != "DELETE":
        flash("Tapez DELETE pour confirmer la suppression du compte.", "danger")
        return redirect(url_for("profile.profile_get"))
    delete_account(s, g.current_user)
    s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.home"))
