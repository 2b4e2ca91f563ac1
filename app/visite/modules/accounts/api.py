from flask import Blueprint, g, request, session

from app.visite.db import db_session
from app.visite.errors import ValidationFailed
from app.visite.modules.accounts.service import (
    admin_delete_user,
    admin_list_users,
    admin_update_user,
    change_password,
    delete_account,
    preferences_to_dict,
    register_user,
    request_password_reset,
    reset_password,
    update_preferences,
    update_profile,
    user_for_reset_token,
    user_stats,
    user_to_dict,
)
from app.visite.rbac import ROLES, api_login_required, api_require_permission
from app.visite.utils import json_payload, pagination_args, pagination_dict, parse_int

auth_bp = Blueprint("auth_api", __name__)
profile_bp = Blueprint("profile_api", __name__)
users_admin_bp = Blueprint("users_admin_api", __name__)

FORGOT_PASSWORD_MESSAGE = "Si un compte existe avec cet email, vous recevrez un lien de réinitialisation."


# ---------- Auth ----------
@auth_bp.post("/register")
def register():
    s = db_session()
    user = register_user(s, json_payload())
    s.commit()
    return {"message": "Compte créé avec succès", "user": user_to_dict(user)}, 201


@auth_bp.post("/forgot-password")
def forgot_password():
    s = db_session()
    request_password_reset(s, json_payload().get("email"))
    s.commit()
    return {"message": FORGOT_PASSWORD_MESSAGE}


@auth_bp.get("/reset-password")
def reset_password_check():
    s = db_session()
    user = user_for_reset_token(s, request.args.get("token"))
    return {"valid": True, "email": user.email}


@auth_bp.post("/reset-password")
def reset_password_submit():
    s = db_session()
    payload = json_payload()
    reset_password(s, payload.get("token"), payload.get("password"))
    s.commit()
    return {"message": "Mot de passe réinitialisé avec succès"}


# ---------- Profile ----------
@profile_bp.get("")
@api_login_required
def profile_get():
    return {"user": user_to_dict(g.current_user)}


@profile_bp.patch("")
@api_login_required
def profile_update():
    s = db_session()
    user = update_profile(s, g.current_user, json_payload())
    s.commit()
    return {"message": "Profil mis à jour avec succès", "user": user_to_dict(user)}


@profile_bp.delete("")
@api_login_required
def profile_delete():
    s = db_session()
    delete_account(s, g.current_user)
    s.commit()
    session.pop("user_id", None)
    return {"message": "Compte supprimé avec succès"}


@profile_bp.patch("/password")
@api_login_required
def profile_password():
    s = db_session()
    change_password(s, g.current_user, json_payload())
    s.commit()
    return {"message": "Mot de passe modifié avec succès"}


@profile_bp.get("/preferences")
@api_login_required
def preferences_get():
    return {"preferences": preferences_to_dict(g.current_user)}


@profile_bp.patch("/preferences")
@api_login_required
def preferences_update():
    s = db_session()
    prefs = update_preferences(s, g.current_user, json_payload())
    s.commit()
    return {"message": "Préférences mises à jour avec succès", "preferences": prefs}


# ---------- Admin ----------
@users_admin_bp.get("")
@api_require_permission("VIEW_ALL_USERS")
def admin_users_index():
    s = db_session()
    page, limit = pagination_args()
    role = (request.args.get("role") or "").strip().upper() or None
    if role and role not in ROLES:
        raise ValidationFailed(f"Rôle invalide. Valeurs possibles : {', '.join(ROLES)}")
    rows, total = admin_list_users(
        s,
        role=role,
        search=(request.args.get("search") or "").strip() or None,
        page=page,
        limit=limit,
    )
    return {"users": rows, "stats": user_stats(s), "pagination": pagination_dict(page, limit, total)}


@users_admin_bp.patch("")
@api_require_permission("MANAGE_USERS")
def admin_users_update():
    s = db_session()
    user = admin_update_user(s, json_payload(), g.current_user)
    s.commit()
    return {"message": "Utilisateur mis à jour avec succès", "user": user_to_dict(user)}


@users_admin_bp.delete("")
@api_require_permission("MANAGE_ADMIN_USERS")
def admin_users_delete():
    s = db_session()
    admin_delete_user(s, parse_int(request.args.get("userId")), g.current_user)
    s.commit()
    return {"message": "Utilisateur supprimé avec succès"}
