import logging
import os
from datetime import timedelta

from flask import Flask, flash, g, jsonify, redirect, render_template, request, session
from dotenv import load_dotenv

from app.visite.config import load_config
from app.visite.db import init_db, teardown_db_session
from app.visite.errors import ServiceError
from app.visite.i18n import current_locale, init_i18n
from app.visite.rbac import guard_request, permission_context
from app.visite.routes import bp as routes_bp
from app.visite.auth import bp as auth_bp, load_current_user
from app.visite.admin import bp as admin_bp
from app.visite.modules.accounts.api import auth_bp as auth_api_bp, profile_bp as profile_api_bp
from app.visite.modules.accounts.api import users_admin_bp as users_admin_api_bp
from app.visite.modules.accounts.views import bp as profile_bp
from app.visite.modules.cars.api import bp as cars_api_bp
from app.visite.modules.cars.views import bp as cars_bp
from app.visite.modules.centers.api import bp as centers_api_bp
from app.visite.modules.centers.views import bp as centers_bp
from app.visite.modules.centers.admin import bp as centers_admin_bp
from app.visite.modules.time_slots.api import bp as time_slots_api_bp, admin_bp as time_slots_admin_api_bp
from app.visite.modules.time_slots.admin import bp as time_slots_admin_bp
from app.visite.modules.bookings.api import bp as bookings_api_bp, admin_bp as bookings_admin_api_bp
from app.visite.modules.bookings.views import bp as bookings_bp
from app.visite.modules.bookings.admin import bp as bookings_admin_bp
from app.visite.modules.payments.api import CSRF_EXEMPT_ENDPOINTS as PAYMENT_CSRF_EXEMPT
from app.visite.modules.payments.api import bp as payments_api_bp, admin_bp as payments_admin_api_bp
from app.visite.modules.payments.admin import bp as payments_admin_bp
from app.visite.modules.notifications.api import bp as notifications_admin_api_bp

_PASSTHROUGH_PREFIXES = ("/static/", "/health", "/healthz")


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.ensure_ascii = False

    init_i18n(app)

    # CSRF protection (minimal)
    from app.visite.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        return permission_context()

    @app.context_processor
    def _inject_app() -> dict:
        return {"app_name": app.config.get("APP_NAME"), "features": app.config.get("FEATURES") or {}}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%d/%m/%Y") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("money")
    def _money_filter(value) -> str:
        from app.visite.utils import money

        return f"{money(value):.2f} MAD"

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_PASSTHROUGH_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            endpoint = request.endpoint or ""
            # Sign-in/sign-up forms, the public auth API and the gateway callback pass through.
            if endpoint.startswith(("auth.", "auth_api.")) or endpoint in PAYMENT_CSRF_EXEMPT:
                return None
            if not validate_csrf(request):
                if _wants_json():
                    return jsonify({"error": "CSRF token missing or invalid."}), 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    features = app.config.get("FEATURES") or {}
    disabled = sorted(k for k, v in features.items() if not v)
    if disabled:
        app.logger.warning("Optional integrations not configured: %s", ", ".join(disabled))

    # Pages
    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/<locale:locale>/auth")
    app.register_blueprint(profile_bp, url_prefix="/<locale:locale>")
    app.register_blueprint(cars_bp, url_prefix="/<locale:locale>")
    app.register_blueprint(centers_bp, url_prefix="/<locale:locale>")
    app.register_blueprint(bookings_bp, url_prefix="/<locale:locale>")
    app.register_blueprint(admin_bp, url_prefix="/<locale:locale>/admin")
    app.register_blueprint(centers_admin_bp, url_prefix="/<locale:locale>/admin")
    app.register_blueprint(time_slots_admin_bp, url_prefix="/<locale:locale>/admin")
    app.register_blueprint(bookings_admin_bp, url_prefix="/<locale:locale>/admin")
    app.register_blueprint(payments_admin_bp, url_prefix="/<locale:locale>/admin")

    # JSON API
    app.register_blueprint(auth_api_bp, url_prefix="/api/auth")
    app.register_blueprint(profile_api_bp, url_prefix="/api/profile")
    app.register_blueprint(cars_api_bp, url_prefix="/api/cars")
    app.register_blueprint(centers_api_bp, url_prefix="/api/centers")
    app.register_blueprint(time_slots_api_bp, url_prefix="/api/time-slots")
    app.register_blueprint(bookings_api_bp, url_prefix="/api/bookings")
    app.register_blueprint(payments_api_bp, url_prefix="/api/payments")
    app.register_blueprint(users_admin_api_bp, url_prefix="/api/admin/users")
    app.register_blueprint(time_slots_admin_api_bp, url_prefix="/api/admin/time-slots")
    app.register_blueprint(bookings_admin_api_bp, url_prefix="/api/admin/bookings")
    app.register_blueprint(payments_admin_api_bp, url_prefix="/api/admin/payments")
    app.register_blueprint(notifications_admin_api_bp, url_prefix="/api/admin")

    def _load_user_wrapper():
        if request.path.startswith(_PASSTHROUGH_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.before_request(guard_request)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s): %s", type(e).__name__, getattr(g, "request_id", None), e.message)
        if _wants_json():
            return jsonify(e.to_dict()), e.status_code
        for msg in e.errors or [e.message]:
            flash(msg, "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(f"/{current_locale()}/"), 302

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if _wants_json():
            return jsonify({"error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if _wants_json():
            return jsonify({"error": "Forbidden"}), 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Method not allowed"}), 405
        return render_template("errors/404.html"), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Payload too large"}), 413
        flash("Requête trop volumineuse.", "danger")
        return redirect(f"/{current_locale()}/"), 302

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
