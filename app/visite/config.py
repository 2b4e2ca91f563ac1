import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    app_url: str
    app_name: str
    timezone: str
    google_maps_api_key: str

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    smtp_use_tls: bool
    email_from: str

    sms_api_key: str
    sms_sender_id: str

    cmi_merchant_id: str
    cmi_access_key: str
    cmi_secret_key: str
    cmi_gateway_url: str
    cmi_ok_url: str
    cmi_fail_url: str
    cmi_shop_url: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def load_settings() -> Settings:
    app_url = _getenv("APP_URL", "http://localhost:5000").rstrip("/")
    callback_url = f"{app_url}/api/payments/cmi/callback"
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///visite.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        app_url=app_url,
        app_name=_getenv("APP_NAME", "Visite Sri3a"),
        timezone=_getenv("TZ", "Africa/Casablanca"),
        google_maps_api_key=_getenv("GOOGLE_MAPS_API_KEY", ""),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_user=_getenv("SMTP_USER", ""),
        smtp_pass=_getenv("SMTP_PASS", ""),
        smtp_use_tls=_getenv_bool("SMTP_USE_TLS", True),
        email_from=_getenv("EMAIL_FROM", ""),
        sms_api_key=_getenv("SMS_API_KEY", ""),
        sms_sender_id=_getenv("SMS_SENDER_ID", ""),
        cmi_merchant_id=_getenv("CMI_MERCHANT_ID", ""),
        cmi_access_key=_getenv("CMI_ACCESS_KEY", ""),
        cmi_secret_key=_getenv("CMI_SECRET_KEY", ""),
        cmi_gateway_url=_getenv("CMI_GATEWAY_URL", "https://testpayment.cmi.co.ma/fim/api"),
        cmi_ok_url=_getenv("CMI_OK_URL", callback_url),
        cmi_fail_url=_getenv("CMI_FAIL_URL", callback_url),
        cmi_shop_url=_getenv("CMI_SHOP_URL", app_url),
    )


def feature_flags(s: Settings) -> dict[str, bool]:
    """Optional integrations are switched on by the presence of their credentials."""
    return {
        "email_notifications": bool(s.smtp_host and s.smtp_user and s.smtp_pass),
        "sms_notifications": bool(s.sms_api_key and s.sms_sender_id),
        "payments": bool(s.cmi_merchant_id and s.cmi_access_key and s.cmi_secret_key),
        "google_maps": bool(s.google_maps_api_key),
    }


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "APP_URL": s.app_url,
        "APP_NAME": s.app_name,
        "TIMEZONE": s.timezone,
        "GOOGLE_MAPS_API_KEY": s.google_maps_api_key,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASS": s.smtp_pass,
        "SMTP_USE_TLS": s.smtp_use_tls,
        "EMAIL_FROM": s.email_from or s.smtp_user,
        "SMS_API_KEY": s.sms_api_key,
        "SMS_SENDER_ID": s.sms_sender_id,
        "CMI_MERCHANT_ID": s.cmi_merchant_id,
        "CMI_ACCESS_KEY": s.cmi_access_key,
        "CMI_SECRET_KEY": s.cmi_secret_key,
        "CMI_GATEWAY_URL": s.cmi_gateway_url,
        "CMI_OK_URL": s.cmi_ok_url,
        "CMI_FAIL_URL": s.cmi_fail_url,
        "CMI_SHOP_URL": s.cmi_shop_url,
        "FEATURES": feature_flags(s),
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }
