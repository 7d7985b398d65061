import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _to_bool(val, default=False):
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to this file as identity.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "identity.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session tokens (signed, flat-lived, no refresh)
    SESSION_SIGNING_SECRET = os.getenv("SESSION_SIGNING_SECRET") or SECRET_KEY
    SESSION_LIFETIME_DAYS = int(os.getenv("SESSION_LIFETIME_DAYS", "7"))
    SESSION_TOKEN_ALGORITHM = "HS256"

    # One-time codes
    OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
    OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "10"))
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))
    OTP_HASH_ROUNDS = int(os.getenv("OTP_HASH_ROUNDS", "10"))  # bcrypt cost

    # Issuance limits per (channel, target)
    OTP_SEND_LIMITS = {
        "EMAIL": {"max_per_hour": 5, "max_per_day": 20, "cooldown_seconds": 60},
        "PHONE": {"max_per_hour": 3, "max_per_day": 10, "cooldown_seconds": 120},
    }

    # OAuth anti-CSRF state
    OAUTH_STATE_TTL_MINUTES = int(os.getenv("OAUTH_STATE_TTL_MINUTES", "10"))

    # Background sweep of expired states / codes
    CLEANUP_SCHEDULER_ENABLED = _to_bool(os.getenv("CLEANUP_SCHEDULER_ENABLED"), True)
    CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))

    # Phone numbers
    PHONE_COUNTRY_CODE = os.getenv("PHONE_COUNTRY_CODE", "91")
    PHONE_MOBILE_LEADING_DIGITS = os.getenv("PHONE_MOBILE_LEADING_DIGITS", "6789")

    # Delivery: "console" logs codes (dev), "live" uses SMTP + Twilio
    NOTIFICATION_BACKEND = os.getenv("NOTIFICATION_BACKEND", "console")
    NOTIFICATION_TIMEOUT_SECONDS = int(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
    TWILIO_API_BASE = os.getenv("TWILIO_API_BASE")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SESSION_SIGNING_SECRET = "test-signing-secret-0123456789abcdef"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    OTP_HASH_ROUNDS = 4
    CLEANUP_SCHEDULER_ENABLED = False
    NOTIFICATION_BACKEND = "console"
    LOG_LEVEL = "WARNING"
