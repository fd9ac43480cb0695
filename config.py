import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _csv(value):
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file next to the app unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "bookings.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "infrabooking_session"

    # 8 hours session lifetime, 20 minutes idle timeout
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60
    IDLE_TIMEOUT_SECONDS = 20 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Requesters may cancel their own booking up to this many hours before start
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "12"))

    # Emailed approve/reject links
    ACTION_TOKEN_TTL_HOURS = int(os.getenv("ACTION_TOKEN_TTL_HOURS", "72"))
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:5002")

    # Documents attached to booking requests
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(BASE_DIR, "uploads"))
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_MB", "10")) * 1024 * 1024

    GUEST_BOOKINGS_ENABLED = os.getenv("GUEST_BOOKINGS_ENABLED", "true").lower() == "true"

    # Extra recipients for new-request mails, on top of ADMIN users
    ADMIN_NOTIFICATION_EMAILS = _csv(os.getenv("ADMIN_NOTIFICATION_EMAILS"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Seed default roles at startup (needs the schema to exist)
    SEED_ROLES_ON_STARTUP = os.getenv("SEED_ROLES_ON_STARTUP", "true").lower() == "true"

    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    BCRYPT_ROUNDS = 4
    SEED_ROLES_ON_STARTUP = False
    SMTP_HOST = None
    ADMIN_NOTIFICATION_EMAILS = []
    PUBLIC_BASE_URL = "http://bookings.test"
