import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
    ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")
    CRON_SECRET = os.getenv("CRON_SECRET")

    # SQLite database file stored next to the app as trustgate.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "trustgate.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie carrying the opaque login token
    AUTH_COOKIE_NAME = "trustgate_session"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Session retention (cleanup job)
    SESSION_REVOKED_RETENTION_DAYS = _env_int("SESSION_REVOKED_RETENTION_DAYS", 30)
    SESSION_INACTIVE_RETENTION_DAYS = _env_int("SESSION_INACTIVE_RETENTION_DAYS", 7)
    SESSION_MAX_AGE_DAYS = _env_int("SESSION_MAX_AGE_DAYS", 90)

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = _env_int("MAX_LOGIN_ATTEMPTS", 5)
    LOCKOUT_MINUTES = _env_int("LOCKOUT_MINUTES", 15)
    ATTEMPT_WINDOW_MINUTES = _env_int("ATTEMPT_WINDOW_MINUTES", 30)

    # IP reputation
    REPUTATION_BLOCK_THRESHOLD = _env_int("REPUTATION_BLOCK_THRESHOLD", 20)
    REPUTATION_SUSPICIOUS_THRESHOLD = _env_int("REPUTATION_SUSPICIOUS_THRESHOLD", 50)
    REPUTATION_RECOVERY_POINTS = _env_int("REPUTATION_RECOVERY_POINTS", 10)
    REPUTATION_RECOVERY_INTERVAL_HOURS = _env_int("REPUTATION_RECOVERY_INTERVAL_HOURS", 20)

    # Rate limits, fixed window per IP
    RATE_LIMIT_WINDOW_SECONDS = _env_int("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _env_int("RATE_LIMIT_MAX_REQUESTS", 100)
    RATE_LIMIT_SUSPICIOUS_MAX = _env_int("RATE_LIMIT_SUSPICIOUS_MAX", 0)  # 0 = half of max

    # Login endpoint gets its own, much stricter window
    AUTH_RATE_WINDOW_SECONDS = _env_int("AUTH_RATE_WINDOW_SECONDS", 15 * 60)
    AUTH_RATE_MAX_REQUESTS = _env_int("AUTH_RATE_MAX_REQUESTS", 5)
    AUTH_RATE_SUSPICIOUS_MAX = _env_int("AUTH_RATE_SUSPICIOUS_MAX", 3)

    API_RATE_WINDOW_SECONDS = _env_int("API_RATE_WINDOW_SECONDS", 60)
    API_RATE_MAX_REQUESTS = _env_int("API_RATE_MAX_REQUESTS", 30)
    API_RATE_SUSPICIOUS_MAX = _env_int("API_RATE_SUSPICIOUS_MAX", 15)

    STRICT_RATE_WINDOW_SECONDS = _env_int("STRICT_RATE_WINDOW_SECONDS", 60)
    STRICT_RATE_MAX_REQUESTS = _env_int("STRICT_RATE_MAX_REQUESTS", 10)
    STRICT_RATE_SUSPICIOUS_MAX = _env_int("STRICT_RATE_SUSPICIOUS_MAX", 5)

    # Audit log
    AUDIT_RETENTION_DAYS = _env_int("AUDIT_RETENTION_DAYS", 90)
    AUDIT_EXPORT_MAX_ROWS = _env_int("AUDIT_EXPORT_MAX_ROWS", 10000)

    # Audit writes and session activity bumps run on a worker pool
    ASYNC_SIDE_EFFECTS = os.getenv("ASYNC_SIDE_EFFECTS", "true").lower() == "true"
    BACKGROUND_WORKERS = _env_int("BACKGROUND_WORKERS", 4)

    # In-process cleanup timers (every replica may run its own)
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    ADMIN_API_TOKEN = "test-admin-token"
    CRON_SECRET = "test-cron-secret"
    ASYNC_SIDE_EFFECTS = False
    SCHEDULER_ENABLED = False
    LOG_LEVEL = "WARNING"
    BCRYPT_ROUNDS = 4
