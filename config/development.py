import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_db"),
}

# "mysql" or "memory" (process-local, data lost on restart)
STORE_BACKEND = os.getenv("STORE_BACKEND", "mysql")

# HMAC key for QR check-in tokens
QR_SIGNING_KEY = os.getenv("QR_SIGNING_KEY", "dev-qr-signing-key")
QR_TOKEN_TTL_SECONDS = int(os.getenv("QR_TOKEN_TTL_SECONDS", "30"))

CANCELLATION_WINDOW_MINUTES = int(os.getenv("CANCELLATION_WINDOW_MINUTES", "5"))
STATUS_RATE_LIMIT = int(os.getenv("STATUS_RATE_LIMIT", "60"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
DEFAULT_GEOFENCE_RADIUS_M = float(os.getenv("DEFAULT_GEOFENCE_RADIUS_M", "50"))
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "30"))
STANDARD_WORK_HOURS = float(os.getenv("STANDARD_WORK_HOURS", "8"))
MAX_DAILY_WORK_HOURS = float(os.getenv("MAX_DAILY_WORK_HOURS", "12"))

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
