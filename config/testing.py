import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_test"),
}

STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")

QR_SIGNING_KEY = "test-qr-signing-key"
QR_TOKEN_TTL_SECONDS = 30

CANCELLATION_WINDOW_MINUTES = 5
STATUS_RATE_LIMIT = 60
RATE_LIMIT_WINDOW_SECONDS = 60
DEFAULT_GEOFENCE_RADIUS_M = 50
HISTORY_LIMIT = 30
STANDARD_WORK_HOURS = 8
MAX_DAILY_WORK_HOURS = 12

DEBUG = False
TESTING = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
