"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
Every value below is only a default; the active value comes from settings.
"""

EARTH_RADIUS_M = 6_371_000
DEFAULT_GEOFENCE_RADIUS_M = 50
# Check-out is never rejected for location; beyond this multiple of the
# geofence radius it is only flagged.
CHECKOUT_RADIUS_MULTIPLIER = 2

QR_TOKEN_TTL_SECONDS = 30
QR_CLOCK_SKEW_SECONDS = 5

CANCELLATION_WINDOW_MINUTES = 5

# Work beyond the standard day counts as overtime; a day longer than the
# maximum is flagged on check-out.
STANDARD_WORK_HOURS = 8
MAX_DAILY_WORK_HOURS = 12

STATUS_RATE_LIMIT = 60
RATE_LIMIT_WINDOW_SECONDS = 60

DEFAULT_HISTORY_LIMIT = 30
