"""Internal constants shared across the library."""

#: Reply to a command poll when nothing is queued; a no-op when acknowledged.
NONE_SENTINEL = "NONE"

DEFAULT_DEVICE_ID = "default"
DEFAULT_HISTORY_SIZE = 20
DEFAULT_ONLINE_TIMEOUT_S = 120.0

# ------------------------------------------------------------------
# Geolocation time cache
# ------------------------------------------------------------------

GEO_REFRESH_INTERVAL_S = 6 * 3600
GEO_RETRY_INTERVAL_S = 300
GEO_LOOKUP_TIMEOUT_S = 5.0
GEO_BASE_URL = "http://ip-api.com/json"

# ------------------------------------------------------------------
# Heater level  (1-9 while on, 0 while off)
# ------------------------------------------------------------------

LEVEL_OFF = 0
LEVEL_MIN = 1
LEVEL_MAX = 9


def clamp_level(level: int) -> int:
    """Clamp a requested heater level into the 1-9 range."""
    return max(LEVEL_MIN, min(LEVEL_MAX, int(level)))


# ------------------------------------------------------------------
# Sleep schedule defaults (seconds)
# ------------------------------------------------------------------

SLEEP_AWAKE_POLL_S = 5
SLEEP_POLL_S = 300
SLEEP_IDLE_S = 600
