"""Internal constants shared across the library."""

API_BASE_URL = "http://localhost:5000"
AUTO_API_BASE_URL = "http://localhost:8000"

# ------------------------------------------------------------------
# Main simulation API
# ------------------------------------------------------------------

LOCATIONS_ENDPOINT = "/locations"
RESOURCE_SEARCH_ENDPOINT = "/{type}/search"
RESOURCE_SEARCH_BY_CITY_ENDPOINT = "/{type}/searchbycity"
RESOURCE_DISPATCH_ENDPOINT = "/{type}/dispatch"
CALLS_QUEUE_ENDPOINT = "/calls/queue"
CALLS_NEXT_ENDPOINT = "/calls/next"
CONTROL_STATUS_ENDPOINT = "/control/status"
CONTROL_RESET_ENDPOINT = "/control/reset"
CONTROL_STOP_ENDPOINT = "/control/stop"

# ------------------------------------------------------------------
# Auto-dispatch API
# ------------------------------------------------------------------

SIMULATE_ENDPOINT = "/simulate"
SIMULATE_STOP_ENDPOINT = "/simulate/stop"
SIMULATE_STATUS_ENDPOINT = "/simulate/status"
HEALTH_ENDPOINT = "/health"

# ------------------------------------------------------------------
# Request engine
# ------------------------------------------------------------------

DEFAULT_REQUEST_TIMEOUT: float = 10.0
DEFAULT_MAX_ATTEMPTS: int = 3
DEFAULT_RETRY_BASE_DELAY: float = 1.0
MAX_RETRY_DELAY: float = 5.0

# ------------------------------------------------------------------
# Local state
# ------------------------------------------------------------------

#: Cached resources/emergencies older than this are treated as absent.
CACHE_TTL_SECONDS: float = 10 * 60
#: A saved session is only offered for resume within this window.
SESSION_RESUME_WINDOW_SECONDS: float = 60 * 60

CACHE_KEY_RESOURCES = "emercery_cached_resources"
CACHE_KEY_EMERGENCIES = "emercery_cached_emergencies"
SESSION_SNAPSHOT_KEY = "emercery_session"
RESUME_OFFERED_KEY = "emercery_resume_offered"
LOG_BUFFER_KEY = "emercery_logs"
PERF_SAMPLES_KEY = "emercery_api_performance"
TRACKED_ERRORS_KEY = "emercery_tracked_errors"

#: Responses slower than this mark a backend as degraded.
HEALTH_DEGRADED_THRESHOLD_MS: float = 1000.0
