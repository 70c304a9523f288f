"""Application constants."""

USER_AGENT = "store-locator/1.0 (+search pipeline)"

AIRTABLE_API_URL = "https://api.airtable.com/v0"
MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"

RADIUS_ANY = "any"
FILTER_ALL = "all"

LOCATIONS_TTL_SECONDS = 300.0
GEOCODE_BATCH_SIZE = 5
GEOCODE_BATCH_DELAY_SECONDS = 0.2
GEOCODE_MAX_BATCH_ADDRESSES = 50
FUZZY_MATCH_THRESHOLD = 0.5
FUZZY_RESULT_LIMIT = 200

STATE_IDLE = "idle"
STATE_FETCHING = "fetching"
STATE_GEOCODING = "geocoding"
STATE_MATCHING = "matching"
STATE_DONE = "done"
STATE_ERROR = "error"

MODE_GEOGRAPHIC = "geographic"
MODE_FUZZY = "fuzzy"
MODE_ALL = "all"

ERROR_NO_LOCATION_FOUND = "NO_LOCATION_FOUND"
ERROR_INVALID_QUERY = "INVALID_QUERY"

STATUS_NO_RESULTS = "No locations found"
STATUS_ERROR = "An error occurred"

EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "session_id",
    "stage",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "generation",
    "message",
)
