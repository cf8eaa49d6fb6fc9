"""Application constants."""

USER_AGENT = "facility-catalog/1.0 (+waste facility directory; contact: configured-email)"
STAGES = (
    "harvest",
    "merge",
    "neighbors",
    "audit",
)
SOURCE_MODES = ("government", "osm")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "place_group",
    "place",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
PLACEHOLDER_NAMES = ("unnamed site", "unnamed", "facility")
DEFAULT_FACILITY_NAME = "Unnamed site"
FACILITY_ID_PREFIX = "f_"
MANUAL_FACILITY_ID_PREFIX = "f_manual_"
FACILITY_ID_HEX_LENGTH = 12
FINGERPRINT_DECIMALS = 5
REVERSE_GEOCODE_DECIMALS = 4
EARTH_RADIUS_KM = 6371.0
KM_TO_MI = 0.621371
CONTAINER_KEYS = ("facilities", "items", "data", "rows", "results")
SAMPLE_LIMIT = 20
