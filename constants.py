"""
Default configuration for the NinjaRMM to Monday.com integration.

Every value here can be overridden from config/field-mappings.json without
touching code. Secrets and board IDs come from the environment (.env).
"""

# Logging
LOGGING_LEVEL = "INFO"
LOG_FILE = "data/ninja2monday.log"

# Directory for reports, previews and logs
DATA_DIR = "./data"
FIELD_MAPPINGS_FILE = "./config/field-mappings.json"
REPORTS_TO_KEEP = 10

# API endpoints
NINJA_BASE_URL = "https://app.ninjarmm.com"
NINJA_OAUTH_SCOPE = "monitoring"
MONDAY_API_URL = "https://api.monday.com/v2"
MONDAY_API_VERSION = "2024-10"
REQUEST_TIMEOUT = 30
VERIFY_SSL = True

# Seconds before expiry at which a cached OAuth token is refreshed
TOKEN_EXPIRY_BUFFER_SECONDS = 60

# Page sizes
MONDAY_PAGE_SIZE = 100
NINJA_PAGE_SIZE = 100

# Kiosk identifiers: "IBF-0136058" <-> "6058"
DEVICE_ID_PREFIX = "IBF-013"
SHORT_DEVICE_ID_LENGTH = 4

# Monday.com tickets board column IDs
MONDAY_COLUMNS = {
    "kiosk": "text_mkx0wqmq",
    "date": "date4",
    "county": "text_mkwzhc6k",
    "location": "text_mkwzt5ce",
    "core_issue": "tag_mkwzqtky",
    "status": "status",
    "ninja_ticket_id": "text_mkxn628j",
    "service_call": "dropdown_mkwznn43",
}

# Monday.com kiosks board: health column ID, and the column titles used to
# pick county and location off each kiosk
KIOSK_HEALTH_COLUMN = "status"
KIOSK_COLUMN_TITLES = {
    "county": "County",
    "location": "Location",
}

# NinjaRMM ticket attribute IDs
NINJA_ATTRIBUTES = {
    "kiosk_id": 54,
    "county": 10,
    "service_checkbox": 80,
}

# NinjaRMM status -> Monday.com status label
STATUS_MAPPING = {
    "Closed": "Done",
    "Waiting": "Stuck",
    "Supplies Ordered": "Done",
    "Pending Vendor": "Working on it",
    "Paused": "Working BUT",
    "Impending User Action": "Working on it",
}
DEFAULT_STATUS = "Working on it"

# Monday.com ticket status label -> kiosk health label
HEALTH_STATUS_MAPPING = {
    "Done": "HEALTHY",
    "Working on it": "DOWN",
    "Stuck": "DOWN",
    "Working BUT": "DEGRADED",
}
DEFAULT_HEALTH = "UNKNOWN"
NO_TICKET_HEALTH = "HEALTHY"

# Sync settings
NINJA_BOARD_IDS = [2]
MIN_CREATE_DATE = "2025-07-01"
DELAY_BETWEEN_ITEMS_MS = 500
DELAY_BETWEEN_UPDATES_MS = 500
DELAY_BETWEEN_HEALTH_UPDATES_MS = 300
RETRY_ATTEMPTS = 3
RETRY_BACKOFF_MS = 1000
TEST_LIMIT = 3

# Matching thresholds
ATTRIBUTE_MATCH_THRESHOLD = 10
SUMMARY_MATCH_REVIEW_THRESHOLD = 30
