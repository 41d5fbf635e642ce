# src/harvest/constants.py
"""Centralized constants for the profile harvester.

This module contains magic numbers and marker strings used across multiple
modules. For user-configurable values, see config.py and HarvestConfig.
"""

# =============================================================================
# Source Site
# =============================================================================

DEFAULT_BASE_URL = "https://www.vitals.com"

# Key under which the session state is persisted between runs
SESSION_STATE_KEY = "VITALS_STATE_V1"


# =============================================================================
# Identity
# =============================================================================

# Browser user agents for rotation
USER_AGENTS = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    # Firefox on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:127.0) Gecko/20100101 Firefox/127.0",
    # Firefox on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.5; rv:127.0) Gecko/20100101 Firefox/127.0",
]

SESSION_ID_PREFIX = "vitals"


# =============================================================================
# Block Detection
# =============================================================================

# HTTP status codes that always indicate automated-traffic mitigation
BLOCKING_STATUS_CODES = frozenset({401, 403, 429, 503})

# Only this much of the body is inspected for block markers
BLOCK_SCAN_PREFIX_CHARS = 32 * 1024

CHALLENGE_MARKER = "attention required"
EDGE_NETWORK_MARKER = "cloudflare"
BLOCKED_NOTICE_MARKER = "sorry, you have been blocked"
REQUEST_TRACE_MARKER = "cf-ray"


# =============================================================================
# Transport Constants
# =============================================================================

DEFAULT_REQUEST_TIMEOUT_SECONDS = 45.0

DEFAULT_MAX_RETRIES = 3

# Attempts used when probing a document for the build identifier only
BUILD_ID_PROBE_RETRIES = 2

# Randomized pause after a blocked or failed attempt (seconds)
RETRY_DELAY_MIN_SECONDS = 0.8
RETRY_DELAY_MAX_SECONDS = 1.6

DOCUMENT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DATA_ACCEPT = "application/json,*/*;q=0.8"


# =============================================================================
# Browser Bootstrap Constants
# =============================================================================

DEFAULT_BOOTSTRAP_TIMEOUT_MS = 90_000
BROWSER_TIER_TIMEOUT_MS = 60_000
NAVIGATION_TIMEOUT_MS = 60_000

# Settle time after navigation before the first block check
BOOTSTRAP_SETTLE_MS = 2_000

# Interval between block checks while waiting out a challenge
BOOTSTRAP_POLL_INTERVAL_MS = 1_500

DEFAULT_BOOTSTRAP_BUDGET = 6

DESKTOP_VIEWPORT_WIDTH = 1920
DESKTOP_VIEWPORT_HEIGHT = 1080
VIEWPORT_WIDTH_JITTER = 40
VIEWPORT_HEIGHT_JITTER = 30

BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})
BLOCKED_RESOURCE_HOSTS = ("googletagmanager", "google-analytics", "doubleclick")


# =============================================================================
# Extraction Constants
# =============================================================================

# Keys whose lowercase form marks a list of profile summaries
LIKELY_LIST_KEYS = ("providers", "results", "items", "profiles", "doctors", "physicians")

# Maximum elements normalized from one list
MAX_LIST_ITEMS = 30

MIN_NAME_LENGTH = 3

PROFILE_PATH_PATTERN = r"/(doctors|dentists|podiatrists|optometrists|chiropractors)/[^?#]+"
NOISE_PATH_PATTERN = r"(write-review|claim|insurance|credentials|video|office-locations|reviews)"
GENERIC_LINK_TEXT_PATTERN = r"\b(view|more|see)\b"

PROFILE_SCHEMA_TYPES = frozenset({"MedicalBusiness", "Physician", "Person", "LocalBusiness"})


# =============================================================================
# Orchestration Constants
# =============================================================================

DEFAULT_MAX_CONCURRENCY = 5
MAX_CONCURRENCY_CAP = 10

DEFAULT_RESULTS_WANTED = 50
DEFAULT_MAX_PAGES = 5

# Wall-clock budget for a whole run (seconds)
DEFAULT_MAX_RUNTIME_SECONDS = 4.5 * 60

# Stagger between admitting detail tasks (seconds)
ADMISSION_STAGGER_MIN_SECONDS = 0.08
ADMISSION_STAGGER_MAX_SECONDS = 0.2

# Pause between listing pages (seconds)
LISTING_PAUSE_MIN_SECONDS = 0.2
LISTING_PAUSE_MAX_SECONDS = 0.6
