"""Central configuration for the Zwift race data scraper.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Overrides are read from environment variables
(optionally via a local `.env`). Credentials are never read from here.
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Upstream endpoints
# ---------------------------------------------------------------------------
ZWIFTPOWER_BASE_URL = os.getenv("ZWIFTPOWER_BASE_URL", "https://zwiftpower.com")

# Login entry point. Redirects to the Zwift identity provider (Keycloak).
ZP_LOGIN_URL = (
    ZWIFTPOWER_BASE_URL
    + "/ucp.php?mode=login&login=external&oauth_service=oauthzpsso"
)

# Results feed: {"data": [{"zwid": ..., "name": ...}, ...]}
ZP_RESULTS_URL = ZWIFTPOWER_BASE_URL + "/cache3/results/{race_id}_zwift.json"

# View/metadata feed: {"data": [{"zwid", "weight", "ftp", "category", ...}]}
ZP_VIEW_URL = ZWIFTPOWER_BASE_URL + "/cache3/results/{race_id}_view.json"

# Per-rider analysis (power/time/distance series).
ZP_ANALYSIS_URL = (
    ZWIFTPOWER_BASE_URL
    + "/api3.php?do=analysis&zwift_id={rider_id}&zwift_event_id={race_id}"
)

# Browser-like user agent; the upstream serves bare clients differently.
USER_AGENT = os.getenv(
    "ZWIFTPOWER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)


# ---------------------------------------------------------------------------
# Session / authentication
# ---------------------------------------------------------------------------
# Primary (protected) domain first, identity provider second.
PRIMARY_DOMAIN = "zwiftpower.com"
IDENTITY_DOMAIN = "secure.zwift.com"
TRUSTED_DOMAINS = (PRIMARY_DOMAIN, "zwift.com")

# Case-insensitive substrings identifying a session/auth cookie.
SESSION_COOKIE_MARKERS = ("session", "auth", "phpbb3", "keycloak")
# Id-like cookie name suffixes (e.g. phpbb3_xxxx_sid, AUTH_SESSION_ID).
SESSION_COOKIE_SUFFIXES = ("_sid", "_id", "-id")

# Maximum redirects followed by each login step.
LOGIN_MAX_REDIRECTS = 10

# Keycloak login form and known error containers on the returned page.
LOGIN_FORM_ID = "kc-form-login"
LOGIN_ERROR_SELECTORS = (
    "#input-error",
    "#kc-error-message",
    ".kc-feedback-text",
    ".alert-error",
    ".pf-c-alert__title",
)
LOGIN_ERROR_LITERAL = "invalid username or password"

# Longest username/password accepted by the HTTP adapter.
CREDENTIAL_MAX_LENGTH = 255


# ---------------------------------------------------------------------------
# Performance tuning
# ---------------------------------------------------------------------------
# Request timeout in seconds. Applies to every upstream call.
REQUEST_TIMEOUT = _env_float("ZWIFTPOWER_REQUEST_TIMEOUT", 15.0)

# HTTP session pool sizes for concurrent requests.
HTTP_POOL_CONNECTIONS = 20
HTTP_POOL_MAXSIZE = 20

# Backoff on HTTP 429: delay = base * 2 ** attempt, attempts capped below.
RATE_LIMIT_MAX_ATTEMPTS = _env_int("RATE_LIMIT_MAX_ATTEMPTS", 3)
RATE_LIMIT_BASE_DELAY_SECONDS = _env_float("RATE_LIMIT_BASE_DELAY_SECONDS", 1.0)

# RATE_LIMIT_MAX_CONCURRENT caps total in-flight upstream requests.
RATE_LIMIT_MAX_CONCURRENT = _env_int("RATE_LIMIT_MAX_CONCURRENT", 8)
# RATE_LIMIT_JITTER_RANGE adds random delay (seconds) to smooth bursts.
RATE_LIMIT_JITTER_RANGE = (0.05, 0.2)

# Riders fetched in parallel by the pipeline. 1 keeps it strictly sequential.
PIPELINE_MAX_WORKERS = _env_int("PIPELINE_MAX_WORKERS", 4)

# In-process roster cache. Set the TTL to 0 to disable.
ROSTER_CACHE_SIZE = _env_int("ROSTER_CACHE_SIZE", 64)
ROSTER_CACHE_TTL_SECONDS = _env_int("ROSTER_CACHE_TTL_SECONDS", 300)


# ---------------------------------------------------------------------------
# HTTP adapter
# ---------------------------------------------------------------------------
SERVER_HOST = os.getenv("ZWIFT_RACE_DATA_HOST", "127.0.0.1")
SERVER_PORT = _env_int("PORT", 3001)
SERVER_DEBUG = _env_bool("ZWIFT_RACE_DATA_DEBUG", False)
