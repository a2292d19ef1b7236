import os
import logging

# --- Logging Configuration ---
LOG_FILE = os.environ.get("LOG_FILE", "streekx.log")
LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
DATE_FORMAT = '%H:%M:%S'
LOG_LEVEL = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

# --- Gemini Configuration ---
# Either GEMINI_API_KEY (Gemini Developer API) or GOOGLE_CLOUD_PROJECT (Vertex AI) is required
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT")
LOCATION = os.environ.get("GOOGLE_CLOUD_LOCATION", "us-central1")

# --- Model Configuration ---
# Used for grounded chat, offline fallback and the search proxy
SEARCH_MODEL = os.environ.get("SEARCH_MODEL", "gemini-2.5-flash")

# --- Session Configuration ---
# 0 disables the corresponding eviction policy
SESSION_MAX_ENTRIES = int(os.environ.get("SESSION_MAX_ENTRIES", "1000"))
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", str(6 * 60 * 60)))

# --- Server Configuration ---
PROXY_HOST = os.environ.get("PROXY_HOST", "127.0.0.1")
PROXY_PORT = int(os.environ.get("PROXY_PORT", "8000"))
UI_HOST = os.environ.get("UI_HOST", "127.0.0.1")
UI_PORT = int(os.environ.get("UI_PORT", "7860"))

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


# --- Validation ---
def validate_config():
    """Validate that required configuration is set."""
    errors = []

    if not GEMINI_API_KEY and not PROJECT_ID:
        errors.append("GEMINI_API_KEY or GOOGLE_CLOUD_PROJECT environment variable is required")

    if not SEARCH_MODEL:
        errors.append("SEARCH_MODEL must not be empty")

    if SESSION_MAX_ENTRIES < 0:
        errors.append("SESSION_MAX_ENTRIES must be >= 0")

    if SESSION_TTL_SECONDS < 0:
        errors.append("SESSION_TTL_SECONDS must be >= 0")

    return errors
