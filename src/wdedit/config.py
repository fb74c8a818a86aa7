import os
import re
from datetime import UTC, datetime
from pathlib import Path

# HTTP identity and remote hosts
HEADERS = {"User-Agent": "WikidataEditOrchestrator/1.0 (Commons upload client; mailto:commons-app@wikimedia.org)"}
KNOWLEDGE_BASE_HOST = "www.wikidata.org"
MEDIA_REPOSITORY_HOST = "commons.wikimedia.org"
API_PATH = "/w/"
API_TIMEOUT = 30  # Seconds per HTTP request
GATEWAY_MAX_RETRIES = 0  # Single attempt per remote call
GATEWAY_MAX_QPS = 5  # Outbound write throttle

# Credentials for bot-password login (optional)
USERNAME = os.getenv("WDEDIT_USERNAME", "").strip()
PASSWORD = os.getenv("WDEDIT_PASSWORD", "").strip()

# Knowledge-base schema
IMAGE_PROPERTY = "P18"
DEPICTS_PROPERTY = "P180"
FILE_NAMESPACE_PATTERN = re.compile(r"^\s*(?:file|image):\s*", re.IGNORECASE)
MEDIAINFO_PREFIX = "M"
REJECTED_REVISION_ID = -1

# Provenance tag attached to every claim made by this client
EDIT_TAG = "wikimedia-commons-app"
EDIT_TAG_REASON = "Add tag for edits made using Android Commons app"

# ID validation patterns
QID_EXACT_PATTERN = re.compile(r"^Q[1-9]\d*$")
MID_EXACT_PATTERN = re.compile(r"^M[1-9]\d*$")
LANGUAGE_CODE_PATTERN = re.compile(r"^[a-z]{2,3}(-[a-z0-9]+)*$", re.IGNORECASE)

# Local preference keys written by the upload flow
PREF_LOCATION_MATCHES = "Picture_Has_Correct_Location"
PREF_TITLE = "Title"

# Scheduling
BACKGROUND_MAX_WORKERS = 8
WAIT_IDLE_TIMEOUT = 300  # Seconds the CLI waits for in-flight chains

# Localized user messages
DEFAULT_LOCALE = "en"
MESSAGE_EDIT_FAILURE = "wikidata_edit_failure"
MESSAGE_EDIT_SUCCESS = "successful_wikidata_edit"

# Local state and logs
DATA_DIR = Path("data")
PREFERENCES_DB = DATA_DIR / "preferences.sqlite"
RUN_ID = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
LOG_DIR = Path("logs")
EDIT_LOG_FILE = LOG_DIR / f"edit_log_{RUN_ID}.jsonl"
EDIT_LOG_FLUSH_EVERY = 50
