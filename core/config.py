# ABOUTME: Shared app configuration and constants used by the API, read-only gateway and dashboard.
# ABOUTME: Values come from the environment (.env loaded via python-dotenv) with documented fallbacks.

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

APP_NAME = "Nexus"
APP_VERSION = "1.0.0"

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DB_FILENAME = "nexus.db"

# Storage override: when set it is used unconditionally, no probing.
DATABASE_PATH = os.environ.get("DATABASE_PATH") or None

# Tried in order when DATABASE_PATH is unset.
STORAGE_CANDIDATES = [
    ("project data directory", PROJECT_ROOT / "data" / DB_FILENAME),
    ("user home", Path.home() / DB_FILENAME),
    ("temp directory", Path(tempfile.gettempdir()) / DB_FILENAME),
]


def _parse_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


API_HOST = os.environ.get("API_HOST", "0.0.0.0")
PORT = _parse_int("PORT", 3001)
READ_ONLY_PORT = _parse_int("READ_ONLY_PORT", 3002)

REQUEST_TIMEOUT_MS = _parse_int("REQUEST_TIMEOUT_MS", 5000)

# SQLite's lock wait must end before the request watchdog fires, otherwise a
# held write lock is always reported as a request timeout instead of a lock timeout.
LOCK_WAIT_HEADROOM_MS = 1000
DB_BUSY_TIMEOUT_MS = max(
    0,
    min(
        _parse_int("DB_BUSY_TIMEOUT_MS", 4000),
        REQUEST_TIMEOUT_MS - LOCK_WAIT_HEADROOM_MS,
    ),
)

# CORS: comma-separated origins; default allows the local Streamlit dashboard.
_raw_cors = os.environ.get("CORS_ORIGINS", "http://localhost:8501")
CORS_ORIGINS = [o.strip() for o in _raw_cors.split(",") if o.strip()] or [
    "http://localhost:8501"
]

READ_ONLY_HINT = os.environ.get(
    "READ_ONLY_HINT", "Use the read-write server to create goals and tasks."
)

PRIORITIES = ("high", "medium", "low")
DEFAULT_PRIORITY = "medium"
TASK_STATUSES = ("pending", "in_progress", "completed")
DEFAULT_TASK_STATUS = "pending"
