"""
Configuration module for the Shopfloor API
"""

import os
from pathlib import Path


def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def _read_version_from_repo(default: str = "dev") -> str:
    try:
        # repo root: shopfloor/.. (two parents up)
        version_file = Path(__file__).resolve().parents[1] / "VERSION"
        v = version_file.read_text(encoding="utf-8").strip()
        if v:
            return v
    except OSError:
        pass
    return os.getenv("APP_VERSION", default)


API_VERSION = _read_version_from_repo()
APP_NAME = os.getenv("APP_NAME", "shopfloor-api")

# Database configuration
SQLITE_PATH = os.getenv("SQLITE_PATH", "./shopfloor.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{SQLITE_PATH}")
# Seconds a SQLite writer waits for the write lock before giving up
SQLITE_BUSY_TIMEOUT_SEC = float(os.getenv("SQLITE_BUSY_TIMEOUT_SEC", "30"))

# API configuration
API_PREFIX = "/v1"
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
HTTP_LOG_ENABLED = env_bool("HTTP_LOG_ENABLED", True)
HTTP_LOG_SAMPLE_RATE = float(os.getenv("HTTP_LOG_SAMPLE_RATE", "1.0"))
HTTP_LOG_EXCLUDE_PATHS = set(
    os.getenv("HTTP_LOG_EXCLUDE_PATHS", "/v1/healthz,/v1/metrics/prometheus,/v1/events/stream").split(",")
)

# Notification fan-out
EVENT_BUFFER_SIZE = int(os.getenv("EVENT_BUFFER_SIZE", "1000"))
EVENT_SUBSCRIBER_QUEUE = int(os.getenv("EVENT_SUBSCRIBER_QUEUE", "256"))
EVENT_KEEPALIVE_SEC = float(os.getenv("EVENT_KEEPALIVE_SEC", "15"))

# Seeded identities for a fresh database
SEED_DEFAULT_USERS = env_bool("SEED_DEFAULT_USERS", True)
DEV_ADMIN_KEY = os.getenv("DEV_ADMIN_KEY", "DEV_ADMIN_KEY_7c1e0b52")
DEV_EMPLOYEE_KEY = os.getenv("DEV_EMPLOYEE_KEY", "DEV_EMPLOYEE_KEY_3f9a6d10")
