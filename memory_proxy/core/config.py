"""
Runtime configuration for the memory proxy.
All settings come from environment variables with local-first defaults.
"""

import os
from pathlib import Path

# Debug flag controls error detail in HTTP responses
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Durable store selection
STORE_BACKEND = os.getenv("STORE_BACKEND", "sqlite")  # sqlite|sheets
DB_PATH = os.getenv("DB_PATH", "./data/memory_proxy.db")

# Google Sheets backend
SPREADSHEET_ID = os.getenv("SPREADSHEET_ID", "your-spreadsheet-id")
SHEET_NAME = os.getenv("SHEET_NAME", "Memory")
MEMORY_SHEET_ID = int(os.getenv("MEMORY_SHEET_ID", "0"))  # gid of the Memory tab
SHEETS_API_BASE = os.getenv("SHEETS_API_BASE", "https://sheets.googleapis.com")

# Sheets credentials (SHEETS_ACCESS_TOKEN, GOOGLE_APPLICATION_CREDENTIALS_B64) are
# read by EnvCredentialProvider on each session, not at import

# Every upstream call is bounded by this timeout
UPSTREAM_TIMEOUT_SEC = float(os.getenv("UPSTREAM_TIMEOUT_SEC", "10"))

# Staleness sweeper
PENDING_TTL_DAYS = int(os.getenv("PENDING_TTL_DAYS", "7"))
SWEEP_INTERVAL_SEC = int(os.getenv("SWEEP_INTERVAL_SEC", "86400"))  # Daily
SWEEP_ON_STARTUP = os.getenv("SWEEP_ON_STARTUP", "true").lower() == "true"

# Background scheduler and draft inactivity watcher
HEARTBEAT_ENABLED = os.getenv("HEARTBEAT_ENABLED", "true").lower() == "true"
INACTIVITY_POLL_SEC = int(os.getenv("INACTIVITY_POLL_SEC", "60"))
INACTIVITY_QUIET_SEC = int(os.getenv("INACTIVITY_QUIET_SEC", "600"))  # 10 minutes

# Summary card defaults
DRAFT_DEFAULT_TOPICS = os.getenv("DRAFT_DEFAULT_TOPICS", "Workflow Automation")
DRAFT_DEFAULT_TAGS = os.getenv("DRAFT_DEFAULT_TAGS", "schema, workflow, validation")
DRAFT_PLACEHOLDER_FACTS = os.getenv("DRAFT_PLACEHOLDER_FACTS", "Default key facts placeholder")

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def is_heartbeat_enabled():
    """Check if background tasks should be started with the app."""
    return HEARTBEAT_ENABLED


def get_store_backend():
    """Get the configured durable store backend (sqlite|sheets)."""
    return STORE_BACKEND


def validate_store_config():
    """Validate store configuration and return any issues."""
    issues = []

    if STORE_BACKEND not in ["sqlite", "sheets"]:
        issues.append(f"Invalid STORE_BACKEND: {STORE_BACKEND}")

    if STORE_BACKEND == "sheets" and SPREADSHEET_ID in ("", "your-spreadsheet-id"):
        issues.append("STORE_BACKEND=sheets requires SPREADSHEET_ID")

    if UPSTREAM_TIMEOUT_SEC <= 0:
        issues.append("UPSTREAM_TIMEOUT_SEC must be > 0")

    return issues


def validate_heartbeat_config():
    """Validate background task configuration and return any issues."""
    issues = []

    if PENDING_TTL_DAYS < 1:
        issues.append("PENDING_TTL_DAYS must be >= 1")

    if SWEEP_INTERVAL_SEC < 1:
        issues.append("SWEEP_INTERVAL_SEC must be >= 1")

    if INACTIVITY_POLL_SEC < 1:
        issues.append("INACTIVITY_POLL_SEC must be >= 1")

    if INACTIVITY_QUIET_SEC < 1:
        issues.append("INACTIVITY_QUIET_SEC must be >= 1")

    return issues
