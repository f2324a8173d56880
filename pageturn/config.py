import os
from pathlib import Path

DB_PATH = os.environ.get("PAGETURN_DB_PATH", str(Path.cwd() / "pageturn.db"))
DATABASE_URL = f"sqlite+aiosqlite:///{DB_PATH}"

LOG_LEVEL = os.environ.get("PAGETURN_LOG_LEVEL", "INFO")

# Streak defaults
DEFAULT_TIMEZONE = os.environ.get("PAGETURN_DEFAULT_TIMEZONE", "America/New_York")
DEFAULT_DAILY_THRESHOLD = int(os.environ.get("PAGETURN_DEFAULT_DAILY_THRESHOLD", "1"))
MIN_DAILY_THRESHOLD = 1
MAX_DAILY_THRESHOLD = 9999

# When enabled, editing or deleting a progress entry recomputes pages_read
# for every entry in the same session instead of only the edited one.
CASCADE_PAGES_READ = os.environ.get("PAGETURN_CASCADE_PAGES_READ", "").lower() in ("1", "true", "yes")

# External rating sync (disabled when no URL is configured)
RATING_SYNC_URL = os.environ.get("PAGETURN_RATING_SYNC_URL") or None
RATING_SYNC_TIMEOUT = float(os.environ.get("PAGETURN_RATING_SYNC_TIMEOUT", "5.0"))
