import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
DRAFT_DIR = os.getenv("DRAFT_DIR", os.path.join(BASE_DIR, "drafts"))
LOG_FILE = os.getenv("LOG_FILE", os.path.join(BASE_DIR, "launch.log"))

# Server
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# Deadline clock
TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "0.25"))
WARNING_THRESHOLD_SECONDS = 60     # under a minute left -> warning display

# Finalize write retries (idempotent update, exponential backoff)
FINALIZE_MAX_RETRIES = int(os.getenv("FINALIZE_MAX_RETRIES", "3"))
FINALIZE_BACKOFF_BASE = float(os.getenv("FINALIZE_BACKOFF_BASE", "0.5"))

# Attempt history
HISTORY_PAGE_SIZE = int(os.getenv("HISTORY_PAGE_SIZE", "12"))

# Practice streak lookback
STREAK_WINDOW_DAYS = 14

# Browser sessions
SESSION_TTL = 3600                 # 1 hour
SESSION_CLEANUP_INTERVAL = 300     # every 5 minutes
