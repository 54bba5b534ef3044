"""Global configuration values."""

import os

# Default Gemini model (can be overridden via env)
DEFAULT_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")

# Alternate provider model (OpenAI)
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")

# "gemini" or "openai"
LLM_PROVIDER = os.environ.get("LLM_PROVIDER", "gemini").lower()

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///nikah.db")

SECRET_KEY = os.environ.get("SECRET_KEY", "madhubani-nikah-dev-key")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Cultural context passed to the compatibility flow: madhubani, bihar or general
CULTURAL_CONTEXT = os.environ.get("CULTURAL_CONTEXT", "madhubani")

# Base URL used when replaying queued offline actions
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:5000")

# Limits
INTEREST_SEND_DAILY_LIMIT = int(os.environ.get("INTEREST_SEND_DAILY_LIMIT", "10"))
INTEREST_HISTORY_LIMIT = 50
NOTIFICATION_LIMIT = 20
SEARCH_RESULTS_LIMIT = 50
ONLINE_WINDOW_MINUTES = 5

# Offline queue
OFFLINE_SYNC_INTERVAL = int(os.environ.get("OFFLINE_SYNC_INTERVAL", "30"))
OFFLINE_CACHE_TTL = 3600
