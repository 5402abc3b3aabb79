"""Configuration for the Lean Canvas advisor."""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

# OpenRouter API key
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_SITE_URL = os.getenv("OPENROUTER_SITE_URL", "http://localhost")
OPENROUTER_APP_TITLE = os.getenv("OPENROUTER_APP_TITLE", "Lean Canvas Advisor")

# OpenRouter API endpoint
OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"

# Model used by every agent. Left unset, the placeholder surfaces as an
# upstream API error rather than being validated here.
AI_MODEL = os.getenv("AI_MODEL") or "define AI_MODEL"

MODEL_TIMEOUT = 120.0
MODEL_MAX_RETRIES = 3
MODEL_RETRY_BASE_DELAY = 2.0

# Agent network
NETWORK_MAX_STEPS = int(os.getenv("NETWORK_MAX_STEPS", "3"))
MEMORY_RESOURCE = "lean-chat"

# Canvas rules
MAX_ITEMS_PER_LIST = 3
SAVE_DEBOUNCE_SECONDS = 0.5
DEFAULT_CANVAS_NAME = "Untitled Canvas"

# Data directory for threads and saved canvases
DATA_DIR = os.getenv("DATA_DIR", "data")
THREADS_DIR = os.path.join(DATA_DIR, "threads")
CANVAS_STORE_FILE = os.path.join(DATA_DIR, "lean-canvases-storage.json")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]


def configure_logging(level: str = None):
    """Set the root log format and level (``LOG_LEVEL`` by default)."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
