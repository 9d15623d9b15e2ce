# ======================================================
# VisionQuest settings
# ======================================================

import os
from pathlib import Path

from .models import RetryPolicy

# ----------------------------
# Paths
# ----------------------------
ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = Path(os.environ.get("VISIONQUEST_DATA_DIR", ROOT / "data"))
MODEL_CACHE_DIR = DATA_DIR / "models"
LOG_DIR = DATA_DIR / "logs"

# ----------------------------
# Classifier
# ----------------------------
DEFAULT_MODEL_URL = "https://teachablemachine.withgoogle.com/models/qPzd94cSh/"
MODEL_FILENAME = "model.json"
METADATA_FILENAME = "metadata.json"
IMG_SIZE = 224
CONFIDENCE_THRESHOLD = 0.05

# ----------------------------
# Feedback
# ----------------------------
HISTORY_LIMIT = 5
RESET_DELAY_SECONDS = 4.0

# Persisted keys
MODEL_URL_KEY = "tm_model_url"
FEEDBACK_HISTORY_KEY = "tm_feedback_history"

# ----------------------------
# Text generation
# ----------------------------
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_TIMEOUT = 30

INSIGHT_RETRY_POLICY = RetryPolicy(max_attempts=3, initial_delay_ms=2000, backoff_multiplier=2)

LOG_LEVEL = os.environ.get("VISIONQUEST_LOG_LEVEL", "INFO")


def format_model_url(url: str) -> str:
    url = url.strip()
    return url if url.endswith("/") else f"{url}/"


def load_model_url(store) -> str:
    """Endpoint saved by the last successful model load, or the default."""
    return store.get(MODEL_URL_KEY) or DEFAULT_MODEL_URL


def save_model_url(store, url: str) -> str:
    url = format_model_url(url)
    store.set(MODEL_URL_KEY, url)
    return url
