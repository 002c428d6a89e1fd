"""Configuration for the fronthaul analysis dashboard."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_PROJECT_ROOT = Path(__file__).resolve().parent

# --- ENDPOINTS ---
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000").rstrip("/")
ANALYZE_PATH = "/analyze"
API_TIMEOUT_SEC = 30
API_RETRIES = 2
# ngrok requires this header to bypass the browser warning page
TUNNEL_BYPASS_HEADER = {"ngrok-skip-browser-warning": "true"}
ANALYSIS_CACHE_TTL_SEC = 5 * 60

CHAT_URL = os.environ.get("CHAT_URL", "")
CHAT_API_KEY = os.environ.get("CHAT_API_KEY", "")
CHAT_TIMEOUT_SEC = 60
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")

# --- DOWNSAMPLING ---
DOWNSAMPLE_TARGET_POINTS = 200
MIN_DOWNSAMPLE_TARGET = 50

# --- CONGESTION TIMELINE ---
PROXIMITY_THRESHOLD_SEC = 0.1        # sparse datasets
DENSE_PROXIMITY_THRESHOLD_SEC = 0.5  # dense datasets
DENSE_EVENT_COUNT = 20               # events per link above which a lane counts as dense
OFFSET_INCREMENT_PX = 18
MAX_EVENTS_PER_LINK = 50
TIMELINE_MARGIN_PCT = 5.0
HIGH_CONTRIBUTION_PCT = 20.0
HIGH_SEVERITY_PCT = 50.0

# --- CORRELATION HEATMAP ---
HEATMAP_MAX_CELLS = 24

# --- WHAT-IF POLICY ---
# Attenuation of traffic change into required capacity; no physical derivation.
WHAT_IF_DAMPING_FACTOR = 0.3
RISK_HIGH_CHANGE_PCT = 30.0
RISK_MEDIUM_CHANGE_PCT = 10.0
WHAT_IF_SLIDER_RANGE_PCT = (-50, 100)

# --- EXPORT ---
OUTPUT_DIR = Path(os.environ.get("OUTPUT_DIR", _PROJECT_ROOT / "output"))

LOG_LEVEL = os.environ.get("FRONTHAUL_LOG_LEVEL", "INFO").upper()


def configure_logging(level=None):
    """Install the root log handler once; later calls only adjust the level."""
    level = level or LOG_LEVEL
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        root.setLevel(level)
