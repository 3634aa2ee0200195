"""
Global configuration for TrendCatch.

Environment-driven settings and defaults for the trend catcher and the
content repurposing pipeline.

API keys can be stored in database (preferred) or .env (fallback).
"""

import logging
import os
import sqlite3
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

# ── Paths ──
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = Path(os.getenv("TRENDCATCH_DATA_DIR", PROJECT_ROOT / "data"))
DB_PATH = DATA_DIR / "trendcatch.db"

# Ensure data directory exists
DATA_DIR.mkdir(parents=True, exist_ok=True)


def get_api_key(service: str) -> str:
    """
    Get API key from database first, fall back to environment variable.

    Args:
        service: 'openai', 'telegram'

    Returns:
        API key string or empty string if not found
    """
    # Try database first
    if DB_PATH.exists():
        try:
            conn = sqlite3.connect(str(DB_PATH))
            row = conn.execute(
                "SELECT api_key FROM api_credentials WHERE service = ?",
                (service,)
            ).fetchone()
            conn.close()

            if row:
                logger.debug(f"Found API key for '{service}' in database")
                return row[0]
            else:
                logger.debug(f"No API key for '{service}' in api_credentials table")
        except Exception as e:
            logger.debug(f"Database lookup failed for '{service}': {e}")

    # Fall back to environment variables
    env_map = {
        'openai': 'OPENAI_API_KEY',
        'telegram': 'TELEGRAM_BOT_TOKEN',
    }

    env_var = env_map.get(service)
    if env_var:
        value = os.getenv(env_var, '')
        if not value:
            logger.warning(
                f"API key for '{service}' not found in database or "
                f"environment variable {env_var}."
            )
        return value

    return ''


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── TikTok Creative Center ──
CREATIVE_CENTER_URL = os.getenv(
    "CREATIVE_CENTER_URL",
    "https://ads.tiktok.com/business/creativecenter/inspiration/popular/music/pc/en",
)
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
REQUEST_TIMEOUT_SECONDS = int(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))

# Top music markets, scraped in rotation
DEFAULT_COUNTRIES = ["US", "GB", "BR", "MX", "DE", "FR", "JP", "KR", "ID", "PH"]
COUNTRIES = [
    c.strip().upper() for c in os.getenv("TREND_COUNTRIES", "").split(",") if c.strip()
] or DEFAULT_COUNTRIES

# ── Rotation / Cache Policy ──
# 6 hours keeps us well under ~100 requests/day
CACHE_TTL_HOURS = float(os.getenv("CACHE_TTL_HOURS", "6"))
REGIONS_PER_CYCLE = int(os.getenv("REGIONS_PER_CYCLE", "3"))
ROTATION_OFFSET = int(os.getenv("ROTATION_OFFSET", "0"))
REQUEST_DELAY_SECONDS = float(os.getenv("REQUEST_DELAY_SECONDS", "1"))
FULL_REFRESH_DELAY_SECONDS = float(os.getenv("FULL_REFRESH_DELAY_SECONDS", "2"))

# ── Ranking ──
TRENDING_LIMIT = int(os.getenv("TRENDING_LIMIT", "50"))
# The page exposes ranks, not use counts: uses ~= base / rank
USES_ESTIMATE_BASE = int(os.getenv("USES_ESTIMATE_BASE", "100000"))
SHOW_PLACEHOLDER_SOUNDS = _env_flag("SHOW_PLACEHOLDER_SOUNDS", "true")

# ── Retention ──
SNAPSHOT_HISTORY_LIMIT = int(os.getenv("SNAPSHOT_HISTORY_LIMIT", "200"))
ALERT_RETENTION_DAYS = int(os.getenv("ALERT_RETENTION_DAYS", "90"))

# ── Alert defaults (new users) ──
DEFAULT_EMAIL_FREQUENCY = "daily"
DEFAULT_VELOCITY_THRESHOLD = 300
DEFAULT_MIN_USES = 200
EMAIL_FREQUENCIES = ("realtime", "daily", "weekly")

# ── Auth / Operator secrets ──
CRON_SECRET = os.getenv("CRON_SECRET", "")
SECRET_KEY = os.getenv("SECRET_KEY", "")
MAGIC_LINK_MAX_AGE_MINUTES = int(os.getenv("MAGIC_LINK_MAX_AGE_MINUTES", "60"))
APP_URL = os.getenv("APP_URL", "http://localhost:5000")

# ── OpenAI ──
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")  # Fallback, use get_api_key('openai')
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TRANSCRIBE_MODEL = os.getenv("OPENAI_TRANSCRIBE_MODEL", "whisper-1")
OPENAI_MAX_TOKENS = 4096
OPENAI_TEMPERATURE = 0.7

# GPT-4o-mini pricing (per 1K tokens)
COST_PER_1K_INPUT_TOKENS = 0.00015
COST_PER_1K_OUTPUT_TOKENS = 0.00060

# ── Transcription ──
MAX_AUDIO_BYTES = 25 * 1024 * 1024  # Whisper upload limit
YOUTUBE_DOWNLOAD_TIMEOUT = int(os.getenv("YOUTUBE_DOWNLOAD_TIMEOUT", "90"))
YTDLP_BINARY = os.getenv("YTDLP_BINARY", "yt-dlp")
WARP_PROXY = os.getenv("WARP_PROXY")

# ── Email (SMTP) ──
SMTP_SERVER = os.getenv("SMTP_SERVER", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
EMAIL_ADDRESS = os.getenv("EMAIL_ADDRESS")
EMAIL_PASSWORD = os.getenv("EMAIL_APP_PASSWORD")

# ── Logging ──
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
