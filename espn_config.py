"""
PolyNBA Pipeline — Configuration
All fetch-layer constants and environment variables in one place.
"""

import os
from zoneinfo import ZoneInfo
from pathlib import Path

# ── Paths ────────────────────────────────────────────────────────────────────
BASE_DIR  = Path(__file__).parent.resolve()
CSV_DIR   = Path(os.getenv("POLYNBA_DATA_DIR", str(BASE_DIR / "data")))
CACHE_DIR = Path(os.getenv("POLYNBA_CACHE_DIR", str(CSV_DIR / "cache")))

# Output CSVs
OUT_PREDICTIONS_LATEST = CSV_DIR / "predictions_latest.csv"
OUT_RECORDS            = CSV_DIR / "prediction_records.csv"
OUT_PERFORMANCE        = CSV_DIR / "model_performance.csv"

# ── ESPN API ─────────────────────────────────────────────────────────────────
ESPN_BASE = os.getenv("ESPN_API_BASE", "https://site.api.espn.com/apis/site/v2/sports")

ESPN_SCOREBOARD_URL = ESPN_BASE + "/basketball/nba/scoreboard?dates={date}"
ESPN_SUMMARY_URL    = ESPN_BASE + "/basketball/nba/summary?event={event_id}"
ESPN_TEAM_STATS_URL = ESPN_BASE + "/basketball/nba/teams/{team_id}/statistics"
ESPN_LOGO_URL       = "https://a.espncdn.com/i/teamlogos/nba/500/{abbr}.png"

# ── Polymarket Gamma API ─────────────────────────────────────────────────────
POLYMARKET_EVENTS_URL = (
    "https://gamma-api.polymarket.com/events"
    "?tag_id={tag_id}&closed=false&limit={limit}"
)
POLYMARKET_NBA_TAG_ID = int(os.getenv("POLYMARKET_NBA_TAG_ID", "745"))
POLYMARKET_EVENT_LIMIT = 100

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0",
    "Accept":     "application/json,text/plain,*/*",
}

# ── HTTP Retry ────────────────────────────────────────────────────────────────
REQUEST_TIMEOUT     = int(os.getenv("ESPN_TIMEOUT",        "25"))
MAX_RETRIES         = int(os.getenv("ESPN_MAX_RETRIES",     "3"))
RETRY_INITIAL_DELAY = float(os.getenv("ESPN_RETRY_DELAY", "1.0"))
RETRY_BACKOFF       = float(os.getenv("ESPN_RETRY_BACKOFF", "2.0"))

# ── Cache ─────────────────────────────────────────────────────────────────────
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

# ── Run window ────────────────────────────────────────────────────────────────
# Days of scoreboards scanned to build recent form, H2H and rest days.
TEAM_LOOKBACK_DAYS = int(os.getenv("TEAM_LOOKBACK_DAYS", "30"))

# Markets considered per runner pass.
MARKET_LIMIT = int(os.getenv("MARKET_LIMIT", "50"))

# ESPN keeps US dates; Polymarket start times are UTC.
TZ = ZoneInfo("America/New_York")

# NBA off-season months skipped when scanning scoreboards.
OFFSEASON_MONTHS = (7, 8, 9)

# ── Run mode ──────────────────────────────────────────────────────────────────
DRY_RUN = os.getenv("DRY_RUN", "0").strip().lower() in ("1", "true", "yes")

# ── Rate limiting ─────────────────────────────────────────────────────────────
# Seconds to sleep between markets / scoreboard fetches.
FETCH_SLEEP = float(os.getenv("FETCH_SLEEP", "0.2"))
