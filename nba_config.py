"""
NBA prediction engine configuration shared across nba_* modules.

Canonical constant set is v3.0. Weights may be overridden from a JSON file
(see load_engine_weights) so a re-tuned set can be dropped in without a code
change.
"""

import json
import logging
from pathlib import Path
from typing import Dict

log = logging.getLogger(__name__)

MODEL_VERSION = "v3.0"

# ── Factor weights (sum to 1.0) ───────────────────────────────────────────────
FACTOR_NAMES = [
    "Team Strength",
    "Recent Form",
    "Injury Impact",
    "Head-to-Head",
    "Offensive Power",
    "Fatigue",
    "Home Advantage",
]

DEFAULT_FACTOR_WEIGHTS = {
    "Team Strength":   0.30,
    "Recent Form":     0.15,
    "Injury Impact":   0.20,
    "Head-to-Head":    0.05,
    "Offensive Power": 0.10,
    "Fatigue":         0.10,
    "Home Advantage":  0.10,
}

# ── Score bounds / multipliers ────────────────────────────────────────────────
SCORE_MIN = -100.0
SCORE_MAX = 100.0

RATING_MULTIPLIER   = 8.0     # NBA rating (net rating) points
WIN_RATE_MULTIPLIER = 100.0   # win-rate proxy when no rating is available
FORM_MULTIPLIER     = 40.0    # wins over the last 5
OFFENSE_MULTIPLIER  = 4.0     # eFG% points
H2H_MULTIPLIER      = 150.0   # (win rate − 0.5)
FATIGUE_MULTIPLIER  = 2.0

FORM_WINDOW        = 5
NEUTRAL_FORM_WINS  = 2.5

# ── Injuries ──────────────────────────────────────────────────────────────────
INJURY_PENALTIES = {
    "OUT":          -25.0,
    "DOUBTFUL":     -15.0,
    "QUESTIONABLE":  -8.0,
    "DAY_TO_DAY":    -3.0,
    "UNKNOWN":        0.0,
}

# ── Home / rest ───────────────────────────────────────────────────────────────
HOME_ADVANTAGE_POINTS = 15.0

REST_BACK_TO_BACK = -15.0   # rest_days <= 1
REST_ONE_DAY      =   0.0   # rest_days == 2
REST_TWO_DAYS     =   5.0   # rest_days == 3
REST_THREE_PLUS   =   8.0   # rest_days >= 4

# Used when a team has no game inside the lookback window.
DEFAULT_REST_DAYS = 3

# ── Synergy bumps ─────────────────────────────────────────────────────────────
SYNERGY_HOME_PLUS_RESTED   = 10.0
SYNERGY_INJURY_PLUS_TIRED  = -15.0
SYNERGY_INJURY_THRESHOLD   = 20.0
SYNERGY_REASONING_MIN      = 5.0

# ── Sigmoid ───────────────────────────────────────────────────────────────────
SIGMOID_BASE_K = 35.0
SIGMOID_MIN_K  = 25.0
SIGMOID_MAX_K  = 50.0

# ── Confidence ────────────────────────────────────────────────────────────────
CONFIDENCE_BASE = 0.50
CONFIDENCE_BONUS = {
    "advanced_stats": 0.15,
    "recent_stats":   0.10,
    "head_to_head":   0.10,
    "injuries":       0.05,
    "home_known":     0.05,
}
CONFIDENCE_CAP = 0.98

# Caller-side publish filter (strictly greater than).
MIN_PUBLISH_CONFIDENCE = 0.5

# ── Bayesian market blend ─────────────────────────────────────────────────────
BAYES_PRIOR_WEIGHT = 0.3
BAYES_MODEL_WEIGHT = 0.7
BAYES_H2H_WEIGHT   = 0.2

# ── Probability band ──────────────────────────────────────────────────────────
PROB_MIN = 0.01
PROB_MAX = 0.99

# ── Calibration ───────────────────────────────────────────────────────────────
CALIBRATION_MIN_SAMPLES = 30

# ── Recommendation / value ────────────────────────────────────────────────────
RECOMMEND_MIN_CONFIDENCE = 0.7
RECOMMEND_STRONG_A = 0.65
RECOMMEND_LEAN_A   = 0.55
RECOMMEND_LEAN_B   = 0.45
RECOMMEND_STRONG_B = 0.35

VALUE_THRESHOLD        = 0.05
STRONG_VALUE_THRESHOLD = 0.10

REASONING_TOP_N = 4

WEIGHTS_PATH = Path("data") / "engine_weights.json"


def load_engine_weights(path: Path = None) -> Dict[str, float]:
    """Return factor weights, overlaid with ``{"weights": {...}}`` from *path*."""
    path = path or WEIGHTS_PATH
    weights = dict(DEFAULT_FACTOR_WEIGHTS)
    if path.exists() and path.stat().st_size > 10:
        try:
            payload = json.loads(path.read_text())
            if isinstance(payload.get("weights"), dict):
                known = {k: float(v) for k, v in payload["weights"].items() if k in weights}
                weights.update(known)
        except (OSError, json.JSONDecodeError, TypeError, ValueError) as exc:
            log.warning(f"Ignoring unreadable weights file {path}: {exc}")
    return weights
