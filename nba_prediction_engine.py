"""
PolyNBA — Heuristic Win-Probability Engine (v3.0)

Seven factor scorers, each a pure function of one matchup, feed a fixed-weight
aggregator. The composite score goes through a logistic transform whose
sensitivity depends on how much real data was available, then is optionally
blended with the Polymarket price.

ARCHITECTURE
─────────────────────────────────────────────────────────────────────────────
  Factor scorers   TeamStrength, RecentForm, InjuryImpact, HeadToHead,
                   OffensivePower, Fatigue, HomeAdvantage.
                   Each returns a score in [-100, 100]; positive favors A.
                   Missing data → score 0 with has_data=False, never raises.
  Aggregator       composite = Σ score·weight + synergy, clamped to ±100.
                   p = 1 / (1 + e^(−composite / k))
  Confidence       0.5 base plus a bonus per data source present.
  Market blender   weighted average of model p, market p and H2H win rate.
                   The raw model probability is kept next to the blend.
  Reasoning        top factors by |score|, declaration order on ties.

Every step is antisymmetric in the two teams: swapping A and B (and the
market, H2H record and home flag with them) yields the complementary
probability. Nothing here does I/O or holds state between calls.

Usage:
    engine = PredictionEngine()
    result = engine.predict(MatchupInputs(team_a="Boston Celtics", ...))

    # or the flat call used by the runner
    result = generate_prediction("Boston Celtics", "Miami Heat", h2h, ...)
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields
from numbers import Integral, Real
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from nba_config import (
    CALIBRATION_MIN_SAMPLES,
    CONFIDENCE_BASE,
    CONFIDENCE_BONUS,
    CONFIDENCE_CAP,
    BAYES_H2H_WEIGHT,
    BAYES_MODEL_WEIGHT,
    BAYES_PRIOR_WEIGHT,
    DEFAULT_FACTOR_WEIGHTS,
    DEFAULT_REST_DAYS,
    FACTOR_NAMES,
    FATIGUE_MULTIPLIER,
    FORM_MULTIPLIER,
    FORM_WINDOW,
    H2H_MULTIPLIER,
    HOME_ADVANTAGE_POINTS,
    INJURY_PENALTIES,
    MODEL_VERSION,
    NEUTRAL_FORM_WINS,
    OFFENSE_MULTIPLIER,
    PROB_MAX,
    PROB_MIN,
    RATING_MULTIPLIER,
    REASONING_TOP_N,
    RECOMMEND_LEAN_A,
    RECOMMEND_LEAN_B,
    RECOMMEND_MIN_CONFIDENCE,
    RECOMMEND_STRONG_A,
    RECOMMEND_STRONG_B,
    REST_BACK_TO_BACK,
    REST_ONE_DAY,
    REST_THREE_PLUS,
    REST_TWO_DAYS,
    SCORE_MAX,
    SCORE_MIN,
    SIGMOID_BASE_K,
    SIGMOID_MAX_K,
    SIGMOID_MIN_K,
    SYNERGY_HOME_PLUS_RESTED,
    SYNERGY_INJURY_PLUS_TIRED,
    SYNERGY_INJURY_THRESHOLD,
    SYNERGY_REASONING_MIN,
    VALUE_THRESHOLD,
    WIN_RATE_MULTIPLIER,
    load_engine_weights,
)
from nba_team_stats import (
    AdvancedTeamStats,
    H2HStats,
    InjuryStatus,
    TeamInjuries,
    TeamRecentStats,
)

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class InvalidInput(ValueError):
    """Structurally invalid engine input (negative rest, NaN, price out of range)."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MarketPrices:
    """Polymarket outcome prices. ``yes`` is team A winning."""
    yes: float = 0.5
    no:  float = 0.5

    @property
    def implied_probability(self) -> float:
        """Team A's market probability with the overround removed."""
        return self.yes / (self.yes + self.no)

    def swapped(self) -> "MarketPrices":
        return MarketPrices(yes=self.no, no=self.yes)


@dataclass(frozen=True)
class MatchupInputs:
    """Everything the engine needs for one game, fully resolved."""
    team_a:          str
    team_b:          str
    market:          MarketPrices = field(default_factory=MarketPrices)
    h2h:             Optional[H2HStats] = None
    advanced_a:      Optional[AdvancedTeamStats] = None
    advanced_b:      Optional[AdvancedTeamStats] = None
    injuries_a:      Optional[TeamInjuries] = None
    injuries_b:      Optional[TeamInjuries] = None
    recent_a:        Optional[TeamRecentStats] = None
    recent_b:        Optional[TeamRecentStats] = None
    rest_days_a:     int = DEFAULT_REST_DAYS
    rest_days_b:     int = DEFAULT_REST_DAYS
    is_team_a_home:  Optional[bool] = None

    def swapped(self) -> "MatchupInputs":
        """The same game described from team B's side."""
        return MatchupInputs(
            team_a=self.team_b,
            team_b=self.team_a,
            market=self.market.swapped(),
            h2h=self.h2h.swapped() if self.h2h is not None else None,
            advanced_a=self.advanced_b,
            advanced_b=self.advanced_a,
            injuries_a=self.injuries_b,
            injuries_b=self.injuries_a,
            recent_a=self.recent_b,
            recent_b=self.recent_a,
            rest_days_a=self.rest_days_b,
            rest_days_b=self.rest_days_a,
            is_team_a_home=None if self.is_team_a_home is None else not self.is_team_a_home,
        )


@dataclass(frozen=True)
class PredictionFactor:
    name:        str
    score:       float          # [-100, 100], positive favors team A
    weight:      float
    description: str
    has_data:    bool = True

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight


@dataclass(frozen=True)
class CalibrationBin:
    """Observed hit rate of the favored side for predictions in [low, high)."""
    low:             float
    high:            float
    actual_win_rate: float
    sample_size:     int

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2.0


@dataclass(frozen=True)
class PredictionResult:
    team_a:              str
    team_b:              str
    team_a_probability:  float          # final (blended) probability
    team_b_probability:  float
    model_probability:   float          # raw model probability before blending
    market_probability:  float
    confidence:          float
    composite_score:     float
    synergy_bonus:       float
    k_value:             float
    factors:             Tuple[PredictionFactor, ...]
    reasoning:           Tuple[str, ...]
    recommendation:      str
    market_value:        str
    model_version:       str = MODEL_VERSION

    def factor(self, name: str) -> Optional[PredictionFactor]:
        for f in self.factors:
            if f.name == name:
                return f
        return None

    @property
    def model_market_divergence(self) -> float:
        return self.model_probability - self.market_probability

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PredictionResult":
        data = dict(payload)
        data["factors"] = tuple(PredictionFactor(**f) for f in data.get("factors", []))
        data["reasoning"] = tuple(data.get("reasoning", []))
        return cls(**data)

    @classmethod
    def from_json(cls, text: str) -> "PredictionResult":
        return cls.from_dict(json.loads(text))

    def to_flat_dict(self) -> Dict[str, Any]:
        """One CSV row; factor scores become ``<factor>_score`` columns."""
        row = {
            "team_a":             self.team_a,
            "team_b":             self.team_b,
            "team_a_probability": self.team_a_probability,
            "team_b_probability": self.team_b_probability,
            "model_probability":  self.model_probability,
            "market_probability": self.market_probability,
            "confidence":         self.confidence,
            "composite_score":    self.composite_score,
            "synergy_bonus":      self.synergy_bonus,
            "k_value":            self.k_value,
            "recommendation":     self.recommendation,
            "market_value":       self.market_value,
            "model_version":      self.model_version,
            "reasoning":          " | ".join(self.reasoning),
        }
        for f in self.factors:
            row[f"{factor_slug(f.name)}_score"] = f.score
        return row


def factor_slug(name: str) -> str:
    return name.lower().replace("-", "_").replace(" ", "_")


# ═══════════════════════════════════════════════════════════════════════════════
# NUMERIC HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def clamp_score(score: float) -> float:
    return float(np.clip(score, SCORE_MIN, SCORE_MAX))


def clamp_probability(p: float) -> float:
    return float(np.clip(p, PROB_MIN, PROB_MAX))


def sigmoid(x: float, k: float) -> float:
    return float(1.0 / (1.0 + np.exp(-x / k)))


def rest_value(rest_days: int) -> float:
    """Step function over days since the last game."""
    if rest_days <= 1:
        return REST_BACK_TO_BACK
    if rest_days == 2:
        return REST_ONE_DAY
    if rest_days == 3:
        return REST_TWO_DAYS
    return REST_THREE_PLUS


def _rest_label(rest_days: int) -> str:
    if rest_days <= 1:
        return "back-to-back"
    return f"{rest_days - 1} day{'s' if rest_days > 2 else ''} off"


def team_injury_penalty(injuries: Optional[TeamInjuries]) -> float:
    """Sum of per-player penalties. No report counts as a healthy roster."""
    if injuries is None:
        return 0.0
    return float(sum(INJURY_PENALTIES[i.status.value] for i in injuries.injuries))


def _injury_summary(injuries: Optional[TeamInjuries]) -> str:
    if injuries is None:
        return "no report"
    parts = []
    for status in (InjuryStatus.OUT, InjuryStatus.DOUBTFUL,
                   InjuryStatus.QUESTIONABLE, InjuryStatus.DAY_TO_DAY):
        n = injuries.count(status)
        if n:
            parts.append(f"{n} {status.value.lower().replace('_', '-')}")
    return ", ".join(parts) if parts else "healthy"


def form_wins(form: Optional[str]) -> float:
    """Wins in the last FORM_WINDOW results; no form is a neutral midpoint."""
    if not form:
        return NEUTRAL_FORM_WINS
    return float(form[:FORM_WINDOW].upper().count("W"))


# ═══════════════════════════════════════════════════════════════════════════════
# FACTOR SCORERS
# ═══════════════════════════════════════════════════════════════════════════════

class BaseFactor(ABC):
    """
    Abstract base for the factor scorers.

    score() returns (raw_score, description, has_data). evaluate() clamps the
    raw score and attaches the weight, so subclasses never clamp themselves.
    """

    name: str = "Base"

    @abstractmethod
    def score(self, m: MatchupInputs) -> Tuple[float, str, bool]:
        ...

    def evaluate(self, m: MatchupInputs, weight: float) -> PredictionFactor:
        raw, description, has_data = self.score(m)
        return PredictionFactor(
            name=self.name,
            score=clamp_score(raw),
            weight=weight,
            description=description,
            has_data=has_data,
        )


class TeamStrengthFactor(BaseFactor):
    """
    NBA rating (net rating) differential × 8. When either team lacks a rating,
    falls back to the recent win-rate differential × 100.
    """

    name = "Team Strength"

    def score(self, m):
        ra = m.advanced_a.nba_rating if m.advanced_a else None
        rb = m.advanced_b.nba_rating if m.advanced_b else None
        if ra is not None and rb is not None:
            return (
                (ra - rb) * RATING_MULTIPLIER,
                f"{m.team_a} rating {ra:+.1f} vs {m.team_b} {rb:+.1f}",
                True,
            )

        if (m.recent_a is not None and m.recent_b is not None
                and m.recent_a.games_played > 0 and m.recent_b.games_played > 0):
            wa, wb = m.recent_a.win_rate, m.recent_b.win_rate
            return (
                (wa - wb) * WIN_RATE_MULTIPLIER,
                f"{m.team_a} win rate {wa:.0%} vs {m.team_b} {wb:.0%}",
                True,
            )

        return 0.0, "Strength data unavailable for one or both teams", False


class RecentFormFactor(BaseFactor):
    """Wins over the last five games, team form first, H2H form second."""

    name = "Recent Form"

    def _forms(self, m: MatchupInputs) -> Tuple[Optional[str], Optional[str]]:
        fa = m.recent_a.recent_form if m.recent_a and m.recent_a.recent_form else None
        fb = m.recent_b.recent_form if m.recent_b and m.recent_b.recent_form else None
        if m.h2h is not None:
            fa = fa or m.h2h.recent_form_a or None
            fb = fb or m.h2h.recent_form_b or None
        return fa, fb

    def score(self, m):
        fa, fb = self._forms(m)
        if fa is None and fb is None:
            return 0.0, "No recent results for either team", False
        wa, wb = form_wins(fa), form_wins(fb)
        return (
            (wa - wb) * FORM_MULTIPLIER,
            f"{m.team_a} {wa:g} wins in last {FORM_WINDOW} vs {m.team_b} {wb:g}",
            True,
        )


class InjuryImpactFactor(BaseFactor):
    """
    Signed difference of roster penalties (team A total − team B total).
    A missing report is a healthy roster, not missing data.
    """

    name = "Injury Impact"

    def score(self, m):
        pa = team_injury_penalty(m.injuries_a)
        pb = team_injury_penalty(m.injuries_b)
        has_data = m.injuries_a is not None or m.injuries_b is not None
        return (
            pa - pb,
            f"{m.team_a} {pa:.0f} ({_injury_summary(m.injuries_a)}) vs "
            f"{m.team_b} {pb:.0f} ({_injury_summary(m.injuries_b)})",
            has_data,
        )


class HeadToHeadFactor(BaseFactor):
    name = "Head-to-Head"

    def score(self, m):
        h2h = m.h2h
        if h2h is None or h2h.total_games <= 0:
            return 0.0, "No head-to-head history", False
        return (
            (h2h.team_a_win_rate - 0.5) * H2H_MULTIPLIER,
            f"{m.team_a} won {h2h.team_a_wins} of {h2h.total_games} meetings "
            f"({h2h.team_a_win_rate:.0%})",
            True,
        )


class OffensivePowerFactor(BaseFactor):
    name = "Offensive Power"

    def score(self, m):
        ea = m.advanced_a.effective_fg_pct if m.advanced_a else None
        eb = m.advanced_b.effective_fg_pct if m.advanced_b else None
        if ea is None or eb is None:
            return 0.0, "eFG% unavailable for one or both teams", False
        return (
            (ea - eb) * OFFENSE_MULTIPLIER,
            f"eFG%: {m.team_a} {ea:.1f}% vs {m.team_b} {eb:.1f}%",
            True,
        )


class FatigueFactor(BaseFactor):
    name = "Fatigue"

    def score(self, m):
        va, vb = rest_value(m.rest_days_a), rest_value(m.rest_days_b)
        return (
            (va - vb) * FATIGUE_MULTIPLIER,
            f"Rest: {m.team_a} {_rest_label(m.rest_days_a)} vs "
            f"{m.team_b} {_rest_label(m.rest_days_b)}",
            True,
        )


class HomeAdvantageFactor(BaseFactor):
    name = "Home Advantage"

    def score(self, m):
        if m.is_team_a_home is None:
            return 0.0, "Home court unknown", False
        if m.is_team_a_home:
            return HOME_ADVANTAGE_POINTS, f"{m.team_a} at home", True
        return -HOME_ADVANTAGE_POINTS, f"{m.team_b} at home", True


# ═══════════════════════════════════════════════════════════════════════════════
# AGGREGATION STEPS
# ═══════════════════════════════════════════════════════════════════════════════

def estimate_confidence(m: MatchupInputs) -> float:
    """
    Confidence from data completeness only, so fuller inputs never lower it
    and swapping the teams leaves it unchanged.
    """
    sources = {
        "advanced_stats": m.advanced_a is not None and m.advanced_b is not None,
        "recent_stats":   (m.recent_a is not None and m.recent_b is not None
                           and m.recent_a.games_played > 0 and m.recent_b.games_played > 0),
        "head_to_head":   m.h2h is not None and m.h2h.total_games > 0,
        "injuries":       m.injuries_a is not None and m.injuries_b is not None,
        "home_known":     m.is_team_a_home is not None,
    }
    conf = CONFIDENCE_BASE + sum(CONFIDENCE_BONUS[k] for k, present in sources.items() if present)
    return float(min(CONFIDENCE_CAP, conf))


def dynamic_k(confidence: float, data_factor_count: int) -> float:
    """Sharper curve (lower k) with more confidence and more real factors."""
    conf_mult = 0.7 + 0.6 * (1.0 - confidence)
    count_mult = max(0.8, 1.0 - (data_factor_count - 5) * 0.05)
    return float(np.clip(SIGMOID_BASE_K * conf_mult * count_mult, SIGMOID_MIN_K, SIGMOID_MAX_K))


def synergy_bonus(m: MatchupInputs, injury_score: float) -> float:
    """Non-linear bumps on top of the weighted sum."""
    bonus = 0.0

    # Home team rested while the visitor is on a back-to-back
    if m.is_team_a_home is True and m.rest_days_a >= 3 and m.rest_days_b <= 1:
        bonus += SYNERGY_HOME_PLUS_RESTED
    elif m.is_team_a_home is False and m.rest_days_b >= 3 and m.rest_days_a <= 1:
        bonus -= SYNERGY_HOME_PLUS_RESTED

    # Depleted roster on a back-to-back
    if injury_score < -SYNERGY_INJURY_THRESHOLD and m.rest_days_a <= 1:
        bonus += SYNERGY_INJURY_PLUS_TIRED
    if injury_score > SYNERGY_INJURY_THRESHOLD and m.rest_days_b <= 1:
        bonus -= SYNERGY_INJURY_PLUS_TIRED

    return bonus


def calibrate_probability(p: float, table: Optional[Sequence[CalibrationBin]]) -> float:
    """
    Shift the favored side's probability by (observed − expected) for its
    bin. Bins describe the favored side, so the shift is mirrored for B and
    a coin flip stays a coin flip.
    """
    if not table or p == 0.5:
        return p
    q = max(p, 1.0 - p)
    for b in table:
        last = b is table[-1]
        if b.low <= q < b.high or (last and q == b.high):
            if b.sample_size < CALIBRATION_MIN_SAMPLES:
                return p
            q_adj = float(np.clip(q + (b.actual_win_rate - b.midpoint), 0.5, PROB_MAX))
            return q_adj if p > 0.5 else 1.0 - q_adj
    return p


def bayesian_blend(
    model_p: float,
    market_p: float,
    h2h_rate: Optional[float],
    confidence: float,
) -> float:
    """
    Weighted average of model, market and H2H. The market prior weighs more
    when the model is unsure; H2H joins with a fixed weight when present.
    """
    prior_w = BAYES_PRIOR_WEIGHT * (1.0 - confidence)
    model_w = BAYES_MODEL_WEIGHT * confidence
    h2h_w = BAYES_H2H_WEIGHT if h2h_rate is not None else 0.0
    total = prior_w + model_w + h2h_w
    posterior = market_p * prior_w + model_p * model_w
    if h2h_rate is not None:
        posterior += h2h_rate * h2h_w
    return clamp_probability(posterior / total)


def recommend(p: float, confidence: float) -> str:
    if confidence < RECOMMEND_MIN_CONFIDENCE:
        return "NEUTRAL"
    if p > RECOMMEND_STRONG_A:
        return "STRONG_A"
    if p > RECOMMEND_LEAN_A:
        return "LEAN_A"
    if p < RECOMMEND_STRONG_B:
        return "STRONG_B"
    if p < RECOMMEND_LEAN_B:
        return "LEAN_B"
    return "NEUTRAL"


def market_value(p: float, market_p: float) -> str:
    diff = p - market_p
    if diff > VALUE_THRESHOLD:
        return "VALUE_A"
    if diff < -VALUE_THRESHOLD:
        return "VALUE_B"
    return "FAIR"


def generate_reasoning(
    factors: Sequence[PredictionFactor],
    team_a: str,
    team_b: str,
    synergy: float = 0.0,
    value: str = "FAIR",
    p: float = 0.5,
    market_p: float = 0.5,
    top_n: int = REASONING_TOP_N,
) -> List[str]:
    """
    One line per top factor (|score| descending, declaration order on ties),
    then synergy and market-value lines when they apply. Factors scoring
    exactly zero favor nobody and are left out.
    """
    ranked = sorted((f for f in factors if f.score != 0), key=lambda f: abs(f.score), reverse=True)
    lines = []
    for f in ranked[:top_n]:
        team = team_a if f.score > 0 else team_b
        lines.append(f"{f.name}: favors {team} ({f.description})")

    if abs(synergy) > SYNERGY_REASONING_MIN:
        team = team_a if synergy > 0 else team_b
        lines.append(f"Synergy: {team} gains an extra {abs(synergy):.0f} points")

    if value == "VALUE_A":
        lines.append(f"Market value: model rates {team_a} at {p:.1%} vs market {market_p:.1%}")
    elif value == "VALUE_B":
        lines.append(f"Market value: model rates {team_b} at {1 - p:.1%} vs market {1 - market_p:.1%}")

    return lines


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════

def _check_finite(value: Any, name: str) -> None:
    if isinstance(value, Real) and not isinstance(value, bool) and not np.isfinite(value):
        raise InvalidInput(f"{name} must be finite, got {value!r}", name, value)


def _check_record(record: Any, name: str) -> None:
    if record is None:
        return
    for f in fields(record):
        _check_finite(getattr(record, f.name), f"{name}.{f.name}")


def validate_inputs(m: MatchupInputs) -> None:
    """Raise InvalidInput for structurally broken input; missing data is fine."""
    for name in ("team_a", "team_b"):
        value = getattr(m, name)
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(f"{name} must be a non-empty string", name, value)

    for name in ("rest_days_a", "rest_days_b"):
        value = getattr(m, name)
        if isinstance(value, bool) or not isinstance(value, Integral) or value < 0:
            raise InvalidInput(f"{name} must be a non-negative integer, got {value!r}", name, value)

    for side in ("yes", "no"):
        value = getattr(m.market, side)
        if isinstance(value, bool) or not isinstance(value, Real) or not np.isfinite(value) \
                or not 0.0 <= value <= 1.0:
            raise InvalidInput(f"market price {side!r} must be in [0, 1], got {value!r}",
                               f"market.{side}", value)
    if m.market.yes + m.market.no <= 0:
        raise InvalidInput("market prices sum to zero", "market", m.market)

    if m.is_team_a_home is not None and not isinstance(m.is_team_a_home, bool):
        raise InvalidInput("is_team_a_home must be True, False or None",
                           "is_team_a_home", m.is_team_a_home)

    for name in ("advanced_a", "advanced_b", "recent_a", "recent_b"):
        _check_record(getattr(m, name), name)

    if m.h2h is not None:
        _check_record(m.h2h, "h2h")
        if m.h2h.total_games < 0 or not 0.0 <= m.h2h.team_a_win_rate <= 1.0:
            raise InvalidInput("h2h win rate must be in [0, 1]", "h2h.team_a_win_rate",
                               m.h2h.team_a_win_rate)

    for name in ("recent_a", "recent_b"):
        rec = getattr(m, name)
        if rec is not None and not 0.0 <= rec.win_rate <= 1.0:
            raise InvalidInput(f"{name}.win_rate must be in [0, 1]", f"{name}.win_rate", rec.win_rate)


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class EngineConfig:
    """
    Factor weights and optional stages.

    Weights map factor name → weight and are normalised to sum to 1.0.
    Unknown names are rejected so a typo cannot silently zero a factor.
    """
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FACTOR_WEIGHTS))
    blend_market: bool = True
    calibration: Optional[Tuple[CalibrationBin, ...]] = None

    def normalize(self) -> None:
        unknown = set(self.weights) - set(FACTOR_NAMES)
        if unknown:
            raise ValueError(f"Unknown factor weights: {sorted(unknown)}")
        total = sum(self.weights.values())
        if total <= 0:
            raise ValueError("Factor weights must sum to a positive number")
        self.weights = {k: v / total for k, v in self.weights.items()}

    @classmethod
    def from_file(cls, path=None, **kwargs) -> "EngineConfig":
        """Defaults overlaid with a JSON weights file, if one exists."""
        return cls(weights=load_engine_weights(path), **kwargs)


class PredictionEngine:
    """
    Runs all seven factor scorers and folds them into a PredictionResult.

    Usage:
        engine = PredictionEngine()
        result = engine.predict(inputs)

        # Without the market blend (team_a_probability == model_probability)
        engine = PredictionEngine(EngineConfig(blend_market=False))
    """

    FACTORS = [
        TeamStrengthFactor,
        RecentFormFactor,
        InjuryImpactFactor,
        HeadToHeadFactor,
        OffensivePowerFactor,
        FatigueFactor,
        HomeAdvantageFactor,
    ]

    def __init__(self, config: EngineConfig = None):
        self.config = config or EngineConfig()
        self.config.normalize()
        self.scorers = [F() for F in self.FACTORS]

    def predict(self, inputs: MatchupInputs) -> PredictionResult:
        validate_inputs(inputs)

        # ── Factors, in declaration order ─────────────────────────────────────
        factors = tuple(
            s.evaluate(inputs, self.config.weights.get(s.name, 0.0))
            for s in self.scorers
        )
        by_name = {f.name: f for f in factors}

        # ── Composite score ───────────────────────────────────────────────────
        weighted = sum(f.weighted_score for f in factors)
        synergy = synergy_bonus(inputs, by_name["Injury Impact"].score)
        composite = clamp_score(weighted + synergy)

        # ── Probability ──────────────────────────────────────────────────────
        confidence = estimate_confidence(inputs)
        n_data = sum(1 for f in factors if f.has_data)
        k = dynamic_k(confidence, n_data)
        model_p = clamp_probability(
            calibrate_probability(sigmoid(composite, k), self.config.calibration)
        )

        market_p = inputs.market.implied_probability
        if self.config.blend_market:
            h2h_rate = inputs.h2h.team_a_win_rate if inputs.h2h and inputs.h2h.total_games > 0 else None
            final_p = bayesian_blend(model_p, market_p, h2h_rate, confidence)
        else:
            final_p = model_p

        value = market_value(final_p, market_p)
        result = PredictionResult(
            team_a=inputs.team_a,
            team_b=inputs.team_b,
            team_a_probability=final_p,
            team_b_probability=1.0 - final_p,
            model_probability=model_p,
            market_probability=market_p,
            confidence=confidence,
            composite_score=composite,
            synergy_bonus=synergy,
            k_value=k,
            factors=factors,
            reasoning=tuple(generate_reasoning(
                factors, inputs.team_a, inputs.team_b, synergy, value, final_p, market_p,
            )),
            recommendation=recommend(final_p, confidence),
            market_value=value,
        )
        log.debug(
            f"{inputs.team_a} vs {inputs.team_b}: composite={composite:+.2f} "
            f"k={k:.1f} model={model_p:.3f} final={final_p:.3f} conf={confidence:.2f}"
        )
        return result

    def predict_batch(self, matchups: Iterable[MatchupInputs]) -> List[PredictionResult]:
        """Predict every matchup; invalid ones are logged and skipped."""
        results = []
        for m in matchups:
            try:
                results.append(self.predict(m))
            except InvalidInput as exc:
                log.error(f"Prediction skipped for {m.team_a} vs {m.team_b}: {exc}")
        return results


def generate_prediction(
    team_a: str,
    team_b: str,
    h2h: Optional[H2HStats],
    advanced_a: Optional[AdvancedTeamStats],
    advanced_b: Optional[AdvancedTeamStats],
    injuries_a: Optional[TeamInjuries],
    injuries_b: Optional[TeamInjuries],
    market_prices: MarketPrices,
    rest_days_a: int = DEFAULT_REST_DAYS,
    rest_days_b: int = DEFAULT_REST_DAYS,
    is_team_a_home: Optional[bool] = None,
    recent_a: Optional[TeamRecentStats] = None,
    recent_b: Optional[TeamRecentStats] = None,
    config: Optional[EngineConfig] = None,
) -> PredictionResult:
    """Positional-argument front door over PredictionEngine.predict()."""
    if isinstance(market_prices, dict):
        market_prices = MarketPrices(yes=market_prices.get("yes"), no=market_prices.get("no"))
    inputs = MatchupInputs(
        team_a=team_a,
        team_b=team_b,
        market=market_prices,
        h2h=h2h,
        advanced_a=advanced_a,
        advanced_b=advanced_b,
        injuries_a=injuries_a,
        injuries_b=injuries_b,
        recent_a=recent_a,
        recent_b=recent_b,
        rest_days_a=rest_days_a,
        rest_days_b=rest_days_b,
        is_team_a_home=is_team_a_home,
    )
    return PredictionEngine(config).predict(inputs)
