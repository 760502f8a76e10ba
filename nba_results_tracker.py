#!/usr/bin/env python3
"""
nba_results_tracker.py — Prediction Record Store, Settlement and Model Performance

Runs after games finish to score what the engine said against what happened.

ARCHITECTURE
─────────────────────────────────────────────────────────────────────────────
1. The runner saves one PredictionRecord per market (data/prediction_records.csv)
2. settle_pending() finds each pending game on ESPN and, once final, fills in
   winner, scores, correctness, Brier score, log loss and paper-trade ROI
3. compute_model_performance() aggregates settled records over a window
4. build_calibration_table() bins settled records by the favored side's
   probability; the runner feeds the table to the engine with --calibrate

PAPER TRADING
─────────────────────────────────────────────────────────────────────────────
  model − market > +0.05   buy YES at marketOddsA   win: 1/odds − 1   loss: −1
  model − market < −0.05   buy NO  at marketOddsB   win: 1/odds − 1   loss: −1
  otherwise                no bet                   0

Outputs:
    data/prediction_records.csv   — one row per market, updated in place
    data/model_performance.csv    — latest performance snapshot

Usage:
    python nba_results_tracker.py --settle            # settle finished games
    python nba_results_tracker.py --summary --days 7  # print performance only
"""

import argparse
import json
import logging
import time
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from espn_client import fetch_summary, find_espn_event
from espn_config import FETCH_SLEEP, OUT_PERFORMANCE, OUT_RECORDS
from espn_parsers import parse_final_result
from nba_config import MODEL_VERSION, STRONG_VALUE_THRESHOLD, VALUE_THRESHOLD
from nba_output_schemas import completeness_report, validate_output
from nba_prediction_engine import CalibrationBin, PredictionResult

log = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────
ROI_EDGE_THRESHOLD   = 0.05
LOG_LOSS_FLOOR       = 1e-4
CALIBRATION_BINS     = 10
CALIBRATION_MIN_BIN  = 5
CALIBRATION_LOOKBACK = 90     # days of settled records behind the engine table

HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE  = 0.6

# Favored-side probability bins for the engine's calibration table
FAVORED_BINS = [(0.5, 0.6), (0.6, 0.7), (0.7, 0.8), (0.8, 0.9), (0.9, 1.0)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class PredictionRecord:
    """
    One published prediction plus, once the game is final, its outcome.
    Stored as one row in prediction_records.csv keyed by market_id.
    """
    # Identity
    market_id:               str
    team_a:                  str
    team_b:                  str
    game_date:               str          # YYYY-MM-DD (US local)
    created_at:              str          # UTC ISO-8601

    # Prediction
    predicted_probability_a: float
    confidence:              float
    model_version:           str = MODEL_VERSION
    is_team_a_home:          Optional[bool] = None
    factors_json:            str = "[]"

    # Market at prediction time
    market_odds_a:           float = 0.5
    market_odds_b:           float = 0.5
    volume_usd:              float = 0.0

    # Outcome (filled at settlement)
    actual_winner:           Optional[str] = None    # "teamA" | "teamB"
    actual_score_a:          Optional[int] = None
    actual_score_b:          Optional[int] = None
    result_updated_at:       Optional[str] = None
    prediction_correct:      Optional[bool] = None
    brier_score:             Optional[float] = None
    log_loss:                Optional[float] = None
    roi:                     Optional[float] = None

    @property
    def settled(self) -> bool:
        return self.actual_winner is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_prediction(
        cls,
        result: PredictionResult,
        market_id: str,
        game_date: str,
        market_odds_a: float,
        market_odds_b: float,
        volume_usd: float = 0.0,
        is_team_a_home: Optional[bool] = None,
        created_at: Optional[datetime] = None,
    ) -> "PredictionRecord":
        return cls(
            market_id=str(market_id),
            team_a=result.team_a,
            team_b=result.team_b,
            game_date=game_date,
            created_at=(created_at or _utcnow()).isoformat(),
            predicted_probability_a=result.team_a_probability,
            confidence=result.confidence,
            model_version=result.model_version,
            is_team_a_home=is_team_a_home,
            factors_json=json.dumps([asdict(f) for f in result.factors]),
            market_odds_a=market_odds_a,
            market_odds_b=market_odds_b,
            volume_usd=volume_usd,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PredictionRecord":
        """Rebuild a record from a CSV row read with dtype=str."""
        kwargs = {}
        for f in fields(cls):
            value = _convert(f.name, row.get(f.name))
            if value is not None:
                kwargs[f.name] = value
        return cls(**kwargs)


RECORD_COLUMNS = [f.name for f in fields(PredictionRecord)]

_FLOAT_FIELDS = {
    "predicted_probability_a", "confidence", "market_odds_a", "market_odds_b",
    "volume_usd", "brier_score", "log_loss", "roi",
}
_INT_FIELDS  = {"actual_score_a", "actual_score_b"}
_BOOL_FIELDS = {"is_team_a_home", "prediction_correct"}


def _is_missing(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and np.isnan(val):
        return True
    return isinstance(val, str) and val.strip() == ""


def _safe_float(val, default=None) -> Optional[float]:
    try:
        v = float(val)
        return v if not np.isnan(v) else default
    except (TypeError, ValueError):
        return default


def _safe_int(val, default=None) -> Optional[int]:
    try:
        return int(float(val))
    except (TypeError, ValueError):
        return default


def _safe_bool(val) -> Optional[bool]:
    if isinstance(val, (bool, np.bool_)):
        return bool(val)
    text = str(val).strip().lower()
    if text in ("true", "1", "1.0", "yes"):
        return True
    if text in ("false", "0", "0.0", "no"):
        return False
    return None


def _convert(name: str, val: Any) -> Any:
    if _is_missing(val):
        return None
    if name in _FLOAT_FIELDS:
        return _safe_float(val)
    if name in _INT_FIELDS:
        return _safe_int(val)
    if name in _BOOL_FIELDS:
        return _safe_bool(val)
    return str(val)


@dataclass
class ModelPerformance:
    """Aggregate metrics over settled records in a lookback window."""
    window_days:       int
    total_predictions: int = 0
    accuracy:          float = 0.0
    avg_brier_score:   float = 0.0
    avg_log_loss:      float = 0.0
    calibration_score: float = 0.0
    by_confidence:     Dict[str, Dict[str, float]] = field(default_factory=dict)
    by_value:          Dict[str, Dict[str, float]] = field(default_factory=dict)
    last_7_days:       List[Dict[str, Any]] = field(default_factory=list)
    last_30_days:      List[Dict[str, Any]] = field(default_factory=list)

    def to_flat_dict(self) -> Dict[str, Any]:
        row = {
            "window_days":       self.window_days,
            "total_predictions": self.total_predictions,
            "accuracy":          self.accuracy,
            "avg_brier_score":   self.avg_brier_score,
            "avg_log_loss":      self.avg_log_loss,
            "calibration_score": self.calibration_score,
        }
        for bucket, stats in self.by_confidence.items():
            row[f"conf_{bucket}_accuracy"] = stats["accuracy"]
            row[f"conf_{bucket}_count"] = stats["count"]
        for bucket, stats in self.by_value.items():
            row[f"value_{bucket}_roi"] = stats["roi"]
            row[f"value_{bucket}_count"] = stats["count"]
        return row


# ═══════════════════════════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════════════════════════

class PredictionStore:
    """
    CSV-backed record store keyed by market_id.

    save() never overwrites a settled record, so re-running the predictor on
    a finished market cannot erase its result. update() always overwrites.
    """

    def __init__(self, path: Path = OUT_RECORDS):
        self.path = Path(path)

    def load_frame(self) -> pd.DataFrame:
        if self.path.exists() and self.path.stat().st_size > 0:
            return pd.read_csv(self.path, dtype=str)
        return pd.DataFrame(columns=RECORD_COLUMNS)

    def all(self) -> List[PredictionRecord]:
        df = self.load_frame()
        return [PredictionRecord.from_row(row) for row in df.to_dict("records")]

    def get(self, market_id: str) -> Optional[PredictionRecord]:
        for rec in self.all():
            if rec.market_id == str(market_id):
                return rec
        return None

    def pending(self) -> List[PredictionRecord]:
        return [r for r in self.all() if not r.settled]

    def settled(self, days: Optional[int] = None, now: Optional[datetime] = None) -> List[PredictionRecord]:
        records = [r for r in self.all() if r.settled]
        if days is None:
            return records
        cutoff = (now or _utcnow()) - timedelta(days=days)
        return [
            r for r in records
            if r.result_updated_at and datetime.fromisoformat(r.result_updated_at) >= cutoff
        ]

    def save(self, record: PredictionRecord) -> bool:
        return self.save_many([record]) == 1

    def save_many(self, records: Iterable[PredictionRecord]) -> int:
        """Insert or replace pending records. Returns the number written."""
        current = {r.market_id: r for r in self.all()}
        written = 0
        for rec in records:
            existing = current.get(rec.market_id)
            if existing is not None and existing.settled:
                log.info(f"Keeping settled record {rec.market_id} ({rec.team_a} vs {rec.team_b})")
                continue
            current[rec.market_id] = rec
            written += 1
        self._write(current.values())
        return written

    def update(self, record: PredictionRecord) -> None:
        self.update_many([record])

    def update_many(self, records: Iterable[PredictionRecord]) -> None:
        current = {r.market_id: r for r in self.all()}
        for rec in records:
            current[rec.market_id] = rec
        self._write(current.values())

    def _write(self, records: Iterable[PredictionRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame([r.to_dict() for r in records], columns=RECORD_COLUMNS)
        validate_output(df, "prediction_records")
        df.to_csv(self.path, index=False)
        log.debug(f"Prediction records written: {len(df)} → {self.path}")


# ═══════════════════════════════════════════════════════════════════════════════
# SETTLEMENT
# ═══════════════════════════════════════════════════════════════════════════════

def paper_trade_roi(
    p: float,
    market_odds_a: float,
    market_odds_b: float,
    winner: str,
    edge: float = ROI_EDGE_THRESHOLD,
) -> float:
    """Return on a one-unit bet placed only when the model disagrees by > edge."""
    diff = p - market_odds_a
    if diff > edge:
        if market_odds_a <= 0:
            return 0.0
        return (1.0 / market_odds_a - 1.0) if winner == "teamA" else -1.0
    if diff < -edge:
        if market_odds_b <= 0:
            return 0.0
        return (1.0 / market_odds_b - 1.0) if winner == "teamB" else -1.0
    return 0.0


def settle_record(
    record: PredictionRecord,
    winner: str,
    score_a: int,
    score_b: int,
    now: Optional[datetime] = None,
) -> PredictionRecord:
    """Return a copy of *record* with the outcome and scoring metrics filled in."""
    if winner not in ("teamA", "teamB"):
        raise ValueError(f"winner must be 'teamA' or 'teamB', got {winner!r}")

    p = record.predicted_probability_a
    a_won = winner == "teamA"
    actual = 1.0 if a_won else 0.0
    prob_of_actual = p if a_won else 1.0 - p

    return replace(
        record,
        actual_winner=winner,
        actual_score_a=int(score_a),
        actual_score_b=int(score_b),
        result_updated_at=(now or _utcnow()).isoformat(),
        prediction_correct=(p > 0.5) if a_won else (p < 0.5),
        brier_score=(p - actual) ** 2,
        log_loss=float(-np.log(max(prob_of_actual, LOG_LOSS_FLOOR))),
        roi=paper_trade_roi(p, record.market_odds_a, record.market_odds_b, winner),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# PERFORMANCE
# ═══════════════════════════════════════════════════════════════════════════════

def records_to_frame(records: Sequence[PredictionRecord]) -> pd.DataFrame:
    df = pd.DataFrame([r.to_dict() for r in records], columns=RECORD_COLUMNS)
    for col in _FLOAT_FIELDS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True, errors="coerce")
    df["result_updated_at"] = pd.to_datetime(df["result_updated_at"], utc=True, errors="coerce")
    df["prediction_correct"] = df["prediction_correct"].map(lambda v: bool(v) if v is not None else False)
    df["team_a_won"] = (df["actual_winner"] == "teamA").astype(float)
    return df


def calibration_score(
    probabilities: Iterable[float],
    outcomes: Iterable[float],
    n_bins: int = CALIBRATION_BINS,
    min_samples: int = CALIBRATION_MIN_BIN,
) -> float:
    """
    1 − mean |avg predicted − observed rate| over equal-width bins with at
    least *min_samples* records. 0.5 when no bin qualifies.
    """
    probs = np.asarray(list(probabilities), dtype=float)
    wins = np.asarray(list(outcomes), dtype=float)
    errors = []
    for i in range(n_bins):
        lo, hi = i / n_bins, (i + 1) / n_bins
        mask = (probs >= lo) & (probs < hi)
        if mask.sum() < min_samples:
            continue
        errors.append(abs(probs[mask].mean() - wins[mask].mean()))
    return 1.0 - float(np.mean(errors)) if errors else 0.5


def _accuracy(df: pd.DataFrame) -> float:
    return float(df["prediction_correct"].mean()) if len(df) else 0.0


def _roi_pct(df: pd.DataFrame) -> float:
    return float(df["roi"].fillna(0.0).mean() * 100) if len(df) else 0.0


def daily_series(df: pd.DataFrame, days: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Accuracy per UTC calendar day (by prediction time), oldest first."""
    today = (now or _utcnow()).astimezone(timezone.utc).date()
    created = df["created_at"].dt.date if len(df) else pd.Series(dtype=object)
    series = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        day_df = df[created == day] if len(df) else df
        series.append({
            "date":     day.isoformat(),
            "accuracy": _accuracy(day_df),
            "count":    int(len(day_df)),
        })
    return series


def compute_model_performance(
    records: Sequence[PredictionRecord],
    days: int = 30,
    now: Optional[datetime] = None,
) -> ModelPerformance:
    """Metrics over records settled within the last *days* days."""
    now = now or _utcnow()
    settled = [r for r in records if r.settled]
    if not settled:
        log.warning("No settled predictions found")
        return ModelPerformance(window_days=days)

    df = records_to_frame(settled)
    df = df[df["result_updated_at"] >= pd.Timestamp(now - timedelta(days=days))]
    if df.empty:
        log.warning(f"No predictions settled in the last {days} days")
        return ModelPerformance(window_days=days)

    conf = df["confidence"]
    edge = (df["predicted_probability_a"] - df["market_odds_a"]).abs()

    high   = df[conf > HIGH_CONFIDENCE]
    medium = df[(conf >= LOW_CONFIDENCE) & (conf <= HIGH_CONFIDENCE)]
    low    = df[conf < LOW_CONFIDENCE]

    strong = df[edge > STRONG_VALUE_THRESHOLD]
    value  = df[(edge >= VALUE_THRESHOLD) & (edge <= STRONG_VALUE_THRESHOLD)]
    fair   = df[edge < VALUE_THRESHOLD]

    perf = ModelPerformance(
        window_days=days,
        total_predictions=int(len(df)),
        accuracy=_accuracy(df),
        avg_brier_score=float(df["brier_score"].mean()),
        avg_log_loss=float(df["log_loss"].mean()),
        calibration_score=calibration_score(df["predicted_probability_a"], df["team_a_won"]),
        by_confidence={
            "high":   {"accuracy": _accuracy(high),   "count": int(len(high))},
            "medium": {"accuracy": _accuracy(medium), "count": int(len(medium))},
            "low":    {"accuracy": _accuracy(low),    "count": int(len(low))},
        },
        by_value={
            "strong": {"roi": _roi_pct(strong), "count": int(len(strong))},
            "value":  {"roi": _roi_pct(value),  "count": int(len(value))},
            "fair":   {"roi": _roi_pct(fair),   "count": int(len(fair))},
        },
        last_7_days=daily_series(df, 7, now),
        last_30_days=daily_series(df, 30, now),
    )
    log.info(
        f"Model performance ({days}d): {perf.total_predictions} settled, "
        f"accuracy {perf.accuracy:.1%}, Brier {perf.avg_brier_score:.3f}"
    )
    return perf


def build_calibration_table(
    records: Sequence[PredictionRecord],
    days: int = CALIBRATION_LOOKBACK,
    now: Optional[datetime] = None,
) -> Tuple[CalibrationBin, ...]:
    """
    Observed hit rate of the favored side per probability bin. Coin-flip
    predictions (p == 0.5) have no favored side and are skipped.
    """
    now = now or _utcnow()
    settled = [r for r in records if r.settled]
    if not settled:
        return tuple(CalibrationBin(lo, hi, (lo + hi) / 2, 0) for lo, hi in FAVORED_BINS)

    df = records_to_frame(settled)
    df = df[df["result_updated_at"] >= pd.Timestamp(now - timedelta(days=days))]
    df = df[df["predicted_probability_a"] != 0.5]

    p = df["predicted_probability_a"]
    favored_p = np.maximum(p, 1.0 - p)
    favored_won = ((p > 0.5) & (df["team_a_won"] == 1.0)) | ((p < 0.5) & (df["team_a_won"] == 0.0))

    table = []
    for i, (lo, hi) in enumerate(FAVORED_BINS):
        last = i == len(FAVORED_BINS) - 1
        mask = (favored_p >= lo) & ((favored_p <= hi) if last else (favored_p < hi))
        n = int(mask.sum())
        rate = float(favored_won[mask].mean()) if n else (lo + hi) / 2
        table.append(CalibrationBin(low=lo, high=hi, actual_win_rate=rate, sample_size=n))
    return tuple(table)


# ═══════════════════════════════════════════════════════════════════════════════
# TRACKER
# ═══════════════════════════════════════════════════════════════════════════════

class ResultsTracker:
    """
    Settles pending records against ESPN and reports performance.

    Usage:
        tracker = ResultsTracker()
        tracker.settle_pending()
        tracker.print_summary(days=30)
    """

    def __init__(
        self,
        store: Optional[PredictionStore] = None,
        find_event: Callable[..., Optional[str]] = find_espn_event,
        fetch_summary: Callable[[str], Dict[str, Any]] = fetch_summary,
        sleep: float = FETCH_SLEEP,
    ):
        self.store = store or PredictionStore()
        self.find_event = find_event
        self.fetch_summary = fetch_summary
        self.sleep = sleep

    def fetch_result(self, record: PredictionRecord) -> Optional[Tuple[str, int, int]]:
        event_id = self.find_event(record.team_a, record.team_b, record.game_date)
        if not event_id:
            log.debug(f"No ESPN game found for {record.team_a} vs {record.team_b}")
            return None
        return parse_final_result(self.fetch_summary(event_id), record.team_a, record.team_b)

    def settle_pending(self, now: Optional[datetime] = None) -> List[PredictionRecord]:
        pending = self.store.pending()
        if not pending:
            log.info("No pending predictions to settle")
            return []
        log.info(f"Settling {len(pending)} pending predictions")

        settled = []
        for rec in pending:
            try:
                result = self.fetch_result(rec)
            except RuntimeError as exc:
                log.error(f"Failed to settle {rec.market_id}: {exc}")
                continue
            if result is not None:
                winner, score_a, score_b = result
                done = settle_record(rec, winner, score_a, score_b, now)
                settled.append(done)
                log.info(
                    f"Settled {rec.team_a} {score_a}-{score_b} {rec.team_b}: "
                    f"correct={done.prediction_correct} roi={done.roi * 100:+.1f}%"
                )
            if self.sleep > 0:
                time.sleep(self.sleep)

        if settled:
            self.store.update_many(settled)
        log.info(f"Settlement done: {len(settled)}/{len(pending)} updated")
        return settled

    def performance(self, days: int = 30, now: Optional[datetime] = None) -> ModelPerformance:
        return compute_model_performance(self.store.all(), days=days, now=now)

    def data_quality(self, perf: ModelPerformance) -> pd.DataFrame:
        return completeness_report({
            "prediction_records": self.store.load_frame(),
            "model_performance": pd.DataFrame([perf.to_flat_dict()]),
        })

    def write_performance(self, days: int = 30, path: Path = OUT_PERFORMANCE) -> ModelPerformance:
        perf = self.performance(days)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame([perf.to_flat_dict()])
        # An empty window carries no bucket columns
        if perf.total_predictions:
            validate_output(df, "model_performance")
        df.to_csv(path, index=False)
        log.info(f"Performance written → {path}")
        return perf

    def print_summary(self, days: int = 30) -> None:
        perf = self.performance(days)
        print()
        print("=" * 72)
        print(f"  MODEL PERFORMANCE — last {days} days")
        print("=" * 72)
        if perf.total_predictions == 0:
            print("  No settled predictions yet")
            print("=" * 72)
            return

        print(f"  Predictions:        {perf.total_predictions}")
        print(f"  Accuracy:           {perf.accuracy:.1%}")
        print(f"  Avg Brier score:    {perf.avg_brier_score:.3f}")
        print(f"  Avg log loss:       {perf.avg_log_loss:.3f}")
        print(f"  Calibration score:  {perf.calibration_score:.3f}")
        print()
        print(f"  {'CONFIDENCE':<12} {'N':>5} {'ACC':>7}")
        for bucket, stats in perf.by_confidence.items():
            print(f"  {bucket:<12} {stats['count']:>5} {stats['accuracy']:>7.1%}")
        print()
        print(f"  {'VALUE':<12} {'N':>5} {'ROI':>8}")
        for bucket, stats in perf.by_value.items():
            print(f"  {bucket:<12} {stats['count']:>5} {stats['roi']:>+7.1f}%")
        print()
        print(f"  {'DATE':<12} {'N':>5} {'ACC':>7}")
        for day in perf.last_7_days:
            print(f"  {day['date']:<12} {day['count']:>5} {day['accuracy']:>7.1%}")
        print()
        print(f"  {'OUTPUT':<20} {'ROWS':>5} {'MISSING':>8} {'NULL%':>7}")
        for _, q in self.data_quality(perf).iterrows():
            null_pct = "-" if pd.isna(q["null_pct"]) else f"{q['null_pct']:.1f}"
            print(f"  {q['output']:<20} {q['rows']:>5} {q['missing_cols']:>8} {null_pct:>7}")
        print("=" * 72)
        print()


# ═══════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    parser = argparse.ArgumentParser(description="PolyNBA Prediction Results Tracker")
    parser.add_argument("--days",    type=int, default=30,
                        help="Performance window in days (1-365)")
    parser.add_argument("--summary", action="store_true",
                        help="Print performance only, no settlement")
    parser.add_argument("--settle",  action="store_true",
                        help="Settle pending predictions against ESPN results")
    parser.add_argument("--records", type=Path, default=OUT_RECORDS)
    args = parser.parse_args()

    if not 1 <= args.days <= 365:
        parser.error("--days must be between 1 and 365")

    tracker = ResultsTracker(store=PredictionStore(args.records))

    if args.summary:
        tracker.print_summary(args.days)
        return

    if args.settle:
        tracker.settle_pending()
    tracker.write_performance(args.days)
    tracker.print_summary(args.days)


if __name__ == "__main__":
    main()
