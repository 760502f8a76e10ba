#!/usr/bin/env python3
"""
PolyNBA Pipeline — Prediction Runner
Bridges Polymarket NBA markets + ESPN data → PredictionEngine → predictions_YYYYMMDD.csv

For each open game market:
    1. find the ESPN event (game date ± 1 day, UTC vs US dates)
    2. scan TEAM_LOOKBACK_DAYS of scoreboards for recent results
    3. derive recent form, head-to-head and rest days from those results
    4. read home/away and the injury report from the game summary
    5. fetch season statistics for both teams
    6. run the engine and keep predictions with confidence > 0.5

Usage:
    python nba_prediction_runner.py
        - Default: top MARKET_LIMIT markets by volume.
    python nba_prediction_runner.py --limit 10
    python nba_prediction_runner.py --date 20250315
        - Only markets whose game falls on that US date.
    python nba_prediction_runner.py --no-blend
        - Publish the raw model probability (no market blend).
    python nba_prediction_runner.py --calibrate
        - Correct probabilities with the hit rates of settled records.
    python nba_prediction_runner.py --dry-run
        - Predict and print, write nothing.

Outputs written to data/:
    predictions_<YYYYMMDD>.csv  - dated by run date (US Eastern)
    predictions_latest.csv      - always overwritten with most recent run
    prediction_records.csv      - one record per market, for settlement
"""

import argparse
import logging
import sys
import time
from datetime import date, datetime, timedelta
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

import espn_client
from espn_config import (
    CSV_DIR as DATA_DIR,
    DRY_RUN,
    FETCH_SLEEP,
    MARKET_LIMIT,
    OFFSEASON_MONTHS,
    OUT_PREDICTIONS_LATEST,
    OUT_RECORDS,
    TEAM_LOOKBACK_DAYS,
    TZ,
)
from espn_parsers import (
    injuries_for_team,
    local_game_date,
    parse_home_away,
    parse_injuries,
    parse_scoreboard_results,
    parse_team_statistics,
)
from fetch_cache import FetchCache, JsonFileCache
from nba_config import CALIBRATION_MIN_SAMPLES, MIN_PUBLISH_CONFIDENCE
from nba_output_schemas import validate_output
from nba_prediction_engine import (
    CalibrationBin,
    EngineConfig,
    InvalidInput,
    MarketPrices,
    MatchupInputs,
    PredictionEngine,
    PredictionResult,
)
from nba_results_tracker import PredictionRecord, PredictionStore, build_calibration_table
from nba_team_stats import (
    AdvancedTeamStats,
    GameResult,
    calculate_h2h_stats,
    calculate_team_stats,
    compute_rest_days,
    merge_recent_games,
)
from nba_teams import get_espn_team_id
from polymarket_markets import MarketSnapshot, get_top_markets

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def is_publishable(result: PredictionResult, min_confidence: float = MIN_PUBLISH_CONFIDENCE) -> bool:
    """Caller-side publish gate: strictly above the confidence floor."""
    return result.confidence > min_confidence


def dedupe_by_event(markets: List[MarketSnapshot]) -> List[MarketSnapshot]:
    """One market per game, keeping the first (highest volume) seen."""
    seen = set()
    unique = []
    for m in markets:
        key = m.event_slug or (m.team_a, m.team_b, m.start_time[:10])
        if key in seen:
            continue
        seen.add(key)
        unique.append(m)
    return unique


def load_calibration(
    store: PredictionStore,
    now: Optional[datetime] = None,
) -> Optional[Tuple[CalibrationBin, ...]]:
    """
    Calibration table built from the settled records in *store*, or None
    when no bin has enough samples to move a probability.
    """
    table = build_calibration_table(store.all(), now=now)
    usable = [b for b in table if b.sample_size >= CALIBRATION_MIN_SAMPLES]
    if not usable:
        log.warning(f"Calibration skipped: no bin with {CALIBRATION_MIN_SAMPLES}+ settled records")
        return None
    log.info(f"Calibration loaded: {len(usable)}/{len(table)} bins usable")
    return table


def build_matchup(
    market: MarketSnapshot,
    games: List[GameResult],
    game_date: str,
    summary: Optional[Dict[str, Any]] = None,
    advanced_a: Optional[AdvancedTeamStats] = None,
    advanced_b: Optional[AdvancedTeamStats] = None,
) -> MatchupInputs:
    """
    Assemble engine inputs for one market from already-fetched data.
    Only games strictly before *game_date* feed form, H2H and rest.
    """
    a, b = market.team_a, market.team_b
    history = [g for g in games if g.date < game_date]

    recent_a = calculate_team_stats(a, history)
    recent_b = calculate_team_stats(b, history)
    h2h = calculate_h2h_stats(history, a, b)

    injuries_a = injuries_b = None
    is_home = None
    if summary:
        reports = parse_injuries(summary)
        injuries_a = injuries_for_team(reports, a)
        injuries_b = injuries_for_team(reports, b)
        is_home = parse_home_away(summary, a)

    return MatchupInputs(
        team_a=a,
        team_b=b,
        market=MarketPrices(yes=market.yes_price, no=market.no_price),
        h2h=h2h if h2h.total_games > 0 else None,
        advanced_a=advanced_a,
        advanced_b=advanced_b,
        injuries_a=injuries_a,
        injuries_b=injuries_b,
        recent_a=recent_a if recent_a.games_played > 0 else None,
        recent_b=recent_b if recent_b.games_played > 0 else None,
        rest_days_a=compute_rest_days(a, history, game_date),
        rest_days_b=compute_rest_days(b, history, game_date),
        is_team_a_home=is_home,
    )


def prediction_row(
    market: MarketSnapshot,
    result: PredictionResult,
    inputs: MatchupInputs,
    event_id: str,
    game_date: str,
) -> Dict[str, Any]:
    row = {
        "market_id":      market.market_id,
        "event_id":       event_id,
        "event_slug":     market.event_slug,
        "game_date":      game_date,
        "start_time":     market.start_time,
        "volume":         market.volume,
        "yes_price":      market.yes_price,
        "no_price":       market.no_price,
        "rest_days_a":    inputs.rest_days_a,
        "rest_days_b":    inputs.rest_days_b,
        "is_team_a_home": inputs.is_team_a_home,
    }
    row.update(result.to_flat_dict())
    return row


# ═══════════════════════════════════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════════════════════════════════

class PredictionRunner:
    """
    Fetches, predicts and filters. Fetch functions are attributes so a run
    can be driven from fixtures; by default they go through one shared cache.

    Scoreboards and team statistics are fetched once per run and reused
    across markets.
    """

    def __init__(
        self,
        engine: Optional[PredictionEngine] = None,
        cache: Optional[FetchCache] = None,
        fetch_scoreboard: Optional[Callable[[str], Dict[str, Any]]] = None,
        fetch_summary: Optional[Callable[[str], Dict[str, Any]]] = None,
        fetch_team_statistics: Optional[Callable[[str], Dict[str, Any]]] = None,
        find_event: Optional[Callable[[str, str, str], Optional[str]]] = None,
        lookback_days: int = TEAM_LOOKBACK_DAYS,
        sleep: float = FETCH_SLEEP,
        min_confidence: float = MIN_PUBLISH_CONFIDENCE,
    ):
        self.engine = engine or PredictionEngine()
        self.cache = cache
        self.fetch_scoreboard = fetch_scoreboard or partial(espn_client.fetch_scoreboard, cache=cache)
        self.fetch_summary = fetch_summary or partial(espn_client.fetch_summary, cache=cache)
        self.fetch_team_statistics = (
            fetch_team_statistics or partial(espn_client.fetch_team_statistics, cache=cache)
        )
        self.find_event = find_event or partial(espn_client.find_espn_event, cache=cache)
        self.lookback_days = lookback_days
        self.sleep = sleep
        self.min_confidence = min_confidence

        self._day_results: Dict[str, List[GameResult]] = {}
        self._advanced: Dict[str, Optional[AdvancedTeamStats]] = {}

    # ── Data gathering ────────────────────────────────────────────────────────

    def _results_for_day(self, day: date) -> List[GameResult]:
        key = day.strftime("%Y%m%d")
        if key not in self._day_results:
            try:
                self._day_results[key] = parse_scoreboard_results(self.fetch_scoreboard(key))
            except RuntimeError as exc:
                log.warning(f"Scoreboard {key} unavailable: {exc}")
                self._day_results[key] = []
        return self._day_results[key]

    def recent_games(self, game_date: str) -> List[GameResult]:
        """Completed games in the lookback window before *game_date*, newest first."""
        end = date.fromisoformat(game_date)
        lists = []
        for offset in range(1, self.lookback_days + 1):
            day = end - timedelta(days=offset)
            if day.month in OFFSEASON_MONTHS:
                continue
            lists.append(self._results_for_day(day))
        return merge_recent_games(*lists)

    def advanced_stats(self, team_name: str) -> Optional[AdvancedTeamStats]:
        if team_name not in self._advanced:
            team_id = get_espn_team_id(team_name)
            stats = None
            if team_id is not None:
                try:
                    stats = parse_team_statistics(self.fetch_team_statistics(team_id), team_id)
                except RuntimeError as exc:
                    log.warning(f"Team statistics unavailable for {team_name}: {exc}")
            self._advanced[team_name] = stats
        return self._advanced[team_name]

    def game_summary(self, event_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.fetch_summary(event_id)
        except RuntimeError as exc:
            log.warning(f"Summary unavailable for event {event_id}: {exc}")
            return None

    # ── Prediction ────────────────────────────────────────────────────────────

    def predict_market(
        self,
        market: MarketSnapshot,
    ) -> Optional[Tuple[PredictionResult, MatchupInputs, str, str]]:
        """(result, inputs, event_id, game_date), or None when the game can't be found."""
        game_date = local_game_date(market.start_time)
        try:
            date.fromisoformat(game_date)
        except ValueError:
            log.warning(f"Unusable start time {market.start_time!r} for "
                        f"{market.team_a} vs {market.team_b}")
            return None
        event_id = self.find_event(market.team_a, market.team_b, game_date)
        if not event_id:
            log.warning(f"No ESPN game found for {market.team_a} vs {market.team_b} ({game_date})")
            return None

        inputs = build_matchup(
            market,
            self.recent_games(game_date),
            game_date,
            summary=self.game_summary(event_id),
            advanced_a=self.advanced_stats(market.team_a),
            advanced_b=self.advanced_stats(market.team_b),
        )
        return self.engine.predict(inputs), inputs, event_id, game_date

    def run(
        self,
        markets: List[MarketSnapshot],
        target_date: Optional[str] = None,
    ) -> Tuple[pd.DataFrame, List[PredictionRecord]]:
        """
        Predict every market; returns the publishable rows and their records.
        *target_date* (YYYY-MM-DD) restricts the run to games on that US date.
        """
        rows, records = [], []
        for market in dedupe_by_event(markets):
            if target_date and local_game_date(market.start_time) != target_date:
                continue
            try:
                outcome = self.predict_market(market)
            except InvalidInput as exc:
                log.error(f"Invalid input for {market.team_a} vs {market.team_b}: {exc}")
                outcome = None
            except ValueError as exc:
                log.error(f"Failed {market.team_a} vs {market.team_b}: {exc}")
                outcome = None

            if outcome is not None:
                result, inputs, event_id, game_date = outcome
                if is_publishable(result, self.min_confidence):
                    rows.append(prediction_row(market, result, inputs, event_id, game_date))
                    records.append(PredictionRecord.from_prediction(
                        result,
                        market_id=market.market_id,
                        game_date=game_date,
                        market_odds_a=market.yes_price,
                        market_odds_b=market.no_price,
                        volume_usd=market.volume,
                        is_team_a_home=inputs.is_team_a_home,
                    ))
                    log.info(
                        f"{result.team_a} vs {result.team_b}: home={inputs.is_team_a_home} "
                        f"win%={result.team_a_probability:.1%} conf={result.confidence:.2f} "
                        f"→ {result.recommendation}"
                    )
                else:
                    log.info(f"Skipped {result.team_a} vs {result.team_b}: confidence {result.confidence:.2f}")

            if self.sleep > 0:
                time.sleep(self.sleep)

        return pd.DataFrame(rows), records


# ═══════════════════════════════════════════════════════════════════════════════
# OUTPUT
# ═══════════════════════════════════════════════════════════════════════════════

def write_predictions(df: pd.DataFrame, label: str, out_dir: Path = DATA_DIR) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    if not df.empty:
        validate_output(df, "predictions")
    dated_path = out_dir / f"predictions_{label}.csv"
    latest_path = out_dir / OUT_PREDICTIONS_LATEST.name
    df.to_csv(dated_path, index=False)
    df.to_csv(latest_path, index=False)

    log.info(f"Wrote {len(df)} predictions -> {dated_path}")
    log.info(f"Updated {latest_path.name}")
    return dated_path


def print_summary(df: pd.DataFrame) -> None:
    if df.empty:
        print("No predictions generated.")
        return

    print()
    print("=" * 100)
    print(f"{'MATCHUP':<48} {'MODEL':>7} {'FINAL':>7} {'MARKET':>7} {'CONF':>6} {'PICK':>10} {'VALUE':>8}")
    print("=" * 100)

    for _, row in df.iterrows():
        matchup = f"{row.get('team_a', '')} vs {row.get('team_b', '')}"[:47]
        print(
            f"{matchup:<48} {row.get('model_probability', 0.0):>7.1%} "
            f"{row.get('team_a_probability', 0.0):>7.1%} {row.get('market_probability', 0.0):>7.1%} "
            f"{row.get('confidence', 0.0):>6.0%} {row.get('recommendation', ''):>10} "
            f"{row.get('market_value', ''):>8}"
        )

    print("=" * 100)

    value = df[df["market_value"] != "FAIR"] if "market_value" in df.columns else pd.DataFrame()
    if not value.empty:
        print(f"\n⚡ VALUE ALERTS ({len(value)} markets where model and market differ by > 5 pts):")
        for _, row in value.iterrows():
            print(
                f"   {row.get('team_a', '')} vs {row.get('team_b', '')}: "
                f"model {row.get('team_a_probability', 0.0):.1%} vs market "
                f"{row.get('market_probability', 0.0):.1%} -> {row.get('market_value', '')}"
            )
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
    parser = argparse.ArgumentParser(description="Run PolyNBA predictions for open Polymarket games")
    parser.add_argument("--limit", type=int, default=MARKET_LIMIT,
                        help=f"Markets to consider, by volume (default: {MARKET_LIMIT})")
    parser.add_argument("--date", type=str, default=None,
                        help="Only games on this US date, YYYYMMDD")
    parser.add_argument("--no-blend", action="store_true",
                        help="Publish the raw model probability without the market blend")
    parser.add_argument("--calibrate", action="store_true",
                        help="Correct probabilities with hit rates from settled prediction records")
    parser.add_argument("--dry-run", action="store_true", default=DRY_RUN,
                        help="Predict and print only; write no files")
    args = parser.parse_args()

    target_date = None
    if args.date:
        try:
            target_date = datetime.strptime(args.date, "%Y%m%d").date().isoformat()
        except ValueError:
            parser.error(f"--date must be YYYYMMDD, got {args.date!r}")

    log.info(f"{'='*70}")
    log.info("PolyNBA Prediction Runner")
    log.info(f"Limit: {args.limit} | Date: {target_date or 'all'} | "
             f"Blend: {not args.no_blend} | Calibrate: {args.calibrate} | Dry run: {args.dry_run}")
    log.info(f"{'='*70}")

    cache = JsonFileCache()
    markets = get_top_markets(limit=args.limit, cache=cache)
    if not markets:
        log.warning("No open NBA game markets found. Exiting.")
        sys.exit(0)

    store = PredictionStore(OUT_RECORDS)
    calibration = load_calibration(store) if args.calibrate else None
    config = EngineConfig.from_file(blend_market=not args.no_blend, calibration=calibration)
    runner = PredictionRunner(engine=PredictionEngine(config), cache=cache)
    results_df, records = runner.run(markets, target_date=target_date)

    if results_df.empty:
        log.warning("No publishable predictions. Check ESPN coverage for these markets.")
        sys.exit(0)

    print_summary(results_df)
    if args.dry_run:
        log.info("Dry run: nothing written")
        return None

    label = args.date or datetime.now(TZ).strftime("%Y%m%d")
    out_path = write_predictions(results_df, label=label)
    saved = store.save_many(records)
    log.info(f"Saved {saved} prediction records -> {OUT_RECORDS}")

    log.info(f"Done. Output: {out_path}")
    return out_path


if __name__ == "__main__":
    main()
