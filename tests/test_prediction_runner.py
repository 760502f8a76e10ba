"""
tests/test_prediction_runner.py — Tests for nba_prediction_runner.py

Validates (all ESPN fetches are injected fakes; no network):
  - build_matchup: history strictly before the game date, rest days,
    injuries and home/away read from the summary
  - PredictionRunner.run: publish gate, date filter, missing ESPN event,
    per-run scoreboard reuse, failed fetches, unusable start times
  - load_calibration from settled records and its effect on the model
  - dedupe_by_event and write_predictions
"""

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from nba_output_schemas import validate_output
from nba_prediction_engine import CalibrationBin, EngineConfig, PredictionEngine
from nba_prediction_runner import (
    PredictionRunner,
    build_matchup,
    dedupe_by_event,
    is_publishable,
    load_calibration,
    write_predictions,
)
from nba_results_tracker import PredictionRecord, PredictionStore, settle_record
from nba_team_stats import GameResult, InjuryStatus
from polymarket_markets import MarketSnapshot

BOS = "Boston Celtics"
MIA = "Miami Heat"
NYK = "New York Knicks"
TEAM_IDS = {BOS: "2", MIA: "14", NYK: "18"}


# ── Helpers ──────────────────────────────────────────────────────────────────

def _market(market_id="m1", team_a=BOS, team_b=MIA, start="2025-01-16T00:30:00Z",
            slug="nba-bos-mia-2025-01-15", yes=0.58, no=0.44, volume=10_000.0):
    return MarketSnapshot(
        market_id=market_id,
        event_slug=slug,
        market_slug=f"{slug}-moneyline",
        question=f"{team_a} vs. {team_b}",
        start_time=start,
        volume=volume,
        liquidity=None,
        yes_price=yes,
        no_price=no,
        team_a=team_a,
        team_b=team_b,
    )


def _sb_event(event_id, day, home, away, home_score, away_score):
    def comp(name, ha, score, other):
        return {"homeAway": ha, "score": str(score), "winner": score > other,
                "team": {"id": TEAM_IDS[name], "displayName": name}}

    return {
        "id": event_id,
        "date": f"{day}T20:00Z",
        "competitions": [{
            "date": f"{day}T20:00Z",
            "status": {"type": {"completed": True, "state": "post"}},
            "competitors": [
                comp(home, "home", home_score, away_score),
                comp(away, "away", away_score, home_score),
            ],
        }],
    }


SCOREBOARDS = {
    "20250114": {"events": [_sb_event("301", "2025-01-14", BOS, NYK, 110, 100)]},
    "20250113": {"events": [_sb_event("302", "2025-01-13", MIA, BOS, 105, 99)]},
    "20250112": {"events": [_sb_event("303", "2025-01-12", MIA, NYK, 101, 96)]},
}


def _summary(home=BOS, away=MIA):
    return {
        "header": {"competitions": [{
            "status": {"type": {"state": "pre"}},
            "competitors": [
                {"homeAway": "home", "team": {"displayName": home}},
                {"homeAway": "away", "team": {"displayName": away}},
            ],
        }]},
        "injuries": [
            {"team": {"displayName": MIA},
             "injuries": [{"athlete": {"displayName": "Jimmy Butler"}, "status": "Out"}]},
            {"team": {"displayName": BOS}, "injuries": []},
        ],
    }


def _team_stats(team_id):
    rating = {"2": 9.0, "14": 1.5, "18": 4.0}[team_id]
    return {"results": {"stats": {"categories": [
        {"name": "offensive", "stats": [{"name": "effectiveFGPct", "value": 55.0}]},
        {"name": "general", "stats": [{"name": "NBARating", "value": rating}]},
    ]}}}


class Fakes:
    """Injected fetchers that record their calls."""

    def __init__(self, events=None):
        self.calls = {"scoreboard": [], "summary": [], "stats": [], "find": []}
        self.events = events if events is not None else {(BOS, MIA): "401", (NYK, MIA): "402"}

    def scoreboard(self, day):
        self.calls["scoreboard"].append(day)
        return SCOREBOARDS.get(day, {"events": []})

    def summary(self, event_id):
        self.calls["summary"].append(event_id)
        return _summary()

    def stats(self, team_id):
        self.calls["stats"].append(team_id)
        return _team_stats(team_id)

    def find(self, team_a, team_b, game_date):
        self.calls["find"].append((team_a, team_b, game_date))
        return self.events.get((team_a, team_b))

    def runner(self, **kwargs):
        kwargs.setdefault("lookback_days", 3)
        return PredictionRunner(
            fetch_scoreboard=self.scoreboard,
            fetch_summary=self.summary,
            fetch_team_statistics=self.stats,
            find_event=self.find,
            sleep=0,
            **kwargs,
        )


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def fakes():
    return Fakes()


@pytest.fixture
def history():
    games = []
    for board in SCOREBOARDS.values():
        for e in board["events"]:
            c = e["competitions"][0]["competitors"]
            home, away = c[0]["team"]["displayName"], c[1]["team"]["displayName"]
            hs, aws = int(c[0]["score"]), int(c[1]["score"])
            games.append(GameResult(e["date"][:10], home, away, hs, aws, home if hs > aws else away))
    return games


# ── build_matchup ────────────────────────────────────────────────────────────

class TestBuildMatchup:

    def test_history_and_rest(self, history):
        m = build_matchup(_market(), history, "2025-01-15", summary=_summary())
        assert m.rest_days_a == 1          # Celtics played 01-14
        assert m.rest_days_b == 2          # Heat played 01-13
        assert m.recent_a.recent_form == "WL"
        assert m.h2h.total_games == 1
        assert m.h2h.team_a_win_rate == 0.0

    def test_same_day_games_excluded(self, history):
        today = GameResult("2025-01-15", BOS, MIA, 130, 90, BOS)
        m = build_matchup(_market(), history + [today], "2025-01-15")
        assert m.h2h.total_games == 1
        assert m.recent_a.games_played == 2

    def test_summary_fields(self, history):
        m = build_matchup(_market(), history, "2025-01-15", summary=_summary())
        assert m.is_team_a_home is True
        assert m.injuries_b.count(InjuryStatus.OUT) == 1
        assert m.injuries_a.injuries == ()

    def test_without_summary_or_history(self):
        m = build_matchup(_market(), [], "2025-01-15")
        assert m.is_team_a_home is None
        assert m.h2h is None
        assert m.recent_a is None and m.recent_b is None
        assert (m.rest_days_a, m.rest_days_b) == (3, 3)
        assert m.market.yes == 0.58


# ── PredictionRunner ─────────────────────────────────────────────────────────

class TestPredictionRunner:

    def test_run_produces_row_and_record(self, fakes):
        df, records = fakes.runner().run([_market()])
        assert len(df) == 1
        row = df.iloc[0]
        assert row["event_id"] == "401"
        assert row["game_date"] == "2025-01-15"
        assert bool(row["is_team_a_home"]) is True
        assert 0.01 <= row["team_a_probability"] <= 0.99
        assert row["confidence"] == pytest.approx(0.95)
        assert validate_output(df, "predictions") == []

        assert len(records) == 1
        assert records[0].market_id == "m1"
        assert records[0].predicted_probability_a == pytest.approx(row["team_a_probability"])
        assert records[0].market_odds_a == 0.58

    def test_find_event_gets_us_date(self, fakes):
        fakes.runner().run([_market()])
        assert fakes.calls["find"] == [(BOS, MIA, "2025-01-15")]

    def test_scoreboards_and_stats_fetched_once_per_run(self, fakes):
        markets = [_market(), _market("m2", NYK, MIA, slug="nba-nyk-mia-2025-01-15")]
        df, _ = fakes.runner().run(markets)
        assert len(df) == 2
        assert sorted(fakes.calls["scoreboard"]) == ["20250112", "20250113", "20250114"]
        assert sorted(fakes.calls["stats"]) == ["14", "18", "2"]

    def test_missing_event_is_skipped(self):
        fakes = Fakes(events={})
        df, records = fakes.runner().run([_market()])
        assert df.empty
        assert records == []
        assert fakes.calls["summary"] == []

    def test_publish_gate(self, fakes):
        df, records = fakes.runner(min_confidence=0.99).run([_market()])
        assert df.empty and records == []

    def test_date_filter(self, fakes):
        df, _ = fakes.runner().run([_market()], target_date="2025-01-16")
        assert df.empty
        assert fakes.calls["find"] == []

    def test_duplicate_markets_predicted_once(self, fakes):
        df, _ = fakes.runner().run([_market("m1"), _market("m1b")])
        assert list(df["market_id"]) == ["m1"]

    def test_failed_fetches_lower_confidence(self, fakes):
        def down(*args):
            raise RuntimeError("ESPN down")

        runner = PredictionRunner(fetch_scoreboard=down, fetch_summary=down,
                                  fetch_team_statistics=down, find_event=fakes.find,
                                  lookback_days=3, sleep=0, min_confidence=0.0)
        df, _ = runner.run([_market()])
        assert len(df) == 1
        assert df.iloc[0]["confidence"] == pytest.approx(0.5)

    def test_no_blend(self, fakes):
        engine = PredictionEngine(EngineConfig(blend_market=False))
        df, _ = fakes.runner(engine=engine).run([_market()])
        row = df.iloc[0]
        assert row["team_a_probability"] == row["model_probability"]

    def test_offseason_days_skipped(self, fakes):
        runner = fakes.runner(lookback_days=5)
        runner.recent_games("2025-10-03")
        assert fakes.calls["scoreboard"] == ["20251002", "20251001"]

    def test_unusable_start_time_does_not_stop_run(self, fakes):
        markets = [
            _market("bad", start="TBD", slug="nba-bos-mia-tbd"),
            _market("m1"),
        ]
        df, records = fakes.runner().run(markets)
        assert list(df["market_id"]) == ["m1"]
        assert [r.market_id for r in records] == ["m1"]
        assert fakes.calls["find"] == [(BOS, MIA, "2025-01-15")]


# ── Calibration ──────────────────────────────────────────────────────────────

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _settled_record(i, p, won):
    rec = PredictionRecord(
        market_id=f"r{i}",
        team_a=BOS,
        team_b=MIA,
        game_date="2025-02-27",
        created_at=(NOW - timedelta(days=2)).isoformat(),
        predicted_probability_a=p,
        confidence=0.8,
        market_odds_a=0.5,
        market_odds_b=0.5,
    )
    return settle_record(rec, "teamA" if won else "teamB", 110, 100, now=NOW - timedelta(days=1))


class TestCalibration:

    def test_load_from_settled_records(self, tmp_path):
        store = PredictionStore(tmp_path / "records.csv")
        store.save_many(_settled_record(i, 0.55, won=i < 12) for i in range(30))
        table = load_calibration(store, now=NOW)
        assert table is not None
        assert table[0].sample_size == 30
        assert table[0].actual_win_rate == pytest.approx(0.4)

    def test_too_few_records(self, tmp_path):
        store = PredictionStore(tmp_path / "records.csv")
        store.save_many(_settled_record(i, 0.55, won=True) for i in range(5))
        assert load_calibration(store, now=NOW) is None

    def test_empty_store(self, tmp_path):
        assert load_calibration(PredictionStore(tmp_path / "records.csv"), now=NOW) is None

    def test_table_moves_model_probability(self, fakes):
        # Every bin observed 5 points below its midpoint
        table = tuple(
            CalibrationBin(low=lo, high=hi, actual_win_rate=(lo + hi) / 2 - 0.05, sample_size=40)
            for lo, hi in [(0.5, 0.6), (0.6, 0.7), (0.7, 0.8), (0.8, 0.9), (0.9, 1.0)]
        )
        plain, _ = fakes.runner().run([_market()])
        engine = PredictionEngine(EngineConfig(calibration=table))
        calibrated, _ = fakes.runner(engine=engine).run([_market()])

        p0 = plain.iloc[0]["model_probability"]
        p1 = calibrated.iloc[0]["model_probability"]
        assert p1 != pytest.approx(p0)
        assert abs(p1 - 0.5) < abs(p0 - 0.5)


# ── Helpers under test ───────────────────────────────────────────────────────

class TestHelpers:

    def test_dedupe_keeps_first(self):
        markets = [_market("a"), _market("b"), _market("c", NYK, MIA, slug="other")]
        assert [m.market_id for m in dedupe_by_event(markets)] == ["a", "c"]

    def test_dedupe_without_slug(self):
        markets = [_market("a", slug=""), _market("b", slug="")]
        assert len(dedupe_by_event(markets)) == 1

    def test_is_publishable_is_strict(self):
        result = PredictionEngine().predict(build_matchup(_market(), [], "2025-01-15"))
        assert result.confidence == 0.5
        assert not is_publishable(result)
        assert is_publishable(result, min_confidence=0.49)

    def test_write_predictions(self, fakes, tmp_path):
        df, _ = fakes.runner().run([_market()])
        path = write_predictions(df, "20250115", out_dir=tmp_path)
        assert path.name == "predictions_20250115.csv"
        assert (tmp_path / "predictions_latest.csv").exists()
        assert len(pd.read_csv(path)) == 1
