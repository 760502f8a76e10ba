"""
Tests for nba_results_tracker.py — settlement, record store and performance.

Validates:
- settle_record scoring (correctness, Brier, floored log loss, paper-trade ROI)
- PredictionStore CSV round trip, and that settled rows are never overwritten
- compute_model_performance windowing and confidence/value buckets
- build_calibration_table favored-side bins
- ResultsTracker.settle_pending with injected ESPN lookups
- Writers pass their output schema; data-quality summary
"""
import json
import logging
import math
from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from nba_prediction_engine import MarketPrices, MatchupInputs, PredictionEngine
from nba_results_tracker import (
    FAVORED_BINS,
    LOG_LOSS_FLOOR,
    ModelPerformance,
    PredictionRecord,
    PredictionStore,
    ResultsTracker,
    build_calibration_table,
    calibration_score,
    compute_model_performance,
    paper_trade_roi,
    settle_record,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _record(market_id, p, conf=0.75, odds_a=0.5, odds_b=None, created=None,
            team_a="Boston Celtics", **kwargs):
    return PredictionRecord(
        market_id=str(market_id),
        team_a=team_a,
        team_b="Miami Heat",
        game_date="2025-02-28",
        created_at=(created or NOW - timedelta(days=1)).isoformat(),
        predicted_probability_a=p,
        confidence=conf,
        market_odds_a=odds_a,
        market_odds_b=odds_b if odds_b is not None else round(1 - odds_a, 4),
        **kwargs,
    )


def _settled(market_id, p, winner, settled_at=None, **kwargs):
    rec = _record(market_id, p, **kwargs)
    return settle_record(rec, winner, 110, 100, now=settled_at or NOW - timedelta(days=1))


def _final_summary(score_a, score_b):
    return {"header": {"competitions": [{
        "status": {"type": {"state": "post"}},
        "competitors": [
            {"homeAway": "home", "team": {"displayName": "Boston Celtics"},
             "score": str(score_a), "winner": score_a > score_b},
            {"homeAway": "away", "team": {"displayName": "Miami Heat"},
             "score": str(score_b), "winner": score_b > score_a},
        ],
    }]}}


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def store(tmp_path):
    """Empty record store in a temp directory."""
    return PredictionStore(tmp_path / "data" / "prediction_records.csv")


# ── Settlement ───────────────────────────────────────────────────────────────

class TestSettleRecord:

    def test_favorite_wins(self):
        done = settle_record(_record("m1", 0.7, odds_a=0.6), "teamA", 112, 104, now=NOW)
        assert done.settled
        assert done.prediction_correct is True
        assert done.brier_score == pytest.approx(0.09)
        assert done.log_loss == pytest.approx(-math.log(0.7))
        assert done.roi == pytest.approx(1 / 0.6 - 1)
        assert (done.actual_score_a, done.actual_score_b) == (112, 104)
        assert done.result_updated_at == NOW.isoformat()

    def test_favorite_loses(self):
        done = settle_record(_record("m1", 0.7, odds_a=0.6), "teamB", 99, 101, now=NOW)
        assert done.prediction_correct is False
        assert done.brier_score == pytest.approx(0.49)
        assert done.log_loss == pytest.approx(-math.log(0.3))
        assert done.roi == -1.0

    def test_coin_flip_is_never_correct(self):
        assert settle_record(_record("m1", 0.5), "teamA", 1, 0).prediction_correct is False
        assert settle_record(_record("m1", 0.5), "teamB", 0, 1).prediction_correct is False

    def test_log_loss_floor(self):
        done = settle_record(_record("m1", 1.0), "teamB", 90, 100)
        assert done.log_loss == pytest.approx(-math.log(LOG_LOSS_FLOOR))

    def test_bad_winner(self):
        with pytest.raises(ValueError):
            settle_record(_record("m1", 0.6), "draw", 100, 100)

    def test_original_untouched(self):
        rec = _record("m1", 0.6)
        settle_record(rec, "teamA", 100, 90)
        assert not rec.settled


class TestPaperTradeRoi:

    @pytest.mark.parametrize("p,odds_a,odds_b,winner,expected", [
        (0.60, 0.50, 0.50, "teamA", 1.0),          # buy YES, wins
        (0.60, 0.50, 0.50, "teamB", -1.0),         # buy YES, loses
        (0.30, 0.50, 0.40, "teamB", 1.5),          # buy NO at 0.40
        (0.52, 0.50, 0.50, "teamA", 0.0),          # inside the edge, no bet
        (0.70, 0.00, 0.50, "teamA", 0.0),          # unusable price
    ])
    def test_roi(self, p, odds_a, odds_b, winner, expected):
        assert paper_trade_roi(p, odds_a, odds_b, winner) == pytest.approx(expected)


# ── Store ────────────────────────────────────────────────────────────────────

class TestPredictionStore:

    def test_empty(self, store):
        assert store.all() == []
        assert store.get("nope") is None

    def test_round_trip(self, store):
        rec = _record("m1", 0.64, is_team_a_home=True, volume_usd=12345.5,
                      factors_json=json.dumps([{"name": "Fatigue", "score": 8.0}]))
        assert store.save(rec)
        assert store.path.exists()
        assert store.get("m1") == rec

    def test_settled_round_trip(self, store):
        done = _settled("m1", 0.64, "teamA")
        store.update(done)
        loaded = store.get("m1")
        assert loaded == done
        assert isinstance(loaded.actual_score_a, int)
        assert loaded.prediction_correct is True

    def test_save_replaces_pending(self, store):
        store.save(_record("m1", 0.6))
        store.save(_record("m1", 0.65))
        assert len(store.all()) == 1
        assert store.get("m1").predicted_probability_a == pytest.approx(0.65)

    def test_save_never_overwrites_settled(self, store):
        done = _settled("m1", 0.64, "teamA")
        store.update(done)
        written = store.save_many([_record("m1", 0.2), _record("m2", 0.55)])
        assert written == 1
        assert store.get("m1") == done
        assert store.get("m2") is not None

    def test_pending_and_settled(self, store):
        store.save_many([_record("m1", 0.6), _record("m2", 0.4)])
        store.update_many([
            _settled("m2", 0.4, "teamB"),
            _settled("m3", 0.7, "teamA", settled_at=NOW - timedelta(days=45)),
        ])
        assert [r.market_id for r in store.pending()] == ["m1"]
        assert {r.market_id for r in store.settled()} == {"m2", "m3"}
        assert [r.market_id for r in store.settled(days=30, now=NOW)] == ["m2"]

    def test_csv_has_all_columns(self, store):
        store.save(_record("m1", 0.6))
        df = pd.read_csv(store.path)
        assert "predicted_probability_a" in df.columns
        assert "roi" in df.columns

    def test_from_prediction(self):
        result = PredictionEngine().predict(MatchupInputs(
            team_a="Boston Celtics", team_b="Miami Heat",
            market=MarketPrices(0.6, 0.4), is_team_a_home=True,
        ))
        rec = PredictionRecord.from_prediction(result, "m9", "2025-02-28", 0.6, 0.4,
                                               volume_usd=5000.0, is_team_a_home=True,
                                               created_at=NOW)
        assert rec.predicted_probability_a == result.team_a_probability
        assert rec.created_at == NOW.isoformat()
        assert len(json.loads(rec.factors_json)) == 7
        assert not rec.settled


# ── Performance ──────────────────────────────────────────────────────────────

class TestModelPerformance:

    @pytest.fixture
    def records(self):
        return [
            _settled("r1", 0.70, "teamA", conf=0.85, odds_a=0.55),   # correct, strong edge
            _settled("r2", 0.60, "teamB", conf=0.70, odds_a=0.52),   # wrong, value edge
            _settled("r3", 0.40, "teamB", conf=0.50, odds_a=0.42),   # correct, fair
            _settled("r4", 0.80, "teamA", settled_at=NOW - timedelta(days=40)),
            _record("r5", 0.65),                                     # pending
        ]

    def test_window_and_accuracy(self, records):
        perf = compute_model_performance(records, days=30, now=NOW)
        assert perf.total_predictions == 3
        assert perf.accuracy == pytest.approx(2 / 3)
        assert perf.avg_brier_score == pytest.approx((0.09 + 0.36 + 0.16) / 3)

    def test_confidence_buckets(self, records):
        perf = compute_model_performance(records, days=30, now=NOW)
        assert perf.by_confidence["high"] == {"accuracy": 1.0, "count": 1}
        assert perf.by_confidence["medium"] == {"accuracy": 0.0, "count": 1}
        assert perf.by_confidence["low"] == {"accuracy": 1.0, "count": 1}

    def test_value_buckets(self, records):
        perf = compute_model_performance(records, days=30, now=NOW)
        assert perf.by_value["strong"]["roi"] == pytest.approx((1 / 0.55 - 1) * 100)
        assert perf.by_value["value"]["roi"] == pytest.approx(-100.0)
        assert perf.by_value["fair"]["roi"] == 0.0

    def test_daily_series(self, records):
        perf = compute_model_performance(records, days=30, now=NOW)
        assert len(perf.last_7_days) == 7
        assert len(perf.last_30_days) == 30
        assert perf.last_7_days[-1]["date"] == "2025-03-01"
        assert perf.last_7_days[-2]["count"] == 3
        assert sum(d["count"] for d in perf.last_30_days) == 3

    def test_longer_window_includes_old(self, records):
        assert compute_model_performance(records, days=60, now=NOW).total_predictions == 4

    def test_empty(self):
        perf = compute_model_performance([], days=7, now=NOW)
        assert perf == ModelPerformance(window_days=7)
        assert perf.accuracy == 0.0

    def test_flat_dict(self, records):
        row = compute_model_performance(records, days=30, now=NOW).to_flat_dict()
        assert row["conf_high_count"] == 1
        assert "value_strong_roi" in row

    def test_calibration_score(self):
        assert calibration_score([0.75] * 8, [1] * 6 + [0] * 2) == pytest.approx(1.0)
        assert calibration_score([0.75] * 4, [1] * 4) == 0.5


class TestCalibrationTable:

    def test_favored_side_bins(self):
        records = [
            _settled("a", 0.55, "teamA"),     # favored A, won
            _settled("b", 0.45, "teamB"),     # favored B, won
            _settled("c", 0.58, "teamB"),     # favored A, lost
            _settled("d", 0.50, "teamA"),     # coin flip, skipped
            _settled("e", 0.95, "teamA"),
        ]
        table = build_calibration_table(records, now=NOW)
        assert [(b.low, b.high) for b in table] == FAVORED_BINS
        assert table[0].sample_size == 3
        assert table[0].actual_win_rate == pytest.approx(2 / 3)
        assert table[-1].sample_size == 1
        assert table[1].sample_size == 0
        assert table[1].actual_win_rate == pytest.approx(0.65)

    def test_no_records(self):
        table = build_calibration_table([], now=NOW)
        assert all(b.sample_size == 0 for b in table)


# ── Tracker ──────────────────────────────────────────────────────────────────

class TestResultsTracker:

    def test_settle_pending(self, store):
        store.save_many([_record("m1", 0.7), _record("m2", 0.6, team_a="Utah Jazz")])

        def find_event(team_a, team_b, game_date):
            return "401" if team_a == "Boston Celtics" else None

        tracker = ResultsTracker(store=store, find_event=find_event,
                                 fetch_summary=lambda eid: _final_summary(112, 104), sleep=0)
        settled = tracker.settle_pending(now=NOW)

        assert [r.market_id for r in settled] == ["m1"]
        assert store.get("m1").actual_winner == "teamA"
        assert store.get("m1").prediction_correct is True
        assert [r.market_id for r in store.pending()] == ["m2"]

    def test_fetch_failure_leaves_pending(self, store):
        store.save(_record("m1", 0.7))

        def boom(event_id):
            raise RuntimeError("ESPN down")

        tracker = ResultsTracker(store=store, find_event=lambda *a: "401",
                                 fetch_summary=boom, sleep=0)
        assert tracker.settle_pending(now=NOW) == []
        assert store.get("m1").settled is False

    def test_nothing_pending(self, store):
        tracker = ResultsTracker(store=store, find_event=lambda *a: pytest.fail("no lookup"),
                                 fetch_summary=lambda e: {}, sleep=0)
        assert tracker.settle_pending() == []

    def test_write_performance(self, store, tmp_path):
        store.update(_settled("m1", 0.7, "teamA", settled_at=datetime.now(timezone.utc)))
        tracker = ResultsTracker(store=store, sleep=0)
        out = tmp_path / "perf.csv"
        perf = tracker.write_performance(days=30, path=out)
        assert perf.total_predictions == 1
        df = pd.read_csv(out)
        assert int(df.loc[0, "total_predictions"]) == 1

    def test_writers_meet_output_schemas(self, store, tmp_path, caplog):
        caplog.set_level(logging.WARNING, logger="nba_output_schemas")
        store.update(_settled("m1", 0.7, "teamA", settled_at=datetime.now(timezone.utc)))
        store.save(_record("m2", 0.6))
        ResultsTracker(store=store, sleep=0).write_performance(days=30, path=tmp_path / "perf.csv")
        assert "required column" not in caplog.text

    def test_data_quality(self, store):
        store.update(_settled("m1", 0.7, "teamA", settled_at=datetime.now(timezone.utc)))
        store.save(_record("m2", 0.6))
        tracker = ResultsTracker(store=store, sleep=0)
        report = tracker.data_quality(tracker.performance(days=30))

        assert list(report["output"]) == ["prediction_records", "model_performance"]
        records = report.iloc[0]
        assert records["rows"] == 2
        assert records["missing_cols"] == 0
        assert 0 < records["null_pct"] < 100     # m2 has no outcome yet
        assert report.iloc[1]["missing_cols"] == 0

    def test_print_summary_includes_data_quality(self, store, capsys):
        store.update(_settled("m1", 0.7, "teamA", settled_at=datetime.now(timezone.utc)))
        ResultsTracker(store=store, sleep=0).print_summary(days=30)
        out = capsys.readouterr().out
        assert "Accuracy:" in out
        assert "prediction_records" in out
