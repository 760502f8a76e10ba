"""
PolyNBA Output File Schemas — Required columns for every CSV the pipeline writes.

Writers and the files they guard:
    write_predictions()               predictions_<YYYYMMDD>.csv, predictions_latest.csv
    PredictionStore._write()          prediction_records.csv
    ResultsTracker.write_performance  model_performance.csv

Usage:
    from nba_output_schemas import validate_output

    validate_output(df, "predictions")                 # warns, returns missing
    validate_output(df, "predictions", strict=True)    # raises ValueError
"""

import logging
from typing import Dict, List

import pandas as pd

from nba_config import FACTOR_NAMES
from nba_prediction_engine import factor_slug

log = logging.getLogger(__name__)


def _factor_columns() -> List[str]:
    return [f"{factor_slug(name)}_score" for name in FACTOR_NAMES]


# ── Required column sets per output file ─────────────────────────────────────

OUTPUT_FILE_SCHEMAS: Dict[str, List[str]] = {
    "predictions": [
        "market_id", "event_id", "game_date", "start_time",
        "team_a", "team_b",
        "team_a_probability", "team_b_probability",
        "model_probability", "market_probability",
        "confidence", "composite_score", "k_value",
        "recommendation", "market_value", "model_version",
        "rest_days_a", "rest_days_b", "is_team_a_home",
        *_factor_columns(),
    ],
    "prediction_records": [
        "market_id", "team_a", "team_b", "game_date", "created_at",
        "predicted_probability_a", "confidence", "model_version",
        "market_odds_a", "market_odds_b",
        "actual_winner", "prediction_correct",
        "brier_score", "log_loss", "roi",
    ],
    "model_performance": [
        "window_days", "total_predictions", "accuracy",
        "avg_brier_score", "avg_log_loss", "calibration_score",
        "conf_high_accuracy", "conf_medium_accuracy", "conf_low_accuracy",
        "value_strong_roi", "value_value_roi", "value_fair_roi",
    ],
}


def validate_output(df: pd.DataFrame, schema_name: str, *, strict: bool = False) -> List[str]:
    """
    Sorted required columns of *schema_name* that *df* lacks.

    Missing columns are logged as a warning, or raised as ValueError when
    *strict*. An unknown schema name raises KeyError.
    """
    if schema_name not in OUTPUT_FILE_SCHEMAS:
        raise KeyError(f"Unknown output schema: {schema_name!r}")

    columns = set(df.columns)
    missing = sorted(c for c in OUTPUT_FILE_SCHEMAS[schema_name] if c not in columns)
    if not missing:
        return []

    msg = f"{schema_name}: {len(missing)} required column(s) missing: {', '.join(missing)}"
    if strict:
        raise ValueError(msg)
    log.warning(msg)
    return missing


def completeness_report(dataframes: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """
    One row per known output with its row count, required/present/missing
    column counts and the mean null share (percent) of the present required
    columns. ``null_pct`` is None for an empty frame and 100 when no
    required column is present. Unknown names are skipped.
    """
    rows = []
    for name, df in dataframes.items():
        required = OUTPUT_FILE_SCHEMAS.get(name)
        if required is None:
            continue

        present = [c for c in required if c in df.columns]
        missing = [c for c in required if c not in df.columns]
        if df.empty:
            null_pct = None
        elif not present:
            null_pct = 100.0
        else:
            null_pct = round(float(df[present].isna().to_numpy().mean() * 100), 2)

        rows.append({
            "output":        name,
            "rows":          len(df),
            "required_cols": len(required),
            "present_cols":  len(present),
            "missing_cols":  len(missing),
            "missing_list":  ", ".join(sorted(missing)),
            "null_pct":      null_pct,
        })

    return pd.DataFrame(rows)
