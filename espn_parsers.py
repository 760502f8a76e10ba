"""
PolyNBA Pipeline — Parsers
Convert raw ESPN JSON into clean flat dictionaries and team records.
One function per data shape. No I/O here.

Injury status arrives either as plain text ("Out", "Day-To-Day") or as a
nested object ({"type": {"name": "INJURY_STATUS_OUT", ...}}). Both are
collapsed to InjuryStatus here so nothing downstream sniffs types.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from espn_config import TZ
from nba_team_stats import (
    AdvancedTeamStats,
    GameResult,
    InjuryStatus,
    PlayerInjury,
    TeamInjuries,
    status_from_text,
)

log = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _safe_int(val: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def _safe_float(val: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


def local_game_date(iso_ts: str) -> str:
    """
    ESPN and Polymarket timestamps are UTC ("2025-01-15T00:30Z"). Games are
    dated by the US calendar, so a 7:30pm ET tip stays on its own day.
    """
    if not iso_ts:
        return ""
    ts = pd.to_datetime(iso_ts, utc=True, errors="coerce")
    if pd.isna(ts):
        return str(iso_ts)[:10]
    return ts.tz_convert(TZ).date().isoformat()


def _competitors(comp: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    home = away = {}
    for c in comp.get("competitors", []) or []:
        ha = str(c.get("homeAway", "")).lower()
        if ha == "home":
            home = c
        elif ha == "away":
            away = c
    return home, away


def _team_name(competitor: Dict[str, Any]) -> str:
    team = competitor.get("team", {}) or {}
    return team.get("displayName", team.get("name", "")) or ""


# ── Scoreboard parser ─────────────────────────────────────────────────────────

def parse_scoreboard_event(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Parse one event from the ESPN scoreboard response into a flat game row.
    Returns None if the event cannot be meaningfully parsed.
    """
    try:
        game_id = str(event.get("id", "")).strip()
        if not game_id:
            return None

        comps = event.get("competitions", [])
        if not comps:
            return None
        comp = comps[0]

        status_type = comp.get("status", {}).get("type", {})
        completed   = bool(status_type.get("completed", False))
        state       = status_type.get("state", "")

        game_dt_utc = comp.get("date", event.get("date", ""))
        venue = (comp.get("venue") or {}).get("fullName")

        home, away = _competitors(comp)
        home_team, away_team = _team_name(home), _team_name(away)
        if not home_team or not away_team:
            return None

        home_score = _safe_int(home.get("score"))
        away_score = _safe_int(away.get("score"))

        winner = ""
        if home.get("winner"):
            winner = home_team
        elif away.get("winner"):
            winner = away_team
        elif completed and home_score is not None and away_score is not None and home_score != away_score:
            winner = home_team if home_score > away_score else away_team

        return {
            "game_id":           game_id,
            "game_datetime_utc": game_dt_utc,
            "game_date":         local_game_date(game_dt_utc),
            "venue":             venue,
            "attendance":        _safe_int(comp.get("attendance")),
            "home_team":         home_team,
            "home_team_id":      str((home.get("team") or {}).get("id", "")).strip(),
            "away_team":         away_team,
            "away_team_id":      str((away.get("team") or {}).get("id", "")).strip(),
            "home_score":        home_score,
            "away_score":        away_score,
            "winner":            winner,
            "completed":         completed,
            "state":             state,
        }

    except (AttributeError, TypeError) as exc:
        log.warning(f"parse_scoreboard_event failed for event {event.get('id', '?')}: {exc}")
        return None


def scoreboard_game_result(event: Dict[str, Any]) -> Optional[GameResult]:
    """GameResult for a completed scoreboard event, else None."""
    row = parse_scoreboard_event(event)
    if row is None or not row["completed"] or not row["winner"]:
        return None
    return GameResult(
        date=row["game_date"],
        home=row["home_team"],
        away=row["away_team"],
        home_score=row["home_score"] or 0,
        away_score=row["away_score"] or 0,
        winner=row["winner"],
        venue=row["venue"],
        attendance=row["attendance"],
    )


def parse_scoreboard_results(scoreboard: Dict[str, Any]) -> List[GameResult]:
    results = []
    for event in scoreboard.get("events", []) or []:
        g = scoreboard_game_result(event)
        if g is not None:
            results.append(g)
    return results


def find_event_id(
    events: Iterable[Dict[str, Any]],
    team_a_id: str,
    team_b_id: str,
) -> Optional[str]:
    """Event id of the scoreboard game between the two ESPN team ids."""
    wanted = {str(team_a_id), str(team_b_id)}
    for event in events:
        comps = event.get("competitions") or []
        if not comps:
            continue
        ids = {str((c.get("team") or {}).get("id", "")) for c in comps[0].get("competitors", []) or []}
        if wanted <= ids:
            return str(event.get("id"))
    return None


# ── Team statistics parser ────────────────────────────────────────────────────

# ESPN stat name → AdvancedTeamStats field (value, optional rank field)
_STAT_FIELDS = {
    "offensive": {
        "fieldGoalPct":   ("field_goal_pct", None),
        "threePointPct":  ("three_point_pct", None),
        "freeThrowPct":   ("free_throw_pct", None),
        "effectiveFGPct": ("effective_fg_pct", None),
        "avgAssists":     ("avg_assists", None),
        "avgTurnovers":   ("avg_turnovers", None),
        "avgPoints":      ("avg_points", None),
    },
    "defensive": {
        "avgDefensiveRebounds": ("avg_defensive_rebounds", None),
        "avgSteals":            ("avg_steals", None),
        "avgBlocks":            ("avg_blocks", None),
    },
    "general": {
        "gamesPlayed":         ("games_played", None),
        "avgRebounds":         ("avg_rebounds", None),
        "reboundRate":         ("rebound_rate", "rebound_rate_rank"),
        "assistTurnoverRatio": ("assist_turnover_ratio", "assist_turnover_ratio_rank"),
        "plusMinus":           ("plus_minus", None),
        "NBARating":           ("nba_rating", "nba_rating_rank"),
    },
}


def parse_team_statistics(raw: Dict[str, Any], team_id: str) -> Optional[AdvancedTeamStats]:
    """
    Parse the ESPN team statistics response into AdvancedTeamStats.
    Returns None when the payload carries no stat categories.
    """
    try:
        results = raw.get("results") or {}
        stats_block = results.get("stats") or {}
        categories = stats_block.get("categories") or []
        if not categories:
            log.warning(f"No stat categories for team {team_id}")
            return None

        values: Dict[str, Any] = {}
        for category in categories:
            mapping = _STAT_FIELDS.get(category.get("name", ""))
            if not mapping:
                continue
            for stat in category.get("stats", []) or []:
                target = mapping.get(stat.get("name"))
                if target is None:
                    continue
                field_name, rank_field = target
                values[field_name] = _safe_float(stat.get("value"))
                if rank_field:
                    values[rank_field] = stat.get("rankDisplayValue")

        team_name = ((raw.get("team") or {}).get("displayName")) or ""
        games_played = _safe_int(values.pop("games_played", None), 0) or 0
        return AdvancedTeamStats(
            team_id=str(team_id),
            team_name=team_name,
            games_played=games_played,
            **values,
        )
    except (AttributeError, TypeError) as exc:
        log.warning(f"parse_team_statistics failed for team {team_id}: {exc}")
        return None


# ── Injuries ──────────────────────────────────────────────────────────────────

def normalize_injury_status(raw_status: Any, raw_type: Any = None) -> Tuple[InjuryStatus, str]:
    """
    Collapse ESPN's injury status representations into (InjuryStatus, text).

    *raw_status* may be a string or a dict; *raw_type* is the sibling
    ``type`` object ESPN sometimes sends instead. The first candidate that
    maps to a known status wins.
    """
    candidates: List[str] = []
    for raw in (raw_status, raw_type):
        if isinstance(raw, str):
            candidates.append(raw)
        elif isinstance(raw, dict):
            nested = raw.get("type") if isinstance(raw.get("type"), dict) else {}
            for key in ("description", "name", "abbreviation"):
                for src in (raw, nested):
                    v = src.get(key)
                    if isinstance(v, str) and v:
                        candidates.append(v)

    for text in candidates:
        status = status_from_text(text)
        if status is not InjuryStatus.UNKNOWN:
            return status, text
    return InjuryStatus.UNKNOWN, candidates[0] if candidates else "Unknown"


def parse_injuries(summary: Dict[str, Any]) -> List[TeamInjuries]:
    """All teams' injury reports from an ESPN summary response."""
    teams: List[TeamInjuries] = []
    for block in summary.get("injuries", []) or []:
        try:
            team_name = (block.get("team") or {}).get("displayName", "")
            players = []
            for inj in block.get("injuries", []) or []:
                athlete = inj.get("athlete") or {}
                status, text = normalize_injury_status(inj.get("status"), inj.get("type"))
                players.append(PlayerInjury(
                    athlete_name=athlete.get("fullName") or athlete.get("displayName") or "",
                    status=status,
                    athlete_id=str(athlete.get("id", "")),
                    position=(athlete.get("position") or {}).get("abbreviation"),
                    status_text=text,
                    details=_injury_details(inj.get("details")),
                    date=inj.get("date"),
                ))
            teams.append(TeamInjuries(team_name=team_name, injuries=tuple(players)))
        except (AttributeError, TypeError) as exc:
            log.warning(f"Skipping malformed injury block: {exc}")
    return teams


def _injury_details(details: Any) -> Optional[str]:
    if details is None:
        return None
    if isinstance(details, str):
        return details
    if isinstance(details, dict):
        parts = [details.get("type"), details.get("location"), details.get("detail")]
        text = " ".join(str(p) for p in parts if p)
        return text or None
    return str(details)


def injuries_for_team(reports: Iterable[TeamInjuries], team_name: str) -> Optional[TeamInjuries]:
    for report in reports:
        if report.team_name == team_name:
            return report
    return None


# ── Summary header ────────────────────────────────────────────────────────────

def _header_competition(summary: Dict[str, Any]) -> Dict[str, Any]:
    comps = (summary.get("header") or {}).get("competitions") or []
    return comps[0] if comps else {}


def parse_home_away(summary: Dict[str, Any], team_name: str) -> Optional[bool]:
    """
    True if *team_name* is home, False if away, None if it cannot be told.
    Header competitors first, season-series event as a fallback.
    """
    sources = [_header_competition(summary).get("competitors") or []]
    for series in summary.get("seasonseries", summary.get("seasonSeries", [])) or []:
        events = series.get("events") or []
        if events:
            sources.append(events[0].get("competitors") or [])
            break

    for competitors in sources:
        for c in competitors:
            if _team_name(c) == team_name:
                ha = str(c.get("homeAway", "")).lower()
                if ha == "home":
                    return True
                if ha == "away":
                    return False
    return None


def parse_final_result(
    summary: Dict[str, Any],
    team_a: str,
    team_b: str,
) -> Optional[Tuple[str, int, int]]:
    """
    ("teamA" | "teamB", score_a, score_b) once the game is final,
    None while it is scheduled/live or the teams cannot be matched.
    """
    comp = _header_competition(summary)
    if not comp:
        return None
    state = ((comp.get("status") or {}).get("type") or {}).get("state")
    if state != "post":
        log.debug(f"Game not finished: {team_a} vs {team_b} (state: {state})")
        return None

    by_name = {_team_name(c): c for c in comp.get("competitors", []) or []}
    comp_a, comp_b = by_name.get(team_a), by_name.get(team_b)
    if comp_a is None or comp_b is None:
        log.warning(f"Cannot match teams in summary: {team_a} vs {team_b}")
        return None

    score_a = _safe_int(comp_a.get("score"), 0)
    score_b = _safe_int(comp_b.get("score"), 0)
    if comp_a.get("winner"):
        winner = "teamA"
    elif comp_b.get("winner"):
        winner = "teamB"
    else:
        winner = "teamA" if score_a > score_b else "teamB"
    return winner, score_a, score_b
