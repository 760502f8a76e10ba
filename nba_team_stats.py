"""
NBA team data model and derived statistics.

Holds the plain records the prediction engine consumes (recent form, head to
head, advanced stats, injuries) and the pure functions that derive them from
lists of finished games. No I/O here; espn_parsers builds the raw records and
nba_prediction_runner wires fetches to these functions.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from nba_config import DEFAULT_REST_DAYS, FORM_WINDOW

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# GAMES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GameResult:
    """One finished game. ``date`` is the ESPN (US) calendar date, YYYY-MM-DD."""
    date:        str
    home:        str
    away:        str
    home_score:  int
    away_score:  int
    winner:      str
    venue:       Optional[str] = None
    attendance:  Optional[int] = None

    def involves(self, team: str) -> bool:
        return team in (self.home, self.away)

    def score_for(self, team: str) -> int:
        return self.home_score if team == self.home else self.away_score


@dataclass(frozen=True)
class TeamRecentStats:
    team_name:    str
    recent_games: Tuple[GameResult, ...] = ()   # newest first
    wins:         int = 0
    losses:       int = 0
    win_rate:     float = 0.0
    avg_score:    float = 0.0
    recent_form:  str = ""                      # e.g. "WWLWW", newest first

    @property
    def games_played(self) -> int:
        return self.wins + self.losses


@dataclass(frozen=True)
class H2HSplit:
    team_a_wins: int = 0
    team_b_wins: int = 0


@dataclass(frozen=True)
class H2HStats:
    """
    Head-to-head summary, always from team A's perspective.

    ``home_games`` and ``away_games`` split the meetings by where team A
    played: ``home_games`` counts both teams' wins in games A hosted,
    ``away_games`` those in games B hosted.
    """
    total_games:     int = 0
    team_a_wins:     int = 0
    team_b_wins:     int = 0
    team_a_win_rate: float = 0.0
    home_games:      H2HSplit = field(default_factory=H2HSplit)   # A at home
    away_games:      H2HSplit = field(default_factory=H2HSplit)   # A away
    avg_score_diff:  float = 0.0
    team_a_avg_score: float = 0.0
    team_b_avg_score: float = 0.0
    last5_games:     Tuple[GameResult, ...] = ()
    recent_form_a:   str = ""
    recent_form_b:   str = ""

    def swapped(self) -> "H2HStats":
        """The same history seen from team B's side."""
        return H2HStats(
            total_games=self.total_games,
            team_a_wins=self.team_b_wins,
            team_b_wins=self.team_a_wins,
            team_a_win_rate=(self.team_b_wins / self.total_games) if self.total_games else 0.0,
            home_games=H2HSplit(self.away_games.team_b_wins, self.away_games.team_a_wins),
            away_games=H2HSplit(self.home_games.team_b_wins, self.home_games.team_a_wins),
            avg_score_diff=-self.avg_score_diff,
            team_a_avg_score=self.team_b_avg_score,
            team_b_avg_score=self.team_a_avg_score,
            last5_games=self.last5_games,
            recent_form_a=self.recent_form_b,
            recent_form_b=self.recent_form_a,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ADVANCED STATS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AdvancedTeamStats:
    """Season statistics as reported by ESPN. Missing values stay None."""
    team_id:                 str = ""
    team_name:               str = ""
    games_played:            int = 0
    field_goal_pct:          Optional[float] = None
    three_point_pct:         Optional[float] = None
    free_throw_pct:          Optional[float] = None
    effective_fg_pct:        Optional[float] = None
    avg_points:              Optional[float] = None
    avg_assists:             Optional[float] = None
    avg_turnovers:           Optional[float] = None
    avg_steals:              Optional[float] = None
    avg_blocks:              Optional[float] = None
    avg_rebounds:            Optional[float] = None
    avg_defensive_rebounds:  Optional[float] = None
    rebound_rate:            Optional[float] = None
    rebound_rate_rank:       Optional[str] = None
    assist_turnover_ratio:   Optional[float] = None
    assist_turnover_ratio_rank: Optional[str] = None
    plus_minus:              Optional[float] = None
    nba_rating:              Optional[float] = None   # net rating
    nba_rating_rank:         Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# INJURIES
# ═══════════════════════════════════════════════════════════════════════════════

class InjuryStatus(str, Enum):
    OUT          = "OUT"
    DOUBTFUL     = "DOUBTFUL"
    QUESTIONABLE = "QUESTIONABLE"
    DAY_TO_DAY   = "DAY_TO_DAY"
    UNKNOWN      = "UNKNOWN"


# First match wins. "out" goes last so "Doubtful (out Tuesday)" stays DOUBTFUL.
_STATUS_KEYWORDS = [
    ("doubtful",     InjuryStatus.DOUBTFUL),
    ("questionable", InjuryStatus.QUESTIONABLE),
    ("day-to-day",   InjuryStatus.DAY_TO_DAY),
    ("day to day",   InjuryStatus.DAY_TO_DAY),
    ("daytoday",     InjuryStatus.DAY_TO_DAY),
    ("out",          InjuryStatus.OUT),
    ("suspen",       InjuryStatus.OUT),
]


def status_from_text(text: Optional[str]) -> InjuryStatus:
    """Substring match of free-text status onto InjuryStatus (lossy)."""
    if not text:
        return InjuryStatus.UNKNOWN
    lowered = str(text).strip().lower().replace("_", "-")
    for keyword, status in _STATUS_KEYWORDS:
        if keyword in lowered:
            return status
    return InjuryStatus.UNKNOWN


@dataclass(frozen=True)
class PlayerInjury:
    athlete_name: str
    status:       InjuryStatus = InjuryStatus.UNKNOWN
    athlete_id:   str = ""
    position:     Optional[str] = None
    status_text:  str = ""
    details:      Optional[str] = None
    date:         Optional[str] = None


@dataclass(frozen=True)
class TeamInjuries:
    team_name: str
    injuries:  Tuple[PlayerInjury, ...] = ()

    def count(self, status: InjuryStatus) -> int:
        return sum(1 for i in self.injuries if i.status == status)


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED STATS
# ═══════════════════════════════════════════════════════════════════════════════

def _parse_date(value: Union[str, date, datetime]) -> date:
    """Date-only view of a YYYY-MM-DD string, ISO timestamp, date or datetime."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def sort_newest_first(games: Iterable[GameResult]) -> List[GameResult]:
    return sorted(games, key=lambda g: g.date, reverse=True)


def calculate_team_stats(team_name: str, games: Iterable[GameResult]) -> TeamRecentStats:
    """
    Win/loss record, average score and last-5 form for *team_name*.
    Games are re-sorted newest first; games not involving the team are ignored.
    """
    own = sort_newest_first(g for g in games if g.involves(team_name))
    wins = sum(1 for g in own if g.winner == team_name)
    losses = len(own) - wins
    total_score = sum(g.score_for(team_name) for g in own)
    form = "".join("W" if g.winner == team_name else "L" for g in own[:FORM_WINDOW])

    return TeamRecentStats(
        team_name=team_name,
        recent_games=tuple(own),
        wins=wins,
        losses=losses,
        win_rate=wins / len(own) if own else 0.0,
        avg_score=total_score / len(own) if own else 0.0,
        recent_form=form,
    )


def calculate_h2h_stats(games: Iterable[GameResult], team_a: str, team_b: str) -> H2HStats:
    """
    Head-to-head summary between *team_a* and *team_b*.

    Only mutual matchups are counted. ``last5_games`` and the form strings
    cover the five most recent meetings, newest first like
    ``TeamRecentStats.recent_form``.
    """
    mutual = sorted(
        (g for g in games if g.involves(team_a) and g.involves(team_b)),
        key=lambda g: g.date,
    )
    total = len(mutual)
    a_wins = b_wins = 0
    home_a = home_b = away_a = away_b = 0
    score_a = score_b = 0

    for g in mutual:
        a_home = g.home == team_a
        score_a += g.score_for(team_a)
        score_b += g.score_for(team_b)
        if g.winner == team_a:
            a_wins += 1
            if a_home:
                home_a += 1
            else:
                away_a += 1
        else:
            b_wins += 1
            if a_home:
                home_b += 1
            else:
                away_b += 1

    last5 = mutual[::-1][:FORM_WINDOW]
    return H2HStats(
        total_games=total,
        team_a_wins=a_wins,
        team_b_wins=b_wins,
        team_a_win_rate=a_wins / total if total else 0.0,
        home_games=H2HSplit(home_a, home_b),
        away_games=H2HSplit(away_a, away_b),
        avg_score_diff=(score_a - score_b) / total if total else 0.0,
        team_a_avg_score=score_a / total if total else 0.0,
        team_b_avg_score=score_b / total if total else 0.0,
        last5_games=tuple(last5),
        recent_form_a="".join("W" if g.winner == team_a else "L" for g in last5),
        recent_form_b="".join("W" if g.winner == team_b else "L" for g in last5),
    )


def merge_recent_games(*game_lists: Iterable[GameResult]) -> List[GameResult]:
    """
    Union of several game lists, de-duplicated on (date, home) and without
    unplayed 0-0 rows. Returned newest first.
    """
    seen: Dict[Tuple[str, str], GameResult] = {}
    for games in game_lists:
        for g in games:
            if g.home_score + g.away_score <= 0:
                continue
            seen.setdefault((g.date, g.home), g)
    return sort_newest_first(seen.values())


def compute_rest_days(
    team_name: str,
    games: Iterable[GameResult],
    game_date: Union[str, date, datetime],
    default: int = DEFAULT_REST_DAYS,
) -> int:
    """
    Days since *team_name*'s most recent game strictly before *game_date*.

    Comparison is by calendar date only. The result is floored at 1 (a team
    cannot have zero rest). *default* is returned when no prior game exists.
    """
    target = _parse_date(game_date)
    prior = [
        _parse_date(g.date) for g in games
        if g.involves(team_name) and _parse_date(g.date) < target
    ]
    if not prior:
        log.debug(f"No prior game for {team_name} before {target} — using default rest {default}")
        return default
    return max(1, (target - max(prior)).days)


def collect_team_games(team_name: str, games: Iterable[GameResult]) -> List[GameResult]:
    """Games involving *team_name*, newest first."""
    return sort_newest_first(g for g in games if g.involves(team_name))
