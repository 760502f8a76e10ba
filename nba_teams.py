"""
NBA team reference data — ESPN ids, abbreviations and Polymarket names.

Polymarket titles use short names ("Bulls vs. Pistons") while ESPN uses full
display names ("Chicago Bulls"). Everything downstream keys on the ESPN
display name, so resolve_team_name() is the one place names get normalised.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from espn_config import ESPN_LOGO_URL

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NBATeam:
    name:            str    # ESPN displayName
    espn_id:         str
    abbreviation:    str    # ESPN abbreviation
    polymarket_code: str    # used in Polymarket event slugs
    short_name:      str    # Polymarket title name


NBA_TEAMS: List[NBATeam] = [
    NBATeam("Atlanta Hawks",          "1",  "ATL", "atl", "Hawks"),
    NBATeam("Boston Celtics",         "2",  "BOS", "bos", "Celtics"),
    NBATeam("Brooklyn Nets",          "17", "BKN", "bkn", "Nets"),
    NBATeam("Charlotte Hornets",      "30", "CHA", "cha", "Hornets"),
    NBATeam("Chicago Bulls",          "4",  "CHI", "chi", "Bulls"),
    NBATeam("Cleveland Cavaliers",    "5",  "CLE", "cle", "Cavaliers"),
    NBATeam("Dallas Mavericks",       "6",  "DAL", "dal", "Mavericks"),
    NBATeam("Denver Nuggets",         "7",  "DEN", "den", "Nuggets"),
    NBATeam("Detroit Pistons",        "8",  "DET", "det", "Pistons"),
    NBATeam("Golden State Warriors",  "9",  "GSW", "gs",  "Warriors"),
    NBATeam("Houston Rockets",        "10", "HOU", "hou", "Rockets"),
    NBATeam("Indiana Pacers",         "11", "IND", "ind", "Pacers"),
    NBATeam("LA Clippers",            "12", "LAC", "lac", "Clippers"),
    NBATeam("Los Angeles Lakers",     "13", "LAL", "lal", "Lakers"),
    NBATeam("Memphis Grizzlies",      "29", "MEM", "mem", "Grizzlies"),
    NBATeam("Miami Heat",             "14", "MIA", "mia", "Heat"),
    NBATeam("Milwaukee Bucks",        "15", "MIL", "mil", "Bucks"),
    NBATeam("Minnesota Timberwolves", "16", "MIN", "min", "Timberwolves"),
    NBATeam("New Orleans Pelicans",   "3",  "NOP", "no",  "Pelicans"),
    NBATeam("New York Knicks",        "18", "NYK", "nyk", "Knicks"),
    NBATeam("Oklahoma City Thunder",  "25", "OKC", "okc", "Thunder"),
    NBATeam("Orlando Magic",          "19", "ORL", "orl", "Magic"),
    NBATeam("Philadelphia 76ers",     "20", "PHI", "phi", "76ers"),
    NBATeam("Phoenix Suns",           "21", "PHX", "phx", "Suns"),
    NBATeam("Portland Trail Blazers", "22", "POR", "por", "Trail Blazers"),
    NBATeam("Sacramento Kings",       "23", "SAC", "sac", "Kings"),
    NBATeam("San Antonio Spurs",      "24", "SAS", "sa",  "Spurs"),
    NBATeam("Toronto Raptors",        "28", "TOR", "tor", "Raptors"),
    NBATeam("Utah Jazz",              "26", "UTA", "uta", "Jazz"),
    NBATeam("Washington Wizards",     "27", "WAS", "wsh", "Wizards"),
]

# Extra spellings seen in market titles and older ESPN payloads.
TEAM_ALIASES: Dict[str, str] = {
    "Los Angeles Clippers": "LA Clippers",
    "LA Lakers":            "Los Angeles Lakers",
    "Sixers":               "Philadelphia 76ers",
    "Blazers":              "Portland Trail Blazers",
    "Cavs":                 "Cleveland Cavaliers",
    "Mavs":                 "Dallas Mavericks",
    "Wolves":               "Minnesota Timberwolves",
    "OKC":                  "Oklahoma City Thunder",
}

_BY_NAME:  Dict[str, NBATeam] = {t.name.lower(): t for t in NBA_TEAMS}
_BY_SHORT: Dict[str, NBATeam] = {t.short_name.lower(): t for t in NBA_TEAMS}
_BY_ABBR:  Dict[str, NBATeam] = {t.abbreviation.lower(): t for t in NBA_TEAMS}
_BY_ID:    Dict[str, NBATeam] = {t.espn_id: t for t in NBA_TEAMS}


def get_team(name: str) -> Optional[NBATeam]:
    """Look up a team by any known spelling. Returns None if unresolved."""
    if not name:
        return None
    key = name.strip().lower()
    for table in (_BY_NAME, _BY_SHORT, _BY_ABBR):
        if key in table:
            return table[key]
    for alias, canonical in TEAM_ALIASES.items():
        if alias.lower() == key:
            return _BY_NAME[canonical.lower()]
    # "Boston Celtics (BOS)" and similar decorated names
    for team in NBA_TEAMS:
        if team.name.lower() in key:
            return team
    return None


def get_team_by_id(espn_id: str) -> Optional[NBATeam]:
    return _BY_ID.get(str(espn_id))


def resolve_team_name(name: str) -> str:
    """ESPN display name for *name*, or *name* unchanged when unknown."""
    team = get_team(name)
    if team is None:
        log.debug(f"Unrecognised team name: {name!r}")
        return name.strip() if name else name
    return team.name


def get_espn_team_id(name: str) -> Optional[str]:
    team = get_team(name)
    return team.espn_id if team else None


def get_abbreviation(name: str) -> Optional[str]:
    team = get_team(name)
    return team.abbreviation if team else None


def polymarket_to_espn_name(short_name: str) -> str:
    team = _BY_SHORT.get(short_name.strip().lower()) if short_name else None
    return team.name if team else short_name


def team_logo_url(name: str) -> str:
    team = get_team(name)
    abbr = team.abbreviation.lower() if team else "nba"
    return ESPN_LOGO_URL.format(abbr=abbr)


def event_slug(away: str, home: str, date_iso: str) -> Optional[str]:
    """Polymarket event slug, e.g. ``nba-chi-det-2025-01-15``."""
    a, h = get_team(away), get_team(home)
    if a is None or h is None:
        return None
    return f"nba-{a.polymarket_code}-{h.polymarket_code}-{date_iso}"


# ── Title parsing ─────────────────────────────────────────────────────────────

_VS_PATTERN   = re.compile(r"^\s*(.+?)\s+(?:vs\.?|v\.?|@)\s+(.+?)\s*(?:\||\?|$)", re.IGNORECASE)
_WILL_PATTERN = re.compile(r"Will\s+(?:the\s+)?(.+?)\s+(?:beat|defeat)\s+(?:the\s+)?(.+?)(?:\s+by\b|\?|$)", re.IGNORECASE)


def parse_teams_from_title(title: str) -> Optional[Tuple[str, str]]:
    """
    Split a market/event title into (team_a, team_b) ESPN names.

    Handles "Bulls vs. Pistons", "Bulls vs Pistons", "Bulls @ Pistons" and
    "Will the Bulls beat the Pistons?". Team A is always the first-named side.
    """
    if not title:
        return None
    m = _WILL_PATTERN.search(title)
    if m is None:
        m = _VS_PATTERN.search(title)
    if m is None:
        return None
    a, b = m.group(1).strip(), m.group(2).strip()
    if not a or not b:
        return None
    return resolve_team_name(a), resolve_team_name(b)
