"""
tests/test_nba_teams.py — Tests for nba_teams.py

Validates:
  - Name resolution across display names, short names, abbreviations, aliases
  - Polymarket title parsing ("vs.", "@", "Will ... beat ...")
  - Event slug construction
"""

import pytest

from nba_teams import (
    NBA_TEAMS,
    event_slug,
    get_abbreviation,
    get_espn_team_id,
    get_team_by_id,
    parse_teams_from_title,
    polymarket_to_espn_name,
    resolve_team_name,
    team_logo_url,
)


class TestResolution:

    def test_thirty_unique_teams(self):
        assert len(NBA_TEAMS) == 30
        assert len({t.espn_id for t in NBA_TEAMS}) == 30

    @pytest.mark.parametrize("raw,expected", [
        ("Boston Celtics", "Boston Celtics"),
        ("celtics", "Boston Celtics"),
        ("BOS", "Boston Celtics"),
        ("Sixers", "Philadelphia 76ers"),
        ("Los Angeles Clippers", "LA Clippers"),
        ("  Heat ", "Miami Heat"),
        ("Boston Celtics (BOS)", "Boston Celtics"),
    ])
    def test_resolve(self, raw, expected):
        assert resolve_team_name(raw) == expected

    def test_unknown_name_passes_through(self):
        assert resolve_team_name(" Seattle SuperSonics ") == "Seattle SuperSonics"

    def test_ids_and_abbreviations(self):
        assert get_espn_team_id("Heat") == "14"
        assert get_abbreviation("Warriors") == "GSW"
        assert get_team_by_id(2).name == "Boston Celtics"
        assert get_espn_team_id("Nobody") is None

    def test_polymarket_short_name(self):
        assert polymarket_to_espn_name("Trail Blazers") == "Portland Trail Blazers"
        assert polymarket_to_espn_name("Unknown") == "Unknown"

    def test_logo_url(self):
        assert team_logo_url("Celtics").endswith("/bos.png")
        assert team_logo_url("Nobody").endswith("/nba.png")


class TestTitles:

    @pytest.mark.parametrize("title,expected", [
        ("Celtics vs. Heat", ("Boston Celtics", "Miami Heat")),
        ("Bulls vs Pistons", ("Chicago Bulls", "Detroit Pistons")),
        ("Lakers @ Warriors", ("Los Angeles Lakers", "Golden State Warriors")),
        ("Will the Knicks beat the Nets?", ("New York Knicks", "Brooklyn Nets")),
    ])
    def test_parse(self, title, expected):
        assert parse_teams_from_title(title) == expected

    @pytest.mark.parametrize("title", ["", "NBA Champion 2026", "Who wins MVP?"])
    def test_not_a_matchup(self, title):
        assert parse_teams_from_title(title) is None

    def test_event_slug(self):
        assert event_slug("Chicago Bulls", "Detroit Pistons", "2025-01-15") == "nba-chi-det-2025-01-15"
        assert event_slug("Nobody", "Detroit Pistons", "2025-01-15") is None
