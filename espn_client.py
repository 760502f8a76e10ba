"""
PolyNBA Pipeline — HTTP Client
Thin fetch layer with retry/backoff and an optional caller-supplied cache,
plus the scoreboard scan that maps two team names to an ESPN event id.
"""

import time
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import requests

from espn_config import (
    DEFAULT_HEADERS,
    REQUEST_TIMEOUT,
    MAX_RETRIES,
    RETRY_INITIAL_DELAY,
    RETRY_BACKOFF,
    ESPN_SCOREBOARD_URL,
    ESPN_SUMMARY_URL,
    ESPN_TEAM_STATS_URL,
    POLYMARKET_EVENTS_URL,
    POLYMARKET_NBA_TAG_ID,
    POLYMARKET_EVENT_LIMIT,
    TZ,
)
from espn_parsers import find_event_id
from fetch_cache import FetchCache
from nba_teams import get_espn_team_id

log = logging.getLogger(__name__)


def fetch_with_retry(
    url: str,
    timeout: int = REQUEST_TIMEOUT,
    cache: Optional[FetchCache] = None,
    ttl: Optional[float] = None,
) -> Any:
    """
    GET a URL with exponential backoff retry.
    When *cache* is given it is consulted first and filled on success.
    Raises RuntimeError if all attempts fail.
    """
    if cache is not None:
        cached = cache.get(url)
        if cached is not None:
            log.debug(f"Cache hit: {url}")
            return cached

    delay = RETRY_INITIAL_DELAY
    last_exc: Exception = RuntimeError("No attempts made")

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            resp = requests.get(url, headers=DEFAULT_HEADERS, timeout=timeout)
            resp.raise_for_status()
            payload = resp.json()
            if cache is not None:
                cache.set(url, payload, ttl)
            return payload
        except (requests.RequestException, ValueError) as exc:
            last_exc = exc
            if attempt < MAX_RETRIES:
                log.warning(f"Attempt {attempt}/{MAX_RETRIES} failed for {url}: {exc} — retrying in {delay}s")
                time.sleep(delay)
                delay *= RETRY_BACKOFF
            else:
                log.error(f"All {MAX_RETRIES} attempts failed for {url}: {exc}")

    raise RuntimeError(f"fetch_with_retry failed after {MAX_RETRIES} attempts: {last_exc}") from last_exc


def fetch_scoreboard(date_yyyymmdd: str, cache: Optional[FetchCache] = None) -> Dict[str, Any]:
    """Fetch the ESPN NBA scoreboard for a single date (YYYYMMDD)."""
    url = ESPN_SCOREBOARD_URL.format(date=date_yyyymmdd)
    log.debug(f"Fetching scoreboard: {date_yyyymmdd}")
    return fetch_with_retry(url, cache=cache)


def fetch_summary(event_id: str, cache: Optional[FetchCache] = None) -> Dict[str, Any]:
    """Fetch the ESPN game summary (injuries, header, season series) for one event."""
    url = ESPN_SUMMARY_URL.format(event_id=event_id)
    log.debug(f"Fetching summary: {event_id}")
    return fetch_with_retry(url, cache=cache)


def fetch_team_statistics(team_id: str, cache: Optional[FetchCache] = None) -> Dict[str, Any]:
    """Fetch season team statistics for one ESPN team id."""
    url = ESPN_TEAM_STATS_URL.format(team_id=team_id)
    log.debug(f"Fetching team statistics: {team_id}")
    return fetch_with_retry(url, cache=cache)


def fetch_polymarket_events(
    limit: int = POLYMARKET_EVENT_LIMIT,
    cache: Optional[FetchCache] = None,
) -> List[Dict[str, Any]]:
    """Fetch open NBA events from the Polymarket Gamma API."""
    url = POLYMARKET_EVENTS_URL.format(tag_id=POLYMARKET_NBA_TAG_ID, limit=limit)
    log.debug(f"Fetching Polymarket events (limit={limit})")
    payload = fetch_with_retry(url, cache=cache)
    return payload if isinstance(payload, list) else []


def find_espn_event(
    team_a: str,
    team_b: str,
    game_date: Optional[str] = None,
    cache: Optional[FetchCache] = None,
) -> Optional[str]:
    """
    ESPN event id for the game between two teams, scanning the game date and
    one day either side (Polymarket dates are UTC, ESPN's are US local).
    """
    a_id, b_id = get_espn_team_id(team_a), get_espn_team_id(team_b)
    if a_id is None or b_id is None:
        log.warning(f"No ESPN id for {team_a!r} or {team_b!r}")
        return None

    base = date.fromisoformat(game_date[:10]) if game_date else datetime.now(TZ).date()
    for offset in (0, -1, 1):
        day = (base + timedelta(days=offset)).strftime("%Y%m%d")
        try:
            scoreboard = fetch_scoreboard(day, cache=cache)
        except RuntimeError as exc:
            log.warning(f"Scoreboard {day} unavailable: {exc}")
            continue
        event_id = find_event_id(scoreboard.get("events", []) or [], a_id, b_id)
        if event_id:
            log.debug(f"Found ESPN event {event_id} on {day} for {team_a} vs {team_b}")
            return event_id
    return None
