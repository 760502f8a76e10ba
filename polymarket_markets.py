"""
PolyNBA Pipeline — Polymarket Markets
Turns Gamma API events into MarketSnapshot rows the runner can predict on.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from espn_client import fetch_polymarket_events
from fetch_cache import FetchCache
from nba_teams import parse_teams_from_title, polymarket_to_espn_name

log = logging.getLogger(__name__)

DEFAULT_PRICES = (0.5, 0.5)


@dataclass(frozen=True)
class MarketSnapshot:
    market_id:   str
    event_slug:  str
    market_slug: str
    question:    str
    start_time:  str            # UTC ISO-8601
    volume:      float
    liquidity:   Optional[float]
    yes_price:   float          # team A wins
    no_price:    float
    team_a:      str            # ESPN display names
    team_b:      str

    @property
    def implied_probability(self) -> float:
        total = self.yes_price + self.no_price
        return self.yes_price / total if total > 0 else 0.5

    def to_flat_dict(self) -> Dict[str, Any]:
        return {
            "market_id":   self.market_id,
            "event_slug":  self.event_slug,
            "market_slug": self.market_slug,
            "question":    self.question,
            "start_time":  self.start_time,
            "volume":      self.volume,
            "liquidity":   self.liquidity,
            "yes_price":   self.yes_price,
            "no_price":    self.no_price,
            "team_a":      self.team_a,
            "team_b":      self.team_b,
        }


def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_outcome_prices(raw: Any) -> Tuple[float, float]:
    """
    ``outcomePrices`` arrives either as a JSON-encoded string ('["0.62","0.38"]')
    or as a list. Missing or unparseable sides fall back to 0.5.
    """
    prices: List[Any] = []
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            log.warning(f"Unparseable outcomePrices: {raw!r}")
            return DEFAULT_PRICES
        prices = parsed if isinstance(parsed, list) else []
    elif isinstance(raw, (list, tuple)):
        prices = list(raw)

    yes = _to_float(prices[0]) if len(prices) > 0 else None
    no = _to_float(prices[1]) if len(prices) > 1 else None
    return (
        yes if yes is not None else DEFAULT_PRICES[0],
        no if no is not None else DEFAULT_PRICES[1],
    )


def is_game_event(event: Dict[str, Any]) -> bool:
    """Single-game events carry "A vs. B" titles; futures do not."""
    title = event.get("title") or ""
    return " vs " in title or " vs. " in title


def market_from_event(market: Dict[str, Any], event: Dict[str, Any]) -> Optional[MarketSnapshot]:
    """Build a snapshot from one market of a game event; None if teams can't be read."""
    market_type = market.get("sportsMarketType")
    if market_type and market_type != "moneyline":
        return None
    teams = parse_teams_from_title(event.get("title") or "")
    if teams is None:
        return None
    team_a, team_b = (polymarket_to_espn_name(t) for t in teams)

    yes, no = parse_outcome_prices(market.get("outcomePrices"))
    volume = _to_float(market.get("volumeNum"), None)
    if volume is None:
        volume = _to_float(market.get("volume"), 0.0)
    liquidity = _to_float(market.get("liquidityNum"), None)
    if liquidity is None:
        liquidity = _to_float(market.get("liquidity"), None)

    start = (
        market.get("gameStartTime")
        or event.get("startTime")
        or datetime.now(timezone.utc).isoformat()
    )

    return MarketSnapshot(
        market_id=str(market.get("id", "")),
        event_slug=event.get("slug") or "",
        market_slug=market.get("slug") or "",
        question=market.get("question") or "",
        start_time=str(start),
        volume=volume,
        liquidity=liquidity,
        yes_price=yes,
        no_price=no,
        team_a=team_a,
        team_b=team_b,
    )


def markets_from_events(events: List[Dict[str, Any]]) -> List[MarketSnapshot]:
    snapshots = []
    for event in events:
        if not is_game_event(event):
            continue
        for market in event.get("markets") or []:
            snap = market_from_event(market, event)
            if snap is not None:
                snapshots.append(snap)
    return snapshots


def get_top_markets(
    limit: int = 10,
    cache: Optional[FetchCache] = None,
    events: Optional[List[Dict[str, Any]]] = None,
) -> List[MarketSnapshot]:
    """
    Game markets from open NBA events, highest volume first.
    A failed fetch yields an empty list rather than an exception.
    """
    if events is None:
        try:
            events = fetch_polymarket_events(cache=cache)
        except RuntimeError as exc:
            log.error(f"Polymarket fetch failed: {exc}")
            return []

    snapshots = markets_from_events(events)
    log.info(f"Polymarket: {len(events)} events → {len(snapshots)} game markets")
    snapshots.sort(key=lambda s: s.volume, reverse=True)
    return snapshots[:limit]


def markets_to_frame(snapshots: List[MarketSnapshot]) -> pd.DataFrame:
    return pd.DataFrame([s.to_flat_dict() for s in snapshots])
