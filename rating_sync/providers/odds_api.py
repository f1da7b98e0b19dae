"""
The Odds API (v4) adapter.

Pulls spreads, totals and moneylines for a sport, averages them across
bookmakers into one consensus quote per event, and matches events to
schedule games by team name and kickoff time.

All lines are from the HOME team perspective.
"""

import re
from datetime import datetime, timedelta
from statistics import mean
from typing import Any, Optional

import requests
import structlog

from ..config import SportConfig
from ..models import Game, MarketQuote
from ..predictor import round_to
from ..retry import RetryConfig
from .base import HttpProvider, OddsProvider, ProviderError

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.the-odds-api.com/v4"
MATCH_WINDOW = timedelta(hours=12)

PLACEHOLDER_KEYS = ("change_me", "sample", "your_", "<your")


class OddsApiError(ProviderError):
    pass


# Feeds disagree on city prefixes for a few teams
NAME_ALIASES = {
    "la ": "los angeles ",
    "ny ": "new york ",
}


def normalize_team_name(name: str) -> str:
    """Lowercase, strip punctuation, expand city aliases and collapse whitespace."""
    name = name.lower().replace("&", "and")
    name = re.sub(r"[^a-z0-9 ]", " ", name)
    name = " ".join(name.split())
    for alias, full in NAME_ALIASES.items():
        if name.startswith(alias):
            name = full + name[len(alias):]
    return name


def names_match(feed_name: str, schedule_name: str) -> bool:
    """
    True when two feeds name the same team.

    "Duke" ~ "Duke Blue Devils", "LA Clippers" ~ "Los Angeles Clippers".
    A shared nickname alone is not enough ("Kentucky Wildcats" vs
    "Arizona Wildcats").
    """
    a = normalize_team_name(feed_name)
    b = normalize_team_name(schedule_name)
    if not a or not b:
        return False
    if a == b or a.startswith(b + " ") or b.startswith(a + " "):
        return True

    a_words, b_words = a.split(), b.split()
    if len(a_words) < 2 or len(b_words) < 2 or a_words[-1] != b_words[-1]:
        return False
    a_city, b_city = " ".join(a_words[:-1]), " ".join(b_words[:-1])
    return a_city.startswith(b_city) or b_city.startswith(a_city)


def consensus_quote(event: dict[str, Any]) -> Optional[MarketQuote]:
    """Average each market across bookmakers; spreads and totals to the nearest 0.5."""
    home, away = event.get("home_team"), event.get("away_team")
    spreads: list[float] = []
    totals: list[float] = []
    home_mls: list[float] = []
    away_mls: list[float] = []
    books = 0

    for bookmaker in event.get("bookmakers", []):
        markets = {m.get("key"): m.get("outcomes", []) for m in bookmaker.get("markets", [])}
        if not markets:
            continue
        books += 1
        for outcome in markets.get("spreads", []):
            if outcome.get("name") == home and outcome.get("point") is not None:
                spreads.append(float(outcome["point"]))
        for outcome in markets.get("totals", []):
            if outcome.get("name") == "Over" and outcome.get("point") is not None:
                totals.append(float(outcome["point"]))
        for outcome in markets.get("h2h", []):
            if outcome.get("price") is None:
                continue
            if outcome.get("name") == home:
                home_mls.append(float(outcome["price"]))
            elif outcome.get("name") == away:
                away_mls.append(float(outcome["price"]))

    if not spreads and not totals:
        return None

    return MarketQuote(
        spread=round_to(mean(spreads), 0.5) if spreads else None,
        total=round_to(mean(totals), 0.5) if totals else None,
        home_moneyline=round(mean(home_mls)) if home_mls else None,
        away_moneyline=round(mean(away_mls)) if away_mls else None,
        books=books,
    )


class OddsApiClient(HttpProvider, OddsProvider):
    """Configurable client for The Odds API (v4)."""

    def __init__(
        self,
        api_key: str,
        config: SportConfig,
        base_url: str = DEFAULT_BASE_URL,
        regions: str = "us",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        super().__init__(session=session, timeout=timeout, retry_config=retry_config)
        key_lower = (api_key or "").strip().lower()
        if not key_lower or any(key_lower.startswith(p) or p in key_lower for p in PLACEHOLDER_KEYS):
            raise OddsApiError(
                "ODDS_API_KEY is missing or a placeholder value. "
                "Get an API key from https://the-odds-api.com/"
            )
        self.api_key = api_key.strip()
        self.config = config
        self.base_url = base_url.rstrip("/")
        self.regions = regions

    def get_odds(self) -> list[dict[str, Any]]:
        """Raw odds for every upcoming event of the sport."""
        path = f"/sports/{self.config.odds_sport_key}/odds"
        params = {
            "apiKey": self.api_key,
            "regions": self.regions,
            "markets": "spreads,totals,h2h",
            "oddsFormat": "american",
        }
        data = self.get_json(f"{self.base_url}{path}", params)
        if not isinstance(data, list):
            raise OddsApiError(f"Unexpected odds payload type: {type(data).__name__}")
        return data

    def fetch_quotes(self, games: list[Game]) -> dict[str, MarketQuote]:
        """Consensus quotes for the given games, keyed by game id."""
        if not games:
            return {}
        events = self.get_odds()

        quotes: dict[str, MarketQuote] = {}
        for game in games:
            event = self.match_event(game, events)
            if event is None:
                continue
            quote = consensus_quote(event)
            if quote is not None:
                quotes[game.game_id] = quote

        logger.info("odds_quotes_matched", games=len(games), events=len(events), matched=len(quotes))
        return quotes

    @staticmethod
    def match_event(game: Game, events: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
        """Find the event for a game: both team names match and kickoff within 12h."""
        for event in events:
            if not names_match(event.get("home_team", ""), game.home_name):
                continue
            if not names_match(event.get("away_team", ""), game.away_name):
                continue
            commence = event.get("commence_time")
            if commence:
                try:
                    start = datetime.fromisoformat(commence.replace("Z", "+00:00"))
                except ValueError:
                    continue
                if abs(start - game.kickoff) > MATCH_WINDOW:
                    continue
            return event
        return None
