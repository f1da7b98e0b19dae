"""
Provider interfaces and the shared HTTP plumbing behind them.

Raw provider payloads are parsed into internal types (Game, Team,
MarketQuote, WeatherReport, InjuryReport) inside each adapter; nothing
downstream sees the raw JSON shape.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Optional

import requests
import structlog

from ..models import Game, InjuryReport, MarketQuote, Team, WeatherReport
from ..retry import RetryConfig, retry_sync

logger = structlog.get_logger(__name__)


class ProviderError(Exception):
    """A provider call failed and should not be retried."""


class TransientProviderError(ProviderError):
    """A provider call failed in a way worth retrying (timeout, 429, 5xx)."""


class ScheduleProvider(ABC):
    @abstractmethod
    def fetch_games(self, start: date, end: date) -> list[Game]:
        """Games scheduled between start and end (inclusive)."""

    @abstractmethod
    def fetch_season_games(self, season: int) -> list[Game]:
        """Every game of a season played or scheduled so far."""


class TeamStatsProvider(ABC):
    @abstractmethod
    def fetch_teams(self) -> list[Team]:
        """Roster with per-game scoring averages. Ratings are not set by providers."""


class OddsProvider(ABC):
    @abstractmethod
    def fetch_quotes(self, games: list[Game]) -> dict[str, MarketQuote]:
        """Consensus quotes keyed by game id. Games without a quote are omitted."""

    def fetch_closing_line(self, game: Game) -> Optional[MarketQuote]:
        """Historical closing line for a completed game, if the provider has one."""
        return None


class WeatherProvider(ABC):
    @abstractmethod
    def fetch_weather(self, venue: Optional[str], kickoff: datetime) -> Optional[WeatherReport]:
        """Weather at a venue around kickoff (None for unknown venues)."""


class InjuryProvider(ABC):
    @abstractmethod
    def fetch_report(self) -> InjuryReport:
        """Current injury report."""


class HttpProvider:
    """
    Base for HTTP adapters: one requests.Session, a per-call timeout and
    bounded retries on transient failures.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig(retryable_exceptions=(TransientProviderError,))

    def _get_once(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientProviderError(f"Request to {url} failed: {e}") from e
        except requests.RequestException as e:
            raise ProviderError(f"Request to {url} failed: {e}") from e

        status = resp.status_code
        if status == 429 or 500 <= status < 600:
            raise TransientProviderError(f"{url} returned {status}")
        if not 200 <= status < 300:
            raise ProviderError(f"{url} returned {status}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{url} returned invalid JSON: {e}") from e

    def get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET a JSON document, retrying transient failures."""
        return retry_sync(self._get_once, url, params, config=self.retry_config)
