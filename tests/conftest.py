"""
Pytest configuration and fixtures for rating sync tests.
"""

import sys
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

# Add the repo root to Python path
REPO_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(REPO_ROOT))

from rating_sync.config import CBB, NBA, NFL, NHL
from rating_sync.models import (
    Game,
    GameStatus,
    InjuryReport,
    MarketQuote,
    Team,
    WeatherReport,
    season_week_period,
)
from rating_sync.persistence import ArtifactPublisher, InMemoryDocumentStore
from rating_sync.providers.base import (
    InjuryProvider,
    OddsProvider,
    ProviderError,
    ScheduleProvider,
    TeamStatsProvider,
    WeatherProvider,
)


class FixedClock:
    """Settable clock; call it to read the time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeSchedule(ScheduleProvider):
    def __init__(self, games: list[Game]):
        self.games = list(games)
        self.season_calls: list[int] = []
        self.window_calls: list[tuple[date, date]] = []
        self.error: Optional[Exception] = None

    def fetch_games(self, start: date, end: date) -> list[Game]:
        self.window_calls.append((start, end))
        if self.error:
            raise self.error
        return [g for g in self.games if start <= g.kickoff.date() <= end]

    def fetch_season_games(self, season: int) -> list[Game]:
        self.season_calls.append(season)
        if self.error:
            raise self.error
        return [g for g in self.games if g.season == season]


class FakeTeamStats(TeamStatsProvider):
    def __init__(self, teams: list[Team]):
        self.teams = list(teams)
        self.error: Optional[Exception] = None

    def fetch_teams(self) -> list[Team]:
        if self.error:
            raise self.error
        # Feeds carry no ratings
        return [t.with_rating(0.0) for t in self.teams]


class FakeOdds(OddsProvider):
    def __init__(self, quotes: Optional[dict[str, MarketQuote]] = None,
                 closing: Optional[dict[str, MarketQuote]] = None):
        self.quotes = dict(quotes or {})
        self.closing = dict(closing or {})
        self.calls: list[list[str]] = []
        self.closing_calls: list[str] = []
        self.error: Optional[Exception] = None

    def fetch_quotes(self, games: list[Game]) -> dict[str, MarketQuote]:
        self.calls.append([g.game_id for g in games])
        if self.error:
            raise self.error
        return {g.game_id: self.quotes[g.game_id] for g in games if g.game_id in self.quotes}

    def fetch_closing_line(self, game: Game) -> Optional[MarketQuote]:
        self.closing_calls.append(game.game_id)
        return self.closing.get(game.game_id)


class FakeWeather(WeatherProvider):
    def __init__(self, report: Optional[WeatherReport] = None):
        self.report = report
        self.calls: list[Optional[str]] = []
        self.error: Optional[Exception] = None

    def fetch_weather(self, venue, kickoff):
        self.calls.append(venue)
        if self.error:
            raise self.error
        return self.report


class FakeInjuries(InjuryProvider):
    def __init__(self, report: Optional[InjuryReport] = None):
        self.report = report or InjuryReport()
        self.calls = 0

    def fetch_report(self) -> InjuryReport:
        self.calls += 1
        return self.report


class RecordingPublisher(ArtifactPublisher):
    def __init__(self):
        self.published: dict[str, dict] = {}
        self.error: Optional[Exception] = None

    def publish(self, sport, artifact):
        if self.error:
            raise self.error
        self.published[sport] = artifact
        return f"memory://{sport}-prediction-data.json"


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def nfl_config():
    return NFL


@pytest.fixture
def nba_config():
    return NBA


@pytest.fixture
def nhl_config():
    return NHL


@pytest.fixture
def cbb_config():
    return CBB


@pytest.fixture
def now() -> datetime:
    """Wednesday of NFL week 7, 2025."""
    return datetime(2025, 10, 15, 18, 0, tzinfo=UTC)


@pytest.fixture
def clock(now) -> FixedClock:
    return FixedClock(now)


@pytest.fixture
def teams() -> dict[str, Team]:
    """Four NFL teams at the initial rating."""
    roster = [
        Team("1", "Kansas City Chiefs", "KC", 1500.0, 27.0, 19.0, 6, "AFC West"),
        Team("2", "Buffalo Bills", "BUF", 1500.0, 26.0, 20.0, 6, "AFC East"),
        Team("3", "Washington Commanders", "WSH", 1500.0, 24.0, 23.0, 6, "NFC East"),
        Team("4", "Green Bay Packers", "GB", 1500.0, 23.0, 21.0, 6, "NFC North"),
    ]
    return {t.team_id: t for t in roster}


@pytest.fixture
def make_game():
    """Factory for NFL games of the 2025 season."""

    def _make(
        game_id: str,
        home: str,
        away: str,
        kickoff: datetime,
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
        week: int = 1,
        status: Optional[GameStatus] = None,
        venue: Optional[str] = "Lambeau Field",
    ) -> Game:
        if status is None:
            status = GameStatus.FINAL if home_score is not None else GameStatus.SCHEDULED
        return Game(
            game_id=game_id,
            home_team_id=home,
            away_team_id=away,
            kickoff=kickoff,
            season=2025,
            period=season_week_period(2025, week),
            status=status,
            home_score=home_score,
            away_score=away_score,
            venue=venue,
        )

    return _make


@pytest.fixture
def season_games(make_game) -> list[Game]:
    """Two completed weeks and one upcoming week."""
    return [
        make_game("g1", "1", "2", datetime(2025, 10, 5, 17, 0, tzinfo=UTC), 27, 20, week=5),
        make_game("g2", "3", "4", datetime(2025, 10, 5, 20, 25, tzinfo=UTC), 17, 24, week=5),
        make_game("g3", "2", "3", datetime(2025, 10, 12, 17, 0, tzinfo=UTC), 30, 13, week=6),
        make_game("g4", "4", "1", datetime(2025, 10, 12, 20, 25, tzinfo=UTC), 21, 21, week=6),
        make_game("g5", "1", "3", datetime(2025, 10, 19, 17, 0, tzinfo=UTC), week=7),
        make_game("g6", "4", "2", datetime(2025, 10, 19, 20, 25, tzinfo=UTC), week=7),
    ]


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def schedule(season_games) -> FakeSchedule:
    return FakeSchedule(season_games)


@pytest.fixture
def team_stats(teams) -> FakeTeamStats:
    return FakeTeamStats(list(teams.values()))


@pytest.fixture
def odds() -> FakeOdds:
    return FakeOdds(
        quotes={
            "g5": MarketQuote(spread=-3.0, total=47.5, home_moneyline=-160, away_moneyline=135),
            "g6": MarketQuote(spread=1.5, total=44.0),
        },
        closing={
            "g1": MarketQuote(spread=-2.5, total=48.5),
            "g3": MarketQuote(spread=-6.0, total=44.5),
        },
    )


@pytest.fixture
def provider_error() -> ProviderError:
    return ProviderError("provider unavailable")


class FakeResponse:
    def __init__(self, payload=None, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code
        self.text = "" if payload is None else str(payload)

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Stands in for requests.Session; answers GETs from a queue or a router."""

    def __init__(self, responses=None, router=None):
        self.responses = list(responses or [])
        self.router = router
        self.headers: dict[str, str] = {}
        self.requests: list[tuple[str, Optional[dict]]] = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        if self.router is not None:
            return self.router(url, params)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
