"""
ESPN site API adapter: schedules, team scoring stats and historical lines.

ESPN's public API doesn't require authentication.
- Scoreboard: https://site.api.espn.com/apis/site/v2/sports/{path}/scoreboard
- Teams:      https://site.api.espn.com/apis/site/v2/sports/{path}/teams
- Standings:  https://site.api.espn.com/apis/v2/sports/{path}/standings
- Odds:       https://sports.core.api.espn.com/v2/sports/{sport}/leagues/{league}/events/{id}/competitions/{id}/odds

NFL games are bucketed by ESPN week number (postseason weeks continue after
week 18); every other sport by ISO week of kickoff.
"""

from datetime import UTC, date, datetime, timedelta
from typing import Any, Callable, Optional, TypeVar

import requests
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import SportConfig
from ..models import Game, GameStatus, MarketQuote, Team, iso_week_period, season_week_period
from ..retry import RetryConfig
from .base import HttpProvider, OddsProvider, ProviderError, ScheduleProvider, TeamStatsProvider

logger = structlog.get_logger(__name__)

SITE_URL = "https://site.api.espn.com/apis/site/v2/sports"
STANDINGS_URL = "https://site.api.espn.com/apis/v2/sports"
CORE_URL = "https://sports.core.api.espn.com/v2/sports"

REGULAR_SEASON_WEEKS = 18
POSTSEASON_WEEKS = 5
SEASON_FETCH_MAX_DAYS = 300

# College scoreboards only list ranked/featured games without these
EXTRA_PARAMS: dict[str, dict[str, str]] = {
    "basketball/mens-college-basketball": {"groups": "50", "limit": "500"},
}

SKIPPED_STATUSES = {"STATUS_POSTPONED", "STATUS_CANCELED", "STATUS_CANCELLED"}


class _Payload(BaseModel):
    """Top-level shape of an ESPN response; unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")


class ScoreboardPayload(_Payload):
    events: list[dict[str, Any]] = Field(default_factory=list)


class TeamEntry(_Payload):
    team: dict[str, Any] = Field(default_factory=dict)


class League(_Payload):
    teams: list[TeamEntry] = Field(default_factory=list)


class SportEntry(_Payload):
    leagues: list[League] = Field(default_factory=list)


class TeamsPayload(_Payload):
    sports: list[SportEntry] = Field(default_factory=list)


class StandingsPayload(_Payload):
    children: list[dict[str, Any]] = Field(default_factory=list)


class OddsItem(_Payload):
    spread: Any = None
    overUnder: Any = None
    homeTeamOdds: Optional[dict[str, Any]] = None
    awayTeamOdds: Optional[dict[str, Any]] = None


class OddsPayload(_Payload):
    items: list[OddsItem] = Field(default_factory=list)


P = TypeVar("P", bound=_Payload)


def _parse(model: type[P], data: Any, what: str) -> P:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProviderError(f"Malformed ESPN {what} payload: {e}") from e


def _score(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("value", value.get("displayValue"))
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ESPNClient(HttpProvider, ScheduleProvider, TeamStatsProvider, OddsProvider):
    """ESPN adapter for one sport."""

    def __init__(
        self,
        config: SportConfig,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        super().__init__(session=session, timeout=timeout, retry_config=retry_config)
        self.config = config
        self.clock = clock
        self.session.headers.update({
            "User-Agent": "rating-sync/1.0",
            "Accept": "application/json",
        })

    @property
    def base_url(self) -> str:
        return f"{SITE_URL}/{self.config.espn_path}"

    # ─────────────────────────────────────────────────────────────────────────
    # SCHEDULE
    # ─────────────────────────────────────────────────────────────────────────

    def _scoreboard(self, params: dict[str, str]) -> list[Game]:
        params = {**EXTRA_PARAMS.get(self.config.espn_path, {}), **params}
        data = self.get_json(f"{self.base_url}/scoreboard", params)
        return self._parse_scoreboard(data)

    def fetch_games(self, start: date, end: date) -> list[Game]:
        """Games between start and end (inclusive), one scoreboard call per day."""
        games: dict[str, Game] = {}
        day = start
        while day <= end:
            for game in self._scoreboard({"dates": day.strftime("%Y%m%d")}):
                games[game.game_id] = game
            day += timedelta(days=1)
        return sorted(games.values(), key=lambda g: g.kickoff)

    def fetch_season_games(self, season: int) -> list[Game]:
        """
        Every game of a season so far.

        NFL is fetched by week (regular season, then postseason). Other sports
        are fetched day by day from the season start month to today; their
        season is labelled by the year it ends (2026 = 2025-26).
        """
        if self.config.period_mode == "week":
            games: dict[str, Game] = {}
            for season_type, weeks in ((2, REGULAR_SEASON_WEEKS), (3, POSTSEASON_WEEKS)):
                for week in range(1, weeks + 1):
                    params = {"seasontype": str(season_type), "week": str(week), "dates": str(season)}
                    for game in self._scoreboard(params):
                        games[game.game_id] = game
            logger.info("espn_season_games_fetched", season=season, count=len(games))
            return sorted(games.values(), key=lambda g: g.kickoff)

        start = date(season - 1, self.config.season_start_month, 1)
        today = self.clock().date()
        end = min(today, start + timedelta(days=SEASON_FETCH_MAX_DAYS))
        games = self.fetch_games(start, end)
        logger.info("espn_season_games_fetched", season=season, count=len(games), start=str(start), end=str(end))
        return games

    def _parse_scoreboard(self, data: Any) -> list[Game]:
        """Events that fail to parse are logged and skipped; a malformed envelope raises."""
        payload = _parse(ScoreboardPayload, data, "scoreboard")
        games = []
        for event in payload.events:
            try:
                game = self._parse_event(event)
                if game:
                    games.append(game)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("espn_parse_event_failed", event_id=event.get("id"), error=str(e))
                continue
        return games

    def _parse_event(self, event: dict[str, Any]) -> Optional[Game]:
        """Parse a single ESPN event."""
        event_id = str(event.get("id") or "")
        if not event_id:
            return None

        competitions = event.get("competitions") or []
        if not competitions:
            return None
        competition = competitions[0]

        status_type = (event.get("status") or {}).get("type") or {}
        if status_type.get("name") in SKIPPED_STATUSES:
            return None
        state = status_type.get("state", "pre")
        status = {"in": GameStatus.IN_PROGRESS, "post": GameStatus.FINAL}.get(state, GameStatus.SCHEDULED)

        home = away = None
        for comp in competition.get("competitors", []):
            if comp.get("homeAway") == "home":
                home = comp
            elif comp.get("homeAway") == "away":
                away = comp
        if home is None or away is None:
            return None

        kickoff = datetime.fromisoformat(event["date"].replace("Z", "+00:00"))
        if kickoff.tzinfo is None:
            kickoff = kickoff.replace(tzinfo=UTC)

        season_info = event.get("season") or {}
        season = int(season_info.get("year") or kickoff.year)

        if self.config.period_mode == "week":
            week = int((event.get("week") or {}).get("number") or 0)
            if season_info.get("type") == 3:
                week += REGULAR_SEASON_WEEKS
            period = season_week_period(season, week)
        else:
            period = iso_week_period(kickoff)

        home_team = home.get("team") or {}
        away_team = away.get("team") or {}
        is_final = status == GameStatus.FINAL

        return Game(
            game_id=event_id,
            home_team_id=str(home_team.get("id") or home.get("id") or ""),
            away_team_id=str(away_team.get("id") or away.get("id") or ""),
            kickoff=kickoff,
            season=season,
            period=period,
            status=status,
            home_score=_score(home.get("score")) if is_final else None,
            away_score=_score(away.get("score")) if is_final else None,
            home_name=home_team.get("displayName", ""),
            away_name=away_team.get("displayName", ""),
            venue=(competition.get("venue") or {}).get("fullName"),
            neutral_site=bool(competition.get("neutralSite", False)),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # TEAMS
    # ─────────────────────────────────────────────────────────────────────────

    def fetch_teams(self) -> list[Team]:
        """Roster joined with standings scoring stats. Ratings are left at 0."""
        params = {"limit": "500"}
        params.update({k: v for k, v in EXTRA_PARAMS.get(self.config.espn_path, {}).items() if k == "groups"})
        roster = _parse(TeamsPayload, self.get_json(f"{self.base_url}/teams", params), "teams")

        try:
            standings = self.get_json(f"{STANDINGS_URL}/{self.config.espn_path}/standings")
            records = self._parse_standings(standings)
        except ProviderError as e:
            logger.warning("espn_standings_fetch_failed", error=str(e))
            records = {}

        teams = []
        leagues = roster.sports[0].leagues if roster.sports else []
        for league in leagues:
            for item in league.teams:
                team = item.team
                team_id = str(team.get("id") or "")
                if not team_id:
                    continue
                record = records.get(team_id, {})
                teams.append(Team(
                    team_id=team_id,
                    name=team.get("displayName", ""),
                    abbreviation=team.get("abbreviation", ""),
                    rating=0.0,
                    points_for=record.get("points_for"),
                    points_against=record.get("points_against"),
                    games_played=record.get("games_played", 0),
                    conference=record.get("conference"),
                ))

        if not teams:
            raise ProviderError(f"ESPN returned no teams for {self.config.espn_path}")
        return teams

    def _parse_standings(self, data: Any) -> dict[str, dict[str, Any]]:
        """Per-game scoring averages keyed by team id."""
        try:
            return self._standings_records(_parse(StandingsPayload, data, "standings").children)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed ESPN standings entry: {e}") from e

    @staticmethod
    def _standings_records(children: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
        records: dict[str, dict[str, Any]] = {}
        groups = list(children)
        while groups:
            group = groups.pop()
            groups.extend(group.get("children") or [])
            conference = group.get("abbreviation") or group.get("name")
            for entry in (group.get("standings") or {}).get("entries", []):
                team_id = str((entry.get("team") or {}).get("id") or "")
                if not team_id:
                    continue
                stats = {s["name"]: s["value"] for s in entry.get("stats", []) if "name" in s and s.get("value") is not None}
                games = int(stats.get("wins", 0) + stats.get("losses", 0) + stats.get("otLosses", 0) + stats.get("ties", 0))
                points_for = stats.get("pointsFor", stats.get("goalsFor"))
                points_against = stats.get("pointsAgainst", stats.get("goalsAgainst"))
                records[team_id] = {
                    "games_played": games,
                    "points_for": round(points_for / games, 1) if games and points_for is not None else None,
                    "points_against": round(points_against / games, 1) if games and points_against is not None else None,
                    "conference": conference,
                }
        return records

    # ─────────────────────────────────────────────────────────────────────────
    # LINES
    # ─────────────────────────────────────────────────────────────────────────

    def _odds_url(self, game_id: str) -> str:
        sport, league = self.config.espn_path.split("/", 1)
        return f"{CORE_URL}/{sport}/leagues/{league}/events/{game_id}/competitions/{game_id}/odds"

    def fetch_closing_line(self, game: Game) -> Optional[MarketQuote]:
        """First provider's line for a game (typically ESPN BET)."""
        payload = _parse(OddsPayload, self.get_json(self._odds_url(game.game_id)), "odds")
        if not payload.items:
            return None
        odds = payload.items[0]
        spread = _float(odds.spread)
        total = _float(odds.overUnder)
        if spread is None and total is None:
            return None
        return MarketQuote(
            spread=spread,
            total=total,
            home_moneyline=_score((odds.homeTeamOdds or {}).get("moneyLine")),
            away_moneyline=_score((odds.awayTeamOdds or {}).get("moneyLine")),
            books=1,
        )

    def fetch_quotes(self, games: list[Game]) -> dict[str, MarketQuote]:
        """Per-game ESPN lines; used when no odds feed key is configured."""
        quotes = {}
        for game in games:
            try:
                quote = self.fetch_closing_line(game)
            except ProviderError as e:
                logger.warning("espn_odds_fetch_failed", game_id=game.game_id, error=str(e))
                continue
            if quote is not None:
                quotes[game.game_id] = quote
        return quotes
