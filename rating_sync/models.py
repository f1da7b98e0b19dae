"""
Domain models for the rating sync engine.

All lines are from the HOME team perspective:
- Negative spread = home team favored
- Positive spread = away team favored (home is underdog)

Records that are written once and then only replaced (teams, games, line
records, predictions, results, tallies) are frozen dataclasses; each carries
`to_dict()` / `from_dict()` for the document store.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class GameStatus(str, Enum):
    """Game status."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    FINAL = "final"


class LineState(str, Enum):
    """Lifecycle state of a market line."""
    OPEN = "open"           # no quote seen yet
    UPDATING = "updating"   # quoted, still moving
    LOCKED = "locked"       # frozen for grading


class Confidence(str, Enum):
    """Confidence tier for a market edge."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Outcome(str, Enum):
    """Graded outcome of a pick."""
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"


class Pick(str, Enum):
    """Bet direction."""
    HOME = "home"
    AWAY = "away"
    OVER = "over"
    UNDER = "under"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def iso_week_period(moment: datetime) -> str:
    """Period id for sports bucketed by ISO week, e.g. '2025-W07'."""
    year, week, _ = moment.astimezone(timezone.utc).isocalendar()
    return f"{year}-W{week:02d}"


def season_week_period(season: int, week: int) -> str:
    """Period id for sports with numbered weeks, e.g. '2025-wk09'."""
    return f"{season}-wk{week:02d}"


# ═══════════════════════════════════════════════════════════════════════════════
# TEAMS + GAMES
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Team:
    """
    A team and its current rating.

    points_for / points_against are per-game scoring averages from the stats
    feed (None when the feed has no data yet).
    """
    team_id: str
    name: str
    abbreviation: str
    rating: float
    points_for: Optional[float] = None
    points_against: Optional[float] = None
    games_played: int = 0
    conference: Optional[str] = None

    def with_rating(self, rating: float) -> "Team":
        return replace(self, rating=rating)

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "rating": self.rating,
            "points_for": self.points_for,
            "points_against": self.points_against,
            "games_played": self.games_played,
            "conference": self.conference,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Team":
        return cls(
            team_id=str(data["team_id"]),
            name=data.get("name", ""),
            abbreviation=data.get("abbreviation", ""),
            rating=float(data["rating"]),
            points_for=data.get("points_for"),
            points_against=data.get("points_against"),
            games_played=int(data.get("games_played") or 0),
            conference=data.get("conference"),
        )


@dataclass(frozen=True)
class Game:
    """A scheduled or completed game."""
    game_id: str
    home_team_id: str
    away_team_id: str
    kickoff: datetime
    season: int
    period: str
    status: GameStatus = GameStatus.SCHEDULED
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    home_name: str = ""
    away_name: str = ""
    venue: Optional[str] = None
    neutral_site: bool = False

    @property
    def is_final(self) -> bool:
        return self.status == GameStatus.FINAL

    @property
    def has_result(self) -> bool:
        return self.is_final and self.home_score is not None and self.away_score is not None

    @property
    def actual_spread(self) -> Optional[int]:
        """Away minus home; home won by 5 -> -5."""
        if self.home_score is None or self.away_score is None:
            return None
        return self.away_score - self.home_score

    @property
    def actual_total(self) -> Optional[int]:
        if self.home_score is None or self.away_score is None:
            return None
        return self.home_score + self.away_score

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "kickoff": to_iso(self.kickoff),
            "season": self.season,
            "period": self.period,
            "status": self.status.value,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "home_name": self.home_name,
            "away_name": self.away_name,
            "venue": self.venue,
            "neutral_site": self.neutral_site,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Game":
        return cls(
            game_id=str(data["game_id"]),
            home_team_id=str(data.get("home_team_id") or ""),
            away_team_id=str(data.get("away_team_id") or ""),
            kickoff=from_iso(data["kickoff"]),
            season=int(data["season"]),
            period=data["period"],
            status=GameStatus(data.get("status", GameStatus.SCHEDULED.value)),
            home_score=data.get("home_score"),
            away_score=data.get("away_score"),
            home_name=data.get("home_name", ""),
            away_name=data.get("away_name", ""),
            venue=data.get("venue"),
            neutral_site=bool(data.get("neutral_site", False)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# MARKET LINES
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MarketQuote:
    """Consensus market quote for one game, averaged across books."""
    spread: Optional[float] = None
    total: Optional[float] = None
    home_moneyline: Optional[int] = None
    away_moneyline: Optional[int] = None
    books: int = 1

    @property
    def is_empty(self) -> bool:
        return self.spread is None and self.total is None


@dataclass(frozen=True)
class LineRecord:
    """
    Market line history for one game.

    Once locked_at is set the record never changes. Opening values are set by
    the first quote that carries them and never change afterwards.
    """
    game_id: str
    opening_spread: Optional[float] = None
    opening_total: Optional[float] = None
    last_seen_spread: Optional[float] = None
    last_seen_total: Optional[float] = None
    closing_spread: Optional[float] = None
    closing_total: Optional[float] = None
    captured_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    source: str = "live"

    @property
    def state(self) -> LineState:
        if self.locked_at is not None:
            return LineState.LOCKED
        if self.captured_at is not None:
            return LineState.UPDATING
        return LineState.OPEN

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    @property
    def has_quote(self) -> bool:
        return self.last_seen_spread is not None or self.last_seen_total is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "opening_spread": self.opening_spread,
            "opening_total": self.opening_total,
            "last_seen_spread": self.last_seen_spread,
            "last_seen_total": self.last_seen_total,
            "closing_spread": self.closing_spread,
            "closing_total": self.closing_total,
            "captured_at": to_iso(self.captured_at),
            "last_updated_at": to_iso(self.last_updated_at),
            "locked_at": to_iso(self.locked_at),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineRecord":
        return cls(
            game_id=str(data["game_id"]),
            opening_spread=data.get("opening_spread"),
            opening_total=data.get("opening_total"),
            last_seen_spread=data.get("last_seen_spread"),
            last_seen_total=data.get("last_seen_total"),
            closing_spread=data.get("closing_spread"),
            closing_total=data.get("closing_total"),
            captured_at=from_iso(data.get("captured_at")),
            last_updated_at=from_iso(data.get("last_updated_at")),
            locked_at=from_iso(data.get("locked_at")),
            source=data.get("source", "live"),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# SIDE SIGNALS
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CachedSignal:
    """A cached side-signal payload."""
    key: str
    payload: Any
    fetched_at: datetime
    period: Optional[str] = None
    permanent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "fetched_at": to_iso(self.fetched_at),
            "period": self.period,
            "permanent": self.permanent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedSignal":
        return cls(
            key=data["key"],
            payload=data.get("payload"),
            fetched_at=from_iso(data["fetched_at"]),
            period=data.get("period"),
            permanent=bool(data.get("permanent", False)),
        )


class WeatherReport(BaseModel):
    """Venue weather at kickoff."""

    temperature_f: Optional[float] = None
    wind_mph: Optional[float] = None
    precipitation_pct: Optional[float] = Field(default=None, ge=0, le=100)
    condition: str = ""
    indoor: bool = False

    @property
    def impact(self) -> float:
        """
        Scoring impact score (0 = none). Each point costs the configured
        weather_points_per_impact in total scoring.
        """
        if self.indoor:
            return 0.0

        impact = 0.0
        if self.wind_mph is not None:
            if self.wind_mph > 25:
                impact += 1.5
            elif self.wind_mph > 15:
                impact += 0.5
        if self.temperature_f is not None:
            if self.temperature_f < 10:
                impact += 1.0
            elif self.temperature_f < 20:
                impact += 0.5
            elif self.temperature_f > 95:
                impact += 0.3
        if self.precipitation_pct is not None:
            if self.precipitation_pct > 60:
                impact += 1.0
            elif self.precipitation_pct > 30:
                impact += 0.5
        return round(impact, 2)


class PlayerInjury(BaseModel):
    player: str
    position: str = ""
    status: str = ""

    @property
    def is_out(self) -> bool:
        status = self.status.strip().lower()
        return status == "ir" or "out" in status or "injured reserve" in status


class TeamInjuries(BaseModel):
    team: str = Field(description="Team id or abbreviation as reported by the feed.")
    players: list[PlayerInjury] = Field(default_factory=list)

    @property
    def starter_passer_out(self) -> bool:
        return any(p.position.upper() == "QB" and p.is_out for p in self.players)


class InjuryReport(BaseModel):
    """Injury report for one period, keyed by team id or abbreviation."""

    period: Optional[str] = None
    teams: dict[str, TeamInjuries] = Field(default_factory=dict)

    def starter_out(self, team: Team) -> bool:
        entry = (
            self.teams.get(team.team_id)
            or self.teams.get(team.abbreviation.upper())
            or self.teams.get(team.name)
        )
        return bool(entry and entry.starter_passer_out)


@dataclass(frozen=True)
class SideSignals:
    """Signals applied on top of the rating-based projection."""
    weather_impact: float = 0.0
    home_starter_out: bool = False
    away_starter_out: bool = False


NO_SIGNALS = SideSignals()


# ═══════════════════════════════════════════════════════════════════════════════
# PREDICTIONS + RESULTS
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScoreProjection:
    home_score: float
    away_score: float
    spread: float
    total: float
    home_win_probability: float


@dataclass(frozen=True)
class LineMovement:
    """Opening vs. latest market numbers, published alongside a prediction."""
    opening_spread: Optional[float] = None
    opening_total: Optional[float] = None
    last_seen_spread: Optional[float] = None
    last_seen_total: Optional[float] = None
    last_updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Optional[LineRecord]) -> Optional["LineMovement"]:
        if record is None or not record.has_quote:
            return None
        return cls(
            opening_spread=record.opening_spread,
            opening_total=record.opening_total,
            last_seen_spread=record.last_seen_spread,
            last_seen_total=record.last_seen_total,
            last_updated_at=record.last_updated_at or record.captured_at,
        )

    @property
    def spread_move(self) -> Optional[float]:
        if self.opening_spread is None or self.last_seen_spread is None:
            return None
        return round(self.last_seen_spread - self.opening_spread, 1)

    @property
    def total_move(self) -> Optional[float]:
        if self.opening_total is None or self.last_seen_total is None:
            return None
        return round(self.last_seen_total - self.opening_total, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "opening_spread": self.opening_spread,
            "opening_total": self.opening_total,
            "last_seen_spread": self.last_seen_spread,
            "last_seen_total": self.last_seen_total,
            "last_updated_at": to_iso(self.last_updated_at),
            "spread_move": self.spread_move,
            "total_move": self.total_move,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["LineMovement"]:
        if not data:
            return None
        return cls(
            opening_spread=data.get("opening_spread"),
            opening_total=data.get("opening_total"),
            last_seen_spread=data.get("last_seen_spread"),
            last_seen_total=data.get("last_seen_total"),
            last_updated_at=from_iso(data.get("last_updated_at")),
        )


@dataclass(frozen=True)
class Prediction:
    """Forward prediction for a non-final game."""
    game_id: str
    home_team_id: str
    away_team_id: str
    kickoff: datetime
    home_score: float
    away_score: float
    spread: float
    total: float
    home_win_probability: float
    generated_at: datetime
    market_spread: Optional[float] = None
    market_total: Optional[float] = None
    spread_edge: Optional[float] = None
    total_edge: Optional[float] = None
    moneyline_edge: float = 0.0
    spread_confidence: Confidence = Confidence.LOW
    total_confidence: Confidence = Confidence.LOW
    moneyline_confidence: Confidence = Confidence.LOW
    spread_best_bet: bool = False
    total_best_bet: bool = False
    moneyline_best_bet: bool = False
    high_conviction: bool = False
    line_locked_at: Optional[datetime] = None
    weather_impact: float = 0.0
    home_starter_out: bool = False
    away_starter_out: bool = False
    conviction: Confidence = Confidence.LOW
    expected_win_pct: Optional[float] = None
    line_movement: Optional[LineMovement] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "kickoff": to_iso(self.kickoff),
            "home_score": self.home_score,
            "away_score": self.away_score,
            "spread": self.spread,
            "total": self.total,
            "home_win_probability": self.home_win_probability,
            "generated_at": to_iso(self.generated_at),
            "market_spread": self.market_spread,
            "market_total": self.market_total,
            "spread_edge": self.spread_edge,
            "total_edge": self.total_edge,
            "moneyline_edge": self.moneyline_edge,
            "spread_confidence": self.spread_confidence.value,
            "total_confidence": self.total_confidence.value,
            "moneyline_confidence": self.moneyline_confidence.value,
            "spread_best_bet": self.spread_best_bet,
            "total_best_bet": self.total_best_bet,
            "moneyline_best_bet": self.moneyline_best_bet,
            "high_conviction": self.high_conviction,
            "line_locked_at": to_iso(self.line_locked_at),
            "weather_impact": self.weather_impact,
            "home_starter_out": self.home_starter_out,
            "away_starter_out": self.away_starter_out,
            "conviction": self.conviction.value,
            "expected_win_pct": self.expected_win_pct,
            "line_movement": self.line_movement.to_dict() if self.line_movement else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Prediction":
        return cls(
            game_id=str(data["game_id"]),
            home_team_id=str(data["home_team_id"]),
            away_team_id=str(data["away_team_id"]),
            kickoff=from_iso(data["kickoff"]),
            home_score=float(data["home_score"]),
            away_score=float(data["away_score"]),
            spread=float(data["spread"]),
            total=float(data["total"]),
            home_win_probability=float(data["home_win_probability"]),
            generated_at=from_iso(data["generated_at"]),
            market_spread=data.get("market_spread"),
            market_total=data.get("market_total"),
            spread_edge=data.get("spread_edge"),
            total_edge=data.get("total_edge"),
            moneyline_edge=float(data.get("moneyline_edge") or 0.0),
            spread_confidence=Confidence(data.get("spread_confidence", "low")),
            total_confidence=Confidence(data.get("total_confidence", "low")),
            moneyline_confidence=Confidence(data.get("moneyline_confidence", "low")),
            spread_best_bet=bool(data.get("spread_best_bet", False)),
            total_best_bet=bool(data.get("total_best_bet", False)),
            moneyline_best_bet=bool(data.get("moneyline_best_bet", False)),
            high_conviction=bool(data.get("high_conviction", False)),
            line_locked_at=from_iso(data.get("line_locked_at")),
            weather_impact=float(data.get("weather_impact") or 0.0),
            home_starter_out=bool(data.get("home_starter_out", False)),
            away_starter_out=bool(data.get("away_starter_out", False)),
            conviction=Confidence(data.get("conviction", "low")),
            expected_win_pct=data.get("expected_win_pct"),
            line_movement=LineMovement.from_dict(data.get("line_movement")),
        )


def _outcome(value: Optional[str]) -> Optional[Outcome]:
    return Outcome(value) if value else None


def _pick(value: Optional[str]) -> Optional[Pick]:
    return Pick(value) if value else None


@dataclass(frozen=True)
class BacktestResult:
    """
    A graded game: the frozen prediction plus actual scores and outcomes.

    ats_* fields are None when no market spread existed for the game.
    """
    game_id: str
    kickoff: datetime
    home_team_id: str
    away_team_id: str
    predicted_home_score: float
    predicted_away_score: float
    predicted_spread: float
    predicted_total: float
    home_win_probability: float
    home_score: int
    away_score: int
    spread_pick: Pick
    spread_result: Outcome
    moneyline_pick: Pick
    moneyline_result: Outcome
    total_pick: Pick
    total_reference: float
    total_result: Outcome
    graded_at: datetime
    market_spread: Optional[float] = None
    market_total: Optional[float] = None
    ats_pick: Optional[Pick] = None
    ats_result: Optional[Outcome] = None
    total_vs_market: bool = False
    high_conviction: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "kickoff": to_iso(self.kickoff),
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "predicted_home_score": self.predicted_home_score,
            "predicted_away_score": self.predicted_away_score,
            "predicted_spread": self.predicted_spread,
            "predicted_total": self.predicted_total,
            "home_win_probability": self.home_win_probability,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "spread_pick": self.spread_pick.value,
            "spread_result": self.spread_result.value,
            "moneyline_pick": self.moneyline_pick.value,
            "moneyline_result": self.moneyline_result.value,
            "total_pick": self.total_pick.value,
            "total_reference": self.total_reference,
            "total_result": self.total_result.value,
            "graded_at": to_iso(self.graded_at),
            "market_spread": self.market_spread,
            "market_total": self.market_total,
            "ats_pick": self.ats_pick.value if self.ats_pick else None,
            "ats_result": self.ats_result.value if self.ats_result else None,
            "total_vs_market": self.total_vs_market,
            "high_conviction": self.high_conviction,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestResult":
        return cls(
            game_id=str(data["game_id"]),
            kickoff=from_iso(data["kickoff"]),
            home_team_id=str(data["home_team_id"]),
            away_team_id=str(data["away_team_id"]),
            predicted_home_score=float(data["predicted_home_score"]),
            predicted_away_score=float(data["predicted_away_score"]),
            predicted_spread=float(data["predicted_spread"]),
            predicted_total=float(data["predicted_total"]),
            home_win_probability=float(data["home_win_probability"]),
            home_score=int(data["home_score"]),
            away_score=int(data["away_score"]),
            spread_pick=Pick(data["spread_pick"]),
            spread_result=Outcome(data["spread_result"]),
            moneyline_pick=Pick(data["moneyline_pick"]),
            moneyline_result=Outcome(data["moneyline_result"]),
            total_pick=Pick(data["total_pick"]),
            total_reference=float(data["total_reference"]),
            total_result=Outcome(data["total_result"]),
            graded_at=from_iso(data["graded_at"]),
            market_spread=data.get("market_spread"),
            market_total=data.get("market_total"),
            ats_pick=_pick(data.get("ats_pick")),
            ats_result=_outcome(data.get("ats_result")),
            total_vs_market=bool(data.get("total_vs_market", False)),
            high_conviction=bool(data.get("high_conviction", False)),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# TALLIES + SYNC STATE
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MarketRecord:
    """Win/loss/push counts for one market."""
    wins: int = 0
    losses: int = 0
    pushes: int = 0

    @property
    def graded(self) -> int:
        return self.wins + self.losses + self.pushes

    @property
    def win_pct(self) -> Optional[float]:
        """Win % excluding pushes, one decimal (None with no decisions)."""
        decided = self.wins + self.losses
        if decided == 0:
            return None
        return round(self.wins / decided * 100, 1)

    def record(self, outcome: Optional[Outcome]) -> "MarketRecord":
        if outcome is None:
            return self
        if outcome == Outcome.WIN:
            return replace(self, wins=self.wins + 1)
        if outcome == Outcome.LOSS:
            return replace(self, losses=self.losses + 1)
        return replace(self, pushes=self.pushes + 1)

    def merge(self, other: "MarketRecord") -> "MarketRecord":
        return MarketRecord(
            wins=self.wins + other.wins,
            losses=self.losses + other.losses,
            pushes=self.pushes + other.pushes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"wins": self.wins, "losses": self.losses, "pushes": self.pushes, "win_pct": self.win_pct}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "MarketRecord":
        data = data or {}
        return cls(
            wins=int(data.get("wins", 0)),
            losses=int(data.get("losses", 0)),
            pushes=int(data.get("pushes", 0)),
        )


@dataclass(frozen=True)
class BacktestTally:
    """
    Immutable per-market tallies.

    spread = pick graded against the model's own number
    ats = pick graded against the market spread
    """
    spread: MarketRecord = field(default_factory=MarketRecord)
    ats: MarketRecord = field(default_factory=MarketRecord)
    moneyline: MarketRecord = field(default_factory=MarketRecord)
    total: MarketRecord = field(default_factory=MarketRecord)

    @property
    def games(self) -> int:
        return self.moneyline.graded

    def record(self, result: BacktestResult) -> "BacktestTally":
        return BacktestTally(
            spread=self.spread.record(result.spread_result),
            ats=self.ats.record(result.ats_result),
            moneyline=self.moneyline.record(result.moneyline_result),
            total=self.total.record(result.total_result),
        )

    def merge(self, other: "BacktestTally") -> "BacktestTally":
        return BacktestTally(
            spread=self.spread.merge(other.spread),
            ats=self.ats.merge(other.ats),
            moneyline=self.moneyline.merge(other.moneyline),
            total=self.total.merge(other.total),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "games": self.games,
            "spread": self.spread.to_dict(),
            "ats": self.ats.to_dict(),
            "moneyline": self.moneyline.to_dict(),
            "total": self.total.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "BacktestTally":
        data = data or {}
        return cls(
            spread=MarketRecord.from_dict(data.get("spread")),
            ats=MarketRecord.from_dict(data.get("ats")),
            moneyline=MarketRecord.from_dict(data.get("moneyline")),
            total=MarketRecord.from_dict(data.get("total")),
        )


@dataclass
class SyncState:
    """Per-sport state carried between passes."""
    sport: str
    season: Optional[int] = None
    current_period: Optional[str] = None
    processed_game_ids: set[str] = field(default_factory=set)
    tally: BacktestTally = field(default_factory=BacktestTally)
    high_conviction_tally: BacktestTally = field(default_factory=BacktestTally)
    last_sync_at: Optional[datetime] = None
    last_artifact_location: Optional[str] = None

    @property
    def is_first_run(self) -> bool:
        return not self.processed_game_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "sport": self.sport,
            "season": self.season,
            "current_period": self.current_period,
            "processed_game_ids": sorted(self.processed_game_ids),
            "tally": self.tally.to_dict(),
            "high_conviction_tally": self.high_conviction_tally.to_dict(),
            "last_sync_at": to_iso(self.last_sync_at),
            "last_artifact_location": self.last_artifact_location,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncState":
        return cls(
            sport=data["sport"],
            season=data.get("season"),
            current_period=data.get("current_period"),
            processed_game_ids=set(data.get("processed_game_ids") or []),
            tally=BacktestTally.from_dict(data.get("tally")),
            high_conviction_tally=BacktestTally.from_dict(data.get("high_conviction_tally")),
            last_sync_at=from_iso(data.get("last_sync_at")),
            last_artifact_location=data.get("last_artifact_location"),
        )
