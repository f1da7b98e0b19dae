"""
Sync Orchestrator - one pass per invocation, per sport.

Pass order:
1. Load state, resolve the season (reset on season change or on request)
2. Refresh the roster and scoring stats (ratings are never taken from the feed)
3. Fetch the schedule: full season on a first run, else a window around today
4. Lock due lines; backfill closing lines for completed games without one
5. Replay newly completed games (ratings + grading, exactly once)
6. Refresh upcoming quotes (locked lines are never re-fetched)
7. Refresh weather / injury signals through the caches
8. Predict upcoming games
9. Commit collections and state as one unit, then publish the artifact

Provider failures degrade the pass; persistence failures fail it with a
SyncError that carries the pass's log lines.

Usage:
    orchestrator = SyncOrchestrator(config, store, publisher, schedule=espn, team_stats=espn)
    report = orchestrator.run(SyncRequest())
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Optional

import structlog

from .artifact import build_artifact
from .backtest import BacktestAggregator, merge_results
from .confidence import ConfidenceClassifier
from .config import SportConfig
from .elo_system import RatingEngine
from .line_lifecycle import LineLifecycleManager
from .logging_config import bind_sync_context, log_error, log_prediction
from .metrics import DOCUMENTS_WRITTEN, LINES_LOCKED, PREDICTIONS_GENERATED, PROVIDER_FAILURES, SyncMetrics
from .models import (
    BacktestResult,
    CachedSignal,
    Game,
    GameStatus,
    InjuryReport,
    LineRecord,
    Prediction,
    SideSignals,
    SyncState,
    Team,
    WeatherReport,
    iso_week_period,
)
from .persistence import (
    GAMES,
    INJURIES,
    ODDS_LOCKS,
    PREDICTIONS,
    RESULTS,
    TEAMS,
    WEATHER,
    ArtifactPublisher,
    DocumentStore,
    PersistenceError,
)
from .predictor import ScorePredictor, build_prediction
from .processor import IncrementalGameProcessor
from .providers.base import (
    InjuryProvider,
    OddsProvider,
    ProviderError,
    ScheduleProvider,
    TeamStatsProvider,
    WeatherProvider,
)
from .signal_cache import CacheManager

logger = structlog.get_logger(__name__)

# Scheduled games this far past kickoff are no longer predicted
UPCOMING_GRACE = timedelta(hours=12)


class SyncError(Exception):
    """A pass failed. `logs` holds the pass's diagnostic lines."""

    def __init__(self, message: str, logs: Optional[list[str]] = None):
        super().__init__(message)
        self.logs = list(logs or [])


@dataclass(frozen=True)
class SyncRequest:
    reset: bool = False
    season: Optional[int] = None
    force_signals: bool = False
    backfill_days: Optional[int] = None


@dataclass(frozen=True)
class SyncReport:
    """Summary of a completed pass."""
    sport: str
    season: int
    period: str
    reset: bool
    games_processed: int
    games_skipped: int
    games_failed: int
    predictions: int
    lines_locked: int
    missing_market_spread: int
    artifact_location: Optional[str]
    duration_s: float = 0.0
    metrics: dict[str, Any] = field(default_factory=dict)
    logs: list[str] = field(default_factory=list)


def resolve_season(config: SportConfig, now: datetime) -> int:
    """
    Season label for a moment in time.

    Weekly sports are labelled by the year they start (NFL 2025 runs into
    Feb 2026); the others by the year they end (NBA 2026 = 2025-26).
    """
    started = now.month >= config.season_start_month
    if config.period_mode == "week":
        return now.year if started else now.year - 1
    return now.year + 1 if started else now.year


def resolve_current_period(games: list[Game], now: datetime) -> str:
    """
    Earliest period with a game still to finish, else the latest completed one.

    Unfinished games that kicked off more than UPCOMING_GRACE ago are ignored:
    postponed games keep a stale "scheduled" copy in the store.
    """
    cutoff = now - UPCOMING_GRACE
    pending = [g.period for g in games if not g.is_final and g.kickoff >= cutoff]
    if pending:
        return min(pending)
    finished = [g.period for g in games if g.is_final]
    if finished:
        return max(finished)
    return iso_week_period(now)


def weather_key(game_id: str) -> str:
    return f"weather:{game_id}"


def injuries_key(period: str) -> str:
    return f"injuries:{period}"


class SyncOrchestrator:
    """Runs sync passes for one sport."""

    def __init__(
        self,
        config: SportConfig,
        store: DocumentStore,
        publisher: ArtifactPublisher,
        schedule: ScheduleProvider,
        team_stats: TeamStatsProvider,
        odds: Optional[OddsProvider] = None,
        closing_lines: Optional[OddsProvider] = None,
        weather: Optional[WeatherProvider] = None,
        injuries: Optional[InjuryProvider] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        signal_workers: int = 4,
        default_backfill_days: int = 7,
    ):
        self.config = config
        self.store = store
        self.publisher = publisher
        self.schedule = schedule
        self.team_stats = team_stats
        self.odds = odds
        self.closing_lines = closing_lines
        self.weather = weather
        self.injuries = injuries
        self.clock = clock
        self.signal_workers = signal_workers
        self.default_backfill_days = default_backfill_days

        self.engine = RatingEngine(config)
        self.predictor = ScorePredictor(config, self.engine)
        self.classifier = ConfidenceClassifier(config)
        self.aggregator = BacktestAggregator(config, self.classifier)

        self.metrics = SyncMetrics()
        self._logs: list[str] = []

    @property
    def sport(self) -> str:
        return self.config.sport

    def _note(self, level: str, event: str, message: str, **fields: Any) -> None:
        """Log a structured event and keep a readable line for the pass report."""
        getattr(logger, level)(event, **fields)
        self._logs.append(f"[{level.upper()}] {message}")

    # ═══════════════════════════════════════════════════════════════════════
    # ENTRY POINT
    # ═══════════════════════════════════════════════════════════════════════

    def run(self, request: Optional[SyncRequest] = None) -> SyncReport:
        """
        Run one pass.

        Raises:
            SyncError: persistence failed, or a first run has no roster
        """
        request = request or SyncRequest()
        self.metrics = SyncMetrics()
        self._logs = []
        bind_sync_context(self.sport)

        try:
            with self.metrics.timer("pass_duration_s") as timer:
                report = self._run(request)
        except PersistenceError as e:
            self._note("error", "sync_persistence_failed", f"Persistence failed: {e}", error=str(e))
            raise SyncError(f"{self.sport} sync failed: {e}", self._logs) from e
        except SyncError:
            raise
        except Exception as e:
            log_error(logger, e, {"stage": "sync_pass"})
            self._logs.append(f"[ERROR] Unexpected failure: {type(e).__name__}: {e}")
            raise SyncError(f"{self.sport} sync failed: {e}", self._logs) from e

        report = replace(
            report,
            duration_s=round(timer.elapsed, 3),
            metrics=self.metrics.snapshot(),
            logs=list(self._logs),
        )
        logger.info(
            "sync_complete",
            season=report.season,
            period=report.period,
            processed=report.games_processed,
            predictions=report.predictions,
            duration_s=report.duration_s,
        )
        return report

    def _run(self, request: SyncRequest) -> SyncReport:
        now = self.clock()
        lifecycle = LineLifecycleManager(self.config, self.metrics)
        processor = IncrementalGameProcessor(
            self.engine, self.predictor, self.classifier, self.aggregator, self.metrics
        )

        # 1. State
        state = self._load_state()
        teams = {k: Team.from_dict(v) for k, v in self.store.load_collection(self.sport, TEAMS).items()}
        games = {k: Game.from_dict(v) for k, v in self.store.load_collection(self.sport, GAMES).items()}
        lines = {
            k: LineRecord.from_dict(v)
            for k, v in self.store.load_collection(self.sport, ODDS_LOCKS).items()
        }
        results = {
            k: BacktestResult.from_dict(v)
            for k, v in self.store.load_collection(self.sport, RESULTS).items()
        }
        predictions = {
            k: Prediction.from_dict(v)
            for k, v in self.store.load_collection(self.sport, PREDICTIONS).items()
        }

        season = request.season or resolve_season(self.config, now)
        bind_sync_context(self.sport, season)
        season_changed = state.season is not None and state.season != season
        reset = request.reset or season_changed
        if reset:
            reason = "requested" if request.reset else f"season {state.season} -> {season}"
            self._note("info", "sync_state_reset", f"Resetting state ({reason})", reason=reason)
            state = SyncState(sport=self.sport, last_artifact_location=state.last_artifact_location)
            teams = {k: self.engine.seed(t) for k, t in teams.items()}
            games = {k: g for k, g in games.items() if g.season == season}
            results = {}
            predictions = {}
        state.season = season

        # 2. Roster
        teams = self._refresh_roster(teams)

        # 3. Schedule
        games = self._refresh_schedule(games, season, state.is_first_run, request, now)

        # 4. Lines already due, and historical closing lines
        lines = lifecycle.lock_due(lines, games.values(), now)
        lines = self._backfill_closing_lines(lifecycle, lines, games, state.processed_game_ids, now)

        # 5. Replay
        outcome = processor.run(
            games.values(),
            teams,
            state.processed_game_ids,
            state.tally,
            state.high_conviction_tally,
            lines,
            predictions,
            now,
        )
        teams = outcome.teams
        state.processed_game_ids = set(outcome.processed_game_ids)
        state.tally = outcome.tally
        state.high_conviction_tally = outcome.high_conviction_tally
        merged = merge_results(outcome.results, results.values())
        results = {r.game_id: r for r in merged}

        self._note(
            "info",
            "games_replayed",
            f"Replayed {len(outcome.results)} games "
            f"({len(outcome.skipped)} skipped, {len(outcome.failed)} failed)",
            processed=len(outcome.results),
            skipped=len(outcome.skipped),
            failed=len(outcome.failed),
        )

        missing_market = [r.game_id for r in outcome.results if r.market_spread is None]
        if missing_market:
            share = round(len(missing_market) / len(outcome.results) * 100, 1)
            self._note(
                "warning",
                "market_coverage_gap",
                f"{len(missing_market)}/{len(outcome.results)} graded games ({share}%) had no market spread",
                missing=len(missing_market),
                graded=len(outcome.results),
                missing_pct=share,
            )

        # 6. Upcoming quotes
        upcoming = self._upcoming_games(games, now)
        if self.odds is not None:
            lines = lifecycle.refresh(lines, upcoming, self.odds.fetch_quotes, now)
        else:
            lines = lifecycle.lock_due(lines, upcoming, now)

        # 7. Side signals
        period = resolve_current_period(list(games.values()), now)
        state.current_period = period
        bind_sync_context(self.sport, season, period)
        weather_cache, weather_impacts = self._refresh_weather(games, upcoming, period, request.force_signals)
        injury_cache, injury_report = self._refresh_injuries(period, request.force_signals)

        # 8. Predictions
        fresh = self._predict(upcoming, teams, lines, weather_impacts, injury_report, now)
        predictions.update(fresh)
        in_play = [predictions[g.game_id] for g in upcoming if g.game_id in predictions]

        # 9. Persist + publish
        artifact = build_artifact(
            sport=self.sport,
            season=season,
            period=period,
            generated_at=now,
            teams=teams,
            predictions=in_play,
            results=results.values(),
            tally=state.tally,
            high_conviction_tally=state.high_conviction_tally,
        )

        collections: dict[str, dict[str, dict[str, Any]]] = {
            TEAMS: {k: t.to_dict() for k, t in teams.items()},
            GAMES: {k: g.to_dict() for k, g in games.items()},
            ODDS_LOCKS: {k: r.to_dict() for k, r in lines.items()},
            RESULTS: {r.game_id: r.to_dict() for r in outcome.results},
            PREDICTIONS: {k: p.to_dict() for k, p in fresh.items()},
        }
        for cache, name in ((weather_cache, WEATHER), (injury_cache, INJURIES)):
            if cache is not None:
                collections[name] = {e.key: e.to_dict() for e in cache.changed()}

        # Ratings, processed ids and tallies land together or not at all
        state.last_sync_at = now
        written = self.store.save_pass(
            self.sport,
            collections,
            state.to_dict(),
            clear=(GAMES, RESULTS, PREDICTIONS) if reset else (),
        )
        self.metrics.inc(DOCUMENTS_WRITTEN, written)

        location = self.publisher.publish(self.sport, artifact)
        state.last_artifact_location = location
        self.store.set_state(self.sport, state.to_dict())

        self._note(
            "info",
            "sync_pass_saved",
            f"Saved {self.metrics.get(DOCUMENTS_WRITTEN)} documents; artifact at {location}",
            documents=self.metrics.get(DOCUMENTS_WRITTEN),
            location=location,
        )

        return SyncReport(
            sport=self.sport,
            season=season,
            period=period,
            reset=reset,
            games_processed=len(outcome.results),
            games_skipped=len(outcome.skipped),
            games_failed=len(outcome.failed),
            predictions=len(fresh),
            lines_locked=self.metrics.get(LINES_LOCKED),
            missing_market_spread=len(missing_market),
            artifact_location=location,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # STAGES
    # ═══════════════════════════════════════════════════════════════════════

    def _load_state(self) -> SyncState:
        doc = self.store.get_state(self.sport)
        if doc is None:
            self._note("info", "sync_first_run", f"No stored state for {self.sport}; starting fresh")
            return SyncState(sport=self.sport)
        return SyncState.from_dict(doc)

    def _refresh_roster(self, teams: dict[str, Team]) -> dict[str, Team]:
        """
        Merge the stats feed into the roster.

        Known teams keep their rating; new teams are seeded. Teams missing
        from the feed are kept.
        """
        try:
            fetched = self.team_stats.fetch_teams()
        except ProviderError as e:
            self.metrics.inc(PROVIDER_FAILURES)
            if not teams:
                self._note("error", "roster_unavailable", f"Roster unavailable on first run: {e}", error=str(e))
                raise SyncError(f"{self.sport} roster unavailable: {e}", self._logs) from e
            self._note("warning", "roster_fetch_failed", f"Roster fetch failed, using stored teams: {e}", error=str(e))
            return teams

        merged = dict(teams)
        seeded = 0
        for team in fetched:
            existing = merged.get(team.team_id)
            if existing is None:
                merged[team.team_id] = self.engine.seed(team)
                seeded += 1
            else:
                merged[team.team_id] = team.with_rating(existing.rating)

        self._note(
            "info",
            "roster_refreshed",
            f"Roster: {len(merged)} teams ({seeded} new)",
            teams=len(merged),
            seeded=seeded,
        )
        return merged

    def _refresh_schedule(
        self,
        games: dict[str, Game],
        season: int,
        first_run: bool,
        request: SyncRequest,
        now: datetime,
    ) -> dict[str, Game]:
        backfill_days = request.backfill_days if request.backfill_days is not None else self.default_backfill_days
        start = (now - timedelta(days=backfill_days)).date()
        end = (now + timedelta(days=self.config.upcoming_days)).date()

        merged = dict(games)
        try:
            if first_run:
                for game in self.schedule.fetch_season_games(season):
                    merged[game.game_id] = game
            for game in self.schedule.fetch_games(start, end):
                merged[game.game_id] = game
        except ProviderError as e:
            self.metrics.inc(PROVIDER_FAILURES)
            self._note(
                "warning",
                "schedule_fetch_failed",
                f"Schedule fetch failed, using {len(games)} stored games: {e}",
                error=str(e),
            )
            return merged

        self._note(
            "info",
            "schedule_refreshed",
            f"Schedule: {len(merged)} games ({'full season' if first_run else f'{start} to {end}'})",
            games=len(merged),
            first_run=first_run,
        )
        return merged

    def _backfill_closing_lines(
        self,
        lifecycle: LineLifecycleManager,
        lines: dict[str, LineRecord],
        games: dict[str, Game],
        processed_game_ids: set[str],
        now: datetime,
    ) -> dict[str, LineRecord]:
        """Historical lines for completed, unprocessed games that never got one."""
        if self.closing_lines is None:
            return lines

        missing = [
            g for g in games.values()
            if g.has_result
            and g.game_id not in processed_game_ids
            and not (g.game_id in lines and lines[g.game_id].has_quote)
        ]
        if not missing:
            return lines

        updated = dict(lines)
        found = 0
        for game in sorted(missing, key=lambda g: g.kickoff):
            try:
                quote = self.closing_lines.fetch_closing_line(game)
            except ProviderError as e:
                self.metrics.inc(PROVIDER_FAILURES)
                logger.warning("closing_line_fetch_failed", game_id=game.game_id, error=str(e))
                continue
            except Exception as e:
                self.metrics.inc(PROVIDER_FAILURES)
                log_error(logger, e, {"game_id": game.game_id, "stage": "closing_line"})
                continue
            if quote is None or quote.is_empty:
                continue
            updated[game.game_id] = lifecycle.backfill_closing(game, quote, now)
            found += 1

        self._note(
            "info",
            "closing_lines_backfilled",
            f"Backfilled {found}/{len(missing)} closing lines",
            backfilled=found,
            missing=len(missing),
        )
        return updated

    def _upcoming_games(self, games: dict[str, Game], now: datetime) -> list[Game]:
        horizon = now + timedelta(days=self.config.upcoming_days)
        return sorted(
            (
                g for g in games.values()
                if not g.is_final and now - UPCOMING_GRACE <= g.kickoff <= horizon
            ),
            key=lambda g: (g.kickoff, g.game_id),
        )

    def _load_cache(self, name: str, ttl_hours: float, period: str) -> CacheManager:
        entries = [
            CachedSignal.from_dict(doc)
            for doc in self.store.load_collection(self.sport, name).values()
        ]
        return CacheManager(
            name,
            ttl_hours,
            self.clock,
            current_period=period,
            entries=entries,
            metrics=self.metrics,
        )

    def _refresh_weather(
        self,
        games: dict[str, Game],
        upcoming: list[Game],
        period: str,
        force: bool,
    ) -> tuple[Optional[CacheManager], dict[str, float]]:
        if self.weather is None or not self.config.weather_enabled:
            return None, {}

        cache = self._load_cache(WEATHER, self.config.weather_ttl_hours, period)
        for game in games.values():
            if game.is_final:
                cache.mark_permanent(weather_key(game.game_id))

        targets = [g for g in upcoming if g.status == GameStatus.SCHEDULED]
        impacts: dict[str, float] = {}
        if not targets:
            return cache, impacts

        with ThreadPoolExecutor(max_workers=self.signal_workers) as executor:
            futures = {
                executor.submit(self._game_weather, cache, game, force): game
                for game in targets
            }
            for future in as_completed(futures):
                game = futures[future]
                try:
                    impacts[game.game_id] = future.result()
                except Exception as e:
                    log_error(logger, e, {"game_id": game.game_id, "stage": "weather"})

        adverse = sum(1 for v in impacts.values() if v > 0)
        self._note(
            "info",
            "weather_refreshed",
            f"Weather: {len(impacts)} games, {adverse} with adverse conditions",
            games=len(impacts),
            adverse=adverse,
        )
        return cache, impacts

    def _game_weather(self, cache: CacheManager, game: Game, force: bool) -> float:
        def fetch():
            report = self.weather.fetch_weather(game.venue, game.kickoff)
            return report.model_dump() if report is not None else None

        read = cache.get(weather_key(game.game_id), fetch, period=game.period, force=force)
        if not read.value:
            return 0.0
        return WeatherReport.model_validate(read.value).impact

    def _refresh_injuries(
        self,
        period: str,
        force: bool,
    ) -> tuple[Optional[CacheManager], Optional[InjuryReport]]:
        if self.injuries is None or not self.config.injuries_enabled:
            return None, None

        cache = self._load_cache(INJURIES, self.config.injury_ttl_hours, period)

        def fetch():
            report = self.injuries.fetch_report()
            return report.model_copy(update={"period": period}).model_dump()

        read = cache.get(injuries_key(period), fetch, period=period, force=force)
        if not read.value:
            return cache, None
        return cache, InjuryReport.model_validate(read.value)

    def _predict(
        self,
        upcoming: list[Game],
        teams: dict[str, Team],
        lines: dict[str, LineRecord],
        weather_impacts: dict[str, float],
        injury_report: Optional[InjuryReport],
        now: datetime,
    ) -> dict[str, Prediction]:
        """Fresh predictions for scheduled games; in-progress games keep their last one."""
        fresh: dict[str, Prediction] = {}
        for game in upcoming:
            if game.status != GameStatus.SCHEDULED:
                continue
            home = teams.get(game.home_team_id)
            away = teams.get(game.away_team_id)
            if home is None or away is None:
                logger.warning("prediction_skipped_unknown_team", game_id=game.game_id)
                continue

            signals = SideSignals(
                weather_impact=weather_impacts.get(game.game_id, 0.0),
                home_starter_out=bool(injury_report and injury_report.starter_out(home)),
                away_starter_out=bool(injury_report and injury_report.starter_out(away)),
            )
            prediction = build_prediction(
                self.predictor,
                self.classifier,
                game,
                home,
                away,
                lines.get(game.game_id),
                now,
                signals,
            )
            fresh[game.game_id] = prediction
            self.metrics.inc(PREDICTIONS_GENERATED)
            log_prediction(
                logger,
                game.game_id,
                home.abbreviation,
                away.abbreviation,
                spread=prediction.spread,
                total=prediction.total,
                market_spread=prediction.market_spread,
            )

        best_bets = sum(1 for p in fresh.values() if p.spread_best_bet or p.total_best_bet or p.moneyline_best_bet)
        self._note(
            "info",
            "predictions_generated",
            f"Generated {len(fresh)} predictions ({best_bets} with a best bet)",
            predictions=len(fresh),
            best_bets=best_bets,
        )
        return fresh
