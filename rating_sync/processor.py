"""
Incremental game processor.

Replays newly completed games through the rating engine and the backtest
grader, exactly once per game:

1. Select final games with scores whose id is not in the processed set
2. Sort ascending by kickoff and assert the order (ratings are order-sensitive)
3. Per game: pre-game prediction -> rating update -> grade -> mark processed

A game missing a team id, or naming a team that is not on the roster, is
skipped without being marked processed. An unexpected error in one game is
logged and the pass moves on to the next game.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

import structlog

from .backtest import BacktestAggregator
from .confidence import ConfidenceClassifier
from .elo_system import RatingEngine
from .line_lifecycle import market_spread, market_total
from .logging_config import log_error
from .metrics import GAMES_FAILED, GAMES_PROCESSED, GAMES_SKIPPED, SyncMetrics
from .models import BacktestResult, BacktestTally, Game, LineRecord, Prediction, Team
from .predictor import ScorePredictor, build_prediction

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProcessOutcome:
    """Everything a replay pass changed."""
    teams: dict[str, Team]
    processed_game_ids: frozenset[str]
    tally: BacktestTally
    high_conviction_tally: BacktestTally
    results: list[BacktestResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def newly_processed(self) -> list[str]:
        return [r.game_id for r in self.results]


def _assert_chronological(games: list[Game]) -> None:
    for earlier, later in zip(games, games[1:]):
        if later.kickoff < earlier.kickoff:
            raise AssertionError(
                f"Replay order violated: {later.game_id} ({later.kickoff.isoformat()}) "
                f"after {earlier.game_id} ({earlier.kickoff.isoformat()})"
            )


class IncrementalGameProcessor:
    """Exactly-once replay of completed games for one sport."""

    def __init__(
        self,
        engine: RatingEngine,
        predictor: ScorePredictor,
        classifier: ConfidenceClassifier,
        aggregator: BacktestAggregator,
        metrics: Optional[SyncMetrics] = None,
    ):
        self.engine = engine
        self.predictor = predictor
        self.classifier = classifier
        self.aggregator = aggregator
        self.metrics = metrics or SyncMetrics()

    def select(self, games: Iterable[Game], processed_game_ids: set[str]) -> list[Game]:
        """Unprocessed completed games in kickoff order."""
        pending = [g for g in games if g.has_result and g.game_id not in processed_game_ids]
        pending.sort(key=lambda g: (g.kickoff, g.game_id))
        _assert_chronological(pending)
        return pending

    def run(
        self,
        games: Iterable[Game],
        teams: dict[str, Team],
        processed_game_ids: set[str],
        tally: BacktestTally,
        high_conviction_tally: BacktestTally,
        lines: dict[str, LineRecord],
        predictions: dict[str, Prediction],
        now: datetime,
    ) -> ProcessOutcome:
        """
        Replay every unprocessed completed game.

        Args:
            games: Known games (any status)
            teams: Roster keyed by team id, with current ratings
            processed_game_ids: Ids already replayed in earlier passes
            tally / high_conviction_tally: Running backtest tallies
            lines: Line records keyed by game id
            predictions: Last stored pre-game prediction per game id
            now: Grading timestamp

        Returns:
            ProcessOutcome; inputs are not modified
        """
        teams = dict(teams)
        processed = set(processed_game_ids)
        results: list[BacktestResult] = []
        skipped: list[str] = []
        failed: list[str] = []

        for game in self.select(games, processed):
            if not game.home_team_id or not game.away_team_id:
                skipped.append(game.game_id)
                self.metrics.inc(GAMES_SKIPPED)
                logger.warning("game_skipped_missing_team_id", game_id=game.game_id)
                continue

            home = teams.get(game.home_team_id)
            away = teams.get(game.away_team_id)
            if home is None or away is None:
                skipped.append(game.game_id)
                self.metrics.inc(GAMES_SKIPPED)
                logger.warning(
                    "game_skipped_unknown_team",
                    game_id=game.game_id,
                    home_team_id=game.home_team_id,
                    away_team_id=game.away_team_id,
                )
                continue

            try:
                record = lines.get(game.game_id)
                prediction = predictions.get(game.game_id) or build_prediction(
                    self.predictor, self.classifier, game, home, away, record, now
                )

                new_home, new_away = self.engine.update(
                    home.rating, away.rating, game.home_score, game.away_score, game.neutral_site
                )
                result = self.aggregator.grade(
                    prediction, game, market_spread(record), market_total(record), now
                )
            except Exception as e:
                failed.append(game.game_id)
                self.metrics.inc(GAMES_FAILED)
                log_error(logger, e, {"game_id": game.game_id})
                continue

            teams[home.team_id] = home.with_rating(new_home)
            teams[away.team_id] = away.with_rating(new_away)
            tally, high_conviction_tally = self.aggregator.accumulate(tally, high_conviction_tally, result)
            processed.add(game.game_id)
            results.append(result)
            self.metrics.inc(GAMES_PROCESSED)

            logger.debug(
                "game_processed",
                game_id=game.game_id,
                home_rating=new_home,
                away_rating=new_away,
                ats=result.ats_result.value if result.ats_result else None,
            )

        return ProcessOutcome(
            teams=teams,
            processed_game_ids=frozenset(processed),
            tally=tally,
            high_conviction_tally=high_conviction_tally,
            results=results,
            skipped=skipped,
            failed=failed,
        )
