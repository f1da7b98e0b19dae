"""
Backtest grading and aggregation.

Every completed game is graded once, independently per market:

| Market    | Pick                               | Graded against            |
|-----------|------------------------------------|---------------------------|
| spread    | home if predicted spread < 0       | the model's own number    |
| ats       | home if predicted < market spread  | the market spread         |
| moneyline | home if win probability > 0.5      | straight up (tie = loss)  |
| total     | over if predicted > reference      | market total, else league |

Spreads are from the home perspective, so the home side covers a line when
(away - home) < line. Equality is a push.

`ats` is only graded when a market spread exists; games without one are an
explicit gap, never defaulted. High-conviction games
(|predicted - market| >= threshold) also go into a separate tally.
"""

from datetime import datetime
from typing import Iterable, Optional

from .confidence import ConfidenceClassifier
from .config import SportConfig
from .models import BacktestResult, BacktestTally, Game, Outcome, Pick, Prediction


def grade_spread(pick: Pick, actual_spread: float, line: float) -> Outcome:
    """Grade a side pick against a home-perspective line."""
    if actual_spread == line:
        return Outcome.PUSH
    home_covers = actual_spread < line
    if pick == Pick.HOME:
        return Outcome.WIN if home_covers else Outcome.LOSS
    return Outcome.LOSS if home_covers else Outcome.WIN


def grade_moneyline(pick: Pick, home_score: int, away_score: int) -> Outcome:
    """Straight-up winner. A tie grades as a loss."""
    if home_score == away_score:
        return Outcome.LOSS
    home_won = home_score > away_score
    if pick == Pick.HOME:
        return Outcome.WIN if home_won else Outcome.LOSS
    return Outcome.LOSS if home_won else Outcome.WIN


def grade_total(pick: Pick, actual_total: float, line: float) -> Outcome:
    if actual_total == line:
        return Outcome.PUSH
    went_over = actual_total > line
    if pick == Pick.OVER:
        return Outcome.WIN if went_over else Outcome.LOSS
    return Outcome.LOSS if went_over else Outcome.WIN


def merge_results(
    new: Iterable[BacktestResult],
    existing: Iterable[BacktestResult],
) -> list[BacktestResult]:
    """New over existing, deduplicated by game id (first occurrence wins)."""
    merged: list[BacktestResult] = []
    seen: set[str] = set()
    for result in list(new) + list(existing):
        if result.game_id in seen:
            continue
        seen.add(result.game_id)
        merged.append(result)
    return merged


class BacktestAggregator:
    """Grades completed games for one sport."""

    def __init__(self, config: SportConfig, classifier: Optional[ConfidenceClassifier] = None):
        self.config = config
        self.classifier = classifier or ConfidenceClassifier(config)

    def grade(
        self,
        prediction: Prediction,
        game: Game,
        market_spread: Optional[float],
        market_total: Optional[float],
        graded_at: datetime,
    ) -> BacktestResult:
        """
        Grade one completed game.

        Args:
            prediction: Pre-game prediction (stored, or rebuilt from pre-game ratings)
            game: The completed game (scores required)
            market_spread: Locked or last-seen market spread, None if never quoted
            market_total: Locked or last-seen market total, None if never quoted
            graded_at: Grading timestamp

        Returns:
            BacktestResult with per-market picks and outcomes
        """
        if not game.has_result:
            raise ValueError(f"Game {game.game_id} has no final score to grade")

        actual_spread = game.actual_spread
        actual_total = game.actual_total

        spread_pick = Pick.HOME if prediction.spread < 0 else Pick.AWAY
        spread_result = grade_spread(spread_pick, actual_spread, prediction.spread)

        ats_pick = None
        ats_result = None
        if market_spread is not None:
            ats_pick = Pick.HOME if prediction.spread < market_spread else Pick.AWAY
            ats_result = grade_spread(ats_pick, actual_spread, market_spread)

        moneyline_pick = Pick.HOME if prediction.home_win_probability > 0.5 else Pick.AWAY
        moneyline_result = grade_moneyline(moneyline_pick, game.home_score, game.away_score)

        total_reference = market_total if market_total is not None else self.config.default_total_reference
        total_pick = Pick.OVER if prediction.total > total_reference else Pick.UNDER
        total_result = grade_total(total_pick, actual_total, total_reference)

        return BacktestResult(
            game_id=game.game_id,
            kickoff=game.kickoff,
            home_team_id=game.home_team_id,
            away_team_id=game.away_team_id,
            predicted_home_score=prediction.home_score,
            predicted_away_score=prediction.away_score,
            predicted_spread=prediction.spread,
            predicted_total=prediction.total,
            home_win_probability=prediction.home_win_probability,
            home_score=game.home_score,
            away_score=game.away_score,
            spread_pick=spread_pick,
            spread_result=spread_result,
            moneyline_pick=moneyline_pick,
            moneyline_result=moneyline_result,
            total_pick=total_pick,
            total_reference=total_reference,
            total_result=total_result,
            graded_at=graded_at,
            market_spread=market_spread,
            market_total=market_total,
            ats_pick=ats_pick,
            ats_result=ats_result,
            total_vs_market=market_total is not None,
            high_conviction=self.classifier.is_high_conviction(prediction.spread, market_spread),
        )

    def accumulate(
        self,
        tally: BacktestTally,
        high_conviction_tally: BacktestTally,
        result: BacktestResult,
    ) -> tuple[BacktestTally, BacktestTally]:
        """Fold one result into the overall and high-conviction tallies."""
        tally = tally.record(result)
        if result.high_conviction:
            high_conviction_tally = high_conviction_tally.record(result)
        return tally, high_conviction_tally

    def tally_results(self, results: Iterable[BacktestResult]) -> tuple[BacktestTally, BacktestTally]:
        """Tallies for a batch of results."""
        tally, high_conviction = BacktestTally(), BacktestTally()
        for result in results:
            tally, high_conviction = self.accumulate(tally, high_conviction, result)
        return tally, high_conviction
