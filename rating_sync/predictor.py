"""
Score Predictor.

Turns ratings, per-game scoring averages and side signals into a predicted
score pair, spread, total and home win probability.

STEPS:
1. Regress each scoring average 70% own / 30% league average
   (a missing average is the league average)
2. Base score = mean of own regressed offense and opponent regressed defense
3. Elo adjustment = rating diff * elo_to_points, split evenly between sides,
   each side clamped to +/- elo_cap / 2
4. Home advantage: +half to home, -half to away (none at neutral sites)
5. Side signals: weather penalty split evenly; a fixed per-side penalty when
   that side's starting passer is out

Spread = (away - home) shrunk toward zero by spread_regression, nearest 0.5.
Total = unshrunk sum of the two scores.
"""

import math
from datetime import datetime
from typing import Optional

from .confidence import ConfidenceClassifier
from .config import SportConfig
from .elo_system import RatingEngine
from .line_lifecycle import market_spread, market_total
from .models import NO_SIGNALS, Game, LineMovement, LineRecord, Prediction, ScoreProjection, SideSignals, Team


def round_to(value: float, step: float) -> float:
    """Round half up to the nearest `step` (0.1, 0.5, ...)."""
    rounded = math.floor(value / step + 0.5) * step
    # Avoid float noise like 21.400000000000002 and negative zero
    return round(rounded, 2) + 0.0


class ScorePredictor:
    """Rating + stats -> projected score for one sport."""

    def __init__(self, config: SportConfig, engine: Optional[RatingEngine] = None):
        self.config = config
        self.engine = engine or RatingEngine(config)

    def regress(self, value: Optional[float]) -> float:
        """Blend a per-game average toward the league average."""
        avg = self.config.league_avg_score
        if value is None:
            return avg
        weight = self.config.stat_regression_weight
        return value * weight + avg * (1 - weight)

    def elo_adjustment(self, rating_home: float, rating_away: float) -> float:
        """Per-side point adjustment from the rating difference (home perspective)."""
        adjustment = (rating_home - rating_away) * self.config.elo_to_points / 2
        cap = self.config.elo_cap / 2
        if cap > 0:
            adjustment = max(-cap, min(cap, adjustment))
        return adjustment

    def predict(
        self,
        rating_home: float,
        rating_away: float,
        off_home: Optional[float],
        def_home: Optional[float],
        off_away: Optional[float],
        def_away: Optional[float],
        signals: SideSignals = NO_SIGNALS,
        neutral_site: bool = False,
    ) -> ScoreProjection:
        """
        Project a game.

        Args:
            rating_home / rating_away: Current Elo ratings
            off_home / off_away: Points scored per game
            def_home / def_away: Points allowed per game
            signals: Weather impact and starter-out flags
            neutral_site: True to drop home advantage

        Returns:
            ScoreProjection (spread negative = home favored)
        """
        cfg = self.config

        home = (self.regress(off_home) + self.regress(def_away)) / 2
        away = (self.regress(off_away) + self.regress(def_home)) / 2

        adjustment = self.elo_adjustment(rating_home, rating_away)
        home += adjustment
        away -= adjustment

        if not neutral_site:
            home += cfg.home_advantage_points / 2
            away -= cfg.home_advantage_points / 2

        if signals.weather_impact > 0:
            penalty = signals.weather_impact * cfg.weather_points_per_impact / 2
            home -= penalty
            away -= penalty

        if signals.home_starter_out:
            home -= cfg.starter_out_penalty
        if signals.away_starter_out:
            away -= cfg.starter_out_penalty

        home_score = round_to(max(0.0, home), 0.1)
        away_score = round_to(max(0.0, away), 0.1)

        spread = round_to((away_score - home_score) * (1 - cfg.spread_regression), 0.5)
        total = round_to(home_score + away_score, 0.1)

        return ScoreProjection(
            home_score=home_score,
            away_score=away_score,
            spread=spread,
            total=total,
            home_win_probability=round(
                self.engine.win_probability(rating_home, rating_away, neutral_site), 4
            ),
        )


def build_prediction(
    predictor: ScorePredictor,
    classifier: ConfidenceClassifier,
    game: Game,
    home: Team,
    away: Team,
    record: Optional[LineRecord],
    generated_at: datetime,
    signals: SideSignals = NO_SIGNALS,
) -> Prediction:
    """Full prediction for a game: projection, market edges and tiers."""
    projection = predictor.predict(
        home.rating,
        away.rating,
        home.points_for,
        home.points_against,
        away.points_for,
        away.points_against,
        signals=signals,
        neutral_site=game.neutral_site,
    )
    spread_line = market_spread(record)
    total_line = market_total(record)
    assessment = classifier.assess(projection, spread_line, total_line, home.rating, away.rating)

    return Prediction(
        game_id=game.game_id,
        home_team_id=game.home_team_id,
        away_team_id=game.away_team_id,
        kickoff=game.kickoff,
        home_score=projection.home_score,
        away_score=projection.away_score,
        spread=projection.spread,
        total=projection.total,
        home_win_probability=projection.home_win_probability,
        generated_at=generated_at,
        market_spread=spread_line,
        market_total=total_line,
        spread_edge=assessment.spread_edge,
        total_edge=assessment.total_edge,
        moneyline_edge=assessment.moneyline_edge,
        spread_confidence=assessment.spread_confidence,
        total_confidence=assessment.total_confidence,
        moneyline_confidence=assessment.moneyline_confidence,
        spread_best_bet=assessment.spread_best_bet,
        total_best_bet=assessment.total_best_bet,
        moneyline_best_bet=assessment.moneyline_best_bet,
        high_conviction=assessment.high_conviction,
        line_locked_at=record.locked_at if record else None,
        weather_impact=signals.weather_impact,
        home_starter_out=signals.home_starter_out,
        away_starter_out=signals.away_starter_out,
        conviction=assessment.conviction.level,
        expected_win_pct=assessment.conviction.expected_win_pct,
        line_movement=LineMovement.from_record(record),
    )
