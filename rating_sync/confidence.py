"""
Confidence classification for predicted-vs-market edges.

Edges:
- spread: |predicted spread - market spread| (points)
- total: |predicted total - market total| (points)
- moneyline: |home win probability - 0.5| * 100 (percentage points)

Tiers: |edge| >= high -> HIGH, >= medium -> MEDIUM, else LOW.
A best bet clears the high threshold. For spreads, a market spread inside the
sport's avoid band is never a best bet, whatever the edge.
Without a market number the spread/total tier is LOW and never a best bet.

Conviction rates the spread pick itself. Most sports use the edge size;
college basketball rates home picks that agree with the Elo favorite.
"""

from dataclasses import dataclass
from typing import Optional

from .config import EdgeThresholds, SportConfig
from .models import Confidence, ScoreProjection


def classify(edge: Optional[float], thresholds: EdgeThresholds) -> Confidence:
    """Map an edge to a confidence tier."""
    if edge is None:
        return Confidence.LOW
    magnitude = abs(edge)
    if magnitude >= thresholds.high:
        return Confidence.HIGH
    if magnitude >= thresholds.medium:
        return Confidence.MEDIUM
    return Confidence.LOW


def in_avoid_band(market_spread: Optional[float], band: Optional[tuple[float, Optional[float]]]) -> bool:
    if market_spread is None or band is None:
        return False
    low, high = band
    size = abs(market_spread)
    return low <= size and (high is None or size <= high)


@dataclass(frozen=True)
class Conviction:
    """How strongly the model backs its market spread pick."""
    level: Confidence
    expected_win_pct: Optional[float] = None


# Elo gap (points) above which an aligned home pick earns the top bucket
ELO_GAP_BOOST = 50.0

# Backtested ATS win percentage per elo_alignment bucket
ALIGNED_HOME_EDGE_WIDE_GAP = 60.0
ALIGNED_HOME_EDGE = 58.0
ALIGNED_HOME = 55.0
HOME_EDGE_AGAINST_ELO = 54.0
BASELINE = 52.0


def edge_conviction(
    predicted_spread: float,
    market_spread: Optional[float],
    config: SportConfig,
) -> Conviction:
    """Conviction from the size of the edge over the market spread."""
    if market_spread is None:
        return Conviction(Confidence.LOW)
    edge = abs(predicted_spread - market_spread)
    if edge >= config.high_conviction_threshold:
        return Conviction(Confidence.HIGH)
    if edge >= config.spread_thresholds.medium:
        return Conviction(Confidence.MEDIUM)
    return Conviction(Confidence.LOW)


def elo_alignment_conviction(
    predicted_spread: float,
    market_spread: Optional[float],
    home_rating: float,
    away_rating: float,
    edge_threshold: float,
) -> Conviction:
    """
    Conviction from whether the spread pick sides with the home team and
    with the Elo favorite.

    Away picks stay at the baseline whatever their edge. Without a market
    the pick is read against a pick'em line.
    """
    picks_home = predicted_spread < (market_spread if market_spread is not None else 0.0)
    if not picks_home:
        return Conviction(Confidence.LOW, BASELINE)

    elo_aligned = home_rating > away_rating
    has_edge = market_spread is not None and abs(market_spread - predicted_spread) >= edge_threshold

    if elo_aligned and has_edge:
        wide = abs(home_rating - away_rating) > ELO_GAP_BOOST
        return Conviction(Confidence.HIGH, ALIGNED_HOME_EDGE_WIDE_GAP if wide else ALIGNED_HOME_EDGE)
    if elo_aligned:
        return Conviction(Confidence.MEDIUM, ALIGNED_HOME)
    if has_edge:
        return Conviction(Confidence.MEDIUM, HOME_EDGE_AGAINST_ELO)
    return Conviction(Confidence.LOW, BASELINE)


@dataclass(frozen=True)
class EdgeAssessment:
    """Edges, tiers and best-bet flags for one prediction."""
    spread_edge: Optional[float]
    total_edge: Optional[float]
    moneyline_edge: float
    spread_confidence: Confidence
    total_confidence: Confidence
    moneyline_confidence: Confidence
    spread_best_bet: bool
    total_best_bet: bool
    moneyline_best_bet: bool
    high_conviction: bool
    conviction: Conviction = Conviction(Confidence.LOW)


class ConfidenceClassifier:
    """Per-sport edge classification."""

    def __init__(self, config: SportConfig):
        self.config = config

    def is_high_conviction(self, predicted_spread: float, market_spread: Optional[float]) -> bool:
        if market_spread is None:
            return False
        return abs(predicted_spread - market_spread) >= self.config.high_conviction_threshold

    def spread_best_bet(self, spread_edge: Optional[float], market_spread: Optional[float]) -> bool:
        if spread_edge is None:
            return False
        if in_avoid_band(market_spread, self.config.spread_avoid_band):
            return False
        return abs(spread_edge) >= self.config.spread_thresholds.high

    def conviction(
        self,
        predicted_spread: float,
        market_spread: Optional[float],
        home_rating: Optional[float] = None,
        away_rating: Optional[float] = None,
    ) -> Conviction:
        """Conviction under the sport's model; the edge model when ratings are unknown."""
        cfg = self.config
        if cfg.conviction_model == "elo_alignment" and home_rating is not None and away_rating is not None:
            return elo_alignment_conviction(
                predicted_spread, market_spread, home_rating, away_rating, cfg.high_conviction_threshold
            )
        return edge_conviction(predicted_spread, market_spread, cfg)

    def assess(
        self,
        projection: ScoreProjection,
        market_spread: Optional[float],
        market_total: Optional[float],
        home_rating: Optional[float] = None,
        away_rating: Optional[float] = None,
    ) -> EdgeAssessment:
        cfg = self.config

        spread_edge = None
        if market_spread is not None:
            spread_edge = round(abs(projection.spread - market_spread), 2)

        total_edge = None
        if market_total is not None:
            total_edge = round(abs(projection.total - market_total), 2)

        moneyline_edge = round(abs(projection.home_win_probability - 0.5) * 100, 1)

        return EdgeAssessment(
            spread_edge=spread_edge,
            total_edge=total_edge,
            moneyline_edge=moneyline_edge,
            spread_confidence=classify(spread_edge, cfg.spread_thresholds),
            total_confidence=classify(total_edge, cfg.total_thresholds),
            moneyline_confidence=classify(moneyline_edge, cfg.moneyline_thresholds),
            spread_best_bet=self.spread_best_bet(spread_edge, market_spread),
            total_best_bet=total_edge is not None and total_edge >= cfg.total_thresholds.high,
            moneyline_best_bet=moneyline_edge >= cfg.moneyline_thresholds.high,
            high_conviction=self.is_high_conviction(projection.spread, market_spread),
            conviction=self.conviction(projection.spread, market_spread, home_rating, away_rating),
        )
