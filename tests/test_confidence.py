"""
Tests for edge classification and best-bet flags.
"""

import pytest

from rating_sync.confidence import (
    ConfidenceClassifier,
    Conviction,
    classify,
    elo_alignment_conviction,
    in_avoid_band,
)
from rating_sync.config import EdgeThresholds
from rating_sync.models import Confidence, ScoreProjection


def _projection(spread=-7.0, total=48.0, p=0.5):
    return ScoreProjection(
        home_score=(total - spread) / 2,
        away_score=(total + spread) / 2,
        spread=spread,
        total=total,
        home_win_probability=p,
    )


class TestClassify:

    @pytest.mark.parametrize(
        "edge,expected",
        [
            (3.0, Confidence.HIGH),
            (-3.5, Confidence.HIGH),
            (1.5, Confidence.MEDIUM),
            (2.9, Confidence.MEDIUM),
            (1.4, Confidence.LOW),
            (0.0, Confidence.LOW),
            (None, Confidence.LOW),
        ],
    )
    def test_tiers(self, edge, expected):
        thresholds = EdgeThresholds(high=3.0, medium=1.5)
        assert classify(edge, thresholds) == expected, f"Expected {expected} for edge {edge}"

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ValueError):
            EdgeThresholds(high=1.0, medium=2.0)


class TestAvoidBand:

    @pytest.mark.parametrize("spread", [-5.5, -6.0, -7.0, 6.5])
    def test_inside(self, spread):
        assert in_avoid_band(spread, (5.5, 7.0))

    @pytest.mark.parametrize("spread", [-3.0, -7.5, 5.0, None])
    def test_outside(self, spread):
        assert not in_avoid_band(spread, (5.5, 7.0))

    def test_no_band(self):
        assert not in_avoid_band(-6.0, None)

    @pytest.mark.parametrize("spread,expected", [(-5.0, False), (5.5, True), (-7.5, True), (-14.0, True)])
    def test_open_upper_bound(self, spread, expected):
        assert in_avoid_band(spread, (5.5, None)) is expected


class TestAssess:
    """Edges against the market."""

    def test_spread_best_bet(self, nfl_config):
        assessment = ConfidenceClassifier(nfl_config).assess(_projection(spread=-7.0), -3.0, None)
        assert assessment.spread_edge == 4.0
        assert assessment.spread_confidence == Confidence.HIGH
        assert assessment.spread_best_bet is True
        assert assessment.high_conviction is True

    @pytest.mark.parametrize("market", [-6.0, -7.0, -10.0, 13.5])
    def test_avoid_band_overrides_best_bet(self, nfl_config, market):
        """NFL markets past 5 points never produce a spread best bet, however big the edge."""
        assessment = ConfidenceClassifier(nfl_config).assess(_projection(spread=market - 4.0), market, None)
        assert assessment.spread_confidence == Confidence.HIGH
        assert assessment.spread_best_bet is False, f"Expected the avoid band to block a {market} market"

    def test_small_market_spread_can_be_best_bet(self, nfl_config):
        assessment = ConfidenceClassifier(nfl_config).assess(_projection(spread=-9.0), -5.0, None)
        assert assessment.spread_best_bet is True

    def test_no_avoid_band_outside_nfl(self, nba_config):
        assessment = ConfidenceClassifier(nba_config).assess(_projection(spread=-10.0), -6.0, None)
        assert assessment.spread_best_bet is True

    def test_total_edge(self, nfl_config):
        assessment = ConfidenceClassifier(nfl_config).assess(_projection(total=40.0), None, 44.5)
        assert assessment.total_edge == 4.5
        assert assessment.total_confidence == Confidence.HIGH
        assert assessment.total_best_bet is True

    def test_moneyline_edge_in_points(self, nfl_config):
        assessment = ConfidenceClassifier(nfl_config).assess(_projection(p=0.68), None, None)
        assert assessment.moneyline_edge == 18.0
        assert assessment.moneyline_confidence == Confidence.HIGH
        assert assessment.moneyline_best_bet is True

    def test_no_market(self, nfl_config):
        assessment = ConfidenceClassifier(nfl_config).assess(_projection(), None, None)
        assert assessment.spread_edge is None and assessment.total_edge is None
        assert assessment.spread_confidence == Confidence.LOW
        assert assessment.total_confidence == Confidence.LOW
        assert not assessment.spread_best_bet and not assessment.total_best_bet
        assert assessment.high_conviction is False

    def test_high_conviction_threshold(self, nfl_config):
        classifier = ConfidenceClassifier(nfl_config)
        assert classifier.is_high_conviction(-5.0, -3.0) is True
        assert classifier.is_high_conviction(-4.5, -3.0) is False
        assert classifier.is_high_conviction(-9.0, None) is False


class TestConviction:

    @pytest.mark.parametrize(
        "predicted,market,home,away,expected",
        [
            (-8.0, -5.0, 1600.0, 1500.0, Conviction(Confidence.HIGH, 60.0)),
            (-8.0, -5.0, 1530.0, 1500.0, Conviction(Confidence.HIGH, 58.0)),
            (-6.0, -5.0, 1600.0, 1500.0, Conviction(Confidence.MEDIUM, 55.0)),
            (-8.0, -5.0, 1450.0, 1500.0, Conviction(Confidence.MEDIUM, 54.0)),
            (-3.0, -5.0, 1600.0, 1500.0, Conviction(Confidence.LOW, 52.0)),
            (-2.0, None, 1600.0, 1500.0, Conviction(Confidence.MEDIUM, 55.0)),
            (-5.5, -5.0, 1500.0, 1500.0, Conviction(Confidence.LOW, 52.0)),
        ],
    )
    def test_elo_alignment_buckets(self, predicted, market, home, away, expected):
        result = elo_alignment_conviction(predicted, market, home, away, edge_threshold=2.0)
        assert result == expected, f"Expected {expected}, got {result}"

    def test_cbb_assess_reports_alignment(self, cbb_config):
        assessment = ConfidenceClassifier(cbb_config).assess(
            _projection(spread=-4.0), -5.0, None, home_rating=1600.0, away_rating=1500.0
        )
        assert assessment.conviction == Conviction(Confidence.LOW, 52.0), "Expected an away pick to stay at baseline"
        assert assessment.high_conviction is False

    def test_cbb_without_ratings_falls_back_to_edge(self, cbb_config):
        conviction = ConfidenceClassifier(cbb_config).conviction(-8.0, -5.0)
        assert conviction == Conviction(Confidence.HIGH)

    @pytest.mark.parametrize(
        "predicted,market,level",
        [(-7.0, -3.0, Confidence.HIGH), (-4.5, -3.0, Confidence.MEDIUM), (-3.5, -3.0, Confidence.LOW), (-7.0, None, Confidence.LOW)],
    )
    def test_edge_model(self, nfl_config, predicted, market, level):
        conviction = ConfidenceClassifier(nfl_config).conviction(predicted, market, 1600.0, 1400.0)
        assert conviction.level == level
        assert conviction.expected_win_pct is None
