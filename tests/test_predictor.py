"""
Tests for the score predictor.
"""

from datetime import UTC, datetime

import pytest

from rating_sync.confidence import ConfidenceClassifier
from rating_sync.models import Confidence, LineRecord, SideSignals, Team
from rating_sync.predictor import ScorePredictor, build_prediction, round_to


class TestRoundTo:

    @pytest.mark.parametrize(
        "value,step,expected",
        [
            (23.14, 0.1, 23.1),
            (20.86, 0.1, 20.9),
            (-0.99, 0.5, -1.0),
            (-3.25, 0.5, -3.0),
            (2.75, 0.5, 3.0),
            (-0.2, 0.5, 0.0),
        ],
    )
    def test_half_up(self, value, step, expected):
        assert round_to(value, step) == expected, f"Expected {expected}, got {round_to(value, step)}"

    def test_no_negative_zero(self):
        assert str(round_to(-0.1, 0.5)) == "0.0"


class TestPredict:
    """Projection from ratings + stats + signals."""

    def test_even_teams_league_average(self, nfl_config):
        """Even teams with no stats: league average split by home advantage."""
        projection = ScorePredictor(nfl_config).predict(1500, 1500, None, None, None, None)

        assert projection.home_score == 23.1, f"Expected 23.1, got {projection.home_score}"
        assert projection.away_score == 20.9, f"Expected 20.9, got {projection.away_score}"
        assert projection.spread == -1.0, f"Expected -1.0 (shrunk 55%), got {projection.spread}"
        assert projection.total == 44.0
        assert projection.home_win_probability == pytest.approx(0.5686, abs=1e-4)

    def test_neutral_site_drops_home_advantage(self, nfl_config):
        projection = ScorePredictor(nfl_config).predict(1500, 1500, None, None, None, None, neutral_site=True)
        assert projection.home_score == projection.away_score == 22.0
        assert projection.spread == 0.0
        assert projection.home_win_probability == pytest.approx(0.5)

    def test_stats_are_regressed(self, nfl_config):
        """A 30 ppg offense counts as 27.6 after 70/30 regression."""
        predictor = ScorePredictor(nfl_config)
        assert predictor.regress(30.0) == pytest.approx(27.6)
        assert predictor.regress(None) == 22.0

    def test_elo_adjustment_is_capped(self, nfl_config):
        """400 Elo points would be ~11.9 pts per side; NFL caps at 2 per side."""
        projection = ScorePredictor(nfl_config).predict(1900, 1500, None, None, None, None)
        assert projection.home_score == 25.1
        assert projection.away_score == 18.9

    def test_adjustment_within_cap(self, nba_config):
        predictor = ScorePredictor(nba_config)
        assert predictor.elo_adjustment(1600, 1500) == pytest.approx(2.0)

    def test_weather_lowers_total(self, nfl_config):
        """Impact 1.5 removes 2.25 points, split evenly."""
        predictor = ScorePredictor(nfl_config)
        projection = predictor.predict(1500, 1500, None, None, None, None, SideSignals(weather_impact=1.5))
        assert projection.home_score == 22.0
        assert projection.away_score == 19.7
        assert projection.total == 41.7

    def test_starter_out_penalty(self, nfl_config):
        predictor = ScorePredictor(nfl_config)
        base = predictor.predict(1500, 1500, None, None, None, None)
        hurt = predictor.predict(1500, 1500, None, None, None, None, SideSignals(home_starter_out=True))
        assert hurt.home_score == pytest.approx(base.home_score - 3.0)
        assert hurt.away_score == base.away_score
        assert hurt.spread > base.spread

    def test_scores_floored_at_zero(self, nhl_config):
        predictor = ScorePredictor(nhl_config)
        projection = predictor.predict(1500, 1500, 0.0, 9.0, 0.0, 9.0, SideSignals(weather_impact=10.0))
        assert projection.home_score >= 0.0
        assert projection.away_score >= 0.0

    def test_spread_on_half_point_grid(self, nba_config):
        projection = ScorePredictor(nba_config).predict(1562, 1490, 118.3, 111.0, 109.4, 115.2)
        assert (projection.spread * 2) == int(projection.spread * 2)

    def test_deterministic(self, nba_config):
        predictor = ScorePredictor(nba_config)
        args = (1562, 1490, 118.3, 111.0, 109.4, 115.2)
        assert predictor.predict(*args) == predictor.predict(*args)


class TestBuildPrediction:

    def test_uses_locked_line(self, nfl_config, teams, make_game):
        game = make_game("g9", "1", "2", datetime(2025, 10, 19, 17, tzinfo=UTC))
        locked_at = datetime(2025, 10, 19, 16, 30, tzinfo=UTC)
        record = LineRecord(
            game_id="g9",
            last_seen_spread=-6.5,
            last_seen_total=50.0,
            closing_spread=-6.0,
            closing_total=49.5,
            locked_at=locked_at,
        )
        prediction = build_prediction(
            ScorePredictor(nfl_config),
            ConfidenceClassifier(nfl_config),
            game,
            teams["1"],
            teams["2"],
            record,
            datetime(2025, 10, 19, 16, 45, tzinfo=UTC),
        )
        assert prediction.market_spread == -6.0
        assert prediction.market_total == 49.5
        assert prediction.line_locked_at == locked_at
        # -6.0 sits inside the NFL avoid band
        assert prediction.spread_best_bet is False

    def test_without_market(self, nfl_config, teams, make_game):
        game = make_game("g9", "1", "2", datetime(2025, 10, 19, 17, tzinfo=UTC))
        prediction = build_prediction(
            ScorePredictor(nfl_config),
            ConfidenceClassifier(nfl_config),
            game,
            teams["1"],
            Team("2", "Buffalo Bills", "BUF", 1500.0),
            None,
            datetime(2025, 10, 15, tzinfo=UTC),
        )
        assert prediction.market_spread is None
        assert prediction.spread_edge is None
        assert prediction.spread_confidence == Confidence.LOW
        assert prediction.total_best_bet is False
        assert prediction.high_conviction is False
        assert prediction.line_movement is None

    def test_line_movement_published(self, nfl_config, teams, make_game):
        game = make_game("g9", "1", "2", datetime(2025, 10, 19, 17, tzinfo=UTC))
        updated = datetime(2025, 10, 18, 12, tzinfo=UTC)
        record = LineRecord(
            game_id="g9",
            opening_spread=-3.0,
            opening_total=47.5,
            last_seen_spread=-4.5,
            last_seen_total=46.0,
            captured_at=datetime(2025, 10, 14, tzinfo=UTC),
            last_updated_at=updated,
        )
        prediction = build_prediction(
            ScorePredictor(nfl_config),
            ConfidenceClassifier(nfl_config),
            game,
            teams["1"],
            teams["2"],
            record,
            datetime(2025, 10, 18, 13, tzinfo=UTC),
        )

        movement = prediction.line_movement
        assert movement.opening_spread == -3.0 and movement.last_seen_spread == -4.5
        assert movement.spread_move == -1.5, f"Expected the spread to move 1.5 toward home, got {movement.spread_move}"
        assert movement.total_move == -1.5
        assert movement.last_updated_at == updated
        stored = prediction.to_dict()["line_movement"]
        assert stored["opening_total"] == 47.5
        assert stored["last_updated_at"].startswith("2025-10-18T12:00")

    def test_cbb_conviction_uses_elo_alignment(self, cbb_config, make_game):
        game = make_game("c1", "10", "20", datetime(2025, 11, 20, 0, tzinfo=UTC))
        home = Team("10", "Duke Blue Devils", "DUKE", 1650.0, 82.0, 66.0, 5, "ACC")
        away = Team("20", "Wofford Terriers", "WOF", 1420.0, 70.0, 74.0, 5, "Southern")
        record = LineRecord(game_id="c1", opening_spread=-3.0, last_seen_spread=-3.0)

        prediction = build_prediction(
            ScorePredictor(cbb_config),
            ConfidenceClassifier(cbb_config),
            game,
            home,
            away,
            record,
            datetime(2025, 11, 19, tzinfo=UTC),
        )

        assert prediction.spread < -5.0, f"Expected a big home favorite, got {prediction.spread}"
        assert prediction.conviction == Confidence.HIGH
        assert prediction.expected_win_pct == 60.0
        assert prediction.to_dict()["conviction"] == "high"
