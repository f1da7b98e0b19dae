"""
Published read model.

One denormalized JSON document per sport, rebuilt from scratch every pass:

    generated, sport, season, period
    teams            -> by rating, best first
    games            -> upcoming predictions by kickoff, with conviction and
                        line movement (opening vs. last seen)
    recent_games     -> 10 most recent graded games
    backtest         -> summary, high_conviction_summary, odds_coverage, results

Pure projection: no I/O, no clock.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from .models import BacktestResult, BacktestTally, Prediction, Team, to_iso

RECENT_RESULTS_LIMIT = 10


def _team_ref(team: Optional[Team], team_id: str) -> dict[str, Any]:
    if team is None:
        return {"team_id": team_id, "name": "", "abbreviation": "", "rating": None}
    return {
        "team_id": team.team_id,
        "name": team.name,
        "abbreviation": team.abbreviation,
        "rating": team.rating,
    }


def odds_coverage(results: Iterable[BacktestResult]) -> dict[str, Any]:
    """How many graded games had a market spread / market total to grade against."""
    results = list(results)
    graded = len(results)
    with_spread = sum(1 for r in results if r.market_spread is not None)
    with_total = sum(1 for r in results if r.market_total is not None)
    return {
        "graded_games": graded,
        "with_market_spread": with_spread,
        "with_market_total": with_total,
        "missing_market_spread": graded - with_spread,
        "spread_coverage_pct": round(with_spread / graded * 100, 1) if graded else None,
    }


def build_artifact(
    sport: str,
    season: Optional[int],
    period: Optional[str],
    generated_at: datetime,
    teams: dict[str, Team],
    predictions: Iterable[Prediction],
    results: Iterable[BacktestResult],
    tally: BacktestTally,
    high_conviction_tally: BacktestTally,
) -> dict[str, Any]:
    """
    Project sync state into the published document.

    Args:
        sport: Sport key ("nfl", "nba", ...)
        season / period: Current season label and period id
        generated_at: Pass timestamp
        teams: Roster keyed by team id
        predictions: Predictions for upcoming (non-final) games
        results: Every graded game of the season
        tally / high_conviction_tally: Running backtest tallies

    Returns:
        JSON-serializable dict
    """
    results = list(results)

    ranked = sorted(teams.values(), key=lambda t: (-t.rating, t.name))
    upcoming = sorted(predictions, key=lambda p: (p.kickoff, p.game_id))
    by_recency = sorted(results, key=lambda r: (r.kickoff, r.game_id), reverse=True)

    return {
        "generated": to_iso(generated_at),
        "sport": sport,
        "season": season,
        "period": period,
        "teams": [
            {"rank": rank, **team.to_dict()}
            for rank, team in enumerate(ranked, start=1)
        ],
        "games": [
            {
                **p.to_dict(),
                "home_team": _team_ref(teams.get(p.home_team_id), p.home_team_id),
                "away_team": _team_ref(teams.get(p.away_team_id), p.away_team_id),
            }
            for p in upcoming
        ],
        "recent_games": [
            {
                "game_id": r.game_id,
                "kickoff": to_iso(r.kickoff),
                "home_team": _team_ref(teams.get(r.home_team_id), r.home_team_id),
                "away_team": _team_ref(teams.get(r.away_team_id), r.away_team_id),
                "home_score": r.home_score,
                "away_score": r.away_score,
                "status": "final",
            }
            for r in by_recency[:RECENT_RESULTS_LIMIT]
        ],
        "backtest": {
            "summary": tally.to_dict(),
            "high_conviction_summary": high_conviction_tally.to_dict(),
            "odds_coverage": odds_coverage(results),
            "results": [r.to_dict() for r in by_recency],
        },
    }
