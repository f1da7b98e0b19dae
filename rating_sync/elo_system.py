"""
Elo Rating Engine.

One scalar rating per team, updated game-by-game from final scores. The same
engine serves every sport; constants come from SportConfig.

METHODOLOGY:
- Expected score: 1 / (1 + 10^((away - (home + bonus)) / 400))
- Home bonus: 48 Elo points added to the home side (0 at neutral sites)
- K-factor: 20, scaled by a margin of victory multiplier
- MOV multiplier: ln(|margin| + 1) * 0.7 + 0.8 (1.0 for a tie)
- No cap: ratings can drift as far as results take them
- New ratings rounded to integers, except sports with fractional ratings (NHL)

SEEDING:
- Flat initial rating (1500), or
- Tier-indexed by conference (CBB: power / mid-major / low-major)

EXAMPLE:
- 1500 vs 1500, home wins by 10
- expected = 0.569, multiplier = 2.48, K_eff = 49.6
- home -> 1521, away -> 1479
"""

import math
from typing import Iterable, Optional

from .config import SportConfig
from .models import Game, Team


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


class RatingEngine:
    """Elo updates, win probabilities and initial ratings for one sport."""

    def __init__(self, config: SportConfig):
        self.config = config

    # ─────────────────────────────────────────────────────────────────────────
    # SEEDING
    # ─────────────────────────────────────────────────────────────────────────

    def initial_rating(self, conference: Optional[str] = None) -> float:
        """Initial rating for a team, from its conference tier when configured."""
        tiers = self.config.tier_initial_ratings
        if not tiers:
            return self.config.initial_rating

        tier = self.config.conference_tiers.get(conference or "", self.config.default_tier)
        if tier is None or tier not in tiers:
            return self.config.initial_rating
        return tiers[tier]

    def seed(self, team: Team) -> Team:
        """Team with its rating reset to the initial value."""
        return team.with_rating(self.initial_rating(team.conference))

    # ─────────────────────────────────────────────────────────────────────────
    # PROBABILITIES
    # ─────────────────────────────────────────────────────────────────────────

    def expected_score(self, rating_home: float, rating_away: float, neutral_site: bool = False) -> float:
        """Expected score for the home side (0-1), home bonus included."""
        bonus = 0.0 if neutral_site else self.config.elo_home_advantage
        return 1.0 / (1.0 + 10 ** ((rating_away - (rating_home + bonus)) / 400))

    def win_probability(self, rating_home: float, rating_away: float, neutral_site: bool = False) -> float:
        """Home win probability."""
        return self.expected_score(rating_home, rating_away, neutral_site)

    def mov_multiplier(self, margin: float) -> float:
        """Margin of victory multiplier. Damps blowouts relative to linear scaling."""
        if margin == 0:
            return 1.0
        return math.log(abs(margin) + 1) * self.config.mov_log_coefficient + self.config.mov_base

    # ─────────────────────────────────────────────────────────────────────────
    # UPDATES
    # ─────────────────────────────────────────────────────────────────────────

    def update(
        self,
        rating_home: float,
        rating_away: float,
        score_home: int,
        score_away: int,
        neutral_site: bool = False,
    ) -> tuple[float, float]:
        """
        New (home, away) ratings after a final score.

        Args:
            rating_home: Home rating before the game
            rating_away: Away rating before the game
            score_home: Home final score
            score_away: Away final score
            neutral_site: True to drop the home bonus

        Returns:
            Tuple of (new_home, new_away)
        """
        expected_home = self.expected_score(rating_home, rating_away, neutral_site)

        margin = score_home - score_away
        if margin > 0:
            actual_home = 1.0
        elif margin < 0:
            actual_home = 0.0
        else:
            actual_home = 0.5

        k = self.config.k_factor * self.mov_multiplier(margin)
        change = k * (actual_home - expected_home)

        new_home = rating_home + change
        new_away = rating_away - change

        if self.config.integer_ratings:
            new_home = _round_half_up(new_home)
            new_away = _round_half_up(new_away)
        else:
            new_home = round(new_home, 2)
            new_away = round(new_away, 2)

        return new_home, new_away

    def replay(self, games: Iterable[Game], ratings: dict[str, float]) -> dict[str, float]:
        """
        Replay final games over a rating map, returning a new map.

        Games must be in ascending kickoff order; ratings are order-sensitive.
        Teams missing from `ratings` start at the flat initial rating.
        """
        result = dict(ratings)
        previous = None
        for game in games:
            if previous is not None and game.kickoff < previous:
                raise ValueError(
                    f"Games out of chronological order at {game.game_id}: "
                    f"{game.kickoff.isoformat()} < {previous.isoformat()}"
                )
            previous = game.kickoff
            if not game.has_result:
                continue

            home = result.get(game.home_team_id, self.config.initial_rating)
            away = result.get(game.away_team_id, self.config.initial_rating)
            result[game.home_team_id], result[game.away_team_id] = self.update(
                home, away, game.home_score, game.away_score, game.neutral_site
            )

        return result
