"""
Configuration for the rating sync engine.

Every sport runs through the same engine; what differs between NFL, NBA, NHL and
college basketball is data, kept here as `SportConfig` presets. Constants were
calibrated by backtesting each sport separately:

- NFL: 227 games. ELO_TO_POINTS 0.0593 (100 Elo = 5.93 pts), HFA 2.28,
  spread shrunk 55% toward zero, Elo adjustment capped at +/-4 pts.
- NBA: 178 games, 56.6% ATS / 59.9% O/U. 100 Elo = 4 pts, HCA 3.0.
- NHL: ratings kept fractional (goal margins are small). 100 Elo = 1.8 goals,
  home ice 0.25 goals, spread shrunk only 15%.
- CBB: teams seeded by conference tier; spread keeps 40% of the raw margin.
  Home picks that agree with the Elo favorite carried the ATS record, so
  conviction is rated by that alignment rather than edge size alone.

Runtime settings come from the environment (pydantic-settings, nested
delimiter "__"), e.g. SPORT_OVERRIDES__nba__elo_cap=15.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EdgeThresholds(BaseModel):
    """Edge needed for a 'high' / 'medium' confidence tier."""

    high: float = Field(description="Edge at or above which the tier is high (and a best bet).")
    medium: float = Field(description="Edge at or above which the tier is medium.")

    @model_validator(mode="after")
    def _ordered(self) -> "EdgeThresholds":
        if self.medium > self.high:
            raise ValueError(f"medium threshold {self.medium} exceeds high threshold {self.high}")
        return self


class SportConfig(BaseModel):
    """All per-sport constants used by the engine."""

    sport: str
    display_name: str

    # ─────────────────────────────────────────────────────────────────────────
    # PROVIDERS
    # ─────────────────────────────────────────────────────────────────────────
    espn_path: str = Field(description="ESPN site API path, e.g. football/nfl.")
    odds_sport_key: str = Field(description="The Odds API sport key.")
    period_mode: Literal["week", "iso_week"] = Field(
        default="iso_week",
        description="How games are bucketed into periods for signal caching.",
    )
    season_start_month: int = Field(
        default=10,
        description="Month the season starts; used to bound full-season fetches.",
    )
    upcoming_days: int = Field(default=8, description="Days ahead to fetch scheduled games.")

    # ─────────────────────────────────────────────────────────────────────────
    # RATING ENGINE
    # ─────────────────────────────────────────────────────────────────────────
    initial_rating: float = 1500.0
    tier_initial_ratings: dict[str, float] = Field(
        default_factory=dict,
        description="Initial rating per competitive tier (empty = flat initial_rating).",
    )
    conference_tiers: dict[str, str] = Field(
        default_factory=dict,
        description="Conference name -> tier key in tier_initial_ratings.",
    )
    default_tier: Optional[str] = None
    k_factor: float = 20.0
    elo_home_advantage: float = Field(
        default=48.0,
        description="Elo points added to the home side before computing expectation.",
    )
    mov_log_coefficient: float = 0.7
    mov_base: float = 0.8
    integer_ratings: bool = Field(
        default=True,
        description="Round updated ratings to integers (False keeps fractional ratings).",
    )

    # ─────────────────────────────────────────────────────────────────────────
    # SCORE PREDICTOR
    # ─────────────────────────────────────────────────────────────────────────
    league_avg_score: float = Field(description="League average points (goals) per team per game.")
    stat_regression_weight: float = Field(
        default=0.7,
        description="Weight kept on a team's own scoring average; the rest goes to the league average.",
    )
    elo_to_points: float = Field(description="Points of margin per Elo point of difference.")
    home_advantage_points: float = Field(description="Home advantage in points, split across both sides.")
    spread_regression: float = Field(
        description="Fraction the raw spread is shrunk toward zero.",
    )
    elo_cap: float = Field(
        description="Max total Elo adjustment in points (each side clamped to +/- cap/2). 0 disables.",
    )
    weather_enabled: bool = False
    weather_points_per_impact: float = Field(
        default=1.5,
        description="Total points removed per weather impact point, split evenly.",
    )
    injuries_enabled: bool = False
    starter_out_penalty: float = Field(
        default=0.0,
        description="Points removed from a side whose starting passer is out.",
    )

    # ─────────────────────────────────────────────────────────────────────────
    # GRADING + CONFIDENCE
    # ─────────────────────────────────────────────────────────────────────────
    default_total_reference: float = Field(
        description="Total used to grade over/under when no market total exists.",
    )
    high_conviction_threshold: float = Field(
        description="Min |predicted spread - market spread| for the high-conviction subset.",
    )
    spread_thresholds: EdgeThresholds
    total_thresholds: EdgeThresholds
    moneyline_thresholds: EdgeThresholds = Field(
        description="Moneyline edge in percentage points of win probability away from 50%.",
    )
    spread_avoid_band: Optional[tuple[float, Optional[float]]] = Field(
        default=None,
        description="Market |spread| range (inclusive) that never produces a spread best bet. An upper bound of None leaves it open.",
    )
    conviction_model: Literal["edge", "elo_alignment"] = Field(
        default="edge",
        description=(
            "How the model's backing of its spread pick is rated: by edge size alone, "
            "or by whether the pick agrees with the Elo favorite and the home side."
        ),
    )

    # ─────────────────────────────────────────────────────────────────────────
    # LINES + SIGNAL CACHE
    # ─────────────────────────────────────────────────────────────────────────
    lock_window_minutes: float = Field(default=60.0, description="Lock lines this close to kickoff.")
    weather_ttl_hours: float = 6.0
    injury_ttl_hours: float = 6.0

    @field_validator("spread_avoid_band")
    @classmethod
    def _band_ordered(cls, v):
        if v is not None and v[1] is not None and v[0] > v[1]:
            raise ValueError(f"spread_avoid_band lower bound {v[0]} exceeds upper bound {v[1]}")
        return v

    @field_validator("stat_regression_weight", "spread_regression")
    @classmethod
    def _fraction(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"expected a fraction in [0, 1], got {v}")
        return v


NFL = SportConfig(
    sport="nfl",
    display_name="NFL",
    espn_path="football/nfl",
    odds_sport_key="americanfootball_nfl",
    period_mode="week",
    season_start_month=9,
    league_avg_score=22.0,
    elo_to_points=0.0593,
    home_advantage_points=2.28,
    spread_regression=0.55,
    elo_cap=4.0,
    weather_enabled=True,
    injuries_enabled=True,
    starter_out_penalty=3.0,
    default_total_reference=44.0,
    high_conviction_threshold=2.0,
    spread_thresholds=EdgeThresholds(high=3.0, medium=1.5),
    total_thresholds=EdgeThresholds(high=4.0, medium=2.0),
    moneyline_thresholds=EdgeThresholds(high=15.0, medium=7.0),
    # ATS backtest: 63-67% with the market spread at 5 or less, 42.9% past a
    # touchdown; nothing above 5 is a spread best bet
    spread_avoid_band=(5.5, None),
)

NBA = SportConfig(
    sport="nba",
    display_name="NBA",
    espn_path="basketball/nba",
    odds_sport_key="basketball_nba",
    season_start_month=10,
    league_avg_score=112.0,
    elo_to_points=0.04,
    home_advantage_points=3.0,
    spread_regression=0.55,
    elo_cap=20.0,
    default_total_reference=224.0,
    high_conviction_threshold=2.0,
    spread_thresholds=EdgeThresholds(high=2.5, medium=1.0),
    total_thresholds=EdgeThresholds(high=5.0, medium=2.0),
    moneyline_thresholds=EdgeThresholds(high=15.0, medium=7.0),
)

NHL = SportConfig(
    sport="nhl",
    display_name="NHL",
    espn_path="hockey/nhl",
    odds_sport_key="icehockey_nhl",
    season_start_month=10,
    integer_ratings=False,
    league_avg_score=3.1,
    elo_to_points=0.018,
    home_advantage_points=0.25,
    spread_regression=0.15,
    elo_cap=3.0,
    default_total_reference=6.2,
    high_conviction_threshold=1.5,
    spread_thresholds=EdgeThresholds(high=0.5, medium=0.2),
    total_thresholds=EdgeThresholds(high=0.5, medium=0.2),
    moneyline_thresholds=EdgeThresholds(high=12.0, medium=5.0),
)

CBB = SportConfig(
    sport="cbb",
    display_name="College Basketball",
    espn_path="basketball/mens-college-basketball",
    odds_sport_key="basketball_ncaab",
    season_start_month=11,
    tier_initial_ratings={"power": 1600.0, "mid": 1500.0, "low": 1400.0},
    conference_tiers={
        "ACC": "power",
        "Big 12": "power",
        "Big East": "power",
        "Big Ten": "power",
        "SEC": "power",
        "Pac-12": "power",
        "American": "mid",
        "American Athletic": "mid",
        "Atlantic 10": "mid",
        "Mountain West": "mid",
        "Missouri Valley": "mid",
        "West Coast": "mid",
    },
    default_tier="low",
    conviction_model="elo_alignment",
    league_avg_score=72.0,
    elo_to_points=0.06,
    home_advantage_points=4.5,
    spread_regression=0.6,
    elo_cap=20.0,
    default_total_reference=144.0,
    high_conviction_threshold=2.0,
    spread_thresholds=EdgeThresholds(high=2.0, medium=1.0),
    total_thresholds=EdgeThresholds(high=5.0, medium=2.0),
    moneyline_thresholds=EdgeThresholds(high=15.0, medium=7.0),
)

SPORT_PRESETS: dict[str, SportConfig] = {cfg.sport: cfg for cfg in (NFL, NBA, NHL, CBB)}


class Settings(BaseSettings):
    """Runtime settings."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True
    service_name: str = "rating-sync"

    # Provider HTTP behavior
    http_timeout_s: float = Field(default=10.0, description="Per-call timeout for provider requests.")
    retry_attempts: int = Field(default=3, description="Attempts for transient provider failures.")
    retry_base_delay_s: float = 0.5
    signal_workers: int = Field(default=4, description="Threads used to fetch side signals.")

    # Credentials / endpoints
    odds_api_key: Optional[str] = None
    weather_api_key: Optional[str] = None
    injury_feed_url: Optional[str] = None

    # Persistence
    database_url: str = "sqlite:///rating_sync.db"
    artifact_dir: str = "artifacts"
    store_batch_size: int = Field(default=400, description="Max documents per store write batch.")

    # Sync behavior
    backfill_days: int = Field(default=7, description="Days re-scanned for late-arriving finals.")
    sport_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("store_batch_size", "retry_attempts", "signal_workers")
    @classmethod
    def _positive(cls, v):
        if v < 1:
            raise ValueError("must be >= 1")
        return v


def get_sport_config(sport: str, settings: Optional[Settings] = None) -> SportConfig:
    """Resolve a sport preset, applying any environment overrides."""
    key = sport.lower()
    if key not in SPORT_PRESETS:
        raise KeyError(f"Unknown sport '{sport}'. Expected one of: {', '.join(sorted(SPORT_PRESETS))}")
    preset = SPORT_PRESETS[key]
    overrides = (settings.sport_overrides.get(key) if settings else None) or {}
    if not overrides:
        return preset
    return SportConfig.model_validate({**preset.model_dump(), **overrides})
