"""External data providers: schedules, team stats, odds, weather and injuries."""

from .base import (
    InjuryProvider,
    OddsProvider,
    ProviderError,
    ScheduleProvider,
    TeamStatsProvider,
    TransientProviderError,
    WeatherProvider,
)

__all__ = [
    "InjuryProvider",
    "OddsProvider",
    "ProviderError",
    "ScheduleProvider",
    "TeamStatsProvider",
    "TransientProviderError",
    "WeatherProvider",
]
