"""
OpenWeather adapter for outdoor venues.

Venues are looked up in a stadium table; indoor venues short-circuit to a
zero-impact report without a network call, unknown venues return None.
Games within 5 days use the 3-hour forecast closest to kickoff; anything
else uses current conditions as an approximation.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Callable, NamedTuple, Optional

import requests
import structlog

from ..models import WeatherReport
from ..retry import RetryConfig
from .base import HttpProvider, ProviderError, WeatherProvider

logger = structlog.get_logger(__name__)

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5"
FORECAST_HORIZON = timedelta(hours=120)


class Stadium(NamedTuple):
    lat: float
    lon: float
    indoor: bool


STADIUMS: dict[str, Stadium] = {
    "Arrowhead Stadium": Stadium(39.0489, -94.4839, False),
    "GEHA Field at Arrowhead Stadium": Stadium(39.0489, -94.4839, False),
    "Highmark Stadium": Stadium(42.7738, -78.7870, False),
    "Empower Field at Mile High": Stadium(39.7439, -105.0201, False),
    "Huntington Bank Field": Stadium(41.5061, -81.6995, False),
    "Cleveland Browns Stadium": Stadium(41.5061, -81.6995, False),
    "Gillette Stadium": Stadium(42.0909, -71.2643, False),
    "Hard Rock Stadium": Stadium(25.9580, -80.2389, False),
    "Lumen Field": Stadium(47.5952, -122.3316, False),
    "M&T Bank Stadium": Stadium(39.2780, -76.6227, False),
    "MetLife Stadium": Stadium(40.8128, -74.0742, False),
    "Nissan Stadium": Stadium(36.1665, -86.7713, False),
    "Paycor Stadium": Stadium(39.0955, -84.5160, False),
    "Raymond James Stadium": Stadium(27.9759, -82.5033, False),
    "Soldier Field": Stadium(41.8623, -87.6167, False),
    "EverBank Stadium": Stadium(30.3239, -81.6373, False),
    "Levi's Stadium": Stadium(37.4033, -121.9694, False),
    "Lambeau Field": Stadium(44.5013, -88.0622, False),
    "Lincoln Financial Field": Stadium(39.9008, -75.1675, False),
    "Acrisure Stadium": Stadium(40.4468, -80.0158, False),
    "Northwest Stadium": Stadium(38.9076, -76.8645, False),
    "Bank of America Stadium": Stadium(35.2258, -80.8528, False),
    # Domed / retractable roof
    "SoFi Stadium": Stadium(33.9535, -118.3392, True),
    "AT&T Stadium": Stadium(32.7473, -97.0945, True),
    "Caesars Superdome": Stadium(29.9511, -90.0812, True),
    "Ford Field": Stadium(42.3400, -83.0456, True),
    "Lucas Oil Stadium": Stadium(39.7601, -86.1639, True),
    "Mercedes-Benz Stadium": Stadium(33.7554, -84.4010, True),
    "State Farm Stadium": Stadium(33.5276, -112.2626, True),
    "U.S. Bank Stadium": Stadium(44.9736, -93.2575, True),
    "Allegiant Stadium": Stadium(36.0909, -115.1833, True),
    "NRG Stadium": Stadium(29.6847, -95.4107, True),
}

INDOOR_REPORT = WeatherReport(temperature_f=72, wind_mph=0, precipitation_pct=0, condition="Indoor", indoor=True)


class OpenWeatherClient(HttpProvider, WeatherProvider):
    """Venue weather from OpenWeather (imperial units)."""

    def __init__(
        self,
        api_key: str,
        stadiums: Optional[dict[str, Stadium]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        super().__init__(session=session, timeout=timeout, retry_config=retry_config)
        if not api_key:
            raise ProviderError("WEATHER_API_KEY not configured")
        self.api_key = api_key
        self.stadiums = stadiums if stadiums is not None else STADIUMS
        self.clock = clock

    def fetch_weather(self, venue: Optional[str], kickoff: datetime) -> Optional[WeatherReport]:
        stadium = self.stadiums.get(venue or "")
        if stadium is None:
            logger.debug("weather_venue_unknown", venue=venue)
            return None
        if stadium.indoor:
            return INDOOR_REPORT

        params = {"lat": stadium.lat, "lon": stadium.lon, "appid": self.api_key, "units": "imperial"}
        until_kickoff = kickoff - self.clock()
        if timedelta(0) <= until_kickoff <= FORECAST_HORIZON:
            data = self.get_json(f"{OPENWEATHER_URL}/forecast", params)
            return self._parse_forecast(data, kickoff)

        data = self.get_json(f"{OPENWEATHER_URL}/weather", params)
        return self._parse_current(data)

    @staticmethod
    def _parse_forecast(data: dict[str, Any], kickoff: datetime) -> Optional[WeatherReport]:
        entries = data.get("list") or []
        if not entries:
            return None
        target = kickoff.timestamp()
        closest = min(entries, key=lambda e: abs(e.get("dt", 0) - target))
        pop = closest.get("pop")
        return WeatherReport(
            temperature_f=(closest.get("main") or {}).get("temp"),
            wind_mph=(closest.get("wind") or {}).get("speed"),
            precipitation_pct=round(pop * 100) if pop is not None else 0,
            condition=((closest.get("weather") or [{}])[0]).get("description", ""),
        )

    @staticmethod
    def _parse_current(data: dict[str, Any]) -> WeatherReport:
        raining = bool((data.get("rain") or {}).get("1h")) or bool((data.get("snow") or {}).get("1h"))
        return WeatherReport(
            temperature_f=(data.get("main") or {}).get("temp"),
            wind_mph=(data.get("wind") or {}).get("speed"),
            precipitation_pct=100 if raining else 0,
            condition=((data.get("weather") or [{}])[0]).get("description", ""),
        )
