"""Open-Meteo weather adapter — implements WeatherProvider."""

from __future__ import annotations

from lumio.data.models import WeatherReport
from lumio.integrations.open_meteo import fetch_forecast


class OpenMeteoWeatherProvider:
    """Open-Meteo implementation of WeatherProvider."""

    def __init__(self, api_url: str | None = None) -> None:
        if api_url is None:
            from lumio.config import settings
            api_url = settings.WEATHER_API_URL
        self._api_url = api_url

    async def fetch(
        self, latitude: float, longitude: float, locality: str | None = None,
    ) -> WeatherReport | None:
        return await fetch_forecast(latitude, longitude, self._api_url, locality)
