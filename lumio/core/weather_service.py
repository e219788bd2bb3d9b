"""Weather service — cached access to the forecast provider.

A report is reused while it is younger than the TTL and the requested
location is within the distance threshold of the one it was fetched for.
Missing location or a failed fetch never raises: the cached report is served
when there is one, otherwise None ("no weather", which the generator treats
as sunny with a lower task count).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from lumio.core.clock import Clock
from lumio.data.models import WeatherReport
from lumio.ports.weather_port import WeatherProvider

logger = logging.getLogger(__name__)

_EARTH_RADIUS_KM = 6371.0


def distance_km(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle distance between two (lat, lon) pairs."""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * _EARTH_RADIUS_KM * math.asin(math.sqrt(h))


class WeatherService:
    """Fetches reports through a provider with a TTL + distance cache."""

    def __init__(
        self,
        provider: WeatherProvider,
        clock: Clock,
        ttl: timedelta = timedelta(minutes=30),
        distance_threshold_km: float = 20.0,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self._ttl = ttl
        self._distance_threshold_km = distance_threshold_km
        self._cached: WeatherReport | None = None
        self._cached_at: datetime | None = None
        self._cached_location: tuple[float, float] | None = None

    @property
    def cached_report(self) -> WeatherReport | None:
        return self._cached

    def _cache_is_fresh(self, location: tuple[float, float]) -> bool:
        if self._cached is None or self._cached_at is None or self._cached_location is None:
            return False
        within_ttl = self._clock.now() - self._cached_at < self._ttl
        within_distance = distance_km(location, self._cached_location) <= self._distance_threshold_km
        return within_ttl and within_distance

    async def fetch_weather(
        self,
        location: tuple[float, float] | None,
        locality: str | None = None,
        force: bool = False,
    ) -> WeatherReport | None:
        if location is None:
            return self._cached

        if not force and self._cache_is_fresh(location):
            logger.debug("Serving cached weather report")
            return self._cached

        try:
            report = await self._provider.fetch(location[0], location[1], locality)
        except Exception as exc:
            logger.warning("Weather provider failed: %s", exc)
            report = None

        if report is None:
            logger.warning("No fresh weather report; using %s", "cache" if self._cached else "defaults")
            return self._cached

        self._cached = report
        self._cached_at = self._clock.now()
        self._cached_location = location
        return report
