"""Weather port — abstract interface for forecast providers.

Core modules depend on this protocol, never on a specific weather API.
"""

from __future__ import annotations

from typing import Protocol

from lumio.data.models import WeatherReport


class WeatherProvider(Protocol):
    """Abstract forecast source used by the weather service."""

    async def fetch(
        self, latitude: float, longitude: float, locality: str | None = None,
    ) -> WeatherReport | None: ...
