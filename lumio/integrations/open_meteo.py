"""Open-Meteo API integration — hourly forecast to weather windows.

Uses the free forecast endpoint (no API key) to build a WeatherReport:
hourly WMO weather codes become one-hour windows which are merged when
adjacent hours share a condition; daily sunrise/sunset become sun events.

Gracefully degrades: returns None on any failure (timeout, HTTP error,
malformed payload, etc.).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

import httpx

from lumio.core.weather_windows import merge_adjacent
from lumio.data.models import SunTimes, WeatherReport, WeatherType, WeatherWindow

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 5
_WINDY_KMH = 40.0

_SNOW_CODES = frozenset({71, 73, 75, 77, 85, 86})
_RAIN_CODES = frozenset(
    {51, 53, 55, 56, 57, 61, 63, 65, 66, 67, 80, 81, 82, 95, 96, 99}
)
_CLOUD_CODES = frozenset({2, 3, 45, 48})


def map_weather_code(code: int | None, wind_speed_kmh: float | None = None) -> WeatherType:
    """Map a WMO weather code (plus wind) onto the app's conditions."""
    if code in _SNOW_CODES:
        return WeatherType.SNOWY
    if code in _RAIN_CODES:
        return WeatherType.RAINY
    if wind_speed_kmh is not None and wind_speed_kmh >= _WINDY_KMH:
        return WeatherType.WINDY
    if code in (0, 1):
        return WeatherType.SUNNY
    return WeatherType.CLOUDY


def _utc(ts: int | float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _build_windows(hourly: dict) -> list[WeatherWindow]:
    times = hourly.get("time") or []
    codes = hourly.get("weather_code") or []
    winds = hourly.get("wind_speed_10m") or [None] * len(times)
    windows = []
    for ts, code, wind in zip(times, codes, winds):
        start = _utc(ts)
        windows.append(WeatherWindow(start, start + timedelta(hours=1), map_weather_code(code, wind)))
    return merge_adjacent(windows)


def _build_sun_events(daily: dict, utc_offset_seconds: int) -> dict[date, SunTimes]:
    events: dict[date, SunTimes] = {}
    for day_ts, sunrise, sunset in zip(
        daily.get("time") or [], daily.get("sunrise") or [], daily.get("sunset") or [],
    ):
        if sunrise is None or sunset is None:
            continue
        local_day = (_utc(day_ts) + timedelta(seconds=utc_offset_seconds)).date()
        events[local_day] = SunTimes(sunrise=_utc(sunrise), sunset=_utc(sunset))
    return events


async def fetch_forecast(
    latitude: float,
    longitude: float,
    api_url: str,
    locality: str | None = None,
) -> WeatherReport | None:
    """Fetch the forecast for a coordinate and build a WeatherReport.

    Returns None on any failure.
    """
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
            resp = await client.get(
                api_url,
                params={
                    "latitude": latitude,
                    "longitude": longitude,
                    "current": "weather_code,temperature_2m,wind_speed_10m",
                    "hourly": "weather_code,wind_speed_10m",
                    "daily": "sunrise,sunset",
                    "timezone": "auto",
                    "timeformat": "unixtime",
                    "forecast_days": 2,
                },
            )
            resp.raise_for_status()
            data = resp.json()

        current = data.get("current") or {}
        if "weather_code" not in current:
            logger.warning("Open-Meteo response without current conditions")
            return None

        windows = _build_windows(data.get("hourly") or {})
        sun_events = _build_sun_events(
            data.get("daily") or {}, int(data.get("utc_offset_seconds") or 0),
        )
        report = WeatherReport(
            current_weather=map_weather_code(
                current.get("weather_code"), current.get("wind_speed_10m"),
            ),
            windows=windows,
            sun_events=sun_events,
            locality=locality,
            latitude=latitude,
            longitude=longitude,
            current_temperature=current.get("temperature_2m"),
        )
        logger.info(
            "Forecast fetched for (%.3f, %.3f): %s, %d window(s)",
            latitude, longitude, report.current_weather.value, len(windows),
        )
        return report
    except Exception as exc:
        logger.warning(
            "Open-Meteo forecast failed for (%s, %s): %s", latitude, longitude, exc,
        )
        return None
