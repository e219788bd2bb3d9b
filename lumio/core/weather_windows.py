"""Weather window math — pure business logic.

Clipping, merging and ranking of forecast windows against a slot interval.
No I/O and no randomness: the same windows always give the same answer.
"""

from __future__ import annotations

from datetime import date, timedelta

from lumio.data.models import Interval, SunTimes, WeatherReport, WeatherType, WeatherWindow

# Higher wins; favours outdoor-friendly conditions when a slot is mixed
WEATHER_PRIORITY: dict[WeatherType, int] = {
    WeatherType.SUNNY: 5,
    WeatherType.CLOUDY: 4,
    WeatherType.SNOWY: 3,
    WeatherType.WINDY: 2,
    WeatherType.RAINY: 1,
}

MERGE_TOLERANCE = timedelta(seconds=60)


def priority(weather: WeatherType) -> int:
    return WEATHER_PRIORITY[weather]


def merge_adjacent(windows: list[WeatherWindow]) -> list[WeatherWindow]:
    """Merge touching or overlapping windows that share a condition."""
    if not windows:
        return []
    ordered = sorted(windows, key=lambda w: w.start)
    merged = [ordered[0]]
    for window in ordered[1:]:
        last = merged[-1]
        if window.weather == last.weather and window.start <= last.end + MERGE_TOLERANCE:
            merged[-1] = WeatherWindow(last.start, max(last.end, window.end), last.weather)
        else:
            merged.append(window)
    return merged


def overlapping_windows(interval: Interval, report: WeatherReport | None) -> list[WeatherWindow]:
    """Windows intersecting the interval, with fallbacks for missing coverage."""
    if report is None:
        return [WeatherWindow(interval.start, interval.end, WeatherType.SUNNY)]
    windows = [w for w in report.windows if interval.overlaps(w.start, w.end)]
    if not windows:
        return [WeatherWindow(interval.start, interval.end, report.current_weather)]
    return windows


def dominant_weather(windows: list[WeatherWindow]) -> WeatherType | None:
    if not windows:
        return None
    return max(windows, key=lambda w: priority(w.weather)).weather


def best_contiguous_window(
    windows: list[WeatherWindow],
    interval: Interval,
    fallback: WeatherType,
) -> WeatherWindow:
    """Best window inside the interval.

    Windows are clipped to the interval and same-condition neighbours merged.
    Highest priority wins, then the longest, then the earliest.
    """
    clipped = []
    for window in windows:
        start = max(window.start, interval.start)
        end = min(window.end, interval.end)
        if end > start:
            clipped.append(WeatherWindow(start, end, window.weather))

    if not clipped:
        return WeatherWindow(interval.start, interval.end, fallback)

    merged = merge_adjacent(clipped)
    return min(
        merged,
        key=lambda w: (-priority(w.weather), -(w.end - w.start).total_seconds(), w.start),
    )


def day_length_minutes(day: date, sun_events: dict[date, SunTimes] | None) -> int:
    if not sun_events or day not in sun_events:
        return 0
    sun = sun_events[day]
    sunset = sun.sunset
    if sunset < sun.sunrise:
        sunset += timedelta(days=1)
    return int((sunset - sun.sunrise).total_seconds() // 60)
