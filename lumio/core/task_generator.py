"""
Lumio — Task Generator.

Turns a slot, a day and a weather report into concrete task instances:

1. The slot interval is intersected with the forecast windows.
2. The dominant (highest priority) condition drives how many tasks are drawn
   and how the categories are weighted.
3. Each task is drawn from an eligible category, never repeating a title, and
   scheduled at a random instant inside the slot's best contiguous window.

All randomness goes through the injected `random.Random`, so a seeded source
gives reproducible output.
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta
from typing import Iterable

from lumio.core.clock import Clock
from lumio.core.time_slots import ACTIVE_SLOTS, slot_interval
from lumio.core.weather_windows import (
    best_contiguous_window,
    day_length_minutes,
    dominant_weather,
    overlapping_windows,
)
from lumio.data.models import (
    TaskCategory,
    TaskTemplate,
    TimeSlot,
    UserTask,
    WeatherReport,
    WeatherType,
    WeatherWindow,
)

logger = logging.getLogger(__name__)

# Only the first part of the best window is used for the unlock moment
TRIGGER_SPREAD = timedelta(minutes=45)

FIXED_TRIGGER_TIMES: dict[TimeSlot, tuple[int, int]] = {
    TimeSlot.MORNING: (8, 30),
    TimeSlot.AFTERNOON: (14, 0),
    TimeSlot.EVENING: (18, 30),
}

_CATEGORY_ORDER: tuple[TaskCategory, ...] = (
    TaskCategory.OUTDOOR,
    TaskCategory.INDOOR_DIGITAL,
    TaskCategory.INDOOR_ACTIVITY,
    TaskCategory.SOCIALS,
    TaskCategory.PET_CARE,
    TaskCategory.PHYSICAL,
)

# Weights in _CATEGORY_ORDER order
_CATEGORY_WEIGHTS: dict[WeatherType, tuple[int, ...]] = {
    WeatherType.SUNNY: (6, 1, 1, 1, 1, 4),
    WeatherType.CLOUDY: (6, 1, 2, 2, 1, 6),
    WeatherType.RAINY: (0, 5, 4, 4, 4, 4),
    WeatherType.SNOWY: (2, 4, 5, 6, 2, 4),
    WeatherType.WINDY: (3, 4, 4, 4, 2, 4),
}

_COUNT_BANDS: dict[WeatherType, tuple[int, ...]] = {
    WeatherType.SUNNY: (3, 3, 4),
    WeatherType.CLOUDY: (2, 3, 3),
    WeatherType.SNOWY: (2, 3),
    WeatherType.WINDY: (2, 3),
    WeatherType.RAINY: (1, 2),
}
_NO_REPORT_BAND: tuple[int, ...] = (1, 2)


def category_weights(weather: WeatherType) -> dict[TaskCategory, int]:
    return dict(zip(_CATEGORY_ORDER, _CATEGORY_WEIGHTS[weather]))


def count_band(weather: WeatherType | None) -> tuple[int, ...]:
    """Possible task counts for a slot; None means no weather report."""
    if weather is None:
        return _NO_REPORT_BAND
    return _COUNT_BANDS[weather]


class TaskGenerator:
    """Builds task instances and generation trigger times for slots."""

    def __init__(
        self,
        clock: Clock,
        rng: random.Random | None = None,
        randomize_time: bool = True,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()
        self.randomize_time = randomize_time

    # ------------------------------------------------------------------
    # Trigger times
    # ------------------------------------------------------------------

    def generation_trigger_time(
        self, slot: TimeSlot, day: date, report: WeatherReport | None,
    ) -> datetime | None:
        """When the slot's tasks should unlock. None for night."""
        if slot not in ACTIVE_SLOTS:
            return None

        if not self.randomize_time:
            hour, minute = FIXED_TRIGGER_TIMES[slot]
            return self._clock.at(day, hour, minute)

        interval = slot_interval(slot, day, self._clock)
        windows = overlapping_windows(interval, report)
        fallback = report.current_weather if report else WeatherType.CLOUDY
        best = best_contiguous_window(windows, interval, fallback)
        head = WeatherWindow(best.start, min(best.end, best.start + TRIGGER_SPREAD), best.weather)
        return self._random_instant(head)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def task_count(self, weather: WeatherType | None) -> int:
        return self._rng.choice(count_band(weather))

    def generate_tasks(
        self,
        slot: TimeSlot,
        day: date,
        report: WeatherReport | None,
        templates: Iterable[TaskTemplate],
        reserved_titles: Iterable[str] = frozenset(),
    ) -> list[UserTask]:
        """Draw the slot's tasks. Empty when no template is usable."""
        catalog = list(templates)
        if not catalog:
            logger.warning("Template catalog is empty; no tasks for %s", slot.value)
            return []

        interval = slot_interval(slot, day, self._clock)
        windows = overlapping_windows(interval, report)
        weather = dominant_weather(windows) or WeatherType.SUNNY
        best = best_contiguous_window(windows, interval, weather)
        count = self.task_count(weather if report is not None else None)
        day_length = day_length_minutes(day, report.sun_events if report else None)

        used = set(reserved_titles)
        tasks: list[UserTask] = []
        for _ in range(count):
            template = self._pick_template(catalog, used, weather)
            if template is None:
                break
            used.add(template.title)
            tasks.append(
                UserTask(
                    title=template.title,
                    weather_type=best.weather,
                    category=template.category,
                    energy_reward=template.energy_reward,
                    scheduled_at=self._random_instant(best),
                    day_length_minutes=day_length,
                )
            )

        tasks.sort(key=lambda t: t.scheduled_at)
        logger.info(
            "Generated %d task(s) for %s %s (weather=%s)",
            len(tasks), day.isoformat(), slot.value, weather.value,
        )
        return tasks

    def _pick_template(
        self, catalog: list[TaskTemplate], used: set[str], weather: WeatherType,
    ) -> TaskTemplate | None:
        by_category: dict[TaskCategory, list[TaskTemplate]] = {}
        for template in catalog:
            if template.title in used or not template.category.is_eligible(weather):
                continue
            by_category.setdefault(template.category, []).append(template)
        if not by_category:
            return None

        weights = category_weights(weather)
        categories = [c for c in _CATEGORY_ORDER if c in by_category]
        chosen = self._rng.choices(
            categories, weights=[max(1, weights[c]) for c in categories],
        )[0]
        return self._rng.choice(by_category[chosen])

    def _random_instant(self, window: WeatherWindow) -> datetime:
        span = (window.end - window.start).total_seconds()
        if span <= 0:
            return window.start
        return window.start + timedelta(seconds=self._rng.random() * span)
