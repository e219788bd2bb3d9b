"""Tests for lumio.core.task_generator."""

import random
from collections import Counter
from datetime import date, timedelta

import pytest

from lumio.core.clock import Clock
from lumio.core.task_generator import TRIGGER_SPREAD, TaskGenerator, category_weights, count_band
from lumio.data.models import (
    SunTimes,
    TaskCategory,
    TaskStatus,
    TimeSlot,
    WeatherReport,
    WeatherType,
    WeatherWindow,
)
from tests.helpers import utc

DAY = date(2024, 5, 14)


def _report(weather, windows=None, sun_events=None):
    return WeatherReport(weather, windows=windows or [], sun_events=sun_events or {})


@pytest.fixture
def generator(rng):
    return TaskGenerator(Clock("UTC"), rng)


class TestGenerateTasks:
    def test_empty_catalog_gives_no_tasks(self, generator):
        assert generator.generate_tasks(TimeSlot.MORNING, DAY, None, []) == []

    def test_tasks_are_sorted_and_inside_slot(self, generator, templates):
        for _ in range(20):
            tasks = generator.generate_tasks(TimeSlot.AFTERNOON, DAY, _report(WeatherType.CLOUDY), templates)
            times = [t.scheduled_at for t in tasks]
            assert times == sorted(times)
            for moment in times:
                assert utc(2024, 5, 14, 12) <= moment < utc(2024, 5, 14, 17)

    def test_new_tasks_are_pending(self, generator, templates):
        tasks = generator.generate_tasks(TimeSlot.MORNING, DAY, None, templates)
        assert tasks
        assert all(t.status is TaskStatus.PENDING for t in tasks)
        assert all(t.started_at is None and t.completed_at is None for t in tasks)

    def test_no_report_uses_low_band_and_sunny(self, generator, templates):
        for _ in range(20):
            tasks = generator.generate_tasks(TimeSlot.MORNING, DAY, None, templates)
            assert 1 <= len(tasks) <= 2
            assert all(t.weather_type is WeatherType.SUNNY for t in tasks)

    def test_sunny_report_draws_more_tasks(self, generator, templates):
        for _ in range(20):
            tasks = generator.generate_tasks(TimeSlot.MORNING, DAY, _report(WeatherType.SUNNY), templates)
            assert 3 <= len(tasks) <= 4

    def test_titles_are_unique_and_reserved_titles_skipped(self, generator, templates):
        reserved = {"Walk around the block", "Stretch for five minutes"}
        for _ in range(30):
            tasks = generator.generate_tasks(
                TimeSlot.MORNING, DAY, _report(WeatherType.SUNNY), templates, reserved,
            )
            titles = [t.title for t in tasks]
            assert len(titles) == len(set(titles))
            assert not reserved & set(titles)

    def test_exhausted_catalog_yields_fewer_tasks(self, generator, templates):
        outdoor_only = [t for t in templates if t.category is TaskCategory.OUTDOOR][:2]
        tasks = generator.generate_tasks(TimeSlot.MORNING, DAY, _report(WeatherType.SUNNY), outdoor_only)
        assert len(tasks) == 2

    def test_rainy_excludes_outdoor(self, generator, templates):
        for _ in range(30):
            tasks = generator.generate_tasks(TimeSlot.EVENING, DAY, _report(WeatherType.RAINY), templates)
            assert all(t.category is not TaskCategory.OUTDOOR for t in tasks)

    def test_sunny_excludes_digital_and_pet_care(self, generator, templates):
        for _ in range(30):
            tasks = generator.generate_tasks(TimeSlot.MORNING, DAY, _report(WeatherType.SUNNY), templates)
            assert all(
                t.category not in (TaskCategory.INDOOR_DIGITAL, TaskCategory.PET_CARE) for t in tasks
            )

    def test_sunny_favours_outdoor(self, generator, templates):
        counts = Counter()
        for _ in range(200):
            for task in generator.generate_tasks(TimeSlot.MORNING, DAY, _report(WeatherType.SUNNY), templates):
                counts[task.category] += 1
        assert counts[TaskCategory.OUTDOOR] > counts[TaskCategory.INDOOR_ACTIVITY]
        assert counts[TaskCategory.OUTDOOR] > counts[TaskCategory.SOCIALS]

    def test_scheduled_inside_best_window(self, generator, templates):
        windows = [
            WeatherWindow(utc(2024, 5, 14, 6), utc(2024, 5, 14, 9), WeatherType.RAINY),
            WeatherWindow(utc(2024, 5, 14, 9), utc(2024, 5, 14, 10), WeatherType.SUNNY),
            WeatherWindow(utc(2024, 5, 14, 10), utc(2024, 5, 14, 12), WeatherType.RAINY),
        ]
        tasks = generator.generate_tasks(
            TimeSlot.MORNING, DAY, _report(WeatherType.RAINY, windows), templates,
        )
        for task in tasks:
            assert utc(2024, 5, 14, 9) <= task.scheduled_at < utc(2024, 5, 14, 10)
            assert task.weather_type is WeatherType.SUNNY

    def test_day_length_from_sun_events(self, generator, templates):
        events = {DAY: SunTimes(utc(2024, 5, 14, 5), utc(2024, 5, 14, 20))}
        tasks = generator.generate_tasks(
            TimeSlot.MORNING, DAY, _report(WeatherType.CLOUDY, sun_events=events), templates,
        )
        assert all(t.day_length_minutes == 15 * 60 for t in tasks)

    def test_seeded_source_is_reproducible(self, templates):
        first = TaskGenerator(Clock("UTC"), random.Random(7))
        second = TaskGenerator(Clock("UTC"), random.Random(7))
        a = first.generate_tasks(TimeSlot.MORNING, DAY, _report(WeatherType.CLOUDY), templates)
        b = second.generate_tasks(TimeSlot.MORNING, DAY, _report(WeatherType.CLOUDY), templates)
        assert [(t.title, t.scheduled_at) for t in a] == [(t.title, t.scheduled_at) for t in b]


class TestCountsAndWeights:
    def test_better_weather_never_means_fewer_tasks(self):
        order = [WeatherType.SUNNY, WeatherType.CLOUDY, WeatherType.SNOWY, WeatherType.RAINY]
        for better, worse in zip(order, order[1:]):
            assert min(count_band(better)) >= min(count_band(worse))
            assert max(count_band(better)) >= max(count_band(worse))
        assert max(count_band(None)) <= min(count_band(WeatherType.CLOUDY))

    def test_weights_table(self):
        assert category_weights(WeatherType.SUNNY)[TaskCategory.OUTDOOR] == 6
        assert category_weights(WeatherType.RAINY)[TaskCategory.OUTDOOR] == 0
        assert category_weights(WeatherType.SNOWY)[TaskCategory.SOCIALS] == 6


class TestTriggerTime:
    def test_fixed_times(self, rng):
        generator = TaskGenerator(Clock("UTC"), rng, randomize_time=False)
        assert generator.generation_trigger_time(TimeSlot.MORNING, DAY, None) == utc(2024, 5, 14, 8, 30)
        assert generator.generation_trigger_time(TimeSlot.AFTERNOON, DAY, None) == utc(2024, 5, 14, 14)
        assert generator.generation_trigger_time(TimeSlot.EVENING, DAY, None) == utc(2024, 5, 14, 18, 30)

    def test_night_has_no_trigger(self, generator):
        assert generator.generation_trigger_time(TimeSlot.NIGHT, DAY, None) is None

    def test_randomized_trigger_in_head_of_best_window(self, generator):
        windows = [
            WeatherWindow(utc(2024, 5, 14, 12), utc(2024, 5, 14, 15), WeatherType.RAINY),
            WeatherWindow(utc(2024, 5, 14, 15), utc(2024, 5, 14, 17), WeatherType.CLOUDY),
        ]
        report = _report(WeatherType.RAINY, windows)
        for _ in range(20):
            trigger = generator.generation_trigger_time(TimeSlot.AFTERNOON, DAY, report)
            assert utc(2024, 5, 14, 15) <= trigger < utc(2024, 5, 14, 15) + TRIGGER_SPREAD

    def test_short_window_limits_spread(self, generator):
        windows = [
            WeatherWindow(utc(2024, 5, 14, 6), utc(2024, 5, 14, 11, 50), WeatherType.RAINY),
            WeatherWindow(utc(2024, 5, 14, 11, 50), utc(2024, 5, 14, 12), WeatherType.SUNNY),
        ]
        trigger = generator.generation_trigger_time(TimeSlot.MORNING, DAY, _report(WeatherType.RAINY, windows))
        assert utc(2024, 5, 14, 11, 50) <= trigger < utc(2024, 5, 14, 12)
        assert TRIGGER_SPREAD > timedelta(minutes=10)
