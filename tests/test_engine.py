"""Tests for lumio.core.engine — the Companion end to end on a temp database."""

import random
import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from lumio.core.engine import NOTICE_JOB_ID, Companion, Stores
from lumio.core.jobs import keys_with_prefix
from lumio.core.notifications import REMINDER_PREFIX, UNLOCK_TITLE, NotificationScheduler
from lumio.core.task_state import PROMOTION_PREFIX
from lumio.core.weather_service import WeatherService
from lumio.data.day_records import RecordMap
from lumio.data.models import TaskStatus, TimeSlot
from tests.helpers import paused_jobs, utc


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.send = AsyncMock()
    return mock


@pytest.fixture
def stores(tmp_db_path):
    return Stores.open(tmp_db_path)


@pytest.fixture
def make_companion(stores, clock, notifier):
    def _make(snack_drop_chance=0.0, location=None, jobs=None):
        provider = MagicMock()
        provider.fetch = AsyncMock(return_value=None)
        return Companion(
            stores,
            clock,
            WeatherService(provider, clock),
            NotificationScheduler(notifier, clock, jobs=jobs),
            rng=random.Random(7),
            location=location,
            randomize_task_time=False,
            snack_drop_chance=snack_drop_chance,
            notice_seconds=0.01,
            jobs=jobs,
        )
    return _make


async def _finish(companion, fake_now, task):
    assert await companion.start_task(task.id) is not None
    fake_now.advance(minutes=6)
    return await companion.complete_task(task.id)


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_seeds_and_generates(self, make_companion, stores, notifier):
        companion = make_companion()
        await companion.load()

        assert companion.templates
        assert stores.items.list_items()
        tasks = companion.tasks_today()
        assert 1 <= len(tasks) <= 2
        assert all(t.status is TaskStatus.PENDING for t in tasks)
        assert stores.records.get_flag(RecordMap.SLOT_GENERATED, "2024-05-14", TimeSlot.MORNING)
        notifier.send.assert_awaited_once()
        assert notifier.send.call_args[0][0] == UNLOCK_TITLE
        companion.close()

    @pytest.mark.asyncio
    async def test_reload_does_not_regenerate(self, make_companion, notifier):
        first = make_companion()
        await first.load()
        ids = {t.id for t in first.tasks_today()}
        first.close()

        second = make_companion()
        await second.load()
        assert {t.id for t in second.tasks_today()} == ids
        assert notifier.send.await_count == 1
        second.close()

    @pytest.mark.asyncio
    async def test_before_trigger_nothing_generated(self, make_companion, fake_now, notifier):
        fake_now.set(utc(2024, 5, 14, 7))
        companion = make_companion()
        await companion.load()
        assert companion.tasks_today() == []
        assert companion.next_wakeup(utc(2024, 5, 14, 7)) == utc(2024, 5, 14, 8, 30)
        notifier.send.assert_not_awaited()
        companion.close()


class TestTasks:
    @pytest.mark.asyncio
    async def test_complete_grants_rewards(self, make_companion, fake_now, stores):
        companion = make_companion()
        await companion.load()
        task = companion.tasks_today()[0]
        energy, bonding = companion.stats.total_energy, companion.pet.bonding_score

        result = await _finish(companion, fake_now, task)

        assert result.task.status is TaskStatus.COMPLETED
        assert result.energy_granted == task.category.energy_reward
        assert companion.stats.total_energy == energy + task.category.energy_reward
        assert companion.stats.completed_tasks_count == 1
        assert companion.pet.bonding_score == bonding + 1
        assert stores.history.fetch()[-1].total_energy == companion.stats.total_energy
        assert companion.notice == f"+{result.energy_granted} energy"
        companion.close()

    @pytest.mark.asyncio
    async def test_complete_before_buffer_is_rejected(self, make_companion):
        companion = make_companion()
        await companion.load()
        task = companion.tasks_today()[0]
        await companion.start_task(task.id)
        assert await companion.complete_task(task.id) is None
        companion.close()

    @pytest.mark.asyncio
    async def test_all_clear_and_refresh(self, make_companion, fake_now):
        companion = make_companion()
        await companion.load()
        results = [await _finish(companion, fake_now, t) for t in companion.tasks_today()]

        assert results[-1].all_clear is True
        assert companion.stats.total_days == 1
        assert companion.refresh_available is True

        fresh = await companion.refresh_current_slot()
        assert fresh
        assert await companion.can_refresh_current_slot() is False
        assert await companion.refresh_current_slot() is None
        companion.close()

    @pytest.mark.asyncio
    async def test_snack_drop(self, make_companion, fake_now):
        companion = make_companion(snack_drop_chance=1.0)
        await companion.load()
        result = await _finish(companion, fake_now, companion.tasks_today()[0])
        assert result.snack is not None
        assert companion.inventory()[result.snack.sku] == 1
        companion.close()

    @pytest.mark.asyncio
    async def test_store_failure_is_a_noop(self, make_companion, stores):
        companion = make_companion()
        await companion.load()
        task = companion.tasks_today()[0]
        with patch.object(stores.tasks, "get_task", side_effect=sqlite3.OperationalError("locked")):
            assert await companion.start_task(task.id) is None
        assert stores.tasks.get_task(task.id).status is TaskStatus.PENDING
        companion.close()


class TestJobs:
    @pytest.mark.asyncio
    async def test_timers_are_jobs_on_the_shared_scheduler(self, make_companion, fake_now):
        fake_now.set(utc(2024, 5, 14, 8, 30))
        with paused_jobs() as jobs:
            companion = make_companion(jobs=jobs)
            await companion.load()
            upcoming = [t.id for t in companion.tasks_today() if t.scheduled_at > fake_now.moment]
            assert sorted(keys_with_prefix(jobs, REMINDER_PREFIX)) == sorted(upcoming)
            task = companion.tasks_today()[0]

            await companion.start_task(task.id)
            assert jobs.get_job(PROMOTION_PREFIX + task.id) is not None

            fake_now.advance(minutes=6)
            await companion.complete_task(task.id)
            assert jobs.get_job(PROMOTION_PREFIX + task.id) is None
            notice = jobs.get_job(NOTICE_JOB_ID)
            assert notice.next_run_time > fake_now.moment

            companion.show_notice("again")
            assert [j.id for j in jobs.get_jobs()].count(NOTICE_JOB_ID) == 1
            await notice.func()
            assert companion.notice is None

            companion.close()
            assert jobs.get_jobs() == []


class TestShop:
    @pytest.mark.asyncio
    async def test_purchase_and_feed(self, make_companion, stores):
        companion = make_companion()
        await companion.load()
        bonding = companion.pet.bonding_score

        assert await companion.purchase("snack.energy.bar")
        assert companion.stats.total_energy == 35
        assert companion.inventory() == {"snack.energy.bar": 1}
        assert companion.pet.bonding_score == bonding + 2
        assert stores.history.fetch()[-1].total_energy == 35

        assert await companion.feed("snack.energy.bar")
        assert companion.inventory() == {}
        assert companion.pet.bonding_score == bonding + 4
        assert not await companion.feed("snack.energy.bar")
        companion.close()

    @pytest.mark.asyncio
    async def test_cannot_afford(self, make_companion):
        companion = make_companion()
        await companion.load()
        assert not await companion.purchase("decor.fairy.lights")
        assert companion.stats.total_energy == 50
        companion.close()

    @pytest.mark.asyncio
    async def test_decor_goes_on_display(self, make_companion, stores):
        companion = make_companion()
        await companion.load()
        companion.stats.total_energy = 100
        assert await companion.purchase("decor.fairy.lights")
        assert companion.stats.total_energy == 40
        assert stores.profile.get_or_create_pet().decorations == ["decor_fairy_lights"]
        companion.close()

    @pytest.mark.asyncio
    async def test_unknown_sku(self, make_companion):
        companion = make_companion()
        await companion.load()
        assert not await companion.purchase("snack.nope")
        companion.close()

    @pytest.mark.asyncio
    async def test_petting(self, make_companion, stores):
        companion = make_companion()
        await companion.load()
        pet = await companion.pet_pet()
        assert pet.bonding_score == 31
        assert stores.profile.get_or_create_pet().bonding_score == 31
        companion.close()


class TestRegion:
    @pytest.mark.asyncio
    async def test_update_region_switches_zone(self, make_companion, clock, stores):
        companion = make_companion()
        await companion.load()
        await companion.update_region("Japan - Tokyo")
        assert clock.tz == ZoneInfo("Asia/Tokyo")
        assert stores.profile.get_or_create_stats().region == "Japan - Tokyo"
        companion.close()
