"""
Lumio — Companion engine.

The Companion is the single owner of task, stats, pet and day-record
mutations. Every mutating call takes one asyncio.Lock, so state-machine
transitions, rewards and record read-modify-write cycles never interleave.
Weather fetches and notification delivery happen outside the lock.

Store failures (sqlite3.Error) are logged and turn the call into a no-op;
the in-memory stats and pet stay as they were last mutated and the next
successful save persists them.

Timers (promotions, reminders, the notice) are jobs on the shared scheduler
passed in as `jobs`; without one they are simply not armed.
"""

from __future__ import annotations

import asyncio
import logging
import random
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from apscheduler.schedulers.base import BaseScheduler

from lumio.core import pet_engine, rewards
from lumio.core.catalog import ensure_items, ensure_task_templates
from lumio.core.clock import Clock
from lumio.core.jobs import cancel_job
from lumio.core.notifications import NotificationScheduler
from lumio.core.refresh_gate import RefreshGate
from lumio.core.slot_scheduler import GenerationOutcome, SlotScheduler
from lumio.core.task_generator import TaskGenerator
from lumio.core.task_state import TaskStateMachine
from lumio.core.time_slots import current_interval, slot_day
from lumio.core.weather_service import WeatherService
from lumio.data.day_records import DayRecordStore
from lumio.data.db import HistoryDB, ItemDB, ProfileDB, TaskDB, TemplateDB
from lumio.data.models import Item, Pet, TaskTemplate, UserStats, UserTask, WeatherReport

logger = logging.getLogger(__name__)

NOTICE_JOB_ID = "notice"


# ---------------------------------------------------------------------------
# Wiring types
# ---------------------------------------------------------------------------


@dataclass
class Stores:
    """All repositories backed by one SQLite file."""

    tasks: TaskDB
    templates: TemplateDB
    profile: ProfileDB
    items: ItemDB
    history: HistoryDB
    records: DayRecordStore

    @classmethod
    def open(cls, db_path: str | None = None) -> Stores:
        return cls(
            tasks=TaskDB(db_path),
            templates=TemplateDB(db_path),
            profile=ProfileDB(db_path),
            items=ItemDB(db_path),
            history=HistoryDB(db_path),
            records=DayRecordStore(db_path),
        )


@dataclass
class CompletionResult:
    task: UserTask
    energy_granted: int
    all_clear: bool = False
    snack: Item | None = None


# ---------------------------------------------------------------------------
# Companion
# ---------------------------------------------------------------------------


class Companion:
    """Serialized owner of the pet's world."""

    def __init__(
        self,
        stores: Stores,
        clock: Clock,
        weather: WeatherService,
        notifications: NotificationScheduler,
        rng: random.Random | None = None,
        location: tuple[float, float] | None = None,
        locality: str | None = None,
        region: str = "",
        randomize_task_time: bool = True,
        unlock_grace: timedelta = timedelta(minutes=90),
        snack_drop_chance: float = 0.3,
        notice_seconds: float = 3.0,
        jobs: BaseScheduler | None = None,
    ) -> None:
        self._stores = stores
        self._clock = clock
        self._weather = weather
        self._notifications = notifications
        self._rng = rng or random.Random()
        self._location = location
        self._locality = locality
        self._region = region
        self._snack_drop_chance = snack_drop_chance
        self._notice_seconds = notice_seconds
        self._jobs = jobs

        self._lock = asyncio.Lock()
        self.generator = TaskGenerator(clock, self._rng, randomize_time=randomize_task_time)
        self.state = TaskStateMachine(stores.tasks, clock, self._lock, jobs)
        self.scheduler = SlotScheduler(
            stores.tasks, stores.records, self.generator, clock, grace=unlock_grace,
        )
        self.gate = RefreshGate(stores.tasks, stores.records, self.scheduler, self.state, clock)

        self.stats = UserStats()
        self.pet = Pet()
        self.templates: list[TaskTemplate] = []
        self.report: WeatherReport | None = None
        self.refresh_available = False
        self.notice: str | None = None

    async def _locked(self, label: str, fn: Callable[..., Any], *args: Any, default: Any = None) -> Any:
        async with self._lock:
            try:
                return fn(*args)
            except sqlite3.Error as exc:
                logger.error("Store failure during %s: %s", label, exc)
                return default

    def _save_profile(self) -> None:
        self._stores.profile.save_stats(self.stats)
        self._stores.profile.save_pet(self.pet)

    def _record_energy(self, now: datetime) -> None:
        self._stores.history.append(now, self.stats.total_energy)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def _bootstrap(self) -> int:
        ensure_task_templates(self._stores.templates, self._stores.records)
        ensure_items(self._stores.items, self._stores.records)
        self.templates = self._stores.templates.list_all()
        self.stats = self._stores.profile.get_or_create_stats()
        self.pet = self._stores.profile.get_or_create_pet()

        if self._region and self.stats.region != self._region:
            self.stats.region = self._region
            self._stores.profile.save_stats(self.stats)
        self._clock.update_timezone(self.stats.region)
        self.generator.randomize_time = self.stats.randomize_task_time and self.generator.randomize_time
        self._notifications.enabled = self._notifications.enabled and self.stats.notifications_enabled
        return self.state.resume_started_tasks()

    async def load(self) -> None:
        """Bootstrap catalogs and profile, resume started tasks, run the first checks."""
        resumed = await self._locked("bootstrap", self._bootstrap, default=0)
        logger.info(
            "Companion loaded: %d template(s), energy %d, bonding %d, %d task(s) promoted",
            len(self.templates), self.stats.total_energy, self.pet.bonding_score, resumed,
        )
        await self.refresh_weather()
        await self.run_slot_checks()

    # ------------------------------------------------------------------
    # Weather and slot orchestration
    # ------------------------------------------------------------------

    async def refresh_weather(self, force: bool = False) -> WeatherReport | None:
        self.report = await self._weather.fetch_weather(self._location, self._locality, force=force)
        return self.report

    async def on_slot_boundary(self, now: datetime, fetch_weather: bool = True) -> None:
        """A new slot began: refresh weather and fill in today's triggers."""
        if fetch_weather:
            await self.refresh_weather()
        await self._locked(
            "trigger preparation",
            self.scheduler.prepare_triggers, slot_day(now, self._clock), self.report,
        )

    def _slot_checks(self, now: datetime) -> tuple[GenerationOutcome | None, list[UserTask]]:
        last_active = self.stats.last_active_date
        decayed = self.scheduler.apply_daily_decay(self.stats, self.pet, now)
        penalties = self.scheduler.evaluate_elapsed_slot_penalties(now, self.pet)
        if decayed or penalties or self.stats.last_active_date != last_active:
            self._save_profile()

        self.scheduler.prepare_triggers(slot_day(now, self._clock), self.report)
        outcome = self.scheduler.check_slot_generation_trigger(now, self.report, self.templates)
        self.refresh_available = self.gate.can_refresh_current_slot(now)
        upcoming = self._stores.tasks.list_between(now, self._clock.at(slot_day(now, self._clock), 24))
        return outcome, upcoming

    async def run_slot_checks(self, now: datetime | None = None) -> GenerationOutcome | None:
        """Decay, penalties, generation trigger and refresh eligibility."""
        now = now or self._clock.now()
        result = await self._locked("slot checks", self._slot_checks, now)
        if result is None:
            return None
        outcome, upcoming = result
        if outcome is not None:
            if outcome.notify and outcome.tasks:
                await self._notifications.notify_tasks_unlocked(outcome.slot)
            self._notifications.schedule_task_reminders(upcoming, now)
        return outcome

    def next_wakeup(self, now: datetime) -> datetime | None:
        try:
            return self.scheduler.next_unfired_trigger(now)
        except sqlite3.Error as exc:
            logger.error("Could not read generation triggers: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def start_task(self, task_id: str) -> UserTask | None:
        return await self._locked("start task", self.state.start, task_id)

    def _complete(self, task_id: str) -> CompletionResult | None:
        now = self._clock.now()
        task = self.state.complete(task_id, now)
        if task is None:
            return None

        granted = rewards.apply_task_reward(task, self.stats, now)
        pet_engine.apply_task_completion(self.pet)

        _, interval = current_interval(task.scheduled_at, self._clock)
        slot_tasks = self._stores.tasks.list_between(interval.start, interval.end)
        all_clear = rewards.evaluate_all_clear(slot_tasks, self.stats)

        snack = None
        if self._rng.random() < self._snack_drop_chance:
            snack = rewards.random_snack_reward(self._stores.items.list_items(), self._rng)
            if snack is not None:
                self._stores.items.add_inventory(snack.sku)
                logger.info("Snack drop: %s", snack.sku)

        self._save_profile()
        self._record_energy(now)
        self.refresh_available = self.gate.can_refresh_current_slot(now)
        return CompletionResult(task=task, energy_granted=granted, all_clear=all_clear, snack=snack)

    async def complete_task(self, task_id: str) -> CompletionResult | None:
        result = await self._locked("complete task", self._complete, task_id)
        if result is not None:
            self.show_notice(f"+{result.energy_granted} energy")
        return result

    async def reset_task(self, task_id: str) -> UserTask | None:
        return await self._locked("reset task", self.state.reset_to_pending, task_id)

    def tasks_today(self) -> list[UserTask]:
        day = slot_day(self._clock.now(), self._clock)
        return self._stores.tasks.list_between(self._clock.at(day, 0), self._clock.at(day, 24))

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def can_refresh_current_slot(self) -> bool:
        allowed = await self._locked(
            "refresh check", self.gate.can_refresh_current_slot, self._clock.now(), default=False,
        )
        self.refresh_available = allowed
        return allowed

    def _refresh(self, retain_task_id: str | None) -> list[UserTask] | None:
        now = self._clock.now()
        tasks = self.gate.refresh(now, self.report, self.templates, self.pet, retain_task_id)
        if tasks is None:
            return None
        self._stores.profile.save_pet(self.pet)
        self.refresh_available = self.gate.can_refresh_current_slot(now)
        return tasks

    async def refresh_current_slot(self, retain_task_id: str | None = None) -> list[UserTask] | None:
        tasks = await self._locked("refresh", self._refresh, retain_task_id)
        if tasks is not None:
            now = self._clock.now()
            self._notifications.schedule_task_reminders(
                [t for t in self.tasks_today() if t.scheduled_at > now], now,
            )
        return tasks

    # ------------------------------------------------------------------
    # Pet and shop
    # ------------------------------------------------------------------

    def _pat(self) -> Pet:
        pet_engine.apply_petting_reward(self.pet)
        self._stores.profile.save_pet(self.pet)
        return self.pet

    async def pet_pet(self) -> Pet | None:
        return await self._locked("petting", self._pat)

    def _feed(self, sku: str) -> bool:
        item = self._stores.items.get_item(sku)
        if item is None or not item.is_consumable:
            return False
        if not self._stores.items.take_inventory(sku):
            logger.debug("No %s left to feed", sku)
            return False
        pet_engine.apply_feed_reward(self.pet)
        self._stores.profile.save_pet(self.pet)
        logger.info("Fed %s to %s", sku, self.pet.name)
        return True

    async def feed(self, sku: str) -> bool:
        return await self._locked("feeding", self._feed, sku, default=False)

    def _purchase(self, sku: str) -> bool:
        item = self._stores.items.get_item(sku)
        if item is None:
            return False
        now = self._clock.now()
        if not rewards.purchase(item, self.stats, now):
            return False
        self._stores.items.add_inventory(item.sku)
        if not item.is_consumable and item.asset_name and item.asset_name not in self.pet.decorations:
            self.pet.decorations.append(item.asset_name)
        pet_engine.apply_purchase_reward(self.pet, item.bonding_boost)
        self._save_profile()
        self._record_energy(now)
        logger.info("Purchased %s for %d energy", item.sku, item.cost_energy)
        return True

    async def purchase(self, sku: str) -> bool:
        return await self._locked("purchase", self._purchase, sku, default=False)

    def inventory(self) -> dict[str, int]:
        return self._stores.items.inventory()

    # ------------------------------------------------------------------
    # Region, lifecycle, notices
    # ------------------------------------------------------------------

    def _set_region(self, region: str) -> None:
        self.stats.region = region
        self._stores.profile.save_stats(self.stats)
        self._clock.update_timezone(region)

    async def update_region(self, region: str) -> None:
        await self._locked("region update", self._set_region, region)
        await self.on_slot_boundary(self._clock.now(), fetch_weather=False)
        await self.run_slot_checks()

    async def on_foreground(self) -> GenerationOutcome | None:
        await self.refresh_weather()
        return await self.run_slot_checks()

    def show_notice(self, text: str, seconds: float | None = None) -> None:
        """Show a transient notice; a newer notice replaces the older one."""
        self.notice = text
        if self._jobs is None:
            return
        self._jobs.add_job(
            self._clear_notice,
            trigger="date",
            run_date=self._clock.now() + timedelta(seconds=seconds or self._notice_seconds),
            id=NOTICE_JOB_ID,
            replace_existing=True,
        )

    async def _clear_notice(self) -> None:
        self.notice = None

    def close(self) -> None:
        self.state.cancel_all()
        self._notifications.cancel_all()
        if self._jobs is not None:
            cancel_job(self._jobs, NOTICE_JOB_ID)
