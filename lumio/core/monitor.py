"""Background slot monitor.

A self-rescheduling date job on the shared scheduler: each cycle detects
slot-boundary crossings, re-runs the companion's slot checks, then books the
next cycle at the earlier of the next slot boundary and the next unfired
generation trigger, within [min_sleep, max_sleep]. The job id is fixed, so
starting the monitor again replaces the pending cycle.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from apscheduler.job import Job
from apscheduler.schedulers.base import BaseScheduler

from lumio.core.clock import Clock
from lumio.core.jobs import cancel_job
from lumio.core.time_slots import classify, next_slot_boundary, slot_day
from lumio.data.models import TimeSlot

logger = logging.getLogger(__name__)

MONITOR_JOB_ID = "slot-monitor"


class SlotMonitor:
    def __init__(
        self,
        companion,
        clock: Clock,
        jobs: BaseScheduler,
        min_sleep: float = 30.0,
        max_sleep: float = 900.0,
    ) -> None:
        self._companion = companion
        self._clock = clock
        self._jobs = jobs
        self._min_sleep = min_sleep
        self._max_sleep = max_sleep
        self._active = False
        self._last_slot: tuple[str, TimeSlot] | None = None

    @property
    def running(self) -> bool:
        return self._active

    def start(self) -> Job:
        """Run a cycle now and keep cycling until stopped."""
        if self._active:
            logger.info("Restarting slot monitor")
        else:
            logger.info("Slot monitor started")
        self._active = True
        return self._schedule(self._clock.now())

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        cancel_job(self._jobs, MONITOR_JOB_ID)
        logger.info("Slot monitor stopped")

    def _schedule(self, when: datetime) -> Job:
        return self._jobs.add_job(
            self.run_cycle,
            trigger="date",
            run_date=when,
            id=MONITOR_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
        )

    def compute_sleep(self, now: datetime) -> float:
        """Seconds until the next relevant moment, floored and capped."""
        candidates = [next_slot_boundary(now, self._clock)]
        trigger = self._companion.next_wakeup(now)
        if trigger is not None:
            candidates.append(trigger)
        seconds = (min(candidates) - now).total_seconds()
        return max(self._min_sleep, min(seconds, self._max_sleep))

    async def tick(self, now: datetime | None = None) -> bool:
        """One evaluation pass. Returns True when a slot crossing was seen."""
        now = now or self._clock.now()
        observed = (slot_day(now, self._clock).isoformat(), classify(now, self._clock))
        crossed = observed != self._last_slot
        if crossed:
            logger.info("Entered %s slot of %s", observed[1].value, observed[0])
            self._last_slot = observed
            await self._companion.on_slot_boundary(now)
        await self._companion.run_slot_checks(now)
        return crossed

    async def run_cycle(self) -> Job | None:
        """Tick once, then book the next cycle. Returns the next job, if any."""
        try:
            await self.tick()
        except Exception:
            logger.exception("Slot monitor tick failed")
        if not self._active:
            return None
        now = self._clock.now()
        delay = self.compute_sleep(now)
        logger.debug("Slot monitor sleeping %.0fs", delay)
        return self._schedule(now + timedelta(seconds=delay))
