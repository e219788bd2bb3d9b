"""
Lumio — Task State Machine.

pending -> started -> ready -> completed, with a reset back to pending used
only when a task is retained across a slot refresh.

Completion is accepted from READY, from STARTED once `can_complete_after` has
passed, or from PENDING when the category has no buffer. Anything else is a
silent no-op: the transition methods return None and nothing is written.

The synchronous transitions expect the caller to hold the companion lock.
The deferred promotion is a date job on the shared scheduler keyed by task
id. It takes the lock itself and re-reads the task before touching it.
Without a scheduler no timers are armed and started tasks are promoted by
`resume_started_tasks` or completed once their buffer has passed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from apscheduler.job import Job
from apscheduler.schedulers.base import BaseScheduler

from lumio.core.clock import Clock
from lumio.core.jobs import cancel_job, keys_with_prefix
from lumio.data.db import TaskDB
from lumio.data.models import TaskStatus, UserTask

logger = logging.getLogger(__name__)

PROMOTION_PREFIX = "promotion:"


def is_completable(task: UserTask, now: datetime) -> bool:
    if task.status is TaskStatus.READY:
        return True
    if task.status is TaskStatus.STARTED:
        return task.can_complete_after is not None and now >= task.can_complete_after
    if task.status is TaskStatus.PENDING:
        return task.category.buffer_duration <= timedelta(0)
    return False


class TaskStateMachine:
    """Single entry point for task status changes."""

    def __init__(
        self,
        task_db: TaskDB,
        clock: Clock,
        lock: asyncio.Lock | None = None,
        jobs: BaseScheduler | None = None,
    ) -> None:
        self._tasks = task_db
        self._clock = clock
        self._lock = lock or asyncio.Lock()
        self._jobs = jobs

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, task_id: str, now: datetime | None = None) -> UserTask | None:
        task = self._tasks.get_task(task_id)
        if task is None or task.status is not TaskStatus.PENDING:
            logger.debug("Ignoring start of task %s (not pending)", task_id)
            return None

        now = now or self._clock.now()
        task.status = TaskStatus.STARTED
        task.started_at = now
        task.can_complete_after = now + task.category.buffer_duration
        self._tasks.update_task(task)
        logger.info("Task '%s' started, ready after %s", task.title, task.can_complete_after)
        self.schedule_promotion(task)
        return task

    def mark_ready(self, task_id: str) -> UserTask | None:
        task = self._tasks.get_task(task_id)
        if task is None or task.status is not TaskStatus.STARTED:
            logger.debug("Ignoring promotion of task %s (not started)", task_id)
            return None

        task.status = TaskStatus.READY
        task.can_complete_after = None
        self._tasks.update_task(task)
        self._cancel_promotion(task.id)
        logger.info("Task '%s' is ready", task.title)
        return task

    def complete(self, task_id: str, now: datetime | None = None) -> UserTask | None:
        task = self._tasks.get_task(task_id)
        now = now or self._clock.now()
        if task is None or not is_completable(task, now):
            logger.debug("Rejected completion of task %s", task_id)
            return None

        task.status = TaskStatus.COMPLETED
        task.completed_at = now
        task.energy_reward = task.category.energy_reward
        self._tasks.update_task(task)
        self._cancel_promotion(task.id)
        logger.info("Task '%s' completed (+%d energy)", task.title, task.energy_reward)
        return task

    def reset_to_pending(self, task_id: str) -> UserTask | None:
        task = self._tasks.get_task(task_id)
        if task is None:
            return None

        task.status = TaskStatus.PENDING
        task.started_at = None
        task.completed_at = None
        task.can_complete_after = None
        self._tasks.update_task(task)
        self._cancel_promotion(task.id)
        logger.info("Task '%s' reset to pending", task.title)
        return task

    # ------------------------------------------------------------------
    # Deferred promotion
    # ------------------------------------------------------------------

    def schedule_promotion(self, task: UserTask) -> Job | None:
        """Arm a date job that promotes the task once its buffer has elapsed."""
        if self._jobs is None or task.can_complete_after is None:
            logger.debug("No job scheduler; promotion of %s left to resume", task.id)
            return None

        job = self._jobs.add_job(
            self.promote_if_due,
            trigger="date",
            run_date=task.can_complete_after,
            args=[task.id],
            id=PROMOTION_PREFIX + task.id,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug("Promotion of %s armed for %s", task.id, task.can_complete_after)
        return job

    async def promote_if_due(self, task_id: str) -> UserTask | None:
        """Promote only if the task is still started and its buffer is over."""
        async with self._lock:
            task = self._tasks.get_task(task_id)
            if task is None or task.status is not TaskStatus.STARTED:
                return None
            if task.can_complete_after is None or self._clock.now() < task.can_complete_after:
                return None
            return self.mark_ready(task_id)

    def resume_started_tasks(self) -> int:
        """Promote or re-arm every task left in STARTED. Returns how many were promoted."""
        now = self._clock.now()
        promoted = 0
        for task in self._tasks.list_by_status(TaskStatus.STARTED):
            if task.can_complete_after is None or now >= task.can_complete_after:
                if self.mark_ready(task.id) is not None:
                    promoted += 1
            else:
                self.schedule_promotion(task)
        return promoted

    def pending_promotions(self) -> list[str]:
        if self._jobs is None:
            return []
        return keys_with_prefix(self._jobs, PROMOTION_PREFIX)

    def _cancel_promotion(self, task_id: str) -> None:
        if self._jobs is not None:
            cancel_job(self._jobs, PROMOTION_PREFIX + task_id)

    def cancel_all(self) -> None:
        for task_id in self.pending_promotions():
            self._cancel_promotion(task_id)
