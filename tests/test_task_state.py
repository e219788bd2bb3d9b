"""Tests for lumio.core.task_state — transitions, buffers and deferred promotion."""

from datetime import timedelta

import pytest

from lumio.core.task_state import PROMOTION_PREFIX, TaskStateMachine, is_completable
from lumio.data.models import TaskCategory, TaskStatus, UserTask, WeatherType
from tests.helpers import paused_jobs, utc


def _task(category=TaskCategory.INDOOR_DIGITAL, when=None, **kwargs):
    return UserTask(
        title=kwargs.pop("title", "Tidy your desktop folders"),
        weather_type=WeatherType.CLOUDY,
        category=category,
        energy_reward=1,
        scheduled_at=when or utc(2024, 5, 14, 9, 30),
        **kwargs,
    )


@pytest.fixture
def machine(task_db, clock):
    return TaskStateMachine(task_db, clock)


@pytest.fixture
def stored(task_db):
    task = _task()
    task_db.add_tasks([task])
    return task


class TestStart:
    def test_start_records_buffer(self, machine, stored, fake_now):
        started = machine.start(stored.id)
        assert started.status is TaskStatus.STARTED
        assert started.started_at == fake_now.moment
        assert started.can_complete_after == fake_now.moment + timedelta(seconds=180)

    def test_double_start_is_ignored(self, machine, stored, task_db, fake_now):
        first = machine.start(stored.id)
        fake_now.advance(seconds=30)
        assert machine.start(stored.id) is None
        assert task_db.get_task(stored.id).started_at == first.started_at

    def test_unknown_task(self, machine):
        assert machine.start("missing") is None


class TestComplete:
    def test_buffer_invariant(self, machine, stored, fake_now):
        machine.start(stored.id)
        start = fake_now.moment

        fake_now.set(start + timedelta(seconds=60))
        assert machine.complete(stored.id) is None

        fake_now.set(start + timedelta(seconds=181))
        done = machine.complete(stored.id)
        assert done is not None
        assert done.status is TaskStatus.COMPLETED
        assert done.completed_at >= done.can_complete_after

    def test_complete_from_ready_sets_category_reward(self, machine, stored, task_db, fake_now):
        machine.start(stored.id)
        fake_now.advance(seconds=200)
        machine.mark_ready(stored.id)
        done = machine.complete(stored.id)
        assert done.energy_reward == TaskCategory.INDOOR_DIGITAL.energy_reward
        assert task_db.get_task(stored.id).completed_at == fake_now.moment

    def test_pending_with_buffer_is_rejected(self, machine, stored, task_db):
        assert machine.complete(stored.id) is None
        assert task_db.get_task(stored.id).status is TaskStatus.PENDING

    def test_completed_is_terminal(self, machine, stored, fake_now):
        machine.start(stored.id)
        fake_now.advance(seconds=200)
        assert machine.complete(stored.id) is not None
        assert machine.complete(stored.id) is None
        assert machine.start(stored.id) is None
        assert machine.mark_ready(stored.id) is None

    def test_is_completable_rules(self, fake_now):
        now = fake_now.moment
        assert is_completable(_task(status=TaskStatus.READY), now)
        assert not is_completable(_task(status=TaskStatus.PENDING), now)
        assert not is_completable(_task(status=TaskStatus.COMPLETED), now)
        started = _task(status=TaskStatus.STARTED, can_complete_after=now + timedelta(seconds=1))
        assert not is_completable(started, now)
        assert is_completable(started, now + timedelta(seconds=1))


class TestReadyAndReset:
    def test_mark_ready_requires_started(self, machine, stored):
        assert machine.mark_ready(stored.id) is None

    def test_mark_ready_clears_deadline(self, machine, stored):
        machine.start(stored.id)
        ready = machine.mark_ready(stored.id)
        assert ready.status is TaskStatus.READY
        assert ready.can_complete_after is None

    def test_reset_clears_progress(self, machine, stored, fake_now):
        machine.start(stored.id)
        fake_now.advance(seconds=200)
        machine.complete(stored.id)
        reset = machine.reset_to_pending(stored.id)
        assert reset.status is TaskStatus.PENDING
        assert reset.started_at is None
        assert reset.completed_at is None
        assert reset.can_complete_after is None


class TestPromotion:
    @pytest.mark.asyncio
    async def test_start_arms_promotion_job(self, task_db, clock, stored, fake_now):
        with paused_jobs() as jobs:
            machine = TaskStateMachine(task_db, clock, jobs=jobs)
            machine.start(stored.id)

            job = jobs.get_job(PROMOTION_PREFIX + stored.id)
            assert job.next_run_time == fake_now.moment + timedelta(seconds=180)
            assert machine.pending_promotions() == [stored.id]

            fake_now.advance(seconds=181)
            await job.func(*job.args)
            assert machine.pending_promotions() == []
        assert task_db.get_task(stored.id).status is TaskStatus.READY

    @pytest.mark.asyncio
    async def test_complete_cancels_promotion(self, task_db, clock, stored, fake_now):
        with paused_jobs() as jobs:
            machine = TaskStateMachine(task_db, clock, jobs=jobs)
            machine.start(stored.id)
            fake_now.advance(seconds=200)
            machine.complete(stored.id)
            assert jobs.get_job(PROMOTION_PREFIX + stored.id) is None

    @pytest.mark.asyncio
    async def test_promotion_revalidates_state(self, machine, stored, task_db, fake_now):
        machine.start(stored.id)
        machine.reset_to_pending(stored.id)
        fake_now.advance(seconds=500)
        assert await machine.promote_if_due(stored.id) is None
        assert task_db.get_task(stored.id).status is TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_promotion_waits_for_deadline(self, machine, stored, task_db):
        machine.start(stored.id)
        assert await machine.promote_if_due(stored.id) is None
        assert task_db.get_task(stored.id).status is TaskStatus.STARTED

    @pytest.mark.asyncio
    async def test_resume_started_tasks(self, task_db, clock, fake_now):
        overdue = _task(title="Overdue")
        waiting = _task(title="Waiting")
        task_db.add_tasks([overdue, waiting])
        TaskStateMachine(task_db, clock).start(overdue.id)
        fake_now.advance(seconds=100)
        TaskStateMachine(task_db, clock).start(waiting.id)
        fake_now.advance(seconds=100)

        with paused_jobs() as jobs:
            machine = TaskStateMachine(task_db, clock, jobs=jobs)
            assert machine.resume_started_tasks() == 1
            assert machine.pending_promotions() == [waiting.id]
            machine.cancel_all()
            assert machine.pending_promotions() == []
        assert task_db.get_task(overdue.id).status is TaskStatus.READY
        assert task_db.get_task(waiting.id).status is TaskStatus.STARTED

    def test_start_without_jobs_skips_timer(self, machine, stored):
        assert machine.start(stored.id) is not None
        assert machine.pending_promotions() == []
