"""Reward engine — energy accounting on the UserStats record.

Functions mutate the given stats in place; the caller saves them and appends
the energy history snapshot.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Iterable

from lumio.data.models import Item, ItemType, TaskStatus, UserStats, UserTask

logger = logging.getLogger(__name__)

MIN_ENERGY = 0
MAX_ENERGY = 999


def clamp_energy(value: int) -> int:
    return max(MIN_ENERGY, min(MAX_ENERGY, value))


def add_energy(stats: UserStats, amount: int) -> int:
    """Add energy within the clamp. Returns the delta actually applied."""
    before = stats.total_energy
    stats.total_energy = clamp_energy(before + amount)
    return stats.total_energy - before


def spend_energy(stats: UserStats, amount: int) -> bool:
    if amount < 0 or stats.total_energy < amount:
        return False
    stats.total_energy = clamp_energy(stats.total_energy - amount)
    return True


def apply_task_reward(task: UserTask, stats: UserStats, now: datetime) -> int:
    """Grant a completed task's energy. Returns the energy delta (0 if not completed)."""
    if task.status is not TaskStatus.COMPLETED:
        return 0
    granted = add_energy(stats, max(0, task.category.energy_reward))
    stats.completed_tasks_count += 1
    stats.last_active_date = now
    return granted


def evaluate_all_clear(tasks: Iterable[UserTask], stats: UserStats) -> bool:
    """Count a bonded day when every task in the set is completed.

    Call only at the completing transition; the check itself is not idempotent.
    """
    tasks = list(tasks)
    if not tasks or any(t.status is not TaskStatus.COMPLETED for t in tasks):
        return False
    stats.total_days += 1
    logger.info("All tasks cleared; bonded days now %d", stats.total_days)
    return True


def random_snack_reward(items: Iterable[Item], rng: random.Random) -> Item | None:
    snacks = [i for i in items if i.type is ItemType.SNACK]
    if not snacks:
        return None
    return rng.choice(snacks)


def purchase(item: Item, stats: UserStats, now: datetime) -> bool:
    """Spend the item's cost. False when the balance is too low."""
    if not spend_energy(stats, item.cost_energy):
        logger.debug("Cannot afford %s (%d < %d)", item.sku, stats.total_energy, item.cost_energy)
        return False
    stats.last_active_date = now
    return True
