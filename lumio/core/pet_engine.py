"""Pet engine — bonding and XP arithmetic on a Pet record.

Functions mutate the given Pet in place; saving it is the caller's job.
"""

from __future__ import annotations

import logging

from lumio.data.models import Pet

logger = logging.getLogger(__name__)

MIN_BONDING = 10
MAX_BONDING = 100

PAT_BONDING = 1
FEED_BONDING = 2
FEED_XP = 2
PURCHASE_XP = 2
TASK_BONDING = 1
TASK_XP = 1
LIGHT_PENALTY = 1
DECAY_PER_DAY = 2
DECAY_FLOOR = 20


def xp_requirement(level: int) -> int:
    """XP needed to leave `level`."""
    if level <= 1:
        return 10
    if level == 2:
        return 25
    if level == 3:
        return 50
    if level == 4:
        return 75
    return 100


def clamp_bonding(score: int) -> int:
    return max(MIN_BONDING, min(MAX_BONDING, score))


def adjust_bonding(pet: Pet, delta: int) -> int:
    """Apply a bonding change within the clamp. Returns the applied delta."""
    before = pet.bonding_score
    pet.bonding_score = clamp_bonding(before + delta)
    return pet.bonding_score - before


def award_xp(pet: Pet, amount: int) -> int:
    """Add XP, rolling surplus over as many levels as it covers.

    Returns the number of levels gained.
    """
    if amount <= 0:
        return 0
    xp = pet.xp + amount
    level = pet.level
    while xp >= xp_requirement(level):
        xp -= xp_requirement(level)
        level += 1

    gained = level - pet.level
    pet.level, pet.xp = level, xp
    if gained:
        logger.info("%s reached level %d", pet.name, level)
    return gained


def apply_petting_reward(pet: Pet) -> None:
    adjust_bonding(pet, PAT_BONDING)


def apply_feed_reward(pet: Pet) -> None:
    adjust_bonding(pet, FEED_BONDING)
    award_xp(pet, FEED_XP)


def apply_purchase_reward(pet: Pet, bonding_boost: int, xp_gain: int = PURCHASE_XP) -> None:
    adjust_bonding(pet, bonding_boost)
    award_xp(pet, xp_gain)


def apply_task_completion(pet: Pet) -> None:
    adjust_bonding(pet, TASK_BONDING)
    award_xp(pet, TASK_XP)


def apply_light_penalty(pet: Pet) -> int:
    return adjust_bonding(pet, -LIGHT_PENALTY)


def apply_daily_decay(pet: Pet, days: int) -> int:
    """Decay bonding for `days` inactive days, only while bonding is above the floor."""
    if days <= 0 or pet.bonding_score <= DECAY_FLOOR:
        return 0
    applied = adjust_bonding(pet, -DECAY_PER_DAY * days)
    logger.info("Daily decay for %d day(s): bonding %+d", days, applied)
    return applied
