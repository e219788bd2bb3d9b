"""
Lumio — Data Models.

Plain dataclasses and enums shared by the engine and the SQLite stores.
Nothing here talks to the database; repositories in lumio.data.db turn rows
into these objects and back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum


class TimeSlot(str, Enum):
    """One of the four fixed partitions of a day."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class WeatherType(str, Enum):
    SUNNY = "sunny"
    CLOUDY = "cloudy"
    RAINY = "rainy"
    SNOWY = "snowy"
    WINDY = "windy"


class TaskStatus(str, Enum):
    PENDING = "pending"
    STARTED = "started"
    READY = "ready"
    COMPLETED = "completed"


# (buffer seconds, energy reward) per category
_CATEGORY_TABLE: dict[str, tuple[int, int]] = {
    "outdoor": (5 * 60, 15),
    "indoor_digital": (3 * 60, 5),
    "indoor_activity": (3 * 60, 10),
    "physical": (2 * 60, 15),
    "socials": (3 * 60, 10),
    "pet_care": (15, 5),
}


class TaskCategory(str, Enum):
    """Task category with its fixed buffer duration and energy reward."""

    OUTDOOR = "outdoor"
    INDOOR_DIGITAL = "indoor_digital"
    INDOOR_ACTIVITY = "indoor_activity"
    PHYSICAL = "physical"
    SOCIALS = "socials"
    PET_CARE = "pet_care"

    @property
    def buffer_duration(self) -> timedelta:
        """Minimum time a task must stay started before it can complete."""
        return timedelta(seconds=_CATEGORY_TABLE[self.value][0])

    @property
    def energy_reward(self) -> int:
        return _CATEGORY_TABLE[self.value][1]

    def is_eligible(self, weather: WeatherType) -> bool:
        if weather in (WeatherType.RAINY, WeatherType.SNOWY):
            return self is not TaskCategory.OUTDOOR
        if weather is WeatherType.SUNNY:
            return self not in (TaskCategory.INDOOR_DIGITAL, TaskCategory.PET_CARE)
        return True


class ItemType(str, Enum):
    SNACK = "snack"
    DECOR = "decor"
    CLOTHING = "clothing"
    SHOES = "shoes"


class PetBonding(str, Enum):
    ECSTATIC = "ecstatic"
    HAPPY = "happy"
    CURIOUS = "curious"
    SLEEPY = "sleepy"
    ANXIOUS = "anxious"

    @classmethod
    def from_score(cls, score: int) -> PetBonding:
        if score >= 85:
            return cls.ECSTATIC
        if score >= 70:
            return cls.HAPPY
        if score >= 50:
            return cls.CURIOUS
        if score >= 30:
            return cls.SLEEPY
        return cls.ANXIOUS


@dataclass(frozen=True)
class Interval:
    """Half-open time interval [start, end)."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return end > self.start and start < self.end


@dataclass(frozen=True)
class WeatherWindow:
    """A contiguous period with a single weather condition."""

    start: datetime
    end: datetime
    weather: WeatherType


@dataclass(frozen=True)
class SunTimes:
    sunrise: datetime
    sunset: datetime


@dataclass
class WeatherReport:
    """Current condition plus forecast windows and sun events."""

    current_weather: WeatherType
    windows: list[WeatherWindow] = field(default_factory=list)
    sun_events: dict[date, SunTimes] = field(default_factory=dict)
    locality: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    current_temperature: float | None = None


@dataclass
class TaskTemplate:
    """Seed data a task instance is drawn from."""

    title: str
    category: TaskCategory
    is_outdoor: bool
    energy_reward: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class UserTask:
    """A concrete task instance scheduled inside one slot."""

    title: str
    weather_type: WeatherType
    category: TaskCategory
    energy_reward: int
    scheduled_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    started_at: datetime | None = None
    can_complete_after: datetime | None = None
    completed_at: datetime | None = None
    is_onboarding: bool = False
    day_length_minutes: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class UserStats:
    """Singleton user progress record."""

    total_energy: int = 50
    total_days: int = 0
    completed_tasks_count: int = 0
    region: str = ""
    last_active_date: datetime | None = None
    notifications_enabled: bool = True
    onboarded: bool = False
    randomize_task_time: bool = True


@dataclass
class Pet:
    name: str = "Lumio"
    bonding_score: int = 30
    level: int = 1
    xp: int = 0
    decorations: list[str] = field(default_factory=list)

    @property
    def bonding(self) -> PetBonding:
        return PetBonding.from_score(self.bonding_score)


@dataclass
class Item:
    """A shop catalog entry."""

    sku: str
    type: ItemType
    cost_energy: int
    bonding_boost: int
    asset_name: str = ""

    @property
    def is_consumable(self) -> bool:
        return self.type is ItemType.SNACK


@dataclass
class EnergyHistoryEntry:
    recorded_at: datetime
    total_energy: int
    id: int | None = None
