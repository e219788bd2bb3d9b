"""Shared test fixtures and configuration.

Sets up fake environment variables so lumio.config loads predictably, and
provides temp-file stores, a controllable clock and a seeded random source.
"""

import os

# Patch env vars BEFORE any lumio imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("LATITUDE", "")
os.environ.setdefault("LONGITUDE", "")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TELEGRAM_CHAT_ID", "")

import random

import pytest

from tests.helpers import FakeNow, utc


@pytest.fixture
def fake_now():
    return FakeNow(utc(2024, 5, 14, 9, 0))


@pytest.fixture
def clock(fake_now):
    from lumio.core.clock import Clock
    return Clock("UTC", now_fn=fake_now)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "lumio_test.db")


@pytest.fixture
def task_db(tmp_db_path):
    from lumio.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def template_db(tmp_db_path):
    from lumio.data.db import TemplateDB
    return TemplateDB(db_path=tmp_db_path)


@pytest.fixture
def profile_db(tmp_db_path):
    from lumio.data.db import ProfileDB
    return ProfileDB(db_path=tmp_db_path)


@pytest.fixture
def item_db(tmp_db_path):
    from lumio.data.db import ItemDB
    return ItemDB(db_path=tmp_db_path)


@pytest.fixture
def history_db(tmp_db_path):
    from lumio.data.db import HistoryDB
    return HistoryDB(db_path=tmp_db_path)


@pytest.fixture
def records(tmp_db_path):
    from lumio.data.day_records import DayRecordStore
    return DayRecordStore(db_path=tmp_db_path)


@pytest.fixture
def templates():
    """A small catalog covering every category."""
    from lumio.data.models import TaskCategory, TaskTemplate
    rows = [
        ("Walk around the block", TaskCategory.OUTDOOR, True),
        ("Water the balcony plants", TaskCategory.OUTDOOR, True),
        ("Sit in a park for ten minutes", TaskCategory.OUTDOOR, True),
        ("Tidy your desktop folders", TaskCategory.INDOOR_DIGITAL, False),
        ("Unsubscribe from three newsletters", TaskCategory.INDOOR_DIGITAL, False),
        ("Make a cup of tea slowly", TaskCategory.INDOOR_ACTIVITY, False),
        ("Stretch for five minutes", TaskCategory.PHYSICAL, False),
        ("Do ten squats", TaskCategory.PHYSICAL, False),
        ("Text a friend", TaskCategory.SOCIALS, False),
        ("Give Lumio a gentle pat", TaskCategory.PET_CARE, False),
    ]
    return [
        TaskTemplate(title=t, category=c, is_outdoor=o, energy_reward=c.energy_reward)
        for t, c, o in rows
    ]
