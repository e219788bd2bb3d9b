"""Tests for lumio.config — settings validation."""

import pytest
from pydantic import ValidationError

from lumio.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.location is None
        assert s.WEATHER_CACHE_TTL_MINUTES == 30
        assert s.RANDOMIZE_TASK_TIME is True

    def test_blank_values_are_unset(self):
        s = Settings(LATITUDE="", LONGITUDE=" ", TELEGRAM_CHAT_ID="")
        assert s.location is None
        assert s.TELEGRAM_CHAT_ID is None

    def test_location_pair(self):
        s = Settings(LATITUDE="32.08", LONGITUDE="34.78")
        assert s.location == (32.08, 34.78)

    def test_half_location_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LATITUDE="32.08")

    def test_flags(self):
        s = Settings(RANDOMIZE_TASK_TIME="off", NOTIFICATIONS_ENABLED="Yes")
        assert s.RANDOMIZE_TASK_TIME is False
        assert s.NOTIFICATIONS_ENABLED is True
