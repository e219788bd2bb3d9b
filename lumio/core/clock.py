"""Clock and calendar adapter.

Resolves "now" and owns the active timezone. The zone is mutable at runtime
(the user's region can change), so callers always go through the clock
instead of caching a zone or a computed slot.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache(maxsize=1)
def _known_zones() -> tuple[str, ...]:
    return tuple(sorted(available_timezones()))


def resolve_timezone(region: str | None) -> ZoneInfo | None:
    """Find a zone whose identifier contains the city part of a region string.

    Regions look like "UK-London" or "United States - New York"; the last
    dash-separated component is matched case-insensitively. Returns None when
    nothing matches.
    """
    if not region or not region.strip():
        return None
    city = region.split("-")[-1].strip().replace(" ", "_").lower()
    if not city:
        return None
    for name in _known_zones():
        if city in name.lower():
            return ZoneInfo(name)
    return None


class Clock:
    """Current time plus calendar math in the active zone."""

    def __init__(
        self,
        tz: tzinfo | str = "UTC",
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._default_tz = self._coerce(tz)
        self._tz = self._default_tz
        self._now_fn = now_fn or _utc_now

    @staticmethod
    def _coerce(tz: tzinfo | str) -> tzinfo:
        if isinstance(tz, str):
            try:
                return ZoneInfo(tz)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r, using UTC", tz)
                return timezone.utc
        return tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def update_timezone(self, region: str | None) -> tzinfo:
        """Switch the active zone to the one matching `region`, or the default."""
        resolved = resolve_timezone(region)
        previous = self._tz
        self._tz = resolved or self._default_tz
        if self._tz != previous:
            logger.info("Timezone changed from %s to %s (region=%r)", previous, self._tz, region)
        return self._tz

    def now(self) -> datetime:
        return self._now_fn().astimezone(self._tz)

    def localize(self, moment: datetime) -> datetime:
        return moment.astimezone(self._tz)

    def at(self, day: date, hour: int, minute: int = 0) -> datetime:
        """Wall-clock time on `day` in the active zone. Hour 24 is next midnight."""
        extra_days, hour = divmod(hour, 24)
        target = day + timedelta(days=extra_days)
        return datetime(target.year, target.month, target.day, hour, minute, tzinfo=self._tz)
