"""
Lumio — Runtime wiring.

Builds the job scheduler, stores, weather service, notifier, companion and
slot monitor from settings, then runs until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from datetime import timedelta

from apscheduler.schedulers.base import BaseScheduler
from telegram import Bot

from lumio.adapters.log_notifier import LogNotifier
from lumio.adapters.open_meteo_weather import OpenMeteoWeatherProvider
from lumio.adapters.telegram_notifier import TelegramNotifier
from lumio.config import settings
from lumio.core.clock import Clock
from lumio.core.engine import Companion, Stores
from lumio.core.jobs import create_job_scheduler
from lumio.core.monitor import SlotMonitor
from lumio.core.notifications import NotificationScheduler
from lumio.core.weather_service import WeatherService
from lumio.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


def build_companion(
    notifier: NotificationPort,
    jobs: BaseScheduler | None = None,
    clock: Clock | None = None,
) -> Companion:
    clock = clock or Clock(settings.TIMEZONE)
    weather = WeatherService(
        OpenMeteoWeatherProvider(settings.WEATHER_API_URL),
        clock,
        ttl=timedelta(minutes=settings.WEATHER_CACHE_TTL_MINUTES),
        distance_threshold_km=settings.WEATHER_CACHE_DISTANCE_KM,
    )
    return Companion(
        stores=Stores.open(settings.DATABASE_PATH),
        clock=clock,
        weather=weather,
        notifications=NotificationScheduler(
            notifier, clock, enabled=settings.NOTIFICATIONS_ENABLED, jobs=jobs,
        ),
        location=settings.location,
        locality=settings.LOCALITY or None,
        region=settings.REGION,
        randomize_task_time=settings.RANDOMIZE_TASK_TIME,
        unlock_grace=timedelta(minutes=settings.UNLOCK_GRACE_MINUTES),
        snack_drop_chance=settings.SNACK_DROP_CHANCE,
        jobs=jobs,
    )


async def _serve(notifier: NotificationPort) -> None:
    clock = Clock(settings.TIMEZONE)
    jobs = create_job_scheduler(clock.tz)
    jobs.start()
    companion = build_companion(notifier, jobs, clock)
    await companion.load()

    monitor = SlotMonitor(
        companion,
        clock,
        jobs,
        min_sleep=settings.MONITOR_MIN_SLEEP_SECONDS,
        max_sleep=settings.MONITOR_MAX_SLEEP_SECONDS,
    )
    monitor.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    logger.info("Lumio running (timezone=%s)", clock.tz)
    await stop_event.wait()

    logger.info("Lumio shutting down")
    monitor.stop()
    companion.close()
    jobs.shutdown(wait=False)


async def run() -> None:
    if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID is not None:
        async with Bot(settings.TELEGRAM_BOT_TOKEN) as bot:
            await _serve(TelegramNotifier(bot, settings.TELEGRAM_CHAT_ID))
    else:
        logger.info("Telegram not configured; notifications go to the log")
        await _serve(LogNotifier())


def main() -> None:
    asyncio.run(run())
