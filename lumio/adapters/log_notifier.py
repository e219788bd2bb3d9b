"""Logging notification adapter, used when no Telegram chat is configured."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LogNotifier:
    """NotificationPort that writes notifications to the log."""

    async def send(self, title: str, body: str) -> None:
        logger.info("Notification: %s | %s", title, body)
