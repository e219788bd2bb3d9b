"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot and delivers every notification to one configured chat.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.constants import ParseMode
from telegram.helpers import escape_markdown

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, chat_id: int) -> None:
        self._bot = bot
        self._chat_id = chat_id

    async def send(self, title: str, body: str) -> None:
        await self._bot.send_message(
            chat_id=self._chat_id,
            text=f"*{escape_markdown(title)}*\n{escape_markdown(body)}",
            parse_mode=ParseMode.MARKDOWN,
        )
        logger.debug("Telegram notification sent to %d", self._chat_id)
