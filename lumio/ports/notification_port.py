"""Notification port — abstract interface for delivering alerts to the user.

Core modules decide whether and when to notify; delivery lives behind this
protocol.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification transport used by the notification scheduler."""

    async def send(self, title: str, body: str) -> None: ...
