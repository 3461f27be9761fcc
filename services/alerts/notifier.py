"""
TEMPFOCUS Notifier

User-visible success/error messages from the compensation controller.
Messages always go to the log; registered callbacks (UI, push, etc.)
receive them as well.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Protocol

logger = logging.getLogger("TEMPFOCUS.Alerts")


class NotificationLevel(Enum):
    """Notification severity."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class Notification:
    """A single message shown to the user."""
    timestamp: datetime
    level: NotificationLevel
    message: str


class Notifier(Protocol):
    """Anything that can show success and error messages."""

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """
    Notifier that logs every message and fans it out to callbacks.

    Usage:
        notifier = LogNotifier()
        notifier.register_callback(lambda n: print(n.message))
        notifier.error("Focuser is not connected.")
    """

    def __init__(self, history_size: int = 100):
        self._callbacks: List[Callable[[Notification], None]] = []
        self._history: List[Notification] = []
        self._history_size = history_size

    @property
    def history(self) -> List[Notification]:
        """Most recent notifications, oldest first."""
        return list(self._history)

    def register_callback(self, callback: Callable[[Notification], None]):
        """Register a callback receiving each Notification."""
        self._callbacks.append(callback)

    def success(self, message: str) -> None:
        logger.info(message)
        self._dispatch(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        logger.error(message)
        self._dispatch(NotificationLevel.ERROR, message)

    def _dispatch(self, level: NotificationLevel, message: str):
        notification = Notification(
            timestamp=datetime.now(), level=level, message=message
        )
        self._history.append(notification)
        if len(self._history) > self._history_size:
            self._history = self._history[-self._history_size:]

        for callback in self._callbacks:
            try:
                callback(notification)
            except Exception as e:
                logger.error(f"Notification callback error: {e}")
