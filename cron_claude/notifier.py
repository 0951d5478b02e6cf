"""Completion notifications.

Desktop toasts live outside this package; anything with a
notify(title, message, success) method can be plugged into the executor.
The default just logs.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, title: str, message: str, success: bool) -> None: ...


class LoggingNotifier:
    def notify(self, title: str, message: str, success: bool) -> None:
        level = logging.INFO if success else logging.WARNING
        logger.log(level, f"{title}: {message}")


def notify_safely(notifier: Notifier, title: str, message: str, success: bool) -> bool:
    """Deliver a notification; a failing notifier never fails the execution."""
    try:
        notifier.notify(title, message, success)
        return True
    except Exception as e:
        logger.error(f"Failed to send notification '{title}': {e}")
        return False
