"""Logging notifier — development stub for Notifier.

Writes every user-facing message to the log and keeps a record of it, so
headless runs and tests can see what the user would have been shown.
Warnings can be given a scripted answer (the action the "user" picks).

Tier 2 service module: imports from codecoach.hooks.interfaces (Tier 1).
"""

import logging
from dataclasses import dataclass

from codecoach.hooks.interfaces import Notifier

logger = logging.getLogger("codecoach.notifier")


@dataclass(frozen=True)
class Notification:
    """One message shown to the user."""

    level: str  # "info", "warning", "error", "settings"
    message: str
    actions: tuple[str, ...] = ()


class LoggingNotifier(Notifier):
    """STUB — logs messages instead of showing them.

    Args:
        warning_choice: Action label returned by show_warning() when that
            label was offered; None simulates the user dismissing it.
    """

    def __init__(self, warning_choice: str | None = None) -> None:
        self.warning_choice = warning_choice
        self.notifications: list[Notification] = []

    async def show_info(self, message: str) -> None:
        logger.info("[user] %s", message)
        self.notifications.append(Notification(level="info", message=message))

    async def show_warning(self, message: str, *actions: str) -> str | None:
        logger.warning("[user] %s", message)
        self.notifications.append(
            Notification(level="warning", message=message, actions=tuple(actions))
        )
        if self.warning_choice is not None and self.warning_choice in actions:
            return self.warning_choice
        return None

    async def show_error(self, message: str) -> None:
        logger.error("[user] %s", message)
        self.notifications.append(Notification(level="error", message=message))

    async def open_settings(self, setting_key: str) -> None:
        logger.info("[user] open settings: %s", setting_key)
        self.notifications.append(Notification(level="settings", message=setting_key))

    def messages(self, level: str | None = None) -> list[str]:
        """Messages shown so far, optionally filtered by level."""
        return [n.message for n in self.notifications if level is None or n.level == level]
