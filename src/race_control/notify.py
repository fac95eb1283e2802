"""Operator notifications.

Every error and status change is surfaced as a short, auto-dismissing
message. On a terminal "auto-dismissing" means transient: the message is
printed once and kept only in a short in-memory history.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MS = 3000


@dataclass(frozen=True)
class Notification:
    message: str
    duration_ms: int = DEFAULT_DURATION_MS
    level: str = "info"  # "info", "success", "warning", "error"


_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


class Notifier:
    """Prints notifications to a Rich console and remembers recent ones."""

    def __init__(self, console: Optional[Console] = None, history_size: int = 20) -> None:
        self.console = console or Console(stderr=True)
        self.history: deque[Notification] = deque(maxlen=history_size)

    def notify(self, message: str, duration_ms: int = DEFAULT_DURATION_MS, level: str = "info") -> Notification:
        notification = Notification(message=message, duration_ms=duration_ms, level=level)
        self.history.append(notification)
        logger.debug("Notification (%s, %dms): %s", level, duration_ms, message)
        style = _STYLES.get(level, "cyan")
        self.console.print(f"[{style}]{escape(message)}[/{style}]")
        return notification

    @property
    def last(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None
