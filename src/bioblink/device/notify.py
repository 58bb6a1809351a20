from __future__ import annotations

import enum
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List

logger = logging.getLogger(__name__)


class Severity(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    message: str
    severity: Severity
    timestamp: float = field(default_factory=time.time)


class NotificationLog:
    """
    Bounded history of human-readable notifications.

    Every entry is mirrored to the module logger and handed to registered
    listeners. Only the newest `capacity` entries are retained.
    """

    def __init__(self, capacity: int = 50) -> None:
        self._entries: Deque[Notification] = deque(maxlen=capacity)
        self._listeners: List[Callable[[Notification], None]] = []

    def emit(self, message: str, severity: Severity = Severity.INFO) -> Notification:
        entry = Notification(message=message, severity=severity)
        self._entries.append(entry)
        logger.log(_LOG_LEVELS[severity], "%s", message)
        for listener in self._listeners:
            try:
                listener(entry)
            except Exception:
                logger.exception("Notification listener failed")
        return entry

    def info(self, message: str) -> Notification:
        return self.emit(message, Severity.INFO)

    def success(self, message: str) -> Notification:
        return self.emit(message, Severity.SUCCESS)

    def warning(self, message: str) -> Notification:
        return self.emit(message, Severity.WARNING)

    def error(self, message: str) -> Notification:
        return self.emit(message, Severity.ERROR)

    def add_listener(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def entries(self) -> List[Notification]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
