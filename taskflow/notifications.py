"""Notification center behind the toast layer and the sidebar inbox."""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

NOTIFICATION_TYPES = ("success", "error", "warning", "info")
TOAST_ICONS = {"success": "✅", "error": "❌", "warning": "⚠️", "info": "ℹ️"}
DEFAULT_DURATION = 5.0


@dataclass
class Notification:
    type: str
    title: str
    message: str = ""
    duration: float = DEFAULT_DURATION
    id: str = field(default_factory=lambda: f"notification-{uuid.uuid4().hex[:12]}")
    timestamp: float = 0.0
    read: bool = False
    shown: bool = False

    @property
    def persistent(self) -> bool:
        return self.duration == 0

    @property
    def icon(self) -> str:
        return TOAST_ICONS.get(self.type, TOAST_ICONS["info"])


class NotificationCenter:
    """Newest-first list of notifications.

    Non-persistent notifications expire ``duration`` seconds after they were
    added; ``prune`` drops them. A duration of ``0`` keeps a notification
    until it is removed explicitly.
    """

    def __init__(self, *, default_duration: float = DEFAULT_DURATION,
                 clock: Callable[[], float] = time.time) -> None:
        self.default_duration = default_duration
        self._clock = clock
        self._lock = threading.Lock()
        self._items: List[Notification] = []

    @property
    def notifications(self) -> List[Notification]:
        with self._lock:
            return list(self._items)

    @property
    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for n in self._items if not n.read)

    def add(self, type: str, title: str, message: str = "",
            duration: Optional[float] = None) -> Notification:
        if type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {type}")
        notification = Notification(
            type=type,
            title=title,
            message=message,
            duration=self.default_duration if duration is None else duration,
            timestamp=self._clock(),
        )
        with self._lock:
            self._items.insert(0, notification)
        return notification

    def success(self, title: str, message: str = "", **kwargs) -> Notification:
        return self.add("success", title, message, **kwargs)

    def error(self, title: str, message: str = "", **kwargs) -> Notification:
        return self.add("error", title, message, **kwargs)

    def warning(self, title: str, message: str = "", **kwargs) -> Notification:
        return self.add("warning", title, message, **kwargs)

    def info(self, title: str, message: str = "", **kwargs) -> Notification:
        return self.add("info", title, message, **kwargs)

    def remove(self, notification_id: str) -> None:
        with self._lock:
            self._items = [n for n in self._items if n.id != notification_id]

    def mark_as_read(self, notification_id: str) -> None:
        with self._lock:
            for n in self._items:
                if n.id == notification_id:
                    n.read = True

    def mark_all_as_read(self) -> None:
        with self._lock:
            for n in self._items:
                n.read = True

    def clear_all(self) -> None:
        with self._lock:
            self._items = []

    def prune(self) -> int:
        """Drop expired notifications; returns how many were removed."""
        now = self._clock()
        with self._lock:
            keep = [
                n for n in self._items
                if n.persistent or now - n.timestamp < n.duration
            ]
            removed = len(self._items) - len(keep)
            self._items = keep
        return removed

    def take_unshown(self) -> List[Notification]:
        """Return notifications not yet displayed as toasts, oldest first."""
        with self._lock:
            fresh = [n for n in self._items if not n.shown]
            for n in fresh:
                n.shown = True
        return list(reversed(fresh))


__all__ = ["Notification", "NotificationCenter", "NOTIFICATION_TYPES", "TOAST_ICONS"]
