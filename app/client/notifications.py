import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional

from app import config

logger = logging.getLogger(__name__)

NotificationKind = Literal["info", "success", "error"]


@dataclass
class Notification:
    id: int
    text: str
    kind: NotificationKind = "info"


class Notifier:
    """Transient notifications that dismiss themselves after a fixed lifetime."""

    def __init__(
        self,
        lifetime: float = config.NOTIFICATION_LIFETIME,
        on_change: Optional[Callable[[List[Notification]], None]] = None,
    ):
        self.lifetime = lifetime
        self.on_change = on_change
        self._active: List[Notification] = []
        self._ids = itertools.count(1)

    @property
    def active(self) -> List[Notification]:
        return list(self._active)

    def show(self, text: str, kind: NotificationKind = "info") -> Notification:
        notification = Notification(id=next(self._ids), text=text, kind=kind)
        self._active.append(notification)
        if kind == "error":
            logger.warning("Notification: %s", text)
        self._changed()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to schedule on; caller dismisses manually
            return notification
        loop.call_later(self.lifetime, self.dismiss, notification.id)
        return notification

    def error(self, text: str) -> Notification:
        return self.show(text, kind="error")

    def dismiss(self, notification_id: int) -> None:
        before = len(self._active)
        self._active = [n for n in self._active if n.id != notification_id]
        if len(self._active) != before:
            self._changed()

    def _changed(self) -> None:
        if self.on_change:
            self.on_change(self.active)
