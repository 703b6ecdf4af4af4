import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from app import config
from app.models.chat import STATUS_PRIORITY, PresenceStatus
from app.schemas.chat import UserPresence
from app.services.chat import ChatService

logger = logging.getLogger(__name__)


def build_user_list(
    status_rows: Iterable[dict],
    dm_channels: Iterable[dict],
    current_user_id: str,
) -> List[UserPresence]:
    """
    Merge presence rows with the current user's DM channels.

    A user's unread count is the DM channel's counter, but only when that
    user sent the last message in it.
    """
    channels = list(dm_channels)
    users = []
    for row in status_rows:
        other_id = row["user_id"]
        dm = next(
            (
                c for c in channels
                if {c["user1_id"], c["user2_id"]} == {other_id, current_user_id}
            ),
            None,
        )
        unread = 0
        if dm and dm.get("last_message_from") == other_id:
            unread = dm.get("unread_count") or 0
        users.append(UserPresence.from_status_row(row, unread_count=unread))
    return users


def sort_users(users: Iterable[UserPresence]) -> List[UserPresence]:
    """Unread first, then active < idle < offline, then by name"""
    return sorted(
        users,
        key=lambda u: (
            0 if u.unread_count > 0 else 1,
            STATUS_PRIORITY.get(u.status, STATUS_PRIORITY[PresenceStatus.OFFLINE.value]),
            u.label.lower(),
        ),
    )


def online_count(users: Iterable[UserPresence]) -> int:
    return sum(1 for u in users if u.status != PresenceStatus.OFFLINE.value)


def format_last_seen(last_seen: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = int((now - last_seen).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return last_seen.date().isoformat()


class PresenceTracker:
    """
    Maintains the current user's own status and the list of recent users.

    Input activity marks the user active. While the page is hidden, a
    stretch of idle_after seconds without input flips the status to idle.
    The user list is re-fetched every poll_interval seconds; errors are
    logged and the previous list is kept.
    """

    def __init__(
        self,
        chat_service: ChatService,
        user_id: str,
        email: str,
        idle_after: float = config.IDLE_AFTER_SECONDS,
        poll_interval: float = config.PRESENCE_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.chat_service = chat_service
        self.user_id = user_id
        self.email = email
        self.idle_after = idle_after
        self.poll_interval = poll_interval
        self.clock = clock

        self.status: Optional[str] = None
        self.visible = True
        self.users: List[UserPresence] = []
        self.on_update: Optional[Callable[[List[UserPresence]], None]] = None
        self._last_active = clock()
        self._task: Optional[asyncio.Task] = None

    async def set_status(self, status: PresenceStatus) -> None:
        self.status = status.value
        try:
            await self.chat_service.upsert_status(self.user_id, self.email, status.value)
        except Exception:
            logger.exception("Failed to update status to %s", status.value)

    async def record_activity(self) -> None:
        """Input event (typing, clicking, pointer movement)"""
        self._last_active = self.clock()
        if self.status != PresenceStatus.ACTIVE.value:
            await self.set_status(PresenceStatus.ACTIVE)

    async def set_visibility(self, visible: bool) -> None:
        self.visible = visible
        if visible:
            await self.record_activity()

    async def check_idle(self) -> None:
        if self.visible or self.status != PresenceStatus.ACTIVE.value:
            return
        if self.clock() - self._last_active >= self.idle_after:
            await self.set_status(PresenceStatus.IDLE)

    async def refresh_users(self) -> List[UserPresence]:
        try:
            statuses = await self.chat_service.list_recent_statuses()
            dm_channels = await self.chat_service.list_dm_channels(self.user_id)
        except Exception:
            logger.exception("Error fetching user presence")
            return self.users

        self.users = sort_users(build_user_list(statuses, dm_channels, self.user_id))
        if self.on_update:
            self.on_update(self.users)
        return self.users

    @property
    def online(self) -> int:
        """Users in the current list who are not offline"""
        return online_count(self.users)

    def describe(self, user: UserPresence, now: Optional[datetime] = None) -> str:
        """Status line for the user list: the status, or when an offline user was last seen"""
        if user.status == PresenceStatus.OFFLINE.value:
            return f"last seen {format_last_seen(user.last_seen, now)}"
        return user.status

    async def tick(self) -> None:
        await self.check_idle()
        await self.refresh_users()

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def sign_out(self) -> None:
        await self.stop()
        await self.set_status(PresenceStatus.OFFLINE)
