import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Literal, Optional

from app.schemas.chat import Channel, DMChannel, UserPresence
from app.services.chat import ChatService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatContext:
    type: Literal["channel", "dm"]
    channel: Optional[Channel] = None
    dm_channel: Optional[DMChannel] = None
    other_user: Optional[UserPresence] = None

    @property
    def is_channel(self) -> bool:
        return self.type == "channel"

    @property
    def key(self) -> tuple:
        """Identifies the conversation this context points at"""
        if self.is_channel:
            return ("channel", self.channel.id)
        return ("dm", self.dm_channel.id)

    @classmethod
    def for_channel(cls, channel: Channel) -> "ChatContext":
        return cls(type="channel", channel=channel)

    @classmethod
    def for_dm(cls, dm_channel: DMChannel, other_user: UserPresence) -> "ChatContext":
        return cls(type="dm", dm_channel=dm_channel, other_user=other_user)


ContextListener = Callable[[ChatContext], Awaitable[None]]


class ChatContextSwitcher:
    """Tracks whether the session is viewing a channel or a direct message."""

    def __init__(self, chat_service: ChatService, user_id: str):
        self.chat_service = chat_service
        self.user_id = user_id
        self.current: Optional[ChatContext] = None
        self._listeners: List[ContextListener] = []

    def add_listener(self, listener: ContextListener) -> None:
        self._listeners.append(listener)

    async def _move_to(self, context: ChatContext) -> ChatContext:
        self.current = context
        for listener in self._listeners:
            await listener(context)
        return context

    async def initialize(self) -> Optional[ChatContext]:
        """Open the default channel, creating "general" if there are none"""
        row = await self.chat_service.get_default_channel(self.user_id)
        if row is None:
            logger.error("Could not resolve or create a default channel")
            return None
        return await self._move_to(ChatContext.for_channel(Channel.model_validate(row)))

    async def fall_back_to_default(self) -> Optional[ChatContext]:
        return await self.initialize()

    async def select_channel(self, channel: Channel) -> ChatContext:
        return await self._move_to(ChatContext.for_channel(channel))

    async def select_user(self, user: UserPresence) -> Optional[ChatContext]:
        """Open the DM conversation with user, creating it on first contact"""
        if user.id == self.user_id:
            return None

        row = await self.chat_service.get_or_create_dm_channel(self.user_id, user.id)
        dm_channel = DMChannel.model_validate(row)

        if dm_channel.last_message_from != self.user_id and dm_channel.unread_count:
            await self.chat_service.mark_dm_read(dm_channel.id, self.user_id)
            dm_channel = dm_channel.model_copy(update={"unread_count": 0})

        return await self._move_to(ChatContext.for_dm(dm_channel, user))
