import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from app.client.context import ChatContext
from app.client.realtime import ChangeBinding, RealtimeSubscriber
from app.client.threads import (
    find_orphaned_threads,
    organize_messages_into_threads,
    summarize_reactions,
)
from app.models.chat import Tables
from app.schemas.chat import DirectMessage, Message
from app.services.chat import ChatService

logger = logging.getLogger(__name__)

AnyMessage = Union[Message, DirectMessage]


def change_bindings(context: ChatContext) -> List[ChangeBinding]:
    """Table changes that invalidate the message list of a conversation"""
    if context.is_channel:
        table, column, conversation_id = Tables.MESSAGES, "channel_id", context.channel.id
    else:
        table, column, conversation_id = Tables.DM_MESSAGES, "dm_channel_id", context.dm_channel.id

    row_filter = f"{column}=eq.{conversation_id}"
    return [
        ChangeBinding(table=table, event="INSERT", filter=row_filter),
        ChangeBinding(table=table, event="UPDATE", filter=row_filter),
        ChangeBinding(table=Tables.REACTIONS, event="*"),
    ]


class MessageStore:
    """
    Message list of the open conversation, kept in sync with the backend.

    Every change notification triggers a full re-fetch ordered by
    created_at. Each fetch is numbered when issued; a result is applied
    only if its conversation is still open and nothing newer has been
    applied, so a slow fetch can never overwrite fresher data or land in
    a conversation the user has left.
    """

    def __init__(self, chat_service: ChatService, subscriber: RealtimeSubscriber):
        self.chat_service = chat_service
        self.subscriber = subscriber
        self.context: Optional[ChatContext] = None
        self.messages: List[AnyMessage] = []
        self.on_update: Optional[Callable[[List[AnyMessage]], None]] = None
        self._subscription: Any = None
        self._issued = 0
        self._applied = 0
        self._pending: Set[asyncio.Task] = set()

    async def open(self, context: ChatContext) -> None:
        await self.close()
        self.context = context
        self.messages = []
        self._applied = self._issued

        kind, conversation_id = context.key
        try:
            self._subscription = await self.subscriber.subscribe(
                f"{kind}-{conversation_id}",
                change_bindings(context),
                self.handle_change,
            )
        except Exception:
            logger.exception("Realtime subscription failed for %s %s", kind, conversation_id)

        await self.refresh()

    async def close(self) -> None:
        if self._subscription is not None:
            try:
                await self.subscriber.unsubscribe(self._subscription)
            except Exception:
                logger.exception("Failed to remove realtime subscription")
            self._subscription = None
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self.context = None
        self.messages = []

    def handle_change(self, payload: Dict[str, Any]) -> None:
        """Realtime callback; schedules a full re-fetch"""
        if self.context is None:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def refresh(self) -> None:
        context = self.context
        if context is None:
            return

        self._issued += 1
        ticket = self._issued

        try:
            if context.is_channel:
                rows = await self.chat_service.list_messages(context.channel.id)
            else:
                rows = await self.chat_service.list_dm_messages(context.dm_channel.id)
        except Exception:
            logger.exception("Error fetching messages for %s", context.key)
            return

        if self.context is None or self.context.key != context.key:
            logger.debug("Discarding messages for %s, conversation changed", context.key)
            return
        if ticket <= self._applied:
            logger.debug("Discarding stale fetch %d (applied %d)", ticket, self._applied)
            return

        model = Message if context.is_channel else DirectMessage
        self._applied = ticket
        self.messages = [model.model_validate(row) for row in rows]
        if self.on_update:
            self.on_update(self.messages)

    def reaction_summary(self, message_id: int, limit: int = 3) -> List[Tuple[str, int]]:
        """Most used emojis on a loaded message, empty if it is not loaded"""
        message = next((m for m in self.messages if m.id == message_id), None)
        if message is None:
            return []
        return summarize_reactions(message.reactions, limit)

    @property
    def threads(self) -> Tuple[List[AnyMessage], Dict[int, List[Message]]]:
        """Top-level messages and replies by parent; DMs are never threaded"""
        if self.context is None or not self.context.is_channel:
            return list(self.messages), {}

        top_level, replies = organize_messages_into_threads(self.messages)
        orphaned = find_orphaned_threads(top_level, replies)
        if orphaned:
            logger.debug("Replies to unknown parents %s are not shown", sorted(orphaned))
        return top_level, replies
