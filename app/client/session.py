import logging
from dataclasses import dataclass
from typing import List, Optional, Union
from uuid import uuid4

from app import config
from app.client.api import AIClient
from app.client.commands import CommandInterpreter, OutgoingMessage
from app.client.context import ChatContext, ChatContextSwitcher
from app.client.notifications import Notifier
from app.client.presence import PresenceTracker
from app.client.realtime import RealtimeSubscriber
from app.client.sync import MessageStore
from app.errors import ValidationError
from app.models.chat import Buckets, PresenceStatus
from app.schemas.chat import Channel, DirectMessage, FileAttachment, Message, UserPresence
from app.services.chat import ChatService

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass
class SessionUser:
    id: str
    email: str
    display_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self.display_name or self.email


@dataclass
class AttachmentUpload:
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def validate_attachment(upload: AttachmentUpload, max_size: int = config.MAX_CHAT_FILE_SIZE) -> None:
    if upload.size > max_size:
        raise ValidationError(f"File size must be less than {max_size // (1024 * 1024)}MB")


class ChatSession:
    """
    One signed-in user's view of the chat.

    Owns the context switcher, the message store of the open conversation,
    presence tracking and the slash-command interpreter.
    """

    def __init__(
        self,
        user: SessionUser,
        chat_service: ChatService,
        ai_client: AIClient,
        subscriber: RealtimeSubscriber,
        notifier: Optional[Notifier] = None,
        admin_email: str = config.ADMIN_EMAIL,
        presence: Optional[PresenceTracker] = None,
    ):
        self.user = user
        self.chat_service = chat_service
        self.ai_client = ai_client
        self.notifier = notifier or Notifier()
        self.switcher = ChatContextSwitcher(chat_service, user.id)
        self.store = MessageStore(chat_service, subscriber)
        self.presence = presence or PresenceTracker(chat_service, user.id, user.email)
        self.commands = CommandInterpreter(ai_client, self.notifier, admin_email)
        self.switcher.add_listener(self._on_context_change)

    @property
    def context(self) -> Optional[ChatContext]:
        return self.switcher.current

    async def _on_context_change(self, context: ChatContext) -> None:
        await self.store.open(context)

    async def start(self, poll_presence: bool = True) -> None:
        await self.presence.set_status(PresenceStatus.ACTIVE)
        try:
            status = await self.chat_service.get_user_status(self.user.id)
        except Exception:
            logger.exception("Could not load profile for %s", self.user.id)
            status = None
        if status and status.get("display_name") and not self.user.display_name:
            self.user.display_name = status["display_name"]

        await self.switcher.initialize()
        if poll_presence:
            self.presence.start()

    async def close(self) -> None:
        await self.store.close()
        await self.presence.stop()

    async def sign_out(self) -> None:
        await self.store.close()
        await self.presence.sign_out()

    # Navigation

    async def list_channels(self) -> List[Channel]:
        rows = await self.chat_service.list_channels()
        return [Channel.model_validate(row) for row in rows]

    async def select_channel(self, channel: Channel) -> ChatContext:
        return await self.switcher.select_channel(channel)

    async def select_user(self, user: UserPresence) -> Optional[ChatContext]:
        return await self.switcher.select_user(user)

    async def create_channel(self, name: str) -> Optional[Channel]:
        name = name.strip().lower()
        if not name:
            return None
        try:
            row = await self.chat_service.create_channel(name=name, created_by=self.user.id)
        except Exception:
            logger.exception("Error creating channel %s", name)
            row = None
        if row is None:
            self.notifier.error("Error creating channel. The name might already be taken.")
            return None
        return Channel.model_validate(row)

    # Sending

    async def send_message(
        self,
        text: str,
        parent_message_id: Optional[int] = None,
        attachment: Optional[AttachmentUpload] = None,
    ) -> Optional[dict]:
        """
        Send text (and optionally a file) to the open conversation.

        Slash commands are interpreted first. Returns the stored row of the
        last message sent, or None when nothing was sent.
        """
        context = self.context
        if context is None or (not text.strip() and attachment is None):
            return None

        if attachment is not None:
            try:
                validate_attachment(attachment)
            except ValidationError as e:
                self.notifier.error(str(e))
                return None

        await self.presence.record_activity()

        if text.strip():
            outcome = await self.commands.interpret(text, context, self.user.email, self.store.messages)
            if outcome.clear:
                await self._clear_channel(context)
                return None
            outgoing = outcome.outgoing
            if outgoing is None:
                return None
        else:
            outgoing = OutgoingMessage(content="")

        if attachment is not None:
            uploaded = await self._upload(attachment, context)
            if uploaded is None:
                return None
            if outgoing.file is not None:
                # The command produced its own video; the user's file goes first
                await self._insert(context, OutgoingMessage(content="", file=uploaded), parent_message_id)
            else:
                outgoing.file = uploaded

        row = await self._insert(context, outgoing, parent_message_id)
        await self.store.refresh()
        return row

    async def _insert(
        self,
        context: ChatContext,
        outgoing: OutgoingMessage,
        parent_message_id: Optional[int],
    ) -> Optional[dict]:
        file = outgoing.file.model_dump() if outgoing.file else None
        try:
            if context.is_channel:
                return await self.chat_service.add_message(
                    channel_id=context.channel.id,
                    user_id=self.user.id,
                    username=self.user.name,
                    content=outgoing.content,
                    parent_message_id=parent_message_id,
                    file=file,
                    audio=outgoing.audio,
                )
            return await self.chat_service.add_dm_message(
                dm_channel_id=context.dm_channel.id,
                sender_id=self.user.id,
                content=outgoing.content,
                file=file,
                audio=outgoing.audio,
            )
        except Exception:
            logger.exception("Error sending message")
            self.notifier.error("Failed to send message")
            return None

    async def _upload(self, attachment: AttachmentUpload, context: ChatContext) -> Optional[FileAttachment]:
        kind, conversation_id = context.key
        file_id = uuid4().hex
        path = f"{kind}-{conversation_id}/{file_id}-{attachment.name}"
        try:
            url = await self.chat_service.upload_file(
                path, attachment.data, attachment.content_type, bucket=Buckets.CHAT_FILES
            )
        except Exception:
            logger.exception("Error uploading %s", attachment.name)
            self.notifier.error("Failed to upload file")
            return None

        if attachment.content_type == PDF_MIME_TYPE and context.is_channel:
            await self._index_pdf(path, file_id, attachment.name, context.channel.id)

        return FileAttachment(
            url=url,
            name=attachment.name,
            type=attachment.content_type,
            size=attachment.size,
        )

    async def _index_pdf(self, path: str, file_id: str, name: str, channel_id: int) -> None:
        try:
            chunks = await self.ai_client.process_pdf(
                file_path=path,
                file_id=file_id,
                file_name=name,
                channel_id=channel_id,
                uploader_id=self.user.id,
                uploader_name=self.user.name,
            )
        except Exception:
            logger.exception("Error processing PDF %s", name)
            self.notifier.error("PDF uploaded, but it could not be indexed for /ai")
            return
        self.notifier.show(f"Indexed {chunks} sections of {name} for /ai", kind="success")

    async def _clear_channel(self, context: ChatContext) -> None:
        try:
            await self.chat_service.clear_channel(context.channel.id)
        except Exception:
            logger.exception("Error clearing channel %s", context.channel.id)
            self.notifier.error("Failed to clear channel")
            return
        self.notifier.show(f"Cleared #{context.channel.name}", kind="success")
        await self.switcher.fall_back_to_default()

    # Reactions and search

    async def react(self, message_id: int, emoji: str) -> None:
        context = self.context
        if context is None:
            return
        try:
            if context.is_channel:
                await self.chat_service.set_reaction(self.user.id, emoji, message_id=message_id)
            else:
                await self.chat_service.set_reaction(self.user.id, emoji, dm_message_id=message_id)
        except Exception:
            logger.exception("Error reacting to message %s", message_id)
            return
        await self.store.refresh()

    async def search(self, term: str) -> List[Union[Message, DirectMessage]]:
        """Substring search, or semantic search over the channel with "/ai <query>"."""
        context = self.context
        term = term.strip()
        if context is None or not term:
            return []

        try:
            if term.startswith("/ai "):
                return await self._semantic_search(term[4:].strip(), context)
            if context.is_channel:
                rows = await self.chat_service.search_messages(context.channel.id, term)
                return [Message.model_validate(row) for row in rows]
            rows = await self.chat_service.search_dm_messages(context.dm_channel.id, term)
            return [DirectMessage.model_validate(row) for row in rows]
        except Exception:
            logger.exception("Search error")
            self.notifier.error("Search failed")
            return []

    async def _semantic_search(self, query: str, context: ChatContext) -> List[Message]:
        if not query:
            self.notifier.error("Please provide a query after /ai")
            return []
        if not context.is_channel:
            self.notifier.error("AI search is only available in channels")
            return []

        rows = await self.chat_service.list_messages(context.channel.id)
        messages = [Message.model_validate(row) for row in rows]
        messages = [m for m in messages if m.content.strip()]
        if messages:
            await self.ai_client.index_messages(messages)
        return await self.ai_client.search(query, context.channel.id)
