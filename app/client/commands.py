"""
Slash commands typed into the message box.

    /ai <query>    replace the message with an AI answer ("Q: ...\\n\\nA: ...")
    /say           attach synthesized speech
    /see           send a talking-head video instead of plain text
    /clear         (whole message, channel only, administrator only)
                   delete the channel and everything in it

/ai, /say and /see combine in any order within the first three tokens.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from app import config
from app.client.context import ChatContext
from app.client.notifications import Notifier
from app.schemas.chat import FileAttachment, Message

logger = logging.getLogger(__name__)

AI = "/ai"
SAY = "/say"
SEE = "/see"
CLEAR = "/clear"

COMBINABLE = {AI, SAY, SEE}
MAX_COMMAND_TOKENS = 3

VIDEO_FILE_NAME = "ai-video.mp4"
VIDEO_MIME_TYPE = "video/mp4"


@dataclass(frozen=True)
class ParsedCommand:
    text: str
    ai: bool = False
    say: bool = False
    see: bool = False
    clear: bool = False

    @property
    def has_commands(self) -> bool:
        return self.ai or self.say or self.see or self.clear


def parse_command(text: str) -> ParsedCommand:
    stripped = text.strip()
    if stripped == CLEAR:
        return ParsedCommand(text="", clear=True)

    found = set()
    count = 0
    for token in stripped.split(None, MAX_COMMAND_TOKENS)[:MAX_COMMAND_TOKENS]:
        if token not in COMBINABLE:
            break
        found.add(token)
        count += 1

    if not count:
        return ParsedCommand(text=text)

    parts = stripped.split(None, count)
    remainder = parts[count].strip() if len(parts) > count else ""
    return ParsedCommand(
        text=remainder,
        ai=AI in found,
        say=SAY in found,
        see=SEE in found,
    )


def format_answer(query: str, answer: str) -> str:
    return f"Q: {query}\n\nA: {answer}"


class CommandAssistant(Protocol):
    async def index_messages(self, messages: List[Message]) -> None: ...

    async def generate(self, query: str, channel_id: int) -> str: ...

    async def generate_dm(self, query: str, other_user_id: str, bot_prompt: str) -> str: ...

    async def tts(self, text: str) -> str: ...

    async def generate_video(self, text: str) -> str: ...


@dataclass
class OutgoingMessage:
    content: str
    audio: Optional[str] = None
    file: Optional[FileAttachment] = None


@dataclass
class CommandOutcome:
    outgoing: Optional[OutgoingMessage] = None
    clear: bool = False


class CommandInterpreter:
    def __init__(
        self,
        assistant: CommandAssistant,
        notifier: Notifier,
        admin_email: str = config.ADMIN_EMAIL,
    ):
        self.assistant = assistant
        self.notifier = notifier
        self.admin_email = admin_email

    async def interpret(
        self,
        text: str,
        context: ChatContext,
        user_email: str,
        messages: Sequence[Message] = (),
    ) -> CommandOutcome:
        """
        Work out what sending text should do.

        Returns an outcome carrying the message to send (possibly rewritten
        by commands), a request to clear the channel, or neither when the
        command was refused or produced nothing to send.
        """
        parsed = parse_command(text)

        if parsed.clear:
            if not context.is_channel:
                self.notifier.error("/clear is only available in channels")
                return CommandOutcome()
            if user_email != self.admin_email:
                self.notifier.error("Only the administrator can clear a channel")
                return CommandOutcome()
            return CommandOutcome(clear=True)

        if not parsed.has_commands:
            return CommandOutcome(outgoing=OutgoingMessage(content=text))

        if not parsed.text:
            self.notifier.error("Please provide some text after the command")
            return CommandOutcome()

        if parsed.ai:
            try:
                answer = await self._answer(parsed.text, context, messages)
            except Exception:
                logger.exception("AI response failed")
                self.notifier.error("Failed to get AI response")
                return CommandOutcome()
            content = format_answer(parsed.text, answer)
            spoken = answer
        else:
            content = spoken = parsed.text

        audio = None
        if parsed.say:
            try:
                audio = await self.assistant.tts(spoken)
            except Exception:
                logger.exception("Speech synthesis failed")
                self.notifier.error("Failed to generate speech, sending text only")

        if parsed.see:
            try:
                video_url = await self.assistant.generate_video(spoken)
            except Exception:
                logger.exception("Video generation failed")
                self.notifier.error("Failed to generate video, sending text instead")
            else:
                attachment = FileAttachment(url=video_url, name=VIDEO_FILE_NAME, type=VIDEO_MIME_TYPE)
                return CommandOutcome(
                    outgoing=OutgoingMessage(content=content, audio=audio, file=attachment)
                )

        return CommandOutcome(outgoing=OutgoingMessage(content=content, audio=audio))

    async def _answer(self, query: str, context: ChatContext, messages: Sequence[Message]) -> str:
        if not context.is_channel:
            other = context.other_user
            return await self.assistant.generate_dm(
                query, other.id, other.bot_prompt or config.DEFAULT_BOT_PROMPT
            )

        indexable = [m for m in messages if isinstance(m, Message) and m.content.strip()]
        if indexable:
            try:
                await self.assistant.index_messages(indexable)
            except Exception:
                # Answer from whatever is already indexed
                logger.exception("Indexing channel %s failed", context.channel.id)
        return await self.assistant.generate(query, context.channel.id)
