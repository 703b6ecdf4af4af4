from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, List
from datetime import datetime


class FileAttachment(BaseModel):
    url: str
    name: str
    type: str
    size: int = 0


class MessageReaction(BaseModel):
    id: int
    message_id: Optional[int] = None
    dm_message_id: Optional[int] = None
    user_id: str
    emoji: str
    created_at: datetime

    class Config:
        from_attributes = True


class _ReactableMessage(BaseModel):
    content: str = ""
    created_at: datetime
    file: Optional[FileAttachment] = None
    reactions: List[MessageReaction] = Field(default_factory=list)
    audio: Optional[str] = Field(None, description="Base64 encoded audio data")

    @field_validator("reactions", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


# Channel messages
class Message(_ReactableMessage):
    id: int
    user_id: str
    username: str
    channel_id: int
    parent_message_id: Optional[int] = None

    class Config:
        from_attributes = True


# Direct messages carry only the sender id
class DirectMessage(_ReactableMessage):
    id: int
    sender_id: str
    dm_channel_id: int

    class Config:
        from_attributes = True


class Channel(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class DMChannel(BaseModel):
    id: int
    user1_id: str
    user2_id: str
    created_at: datetime
    last_message_from: Optional[str] = None
    unread_count: int = 0

    @field_validator("unread_count", mode="before")
    @classmethod
    def _none_as_zero(cls, value):
        return value or 0

    def other_user_id(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    class Config:
        from_attributes = True


class UserPresence(BaseModel):
    id: str
    email: str
    display_name: str = ""
    avatar_path: Optional[str] = None
    status: Literal["active", "idle", "offline"] = "offline"
    last_seen: datetime
    unread_count: int = 0
    bot_prompt: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.email

    @classmethod
    def from_status_row(cls, row: dict, unread_count: int = 0) -> "UserPresence":
        return cls(
            id=row["user_id"],
            email=row["email"],
            display_name=row.get("display_name") or row["email"],
            avatar_path=row.get("avatar_path"),
            status=row.get("status") or "offline",
            last_seen=row["last_seen"],
            unread_count=unread_count,
            bot_prompt=row.get("bot_prompt"),
        )


# AI endpoint schemas
class SearchResultMetadata(BaseModel):
    messageId: int
    userId: str
    username: str
    channelId: int
    timestamp: str


class SearchResult(BaseModel):
    pageContent: str
    metadata: SearchResultMetadata

    def to_message(self) -> Message:
        return Message(
            id=self.metadata.messageId,
            content=self.pageContent,
            user_id=self.metadata.userId,
            username=self.metadata.username,
            channel_id=self.metadata.channelId,
            created_at=self.metadata.timestamp,
        )
