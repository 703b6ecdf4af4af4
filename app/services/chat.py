from datetime import datetime, timedelta, timezone
from typing import List, Optional

from supabase import Client

from app import config
from app.database import get_supabase
from app.models.chat import Buckets, Rpc, Tables

MESSAGE_COLUMNS = "*, reactions:message_reactions(*)"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def escape_like(term: str) -> str:
    """Make % _ and backslash in a search term match literally"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def ordered_pair(user_a: str, user_b: str) -> tuple:
    """DM channels store their participants in ascending order"""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class ChatService:
    def __init__(self, supabase: Optional[Client] = None):
        self.supabase: Client = supabase if supabase is not None else get_supabase()

    # Channels

    async def list_channels(self) -> List[dict]:
        result = self.supabase.table(Tables.CHANNELS).select("*").order("name").execute()
        return result.data or []

    async def get_channel_by_name(self, name: str) -> Optional[dict]:
        result = (
            self.supabase.table(Tables.CHANNELS)
            .select("*")
            .eq("name", name)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_oldest_channel(self) -> Optional[dict]:
        result = (
            self.supabase.table(Tables.CHANNELS)
            .select("*")
            .order("created_at", desc=False)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def create_channel(
        self,
        name: str,
        created_by: str,
        description: Optional[str] = None
    ) -> Optional[dict]:
        """Create a channel; returns None when the name is already taken"""
        data = {"name": name, "created_by": created_by}
        if description is not None:
            data["description"] = description

        result = (
            self.supabase.table(Tables.CHANNELS)
            .upsert(data, on_conflict="name", ignore_duplicates=True)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_default_channel(self, user_id: str) -> Optional[dict]:
        """
        Resolve the channel a session opens on.

        Prefers "general", then the oldest channel, and finally creates
        "general". Creation ignores duplicates so concurrent sessions end up
        on the same row.
        """
        channel = await self.get_channel_by_name(config.DEFAULT_CHANNEL_NAME)
        if channel:
            return channel

        channel = await self.get_oldest_channel()
        if channel:
            return channel

        channel = await self.create_channel(
            name=config.DEFAULT_CHANNEL_NAME,
            created_by=user_id,
            description=config.DEFAULT_CHANNEL_DESCRIPTION,
        )
        if channel:
            return channel
        return await self.get_channel_by_name(config.DEFAULT_CHANNEL_NAME)

    async def clear_channel(self, channel_id: int) -> None:
        """Delete every message in a channel and then the channel itself"""
        self.supabase.table(Tables.MESSAGES).delete().eq("channel_id", channel_id).execute()
        self.supabase.table(Tables.CHANNELS).delete().eq("id", channel_id).execute()

    # Channel messages

    async def list_messages(self, channel_id: int) -> List[dict]:
        """Get all messages in a channel ordered by creation time"""
        result = (
            self.supabase.table(Tables.MESSAGES)
            .select(MESSAGE_COLUMNS)
            .eq("channel_id", channel_id)
            .order("created_at", desc=False)
            .execute()
        )
        return result.data or []

    async def add_message(
        self,
        channel_id: int,
        user_id: str,
        username: str,
        content: str,
        parent_message_id: Optional[int] = None,
        file: Optional[dict] = None,
        audio: Optional[str] = None,
    ) -> Optional[dict]:
        data = {
            "content": content,
            "user_id": user_id,
            "username": username,
            "channel_id": channel_id,
            "parent_message_id": parent_message_id,
            "file": file,
            "audio": audio,
        }
        result = self.supabase.table(Tables.MESSAGES).insert(data).execute()
        return result.data[0] if result.data else None

    async def search_messages(self, channel_id: int, term: str) -> List[dict]:
        result = (
            self.supabase.table(Tables.MESSAGES)
            .select(MESSAGE_COLUMNS)
            .eq("channel_id", channel_id)
            .ilike("content", f"%{escape_like(term)}%")
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    # Direct messages

    async def get_or_create_dm_channel(self, user_id: str, other_user_id: str) -> dict:
        """
        Resolve the single DM channel for an unordered pair of users.

        A single upsert on the (user1_id, user2_id) key, so repeated or
        concurrent calls return the same row.
        """
        user1_id, user2_id = ordered_pair(user_id, other_user_id)
        result = (
            self.supabase.table(Tables.DM_CHANNELS)
            .upsert(
                {"user1_id": user1_id, "user2_id": user2_id},
                on_conflict="user1_id,user2_id",
            )
            .execute()
        )
        return result.data[0]

    async def list_dm_channels(self, user_id: str) -> List[dict]:
        result = (
            self.supabase.table(Tables.DM_CHANNELS)
            .select("*")
            .or_(f"user1_id.eq.{user_id},user2_id.eq.{user_id}")
            .execute()
        )
        return result.data or []

    async def mark_dm_read(self, dm_channel_id: int, reader_id: str) -> None:
        """Reset the unread counter unless the reader sent the last message"""
        (
            self.supabase.table(Tables.DM_CHANNELS)
            .update({"unread_count": 0})
            .eq("id", dm_channel_id)
            .neq("last_message_from", reader_id)
            .execute()
        )

    async def list_dm_messages(self, dm_channel_id: int) -> List[dict]:
        result = (
            self.supabase.table(Tables.DM_MESSAGES)
            .select(MESSAGE_COLUMNS)
            .eq("dm_channel_id", dm_channel_id)
            .order("created_at", desc=False)
            .execute()
        )
        return result.data or []

    async def add_dm_message(
        self,
        dm_channel_id: int,
        sender_id: str,
        content: str,
        file: Optional[dict] = None,
        audio: Optional[str] = None,
    ) -> Optional[dict]:
        """Insert a direct message and bump the channel's unread counter"""
        data = {
            "content": content,
            "sender_id": sender_id,
            "dm_channel_id": dm_channel_id,
            "file": file,
            "audio": audio,
        }
        result = self.supabase.table(Tables.DM_MESSAGES).insert(data).execute()

        self.supabase.rpc(
            Rpc.INCREMENT_DM_UNREAD,
            {"dm_channel_id": dm_channel_id, "sender_id": sender_id},
        ).execute()

        return result.data[0] if result.data else None

    async def search_dm_messages(self, dm_channel_id: int, term: str) -> List[dict]:
        result = (
            self.supabase.table(Tables.DM_MESSAGES)
            .select(MESSAGE_COLUMNS)
            .eq("dm_channel_id", dm_channel_id)
            .ilike("content", f"%{escape_like(term)}%")
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    # Reactions

    async def set_reaction(
        self,
        user_id: str,
        emoji: str,
        message_id: Optional[int] = None,
        dm_message_id: Optional[int] = None,
    ) -> Optional[dict]:
        """Add the user's reaction to a message, replacing any previous one"""
        if (message_id is None) == (dm_message_id is None):
            raise ValueError("Exactly one of message_id or dm_message_id is required")

        if message_id is not None:
            data = {"message_id": message_id, "user_id": user_id, "emoji": emoji}
            conflict = "message_id,user_id"
        else:
            data = {"dm_message_id": dm_message_id, "user_id": user_id, "emoji": emoji}
            conflict = "dm_message_id,user_id"

        result = (
            self.supabase.table(Tables.REACTIONS)
            .upsert(data, on_conflict=conflict)
            .execute()
        )
        return result.data[0] if result.data else None

    # Presence

    async def upsert_status(self, user_id: str, email: str, status: str) -> Optional[dict]:
        data = {
            "user_id": user_id,
            "email": email,
            "status": status,
            "last_seen": utc_now_iso(),
        }
        result = (
            self.supabase.table(Tables.USER_STATUS)
            .upsert(data, on_conflict="user_id")
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_user_status(self, user_id: str) -> Optional[dict]:
        result = (
            self.supabase.table(Tables.USER_STATUS)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def list_recent_statuses(self, hours: int = config.PRESENCE_WINDOW_HOURS) -> List[dict]:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        result = (
            self.supabase.table(Tables.USER_STATUS)
            .select("*")
            .gte("last_seen", since.isoformat())
            .execute()
        )
        return result.data or []

    # Storage

    async def upload_file(
        self,
        path: str,
        data: bytes,
        content_type: str,
        bucket: str = Buckets.CHAT_FILES,
    ) -> str:
        """Upload a file to Supabase storage and return its public URL"""
        self.supabase.storage.from_(bucket).upload(
            path=path,
            file=data,
            file_options={"content-type": content_type},
        )
        return self.supabase.storage.from_(bucket).get_public_url(path)

    async def download_file(self, path: str, bucket: str = Buckets.CHAT_FILES) -> bytes:
        return self.supabase.storage.from_(bucket).download(path)


_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Get chat service instance"""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
