"""Push notifications for table changes, backed by Supabase realtime."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from supabase import AsyncClient, acreate_client

from app import config
from app.errors import require_setting

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[dict], None]


@dataclass(frozen=True)
class ChangeBinding:
    table: str
    event: str = "*"  # INSERT, UPDATE, DELETE or *
    filter: Optional[str] = None


class RealtimeSubscriber(Protocol):
    async def subscribe(
        self,
        name: str,
        bindings: Sequence[ChangeBinding],
        callback: ChangeCallback,
    ) -> Any:
        """Start delivering matching changes to callback; returns a handle."""
        ...

    async def unsubscribe(self, handle: Any) -> None:
        ...


class SupabaseRealtime:
    def __init__(self, client: Optional[AsyncClient] = None):
        self._client = client

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await acreate_client(
                require_setting(config.SUPABASE_URL, "SUPABASE_URL"),
                require_setting(config.SUPABASE_KEY, "SUPABASE_KEY"),
            )
        return self._client

    async def subscribe(
        self,
        name: str,
        bindings: Sequence[ChangeBinding],
        callback: ChangeCallback,
    ) -> Any:
        client = await self._get_client()
        channel = client.channel(name)
        for binding in bindings:
            channel.on_postgres_changes(
                binding.event,
                callback=callback,
                table=binding.table,
                schema="public",
                filter=binding.filter,
            )
        await channel.subscribe()
        logger.debug("Subscribed %s to %d bindings", name, len(bindings))
        return channel

    async def unsubscribe(self, handle: Any) -> None:
        client = await self._get_client()
        await client.remove_channel(handle)
