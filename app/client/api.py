from typing import List, Optional

import httpx

from app import config
from app.schemas.chat import Message, SearchResult


class AIClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AIClient:
    """Calls the AI and video endpoints of the TensionApp API."""

    def __init__(
        self,
        base_url: str = config.AI_API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
        video_timeout: float = config.VIDEO_CLIENT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self.timeout = timeout
        self.video_timeout = video_timeout

    async def _post(self, path: str, body: dict, timeout: float) -> dict:
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                resp = await client.post(f"{self.base_url}{path}", json=body)
            except httpx.RequestError as req_err:
                raise AIClientError(f"Network error: {repr(req_err)}") from req_err

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise AIClientError(message or f"Request failed ({resp.status_code})", resp.status_code)
        return data

    async def _action(self, action: str, **payload) -> dict:
        return await self._post("/ai", {"action": action, **payload}, self.timeout)

    async def index_messages(self, messages: List[Message]) -> None:
        await self._action("index", messages=[m.model_dump(mode="json") for m in messages])

    async def generate(self, query: str, channel_id: int) -> str:
        data = await self._action("generate", query=query, channelId=str(channel_id))
        return data["response"]

    async def generate_dm(self, query: str, other_user_id: str, bot_prompt: str) -> str:
        data = await self._action(
            "generateDM", query=query, otherUserId=other_user_id, botPrompt=bot_prompt
        )
        return data["response"]

    async def search(self, query: str, channel_id: int) -> List[Message]:
        data = await self._action("search", query=query, channelId=str(channel_id))
        return [SearchResult.model_validate(r).to_message() for r in data.get("results", [])]

    async def process_pdf(
        self,
        file_path: str,
        file_id: str,
        file_name: str,
        channel_id: int,
        uploader_id: str,
        uploader_name: str,
    ) -> int:
        data = await self._action(
            "processPDF",
            filePath=file_path,
            fileId=file_id,
            fileName=file_name,
            channelId=str(channel_id),
            uploaderId=uploader_id,
            uploaderName=uploader_name,
        )
        return data.get("numChunks", 0)

    async def tts(self, text: str) -> str:
        data = await self._action("tts", text=text)
        return data["audio"]

    async def generate_video(self, text: str) -> str:
        data = await self._post("/ai/generate-video", {"text": text}, self.video_timeout)
        return data["videoUrl"]
