import asyncio
import logging
from typing import Optional

import httpx

from app import config
from app.errors import ProviderError

logger = logging.getLogger(__name__)

if not config.DID_API_KEY:
    logger.warning("DID_API_KEY not set — video generation will fail until configured.")


class VideoService:
    """Talking-head videos via the D-ID talks API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: str = config.DID_API_BASE,
        max_attempts: int = config.VIDEO_POLL_MAX_ATTEMPTS,
        poll_interval: float = config.VIDEO_POLL_INTERVAL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self._transport = transport

    def _build_talk(self, text: str) -> dict:
        return {
            "source_url": config.DID_SOURCE_URL,
            "script": {
                "type": "text",
                "subtitles": "false",
                "provider": {"type": "microsoft", "voice_id": config.DID_VOICE_ID},
                "input": text,
            },
        }

    async def generate_video(self, text: str) -> str:
        """
        Create a talk and poll until the video is ready.

        Returns:
            The rendered video URL

        Raises:
            ProviderError: create/get failures carry the provider status;
                a failed render or running out of attempts is a 500
        """
        api_key = self._api_key or config.DID_API_KEY
        if not api_key:
            raise ProviderError("D-ID API key not configured", status_code=500)

        headers = {"accept": "application/json", "authorization": api_key}

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            create_resp = await client.post(
                f"{self.api_base}/talks",
                headers={**headers, "content-type": "application/json"},
                json=self._build_talk(text),
            )
            if create_resp.status_code >= 400:
                logger.error("D-ID create failed %s: %s", create_resp.status_code, create_resp.text)
                raise ProviderError("Failed to create video", status_code=create_resp.status_code)

            talk_id = create_resp.json()["id"]
            logger.info("Created video with ID: %s", talk_id)

            for _ in range(self.max_attempts):
                get_resp = await client.get(f"{self.api_base}/talks/{talk_id}", headers=headers)
                if get_resp.status_code >= 400:
                    logger.error("D-ID get failed %s: %s", get_resp.status_code, get_resp.text)
                    raise ProviderError("Failed to get video", status_code=get_resp.status_code)

                data = get_resp.json()
                status = data.get("status")
                logger.debug("Video %s status: %s", talk_id, status)

                if status == "done" and data.get("result_url"):
                    return data["result_url"]
                if status == "failed":
                    raise ProviderError("Video generation failed", status_code=500)

                await asyncio.sleep(self.poll_interval)

        raise ProviderError("Video generation timed out", status_code=500)


_video_service: Optional[VideoService] = None


def get_video_service() -> VideoService:
    """Get video service instance"""
    global _video_service
    if _video_service is None:
        _video_service = VideoService()
    return _video_service
