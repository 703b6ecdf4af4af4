import base64
import logging
from typing import Optional

import httpx

from app import config
from app.errors import ProviderError, require_setting

logger = logging.getLogger(__name__)

if not config.TTS_API_KEY:
    logger.warning("TTS_API_KEY not set — speech synthesis will fail until configured.")


class SpeechService:
    """Text-to-speech over an OpenAI-compatible /audio/speech endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: str = config.TTS_API_BASE,
        model: str = config.TTS_MODEL,
        voice: str = config.TTS_VOICE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.endpoint = f"{api_base.rstrip('/')}/audio/speech"
        self.model = model
        self.voice = voice
        self._transport = transport

    async def generate_speech(self, text: str) -> str:
        """Synthesize mp3 audio for text and return it base64 encoded"""
        api_key = require_setting(self._api_key or config.TTS_API_KEY, "TTS_API_KEY")
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        body = {"model": self.model, "voice": self.voice, "input": text}

        async with httpx.AsyncClient(timeout=60.0, transport=self._transport) as client:
            try:
                resp = await client.post(self.endpoint, headers=headers, json=body)
            except httpx.RequestError as req_err:
                logger.exception("Network error calling TTS: %s", repr(req_err))
                raise ProviderError(f"TTS network error: {repr(req_err)}") from req_err

        if resp.status_code >= 400:
            logger.error("TTS error %s: %s", resp.status_code, resp.text)
            raise ProviderError(f"TTS error {resp.status_code}")

        return base64.b64encode(resp.content).decode("utf-8")


_speech_service: Optional[SpeechService] = None


def get_speech_service() -> SpeechService:
    """Get speech service instance"""
    global _speech_service
    if _speech_service is None:
        _speech_service = SpeechService()
    return _speech_service
