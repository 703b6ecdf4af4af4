import logging
from typing import List, Optional

import google.generativeai as genai

from app import config
from app.errors import ProviderError, require_setting

logger = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 100

if not config.GEMINI_API_KEY:
    logger.warning("GEMINI_API_KEY not set — AI answers and indexing will fail until configured.")


class GeminiService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = config.GEMINI_MODEL,
        embedding_model: str = config.GEMINI_EMBEDDING_MODEL,
    ):
        self._api_key = api_key
        self._configured = False
        self.model_name = model_name
        self.embedding_model = embedding_model

    def _configure(self) -> None:
        """Configure the SDK on first use so a missing key fails the request, not the import"""
        if self._configured:
            return
        api_key = require_setting(self._api_key or config.GEMINI_API_KEY, "GEMINI_API_KEY")
        genai.configure(api_key=api_key)
        self._configured = True

    async def complete(
        self,
        prompt: str,
        system_instruction: str,
        temperature: float = 0.7,
    ) -> str:
        """
        Get a complete response from Gemini (non-streaming).

        Args:
            prompt: The user turn, already carrying any retrieved context
            system_instruction: System instruction for the model
            temperature: Sampling temperature

        Returns:
            Response text, empty when the model returned nothing
        """
        self._configure()

        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_instruction,
        )
        try:
            response = await model.generate_content_async(
                prompt,
                generation_config={"temperature": temperature},
            )
        except Exception as e:
            logger.exception("Gemini completion failed")
            raise ProviderError(f"LLM API error: {e}") from e

        try:
            return (response.text or "").strip()
        except ValueError:
            # Blocked or empty candidates raise on .text
            return ""

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed texts for storage in the vector index, in order"""
        if not texts:
            return []
        self._configure()

        embeddings: List[List[float]] = []
        # batchEmbedContents accepts at most EMBED_BATCH_SIZE items per request
        for start in range(0, len(texts), EMBED_BATCH_SIZE):
            batch = texts[start:start + EMBED_BATCH_SIZE]
            try:
                result = await genai.embed_content_async(
                    model=self.embedding_model,
                    content=batch,
                    task_type="retrieval_document",
                )
            except Exception as e:
                logger.exception("Gemini embedding failed")
                raise ProviderError(f"Embedding API error: {e}") from e
            embeddings.extend(result["embedding"])
        return embeddings

    async def embed_query(self, text: str) -> List[float]:
        self._configure()
        try:
            result = await genai.embed_content_async(
                model=self.embedding_model,
                content=text,
                task_type="retrieval_query",
            )
        except Exception as e:
            logger.exception("Gemini embedding failed")
            raise ProviderError(f"Embedding API error: {e}") from e
        return result["embedding"]


_gemini_service: Optional[GeminiService] = None


def get_gemini_service() -> GeminiService:
    """Get Gemini service instance"""
    global _gemini_service
    if _gemini_service is None:
        _gemini_service = GeminiService()
    return _gemini_service
