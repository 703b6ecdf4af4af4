import io
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pypdf import PdfReader

from app import config
from app.schemas.chat import Message
from app.services.chat import ChatService, get_chat_service
from app.services.gemini import GeminiService, get_gemini_service
from app.services.vector_store import Document, VectorStore

logger = logging.getLogger(__name__)

SEARCH_CANDIDATES = 10
SEARCH_RESULTS = 5
CONTEXT_DOCUMENTS = 5


def channel_namespace(channel_id: int) -> str:
    return str(channel_id)


def pdf_namespace(channel_id: int, file_id: str) -> str:
    return f"{channel_id}:pdf:{file_id}"


def split_text(
    text: str,
    chunk_size: int = config.CHUNK_SIZE,
    chunk_overlap: int = config.CHUNK_OVERLAP,
) -> List[str]:
    """Fixed-size character windows with overlap; blank windows are dropped"""
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    chunks = []
    step = chunk_size - chunk_overlap
    for start in range(0, len(text), step):
        chunk = text[start:start + chunk_size].strip()
        if chunk:
            chunks.append(chunk)
        if start + chunk_size >= len(text):
            break
    return chunks


def extract_pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def message_document(message: Message) -> Document:
    return Document(
        page_content=message.content,
        metadata={
            "messageId": message.id,
            "userId": message.user_id,
            "username": message.username,
            "channelId": message.channel_id,
            "timestamp": message.created_at.isoformat(),
        },
    )


def format_context(documents: List[Document]) -> str:
    return "\n".join(
        f"{doc.metadata.get('username', 'unknown')}: {doc.page_content}"
        for doc in documents
    )


class RagService:
    def __init__(
        self,
        gemini: Optional[GeminiService] = None,
        vector_store: Optional[VectorStore] = None,
        chat_service: Optional[ChatService] = None,
    ):
        self.gemini = gemini or get_gemini_service()
        self._vector_store = vector_store
        self._chat_service = chat_service

    @property
    def vector_store(self) -> VectorStore:
        if self._vector_store is None:
            self._vector_store = VectorStore()
        return self._vector_store

    @property
    def chat_service(self) -> ChatService:
        if self._chat_service is None:
            self._chat_service = get_chat_service()
        return self._chat_service

    async def index_messages(self, messages: List[Message]) -> int:
        """Index channel messages into their channel namespace, replacing earlier copies"""
        if not messages:
            return 0

        by_channel = {}
        for message in messages:
            by_channel.setdefault(message.channel_id, []).append(message)

        total = 0
        for channel_id, channel_messages in by_channel.items():
            documents = [message_document(m) for m in channel_messages]
            embeddings = await self.gemini.embed_documents([d.page_content for d in documents])
            total += await self.vector_store.upsert(
                namespace=channel_namespace(channel_id),
                document_ids=[str(m.id) for m in channel_messages],
                documents=documents,
                embeddings=embeddings,
            )
        logger.info("Indexed %d messages", total)
        return total

    async def query_messages(self, query: str, channel_id: int) -> List[Document]:
        """Semantic search over a channel's messages, one hit per message"""
        embedding = await self.gemini.embed_query(query)
        results = await self.vector_store.similarity_search(
            embedding,
            k=SEARCH_CANDIDATES,
            namespace=channel_namespace(channel_id),
        )

        seen = set()
        unique = []
        for doc in results:
            message_id = doc.metadata.get("messageId")
            if message_id in seen:
                continue
            seen.add(message_id)
            unique.append(doc)
        return unique[:SEARCH_RESULTS]

    async def generate_response(self, query: str, channel_id: int) -> str:
        embedding = await self.gemini.embed_query(query)
        context_docs = await self.vector_store.similarity_search(
            embedding, k=CONTEXT_DOCUMENTS, channel_id=channel_id
        )
        prompt = config.CHANNEL_PROMPT.format(context=format_context(context_docs), query=query)

        answer = await self.gemini.complete(prompt, system_instruction=config.ASSISTANT_SYSTEM_PROMPT)
        return answer or config.NO_RESPONSE_FALLBACK

    async def generate_dm_response(self, query: str, other_user_id: str, bot_prompt: str) -> str:
        """Answer a direct message on behalf of another user, grounded in what they wrote"""
        embedding = await self.gemini.embed_query(query)
        context_docs = await self.vector_store.similarity_search(
            embedding, k=CONTEXT_DOCUMENTS, user_id=other_user_id
        )
        prompt = config.DM_PROMPT.format(context=format_context(context_docs), query=query)

        answer = await self.gemini.complete(
            prompt,
            system_instruction=bot_prompt or config.DEFAULT_BOT_PROMPT,
        )
        return answer or config.NO_RESPONSE_FALLBACK

    async def process_pdf(
        self,
        file_path: str,
        file_id: str,
        file_name: str,
        channel_id: int,
        uploader_id: str,
        uploader_name: str,
    ) -> int:
        """
        Index an uploaded PDF for a channel.

        Args:
            file_path: Path of the PDF inside the chat-files bucket
            file_id: Identifier used for the PDF's namespace
            file_name: Display name stored with each chunk
            channel_id: Channel the PDF was shared in
            uploader_id: User who uploaded it
            uploader_name: Display name of the uploader

        Returns:
            Number of chunks indexed
        """
        data = await self.chat_service.download_file(file_path)
        text = extract_pdf_text(data)
        chunks = split_text(text)
        if not chunks:
            logger.warning("PDF %s contained no extractable text", file_name)
            return 0

        timestamp = datetime.now(timezone.utc).isoformat()
        documents = [
            Document(
                page_content=chunk,
                metadata={
                    "fileId": file_id,
                    "fileName": file_name,
                    "chunkIndex": index,
                    "userId": uploader_id,
                    "username": uploader_name,
                    "channelId": channel_id,
                    "timestamp": timestamp,
                },
            )
            for index, chunk in enumerate(chunks)
        ]
        embeddings = await self.gemini.embed_documents(chunks)
        await self.vector_store.upsert(
            namespace=pdf_namespace(channel_id, file_id),
            document_ids=[f"{file_id}-{index}" for index in range(len(chunks))],
            documents=documents,
            embeddings=embeddings,
        )
        logger.info("Indexed %d chunks from %s", len(chunks), file_name)
        return len(chunks)


_rag_service: Optional[RagService] = None


def get_rag_service() -> RagService:
    """Get RAG service instance"""
    global _rag_service
    if _rag_service is None:
        _rag_service = RagService()
    return _rag_service
