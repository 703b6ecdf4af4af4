"""Tests for retrieval, indexing and answer generation."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from app import config
from app.schemas.chat import Message
from app.services.gemini import GeminiService
from app.services.rag import (
    RagService,
    format_context,
    message_document,
    pdf_namespace,
    split_text,
)
from app.services.vector_store import Document, VectorStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_message(id, channel_id=7, content="hello", username="alice"):
    return Message(
        id=id, content=content, user_id=f"user-{username}", username=username,
        channel_id=channel_id, created_at=NOW,
    )


def doc(message_id, content, username="alice"):
    return Document(page_content=content, metadata={"messageId": message_id, "username": username})


@pytest.fixture
def gemini():
    service = Mock(spec=GeminiService)
    service.embed_documents = AsyncMock(side_effect=lambda texts: [[0.1, 0.2]] * len(texts))
    service.embed_query = AsyncMock(return_value=[0.3, 0.4])
    service.complete = AsyncMock(return_value="Friday.")
    return service


@pytest.fixture
def vector_store():
    store = Mock(spec=VectorStore)
    store.upsert = AsyncMock(side_effect=lambda namespace, document_ids, documents, embeddings: len(documents))
    store.similarity_search = AsyncMock(return_value=[])
    return store


@pytest.fixture
def rag(gemini, vector_store, chat_service):
    return RagService(gemini=gemini, vector_store=vector_store, chat_service=chat_service)


class TestSplitText:
    """Tests for split_text."""

    def test_short_text_single_chunk(self):
        """Test text under the chunk size stays whole."""
        assert split_text("a short note") == ["a short note"]

    def test_windows_overlap(self):
        """Test consecutive chunks share the overlap."""
        text = "".join(chr(ord("a") + i % 26) for i in range(2500))

        chunks = split_text(text, chunk_size=1000, chunk_overlap=200)

        assert [len(c) for c in chunks] == [1000, 1000, 900]
        assert chunks[0][-200:] == chunks[1][:200]
        assert chunks[-1].endswith(text[-50:])

    def test_blank_text(self):
        """Test whitespace produces no chunks."""
        assert split_text("   \n  ") == []

    def test_overlap_must_be_smaller(self):
        """Test an overlap as large as the chunk is rejected."""
        with pytest.raises(ValueError):
            split_text("abc", chunk_size=10, chunk_overlap=10)


class TestHelpers:
    """Tests for document helpers."""

    def test_message_document_metadata(self):
        """Test message metadata uses the search result field names."""
        document = message_document(make_message(3))

        assert document.page_content == "hello"
        assert document.metadata == {
            "messageId": 3,
            "userId": "user-alice",
            "username": "alice",
            "channelId": 7,
            "timestamp": NOW.isoformat(),
        }

    def test_format_context(self):
        """Test context lines name the author."""
        assert format_context([doc(1, "hi"), doc(2, "yo", "bob")]) == "alice: hi\nbob: yo"

    def test_pdf_namespace(self):
        """Test PDF chunks live in their own per-file namespace."""
        assert pdf_namespace(7, "abc") == "7:pdf:abc"


class TestRagService:
    """Tests for RagService."""

    async def test_index_groups_by_channel(self, rag, vector_store):
        """Test each channel's messages go to that channel's namespace keyed by message id."""
        count = await rag.index_messages([make_message(1, 7), make_message(2, 8), make_message(3, 7)])

        assert count == 3
        calls = {c.kwargs["namespace"]: c.kwargs["document_ids"] for c in vector_store.upsert.await_args_list}
        assert calls == {"7": ["1", "3"], "8": ["2"]}

    async def test_index_empty(self, rag, gemini, vector_store):
        """Test indexing nothing makes no calls."""
        assert await rag.index_messages([]) == 0
        gemini.embed_documents.assert_not_called()
        vector_store.upsert.assert_not_called()

    async def test_query_dedupes_by_message(self, rag, vector_store):
        """Test at most one hit per message and five in total."""
        vector_store.similarity_search.return_value = [
            doc(1, "a"), doc(1, "a"), doc(2, "b"), doc(3, "c"), doc(2, "b"),
            doc(4, "d"), doc(5, "e"), doc(6, "f"),
        ]

        results = await rag.query_messages("ship", 7)

        assert [d.metadata["messageId"] for d in results] == [1, 2, 3, 4, 5]
        assert vector_store.similarity_search.await_args.kwargs["namespace"] == "7"

    async def test_generate_uses_channel_context(self, rag, gemini, vector_store):
        """Test the prompt carries the retrieved messages and the question."""
        vector_store.similarity_search.return_value = [doc(1, "we ship friday")]

        answer = await rag.generate_response("when do we ship?", 7)

        assert answer == "Friday."
        assert vector_store.similarity_search.await_args.kwargs["channel_id"] == 7
        prompt = gemini.complete.await_args.args[0]
        assert "alice: we ship friday" in prompt
        assert "Question: when do we ship?" in prompt
        assert gemini.complete.await_args.kwargs["system_instruction"] == config.ASSISTANT_SYSTEM_PROMPT

    async def test_generate_empty_answer_falls_back(self, rag, gemini):
        """Test an empty completion becomes the fallback text."""
        gemini.complete.return_value = ""

        assert await rag.generate_response("q", 7) == config.NO_RESPONSE_FALLBACK

    async def test_generate_dm_speaks_as_other_user(self, rag, gemini, vector_store):
        """Test DM answers retrieve the other user's messages and use their persona."""
        await rag.generate_dm_response("lunch?", "u2", "You are Bob.")

        assert vector_store.similarity_search.await_args.kwargs["user_id"] == "u2"
        assert gemini.complete.await_args.kwargs["system_instruction"] == "You are Bob."

    async def test_generate_dm_default_persona(self, rag, gemini):
        """Test a blank persona uses the default."""
        await rag.generate_dm_response("lunch?", "u2", "")

        assert gemini.complete.await_args.kwargs["system_instruction"] == config.DEFAULT_BOT_PROMPT

    async def test_process_pdf(self, rag, vector_store, fake_supabase):
        """Test a PDF is downloaded, chunked and indexed under its own namespace."""
        fake_supabase.storage.files[("chat-files", "channel-7/abc-plan.pdf")] = b"%PDF"

        with patch("app.services.rag.extract_pdf_text", return_value="x" * 1500) as extract:
            count = await rag.process_pdf("channel-7/abc-plan.pdf", "abc", "plan.pdf", 7, "u1", "alice")

        extract.assert_called_once_with(b"%PDF")
        assert count == 2
        kwargs = vector_store.upsert.await_args.kwargs
        assert kwargs["namespace"] == "7:pdf:abc"
        assert kwargs["document_ids"] == ["abc-0", "abc-1"]
        metadata = kwargs["documents"][1].metadata
        assert (metadata["fileName"], metadata["chunkIndex"], metadata["channelId"]) == ("plan.pdf", 1, 7)

    async def test_process_pdf_without_text(self, rag, vector_store, fake_supabase):
        """Test a PDF with no extractable text indexes nothing."""
        fake_supabase.storage.files[("chat-files", "scan.pdf")] = b"%PDF"

        with patch("app.services.rag.extract_pdf_text", return_value=""):
            assert await rag.process_pdf("scan.pdf", "f1", "scan.pdf", 7, "u1", "alice") == 0

        vector_store.upsert.assert_not_called()


class TestVectorStore:
    """Tests for the Supabase-backed vector store."""

    async def test_upsert_rows(self, fake_supabase):
        """Test documents are written with their namespace, filters and embedding."""
        store = VectorStore(fake_supabase)
        document = message_document(make_message(3))

        await store.upsert("7", ["3"], [document], [[0.5, 0.5]])
        await store.upsert("7", ["3"], [document], [[0.6, 0.4]])

        [row] = fake_supabase.rows("chat_documents")
        assert (row["namespace"], row["document_id"], row["channel_id"]) == ("7", "3", 7)
        assert row["user_id"] == "user-alice"
        assert row["embedding"] == [0.6, 0.4]

    async def test_similarity_search(self, fake_supabase):
        """Test the match RPC receives the filters and rows become documents."""
        fake_supabase.rpc_handlers["match_chat_documents"] = lambda params: [
            {"content": "we ship friday", "metadata": {"messageId": 3}, "similarity": 0.9}
        ]
        store = VectorStore(fake_supabase)

        results = await store.similarity_search([0.1], k=5, user_id="u2")

        assert results == [Document(page_content="we ship friday", metadata={"messageId": 3})]
        name, params = fake_supabase.rpc_calls[0]
        assert name == "match_chat_documents"
        assert params["match_count"] == 5
        assert params["filter_user_id"] == "u2"
        assert params["filter_channel_id"] is None
