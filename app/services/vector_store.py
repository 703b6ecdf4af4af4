"""Vector index stored in Supabase (pgvector) and queried via RPC."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from supabase import Client

from app.database import get_supabase
from app.models.chat import Rpc, Tables

logger = logging.getLogger(__name__)


@dataclass
class Document:
    page_content: str
    metadata: dict = field(default_factory=dict)

    def to_result(self) -> dict:
        return {"pageContent": self.page_content, "metadata": self.metadata}


class VectorStore:
    def __init__(self, supabase: Optional[Client] = None):
        self.supabase: Client = supabase if supabase is not None else get_supabase()

    async def upsert(
        self,
        namespace: str,
        document_ids: List[str],
        documents: List[Document],
        embeddings: List[List[float]],
    ) -> int:
        """Insert documents, replacing any with the same id in the namespace"""
        rows = []
        for doc_id, doc, embedding in zip(document_ids, documents, embeddings):
            rows.append({
                "namespace": namespace,
                "document_id": doc_id,
                "channel_id": doc.metadata.get("channelId"),
                "user_id": doc.metadata.get("userId"),
                "content": doc.page_content,
                "metadata": doc.metadata,
                "embedding": embedding,
            })
        if not rows:
            return 0

        self.supabase.table(Tables.DOCUMENTS).upsert(
            rows, on_conflict="namespace,document_id"
        ).execute()
        logger.debug("Upserted %d documents into namespace %s", len(rows), namespace)
        return len(rows)

    async def similarity_search(
        self,
        embedding: List[float],
        k: int,
        namespace: Optional[str] = None,
        channel_id: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> List[Document]:
        result = self.supabase.rpc(
            Rpc.MATCH_DOCUMENTS,
            {
                "query_embedding": embedding,
                "match_count": k,
                "filter_namespace": namespace,
                "filter_channel_id": channel_id,
                "filter_user_id": user_id,
            },
        ).execute()
        return [
            Document(page_content=row["content"], metadata=row.get("metadata") or {})
            for row in result.data or []
        ]
