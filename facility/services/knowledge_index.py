"""
Knowledge index - vector similarity search over ingested passages

Backed by the knowledge_chunks table:
- PostgreSQL: pgvector cosine distance in SQL
- Other dialects (SQLite): cosine similarity in numpy over embedding_json

Matches carry the passage text under metadata["text"].
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

import numpy as np
from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db.models import KnowledgeChunk

logger = logging.getLogger(__name__)

PASSAGE_TEXT_KEY = "text"
DOMAIN_KEY = "profession"


@dataclass
class VectorMatch:
    """A single query result"""
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class VectorRecord:
    """A passage to write into the index"""
    content: str
    embedding: List[float]
    domain: str
    document_id: Optional[str] = None
    chunk_index: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


def cosine_similarity(embedding1: List[float], embedding2: List[float]) -> float:
    """Calculate cosine similarity between two embeddings."""
    a = np.array(embedding1, dtype=float)
    b = np.array(embedding2, dtype=float)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class KnowledgeIndex:
    """Vector retrieval client over the knowledge_chunks table."""

    def __init__(self, db: AsyncSession, name: str = "facility-ia"):
        self.db = db
        self.name = name

    @property
    def is_postgres(self) -> bool:
        bind = self.db.bind
        return bind is not None and bind.dialect.name == "postgresql"

    async def upsert(self, records: List[VectorRecord]) -> List[KnowledgeChunk]:
        """Add passages to the index. The caller commits."""
        chunks = []
        for record in records:
            metadata = {
                PASSAGE_TEXT_KEY: record.content,
                DOMAIN_KEY: record.domain,
                **record.metadata,
            }
            chunk = KnowledgeChunk(
                document_id=record.document_id,
                domain=record.domain,
                chunk_index=record.chunk_index,
                content=record.content,
                embedding_json=json.dumps(record.embedding),
                metadata_json=json.dumps(metadata),
            )
            if self.is_postgres:
                chunk.embedding = record.embedding
            self.db.add(chunk)
            chunks.append(chunk)
        await self.db.flush()
        return chunks

    async def delete_document(self, document_id: str) -> int:
        """Remove every passage of a document. The caller commits."""
        result = await self.db.execute(
            delete(KnowledgeChunk).where(KnowledgeChunk.document_id == document_id)
        )
        return result.rowcount or 0

    async def query(
        self,
        vector: List[float],
        top_k: int = 3,
        filter: Optional[Dict[str, Any]] = None,
        include_metadata: bool = True,
    ) -> List[VectorMatch]:
        """
        Return the top_k passages most similar to the vector, best first.

        Only the profession key of the filter is supported; it restricts the
        search to one knowledge domain.
        """
        if top_k <= 0:
            return []
        domain = (filter or {}).get(DOMAIN_KEY)

        if self.is_postgres:
            scored = await self._query_pgvector(vector, top_k, domain)
        else:
            scored = await self._query_in_memory(vector, top_k, domain)

        return [
            VectorMatch(
                id=chunk.id,
                score=score,
                metadata=self._metadata(chunk) if include_metadata else None,
            )
            for chunk, score in scored
        ]

    async def _query_pgvector(
        self,
        vector: List[float],
        top_k: int,
        domain: Optional[str],
    ) -> List[Tuple[KnowledgeChunk, float]]:
        conditions = [KnowledgeChunk.embedding.isnot(None)]
        if domain is not None:
            conditions.append(KnowledgeChunk.domain == domain)

        query = (
            select(
                KnowledgeChunk,
                (1 - KnowledgeChunk.embedding.cosine_distance(vector)).label("similarity")
            )
            .where(and_(*conditions))
            .order_by(KnowledgeChunk.embedding.cosine_distance(vector))
            .limit(top_k)
        )
        result = await self.db.execute(query)
        return [(row.KnowledgeChunk, float(row.similarity)) for row in result.all()]

    async def _query_in_memory(
        self,
        vector: List[float],
        top_k: int,
        domain: Optional[str],
    ) -> List[Tuple[KnowledgeChunk, float]]:
        query = select(KnowledgeChunk).where(KnowledgeChunk.embedding_json.isnot(None))
        if domain is not None:
            query = query.where(KnowledgeChunk.domain == domain)
        result = await self.db.execute(query)

        scored = []
        for chunk in result.scalars().all():
            similarity = cosine_similarity(vector, json.loads(chunk.embedding_json))
            scored.append((chunk, similarity))

        # Sort by similarity descending
        scored.sort(key=lambda x: x[1], reverse=True)
        return scored[:top_k]

    @staticmethod
    def _metadata(chunk: KnowledgeChunk) -> Dict[str, Any]:
        if chunk.metadata_json:
            return json.loads(chunk.metadata_json)
        return {PASSAGE_TEXT_KEY: chunk.content, DOMAIN_KEY: chunk.domain}
