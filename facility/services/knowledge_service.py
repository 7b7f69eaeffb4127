"""
Knowledge Service - ingestion of text into the knowledge index

Handles:
- Text decoding for uploaded files (charset detection)
- Chunking with paragraph/sentence-aware breaks
- Batch embedding and index writes
- Manifest records and document removal
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import chardet
from sqlalchemy.ext.asyncio import AsyncSession

from facility.config import settings
from facility.db.models import KnowledgeDocument
from facility.services.knowledge_index import KnowledgeIndex, VectorRecord
from facility.services.llm_service import LLMService, OfflineLLMService

logger = logging.getLogger(__name__)

MANUAL_TEXT_SOURCE = "Manual text"


class KnowledgeIngestionError(ValueError):
    """Raised when text cannot be added to the knowledge base."""


@dataclass
class TextChunk:
    """A chunk of text cut from an ingested document"""
    content: str
    chunk_index: int
    start_char: int
    end_char: int


def decode_bytes(content: bytes) -> str:
    """Decode bytes to string with encoding detection"""
    detected = chardet.detect(content)
    encoding = detected.get("encoding") or "utf-8"
    try:
        return content.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        return content.decode("utf-8", errors="replace")


def chunk_text(text: str, chunk_size: int, chunk_overlap: int) -> List[TextChunk]:
    """Split text into overlapping chunks"""
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    chunks = []
    start = 0
    chunk_index = 0

    while start < len(text):
        end = start + chunk_size

        # Try to break at paragraph, then sentence
        if end < len(text):
            para_break = text.rfind("\n\n", start, end)
            if para_break > start + chunk_size // 2:
                end = para_break
            else:
                for punct in [". ", "! ", "? ", "\n"]:
                    sent_break = text.rfind(punct, start, end)
                    if sent_break > start + chunk_size // 2:
                        end = sent_break + len(punct)
                        break

        content = text[start:end].strip()
        if content:
            chunks.append(TextChunk(
                content=content,
                chunk_index=chunk_index,
                start_char=start,
                end_char=min(end, len(text)),
            ))
            chunk_index += 1

        if end >= len(text):
            break
        start = max(end - chunk_overlap, start + 1)

    return chunks


class KnowledgeService:
    """Adds documents to the knowledge index and removes them again."""

    def __init__(
        self,
        db: AsyncSession,
        llm_service: LLMService,
        index: Optional[KnowledgeIndex] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        self.db = db
        self.llm_service = llm_service
        self.index = index or KnowledgeIndex(db, name=settings.knowledge_index_name)
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap

    async def ingest_text(
        self,
        text: str,
        profession: str,
        source: str = MANUAL_TEXT_SOURCE,
    ) -> KnowledgeDocument:
        """
        Chunk, embed and index a text for one profession.

        The manifest row and all chunks are committed together.
        """
        if not text or not text.strip():
            raise KnowledgeIngestionError("Text is empty.")
        if not profession or not profession.strip():
            raise KnowledgeIngestionError("Profession not provided.")
        if isinstance(self.llm_service, OfflineLLMService):
            raise KnowledgeIngestionError(
                f"Embeddings are unavailable: {self.llm_service.reason}"
            )

        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        if not chunks:
            raise KnowledgeIngestionError("Text has no indexable content.")

        try:
            embeddings = await self.llm_service.embed_batch([c.content for c in chunks])
        except Exception as e:
            logger.error(f"Embedding failed for {source}: {e}", exc_info=True)
            raise KnowledgeIngestionError(f"Embedding failed: {e}") from e

        document = KnowledgeDocument(
            file_name=source,
            agent_name=profession,
            chunk_count=len(chunks),
        )
        self.db.add(document)
        await self.db.flush()

        await self.index.upsert([
            VectorRecord(
                content=chunk.content,
                embedding=embedding,
                domain=profession,
                document_id=document.id,
                chunk_index=chunk.chunk_index,
                metadata={"source": source},
            )
            for chunk, embedding in zip(chunks, embeddings)
        ])
        await self.db.commit()
        await self.db.refresh(document)

        logger.info(f"Ingested {source} into {profession}: {len(chunks)} chunks")
        return document

    async def ingest_file(self, content: bytes, file_name: str, profession: str) -> KnowledgeDocument:
        """Decode an uploaded file as text and ingest it."""
        return await self.ingest_text(decode_bytes(content), profession, source=file_name)

    async def delete_document(self, document_id: str) -> bool:
        """Remove a document's chunks and manifest. False if it does not exist."""
        document = await self.db.get(KnowledgeDocument, document_id)
        if document is None:
            return False

        removed = await self.index.delete_document(document_id)
        await self.db.delete(document)
        await self.db.commit()

        logger.info(f"Deleted knowledge document {document_id} ({removed} chunks)")
        return True
