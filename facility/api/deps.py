"""Service wiring for the routers"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from facility.config import settings
from facility.db import get_db
from facility.services import (
    get_llm_service, KnowledgeIndex, ContextBuilder, ChatService, KnowledgeService,
)
from facility.services.llm_service import LLMService


def get_knowledge_index(db: AsyncSession = Depends(get_db)) -> Optional[KnowledgeIndex]:
    if not settings.knowledge_index_enabled:
        return None
    return KnowledgeIndex(db, name=settings.knowledge_index_name)


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    llm_service: LLMService = Depends(get_llm_service),
    index: Optional[KnowledgeIndex] = Depends(get_knowledge_index),
) -> ChatService:
    context_builder = ContextBuilder(db, llm_service, index)
    return ChatService(db, llm_service, context_builder)


def get_knowledge_service(
    db: AsyncSession = Depends(get_db),
    llm_service: LLMService = Depends(get_llm_service),
) -> KnowledgeService:
    return KnowledgeService(db, llm_service, KnowledgeIndex(db, name=settings.knowledge_index_name))
