"""
Context Builder - Assembles the system prompt for a chat turn

The system prompt is built in two layers:
1. The agent's persona instruction (or the default instruction)
2. Knowledge base passages retrieved from the knowledge index for the
   agent's domain

Retrieval is best effort: a missing client, a provider error or an
embedding timeout leaves the persona instruction unchanged.
"""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from facility.config import settings
from facility.db.models import Agent
from facility.services.knowledge_index import KnowledgeIndex, PASSAGE_TEXT_KEY, DOMAIN_KEY
from facility.services.llm_service import LLMService, OfflineLLMService

logger = logging.getLogger(__name__)

PASSAGE_DELIMITER = "\n---\n"
KNOWLEDGE_SECTION = "\n\nKNOWLEDGE BASE (use this to answer):\n{context}\n"


class ContextBuilder:
    """Builds the knowledge-augmented system instruction for an agent."""

    def __init__(
        self,
        db: AsyncSession,
        llm_service: LLMService,
        index: Optional[KnowledgeIndex] = None,
        top_k: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self.llm_service = llm_service
        self.index = index
        self.top_k = top_k if top_k is not None else settings.retrieval_top_k
        self.timeout = timeout if timeout is not None else settings.retrieval_timeout_seconds

    async def get_base_instruction(self, agent_id: str, user_id: Optional[str] = None) -> str:
        """
        The instruction of the agent with this exact name, visible to the user.

        Only official agents and the user's own agents are candidates; the
        user's own agent wins over an official one with the same name.
        """
        visible = Agent.creator_id.is_(None)
        if user_id is not None:
            visible = or_(visible, Agent.creator_id == user_id)

        result = await self.db.execute(
            select(Agent.system_instruction)
            .where(Agent.name == agent_id, visible)
            .order_by(Agent.creator_id.is_(None), Agent.created_at)
            .limit(1)
        )
        instruction = result.scalar_one_or_none()
        if instruction is None:
            return settings.default_system_instruction
        return instruction

    async def build_system_prompt(
        self,
        agent_id: str,
        user_query: str,
        user_id: Optional[str] = None,
    ) -> str:
        """Persona instruction plus a knowledge base section when passages were found."""
        instruction = await self.get_base_instruction(agent_id, user_id)
        context = await self.retrieve_context(user_query, agent_id)
        if context:
            instruction += KNOWLEDGE_SECTION.format(context=context)
        return instruction

    async def retrieve_context(self, query: str, profession: str) -> str:
        """
        Ranked passage texts for the query joined by the delimiter.
        Returns an empty string whenever retrieval is not possible.

        The timeout bounds the provider call only; the index query runs on
        the request session and must not be cancelled mid-statement.
        """
        if self.index is None or isinstance(self.llm_service, OfflineLLMService):
            return ""

        try:
            vector = await asyncio.wait_for(
                self.llm_service.embed(query),
                timeout=self.timeout,
            )
            passages = await self._search(vector, profession)
        except asyncio.TimeoutError:
            logger.error(
                "Query embedding timed out after %ss for index %s", self.timeout, self.index.name
            )
            return ""
        except Exception as e:
            logger.error(f"Knowledge search failed on index {self.index.name}: {e}", exc_info=True)
            return ""

        return PASSAGE_DELIMITER.join(passages)

    async def _search(self, vector: List[float], profession: str) -> List[str]:
        matches = await self.index.query(
            vector,
            top_k=self.top_k,
            filter={DOMAIN_KEY: profession},
            include_metadata=True,
        )

        passages = []
        for match in matches:
            if not match.metadata or PASSAGE_TEXT_KEY not in match.metadata:
                continue
            text = match.metadata.get(PASSAGE_TEXT_KEY)
            if text:
                passages.append(str(text))
        return passages
