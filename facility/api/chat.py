"""
Chat API - quota-aware chat with an agent

The endpoint always answers 200 with a reply text; quota denials and
provider failures are reported in the text and the outcome field.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from facility.config import settings
from facility.db import get_db, User
from facility.schemas import ChatRequest, ChatResponse, ChatHistoryResponse, ChatMessageResponse
from facility.api.auth import get_current_user
from facility.api.deps import get_chat_service
from facility.services import ChatService, ChatOutcome
from facility.services.chat_history import get_recent_messages, record_turn

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Send a message to an agent and get the AI response.

    The stored conversation with the agent is replayed as history
    (newest messages, oldest first). Only completed replies are stored.
    """
    user_id = current_user.id
    history = await get_recent_messages(
        db,
        user_id=user_id,
        agent_id=request.agent_id,
        limit=settings.max_history_messages,
    )

    result = await chat_service.respond(
        request.message,
        request.agent_id,
        history,
        user_id,
    )

    if result.outcome == ChatOutcome.COMPLETED:
        await record_turn(db, user_id, request.agent_id, request.message, result.text)

    return ChatResponse(
        response=result.text,
        tokens_used=result.tokens,
        outcome=result.outcome.value,
    )


@router.get("/history", response_model=ChatHistoryResponse)
async def chat_history(
    agent_id: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Stored conversation with an agent, oldest first"""
    messages = await get_recent_messages(db, current_user.id, agent_id, limit=limit)
    return ChatHistoryResponse(
        agent_id=agent_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )
